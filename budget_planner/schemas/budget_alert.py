"""Budget alert schemas."""

from datetime import date as date_type, datetime
from typing import Any, Dict, Optional
from uuid import UUID

from pydantic import BaseModel


class BudgetAlertResponse(BaseModel):
    """Schema for budget alert response."""
    id: UUID
    user_id: UUID
    budget_id: UUID
    budget_category_id: Optional[UUID]
    alert_type: str
    severity: str
    title: str
    message: str
    data: Dict[str, Any]
    is_read: bool
    is_email_sent: bool
    period_start: date_type
    created_at: datetime

    model_config = {"from_attributes": True}


class MarkAllReadResponse(BaseModel):
    """Number of alerts marked as read."""
    updated: int
