"""FastAPI application for the budget planner API."""

import time
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import func, select

from budget_planner.config import settings
from budget_planner.database import AsyncSessionLocal, close_db, init_db
from budget_planner.logging_config import (
    configure_logging,
    get_logger,
    bind_contextvars,
    clear_contextvars,
)
from budget_planner.models import BudgetPeriod, PeriodStatus
from budget_planner.routes import budgets
from budget_planner.scheduler import JOBS

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Create the schema on startup and release the pool on shutdown."""
    logger.info(
        "Budget planner starting",
        version=settings.app_version,
        environment=settings.environment,
        jobs=sorted(JOBS),
    )
    try:
        await init_db()
        yield
    finally:
        await close_db()
        logger.info("Budget planner stopped")


app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Budgets, budget periods with rollover, and spending alerts",
    debug=settings.debug,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)

app.add_middleware(GZipMiddleware, minimum_size=1000)

# Added last so it wraps every other middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Process-Time"],
)


@app.middleware("http")
async def request_context(request: Request, call_next) -> Response:
    """Tag each request with an ID and log how long it took."""
    request_id = request.headers.get("X-Request-ID") or str(uuid.uuid4())
    started = time.perf_counter()
    request.state.request_id = request_id

    clear_contextvars()
    bind_contextvars(request_id=request_id, path=request.url.path, method=request.method)

    response = await call_next(request)

    elapsed = time.perf_counter() - started
    response.headers["X-Request-ID"] = request_id
    response.headers["X-Process-Time"] = f"{elapsed:.4f}"
    logger.info(
        "Request handled",
        status_code=response.status_code,
        duration_ms=round(elapsed * 1000, 2),
    )
    return response


@app.get("/")
async def root() -> dict:
    """Service name, version and the scheduled jobs it exposes."""
    return {
        "service": settings.app_name,
        "version": settings.app_version,
        "jobs": {name: job.cron for name, job in JOBS.items()},
    }


@app.get("/health/live")
async def liveness_check() -> dict[str, str]:
    return {"status": "alive"}


@app.get("/health/ready")
async def readiness_check():
    """Check the database answers and report how many periods are open.

    Returns:
        Status payload, with a 503 response when the database is unreachable
    """
    started = time.perf_counter()
    try:
        async with AsyncSessionLocal() as session:
            open_periods = await session.scalar(
                select(func.count())
                .select_from(BudgetPeriod)
                .where(BudgetPeriod.status == PeriodStatus.OPEN.value)
            )
    except Exception as e:
        logger.warning("Readiness check failed", error=str(e))
        return JSONResponse(
            status_code=503,
            content={"status": "unavailable", "database": {"error": str(e)}},
        )

    return {
        "status": "ready",
        "database": {"latency_ms": round((time.perf_counter() - started) * 1000, 2)},
        "open_periods": open_periods or 0,
    }


@app.exception_handler(Exception)
async def unhandled_exception(request: Request, exc: Exception) -> JSONResponse:
    """Log anything the routes did not handle and return a generic 500."""
    logger.error("Unhandled exception", error=str(exc), exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if settings.debug else "An unexpected error occurred",
        },
    )


app.include_router(budgets.router, prefix="/api/budgets", tags=["Budgets"])
