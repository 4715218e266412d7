"""Budget planner backend: budgets, rollover periods and budget alerts."""

__version__ = "0.1.0"
