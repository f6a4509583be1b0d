"""SQLAlchemy ORM models."""

from system_agent.models.action import ScheduledAction
from system_agent.models.job import Job

__all__ = [
    "Job",
    "ScheduledAction",
]
