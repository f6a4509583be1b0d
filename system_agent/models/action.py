"""Scheduled action model for the deferred execution queue."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, Text

from system_agent.database import Base
from system_agent.models.types import JSONType


class ScheduledAction(Base):
    """A callback invocation waiting to be claimed by the action runner."""

    __tablename__ = "scheduled_actions"

    action_id = Column(Integer, primary_key=True, autoincrement=True)
    hook = Column(Text, nullable=False)
    args = Column(JSONType)
    group_name = Column(Text)
    status = Column(Text, nullable=False)  # 'pending', 'in-progress', 'complete', 'failed'
    scheduled_at = Column(DateTime, nullable=False)
    claim_id = Column(Text)
    claimed_at = Column(DateTime)
    attempts = Column(Integer, default=0)
    last_error = Column(Text)
    created_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_actions_status_scheduled", "status", "scheduled_at"),
        Index("idx_actions_claim_id", "claim_id"),
        {"schema": None},
    )
