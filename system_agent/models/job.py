"""Job model for deferred system tasks."""

from datetime import datetime

from sqlalchemy import Column, DateTime, Index, Integer, Text

from system_agent.database import Base
from system_agent.models.types import JSONType


class Job(Base):
    """Job is the durable record of one unit of deferred work."""

    __tablename__ = "jobs"

    job_id = Column(Integer, primary_key=True, autoincrement=True)
    pipeline_id = Column(Text, nullable=False)  # 'direct' for system agent jobs
    flow_id = Column(Text, nullable=False)
    source = Column(Text, nullable=False)  # 'system', 'pipeline', ...
    label = Column(Text)
    status = Column(Text, nullable=False)  # Serialized JobStatus, e.g. 'failed - reason'
    engine_data = Column(JSONType)
    created_at = Column(DateTime, default=datetime.utcnow)
    started_at = Column(DateTime)
    completed_at = Column(DateTime)

    __table_args__ = (
        Index("idx_jobs_status", "status"),
        Index("idx_jobs_flow_id", "flow_id"),
        {"schema": None},
    )
