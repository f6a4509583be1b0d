"""Job-related Pydantic schemas."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from system_agent.job_status import JobStatus


class JobResponse(BaseModel):
    """A job record."""

    job_id: int
    pipeline_id: str
    flow_id: str
    source: str
    label: Optional[str] = None
    status: str
    base_status: str
    reason: Optional[str] = None
    engine_data: Dict[str, Any]
    created_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "JobResponse":
        status = JobStatus.from_string(record["status"])
        return cls(**record, base_status=status.base_status, reason=status.reason)


class JobSummaryResponse(BaseModel):
    """Job counts per base status."""

    summary: Dict[str, int]
    total: int


class FailJobRequest(BaseModel):
    """Manually fail a job."""

    reason: Optional[str] = None


class RecoverJobsRequest(BaseModel):
    """Recover processing jobs that carry a final job_status override."""

    dry_run: bool = False
    flow_id: Optional[str] = None


class RecoverJobsResponse(BaseModel):
    """Recovery outcome."""

    recovered: int
    skipped: int
    dry_run: bool
    jobs: List[Dict[str, Any]]
    message: str


class DeleteJobsResponse(BaseModel):
    """Deletion outcome."""

    deleted_count: int
    message: str
