"""Job routes."""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query

from system_agent.bootstrap import Container, get_container
from system_agent.job_status import JobStatus
from system_agent.schemas.jobs import (
    DeleteJobsResponse,
    FailJobRequest,
    JobResponse,
    JobSummaryResponse,
    RecoverJobsRequest,
    RecoverJobsResponse,
)
from system_agent.schemas.tasks import TaskScheduledResponse
from system_agent.services import maintenance

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/jobs", tags=["jobs"])


@router.get("", response_model=List[JobResponse])
def list_jobs(
    flow_id: Optional[str] = None,
    pipeline_id: Optional[str] = None,
    status: Optional[str] = None,
    limit: int = Query(50, ge=1, le=100),
    offset: int = Query(0, ge=0),
    container: Container = Depends(get_container),
):
    """List jobs, newest first."""
    records = container.jobs.get_jobs(
        flow_id=flow_id,
        pipeline_id=pipeline_id,
        status=status,
        limit=limit,
        offset=offset,
    )
    return [JobResponse.from_record(r) for r in records]


@router.get("/summary", response_model=JobSummaryResponse)
def jobs_summary(container: Container = Depends(get_container)):
    """Job counts grouped by base status."""
    summary = container.jobs.get_jobs_summary()
    return JobSummaryResponse(summary=summary, total=sum(summary.values()))


@router.delete("", response_model=DeleteJobsResponse)
def delete_jobs(
    type: str = Query(..., description='"all" or "failed"'),
    container: Container = Depends(get_container),
):
    """Delete all jobs or only failed ones."""
    result = maintenance.delete_jobs(container.jobs, type)
    if not result["success"]:
        status_code = 400 if type not in ("all", "failed") else 500
        raise HTTPException(status_code=status_code, detail=result["error"])

    return DeleteJobsResponse(deleted_count=result["deleted_count"], message=result["message"])


@router.post("/recover", response_model=RecoverJobsResponse)
def recover_jobs(
    data: RecoverJobsRequest,
    container: Container = Depends(get_container),
):
    """Finalize processing jobs that recorded a final job_status override."""
    result = maintenance.recover_stuck_jobs(container.jobs, dry_run=data.dry_run, flow_id=data.flow_id)
    return RecoverJobsResponse(**{k: v for k, v in result.items() if k != "success"})


@router.get("/{job_id}", response_model=JobResponse)
def get_job(
    job_id: int,
    container: Container = Depends(get_container),
):
    """Get a job."""
    record = container.jobs.get_job(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")

    return JobResponse.from_record(record)


@router.post("/{job_id}/fail", response_model=JobResponse)
def fail_job(
    job_id: int,
    data: FailJobRequest,
    container: Container = Depends(get_container),
):
    """Manually fail a job that is not final yet."""
    if not container.jobs.get_job(job_id):
        raise HTTPException(status_code=404, detail="Job not found")

    result = maintenance.fail_job(container.jobs, job_id, data.reason)
    if not result["success"]:
        raise HTTPException(status_code=409, detail=result["error"])

    return JobResponse.from_record(container.jobs.get_job(job_id))


@router.post("/{job_id}/retry", response_model=TaskScheduledResponse)
def retry_job(
    job_id: int,
    container: Container = Depends(get_container),
):
    """Schedule a failed job's task again as a new job."""
    record = container.jobs.get_job(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")

    if not JobStatus.is_status_failure(record["status"]):
        raise HTTPException(status_code=409, detail="Only failed jobs can be retried")

    new_job_id = container.system_agent.retry_task(job_id)
    if not new_job_id:
        raise HTTPException(status_code=503, detail="Failed to schedule retry")

    task_type = record["engine_data"].get("task_type", "")
    logger.info(f"Retried job {job_id} as job {new_job_id}")

    return TaskScheduledResponse(
        job_id=new_job_id,
        task_type=task_type,
        message=f"Job {job_id} retried as job {new_job_id}",
    )


@router.post("/{job_id}/resume", response_model=JobResponse)
def resume_job(
    job_id: int,
    container: Container = Depends(get_container),
):
    """Resume a waiting job."""
    record = container.jobs.get_job(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")

    if not JobStatus.is_status_waiting(record["status"]):
        raise HTTPException(status_code=409, detail="Job is not waiting")

    if not container.system_agent.resume_task(job_id):
        raise HTTPException(status_code=503, detail="Failed to resume job")

    return JobResponse.from_record(container.jobs.get_job(job_id))
