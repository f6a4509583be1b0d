"""Operator maintenance for job records."""

import logging
from typing import Any, Dict, List, Optional

from system_agent.job_status import JobStatus
from system_agent.services.jobs import Jobs

logger = logging.getLogger(__name__)


def recover_stuck_jobs(jobs: Jobs, dry_run: bool = False, flow_id: Optional[str] = None) -> Dict[str, Any]:
    """
    Finalize processing jobs that carry a job_status override.

    A task that decided its outcome but crashed before the final write leaves
    the intended status in engine_data["job_status"]. Only final overrides are
    applied; anything else is skipped.

    Args:
        jobs: Jobs repository
        dry_run: Report what would change without writing
        flow_id: Restrict to one flow

    Returns:
        Dict with recovered/skipped counts and per-job details
    """
    stuck_jobs = jobs.find_stuck_jobs(flow_id=flow_id)

    if not stuck_jobs:
        return {
            "success": True,
            "recovered": 0,
            "skipped": 0,
            "dry_run": dry_run,
            "jobs": [],
            "message": "No stuck jobs found.",
        }

    recovered = 0
    skipped = 0
    details: List[Dict[str, Any]] = []

    for job in stuck_jobs:
        target_status = job["engine_data"].get("job_status")
        entry = {"job_id": job["job_id"], "flow_id": job["flow_id"]}

        if not isinstance(target_status, str) or not JobStatus.is_status_final(target_status):
            skipped += 1
            details.append({**entry, "status": "skipped", "reason": f"Invalid or non-final status: {target_status}"})
            continue

        if dry_run:
            recovered += 1
            details.append({**entry, "status": "would_recover", "target_status": target_status})
            continue

        if jobs.complete_job(job["job_id"], target_status, only_if_not_final=True):
            recovered += 1
            details.append({**entry, "status": "recovered", "target_status": target_status})
        else:
            skipped += 1
            details.append({**entry, "status": "skipped", "reason": "Database update failed"})

    if dry_run:
        message = f"Dry run complete. Would recover {recovered} jobs, skip {skipped}."
    else:
        message = f"Recovery complete. Recovered: {recovered}, Skipped: {skipped}"
        if recovered:
            logger.info(f"Stuck jobs recovered: {recovered} (skipped {skipped}, flow {flow_id})")

    return {
        "success": True,
        "recovered": recovered,
        "skipped": skipped,
        "dry_run": dry_run,
        "jobs": details,
        "message": message,
    }


def fail_job(jobs: Jobs, job_id: int, reason: Optional[str] = None) -> Dict[str, Any]:
    """Manually fail a job that is not already final."""
    job = jobs.get_job(job_id)
    if not job:
        return {"success": False, "error": f"Job {job_id} not found"}

    if JobStatus.is_status_final(job["status"]):
        return {"success": False, "error": f"Job {job_id} is already final ({job['status']})"}

    reason = reason or "Manually failed"
    if not jobs.complete_job(job_id, JobStatus.failed(reason), only_if_not_final=True):
        return {"success": False, "error": f"Failed to update job {job_id}"}

    logger.info(f"Job {job_id} manually failed: {reason}", extra={"job_id": job_id})
    return {"success": True, "job_id": job_id, "status": str(JobStatus.failed(reason))}


def delete_jobs(jobs: Jobs, job_type: str) -> Dict[str, Any]:
    """Delete jobs; job_type is "all" or "failed"."""
    if job_type not in ("all", "failed"):
        return {"success": False, "error": 'type is required and must be "all" or "failed"'}

    deleted = jobs.delete_jobs(failed_only=job_type == "failed")
    if deleted is None:
        return {"success": False, "error": "Failed to delete jobs"}

    logger.info(f"Jobs deleted: {deleted} (type {job_type})")
    return {"success": True, "deleted_count": deleted, "message": f"Deleted {deleted} jobs."}
