"""Base task with completion, failure and rescheduling helpers."""

import logging
import time
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Optional

from system_agent.config import settings
from system_agent.hooks import ACTION_GROUP, HANDLE_TASK_HOOK
from system_agent.job_status import JobStatus
from system_agent.services.action_queue import ActionQueue
from system_agent.services.jobs import Jobs

logger = logging.getLogger(__name__)


class SystemTask(ABC):
    """
    Base class for all system agent tasks.

    A task reports every outcome by writing the job's status through the
    jobs repository; the return value of execute() is ignored. Known failure
    modes should end in fail_job() rather than an exception.
    """

    task_type: str = ""

    def __init__(self, jobs: Jobs, action_queue: Optional[ActionQueue] = None):
        """Initialize the task."""
        self.jobs = jobs
        self.action_queue = action_queue

    @abstractmethod
    def execute(self, job_id: int, params: Dict[str, Any]) -> None:
        """
        Run the task for one job.

        Args:
            job_id: Job being executed
            params: The job's engine_data (task parameters plus bookkeeping)
        """
        raise NotImplementedError

    def _log_extra(self, job_id: int, **fields: Any) -> Dict[str, Any]:
        return {"job_id": job_id, "task_type": self.task_type, "agent_type": "system", **fields}

    def complete_job(self, job_id: int, result: Dict[str, Any]) -> None:
        """Store the result in engine_data and mark the job completed."""
        self.jobs.store_engine_data(job_id, result)
        self.jobs.complete_job(job_id, JobStatus.completed())

        logger.info(
            f"System agent task completed for job {job_id} ({self.task_type})",
            extra=self._log_extra(job_id),
        )

    def fail_job(self, job_id: int, reason: str) -> None:
        """Record the error in engine_data and mark the job failed."""
        self.jobs.store_engine_data(
            job_id,
            {
                "error": reason,
                "failed_at": datetime.utcnow().isoformat(),
                "task_type": self.task_type,
            },
        )
        self.jobs.complete_job(job_id, JobStatus.failed(reason))

        logger.error(
            f"System agent task failed for job {job_id} ({self.task_type}): {reason}",
            extra=self._log_extra(job_id, error=reason),
        )

    def park_job(self, job_id: int, reason: str) -> None:
        """Suspend the job until SystemAgent.resume_task() is called for it."""
        self.jobs.update_job_status(job_id, JobStatus.waiting(reason))

        logger.info(
            f"System agent task parked for job {job_id}: {reason}",
            extra=self._log_extra(job_id),
        )

    def reschedule(self, job_id: int, delay_seconds: int = 10) -> None:
        """
        Run this job again after a delay.

        Used for polling. Attempts are counted in engine_data; once
        max_attempts is exceeded the job fails instead.

        Args:
            job_id: Job to run again
            delay_seconds: Delay before the next execution
        """
        job = self.jobs.get_job(job_id)
        if not job:
            self.fail_job(job_id, "Job not found for rescheduling")
            return

        engine_data = job["engine_data"]
        attempts = int(engine_data.get("attempts", 0)) + 1
        max_attempts = int(engine_data.get("max_attempts", settings.TASK_MAX_ATTEMPTS))

        if attempts > max_attempts:
            self.fail_job(job_id, f"Task exceeded maximum attempts ({max_attempts})")
            return

        self.jobs.store_engine_data(
            job_id,
            {"attempts": attempts, "last_attempt": datetime.utcnow().isoformat()},
        )

        if self.action_queue is None:
            self.fail_job(job_id, "Deferred execution facility not available for rescheduling")
            return

        action_id = self.action_queue.schedule_single_action(
            time.time() + delay_seconds,
            HANDLE_TASK_HOOK,
            {"job_id": job_id},
            ACTION_GROUP,
        )
        if not action_id:
            self.fail_job(job_id, "Failed to reschedule deferred action")
            return

        logger.debug(
            f"System agent task rescheduled for job {job_id} (attempt {attempts}/{max_attempts})",
            extra=self._log_extra(
                job_id,
                attempts=attempts,
                max_attempts=max_attempts,
                delay_seconds=delay_seconds,
                action_id=action_id,
            ),
        )
