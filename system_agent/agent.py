"""System agent: schedules deferred tasks and dispatches them to handlers.

Jobs are created, described and marked active before the deferred action is
enqueued, so the record always explains itself even if the process dies before
the action runs. Dispatch may happen in a different process with a different
registry; unknown task types fail the job instead of raising.

Nothing here raises to the caller. Scheduling returns False on failure and
dispatch always ends in a job status plus a log line.
"""

import logging
import time
from datetime import datetime
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Union

from system_agent.hooks import ACTION_GROUP, HANDLE_TASK_HOOK
from system_agent.job_status import JobStatus
from system_agent.services.action_queue import ActionQueue
from system_agent.services.jobs import Jobs
from system_agent.tasks.registry import TaskFactory

logger = logging.getLogger(__name__)

# engine_data keys written by the agent and tasks, not by the caller
BOOKKEEPING_KEYS = frozenset(
    {
        "task_type",
        "context",
        "scheduled_at",
        "attempts",
        "max_attempts",
        "last_attempt",
        "error",
        "failed_at",
        "job_status",
    }
)


class SystemAgent:
    """Async task orchestrator."""

    def __init__(
        self,
        jobs: Jobs,
        action_queue: Optional[ActionQueue],
        task_handlers: Mapping[str, TaskFactory],
    ):
        """
        Initialize the agent.

        Args:
            jobs: Jobs repository
            action_queue: Deferred execution facility, or None if unavailable
            task_handlers: Finished task_type -> factory mapping
        """
        self.jobs = jobs
        self.action_queue = action_queue
        self._task_handlers = MappingProxyType(dict(task_handlers))

        logger.debug(
            f"System agent task handlers loaded: {sorted(self._task_handlers)}",
            extra={"agent_type": "system", "handler_count": len(self._task_handlers)},
        )

    def get_task_handlers(self) -> Dict[str, TaskFactory]:
        """Registered handlers (for diagnostics)."""
        return dict(self._task_handlers)

    @staticmethod
    def _extra(job_id: Optional[int] = None, task_type: Optional[str] = None, **fields: Any) -> Dict[str, Any]:
        return {"job_id": job_id, "task_type": task_type, "agent_type": "system", **fields}

    def _fail(self, job_id: int, reason: str, only_if_not_final: bool = False) -> None:
        self.jobs.complete_job(job_id, JobStatus.failed(reason), only_if_not_final=only_if_not_final)

    def _enqueue(self, job_id: int, task_type: str) -> Optional[int]:
        """
        Hand the job to the deferred facility for immediate execution.

        Fails the job when the facility is missing or rejects the action.

        Returns:
            The action handle, or None
        """
        if self.action_queue is None:
            logger.error(
                f"Deferred execution facility not available for job {job_id}",
                extra=self._extra(job_id, task_type),
            )
            self._fail(job_id, "Deferred execution facility not available")
            return None

        action_id = self.action_queue.schedule_single_action(
            time.time(),
            HANDLE_TASK_HOOK,
            {"job_id": job_id},
            ACTION_GROUP,
        )
        if not action_id:
            logger.error(
                f"Failed to schedule deferred action for job {job_id}",
                extra=self._extra(job_id, task_type),
            )
            self._fail(job_id, "Failed to schedule deferred action")
            return None

        return action_id

    def schedule_task(
        self,
        task_type: str,
        params: Dict[str, Any],
        context: Optional[Dict[str, Any]] = None,
    ) -> Union[int, bool]:
        """
        Create a job for the task and enqueue its execution.

        Args:
            task_type: Registered task type
            params: Task parameters, stored in engine_data
            context: Routing context for results (origin, ids, ...)

        Returns:
            Job id on success, False on failure
        """
        context = dict(context or {})

        if not isinstance(task_type, str) or task_type not in self._task_handlers:
            logger.error(
                f"System agent: unknown task type '{task_type}'",
                extra=self._extra(None, task_type),
            )
            return False

        job_id = self.jobs.create_job(
            {
                "pipeline_id": "direct",
                "flow_id": "direct",
                "source": "system",
                "label": task_type.replace("_", " ").capitalize(),
            }
        )
        if not job_id:
            logger.error(
                f"System agent: failed to create job for task '{task_type}'",
                extra=self._extra(None, task_type),
            )
            return False

        stored = self.jobs.store_engine_data(
            job_id,
            {
                **params,
                "task_type": task_type,
                "context": context,
                "scheduled_at": datetime.utcnow().isoformat(),
            },
        )
        if not stored or not self.jobs.start_job(job_id, JobStatus.processing()):
            logger.error(
                f"System agent: failed to prepare job {job_id}",
                extra=self._extra(job_id, task_type),
            )
            self._fail(job_id, "Failed to store task parameters")
            return False

        action_id = self._enqueue(job_id, task_type)
        if not action_id:
            return False

        logger.info(
            f"System agent task scheduled: {task_type} (job {job_id}, action {action_id})",
            extra=self._extra(job_id, task_type, action_id=action_id),
        )
        return job_id

    def handle_task(self, job_id: int) -> None:
        """
        Dispatch entrypoint called by the action runner.

        Args:
            job_id: Job to execute
        """
        job = self.jobs.get_job(job_id)
        if not job:
            logger.error(f"System agent: job {job_id} not found", extra=self._extra(job_id))
            return

        status = JobStatus.from_string(job["status"])
        if status.is_final() or status.is_waiting():
            # Duplicate delivery or a parked job; leave it alone
            logger.info(
                f"System agent: job {job_id} is '{job['status']}', skipping dispatch",
                extra=self._extra(job_id),
            )
            return

        engine_data = job["engine_data"]
        task_type = engine_data.get("task_type") or ""

        if not task_type:
            logger.error(
                f"System agent: no task type found in job {job_id}",
                extra=self._extra(job_id, engine_data=engine_data),
            )
            self._fail(job_id, "No task type found")
            return

        # engine_data is open-ended; a non-string type cannot name a handler
        factory = self._task_handlers.get(task_type) if isinstance(task_type, str) else None
        if factory is None:
            logger.error(
                f"System agent: unknown task type '{task_type}' for job {job_id}",
                extra=self._extra(job_id, task_type),
            )
            self._fail(job_id, f"Unknown task type: {task_type}")
            return

        try:
            handler = factory(self.jobs, self.action_queue)
            handler.execute(job_id, engine_data)
        except Exception as e:
            logger.error(
                f"System agent task execution failed for job {job_id}: {e}",
                exc_info=True,
                extra=self._extra(job_id, task_type, exception=str(e)),
            )
            self._fail(job_id, f"Task execution exception: {e}", only_if_not_final=True)

    def resume_task(self, job_id: int) -> bool:
        """
        Move a waiting job back to processing and enqueue it.

        Returns:
            True if the job was re-enqueued
        """
        job = self.jobs.get_job(job_id)
        if not job:
            logger.warning(f"System agent: cannot resume missing job {job_id}", extra=self._extra(job_id))
            return False

        if not JobStatus.is_status_waiting(job["status"]):
            logger.warning(
                f"System agent: job {job_id} is '{job['status']}', not waiting; not resuming",
                extra=self._extra(job_id),
            )
            return False

        task_type = job["engine_data"].get("task_type") or ""
        self.jobs.update_job_status(job_id, JobStatus.processing())

        action_id = self._enqueue(job_id, task_type)
        if not action_id:
            return False

        logger.info(
            f"System agent task resumed: job {job_id} (action {action_id})",
            extra=self._extra(job_id, task_type, action_id=action_id),
        )
        return True

    def retry_task(self, job_id: int) -> Union[int, bool]:
        """
        Schedule a failed job's task again as a new job.

        Returns:
            The new job id, or False
        """
        job = self.jobs.get_job(job_id)
        if not job:
            logger.warning(f"System agent: cannot retry missing job {job_id}", extra=self._extra(job_id))
            return False

        if not JobStatus.is_status_failure(job["status"]):
            logger.warning(
                f"System agent: job {job_id} is '{job['status']}', only failed jobs can be retried",
                extra=self._extra(job_id),
            )
            return False

        engine_data = job["engine_data"]
        task_type = engine_data.get("task_type") or ""
        params = {k: v for k, v in engine_data.items() if k not in BOOKKEEPING_KEYS}
        context = dict(engine_data.get("context") or {})
        context["retry_of"] = job_id

        return self.schedule_task(task_type, params, context)
