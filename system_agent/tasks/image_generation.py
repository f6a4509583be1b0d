"""Image generation task: polls a Replicate prediction until it settles."""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from system_agent.services.action_queue import ActionQueue
from system_agent.services.jobs import Jobs
from system_agent.services.replicate_client import ReplicateClient
from system_agent.tasks.base import SystemTask

logger = logging.getLogger(__name__)


class ImageGenerationTask(SystemTask):
    """
    Poll one Replicate prediction per execution.

    Still running predictions are rescheduled every POLL_DELAY seconds, up to
    MAX_ATTEMPTS polls (about two minutes).
    """

    task_type = "image_generation"

    MAX_ATTEMPTS = 24
    POLL_DELAY = 5

    def __init__(
        self,
        jobs: Jobs,
        action_queue: Optional[ActionQueue] = None,
        client: Optional[ReplicateClient] = None,
    ):
        """Initialize the task."""
        super().__init__(jobs, action_queue)
        self.client = client or ReplicateClient()

    def execute(self, job_id: int, params: Dict[str, Any]) -> None:
        """Poll the prediction once and complete, fail or reschedule the job."""
        prediction_id = params.get("prediction_id") or ""
        model = params.get("model") or "unknown"
        prompt = params.get("prompt") or ""
        aspect_ratio = params.get("aspect_ratio") or ""

        if not prediction_id:
            self.fail_job(job_id, "Missing prediction_id in task parameters")
            return

        if not self.client.is_configured:
            self.fail_job(job_id, "Image generation not configured: missing Replicate API key")
            return

        if "max_attempts" not in params:
            self.jobs.store_engine_data(job_id, {"max_attempts": self.MAX_ATTEMPTS})

        try:
            status_data = self.client.get_prediction(prediction_id)
        except (httpx.HTTPError, ValueError) as e:
            logger.warning(
                f"Image generation poll failed for job {job_id}: {e}",
                extra=self._log_extra(job_id, prediction_id=prediction_id),
            )
            self.reschedule(job_id, self.POLL_DELAY)
            return

        status = status_data.get("status") or ""

        if status == "succeeded":
            self._handle_success(job_id, status_data, model, prompt, aspect_ratio)
        elif status in ("failed", "canceled"):
            error = status_data.get("error") or f"Prediction {status}"
            self.fail_job(job_id, f"Replicate prediction failed: {error}")
        elif status in ("starting", "processing"):
            self.reschedule(job_id, self.POLL_DELAY)
        else:
            self.fail_job(job_id, f"Unknown prediction status: {status}")

    def _handle_success(
        self,
        job_id: int,
        status_data: Dict[str, Any],
        model: str,
        prompt: str,
        aspect_ratio: str,
    ) -> None:
        output = status_data.get("output")

        # Models return either a URL or a list of URLs
        image_url = None
        if isinstance(output, str):
            image_url = output
        elif isinstance(output, list) and output:
            image_url = output[0]

        if not image_url:
            self.fail_job(job_id, "Replicate prediction succeeded but no image URL found in output")
            return

        self.complete_job(
            job_id,
            {
                "success": True,
                "data": {
                    "message": f"Image generated successfully using {model}.",
                    "image_url": image_url,
                    "prompt": prompt,
                    "model": model,
                    "aspect_ratio": aspect_ratio,
                },
                "tool_name": self.task_type,
                "completed_at": datetime.utcnow().isoformat(),
            },
        )
