"""Start a Replicate image prediction and hand it to the system agent."""

import logging
from typing import Any, Dict, Optional

import httpx

from system_agent.config import settings
from system_agent.services.replicate_client import ReplicateClient

logger = logging.getLogger(__name__)

VALID_ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")


def build_input_params(prompt: str, aspect_ratio: str, model: str) -> Dict[str, Any]:
    """Model-family specific input for a prediction."""
    if "imagen" in model:
        return {
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
            "output_format": "jpg",
            "safety_filter_level": "block_only_high",
        }

    # Flux and other models
    return {
        "prompt": prompt,
        "num_outputs": 1,
        "aspect_ratio": aspect_ratio,
        "output_format": "webp",
        "output_quality": 90,
    }


def generate_image(
    agent,
    prompt: str,
    model: Optional[str] = None,
    aspect_ratio: Optional[str] = None,
    pipeline_job_id: Optional[int] = None,
    client: Optional[ReplicateClient] = None,
) -> Dict[str, Any]:
    """
    Start an image prediction and schedule the polling task.

    Args:
        agent: SystemAgent that will poll the prediction
        prompt: Image prompt
        model: Replicate model (defaults to settings.IMAGE_DEFAULT_MODEL)
        aspect_ratio: One of VALID_ASPECT_RATIOS (invalid values use the default)
        pipeline_job_id: Originating pipeline job, kept in the task context
        client: Replicate client (defaults to one built from settings)

    Returns:
        Result dict with success flag, and job_id/prediction_id on success
    """
    prompt = (prompt or "").strip()
    if not prompt:
        return {"success": False, "error": "Image generation requires a prompt."}

    client = client or ReplicateClient()
    if not client.is_configured:
        return {
            "success": False,
            "error": "Image generation not configured. Set REPLICATE_API_KEY.",
        }

    model = model or settings.IMAGE_DEFAULT_MODEL
    aspect_ratio = aspect_ratio or settings.IMAGE_DEFAULT_ASPECT_RATIO
    if aspect_ratio not in VALID_ASPECT_RATIOS:
        aspect_ratio = settings.IMAGE_DEFAULT_ASPECT_RATIO

    try:
        prediction = client.create_prediction(model, build_input_params(prompt, aspect_ratio, model))
    except httpx.HTTPError as e:
        logger.error(f"Failed to start image generation: {e}")
        return {"success": False, "error": f"Failed to start image generation: {e}"}
    except ValueError:
        return {"success": False, "error": "Invalid response from Replicate API."}

    prediction_id = prediction.get("id") if isinstance(prediction, dict) else None
    if not prediction_id:
        return {"success": False, "error": "Invalid response from Replicate API."}

    context: Dict[str, Any] = {}
    if pipeline_job_id:
        context["pipeline_job_id"] = int(pipeline_job_id)

    job_id = agent.schedule_task(
        "image_generation",
        {
            "prediction_id": prediction_id,
            "model": model,
            "prompt": prompt,
            "aspect_ratio": aspect_ratio,
        },
        context,
    )
    if not job_id:
        return {"success": False, "error": "Failed to schedule image generation task."}

    return {
        "success": True,
        "pending": True,
        "job_id": job_id,
        "prediction_id": prediction_id,
        "message": f"Image generation scheduled (Job #{job_id}). Model: {model}, aspect ratio: {aspect_ratio}.",
    }
