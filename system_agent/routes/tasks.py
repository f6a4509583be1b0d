"""Task routes."""

import logging

from fastapi import APIRouter, Depends, HTTPException

from system_agent.bootstrap import Container, get_container
from system_agent.schemas.tasks import (
    ImageGenerationRequest,
    ImageGenerationResponse,
    TaskCreate,
    TaskScheduledResponse,
    TaskTypesResponse,
)
from system_agent.services.image_generation import generate_image

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tasks", tags=["tasks"])


@router.get("", response_model=TaskTypesResponse)
def list_task_types(container: Container = Depends(get_container)):
    """Registered task types."""
    return TaskTypesResponse(task_types=sorted(container.system_agent.get_task_handlers()))


@router.post("", response_model=TaskScheduledResponse)
def schedule_task(
    data: TaskCreate,
    container: Container = Depends(get_container),
):
    """Schedule a task for background execution."""
    agent = container.system_agent
    if data.task_type not in agent.get_task_handlers():
        raise HTTPException(status_code=400, detail=f"Unknown task type: {data.task_type}")

    job_id = agent.schedule_task(data.task_type, data.params, data.context)
    if not job_id:
        raise HTTPException(status_code=503, detail="Failed to schedule task")

    return TaskScheduledResponse(
        job_id=job_id,
        task_type=data.task_type,
        message=f"Task scheduled (job {job_id})",
    )


@router.post("/image-generation", response_model=ImageGenerationResponse)
def start_image_generation(
    data: ImageGenerationRequest,
    container: Container = Depends(get_container),
):
    """Start an image prediction and schedule polling."""
    result = generate_image(
        container.system_agent,
        data.prompt,
        model=data.model,
        aspect_ratio=data.aspect_ratio,
        pipeline_job_id=data.pipeline_job_id,
    )
    if not result["success"]:
        raise HTTPException(status_code=400, detail=result["error"])

    return ImageGenerationResponse(
        job_id=result["job_id"],
        prediction_id=result["prediction_id"],
        message=result["message"],
    )
