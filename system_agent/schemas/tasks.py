"""Task scheduling Pydantic schemas."""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TaskCreate(BaseModel):
    """Schedule a task."""

    task_type: str
    params: Dict[str, Any] = Field(default_factory=dict)
    context: Dict[str, Any] = Field(default_factory=dict)


class TaskScheduledResponse(BaseModel):
    """Response after scheduling a task."""

    job_id: int
    task_type: str
    message: str


class TaskTypesResponse(BaseModel):
    """Registered task types."""

    task_types: List[str]


class ImageGenerationRequest(BaseModel):
    """Start an image generation."""

    prompt: str
    model: Optional[str] = None
    aspect_ratio: Optional[str] = None
    pipeline_job_id: Optional[int] = None


class ImageGenerationResponse(BaseModel):
    """Response after an image generation was scheduled."""

    job_id: int
    prediction_id: str
    message: str
