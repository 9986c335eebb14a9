"""
Video creation endpoint.

Accepts a still image + music track (both already in storage) and
returns a job id immediately. Progress is read from /api/jobs/{id}
or streamed from /api/jobs/{id}/stream.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from ..jobs.service import VideoJobService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/video", tags=["video"])


class CreateVideoRequest(BaseModel):
    """Request body for video creation."""

    imageKey: str = Field(min_length=1)
    musicKey: str = Field(min_length=1)
    durationSec: Optional[float] = None  # Clamp; ignored unless > 0


class CreateVideoResponse(BaseModel):
    jobId: str


@router.post("/create", response_model=CreateVideoResponse)
async def create_video(payload: CreateVideoRequest, request: Request) -> CreateVideoResponse:
    """
    Start a video encode.

    Raises:
        400: Missing/invalid fields or referenced files that do not exist
            (handled by the JobValidationError handler in main)
    """
    logger.info("[Jobs] Video creation request received")
    service: VideoJobService = request.app.state.video_job_service
    job = await service.create_video_job(
        image_key=payload.imageKey,
        music_key=payload.musicKey,
        duration_sec=payload.durationSec,
    )
    return CreateVideoResponse(jobId=job.id)
