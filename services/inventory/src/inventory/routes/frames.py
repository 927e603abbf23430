# noqa: D401
"""Frame analysis submission and background task status."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException

from ..dependencies import get_task_runner
from ..jobs import TASK_FRAME_ANALYSIS, schedule_frame_sampling
from ..schemas import FrameSubmission, SampleRequest, TaskAccepted, TaskStatusResponse
from ..tasks import TaskRunner

router = APIRouter(prefix="/api", tags=["frames"])


@router.post("/frames", response_model=TaskAccepted, status_code=202)
async def submit_frame(body: FrameSubmission, runner: TaskRunner = Depends(get_task_runner)) -> TaskAccepted:
    task = runner.submit(
        TASK_FRAME_ANALYSIS,
        {
            "user_id": body.user_id,
            "external_media_ref": body.mux_asset_id,
            "image_url": body.image_url,
            "timestamp": body.timestamp,
        },
    )
    return TaskAccepted(task_id=task.task_id, status=task.status.value)


@router.post("/frames/sample", response_model=TaskAccepted, status_code=202)
async def sample_video(body: SampleRequest, runner: TaskRunner = Depends(get_task_runner)) -> TaskAccepted:
    task = schedule_frame_sampling(runner, body.user_id, body.asset_id, body.interval_seconds)
    return TaskAccepted(task_id=task.task_id, status=task.status.value)


@router.get("/tasks/{task_id}", response_model=TaskStatusResponse)
async def task_status(task_id: str, runner: TaskRunner = Depends(get_task_runner)) -> TaskStatusResponse:
    task = runner.get(task_id)
    if task is None:
        raise HTTPException(status_code=404, detail="Task not found")
    return TaskStatusResponse(
        task_id=task.task_id,
        task_type=task.task_type,
        status=task.status.value,
        retry_count=task.retry_count,
        error=task.error,
        result=task.result,
    )


__all__ = ["router"]
