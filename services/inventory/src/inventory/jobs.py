"""Background job types and the glue that submits them to the task runner."""

from __future__ import annotations

from dataclasses import asdict
from typing import Any, Dict, List, Optional

from common.config import settings
from common.logging import get_logger

from .errors import ExtractionServiceError
from .extraction.frames import FrameSampler
from .pipeline import InventoryPipeline
from .reconciler import ReconcileResult, SweepResult, TranscriptJob
from .tasks import Task, TaskRunner

LOGGER = get_logger(__name__)

TASK_TRANSCRIPT = "transcript_processing"
TASK_FRAME_ANALYSIS = "frame_analysis"
TASK_FRAME_SAMPLING = "frame_sampling"


def register_handlers(runner: TaskRunner, pipeline: InventoryPipeline, sampler: FrameSampler) -> None:
    async def process_transcript(task: Task) -> Dict[str, Any]:
        result = await pipeline.process_transcript(TranscriptJob(**task.data))
        if result is None:
            raise ExtractionServiceError(f"Transcript processing failed for video {task.data['asset_id']}")
        return {"asset_id": result.asset_id, "items": len(result.items), "degraded": result.degraded}

    async def analyze_frame(task: Task) -> Dict[str, Any]:
        ids = await sampler.analyze_frame(**task.data)
        return {"scratch_item_ids": ids}

    async def sample_video(task: Task) -> Dict[str, Any]:
        return await sampler.sample_video(**task.data)

    runner.register_handler(TASK_TRANSCRIPT, process_transcript)
    runner.register_handler(TASK_FRAME_ANALYSIS, analyze_frame)
    runner.register_handler(TASK_FRAME_SAMPLING, sample_video)


def schedule_transcript(runner: TaskRunner, job: TranscriptJob) -> Task:
    # Single attempt; failures are recorded on the video itself.
    return runner.submit(TASK_TRANSCRIPT, asdict(job), max_retries=0)


def schedule_frame_sampling(
    runner: TaskRunner, user_id: str, asset_id: str, interval_seconds: Optional[float] = None
) -> Task:
    data: Dict[str, Any] = {"user_id": user_id, "asset_id": asset_id}
    if interval_seconds:
        data["interval_seconds"] = interval_seconds
    return runner.submit(TASK_FRAME_SAMPLING, data)


def schedule_follow_ups(runner: TaskRunner, result: ReconcileResult) -> List[Task]:
    """Queue the work a reconciled event calls for."""

    tasks: List[Task] = []
    if result.follow_up is not None:
        tasks.append(schedule_transcript(runner, result.follow_up))
    if result.became_ready and settings.frame_sampling_on_ready and result.user_id:
        tasks.append(schedule_frame_sampling(runner, result.user_id, result.asset_id))
    return tasks


def schedule_sweep_follow_ups(runner: TaskRunner, sweep: SweepResult) -> List[Task]:
    tasks = [schedule_transcript(runner, job) for job in sweep.jobs]
    if settings.frame_sampling_on_ready:
        tasks.extend(
            schedule_frame_sampling(runner, user_id, asset_id) for asset_id, user_id in sweep.ready_assets
        )
    if tasks:
        LOGGER.info("queued follow-up jobs from sweep", count=len(tasks))
    return tasks


__all__ = [
    "TASK_FRAME_ANALYSIS",
    "TASK_FRAME_SAMPLING",
    "TASK_TRANSCRIPT",
    "register_handlers",
    "schedule_follow_ups",
    "schedule_frame_sampling",
    "schedule_sweep_follow_ups",
    "schedule_transcript",
]
