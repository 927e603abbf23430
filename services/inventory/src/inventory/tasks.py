"""In-process background task runner.

Frame sampling and transcript processing run here so that slow model calls
never block a webhook or API request. Tasks are pulled from an asyncio queue
by a fixed number of workers; a failing task is re-queued until its retry
budget is spent.

Example:
    runner = TaskRunner(concurrency=2)

    async def sample(task: Task):
        return await sampler.sample_video(**task.data)

    runner.register_handler("frame_sampling", sample)
    await runner.start()
    task = runner.submit("frame_sampling", {"user_id": "u1", "asset_id": "a1"})
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional
from uuid import uuid4

from common.config import settings
from common.logging import get_logger

LOGGER = get_logger(__name__)


class TaskStatus(Enum):
    """Task execution status."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"
    RETRYING = "retrying"


@dataclass
class Task:
    """Unit of background work."""

    task_type: str
    data: Dict[str, Any]
    task_id: str = field(default_factory=lambda: str(uuid4()))
    max_retries: int = 2
    retry_count: int = 0
    created_at: float = field(default_factory=time.time)
    finished_at: Optional[float] = None
    status: TaskStatus = TaskStatus.PENDING
    error: Optional[str] = None
    result: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "task_id": self.task_id,
            "task_type": self.task_type,
            "status": self.status.value,
            "retry_count": self.retry_count,
            "error": self.error,
            "result": self.result,
        }


TaskHandler = Callable[[Task], Awaitable[Optional[Dict[str, Any]]]]


class TaskRunner:
    """Asyncio worker pool with a handler registry and per-task status."""

    def __init__(
        self,
        concurrency: Optional[int] = None,
        max_retries: Optional[int] = None,
        retry_delay_seconds: float = 1.0,
        history_limit: int = 1000,
    ) -> None:
        self.concurrency = concurrency or settings.task_worker_concurrency
        self.max_retries = settings.task_max_retries if max_retries is None else max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.history_limit = history_limit
        self._handlers: Dict[str, TaskHandler] = {}
        self._tasks: Dict[str, Task] = {}
        self._queue: "asyncio.Queue[Task]" = asyncio.Queue()
        self._workers: List[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._workers)

    def register_handler(self, task_type: str, handler: TaskHandler) -> None:
        self._handlers[task_type] = handler
        LOGGER.info("Registered task handler", task_type=task_type, handler=getattr(handler, "__name__", repr(handler)))

    def submit(self, task_type: str, data: Dict[str, Any], max_retries: Optional[int] = None) -> Task:
        """Queue a task; raises ``KeyError`` for unknown task types."""

        if task_type not in self._handlers:
            raise KeyError(f"No handler registered for task type {task_type}")
        task = Task(
            task_type=task_type,
            data=data,
            max_retries=self.max_retries if max_retries is None else max_retries,
        )
        self._remember(task)
        self._queue.put_nowait(task)
        LOGGER.info("Submitted task", task_id=task.task_id, task_type=task_type)
        return task

    def get(self, task_id: str) -> Optional[Task]:
        return self._tasks.get(task_id)

    def _remember(self, task: Task) -> None:
        self._tasks[task.task_id] = task
        if len(self._tasks) <= self.history_limit:
            return
        for task_id, old in list(self._tasks.items()):
            if old.status in (TaskStatus.COMPLETED, TaskStatus.FAILED):
                del self._tasks[task_id]
            if len(self._tasks) <= self.history_limit:
                break

    async def run_task(self, task: Task) -> None:
        """Execute one attempt of ``task`` and schedule a retry on failure."""

        handler = self._handlers[task.task_type]
        task.status = TaskStatus.PROCESSING
        start_time = time.time()
        LOGGER.info("Processing task", task_id=task.task_id, task_type=task.task_type, retry_count=task.retry_count)

        try:
            task.result = await handler(task)
        except Exception as exc:  # noqa: BLE001 - recorded on the task
            elapsed = time.time() - start_time
            task.error = str(exc)
            LOGGER.error(
                "Task failed",
                task_id=task.task_id,
                task_type=task.task_type,
                retry_count=task.retry_count,
                max_retries=task.max_retries,
                error=str(exc),
                elapsed_seconds=round(elapsed, 2),
                exc_info=True,
            )
            if task.retry_count < task.max_retries:
                task.retry_count += 1
                task.status = TaskStatus.RETRYING
                LOGGER.info("Retrying task", task_id=task.task_id, retry_count=task.retry_count)
                await asyncio.sleep(self.retry_delay_seconds * task.retry_count)
                self._queue.put_nowait(task)
            else:
                task.status = TaskStatus.FAILED
                task.finished_at = time.time()
                LOGGER.error("Task failed permanently", task_id=task.task_id, task_type=task.task_type)
            return

        task.status = TaskStatus.COMPLETED
        task.error = None
        task.finished_at = time.time()
        LOGGER.info(
            "Task completed",
            task_id=task.task_id,
            task_type=task.task_type,
            elapsed_seconds=round(task.finished_at - start_time, 2),
        )

    async def _worker(self, index: int) -> None:
        while True:
            task = await self._queue.get()
            try:
                await self.run_task(task)
            finally:
                self._queue.task_done()

    async def start(self) -> None:
        if self._workers:
            return
        self._workers = [asyncio.create_task(self._worker(i)) for i in range(self.concurrency)]
        LOGGER.info("Started task workers", concurrency=self.concurrency)

    async def join(self) -> None:
        """Wait until every queued task, including retries, has finished."""

        await self._queue.join()

    async def stop(self) -> None:
        for worker in self._workers:
            worker.cancel()
        await asyncio.gather(*self._workers, return_exceptions=True)
        self._workers = []
        LOGGER.info("Stopped task workers")


__all__ = ["Task", "TaskHandler", "TaskRunner", "TaskStatus"]
