"""
In-memory task runner for LLM jobs (classify note, extract todos, ...).

Each task runs its executor under retry_with_backoff, with retryability
decided by the error classifier. Retry bookkeeping (retry_count,
next_retry_at) is recorded on the task through the on_retry hook.
"""

import asyncio
import logging
import uuid
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Awaitable, Callable

from pydantic import BaseModel, Field

from noteflow.errors import ErrorKind, classify
from noteflow.messages import DEFAULT_LOCALE, UserMessage, to_user_message
from noteflow.retry import RetryPolicy, backoff_delay, classifier_policy, retry_with_backoff

logger = logging.getLogger(__name__)

Executor = Callable[[str, Any], Awaitable[Any]]


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


class Task(BaseModel):
    """A unit of LLM work and its retry bookkeeping."""

    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: str
    payload: Any = None
    note_id: str | None = None
    priority: int = 0
    status: TaskStatus = TaskStatus.PENDING
    retry_count: int = 0
    last_retry_at: datetime | None = None
    next_retry_at: datetime | None = None
    error: str | None = None
    error_kind: ErrorKind | None = None
    user_message: UserMessage | None = None
    result: Any = None
    created_at: datetime = Field(default_factory=_now)
    started_at: datetime | None = None
    completed_at: datetime | None = None


class TaskRunner:
    """Runs registered executors with bounded concurrency and retry."""

    def __init__(
        self,
        max_concurrency: int = 3,
        policy: RetryPolicy | None = None,
        locale: str = DEFAULT_LOCALE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        if max_concurrency < 1:
            raise ValueError("max_concurrency must be >= 1")
        self.max_concurrency = max_concurrency
        self.policy = policy or RetryPolicy()
        self.locale = locale
        self.sleep = sleep
        self.tasks: dict[str, Task] = {}
        self.executors: dict[str, Executor] = {}

    @classmethod
    def from_config(cls, config: dict[str, Any] | None = None) -> "TaskRunner":
        if config is None:
            from noteflow.config import load_config
            config = load_config()
        return cls(
            max_concurrency=config.get("queue", {}).get("max_concurrency", 3),
            policy=RetryPolicy.from_config(config),
            locale=config.get("noteflow", {}).get("locale", DEFAULT_LOCALE),
        )

    def register_executor(self, task_type: str, executor: Executor) -> None:
        self.executors[task_type] = executor

    def enqueue(
        self,
        task_type: str,
        payload: Any = None,
        note_id: str | None = None,
        priority: int = 0,
    ) -> Task:
        """
        Add a task. If the same type is already pending or running for the
        same note, that task is returned instead of a new one.
        """
        if note_id is not None:
            for existing in self.tasks.values():
                if (
                    existing.type == task_type
                    and existing.note_id == note_id
                    and existing.status in (TaskStatus.PENDING, TaskStatus.RUNNING)
                ):
                    logger.info(f"Task already exists, skipping: {task_type} for note {note_id}")
                    return existing

        task = Task(type=task_type, payload=payload, note_id=note_id, priority=priority)
        self.tasks[task.id] = task
        logger.info(f"Task enqueued: {task.id} ({task_type})")
        return task

    def cancel(self, task_id: str) -> Task:
        """Cancel a pending task. Running tasks can't be interrupted."""
        task = self.tasks.get(task_id)
        if task is None:
            raise KeyError(f"No such task: {task_id}")
        if task.status != TaskStatus.PENDING:
            raise ValueError(f"Task {task_id} is {task.status.value}, only PENDING tasks can be cancelled")

        task.status = TaskStatus.CANCELLED
        task.completed_at = _now()
        logger.info(f"Task cancelled: {task_id}")
        return task

    def pending(self) -> list[Task]:
        """Pending tasks, highest priority first, then oldest first."""
        tasks = [t for t in self.tasks.values() if t.status == TaskStatus.PENDING]
        return sorted(tasks, key=lambda t: (-t.priority, t.created_at))

    async def run_pending(self) -> list[Task]:
        """Run until no pending tasks remain. Returns the tasks that ran."""
        semaphore = asyncio.Semaphore(self.max_concurrency)
        ran: list[Task] = []

        while batch := self.pending():
            ran.extend(await asyncio.gather(*(self._execute(t, semaphore) for t in batch)))

        return ran

    def stats(self) -> dict[str, int]:
        counts = {status.value.lower(): 0 for status in TaskStatus}
        for task in self.tasks.values():
            counts[task.status.value.lower()] += 1
        counts["max_concurrency"] = self.max_concurrency
        return counts

    async def _execute(self, task: Task, semaphore: asyncio.Semaphore) -> Task:
        async with semaphore:
            if task.status != TaskStatus.PENDING:
                return task

            task.status = TaskStatus.RUNNING
            task.started_at = _now()
            task.error = None
            logger.info(f"Executing task: {task.id} ({task.type})")

            executor = self.executors.get(task.type)
            if executor is None:
                self._fail(task, ValueError(f"No executor for task type: {task.type}"))
                return task

            def record_retry(error: BaseException, attempt: int) -> None:
                now = _now()
                task.retry_count = attempt
                task.last_retry_at = now
                task.next_retry_at = now + timedelta(milliseconds=backoff_delay(self.policy, attempt))
                task.error = classify(error).detail

            policy = classifier_policy(self.policy, on_retry=record_retry)

            try:
                result = await retry_with_backoff(
                    lambda: executor(task.id, task.payload), policy, sleep=self.sleep
                )
            except Exception as error:
                self._fail(task, error)
                return task

            task.status = TaskStatus.COMPLETED
            task.result = result
            task.error = None
            task.next_retry_at = None
            task.completed_at = _now()
            logger.info(f"Task completed: {task.id}")
            return task

    def _fail(self, task: Task, error: BaseException) -> None:
        classification = classify(error)
        task.status = TaskStatus.FAILED
        task.error = classification.detail
        task.error_kind = classification.kind
        task.user_message = to_user_message(classification, self.locale)
        task.next_retry_at = None
        task.completed_at = _now()
        logger.error(
            f"Task permanently failed: {task.id} "
            f"(attempts: {task.retry_count + 1}, kind: {classification.kind.value}, "
            f"retryable: {classification.retryable})"
        )
