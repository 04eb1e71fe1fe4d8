"""
AI Task Events
==============
In-memory tracking of AI work per user, with push updates for Server-Sent
Events streams.

    task = tracker.start(user_id, SALARY_ANALYSIS, job_id=7)
    tracker.complete(task.id, "Net income 2,350/mo")

    with tracker.subscribe(user_id) as sub:
        for event in sub.events():      # None on keepalive timeout
            ...

Subscriptions are closed by their owner; nothing runs in the background.
"""

import queue
import threading
import time
import uuid
from dataclasses import dataclass, field, asdict
from typing import Iterator, Optional

from config import get_logger

logger = get_logger(__name__)

# Task types
SALARY_ANALYSIS = "SALARY_ANALYSIS"
NET_INCOME = "NET_INCOME"

# Statuses
PROCESSING = "PROCESSING"
COMPLETED = "COMPLETED"
FAILED = "FAILED"
CACHED = "CACHED"

ACTIVE_STATUSES = (PROCESSING,)

KEEPALIVE_SECONDS = 30
MAX_FINISHED_PER_USER = 50


@dataclass
class AITask:
    id: str
    user_id: int
    type: str
    status: str
    job_id: Optional[int] = None
    progress: int = 0
    current_step: Optional[str] = None
    started_at: float = field(default_factory=time.time)
    completed_at: Optional[float] = None
    result_summary: Optional[str] = None
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        return {
            "id": data["id"],
            "type": data["type"],
            "status": data["status"],
            "jobId": data["job_id"],
            "progress": data["progress"],
            "currentStep": data["current_step"],
            "startedAt": data["started_at"],
            "completedAt": data["completed_at"],
            "resultSummary": data["result_summary"],
            "error": data["error"],
        }


class Subscription:
    """A single listener's event queue. Use as a context manager."""

    def __init__(self, tracker: "TaskTracker", user_id: int, keepalive: float = KEEPALIVE_SECONDS):
        self.tracker = tracker
        self.user_id = user_id
        self.keepalive = keepalive
        self.queue: queue.Queue = queue.Queue()
        self.closed = False

    def get(self, timeout: Optional[float] = None) -> Optional[dict]:
        """Next event, or None when nothing arrived within the timeout."""
        try:
            return self.queue.get(timeout=self.keepalive if timeout is None else timeout)
        except queue.Empty:
            return None

    def events(self) -> Iterator[Optional[dict]]:
        while not self.closed:
            yield self.get()

    def close(self):
        if not self.closed:
            self.closed = True
            self.tracker.unsubscribe(self)

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()


class TaskTracker:
    def __init__(self):
        self._tasks: dict[str, AITask] = {}
        self._subscribers: dict[int, list[Subscription]] = {}
        self._lock = threading.Lock()

    # ─── Pub/Sub ─────────────────────────────────────────────────────────────

    def subscribe(self, user_id: int, keepalive: float = KEEPALIVE_SECONDS) -> Subscription:
        sub = Subscription(self, user_id, keepalive)
        with self._lock:
            self._subscribers.setdefault(user_id, []).append(sub)
        logger.debug("User %s subscribed to task events", user_id)
        return sub

    def unsubscribe(self, sub: Subscription):
        with self._lock:
            subs = self._subscribers.get(sub.user_id, [])
            if sub in subs:
                subs.remove(sub)
            if not subs:
                self._subscribers.pop(sub.user_id, None)

    def subscriber_count(self, user_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(user_id, []))

    def _publish(self, task: AITask):
        event = {"type": "task_update", "task": task.to_dict()}
        with self._lock:
            subs = list(self._subscribers.get(task.user_id, []))
        for sub in subs:
            sub.queue.put(event)

    # ─── Lifecycle ───────────────────────────────────────────────────────────

    def start(self, user_id: int, task_type: str, job_id: Optional[int] = None,
              current_step: Optional[str] = None) -> AITask:
        task = AITask(
            id=uuid.uuid4().hex, user_id=user_id, type=task_type,
            status=PROCESSING, job_id=job_id, current_step=current_step,
        )
        with self._lock:
            self._tasks[task.id] = task
        self._publish(task)
        return task

    def update(self, task_id: str, progress: Optional[int] = None, current_step: Optional[str] = None):
        task = self._get(task_id)
        if progress is not None:
            task.progress = max(0, min(100, progress))
        if current_step is not None:
            task.current_step = current_step
        self._publish(task)

    def _finish(self, task_id: str, status: str, **changes) -> AITask:
        task = self._get(task_id)
        task.status = status
        task.completed_at = time.time()
        task.progress = 100 if status != FAILED else task.progress
        for key, value in changes.items():
            setattr(task, key, value)
        self._publish(task)
        self._prune(task.user_id)
        return task

    def complete(self, task_id: str, result_summary: Optional[str] = None) -> AITask:
        return self._finish(task_id, COMPLETED, result_summary=result_summary)

    def fail(self, task_id: str, error: str) -> AITask:
        logger.warning("Task %s failed: %s", task_id, error)
        return self._finish(task_id, FAILED, error=error)

    def mark_cached(self, user_id: int, task_type: str, job_id: Optional[int] = None) -> AITask:
        """Record work that was answered from cache."""
        task = AITask(
            id=uuid.uuid4().hex, user_id=user_id, type=task_type, status=CACHED,
            job_id=job_id, progress=100, completed_at=time.time(),
        )
        with self._lock:
            self._tasks[task.id] = task
        self._publish(task)
        self._prune(user_id)
        return task

    # ─── Queries ─────────────────────────────────────────────────────────────

    def _get(self, task_id: str) -> AITask:
        with self._lock:
            task = self._tasks.get(task_id)
        if task is None:
            raise KeyError(f"Unknown task: {task_id}")
        return task

    def get_task(self, task_id: str) -> Optional[AITask]:
        with self._lock:
            return self._tasks.get(task_id)

    def active_tasks(self, user_id: int) -> list[AITask]:
        with self._lock:
            tasks = [t for t in self._tasks.values()
                     if t.user_id == user_id and t.status in ACTIVE_STATUSES]
        return sorted(tasks, key=lambda t: t.started_at)

    def recent_tasks(self, user_id: int, limit: int = 10) -> list[AITask]:
        with self._lock:
            tasks = [t for t in self._tasks.values() if t.user_id == user_id]
        return sorted(tasks, key=lambda t: t.started_at, reverse=True)[:limit]

    def _prune(self, user_id: int):
        # Keep memory bounded: drop the oldest finished tasks
        with self._lock:
            finished = sorted(
                (t for t in self._tasks.values()
                 if t.user_id == user_id and t.status not in ACTIVE_STATUSES),
                key=lambda t: t.started_at,
            )
            for task in finished[:-MAX_FINISHED_PER_USER]:
                del self._tasks[task.id]
