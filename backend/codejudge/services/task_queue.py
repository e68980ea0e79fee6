"""Bounded, prioritised task queue in front of the sandbox.

Tasks wait in a priority-ordered backlog (FIFO within a priority) and are
admitted to a thread pool while fewer than ``max_concurrent`` are running.
"""

from __future__ import annotations

import itertools
import logging
import threading
import time
import uuid
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from codejudge.core.exceptions import (
    QueueFullError,
    QueueShutdownError,
    TaskCancelledError,
    TaskTimeoutError,
)

logger = logging.getLogger(__name__)

EVENTS = (
    "task_added",
    "task_started",
    "task_completed",
    "task_failed",
    "task_cancelled",
    "task_timeout",
    "cleanup",
    "shutdown",
    "shutdown_complete",
    "shutdown_timeout",
)


class TaskState(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    CANCELLED = "cancelled"
    TIMED_OUT = "timed_out"


class TaskFuture(Future):
    """Future that remembers which queued task it belongs to."""

    def __init__(self, task_id: str):
        super().__init__()
        self.task_id = task_id


@dataclass
class QueuedTask:
    id: str
    fn: Callable[[], Any]
    priority: int
    sequence: int
    future: TaskFuture
    added_at: float = field(default_factory=time.monotonic)
    started_at: Optional[float] = None
    state: TaskState = TaskState.QUEUED

    def event_payload(self) -> Dict[str, Any]:
        return {"task_id": self.id, "priority": self.priority, "state": self.state.value}


class BoundedTaskQueue:
    def __init__(
        self,
        max_concurrent: int = 3,
        max_queue_size: int = 50,
        max_task_age: float = 30.0,
        sweep_interval: float = 10.0,
    ):
        if max_concurrent < 1:
            raise ValueError("max_concurrent must be at least 1")
        self.max_concurrent = max_concurrent
        self.max_queue_size = max_queue_size
        self.max_task_age = max_task_age
        self.sweep_interval = sweep_interval

        # Every read or write of queue state below holds this lock.
        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._queue: List[QueuedTask] = []
        self._running: Dict[str, QueuedTask] = {}
        self._sequence = itertools.count()
        self._accepting = True
        self._listeners: Dict[str, List[Callable[[Dict[str, Any]], None]]] = {}

        self._pool = ThreadPoolExecutor(max_workers=max_concurrent, thread_name_prefix="judge-task")
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None
        self.reset_stats()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------
    def start(self) -> None:
        if self._sweeper and self._sweeper.is_alive():
            return
        self._stop_event.clear()
        self._sweeper = threading.Thread(target=self._sweep_loop, name="judge-queue-sweeper", daemon=True)
        self._sweeper.start()
        logger.info(
            f"Task queue started (max_concurrent={self.max_concurrent}, max_queue_size={self.max_queue_size})"
        )

    def shutdown(self, timeout: float = 10.0) -> bool:
        """Stop admitting work and wait for the queue to drain.

        Returns True when everything drained before ``timeout``; otherwise
        the remaining queued tasks are rejected with QueueShutdownError.
        """
        with self._lock:
            self._accepting = False
        self._emit("shutdown", {"timeout": timeout})
        logger.info(f"Task queue shutting down (timeout={timeout}s)")

        deadline = time.monotonic() + timeout
        with self._idle:
            while self._queue or self._running:
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    break
                self._idle.wait(remaining)
            leftover = self._queue
            self._queue = []

        for task in leftover:
            task.state = TaskState.CANCELLED
            task.future.set_exception(QueueShutdownError())

        self._stop_event.set()
        self._pool.shutdown(wait=False)

        if leftover:
            logger.warning(f"Task queue shutdown timed out, rejected {len(leftover)} queued tasks")
            self._emit("shutdown_timeout", {"rejected": len(leftover)})
            return False
        self._emit("shutdown_complete", {})
        return True

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------
    def add(self, fn: Callable[[], Any], priority: int = 0) -> TaskFuture:
        """Queue ``fn``; raises QueueFullError right away when the backlog is full."""
        with self._lock:
            if not self._accepting:
                raise QueueShutdownError("Queue is shutting down")
            if len(self._queue) >= self.max_queue_size:
                logger.warning(f"Task queue full ({len(self._queue)} queued)")
                raise QueueFullError()
            task_id = uuid.uuid4().hex
            task = QueuedTask(
                id=task_id,
                fn=fn,
                priority=priority,
                sequence=next(self._sequence),
                future=TaskFuture(task_id),
            )
            self._insert_with_priority(task)
            self._total_added += 1

        self._emit("task_added", task.event_payload())
        self._dispatch()
        return task.future

    def cancel(self, task_id: str) -> bool:
        """Cancel a task that has not started yet."""
        with self._lock:
            task = next((t for t in self._queue if t.id == task_id), None)
            if task is None:
                return False
            self._queue.remove(task)
            task.state = TaskState.CANCELLED
            self._cancelled += 1
            self._idle.notify_all()

        task.future.set_exception(TaskCancelledError())
        self._emit("task_cancelled", task.event_payload())
        return True

    def cleanup_stale(self, max_age: Optional[float] = None) -> int:
        """Reject queued tasks older than ``max_age`` seconds with TaskTimeoutError."""
        max_age = self.max_task_age if max_age is None else max_age
        now = time.monotonic()
        with self._lock:
            stale = [t for t in self._queue if now - t.added_at > max_age]
            if not stale:
                return 0
            self._queue = [t for t in self._queue if t not in stale]
            self._timed_out += len(stale)
            self._idle.notify_all()

        for task in stale:
            task.state = TaskState.TIMED_OUT
            task.future.set_exception(TaskTimeoutError())
            self._emit("task_timeout", task.event_payload())
        logger.warning(f"Evicted {len(stale)} stale queued tasks")
        self._emit("cleanup", {"removed": len(stale)})
        return len(stale)

    def subscribe(self, event: str, callback: Callable[[Dict[str, Any]], None]) -> None:
        if event not in EVENTS:
            raise ValueError(f"Unknown queue event: {event}")
        with self._lock:
            self._listeners.setdefault(event, []).append(callback)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            finished = self._completed + self._failed
            return {
                "queue_length": len(self._queue),
                "running": len(self._running),
                "max_concurrent": self.max_concurrent,
                "max_queue_size": self.max_queue_size,
                "accepting": self._accepting,
                "total_added": self._total_added,
                "completed": self._completed,
                "failed": self._failed,
                "cancelled": self._cancelled,
                "timed_out": self._timed_out,
                "avg_wait_time_ms": (self._total_wait / self._started * 1000) if self._started else 0.0,
                "avg_execution_time_ms": (self._total_execution / finished * 1000) if finished else 0.0,
                "utilization": len(self._running) / self.max_concurrent,
            }

    def reset_stats(self) -> None:
        with self._lock:
            self._total_added = 0
            self._started = 0
            self._completed = 0
            self._failed = 0
            self._cancelled = 0
            self._timed_out = 0
            self._total_wait = 0.0
            self._total_execution = 0.0

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------
    def _insert_with_priority(self, task: QueuedTask) -> None:
        for index, queued in enumerate(self._queue):
            if task.priority > queued.priority:
                self._queue.insert(index, task)
                return
        self._queue.append(task)

    def _dispatch(self) -> None:
        admitted: List[QueuedTask] = []
        with self._lock:
            while self._queue and len(self._running) < self.max_concurrent:
                task = self._queue.pop(0)
                if not task.future.set_running_or_notify_cancel():
                    self._cancelled += 1
                    continue
                task.state = TaskState.RUNNING
                task.started_at = time.monotonic()
                self._running[task.id] = task
                self._started += 1
                self._total_wait += task.started_at - task.added_at
                admitted.append(task)

        for task in admitted:
            self._emit("task_started", task.event_payload())
            self._pool.submit(self._run, task)

    def _run(self, task: QueuedTask) -> None:
        try:
            result = task.fn()
        except Exception as exc:
            self._finish(task, TaskState.FAILED)
            logger.info(f"Task {task.id} failed: {exc}")
            task.future.set_exception(exc)
            self._emit("task_failed", {**task.event_payload(), "error": str(exc)})
        else:
            self._finish(task, TaskState.COMPLETED)
            task.future.set_result(result)
            self._emit("task_completed", task.event_payload())
        self._dispatch()

    def _finish(self, task: QueuedTask, state: TaskState) -> None:
        with self._lock:
            task.state = state
            self._running.pop(task.id, None)
            self._total_execution += time.monotonic() - (task.started_at or task.added_at)
            if state == TaskState.COMPLETED:
                self._completed += 1
            else:
                self._failed += 1
            self._idle.notify_all()

    def _emit(self, event: str, payload: Dict[str, Any]) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event, []))
        for callback in listeners:
            try:
                callback(payload)
            except Exception:
                logger.exception(f"Queue event listener for {event} failed")

    def _sweep_loop(self) -> None:
        while not self._stop_event.wait(self.sweep_interval):
            try:
                self.cleanup_stale()
            except Exception:
                logger.exception("Stale task sweep failed")
