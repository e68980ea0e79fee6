"""Completion notifications for asynchronously judged submissions."""

from __future__ import annotations

import logging
import threading
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Callback = Callable[[Dict[str, Any]], None]


class SubmissionNotifier:
    """Fan-out of final submission records to per-submission and global listeners."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._subscribers: Dict[int, List[Callback]] = {}
        self._listeners: List[Callback] = []

    def subscribe(self, submission_id: int, callback: Callback) -> None:
        with self._lock:
            self._subscribers.setdefault(submission_id, []).append(callback)

    def unsubscribe(self, submission_id: int, callback: Callback) -> None:
        with self._lock:
            callbacks = self._subscribers.get(submission_id, [])
            if callback in callbacks:
                callbacks.remove(callback)
            if not callbacks:
                self._subscribers.pop(submission_id, None)

    def subscribe_all(self, callback: Callback) -> None:
        with self._lock:
            self._listeners.append(callback)

    def subscriber_count(self, submission_id: int) -> int:
        with self._lock:
            return len(self._subscribers.get(submission_id, []))

    def notify_complete(self, submission: Dict[str, Any]) -> int:
        """Deliver ``submission`` to its listeners; returns how many were called."""
        with self._lock:
            callbacks = list(self._subscribers.get(submission.get("id"), [])) + list(self._listeners)

        delivered = 0
        for callback in callbacks:
            try:
                callback(submission)
                delivered += 1
            except Exception:
                logger.exception(f"Notification callback for submission {submission.get('id')} failed")
        logger.info(f"Submission {submission.get('id')} completed with verdict {submission.get('verdict')}")
        return delivered
