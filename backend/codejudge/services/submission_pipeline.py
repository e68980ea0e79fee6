"""Asynchronous submission judging: persist, enqueue, execute remotely, grade."""

from __future__ import annotations

import logging
import queue
import threading
import time
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, Set

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from codejudge.config import settings
from codejudge.core.exceptions import ValidationError
from codejudge.models.submission import PENDING, Submission
from codejudge.services.code_wrapper import CodeWrapper
from codejudge.services.notifier import SubmissionNotifier
from codejudge.services.problem_store import ProblemStore
from codejudge.services.remote_executor import BatchSubmission, Judge0Client
from codejudge.services.submission_grader import RUNTIME_ERROR, SubmissionGrader

logger = logging.getLogger(__name__)

QUEUE_FULL_MESSAGE = "Queue full or system error"


class SequentialWorkQueue:
    """Single worker thread consuming submission ids in FIFO order."""

    def __init__(
        self,
        handler: Callable[[int], Any],
        max_size: int = 0,
        heartbeat_interval: float = 5.0,
        name: str = "submission-worker",
    ) -> None:
        self._handler = handler
        self._queue: "queue.Queue[int]" = queue.Queue(maxsize=max_size)
        self._pending: Set[int] = set()
        self._heartbeat_interval = heartbeat_interval
        self._name = name
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._heartbeat: float = 0.0
        self._processed_count: int = 0
        self._current: Optional[int] = None
        self._lock = threading.Lock()

    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run_loop, name=self._name, daemon=True)
        self._thread.start()
        logger.info("Submission worker started")

    def stop(self, timeout: float = 5.0) -> None:
        self._stop_event.set()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("Submission worker stopped")

    def put(self, item: int) -> bool:
        """Enqueue ``item``; False if it is already waiting. Raises queue.Full."""
        with self._lock:
            if item in self._pending:
                return False
            self._queue.put_nowait(item)
            self._pending.add(item)
        return True

    def depth(self) -> int:
        return self._queue.qsize()

    def status(self) -> Dict[str, Any]:
        return {
            "running": self.is_running(),
            "last_heartbeat": self._heartbeat,
            "processed_count": self._processed_count,
            "queue_depth": self.depth(),
            "current": self._current,
        }

    def drain(self) -> int:
        """Process everything queued on the calling thread; used without a worker."""
        processed = 0
        while self._process_one(block=False):
            processed += 1
        return processed

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            self._process_one(block=True)
            self._heartbeat = time.time()

    def _process_one(self, block: bool) -> bool:
        try:
            item = self._queue.get(block=block, timeout=self._heartbeat_interval if block else None)
        except queue.Empty:
            return False

        with self._lock:
            self._pending.discard(item)
            self._current = item
        try:
            self._handler(item)
        except Exception:
            logger.exception(f"Work item {item} failed")
        finally:
            with self._lock:
                self._current = None
                self._processed_count += 1
            self._queue.task_done()
        return True


class SubmissionPipeline:
    """Owns the submission lifecycle from ``pending`` to one terminal verdict."""

    def __init__(
        self,
        session_factory: Callable[[], Session],
        problem_store: ProblemStore,
        code_wrapper: CodeWrapper,
        remote_client: Judge0Client,
        grader: SubmissionGrader,
        notifier: SubmissionNotifier,
        max_queue_size: int = 0,
        heartbeat_interval: float = 5.0,
        enqueue_on_create: bool = True,
    ) -> None:
        self.session_factory = session_factory
        self.problem_store = problem_store
        self.code_wrapper = code_wrapper
        self.remote_client = remote_client
        self.grader = grader
        self.notifier = notifier
        self.enqueue_on_create = enqueue_on_create
        self.work_queue = SequentialWorkQueue(
            self.process_submission,
            max_size=max_queue_size,
            heartbeat_interval=heartbeat_interval,
        )

    def start(self) -> None:
        self.work_queue.start()

    def stop(self) -> None:
        self.work_queue.stop()

    def status(self) -> Dict[str, Any]:
        return self.work_queue.status()

    def create(self, db: Session, problem_ref: str, code: str, language: str) -> Submission:
        """Persist a pending submission and queue it for judging.

        Without an embedded worker the row is only persisted; an external
        worker picks it up through ``recover_pending``.
        """
        submission = Submission(
            problem_ref=problem_ref,
            code=code,
            language=language,
            verdict=PENDING,
            test_cases_passed=0,
            total_test_cases=0,
        )
        db.add(submission)
        db.commit()
        db.refresh(submission)
        logger.info(f"Submission {submission.id} created for problem {problem_ref}")

        if self.enqueue_on_create:
            self.queue_submission(submission.id)
            # A rejected enqueue finalises the row in another session.
            db.refresh(submission)
        return submission

    def queue_submission(self, submission_id: int, fail_when_full: bool = True) -> bool:
        """Enqueue one id. On a full queue the row is failed, or left pending."""
        try:
            self.work_queue.put(submission_id)
        except queue.Full:
            if not fail_when_full:
                return False
            logger.error(f"Submission queue full, failing submission {submission_id}")
            self._fail_unqueued(submission_id, QUEUE_FULL_MESSAGE)
            return False
        return True

    def recover_pending(self) -> int:
        """Queue every submission still pending, oldest first."""
        db = self.session_factory()
        try:
            ids = [
                row.id
                for row in db.query(Submission.id)
                .filter(Submission.verdict == PENDING)
                .order_by(Submission.created_at.asc(), Submission.id.asc())
                .all()
            ]
        finally:
            db.close()

        queued = 0
        for submission_id in ids:
            if not self.queue_submission(submission_id, fail_when_full=False):
                break
            queued += 1
        if queued:
            logger.info(f"Queued {queued} pending submissions")
        if queued < len(ids):
            logger.warning(f"Submission queue full, {len(ids) - queued} submissions left pending")
        return queued

    def process_submission(self, submission_id: int) -> Optional[Dict[str, Any]]:
        """Judge one submission; returns the final record, or None if skipped."""
        db = self.session_factory()
        try:
            submission = db.get(Submission, submission_id)
            if submission is None:
                logger.warning(f"Submission {submission_id} not found, skipping")
                return None
            if not submission.is_pending:
                logger.info(f"Submission {submission_id} already judged ({submission.verdict}), skipping")
                return None

            logger.info(f"Processing submission {submission_id}")
            try:
                outcome = self._judge(db, submission)
            except Exception as exc:
                logger.exception(f"Submission {submission_id} failed")
                db.rollback()
                return self._finalize(db, submission, {
                    "verdict": RUNTIME_ERROR,
                    "judge_output": {"error": str(exc) or exc.__class__.__name__},
                })
            return self._finalize(db, submission, outcome)
        finally:
            db.close()

    def _judge(self, db: Session, submission: Submission) -> Dict[str, Any]:
        problem = self.problem_store.get_problem(db, submission.problem_ref)
        template = problem.template_for(submission.language)
        full_code = self.code_wrapper.wrap(submission.code, template, language=submission.language)

        language_id = self.remote_client.get_language_id(submission.language)
        if language_id is None:
            raise ValidationError(f"Unsupported language: {submission.language}")

        test_cases = [tc.to_dict() for tc in problem.test_cases]
        if not test_cases:
            raise ValidationError(f"Problem {problem.ref} has no test cases")

        batch = [
            BatchSubmission(
                language_id=language_id,
                source_code=full_code,
                stdin=self.code_wrapper.prepare_stdin(tc["input"], problem.function_params),
            )
            for tc in test_cases
        ]
        executions = self.remote_client.execute_batch(batch)

        results = [
            self.grader.evaluate_test_case(execution, tc)
            for execution, tc in zip(executions, test_cases)
        ]
        summary = self.grader.calculate_final_verdict(results, len(test_cases))
        return {
            "verdict": summary["final_verdict"],
            "test_cases_passed": summary["passed_count"],
            "total_test_cases": summary["total_test_cases"],
            "execution_time": summary["execution_time"],
            "memory_used": summary["memory_used"],
            "judge_output": {"results": results},
        }

    def _finalize(self, db: Session, submission: Submission, outcome: Dict[str, Any]) -> Dict[str, Any]:
        submission.verdict = outcome["verdict"]
        submission.test_cases_passed = outcome.get("test_cases_passed", 0)
        submission.total_test_cases = outcome.get("total_test_cases", submission.total_test_cases or 0)
        submission.execution_time = outcome.get("execution_time")
        submission.memory_used = outcome.get("memory_used")
        submission.judge_output = outcome.get("judge_output")
        submission.completed_at = datetime.now(timezone.utc)
        try:
            db.commit()
            db.refresh(submission)
        except SQLAlchemyError:
            logger.exception(f"Could not persist verdict for submission {submission.id}")
            db.rollback()

        record = submission.to_dict()
        self.notifier.notify_complete(record)
        return record

    def _fail_unqueued(self, submission_id: int, message: str) -> None:
        db = self.session_factory()
        try:
            submission = db.get(Submission, submission_id)
            if submission is not None and submission.is_pending:
                self._finalize(db, submission, {"verdict": RUNTIME_ERROR, "judge_output": {"error": message}})
        finally:
            db.close()


def create_submission_pipeline(
    session_factory: Callable[[], Session],
    notifier: Optional[SubmissionNotifier] = None,
    cfg=settings,
) -> SubmissionPipeline:
    """Wire the asynchronous path from settings."""
    return SubmissionPipeline(
        session_factory=session_factory,
        problem_store=ProblemStore(placeholder=cfg.SUBMISSION_PLACEHOLDER),
        code_wrapper=CodeWrapper(placeholder=cfg.SUBMISSION_PLACEHOLDER),
        remote_client=Judge0Client.from_settings(cfg),
        grader=SubmissionGrader(),
        notifier=notifier or SubmissionNotifier(),
        max_queue_size=cfg.SUBMISSION_QUEUE_MAX_SIZE,
        heartbeat_interval=cfg.WORKER_HEARTBEAT_SECONDS,
        enqueue_on_create=cfg.RUN_EMBEDDED_WORKER,
    )
