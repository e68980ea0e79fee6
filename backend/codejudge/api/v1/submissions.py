"""Submission routes - asynchronous full-problem judging"""

import asyncio
import logging

from fastapi import APIRouter, Depends, status, WebSocket, WebSocketDisconnect
from sqlalchemy.orm import Session

from codejudge.api.deps import enforce_high_cost_limit, get_submission_pipeline
from codejudge.config import settings
from codejudge.core.database import get_db
from codejudge.core.exceptions import ResourceNotFoundError
from codejudge.models.submission import Submission
from codejudge.schemas.submission import SubmissionCreate, SubmissionCreatedResponse, SubmissionResponse
from codejudge.services.submission_pipeline import SubmissionPipeline

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "",
    response_model=SubmissionCreatedResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(enforce_high_cost_limit)],
)
def create_submission(
    submission: SubmissionCreate,
    db: Session = Depends(get_db),
    pipeline: SubmissionPipeline = Depends(get_submission_pipeline),
):
    """
    Store a submission as pending and queue it for judging.

    The final verdict is available from GET /submissions/{id} or pushed
    over the submission websocket.
    """
    created = pipeline.create(db, submission.problem, submission.code, submission.language)
    return SubmissionCreatedResponse(
        submission=SubmissionResponse.model_validate(created),
        message="processing",
    )


@router.get("/{submission_id}", response_model=SubmissionResponse)
def get_submission(submission_id: int, db: Session = Depends(get_db)):
    """Get submission by ID"""
    submission = db.get(Submission, submission_id)
    if not submission:
        raise ResourceNotFoundError("Submission")
    return submission


def _load_record(session_factory, submission_id: int):
    db = session_factory()
    try:
        submission = db.get(Submission, submission_id)
        return submission.to_dict() if submission else None
    finally:
        db.close()


@router.websocket("/ws/{submission_id}")
async def submission_updates(websocket: WebSocket, submission_id: int):
    """Push the final submission record once judging completes.

    Verdicts written by an external worker never reach this process's
    notifier, so the row is re-read every poll interval while pending.
    """
    await websocket.accept()
    notifier = websocket.app.state.notifier
    loop = asyncio.get_running_loop()
    updates: asyncio.Queue = asyncio.Queue()

    def deliver(record: dict) -> None:
        loop.call_soon_threadsafe(updates.put_nowait, record)

    # Subscribe before reading the row so a verdict landing in between is not missed.
    notifier.subscribe(submission_id, deliver)
    try:
        session_factory = websocket.app.state.session_factory
        record = _load_record(session_factory, submission_id)
        if record is None:
            await websocket.send_json({"error": "Submission not found"})
            await websocket.close()
            return

        while record is not None and record["verdict"] == "pending":
            try:
                record = await asyncio.wait_for(updates.get(), timeout=settings.WORKER_POLL_INTERVAL_SECONDS)
            except asyncio.TimeoutError:
                record = _load_record(session_factory, submission_id)
        await websocket.send_json(record if record is not None else {"error": "Submission not found"})
        await websocket.close()
    except WebSocketDisconnect:
        logger.info(f"Websocket for submission {submission_id} disconnected")
    finally:
        notifier.unsubscribe(submission_id, deliver)
