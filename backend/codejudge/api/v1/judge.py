"""Judge routes - synchronous execution of a snippet against test cases"""

from fastapi import APIRouter, Depends
import logging

from codejudge.api.deps import enforce_high_cost_limit, get_judge_service
from codejudge.schemas.judge import ExecuteRequest, ExecuteResponse
from codejudge.services.judge_service import JudgeService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post(
    "/execute",
    response_model=ExecuteResponse,
    response_model_by_alias=True,
    dependencies=[Depends(enforce_high_cost_limit)],
)
def execute(
    request: ExecuteRequest,
    judge_service: JudgeService = Depends(get_judge_service),
):
    """
    Compile and run code against typed test cases.

    Returns either ``compileError`` or one verdict per test case, in order.
    Validation failures are 422, a full queue or unavailable sandbox is 503.
    """
    return judge_service.judge(request)


@router.get("/queue")
def queue_stats(judge_service: JudgeService = Depends(get_judge_service)):
    """Task queue statistics"""
    return judge_service.task_queue.stats()
