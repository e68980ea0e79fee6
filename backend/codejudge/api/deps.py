"""API dependencies - shared service instances and rate limiting"""

from fastapi import Depends, Request

from codejudge.config import settings
from codejudge.services.judge_service import JudgeService
from codejudge.services.problem_store import ProblemStore
from codejudge.services.rate_limiter import HOUR, MINUTE, InMemoryRateLimiter
from codejudge.services.submission_pipeline import SubmissionPipeline


def get_judge_service(request: Request) -> JudgeService:
    return request.app.state.judge_service


def get_submission_pipeline(request: Request) -> SubmissionPipeline:
    return request.app.state.submission_pipeline


def get_problem_store(request: Request) -> ProblemStore:
    return request.app.state.submission_pipeline.problem_store


def get_rate_limiter(request: Request) -> InMemoryRateLimiter:
    return request.app.state.rate_limiter


def client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def enforce_high_cost_limit(
    request: Request,
    limiter: InMemoryRateLimiter = Depends(get_rate_limiter),
) -> None:
    """
    Per-client minute and hour budget for endpoints that run code.

    Raises:
        RateLimitExceededError: If either window is exhausted
    """
    limiter.enforce(
        f"highcost:{request.url.path}:{client_key(request)}",
        [
            (settings.HIGH_COST_RATE_LIMIT_PER_MINUTE, MINUTE),
            (settings.HIGH_COST_RATE_LIMIT_PER_HOUR, HOUR),
        ],
    )
