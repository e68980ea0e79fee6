"""Pydantic schemas for API validation"""

from codejudge.schemas.judge import TestCase, ExecuteRequest, TestVerdict, ExecuteResponse
from codejudge.schemas.submission import SubmissionCreate, SubmissionResponse, SubmissionCreatedResponse
from codejudge.schemas.problem import ProblemCreate, ProblemResponse

__all__ = [
    "TestCase", "ExecuteRequest", "TestVerdict", "ExecuteResponse",
    "SubmissionCreate", "SubmissionResponse", "SubmissionCreatedResponse",
    "ProblemCreate", "ProblemResponse"
]
