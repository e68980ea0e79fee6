"""Submission schemas"""

from pydantic import BaseModel, Field, field_validator
from typing import Any, Optional
from datetime import datetime


class SubmissionCreate(BaseModel):
    """Create submission schema"""
    problem: str = Field(..., min_length=1, max_length=64)
    language: str = Field(..., min_length=1, max_length=20)
    code: str = Field(..., min_length=1, max_length=51200)

    @field_validator('code')
    @classmethod
    def sanitize_code(cls, v):
        """Strip NUL bytes"""
        return v.replace('\x00', '')

    @field_validator('language')
    @classmethod
    def normalize_language(cls, v):
        return v.strip().lower()


class SubmissionResponse(BaseModel):
    """Submission response schema"""
    id: int
    problem_ref: str
    language: str
    code: str
    verdict: str
    test_cases_passed: int
    total_test_cases: int
    execution_time: Optional[float]
    memory_used: Optional[int]
    judge_output: Optional[Any] = None
    created_at: Optional[datetime]
    completed_at: Optional[datetime]

    class Config:
        from_attributes = True


class SubmissionCreatedResponse(BaseModel):
    """Returned immediately; grading continues in the background."""
    submission: SubmissionResponse
    message: str = "processing"
