"""Synchronous judge request/response schemas"""

from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel
from typing import Any, List, Optional, Union


class CamelModel(BaseModel):
    """Wire names are camelCase; Python attributes stay snake_case."""

    class Config:
        alias_generator = to_camel
        populate_by_name = True


class TestCase(CamelModel):
    """One call of the user's function"""
    __test__ = False

    id: Union[int, str]
    inputs: List[Any] = Field(default_factory=list)
    input_types: List[str] = Field(default_factory=list)


class ExecuteRequest(CamelModel):
    """POST /judge/execute body"""
    language: str
    code: str
    function_name: str
    function_return_type: str
    test_cases: List[TestCase]
    expected: List[Any]


class TestVerdict(CamelModel):
    """Outcome of one test case"""
    __test__ = False

    id: Union[int, str]
    status: str  # PASSED | FAILED
    expected: Any = None
    actual: Any = None
    execution_time_micros: Optional[int] = None


class ExecuteResponse(CamelModel):
    """Run-level outcome: either a compile error or one verdict per test case"""
    compile_error: Optional[str] = None
    error_type: Optional[str] = None
    results: List[TestVerdict] = Field(default_factory=list)
