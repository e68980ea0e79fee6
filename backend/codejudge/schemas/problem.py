"""Problem schemas"""

from pydantic import BaseModel, Field
from typing import Any, List, Optional


class FunctionParam(BaseModel):
    name: str = Field(..., pattern=r'^[A-Za-z_][A-Za-z0-9_]*$')
    type: str


class ProblemTestCaseCreate(BaseModel):
    input: Any
    expected_output: Any = None
    is_sample: bool = False


class CodeTemplateCreate(BaseModel):
    language: str
    wrapper_code: str = Field(..., min_length=1)


class ProblemCreate(BaseModel):
    """Create problem schema"""
    ref: str = Field(..., pattern=r'^[A-Za-z0-9_-]{1,64}$')
    title: str = Field(..., min_length=1, max_length=200)
    function_params: List[FunctionParam] = Field(default_factory=list)
    return_type: str
    test_cases: List[ProblemTestCaseCreate] = Field(default_factory=list)
    code_templates: List[CodeTemplateCreate] = Field(default_factory=list)


class ProblemResponse(BaseModel):
    """Problem summary; hidden test cases are never exposed"""
    id: int
    ref: str
    title: str
    function_params: List[Any]
    return_type: str
    languages: List[str]
    total_test_cases: int
    sample_test_cases: Optional[List[Any]] = None
