"""Problem routes - definitions used by asynchronous submissions"""

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session
from typing import List

from codejudge.api.deps import get_problem_store
from codejudge.core.database import get_db
from codejudge.schemas.problem import ProblemCreate, ProblemResponse
from codejudge.services.problem_store import ProblemStore

router = APIRouter()


def _to_response(problem, store: ProblemStore, include_samples: bool = False) -> ProblemResponse:
    data = problem.to_dict()
    if include_samples:
        data["sample_test_cases"] = store.sample_test_cases(problem)
    return ProblemResponse(**data)


@router.post("", response_model=ProblemResponse, status_code=status.HTTP_201_CREATED)
def create_problem(
    problem: ProblemCreate,
    db: Session = Depends(get_db),
    store: ProblemStore = Depends(get_problem_store),
):
    """Register a problem with its test cases and code templates"""
    return _to_response(store.create_problem(db, problem), store)


@router.get("", response_model=List[ProblemResponse])
def list_problems(db: Session = Depends(get_db), store: ProblemStore = Depends(get_problem_store)):
    """List problems (hidden test cases are not exposed)"""
    return [_to_response(p, store) for p in store.list_problems(db)]


@router.get("/{ref}", response_model=ProblemResponse)
def get_problem(ref: str, db: Session = Depends(get_db), store: ProblemStore = Depends(get_problem_store)):
    """Get a problem with its sample test cases"""
    return _to_response(store.get_problem(db, ref), store, include_samples=True)
