"""Problem and code template persistence"""

from sqlalchemy.orm import Session
from sqlalchemy.exc import IntegrityError
from typing import List, Optional
import logging

from codejudge.core.exceptions import ResourceNotFoundError, ValidationError
from codejudge.models.problem import Problem, ProblemTestCase, CodeTemplate
from codejudge.schemas.problem import ProblemCreate

logger = logging.getLogger(__name__)


class ProblemStore:
    """Service for problem definitions used by the submission pipeline"""

    def __init__(self, placeholder: str = "{USER_CODE}"):
        self.placeholder = placeholder

    def create_problem(self, db: Session, data: ProblemCreate) -> Problem:
        for template in data.code_templates:
            if self.placeholder not in template.wrapper_code:
                raise ValidationError(
                    f"Code template for {template.language} must contain {self.placeholder}"
                )

        problem = Problem(
            ref=data.ref,
            title=data.title,
            function_params=[p.model_dump() for p in data.function_params],
            return_type=data.return_type,
        )
        problem.test_cases = [
            ProblemTestCase(
                position=index,
                input=tc.input,
                expected_output=tc.expected_output,
                is_sample=tc.is_sample,
            )
            for index, tc in enumerate(data.test_cases)
        ]
        problem.code_templates = [
            CodeTemplate(language=t.language.strip().lower(), wrapper_code=t.wrapper_code)
            for t in data.code_templates
        ]

        db.add(problem)
        try:
            db.commit()
        except IntegrityError:
            db.rollback()
            raise ValidationError(f"Problem {data.ref} already exists")
        db.refresh(problem)
        logger.info(f"Problem {problem.ref} created with {len(problem.test_cases)} test cases")
        return problem

    @staticmethod
    def find_problem(db: Session, ref: str) -> Optional[Problem]:
        return db.query(Problem).filter(Problem.ref == ref).first()

    def get_problem(self, db: Session, ref: str) -> Problem:
        problem = self.find_problem(db, ref)
        if not problem:
            raise ResourceNotFoundError(f"Problem {ref}")
        return problem

    @staticmethod
    def list_problems(db: Session) -> List[Problem]:
        return db.query(Problem).order_by(Problem.ref.asc()).all()

    @staticmethod
    def sample_test_cases(problem: Problem) -> List[dict]:
        return [tc.to_dict() for tc in problem.test_cases if tc.is_sample]
