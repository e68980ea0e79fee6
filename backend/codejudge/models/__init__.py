"""Database models"""

from codejudge.models.submission import Submission
from codejudge.models.problem import Problem, ProblemTestCase, CodeTemplate

__all__ = ["Submission", "Problem", "ProblemTestCase", "CodeTemplate"]
