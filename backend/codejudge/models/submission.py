"""Submission model"""

from sqlalchemy import Column, Integer, String, Text, Float, DateTime, JSON, Index, CheckConstraint
from sqlalchemy.sql import func
from codejudge.core.database import Base

PENDING = "pending"
TERMINAL_VERDICTS = (
    "accepted",
    "wrong_answer",
    "time_limit_exceeded",
    "compile_error",
    "runtime_error",
)


class Submission(Base):
    """Submission model - one full-problem submission judged asynchronously"""

    __tablename__ = "submissions"

    id = Column(Integer, primary_key=True, index=True)
    problem_ref = Column(String(64), nullable=False)
    language = Column(String(20), nullable=False)
    code = Column(Text, nullable=False)
    verdict = Column(String(32), default=PENDING, nullable=False)
    test_cases_passed = Column(Integer, default=0, nullable=False)
    total_test_cases = Column(Integer, default=0, nullable=False)
    execution_time = Column(Float)
    memory_used = Column(Integer)
    judge_output = Column(JSON)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    completed_at = Column(DateTime(timezone=True))

    __table_args__ = (
        Index('idx_submissions_problem', 'problem_ref'),
        Index('idx_submissions_verdict', 'verdict'),
        Index('idx_submissions_created_at', 'created_at'),
        CheckConstraint('execution_time >= 0', name='chk_execution_time'),
        CheckConstraint('memory_used >= 0', name='chk_memory_used'),
        CheckConstraint(
            "verdict IN ('pending', 'accepted', 'wrong_answer', 'time_limit_exceeded', "
            "'compile_error', 'runtime_error')",
            name='chk_verdict'
        ),
    )

    @property
    def is_pending(self) -> bool:
        return self.verdict == PENDING

    def __repr__(self):
        return f"<Submission(id={self.id}, problem_ref='{self.problem_ref}', verdict='{self.verdict}')>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "problem_ref": self.problem_ref,
            "language": self.language,
            "code": self.code,
            "verdict": self.verdict,
            "test_cases_passed": self.test_cases_passed,
            "total_test_cases": self.total_test_cases,
            "execution_time": self.execution_time,
            "memory_used": self.memory_used,
            "judge_output": self.judge_output,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None
        }
