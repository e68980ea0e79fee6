"""Problem, test case and code template models"""

from typing import Optional

from sqlalchemy import Column, Integer, String, Text, Boolean, DateTime, JSON, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
from codejudge.core.database import Base


class Problem(Base):
    """Problem model - function signature plus hidden test cases"""

    __tablename__ = "problems"

    id = Column(Integer, primary_key=True, index=True)
    ref = Column(String(64), unique=True, nullable=False)
    title = Column(String(200), nullable=False)
    # [{"name": "nums", "type": "vector<int>"}, ...]
    function_params = Column(JSON, nullable=False, default=list)
    return_type = Column(String(50), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    test_cases = relationship(
        "ProblemTestCase",
        back_populates="problem",
        cascade="all, delete-orphan",
        order_by="ProblemTestCase.position",
    )
    code_templates = relationship("CodeTemplate", back_populates="problem", cascade="all, delete-orphan")

    def template_for(self, language: str) -> Optional["CodeTemplate"]:
        for template in self.code_templates:
            if template.language == language:
                return template
        return None

    def __repr__(self):
        return f"<Problem(id={self.id}, ref='{self.ref}')>"

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "ref": self.ref,
            "title": self.title,
            "function_params": self.function_params,
            "return_type": self.return_type,
            "languages": sorted(t.language for t in self.code_templates),
            "total_test_cases": len(self.test_cases),
        }


class ProblemTestCase(Base):
    """Test case model - JSON input keyed by parameter name plus expected output"""

    __tablename__ = "problem_test_cases"

    id = Column(Integer, primary_key=True, index=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    position = Column(Integer, nullable=False, default=0)
    input = Column(JSON, nullable=False)
    expected_output = Column(JSON)
    is_sample = Column(Boolean, default=False, nullable=False)

    problem = relationship("Problem", back_populates="test_cases")

    __table_args__ = (
        Index('idx_problem_test_cases_problem', 'problem_id'),
    )

    def to_dict(self):
        """Convert to dictionary"""
        return {
            "id": self.id,
            "input": self.input,
            "expected_output": self.expected_output,
            "is_sample": self.is_sample,
        }


class CodeTemplate(Base):
    """Per-language wrapper program with a single user code placeholder"""

    __tablename__ = "code_templates"

    id = Column(Integer, primary_key=True, index=True)
    problem_id = Column(Integer, ForeignKey("problems.id", ondelete="CASCADE"), nullable=False)
    language = Column(String(20), nullable=False)
    wrapper_code = Column(Text, nullable=False)

    problem = relationship("Problem", back_populates="code_templates")

    __table_args__ = (
        UniqueConstraint('problem_id', 'language', name='uq_code_templates_problem_language'),
    )
