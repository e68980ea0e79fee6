import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

from codejudge.core.database import Base
from codejudge.schemas.judge import ExecuteRequest, TestCase
from codejudge.services.security_validator import SecurityValidator
from codejudge.config import settings


@pytest.fixture
def session_factory():
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def validator():
    return SecurityValidator(
        forbidden_keywords=settings.FORBIDDEN_KEYWORDS,
        forbidden_patterns=settings.FORBIDDEN_PATTERNS,
        allowed_libraries=settings.ALLOWED_LIBRARIES,
    )


def make_add_request(**overrides):
    data = dict(
        language="cpp",
        code="int add(int a, int b) { return a + b; }",
        function_name="add",
        function_return_type="int",
        test_cases=[
            TestCase(id=1, inputs=[1, 2], input_types=["int", "int"]),
            TestCase(id=2, inputs=[5, 5], input_types=["int", "int"]),
        ],
        expected=[3, 10],
    )
    data.update(overrides)
    return ExecuteRequest(**data)
