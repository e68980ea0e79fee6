"""Static gate applied to submitted code and test payloads before execution."""

from __future__ import annotations

import logging
import re
from typing import Any, Iterable, List, Optional, Sequence

from codejudge.config import settings
from codejudge.core.exceptions import SecurityPolicyError, ValidationError
from codejudge.services.type_marshaler import is_known_type

logger = logging.getLogger(__name__)

FORBIDDEN_OPERATION = "Code contains a forbidden operation"
FORBIDDEN_LIBRARY = "Code includes a library that is not allowed"

_FUNCTION_NAME_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")
_TEST_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")
_INCLUDE_RE = re.compile(r"^\s*(?:#|%:)\s*include\s*<\s*([^>\s]+)\s*>", re.MULTILINE)


def _inputs_of(test_case: Any) -> List[Any]:
    if isinstance(test_case, dict):
        return test_case.get("inputs") or []
    return list(getattr(test_case, "inputs", None) or [])


def is_valid_test_id(test_id: Any) -> bool:
    if isinstance(test_id, bool):
        return False
    if isinstance(test_id, int):
        return test_id > 0
    return isinstance(test_id, str) and bool(_TEST_ID_RE.match(test_id))


class SecurityValidator:
    """Size limits, keyword/pattern denylist and header allowlist.

    The denylist is a coarse filter in front of the sandbox. The container
    limits remain the actual isolation boundary.
    """

    def __init__(
        self,
        max_code_size: int = 10000,
        max_test_cases: int = 50,
        max_input_size: int = 1000,
        max_output_size: int = 1024 * 1024,
        forbidden_keywords: Optional[Iterable[str]] = None,
        forbidden_patterns: Optional[Iterable[str]] = None,
        allowed_libraries: Optional[Iterable[str]] = None,
        supported_languages: Optional[Iterable[str]] = None,
    ):
        self.max_code_size = max_code_size
        self.max_test_cases = max_test_cases
        self.max_input_size = max_input_size
        self.max_output_size = max_output_size
        self.forbidden_keywords = [k.lower() for k in (forbidden_keywords or [])]
        self.forbidden_patterns = [re.compile(p, re.IGNORECASE) for p in (forbidden_patterns or [])]
        self.allowed_libraries = set(allowed_libraries) if allowed_libraries is not None else None
        self.supported_languages = set(supported_languages or ["cpp"])

    @classmethod
    def from_settings(cls, cfg=settings) -> "SecurityValidator":
        return cls(
            max_code_size=cfg.MAX_CODE_SIZE,
            max_test_cases=cfg.MAX_TEST_CASES,
            max_input_size=cfg.MAX_INPUT_SIZE,
            max_output_size=cfg.MAX_OUTPUT_SIZE,
            forbidden_keywords=cfg.FORBIDDEN_KEYWORDS,
            forbidden_patterns=cfg.FORBIDDEN_PATTERNS,
            allowed_libraries=cfg.ALLOWED_LIBRARIES,
            supported_languages=cfg.SUPPORTED_LANGUAGES,
        )

    def validate(self, code: str, test_cases: Sequence[Any]) -> None:
        """Raise on the first violation; returns None when the payload is clean."""
        if len(code) > self.max_code_size:
            raise ValidationError(f"Code size exceeds limit of {self.max_code_size} characters")

        if len(test_cases) > self.max_test_cases:
            raise ValidationError(f"Too many test cases (maximum {self.max_test_cases})")

        for test_case in test_cases:
            for value in _inputs_of(test_case):
                if isinstance(value, list) and len(value) > self.max_input_size:
                    raise ValidationError(f"Input size exceeds limit of {self.max_input_size} elements")

        lowered = code.lower()
        for keyword in self.forbidden_keywords:
            if keyword in lowered:
                self._reject(FORBIDDEN_OPERATION, f"keyword '{keyword}'")

        for pattern in self.forbidden_patterns:
            if pattern.search(code):
                self._reject(FORBIDDEN_OPERATION, f"pattern '{pattern.pattern}'")

        if self.allowed_libraries is not None:
            for header in _INCLUDE_RE.findall(code):
                if header not in self.allowed_libraries:
                    self._reject(FORBIDDEN_LIBRARY, f"header <{header}>")

    def validate_request(self, request: Any) -> None:
        """Structural checks on a judge request; all problems reported together."""
        errors: List[str] = []

        if request.language not in self.supported_languages:
            errors.append(f"Unsupported language: {request.language}")

        if not _FUNCTION_NAME_RE.match(request.function_name or ""):
            errors.append("functionName must be a valid identifier")

        if not is_known_type(request.function_return_type):
            errors.append(f"Unsupported return type: {request.function_return_type}")

        if not request.test_cases:
            errors.append("At least one test case is required")

        if len(request.expected) != len(request.test_cases):
            errors.append(
                f"expected has {len(request.expected)} entries for {len(request.test_cases)} test cases"
            )

        seen = set()
        for index, test_case in enumerate(request.test_cases):
            if not is_valid_test_id(test_case.id):
                errors.append(f"testCases[{index}].id must be a positive integer or match [A-Za-z0-9_-]+")
            elif str(test_case.id) in seen:
                errors.append(f"testCases[{index}].id is duplicated")
            seen.add(str(test_case.id))

            if len(test_case.inputs) != len(test_case.input_types):
                errors.append(f"testCases[{index}] has {len(test_case.inputs)} inputs "
                              f"but {len(test_case.input_types)} inputTypes")
            for type_tag in test_case.input_types:
                if not is_known_type(type_tag):
                    errors.append(f"testCases[{index}] has unsupported input type: {type_tag}")

        if errors:
            raise ValidationError("Invalid judge request", details={"errors": errors})

    def check_output_size(self, output: str) -> bool:
        """True when the program output fits under the output ceiling."""
        return len(output.encode("utf-8", errors="replace")) <= self.max_output_size

    @staticmethod
    def _reject(category: str, matched: str) -> None:
        logger.warning(f"Code rejected by security policy: {matched}")
        raise SecurityPolicyError(category, matched=matched)


