"""Parse harness output lines and grade them against expected values."""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from codejudge.schemas.judge import TestVerdict
from codejudge.services.harness_generator import RESULT_PREFIX
from codejudge.services.type_marshaler import TypeMarshaler

logger = logging.getLogger(__name__)

PASSED = "PASSED"
FAILED = "FAILED"

FLOAT_TOLERANCE = 1e-9


@dataclass(frozen=True)
class ResultLine:
    test_id: str
    elapsed_micros: Optional[int]
    token: str


def values_equal(actual: Any, expected: Any) -> bool:
    """Deep structural equality.

    Booleans never equal numbers; ints and floats compare numerically with a
    small relative tolerance for floats.
    """
    if isinstance(actual, bool) or isinstance(expected, bool):
        return isinstance(actual, bool) and isinstance(expected, bool) and actual == expected
    if isinstance(actual, (int, float)) and isinstance(expected, (int, float)):
        if isinstance(actual, float) or isinstance(expected, float):
            if math.isnan(actual) or math.isnan(expected):
                return math.isnan(actual) and math.isnan(expected)
            return math.isclose(actual, expected, rel_tol=FLOAT_TOLERANCE, abs_tol=FLOAT_TOLERANCE)
        return actual == expected
    if isinstance(actual, list) and isinstance(expected, list):
        return len(actual) == len(expected) and all(values_equal(a, e) for a, e in zip(actual, expected))
    if isinstance(actual, dict) and isinstance(expected, dict):
        return actual.keys() == expected.keys() and all(values_equal(actual[k], expected[k]) for k in expected)
    return type(actual) is type(expected) and actual == expected


def parse_result_lines(raw_output: str) -> Dict[str, ResultLine]:
    """Collect protocol lines by test id; the first line for an id wins."""
    lines: Dict[str, ResultLine] = {}
    for raw_line in raw_output.split("\n"):
        line = raw_line.rstrip("\r")
        if not line.startswith(RESULT_PREFIX):
            continue
        fields = line.split(":")
        if len(fields) < 4:
            continue
        test_id = fields[1]
        if test_id in lines:
            continue
        try:
            elapsed: Optional[int] = int(fields[2])
        except ValueError:
            elapsed = None
        lines[test_id] = ResultLine(test_id=test_id, elapsed_micros=elapsed, token=":".join(fields[3:]))
    return lines


class OutputGrader:
    """Turns raw program output into one verdict per test case."""

    def __init__(self, marshaler: TypeMarshaler):
        self.marshaler = marshaler

    def parse(self, raw_output: str, test_cases: Sequence[Any], expected: Sequence[Any]) -> List[TestVerdict]:
        lines = parse_result_lines(raw_output or "")
        verdicts = []
        for test_case, expected_value in zip(test_cases, expected):
            line = lines.get(str(test_case.id))
            if line is None:
                verdicts.append(TestVerdict(id=test_case.id, status=FAILED, expected=expected_value, actual=None))
                continue
            verdicts.append(self.grade_line(test_case.id, line, expected_value))
        return verdicts

    def grade_line(self, test_id: Any, line: ResultLine, expected_value: Any) -> TestVerdict:
        try:
            actual = self.marshaler.infer_from_expected(line.token, expected_value)
        except (ValueError, TypeError) as exc:
            logger.info(f"Could not read result for test case {test_id}: {exc}")
            return TestVerdict(
                id=test_id,
                status=FAILED,
                expected=expected_value,
                actual=line.token,
                execution_time_micros=line.elapsed_micros,
            )
        return TestVerdict(
            id=test_id,
            status=PASSED if values_equal(actual, expected_value) else FAILED,
            expected=expected_value,
            actual=actual,
            execution_time_micros=line.elapsed_micros,
        )
