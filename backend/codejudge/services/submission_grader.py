"""Verdicts for remote execution results."""

from __future__ import annotations

import base64
import binascii
import json
import logging
from typing import Any, Dict, List

from codejudge.services.output_grader import values_equal

logger = logging.getLogger(__name__)

STATUS_ACCEPTED = 3
STATUS_WRONG_ANSWER = 4
STATUS_TIME_LIMIT_EXCEEDED = 5
STATUS_COMPILATION_ERROR = 6

ACCEPTED = "accepted"
WRONG_ANSWER = "wrong_answer"
TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
COMPILE_ERROR = "compile_error"
RUNTIME_ERROR = "runtime_error"

# First verdict present in a result set wins.
VERDICT_PRIORITY = (COMPILE_ERROR, RUNTIME_ERROR, TIME_LIMIT_EXCEEDED, WRONG_ANSWER, ACCEPTED)


def decode_field(value: Any) -> str:
    if not value:
        return ""
    try:
        return base64.b64decode(value).decode("utf-8", errors="replace").strip()
    except (binascii.Error, ValueError):
        return str(value).strip()


def unwrap_data(value: Any) -> Any:
    if isinstance(value, dict) and value.get("data") is not None:
        return value["data"]
    return value


def _as_float(value: Any) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def _as_int(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


class SubmissionGrader:
    def evaluate_test_case(self, execution: Dict[str, Any], test_case: Dict[str, Any]) -> Dict[str, Any]:
        status_id = (execution.get("status") or {}).get("id")
        stdout = decode_field(execution.get("stdout"))
        stderr = decode_field(execution.get("stderr"))
        compile_output = decode_field(execution.get("compile_output"))
        expected = unwrap_data(test_case.get("expected_output"))

        verdict = WRONG_ANSWER
        actual = None
        if status_id == STATUS_ACCEPTED:
            try:
                actual = json.loads(stdout)
            except ValueError:
                verdict = RUNTIME_ERROR
            else:
                if values_equal(actual, expected):
                    verdict = ACCEPTED
        elif status_id == STATUS_TIME_LIMIT_EXCEEDED:
            verdict = TIME_LIMIT_EXCEEDED
        elif status_id == STATUS_COMPILATION_ERROR:
            verdict = COMPILE_ERROR
        elif isinstance(status_id, int) and status_id > STATUS_COMPILATION_ERROR:
            verdict = RUNTIME_ERROR

        return {
            "test_case_id": test_case.get("id"),
            "verdict": verdict,
            "actual_output": actual,
            "stdout": stdout,
            "expected_output": expected,
            "time": _as_float(execution.get("time")),
            "memory": _as_int(execution.get("memory")),
            "error": stderr or compile_output,
        }

    def calculate_final_verdict(self, results: List[Dict[str, Any]], total_test_cases: int) -> Dict[str, Any]:
        verdicts = {r["verdict"] for r in results}
        final = next((v for v in VERDICT_PRIORITY if v in verdicts), ACCEPTED)
        return {
            "final_verdict": final,
            "passed_count": sum(1 for r in results if r["verdict"] == ACCEPTED),
            "total_test_cases": total_test_cases,
            "execution_time": sum(r["time"] for r in results),
            "memory_used": max((r["memory"] for r in results), default=0),
        }
