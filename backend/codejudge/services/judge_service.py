"""Synchronous judging: validate, generate, execute in the queue, grade."""

from __future__ import annotations

import logging
from typing import Optional

from codejudge.config import settings
from codejudge.schemas.judge import ExecuteRequest, ExecuteResponse
from codejudge.services.harness_generator import HarnessGenerator
from codejudge.services.output_grader import OutputGrader
from codejudge.services.sandbox_executor import ExecutionResult, SandboxExecutor
from codejudge.services.security_validator import SecurityValidator
from codejudge.services.task_queue import BoundedTaskQueue
from codejudge.services.type_marshaler import TypeMarshaler

logger = logging.getLogger(__name__)

TIME_LIMIT_EXCEEDED = "time_limit_exceeded"
RUNTIME_ERROR = "runtime_error"
COMPILE_ERROR = "compile_error"
OUTPUT_LIMIT_EXCEEDED = "output_limit_exceeded"


class JudgeService:
    def __init__(
        self,
        validator: SecurityValidator,
        generator: HarnessGenerator,
        executor: SandboxExecutor,
        grader: OutputGrader,
        task_queue: BoundedTaskQueue,
    ):
        self.validator = validator
        self.generator = generator
        self.executor = executor
        self.grader = grader
        self.task_queue = task_queue

    def judge(self, request: ExecuteRequest, priority: int = 0, timeout: Optional[float] = None) -> ExecuteResponse:
        """Run one request end to end.

        Validation errors raise before anything is queued. Queue and
        infrastructure errors propagate to the caller.
        """
        self.validator.validate_request(request)
        self.validator.validate(request.code, request.test_cases)
        source = self.generator.generate(
            request.code,
            request.function_name,
            request.function_return_type,
            request.test_cases,
        )

        future = self.task_queue.add(lambda: self._execute_and_grade(source, request), priority)
        return future.result(timeout=timeout)

    def _execute_and_grade(self, source: str, request: ExecuteRequest) -> ExecuteResponse:
        execution = self.executor.execute(source)
        return self.evaluate(execution, request)

    def evaluate(self, execution: ExecutionResult, request: ExecuteRequest) -> ExecuteResponse:
        if execution.compile_failed:
            logger.info(f"Compilation failed for {request.function_name}")
            return ExecuteResponse(
                compile_error=execution.compile_output[: self.validator.max_output_size],
                error_type=COMPILE_ERROR,
            )

        if not self.validator.check_output_size(execution.stdout):
            logger.warning("Program output exceeded size limit")
            return ExecuteResponse(compile_error="Output size exceeds limit", error_type=OUTPUT_LIMIT_EXCEEDED)

        results = self.grader.parse(execution.stdout, request.test_cases, request.expected)

        error_type = None
        if execution.timed_out:
            error_type = TIME_LIMIT_EXCEEDED
        elif execution.exit_code != 0:
            error_type = RUNTIME_ERROR
            logger.info(f"Program exited with code {execution.exit_code}")

        return ExecuteResponse(results=results, error_type=error_type)


def create_judge_service(cfg=settings, task_queue: Optional[BoundedTaskQueue] = None) -> JudgeService:
    """Wire the synchronous path from settings."""
    marshaler = TypeMarshaler(tree_output_order=cfg.TREE_OUTPUT_ORDER)
    queue = task_queue or BoundedTaskQueue(
        max_concurrent=cfg.MAX_CONCURRENT_EXECUTIONS,
        max_queue_size=cfg.MAX_QUEUE_SIZE,
        max_task_age=cfg.QUEUE_TASK_MAX_AGE_SECONDS,
        sweep_interval=cfg.QUEUE_SWEEP_INTERVAL_SECONDS,
    )
    return JudgeService(
        validator=SecurityValidator.from_settings(cfg),
        generator=HarnessGenerator(marshaler),
        executor=SandboxExecutor.from_settings(cfg),
        grader=OutputGrader(marshaler),
        task_queue=queue,
    )
