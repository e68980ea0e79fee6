import pytest

from codejudge.core.exceptions import InfrastructureError, SecurityPolicyError, ValidationError
from codejudge.schemas.judge import TestCase
from codejudge.services.harness_generator import HarnessGenerator
from codejudge.services.judge_service import JudgeService
from codejudge.services.output_grader import FAILED, PASSED, OutputGrader
from codejudge.services.sandbox_executor import COMPILE_FAILED_EXIT_CODE, ExecutionResult
from codejudge.services.task_queue import BoundedTaskQueue
from codejudge.services.type_marshaler import TypeMarshaler

from conftest import make_add_request


class FakeExecutor:
    def __init__(self, result=None, error=None):
        self.result = result
        self.error = error
        self.sources = []

    def execute(self, source):
        self.sources.append(source)
        if self.error:
            raise self.error
        return self.result


@pytest.fixture
def build_service(validator):
    queues = []

    def build(executor):
        marshaler = TypeMarshaler()
        task_queue = BoundedTaskQueue(max_concurrent=1, max_queue_size=5)
        queues.append(task_queue)
        return JudgeService(
            validator=validator,
            generator=HarnessGenerator(marshaler),
            executor=executor,
            grader=OutputGrader(marshaler),
            task_queue=task_queue,
        )

    yield build
    for task_queue in queues:
        task_queue.shutdown(timeout=1)


def test_grades_each_test_case(build_service):
    executor = FakeExecutor(ExecutionResult(0, "TEST_CASE_1:1:12:3\nTEST_CASE_2:2:8:11\n", "", False))
    response = build_service(executor).judge(make_add_request(), timeout=5)

    assert response.compile_error is None
    assert response.error_type is None
    assert [r.status for r in response.results] == [PASSED, FAILED]
    assert "solution.add(arg_0_0, arg_0_1)" in executor.sources[0]


def test_compile_failure(build_service):
    stdout = "code.cpp:1:5: error: 'x' was not declared\n"
    executor = FakeExecutor(ExecutionResult(COMPILE_FAILED_EXIT_CODE, stdout, "", False, compile_failed=True))
    response = build_service(executor).judge(make_add_request(), timeout=5)

    assert response.error_type == "compile_error"
    assert "was not declared" in response.compile_error
    assert response.results == []


def test_timeout_keeps_completed_results(build_service):
    executor = FakeExecutor(ExecutionResult(124, "TEST_CASE_1:1:12:3\n", "", True))
    response = build_service(executor).judge(make_add_request(), timeout=5)

    assert response.error_type == "time_limit_exceeded"
    assert [r.status for r in response.results] == [PASSED, FAILED]
    assert response.results[1].actual is None


def test_crash_reports_runtime_error(build_service):
    executor = FakeExecutor(ExecutionResult(139, "TEST_CASE_1:1:12:3\n", "", False))
    response = build_service(executor).judge(make_add_request(), timeout=5)

    assert response.error_type == "runtime_error"
    assert response.results[0].status == PASSED


def test_oversized_output(build_service, validator):
    validator.max_output_size = 16
    executor = FakeExecutor(ExecutionResult(0, "TEST_CASE_1:1:12:3\n" * 10, "", False))
    response = build_service(executor).judge(make_add_request(), timeout=5)

    assert response.compile_error == "Output size exceeds limit"
    assert response.error_type == "output_limit_exceeded"


def test_forbidden_code_never_executes(build_service):
    executor = FakeExecutor(ExecutionResult(0, "", "", False))
    request = make_add_request(code='int add(int a, int b) { system("rm -rf /"); return a + b; }')

    with pytest.raises(SecurityPolicyError):
        build_service(executor).judge(request, timeout=5)
    assert executor.sources == []


def test_invalid_request_never_executes(build_service):
    executor = FakeExecutor(ExecutionResult(0, "", "", False))
    with pytest.raises(ValidationError):
        build_service(executor).judge(make_add_request(expected=[3]), timeout=5)
    assert executor.sources == []


def test_infrastructure_error_propagates(build_service):
    executor = FakeExecutor(error=InfrastructureError())
    with pytest.raises(InfrastructureError):
        build_service(executor).judge(make_add_request(), timeout=5)


@pytest.mark.parametrize("expected, status", [(8, PASSED), (9, FAILED)])
def test_single_add_case(build_service, expected, status):
    executor = FakeExecutor(ExecutionResult(0, "TEST_CASE_1:1:3:8\n", "", False))
    request = make_add_request(
        test_cases=[TestCase(id=1, inputs=[5, 3], input_types=["int", "int"])],
        expected=[expected],
    )
    response = build_service(executor).judge(request, timeout=5)

    assert len(response.results) == 1
    verdict = response.results[0]
    assert (verdict.status, verdict.expected, verdict.actual) == (status, expected, 8)
