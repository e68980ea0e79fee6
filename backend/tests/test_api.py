from types import SimpleNamespace

import pytest
from fastapi.testclient import TestClient

from codejudge.config import settings
from codejudge.core.database import get_db
from codejudge.main import app
from codejudge.services.code_wrapper import CodeWrapper
from codejudge.services.harness_generator import HarnessGenerator
from codejudge.services.judge_service import JudgeService
from codejudge.services.notifier import SubmissionNotifier
from codejudge.services.output_grader import OutputGrader
from codejudge.services.problem_store import ProblemStore
from codejudge.services.rate_limiter import InMemoryRateLimiter
from codejudge.services.sandbox_executor import ExecutionResult
from codejudge.services.submission_grader import SubmissionGrader
from codejudge.services.submission_pipeline import SubmissionPipeline
from codejudge.services.task_queue import BoundedTaskQueue
from codejudge.services.type_marshaler import TypeMarshaler

from test_judge_service import FakeExecutor
from test_submission_pipeline import TEMPLATE, FakeRemote

ADD_PAYLOAD = {
    "language": "cpp",
    "code": "int add(int a, int b) { return a + b; }",
    "functionName": "add",
    "functionReturnType": "int",
    "testCases": [
        {"id": 1, "inputs": [1, 2], "inputTypes": ["int", "int"]},
        {"id": 2, "inputs": [5, 5], "inputTypes": ["int", "int"]},
    ],
    "expected": [3, 10],
}

PROBLEM_PAYLOAD = {
    "ref": "two-sum",
    "title": "Two Sum",
    "function_params": [{"name": "nums", "type": "int[]"}, {"name": "target", "type": "int"}],
    "return_type": "int[]",
    "test_cases": [
        {"input": {"nums": [2, 7, 11, 15], "target": 9}, "expected_output": [0, 1], "is_sample": True},
        {"input": {"nums": [3, 2, 4], "target": 6}, "expected_output": [1, 2]},
    ],
    "code_templates": [{"language": "python", "wrapper_code": TEMPLATE}],
}


@pytest.fixture
def client(session_factory, validator):
    marshaler = TypeMarshaler()
    task_queue = BoundedTaskQueue(max_concurrent=1, max_queue_size=5)
    executor = FakeExecutor(ExecutionResult(0, "TEST_CASE_1:1:12:3\nTEST_CASE_2:2:8:11\n", "", False))
    notifier = SubmissionNotifier()

    app.state.session_factory = session_factory
    app.state.rate_limiter = InMemoryRateLimiter()
    app.state.notifier = notifier
    app.state.judge_service = JudgeService(
        validator=validator,
        generator=HarnessGenerator(marshaler),
        executor=executor,
        grader=OutputGrader(marshaler),
        task_queue=task_queue,
    )
    app.state.submission_pipeline = SubmissionPipeline(
        session_factory=session_factory,
        problem_store=ProblemStore(),
        code_wrapper=CodeWrapper(),
        remote_client=FakeRemote(outputs=[[0, 1], [1, 2]]),
        grader=SubmissionGrader(),
        notifier=notifier,
    )

    def override_get_db():
        db = session_factory()
        try:
            yield db
        finally:
            db.close()

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app)
    app.dependency_overrides.clear()
    task_queue.shutdown(timeout=1)


def test_execute_returns_verdicts(client):
    response = client.post("/api/v1/judge/execute", json=ADD_PAYLOAD)

    assert response.status_code == 200
    body = response.json()
    assert body["compileError"] is None
    assert [r["status"] for r in body["results"]] == ["PASSED", "FAILED"]
    assert body["results"][0]["executionTimeMicros"] == 12
    assert body["results"][1]["actual"] == 11


def test_execute_rejects_forbidden_code_without_detail(client):
    payload = dict(ADD_PAYLOAD, code='int add(int a, int b) { system("ls"); return a + b; }')
    response = client.post("/api/v1/judge/execute", json=payload)

    assert response.status_code == 422
    body = response.json()
    assert body["error"] == "Code contains a forbidden operation"
    assert body["details"] == {"reason": "security_policy"}
    assert "system" not in response.text


def test_execute_rejects_malformed_request(client):
    payload = dict(ADD_PAYLOAD, expected=[3])
    response = client.post("/api/v1/judge/execute", json=payload)

    assert response.status_code == 422
    assert response.json()["details"]["errors"]


def test_execute_is_rate_limited(client, monkeypatch):
    monkeypatch.setattr(settings, "HIGH_COST_RATE_LIMIT_PER_MINUTE", 1)
    assert client.post("/api/v1/judge/execute", json=ADD_PAYLOAD).status_code == 200
    assert client.post("/api/v1/judge/execute", json=ADD_PAYLOAD).status_code == 429


def test_queue_stats(client):
    response = client.get("/api/v1/judge/queue")
    assert response.status_code == 200
    assert response.json()["max_concurrent"] == 1


def test_problem_lifecycle(client):
    created = client.post("/api/v1/problems", json=PROBLEM_PAYLOAD)
    assert created.status_code == 201
    assert created.json()["languages"] == ["python"]
    assert created.json()["total_test_cases"] == 2

    assert client.post("/api/v1/problems", json=PROBLEM_PAYLOAD).status_code == 422

    fetched = client.get("/api/v1/problems/two-sum").json()
    assert len(fetched["sample_test_cases"]) == 1
    assert [p["ref"] for p in client.get("/api/v1/problems").json()] == ["two-sum"]
    assert client.get("/api/v1/problems/missing").status_code == 404


def test_submission_is_judged_in_background(client):
    client.post("/api/v1/problems", json=PROBLEM_PAYLOAD)
    response = client.post(
        "/api/v1/submissions",
        json={"problem": "two-sum", "language": "Python", "code": "def two_sum(nums, target): pass"},
    )

    assert response.status_code == 201
    body = response.json()
    assert body["message"] == "processing"
    assert body["submission"]["verdict"] == "pending"
    assert body["submission"]["language"] == "python"

    app.state.submission_pipeline.work_queue.drain()
    judged = client.get(f"/api/v1/submissions/{body['submission']['id']}").json()
    assert judged["verdict"] == "accepted"
    assert judged["test_cases_passed"] == 2

    with client.websocket_connect(f"/api/v1/submissions/ws/{judged['id']}") as websocket:
        assert websocket.receive_json()["verdict"] == "accepted"


def test_unknown_submission(client):
    assert client.get("/api/v1/submissions/999").status_code == 404
    with client.websocket_connect("/api/v1/submissions/ws/999") as websocket:
        assert websocket.receive_json() == {"error": "Submission not found"}


class ExternalWorkerSessions:
    """Session factory for a row that another process judges after a few reads."""

    def __init__(self, pending_reads):
        self.pending_reads = pending_reads
        self.reads = 0

    def __call__(self):
        return self

    def get(self, model, submission_id):
        self.reads += 1
        verdict = "pending" if self.reads <= self.pending_reads else "accepted"
        return SimpleNamespace(to_dict=lambda: {"id": submission_id, "verdict": verdict})

    def close(self):
        pass


def test_websocket_polls_for_verdicts_from_external_worker(client, monkeypatch):
    monkeypatch.setattr(settings, "WORKER_POLL_INTERVAL_SECONDS", 0.01)
    sessions = ExternalWorkerSessions(pending_reads=2)
    app.state.session_factory = sessions

    with client.websocket_connect("/api/v1/submissions/ws/7") as websocket:
        assert websocket.receive_json() == {"id": 7, "verdict": "accepted"}
    assert sessions.reads == 3
