"""Sandboxed compile-and-run of a generated harness inside a docker container."""

from __future__ import annotations

import logging
import os
import secrets
import shlex
import shutil
import tempfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, List, Optional, Tuple

import docker
import requests
from docker.errors import APIError, DockerException, ImageNotFound

from codejudge.config import settings
from codejudge.core.exceptions import InfrastructureError

logger = logging.getLogger(__name__)

SOURCE_NAME = "code.cpp"
WORKSPACE_MOUNT = "/workspace"
RUN_DIR = "/tmp/run"

COMPILE_FAILED_EXIT_CODE = 98
TIMEOUT_EXIT_CODE = 124


@dataclass(frozen=True)
class ExecutionResult:
    exit_code: int
    stdout: str
    stderr: str
    timed_out: bool
    duration_ms: int = 0
    compile_failed: bool = False

    @property
    def compile_output(self) -> str:
        return self.stdout.strip() if self.compile_failed else ""


def _read_output(raw: Any, limit: int) -> str:
    if raw is None:
        return ""
    if isinstance(raw, tuple):
        raw = b"".join(part for part in raw if part)
    if isinstance(raw, bytes):
        # One extra byte keeps an oversize output detectable downstream.
        return raw[: limit + 1].decode("utf-8", errors="replace")
    return str(raw)


def _split_run_output(stdout: str, run_marker: str, exit_code: int) -> Tuple[bool, str]:
    """Return (compile_failed, output) for the raw container stdout."""
    before, found, program_output = stdout.partition(run_marker + "\n")
    if found:
        return False, program_output
    return exit_code == COMPILE_FAILED_EXIT_CODE, before


def _seconds(milliseconds: int) -> str:
    return f"{milliseconds / 1000:g}s"


class SandboxExecutor:
    """Compiles and runs one source file per container.

    The workspace is bind-mounted read-only; compilation happens on a tmpfs
    inside the container, whose root filesystem is read-only.
    """

    def __init__(
        self,
        client: Any = None,
        client_factory: Callable[[], Any] = docker.from_env,
        image: str = "code-executor",
        user: str = "coderunner",
        compiler_flags: Optional[List[str]] = None,
        compile_time_ms: int = 5000,
        execution_time_ms: int = 10000,
        total_time_ms: int = 15000,
        memory_mb: int = 100,
        stack_mb: int = 8,
        cpus: float = 2.0,
        pids_limit: int = 50,
        max_output_size: int = 1024 * 1024,
        temp_dir: Optional[str] = None,
    ):
        self._client = client
        self._client_factory = client_factory
        self.image = image
        self.user = user
        self.compiler_flags = list(compiler_flags or ["-std=c++17", "-O2"])
        self.compile_time_ms = compile_time_ms
        self.execution_time_ms = execution_time_ms
        self.total_time_ms = total_time_ms
        self.memory_mb = memory_mb
        self.stack_mb = stack_mb
        self.cpus = cpus
        self.pids_limit = pids_limit
        self.max_output_size = max_output_size
        self.temp_dir = Path(temp_dir or tempfile.gettempdir())

    @classmethod
    def from_settings(cls, cfg=settings, client: Any = None) -> "SandboxExecutor":
        return cls(
            client=client,
            image=cfg.SANDBOX_IMAGE,
            user=cfg.SANDBOX_USER,
            compiler_flags=cfg.SANDBOX_COMPILER_FLAGS,
            compile_time_ms=cfg.MAX_COMPILATION_TIME,
            execution_time_ms=cfg.MAX_EXECUTION_TIME,
            total_time_ms=cfg.MAX_TOTAL_TIME,
            memory_mb=cfg.MAX_MEMORY_USAGE_MB,
            stack_mb=cfg.MAX_STACK_SIZE_MB,
            cpus=cfg.SANDBOX_CPUS,
            pids_limit=cfg.SANDBOX_PIDS_LIMIT,
            max_output_size=cfg.MAX_OUTPUT_SIZE,
            temp_dir=cfg.get_temp_dir(),
        )

    def _get_client(self) -> Any:
        if self._client is None:
            try:
                self._client = self._client_factory()
            except DockerException as exc:
                logger.exception("Docker daemon unavailable")
                raise InfrastructureError("Execution environment unavailable") from exc
        return self._client

    def build_script(self, run_marker: str) -> str:
        """Shell run inside the container.

        ``run_marker`` is printed once compilation succeeded, so a program
        exiting with the compile failure code is not mistaken for one.
        Compiler and program output is cut at ``max_output_size`` inside the
        container.
        """
        flags = " ".join(shlex.quote(flag) for flag in self.compiler_flags)
        cap = self.max_output_size + 1
        return "\n".join([
            f"cp {WORKSPACE_MOUNT}/{SOURCE_NAME} {RUN_DIR}/{SOURCE_NAME} || exit 97",
            f"timeout {_seconds(self.compile_time_ms)} g++ {flags} -o {RUN_DIR}/program {RUN_DIR}/{SOURCE_NAME} "
            f">{RUN_DIR}/compile.log 2>&1",
            "status=$?",
            "if [ $status -ne 0 ]; then",
            f"  if [ $status -eq {TIMEOUT_EXIT_CODE} ]; then echo 'Compilation timed out'; fi",
            f"  head -c {cap} {RUN_DIR}/compile.log",
            f"  exit {COMPILE_FAILED_EXIT_CODE}",
            "fi",
            f"ulimit -s {self.stack_mb * 1024}",
            f"echo '{run_marker}'",
            f"{{ timeout {_seconds(self.execution_time_ms)} {RUN_DIR}/program 2>{RUN_DIR}/stderr; "
            f"echo $? > {RUN_DIR}/status; }} | head -c {cap}",
            f"head -c {cap} {RUN_DIR}/stderr >&2",
            f"exit $(cat {RUN_DIR}/status 2>/dev/null || echo 1)",
        ])

    def execute(self, source: str) -> ExecutionResult:
        """Compile and run ``source``.

        Program failures are reported in the result; only infrastructure
        problems raise InfrastructureError.
        """
        try:
            self.temp_dir.mkdir(parents=True, exist_ok=True)
            workdir = tempfile.mkdtemp(prefix="judge_", dir=str(self.temp_dir))
        except OSError as exc:
            logger.exception("Could not create sandbox workspace")
            raise InfrastructureError("Could not create execution workspace") from exc

        container = None
        run_marker = f"__RUN_{secrets.token_hex(8)}__"
        started = time.monotonic()
        try:
            source_path = Path(workdir) / SOURCE_NAME
            source_path.write_text(source, encoding="utf-8")
            os.chmod(workdir, 0o755)
            os.chmod(source_path, 0o644)

            client = self._get_client()
            memory = f"{self.memory_mb}m"
            container = client.containers.create(
                self.image,
                command=["/bin/sh", "-c", self.build_script(run_marker)],
                user=self.user,
                working_dir=RUN_DIR,
                environment={"TMPDIR": RUN_DIR},
                volumes={workdir: {"bind": WORKSPACE_MOUNT, "mode": "ro"}},
                network_disabled=True,
                read_only=True,
                tmpfs={RUN_DIR: "rw,exec,size=64m"},
                security_opt=["no-new-privileges"],
                cap_drop=["ALL"],
                mem_limit=memory,
                memswap_limit=memory,
                pids_limit=self.pids_limit,
                nano_cpus=int(self.cpus * 1e9),
            )
            container.start()

            timed_out = False
            try:
                status = container.wait(timeout=self.total_time_ms / 1000)
                exit_code = int(status.get("StatusCode", -1))
            except (requests.exceptions.ReadTimeout, requests.exceptions.ConnectionError):
                logger.warning(f"Container exceeded {self.total_time_ms}ms wall clock budget, killing")
                timed_out = True
                exit_code = -1
                try:
                    container.kill()
                except APIError as exc:
                    logger.warning(f"Failed to kill timed out container: {exc}")

            if exit_code == TIMEOUT_EXIT_CODE:
                timed_out = True

            compile_failed, stdout = _split_run_output(
                _read_output(container.logs(stdout=True, stderr=False), self.max_output_size + len(run_marker) + 1),
                run_marker,
                exit_code,
            )
            stderr = _read_output(container.logs(stdout=False, stderr=True), self.max_output_size)
            duration_ms = int((time.monotonic() - started) * 1000)
            logger.info(f"Sandbox run finished: exit_code={exit_code} timed_out={timed_out} duration_ms={duration_ms}")
            return ExecutionResult(
                exit_code=exit_code,
                stdout=stdout,
                stderr=stderr,
                timed_out=timed_out,
                duration_ms=duration_ms,
                compile_failed=compile_failed,
            )

        except ImageNotFound as exc:
            logger.exception(f"Sandbox image {self.image} not found")
            raise InfrastructureError("Execution image unavailable") from exc
        except DockerException as exc:
            logger.exception("Sandbox container failed")
            raise InfrastructureError("Execution environment unavailable") from exc
        except OSError as exc:
            logger.exception("Could not write sandbox workspace")
            raise InfrastructureError("Could not create execution workspace") from exc

        finally:
            if container is not None:
                try:
                    container.remove(force=True)
                except DockerException as exc:
                    logger.warning(f"Failed to remove container: {exc}")
            shutil.rmtree(workdir, ignore_errors=True)
