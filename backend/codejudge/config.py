"""Application configuration management"""

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated, Any, Dict, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode

# Base directory: backend/
_BASE_DIR = Path(__file__).resolve().parent.parent


def _default_forbidden_keywords() -> List[str]:
    return [
        # process control
        "system", "exec", "popen", "fork", "kill", "signal", "mmap",
        "shmget", "shmat", "shmdt", "shmctl",
        # networking
        "socket", "bind", "listen", "accept", "connect", "network",
        "http", "curl", "wget", "ftp", "ssh",
        # filesystem
        "fopen", "freopen", "fdopen", "fstream", "creat", "unlink", "remove", "rename", "chmod",
        "chown", "mkdir", "rmdir", "symlink", "mount", "umount", "reboot",
        "shutdown", "halt",
        # databases
        "database", "mysql", "postgresql", "sqlite",
        # concurrency
        "process", "thread", "pipe", "semaphore", "mutex",
        "condition_variable", "atomic", "memory_order",
        # misc
        "volatile", "register", "asm",
    ]


def _default_forbidden_patterns() -> List[str]:
    return [
        r"system\s*\(",
        r"exec\w*\s*\(",
        r"popen\s*\(",
        r"fork\s*\(",
        r"socket\s*\(",
        r"[gs]etuid\s*\(",
        r"\bopen(?:at)?\s*\(",
        r"(?:#|%:)\s*include\s*<\s*windows\.h\s*>",
        r"(?:#|%:)\s*include\s*<\s*unistd\.h\s*>",
        r"(?:#|%:)\s*include\s*<\s*sys/",
        r"(?:#|%:)\s*include\s*<\s*netinet/",
        r"(?:#|%:)\s*include\s*<\s*arpa/",
        r"(?:#|%:)\s*include\s*\"",
        # preprocessor tricks that assemble denied names: token pasting,
        # digraphs, trigraphs and line splicing
        r"##",
        r"%:",
        r"<:",
        r":>",
        r"\?\?=",
        r"\\\s*\n",
        r"__asm__",
    ]


def _default_allowed_libraries() -> List[str]:
    return [
        "iostream", "vector", "string", "algorithm", "cmath", "chrono",
        "queue", "stack", "map", "set", "unordered_map", "unordered_set",
        "bits/stdc++.h", "climits", "cfloat", "sstream", "iomanip",
        "functional", "numeric", "deque", "list", "utility", "tuple",
        "limits", "cstdlib", "cstring", "stdexcept", "bitset", "array",
    ]


class Settings(BaseSettings):
    """Application settings with environment variable support"""

    # Application
    APP_NAME: str = "Code Judge Engine"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    ENVIRONMENT: str = "development"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8000
    WORKERS: int = 1

    # Database
    DATABASE_URL: str = ""
    DATABASE_POOL_SIZE: int = 10
    DATABASE_MAX_OVERFLOW: int = 20

    # Rate Limiting
    HIGH_COST_RATE_LIMIT_PER_MINUTE: int = 30
    HIGH_COST_RATE_LIMIT_PER_HOUR: int = 300

    # Size limits
    MAX_CODE_SIZE: int = 10000
    MAX_OUTPUT_SIZE: int = 1024 * 1024
    MAX_TEST_CASES: int = 50
    MAX_INPUT_SIZE: int = 1000

    # Time limits (milliseconds)
    MAX_COMPILATION_TIME: int = 5000
    MAX_EXECUTION_TIME: int = 10000
    MAX_TOTAL_TIME: int = 15000

    # Memory limits
    MAX_MEMORY_USAGE_MB: int = 100
    MAX_STACK_SIZE_MB: int = 8

    # Sandbox
    SANDBOX_IMAGE: str = "code-executor"
    SANDBOX_USER: str = "coderunner"
    SANDBOX_CPUS: float = 2.0
    SANDBOX_PIDS_LIMIT: int = 50
    SANDBOX_COMPILER_FLAGS: List[str] = Field(default_factory=lambda: ["-std=c++17", "-O2"])
    TEMP_DIR: str = ""

    # Security policy
    SUPPORTED_LANGUAGES: List[str] = Field(default_factory=lambda: ["cpp"])
    FORBIDDEN_KEYWORDS: Annotated[List[str], NoDecode] = Field(default_factory=_default_forbidden_keywords)
    FORBIDDEN_PATTERNS: Annotated[List[str], NoDecode] = Field(default_factory=_default_forbidden_patterns)
    ALLOWED_LIBRARIES: Annotated[List[str], NoDecode] = Field(default_factory=_default_allowed_libraries)

    # Marshaling
    TREE_OUTPUT_ORDER: str = "level"  # level | preorder

    # Synchronous task queue
    MAX_CONCURRENT_EXECUTIONS: int = 3
    MAX_QUEUE_SIZE: int = 50
    QUEUE_TASK_MAX_AGE_SECONDS: float = 30.0
    QUEUE_SWEEP_INTERVAL_SECONDS: float = 10.0
    QUEUE_SHUTDOWN_TIMEOUT_SECONDS: float = 10.0

    # Submission pipeline
    RUN_EMBEDDED_WORKER: bool = True
    SUBMISSION_PLACEHOLDER: str = "{USER_CODE}"
    SUBMISSION_QUEUE_MAX_SIZE: int = 500
    WORKER_POLL_INTERVAL_SECONDS: float = 2.0
    WORKER_HEARTBEAT_SECONDS: float = 5.0

    # Remote batch execution service (Judge0 compatible)
    JUDGE0_API_URL: str = "http://localhost:2358"
    JUDGE0_API_KEY: str = ""
    JUDGE0_TIMEOUT_SECONDS: float = 10.0
    JUDGE0_POLL_INTERVAL_SECONDS: float = 1.0
    JUDGE0_MAX_POLL_RETRIES: int = 10
    JUDGE0_LANGUAGE_MAP: Dict[str, int] = Field(
        default_factory=lambda: {"javascript": 63, "python": 71, "java": 62, "cpp": 54}
    )

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = ""

    # CORS
    CORS_ORIGINS: Annotated[List[str], NoDecode] = ["http://localhost:3000"]

    # Database initialization discipline
    DB_INIT_MODE: str = "create_all"  # migrate | create_all | off
    DB_REQUIRE_HEAD: bool = True

    class Config:
        env_file = ".env"
        case_sensitive = True

    @field_validator(
        "CORS_ORIGINS", "FORBIDDEN_KEYWORDS", "FORBIDDEN_PATTERNS", "ALLOWED_LIBRARIES",
        mode="before",
    )
    @classmethod
    def _parse_list(cls, value: Any) -> Any:
        """
        Accept JSON array or comma-separated values from env.

        Examples:
            CORS_ORIGINS=["http://localhost:3000","http://example.com"]
            FORBIDDEN_KEYWORDS=system,fork,socket
        """
        if not isinstance(value, str):
            return value

        raw = value.strip()
        if not raw:
            return []

        try:
            parsed = json.loads(raw)
        except json.JSONDecodeError:
            parsed = None

        if isinstance(parsed, str):
            return [parsed]
        if isinstance(parsed, list):
            return [str(item).strip() for item in parsed if str(item).strip()]

        return [item.strip() for item in raw.split(",") if item.strip()]

    @field_validator("TREE_OUTPUT_ORDER")
    @classmethod
    def _check_tree_order(cls, value: str) -> str:
        value = value.strip().lower()
        if value not in {"level", "preorder"}:
            raise ValueError("TREE_OUTPUT_ORDER must be 'level' or 'preorder'")
        return value

    def _resolve_path(self, value: str, default: str) -> str:
        """Resolve path - use absolute if empty or relative"""
        if not value or value.startswith(".."):
            return str(_BASE_DIR.parent / default)
        return value

    def get_temp_dir(self) -> str:
        return self._resolve_path(self.TEMP_DIR, "temp")

    def get_log_file(self) -> str:
        p = self.LOG_FILE
        if not p or p.startswith(".."):
            return str(_BASE_DIR.parent / "logs" / "app.log")
        return p

    def get_database_url(self) -> str:
        """Resolve database URL, defaulting to a local SQLite file."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"sqlite:///{_BASE_DIR.parent / 'codejudge.db'}"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


settings = get_settings()
