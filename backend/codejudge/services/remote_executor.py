"""Client for a Judge0-compatible batch execution service."""

from __future__ import annotations

import base64
import logging
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

import httpx

from codejudge.config import settings
from codejudge.core.exceptions import RemoteExecutionError

logger = logging.getLogger(__name__)

# 1: In Queue, 2: Processing
PENDING_STATUS_MAX = 2


def _b64encode(text: str) -> str:
    return base64.b64encode((text or "").encode("utf-8")).decode("ascii")


@dataclass(frozen=True)
class BatchSubmission:
    language_id: int
    source_code: str
    stdin: str = ""

    def to_payload(self) -> Dict[str, Any]:
        return {
            "language_id": self.language_id,
            "source_code": _b64encode(self.source_code),
            "stdin": _b64encode(self.stdin),
        }


class Judge0Client:
    def __init__(
        self,
        base_url: str = "http://localhost:2358",
        api_key: str = "",
        timeout: float = 10.0,
        poll_interval: float = 1.0,
        max_poll_retries: int = 10,
        language_map: Optional[Dict[str, int]] = None,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self.poll_interval = poll_interval
        self.max_poll_retries = max_poll_retries
        self.language_map = {k.lower(): v for k, v in (language_map or {}).items()}
        self._transport = transport
        self._sleep = sleep

    @classmethod
    def from_settings(cls, cfg=settings) -> "Judge0Client":
        return cls(
            base_url=cfg.JUDGE0_API_URL,
            api_key=cfg.JUDGE0_API_KEY,
            timeout=cfg.JUDGE0_TIMEOUT_SECONDS,
            poll_interval=cfg.JUDGE0_POLL_INTERVAL_SECONDS,
            max_poll_retries=cfg.JUDGE0_MAX_POLL_RETRIES,
            language_map=cfg.JUDGE0_LANGUAGE_MAP,
        )

    def _client(self) -> httpx.Client:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["X-Auth-Token"] = self.api_key
        return httpx.Client(
            base_url=self.base_url,
            headers=headers,
            timeout=self.timeout,
            transport=self._transport,
        )

    def get_language_id(self, language: str) -> Optional[int]:
        return self.language_map.get((language or "").lower())

    def execute_batch(self, submissions: List[BatchSubmission]) -> List[Dict[str, Any]]:
        """Submit a batch and poll until every result is final.

        Results come back in submission order.
        """
        payload = {"submissions": [s.to_payload() for s in submissions]}
        try:
            with self._client() as client:
                response = client.post("/submissions/batch", params={"base64_encoded": "true"}, json=payload)
                response.raise_for_status()
                tokens = [item["token"] for item in response.json()]
                logger.info(f"Judge0 batch accepted with {len(tokens)} tokens")
                return self._poll_batch_results(client, tokens)
        except (httpx.HTTPError, KeyError, TypeError, ValueError) as exc:
            logger.error(f"Judge0 batch execution failed: {exc}")
            raise RemoteExecutionError("Batch execution failed") from exc

    def _poll_batch_results(self, client: httpx.Client, tokens: List[str]) -> List[Dict[str, Any]]:
        for attempt in range(self.max_poll_retries):
            response = client.get(
                "/submissions/batch",
                params={"tokens": ",".join(tokens), "base64_encoded": "true"},
            )
            response.raise_for_status()
            results = response.json()["submissions"]
            if all((r.get("status") or {}).get("id", 0) > PENDING_STATUS_MAX for r in results):
                return results
            logger.debug(f"Judge0 batch still running (attempt {attempt + 1}/{self.max_poll_retries})")
            self._sleep(self.poll_interval)
        raise RemoteExecutionError("Batch execution timeout")
