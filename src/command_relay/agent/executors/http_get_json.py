"""HTTP_GET_JSON executor: fetch a URL and report a bounded body."""

from __future__ import annotations

import json
import logging
import math
from typing import Any

import httpx

from command_relay.coordinator.models import CommandView
from command_relay.errors import ExecutionError

logger = logging.getLogger(__name__)

MAX_BODY_BYTES = 100 * 1024
DEFAULT_TIMEOUT_SECONDS = 30.0
DEFAULT_USER_AGENT = "command-relay-agent/1.0"


class HttpGetJsonExecutor:
    """Fetches ``payload.url``; transport failures are reported, not raised."""

    def __init__(
        self,
        *,
        timeout_seconds: float = DEFAULT_TIMEOUT_SECONDS,
        max_body_bytes: int = MAX_BODY_BYTES,
        client: httpx.Client | None = None,
    ) -> None:
        self._max_body_bytes = max_body_bytes
        self._owns_client = client is None
        self._client = client or httpx.Client(
            timeout=httpx.Timeout(timeout_seconds, connect=10.0),
            headers={"User-Agent": DEFAULT_USER_AGENT},
            follow_redirects=True,
        )

    def execute(self, command: CommandView) -> dict[str, Any]:
        url = command.payload.get("url")
        if not isinstance(url, str):
            raise ExecutionError(f"HTTP_GET_JSON payload requires url string, got {url!r}")

        try:
            response = self._client.get(url)
        except httpx.HTTPError as exc:
            logger.warning("HTTP error fetching %s: %s", url, exc)
            return {
                "status": 0,
                "body": None,
                "truncated": False,
                "bytesReturned": 0,
                "error": str(exc) or type(exc).__name__,
            }

        content = response.content
        bytes_returned = len(content)
        truncated = bytes_returned > self._max_body_bytes
        encoding = response.encoding or "utf-8"
        # A multi-byte character split at the cut is dropped.
        body_text = content[: self._max_body_bytes].decode(encoding, errors="ignore")
        return {
            "status": response.status_code,
            "body": _parse_body(body_text),
            "truncated": truncated,
            "bytesReturned": bytes_returned,
            "error": None,
        }

    def close(self) -> None:
        if self._owns_client:
            self._client.close()

    def __enter__(self) -> HttpGetJsonExecutor:
        return self

    def __exit__(self, *_: object) -> None:
        self.close()


def _parse_body(text: str) -> Any:
    """Strict JSON parse; anything else, NaN and infinities included, stays text."""

    try:
        return json.loads(text, parse_constant=_reject_constant, parse_float=_finite_float)
    except ValueError:
        return text


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-finite JSON constant: {name}")


def _finite_float(raw: str) -> float:
    value = float(raw)
    if not math.isfinite(value):
        raise ValueError(f"JSON number out of range: {raw}")
    return value
