"""Async client for the blogboard flow endpoints.

``FlowClient.stream()`` posts ``{"data": input}`` with
``Accept: text/event-stream`` and yields ``(event_type, payload)`` tuples
decoded from the server-sent events:

* ``("chunk",  value)`` — one partial value per ``data: {"message": ...}``
* ``("result", value)`` — the final value from ``data: {"result": ...}``

An in-stream ``{"error": ...}`` event or an HTTP error status raises
``FlowError``. Transport failures surface as the underlying ``httpx``
exception.
"""

from __future__ import annotations

import json
import logging
from collections.abc import AsyncIterator
from typing import TYPE_CHECKING, Any, Optional

import httpx

if TYPE_CHECKING:
    from config.settings import Settings

logger = logging.getLogger(__name__)

SUBTOPICS_PATH = "blog/subtopics"
POST_SUMMARIES_PATH = "blog/post-summaries"
POST_PATH = "blog/post"
ANALYZE_PATH = "blog/analyze-blog-post"
STRUCTURED_OUTPUT_PATH = "blog/structured-output"


class FlowError(Exception):
    """A flow call failed on the server side."""

    def __init__(self, message: str, status: Optional[int] = None) -> None:
        super().__init__(message)
        self.message = message
        self.status = status


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict):
            return str(error.get("message", error))
        if error:
            return str(error)
    return f"HTTP {response.status_code}"


class FlowClient:
    """Thin wrapper around ``httpx.AsyncClient`` bound to the API base URL.

    Use as an async context manager, or pass an existing ``httpx.AsyncClient``
    (tests inject one built on ``httpx.MockTransport``).
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 120.0,
        http: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self._http = http or httpx.AsyncClient(base_url=self.base_url, timeout=timeout)

    @classmethod
    def from_settings(cls, settings: Settings) -> FlowClient:
        return cls(settings.api_url, timeout=settings.request_timeout)

    async def __aenter__(self) -> FlowClient:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    # ── Streaming ──────────────────────────────────────────────────────────

    async def stream(
        self, path: str, flow_input: dict[str, Any]
    ) -> AsyncIterator[tuple[str, Any]]:
        """Stream a flow; see the module docstring for the event shapes.

        Raises:
            FlowError: On an HTTP error status or an in-stream error event,
                or when the stream ends without a final result.
            httpx.HTTPError: On transport failures.
        """
        async with self._http.stream(
            "POST",
            path,
            json={"data": flow_input},
            headers={"Accept": "text/event-stream"},
        ) as response:
            if response.status_code >= 400:
                await response.aread()
                raise FlowError(_error_message(response), response.status_code)

            finished = False
            async for line in response.aiter_lines():
                if not line.startswith("data:"):
                    continue
                event = json.loads(line[len("data:"):].strip())

                if "message" in event:
                    yield ("chunk", event["message"])
                elif "result" in event:
                    finished = True
                    yield ("result", event["result"])
                elif "error" in event:
                    error = event["error"]
                    message = error.get("message") if isinstance(error, dict) else error
                    raise FlowError(str(message or "Flow failed"))

        if not finished:
            raise FlowError("Stream ended without a result")

    # ── One-shot ───────────────────────────────────────────────────────────

    async def run(self, path: str, flow_input: dict[str, Any]) -> Any:
        """Call a flow without streaming and return its final value."""
        response = await self._http.post(path, json={"data": flow_input})
        if response.status_code >= 400:
            raise FlowError(_error_message(response), response.status_code)
        return response.json()["result"]

    async def structured_output(
        self, topic: str, audience: Optional[str] = None
    ) -> dict[str, Any]:
        """Legacy single post outline; returns the ``data`` BlogPost dict."""
        body: dict[str, Any] = {"topic": topic}
        if audience:
            body["audience"] = audience
        response = await self._http.post(STRUCTURED_OUTPUT_PATH, json=body)
        if response.status_code >= 400:
            raise FlowError(_error_message(response), response.status_code)
        payload = response.json()
        if not payload.get("success"):
            raise FlowError("Structured output request was not successful")
        return payload["data"]
