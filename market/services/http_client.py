from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping

import httpx


@dataclass(frozen=True)
class HttpResult:
    ok: bool
    status_code: int | None
    detail: dict[str, Any]

    error_code: str | None = None
    error_message: str | None = None
    retryable: bool = False


def _cap_text(s: str, *, max_chars: int) -> str:
    if len(s) <= max_chars:
        return s
    return s[:max_chars] + f"...(truncated, {len(s)} chars)"


class JsonHttpClient:
    """
    Thin JSON-over-HTTP wrapper used by outbound integrations (mail API).

    - Does NOT retry; the outbox handles backoff.
    - Transport errors become a retryable HttpResult instead of raising.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float = 10.0,
        max_response_body_chars: int = 2_000,
        default_headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._max_body = max_response_body_chars
        self._default_headers = dict(default_headers or {})
        self._client = httpx.AsyncClient(timeout=httpx.Timeout(timeout_seconds), transport=transport)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def post_json(self, *, url: str, json_body: dict[str, Any], headers: Mapping[str, str] | None = None) -> HttpResult:
        h = dict(self._default_headers)
        if headers:
            h.update(dict(headers))

        try:
            resp = await self._client.post(url, headers=h, json=json_body)
        except httpx.TimeoutException as e:
            return HttpResult(ok=False, status_code=None, detail={"error": "timeout"},
                              error_code="TIMEOUT", error_message=str(e), retryable=True)
        except httpx.RequestError as e:
            # DNS errors, connection refused, TLS, etc.
            return HttpResult(ok=False, status_code=None, detail={"error": "request_error"},
                              error_code="REQUEST_ERROR", error_message=str(e), retryable=True)

        detail = {"raw": _cap_text(resp.text, max_chars=self._max_body)}
        if 200 <= resp.status_code < 300:
            return HttpResult(ok=True, status_code=resp.status_code, detail=detail)

        retryable = resp.status_code in (408, 429, 500, 502, 503, 504)
        return HttpResult(
            ok=False,
            status_code=resp.status_code,
            detail=detail,
            error_code=f"HTTP_{resp.status_code}",
            error_message=f"HTTP {resp.status_code}",
            retryable=retryable,
        )
