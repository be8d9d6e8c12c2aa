"""Async HTTP transport for the Notion API.

Every request goes through the same lifecycle:

1. Take a token from the rate-limit bucket (await if the bucket is empty).
2. Send the request with auth and version headers.
3. ``2xx``: return the parsed JSON body.
4. ``429`` / ``5xx`` / network error: back off and re-send, honouring
   ``Retry-After``.
5. Any other ``4xx``: raise the matching typed error at once.
6. Attempts used up: raise :class:`NotionsyncRetryExhaustedError` (or
   :class:`NotionsyncNetworkError` when the last failure was a network
   error).
"""

from __future__ import annotations

import asyncio
import json
import sys
import time
from collections.abc import AsyncIterator
from typing import Any

import httpx

from notionsync.config import SyncConfig
from notionsync.errors import (
    NotionsyncAuthError,
    NotionsyncConflictError,
    NotionsyncError,
    NotionsyncNetworkError,
    NotionsyncNotFoundError,
    NotionsyncPermissionError,
    NotionsyncRateLimitError,
    NotionsyncRetryExhaustedError,
    NotionsyncValidationError,
)
from notionsync.observability import NoopMetricsHook, get_logger
from notionsync.utils.redact import redact

from .rate_limit import AsyncTokenBucket
from .retries import RETRYABLE_STATUSES, RetryPolicy, parse_retry_after

log = get_logger("notionsync.transport")

PAGE_SIZE = 100

# Non-retryable statuses with a dedicated error type.
_STATUS_ERRORS: dict[int, tuple[type[NotionsyncError], str]] = {
    400: (NotionsyncValidationError, "Validation error"),
    401: (NotionsyncAuthError, "Authentication failed"),
    403: (NotionsyncPermissionError, "Permission denied"),
    404: (NotionsyncNotFoundError, "Resource not found"),
    409: (NotionsyncConflictError, "Conflict"),
}


def error_for_response(response: httpx.Response, method: str, path: str) -> NotionsyncError:
    """Build the typed error for a non-retryable error response."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    notion_message = body.get("message") or response.text[:500]
    notion_code = body.get("code", "")
    context: dict[str, Any] = {
        "status_code": status,
        "notion_code": notion_code,
        "path": path,
        "operation": f"{method} {path}",
    }

    if status == 429:
        return NotionsyncRateLimitError(
            message=f"Rate limited on {method} {path}: {notion_message}",
            context={**context, "retry_after": parse_retry_after(response)},
        )
    error_cls, label = _STATUS_ERRORS.get(status, (NotionsyncValidationError, f"Client error {status}"))
    if error_cls is NotionsyncValidationError:
        context["body"] = body
    return error_cls(message=f"{label} on {method} {path}: {notion_message}", context=context)


class AsyncNotionTransport:
    """Authenticated, paced, retrying HTTP client for the Notion API.

    Parameters
    ----------
    config:
        Client configuration.
    client:
        Optional pre-built ``httpx.AsyncClient`` (tests pass one with a
        ``MockTransport``).  The transport closes it in :meth:`close`.
    """

    def __init__(self, config: SyncConfig, client: httpx.AsyncClient | None = None) -> None:
        self._config = config
        self._policy = RetryPolicy.from_config(config)
        self._bucket = AsyncTokenBucket(rate_rps=config.rate_limit_rps, burst=10)
        self._metrics = config.metrics if config.metrics is not None else NoopMetricsHook()
        headers = {
            "Authorization": f"Bearer {config.token}",
            "Notion-Version": config.notion_version,
            "Content-Type": "application/json",
        }
        if client is None:
            client = httpx.AsyncClient(
                base_url=config.base_url,
                headers=headers,
                timeout=httpx.Timeout(config.timeout_seconds),
                proxy=config.http_proxy,
            )
        else:
            client.headers.update(headers)
        self._client = client

    @property
    def policy(self) -> RetryPolicy:
        return self._policy

    # -- request lifecycle --------------------------------------------------

    async def request(self, method: str, path: str, **kwargs: Any) -> dict[str, Any]:
        """Send a request and return the parsed JSON body.

        Parameters
        ----------
        method:
            HTTP method.
        path:
            Path relative to ``base_url`` (e.g. ``/blocks/{id}``).
        **kwargs:
            Forwarded to :meth:`httpx.AsyncClient.request` (``json=``,
            ``params=``...).

        Raises
        ------
        NotionsyncValidationError
            On 400 and other non-retryable 4xx responses.
        NotionsyncAuthError
            On 401.
        NotionsyncPermissionError
            On 403.
        NotionsyncNotFoundError
            On 404.
        NotionsyncConflictError
            On 409.
        NotionsyncRetryExhaustedError
            When every attempt got a retryable status.
        NotionsyncNetworkError
            When the last attempt failed at the network level.
        """
        tags = {"method": method, "path": path}
        last_status: int | None = None
        last_response: httpx.Response | None = None

        for attempt in range(self._policy.max_attempts):
            waited = await self._bucket.acquire()
            if waited > 0:
                self._metrics.timing("notionsync.rate_limit_wait_ms", waited * 1000, tags=tags)

            t0 = time.monotonic()
            try:
                response = await self._client.request(method, path, **kwargs)
            except (httpx.TimeoutException, httpx.NetworkError) as exc:
                await self._after_network_error(method, path, exc, attempt)
                continue
            elapsed_ms = (time.monotonic() - t0) * 1000

            status_tags = {**tags, "status": str(response.status_code)}
            self._metrics.increment("notionsync.requests_total", tags=status_tags)
            self._metrics.timing("notionsync.request_duration_ms", elapsed_ms, tags=status_tags)
            if self._config.debug_dump_payload:
                self._dump(method, response, kwargs.get("json"))

            if response.is_success:
                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()

            if response.status_code not in RETRYABLE_STATUSES:
                raise error_for_response(response, method, path)

            last_status = response.status_code
            last_response = response
            if not self._policy.should_retry(attempt, status_code=response.status_code):
                break
            await self._sleep_before_retry(method, path, response, attempt)

        raise NotionsyncRetryExhaustedError(
            message=(
                f"All {self._policy.max_attempts} attempts exhausted for {method} {path} "
                f"(last status: {last_status})"
            ),
            context={
                "attempts": self._policy.max_attempts,
                "last_status_code": last_status,
                "retry_after": parse_retry_after(last_response) if last_response is not None else None,
            },
        )

    async def _after_network_error(
        self, method: str, path: str, exc: Exception, attempt: int,
    ) -> None:
        self._metrics.increment(
            "notionsync.requests_total",
            tags={"method": method, "path": path, "status": "error"},
        )
        log.warning(
            "Request network error",
            extra={
                "extra_fields": {
                    "op": "request",
                    "method": method,
                    "path": path,
                    "attempt": attempt + 1,
                    "error": str(exc),
                }
            },
        )
        if not self._policy.should_retry(attempt, exception=exc):
            raise NotionsyncNetworkError(
                message=f"Network error on {method} {path}: {exc}",
                context={"path": path, "attempt": attempt + 1},
                cause=exc,
            ) from exc
        self._metrics.increment(
            "notionsync.retries_total",
            tags={"method": method, "path": path, "reason": "network_error"},
        )
        await asyncio.sleep(self._policy.delay(attempt))

    async def _sleep_before_retry(
        self, method: str, path: str, response: httpx.Response, attempt: int,
    ) -> None:
        retry_after: float | None = None
        reason = "server_error"
        if response.status_code == 429:
            reason = "rate_limited"
            retry_after = parse_retry_after(response)
            self._metrics.increment(
                "notionsync.rate_limited_total", tags={"method": method, "path": path},
            )
            log.warning(
                "Rate limited by Notion API",
                extra={
                    "extra_fields": {
                        "op": "request",
                        "method": method,
                        "path": path,
                        "status_code": 429,
                        "retry_after": retry_after,
                        "attempt": attempt + 1,
                    }
                },
            )
        self._metrics.increment(
            "notionsync.retries_total",
            tags={"method": method, "path": path, "reason": reason},
        )
        await asyncio.sleep(self._policy.delay(attempt, retry_after))

    def _dump(self, method: str, response: httpx.Response, payload: Any) -> None:
        """Write a redacted request/response dump to stderr."""
        try:
            body: Any = response.json()
        except ValueError:
            body = response.text[:1000]
        dump: dict[str, Any] = {
            "method": method,
            "url": str(response.url),
            "response_status": response.status_code,
            "response_body": body,
        }
        if payload is not None:
            dump["request_body"] = payload
        print(json.dumps(redact(dump, self._config.token), indent=2, default=str), file=sys.stderr)

    # -- pagination ---------------------------------------------------------

    async def paginate(self, path: str, *, method: str = "GET", **kwargs: Any) -> AsyncIterator[dict]:
        """Yield every ``results`` item of a cursor-paginated endpoint.

        ``GET`` endpoints get ``start_cursor``/``page_size`` as query
        parameters; ``POST`` endpoints (search) get them in the JSON body.
        """
        cursor: str | None = None
        in_body = method.upper() in ("POST", "PATCH")
        while True:
            key = "json" if in_body else "params"
            paging: dict[str, Any] = dict(kwargs.get(key) or {})
            paging["page_size"] = PAGE_SIZE
            if cursor is not None:
                paging["start_cursor"] = cursor
            data = await self.request(method, path, **{**kwargs, key: paging})
            for item in data.get("results", []):
                yield item
            cursor = data.get("next_cursor")
            if not data.get("has_more", False) or cursor is None:
                break

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AsyncNotionTransport:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()
