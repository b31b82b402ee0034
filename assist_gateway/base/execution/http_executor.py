"""HTTP executor built on ``httpx``.

Each ``execute`` performs exactly one exchange:

1. The provider's dialect builds the request.
2. The exchange runs on a worker thread while the calling thread waits for
   completion, the provider deadline, or cancellation, whichever comes first.
3. The body is streamed in chunks; the worker stops reading as soon as the
   caller has given up, and closes the response.
4. Transport errors, statuses and bodies are mapped to a
   :class:`~assist_gateway.base.errors.Classification`.

Cancellation raises :class:`CancelledError` in the caller immediately; the
abandoned worker closes its connection at the next chunk boundary. A
deadline expiry is reported as ``PROVIDER_TIMEOUT``.
"""

from __future__ import annotations

import json
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Optional

import httpx

from ..cancellation import CancellationToken
from ..clock import Clock, SystemClock
from ..errors import (
    CancelledError,
    Classification,
    classify_exception,
    classify_status,
    header_value,
    parse_retry_after,
)
from ..http import get_httpx_client
from ..logging import get_logger, log_event
from ..models import OperationDescriptor, Provider
from ..timeouts import httpx_timeout
from .dialects import DialectRegistry, WireDialect, default_dialects
from .outcome import ExecutionOutcome

DEFAULT_MAX_BODY_BYTES = 5 * 1024 * 1024
_DETAIL_LIMIT = 200


class _Abandoned(Exception):
    """Raised inside the worker once the caller stopped waiting."""


def _scrub(text: str, provider: Provider) -> str:
    if provider.credential:
        text = text.replace(provider.credential, "***")
    return text[:_DETAIL_LIMIT]


def _error_message(body: Any) -> Optional[str]:
    """Best-effort extraction of an upstream error message from a JSON body."""
    if not isinstance(body, dict):
        return None
    error = body.get("error")
    if isinstance(error, dict):
        return str(error.get("message") or error.get("info") or error.get("type") or "") or None
    if isinstance(error, str):
        return error
    for key in ("message", "error-type", "detail"):
        if body.get(key):
            return str(body[key])
    return None


class HttpExecutor:
    """Executor performing real HTTP exchanges.

    Parameters
    ----------
    clock:
        Used to turn ``Retry-After`` into an absolute instant.
    client:
        Optional pre-built ``httpx.Client`` (tests inject one backed by
        ``httpx.MockTransport``). Defaults to the shared pool.
    dialects:
        Dialect registry; defaults to every built-in dialect.
    max_workers:
        Upper bound on concurrently running exchanges.
    max_body_bytes:
        Responses larger than this are classified ``MALFORMED_RESPONSE``.
    """

    def __init__(
        self,
        clock: Optional[Clock] = None,
        *,
        client: Optional[httpx.Client] = None,
        dialects: Optional[DialectRegistry] = None,
        max_workers: int = 16,
        max_body_bytes: int = DEFAULT_MAX_BODY_BYTES,
    ) -> None:
        self._clock = clock or SystemClock()
        self._client = client
        self._dialects = dialects or default_dialects()
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="gateway-exec")
        self._max_body_bytes = max_body_bytes
        self._logger = get_logger("assist_gateway.executor")

    @property
    def dialects(self) -> DialectRegistry:
        return self._dialects

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def execute(
        self,
        provider: Provider,
        descriptor: OperationDescriptor,
        *,
        timeout_ms: int,
        token: Optional[CancellationToken] = None,
    ) -> ExecutionOutcome:
        if token is not None:
            token.raise_if_cancelled()
        dialect = self._dialects.get(provider.service, provider.dialect)
        if dialect is None:
            return ExecutionOutcome(
                Classification.PROVIDER_SERVER_ERROR,
                detail=f"no wire dialect '{provider.dialect}' for {provider.service.value}",
            )

        started = time.perf_counter()
        abandoned = threading.Event()
        settled = threading.Event()
        future: Future = self._pool.submit(self._exchange, provider, descriptor, dialect, timeout_ms, abandoned)
        future.add_done_callback(lambda _f: settled.set())
        unregister = token.add_callback(lambda _reason: settled.set()) if token is not None else (lambda: None)
        try:
            finished = settled.wait(timeout_ms / 1000)
        finally:
            unregister()

        if token is not None and token.cancelled and not future.done():
            abandoned.set()
            log_event(self._logger, "executor.cancelled", provider=provider.name, operation=descriptor.name)
            raise CancelledError(token.reason or "request cancelled")
        if not finished or not future.done():
            abandoned.set()
            return ExecutionOutcome(
                Classification.PROVIDER_TIMEOUT,
                detail=f"no complete response within {timeout_ms} ms",
                latency_ms=int((time.perf_counter() - started) * 1000),
            )
        outcome: ExecutionOutcome = future.result()
        if token is not None and token.cancelled:
            raise CancelledError(token.reason or "request cancelled")
        return outcome

    def _exchange(
        self,
        provider: Provider,
        descriptor: OperationDescriptor,
        dialect: WireDialect,
        timeout_ms: int,
        abandoned: threading.Event,
    ) -> ExecutionOutcome:
        started = time.perf_counter()

        def latency() -> int:
            return int((time.perf_counter() - started) * 1000)

        spec = dialect.build_request(provider, descriptor)
        client = self._client or get_httpx_client(None, "execute")
        try:
            request = client.build_request(
                spec.method,
                spec.url,
                params=spec.params or None,
                json=spec.json,
                headers=spec.headers or None,
                timeout=httpx_timeout(timeout_ms),
            )
            response = client.send(request, stream=True)
        except httpx.HTTPError as exc:
            return ExecutionOutcome(
                classify_exception(exc),
                detail=_scrub(f"{type(exc).__name__}: {exc}", provider),
                latency_ms=latency(),
            )

        try:
            raw = self._read_body(response, abandoned)
        except _Abandoned:
            return ExecutionOutcome(Classification.PROVIDER_TIMEOUT, status=response.status_code, latency_ms=latency())
        except httpx.HTTPError as exc:
            return ExecutionOutcome(
                classify_exception(exc),
                status=response.status_code,
                detail=_scrub(f"{type(exc).__name__}: {exc}", provider),
                latency_ms=latency(),
            )
        finally:
            response.close()

        return self._classify(provider, dialect, response, raw, latency())

    def _read_body(self, response: httpx.Response, abandoned: threading.Event) -> Optional[bytes]:
        chunks = []
        size = 0
        for chunk in response.iter_bytes():
            if abandoned.is_set():
                raise _Abandoned()
            size += len(chunk)
            if size > self._max_body_bytes:
                return None
            chunks.append(chunk)
        return b"".join(chunks)

    def _classify(
        self,
        provider: Provider,
        dialect: WireDialect,
        response: httpx.Response,
        raw: Optional[bytes],
        latency_ms: int,
    ) -> ExecutionOutcome:
        status = response.status_code
        body: Any = None
        parse_error: Optional[str] = None
        if raw is None:
            parse_error = f"body larger than {self._max_body_bytes} bytes"
        elif raw:
            try:
                body = json.loads(raw)
            except ValueError as exc:
                parse_error = f"invalid JSON: {exc}"
        else:
            parse_error = "empty body"

        classification = classify_status(status, response.headers)
        if classification is Classification.SUCCESS and parse_error is not None:
            return ExecutionOutcome(
                Classification.MALFORMED_RESPONSE, status=status, detail=parse_error, latency_ms=latency_ms
            )
        classification = dialect.classify(status, body, classification)

        detail = None
        if classification is not Classification.SUCCESS:
            message = _error_message(body)
            detail = _scrub(f"HTTP {status}" + (f": {message}" if message else ""), provider)
        retry_at = None
        if classification is Classification.PROVIDER_RATE_LIMITED:
            retry_at = parse_retry_after(header_value(response.headers, "retry-after"), self._clock.now_ms())
        return ExecutionOutcome(
            classification,
            status=status,
            body=body,
            detail=detail,
            retry_at_ms=retry_at,
            latency_ms=latency_ms,
        )


__all__ = ["HttpExecutor", "DEFAULT_MAX_BODY_BYTES"]
