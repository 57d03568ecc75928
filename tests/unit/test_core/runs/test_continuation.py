"""Tests for continuation dispatchers.

Covers:
- Delivery headers (process secret, correlation ID) and URL
- Retry policy: 2xx delivered, 3xx/4xx not retried, 5xx and transport errors retried
- Inline vs background dispatch
- Deferred dispatcher bookkeeping
"""

import threading
from typing import List

import httpx
import pytest

from hypoforge.config.orchestration import ContinuationConfig
from hypoforge.core.context import sync_request_context
from hypoforge.core.runs.continuation import (
    PROCESS_SECRET_HEADER,
    REQUEST_ID_HEADER,
    DeferredContinuationDispatcher,
    HttpContinuationDispatcher,
)


# =============================================================================
# Helpers
# =============================================================================


def _dispatcher(handler, *, sleeps=None, background=False, **config):
    config.setdefault("base_url", "https://hypoforge.test/")
    config.setdefault("secret", "s" * 40)
    client = httpx.Client(transport=httpx.MockTransport(handler))
    return HttpContinuationDispatcher(
        ContinuationConfig(**config),
        client=client,
        sleep=(sleeps.append if sleeps is not None else lambda _s: None),
        background=background,
    )


def _responder(*statuses: int):
    """Handler returning ``statuses`` in order and recording requests."""
    remaining = list(statuses)
    requests: List[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return httpx.Response(remaining.pop(0) if len(remaining) > 1 else remaining[0])

    handler.requests = requests
    return handler


# =============================================================================
# Delivery
# =============================================================================


class TestSend:
    def test_success_first_attempt(self):
        handler = _responder(202)
        dispatcher = _dispatcher(handler)

        assert dispatcher.send("run-1") is True
        (request,) = handler.requests
        assert request.method == "POST"
        assert str(request.url) == "https://hypoforge.test/runs/run-1/process"
        assert request.headers[PROCESS_SECRET_HEADER] == "s" * 40

    def test_correlation_id_forwarded(self):
        handler = _responder(200)
        dispatcher = _dispatcher(handler)

        with sync_request_context(correlation_id="req_abc123"):
            dispatcher.send("run-1")

        assert handler.requests[0].headers[REQUEST_ID_HEADER] == "req_abc123"

    @pytest.mark.parametrize("status", [301, 302, 307])
    def test_redirect_not_retried(self, status):
        handler = _responder(status)
        dispatcher = _dispatcher(handler)

        assert dispatcher.send("run-1") is False
        assert len(handler.requests) == 1

    @pytest.mark.parametrize("status", [400, 401, 404])
    def test_client_error_not_retried(self, status):
        handler = _responder(status)
        dispatcher = _dispatcher(handler)

        assert dispatcher.send("run-1") is False
        assert len(handler.requests) == 1

    def test_server_error_retried_with_linear_backoff(self):
        handler = _responder(503, 502, 200)
        sleeps: List[float] = []
        dispatcher = _dispatcher(handler, sleeps=sleeps, backoff_seconds=1.0)

        assert dispatcher.send("run-1") is True
        assert len(handler.requests) == 3
        assert sleeps == [1.0, 2.0]

    def test_gives_up_after_max_attempts(self):
        handler = _responder(500)
        sleeps: List[float] = []
        dispatcher = _dispatcher(handler, sleeps=sleeps, max_attempts=2)

        assert dispatcher.send("run-1") is False
        assert len(handler.requests) == 2
        assert sleeps == [1.0]

    def test_transport_error_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200)

        dispatcher = _dispatcher(handler)

        assert dispatcher.send("run-1") is True
        assert len(calls) == 2


# =============================================================================
# Dispatch modes
# =============================================================================


class TestDispatch:
    def test_inline_dispatch_delivers_before_returning(self):
        handler = _responder(200)
        dispatcher = _dispatcher(handler, background=False)

        dispatcher.dispatch("run-1")

        assert len(handler.requests) == 1

    def test_background_dispatch(self):
        delivered = threading.Event()

        def handler(request):
            delivered.set()
            return httpx.Response(200)

        dispatcher = _dispatcher(handler, background=True)
        dispatcher.dispatch("run-1")

        assert delivered.wait(timeout=5)

    def test_process_url_strips_trailing_slash(self):
        dispatcher = _dispatcher(_responder(200), base_url="https://svc.test/")
        assert dispatcher.process_url("abc") == "https://svc.test/runs/abc/process"


class TestDeferredDispatcher:
    def test_records_and_pops_in_order(self):
        dispatcher = DeferredContinuationDispatcher()

        dispatcher.dispatch("a")
        assert dispatcher.send("b") is True

        assert dispatcher.pop() == "a"
        assert dispatcher.pop() == "b"
        assert dispatcher.pop() is None
