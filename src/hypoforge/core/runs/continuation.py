"""Continuation dispatchers.

A continuation hands a run to a fresh invocation of the process endpoint.
Delivery is at-least-once: the executor tolerates duplicates, so a retry
that races a slow success is harmless.

``HttpContinuationDispatcher`` POSTs ``{base_url}/runs/{id}/process`` from
a daemon thread so the current invocation can return immediately.
``DeferredContinuationDispatcher`` only records the request, for in-process
drivers such as ``hypoforge process --follow``.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, List, Optional

import httpx

from hypoforge.config.orchestration import ContinuationConfig
from hypoforge.core.context import get_correlation_id

logger = logging.getLogger(__name__)

PROCESS_SECRET_HEADER = "X-Process-Secret"
REQUEST_ID_HEADER = "X-Request-ID"


class HttpContinuationDispatcher:
    """Fire-and-forget HTTP continuation with bounded retries.

    Retry policy per delivery:
    - 2xx: delivered
    - 3xx: not retried (a proxy or auth wall redirected the call)
    - 4xx: not retried
    - 5xx and transport errors: retried up to ``max_attempts`` with
      ``backoff_seconds * attempt`` between attempts
    """

    def __init__(
        self,
        config: ContinuationConfig,
        *,
        client: Optional[httpx.Client] = None,
        sleep: Callable[[float], None] = time.sleep,
        background: bool = True,
    ) -> None:
        self.config = config
        self._client = client
        self._sleep = sleep
        self.background = background

    def process_url(self, run_id: str) -> str:
        return f"{self.config.base_url.rstrip('/')}/runs/{run_id}/process"

    def dispatch(self, run_id: str) -> None:
        """Schedule delivery on a daemon thread and return immediately.

        Short-lived callers (the CLI) construct the dispatcher with
        ``background=False`` so delivery finishes before the process exits.
        """
        if not self.background:
            self.send(run_id)
            return
        thread = threading.Thread(
            target=self.send,
            args=(run_id,),
            name=f"continuation-{run_id[:8]}",
            daemon=True,
        )
        thread.start()

    def send(self, run_id: str) -> bool:
        """Deliver one continuation synchronously.

        Returns:
            True when the process endpoint accepted the call
        """
        url = self.process_url(run_id)
        headers = {PROCESS_SECRET_HEADER: self.config.secret or ""}
        correlation_id = get_correlation_id()
        if correlation_id:
            headers[REQUEST_ID_HEADER] = correlation_id

        attempts = max(1, self.config.max_attempts)
        for attempt in range(1, attempts + 1):
            try:
                response = self._post(url, headers)
            except httpx.HTTPError as exc:
                logger.warning(
                    "Continuation for run %s failed (attempt %d/%d): %s",
                    run_id,
                    attempt,
                    attempts,
                    exc,
                )
            else:
                status = response.status_code
                if status < 300:
                    logger.debug("Continuation for run %s delivered (attempt %d)", run_id, attempt)
                    return True
                if status < 400:
                    logger.error(
                        "Continuation for run %s redirected (%d); check proxy or auth in front of %s",
                        run_id,
                        status,
                        url,
                    )
                    return False
                if status < 500:
                    logger.error("Continuation for run %s rejected with %d", run_id, status)
                    return False
                logger.warning(
                    "Continuation for run %s got %d (attempt %d/%d)",
                    run_id,
                    status,
                    attempt,
                    attempts,
                )

            if attempt < attempts:
                self._sleep(self.config.backoff_seconds * attempt)

        logger.error(
            "Continuation for run %s not delivered after %d attempts; run stays running until nudged or recovered",
            run_id,
            attempts,
        )
        return False

    def _post(self, url: str, headers: dict) -> httpx.Response:
        if self._client is not None:
            return self._client.post(url, headers=headers, timeout=self.config.timeout_seconds)
        with httpx.Client(timeout=self.config.timeout_seconds, follow_redirects=False) as client:
            return client.post(url, headers=headers)


class DeferredContinuationDispatcher:
    """Records continuation requests for a driver running in the same process."""

    def __init__(self) -> None:
        self.requested: List[str] = []

    def dispatch(self, run_id: str) -> None:
        self.requested.append(run_id)

    def send(self, run_id: str) -> bool:
        self.requested.append(run_id)
        return True

    def pop(self) -> Optional[str]:
        """Return and clear the oldest pending request."""
        if not self.requested:
            return None
        return self.requested.pop(0)
