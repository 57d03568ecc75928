"""AI gateway contract and HTTP client.

The executor consumes the gateway only through the ``AIGateway`` protocol:

- ``create_interaction`` starts a long-running research interaction and
  returns immediately with its id.
- ``get_interaction`` is a cheap status check.
- ``delete_transient_store`` releases the attachment store scoped to an
  interaction.
- ``generate_content`` is a short, synchronous generation call.

``HttpAIGateway`` speaks a small JSON protocol to a gateway service that
fronts the model vendor:

    POST   /v1/interactions            {prompt, attachments, store_name, model} -> {id}
    GET    /v1/interactions/{id}       -> {status, outputs: [{type, text}], error}
    DELETE /v1/stores/{name}
    POST   /v1/generate                {prompt, model} -> {text}
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from hypoforge.config.orchestration import GatewayConfig
from hypoforge.core.errors.pipeline import (
    ContentGenerationError,
    ExternalOperationError,
    RateLimitError,
)
from hypoforge.core.errors.pipeline import TimeoutError as OperationTimeoutError

logger = logging.getLogger(__name__)

# Gateway-reported interaction statuses after normalization
STATUS_PENDING = "pending"
STATUS_IN_PROGRESS = "in_progress"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_CANCELLED = "cancelled"

_STATUS_ALIASES = {
    "completed": STATUS_COMPLETED,
    "succeeded": STATUS_COMPLETED,
    "failed": STATUS_FAILED,
    "cancelled": STATUS_CANCELLED,
    "canceled": STATUS_CANCELLED,
    "running": STATUS_IN_PROGRESS,
    "in_progress": STATUS_IN_PROGRESS,
}

_SECRET_PATTERN = re.compile(r"(?i)(?:api[_-]?key|token|bearer|authorization)[\s:=]+['\"]?([^\s'\"]{8,})")


@dataclass(frozen=True)
class Attachment:
    """A document uploaded into an interaction's transient store."""

    name: str
    content: str


@dataclass(frozen=True)
class InteractionSnapshot:
    """Status of a research interaction at one point in time.

    Attributes:
        status: One of pending, in_progress, completed, failed, cancelled
        outputs: Output entries; the last entry holds the final text
        error: Gateway-reported failure reason, if any
    """

    status: str
    outputs: List[Dict[str, Any]] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def final_text(self) -> str:
        if not self.outputs:
            return ""
        last = self.outputs[-1]
        return str(last.get("text") or last.get("content") or "")


class AIGateway(Protocol):
    """Operations the pipeline needs from the AI vendor."""

    def create_interaction(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        *,
        store_name: Optional[str] = None,
        model_choice: Optional[str] = None,
    ) -> str: ...

    def get_interaction(self, interaction_id: str) -> InteractionSnapshot: ...

    def delete_transient_store(self, store_name: str) -> None: ...

    def generate_content(self, prompt: str, *, model_choice: Optional[str] = None) -> str: ...


def normalize_status(raw: Optional[str]) -> str:
    """Map a vendor status string onto the gateway's status vocabulary."""
    return _STATUS_ALIASES.get((raw or "").strip().lower(), STATUS_PENDING)


def parse_retry_after(response: httpx.Response) -> Optional[float]:
    """Parse the ``Retry-After`` header from an HTTP response.

    Handles numeric values only; date-based values return ``None``.
    """
    retry_after = response.headers.get("Retry-After")
    if retry_after:
        try:
            return float(retry_after)
        except ValueError:
            pass
    return None


def extract_error_message(response: httpx.Response) -> str:
    """Extract a redacted error message from an HTTP error response."""
    try:
        data = response.json()
        error_field = data.get("error")
        if isinstance(error_field, dict):
            msg = error_field.get("message", str(error_field))
        elif isinstance(error_field, str):
            msg = error_field
        else:
            msg = data.get("message", response.text[:200])
    except ValueError:
        msg = response.text[:200] if response.text else "Unknown error"
    return _SECRET_PATTERN.sub(lambda m: m.group(0).replace(m.group(1), "****"), str(msg))


class HttpAIGateway:
    """``AIGateway`` backed by an HTTP gateway service.

    Each call picks the pro or flash model from ``model_choice``.

    Example:
        gateway = HttpAIGateway(GatewayConfig(base_url="https://gw.internal"))
        interaction_id = gateway.create_interaction("prompt", [])
    """

    def __init__(self, config: GatewayConfig, *, client: Optional[httpx.Client] = None) -> None:
        self._config = config
        headers = {"Content-Type": "application/json"}
        if config.api_key:
            headers["Authorization"] = f"Bearer {config.api_key}"
        self._client = client or httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout_seconds,
            headers=headers,
        )

    def close(self) -> None:
        self._client.close()

    def model_for(self, model_choice: Optional[str]) -> str:
        return self._config.flash_model if model_choice == "flash" else self._config.pro_model

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        generation: bool = False,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            response = self._client.request(method, path, **kwargs)
        except httpx.TimeoutException as exc:
            raise OperationTimeoutError(operation, self._config.timeout_seconds) from exc
        except httpx.RequestError as exc:
            if generation:
                raise ContentGenerationError(f"transport error: {exc}", step=operation) from exc
            raise ExternalOperationError(f"transport error: {exc}", step=operation) from exc

        if response.status_code == 429:
            raise RateLimitError(parse_retry_after(response), operation=operation)

        if response.status_code in (408, 504):
            raise OperationTimeoutError(operation, self._config.timeout_seconds)

        if response.status_code >= 400:
            error_msg = extract_error_message(response)
            message = f"API error {response.status_code}: {error_msg}"
            if generation:
                raise ContentGenerationError(message, step=operation, status_code=response.status_code)
            raise ExternalOperationError(message, step=operation, status_code=response.status_code)

        return response

    # ------------------------------------------------------------------
    # AIGateway
    # ------------------------------------------------------------------

    def create_interaction(
        self,
        prompt: str,
        attachments: Sequence[Attachment],
        *,
        store_name: Optional[str] = None,
        model_choice: Optional[str] = None,
    ) -> str:
        payload = {
            "prompt": prompt,
            "attachments": [{"name": a.name, "content": a.content} for a in attachments],
            "store_name": store_name,
            "model": self.model_for(model_choice),
            "background": True,
        }
        response = self._request("POST", "/v1/interactions", operation="create_interaction", json=payload)
        interaction_id = response.json().get("id")
        if not interaction_id:
            raise ExternalOperationError("gateway returned no interaction id", step="create_interaction")
        logger.info("Started interaction %s (store=%s)", interaction_id, store_name)
        return str(interaction_id)

    def get_interaction(self, interaction_id: str) -> InteractionSnapshot:
        response = self._request(
            "GET", f"/v1/interactions/{interaction_id}", operation="get_interaction"
        )
        data = response.json()
        return InteractionSnapshot(
            status=normalize_status(data.get("status")),
            outputs=list(data.get("outputs") or []),
            error=data.get("error"),
        )

    def delete_transient_store(self, store_name: str) -> None:
        response = self._client.delete(f"/v1/stores/{store_name}")
        if response.status_code >= 400 and response.status_code != 404:
            raise ExternalOperationError(
                f"could not delete store {store_name}: {extract_error_message(response)}",
                step="delete_transient_store",
                status_code=response.status_code,
            )

    def generate_content(self, prompt: str, *, model_choice: Optional[str] = None) -> str:
        response = self._request(
            "POST",
            "/v1/generate",
            operation="generate_content",
            generation=True,
            json={"prompt": prompt, "model": self.model_for(model_choice)},
        )
        return str(response.json().get("text") or "")
