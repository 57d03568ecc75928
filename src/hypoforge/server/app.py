"""HTTP surface for run processing and control.

Routes:
    POST   /runs/{run_id}/process     one scheduler invocation (process secret)
    POST   /runs/recover              stale-run watchdog (process secret)
    POST   /runs/{run_id}/pause
    POST   /runs/{run_id}/resume
    POST   /runs/{run_id}/stop
    POST   /runs/{run_id}/nudge
    GET    /runs/{run_id}
    GET    /runs/{run_id}/hypotheses
    DELETE /hypotheses/{hypothesis_id}

User sessions are authenticated in front of this service; only the
self-invoked routes check the shared process secret here. Envelope errors
map to HTTP status codes through their ``error_type``.
"""

from __future__ import annotations

import logging
from dataclasses import asdict
from typing import Any, Dict, Optional

from fastapi import FastAPI, Header, Request
from fastapi.responses import JSONResponse

from hypoforge.config import ServerConfig, get_config
from hypoforge.core.context import sync_request_context
from hypoforge.core.errors import ERROR_MAPPINGS, error_to_response
from hypoforge.core.responses import (
    HTTP_STATUS_BY_ERROR_TYPE,
    ErrorCode,
    internal_error,
    not_found_error,
    success_response,
    unauthorized_error,
)
from hypoforge.core.runs.continuation import HttpContinuationDispatcher
from hypoforge.core.runs.control import RunControl, run_view
from hypoforge.core.runs.executor import StepExecutor
from hypoforge.core.runs.gateway import AIGateway, HttpAIGateway
from hypoforge.core.runs.memory import RunStorage
from hypoforge.core.runs.recovery import RecoveryWatchdog
from hypoforge.core.runs.scheduler import ContinuationDispatcher, InvocationScheduler
from hypoforge.core.runs.server_secret import verify_secret

logger = logging.getLogger(__name__)


def envelope_status(payload: Dict[str, Any]) -> int:
    """HTTP status for a response-v2 envelope dict."""
    if payload.get("success"):
        return 200
    error_type = (payload.get("data") or {}).get("error_type")
    return HTTP_STATUS_BY_ERROR_TYPE.get(error_type, 500)


def _respond(payload: Dict[str, Any]) -> JSONResponse:
    return JSONResponse(payload, status_code=envelope_status(payload))


def create_app(
    config: Optional[ServerConfig] = None,
    *,
    storage: Optional[RunStorage] = None,
    gateway: Optional[AIGateway] = None,
    dispatcher: Optional[ContinuationDispatcher] = None,
) -> FastAPI:
    """Build the FastAPI application with its collaborators wired explicitly.

    Args:
        config: Server configuration (global config when omitted)
        storage: Run store (defaults to the configured storage directory)
        gateway: AI gateway (defaults to ``HttpAIGateway``)
        dispatcher: Continuation dispatcher (defaults to HTTP self-chaining)
    """
    config = config or get_config()
    secret = config.resolve_process_secret()
    storage = storage or RunStorage(config.get_storage_dir())
    gateway = gateway or HttpAIGateway(config.gateway)
    dispatcher = dispatcher or HttpContinuationDispatcher(config.continuation)

    executor = StepExecutor(storage, gateway, config.orchestration)
    scheduler = InvocationScheduler(executor, dispatcher, config.orchestration)
    control = RunControl(storage, dispatcher)
    watchdog = RecoveryWatchdog(storage, dispatcher, config.recovery.stale_after_seconds)

    app = FastAPI(title=config.server_name, version=config.server_version)
    app.state.storage = storage
    app.state.scheduler = scheduler

    def _handle_known_error(request: Request, exc: Exception) -> JSONResponse:
        logger.warning("%s %s failed: %s", request.method, request.url.path, exc)
        payload = error_to_response(exc) or asdict(internal_error(str(exc)))
        return _respond(payload)

    for exc_type in ERROR_MAPPINGS:
        app.add_exception_handler(exc_type, _handle_known_error)

    def _authorized(provided: Optional[str]) -> bool:
        if verify_secret(secret, provided):
            return True
        logger.warning("Rejected request with missing or invalid process secret")
        return False

    # ------------------------------------------------------------------
    # Self-invoked routes (shared secret)
    # ------------------------------------------------------------------

    @app.post("/runs/recover")
    def recover_runs(
        x_process_secret: Optional[str] = Header(default=None),
        x_request_id: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="recovery"):
            if not _authorized(x_process_secret):
                return _respond(asdict(unauthorized_error("Invalid process secret")))
            report = watchdog.scan()
            return _respond(
                asdict(success_response(checked=report.checked, resumed=report.resumed, results=report.results))
            )

    @app.post("/runs/{run_id}/process")
    def process_run(
        run_id: str,
        x_process_secret: Optional[str] = Header(default=None),
        x_request_id: Optional[str] = Header(default=None),
    ) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="process"):
            if not _authorized(x_process_secret):
                return _respond(asdict(unauthorized_error("Invalid process secret")))
            if storage.load_run(run_id) is None:
                return _respond(asdict(not_found_error("Run", run_id, error_code=ErrorCode.RUN_NOT_FOUND)))
            result = scheduler.run(run_id)
            return JSONResponse(result.to_wire())

    # ------------------------------------------------------------------
    # Run control (session authenticated upstream)
    # ------------------------------------------------------------------

    @app.post("/runs/{run_id}/pause")
    def pause_run(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            return _respond(control.pause(run_id))

    @app.post("/runs/{run_id}/resume")
    def resume_run(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            return _respond(control.resume(run_id))

    @app.post("/runs/{run_id}/stop")
    def stop_run(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            return _respond(control.stop(run_id))

    @app.post("/runs/{run_id}/nudge")
    def nudge_run(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            return _respond(control.nudge(run_id))

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    @app.get("/runs/{run_id}")
    def get_run(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            run = storage.load_run(run_id)
            if run is None:
                return _respond(asdict(not_found_error("Run", run_id, error_code=ErrorCode.RUN_NOT_FOUND)))
            return _respond(asdict(success_response(run=run_view(run))))

    @app.get("/runs/{run_id}/hypotheses")
    def list_run_hypotheses(run_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            if storage.load_run(run_id) is None:
                return _respond(asdict(not_found_error("Run", run_id, error_code=ErrorCode.RUN_NOT_FOUND)))
            hypotheses = [h.model_dump(mode="json") for h in storage.list_hypotheses(run_id=run_id)]
            return _respond(asdict(success_response(run_id=run_id, hypotheses=hypotheses)))

    @app.delete("/hypotheses/{hypothesis_id}")
    def delete_hypothesis(hypothesis_id: str, x_request_id: Optional[str] = Header(default=None)) -> JSONResponse:
        with sync_request_context(correlation_id=x_request_id, client_id="session"):
            hypothesis = storage.soft_delete_hypothesis(hypothesis_id)
            if hypothesis is None:
                return _respond(
                    asdict(
                        not_found_error("Hypothesis", hypothesis_id, error_code=ErrorCode.HYPOTHESIS_NOT_FOUND)
                    )
                )
            return _respond(asdict(success_response(hypothesis=hypothesis.model_dump(mode="json"))))

    return app
