"""Run commands: create, process, control, recover, status and serve."""

import time
from pathlib import Path
from typing import Optional

import click

from hypoforge.cli.config import CLIContext
from hypoforge.cli.logging import cli_command, get_cli_logger
from hypoforge.cli.output import emit_envelope, emit_error, emit_success
from hypoforge.cli.registry import get_context
from hypoforge.core.runs.continuation import DeferredContinuationDispatcher
from hypoforge.core.runs.control import run_view
from hypoforge.core.runs.lifecycle import create_run, upsert_project_resource
from hypoforge.core.runs.models import ModelChoice, ResourceKind, Run

logger = get_cli_logger()

# Upper bound on in-process invocations for ``process --follow``
DEFAULT_MAX_INVOCATIONS = 500


def _read_text(path: str, option: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except OSError as e:
        emit_error(
            f"Failed to read {option}: {e}",
            code="VALIDATION_ERROR",
            error_type="validation",
            remediation=f"Check the path given to {option}",
            details={"path": path},
        )


def _require_run(cli_ctx: CLIContext, run_id: str) -> Run:
    run = cli_ctx.storage.load_run(run_id)
    if run is None:
        emit_error(
            f"Run '{run_id}' not found",
            code="RUN_NOT_FOUND",
            error_type="not_found",
            remediation="Verify the run ID exists.",
            details={"run_id": run_id},
        )
    return run


@click.command("create-run")
@click.argument("project_id")
@click.option("--target-spec", "target_spec", required=True, type=click.Path(), help="Target specification document.")
@click.option(
    "--technical-assets", "technical_assets", required=True, type=click.Path(), help="Technical assets document."
)
@click.option("--hypotheses", "hypothesis_count", type=click.IntRange(min=1), help="Number of hypotheses to generate.")
@click.option(
    "--model",
    "model_choice",
    type=click.Choice([choice.value for choice in ModelChoice], case_sensitive=False),
    help="Research model tier.",
)
@click.option("--job-name", help="Optional label for the run.")
@click.pass_context
@cli_command("create-run")
def create_run_cmd(
    ctx: click.Context,
    project_id: str,
    target_spec: str,
    technical_assets: str,
    hypothesis_count: Optional[int],
    model_choice: Optional[str],
    job_name: Optional[str],
) -> None:
    """Attach input documents to PROJECT_ID and create a pending run."""
    cli_ctx = get_context(ctx)
    storage = cli_ctx.storage

    upsert_project_resource(
        storage,
        project_id,
        ResourceKind.TARGET_SPECIFICATION,
        name=Path(target_spec).name,
        content=_read_text(target_spec, "--target-spec"),
    )
    upsert_project_resource(
        storage,
        project_id,
        ResourceKind.TECHNICAL_ASSETS,
        name=Path(technical_assets).name,
        content=_read_text(technical_assets, "--technical-assets"),
    )

    run = create_run(
        storage,
        project_id,
        config=cli_ctx.config.orchestration,
        hypothesis_count=hypothesis_count,
        model_choice=model_choice.lower() if model_choice else None,
        job_name=job_name,
    )
    emit_success({"run": run_view(run)})


@click.command("process")
@click.argument("run_id")
@click.option("--follow", is_flag=True, help="Keep invoking in this process while a continuation is requested.")
@click.option(
    "--max-invocations",
    type=click.IntRange(min=1),
    default=DEFAULT_MAX_INVOCATIONS,
    show_default=True,
    help="Upper bound on invocations with --follow.",
)
@click.pass_context
@cli_command("process")
def process_cmd(ctx: click.Context, run_id: str, follow: bool, max_invocations: int) -> None:
    """Run one scheduler invocation for RUN_ID in this process."""
    cli_ctx = get_context(ctx)
    _require_run(cli_ctx, run_id)

    dispatcher = DeferredContinuationDispatcher()
    scheduler = cli_ctx.local_scheduler(dispatcher)
    pause_seconds = cli_ctx.config.orchestration.poll_interval_seconds

    invocations = 0
    while True:
        result = scheduler.run(run_id)
        invocations += 1
        continued = dispatcher.pop() is not None
        if not (follow and continued) or invocations >= max_invocations:
            break
        logger.debug("Following run %s at %s", run_id, result.phase)
        if pause_seconds > 0:
            time.sleep(pause_seconds)

    emit_success(
        {
            **result.to_wire(),
            "invocations": invocations,
            "continuation_requested": result.continuation_scheduled,
        }
    )


@click.command("pause")
@click.argument("run_id")
@click.pass_context
@cli_command("pause")
def pause_cmd(ctx: click.Context, run_id: str) -> None:
    """Pause a running RUN_ID."""
    emit_envelope(get_context(ctx).control().pause(run_id))


@click.command("resume")
@click.argument("run_id")
@click.pass_context
@cli_command("resume")
def resume_cmd(ctx: click.Context, run_id: str) -> None:
    """Resume a paused RUN_ID and hand it to the service."""
    emit_envelope(get_context(ctx).control().resume(run_id))


@click.command("stop")
@click.argument("run_id")
@click.pass_context
@cli_command("stop")
def stop_cmd(ctx: click.Context, run_id: str) -> None:
    """Stop RUN_ID permanently."""
    emit_envelope(get_context(ctx).control().stop(run_id))


@click.command("nudge")
@click.argument("run_id")
@click.pass_context
@cli_command("nudge")
def nudge_cmd(ctx: click.Context, run_id: str) -> None:
    """Re-trigger processing of a running RUN_ID."""
    emit_envelope(get_context(ctx).control().nudge(run_id))


@click.command("recover")
@click.pass_context
@cli_command("recover")
def recover_cmd(ctx: click.Context) -> None:
    """Re-trigger running or pending runs that stopped making progress."""
    report = get_context(ctx).watchdog().scan()
    emit_success({"checked": report.checked, "resumed": report.resumed, "results": report.results})


@click.command("status")
@click.argument("run_id")
@click.pass_context
@cli_command("status")
def status_cmd(ctx: click.Context, run_id: str) -> None:
    """Show RUN_ID and its hypotheses."""
    cli_ctx = get_context(ctx)
    run = _require_run(cli_ctx, run_id)
    hypotheses = cli_ctx.storage.list_hypotheses(run_id=run_id)
    emit_success(
        {
            "run": run_view(run),
            "hypotheses": [
                {
                    "id": h.id,
                    "hypothesis_number": h.hypothesis_number,
                    "title": h.display_title,
                    "status": h.processing_status.value,
                    "error_message": h.error_message,
                }
                for h in hypotheses
            ],
        }
    )


@click.command("serve")
@click.option("--host", default="127.0.0.1", show_default=True, help="Bind address.")
@click.option("--port", type=int, default=8000, show_default=True, help="Bind port.")
@click.pass_context
def serve_cmd(ctx: click.Context, host: str, port: int) -> None:
    """Serve the HTTP API with uvicorn."""
    import uvicorn

    from hypoforge.server.app import create_app

    cli_ctx = get_context(ctx)
    cli_ctx.config.setup_logging()
    uvicorn.run(create_app(cli_ctx.config, storage=cli_ctx.storage), host=host, port=port)
