"""Run creation and project input upserts.

Project and resource CRUD belong to the surrounding application; these
helpers only cover what a pipeline driver needs to start a run: make sure
the project carries its input documents, then persist a pending run.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Optional

from ulid import ULID

from hypoforge.config.orchestration import OrchestrationConfig

from .memory import RunStorage
from .models import ModelChoice, Project, QueuedProgress, Resource, ResourceKind, Run

logger = logging.getLogger(__name__)


def upsert_project_resource(
    storage: RunStorage,
    project_id: str,
    kind: ResourceKind,
    *,
    name: str,
    content: str,
) -> Project:
    """Add or replace the project's resource of ``kind``, creating the project if needed."""
    now = datetime.now(timezone.utc)
    project = storage.load_project(project_id)
    if project is None:
        project = Project(id=project_id, name=project_id, created_at=now, updated_at=now)
        logger.info("Created project %s", project_id)

    project.resources = [r for r in project.resources if r.kind is not kind]
    project.resources.append(Resource(id=str(uuid.uuid4()), kind=kind, name=name, content=content))
    storage.save_project(project)
    return project


def create_run(
    storage: RunStorage,
    project_id: str,
    *,
    config: Optional[OrchestrationConfig] = None,
    hypothesis_count: Optional[int] = None,
    model_choice: Optional[str] = None,
    job_name: Optional[str] = None,
    loop_index: int = 0,
    loop_count: int = 1,
) -> Run:
    """Persist a new pending run for ``project_id``.

    Inputs are not validated here; a project missing required resources
    fails the run with ``MISSING_INPUT`` on its first step.
    """
    config = config or OrchestrationConfig()
    now = datetime.now(timezone.utc)
    run = Run(
        id=str(ULID()),
        project_id=project_id,
        job_name=job_name,
        hypothesis_count=hypothesis_count or config.default_hypothesis_count,
        model_choice=ModelChoice(model_choice or config.default_model_choice),
        loop_index=loop_index,
        loop_count=loop_count,
        current_loop=loop_index + 1,
        total_loops=loop_count,
        progress=QueuedProgress(message="Queued"),
        created_at=now,
        updated_at=now,
    )
    storage.save_run(run)
    logger.info("Created run %s for project %s", run.id, project_id)
    return run
