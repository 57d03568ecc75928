"""Project inputs and transient store naming shared by the pipeline phases."""

from dataclasses import dataclass, field
from typing import List

from hypoforge.core.errors.pipeline import MissingInput

from .gateway import Attachment
from .memory import RunStorage
from .models import REQUIRED_RESOURCE_KINDS, Project, ResourceKind


@dataclass(frozen=True)
class PipelineInputs:
    """Resolved project documents attached to every research interaction."""

    project: Project
    target_specification: str
    technical_assets: str
    attachments: List[Attachment] = field(default_factory=list)


def load_inputs(storage: RunStorage, project_id: str) -> PipelineInputs:
    """Resolve the project's required resources.

    Raises:
        MissingInput: If the project or any required resource kind is absent
    """
    project = storage.load_project(project_id)
    if project is None:
        raise MissingInput(project_id, [kind.value for kind in REQUIRED_RESOURCE_KINDS])

    missing = project.missing_resource_kinds()
    if missing:
        raise MissingInput(project_id, missing)

    target = project.resource_of(ResourceKind.TARGET_SPECIFICATION)
    assets = project.resource_of(ResourceKind.TECHNICAL_ASSETS)
    return PipelineInputs(
        project=project,
        target_specification=target.content,
        technical_assets=assets.content,
        attachments=[
            Attachment(name="target_specification", content=target.content),
            Attachment(name="technical_assets", content=assets.content),
        ],
    )


def divergent_store_name(run_id: str) -> str:
    return f"run-{run_id}-divergent"


def hypothesis_store_name(run_id: str, hypothesis_number: int) -> str:
    return f"run-{run_id}-h{hypothesis_number}"
