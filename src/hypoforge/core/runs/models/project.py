"""Project and input resource models."""

from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .enums import REQUIRED_RESOURCE_KINDS, ResourceKind


class Resource(BaseModel):
    """An input document attached to a project."""

    id: str = Field(..., description="Resource identifier")
    kind: ResourceKind = Field(..., description="What the resource describes")
    name: str = Field(..., description="Original file or display name")
    content: str = Field(default="", description="Extracted text content")


class Project(BaseModel):
    """Long-lived container for runs, inputs and the dedup scope of hypotheses."""

    schema_version: int = Field(default=1, alias="_schema_version", description="Schema version")

    id: str = Field(..., description="Project identifier")
    name: str = Field(default="", description="Display name")
    resources: List[Resource] = Field(default_factory=list, description="Input resources")
    created_at: datetime = Field(..., description="When the project was created")
    updated_at: datetime = Field(..., description="When the project was last written")

    model_config = {
        "populate_by_name": True,
    }

    def resource_of(self, kind: ResourceKind) -> Optional[Resource]:
        """Return the latest resource of ``kind`` with non-empty content."""
        for resource in reversed(self.resources):
            if resource.kind is kind and resource.content.strip():
                return resource
        return None

    def missing_resource_kinds(self) -> List[str]:
        return [kind.value for kind in REQUIRED_RESOURCE_KINDS if self.resource_of(kind) is None]

    def model_dump(self, *, by_alias: bool = True, **kwargs: Any) -> Dict[str, Any]:
        """Override to default ``by_alias=True`` for correct _schema_version serialization."""
        return super().model_dump(by_alias=by_alias, **kwargs)
