"""Request bodies for the place, command and connection endpoints."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field


class CreatePlaceBody(BaseModel):
    """Body of ``POST /places``.

    Type-specific fields (``city``, ``capacity``, ``is_bookable``…) go in
    ``attributes`` under their canonical names.
    """

    type: str = Field(description="Building, Floor, Section, Desk or Room")
    display_name: str = Field(min_length=1)
    description: str | None = None
    parent_external_id: str | None = Field(default=None, description="Remote id of the parent place")
    attributes: dict[str, Any] = Field(default_factory=dict)


class ExecuteCommandBody(BaseModel):
    command: str = Field(min_length=1, description="Shell statement to run on the shared channel")
    timeout: float | None = Field(default=None, gt=0, description="Seconds; defaults to the channel timeout")


class ConnectBody(BaseModel):
    tenant: str | None = Field(
        default=None,
        description="User principal name (with @) or organization domain",
    )


class ModuleCheckBody(BaseModel):
    names: list[str] | None = Field(default=None, description="Defaults to the configured required modules")


class ModuleInstallBody(BaseModel):
    name: str = Field(min_length=1)
