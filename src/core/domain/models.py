"""Domain models.

Work items (`Target`, `TargetResult`) are plain dataclasses: they only live
for one run and carry arbitrary JSON payloads. The run summary is a
Pydantic model so it can be rendered or dumped as JSON by the CLI.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Generic, TypeVar

from pydantic import BaseModel, Field

IdT = TypeVar("IdT", str, int)


@dataclass
class Target(Generic[IdT]):
    """One unit of work: a resource id plus optional destination and payload.

    `path=None` means the destination is computed from the path template at
    download time. When `data` is set the download step must not fetch the
    resource again.
    """

    id: IdT
    path: Path | None = None
    data: dict[str, Any] | None = None


@dataclass
class TargetResult(Generic[IdT]):
    """Either a target or the error met while producing it."""

    target: Target[IdT] | None = None
    error: Exception | None = None

    @classmethod
    def ok(cls, target: Target[IdT]) -> "TargetResult[IdT]":
        return cls(target=target)

    @classmethod
    def failed(cls, error: Exception) -> "TargetResult[IdT]":
        return cls(error=error)


@dataclass
class DownloadOptions:
    """Selection criteria for one download run.

    Exactly one mode is used: `ids`, `all`, `update`, or the filters
    (`team`, `tags`, `priority`). The CLI validates exclusivity.
    """

    ids: list[str] = field(default_factory=list)
    all: bool = False
    update: bool = False
    team: str | None = None
    tags: list[str] = field(default_factory=list)
    priority: int | None = None
    output: str | None = None

    @property
    def has_filters(self) -> bool:
        return bool(self.team or self.tags) or self.priority is not None


class TargetFailure(BaseModel):
    """A single target that could not be materialised."""

    target_id: str | None = Field(default=None, description="Resource id when known.")
    message: str = Field(..., min_length=1)
    error_type: str = Field(..., min_length=1)


class DownloadReport(BaseModel):
    """Aggregate outcome of a download run."""

    kind: str = Field(..., min_length=1, description="Resource kind ('dashboards', 'monitors').")
    saved: list[str] = Field(default_factory=list, description="Paths written during the run.")
    failures: list[TargetFailure] = Field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures
