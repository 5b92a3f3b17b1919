from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, model_validator


class SyncStatus(BaseModel):
    model_config = ConfigDict(frozen=True)

    in_sync: bool
    local_sha: str | None = None
    remote_sha: str | None = None
    local_exists: bool
    remote_exists: bool
    error: str | None = None


class SyncResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    success: bool
    error: str | None = None
    conflict_resolution_required: bool = False

    @model_validator(mode="after")
    def _check_outcome(self) -> SyncResult:
        if self.success and self.error is not None:
            raise ValueError("a successful sync cannot carry an error")
        if self.conflict_resolution_required and self.success:
            raise ValueError("a sync requiring conflict resolution cannot succeed")
        return self


class StatusSummary(BaseModel):
    branch: str
    has_unstaged_files: bool = False
    has_uncommitted_changes: bool = False
    has_unpushed_commits: bool = False
    unstaged_count: int = Field(default=0, ge=0)
    uncommitted_count: int = Field(default=0, ge=0)
    unpushed_count: int = Field(default=0, ge=0)
    status: str

    @classmethod
    def failed(cls) -> StatusSummary:
        return cls(branch="unknown", status="error")


class PackageJson(BaseModel):
    """The subset of package.json these tools read; other keys are kept."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    name: str | None = None
    version: str | None = None
    dependencies: dict[str, Any] | None = None
    dev_dependencies: dict[str, Any] | None = Field(default=None, alias="devDependencies")
    peer_dependencies: dict[str, Any] | None = Field(default=None, alias="peerDependencies")
    optional_dependencies: dict[str, Any] | None = Field(
        default=None, alias="optionalDependencies"
    )

    def dependency_groups(self) -> list[dict[str, Any]]:
        groups = (
            self.dependencies,
            self.dev_dependencies,
            self.peer_dependencies,
            self.optional_dependencies,
        )
        return [group for group in groups if isinstance(group, dict)]


class LinkedPackage(BaseModel):
    name: str
    version: str
    path: str
