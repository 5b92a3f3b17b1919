from __future__ import annotations

from typing import Any

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from . import __version__
from .git_client import GitTools, ReferenceResolutionError
from .models import StatusSummary, SyncResult, SyncStatus


class SyncRequest(BaseModel):
    branch: str
    remote: str | None = None


def create_app(tools: GitTools) -> FastAPI:
    app = FastAPI(title="Git Tools", version=__version__)

    @app.get("/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    @app.get("/status", response_model=StatusSummary)
    async def status(working_dir: str | None = None) -> StatusSummary:
        return await tools.get_git_status_summary(working_dir)

    @app.get("/branches/sync-status", response_model=SyncStatus)
    async def sync_status(branch: str, remote: str | None = None) -> SyncStatus:
        return await tools.is_branch_in_sync_with_remote(branch, remote)

    @app.post("/branches/sync", response_model=SyncResult)
    async def sync_branch(body: SyncRequest) -> SyncResult:
        return await tools.safe_sync_branch_with_remote(body.branch, body.remote)

    @app.get("/tags/previous")
    async def previous_tag(version: str, pattern: str = "v*") -> dict[str, str | None]:
        return {"tag": await tools.find_previous_release_tag(version, pattern)}

    @app.get("/refs/default-from")
    async def default_from_ref(
        force_main_branch: bool = False, current_branch: str | None = None
    ) -> dict[str, str]:
        try:
            ref = await tools.get_default_from_ref(force_main_branch, current_branch)
        except ReferenceResolutionError as exc:
            raise HTTPException(status_code=404, detail=str(exc)) from exc
        return {"ref": ref}

    @app.get("/config")
    async def config() -> dict[str, Any]:
        return tools.options.model_dump()

    return app
