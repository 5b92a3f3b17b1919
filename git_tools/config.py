from __future__ import annotations

import json
import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, Field, PositiveFloat, ValidationError

OPTIONS_PATH = Path(os.getenv("GIT_TOOLS_OPTIONS_FILE", "./git-tools.json"))
DEFAULT_HTTP_PORT = 7998


class Options(BaseModel):
    repo_dir: str = "."
    default_remote: str = Field(default="origin", pattern=r"^[A-Za-z0-9._/][A-Za-z0-9._/-]*$")
    git_binary: str = "git"
    npm_binary: str = "npm"
    command_timeout: PositiveFloat | None = None
    log_level: str = Field(default="info", pattern=r"^(debug|verbose|info|warning|error)$")
    http_api_port: int = Field(default=DEFAULT_HTTP_PORT, ge=0, le=65535)

    @property
    def repo_path(self) -> Path:
        return Path(self.repo_dir).expanduser()


def _load_raw_options(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def load_options(path: Path | None = None) -> Options:
    raw = _load_raw_options(path or OPTIONS_PATH)
    repo_dir = os.getenv("GIT_TOOLS_REPO_DIR")
    if repo_dir:
        raw["repo_dir"] = repo_dir
    try:
        return Options(**raw)
    except ValidationError as exc:
        raise RuntimeError(f"Invalid options: {exc}") from exc
