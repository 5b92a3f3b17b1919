from __future__ import annotations

import json
import re
import sys
from typing import Any

from pydantic import ValidationError

from .models import PackageJson

_REFERENCE_PATTERN = re.compile(r"[A-Za-z0-9._/-]+")
_SHELL_METACHARACTERS = re.compile(r"[\s;<>|&`$(){}\[\]]")
_FILE_PATH_METACHARACTERS = re.compile(r"[;<>|&`$(){}\[\]]")


def is_valid_reference(ref: str) -> bool:
    """Return True when ``ref`` is safe to hand to git as a revision argument."""
    if not isinstance(ref, str) or not _REFERENCE_PATTERN.fullmatch(ref):
        return False
    if ".." in ref or ref.startswith("-"):
        return False
    return not _SHELL_METACHARACTERS.search(ref)


def is_valid_remote_name(remote: str) -> bool:
    return (
        isinstance(remote, str)
        and bool(remote)
        and not remote.startswith("-")
        and bool(_REFERENCE_PATTERN.fullmatch(remote))
    )


def validate_file_path(path: str) -> bool:
    return not _FILE_PATH_METACHARACTERS.search(path)


def escape_shell_arg(arg: str) -> str:
    if sys.platform == "win32":
        escaped = re.sub(r'([\\"])', r"\\\1", arg)
        return f'"{escaped}"'
    return "'" + arg.replace("'", "'\\''") + "'"


def safe_json_parse(text: str, context: str | None = None) -> Any:
    suffix = f" ({context})" if context else ""
    try:
        parsed = json.loads(text)
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Failed to parse JSON{suffix}: {exc}") from exc
    if parsed is None:
        raise ValueError(f"Failed to parse JSON{suffix}: Parsed JSON is null")
    return parsed


def validate_package_json(
    data: Any, context: str | None = None, require_name: bool = True
) -> PackageJson:
    suffix = f" ({context})" if context else ""
    if not isinstance(data, dict):
        raise ValueError(f"Invalid package.json{suffix}: not an object")
    if require_name and not isinstance(data.get("name"), str):
        raise ValueError(f"Invalid package.json{suffix}: name must be a string")
    try:
        return PackageJson.model_validate(data)
    except ValidationError as exc:
        raise ValueError(f"Invalid package.json{suffix}: {exc}") from exc
