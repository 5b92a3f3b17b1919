"""Injection-safe git and npm automation primitives for release tooling."""

from __future__ import annotations

__version__ = "0.3.0"

from .config import Options, load_options
from .git_client import GitTools, ReferenceResolutionError, classify_status_lines
from .models import LinkedPackage, PackageJson, StatusSummary, SyncResult, SyncStatus
from .npm_links import NpmLinkInspector
from .runner import VERBOSE, CommandError, CommandResult, CommandRunner
from .validation import (
    escape_shell_arg,
    is_valid_reference,
    is_valid_remote_name,
    safe_json_parse,
    validate_file_path,
    validate_package_json,
)
from .versioning import is_version_compatible_with_range, parse_version

__all__ = [
    "VERBOSE",
    "CommandError",
    "CommandResult",
    "CommandRunner",
    "GitTools",
    "LinkedPackage",
    "NpmLinkInspector",
    "Options",
    "PackageJson",
    "ReferenceResolutionError",
    "StatusSummary",
    "SyncResult",
    "SyncStatus",
    "classify_status_lines",
    "escape_shell_arg",
    "is_valid_reference",
    "is_valid_remote_name",
    "is_version_compatible_with_range",
    "load_options",
    "parse_version",
    "safe_json_parse",
    "validate_file_path",
    "validate_package_json",
]
