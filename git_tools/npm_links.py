from __future__ import annotations

import asyncio
import logging
import os
import re
from pathlib import Path
from typing import Any, Mapping

from .config import Options
from .models import LinkedPackage, PackageJson
from .runner import CommandError, CommandRunner
from .validation import safe_json_parse, validate_package_json
from .versioning import is_version_compatible_with_range

_LOGGER = logging.getLogger(__name__)

_INVALID_PROBLEM_PATTERN = re.compile(r"invalid:\s+(@[^/]+/[^@\s]+|[^@\s]+)@")


class NpmLinkInspector:
    """Answers questions about ``npm link`` state for local packages."""

    def __init__(
        self,
        options: Options | None = None,
        runner: CommandRunner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or Options()
        self._logger = logger or _LOGGER
        self._runner = runner or CommandRunner(
            self.options.repo_path, timeout=self.options.command_timeout, logger=self._logger
        )

    async def _npm_json(
        self, args: list[str], context: str, cwd: str | Path | None = None
    ) -> dict[str, Any] | None:
        """Run an npm command that prints JSON, tolerating non-zero exits.

        ``npm ls`` exits non-zero whenever it finds problems but still prints a
        usable report, so the output of a failed run is parsed too.
        """
        try:
            result = await self._runner.run_secure(
                self.options.npm_binary, args, cwd=cwd, quiet=True
            )
            stdout = result.stdout
        except CommandError as exc:
            if not exc.stdout:
                self._logger.debug("%s failed without output: %s", context, exc)
                return None
            stdout = exc.stdout
        try:
            parsed = safe_json_parse(stdout, context)
        except ValueError as exc:
            self._logger.debug("%s", exc)
            return None
        return parsed if isinstance(parsed, dict) else None

    async def get_globally_linked_packages(self) -> set[str]:
        report = await self._npm_json(["ls", "--link", "-g", "--json"], "npm ls global output")
        return _dependency_names(report)

    async def get_linked_dependencies(self, package_dir: str | Path) -> set[str]:
        report = await self._npm_json(
            ["ls", "--link", "--json"], "npm ls local output", cwd=package_dir
        )
        return _dependency_names(report)

    async def get_link_compatibility_problems(
        self,
        package_dir: str | Path,
        all_packages_info: Mapping[str, LinkedPackage] | None = None,
    ) -> set[str]:
        """Linked dependencies whose version does not satisfy the declared range."""
        package_json_path = Path(package_dir) / "package.json"
        try:
            package = await _read_package_json(package_json_path)
        except (OSError, ValueError) as exc:
            self._logger.debug("Cannot read %s: %s", package_json_path, exc)
            return set()

        linked = await self.get_linked_dependencies(package_dir)
        problems: set[str] = set()
        for group in package.dependency_groups():
            for name, version_range in group.items():
                if name not in linked or not isinstance(version_range, str):
                    continue
                linked_version = await self._linked_version(
                    Path(package_dir), name, all_packages_info
                )
                if not linked_version:
                    continue
                if not is_version_compatible_with_range(linked_version, version_range):
                    self._logger.debug(
                        "Linked %s@%s does not satisfy %s", name, linked_version, version_range
                    )
                    problems.add(name)
        return problems

    async def _linked_version(
        self,
        package_dir: Path,
        name: str,
        all_packages_info: Mapping[str, LinkedPackage] | None,
    ) -> str | None:
        if all_packages_info and name in all_packages_info:
            return all_packages_info[name].version
        path = package_dir / "node_modules" / name / "package.json"
        try:
            return (await _read_package_json(path)).version
        except (OSError, ValueError):
            return None

    async def get_link_problems(self, package_dir: str | Path) -> set[str]:
        report = await self._npm_json(
            ["ls", "--link", "--json"], "npm ls troubleshoot output", cwd=package_dir
        )
        if report is None:
            return set()

        problems: set[str] = set()
        reported = report.get("problems")
        if isinstance(reported, list):
            for problem in reported:
                if isinstance(problem, str) and "invalid:" in problem:
                    match = _INVALID_PROBLEM_PATTERN.search(problem)
                    if match:
                        problems.add(match.group(1))

        dependencies = report.get("dependencies")
        if isinstance(dependencies, dict):
            for name, info in dependencies.items():
                if not isinstance(info, dict):
                    continue
                dep_problems = info.get("problems")
                if info.get("invalid") or (isinstance(dep_problems, list) and dep_problems):
                    problems.add(name)
        return problems

    async def is_npm_linked(self, package_dir: str | Path) -> bool:
        package_dir = Path(package_dir)
        try:
            package = await _read_package_json(package_dir / "package.json", require_name=False)
        except (OSError, ValueError) as exc:
            self._logger.debug("No readable package.json in %s: %s", package_dir, exc)
            return False
        if not package.name:
            return False

        try:
            result = await self._runner.run_secure(
                self.options.npm_binary, ["ls", "-g", "--depth=0", "--json"], quiet=True
            )
            report = safe_json_parse(result.stdout, "npm ls global depth check output")
        except (CommandError, ValueError) as exc:
            self._logger.debug(
                "npm ls failed for %s, trying alternative check: %s", package.name, exc
            )
            return await self._is_symlinked_globally(package_dir, package.name)

        dependencies = report.get("dependencies") if isinstance(report, dict) else None
        entry = dependencies.get(package.name) if isinstance(dependencies, dict) else None
        resolved = entry.get("resolved") if isinstance(entry, dict) else None
        if not isinstance(resolved, str) or not resolved.startswith("file:"):
            return False
        linked_path = resolved[len("file:"):]
        try:
            return await asyncio.to_thread(_same_realpath, package_dir, Path(linked_path))
        except OSError as exc:
            self._logger.debug("Error checking npm link status for %s: %s", package_dir, exc)
            return False

    async def _is_symlinked_globally(self, package_dir: Path, name: str) -> bool:
        try:
            result = await self._runner.run_secure(
                self.options.npm_binary, ["prefix", "-g"], quiet=True
            )
            global_module = Path(result.stdout.strip()) / "lib" / "node_modules" / name
            if os.name == "nt":
                global_module = Path(result.stdout.strip()) / "node_modules" / name
            return await asyncio.to_thread(_is_link_to, global_module, package_dir)
        except (CommandError, OSError) as exc:
            self._logger.debug("Global symlink check failed for %s: %s", name, exc)
            return False


async def _read_package_json(path: Path, require_name: bool = True) -> PackageJson:
    content = await asyncio.to_thread(path.read_text, encoding="utf-8")
    return validate_package_json(safe_json_parse(content, str(path)), str(path), require_name)


def _dependency_names(report: dict[str, Any] | None) -> set[str]:
    if report is None:
        return set()
    dependencies = report.get("dependencies")
    if isinstance(dependencies, dict):
        return set(dependencies)
    return set()


def _same_realpath(left: Path, right: Path) -> bool:
    return left.resolve(strict=True) == right.resolve(strict=True)


def _is_link_to(link: Path, target: Path) -> bool:
    return link.is_symlink() and _same_realpath(link, target)
