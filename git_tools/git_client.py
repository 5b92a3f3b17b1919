from __future__ import annotations

import asyncio
import logging
import re
from functools import cmp_to_key
from pathlib import Path
from typing import Iterable

from semver import Version

from .config import Options
from .models import StatusSummary, SyncResult, SyncStatus
from .runner import CommandError, CommandRunner
from .validation import (
    is_valid_reference,
    is_valid_remote_name,
    safe_json_parse,
    validate_package_json,
)
from .versioning import (
    compare_tags_descending,
    extract_tag_version,
    greater_than,
    less_than,
    parse_version,
)

_LOGGER = logging.getLogger(__name__)

FALLBACK_REFS = ("main", "master", "origin/main", "origin/master")
WORKING_BRANCH = "working"
WORKING_TAG_PATTERN = "working/v*"
CONFLICT_MARKERS = ("diverged", "non-fast-forward", "conflict", "CONFLICT")
_SYMREF_PATTERN = re.compile(r"ref: refs/heads/(.+)\s+HEAD")

PathLike = str | Path


class ReferenceResolutionError(RuntimeError):
    """Raised when no usable git reference exists for a release comparison."""


def classify_status_lines(lines: Iterable[str]) -> tuple[int, int]:
    """Count (unstaged, uncommitted) entries in ``git status --porcelain`` output."""
    unstaged = 0
    uncommitted = 0
    for line in lines:
        if not line.strip():
            continue
        code = line[:2]
        if code == "??":
            unstaged += 1
            continue
        if len(code) > 1 and code[1] != " ":
            unstaged += 1
        if code[0] != " ":
            uncommitted += 1
    return unstaged, uncommitted


class GitTools:
    def __init__(
        self,
        options: Options | None = None,
        runner: CommandRunner | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.options = options or Options()
        self._logger = logger or _LOGGER
        self._repo_dir = self.options.repo_path
        self._runner = runner or CommandRunner(
            self._repo_dir, timeout=self.options.command_timeout, logger=self._logger
        )

    @property
    def runner(self) -> CommandRunner:
        return self._runner

    async def _git(self, *args: str, cwd: PathLike | None = None, quiet: bool = False) -> str:
        result = await self._runner.run_secure(
            self.options.git_binary, args, cwd=cwd, quiet=quiet
        )
        return result.stdout

    async def _resolve_quiet(self, ref: str, cwd: PathLike | None = None) -> str | None:
        """Object name ``ref`` resolves to, or None when it does not exist."""
        if not is_valid_reference(ref):
            return None
        try:
            stdout = await self._git("rev-parse", "--verify", ref, cwd=cwd, quiet=True)
        except CommandError:
            return None
        return stdout.strip() or None

    async def is_valid_git_ref(self, ref: str) -> bool:
        if not is_valid_reference(ref):
            self._logger.debug("Git reference '%s' contains invalid characters", ref)
            return False
        if await self._resolve_quiet(ref) is None:
            self._logger.debug("Git reference '%s' is not valid", ref)
            return False
        self._logger.debug("Git reference '%s' is valid", ref)
        return True

    async def find_previous_release_tag(
        self, current_version: str, tag_pattern: str = "v*"
    ) -> str | None:
        """Highest tag matching ``tag_pattern`` whose version is below ``current_version``.

        The tag is returned exactly as named in the repository, so prefixes such
        as ``working/`` survive. Returns None when nothing qualifies or git fails.
        """
        current = parse_version(current_version)
        if current is None:
            self._logger.warning("Invalid version format: %s", current_version)
            return None

        self._logger.info(
            "Looking for tags matching '%s' below %s", tag_pattern, current_version
        )
        try:
            tags = await self._list_tags_descending(tag_pattern)
        except CommandError as exc:
            self._logger.debug("Error finding previous release tag: %s", exc)
            return None

        if not tags:
            self._logger.warning("No tags found matching pattern '%s'", tag_pattern)
            return None

        best_tag: str | None = None
        best_version: Version | None = None
        valid_tags = 0
        for tag in tags:
            version_text = extract_tag_version(tag)
            if version_text is None:
                self._logger.debug("Skipping tag '%s' (no version suffix)", tag)
                continue
            tag_version = parse_version(version_text)
            if tag_version is None:
                self._logger.debug("Skipping tag '%s' (invalid version %s)", tag, version_text)
                continue
            valid_tags += 1
            if not less_than(tag_version, current):
                self._logger.debug("Skipping tag '%s' (>= %s)", tag, current_version)
                continue
            if best_version is None or greater_than(tag_version, best_version):
                best_tag, best_version = tag, tag_version
                self._logger.debug("New best candidate: %s", tag)

        self._logger.info(
            "Examined %d tags (%d valid), best match below %s: %s",
            len(tags),
            valid_tags,
            current_version,
            best_tag or "none",
        )
        if best_tag is None:
            self._logger.warning(
                "No previous tag found for version %s with pattern '%s'",
                current_version,
                tag_pattern,
            )
        return best_tag

    async def _list_tags_descending(self, tag_pattern: str) -> list[str]:
        try:
            stdout = await self._git(
                "tag", "-l", tag_pattern, "--sort=-version:refname", quiet=True
            )
            return _split_lines(stdout)
        except CommandError as exc:
            # Older git releases reject --sort
            self._logger.info("git tag --sort failed (%s); sorting tags manually", exc)

        stdout = await self._git("tag", "-l", tag_pattern)
        return sorted(_split_lines(stdout), key=cmp_to_key(compare_tags_descending))

    async def get_current_version(self) -> str | None:
        """Version declared in package.json, committed copy first, then working tree."""
        try:
            stdout = await self._git("show", "HEAD:package.json", quiet=True)
            package = validate_package_json(safe_json_parse(stdout, "package.json"), "package.json")
        except (CommandError, ValueError) as exc:
            self._logger.debug("Could not read version from HEAD:package.json: %s", exc)
            return await self._read_working_tree_version()

        if package.version:
            self._logger.debug("Current version from HEAD:package.json: %s", package.version)
        return package.version or None

    async def _read_working_tree_version(self) -> str | None:
        path = self._repo_dir / "package.json"
        try:
            content = await asyncio.to_thread(path.read_text, encoding="utf-8")
            package = validate_package_json(safe_json_parse(content, str(path)), str(path))
        except (OSError, ValueError) as exc:
            self._logger.debug("Error reading current version from %s: %s", path, exc)
            return None
        if package.version:
            self._logger.debug("Current version from %s: %s", path, package.version)
        return package.version or None

    async def get_default_from_ref(
        self, force_main_branch: bool = False, current_branch: str | None = None
    ) -> str:
        """Pick the baseline reference for release notes.

        Order: previous ``working/v*`` tag (only on the working branch), previous
        ``v*`` tag, then main, master, origin/main, origin/master. Raises
        ReferenceResolutionError when none of them resolves.
        """
        self._logger.info(
            "Detecting default from-reference (force_main_branch=%s, current_branch=%s)",
            force_main_branch,
            current_branch,
        )
        if force_main_branch:
            self._logger.info("Forced to use main branch, skipping tag detection")
        else:
            if current_branch == WORKING_BRANCH:
                tag = await self._previous_tag_ref(WORKING_TAG_PATTERN)
                if tag:
                    self._logger.info("Using previous working branch tag '%s'", tag)
                    return tag
                self._logger.warning(
                    "No working branch tag found matching '%s', falling back to release tags",
                    WORKING_TAG_PATTERN,
                )
            else:
                self._logger.debug("Not on '%s' branch, skipping working tag search", WORKING_BRANCH)

            tag = await self._previous_tag_ref("v*")
            if tag:
                self._logger.info("Using previous release tag '%s' as default from-reference", tag)
                return tag

        for candidate in FALLBACK_REFS:
            self._logger.debug("Testing git reference candidate: %s", candidate)
            if await self.is_valid_git_ref(candidate):
                if force_main_branch:
                    self._logger.info("Using '%s' as forced main branch reference", candidate)
                else:
                    self._logger.info(
                        "Using '%s' as fallback from-reference (no previous release tag found)",
                        candidate,
                    )
                return candidate

        tried = "main branch only" if force_main_branch else "previous release tag"
        raise ReferenceResolutionError(
            "Could not find a valid default git reference for --from parameter. "
            "Please specify --from explicitly or check your git repository configuration. "
            f"Tried: {tried}, {', '.join(FALLBACK_REFS)}"
        )

    async def _previous_tag_ref(self, tag_pattern: str) -> str | None:
        try:
            version = await self.get_current_version()
            if not version:
                self._logger.warning("Cannot read version from package.json")
                return None
            tag = await self.find_previous_release_tag(version, tag_pattern)
            if tag is None:
                return None
            if await self.is_valid_git_ref(tag):
                return tag
            self._logger.warning("Tag '%s' exists but is not a valid git reference", tag)
        except (CommandError, OSError, ValueError) as exc:
            self._logger.warning("Error while searching for '%s' tags: %s", tag_pattern, exc)
        return None

    async def get_remote_default_branch(self) -> str | None:
        remote = self.options.default_remote
        try:
            stdout = await self._git("symbolic-ref", f"refs/remotes/{remote}/HEAD", quiet=True)
        except CommandError:
            stdout = ""
        prefix = f"refs/remotes/{remote}/"
        if stdout.strip().startswith(prefix):
            branch = stdout.strip()[len(prefix):]
            self._logger.debug("Remote default branch is: %s", branch)
            return branch

        try:
            stdout = await self._git("ls-remote", "--symref", remote, "HEAD", quiet=True)
        except CommandError as exc:
            self._logger.debug("Failed to get remote default branch: %s", exc)
            return None
        match = _SYMREF_PATTERN.search(stdout)
        if match:
            self._logger.debug("Remote default branch from ls-remote: %s", match.group(1))
            return match.group(1)
        self._logger.debug("Could not determine remote default branch")
        return None

    async def local_branch_exists(self, branch: str, cwd: PathLike | None = None) -> bool:
        exists = await self._resolve_quiet(f"refs/heads/{branch}", cwd=cwd) is not None
        self._logger.debug(
            "Local branch '%s' %s", branch, "exists" if exists else "does not exist"
        )
        return exists

    async def remote_branch_exists(
        self, branch: str, remote: str | None = None, cwd: PathLike | None = None
    ) -> bool:
        remote = remote or self.options.default_remote
        exists = await self._resolve_quiet(f"refs/remotes/{remote}/{branch}", cwd=cwd) is not None
        self._logger.debug(
            "Remote branch '%s/%s' %s", remote, branch, "exists" if exists else "does not exist"
        )
        return exists

    async def get_branch_commit_sha(self, ref: str) -> str:
        if not is_valid_reference(ref):
            raise ValueError(f"Invalid git reference: {ref}")
        return (await self._git("rev-parse", ref)).strip()

    async def get_current_branch(self, cwd: PathLike | None = None) -> str:
        return (await self._git("branch", "--show-current", cwd=cwd)).strip()

    async def is_branch_in_sync_with_remote(
        self, branch: str, remote: str | None = None
    ) -> SyncStatus:
        remote = remote if remote is not None else self.options.default_remote
        if not is_valid_reference(branch):
            return _sync_failure(f"Invalid branch name: {branch}")
        if not is_valid_reference(remote):
            return _sync_failure(f"Invalid remote name: {remote}")

        try:
            await self._git("fetch", remote, "--quiet")
        except CommandError as exc:
            self._logger.debug("Failed to check branch sync for '%s': %s", branch, exc)
            return _sync_failure(f"Failed to check branch sync: {exc}")

        local_exists = await self.local_branch_exists(branch)
        remote_exists = await self.remote_branch_exists(branch, remote)
        if not local_exists:
            return SyncStatus(
                in_sync=False,
                local_exists=False,
                remote_exists=remote_exists,
                error=f"Local branch '{branch}' does not exist",
            )
        if not remote_exists:
            return SyncStatus(
                in_sync=False,
                local_exists=True,
                remote_exists=False,
                error=f"Remote branch '{remote}/{branch}' does not exist",
            )

        try:
            local_sha = await self.get_branch_commit_sha(f"refs/heads/{branch}")
            remote_sha = await self.get_branch_commit_sha(f"refs/remotes/{remote}/{branch}")
        except (CommandError, ValueError) as exc:
            return SyncStatus(
                in_sync=False,
                local_exists=True,
                remote_exists=True,
                error=f"Failed to check branch sync: {exc}",
            )

        in_sync = local_sha == remote_sha
        self._logger.debug(
            "Branch sync check for '%s': local=%s, remote=%s, in_sync=%s",
            branch,
            local_sha[:8],
            remote_sha[:8],
            in_sync,
        )
        return SyncStatus(
            in_sync=in_sync,
            local_sha=local_sha,
            remote_sha=remote_sha,
            local_exists=True,
            remote_exists=True,
        )

    async def safe_sync_branch_with_remote(
        self, branch: str, remote: str | None = None
    ) -> SyncResult:
        """Fast-forward ``branch`` to ``remote/branch`` without losing local work.

        Never switches branches over a dirty working tree and always tries to
        return to the branch that was checked out before the call.
        """
        remote = remote if remote is not None else self.options.default_remote
        if not is_valid_remote_name(remote) or not is_valid_reference(remote):
            return SyncResult(success=False, error=f"Invalid remote name: '{remote}'")
        if not is_valid_reference(branch):
            return SyncResult(success=False, error=f"Invalid branch name: '{branch}'")

        try:
            original_branch = await self.get_current_branch()
            await self._git("fetch", remote, "--quiet")

            local_exists = await self.local_branch_exists(branch)
            remote_exists = await self.remote_branch_exists(branch, remote)
            if not remote_exists:
                return SyncResult(
                    success=False, error=f"Remote branch '{remote}/{branch}' does not exist"
                )
            if not local_exists:
                await self._git("branch", branch, f"{remote}/{branch}")
                self._logger.debug(
                    "Created local branch '%s' tracking '%s/%s'", branch, remote, branch
                )
                return SyncResult(success=True)

            need_switch = original_branch != branch
            # detached HEAD has no branch name to return to
            restore_point = original_branch
            if need_switch and not restore_point:
                restore_point = (await self._git("rev-parse", "HEAD")).strip()
            if need_switch:
                porcelain = await self._git("status", "--porcelain")
                if porcelain.strip():
                    return SyncResult(
                        success=False,
                        error=(
                            f"Cannot switch to branch '{branch}' because you have uncommitted "
                            "changes. Please commit or stash your changes first."
                        ),
                    )
                await self._git("checkout", branch)
        except CommandError as exc:
            return SyncResult(success=False, error=f"Failed to sync branch '{branch}': {exc}")

        try:
            await self._git("pull", remote, branch, "--ff-only")
        except CommandError as exc:
            if need_switch:
                await self._restore_branch(restore_point)
            tool_output = f"{exc.stderr}\n{exc.stdout}"
            if any(marker in tool_output for marker in CONFLICT_MARKERS):
                return SyncResult(
                    success=False,
                    conflict_resolution_required=True,
                    error=(
                        f"Branch '{branch}' has diverged from '{remote}/{branch}' "
                        "and requires manual conflict resolution"
                    ),
                )
            return SyncResult(success=False, error=f"Failed to sync branch '{branch}': {exc}")

        self._logger.debug("Successfully synced '%s' with '%s/%s'", branch, remote, branch)
        if need_switch:
            await self._restore_branch(restore_point)
        return SyncResult(success=True)

    async def _restore_branch(self, ref: str) -> None:
        try:
            await self._git("checkout", ref)
        except CommandError as exc:
            self._logger.warning("Failed to switch back to '%s': %s", ref, exc)

    async def get_git_status_summary(self, working_dir: PathLike | None = None) -> StatusSummary:
        cwd = Path(working_dir) if working_dir else None
        try:
            branch = await self.get_current_branch(cwd=cwd)
            porcelain = await self._git("status", "--porcelain", cwd=cwd)
        except CommandError as exc:
            self._logger.debug("Failed to get git status summary: %s", exc)
            return StatusSummary.failed()

        unstaged, uncommitted = classify_status_lines(porcelain.splitlines())
        unpushed = await self._count_unpushed_commits(branch, cwd)

        parts: list[str] = []
        if unstaged:
            parts.append(f"{unstaged} unstaged")
        if uncommitted:
            parts.append(f"{uncommitted} uncommitted")
        if unpushed:
            parts.append(f"{unpushed} unpushed")

        return StatusSummary(
            branch=branch,
            has_unstaged_files=unstaged > 0,
            has_uncommitted_changes=uncommitted > 0,
            has_unpushed_commits=unpushed > 0,
            unstaged_count=unstaged,
            uncommitted_count=uncommitted,
            unpushed_count=unpushed,
            status=", ".join(parts) if parts else "clean",
        )

    async def _count_unpushed_commits(self, branch: str, cwd: Path | None) -> int:
        remote = self.options.default_remote
        if not branch or not is_valid_reference(branch):
            return 0
        try:
            await self._git("fetch", remote, "--quiet", cwd=cwd, quiet=True)
            if not await self.remote_branch_exists(branch, remote, cwd=cwd):
                return 0
            stdout = await self._git("rev-list", "--count", f"{remote}/{branch}..HEAD", cwd=cwd)
        except CommandError as exc:
            self._logger.debug("Could not check for unpushed commits: %s", exc)
            return 0
        try:
            return int(stdout.strip())
        except ValueError:
            return 0


def _split_lines(stdout: str) -> list[str]:
    return [line.strip() for line in stdout.strip().splitlines() if line.strip()]


def _sync_failure(error: str) -> SyncStatus:
    return SyncStatus(in_sync=False, local_exists=False, remote_exists=False, error=error)
