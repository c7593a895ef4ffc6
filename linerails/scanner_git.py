"""Git diff support: which lines did a change set touch?

``diff_info(base_ref)`` compares the merge base of ``base_ref`` and HEAD
and returns a DiffInfo mapping each added/copied/modified/renamed file
(path relative to the repository root) to the new-side line ranges that
changed. All git access goes through GitClient so the parsing and ref
resolution can be tested without a repository.
"""

from __future__ import annotations

import logging
import os
import re
import subprocess
from collections.abc import Mapping
from pathlib import Path, PurePath
from types import MappingProxyType

from .errors import BaseRefNotFound, CommandFailed, GitNotFound, NotARepo

logger = logging.getLogger(__name__)

DEFAULT_BASE_REF = "main"
DEFAULT_REMOTE = "origin"

# Checked in order; the first non-empty one wins.
BASE_REF_ENV_VARS = (
    "GITHUB_BASE_REF",                      # GitHub Actions
    "CI_MERGE_REQUEST_TARGET_BRANCH_NAME",  # GitLab CI
    "BITBUCKET_PR_DESTINATION_BRANCH",      # Bitbucket Pipelines
)

HUNK_HEADER_RE = re.compile(r"^@@ -\d+(?:,(\d+))? \+(\d+)(?:,(\d+))? @@")
NEW_FILE_PREFIX = "+++ b/"

LineRange = tuple[int, int]  # inclusive (start, end)


def _path_key(path: str | PurePath) -> str:
    return PurePath(path).as_posix()


class DiffInfo:
    """Changed files and their changed line ranges from one diff."""

    def __init__(self, changed_lines: Mapping[str, list[LineRange]] | None = None):
        self._changed = {
            _path_key(path): list(ranges)
            for path, ranges in (changed_lines or {}).items()
        }

    @property
    def changed_lines(self) -> Mapping[str, list[LineRange]]:
        return MappingProxyType(self._changed)

    @property
    def files(self) -> list[str]:
        return list(self._changed)

    def has_file(self, path: str | PurePath) -> bool:
        return _path_key(path) in self._changed

    def has_line(self, path: str | PurePath, line: int) -> bool:
        """Check if ``line`` falls inside any changed range of ``path``."""
        ranges = self._changed.get(_path_key(path), ())
        return any(start <= line <= end for start, end in ranges)

    def __repr__(self) -> str:
        return f"DiffInfo({self._changed!r})"


def _hunk_counts(match: re.Match) -> tuple[int, int]:
    old_count = int(match.group(1)) if match.group(1) is not None else 1
    new_count = int(match.group(3)) if match.group(3) is not None else 1
    return old_count, new_count


def parse_hunk_header(line: str) -> LineRange | None:
    """Return the new-side range of a hunk header like ``@@ -10,3 +15,4 @@``.

    ``+start,count`` covers ``start..start+count-1``; an omitted count is 1
    and a count of 0 (pure deletion) yields None.
    """
    match = HUNK_HEADER_RE.match(line)
    if not match:
        return None
    start = int(match.group(2))
    _, count = _hunk_counts(match)
    if count == 0:
        return None
    return start, start + count - 1


def parse_diff(diff_text: str) -> DiffInfo:
    """Parse unified diff output (normally ``git diff -U0``) into a DiffInfo.

    Hunk bodies are skipped by their header counts, so an added line that
    happens to start with "++" is never mistaken for a file header.
    """
    changed: dict[str, list[LineRange]] = {}
    current_file = None
    old_left = new_left = 0

    for line in diff_text.splitlines():
        if old_left > 0 or new_left > 0:
            if line.startswith("-"):
                old_left -= 1
                continue
            if line.startswith("+"):
                new_left -= 1
                continue
            if line.startswith(" "):
                old_left -= 1
                new_left -= 1
                continue
            if line.startswith("\\"):  # "\ No newline at end of file"
                continue
            old_left = new_left = 0

        if line.startswith(NEW_FILE_PREFIX):
            current_file = line[len(NEW_FILE_PREFIX):]
            changed.setdefault(current_file, [])
        elif line.startswith("+++ "):
            current_file = None  # "+++ /dev/null"
        elif line.startswith("@@"):
            match = HUNK_HEADER_RE.match(line)
            if not match:
                continue
            old_left, new_left = _hunk_counts(match)
            line_range = parse_hunk_header(line)
            if current_file is not None and line_range is not None:
                changed[current_file].append(line_range)

    return DiffInfo(changed)


def detect_base_ref(environ: Mapping[str, str] | None = None) -> str:
    """Detect the base ref from CI environment variables, falling back to "main"."""
    if environ is None:
        environ = os.environ
    for name in BASE_REF_ENV_VARS:
        value = environ.get(name)
        if value:
            return value
    return DEFAULT_BASE_REF


class GitClient:
    """The four git operations diff_info needs."""

    def __init__(
        self,
        cwd: Path | None = None,
        remote: str = DEFAULT_REMOTE,
        timeout: float | None = None,
    ) -> None:
        self.cwd = cwd
        self.remote = remote
        self.timeout = timeout

    def _run(self, args: list[str]) -> subprocess.CompletedProcess:
        logger.debug("git %s", " ".join(args))
        try:
            return subprocess.run(
                ["git", *args],
                cwd=self.cwd,
                capture_output=True,
                encoding="utf-8",
                errors="replace",
                timeout=self.timeout,
            )
        except FileNotFoundError as exc:
            raise GitNotFound() from exc
        except subprocess.TimeoutExpired as exc:
            raise CommandFailed(f"git {' '.join(args)} timed out") from exc

    def toplevel(self) -> Path:
        """Return the repository root directory."""
        result = self._run(["rev-parse", "--show-toplevel"])
        if result.returncode != 0:
            raise NotARepo()
        return Path(result.stdout.strip())

    def ref_exists(self, ref: str) -> bool:
        try:
            result = self._run(["rev-parse", "--verify", "--quiet", ref])
        except (GitNotFound, CommandFailed):
            return False
        return result.returncode == 0

    def diff(self, base: str) -> str:
        """Zero-context diff of ``base...HEAD`` restricted to A/C/M/R files.

        Prefixes and root-relative paths are pinned so ``diff.noprefix``,
        ``diff.mnemonicPrefix`` or ``diff.relative`` in user config can't
        change the headers parse_diff reads.
        """
        result = self._run([
            "diff", "-U0", "--no-color", "--no-ext-diff",
            "--src-prefix=a/", "--dst-prefix=b/", "--no-relative",
            "--diff-filter=ACMR", f"{base}...HEAD",
        ])
        if result.returncode != 0:
            raise CommandFailed(result.stderr.strip())
        return result.stdout

    def fetch(self, ref: str) -> None:
        """Shallow-fetch ``ref`` from the remote. Failures are only logged."""
        try:
            result = self._run(["fetch", "--depth=1", self.remote, ref])
        except (GitNotFound, CommandFailed) as exc:
            logger.debug("Fetch of %s failed: %s", ref, exc)
            return
        if result.returncode != 0:
            logger.debug("Fetch of %s failed: %s", ref, result.stderr.strip())


def resolve_base_ref(base_ref: str, client: GitClient) -> str:
    """Find a usable form of ``base_ref``.

    Tries the ref itself, then ``<remote>/<ref>``, then fetches the ref
    (shallow clones in CI often lack it) and tries ``<remote>/<ref>`` and
    the bare ref again.
    """
    if client.ref_exists(base_ref):
        return base_ref

    qualified = f"{client.remote}/{base_ref}"
    if client.ref_exists(qualified):
        return qualified

    logger.info("Fetching %s from %s", base_ref, client.remote)
    client.fetch(base_ref)

    if client.ref_exists(qualified):
        return qualified
    if client.ref_exists(base_ref):
        return base_ref

    raise BaseRefNotFound(base_ref)


def diff_info(base_ref: str, client: GitClient | None = None) -> DiffInfo:
    """Diff HEAD against the merge base with ``base_ref``.

    Raises:
        GitNotFound, NotARepo, BaseRefNotFound, CommandFailed
    """
    client = client or GitClient()
    client.toplevel()
    effective_base = resolve_base_ref(base_ref, client)
    logger.debug("Diffing against %s", effective_base)
    return parse_diff(client.diff(effective_base))
