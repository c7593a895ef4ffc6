"""Glob compilation for excludes and per-rule file targeting.

Globs are translated to regular expressions once and matched against
"/"-separated path strings:

- ``*`` and ``?`` also match "/" (``*.ts`` matches ``src/app.ts``)
- ``**/`` at the start or after "/" matches zero or more directories
- a trailing ``/**`` matches everything below a directory
- ``[abc]``, ``[a-z]`` and ``[!abc]`` are character classes
- ``{a,b}`` is an alternation (not nestable)
- ``\\`` escapes the next character
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from pathlib import PurePath

from .errors import GlobError

# Characters that need escaping inside a regex character class
_CLASS_SPECIALS = set("\\[]^&~|")


def _translate_class(pattern: str, start: int) -> tuple[str, int]:
    """Translate the ``[...]`` class opening at ``start``; return (regex, next index)."""
    n = len(pattern)
    j = start + 1
    negate = j < n and pattern[j] in "!^"
    if negate:
        j += 1
    body_start = j
    if j < n and pattern[j] == "]":
        j += 1
    while j < n and pattern[j] != "]":
        j += 1
    if j >= n:
        raise GlobError(pattern, "unclosed character class")

    body = "".join(
        "\\" + ch if ch in _CLASS_SPECIALS else ch
        for ch in pattern[body_start:j]
    )
    return ("[^" if negate else "[") + body + "]", j + 1


def translate_glob(pattern: str) -> str:
    """Translate a glob into an (unanchored) regular expression string."""
    out: list[str] = []
    n = len(pattern)
    i = 0
    in_alt = False

    while i < n:
        c = pattern[i]
        if c == "*":
            if pattern.startswith("**", i):
                j = i + 2
                prev = pattern[i - 1] if i else "/"
                at_start = prev == "/" or (in_alt and prev in "{,")
                if at_start and j < n and pattern[j] == "/":
                    out.append("(?:.*/)?")
                    i = j + 1
                    continue
                out.append(".*")
                i = j
                continue
            out.append(".*")
        elif c == "?":
            out.append(".")
        elif c == "[":
            regex, i = _translate_class(pattern, i)
            out.append(regex)
            continue
        elif c == "{":
            if in_alt:
                raise GlobError(pattern, "nested alternate groups are not allowed")
            in_alt = True
            out.append("(?:")
        elif c == "}":
            if not in_alt:
                raise GlobError(pattern, "unopened alternate group")
            in_alt = False
            out.append(")")
        elif c == "," and in_alt:
            out.append("|")
        elif c == "\\":
            if i + 1 >= n:
                raise GlobError(pattern, "dangling '\\'")
            out.append(re.escape(pattern[i + 1]))
            i += 2
            continue
        else:
            out.append(re.escape(c))
        i += 1

    if in_alt:
        raise GlobError(pattern, "unclosed alternate group")
    return "".join(out)


def compile_glob(pattern: str) -> re.Pattern:
    """Compile a glob to a regex that must match the whole path."""
    return re.compile(translate_glob(pattern), re.DOTALL)


def _as_glob_path(path: str | PurePath) -> str:
    if isinstance(path, PurePath):
        return path.as_posix()
    return path


class GlobSet:
    """A set of compiled globs; a path matches if any member matches."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = list(patterns)
        self._compiled = [compile_glob(p) for p in self.patterns]

    def is_match(self, path: str | PurePath) -> bool:
        text = _as_glob_path(path)
        return any(regex.fullmatch(text) for regex in self._compiled)

    def __len__(self) -> int:
        return len(self._compiled)

    def __repr__(self) -> str:
        return f"GlobSet({self.patterns!r})"


def matches_pattern(filepath: str | PurePath, glob: GlobSet) -> bool:
    """Check a file against a rule glob: the full path or the bare filename."""
    text = _as_glob_path(filepath)
    return glob.is_match(text) or glob.is_match(PurePath(text).name)
