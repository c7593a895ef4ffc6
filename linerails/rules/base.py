"""Rule contract and the shared literal/regex line matcher."""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

from ..errors import InvalidRegex, MissingField
from ..scanner_types import RuleConfig, ScanContext, Violation


class Rule:
    """Base class every rule kind derives from.

    A rule is built once per scan and must not keep per-file state:
    ``check`` depends only on the rule's own config and the given content,
    so the same instance can be evaluated for many files in any order.

    ``max_count`` is None for ordinary rules. Ratchet rules set it to their
    budget and the scanner folds their violations after all files are seen.
    """

    max_count: int | None = None

    def __init__(self, config: RuleConfig):
        self.id = config.id
        self.severity = config.severity
        self.message = config.message
        self.suggest = config.suggest
        self.glob = config.glob

    @property
    def is_ratchet(self) -> bool:
        return self.max_count is not None

    def check(self, file_path: str | Path, content: str) -> list[Violation]:
        return self.check_file(ScanContext(file_path=str(file_path), content=content))

    def check_file(self, ctx: ScanContext) -> list[Violation]:
        raise NotImplementedError(f"{type(self).__name__} must implement check_file()")

    def _violation(
        self, ctx: ScanContext, line_no: int, column: int, source_line: str,
    ) -> Violation:
        return Violation(
            rule_id=self.id,
            severity=self.severity,
            file=ctx.file_path,
            line=line_no,
            column=column,
            message=self.message,
            suggest=self.suggest,
            source_line=source_line,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(id={self.id!r}, severity={self.severity.value!r})"


def require_pattern(config: RuleConfig) -> str:
    """Return the config's pattern, rejecting a missing or empty one."""
    if not config.pattern:
        raise MissingField(config.id, "pattern")
    return config.pattern


def compile_pattern(config: RuleConfig, pattern: str) -> re.Pattern | None:
    """Compile ``pattern`` when the rule is in regex mode, else None."""
    if not config.regex:
        return None
    try:
        return re.compile(pattern)
    except re.error as exc:
        raise InvalidRegex(config.id, exc) from exc


def iter_lines(content: str) -> Iterator[tuple[int, str]]:
    """Yield (1-based line number, line) without line terminators.

    Splits on "\\n" only and strips one trailing "\\r". A final terminator
    does not start an extra empty line.
    """
    if not content:
        return
    lines = content.split("\n")
    if lines[-1] == "":
        lines.pop()
    for i, line in enumerate(lines, 1):
        yield i, line[:-1] if line.endswith("\r") else line


def byte_column(line: str, index: int) -> int:
    """1-based column of ``line[index]``, counted in UTF-8 bytes."""
    if line.isascii():
        return index + 1
    return len(line[:index].encode("utf-8")) + 1


class PatternRule(Rule):
    """A rule that reports every occurrence of a literal or regex pattern.

    Literal mode scans each line left to right and resumes just past the end
    of each match, so overlapping repeats are counted once ("aa" in "aaa"
    matches once). Regex mode reports every non-overlapping match. The mode
    is fixed at construction.
    """

    pattern: str
    compiled_regex: re.Pattern | None = None

    @property
    def is_regex(self) -> bool:
        return self.compiled_regex is not None

    def find_columns(self, line: str) -> Iterator[int]:
        """Yield the 0-based character index of each match in ``line``."""
        if self.compiled_regex is not None:
            for match in self.compiled_regex.finditer(line):
                yield match.start()
            return

        step = len(self.pattern)
        pos = line.find(self.pattern)
        while pos != -1:
            yield pos
            pos = line.find(self.pattern, pos + step)

    def check_file(self, ctx: ScanContext) -> list[Violation]:
        violations = []
        for line_no, line in iter_lines(ctx.content):
            for index in self.find_columns(line):
                violations.append(
                    self._violation(ctx, line_no, byte_column(line, index), line)
                )
        return violations


__all__ = [
    "PatternRule",
    "Rule",
    "byte_column",
    "compile_pattern",
    "iter_lines",
    "require_pattern",
]
