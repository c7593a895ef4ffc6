"""Type definitions and constants for the linerails scanner."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Colors for terminal output
RED = "\033[0;31m"
YELLOW = "\033[1;33m"
GREEN = "\033[0;32m"
CYAN = "\033[0;36m"
GRAY = "\033[0;90m"
BOLD = "\033[1m"
UNDERLINE = "\033[4m"
NC = "\033[0m"  # No Color


class Severity(str, Enum):
    """Severity attached to a rule and to every violation it produces."""

    ERROR = "error"
    WARNING = "warning"

    @classmethod
    def parse(cls, value: str | None) -> Severity:
        """Map a config string to a Severity. Anything but "error" is a warning."""
        if isinstance(value, Severity):
            return value
        if value and str(value).strip().lower() == "error":
            return cls.ERROR
        return cls.WARNING


@dataclass(frozen=True)
class RuleConfig:
    """Parameters for one rule, as declared in the config file."""

    id: str
    severity: Severity = Severity.WARNING
    message: str = ""
    suggest: str | None = None
    glob: str | None = None
    pattern: str | None = None
    max_count: int | None = None  # ratchet only
    regex: bool = False
    # Kind-specific parameters
    allowed_classes: tuple[str, ...] = ()
    token_map: tuple[str, ...] = ()
    packages: tuple[str, ...] = ()
    manifest: str | None = None


@dataclass(frozen=True)
class ScanContext:
    """The file a rule is looking at: its path and decoded content."""

    file_path: str
    content: str


@dataclass(frozen=True)
class Violation:
    """One reported instance of a rule's condition."""

    rule_id: str
    severity: Severity
    file: str
    message: str
    line: int | None = None  # 1-indexed
    column: int | None = None  # byte offset + 1
    suggest: str | None = None
    source_line: str | None = None
    fix: str | None = None


@dataclass
class ScanResult:
    """Terminal artifact of one scan."""

    violations: list[Violation] = field(default_factory=list)
    files_scanned: int = 0
    rules_loaded: int = 0
    ratchet_counts: dict[str, tuple[int, int]] = field(default_factory=dict)

    @property
    def errors(self) -> list[Violation]:
        return [v for v in self.violations if v.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Violation]:
        return [v for v in self.violations if v.severity is Severity.WARNING]
