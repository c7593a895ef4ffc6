"""Exception hierarchy for linerails.

Every fatal condition is a typed exception carrying the offending rule id,
field or raw diagnostic. Wrapping exceptions chain the underlying error
(``raise ... from exc``) and also keep it on ``cause``.
"""

from __future__ import annotations


class LinerailsError(Exception):
    """Base class for all linerails errors."""


# ── Rule construction ─────────────────────────────────────────────────


class RuleBuildError(LinerailsError):
    """A rule could not be constructed from its config."""

    def __init__(self, rule_id: str, message: str):
        super().__init__(message)
        self.rule_id = rule_id


class MissingField(RuleBuildError):
    """A required config field is absent (or empty, for ``pattern``)."""

    def __init__(self, rule_id: str, field: str):
        super().__init__(rule_id, f"rule '{rule_id}': missing required field '{field}'")
        self.field = field


class InvalidRegex(RuleBuildError):
    """The rule's pattern failed to compile as a regular expression."""

    def __init__(self, rule_id: str, cause: Exception):
        super().__init__(rule_id, f"rule '{rule_id}': invalid regex: {cause}")
        self.cause = cause


class FactoryError(LinerailsError):
    """The rule factory could not produce a rule."""


class UnknownRuleType(FactoryError):
    def __init__(self, rule_type: str):
        super().__init__(f"unknown rule type: '{rule_type}'")
        self.rule_type = rule_type


class RuleBuildFailed(FactoryError):
    """Wraps a RuleBuildError raised by a concrete rule constructor."""

    def __init__(self, cause: RuleBuildError):
        super().__init__(str(cause))
        self.cause = cause
        self.rule_id = cause.rule_id


# ── Globs ─────────────────────────────────────────────────────────────


class GlobError(LinerailsError):
    """A glob pattern has invalid syntax."""

    def __init__(self, pattern: str, reason: str):
        super().__init__(f"invalid glob '{pattern}': {reason}")
        self.pattern = pattern
        self.reason = reason


# ── Scan ──────────────────────────────────────────────────────────────


class ScanError(LinerailsError):
    """A scan was aborted. ``cause`` holds the underlying error."""

    prefix = "scan failed"

    def __init__(self, cause: Exception):
        super().__init__(f"{self.prefix}: {cause}")
        self.cause = cause


class ConfigReadError(ScanError):
    prefix = "failed to read config"


class ConfigParseError(ScanError):
    prefix = "failed to parse config"


class GlobParseError(ScanError):
    prefix = "invalid glob pattern"


class RuleFactoryError(ScanError):
    prefix = "failed to build rule"


# ── Git diff ──────────────────────────────────────────────────────────


class GitDiffError(LinerailsError):
    """The diff request failed; no partial result is produced."""


class GitNotFound(GitDiffError):
    def __init__(self):
        super().__init__("git is not installed or not in PATH")


class NotARepo(GitDiffError):
    def __init__(self):
        super().__init__("not inside a git repository")


class BaseRefNotFound(GitDiffError):
    def __init__(self, ref: str):
        super().__init__(f"base ref '{ref}' not found (try fetching it first)")
        self.ref = ref


class CommandFailed(GitDiffError):
    def __init__(self, diagnostic: str):
        super().__init__(f"git command failed: {diagnostic}")
        self.diagnostic = diagnostic
