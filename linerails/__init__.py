"""
linerails - Pattern guardrails that ratchet down existing debt.

A YAML-driven, line-oriented rule scanner with budgeted ("ratchet") rules
and git-diff scoping for CI.
"""

__version__ = "0.3.0"

from .errors import LinerailsError, ScanError
from .rules import RatchetRule, Rule, build_rule
from .scanner import run_scan, scan_paths
from .scanner_git import DiffInfo, detect_base_ref, diff_info, parse_diff
from .scanner_types import RuleConfig, ScanResult, Severity, Violation

__all__ = [
    "run_scan",
    "scan_paths",
    "build_rule",
    "Rule",
    "RatchetRule",
    "RuleConfig",
    "Severity",
    "Violation",
    "ScanResult",
    "DiffInfo",
    "diff_info",
    "parse_diff",
    "detect_base_ref",
    "LinerailsError",
    "ScanError",
    "__version__",
]
