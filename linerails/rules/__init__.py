"""Rule kinds and the factory that builds them from config."""

from .banned_pattern import BannedPatternRule
from .base import PatternRule, Rule
from .factory import RULE_TYPES, build_rule, register_rule_type
from .ratchet import RatchetRule

__all__ = [
    "BannedPatternRule",
    "PatternRule",
    "RULE_TYPES",
    "RatchetRule",
    "Rule",
    "build_rule",
    "register_rule_type",
]
