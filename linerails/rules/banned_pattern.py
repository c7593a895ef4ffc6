"""Banned pattern rule: every occurrence is a violation, no budget."""

from __future__ import annotations

from ..scanner_types import RuleConfig
from .base import PatternRule, compile_pattern, require_pattern


class BannedPatternRule(PatternRule):
    def __init__(self, config: RuleConfig):
        super().__init__(config)
        self.pattern = require_pattern(config)
        self.compiled_regex = compile_pattern(config, self.pattern)
