"""Ratchet rule: count pattern occurrences against an allowed budget."""

from __future__ import annotations

from ..errors import MissingField
from ..scanner_types import RuleConfig
from .base import PatternRule, compile_pattern, require_pattern


class RatchetRule(PatternRule):
    """Counts literal or regex occurrences of ``pattern`` across the scan.

    Every match is reported as a violation. The scanner post-processes the
    whole run: if the total stays within ``max_count`` all of this rule's
    violations are dropped, otherwise every one of them is kept. A budget of
    0 means zero tolerance.
    """

    def __init__(self, config: RuleConfig):
        super().__init__(config)
        self.pattern = require_pattern(config)
        if config.max_count is None:
            raise MissingField(config.id, "max_count")
        self.max_count = int(config.max_count)
        self.compiled_regex = compile_pattern(config, self.pattern)
