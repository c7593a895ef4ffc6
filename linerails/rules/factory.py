"""Build rule instances from a type tag and a RuleConfig."""

from __future__ import annotations

import logging
from collections.abc import Callable

from ..errors import RuleBuildError, RuleBuildFailed, UnknownRuleType
from ..scanner_types import RuleConfig
from .banned_pattern import BannedPatternRule
from .base import Rule
from .ratchet import RatchetRule

logger = logging.getLogger(__name__)

RuleConstructor = Callable[[RuleConfig], Rule]

# Type tag (the ``type`` key in the config file) -> constructor
RULE_TYPES: dict[str, RuleConstructor] = {
    "ratchet": RatchetRule,
    "banned-pattern": BannedPatternRule,
}


def register_rule_type(rule_type: str, constructor: RuleConstructor) -> None:
    """Make ``rule_type`` buildable. Re-registering a tag replaces it."""
    if rule_type in RULE_TYPES:
        logger.debug("Replacing rule type %s", rule_type)
    RULE_TYPES[rule_type] = constructor


def build_rule(rule_type: str, config: RuleConfig) -> Rule:
    """Build a rule instance.

    Raises:
        UnknownRuleType: no constructor is registered for ``rule_type``.
        RuleBuildFailed: the constructor rejected the config; the underlying
            RuleBuildError is chained and kept on ``cause``.
    """
    constructor = RULE_TYPES.get(rule_type)
    if constructor is None:
        raise UnknownRuleType(rule_type)
    try:
        return constructor(config)
    except RuleBuildError as exc:
        raise RuleBuildFailed(exc) from exc
