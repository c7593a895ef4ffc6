"""
linerails config loading with extends/inheritance support.

Config files are YAML:

    extends: ./base.yaml            # optional, str or list of local files
    guardrails:
      name: my-project
      exclude: ["**/node_modules/**"]
    rules:
      - id: no-legacy-fetch
        type: ratchet
        pattern: "legacyFetch("
        max_count: 47

Parents listed in ``extends`` are merged first, then the child on top
(dicts merge recursively, lists are concatenated, scalars override).
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

import yaml

from .errors import ConfigParseError, ConfigReadError
from .scanner_types import RuleConfig, Severity

logger = logging.getLogger(__name__)

MAX_CONFIG_BYTES = 1_000_000  # 1MB
MAX_YAML_ALIASES = 100

CONFIG_ENV_VAR = "LINERAILS_CONFIG"
DEFAULT_CONFIG_NAMES = (
    Path("linerails.yaml"),
    Path("config/linerails.yaml"),
)


@dataclass
class LinerailsConfig:
    """A validated config: global excludes plus rules in declaration order."""

    name: str | None = None
    include: list[str] = field(default_factory=list)
    exclude: list[str] = field(default_factory=list)
    rules: list[tuple[str, RuleConfig]] = field(default_factory=list)


def safe_yaml_load(stream):
    """yaml.safe_load replacement with alias bomb protection."""
    class _Loader(yaml.SafeLoader):
        def compose_node(self, parent, index):
            if self.check_event(yaml.AliasEvent):
                count = getattr(self, "_alias_count", 0) + 1
                if count > MAX_YAML_ALIASES:
                    raise yaml.YAMLError(
                        f"YAML alias limit exceeded (max {MAX_YAML_ALIASES})"
                    )
                self._alias_count = count
            return super().compose_node(parent, index)
    return yaml.load(stream, Loader=_Loader)


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge two dicts. Override wins for conflicts.

    Lists are extended instead of replaced, so a child config adds rules
    and excludes to its parents'.
    """
    result = base.copy()

    for key, value in override.items():
        if key in result:
            if isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = deep_merge(result[key], value)
            elif isinstance(result[key], list) and isinstance(value, list):
                result[key] = result[key] + value
            else:
                result[key] = value
        else:
            result[key] = value

    return result


def _read_yaml(config_path: Path) -> dict:
    try:
        if config_path.stat().st_size > MAX_CONFIG_BYTES:
            raise ConfigReadError(ValueError(f"config file too large: {config_path}"))
        text = config_path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as exc:
        raise ConfigReadError(exc) from exc

    try:
        data = safe_yaml_load(text)
    except yaml.YAMLError as exc:
        raise ConfigParseError(exc) from exc

    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ConfigParseError(
            ValueError(f"{config_path}: top level must be a mapping")
        )
    return data


def load_extended_config(
    config_path: Path,
    seen_paths: set[str] | None = None,
) -> dict:
    """Load a config file as a dict with ``extends`` resolved.

    Args:
        config_path: Path to the config file
        seen_paths: Already-loaded paths (circular reference detection)
    """
    if seen_paths is None:
        seen_paths = set()

    path_key = str(config_path.resolve())
    if path_key in seen_paths:
        logger.warning("Circular config reference ignored: %s", config_path)
        return {}
    seen_paths.add(path_key)

    config = _read_yaml(config_path)

    extends = config.pop("extends", None)
    if not extends:
        return config
    if isinstance(extends, str):
        extends = [extends]
    if not isinstance(extends, list):
        raise ConfigParseError(
            ValueError(f"{config_path}: 'extends' must be a string or a list")
        )

    merged: dict = {}
    for parent_ref in extends:
        parent_path = Path(str(parent_ref))
        if not parent_path.is_absolute():
            parent_path = config_path.parent / parent_path
        logger.debug("Extending %s with %s", config_path, parent_path)
        merged = deep_merge(merged, load_extended_config(parent_path, seen_paths.copy()))

    return deep_merge(merged, config)


def _string_list(value, where: str) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if not isinstance(value, list) or not all(isinstance(v, str) for v in value):
        raise ValueError(f"{where}: expected a list of strings")
    return list(value)


def _optional_str(entry: dict, key: str, where: str) -> str | None:
    value = entry.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise ValueError(f"{where}: '{key}' must be a string")
    return value


def _parse_max_count(value, where: str) -> int | None:
    if value is None:
        return None
    if isinstance(value, bool) or not isinstance(value, int) or value < 0:
        raise ValueError(f"{where}: 'max_count' must be a non-negative integer")
    return value


def _parse_flag(value, key: str, where: str) -> bool:
    if value is None:
        return False
    if not isinstance(value, bool):
        raise ValueError(f"{where}: '{key}' must be true or false")
    return value


def parse_rule(entry, index: int) -> tuple[str, RuleConfig]:
    """Convert one ``rules:`` entry to (rule type, RuleConfig)."""
    where = f"rules[{index}]"
    if not isinstance(entry, dict):
        raise ValueError(f"{where}: expected a mapping")

    rule_id = entry.get("id")
    if not isinstance(rule_id, str) or not rule_id:
        raise ValueError(f"{where}: missing 'id'")
    where = f"{where} ({rule_id})"

    rule_type = entry.get("type")
    if not isinstance(rule_type, str) or not rule_type:
        raise ValueError(f"{where}: missing 'type'")

    pattern = entry.get("pattern")
    if pattern is not None and not isinstance(pattern, str):
        # Numbers and booleans are legal YAML scalars; match their text.
        pattern = str(pattern)

    return rule_type, RuleConfig(
        id=rule_id,
        severity=Severity.parse(entry.get("severity")),
        message=str(entry.get("message") or ""),
        suggest=_optional_str(entry, "suggest", where),
        glob=_optional_str(entry, "glob", where),
        pattern=pattern,
        max_count=_parse_max_count(entry.get("max_count"), where),
        regex=_parse_flag(entry.get("regex"), "regex", where),
        allowed_classes=tuple(_string_list(entry.get("allowed_classes"), where)),
        token_map=tuple(_string_list(entry.get("token_map"), where)),
        packages=tuple(_string_list(entry.get("packages"), where)),
        manifest=_optional_str(entry, "manifest", where),
    )


def _parse_rules(entries: list) -> list[tuple[str, RuleConfig]]:
    parsed = []
    seen: set[str] = set()
    for i, entry in enumerate(entries):
        rule_type, rule_config = parse_rule(entry, i)
        if rule_config.id in seen:
            raise ValueError(f"rules[{i}]: duplicate rule id '{rule_config.id}'")
        seen.add(rule_config.id)
        parsed.append((rule_type, rule_config))
    return parsed


def parse_config(data: dict) -> LinerailsConfig:
    """Validate a loaded config dict. Raises ConfigParseError on bad shapes."""
    try:
        section = data.get("guardrails") or {}
        if not isinstance(section, dict):
            raise ValueError("'guardrails' must be a mapping")
        rules = data.get("rules") or []
        if not isinstance(rules, list):
            raise ValueError("'rules' must be a list")

        return LinerailsConfig(
            name=section.get("name"),
            include=_string_list(section.get("include"), "guardrails.include"),
            exclude=_string_list(section.get("exclude"), "guardrails.exclude"),
            rules=_parse_rules(rules),
        )
    except ValueError as exc:
        raise ConfigParseError(exc) from exc


def load_config(config_path: Path | str) -> LinerailsConfig:
    """Load and validate a config file.

    Raises:
        ConfigReadError: the file (or a parent it extends) can't be read.
        ConfigParseError: malformed YAML or an invalid structure.
    """
    config_path = Path(config_path)
    if not config_path.is_file():
        raise ConfigReadError(FileNotFoundError(f"config not found: {config_path}"))
    return parse_config(load_extended_config(config_path))


def find_config() -> Path | None:
    """Locate a config file: $LINERAILS_CONFIG, then the default names."""
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    for path in DEFAULT_CONFIG_NAMES:
        if path.exists():
            return path
    return None
