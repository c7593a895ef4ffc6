"""
linerails - rule-driven line scanner driven by linerails.yaml

Pipeline for one scan:
1. Load the config (rules + global excludes)
2. Compile the exclude globs and build every rule (first failure aborts)
3. Walk the targets, skipping excluded paths
4. Run each applicable rule on each readable file
5. Fold ratchet rules: under budget, their violations are dropped
"""

from __future__ import annotations

import logging
import os
from collections import Counter
from collections.abc import Iterable, Sequence
from dataclasses import replace
from pathlib import Path

from .config import load_config
from .errors import FactoryError, GlobError, GlobParseError, RuleFactoryError
from .rules import Rule, build_rule
from .scanner_git import DiffInfo
from .scanner_types import RuleConfig, ScanResult, Violation
from .scanner_utils import GlobSet, matches_pattern

logger = logging.getLogger(__name__)

LoadedRule = tuple[Rule, GlobSet | None]


def build_exclude_set(patterns: Iterable[str]) -> GlobSet:
    try:
        return GlobSet(patterns)
    except GlobError as exc:
        raise GlobParseError(exc) from exc


def build_rules(declared: Sequence[tuple[str, RuleConfig]]) -> list[LoadedRule]:
    """Build every declared rule and compile its glob once.

    The first failure aborts: no partial rule set is returned.
    """
    rules: list[LoadedRule] = []
    for rule_type, rule_config in declared:
        try:
            rule = build_rule(rule_type, rule_config)
        except FactoryError as exc:
            raise RuleFactoryError(exc) from exc

        rule_glob = None
        if rule.glob:
            try:
                rule_glob = GlobSet([rule.glob])
            except GlobError as exc:
                raise GlobParseError(exc) from exc
        rules.append((rule, rule_glob))
    return rules


def collect_files(target_paths: Iterable[str | Path], exclude: GlobSet) -> list[Path]:
    """Enumerate files to scan, in a stable order.

    A target naming a file is always included, excludes don't apply to an
    explicit choice. Directory targets are walked recursively (sorted) and
    each file's path relative to the target is tested against ``exclude``.
    """
    files: list[Path] = []
    for target in target_paths:
        target = Path(target)
        if target.is_file():
            files.append(target)
            continue
        if not target.is_dir():
            logger.debug("SKIP %s (not found)", target)
            continue

        for dirpath, dirnames, filenames in os.walk(target):
            dirnames.sort()
            base = Path(dirpath)
            for name in sorted(filenames):
                path = base / name
                if exclude.patterns and exclude.is_match(path.relative_to(target)):
                    logger.debug("SKIP %s (excluded)", path)
                    continue
                if path.is_file():
                    files.append(path)
    return files


def read_source(path: Path) -> str | None:
    """Return the file's UTF-8 text, or None if it can't be read as text.

    Line endings are left as stored; only "\\n" separates lines.
    """
    try:
        return path.read_bytes().decode("utf-8")
    except (OSError, UnicodeDecodeError) as e:
        logger.debug("SKIP %s (read error: %s)", path, e)
        return None


def _rule_applies(rule_glob: GlobSet | None, path: Path) -> bool:
    return rule_glob is None or matches_pattern(path, rule_glob)


def resolve_ratchets(
    violations: list[Violation], rules: Iterable[Rule],
) -> tuple[list[Violation], dict[str, tuple[int, int]]]:
    """Apply the ratchet gate across the whole scan.

    For each ratchet rule, ``found`` is its total violation count. Within
    budget (found <= max_count) every violation of that rule is removed;
    over budget every one is kept. Each ratchet rule gets a (found, max)
    entry, zero counts included.
    """
    totals = Counter(v.rule_id for v in violations)
    counts: dict[str, tuple[int, int]] = {}
    suppressed: set[str] = set()

    for rule in rules:
        if not rule.is_ratchet:
            continue
        found = totals[rule.id]
        counts[rule.id] = (found, rule.max_count)
        if found <= rule.max_count:
            suppressed.add(rule.id)

    if suppressed:
        violations = [v for v in violations if v.rule_id not in suppressed]
    return violations, counts


def scan_paths(
    rules: Sequence[LoadedRule],
    exclude: GlobSet,
    target_paths: Iterable[str | Path],
) -> ScanResult:
    """Scan ``target_paths`` with an already-built rule set."""
    violations: list[Violation] = []
    files_scanned = 0

    for path in collect_files(target_paths, exclude):
        content = read_source(path)
        if content is None:
            continue
        files_scanned += 1

        for rule, rule_glob in rules:
            if not _rule_applies(rule_glob, path):
                continue
            violations.extend(rule.check(path, content))

    violations, ratchet_counts = resolve_ratchets(violations, (r for r, _ in rules))
    logger.debug(
        "Scanned %d file(s) with %d rule(s): %d violation(s)",
        files_scanned, len(rules), len(violations),
    )
    return ScanResult(
        violations=violations,
        files_scanned=files_scanned,
        rules_loaded=len(rules),
        ratchet_counts=ratchet_counts,
    )


def run_scan(config_path: str | Path, target_paths: Iterable[str | Path]) -> ScanResult:
    """Run a full scan: load config, build rules, walk files, collect violations.

    Raises a ScanError subclass (ConfigReadError, ConfigParseError,
    GlobParseError, RuleFactoryError) with the underlying error chained.
    """
    config = load_config(config_path)
    exclude = build_exclude_set(config.exclude)
    rules = build_rules(config.rules)
    return scan_paths(rules, exclude, target_paths)


def filter_to_diff(result: ScanResult, diff: DiffInfo, repo_root: Path) -> ScanResult:
    """Keep only violations on lines changed in ``diff``.

    Violation paths are made relative to ``repo_root`` to match the diff.
    Violations without a line number are kept when their file changed.
    Counts and the ratchet summary are left as scanned.
    """
    root = repo_root.resolve()
    kept = []
    for v in result.violations:
        try:
            rel = Path(v.file).resolve().relative_to(root)
        except ValueError:
            continue
        if v.line is None:
            if diff.has_file(rel):
                kept.append(v)
        elif diff.has_line(rel, v.line):
            kept.append(v)
    return replace(result, violations=kept)
