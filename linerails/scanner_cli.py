"""Report rendering for linerails scan results."""

import json
import logging

from .scanner_types import (
    BOLD,
    CYAN,
    GRAY,
    GREEN,
    NC,
    RED,
    UNDERLINE,
    YELLOW,
    ScanResult,
    Severity,
    Violation,
)

logger = logging.getLogger(__name__)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'' if count == 1 else 's'}"


def _location(v: Violation) -> str:
    if v.line is None:
        return "1:1"
    return f"{v.line}:{v.column or 1}"


def _show_ratchet_summary(ratchet_counts: dict[str, tuple[int, int]]) -> None:
    if not ratchet_counts:
        return
    logger.info(f"\n{BOLD}Ratchet rules:{NC}")
    for rule_id in sorted(ratchet_counts):
        found, max_count = ratchet_counts[rule_id]
        if found <= max_count:
            status = f"{GREEN}✓ pass{NC} ({found}/{max_count})"
        else:
            status = f"{RED}✗ OVER{NC} ({found}/{max_count})"
        logger.info(f"  {rule_id:<30} {status}")


def report_pretty(result: ScanResult) -> None:
    """Print violations grouped by file, then totals and the ratchet summary."""
    stats = f"{result.files_scanned} files scanned, {result.rules_loaded} rules loaded"

    if not result.violations:
        logger.info(f"{GREEN}✓{NC} No violations found ({stats})")
        _show_ratchet_summary(result.ratchet_counts)
        return

    by_file: dict[str, list[Violation]] = {}
    for v in result.violations:
        by_file.setdefault(v.file, []).append(v)

    for file in sorted(by_file):
        logger.info(f"\n{UNDERLINE}{file}{NC}")
        for v in by_file[file]:
            if v.severity is Severity.ERROR:
                level = f"{RED}error{NC}"
            else:
                level = f"{YELLOW}warn {NC}"
            logger.info(
                f"  {GRAY}{_location(v):<8}{NC} {level} {GRAY}{v.rule_id:<25}{NC} {v.message}"
            )
            if v.source_line is not None:
                logger.info(f"           {GRAY}│{NC} {v.source_line.strip()}")
            if v.suggest:
                logger.info(f"           {GRAY}└─{NC} {CYAN}{v.suggest}{NC}")

    parts = []
    if result.errors:
        parts.append(f"{RED}{_plural(len(result.errors), 'error')}{NC}{BOLD}")
    if result.warnings:
        parts.append(f"{YELLOW}{_plural(len(result.warnings), 'warning')}{NC}{BOLD}")
    logger.info(f"\n{BOLD}{', '.join(parts)} ({stats}){NC}")

    _show_ratchet_summary(result.ratchet_counts)


def result_to_dict(result: ScanResult) -> dict:
    """Structured form of a ScanResult, as emitted by ``--format json``."""
    return {
        "violations": [
            {
                "rule_id": v.rule_id,
                "severity": v.severity.value,
                "file": v.file,
                "line": v.line,
                "column": v.column,
                "message": v.message,
                "suggest": v.suggest,
                "source_line": v.source_line,
            }
            for v in result.violations
        ],
        "summary": {
            "total": len(result.violations),
            "errors": len(result.errors),
            "warnings": len(result.warnings),
            "files_scanned": result.files_scanned,
            "rules_loaded": result.rules_loaded,
        },
        "ratchet": {
            rule_id: {"found": found, "max": max_count, "pass": found <= max_count}
            for rule_id, (found, max_count) in sorted(result.ratchet_counts.items())
        },
    }


def report_json(result: ScanResult) -> None:
    print(json.dumps(result_to_dict(result), indent=2, ensure_ascii=False))


REPORTERS = {
    "pretty": report_pretty,
    "json": report_json,
}
