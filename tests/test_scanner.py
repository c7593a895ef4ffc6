"""Tests for the linerails scan pipeline."""

from pathlib import Path

import pytest

from linerails import run_scan
from linerails.errors import (
    ConfigParseError,
    ConfigReadError,
    GlobParseError,
    MissingField,
    RuleBuildFailed,
    RuleFactoryError,
    ScanError,
    UnknownRuleType,
)
from linerails.rules import RatchetRule
from linerails.scanner import (
    build_exclude_set,
    build_rules,
    collect_files,
    filter_to_diff,
    resolve_ratchets,
    scan_paths,
)
from linerails.scanner_git import DiffInfo
from linerails.scanner_types import RuleConfig, Severity, Violation
from linerails.scanner_utils import GlobSet

TODO_CONFIG = """
guardrails:
  name: test
rules:
  - id: todo-ratchet
    type: ratchet
    severity: error
    pattern: TODO
    max_count: {max_count}
    message: TODO comments are being paid down
"""


@pytest.fixture
def project(tmp_path):
    """A small source tree with a node_modules directory and a binary file."""
    src = tmp_path / "src"
    (src / "components").mkdir(parents=True)
    (src / "app.ts").write_text("// TODO fix this TODO and that TODO\n")
    (src / "components" / "Button.tsx").write_text("const a = 1;\n// TODO style\n")
    (src / "util.py").write_text("# nothing to see\n")
    (src / "node_modules" / "pkg").mkdir(parents=True)
    (src / "node_modules" / "pkg" / "index.js").write_text("// TODO vendored\n")
    (src / "logo.png").write_bytes(b"\x89PNG\r\n\x1a\n\xff\xfe\x00TODO")
    return src


def ratchet(rule_id: str, max_count: int, pattern: str = "TODO", **kwargs) -> RatchetRule:
    return RatchetRule(RuleConfig(id=rule_id, pattern=pattern, max_count=max_count, **kwargs))


def violation(rule_id: str, file: str = "a.ts", line: int = 1) -> Violation:
    return Violation(
        rule_id=rule_id, severity=Severity.ERROR, file=file, message="m", line=line, column=1,
    )


# ============================================
# File discovery
# ============================================

class TestCollectFiles:

    def test_walks_directory_in_sorted_order(self, project):
        files = collect_files([project], GlobSet())
        rel = [f.relative_to(project).as_posix() for f in files]
        # files of a directory first, then its subdirectories
        assert rel == [
            "app.ts",
            "logo.png",
            "util.py",
            "components/Button.tsx",
            "node_modules/pkg/index.js",
        ]

    def test_discovery_is_stable(self, project):
        first = collect_files([project], GlobSet())
        assert collect_files([project], GlobSet()) == first

    def test_exclude_uses_path_relative_to_target(self, project):
        files = collect_files([project], GlobSet(["**/node_modules/**"]))
        assert not any("node_modules" in f.as_posix() for f in files)
        assert len(files) == 4

    def test_exclude_not_anchored_to_cwd(self, project):
        # "src/" is part of the target, not of the relative path
        files = collect_files([project], GlobSet(["src/**"]))
        assert len(files) == 5

    def test_explicit_file_ignores_excludes(self, project):
        target = project / "node_modules" / "pkg" / "index.js"
        files = collect_files([target], GlobSet(["**/node_modules/**"]))
        assert files == [target]

    def test_targets_keep_their_order(self, project):
        files = collect_files([project / "util.py", project / "app.ts"], GlobSet())
        assert [f.name for f in files] == ["util.py", "app.ts"]

    def test_missing_target_skipped(self, tmp_path):
        assert collect_files([tmp_path / "nope"], GlobSet()) == []


# ============================================
# Ratchet resolution
# ============================================

class TestResolveRatchets:

    def test_under_budget_suppressed(self):
        violations = [violation("r"), violation("r")]
        kept, counts = resolve_ratchets(violations, [ratchet("r", 5)])
        assert kept == []
        assert counts == {"r": (2, 5)}

    def test_at_budget_suppressed(self):
        kept, counts = resolve_ratchets([violation("r")] * 3, [ratchet("r", 3)])
        assert kept == []
        assert counts["r"] == (3, 3)

    def test_over_budget_keeps_all(self):
        violations = [violation("r", line=i) for i in range(1, 5)]
        kept, counts = resolve_ratchets(violations, [ratchet("r", 3)])
        assert kept == violations
        assert counts["r"] == (4, 3)

    def test_zero_count_recorded(self):
        kept, counts = resolve_ratchets([], [ratchet("r", 0)])
        assert kept == []
        assert counts == {"r": (0, 0)}

    def test_zero_tolerance(self):
        kept, counts = resolve_ratchets([violation("r")], [ratchet("r", 0)])
        assert len(kept) == 1
        assert counts["r"] == (1, 0)

    def test_other_rules_untouched(self):
        banned = violation("banned")
        violations = [violation("r"), banned, violation("r")]
        kept, counts = resolve_ratchets(violations, [ratchet("r", 10)])
        assert kept == [banned]
        assert "banned" not in counts

    def test_order_preserved_when_over_budget(self):
        violations = [violation("r", "a.ts"), violation("x", "a.ts"), violation("r", "b.ts")]
        kept, _ = resolve_ratchets(violations, [ratchet("r", 1)])
        assert kept == violations


# ============================================
# scan_paths / run_scan
# ============================================

class TestScanPaths:

    def test_end_to_end_under_budget(self, tmp_path):
        (tmp_path / "a.ts").write_text("// TODO fix this TODO and that TODO")
        rules = build_rules([("ratchet", RuleConfig(id="rule-id", pattern="TODO", max_count=5))])
        result = scan_paths(rules, GlobSet(), [tmp_path])
        assert result.violations == []
        assert result.ratchet_counts == {"rule-id": (3, 5)}
        assert result.files_scanned == 1
        assert result.rules_loaded == 1

    def test_end_to_end_over_budget(self, tmp_path):
        (tmp_path / "a.ts").write_text("// TODO fix this TODO and that TODO")
        rules = build_rules([("ratchet", RuleConfig(id="rule-id", pattern="TODO", max_count=2))])
        result = scan_paths(rules, GlobSet(), [tmp_path])
        assert [v.column for v in result.violations] == [4, 18, 32]
        assert result.ratchet_counts == {"rule-id": (3, 2)}

    def test_rule_glob_filters_files(self, project):
        rules = build_rules([
            ("banned-pattern", RuleConfig(id="tsx-todo", pattern="TODO", glob="*.tsx")),
        ])
        result = scan_paths(rules, GlobSet(["**/node_modules/**"]), [project])
        assert [Path(v.file).name for v in result.violations] == ["Button.tsx"]

    def test_rule_glob_matches_bare_filename(self, project):
        rules = build_rules([
            ("banned-pattern", RuleConfig(id="app", pattern="TODO", glob="app.ts")),
        ])
        result = scan_paths(rules, GlobSet(), [project])
        assert len(result.violations) == 3

    def test_binary_file_not_counted(self, project):
        rules = build_rules([("banned-pattern", RuleConfig(id="t", pattern="TODO"))])
        result = scan_paths(rules, GlobSet(["**/node_modules/**"]), [project])
        # app.ts, Button.tsx, util.py; logo.png is not valid UTF-8
        assert result.files_scanned == 3
        assert all(not v.file.endswith(".png") for v in result.violations)

    def test_violations_in_file_then_rule_order(self, tmp_path):
        (tmp_path / "a.txt").write_text("foo bar\n")
        (tmp_path / "b.txt").write_text("bar foo\n")
        rules = build_rules([
            ("banned-pattern", RuleConfig(id="foo", pattern="foo")),
            ("banned-pattern", RuleConfig(id="bar", pattern="bar")),
        ])
        result = scan_paths(rules, GlobSet(), [tmp_path])
        assert [(Path(v.file).name, v.rule_id) for v in result.violations] == [
            ("a.txt", "foo"), ("a.txt", "bar"), ("b.txt", "foo"), ("b.txt", "bar"),
        ]

    def test_lone_carriage_return_is_not_a_line_break(self, tmp_path):
        path = tmp_path / "a.py"
        path.write_bytes(b"x = 1 \r y = TODO\nz\n")
        rule = RatchetRule(RuleConfig(id="todo", pattern="TODO", max_count=0))
        result = scan_paths([(rule, None)], GlobSet(), [path])
        assert [(v.line, v.column) for v in result.violations] == [(1, 13)]
        direct = rule.check(path, "x = 1 \r y = TODO\nz\n")
        assert [(v.line, v.column) for v in direct] == [(1, 13)]

    def test_crlf_file_lines_match_git(self, tmp_path):
        path = tmp_path / "a.py"
        path.write_bytes(b"a\r\nTODO\r\n")
        rules = build_rules([("banned-pattern", RuleConfig(id="t", pattern="TODO"))])
        result = scan_paths(rules, GlobSet(), [path])
        assert [(v.line, v.source_line) for v in result.violations] == [(2, "TODO")]

    def test_file_counted_once(self, tmp_path):
        (tmp_path / "a.txt").write_text("x y")
        rules = build_rules([
            ("banned-pattern", RuleConfig(id="x", pattern="x")),
            ("banned-pattern", RuleConfig(id="y", pattern="y")),
        ])
        assert scan_paths(rules, GlobSet(), [tmp_path]).files_scanned == 1

    def test_every_violation_names_a_loaded_rule(self, project):
        rules = build_rules([
            ("ratchet", RuleConfig(id="todo", pattern="TODO", max_count=0)),
            ("banned-pattern", RuleConfig(id="const", pattern="const")),
        ])
        result = scan_paths(rules, GlobSet(), [project])
        assert {v.rule_id for v in result.violations} <= {"todo", "const"}


class TestRunScan:

    def test_under_budget(self, project, write_config):
        config = write_config(TODO_CONFIG.format(max_count=10))
        result = run_scan(config, [project])
        assert result.violations == []
        # node_modules is not excluded by this config
        assert result.ratchet_counts == {"todo-ratchet": (5, 10)}
        assert result.files_scanned == 4

    def test_over_budget(self, project, write_config):
        config = write_config(TODO_CONFIG.format(max_count=1))
        result = run_scan(config, [project])
        assert len(result.violations) == 5
        assert all(v.severity is Severity.ERROR for v in result.violations)

    def test_excludes_from_config(self, project, write_config):
        config = write_config(
            TODO_CONFIG.format(max_count=1)
            + "\n"
            + "  - id: const\n    type: banned-pattern\n    pattern: const\n    glob: '*.tsx'\n"
        )
        config.write_text(config.read_text().replace(
            "  name: test", "  name: test\n  exclude: ['**/node_modules/**']",
        ))
        result = run_scan(config, [project])
        assert result.ratchet_counts["todo-ratchet"] == (4, 1)
        assert result.rules_loaded == 2
        assert [v.rule_id for v in result.violations].count("const") == 1

    def test_missing_config(self, tmp_path):
        with pytest.raises(ConfigReadError):
            run_scan(tmp_path / "missing.yaml", [tmp_path])

    def test_malformed_config(self, tmp_path, write_config):
        config = write_config("rules: [unclosed\n")
        with pytest.raises(ConfigParseError) as exc_info:
            run_scan(config, [tmp_path])
        assert exc_info.value.__cause__ is exc_info.value.cause

    def test_invalid_exclude_glob(self, tmp_path, write_config):
        config = write_config("guardrails:\n  exclude: ['[oops']\n")
        with pytest.raises(GlobParseError):
            run_scan(config, [tmp_path])

    def test_invalid_rule_glob(self, tmp_path, write_config):
        config = write_config(
            "rules:\n  - {id: r, type: banned-pattern, pattern: x, glob: '{a,b'}\n"
        )
        with pytest.raises(GlobParseError):
            run_scan(config, [tmp_path])

    def test_unknown_rule_type(self, tmp_path, write_config):
        config = write_config("rules:\n  - {id: r, type: no-such-rule, pattern: x}\n")
        with pytest.raises(RuleFactoryError) as exc_info:
            run_scan(config, [tmp_path])
        assert isinstance(exc_info.value.cause, UnknownRuleType)

    def test_first_rule_failure_aborts(self, tmp_path, write_config):
        config = write_config(
            "rules:\n"
            "  - {id: ok, type: ratchet, pattern: x, max_count: 1}\n"
            "  - {id: broken, type: ratchet, pattern: x}\n"
            "  - {id: never, type: no-such-rule}\n"
        )
        with pytest.raises(RuleFactoryError) as exc_info:
            run_scan(config, [tmp_path])
        cause = exc_info.value.cause
        assert isinstance(cause, RuleBuildFailed)
        assert isinstance(cause.cause, MissingField)
        assert cause.cause.rule_id == "broken"

    def test_all_errors_are_scan_errors(self, tmp_path, write_config):
        config = write_config("rules:\n  - {id: r, type: ratchet, pattern: '(', regex: true, max_count: 1}\n")
        with pytest.raises(ScanError):
            run_scan(config, [tmp_path])


class TestBuildHelpers:

    def test_build_exclude_set(self):
        assert build_exclude_set(["*.md"]).is_match("README.md")

    def test_build_rules_compiles_glob_once(self):
        rules = build_rules([("banned-pattern", RuleConfig(id="r", pattern="x", glob="*.ts"))])
        (rule, rule_glob), = rules
        assert rule_glob.patterns == ["*.ts"]

    def test_globless_rule(self):
        (rule, rule_glob), = build_rules([("banned-pattern", RuleConfig(id="r", pattern="x"))])
        assert rule_glob is None


# ============================================
# Diff scoping
# ============================================

class TestFilterToDiff:

    def test_keeps_only_changed_lines(self, tmp_path):
        (tmp_path / "src").mkdir()
        (tmp_path / "src" / "a.ts").write_text("x\nx\nx\n")
        rules = build_rules([("banned-pattern", RuleConfig(id="x", pattern="x"))])
        result = scan_paths(rules, GlobSet(), [tmp_path / "src"])
        assert len(result.violations) == 3

        diff = DiffInfo({"src/a.ts": [(2, 3)]})
        narrowed = filter_to_diff(result, diff, tmp_path)
        assert [v.line for v in narrowed.violations] == [2, 3]
        assert narrowed.files_scanned == result.files_scanned

    def test_unchanged_file_dropped(self, tmp_path):
        (tmp_path / "a.ts").write_text("x\n")
        rules = build_rules([("banned-pattern", RuleConfig(id="x", pattern="x"))])
        result = scan_paths(rules, GlobSet(), [tmp_path])
        assert filter_to_diff(result, DiffInfo({}), tmp_path).violations == []

    def test_ratchet_counts_unchanged(self, tmp_path):
        (tmp_path / "a.ts").write_text("x\nx\n")
        rules = build_rules([("ratchet", RuleConfig(id="x", pattern="x", max_count=0))])
        result = scan_paths(rules, GlobSet(), [tmp_path])
        narrowed = filter_to_diff(result, DiffInfo({"a.ts": [(1, 1)]}), tmp_path)
        assert len(narrowed.violations) == 1
        assert narrowed.ratchet_counts == {"x": (2, 0)}
