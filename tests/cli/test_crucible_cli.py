"""Tests for the crucible command-line interface."""

import json

import pytest

from crucible import __version__
from crucible.cli.main import app

CLEAN_UNIT = {"name": "clean", "declarations": [{"kind": "struct", "name": "Point", "fields": ["x: u8"]}]}
BROKEN_UNIT = {"name": "broken", "declarations": [{"kind": "module"}]}


def _extract_json(output: str):
    """Parse the JSON document printed to stdout, skipping anything before it."""
    lines = output.splitlines()
    start = next(i for i, line in enumerate(lines) if line.startswith(("{", "[")))
    return json.loads("\n".join(lines[start:]))


@pytest.fixture
def workdir(runner, tmp_path):
    """Run inside a temp directory so file paths stay short in rendered output."""
    with runner.isolated_filesystem(temp_dir=tmp_path) as path:
        yield path


@pytest.fixture
def units_file(workdir, mixed_raw_unit):
    with open("units.json", "w") as f:
        json.dump([mixed_raw_unit], f)
    return "units.json"


def _write(name: str, content: str) -> str:
    with open(name, "w") as f:
        f.write(content)
    return name


class TestAnalyze:

    def test_table_output(self, runner, units_file):
        result = runner.invoke(app, ["analyze", units_file])
        assert result.exit_code == 0, result.output
        assert "Summary" in result.output
        assert "service" in result.output

    def test_json_output(self, runner, units_file):
        result = runner.invoke(app, ["analyze", units_file, "--json"])
        assert result.exit_code == 0, result.output

        data = _extract_json(result.output)
        assert data["summary"]["units"] == 1
        assert data["summary"]["completed"] == 1
        assert data["summary"]["bySeverity"]["critical"] >= 2
        rule_ids = [f["ruleId"] for f in data["units"][0]["findings"]]
        assert "lock-across-suspend" in rule_ids

    def test_fail_on_critical(self, runner, units_file):
        result = runner.invoke(app, ["analyze", units_file, "--fail-on-critical"])
        assert result.exit_code == 1

    def test_clean_unit_passes_fail_on_critical(self, runner, workdir):
        path = _write("clean.json", json.dumps(CLEAN_UNIT))
        result = runner.invoke(app, ["analyze", path, "--fail-on-critical"])
        assert result.exit_code == 0, result.output
        assert "no findings" in result.output

    def test_yaml_units_with_parallel_limit(self, runner, workdir):
        path = _write("units.yaml", "units:\n  - name: clean\n    declarations:\n      - kind: struct\n        name: A\n")
        result = runner.invoke(app, ["analyze", path, "--parallel", "2", "--json"])
        assert result.exit_code == 0, result.output
        assert _extract_json(result.output)["units"][0]["unitName"] == "clean"

    def test_broken_unit_is_reported_not_fatal(self, runner, workdir, mixed_raw_unit):
        path = _write("units.json", json.dumps([BROKEN_UNIT, mixed_raw_unit]))
        result = runner.invoke(app, ["analyze", path, "--json"])
        assert result.exit_code == 0, result.output

        summary = _extract_json(result.output)["summary"]
        assert summary["failed"] == 1
        assert summary["completed"] == 1

    def test_rules_file_disables_rule(self, runner, units_file):
        rules = _write("rules.yaml", "rules:\n  lock-across-suspend:\n    enabled: false\n")
        result = runner.invoke(app, ["analyze", units_file, "--rules", rules, "--json"])
        rule_ids = [f["ruleId"] for f in _extract_json(result.output)["units"][0]["findings"]]
        assert "lock-across-suspend" not in rule_ids

    @pytest.mark.parametrize("content", [
        "rules:\n  god-entity:\n    severity: fatal\n",
        "rules: [unclosed\n",
        "router:\n  activation:\n    bogus_signal: [systems]\n",
    ])
    def test_bad_rules_file_exits_with_usage_error(self, runner, units_file, content):
        rules = _write("rules.yaml", content)
        result = runner.invoke(app, ["analyze", units_file, "--rules", rules])
        assert result.exit_code == 2
        assert "Configuration Error" in result.output

    def test_undecodable_units_file(self, runner, workdir):
        path = _write("units.json", "{not json")
        result = runner.invoke(app, ["analyze", path])
        assert result.exit_code == 2
        assert "Input Error" in result.output

    def test_missing_units_file(self, runner, workdir):
        result = runner.invoke(app, ["analyze", "nope.json"])
        assert result.exit_code == 2


class TestTriage:

    def test_json_decisions(self, runner, units_file):
        result = runner.invoke(app, ["triage", units_file, "--json"])
        assert result.exit_code == 0, result.output

        (decision,) = _extract_json(result.output)
        assert decision["unit_name"] == "service"
        assert decision["small_unit"] is True
        assert "signals" not in decision

    def test_signals_included_on_request(self, runner, units_file):
        result = runner.invoke(app, ["triage", units_file, "--json", "--signals"])
        (decision,) = _extract_json(result.output)
        assert decision["signals"]["lock_acquisitions"] == 1

    def test_broken_unit_becomes_error_entry(self, runner, workdir):
        path = _write("units.json", json.dumps([BROKEN_UNIT]))
        result = runner.invoke(app, ["triage", path, "--json"])
        assert result.exit_code == 0, result.output

        (entry,) = _extract_json(result.output)
        assert entry["unit"] == "broken"
        assert entry["error"]

    def test_table_output(self, runner, units_file):
        result = runner.invoke(app, ["triage", units_file, "--signals"])
        assert result.exit_code == 0, result.output
        assert "Signals" in result.output


class TestRules:

    def test_list(self, runner):
        result = runner.invoke(app, ["rules", "list"])
        assert result.exit_code == 0, result.output
        assert "Rules" in result.output

    def test_list_one_domain(self, runner):
        result = runner.invoke(app, ["rules", "list", "--domain", "concurrency"])
        assert result.exit_code == 0, result.output

    def test_list_unknown_domain(self, runner):
        result = runner.invoke(app, ["rules", "list", "--domain", "kernel"])
        assert result.exit_code == 2

    def test_validate(self, runner, workdir):
        rules = _write("rules.yaml", "rules:\n  fat-interface:\n    enabled: false\n")
        result = runner.invoke(app, ["rules", "validate", rules])
        assert result.exit_code == 0, result.output
        assert "is valid" in result.output
        assert "fat-interface" in result.output

    def test_validate_invalid(self, runner, workdir):
        rules = _write("rules.yaml", "router:\n  small_unit_threshold: -1\n")
        result = runner.invoke(app, ["rules", "validate", rules])
        assert result.exit_code == 2


def test_version(runner):
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "Crucible" in result.output
    assert __version__ in result.output


def test_log_level_option(runner, units_file):
    result = runner.invoke(app, ["--log-level", "ERROR", "analyze", units_file, "--json"])
    assert result.exit_code == 0, result.output
    assert _extract_json(result.output)["summary"]["units"] == 1
