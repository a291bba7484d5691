"""Tests for the pytest integration."""

import json
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Optional

import pytest

from wfsnap.core.workflow_status import Outcome
from wfsnap.execution.harness import WorkflowReport
from wfsnap.testing.plugin import WorkflowExecutionWarning, _load_settings, _suite_dir, check_report


def make_report(outcome: Outcome, **kwargs: Any) -> WorkflowReport:
    return WorkflowReport(workflow_id="42", workflow_name="Fetch users", outcome=outcome, **kwargs)


def make_config(suite_dir: Optional[str] = None) -> SimpleNamespace:
    options = {"--wfsnap-suite-dir": suite_dir, "--wfsnap-no-setup": False}
    return SimpleNamespace(getoption=lambda name, default=None: options.get(name, default))


class TestCheckReport:
    """Test turning reports into pytest results."""

    def test_passed_returns_quietly(self) -> None:
        check_report(make_report(Outcome.PASSED))

    def test_skipped_skips(self) -> None:
        with pytest.raises(pytest.skip.Exception, match="Workflow is in skip list"):
            check_report(make_report(Outcome.SKIPPED))

    def test_warning_passes_with_warning(self) -> None:
        report = make_report(
            Outcome.WARNING, annotations=[{"type": "warning", "description": "Execution warning: read ECONNRESET"}]
        )

        with pytest.warns(WorkflowExecutionWarning, match="ECONNRESET"):
            check_report(report)

    def test_mode_mismatch_warning_on_passing_run(self) -> None:
        report = make_report(Outcome.PASSED, annotations=[{"type": "warning", "description": "Mode mismatch"}])

        with pytest.warns(WorkflowExecutionWarning, match="Mode mismatch"):
            check_report(report)

    def test_failed_shows_differences(self) -> None:
        report = make_report(
            Outcome.FAILED,
            differences=["a"],
            annotations=[{"type": "diff", "description": "Snapshot differences found in fields:\n- a"}],
        )

        with pytest.raises(pytest.fail.Exception) as exc_info:
            check_report(report)

        assert "Snapshot mismatch for workflow 42" in str(exc_info.value)
        assert "- a" in str(exc_info.value)

    def test_fatal_shows_diagnostics(self) -> None:
        report = make_report(Outcome.FATAL, error="boom", diagnostics="boom\n--- CLI Stderr ---\ntrace")

        with pytest.raises(pytest.fail.Exception, match="--- CLI Stderr ---"):
            check_report(report)


class TestSuiteDiscovery:
    """Test locating the suite for a test module."""

    def test_defaults_to_module_directory(self, tmp_path: Path) -> None:
        module_path = tmp_path / "regression" / "test_workflows.py"

        assert _suite_dir(make_config(), str(module_path)) == tmp_path / "regression"

    def test_option_overrides_module_directory(self, tmp_path: Path) -> None:
        assert _suite_dir(make_config(str(tmp_path / "elsewhere")), str(tmp_path / "test_x.py")) == (
            tmp_path / "elsewhere"
        )

    def test_load_settings_reads_suite_file(self, tmp_path: Path) -> None:
        (tmp_path / "wfsnap.json").write_text(json.dumps({"snapshot_mode": "deep"}), encoding="utf-8")

        settings = _load_settings(make_config(), str(tmp_path / "test_workflows.py"))

        assert settings.suite_dir == tmp_path.resolve()
        assert settings.is_shallow is False


def test_plugin_dependency_has_an_install_extra() -> None:
    """Test that pytest, imported by the shipped plugin, is installable as an extra."""
    tomllib = pytest.importorskip("tomllib")
    pyproject = Path(__file__).parents[2] / "pyproject.toml"

    with open(pyproject, "rb") as f:
        extras = tomllib.load(f)["project"]["optional-dependencies"]

    assert any(requirement.startswith("pytest") for requirement in extras["pytest"])
