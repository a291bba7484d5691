"""Tests for harness settings and environment overrides."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from wfsnap.core.settings import HarnessSettings, SettingsManager
from wfsnap.execution.cli_executor import DEFAULT_MAX_OUTPUT_BYTES
from wfsnap.runtime.normalizer import GLOBALLY_IGNORED_PROPERTIES


@pytest.fixture
def suite_dir(tmp_path: Path) -> Path:
    path = tmp_path / "suite"
    path.mkdir()
    return path


@pytest.fixture
def settings_manager(suite_dir: Path) -> SettingsManager:
    """Create a SettingsManager for a temporary suite."""
    return SettingsManager(suite_dir=suite_dir)


class TestDefaults:
    """Test settings with no file and no environment."""

    def test_defaults(self, settings_manager: SettingsManager, suite_dir: Path) -> None:
        settings = settings_manager.load()

        assert settings.suite_dir == suite_dir.resolve()
        assert settings.snapshots is None
        assert settings.snapshot_mode == "shallow"
        assert settings.is_shallow is True
        assert settings.debug is False
        assert settings.timeout is None
        assert settings.max_output_bytes == DEFAULT_MAX_OUTPUT_BYTES
        assert settings.ignored_properties == list(GLOBALLY_IGNORED_PROPERTIES)
        assert settings.setup.lock_timeout == 60.0
        assert settings.setup.freshness == 3600.0

    def test_suite_paths(self, settings_manager: SettingsManager, suite_dir: Path) -> None:
        settings = settings_manager.load()
        root = suite_dir.resolve()

        assert settings.workflows_dir == root / "workflows"
        assert settings.snapshots_dir == root / "snapshots"
        assert settings.skip_list_path == root / "skipList.json"
        assert settings.setup_marker_path == root / ".workflow-setup-complete"

    def test_snapshots_disabled_by_default(self, settings_manager: SettingsManager) -> None:
        """Test that an unset SNAPSHOTS means an execution-only smoke test."""
        settings = settings_manager.load()

        assert not settings.should_compare_snapshots
        assert not settings.should_update_snapshots


class TestEnvOverrides:
    """Test environment variable overrides."""

    @pytest.mark.parametrize(
        "value, expected",
        [("compare", "compare"), ("update", "update"), ("UPDATE", "update"), ("", None), ("bogus", None)],
    )
    def test_snapshots(
        self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch, value: str, expected: str
    ) -> None:
        monkeypatch.setenv("SNAPSHOTS", value)

        assert settings_manager.load().snapshots == expected

    @pytest.mark.parametrize(
        "value, shallow", [("deep", False), ("DEEP", False), ("shallow", True), ("", True), ("other", True)]
    )
    def test_snapshot_mode(
        self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch, value: str, shallow: bool
    ) -> None:
        """Test that only an explicit 'deep' disables shallow mode."""
        monkeypatch.setenv("SNAPSHOT_MODE", value)

        assert settings_manager.load().is_shallow is shallow

    @pytest.mark.parametrize(
        "value, debug", [("1", True), ("true", True), ("yes", True), ("0", False), ("false", False), ("", False)]
    )
    def test_debug(
        self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch, value: str, debug: bool
    ) -> None:
        monkeypatch.setenv("DEBUG", value)

        assert settings_manager.load().debug is debug

    def test_cli_path_and_encryption_key(self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("N8N_CLI_PATH", "/opt/n8n/bin/n8n")
        monkeypatch.setenv("N8N_ENCRYPTION_KEY", "secret")

        settings = settings_manager.load()

        assert settings.cli_path == "/opt/n8n/bin/n8n"
        assert settings.encryption_key == "secret"

    def test_timeout(self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("WFSNAP_TIMEOUT", "2.5")

        assert settings_manager.load().timeout == 2.5

    @pytest.mark.parametrize("value", ["abc", "0", "-3"])
    def test_invalid_timeout_keeps_default(
        self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("WFSNAP_TIMEOUT", value)

        assert settings_manager.load().timeout is None

    def test_environment_is_reread_on_every_load(
        self, settings_manager: SettingsManager, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        """Test that toggling the environment between loads takes effect."""
        monkeypatch.setenv("SNAPSHOTS", "update")
        assert settings_manager.load().should_update_snapshots

        monkeypatch.setenv("SNAPSHOTS", "compare")
        assert settings_manager.load().should_compare_snapshots

        monkeypatch.delenv("SNAPSHOTS")
        assert settings_manager.load().snapshots is None

    def test_load_returns_independent_copies(self, settings_manager: SettingsManager) -> None:
        first = settings_manager.load()
        first.ignored_properties.append("custom")

        assert "custom" not in settings_manager.load().ignored_properties


class TestSettingsFile:
    """Test loading wfsnap.json from the suite directory."""

    def test_file_values_are_applied(self, settings_manager: SettingsManager, suite_dir: Path) -> None:
        (suite_dir / "wfsnap.json").write_text(
            json.dumps({
                "snapshots_dir_name": "__snapshots__",
                "warning_patterns": ["quota"],
                "setup": {"import_credentials": False, "assets": [{"source": "a", "destination": "b"}]},
            }),
            encoding="utf-8",
        )

        settings = settings_manager.load()

        assert settings.snapshots_dir == suite_dir.resolve() / "__snapshots__"
        assert settings.warning_patterns == ["quota"]
        assert settings.setup.import_credentials is False
        assert settings.setup.assets[0].destination == "b"

    def test_environment_wins_over_file(
        self, settings_manager: SettingsManager, suite_dir: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        (suite_dir / "wfsnap.json").write_text(json.dumps({"snapshots": "compare"}), encoding="utf-8")
        monkeypatch.setenv("SNAPSHOTS", "update")

        assert settings_manager.load().snapshots == "update"

    def test_relative_suite_dir_resolves_against_file(self, tmp_path: Path) -> None:
        config_dir = tmp_path / "config"
        config_dir.mkdir()
        settings_path = config_dir / "wfsnap.json"
        settings_path.write_text(json.dumps({"suite_dir": "../suite"}), encoding="utf-8")

        settings = SettingsManager(suite_dir=config_dir, settings_path=settings_path).load()

        assert settings.suite_dir == (tmp_path / "suite").resolve()

    def test_corrupted_file_falls_back_to_defaults(
        self, settings_manager: SettingsManager, suite_dir: Path, caplog: pytest.LogCaptureFixture
    ) -> None:
        (suite_dir / "wfsnap.json").write_text("{broken", encoding="utf-8")

        settings = settings_manager.load()

        assert settings.snapshot_mode == "shallow"
        assert settings.suite_dir == suite_dir.resolve()
        assert "Failed to load settings" in caplog.text

    def test_reload_rereads_file(self, settings_manager: SettingsManager, suite_dir: Path) -> None:
        assert settings_manager.load().snapshots_dir_name == "snapshots"

        (suite_dir / "wfsnap.json").write_text(json.dumps({"snapshots_dir_name": "snaps"}), encoding="utf-8")

        assert settings_manager.load().snapshots_dir_name == "snapshots"
        assert settings_manager.reload().snapshots_dir_name == "snaps"


class TestValidation:
    """Test model-level validation."""

    def test_non_positive_timeout_is_rejected(self) -> None:
        with pytest.raises(ValidationError):
            HarnessSettings(timeout=0)

    def test_unknown_snapshots_value_disables_snapshots(self) -> None:
        assert HarnessSettings(snapshots="sometimes").snapshots is None
