"""Harness settings with environment variable override support."""

import json
import logging
import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from wfsnap.execution.cli_executor import DEFAULT_MAX_OUTPUT_BYTES, WARNING_PATTERNS
from wfsnap.runtime.normalizer import GLOBALLY_IGNORED_PROPERTIES

logger = logging.getLogger(__name__)

SETTINGS_FILE_NAME = "wfsnap.json"

_FALSY_VALUES = ("", "0", "false", "no", "off")


def _parse_snapshots_mode(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = str(value).strip().lower()
    return value if value in ("compare", "update") else None


def _parse_snapshot_mode(value: Optional[str]) -> str:
    return "deep" if value is not None and str(value).strip().lower() == "deep" else "shallow"


class AssetCopy(BaseModel):
    """A file or directory copied into place during suite setup."""

    source: str
    destination: str


class SetupSettings(BaseModel):
    """One-time suite setup configuration.

    Paths are resolved against the suite directory when relative.
    """

    marker_name: str = Field(default=".workflow-setup-complete")
    lock_timeout: float = Field(default=60.0, gt=0)
    poll_interval: float = Field(default=0.1, gt=0)
    freshness: float = Field(default=3600.0, gt=0, description="Seconds before a completed-marker is stale")
    credentials_file: str = Field(default="credentials.json")
    import_credentials: bool = Field(default=True)
    import_workflows: bool = Field(default=True)
    assets: list[AssetCopy] = Field(default_factory=list)


class HarnessSettings(BaseModel):
    """Main harness configuration.

    The suite directory holds the workflow definitions, the snapshots, the
    skip list and the setup marker.
    """

    suite_dir: Path = Field(default_factory=Path.cwd)
    workflows_dir_name: str = Field(default="workflows")
    snapshots_dir_name: str = Field(default="snapshots")
    skip_list_name: str = Field(default="skipList.json")

    snapshots: Optional[str] = Field(
        default=None, description="Snapshot handling: compare, update, or None (execution-only smoke test)"
    )
    snapshot_mode: str = Field(default="shallow", description="Normalization mode: shallow or deep")
    debug: bool = Field(default=False)

    cli_path: Optional[str] = Field(default=None)
    cli_candidate_paths: list[str] = Field(default_factory=lambda: ["../../../cli/bin/n8n", "../../cli/bin/n8n"])
    encryption_key: Optional[str] = Field(default=None)
    extra_env: dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = Field(default=None, description="Seconds to wait for one execution; None waits forever")
    max_output_bytes: int = Field(default=DEFAULT_MAX_OUTPUT_BYTES, gt=0)

    ignored_properties: list[str] = Field(default_factory=lambda: list(GLOBALLY_IGNORED_PROPERTIES))
    warning_patterns: list[str] = Field(default_factory=lambda: list(WARNING_PATTERNS))

    setup: SetupSettings = Field(default_factory=SetupSettings)

    @field_validator("snapshots", mode="before")
    @classmethod
    def validate_snapshots(cls, v: Optional[str]) -> Optional[str]:
        """Anything other than compare/update disables snapshot handling."""
        return _parse_snapshots_mode(v)

    @field_validator("snapshot_mode", mode="before")
    @classmethod
    def validate_snapshot_mode(cls, v: Optional[str]) -> str:
        """Only an explicit 'deep' selects deep mode."""
        return _parse_snapshot_mode(v)

    @field_validator("timeout")
    @classmethod
    def validate_timeout(cls, v: Optional[float]) -> Optional[float]:
        if v is not None and v <= 0:
            raise ValueError(f"Invalid timeout value: {v}")
        return v

    @property
    def is_shallow(self) -> bool:
        return self.snapshot_mode != "deep"

    @property
    def should_compare_snapshots(self) -> bool:
        return self.snapshots == "compare"

    @property
    def should_update_snapshots(self) -> bool:
        return self.snapshots == "update"

    @property
    def workflows_dir(self) -> Path:
        return self.suite_dir / self.workflows_dir_name

    @property
    def snapshots_dir(self) -> Path:
        return self.suite_dir / self.snapshots_dir_name

    @property
    def skip_list_path(self) -> Path:
        return self.suite_dir / self.skip_list_name

    @property
    def setup_marker_path(self) -> Path:
        return self.suite_dir / self.setup.marker_name


class SettingsManager:
    """Loads harness settings from an optional JSON file plus environment overrides.

    The file lives at ``<suite_dir>/wfsnap.json`` unless a path is given. The
    environment is re-read on every ``load()`` so tests can toggle it freely.
    """

    def __init__(self, suite_dir: Optional[Path] = None, settings_path: Optional[Path] = None):
        self.suite_dir = Path(suite_dir or Path.cwd()).expanduser().resolve()
        self.settings_path = settings_path or self.suite_dir / SETTINGS_FILE_NAME
        self._base: Optional[HarnessSettings] = None

    def load(self) -> HarnessSettings:
        """Load settings with environment variable overrides applied."""
        if self._base is None:
            self._base = self._load_from_file()
        settings = self._base.model_copy(deep=True)
        self._apply_env_overrides(settings)
        return settings

    def reload(self) -> HarnessSettings:
        """Force reload settings from file."""
        self._base = None
        return self.load()

    def _load_from_file(self) -> HarnessSettings:
        """Load settings from file or return defaults."""
        if self.settings_path.exists():
            try:
                with open(self.settings_path, encoding="utf-8") as f:
                    data = json.load(f)
                data.setdefault("suite_dir", str(self.suite_dir))
                loaded = HarnessSettings(**data)
                loaded.suite_dir = self._resolve_suite_dir(loaded.suite_dir)
                logger.debug(f"Loaded settings from {self.settings_path}")
                return loaded
            except Exception as e:
                # If file is corrupted, use defaults
                logger.warning(f"Failed to load settings from {self.settings_path} ({e}); using defaults")
        return HarnessSettings(suite_dir=self.suite_dir)

    def _resolve_suite_dir(self, suite_dir: Path) -> Path:
        if suite_dir.is_absolute():
            return suite_dir
        return (self.settings_path.parent / suite_dir).resolve()

    def _apply_env_overrides(self, settings: HarnessSettings) -> None:
        """Apply environment variable overrides."""
        if "SNAPSHOTS" in os.environ:
            settings.snapshots = _parse_snapshots_mode(os.environ["SNAPSHOTS"])

        if "SNAPSHOT_MODE" in os.environ:
            settings.snapshot_mode = _parse_snapshot_mode(os.environ["SNAPSHOT_MODE"])

        debug = os.getenv("DEBUG")
        if debug is not None:
            settings.debug = debug.strip().lower() not in _FALSY_VALUES

        cli_path = os.getenv("N8N_CLI_PATH")
        if cli_path:
            settings.cli_path = cli_path

        encryption_key = os.getenv("N8N_ENCRYPTION_KEY")
        if encryption_key:
            settings.encryption_key = encryption_key

        env_timeout = os.getenv("WFSNAP_TIMEOUT")
        if env_timeout:
            try:
                timeout = float(env_timeout)
            except ValueError:
                timeout = 0.0
            if timeout > 0:
                settings.timeout = timeout
            else:
                logger.warning(f"Invalid WFSNAP_TIMEOUT: {env_timeout}. Using default: {settings.timeout}")
