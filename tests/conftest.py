"""Root-level test configuration and fixtures."""

import json
import sys
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

from wfsnap.core.settings import HarnessSettings
from wfsnap.core.workflow_loader import WorkflowDefinition

HARNESS_ENV_VARS = (
    "SNAPSHOTS",
    "SNAPSHOT_MODE",
    "DEBUG",
    "N8N_CLI_PATH",
    "N8N_ENCRYPTION_KEY",
    "WFSNAP_TIMEOUT",
)


@pytest.fixture(autouse=True)
def isolate_harness_env(monkeypatch):
    """Keep the developer's environment from leaking into harness settings."""
    for name in HARNESS_ENV_VARS:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_cli(tmp_path: Path) -> Callable[..., str]:
    """Factory for a fake platform CLI executable.

    The script prints the given stdout/stderr, exits with the given code and
    records its arguments and selected environment variables to
    ``<tmp_path>/<name>.calls.jsonl``.
    """

    def _make(
        stdout: str = "",
        stderr: str = "",
        exit_code: int = 0,
        sleep: float = 0.0,
        name: str = "n8n",
    ) -> str:
        script = tmp_path / name
        record = tmp_path / f"{name}.calls.jsonl"
        script.write_text(
            f"#!{sys.executable}\n"
            "import json, os, sys, time\n"
            f"with open({str(record)!r}, 'a') as f:\n"
            "    f.write(json.dumps({'argv': sys.argv[1:], 'cwd': os.getcwd(), 'env': {\n"
            "        k: os.environ.get(k) for k in (\n"
            "            'N8N_ENCRYPTION_KEY', 'N8N_ENFORCE_SETTINGS_FILE_PERMISSIONS', 'SKIP_STATISTICS_EVENTS')}}) + '\\n')\n"
            f"time.sleep({sleep!r})\n"
            f"sys.stdout.write({stdout!r})\n"
            f"sys.stderr.write({stderr!r})\n"
            f"sys.exit({exit_code!r})\n",
            encoding="utf-8",
        )
        script.chmod(0o755)
        return str(script)

    return _make


def read_cli_calls(executable: str) -> list[dict[str, Any]]:
    """Calls recorded by a fake_cli script, oldest first."""
    record = Path(f"{executable}.calls.jsonl")
    if not record.exists():
        return []
    return [json.loads(line) for line in record.read_text(encoding="utf-8").splitlines() if line]


@pytest.fixture
def cli_calls() -> Callable[[str], list[dict[str, Any]]]:
    return read_cli_calls


@pytest.fixture
def harness_settings(tmp_path: Path) -> HarnessSettings:
    """Settings for a suite rooted in a temporary directory."""
    suite_dir = tmp_path / "suite"
    (suite_dir / "workflows").mkdir(parents=True)
    return HarnessSettings(suite_dir=suite_dir)


@pytest.fixture
def make_workflow() -> Callable[..., WorkflowDefinition]:
    def _make(workflow_id: str = "42", name: str = "Sample", nodes: Optional[list[dict]] = None) -> WorkflowDefinition:
        return WorkflowDefinition(id=workflow_id, name=name, nodes=nodes or [])

    return _make
