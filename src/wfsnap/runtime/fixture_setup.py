"""One-time suite setup: import fixtures into the platform and stage test assets."""

import logging
import shutil
import subprocess
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Union

from wfsnap.core.exceptions import SetupError

if TYPE_CHECKING:
    from wfsnap.core.settings import HarnessSettings

logger = logging.getLogger(__name__)

CLI_EXECUTABLE_NAME = "n8n"


def find_cli_path(settings: "HarnessSettings") -> str:
    """Locate the platform CLI executable.

    Resolution order: explicit setting (or N8N_CLI_PATH), candidate paths
    relative to the suite directory, then the system PATH.

    Raises:
        SetupError: If no executable can be found
    """
    if settings.cli_path:
        logger.info(f"Using CLI path from configuration: {settings.cli_path}")
        return settings.cli_path

    for candidate in settings.cli_candidate_paths:
        resolved = (settings.suite_dir / candidate).resolve()
        if resolved.exists():
            logger.info(f"Found CLI at relative path: {resolved}")
            return str(resolved)

    on_path = shutil.which(CLI_EXECUTABLE_NAME)
    if on_path:
        logger.info(f"Found CLI in system PATH: {on_path}")
        return on_path

    raise SetupError(
        "CLI not found. Please set the N8N_CLI_PATH environment variable, "
        "ensure it's in your system's PATH, or check default installation paths."
    )


def run_cli_command(
    executable: str, command: str, args: list[str], cwd: Union[str, Path], env: Optional[dict[str, str]] = None
) -> str:
    """Run a CLI subcommand (e.g. ``import:credentials``) and return its stdout.

    Raises:
        SetupError: If the command cannot be started or exits non-zero
    """
    logger.info(f"Executing CLI command: {command} {' '.join(args)}")
    try:
        result = subprocess.run(  # noqa: S603
            [executable, command, *args], cwd=str(cwd), env=env, capture_output=True, text=True, check=False
        )
    except OSError as e:
        raise SetupError(f'CLI command "{command}" failed: {e}') from e

    if result.returncode != 0:
        error_output = (result.stderr or result.stdout or f"exit code {result.returncode}").strip()
        logger.error(f'Failed to execute CLI command "{command}":\n{error_output}')
        raise SetupError(f'CLI command "{command}" failed: {error_output}')

    if result.stderr:
        logger.warning(f'CLI command "{command}" produced stderr:\n{result.stderr.strip()}')
    logger.info(f'CLI command "{command}" executed successfully')
    return result.stdout.strip()


def copy_asset(source: Union[str, Path], destination: Union[str, Path]) -> None:
    """Copy a file or directory tree. A missing source is skipped with a warning."""
    source = Path(source)
    destination = Path(destination)
    if not source.exists():
        logger.warning(f"Source asset not found at {source}. Skipping copy.")
        return

    if source.is_dir():
        shutil.copytree(source, destination, dirs_exist_ok=True)
        logger.info(f"Directory copied: {source} to {destination}")
    else:
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copyfile(source, destination)
        logger.info(f"File copied: {source} to {destination}")


def global_workflow_setup(settings: "HarnessSettings", executable: Optional[str] = None) -> None:
    """Import credentials and workflows, then copy the configured assets.

    Raises:
        SetupError: If the CLI cannot be found or an import fails
    """
    from wfsnap.execution.cli_executor import build_environment

    logger.info("Starting workflow test environment setup")
    executable = executable or find_cli_path(settings)
    env = build_environment(settings.encryption_key, settings.extra_env)
    suite_dir = settings.suite_dir

    if settings.setup.import_credentials:
        logger.info("Importing test credentials...")
        run_cli_command(executable, "import:credentials", ["--input", settings.setup.credentials_file], suite_dir, env)

    if settings.setup.import_workflows:
        logger.info("Importing test workflows...")
        run_cli_command(
            executable, "import:workflow", ["--separate", "--input", settings.workflows_dir_name], suite_dir, env
        )

    for asset in settings.setup.assets:
        copy_asset(suite_dir / asset.source, suite_dir / asset.destination)

    logger.info("Workflow test environment setup complete")
