"""Command line interface for the workflow regression harness."""

import json
import sys
from pathlib import Path
from typing import Optional

import click

from wfsnap.cli.logging_config import configure_logging
from wfsnap.core.exceptions import ParseError, SetupError, SetupTimeoutError
from wfsnap.core.settings import HarnessSettings, SettingsManager
from wfsnap.core.workflow_status import Outcome

VERSION = "0.1.0"

_OUTCOME_ICONS = {
    Outcome.PASSED: "✅",
    Outcome.FAILED: "❌",
    Outcome.FATAL: "💥",
    Outcome.WARNING: "⚠️ ",
    Outcome.SKIPPED: "⏭️ ",
}

suite_dir_option = click.option(
    "--suite-dir",
    type=click.Path(file_okay=False, path_type=Path),
    default=".",
    show_default=True,
    help="Directory holding workflows/, snapshots/, skipList.json and wfsnap.json",
)


def _load_settings(suite_dir: Path, snapshots: Optional[str] = None, deep: Optional[bool] = None) -> HarnessSettings:
    """Load settings; explicit CLI options win over file and environment."""
    settings = SettingsManager(suite_dir=suite_dir).load()
    if snapshots is not None:
        settings.snapshots = None if snapshots == "off" else snapshots
    if deep is not None:
        settings.snapshot_mode = "deep" if deep else "shallow"
    return settings


def _run_setup(settings: HarnessSettings, force: bool = False) -> bool:
    from wfsnap.runtime.fixture_setup import global_workflow_setup
    from wfsnap.runtime.setup_barrier import SetupBarrier

    barrier = SetupBarrier(
        settings.setup_marker_path,
        timeout=settings.setup.lock_timeout,
        poll_interval=settings.setup.poll_interval,
        freshness=settings.setup.freshness,
    )
    if force:
        barrier.invalidate()
    return barrier.run_once(lambda: global_workflow_setup(settings))


@click.group(name="wfsnap", invoke_without_command=True)
@click.option("--version", is_flag=True, help="Show the wfsnap version")
@click.pass_context
def main(ctx: click.Context, version: bool) -> None:
    """wfsnap - workflow regression snapshots

    Executes saved workflows through the platform CLI and compares their
    normalized results against stored snapshots.

    \b
    Environment:
      SNAPSHOTS=compare|update   Compare against or (re)write snapshots
      SNAPSHOT_MODE=deep         Compare full results instead of shallow shapes
      DEBUG=1                    Echo each CLI command before running it
    """
    if version:
        click.echo(f"wfsnap version {VERSION}")
        ctx.exit(0)
    if ctx.invoked_subcommand is None:
        click.echo(ctx.get_help())


@main.command(name="run")
@suite_dir_option
@click.option(
    "--snapshots",
    type=click.Choice(["compare", "update", "off"], case_sensitive=False),
    default=None,
    help="Snapshot handling (default: SNAPSHOTS environment variable)",
)
@click.option("--deep/--shallow", "deep", default=None, help="Normalization mode (default: SNAPSHOT_MODE)")
@click.option("--filter", "filter_pattern", default=None, help="Only run workflows whose name or id matches")
@click.option("--workers", type=click.IntRange(min=1), default=1, show_default=True, help="Workflows run in parallel")
@click.option("--no-setup", is_flag=True, help="Skip importing fixtures before the run")
@click.option("--json", "output_json", is_flag=True, help="Output reports as JSON")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed execution output")
def run_command(
    suite_dir: Path,
    snapshots: Optional[str],
    deep: Optional[bool],
    filter_pattern: Optional[str],
    workers: int,
    no_setup: bool,
    output_json: bool,
    verbose: bool,
) -> None:
    """Execute every workflow in the suite and check its snapshot."""
    from wfsnap.core.workflow_loader import filter_workflows, load_skip_list, load_workflows
    from wfsnap.execution.harness import WorkflowHarness

    settings = _load_settings(suite_dir, snapshots, deep)
    configure_logging(verbose or settings.debug)

    try:
        workflows = filter_workflows(load_workflows(settings.workflows_dir), filter_pattern)
        skip_list = load_skip_list(settings.skip_list_path)
    except ParseError as e:
        click.echo(f"❌ {e}", err=True)
        sys.exit(1)

    if not workflows:
        click.echo("No workflows found.", err=True)
        sys.exit(1)

    if not no_setup:
        try:
            _run_setup(settings)
        except (SetupError, SetupTimeoutError) as e:
            click.echo(f"❌ Workflow setup failed: {e}", err=True)
            sys.exit(1)

    reports = WorkflowHarness(settings).run_all(workflows, skip_list, workers=workers)

    if output_json:
        click.echo(json.dumps([r.to_dict() for r in reports], indent=2))
    else:
        for report in reports:
            click.echo(f"{_OUTCOME_ICONS[report.outcome]} {report.outcome.value.upper():<8} {report.title}")
            if report.outcome.is_failure:
                click.echo(_indent(report.failure_message()))
            elif report.outcome == Outcome.WARNING:
                for annotation in report.annotations:
                    if annotation["type"] == "warning":
                        click.echo(_indent(annotation["description"]))

        counts = {outcome: sum(1 for r in reports if r.outcome == outcome) for outcome in Outcome}
        summary = ", ".join(f"{count} {outcome.value}" for outcome, count in counts.items() if count)
        click.echo(f"\n{len(reports)} workflows: {summary}")

    if any(r.outcome.is_failure for r in reports):
        sys.exit(1)


def _indent(text: str) -> str:
    return "\n".join(f"    {line}" for line in text.splitlines())


@main.command(name="setup")
@suite_dir_option
@click.option("--force", is_flag=True, help="Run setup even if a fresh completed-marker exists")
@click.option("--verbose", "-v", is_flag=True, help="Show detailed setup output")
def setup_command(suite_dir: Path, force: bool, verbose: bool) -> None:
    """Import credentials and workflows into the platform once per session."""
    settings = _load_settings(suite_dir)
    configure_logging(verbose or settings.debug)

    try:
        ran = _run_setup(settings, force=force)
    except (SetupError, SetupTimeoutError) as e:
        click.echo(f"❌ Workflow setup failed: {e}", err=True)
        sys.exit(1)

    click.echo("✅ Workflow setup complete" if ran else "✅ Workflow setup already complete (cached)")


@main.command(name="diff")
@click.argument("expected", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.argument("actual", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def diff_command(expected: Path, actual: Path) -> None:
    """Show the fields that differ between two results or snapshots."""
    from wfsnap.runtime.snapshots import parse_snapshot
    from wfsnap.runtime.tree_diff import find_differences, format_differences

    try:
        expected_result = parse_snapshot(json.loads(expected.read_text(encoding="utf-8"))).expected_result
        actual_result = parse_snapshot(json.loads(actual.read_text(encoding="utf-8"))).expected_result
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        click.echo(f"❌ Invalid JSON: {e}", err=True)
        sys.exit(1)

    differences = find_differences(expected_result, actual_result)
    click.echo(format_differences(differences))
    if differences:
        sys.exit(1)
