"""
Command line interface for the vc_commit_planner tool.

``commitplan plan`` groups a JSON file of analyzed changes into a resolved
commit plan and prints it. ``commitplan apply`` additionally executes the
plan against the Git repository, rolling back on failure. Exit codes are
listed below and shared by both commands.
"""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

import click

from vc_commit_planner import __version__
from vc_commit_planner.config.loader import ConfigError, load_config
from vc_commit_planner.config.settings import PlannerSettings
from vc_commit_planner.execution.orchestrator import CommitOrchestrator
from vc_commit_planner.execution.results import ExecutionReport
from vc_commit_planner.grouping.change_record import ChangeRecord, ChangeRecordError, load_change_records
from vc_commit_planner.pipeline import plan_commits
from vc_commit_planner.resolution.conflict_model import ResolutionResult
from vc_commit_planner.vcs.git_client import GitClient


logger = logging.getLogger(__name__)
if not logger.handlers:
    logger.addHandler(logging.NullHandler())


# ---------------------------------------------------------------------------
# Exit codes
# ---------------------------------------------------------------------------
EXIT_SUCCESS = 0
EXIT_GENERIC_ERROR = 1
EXIT_INVALID_USAGE = 2
EXIT_NO_REPO = 3
EXIT_NO_CHANGES = 4
EXIT_CONFIG_ERROR = 5
EXIT_VCS_FAILURE = 6
EXIT_UNRESOLVED_CONFLICTS = 7
EXIT_ABORTED = 8


# ---------------------------------------------------------------------------
# Progress and status display utilities
# ---------------------------------------------------------------------------

class ProgressIndicator:
    """Print a message before a step and its duration after it."""

    def __init__(self, message: str):
        self.message = message
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        click.echo(f"→ {self.message}...")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type is None:
            elapsed = time.time() - self.start_time
            click.echo(f"  ✓ Done ({elapsed:.1f}s)")
        return False


def print_info(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}ℹ {message}")


def print_success(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}✓ {message}")


def print_warning(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}⚠ {message}")


def print_error(message: str, indent: int = 0):
    prefix = "  " * indent
    click.echo(f"{prefix}✗ {message}", err=True)


def _configure_logging(verbose: bool) -> None:
    # force=True so repeated invocations in one process reconfigure handlers.
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s: %(message)s",
        force=True,
    )


def _load_settings(config_path: Optional[Path], repo_root: Optional[Path]) -> PlannerSettings:
    try:
        return load_config(config_path, repo_root)
    except ConfigError as exc:
        print_error(f"Configuration error: {exc}")
        raise click.exceptions.Exit(EXIT_CONFIG_ERROR)


def _load_records(changes_json: Path) -> List[ChangeRecord]:
    try:
        records = load_change_records(changes_json)
    except ChangeRecordError as exc:
        print_error(f"Invalid change records: {exc}")
        raise click.exceptions.Exit(EXIT_INVALID_USAGE)
    if not records:
        print_warning("No changes to commit.")
        raise click.exceptions.Exit(EXIT_NO_CHANGES)
    return records


def result_to_dict(result: ResolutionResult) -> Dict[str, Any]:
    """JSON-serializable view of a resolution result."""
    data = result.plan.to_dict()
    data["success"] = result.success
    data["conflicts"] = [conflict.to_dict() for conflict in result.conflicts]
    data["resolutions"] = [
        {
            "kind": resolution.conflict.kind.value,
            "applied": resolution.applied,
            "action": resolution.action,
            "details": resolution.details,
        }
        for resolution in result.resolutions
    ]
    data["remaining"] = [conflict.to_dict() for conflict in result.remaining]
    data["resolution_warnings"] = list(result.warnings)
    return data


def display_plan(result: ResolutionResult) -> None:
    """Print the resolved plan, its warnings and any residual conflicts."""
    plan = result.plan
    added, removed = plan.line_stats()
    click.echo(f"\n{'=' * 60}")
    click.echo(
        f"📋 Commit plan: {plan.commit_count} commit{'s' if plan.commit_count != 1 else ''}, "
        f"{plan.total_files} file{'s' if plan.total_files != 1 else ''} (+{added}/-{removed})"
    )
    click.echo(f"{'=' * 60}")

    for number, group in enumerate(plan.groups, start=1):
        subject = group.commit_message().splitlines()[0]
        click.echo(f"\n{number}. {click.style(subject, fg='cyan', bold=True)}")
        click.echo(f"   id: {group.id}  priority: {group.priority}")
        for path in group.file_paths():
            click.echo(f"   • {path}")

    if plan.warnings:
        click.echo("")
    for warning in plan.warnings:
        print_warning(warning)

    for resolution in result.resolutions:
        if resolution.applied:
            print_info(f"Resolved {resolution.conflict.kind.value}: {resolution.details or resolution.action}")
    for warning in result.warnings:
        print_warning(warning)
    for conflict in result.remaining:
        print_error(f"Unresolved {conflict.kind.value}: {conflict.description}")
    click.echo(f"\nEstimated duration: ~{plan.estimated_duration}s")


def display_report(report: ExecutionReport) -> None:
    """Print per-group results and the rollback outcome of a run."""
    click.echo(f"\n{'=' * 60}")
    click.echo("💾 Execution results")
    click.echo(f"{'=' * 60}\n")

    for result in report.results:
        label = result.group_id or "-"
        if result.skipped:
            reason = "no changes"
            if result.metadata is not None and result.metadata.recovery is not None:
                reason = result.metadata.recovery.message
            print_warning(f"{label}: skipped ({reason})")
        elif result.success:
            suffix = " (partial)" if result.partial else ""
            short = result.commit_hash[:10] if result.commit_hash else "-"
            print_success(f"{label}: {short} {result.message.splitlines()[0] if result.message else ''}{suffix}")
        else:
            print_error(f"{label}: {result.error}")
            if result.metadata is not None:
                for action in result.metadata.suggested_actions:
                    print_info(action, indent=1)

    for warning in report.warnings:
        print_warning(warning)

    rollback = report.rollback
    if rollback is None:
        return
    if rollback.success:
        print_warning(rollback.message)
        return
    print_error(rollback.message)
    if rollback.manual_plan is not None:
        click.echo("\nManual rollback required:")
        for instruction in rollback.manual_plan.instructions:
            click.echo(f"   {instruction}")
        click.echo("")
        click.echo(rollback.manual_plan.script())


# ---------------------------------------------------------------------------
# Commands
# ---------------------------------------------------------------------------

@click.group()
@click.version_option(version=__version__, prog_name="commitplan")
def main() -> None:
    """Plan and apply atomic commits from analyzed changes."""


@main.command("plan")
@click.argument("changes_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Configuration file to use.")
@click.option("--json", "as_json", is_flag=True, help="Print the plan as JSON.")
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
def plan_command(changes_json: Path, config_path: Optional[Path], as_json: bool, verbose: bool) -> None:
    """Group CHANGES_JSON into a resolved commit plan and print it."""
    _configure_logging(verbose)
    repo_root = GitClient.find_repo_root(Path.cwd())
    settings = _load_settings(config_path, repo_root)
    records = _load_records(changes_json)

    result = plan_commits(records, settings)
    if as_json:
        click.echo(json.dumps(result_to_dict(result), indent=2))
    else:
        display_plan(result)
    raise click.exceptions.Exit(EXIT_UNRESOLVED_CONFLICTS if result.remaining else EXIT_SUCCESS)


@main.command("apply")
@click.argument("changes_json", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--repo", type=click.Path(exists=True, file_okay=False, path_type=Path), help="Repository to commit to.")
@click.option("--config", "config_path", type=click.Path(dir_okay=False, path_type=Path), help="Configuration file to use.")
@click.option("--yes", is_flag=True, help="Apply the plan without asking for confirmation.")
@click.option("--no-rollback", is_flag=True, help="Keep commits made before a failure.")
@click.option("--continue-on-error", is_flag=True, help="Proceed with later groups after a failed group.")
@click.option("--rollback-strategy", type=click.Choice(["reset", "revert"]), help="How to undo commits after a failure.")
@click.option("--verbose", is_flag=True, help="Enable verbose (debug) output.")
def apply_command(
    changes_json: Path,
    repo: Optional[Path],
    config_path: Optional[Path],
    yes: bool,
    no_rollback: bool,
    continue_on_error: bool,
    rollback_strategy: Optional[str],
    verbose: bool,
) -> None:
    """Plan CHANGES_JSON and commit it to the repository."""
    _configure_logging(verbose)
    ctx = click.get_current_context(silent=True)
    try:
        repo_root = GitClient.find_repo_root(repo or Path.cwd())
        if repo_root is None:
            print_error("No Git repository found in the given directory or its parents.")
            raise click.exceptions.Exit(EXIT_NO_REPO)
        logger.debug("Repository root: %s", repo_root)

        settings = _load_settings(config_path, repo_root)
        records = _load_records(changes_json)

        with ProgressIndicator(f"Planning commits for {len(records)} file(s)"):
            result = plan_commits(records, settings)
        display_plan(result)

        if result.remaining:
            print_error("The plan has unresolved conflicts; nothing was committed.")
            raise click.exceptions.Exit(EXIT_UNRESOLVED_CONFLICTS)
        if not result.plan.groups:
            print_warning("No changes to commit.")
            raise click.exceptions.Exit(EXIT_NO_CHANGES)

        count = result.plan.commit_count
        if not yes and not click.confirm(f"\nCreate {count} commit{'s' if count != 1 else ''}?", default=True):
            print_warning("Aborted; no changes committed.")
            raise click.exceptions.Exit(EXIT_ABORTED)

        orchestrator = CommitOrchestrator(GitClient(repo_root), settings.execution)
        report = orchestrator.execute_plan(
            result.plan,
            rollback_on_failure=not no_rollback,
            continue_on_error=continue_on_error,
            rollback_strategy=rollback_strategy,
        )
        display_report(report)

        if not report.success:
            raise click.exceptions.Exit(EXIT_VCS_FAILURE)
        committed = len(report.committed)
        click.echo(f"\n🎉 Created {committed} commit{'s' if committed != 1 else ''}.\n")
        raise click.exceptions.Exit(EXIT_SUCCESS)

    except click.exceptions.Exit:
        raise
    except Exception as exc:
        logging.exception("Unhandled error: %s", exc)
        print_error(f"Unexpected error: {exc}")
        ctx.exit(EXIT_GENERIC_ERROR)
