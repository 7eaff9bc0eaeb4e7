#!/usr/bin/env python3
"""
Command-line interface for Anvil.

This module provides the CLI commands for pushing configuration to the
private configuration repository, pulling directories back out for review,
and inspecting or resetting the local working copy.
"""

import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.prompt import Confirm
from rich.syntax import Syntax

from .core.git_handler import GitHandler
from .core.models import SETTINGS_FILE, SETTINGS_TARGET, ChangeReport, DiffPreview, PullRecord, PushRecord, SyncTarget
from .core.settings import (
    DEFAULT_SETTINGS_PATH,
    AnvilSettings,
    load_settings,
    regenerate_git_config,
    sanitized_settings_file,
)
from .core.sync import SyncManager, SyncResult, SyncStatus
from .errors import AnvilError, BranchConfigError, SecurityBlocked
from .utils.logger import get_logger, setup_logging

# Rich console for formatted output
console = Console()

logger = get_logger(__name__)


def print_stage(message: str):
    console.print(f"[cyan]→[/cyan] {escape(message)}")


def show_security_warning(repo: str):
    console.print(Panel(
        f"Configuration files may contain API keys, paths and personal data.\n"
        f"Anvil only pushes to [bold]private[/bold] repositories.\n"
        f"[dim]Repository: {escape(repo)}[/dim]",
        title="Security",
        border_style="yellow",
    ))


def show_diff_preview(target: SyncTarget, report: ChangeReport, preview: Optional[DiffPreview]):
    """Render the change summary shown before confirmation."""
    name = escape(target.target_name)
    if report.is_new_target:
        console.print(f"[green]New app '{name}' detected - will be added to repository[/green]")

    if preview is None:
        console.print(
            f"[dim]{report.changed_file_count} file(s) changed, "
            f"+{report.insertion_count} -{report.deletion_count}[/dim]"
        )
        return

    console.print(Panel(
        escape(preview.stat) or "[dim]No textual changes[/dim]",
        title=f"Changes for {name}",
        subtitle=f"{preview.file_count} file(s), +{preview.insertions} -{preview.deletions}",
    ))
    if preview.full_diff:
        console.print(Syntax(preview.full_diff, "diff", theme="ansi_dark", word_wrap=True))


def show_push_record(record: PushRecord, web_url: Optional[str]):
    files = "\n".join(f"  - {escape(path)}" for path in record.files_committed)
    body = (
        f"[cyan]Branch:[/cyan] {escape(record.branch_name)}\n"
        f"[cyan]Commit:[/cyan] {escape(record.commit_message)}\n"
        f"[cyan]Repository:[/cyan] {escape(record.repository_url)}\n"
        f"[cyan]Files:[/cyan]\n{files}"
    )
    if web_url:
        body += f"\n\n[dim]Open a pull request: {web_url}/compare/{escape(record.branch_name)}?expand=1[/dim]"
    console.print(Panel(body, title="Configuration pushed successfully", border_style="green"))


def show_pull_record(record: PullRecord):
    files = "\n".join(f"  • {escape(path)}" for path in record.files_copied) or "  [dim](no files)[/dim]"
    console.print(Panel(
        f"Configuration directory '{escape(record.directory)}' has been pulled from: "
        f"{escape(record.repository_url)}\n"
        f"[cyan]Files are available at:[/cyan] {escape(str(record.destination))}\n"
        f"[cyan]Copied files:[/cyan]\n{files}",
        title="Pull Complete!",
        border_style="green",
    ))


def make_confirm(assume_yes: bool):
    """Confirmation callback that renders the preview and asks the operator."""

    def confirm(target: SyncTarget, report: ChangeReport, preview: Optional[DiffPreview]) -> bool:
        show_diff_preview(target, report, preview)
        if assume_yes:
            return True
        return Confirm.ask(
            f"Do you want to push your {escape(target.target_name)} configurations to the repository?",
            console=console,
        )

    return confirm


def format_sync_result(result: SyncResult, web_url: Optional[str]):
    """Format and display sync result."""
    if result.status == SyncStatus.PUSHED:
        show_push_record(result.record, web_url)
    elif result.status == SyncStatus.NO_CHANGES:
        console.print("[green]✓ Configuration up-to-date (no changes)[/green]")
        console.print(f"[dim]{escape(result.message)}[/dim]")
    else:
        console.print(f"[yellow]{escape(result.message)}[/yellow]")


def report_error(error: AnvilError):
    """Print an error with any remediation it carries."""
    if isinstance(error, SecurityBlocked):
        console.print(Panel(escape(str(error)), title="SECURITY BLOCK", border_style="red"))
        return

    if isinstance(error, BranchConfigError):
        console.print(f"[red]✗ {escape(error.message)}[/red]")
        console.print("The repository exists but the configured branch is not available.")
        console.print("    You may need to:")
        for step in error.remediation:
            console.print(f"    • {escape(step)}")
        return

    console.print(f"[red]✗ {escape(str(error))}[/red]")


def load_settings_or_exit(ctx) -> AnvilSettings:
    try:
        settings = load_settings(ctx.obj['settings_path'])
        settings.validate_for_push()
        return settings
    except AnvilError as e:
        report_error(e)
        sys.exit(1)


def run_push(settings: AnvilSettings, target: SyncTarget, assume_yes: bool):
    handle = settings.to_repository_handle()
    show_security_warning(handle.display_url)

    console.print(f"[cyan]Repository:[/cyan] {escape(handle.display_url)}")
    console.print(f"[cyan]Branch:[/cyan] {escape(handle.tracked_branch)}")
    console.print(f"[cyan]Local path:[/cyan] {escape(str(target.local_source_path))}")

    manager = SyncManager(handle, confirm=make_confirm(assume_yes), progress=print_stage)
    try:
        result = manager.push_target(target)
    except AnvilError as e:
        logger.debug(f"Push of {target.target_name} failed: {e!r}")
        report_error(e)
        sys.exit(1)

    format_sync_result(result, handle.web_url)


# Main CLI group
@click.group()
@click.option('--settings', 'settings_path', type=click.Path(path_type=Path),
              default=DEFAULT_SETTINGS_PATH, help='Path to the Anvil settings file')
@click.option('--verbose', '-v', is_flag=True, help='Enable verbose logging')
@click.option('--log-file', type=click.Path(path_type=Path), help='Log file path')
@click.pass_context
def cli(ctx, settings_path: Path, verbose: bool, log_file: Optional[Path]):
    """Anvil - push your configuration to a private repository."""
    ctx.ensure_object(dict)

    setup_logging(log_file=log_file, verbose=verbose)

    ctx.obj['settings_path'] = settings_path
    ctx.obj['verbose'] = verbose


@cli.command()
@click.argument('app_name', type=str, required=False)
@click.option('--yes', '-y', 'assume_yes', is_flag=True, help='Push without asking for confirmation')
@click.pass_context
def push(ctx, app_name: Optional[str], assume_yes: bool):
    """Push an app's configuration, or the Anvil settings when no app is given."""
    settings = load_settings_or_exit(ctx)

    if app_name:
        console.rule(f"Push '{escape(app_name)}' Configuration")
        try:
            source = settings.resolve_app_path(app_name)
        except AnvilError as e:
            report_error(e)
            sys.exit(1)
        run_push(settings, SyncTarget.for_app(app_name, source), assume_yes)
        return

    console.rule("Push Anvil Configuration")
    console.print(f"[cyan]Settings file:[/cyan] {escape(str(settings.path))}")
    with sanitized_settings_file(settings) as sanitized:
        run_push(settings, SyncTarget.for_settings(sanitized), assume_yes)


@cli.command()
@click.argument('directory', type=str, required=False, default=SETTINGS_TARGET)
@click.pass_context
def pull(ctx, directory: str):
    """Copy a directory of the repository to ~/.anvil/temp for review."""
    settings = load_settings_or_exit(ctx)
    handle = settings.to_repository_handle()

    console.rule(f"Pull '{escape(directory)}' Configuration")
    console.print(f"[cyan]Repository:[/cyan] {escape(handle.display_url)}")
    console.print(f"[cyan]Branch:[/cyan] {escape(handle.tracked_branch)}")
    console.print(f"[cyan]Target directory:[/cyan] {escape(directory)}")

    manager = SyncManager(handle, progress=print_stage)
    try:
        record = manager.pull_target(directory, settings.temp_dir)
    except AnvilError as e:
        logger.debug(f"Pull of {directory} failed: {e!r}")
        report_error(e)
        sys.exit(1)

    if record.directory == SETTINGS_TARGET:
        settings_copy = record.destination / SETTINGS_FILE
        try:
            if settings_copy.is_file() and regenerate_git_config(settings_copy):
                console.print("[green]✓ Git config regenerated from system[/green]")
        except AnvilError as e:
            console.print(f"[yellow]Could not regenerate git config: {escape(str(e))}[/yellow]")

    show_pull_record(record)


@cli.command()
@click.pass_context
def status(ctx):
    """Show the state of the local working copy."""
    settings = load_settings_or_exit(ctx)
    handle = settings.to_repository_handle()
    info = GitHandler(handle).status()

    if not info['cloned']:
        console.print(f"[yellow]Working copy not cloned yet:[/yellow] {escape(info['path'])}")
        return

    untracked = info['untracked']
    console.print(Panel(
        f"[cyan]Path:[/cyan] {escape(info['path'])}\n"
        f"[cyan]Repository:[/cyan] {escape(handle.display_url)}\n"
        f"[cyan]Tracked branch:[/cyan] {escape(handle.tracked_branch)}\n"
        f"[cyan]Current branch:[/cyan] {escape(str(info['branch']))}\n"
        f"[cyan]Dirty:[/cyan] {'Yes' if info['dirty'] else 'No'}\n"
        f"[cyan]Untracked:[/cyan] {len(untracked)}",
        title="Working Copy Status"
    ))


@cli.command()
@click.pass_context
def cleanup(ctx):
    """Discard staged changes and return the working copy to the tracked branch."""
    settings = load_settings_or_exit(ctx)
    handler = GitHandler(settings.to_repository_handle())
    try:
        handler.cleanup_staged_changes()
    except AnvilError as e:
        report_error(e)
        sys.exit(1)
    console.print(f"[green]✓ Working copy clean on '{escape(settings.branch)}'[/green]")


def main():
    """Main entry point for the CLI."""
    try:
        cli()
    except KeyboardInterrupt:
        console.print("\n[yellow]Operation cancelled by user.[/yellow]")
        sys.exit(1)


if __name__ == '__main__':
    main()
