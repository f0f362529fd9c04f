"""Main CLI for branchspace."""

import asyncio
import sys
import time
from pathlib import Path
from typing import Dict, Optional

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from ..core.config import EngineContext, ProgressCallbacks, SpaceConfig, load_config
from ..errors.exceptions import WorkspaceError, WorkspaceSetupError
from ..errors.translator import ErrorTranslator
from ..utils.rich_logging import ContextLogger, setup_rich_logging
from ..workspace.branch_naming import DerivedBranchNamer
from ..workspace.lifecycle import WorkspaceLifecycleController
from ..workspace.paths import list_workspaces, resolve_workspace_paths


console = Console()


def _progress_callbacks(log: ContextLogger) -> ProgressCallbacks:
    """Log each operation as it starts and finishes."""
    started: Dict[str, float] = {}

    def on_step_start(op_id: str) -> None:
        started[op_id] = time.monotonic()
        step, _, repo = op_id.partition(":")
        log.step_started(step, repo=repo or None)

    def on_step_complete(op_id: str) -> None:
        step, _, repo = op_id.partition(":")
        log.set_context(repo=repo or None, step=step)
        log.step_completed(step, time.monotonic() - started.pop(op_id, time.monotonic()))
        log.clear_context()

    return ProgressCallbacks(on_step_start=on_step_start, on_step_complete=on_step_complete)


def _load(ctx) -> SpaceConfig:
    try:
        return load_config(ctx.obj["config_path"])
    except WorkspaceError as e:
        _fail(e)


def _fail(error: BaseException) -> None:
    translator = ErrorTranslator()
    if isinstance(error, WorkspaceSetupError):
        console.print(f"[bold red]{error.summary}[/]\n")
        for failure in error.failures:
            friendly = translator.translate(failure.error)
            console.print(f"  [bold]{failure.repo_key}[/] / {failure.step}: {escape(str(failure.error))}")
            if friendly.actions:
                console.print(f"    [yellow]->[/] {escape(friendly.actions[0])}")
    else:
        console.print(translator.format_for_cli(translator.translate(error)))
    sys.exit(1)


@click.group()
@click.option("--config", "-c", "config_path", type=click.Path(path_type=Path),
              default=None, help="Config file (default: ~/.space-config.yaml or ./config.yaml)")
@click.option("--verbose", "-v", is_flag=True, help="Show debug logging")
@click.option("--log-dir", type=click.Path(path_type=Path), default=None,
              help="Also write logs to this directory")
@click.pass_context
def cli(ctx, config_path: Optional[Path], verbose: bool, log_dir: Optional[Path]):
    """branchspace - branch-anchored multi-repo workspaces on git worktrees."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    ctx.obj["log"] = setup_rich_logging("DEBUG" if verbose else "INFO", log_dir=log_dir)


def _worktree_table(paths) -> Table:
    table = Table()
    table.add_column("Repo")
    table.add_column("Branch")
    table.add_column("Worktree")
    for key, _repo_path, worktree_path, branch_name in paths.worktrees():
        table.add_row(key, branch_name, str(worktree_path))
    return table


def _print_setup_plan(controller: WorkspaceLifecycleController, project_config, branch: str) -> None:
    attempt = controller.plan(project_config, branch)
    batches = controller.build_setup_batches(attempt)

    console.print(f"[bold]Setup plan for {project_config.display_name} on '{escape(branch)}':[/]")
    console.print(_worktree_table(attempt.paths))

    for index, batch in enumerate(batches, 1):
        console.print(f"{index}. [cyan]{batch.name}[/]")
        for op in batch.operations:
            console.print(f"    - {escape(op.description)}")
    console.print("\n[dim]Dry run, nothing created[/]")


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.option("--dry-run", is_flag=True, help="Only show the planned steps and paths")
@click.pass_context
def setup(ctx, project, branch, dry_run):
    """Create the workspace for PROJECT on BRANCH."""
    config = _load(ctx)
    context = EngineContext(config=config, progress=_progress_callbacks(ctx.obj["log"]))

    try:
        project_config = config.get_project(project)
        controller = WorkspaceLifecycleController(context)
        if dry_run:
            _print_setup_plan(controller, project_config, branch)
            return
        console.print(f"[bold]Setting up {project_config.display_name} on '{branch}'...[/]")
        paths = asyncio.run(controller.setup(project_config, branch))
    except WorkspaceError as e:
        _fail(e)

    console.print(f"\n[green]✓ Workspace ready:[/] {paths.workspace_dir}")
    console.print(_worktree_table(paths))


@cli.command()
@click.argument("project")
@click.argument("branch")
@click.option("--delete-branches", is_flag=True, help="Also delete the workspace branches")
@click.option("--force", "-f", is_flag=True, help="Remove without asking")
@click.option("--dry-run", is_flag=True, help="Only show what would be removed")
@click.pass_context
def clean(ctx, project, branch, delete_branches, force, dry_run):
    """Remove the workspace for PROJECT on BRANCH."""
    config = _load(ctx)
    context = EngineContext(config=config, progress=_progress_callbacks(ctx.obj["log"]))

    try:
        project_config = config.get_project(project)
        paths = resolve_workspace_paths(
            config.global_settings,
            project_config,
            branch,
            DerivedBranchNamer(config.engine.derived_branch_suffix),
        )
        controller = WorkspaceLifecycleController(context)
        actions = asyncio.run(controller.describe_cleanup(paths, delete_branches))
    except WorkspaceError as e:
        _fail(e)

    if not actions:
        console.print(f"[yellow]Nothing to clean for '{branch}'[/]")
        return

    console.print("[bold]Cleanup will:[/]")
    for action in actions:
        console.print(f"  - {escape(action)}")

    if dry_run:
        console.print("\n[dim]Dry run, nothing removed[/]")
        return
    if not force and not click.confirm("Proceed?"):
        console.print("[yellow]Aborted[/]")
        return

    try:
        result = asyncio.run(controller.cleanup(paths, delete_branches=delete_branches))
    except WorkspaceError as e:
        _fail(e)

    console.print(
        f"[green]✓ Removed {len(result.removed_worktrees)} worktree(s)"
        f"{f', {len(result.deleted_branches)} branch(es)' if result.deleted_branches else ''}[/]"
    )


@cli.command()
@click.pass_context
def projects(ctx):
    """List configured projects."""
    config = _load(ctx)

    if not config.projects:
        console.print("[yellow]No projects configured[/]")
        return

    table = Table(title="Projects")
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Repo")
    table.add_column("Sample repo")

    for key, project in sorted(config.projects.items()):
        table.add_row(key, project.display_name, project.repo, project.sample_repo or "-")

    console.print(table)


@cli.command("list")
@click.argument("project", required=False)
@click.pass_context
def list_command(ctx, project):
    """List existing workspaces, optionally only those of PROJECT."""
    config = _load(ctx)

    try:
        if project:
            selected = [config.get_project(project)]
        else:
            selected = [config.projects[key] for key in sorted(config.projects)]
    except WorkspaceError as e:
        _fail(e)

    found = False
    for project_config in selected:
        names = list_workspaces(config.global_settings, project_config)
        if not names:
            if project:
                console.print(
                    f"[yellow]No workspaces found for project '{project_config.key}' "
                    f"({project_config.display_name})[/]"
                )
            continue
        found = True
        console.print(f"\n[bold]{project_config.display_name}[/] ({project_config.key}):")
        for name in names:
            console.print(f"  {escape(name)}")

    if not found and not project:
        console.print("[yellow]No workspaces found for any project[/]")
        console.print("\nCreate one with: space setup <project> <branch>")


@cli.command()
@click.argument("branch")
@click.option("--suffix", default=None, help="Suffix for the derived name (default from config)")
@click.pass_context
def derive(ctx, branch, suffix):
    """Print the sample-repo branch name derived from BRANCH."""
    if suffix is None:
        suffix = _load(ctx).engine.derived_branch_suffix
    try:
        namer = DerivedBranchNamer(suffix)
    except ValueError as e:
        raise click.BadParameter(str(e), param_hint="--suffix")
    click.echo(namer.derive(branch))


if __name__ == "__main__":
    cli()
