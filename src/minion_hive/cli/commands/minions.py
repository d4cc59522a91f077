"""Lifecycle commands: spawn, start, kill and friends."""

from pathlib import Path

import typer

from minion_hive.cli import common
from minion_hive.cli.common import console, echo_json, run
from minion_hive.models import (
    CleanupOptions,
    CloneOptions,
    CreateOptions,
    PruneOptions,
    StartOptions,
    WaitOutcome,
)
from minion_hive.runtime.docker_ops import BUNDLED_BUILD_CONTEXT


def build(
    context: Path | None = typer.Option(
        None, "--context", help="Directory with the Dockerfile (default: bundled image)"
    ),
):
    """Build the minion Docker image"""
    hive = common.get_hive()
    context = context or hive.settings.image_build_context or BUNDLED_BUILD_CONTEXT

    console.print(f"Building [cyan]{hive.settings.image_name}[/cyan] from {context}")
    run(hive.runtime.build_image(context))
    console.print("[bold green]✓ Minion image built[/bold green]")


def spawn(
    name: str = typer.Argument(..., help="Minion name"),
    task: str | None = typer.Argument(None, help="Task text"),
    task_file: Path | None = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Read the task from a file"
    ),
    template: str | None = typer.Option(None, "--template", "-t", help="Use a saved template"),
    after: str | None = typer.Option(None, "--after", help="Start once this minion completes"),
    keep_alive: bool = typer.Option(False, "--keep-alive", help="Keep container after task"),
    memory: str | None = typer.Option(None, "--memory", help="Memory limit, e.g. 512m"),
    cpus: float | None = typer.Option(None, "--cpus", help="CPU limit, e.g. 1.5"),
    no_start: bool = typer.Option(False, "--no-start", help="Create without starting"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Spawn a new minion with a task"""
    hive = common.get_hive()

    with common.hive_errors():
        if task_file:
            task = task_file.read_text(encoding="utf-8")
        elif template:
            task = hive.templates.get(template)
    if not task:
        console.print("[bold red]Error:[/bold red] Task required: pass TASK, --file or --template")
        raise typer.Exit(code=1)

    if not hive.settings.claude_token:
        console.print("[yellow]No CLAUDE_CODE_OAUTH_TOKEN set; the minion may not reach Claude[/yellow]")

    options = CreateOptions(keep_alive=keep_alive, memory=memory, cpus=cpus, start=not no_start)
    if after:
        meta = run(hive.lifecycle.create_waiting(name, task, after, options))
    else:
        meta = run(hive.lifecycle.create(name, task, options))

    if json_output:
        echo_json(meta)
        return

    console.print(f"[bold green]✓ Minion {meta.name} spawned[/bold green] ({meta.status.value})")
    if meta.container_id:
        console.print(f"Container: [cyan]{meta.container_id[:12]}[/cyan]")
    if meta.depends_on:
        console.print(f"Waiting for: [magenta]{meta.depends_on}[/magenta]")
    console.print(f"Workspace: {hive.minions.workspace_path(meta.name)}")


def start(
    name: str = typer.Argument(...),
    keep_alive: bool = typer.Option(False, "--keep-alive"),
    memory: str | None = typer.Option(None, "--memory"),
    cpus: float | None = typer.Option(None, "--cpus"),
):
    """Start a pending or waiting minion"""
    hive = common.get_hive()
    meta = run(hive.lifecycle.start(name, StartOptions(keep_alive=keep_alive, memory=memory, cpus=cpus)))
    console.print(f"[bold green]✓ Minion {name} started[/bold green] ({meta.container_id[:12]})")


def kill(name: str = typer.Argument(...)):
    """Terminate a minion"""
    run(common.get_hive().lifecycle.kill(name))
    console.print(f"[bold green]✓ Minion {name} killed[/bold green]")


def pause(name: str = typer.Argument(...)):
    """Pause a running minion"""
    run(common.get_hive().lifecycle.pause(name))
    console.print(f"[bold green]✓ Minion {name} paused[/bold green]")


def resume(name: str = typer.Argument(...)):
    """Resume a paused minion"""
    run(common.get_hive().lifecycle.resume(name))
    console.print(f"[bold green]✓ Minion {name} resumed[/bold green]")


def restart(name: str = typer.Argument(...)):
    """Restart a minion's container"""
    run(common.get_hive().lifecycle.restart(name))
    console.print(f"[bold green]✓ Minion {name} restarted[/bold green]")


def retry(
    name: str = typer.Argument(...),
    keep_alive: bool = typer.Option(False, "--keep-alive"),
):
    """Run a minion's task again in a fresh container"""
    run(common.get_hive().lifecycle.retry(name, StartOptions(keep_alive=keep_alive)))
    console.print(f"[bold green]✓ Minion {name} restarted from scratch[/bold green]")


def clone(
    source: str = typer.Argument(...),
    new_name: str = typer.Argument(...),
    full: bool = typer.Option(False, "--full", help="Copy the whole workspace"),
    include_mailbox: bool = typer.Option(False, "--with-inbox", help="Copy the mailbox too"),
    start_now: bool = typer.Option(False, "--start", help="Start the clone right away"),
):
    """Create a new minion from an existing one"""
    options = CloneOptions(full_workspace=full, include_mailbox=include_mailbox, start=start_now)
    meta = run(common.get_hive().lifecycle.clone(source, new_name, options))
    console.print(f"[bold green]✓ Cloned {source} -> {new_name}[/bold green] ({meta.status.value})")


def rename(old_name: str = typer.Argument(...), new_name: str = typer.Argument(...)):
    """Rename a stopped minion"""
    run(common.get_hive().lifecycle.rename(old_name, new_name))
    console.print(f"[bold green]✓ Renamed {old_name} -> {new_name}[/bold green]")


def prune(
    older_than: str | None = typer.Option(None, "--older-than", help="Age such as 7d, 12h, 30m"),
    all_: bool = typer.Option(False, "--all", help="Ignore age"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Only show what would be pruned"),
):
    """Delete finished minions older than a threshold"""
    options = PruneOptions(older_than=older_than, all=all_, dry_run=dry_run)
    result = run(common.get_hive().lifecycle.prune(options))

    if not result.pruned:
        console.print("Nothing to prune")
        return
    verb = "Would prune" if result.dry_run else "Pruned"
    console.print(f"{verb}: {', '.join(result.pruned)}")


def cleanup(
    all_: bool = typer.Option(False, "--all", help="Clean every minion"),
    remove_files: bool = typer.Option(False, "--remove-files", help="Delete workspaces too"),
):
    """Remove containers of completed or killed minions"""
    cleaned = run(common.get_hive().lifecycle.cleanup(CleanupOptions(all=all_, remove_files=remove_files)))
    if not cleaned:
        console.print("Nothing to clean up")
        return
    console.print(f"Cleaned: {', '.join(cleaned)}")


def wait(
    name: str = typer.Argument(...),
    timeout: float | None = typer.Option(None, "--timeout", help="Seconds to wait"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between polls"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Block until a minion completes or fails"""
    hive = common.get_hive()
    result = run(
        hive.scheduler.wait(
            name,
            timeout=timeout if timeout is not None else hive.settings.wait_timeout_sec,
            poll_interval=interval if interval is not None else hive.settings.poll_interval_sec,
        )
    )

    if json_output:
        echo_json(result)
    else:
        color = {"COMPLETE": "green", "FAILED": "red"}.get(result.status.value, "yellow")
        console.print(f"[bold {color}]{result.status.value}[/bold {color}]")
        if result.output:
            console.print(result.output, markup=False, highlight=False)

    if result.status != WaitOutcome.COMPLETE:
        raise typer.Exit(code=1)


def schedule(
    watch: bool = typer.Option(False, "--watch", help="Keep promoting until interrupted"),
    interval: float | None = typer.Option(None, "--interval", help="Seconds between passes"),
    keep_alive: bool = typer.Option(False, "--keep-alive", help="Keep promoted containers after their task"),
):
    """Start waiting minions whose dependency completed"""
    hive = common.get_hive()
    options = StartOptions(keep_alive=keep_alive)

    def _announce(promoted: str) -> None:
        console.print(f"[bold green]✓ Started {promoted}[/bold green]")

    if not watch:
        report = run(hive.scheduler.check_and_promote(options, on_promote=_announce))
        for failed, reason in report.failed.items():
            console.print(f"[bold red]Error:[/bold red] {failed}: {reason}", highlight=False)
        if not report.promoted and not report.failed:
            console.print("Nothing to start")
        if report.failed:
            raise typer.Exit(code=1)
        return

    every = interval if interval is not None else hive.settings.schedule_interval_sec
    console.print(f"Watching dependencies every {every}s (Ctrl+C to stop)")
    try:
        promoted = run(hive.scheduler.watch(every, options, on_promote=_announce))
    except KeyboardInterrupt:
        console.print("\nStopped watching")
        return
    console.print(f"Started {len(promoted)} minion(s)")

