"""Read-only commands over the registry."""

from rich.table import Table
import typer

from minion_hive.cli import common
from minion_hive.cli.common import console, echo_json, run
from minion_hive.formatting import human_size
from minion_hive.registry import display_status

STATUS_STYLES = {
    "COMPLETE": "green",
    "FAILED": "red",
    "WORKING": "cyan",
    "STARTING": "cyan",
    "paused": "yellow",
    "killed": "dim",
}


def list_minions(
    search: str | None = typer.Option(None, "--search", "-s", help="Match name or task text"),
    status: str | None = typer.Option(None, "--status", help="Filter by any status"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """List all minions"""
    hive = common.get_hive()
    if search or status:
        views = run(hive.registry.search(search, status))
    else:
        views = run(hive.registry.list_minions())

    if json_output:
        echo_json(views)
        return
    if not views:
        console.print("No minions")
        return

    table = Table(title="Minions")
    table.add_column("Name", style="bold")
    table.add_column("Status")
    table.add_column("Container")
    table.add_column("Inbox", justify="right")
    table.add_column("Created")
    table.add_column("Task", overflow="ellipsis", max_width=60)

    for view in views:
        shown = display_status(view)
        style = STATUS_STYLES.get(shown, "")
        table.add_row(
            view.name,
            f"[{style}]{shown}[/{style}]" if style else shown,
            view.container_status or "-",
            str(view.message_count),
            view.created_at.strftime("%Y-%m-%d %H:%M"),
            view.task.splitlines()[0] if view.task else "",
        )
    console.print(table)


def status(
    name: str = typer.Argument(...),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show a minion's status and output"""
    result = run(common.get_hive().registry.status(name))
    if json_output:
        echo_json(result)
        return

    console.print(f"[bold]Minion:[/bold] {result.name}")
    console.print(f"Status: {display_status(result)} (lifecycle: {result.status.value})")
    console.print(f"Created: {result.created_at.isoformat()}")
    if result.depends_on:
        console.print(f"Depends on: {result.depends_on}")
    if result.container_id:
        console.print(f"Container: {result.container_id[:12]} ({result.container_status})")
    console.print(f"Messages: {result.message_count}")
    if result.output:
        console.print("\n--- Output ---")
        console.print(result.output, markup=False, highlight=False)


def logs(
    name: str = typer.Argument(...),
    lines: int = typer.Option(50, "--lines", "-n", help="Number of trailing lines"),
):
    """Show a minion's container logs"""
    output = run(common.get_hive().registry.logs(name, lines))
    typer.echo(output, nl=False)


def watch(name: str = typer.Argument(...)):
    """Follow a minion's container logs live"""
    hive = common.get_hive()

    async def _follow() -> None:
        async for chunk in hive.registry.follow_logs(name):
            typer.echo(chunk, nl=False)

    try:
        run(_follow())
    except KeyboardInterrupt:
        console.print("\nStopped watching")


def exec_(
    name: str = typer.Argument(...),
    command: list[str] = typer.Argument(..., help="Command to run, e.g. hive exec NAME -- ls -la"),
):
    """Run a command inside a minion's container"""
    result = run(common.get_hive().registry.exec(name, command))
    typer.echo(result.output, nl=False)
    if result.exit_code:
        raise typer.Exit(code=result.exit_code)


def collect(name: str = typer.Argument(...)):
    """Print a minion's outcome as JSON"""
    echo_json(run(common.get_hive().registry.collect(name)))


def stats(
    name: str = typer.Argument(...),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show resource usage of a running minion"""
    result = run(common.get_hive().registry.stats(name))
    if json_output:
        echo_json(result)
        return

    console.print(f"[bold]{name}[/bold]")
    console.print(f"CPU:    {result.cpu_percent:.2f}%")
    console.print(f"Memory: {result.mem_usage} ({result.mem_percent:.2f}%)")
    console.print(f"Net IO: {result.net_io}")
    console.print(f"Disk:   {result.block_io}")
    console.print(f"PIDs:   {result.pid_count}")


def health(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """Check Docker, the minion image and minion counts"""
    report = run(common.get_hive().registry.health())
    if json_output:
        echo_json(report)
    else:
        docker_state = "[green]running[/green]" if report.docker_running else "[red]unreachable[/red]"
        console.print(f"Docker: {docker_state}")
        if report.image_exists:
            console.print(f"Image:  [green]present[/green] (built {report.image_age} ago)")
        else:
            console.print("Image:  [yellow]missing[/yellow] (run: hive build)")
        console.print(f"Minions: {report.minions_total} total, {report.minions_running} running")
        for state, count in sorted(report.by_status.items()):
            console.print(f"  {state}: {count}")
        if report.disk:
            table = Table(title="Docker disk usage")
            for column in ("Type", "Total", "Active", "Size", "Reclaimable"):
                table.add_column(column, justify="left" if column == "Type" else "right")
            for row in report.disk:
                table.add_row(
                    row.type,
                    str(row.total_count),
                    str(row.active),
                    human_size(row.size),
                    human_size(row.reclaimable),
                )
            console.print(table)

    if not report.docker_running:
        raise typer.Exit(code=1)
