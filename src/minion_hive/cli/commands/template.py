"""Task template commands (``hive template ...``)."""

from pathlib import Path

from rich.table import Table
import typer

from minion_hive.cli import common
from minion_hive.cli.common import console, echo_json, hive_errors

app = typer.Typer(help="Manage reusable task templates")


@app.command("save")
def save(
    name: str = typer.Argument(...),
    content: str | None = typer.Argument(None, help="Template text"),
    source: Path | None = typer.Option(
        None, "--file", "-f", exists=True, dir_okay=False, help="Read the template from a file"
    ),
):
    """Save a task template"""
    if source:
        content = source.read_text(encoding="utf-8")
    if not content:
        console.print("[bold red]Error:[/bold red] Template content required: pass CONTENT or --file")
        raise typer.Exit(code=1)

    with hive_errors():
        info = common.get_hive().templates.save(name, content)
    console.print(f"[bold green]✓ Template {info.name} saved[/bold green] ({info.size} bytes)")


@app.command("list")
def list_templates(json_output: bool = typer.Option(False, "--json", help="Output as JSON")):
    """List saved templates"""
    templates = common.get_hive().templates.list_templates()
    if json_output:
        echo_json(templates)
        return
    if not templates:
        console.print("No templates")
        return

    table = Table(title="Templates")
    table.add_column("Name", style="bold")
    table.add_column("Size", justify="right")
    table.add_column("Modified")
    table.add_column("Preview", overflow="ellipsis", max_width=60)
    for info in templates:
        table.add_row(
            info.name,
            str(info.size),
            info.modified_at.strftime("%Y-%m-%d %H:%M"),
            info.preview.splitlines()[0] if info.preview else "",
        )
    console.print(table)


@app.command("get")
def get(name: str = typer.Argument(...)):
    """Print a template"""
    with hive_errors():
        content = common.get_hive().templates.get(name)
    typer.echo(content, nl=not content.endswith("\n"))


@app.command("delete")
def delete(name: str = typer.Argument(...)):
    """Delete a template"""
    with hive_errors():
        common.get_hive().templates.delete(name)
    console.print(f"[bold green]✓ Template {name} deleted[/bold green]")
