"""Workspace export and import commands."""

from pathlib import Path

import typer

from minion_hive.cli import common
from minion_hive.cli.common import console, echo_json, hive_errors, run


def export(
    name: str = typer.Argument(...),
    output: Path | None = typer.Option(None, "--output", "-o", help="Archive path"),
    include_logs: bool = typer.Option(False, "--logs", help="Add container.log"),
    include_inbox: bool = typer.Option(False, "--inbox", help="Add the mailbox as inbox/"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Export a minion's workspace to a .tar.gz"""
    result = run(
        common.get_hive().archiver.export_minion(
            name, output, include_logs=include_logs, include_inbox=include_inbox
        )
    )
    if json_output:
        echo_json(result)
        return
    console.print(f"[bold green]✓ Exported {name}[/bold green] to {result.path} ({result.size_human})")


def import_(
    archive: Path = typer.Argument(..., help="Archive created by hive export"),
    name: str | None = typer.Option(None, "--name", help="Import under another name"),
    overwrite: bool = typer.Option(False, "--overwrite", help="Replace an existing minion"),
):
    """Import a minion from a .tar.gz"""
    with hive_errors():
        result = common.get_hive().archiver.import_minion(archive, name=name, overwrite=overwrite)
    console.print(f"[bold green]✓ Imported {result.name}[/bold green] into {result.path}")
