"""Mailbox commands."""

import typer

from minion_hive.cli import common
from minion_hive.cli.common import console, echo_json, hive_errors


def send(
    sender: str = typer.Argument(..., help="Sending minion"),
    recipient: str = typer.Argument(..., help="Receiving minion"),
    body: str = typer.Argument(..., help="Message text"),
):
    """Send a message from one minion to another"""
    with hive_errors():
        message = common.get_hive().mailbox.send(sender, recipient, body)
    console.print(f"[bold green]✓ Sent[/bold green] {sender} -> {recipient} ({message.id})")


def inbox(
    name: str = typer.Argument(...),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
):
    """Show a minion's messages, oldest first"""
    with hive_errors():
        messages = common.get_hive().mailbox.inbox(name)

    if json_output:
        echo_json(messages)
        return
    if not messages:
        console.print(f"No messages for {name}")
        return
    for message in messages:
        console.print(
            f"[dim]{message.timestamp.isoformat()}[/dim] [bold]{message.sender}[/bold]: ",
            end="",
        )
        console.print(message.body, markup=False, highlight=False)


def broadcast(
    sender: str = typer.Argument(...),
    body: str = typer.Argument(...),
):
    """Send a message to every other minion"""
    with hive_errors():
        sent = common.get_hive().mailbox.broadcast(sender, body)
    console.print(f"[bold green]✓ Broadcast to {len(sent)} minion(s)[/bold green]")


def clear_inbox(name: str = typer.Argument(...)):
    """Delete all messages for a minion"""
    with hive_errors():
        result = common.get_hive().mailbox.clear(name)
    console.print(f"Cleared {result.cleared} message(s) for {name}")
