"""Helpers shared by the command modules."""

import asyncio
from collections.abc import Coroutine
from contextlib import contextmanager
import json
from typing import Any, TypeVar

from pydantic import BaseModel
from rich.console import Console
import typer

from minion_hive.errors import HiveError
from minion_hive.hive import Hive

T = TypeVar("T")

console = Console()


def get_hive() -> Hive:
    return Hive()


@contextmanager
def hive_errors():
    """Report a HiveError as one red line and exit with code 1."""
    try:
        yield
    except HiveError as e:
        console.print(f"[bold red]Error:[/bold red] {e}", highlight=False)
        raise typer.Exit(code=1) from None


def run(coro: Coroutine[Any, Any, T]) -> T:
    with hive_errors():
        return asyncio.run(coro)


def echo_json(data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json", by_alias=True)
    elif isinstance(data, list):
        data = [
            item.model_dump(mode="json", by_alias=True) if isinstance(item, BaseModel) else item
            for item in data
        ]
    typer.echo(json.dumps(data, indent=2, default=str))
