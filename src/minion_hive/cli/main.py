import typer

from minion_hive.cli.commands import archive, minions, network, query, template
from minion_hive.config import get_settings
from minion_hive.logging_config import setup_logging

app = typer.Typer(no_args_is_help=True)


@app.callback()
def callback(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Log at DEBUG level"),
):
    """
    Hive: run AI minions in Docker sandboxes
    """
    settings = get_settings()
    setup_logging(
        service_name=settings.service_name,
        log_format=settings.log_format,
        log_level="DEBUG" if verbose else settings.log_level,
    )


app.command()(minions.build)
app.command()(minions.spawn)
app.command()(minions.start)
app.command()(minions.kill)
app.command()(minions.pause)
app.command()(minions.resume)
app.command()(minions.restart)
app.command()(minions.retry)
app.command()(minions.clone)
app.command()(minions.rename)
app.command()(minions.prune)
app.command()(minions.cleanup)
app.command()(minions.wait)
app.command()(minions.schedule)

app.command("list")(query.list_minions)
app.command()(query.status)
app.command()(query.logs)
app.command()(query.watch)
app.command("exec")(query.exec_)
app.command()(query.collect)
app.command()(query.stats)
app.command()(query.health)

app.command()(network.send)
app.command()(network.inbox)
app.command()(network.broadcast)
app.command("clear-inbox")(network.clear_inbox)

app.command()(archive.export)
app.command("import")(archive.import_)

app.add_typer(template.app, name="template")
