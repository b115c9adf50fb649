import typer
import rich_click  # noqa: F401
from .status import reset, status
from .upgrade import prepare, upgrade
from chupgrade import __version__

app = typer.Typer(
    name="chupgrade",
    help="Resumable Content Hub 1.x to 2.x upgrade for Site Factory farms",
    no_args_is_help=True,
)

@app.command("version")
def version() -> None:
    """Show the chupgrade version."""
    typer.echo(f"chupgrade v{__version__}")

app.command()(prepare)
app.command("preup", hidden=True)(prepare)
app.command()(upgrade)
app.command("up", hidden=True)(upgrade)
app.command()(status)
app.command()(reset)
