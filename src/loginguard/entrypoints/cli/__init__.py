"""ABOUTME: Main CLI entry point using Click for LoginGuard administration
ABOUTME: Provides subcommands for the database, accounts, two-factor enrollment and interactive login"""

import click

from loginguard import __version__
from loginguard.bootstrap import Services, bootstrap
from loginguard.config import get_config
from loginguard.logging import logging_setup


@click.group()
@click.pass_context
def cli(ctx: click.Context) -> None:
    """LoginGuard administration CLI."""
    # Ensure context object exists
    ctx.ensure_object(dict)

    if "config" not in ctx.obj:
        ctx.obj["config"] = get_config()
    logging_setup(ctx.obj["config"].log_level)


def get_services(ctx: click.Context) -> Services:
    """Build the services on first use, so commands like `version` never touch the database."""
    obj = ctx.find_object(dict)
    assert obj is not None
    if "services" not in obj:
        obj["services"] = bootstrap(obj["config"])
    return obj["services"]


@cli.command()
def version() -> None:
    """Show LoginGuard version."""
    click.echo(f"LoginGuard {__version__}")


# Import subcommands to register them
from .accounts import accounts  # noqa: E402
from .database import database  # noqa: E402
from .login import login  # noqa: E402
from .two_factor import two_factor  # noqa: E402

cli.add_command(accounts)
cli.add_command(database)
cli.add_command(login)
cli.add_command(two_factor)


if __name__ == "__main__":
    cli()
