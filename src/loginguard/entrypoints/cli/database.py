"""ABOUTME: CLI commands for database management operations
ABOUTME: Provides commands to create and drop the LoginGuard tables"""

import os

import click

from loginguard.adapters.database import create_tables, drop_tables

from . import get_services


@click.group()
def database() -> None:
    """Database management commands."""
    pass


@database.command("init")
@click.pass_context
def init_db(ctx: click.Context) -> None:
    """Create any missing tables."""
    try:
        services = get_services(ctx)
        create_tables(services.session_factory.kw["bind"])
        click.echo(click.style("✓ Database tables created.", "green"))
    except Exception as e:
        click.echo(click.style(f"✗ Error creating tables: {e}", "red"))
        raise click.Abort() from e


@database.command("drop")
@click.pass_context
def drop_db(ctx: click.Context) -> None:
    """Drop all LoginGuard tables."""
    if os.environ.get("ALLOW_RESET_DB", "") != "DANGEROUS":
        click.echo("Dropping the database is a dangerous operation. In order to enable it set the")
        click.echo("environment variable ALLOW_RESET_DB to DANGEROUS.")
        return

    click.echo(click.style("⚠️  WARNING: This will destroy ALL data in the database!", "red"))
    delete_confirm = click.prompt("Type 'delete everything' if you want to continue.")
    if delete_confirm != "delete everything":
        click.echo("Operation cancelled.")
        return

    try:
        services = get_services(ctx)
        drop_tables(services.session_factory.kw["bind"])
        click.echo(click.style("✓ Database tables dropped.", "green"))
    except Exception as e:
        click.echo(click.style(f"✗ Error dropping tables: {e}", "red"))
        raise click.Abort() from e
