"""ABOUTME: CLI commands for account management
ABOUTME: Adds accounts to the SQL-backed credential store used by the login flow"""

import click

from loginguard.adapters.accounts import AccountAlreadyExists

from . import get_services


@click.group()
def accounts() -> None:
    """Account management commands."""
    pass


@accounts.command("add")
@click.option("--email", required=True, help="Account email address")
@click.option("--password", help="Password (will prompt if not provided)")
@click.option("--home-region", help="Region marker usual logins come from, e.g. TX")
@click.pass_context
def add_account(ctx: click.Context, email: str, password: str | None, home_region: str | None) -> None:
    """Add a new account."""
    try:
        if not password:
            password = click.prompt("Password", hide_input=True, confirmation_prompt=True)
        assert isinstance(password, str)

        account = get_services(ctx).accounts.add_account(email, password, home_region=home_region)

        click.echo(click.style("✓ Account created successfully:", "green"))
        click.echo(f"  ID: {account.id}")
        click.echo(f"  Email: {account.email}")
        if account.home_region:
            click.echo(f"  Home region: {account.home_region}")

    except (AccountAlreadyExists, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e
    except Exception as e:
        click.echo(click.style(f"✗ Unexpected error: {e}", "red"))
        raise click.Abort() from e
