"""ABOUTME: CLI commands for two-factor authentication management
ABOUTME: Enroll, confirm, disable, inspect and regenerate recovery codes for an account"""

import click

from loginguard.bootstrap import Services
from loginguard.domain.two_factor import EmailEnrollment, EnrollmentRequest, SmsEnrollment, TotpEnrollment
from loginguard.domain.value_objects import TwoFactorMethod
from loginguard.service_layer import two_factor_service
from loginguard.service_layer.exceptions import ServiceLayerError, TwoFactorCodeError

from . import get_services


def _show_recovery_codes(codes: list[str]) -> None:
    click.echo("Recovery codes (each works once, store them somewhere safe):")
    for code in codes:
        click.echo(f"  {code}")


@click.group("two-factor")
def two_factor() -> None:
    """Two-factor authentication commands."""
    pass


@two_factor.command("enroll")
@click.argument("email")
@click.option(
    "--method",
    type=click.Choice([m.value for m in TwoFactorMethod], case_sensitive=False),
    default=TwoFactorMethod.TOTP.value,
    help="Second-factor method",
)
@click.option("--phone", help="Phone number for sms codes")
@click.option("--backup-email", help="Backup email address for email codes")
@click.option("--no-confirm", is_flag=True, help="Only start enrollment, confirm later with `two-factor confirm`")
@click.pass_context
def enroll(
    ctx: click.Context, email: str, method: str, phone: str | None, backup_email: str | None, no_confirm: bool
) -> None:
    """Start (and by default finish) two-factor enrollment for an account."""
    services = get_services(ctx)
    try:
        chosen = TwoFactorMethod(method.lower())
        request: EnrollmentRequest
        if chosen == TwoFactorMethod.SMS:
            request = SmsEnrollment(phone_number=phone or click.prompt("Phone number"))
        elif chosen == TwoFactorMethod.EMAIL:
            request = EmailEnrollment(backup_email=backup_email or click.prompt("Backup email"))
        else:
            request = TotpEnrollment()

        setup = two_factor_service.begin_enrollment(services.uow, services.notifier, email, request)
    except (ServiceLayerError, ValueError) as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    if setup.method == TwoFactorMethod.TOTP:
        click.echo("Add this account to your authenticator app:")
        click.echo(f"  Secret: {setup.secret}")
        click.echo(f"  URI: {setup.provisioning_uri}")
    else:
        click.echo(f"A verification code has been sent to {setup.target}")

    if no_confirm:
        click.echo("Run `loginguard two-factor confirm` with the code to finish enrolling.")
        return

    code = click.prompt("Verification code")
    _confirm(services, email, code)


@two_factor.command("confirm")
@click.argument("email")
@click.argument("code")
@click.pass_context
def confirm(ctx: click.Context, email: str, code: str) -> None:
    """Finish a pending enrollment with a verification code."""
    _confirm(get_services(ctx), email, code)


def _confirm(services: Services, email: str, code: str) -> None:
    try:
        result = two_factor_service.confirm_enrollment(services.uow, email, code)
    except TwoFactorCodeError as e:
        click.echo(click.style(f"✗ {e}", "red"))
        raise click.Abort() from e
    except ServiceLayerError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    click.echo(click.style("✓ Two-factor authentication enabled.", "green"))
    _show_recovery_codes(result.recovery_codes)


@two_factor.command("disable")
@click.argument("email")
@click.option("--confirm", "skip_prompt", is_flag=True, help="Skip confirmation prompt")
@click.pass_context
def disable(ctx: click.Context, email: str, skip_prompt: bool) -> None:
    """Turn two-factor authentication off for an account."""
    if not skip_prompt and not click.confirm(f"Are you sure you want to disable 2FA for '{email}'?"):
        click.echo("Operation cancelled.")
        return

    try:
        removed = two_factor_service.disable(get_services(ctx).uow, email)
    except ServiceLayerError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    if removed:
        click.echo(click.style(f"✓ Two-factor authentication disabled for '{email}'.", "green"))
    else:
        click.echo(click.style(f"Two-factor authentication was not enabled for '{email}'.", "yellow"))


@two_factor.command("status")
@click.argument("email")
@click.pass_context
def status(ctx: click.Context, email: str) -> None:
    """Show the two-factor status of an account."""
    try:
        info = two_factor_service.get_2fa_status(get_services(ctx).uow, email)
    except ServiceLayerError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    if info["enabled"]:
        click.echo(f"Enabled: yes ({info['method']})")
        if info["target"]:
            click.echo(f"Codes sent to: {info['target']}")
        click.echo(f"Recovery codes remaining: {info['recovery_codes_remaining']}")
    elif info["enrolling"]:
        click.echo(f"Enabled: no (enrollment with {info['method']} pending confirmation)")
    else:
        click.echo("Enabled: no")


@two_factor.command("regenerate-recovery-codes")
@click.argument("email")
@click.pass_context
def regenerate_recovery_codes(ctx: click.Context, email: str) -> None:
    """Replace all recovery codes with a fresh set."""
    try:
        codes = two_factor_service.regenerate_recovery_codes(get_services(ctx).uow, email)
    except ServiceLayerError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    click.echo(click.style("✓ Recovery codes regenerated.", "green"))
    _show_recovery_codes(codes)
