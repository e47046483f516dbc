"""ABOUTME: Interactive login command walking through the login state machine
ABOUTME: Prompts for a second factor and for confirmation when the risk engine asks for it"""

import click

from loginguard.domain.login_attempts import ClientContext
from loginguard.domain.value_objects import LoginState, TwoFactorMethod, VerificationMethod
from loginguard.service_layer.exceptions import (
    DeliveryFailure,
    InvalidCredentials,
    RateLimitExceeded,
    ServiceLayerError,
    TwoFactorCodeError,
)
from loginguard.service_layer.login_flow import LoginFlow, LoginStep

from . import get_services

MAX_CODE_PROMPTS = 3


def _second_factor(flow: LoginFlow, step: LoginStep) -> LoginStep:
    method = step.method
    assert method is not None

    if method in (TwoFactorMethod.SMS, TwoFactorMethod.EMAIL):
        try:
            target = flow.send_second_factor_code()
            click.echo(f"A login code has been sent to {target}")
        except (DeliveryFailure, RateLimitExceeded) as e:
            click.echo(click.style(f"✗ {e}", "yellow"))

    for _ in range(MAX_CODE_PROMPTS):
        code = click.prompt(f"Enter your {method.value} code, or 'recovery' to use a recovery code")
        verification = VerificationMethod(method.value)
        if code.strip().lower() == "recovery":
            verification = VerificationMethod.RECOVERY
            code = click.prompt("Recovery code")
        try:
            return flow.submit_second_factor(verification, code)
        except TwoFactorCodeError as e:
            click.echo(click.style(f"✗ {e}", "red"))

    click.echo(click.style("Too many invalid codes.", "red"))
    return flow.cancel()


def _additional_verification(flow: LoginFlow, step: LoginStep) -> LoginStep:
    assert step.flags is not None
    click.echo(click.style("This sign-in looks unusual:", "yellow"))
    for flag in step.flags.active():
        click.echo(f"  - {flag.replace('_', ' ')}")
    confirmed = click.confirm("Was this you? Continue signing in", default=False)
    return flow.resolve_additional_verification(confirmed)


@click.command("login")
@click.option("--email", prompt=True, help="Account email address")
@click.option("--password", prompt=True, hide_input=True, help="Password (will prompt if not provided)")
@click.option("--ip", "ip_address", default="127.0.0.1", show_default=True, help="Client IP address")
@click.option("--user-agent", default="loginguard-cli", show_default=True)
@click.option("--language", default="en-US", show_default=True)
@click.option("--platform", default="")
@click.option("--screen", default="")
@click.option("--timezone-offset", type=int, default=0)
@click.pass_context
def login(
    ctx: click.Context,
    email: str,
    password: str,
    ip_address: str,
    user_agent: str,
    language: str,
    platform: str,
    screen: str,
    timezone_offset: int,
) -> None:
    """Sign in interactively, as a browser client would."""
    client = ClientContext(
        ip_address=ip_address,
        user_agent=user_agent,
        language=language,
        platform=platform,
        screen=screen,
        timezone_offset=timezone_offset,
    )
    flow = get_services(ctx).login_flow(client)

    try:
        step = flow.login(email, password)
        while not step.state.is_terminal:
            if step.state == LoginState.AWAITING_SECOND_FACTOR:
                step = _second_factor(flow, step)
            else:
                step = _additional_verification(flow, step)
    except InvalidCredentials as e:
        click.echo(click.style(f"✗ {e}", "red"))
        raise click.Abort() from e
    except ServiceLayerError as e:
        click.echo(click.style(f"✗ Error: {e}", "red"))
        raise click.Abort() from e

    if step.state == LoginState.AUTHENTICATED:
        assert step.session is not None
        click.echo(click.style("✓ Signed in.", "green"))
        click.echo(f"  Session token: {step.session.token}")
    else:
        click.echo(click.style("Login cancelled.", "yellow"))
        ctx.exit(1)
