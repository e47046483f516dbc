"""ABOUTME: Wires configuration, persistence and delivery adapters into a ready-to-use set of services
ABOUTME: Entry points call bootstrap() once and build LoginFlow instances from the result"""

from dataclasses import dataclass

from sqlalchemy.orm import sessionmaker

from loginguard.adapters import database
from loginguard.adapters.accounts import SqlAlchemyAccountStore
from loginguard.adapters.email import ConsoleEmailAdapter, SMTPEmailAdapter
from loginguard.adapters.location import LocationResolver, StaticLocationResolver
from loginguard.adapters.notifications import (
    ConsoleNotificationChannel,
    ConsoleSmsSender,
    MessagingNotificationChannel,
    NotificationChannel,
    UnconfiguredSmsSender,
)
from loginguard.adapters.sessions import SqlAlchemySessionStore
from loginguard.config import InvalidConfig, LoginGuardConfig, get_config
from loginguard.domain.login_attempts import ClientContext
from loginguard.service_layer import unit_of_work
from loginguard.service_layer.login_flow import LoginFlow

# environments where codes may be written to the log
CONSOLE_ENVS = ("development", "testing")


@dataclass
class Services:
    config: LoginGuardConfig
    session_factory: sessionmaker
    uow: unit_of_work.AbstractUnitOfWork
    accounts: SqlAlchemyAccountStore
    sessions: SqlAlchemySessionStore
    resolver: LocationResolver
    notifier: NotificationChannel

    def login_flow(self, client: ClientContext) -> LoginFlow:
        return LoginFlow(
            uow=self.uow,
            accounts=self.accounts,
            resolver=self.resolver,
            notifier=self.notifier,
            sessions=self.sessions,
            client=client,
            default_home_region=self.config.default_home_region,
        )


def build_notifier(config: LoginGuardConfig) -> NotificationChannel:
    """Pick the code delivery for `config`.

    The console channels write codes to the log, so they are only used in
    development and testing.
    """
    console_allowed = config.env in CONSOLE_ENVS
    if config.notification_backend == "smtp":
        smtp = config.smtp()
        email_adapter = SMTPEmailAdapter(
            host=smtp.host,
            port=smtp.port,
            username=smtp.username,
            password=smtp.password,
            use_tls=smtp.use_tls,
            default_from_email=smtp.from_email,
            default_from_name=smtp.from_name,
        )
        # no SMS gateway yet
        sms_sender = ConsoleSmsSender() if console_allowed else UnconfiguredSmsSender()
        return MessagingNotificationChannel(email_adapter, sms_sender, issuer=config.totp_issuer)
    if config.env == "development":
        return MessagingNotificationChannel(ConsoleEmailAdapter(), ConsoleSmsSender(), issuer=config.totp_issuer)
    if config.env == "testing":
        return ConsoleNotificationChannel()
    raise InvalidConfig(f"NOTIFICATION_BACKEND=console is not allowed when LOGINGUARD_ENV={config.env}")


def bootstrap(
    config: LoginGuardConfig | None = None,
    start_orm: bool = True,
    create_schema: bool = False,
    session_factory: sessionmaker | None = None,
    uow: unit_of_work.AbstractUnitOfWork | None = None,
    resolver: LocationResolver | None = None,
    notifier: NotificationChannel | None = None,
) -> Services:
    if config is None:
        config = get_config()

    if start_orm:
        database.start_mappers()

    if session_factory is None:
        session_factory = database.create_session_factory(config.db_uri)

    if create_schema:
        database.create_tables(session_factory.kw["bind"])

    if uow is None:
        uow = unit_of_work.SqlAlchemyUnitOfWork(session_factory)

    return Services(
        config=config,
        session_factory=session_factory,
        uow=uow,
        accounts=SqlAlchemyAccountStore(session_factory),
        sessions=SqlAlchemySessionStore(session_factory),
        resolver=resolver or StaticLocationResolver(config.location_map),
        notifier=notifier or build_notifier(config),
    )
