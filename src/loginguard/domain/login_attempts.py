"""ABOUTME: Login attempt domain model and client context for device fingerprinting
ABOUTME: Contains the immutable LoginAttempt record kept in the per-account attempt ledger"""

import hashlib
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime


@dataclass(frozen=True, slots=True, kw_only=True)
class ClientContext:
    """What we know about the client making a login request.

    The IP address is supplied by the caller (e.g. taken from the request), the
    rest are browser/device characteristics used to derive a fingerprint.
    """

    ip_address: str
    user_agent: str = ""
    language: str = ""
    platform: str = ""
    screen: str = ""
    timezone_offset: int = 0

    def device_fingerprint(self) -> str:
        """Derive a weak device identifier from the client characteristics.

        The IP is not part of the fingerprint, so a device moving between
        networks keeps the same fingerprint.
        """
        raw = "|".join([
            self.user_agent,
            self.language,
            self.screen,
            str(self.timezone_offset),
            self.platform,
        ])
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()[:16]


class LoginAttempt:
    """A single credential-check outcome. Never mutated once created."""

    def __init__(
        self,
        email: str,
        success: bool,
        ip_address: str,
        device_fingerprint: str,
        location: str,
        user_agent: str = "",
        timestamp: datetime | None = None,
        attempt_id: uuid.UUID | None = None,
    ):
        self.id = attempt_id or uuid.uuid4()
        self.email = email
        self.success = success
        self.ip_address = ip_address
        self.device_fingerprint = device_fingerprint
        self.location = location
        self.user_agent = user_agent
        self.timestamp = timestamp or datetime.now(UTC)

    @classmethod
    def from_client(cls, email: str, success: bool, client: ClientContext, location: str) -> "LoginAttempt":
        return cls(
            email=email,
            success=success,
            ip_address=client.ip_address,
            device_fingerprint=client.device_fingerprint(),
            location=location,
            user_agent=client.user_agent,
        )

    def __repr__(self) -> str:
        outcome = "success" if self.success else "failure"
        return f"<LoginAttempt {self.email} {outcome} from {self.ip_address} at {self.timestamp.isoformat()}>"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, LoginAttempt):  # pragma: no cover
            return False
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)
