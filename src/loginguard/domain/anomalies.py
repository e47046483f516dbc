"""ABOUTME: Anomaly flags computed for a login attempt and the escalation policy
ABOUTME: Flags are derived per evaluation and never persisted"""

from dataclasses import astuple, dataclass, fields


@dataclass(frozen=True, slots=True)
class AnomalyFlags:
    new_device: bool = False
    suspicious_ip: bool = False
    multiple_failed_attempts: bool = False
    unusual_location: bool = False
    rapid_attempts: bool = False

    def count(self) -> int:
        """Number of flags that are set."""
        return sum(astuple(self))

    def any(self) -> bool:
        return self.count() > 0

    def active(self) -> list[str]:
        """Names of the flags that are set, for logging and display."""
        return [f.name for f in fields(self) if getattr(self, f.name)]


def requires_additional_verification(flags: AnomalyFlags) -> bool:
    """Decide whether the anomalies warrant an extra verification step.

    A new device on its own is common (new browser, cleared storage) so it only
    escalates when combined with at least one other signal.
    """
    return (
        flags.suspicious_ip
        or flags.multiple_failed_attempts
        or flags.unusual_location
        or flags.rapid_attempts
        or (flags.new_device and flags.count() > 1)
    )
