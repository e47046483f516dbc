"""Domain models for LoginGuard."""

from .anomalies import AnomalyFlags, requires_additional_verification
from .login_attempts import ClientContext, LoginAttempt

__all__ = ["AnomalyFlags", "ClientContext", "LoginAttempt", "requires_additional_verification"]
