"""ABOUTME: Custom exceptions for service layer operations
ABOUTME: Defines the login and second-factor error taxonomy with user-facing messages"""


class LoginGuardError(Exception):
    """Base exception for all our custom errors."""


class ServiceLayerError(LoginGuardError):
    """Base exception for all service layer errors."""


class InvalidCredentials(ServiceLayerError):
    """Raised when authentication fails due to invalid credentials.

    The message is the same whether the email is unknown or the password is
    wrong, so the error cannot be used to enumerate accounts.
    """

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "Invalid email or password")


class TwoFactorCodeError(ServiceLayerError):
    """Base for rejected second-factor submissions. These are recoverable: re-prompt the user."""


class InvalidCode(TwoFactorCodeError):
    """Raised when a submitted code is wrong or malformed."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "Invalid authentication code")


class CodeExpired(TwoFactorCodeError):
    """Raised when a one-time code is submitted after its validity window."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "This code has expired. Please request a new code")


class CodeAlreadyUsed(TwoFactorCodeError):
    """Raised when a one-time or recovery code is replayed."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "This code has already been used")


class UnknownTwoFactorMethod(ServiceLayerError):
    """Raised when a second-factor method is requested that the account does not have configured."""

    def __init__(self, method: str = "") -> None:
        if method:
            message = f"Two-factor method '{method}' is not configured for this account"
        else:
            message = "Two-factor authentication is not configured for this account"
        super().__init__(message)
        self.method = method


class DeliveryFailure(ServiceLayerError):
    """Raised when a code could not be delivered. The caller may retry or pick another channel."""

    def __init__(self, channel: str = "", reason: str = "") -> None:
        if channel and reason:
            message = f"Could not deliver {channel} code: {reason}"
        elif channel:
            message = f"Could not deliver {channel} code"
        else:
            message = "Could not deliver code"
        super().__init__(message)
        self.channel = channel
        self.reason = reason


class StorageFailure(ServiceLayerError):
    """Raised when persistence is unreachable or a write fails."""

    def __init__(self, message: str = "") -> None:
        super().__init__(message or "Storage is unavailable")


class LocationLookupFailure(ServiceLayerError):
    """Raised when the location resolver fails for an IP address."""

    def __init__(self, ip_address: str = "") -> None:
        message = f"Could not resolve location for {ip_address}" if ip_address else "Could not resolve location"
        super().__init__(message)
        self.ip_address = ip_address


class RateLimitExceeded(ServiceLayerError):
    """Raised when a user has exceeded rate limits for an operation."""

    def __init__(self, operation: str = "", retry_after_seconds: int = 0) -> None:
        if operation and retry_after_seconds:
            message = f"Rate limit exceeded for {operation}. Please try again in {retry_after_seconds} seconds"
        elif operation:
            message = f"Rate limit exceeded for {operation}"
        else:
            message = "Rate limit exceeded. Please try again later"
        super().__init__(message)
        self.operation = operation
        self.retry_after_seconds = retry_after_seconds


class TwoFactorSetupError(ServiceLayerError):
    """Raised when 2FA enrollment or management is not possible in the current state."""


class InvalidTransition(ServiceLayerError):
    """Raised when a login flow receives input that its current state does not accept."""

    def __init__(self, state: str = "", action: str = "") -> None:
        if state and action:
            message = f"Cannot {action} while login is {state}"
        else:
            message = "Invalid login flow transition"
        super().__init__(message)
        self.state = state
        self.action = action
