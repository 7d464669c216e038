"""Error taxonomy for the SolidTime timer client."""

from typing import Any

CONFIGURE_HINT = "Please configure it with `solidtime-timer configure`."


class SolidTimeError(Exception):
    """Base class for all errors raised by this package."""


class ConfigurationError(SolidTimeError):
    """Required configuration (API key, base URL, organization, member id) is missing."""

    def __init__(self, message: str) -> None:
        """Initialize configuration error.

        Args:
            message: What is missing. The remediation hint is appended.
        """
        super().__init__(f"{message} {CONFIGURE_HINT}")


class ApiError(SolidTimeError):
    """The service answered with a non-2xx status."""

    def __init__(
        self,
        message: str,
        status_code: int,
        service_message: str | None = None,
        details: Any = None,
    ) -> None:
        """Initialize API error.

        Args:
            message: Full user-facing message.
            status_code: HTTP status code.
            service_message: The service's own ``message`` field, if any.
            details: The service's validation detail (``errors``), if any.
        """
        super().__init__(message)
        self.status_code = status_code
        self.service_message = service_message
        self.details = details


class AuthenticationError(ApiError):
    """401/403 from the service."""


class ServiceError(ApiError):
    """Any other non-2xx status."""


class NetworkError(SolidTimeError):
    """No response was obtained from the service."""


class MalformedResponseError(SolidTimeError):
    """A response did not have the expected envelope."""


class IntegrityError(SolidTimeError):
    """The locally cached active entry violates an invariant."""


class MemberResolutionError(SolidTimeError):
    """The current user has no membership in the requested organization."""


class TimerStateError(SolidTimeError):
    """The requested transition is not valid in the current timer state."""


class InvalidRequestError(SolidTimeError):
    """A request argument failed local validation."""


class DuplicateTagError(InvalidRequestError):
    """A tag with the same name already exists locally."""
