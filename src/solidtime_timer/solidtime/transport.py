"""HTTP transport for the SolidTime API.

Performs one request at a time and classifies the outcome:

* 2xx returns the decoded JSON body (``None`` for 204 or an empty body).
* A status listed in ``allow_statuses`` returns ``None`` quietly.
* 401/403 raises :class:`AuthenticationError`, other non-2xx statuses raise
  :class:`ServiceError`.
* No response at all raises :class:`NetworkError`.

Every raised error is announced to the notifier here, once. Callers must not
announce it again.
"""

import json
import logging
from collections.abc import Iterable
from typing import Any

import httpx

from solidtime_timer.errors import (
    ApiError,
    AuthenticationError,
    ConfigurationError,
    NetworkError,
    ServiceError,
)
from solidtime_timer.utils.notifications import ERROR_DURATION, Notifier
from solidtime_timer.utils.redaction import redact_headers

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 30.0
ERROR_SNIPPET_LENGTH = 200
AUTH_STATUSES = (401, 403)


def resolve_url(base_url: str, path: str) -> str:
    """Resolve a request path against the API base URL.

    Args:
        base_url: Configured base URL, with or without a trailing slash.
        path: Relative path (``/v1/...`` or ``v1/...``) or an absolute URL.

    Returns:
        Absolute URL without a doubled slash at the join.
    """
    if path.startswith(("http://", "https://")):
        return path
    base = base_url.rstrip("/")
    separator = "" if path.startswith("/") else "/"
    return f"{base}{separator}{path}"


def _decode_body(response: httpx.Response) -> Any:
    if response.status_code == 204 or not response.content:
        return None
    return response.json()


def _error_message(response: httpx.Response) -> tuple[str, str | None, Any]:
    """Build a user-facing message from an error response.

    Returns:
        Tuple of (message, service message, validation details).
    """
    message = f"SolidTime API error: {response.status_code}"
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict) and body.get("message"):
        service_message = str(body["message"])
        details = body.get("errors")
        message += f" - {service_message}"
        if details:
            message += f" ({json.dumps(details)})"
        return message, service_message, details

    snippet = response.text.strip()[:ERROR_SNIPPET_LENGTH]
    if snippet:
        message += f" - {snippet}"
    return message, None, None


class SolidTimeTransport:
    """Authenticated JSON transport over an httpx ``AsyncClient``."""

    def __init__(
        self,
        api_key: str,
        base_url: str,
        notifier: Notifier,
        client: httpx.AsyncClient | None = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        """Initialize the transport.

        Args:
            api_key: SolidTime API token.
            base_url: API base URL, e.g. ``https://app.solidtime.io/api``.
            notifier: User-facing notification channel.
            client: Preconfigured httpx client (tests pass one with a mock
                transport). A new one is created when omitted.
            timeout: Request timeout in seconds.
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/") if base_url else base_url
        self.notifier = notifier
        self.client = client or httpx.AsyncClient(timeout=timeout)

    def configure(self, api_key: str, base_url: str) -> bool:
        """Switch credentials.

        Returns:
            True if anything changed.
        """
        base_url = base_url.rstrip("/") if base_url else base_url
        changed = (api_key, base_url) != (self.api_key, self.base_url)
        self.api_key = api_key
        self.base_url = base_url
        return changed

    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }

    def _fail(self, error: Exception) -> Exception:
        self.notifier.notify(str(error), ERROR_DURATION)
        return error

    async def request(
        self,
        method: str,
        path: str,
        *,
        json: Any = None,
        params: dict[str, Any] | None = None,
        allow_statuses: Iterable[int] = (),
    ) -> Any:
        """Perform one request.

        Args:
            method: HTTP method.
            path: Path relative to the base URL, or an absolute URL.
            json: JSON body.
            params: Query parameters.
            allow_statuses: Non-2xx statuses that mean "no data" rather than
                failure.

        Returns:
            Decoded JSON body, or None.

        Raises:
            ConfigurationError: API key or base URL missing.
            AuthenticationError: 401/403.
            ServiceError: Any other non-2xx status not allowed by the caller.
            NetworkError: No response was received.
        """
        if not self.api_key:
            raise self._fail(ConfigurationError("SolidTime API key is not configured."))
        if not self.base_url:
            raise self._fail(ConfigurationError("SolidTime API base URL is not configured."))

        url = resolve_url(self.base_url, path)
        headers = self._headers()
        logger.debug(f"{method} {url} params={params} headers={redact_headers(headers)}")

        try:
            response = await self.client.request(
                method, url, json=json, params=params, headers=headers
            )
        except httpx.RequestError as e:
            logger.error(f"SolidTime request failed: {method} {url}: {e}")
            raise self._fail(NetworkError(f"SolidTime network error: {e}")) from e

        if response.is_success:
            try:
                return _decode_body(response)
            except ValueError as e:
                logger.error(f"Invalid JSON from {method} {url}: {e}")
                raise self._fail(
                    ServiceError(
                        f"SolidTime API error: {response.status_code} - invalid JSON body",
                        status_code=response.status_code,
                    )
                ) from e

        if response.status_code in set(allow_statuses):
            logger.debug(f"{method} {url} returned tolerated status {response.status_code}")
            return None

        message, service_message, details = _error_message(response)
        logger.error(f"{method} {url} failed: {message}")
        error_cls: type[ApiError] = (
            AuthenticationError if response.status_code in AUTH_STATUSES else ServiceError
        )
        raise self._fail(
            error_cls(
                message,
                status_code=response.status_code,
                service_message=service_message,
                details=details,
            )
        )

    async def aclose(self) -> None:
        """Close the HTTP client."""
        await self.client.aclose()

    async def __aenter__(self) -> "SolidTimeTransport":
        """Async context manager entry."""
        return self

    async def __aexit__(self, *args: Any) -> None:
        """Async context manager exit."""
        await self.aclose()
