"""Helpers that keep secrets out of logs."""

SENSITIVE_HEADERS = {"authorization", "x-api-key", "x-access-token", "cookie"}


def redact_secret(text: str) -> str:
    """Redact a token or API key, keeping the first and last 4 characters.

    Args:
        text: Text that may contain sensitive data.

    Returns:
        Redacted text.
    """
    if len(text) <= 8:
        return "****"

    return f"{text[:4]}...{text[-4:]}"


def redact_headers(headers: dict[str, str]) -> dict[str, str]:
    """Redact sensitive headers like Authorization.

    Args:
        headers: Original headers dictionary.

    Returns:
        Dictionary with sensitive values redacted.
    """
    redacted = {}
    for key, value in headers.items():
        if key.lower() in SENSITIVE_HEADERS:
            redacted[key] = redact_secret(value)
        else:
            redacted[key] = value
    return redacted
