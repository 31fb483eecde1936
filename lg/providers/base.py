"""Errors shared by the GitHub and Linear providers."""

import httpx


class ProviderError(RuntimeError):
    """An API call failed. Callers decide whether to skip, retry or abort."""


class AuthenticationError(ProviderError):
    """Credentials were rejected; retrying cannot help."""


class NotFoundError(ProviderError):
    """The API answered, but the requested record does not exist."""


def is_transient(exc: Exception) -> bool:
    """True for errors worth another attempt: network trouble, 5xx/429, API-level errors."""
    if isinstance(exc, AuthenticationError):
        return False
    if isinstance(exc, httpx.HTTPStatusError):
        status = exc.response.status_code
        return status >= 500 or status == 429
    return isinstance(exc, (httpx.TransportError, ProviderError))
