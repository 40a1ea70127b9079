from __future__ import annotations

from typing import Any, Optional

EXCERPT_LIMIT = 200


class UpwindError(Exception):
    """Base class for errors raised by the scheduling core."""


class ConfigurationError(UpwindError):
    """A required credential or collaborator is not configured."""


class ProviderError(UpwindError):
    """A weather or advisory collaborator failed or answered with a non-success status."""

    def __init__(
        self,
        message: str,
        *,
        provider: str = "",
        status_code: Optional[int] = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.detail = detail


class ParseError(UpwindError):
    """An advisory reply could not be read as a list of suggestions."""

    def __init__(self, message: str, *, raw_text: str = "") -> None:
        self.excerpt = raw_text[:EXCERPT_LIMIT]
        super().__init__(f"{message}. Received: {self.excerpt}...")


__all__ = ["ConfigurationError", "EXCERPT_LIMIT", "ParseError", "ProviderError", "UpwindError"]
