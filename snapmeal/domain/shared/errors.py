"""
Domain exceptions.

Typed exceptions for explicit error handling. Infrastructure adapters map
SDK and transport exceptions onto this taxonomy so the analysis path can
decide between degrading, serving from cache and failing outward.
"""

from __future__ import annotations

from typing import Optional


# ═══════════════════════════════════════════════════════════
# BASE EXCEPTION
# ═══════════════════════════════════════════════════════════


class DomainError(Exception):
    """
    Base exception for all domain errors.

    All domain-specific exceptions inherit from this.
    """

    pass


# ═══════════════════════════════════════════════════════════
# PROVIDER EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class ConfigError(DomainError):
    """
    Provider credential missing or still a placeholder.

    Fails fast, never retried.

    Example:
        >>> raise ConfigError("GROQ_API_KEY not configured")
    """

    pass


class TransportError(DomainError):
    """
    Network failure or timeout talking to an external service.

    Eligible for fallback-chain degradation or a cache read.

    Example:
        >>> raise TransportError("Connection refused: api.groq.com")
    """

    pass


class ProviderError(DomainError):
    """
    External service answered with a non-2xx status.

    Also raised when the provider reports the requested model as
    decommissioned or deprecated.

    Example:
        >>> raise ProviderError("Groq API error: 503", status_code=503)
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        deprecated: bool = False,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.deprecated = deprecated


class ParseError(DomainError):
    """
    Payload did not match the expected shape.

    Never retried against the same provider: the shape will not change.

    Example:
        >>> raise ParseError("No valid JSON found in response")
    """

    pass


# ═══════════════════════════════════════════════════════════
# CALLER-FACING EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class NotFoundError(DomainError):
    """
    Product code not recognised by any nutrition database.

    Surfaced to the caller: there is no sane estimate for an unknown code.

    Example:
        >>> raise NotFoundError("Product 000000000 not found in any database")
    """

    pass


class UploadError(DomainError):
    """
    Image upload failed.

    Upload failures are not degraded; the user must retry the upload.
    """

    pass


class InvalidImageError(UploadError):
    """
    File rejected before upload.

    Raised when:
    - MIME type is not image/*
    - File is larger than 10MB
    - File is empty
    """

    pass


# ═══════════════════════════════════════════════════════════
# INFRASTRUCTURE EXCEPTIONS
# ═══════════════════════════════════════════════════════════


class CacheError(DomainError):
    """
    Cache storage operation failed.

    Raised by key/value stores (quota exceeded, disk failure). The result
    cache always swallows it.
    """

    pass


class InvalidTransitionError(DomainError):
    """Pipeline state machine asked to make a transition it does not allow."""

    pass
