"""URI validation for outgoing requests and redirect targets."""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from urllib.parse import urlsplit

# A request line carries the URI as ASCII with no whitespace or control characters
_UNSENDABLE_RE = re.compile(r"[^\x21-\x7e]")


@dataclass
class UriValidationResult:
    """Result of URI validation."""

    is_valid: bool
    rejection_reason: str | None = None

    @staticmethod
    def valid() -> UriValidationResult:
        """Create a valid result."""
        return UriValidationResult(is_valid=True)

    @staticmethod
    def invalid(reason: str) -> UriValidationResult:
        """Create an invalid result with reason."""
        return UriValidationResult(is_valid=False, rejection_reason=reason)


class UriValidator:
    """
    Checks that a URI can be sent by the client.

    A sendable URI is absolute, uses an allowed scheme, names a host,
    carries a numeric port in range (if any) and has no user-info
    component (credentials go through the authenticator instead). It must
    already be percent-encoded: spaces and non-ASCII characters are
    rejected, not quoted.

    Example:
        validator = UriValidator()
        result = validator.validate("http://localhost:8080/xml")
        if not result.is_valid:
            print(f"Rejected: {result.rejection_reason}")
    """

    DEFAULT_ALLOWED_SCHEMES = frozenset({"http", "https"})

    def __init__(
        self,
        allowed_schemes: set[str] | frozenset[str] | None = None,
        logger: logging.Logger | None = None,
    ):
        """
        Initialize the URI validator.

        Args:
            allowed_schemes: Set of allowed URI schemes (default: http, https)
            logger: Optional logger for validation messages
        """
        self.allowed_schemes = frozenset(allowed_schemes or self.DEFAULT_ALLOWED_SCHEMES)
        self.logger = logger or logging.getLogger(__name__)

    def validate(self, uri: str) -> UriValidationResult:
        """
        Validate a URI.

        Args:
            uri: The URI to validate

        Returns:
            UriValidationResult with is_valid and optional rejection_reason
        """
        if not isinstance(uri, str) or not uri.strip():
            return UriValidationResult.invalid("URI is empty")

        if _UNSENDABLE_RE.search(uri):
            return UriValidationResult.invalid("URI contains whitespace, control or non-ASCII characters")

        try:
            parsed = urlsplit(uri)
        except ValueError:
            return UriValidationResult.invalid("Invalid URI format")

        if not parsed.scheme:
            return UriValidationResult.invalid("URI is not absolute")

        if parsed.scheme.lower() not in self.allowed_schemes:
            return UriValidationResult.invalid(
                f"Scheme '{parsed.scheme}' not allowed (allowed: {sorted(self.allowed_schemes)})"
            )

        if not parsed.hostname:
            return UriValidationResult.invalid("URI has no host")

        if parsed.username is not None or parsed.password is not None:
            return UriValidationResult.invalid("User-info in URI is not supported")

        try:
            port = parsed.port
        except ValueError:
            return UriValidationResult.invalid("URI port is not a valid number")
        if port == 0:
            return UriValidationResult.invalid("URI port 0 is not allowed")

        return UriValidationResult.valid()

    def is_valid(self, uri: str) -> bool:
        """Quick check if URI is valid."""
        return self.validate(uri).is_valid

    def get_rejection_reason(self, uri: str) -> str | None:
        """
        Get rejection reason for a URI.

        Args:
            uri: The URI to check

        Returns:
            Rejection reason string if invalid, None if valid
        """
        result = self.validate(uri)
        if not result.is_valid:
            self.logger.debug(f"Rejected URI {uri!r}: {result.rejection_reason}")
        return result.rejection_reason
