"""URI validation for httplane."""

from .url_validator import UriValidationResult, UriValidator

__all__ = ["UriValidationResult", "UriValidator"]
