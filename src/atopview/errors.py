"""Errors raised by atopview."""


class AtopviewError(Exception):
    """Base error for this package."""


class MalformedInputError(AtopviewError):
    """Raised when a required aggregate field of a sample is missing or invalid."""


class TemplateError(AtopviewError):
    """Raised when a template document does not contain the expected template."""
