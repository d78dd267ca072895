from typing import Optional


class CSPAuditError(Exception):
    """Base class for every error raised by cspaudit."""


class InvalidInput(CSPAuditError):
    """A required value (request field, policy string) is missing."""


class FetchFailure(CSPAuditError):
    """A page could not be fetched. `message` is safe to show to users."""

    def __init__(self, message: str, status: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.status = status


class ParseFailure(CSPAuditError):
    """A document (sitemap XML) could not be parsed."""
