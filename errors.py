"""
Exception types shared by the appraisal pipeline.

Only InvalidInput (and its NoKeywordsAvailable flavour) ever reaches the
caller. Everything else is recovered where it happens and recorded through
the call logger.
"""
from __future__ import annotations

from typing import Optional


class AppraisalError(Exception):
    """Base class for all pipeline errors."""


class InvalidInput(AppraisalError):
    """Caller input cannot be appraised (nothing to recognise or search for)."""


class NoKeywordsAvailable(InvalidInput):
    """Neither the image nor the item metadata produced a single search keyword."""


class RecognitionFailure(AppraisalError):
    """The recognition provider failed. Always converted to a fallback result."""

    def __init__(self, message: str, status_label: str = "error") -> None:
        super().__init__(message)
        self.status_label = status_label


class MarketplaceSourceError(AppraisalError):
    """
    A single marketplace call failed.
    status_label is what gets written to the API call log
    (HTTP status code as text, "timeout" or "error").
    """

    def __init__(
        self,
        message: str,
        status_label: str = "error",
        request_url: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.status_label = status_label
        self.request_url = request_url


class SourceAuthError(MarketplaceSourceError):
    """Credentials were rejected (or the token exchange failed)."""


class MalformedResponse(MarketplaceSourceError):
    """The source answered, but not with the listing contract we expect."""
