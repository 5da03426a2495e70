"""
Error taxonomy for the generation pipeline and compositor.

Everything raised on purpose by the core derives from `AdGenerationError` so
the HTTP layer and the job runner can tell expected failures apart from bugs.
"""

from __future__ import annotations

from typing import List


class AdGenerationError(RuntimeError):
    """Base class for all expected pipeline failures."""


class AdValidationError(AdGenerationError, ValueError):
    """Local input problem. Never retried."""


class MalformedAdSize(AdValidationError):
    """Raised when an ad size is not of the form `<width>x<height>`."""

    def __init__(self, ad_size: object) -> None:
        self.ad_size = ad_size
        super().__init__(
            f"Malformed ad size {ad_size!r}: expected '<width>x<height>' with positive integers."
        )


class InvalidField(AdValidationError):
    """A position document field is missing or has the wrong shape."""

    def __init__(self, name: str, reason: str = "invalid value") -> None:
        self.name = name
        self.reason = reason
        super().__init__(f"Invalid field '{name}': {reason}")


class AdLocked(AdGenerationError):
    """Raised when positions are edited on an ad holding a final render."""

    def __init__(self, ad_id: str) -> None:
        self.ad_id = ad_id
        super().__init__(f"Ad {ad_id} is locked; unlock it before editing positions.")


class PromptTooLong(AdGenerationError):
    """A generation prompt exceeds the provider's character budget."""

    def __init__(self, length: int, limit: int, suggestions: List[str] | None = None) -> None:
        self.length = length
        self.limit = limit
        self.suggestions = list(suggestions or [])
        if self.suggestions:
            guidance = "To fix this, please: " + ", ".join(self.suggestions) + "."
        else:
            guidance = (
                "Please review and shorten the campaign content to reduce the "
                "overall prompt length."
            )
        super().__init__(
            f"Prompt exceeds {limit} character limit ({length} characters). {guidance}"
        )


class CollaboratorError(AdGenerationError):
    """The text or image generation service failed or answered nonsense."""

    def __init__(self, service: str, message: str) -> None:
        self.service = service
        super().__init__(f"{service} failed: {message}")


class FetchError(AdGenerationError):
    """A background image download failed."""

    NETWORK = "network"
    TIMEOUT = "timeout"
    HTTP_STATUS = "http_status"

    def __init__(self, url: str, kind: str, status_code: int | None = None, detail: str = "") -> None:
        self.url = url
        self.kind = kind
        self.status_code = status_code
        message = f"Failed to download image from {url} ({kind}"
        if status_code is not None:
            message += f" {status_code}"
        message += ")"
        if detail:
            message += f": {detail}"
        super().__init__(message)


class CompositeFailed(AdGenerationError):
    """Compositing one ad failed. Siblings are unaffected."""

    def __init__(self, ad_id: str, reason: str) -> None:
        self.ad_id = ad_id
        self.reason = reason
        super().__init__(f"Failed to composite ad {ad_id}: {reason}")


class GenerationInProgress(AdGenerationError):
    """A generation run is already in flight for the campaign."""

    def __init__(self, campaign_id: str) -> None:
        self.campaign_id = campaign_id
        super().__init__(f"A generation run is already in progress for campaign {campaign_id}.")


class NotFound(AdGenerationError, LookupError):
    """Repository lookup miss."""

    def __init__(self, kind: str, identifier: str) -> None:
        self.kind = kind
        self.identifier = identifier
        super().__init__(f"{kind} {identifier} not found.")
