"""Exception taxonomy shared by the generation core and the HTTP layer."""

from __future__ import annotations

from typing import Any, Dict, Mapping, Optional


class StudioError(Exception):
    """Base class for errors that map onto a JSON error response."""

    status_code = 500
    public_message = "Request failed"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.details = details or {}

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.public_message, "details": str(self)}
        if self.details:
            body["info"] = self.details
        return body


class InvalidInput(StudioError):
    """Missing or malformed client input.  Never retried."""

    status_code = 400
    public_message = "Invalid request"

    def to_dict(self) -> Dict[str, Any]:
        return {"error": str(self)}


class BrandNotFound(StudioError):
    status_code = 404
    public_message = "Brand not found"

    def __init__(self, brand_id: str) -> None:
        super().__init__(f"Brand with id '{brand_id}' not found", {"brandId": brand_id})
        self.brand_id = brand_id

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.public_message, "brandId": self.brand_id}


class UpstreamError(StudioError):
    """The LLM provider failed (auth, quota, empty response, transport)."""

    public_message = "Upstream provider error"


class DownloadError(StudioError):
    """A provider output URL answered with a non-success status."""

    def __init__(self, url: str, status: int) -> None:
        super().__init__(f"Failed to download image ({status}) from {url}")
        self.url = url
        self.status = status


class UnrecognizedOutputFormat(StudioError):
    """The provider output contained nothing that could be stored as an image."""


class GenerationFailed(StudioError):
    """One variation could not be produced.

    ``blocked`` is set when the provider denied access (403 / anti-bot);
    those are never retried but surface with the same type.
    """

    public_message = "Failed to generate image"

    def __init__(self, message: str, *, attempts: int = 0, blocked: bool = False) -> None:
        super().__init__(message, {"attempts": attempts, "blocked": blocked})
        self.attempts = attempts
        self.blocked = blocked


class AllVariationsFailed(StudioError):
    """Every slot of a generation job failed."""

    public_message = "Failed to generate brand images"

    def __init__(self, reasons: Mapping[int, str]) -> None:
        self.reasons = dict(sorted(reasons.items()))
        summary = ", ".join(f"Variation {i}: {r}" for i, r in self.reasons.items())
        super().__init__(f"All {len(self.reasons)} variations failed: {summary}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error": self.public_message,
            "details": str(self),
            "failures": {str(i): r for i, r in self.reasons.items()},
        }
