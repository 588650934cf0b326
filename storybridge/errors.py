from __future__ import annotations
from typing import Iterable, List, Optional

# Upstream bodies can be whole HTML error pages; keep messages readable.
MAX_BODY_CHARS = 500
# Shorter secrets are not scrubbed: replacing them would mangle ordinary text.
MIN_SECRET_CHARS = 8


class StoryBridgeError(Exception):
    """Base class for every error the connector raises on purpose."""


class UnknownFieldError(StoryBridgeError):
    """One or more requested field ids are not in the field catalog."""

    def __init__(self, field_ids: Iterable[str]) -> None:
        self.field_ids: List[str] = list(field_ids)
        super().__init__(f"Unknown field(s): {', '.join(self.field_ids)}")


class UpstreamError(StoryBridgeError):
    """
    Non-200 response (or transport failure) from the story-tracking service.

    status_code is None when no HTTP response was received at all
    (timeout, connection refused, DNS failure).
    """

    def __init__(self, status_code: Optional[int], body: str, url: str = "") -> None:
        self.status_code = status_code
        self.body = body
        self.url = url
        super().__init__(self.details)

    @property
    def details(self) -> str:
        status = self.status_code if self.status_code is not None else "no response"
        body = self.body
        if len(body) > MAX_BODY_CHARS:
            body = body[:MAX_BODY_CHARS] + "..."
        return f"Upstream request failed ({status}): {body}"

    def redacted(self, secret: str) -> "UpstreamError":
        """
        Return a copy whose body and url never contain `secret`.
        Secrets shorter than MIN_SECRET_CHARS leave the error unchanged.
        """
        if len(secret or "") < MIN_SECRET_CHARS:
            return self
        return UpstreamError(
            self.status_code,
            self.body.replace(secret, "***"),
            self.url.replace(secret, "***"),
        )


class InvalidCredentialError(StoryBridgeError):
    """The API key was rejected by the credential probe (or was empty)."""

    def __init__(self, status_code: Optional[int] = None) -> None:
        self.status_code = status_code
        super().__init__(
            "Invalid API token"
            + (f" (probe returned {status_code})" if status_code is not None else "")
        )
