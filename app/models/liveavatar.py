"""
LiveAvatar vendor models - Responses validated at the gateway boundary.

NO DICTIONARIES - Vendor payloads are parsed into a small tagged union
instead of being passed through untyped. Only the start payload keeps its
extra fields, because they are forwarded verbatim to the browser (LiveKit
room url, client token, ...).
"""

from enum import Enum
from typing import Annotated, Any, Literal

from pydantic import BaseModel, ConfigDict, Field


class TokenResponse(BaseModel):
    """`data` object of POST /v1/sessions/token."""

    model_config = ConfigDict(extra="ignore")

    kind: Literal["token"] = "token"
    session_id: str = Field(..., min_length=1)
    session_token: str = Field(..., min_length=1)


class StartResponse(BaseModel):
    """`data` object of POST /v1/sessions/start."""

    model_config = ConfigDict(extra="allow")

    kind: Literal["start"] = "start"

    @property
    def fields(self) -> dict[str, Any]:
        """Vendor fields to forward to the client."""
        return dict(self.model_extra or {})


class ErrorResponse(BaseModel):
    """Any non-2xx answer that is not an accepted 404."""

    kind: Literal["error"] = "error"
    status: int
    body: str


VendorResponse = Annotated[
    TokenResponse | StartResponse | ErrorResponse,
    Field(discriminator="kind"),
]


class StopOutcome(str, Enum):
    """Result of a stop call. 404 means the vendor already closed it."""

    STOPPED = "stopped"
    NOT_FOUND = "not_found"


class ResourceListing(BaseModel):
    """Avatars and voices available to the configured API key."""

    avatars: Any | None = None
    voices: Any | None = None
    avatars_error: str | None = None
    voices_error: str | None = None
