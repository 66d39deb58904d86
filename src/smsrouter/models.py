"""Pydantic models for the SMS router HTTP surface."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field


class InboundMessage(BaseModel):
    """Fields of a Twilio inbound message webhook that the router uses."""

    from_number: str = Field(..., description="Sender phone number (From)")
    to_number: str = Field(default="", description="Number the sender texted (To)")
    body: str = Field(default="", description="Message text (Body)")
    num_media: int = Field(default=0, ge=0, description="Attachment count (NumMedia)")
    media_url: str | None = Field(default=None, description="First attachment URL (MediaUrl0)")
    media_type: str | None = Field(
        default=None, description="First attachment MIME type (MediaContentType0)"
    )

    @classmethod
    def from_form(cls, form: dict[str, Any]) -> "InboundMessage":
        """Build from Twilio's form-encoded webhook fields."""
        num_media = str(form.get("NumMedia") or "0")
        return cls(
            from_number=form.get("From") or "",
            to_number=form.get("To") or "",
            body=form.get("Body") or "",
            num_media=int(num_media) if num_media.isdigit() else 0,
            media_url=form.get("MediaUrl0") or None,
            media_type=form.get("MediaContentType0") or None,
        )

    @property
    def has_media(self) -> bool:
        return self.num_media > 0


class DependencyStatus(BaseModel):
    """Status of a service dependency."""

    name: str
    status: str = Field(..., description="Status: ok, degraded, or unavailable")
    message: str | None = None


class StatusResponse(BaseModel):
    """Service status response."""

    status: str = Field(..., description="Overall service status: ok, degraded, or unavailable")
    version: str | None = Field(default=None, description="Service version if available")
    timestamp: datetime = Field(..., description="Current server time")
    dependencies: list[DependencyStatus] = Field(
        default_factory=list,
        description="Status of dependencies like DuckDB and Redis",
    )
