"""Request/response models for the booking API."""

from __future__ import annotations

from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from slotbot_lite.calendar.lite_models import BookingDetails


class _ApiRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", str_strip_whitespace=True)

    csrf_token: str = Field(
        default="",
        validation_alias=AliasChoices("_csrf", "csrfToken", "csrf_token"),
    )


class BookingRequest(_ApiRequest):
    """Body of ``POST /api/booking``."""

    date: str = ""
    time: str = ""
    topic: str = ""
    full_name: str = Field(default="", validation_alias=AliasChoices("fullName", "full_name"))
    contact_info: str = Field(
        default="", validation_alias=AliasChoices("contactInfo", "contact_info")
    )

    def missing_fields(self) -> list[str]:
        required = {
            "date": self.date,
            "time": self.time,
            "topic": self.topic,
            "fullName": self.full_name,
            "contactInfo": self.contact_info,
        }
        return [name for name, value in required.items() if not value]

    def details(self) -> BookingDetails:
        return BookingDetails(
            topic=self.topic, full_name=self.full_name, contact_info=self.contact_info
        )


class CancelRequest(_ApiRequest):
    """Body of ``POST /api/cancel``."""

    code: str = ""


class BookingResponse(BaseModel):
    """``{success, code?, error?}``; unset optional keys are omitted."""

    success: bool
    code: Optional[str] = None
    error: Optional[str] = None

    def to_json(self) -> dict[str, Any]:
        return self.model_dump(exclude_none=True)
