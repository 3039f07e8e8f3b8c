"""Data model shared by the API client and the extraction workflow."""

from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .utils.errors import ValidationError


@dataclass(frozen=True)
class EventObject:
    """A calendar event as returned by the extraction service.

    Keys the service adds beyond the known ones are kept in ``extra`` and sent
    back unchanged on save.
    """

    title: str
    start_date: str
    end_date: Optional[str] = None
    location: Optional[str] = None
    description: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "EventObject":
        """
        Build an event from the wire format.

        Raises:
            ValueError: If title or startDate is missing.
        """
        if not isinstance(payload, dict):
            raise ValueError("Event must be a JSON object")
        title = payload.get("title")
        start_date = payload.get("startDate")
        if not title or not start_date:
            raise ValueError("Event is missing title or startDate")

        known = {"title", "startDate", "endDate", "location", "description"}
        return cls(
            title=str(title),
            start_date=str(start_date),
            end_date=payload.get("endDate"),
            location=payload.get("location"),
            description=payload.get("description"),
            extra={k: v for k, v in payload.items() if k not in known},
        )

    def to_payload(self) -> Dict[str, Any]:
        """Serialize to the wire format, omitting unset optional fields."""
        payload: Dict[str, Any] = dict(self.extra)
        payload["title"] = self.title
        payload["startDate"] = self.start_date
        for key, value in (
            ("endDate", self.end_date),
            ("location", self.location),
            ("description", self.description),
        ):
            if value is not None:
                payload[key] = value
        return payload


@dataclass(frozen=True)
class ExtractionInput:
    """Input for one extraction: an image (base64) or free text, never both."""

    image_data: Optional[str] = None
    text: Optional[str] = None

    @property
    def has_image(self) -> bool:
        return bool(self.image_data)

    @property
    def has_text(self) -> bool:
        return bool(self.text and self.text.strip())

    def validate(self) -> None:
        """
        Raises:
            ValidationError: Unless exactly one of image_data/text is non-empty.
        """
        if not self.has_image and not self.has_text:
            raise ValidationError("Please enter text or select an image")
        if self.has_image and self.has_text:
            raise ValidationError("Provide either an image or text, not both")

    def to_payload(self, user_id: str) -> Dict[str, Any]:
        return {
            "userId": user_id,
            "imageBase64": self.image_data if self.has_image else None,
            "text": self.text.strip() if self.has_text else None,
        }


@dataclass(frozen=True)
class ExtractionResult:
    """An extracted event awaiting its calendar save."""

    event: EventObject
    extraction_id: str
    remaining_quota: int

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "ExtractionResult":
        """
        Raises:
            ValueError: If the response lacks event, extractionId or remainingQuota.
        """
        extraction_id = payload.get("extractionId")
        remaining = payload.get("remainingQuota")
        if not extraction_id or remaining is None:
            raise ValueError("Extraction response is missing extractionId or remainingQuota")
        return cls(
            event=EventObject.from_payload(payload.get("event")),
            extraction_id=str(extraction_id),
            remaining_quota=int(remaining),
        )


@dataclass(frozen=True)
class ExtractAndSaveResult:
    """Successful end of the workflow: the saved event and the current quota."""

    event: EventObject
    remaining_quota: int
