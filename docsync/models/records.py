"""Pydantic models for source records, property values and local links."""

from datetime import datetime, timezone
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, Field, HttpUrl, field_validator


def ensure_utc(value: datetime) -> datetime:
    """Normalize a datetime to an aware UTC datetime.

    Naive datetimes are taken to already be in UTC.
    """
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_timestamp(value: str) -> datetime:
    """Parse an ISO-8601 timestamp (``Z`` suffix allowed) into UTC."""
    return ensure_utc(datetime.fromisoformat(value.replace("Z", "+00:00")))


# Property values


class TextProperty(BaseModel):
    """Free text property."""

    type: Literal["text"] = "text"
    value: str = Field(default="", description="Plain text value")


class NumberProperty(BaseModel):
    """Numeric property."""

    type: Literal["number"] = "number"
    value: float | None = Field(default=None, description="Numeric value, None when empty")


class SelectProperty(BaseModel):
    """Single choice property."""

    type: Literal["select"] = "select"
    value: str | None = Field(default=None, description="Selected option name")


class MultiSelectProperty(BaseModel):
    """Multiple choice property (labels, tags)."""

    type: Literal["multi_select"] = "multi_select"
    value: list[str] = Field(default_factory=list, description="Selected option names")


class DateProperty(BaseModel):
    """Date/time property, always stored in UTC."""

    type: Literal["date"] = "date"
    value: datetime | None = Field(default=None, description="Date value in UTC")

    @field_validator("value")
    @classmethod
    def normalize_to_utc(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class CheckboxProperty(BaseModel):
    """Boolean property."""

    type: Literal["checkbox"] = "checkbox"
    value: bool = Field(default=False, description="Checked state")


class UrlProperty(BaseModel):
    """URL property."""

    type: Literal["url"] = "url"
    value: HttpUrl | None = Field(default=None, description="Link target")


PropertyValue = Annotated[
    Union[
        TextProperty,
        NumberProperty,
        SelectProperty,
        MultiSelectProperty,
        DateProperty,
        CheckboxProperty,
        UrlProperty,
    ],
    Field(discriminator="type"),
]


# Source side


class SourceRecord(BaseModel):
    """A document as listed by the source. Read-only to the sync core."""

    id: str = Field(default=..., min_length=1, description="Unique record identifier at the source")
    container_id: str = Field(default="", description="Container (space) the record belongs to")
    parent_id: str | None = Field(default=None, description="Parent record in the hierarchy")
    last_modified: datetime = Field(default=..., description="Last modification time (UTC)")
    properties: dict[str, PropertyValue] = Field(
        default_factory=dict, description="Typed property set"
    )
    content_ref: str = Field(
        default="", description="Opaque reference identifying the current content revision"
    )

    @field_validator("last_modified")
    @classmethod
    def normalize_last_modified(cls, v: datetime) -> datetime:
        return ensure_utc(v)

    @property
    def title(self) -> str:
        """Title text, empty when the record has no title property."""
        prop = self.properties.get("title")
        if isinstance(prop, TextProperty):
            return prop.value
        return ""

    model_config = {
        "json_schema_extra": {
            "example": {
                "id": "123456",
                "container_id": "DOCS",
                "parent_id": "123000",
                "last_modified": "2024-01-15T14:30:00Z",
                "properties": {
                    "title": {"type": "text", "value": "Getting Started"},
                    "labels": {"type": "multi_select", "value": ["onboarding"]},
                    "version": {"type": "number", "value": 3},
                },
                "content_ref": "123456@3",
            }
        }
    }


class ContentBlock(BaseModel):
    """One top-level block of a record's content."""

    block_type: str = Field(default=..., description="Block tag or type name")
    html: str = Field(default="", description="Block markup in storage format")


class FilterSpec(BaseModel):
    """Server-side filter for a listing call."""

    modified_after: datetime = Field(
        default=..., description="Only records modified strictly after this UTC time"
    )

    @field_validator("modified_after")
    @classmethod
    def normalize_modified_after(cls, v: datetime) -> datetime:
        return ensure_utc(v)


# Store side


class LocalLink(BaseModel):
    """Durable mapping between a source record and its local item."""

    external_id: str = Field(default=..., min_length=1, description="Source record id")
    local_id: int = Field(default=..., ge=1, description="Local item id")
    last_synced_edit_time: datetime | None = Field(
        default=None, description="Source last_modified at the last successful sync"
    )
    content_hash: str = Field(default="", description="Hash of the content reference")
    properties_hash: str = Field(default="", description="Hash of the property set")
    protected: bool = Field(default=False, description="Never delete during reconciliation")
    synced_at: datetime | None = Field(
        default=None, description="Wall-clock time of the last successful sync"
    )

    @field_validator("last_synced_edit_time", "synced_at")
    @classmethod
    def normalize_times(cls, v: datetime | None) -> datetime | None:
        return ensure_utc(v) if v is not None else None


class StoredDocument(BaseModel):
    """A local item owned by the content store."""

    local_id: int = Field(default=..., ge=1, description="Local item id")
    external_id: str = Field(default=..., description="Source record id")
    title: str = Field(default="", description="Title at the time of the last write")
    chunk_ids: list[str] = Field(
        default_factory=list, description="Vector store ids of the item's chunks"
    )
    updated_at: datetime = Field(default=..., description="Time of the last write (UTC)")
    metadata: dict[str, Any] = Field(default_factory=dict, description="Flat item metadata")
