"""Domain events emitted when enquiries and bookings change."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from banquet.domain.models import (
    Actor,
    BookingStatus,
    ConflictDetail,
    EnquiryStatus,
    RecordKind,
)


class EnquiryCreated(BaseModel):
    """Fired when a new Enquiry is persisted."""

    enquiry_id: str
    actor: Actor = Field(default_factory=Actor)


class EnquiryUpdated(BaseModel):
    enquiry_id: str
    changed_fields: list[str]
    actor: Actor = Field(default_factory=Actor)


class EnquiryStatusChanged(BaseModel):
    """Fired after an enquiry moved along its status workflow."""

    enquiry_id: str
    from_status: EnquiryStatus
    to_status: EnquiryStatus
    notes: str | None = None
    follow_up_date: datetime | None = None
    actor: Actor = Field(default_factory=Actor)


class EnquiryReopened(BaseModel):
    """Fired when a lost enquiry is brought back to ongoing."""

    enquiry_id: str
    reason: str = ""
    notes: str = ""
    actor: Actor = Field(default_factory=Actor)


class BookingCreated(BaseModel):
    booking_id: str
    actor: Actor = Field(default_factory=Actor)


class BookingUpdated(BaseModel):
    booking_id: str
    changed_fields: list[str]
    from_status: BookingStatus | None = None
    to_status: BookingStatus | None = None
    actor: Actor = Field(default_factory=Actor)


class ConflictDetected(BaseModel):
    """Fired when a write is refused because its sessions overlap committed ones."""

    record_kind: RecordKind
    operation: str
    record_id: str | None = None
    conflicts: list[ConflictDetail] = Field(default_factory=list)
    slot_refusal: str | None = None
    actor: Actor = Field(default_factory=Actor)
