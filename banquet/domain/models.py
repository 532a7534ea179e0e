"""Domain models for enquiries, bookings and their venue sessions."""

from __future__ import annotations

import uuid
from datetime import date, datetime, timezone
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from banquet.domain.calendar import parse_date_value, parse_time_of_day


class EnquiryStatus(StrEnum):
    NEW = "new"
    QUOTATION_SENT = "quotation_sent"
    ONGOING = "ongoing"
    CONVERTED = "converted"
    BOOKED = "booked"
    CLOSED = "closed"
    LOST = "lost"


class BookingStatus(StrEnum):
    BOOKED = "booked"
    PENDING_BEO = "pending_beo"
    BEO_READY = "beo_ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    CLOSED = "closed"


class RecordKind(StrEnum):
    BOOKING = "booking"
    ENQUIRY = "enquiry"


class ConflictSource(StrEnum):
    BOOKING = "booking"
    ENQUIRY = "enquiry"
    CANDIDATE = "candidate"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())


class ApiModel(BaseModel):
    """Base model: snake_case in Python, camelCase on the wire."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------


class Session(ApiModel):
    """One occupation of a venue on a calendar date, between two HH:MM times.

    Every scheduling field is optional: a session without venue, date or
    times is not yet schedulable and is ignored by conflict detection.
    """

    id: str = Field(default_factory=_new_id)
    session_name: str | None = None
    session_label: str | None = None
    venue: str | None = None
    session_date: datetime | date | None = None
    start_time: str | None = None
    end_time: str | None = None
    pax_count: int = Field(default=0, ge=0)
    special_instructions: str | None = None

    @field_validator("venue", "start_time", "end_time", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("session_date", mode="before")
    @classmethod
    def _parse_session_date(cls, value: Any) -> Any:
        if isinstance(value, str):
            if not value.strip():
                return None
            return parse_date_value(value)
        return value

    @field_validator("start_time", "end_time")
    @classmethod
    def _check_time_format(cls, value: str | None) -> str | None:
        if value is not None:
            parse_time_of_day(value)
            value = value.strip()
        return value

    @model_validator(mode="after")
    def _end_after_start(self) -> Session:
        if self.start_time is not None and self.end_time is not None:
            if parse_time_of_day(self.end_time) <= parse_time_of_day(self.start_time):
                raise ValueError("end_time must be after start_time")
        return self

    @property
    def is_schedulable(self) -> bool:
        return bool(
            self.venue and self.session_date and self.start_time and self.end_time
        )


# ---------------------------------------------------------------------------
# Enquiries and bookings
# ---------------------------------------------------------------------------


class Enquiry(ApiModel):
    id: str = Field(default_factory=_new_id)
    enquiry_number: str
    enquiry_date: datetime = Field(default_factory=_utcnow)
    client_name: str
    contact_number: str
    email: str | None = None
    city: str | None = None
    event_type: str | None = None
    expected_pax: int | None = None
    source: str = "walk_in"
    salesperson_id: str | None = None
    status: EnquiryStatus = EnquiryStatus.NEW
    follow_up_date: datetime | None = None
    lost_reason: str | None = None
    reopen_reason: str | None = None
    reopen_notes: str | None = None
    notes: str | None = None
    sessions: list[Session] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Booking(ApiModel):
    id: str = Field(default_factory=_new_id)
    booking_number: str
    enquiry_id: str | None = None
    enquiry_number: str | None = None
    client_name: str
    contact_number: str
    email: str | None = None
    event_type: str
    event_date: datetime | date
    confirmed_pax: int = Field(ge=0)
    total_amount: float = Field(ge=0)
    advance_amount: float = Field(default=0, ge=0)
    balance_amount: float = Field(default=0, ge=0)
    salesperson_id: str | None = None
    status: BookingStatus = BookingStatus.BOOKED
    notes: str | None = None
    sessions: list[Session] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class StatusHistoryEntry(ApiModel):
    id: str = Field(default_factory=_new_id)
    enquiry_id: str
    from_status: EnquiryStatus
    to_status: EnquiryStatus
    changed_by: str | None = None
    notes: str | None = None
    follow_up_date: datetime | None = None
    created_at: datetime = Field(default_factory=_utcnow)


class AuditEntry(ApiModel):
    id: str = Field(default_factory=_new_id)
    timestamp: datetime = Field(default_factory=_utcnow)
    action: str
    module: str
    resource_id: str
    actor_id: str | None = None
    actor_role: str | None = None
    details: dict = Field(default_factory=dict)


class Actor(ApiModel):
    """Identity of the caller, as supplied by the authentication layer."""

    user_id: str | None = None
    role: str | None = None


# ---------------------------------------------------------------------------
# Conflict reporting
# ---------------------------------------------------------------------------


class SessionSlot(NamedTuple):
    """A schedulable session reduced to comparable values."""

    venue: str
    date_key: date
    start: int
    end: int
    session: Session


class SessionWindow(ApiModel):
    session_name: str | None = None
    start_time: str
    end_time: str


class ExistingSession(SessionWindow):
    record_kind: ConflictSource
    record_id: str | None = None
    record_number: str | None = None
    client_name: str | None = None
    status: str | None = None


class ConflictDetail(ApiModel):
    venue: str
    session_date: date
    requested: SessionWindow
    existing: ExistingSession


class ConflictCheckResult(ApiModel):
    has_conflict: bool = False
    conflicts: list[ConflictDetail] = Field(default_factory=list)


# ---------------------------------------------------------------------------
# Request / Response DTOs
# ---------------------------------------------------------------------------


class EnquiryCreate(ApiModel):
    client_name: str = Field(min_length=1)
    contact_number: str = Field(min_length=1)
    email: str | None = None
    city: str | None = None
    event_type: str | None = None
    expected_pax: int | None = Field(default=None, ge=0)
    source: str = "walk_in"
    salesperson_id: str | None = None
    status: EnquiryStatus = EnquiryStatus.NEW
    follow_up_date: datetime | None = None
    notes: str | None = None
    sessions: list[Session] = Field(default_factory=list)


class EnquiryUpdate(ApiModel):
    client_name: str | None = Field(default=None, min_length=1)
    contact_number: str | None = Field(default=None, min_length=1)
    email: str | None = None
    city: str | None = None
    event_type: str | None = None
    expected_pax: int | None = Field(default=None, ge=0)
    source: str | None = None
    salesperson_id: str | None = None
    status: EnquiryStatus | None = None
    follow_up_date: datetime | None = None
    lost_reason: str | None = None
    notes: str | None = None
    sessions: list[Session] | None = None


class ReopenRequest(ApiModel):
    reason: str = ""
    notes: str = ""


class BookingCreate(ApiModel):
    enquiry_id: str | None = None
    client_name: str = Field(min_length=1)
    contact_number: str = Field(min_length=1)
    email: str | None = None
    event_type: str
    event_date: datetime | date
    confirmed_pax: int = Field(ge=0)
    total_amount: float = Field(ge=0)
    advance_amount: float = Field(default=0, ge=0)
    balance_amount: float = Field(default=0, ge=0)
    salesperson_id: str | None = None
    status: BookingStatus = BookingStatus.BOOKED
    notes: str | None = None
    sessions: list[Session] = Field(min_length=1)

    @field_validator("enquiry_id", mode="before")
    @classmethod
    def _blank_enquiry_id(cls, value: Any) -> Any:
        if isinstance(value, str) and not value.strip():
            return None
        return value


class BookingUpdate(ApiModel):
    client_name: str | None = Field(default=None, min_length=1)
    contact_number: str | None = Field(default=None, min_length=1)
    email: str | None = None
    event_type: str | None = None
    event_date: datetime | date | None = None
    confirmed_pax: int | None = Field(default=None, ge=0)
    total_amount: float | None = Field(default=None, ge=0)
    advance_amount: float | None = Field(default=None, ge=0)
    balance_amount: float | None = Field(default=None, ge=0)
    status: BookingStatus | None = None
    notes: str | None = None
    sessions: list[Session] | None = Field(default=None, min_length=1)


class CheckConflictsRequest(ApiModel):
    sessions: list[Session] = Field(default_factory=list)
    exclude_record_id: str | None = None
    exclude_record_kind: RecordKind | None = None


class ConflictResponse(ApiModel):
    message: str
    conflicts: list[ConflictDetail] = Field(default_factory=list)
