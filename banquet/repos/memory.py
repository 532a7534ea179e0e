"""In-memory document store for enquiries, bookings and their side records."""

from __future__ import annotations

import threading
from collections import defaultdict
from datetime import date
from typing import NamedTuple

from banquet.domain.calendar import ranges_overlap
from banquet.domain.errors import SlotConflictError
from banquet.domain.models import (
    AuditEntry,
    Booking,
    BookingStatus,
    Enquiry,
    EnquiryStatus,
    RecordKind,
    SessionSlot,
    StatusHistoryEntry,
)


class EnquiryRepository:
    """Dict-backed store for Enquiry documents, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Enquiry] = {}

    def add(self, enquiry: Enquiry) -> None:
        self._store[enquiry.id] = enquiry

    def get(self, enquiry_id: str) -> Enquiry | None:
        return self._store.get(enquiry_id)

    def save(self, enquiry: Enquiry) -> None:
        self._store[enquiry.id] = enquiry

    def list_all(self, status: EnquiryStatus | None = None) -> list[Enquiry]:
        enquiries = list(self._store.values())
        if status is not None:
            enquiries = [e for e in enquiries if e.status == status]
        return sorted(enquiries, key=lambda e: e.created_at, reverse=True)


class BookingRepository:
    """Dict-backed store for Booking documents, keyed by id."""

    def __init__(self) -> None:
        self._store: dict[str, Booking] = {}

    def add(self, booking: Booking) -> None:
        self._store[booking.id] = booking

    def get(self, booking_id: str) -> Booking | None:
        return self._store.get(booking_id)

    def save(self, booking: Booking) -> None:
        self._store[booking.id] = booking

    def list_all(
        self,
        status: BookingStatus | None = None,
        enquiry_id: str | None = None,
    ) -> list[Booking]:
        bookings = list(self._store.values())
        if status is not None:
            bookings = [b for b in bookings if b.status == status]
        if enquiry_id is not None:
            bookings = [b for b in bookings if b.enquiry_id == enquiry_id]
        return sorted(bookings, key=lambda b: b.created_at, reverse=True)


class StatusHistoryRepository:
    """List-backed store for enquiry status changes."""

    def __init__(self) -> None:
        self._entries: list[StatusHistoryEntry] = []

    def add(self, entry: StatusHistoryEntry) -> None:
        self._entries.append(entry)

    def list_for_enquiry(self, enquiry_id: str) -> list[StatusHistoryEntry]:
        return sorted(
            [e for e in self._entries if e.enquiry_id == enquiry_id],
            key=lambda e: e.created_at,
        )


class AuditLogRepository:
    """Append-only store for audit entries."""

    def __init__(self) -> None:
        self._entries: list[AuditEntry] = []

    def add(self, entry: AuditEntry) -> None:
        self._entries.append(entry)

    def list_all(
        self, module: str | None = None, resource_id: str | None = None
    ) -> list[AuditEntry]:
        entries = self._entries
        if module is not None:
            entries = [e for e in entries if e.module == module]
        if resource_id is not None:
            entries = [e for e in entries if e.resource_id == resource_id]
        return sorted(entries, key=lambda e: e.timestamp)


class CounterRepository:
    """Named monotonically increasing sequences (document numbers)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._seq: dict[str, int] = defaultdict(int)

    def next_value(self, counter_id: str) -> int:
        with self._lock:
            self._seq[counter_id] += 1
            return self._seq[counter_id]


# ---------------------------------------------------------------------------
# Storage port used by conflict detection
# ---------------------------------------------------------------------------


class MemoryCommittedRecords:
    """Reads the committed-record universe from the in-memory repositories."""

    def __init__(
        self, enquiry_repo: EnquiryRepository, booking_repo: BookingRepository
    ) -> None:
        self.enquiry_repo = enquiry_repo
        self.booking_repo = booking_repo

    def find_committed_bookings(self, exclude_id: str | None = None) -> list[Booking]:
        return [
            b
            for b in self.booking_repo.list_all(status=BookingStatus.BOOKED)
            if b.id != exclude_id
        ]

    def find_committed_enquiries(self, exclude_id: str | None = None) -> list[Enquiry]:
        return [
            e
            for e in self.enquiry_repo.list_all(status=EnquiryStatus.CONVERTED)
            if e.id != exclude_id
        ]


# ---------------------------------------------------------------------------
# Committed-slot index
# ---------------------------------------------------------------------------


Owner = tuple[RecordKind, str]


class _Claim(NamedTuple):
    owner: Owner
    label: str
    start: int
    end: int


class CommittedSlotIndex:
    """Uniqueness constraint over the venue slots of committed records.

    Conflict detection reads, then the caller writes; two requests can both
    pass the read.  ``reserve`` re-checks and records slots under one lock,
    so the second of two racing writers is refused here.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._claims: dict[tuple[str, date], list[_Claim]] = defaultdict(list)

    def reserve(
        self,
        owner: Owner,
        label: str,
        slots: list[SessionSlot],
        replacing: tuple[Owner, ...] = (),
    ) -> None:
        """Atomically replace *owner*'s claims with *slots*.

        Claims held by *owner* itself and by any owner in *replacing* are
        ignored during the check and dropped on success.  Raises
        ``SlotConflictError`` if a slot overlaps any other owner's claim.
        """
        released = {owner, *replacing}
        with self._lock:
            for slot in slots:
                for claim in self._claims.get((slot.venue, slot.date_key), ()):
                    if claim.owner in released:
                        continue
                    if ranges_overlap(slot.start, slot.end, claim.start, claim.end):
                        raise SlotConflictError(
                            slot.venue, slot.date_key.isoformat(), claim.label
                        )
            self._drop(released)
            for slot in slots:
                self._claims[(slot.venue, slot.date_key)].append(
                    _Claim(owner, label, slot.start, slot.end)
                )

    def release(self, owner: Owner) -> None:
        with self._lock:
            self._drop({owner})

    def holders(self, venue: str, date_key: date) -> list[str]:
        with self._lock:
            return [c.label for c in self._claims.get((venue, date_key), ())]

    def clear(self) -> None:
        with self._lock:
            self._claims.clear()

    def _drop(self, owners: set[Owner]) -> None:
        for key in list(self._claims):
            kept = [c for c in self._claims[key] if c.owner not in owners]
            if kept:
                self._claims[key] = kept
            else:
                del self._claims[key]
