"""Service for detecting venue double-bookings between sessions."""

from __future__ import annotations

import logging
from datetime import tzinfo
from typing import Iterable, Protocol

from banquet.domain.calendar import date_key, parse_time_of_day, ranges_overlap
from banquet.domain.models import (
    Booking,
    ConflictCheckResult,
    ConflictDetail,
    ConflictSource,
    Enquiry,
    ExistingSession,
    RecordKind,
    Session,
    SessionSlot,
    SessionWindow,
)

logger = logging.getLogger(__name__)


class CommittedRecordStore(Protocol):
    """Read access to the records whose sessions hold venue slots."""

    def find_committed_bookings(self, exclude_id: str | None = None) -> list[Booking]:
        ...

    def find_committed_enquiries(self, exclude_id: str | None = None) -> list[Enquiry]:
        ...


def session_slot(session: Session, local_tz: tzinfo) -> SessionSlot | None:
    """Reduce a session to a comparable slot, or ``None`` if it is incomplete."""
    if not session.is_schedulable:
        return None
    return SessionSlot(
        venue=session.venue,
        date_key=date_key(session.session_date, local_tz),
        start=parse_time_of_day(session.start_time),
        end=parse_time_of_day(session.end_time),
        session=session,
    )


def session_slots(sessions: Iterable[Session], local_tz: tzinfo) -> list[SessionSlot]:
    slots = (session_slot(s, local_tz) for s in sessions)
    return [slot for slot in slots if slot is not None]


def slots_overlap(a: SessionSlot, b: SessionSlot) -> bool:
    """Same venue, same calendar date and overlapping ``[start, end)`` times."""
    return (
        a.venue == b.venue
        and a.date_key == b.date_key
        and ranges_overlap(a.start, a.end, b.start, b.end)
    )


def find_conflicts(
    candidates: list[SessionSlot], existing: list[SessionSlot]
) -> list[tuple[SessionSlot, SessionSlot]]:
    """Return every (candidate, existing) pair that overlaps."""
    return [(c, e) for c in candidates for e in existing if slots_overlap(c, e)]


def _window(session: Session) -> SessionWindow:
    return SessionWindow(
        session_name=session.session_name,
        start_time=session.start_time,
        end_time=session.end_time,
    )


class VenueConflictChecker:
    """Decides whether candidate sessions may be committed.

    A candidate conflicts with a committed session (from a ``booked``
    booking or a ``converted`` enquiry) on the same venue and local
    calendar date whose time range overlaps.  When *check_within_batch* is
    set, overlapping sessions inside the candidate set are conflicts too.

    The checker never writes.  Errors raised by the store propagate as-is:
    a failed read must not be mistaken for "no conflicts".
    """

    def __init__(
        self,
        store: CommittedRecordStore,
        local_tz: tzinfo,
        check_within_batch: bool = True,
    ) -> None:
        self.store = store
        self.local_tz = local_tz
        self.check_within_batch = check_within_batch

    def check_conflicts(
        self,
        candidate_sessions: list[Session],
        exclude_record_id: str | None = None,
        exclude_record_kind: RecordKind | None = None,
    ) -> ConflictCheckResult:
        candidates = session_slots(candidate_sessions, self.local_tz)
        if not candidates:
            return ConflictCheckResult()

        exclude_booking = (
            exclude_record_id if exclude_record_kind == RecordKind.BOOKING else None
        )
        exclude_enquiry = (
            exclude_record_id if exclude_record_kind == RecordKind.ENQUIRY else None
        )
        bookings = self.store.find_committed_bookings(exclude_id=exclude_booking)
        enquiries = self.store.find_committed_enquiries(exclude_id=exclude_enquiry)

        conflicts: list[ConflictDetail] = []
        for booking in bookings:
            existing = session_slots(booking.sessions, self.local_tz)
            for cand, slot in find_conflicts(candidates, existing):
                conflicts.append(
                    self._detail(
                        cand,
                        slot,
                        ConflictSource.BOOKING,
                        record_id=booking.id,
                        record_number=booking.booking_number,
                        client_name=booking.client_name,
                        status=booking.status.value,
                    )
                )
        for enquiry in enquiries:
            existing = session_slots(enquiry.sessions, self.local_tz)
            for cand, slot in find_conflicts(candidates, existing):
                conflicts.append(
                    self._detail(
                        cand,
                        slot,
                        ConflictSource.ENQUIRY,
                        record_id=enquiry.id,
                        record_number=enquiry.enquiry_number,
                        client_name=enquiry.client_name,
                        status=enquiry.status.value,
                    )
                )
        if self.check_within_batch:
            for i, cand in enumerate(candidates):
                for other in candidates[i + 1 :]:
                    if slots_overlap(cand, other):
                        conflicts.append(
                            self._detail(cand, other, ConflictSource.CANDIDATE)
                        )

        logger.debug(
            "Checked %d candidate session(s) against %d booking(s) and "
            "%d enquiry(ies): %d conflict(s)",
            len(candidates),
            len(bookings),
            len(enquiries),
            len(conflicts),
        )
        return ConflictCheckResult(has_conflict=bool(conflicts), conflicts=conflicts)

    @staticmethod
    def _detail(
        cand: SessionSlot,
        slot: SessionSlot,
        source: ConflictSource,
        **owner: str | None,
    ) -> ConflictDetail:
        other = slot.session
        return ConflictDetail(
            venue=cand.venue,
            session_date=cand.date_key,
            requested=_window(cand.session),
            existing=ExistingSession(
                record_kind=source,
                session_name=other.session_name,
                start_time=other.start_time,
                end_time=other.end_time,
                **owner,
            ),
        )
