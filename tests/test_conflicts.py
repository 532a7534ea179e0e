"""Tests for the venue conflict checker."""

from __future__ import annotations

from datetime import date, datetime, timezone

import pytest
from pydantic import ValidationError

from banquet.domain.calendar import business_tz
from banquet.domain.errors import StorageError
from banquet.domain.models import (
    Booking,
    BookingStatus,
    ConflictSource,
    Enquiry,
    EnquiryStatus,
    RecordKind,
    Session,
)
from banquet.repos.memory import (
    BookingRepository,
    EnquiryRepository,
    MemoryCommittedRecords,
)
from banquet.services.conflicts import VenueConflictChecker, session_slot, slots_overlap

IST = business_tz("Asia/Kolkata")


def _session(venue="Areca I", day=date(2025, 10, 10), start="18:00", end="22:00", name=None):
    return Session(
        venue=venue, session_date=day, start_time=start, end_time=end, session_name=name
    )


def _booking(*sessions: Session, status=BookingStatus.BOOKED, client="Booking A") -> Booking:
    return Booking(
        booking_number="BKG-2025-001",
        client_name=client,
        contact_number="9800000000",
        event_type="Wedding",
        event_date=date(2025, 10, 10),
        confirmed_pax=150,
        total_amount=250000,
        status=status,
        sessions=list(sessions),
    )


def _enquiry(*sessions: Session, status=EnquiryStatus.CONVERTED, client="Client E") -> Enquiry:
    return Enquiry(
        enquiry_number="ENQ-2025-11-001",
        client_name=client,
        contact_number="9811111111",
        status=status,
        sessions=list(sessions),
    )


class FailingStore:
    def find_committed_bookings(self, exclude_id=None):
        raise StorageError("connection reset")

    def find_committed_enquiries(self, exclude_id=None):
        raise StorageError("connection reset")


@pytest.fixture()
def repos():
    return EnquiryRepository(), BookingRepository()


@pytest.fixture()
def checker(repos):
    enquiry_repo, booking_repo = repos
    return VenueConflictChecker(MemoryCommittedRecords(enquiry_repo, booking_repo), IST)


# ---------------------------------------------------------------------------
# Committed bookings
# ---------------------------------------------------------------------------


def test_partial_overlap_with_booked_booking(repos, checker):
    """A session inside a booked slot is reported against that booking."""
    _, booking_repo = repos
    booking = _booking(_session(name="Reception"))
    booking_repo.add(booking)

    result = checker.check_conflicts([_session(start="19:00", end="20:00", name="Cocktails")])

    assert result.has_conflict is True
    assert len(result.conflicts) == 1
    conflict = result.conflicts[0]
    assert conflict.venue == "Areca I"
    assert conflict.session_date == date(2025, 10, 10)
    assert conflict.requested.start_time == "19:00"
    assert conflict.existing.record_kind == ConflictSource.BOOKING
    assert conflict.existing.record_id == booking.id
    assert conflict.existing.record_number == "BKG-2025-001"
    assert conflict.existing.client_name == "Booking A"
    assert conflict.existing.start_time == "18:00"
    assert conflict.existing.end_time == "22:00"


def test_exact_boundary_no_conflict(repos, checker):
    """A session starting when the booked one ends does not conflict."""
    repos[1].add(_booking(_session()))

    result = checker.check_conflicts([_session(start="22:00", end="23:00")])

    assert result.has_conflict is False
    assert result.conflicts == []


def test_different_venue_no_conflict(repos, checker):
    repos[1].add(_booking(_session()))

    result = checker.check_conflicts([_session(venue="Areca II")])

    assert result.has_conflict is False


def test_different_date_no_conflict(repos, checker):
    repos[1].add(_booking(_session()))

    result = checker.check_conflicts([_session(day=date(2025, 10, 11))])

    assert result.has_conflict is False


@pytest.mark.parametrize(
    "status",
    [BookingStatus.CANCELLED, BookingStatus.CLOSED, BookingStatus.PENDING_BEO],
)
def test_uncommitted_booking_statuses_do_not_block(repos, checker, status):
    repos[1].add(_booking(_session(), status=status))

    assert checker.check_conflicts([_session()]).has_conflict is False


def test_aware_candidate_date_compared_on_local_calendar(repos, checker):
    """An instant on the 9th in UTC lands on the booked 10th in IST."""
    repos[1].add(_booking(_session()))
    candidate = Session(
        venue="Areca I",
        session_date=datetime(2025, 10, 9, 20, 0, tzinfo=timezone.utc),
        start_time="19:00",
        end_time="20:00",
    )

    assert checker.check_conflicts([candidate]).has_conflict is True


# ---------------------------------------------------------------------------
# Committed enquiries and status gating
# ---------------------------------------------------------------------------


def test_converted_enquiry_blocks(repos, checker):
    enquiry_repo, _ = repos
    enquiry = _enquiry(_session(venue="Board Room", day=date(2025, 11, 1), start="10:00", end="11:00"))
    enquiry_repo.add(enquiry)

    result = checker.check_conflicts(
        [_session(venue="Board Room", day=date(2025, 11, 1), start="10:30", end="12:00")]
    )

    assert result.has_conflict is True
    assert result.conflicts[0].existing.record_kind == ConflictSource.ENQUIRY
    assert result.conflicts[0].existing.record_number == "ENQ-2025-11-001"
    assert result.conflicts[0].existing.status == "converted"


@pytest.mark.parametrize(
    "status",
    [
        EnquiryStatus.NEW,
        EnquiryStatus.QUOTATION_SENT,
        EnquiryStatus.ONGOING,
        EnquiryStatus.LOST,
        EnquiryStatus.CLOSED,
    ],
)
def test_uncommitted_enquiry_does_not_block(repos, checker, status):
    """Only converted enquiries hold a venue slot."""
    board_room = _session(venue="Board Room", day=date(2025, 11, 1), start="10:00", end="11:00")
    repos[0].add(_enquiry(board_room, status=status))

    assert checker.check_conflicts([board_room.model_copy()]).has_conflict is False


def test_record_excluded_from_its_own_update(repos, checker):
    """A converted enquiry re-validating unchanged sessions does not clash with itself."""
    board_room = _session(venue="Board Room", day=date(2025, 11, 1), start="10:00", end="11:00")
    enquiry = _enquiry(board_room)
    repos[0].add(enquiry)

    result = checker.check_conflicts(
        list(enquiry.sessions),
        exclude_record_id=enquiry.id,
        exclude_record_kind=RecordKind.ENQUIRY,
    )

    assert result.has_conflict is False


def test_exclusion_is_scoped_to_record_kind(repos, checker):
    """Excluding an enquiry id does not hide a booking that happens to share it."""
    booking = _booking(_session())
    repos[1].add(booking)

    result = checker.check_conflicts(
        [_session()],
        exclude_record_id=booking.id,
        exclude_record_kind=RecordKind.ENQUIRY,
    )

    assert result.has_conflict is True


def test_booked_record_excluded_from_its_own_update(repos, checker):
    booking = _booking(_session(), _session(venue="Areca II"))
    repos[1].add(booking)

    result = checker.check_conflicts(
        list(booking.sessions),
        exclude_record_id=booking.id,
        exclude_record_kind=RecordKind.BOOKING,
    )

    assert result.has_conflict is False


# ---------------------------------------------------------------------------
# Incomplete input
# ---------------------------------------------------------------------------


def test_candidate_missing_venue_is_skipped(repos, checker):
    repos[1].add(_booking(_session()))

    result = checker.check_conflicts([Session(session_date=date(2025, 10, 10), start_time="19:00", end_time="20:00")])

    assert result.has_conflict is False
    assert result.conflicts == []


def test_committed_session_missing_times_is_skipped(repos, checker):
    repos[1].add(_booking(Session(venue="Areca I", session_date=date(2025, 10, 10))))

    assert checker.check_conflicts([_session()]).has_conflict is False


def test_malformed_time_rejected_before_checking():
    with pytest.raises(ValidationError):
        _session(start="7pm")


def test_end_must_follow_start():
    with pytest.raises(ValidationError):
        _session(start="20:00", end="19:00")


# ---------------------------------------------------------------------------
# Batch and failure behaviour
# ---------------------------------------------------------------------------


def test_overlapping_sessions_within_one_batch(checker):
    """Two overlapping sessions submitted together are a conflict of their own."""
    result = checker.check_conflicts(
        [_session(start="10:00", end="12:00", name="Lunch"), _session(start="11:00", end="13:00", name="Tea")]
    )

    assert result.has_conflict is True
    assert len(result.conflicts) == 1
    assert result.conflicts[0].existing.record_kind == ConflictSource.CANDIDATE
    assert result.conflicts[0].existing.session_name == "Tea"


def test_batch_check_can_be_disabled(repos):
    checker = VenueConflictChecker(
        MemoryCommittedRecords(*repos), IST, check_within_batch=False
    )

    result = checker.check_conflicts(
        [_session(start="10:00", end="12:00"), _session(start="11:00", end="13:00")]
    )

    assert result.has_conflict is False


def test_storage_failure_propagates():
    """A failed read is never reported as 'no conflicts'."""
    checker = VenueConflictChecker(FailingStore(), IST)

    with pytest.raises(StorageError):
        checker.check_conflicts([_session()])


def test_no_schedulable_candidates_skips_storage():
    checker = VenueConflictChecker(FailingStore(), IST)

    result = checker.check_conflicts([Session(session_name="TBD")])

    assert result.has_conflict is False


def test_slot_overlap_is_symmetric():
    a = session_slot(_session(start="09:00", end="11:00"), IST)
    b = session_slot(_session(start="10:00", end="12:00"), IST)
    c = session_slot(_session(start="11:00", end="12:00"), IST)

    assert slots_overlap(a, b) and slots_overlap(b, a)
    assert not slots_overlap(a, c) and not slots_overlap(c, a)
