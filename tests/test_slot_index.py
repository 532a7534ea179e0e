"""Tests for the committed-slot index that backs up conflict detection."""

import threading
from datetime import date

import pytest

from banquet.domain.calendar import business_tz
from banquet.domain.errors import SlotConflictError
from banquet.domain.models import RecordKind, Session
from banquet.repos.memory import CommittedSlotIndex
from banquet.services.conflicts import session_slots

IST = business_tz("Asia/Kolkata")
DAY = date(2025, 10, 10)

BOOKING_A = (RecordKind.BOOKING, "booking-a")
BOOKING_B = (RecordKind.BOOKING, "booking-b")
ENQUIRY_E = (RecordKind.ENQUIRY, "enquiry-e")


def _slots(*windows, venue="Areca I"):
    return session_slots(
        [
            Session(venue=venue, session_date=DAY, start_time=start, end_time=end)
            for start, end in windows
        ],
        IST,
    )


@pytest.fixture()
def index():
    return CommittedSlotIndex()


def test_overlapping_reserve_refused(index):
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))

    with pytest.raises(SlotConflictError) as exc_info:
        index.reserve(BOOKING_B, "BKG-2025-002", _slots(("19:00", "20:00")))

    assert exc_info.value.status_code == 409
    assert "BKG-2025-001" in exc_info.value.message
    assert index.holders("Areca I", DAY) == ["BKG-2025-001"]


def test_adjacent_and_other_venue_reserve_allowed(index):
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))
    index.reserve(BOOKING_B, "BKG-2025-002", _slots(("22:00", "23:00")))
    index.reserve(ENQUIRY_E, "ENQ-2025-10-001", _slots(("18:00", "22:00"), venue="Areca II"))

    assert index.holders("Areca I", DAY) == ["BKG-2025-001", "BKG-2025-002"]
    assert index.holders("Areca II", DAY) == ["ENQ-2025-10-001"]


def test_owner_may_move_its_own_slots(index):
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("19:00", "23:00")))

    assert index.holders("Areca I", DAY) == ["BKG-2025-001"]


def test_booking_takes_over_enquiry_claim(index):
    """Converting an enquiry hands its slots to the new booking."""
    index.reserve(ENQUIRY_E, "ENQ-2025-10-001", _slots(("10:00", "11:00")))
    index.reserve(
        BOOKING_A, "BKG-2025-001", _slots(("10:00", "11:00")), replacing=(ENQUIRY_E,)
    )

    assert index.holders("Areca I", DAY) == ["BKG-2025-001"]


def test_refused_reserve_leaves_previous_claims(index):
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))
    index.reserve(BOOKING_B, "BKG-2025-002", _slots(("10:00", "11:00")))

    with pytest.raises(SlotConflictError):
        index.reserve(BOOKING_B, "BKG-2025-002", _slots(("17:00", "19:00")))

    assert index.holders("Areca I", DAY) == ["BKG-2025-001", "BKG-2025-002"]


def test_release_frees_the_slot(index):
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))
    index.release(BOOKING_A)

    index.reserve(BOOKING_B, "BKG-2025-002", _slots(("18:00", "22:00")))
    assert index.holders("Areca I", DAY) == ["BKG-2025-002"]


def test_concurrent_reservations_admit_one(index):
    """Of many writers racing for the same slot exactly one wins."""
    wins, losses = [], []
    barrier = threading.Barrier(8)

    def _writer(n):
        barrier.wait()
        try:
            index.reserve((RecordKind.BOOKING, f"b{n}"), f"BKG-{n}", _slots(("18:00", "22:00")))
            wins.append(n)
        except SlotConflictError:
            losses.append(n)

    threads = [threading.Thread(target=_writer, args=(n,)) for n in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert len(wins) == 1
    assert len(losses) == 7


def test_holders_waits_for_pending_reservation(index):
    """Reading holders serializes with writers on the index lock."""
    index.reserve(BOOKING_A, "BKG-2025-001", _slots(("18:00", "22:00")))
    seen = []

    index._lock.acquire()
    reader = threading.Thread(
        target=lambda: seen.append(index.holders("Areca I", DAY)), daemon=True
    )
    reader.start()
    reader.join(timeout=0.2)
    assert reader.is_alive()
    assert seen == []

    index._lock.release()
    reader.join(timeout=5)
    assert seen == [["BKG-2025-001"]]
