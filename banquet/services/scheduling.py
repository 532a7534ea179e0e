"""Write paths for enquiries and bookings.

Every write that introduces or changes sessions asks the
:class:`VenueConflictChecker` first and refuses the write on conflict.
Writes that leave a record committed also update the committed-slot index,
which re-checks atomically and closes the window between check and write.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from banquet.domain.bus import EventBus
from banquet.domain.errors import RecordNotFound, SlotConflictError, VenueConflictError
from banquet.domain.events import (
    BookingCreated,
    BookingUpdated,
    ConflictDetected,
    EnquiryCreated,
    EnquiryReopened,
    EnquiryStatusChanged,
    EnquiryUpdated,
)
from banquet.domain.models import (
    Actor,
    Booking,
    BookingCreate,
    BookingUpdate,
    ConflictCheckResult,
    Enquiry,
    EnquiryCreate,
    EnquiryUpdate,
    RecordKind,
    Session,
)
from banquet.domain.status import (
    is_committed_booking,
    is_committed_enquiry,
    validate_booking_transition,
    validate_enquiry_transition,
    validate_reopen,
)
from banquet.repos.memory import (
    BookingRepository,
    CommittedSlotIndex,
    CounterRepository,
    EnquiryRepository,
)
from banquet.services.conflicts import VenueConflictChecker, session_slots

logger = logging.getLogger(__name__)

ENQUIRY_CREATE_BLOCKED = (
    "Venue collision with existing converted/booked record. Creation blocked."
)
ENQUIRY_UPDATE_BLOCKED = (
    "Venue collision with existing converted/booked record. Update blocked."
)
BOOKING_BLOCKED = "Venue conflict detected"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SchedulingService:
    def __init__(
        self,
        checker: VenueConflictChecker,
        bus: EventBus,
        enquiry_repo: EnquiryRepository,
        booking_repo: BookingRepository,
        counter_repo: CounterRepository,
        slot_index: CommittedSlotIndex | None = None,
    ) -> None:
        self.checker = checker
        self.bus = bus
        self.enquiry_repo = enquiry_repo
        self.booking_repo = booking_repo
        self.counter_repo = counter_repo
        self.slot_index = slot_index

    # ------------------------------------------------------------------
    # Document numbers
    # ------------------------------------------------------------------

    def next_enquiry_number(self) -> str:
        """``ENQ-YYYY-MM-NNN``, numbered per calendar month."""
        now = datetime.now(self.checker.local_tz)
        seq = self.counter_repo.next_value(f"enquiries:{now:%Y-%m}")
        return f"ENQ-{now:%Y}-{now:%m}-{seq:03d}"

    def next_booking_number(self) -> str:
        """``BKG-YYYY-NNN``, numbered per calendar year."""
        now = datetime.now(self.checker.local_tz)
        seq = self.counter_repo.next_value(f"bookings:{now:%Y}")
        return f"BKG-{now:%Y}-{seq:03d}"

    # ------------------------------------------------------------------
    # Enquiries
    # ------------------------------------------------------------------

    def get_enquiry(self, enquiry_id: str) -> Enquiry:
        enquiry = self.enquiry_repo.get(enquiry_id)
        if enquiry is None:
            raise RecordNotFound("enquiry", enquiry_id)
        return enquiry

    def create_enquiry(self, data: EnquiryCreate, actor: Actor) -> Enquiry:
        self._ensure_free(
            data.sessions,
            RecordKind.ENQUIRY,
            "create",
            ENQUIRY_CREATE_BLOCKED,
            actor,
        )

        enquiry = Enquiry(
            enquiry_number=self.next_enquiry_number(),
            sessions=data.sessions,
            **data.model_dump(exclude={"sessions"}),
        )
        self._sync_slots(
            RecordKind.ENQUIRY,
            enquiry,
            is_committed_enquiry(enquiry.status),
            actor,
            "create",
        )
        self.enquiry_repo.add(enquiry)
        logger.info("Created enquiry %s for %s", enquiry.enquiry_number, enquiry.client_name)

        self.bus.publish(EnquiryCreated(enquiry_id=enquiry.id, actor=actor))
        return enquiry

    def update_enquiry(
        self, enquiry_id: str, data: EnquiryUpdate, actor: Actor
    ) -> Enquiry:
        """Apply a partial update; ``sessions`` replaces the whole array.

        Sessions are re-checked when new ones are supplied, and also when the
        enquiry is converted, since that is the moment its stored sessions
        start holding their venues.
        """
        enquiry = self.get_enquiry(enquiry_id)
        changes = data.model_dump(exclude_unset=True, exclude={"sessions", "status"})

        from_status = enquiry.status
        to_status = data.status if data.status is not None else from_status
        if to_status != from_status:
            validate_enquiry_transition(from_status, to_status, data.follow_up_date)

        sessions = data.sessions if data.sessions is not None else enquiry.sessions
        if data.sessions or (
            to_status != from_status and is_committed_enquiry(to_status)
        ):
            self._ensure_free(
                sessions,
                RecordKind.ENQUIRY,
                "update",
                ENQUIRY_UPDATE_BLOCKED,
                actor,
                record_id=enquiry.id,
            )

        updated = enquiry.model_copy(
            update={
                **changes,
                "sessions": sessions,
                "status": to_status,
                "updated_at": _utcnow(),
            }
        )
        self._sync_slots(
            RecordKind.ENQUIRY,
            updated,
            is_committed_enquiry(to_status),
            actor,
            "update",
            record_id=updated.id,
            was_committed=is_committed_enquiry(from_status),
        )
        self.enquiry_repo.save(updated)
        logger.info("Updated enquiry %s", updated.enquiry_number)

        changed_fields = sorted(changes) + (["sessions"] if data.sessions is not None else [])
        if changed_fields:
            self.bus.publish(
                EnquiryUpdated(
                    enquiry_id=updated.id, changed_fields=changed_fields, actor=actor
                )
            )
        if to_status != from_status:
            self.bus.publish(
                EnquiryStatusChanged(
                    enquiry_id=updated.id,
                    from_status=from_status,
                    to_status=to_status,
                    notes=data.notes,
                    follow_up_date=data.follow_up_date,
                    actor=actor,
                )
            )
        return updated

    def reopen_enquiry(
        self, enquiry_id: str, reason: str, notes: str, actor: Actor
    ) -> Enquiry:
        enquiry = self.get_enquiry(enquiry_id)
        to_status = validate_reopen(enquiry.status)

        updated = enquiry.model_copy(
            update={
                "status": to_status,
                "reopen_reason": reason or None,
                "reopen_notes": notes or None,
                "updated_at": _utcnow(),
            }
        )
        self.enquiry_repo.save(updated)
        logger.info("Reopened enquiry %s", updated.enquiry_number)

        self.bus.publish(
            EnquiryReopened(enquiry_id=updated.id, reason=reason, notes=notes, actor=actor)
        )
        return updated

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def get_booking(self, booking_id: str) -> Booking:
        booking = self.booking_repo.get(booking_id)
        if booking is None:
            raise RecordNotFound("booking", booking_id)
        return booking

    def create_booking(self, data: BookingCreate, actor: Actor) -> Booking:
        """Create a booking, usually the conversion of an enquiry.

        The linked enquiry's own sessions are the ones being booked, so they
        are excluded from the check and handed over in the slot index.
        """
        enquiry = None
        if data.enquiry_id is not None:
            enquiry = self.get_enquiry(data.enquiry_id)

        self._ensure_free(
            data.sessions,
            RecordKind.BOOKING,
            "create",
            BOOKING_BLOCKED,
            actor,
            exclude_id=enquiry.id if enquiry else None,
            exclude_kind=RecordKind.ENQUIRY if enquiry else None,
        )

        fields = data.model_dump(exclude={"sessions"})
        if enquiry is not None:
            fields["salesperson_id"] = enquiry.salesperson_id or data.salesperson_id
        booking = Booking(
            booking_number=self.next_booking_number(),
            enquiry_number=enquiry.enquiry_number if enquiry else None,
            sessions=data.sessions,
            **fields,
        )
        self._sync_slots(
            RecordKind.BOOKING,
            booking,
            is_committed_booking(booking.status),
            actor,
            "create",
            replacing=((RecordKind.ENQUIRY, enquiry.id),) if enquiry else (),
        )
        self.booking_repo.add(booking)
        logger.info("Created booking %s for %s", booking.booking_number, booking.client_name)

        self.bus.publish(BookingCreated(booking_id=booking.id, actor=actor))
        return booking

    def update_booking(
        self, booking_id: str, data: BookingUpdate, actor: Actor
    ) -> Booking:
        booking = self.get_booking(booking_id)
        changes = data.model_dump(exclude_unset=True, exclude={"sessions", "status"})

        from_status = booking.status
        to_status = data.status if data.status is not None else from_status
        validate_booking_transition(from_status, to_status)

        sessions = data.sessions if data.sessions is not None else booking.sessions
        if data.sessions or (
            to_status != from_status and is_committed_booking(to_status)
        ):
            self._ensure_free(
                sessions,
                RecordKind.BOOKING,
                "update",
                BOOKING_BLOCKED,
                actor,
                record_id=booking.id,
            )

        updated = booking.model_copy(
            update={
                **changes,
                "sessions": sessions,
                "status": to_status,
                "updated_at": _utcnow(),
            }
        )
        self._sync_slots(
            RecordKind.BOOKING,
            updated,
            is_committed_booking(to_status),
            actor,
            "update",
            record_id=updated.id,
            was_committed=is_committed_booking(from_status),
        )
        self.booking_repo.save(updated)
        logger.info("Updated booking %s", updated.booking_number)

        changed_fields = sorted(changes) + (["sessions"] if data.sessions is not None else [])
        self.bus.publish(
            BookingUpdated(
                booking_id=updated.id,
                changed_fields=changed_fields,
                from_status=from_status,
                to_status=to_status if to_status != from_status else None,
                actor=actor,
            )
        )
        return updated

    # ------------------------------------------------------------------
    # Conflict checks
    # ------------------------------------------------------------------

    def check_conflicts(
        self,
        sessions: list[Session],
        exclude_record_id: str | None = None,
        exclude_record_kind: RecordKind | None = None,
    ) -> ConflictCheckResult:
        return self.checker.check_conflicts(
            sessions,
            exclude_record_id=exclude_record_id,
            exclude_record_kind=exclude_record_kind,
        )

    def _ensure_free(
        self,
        sessions: list[Session],
        kind: RecordKind,
        operation: str,
        message: str,
        actor: Actor,
        record_id: str | None = None,
        exclude_id: str | None = None,
        exclude_kind: RecordKind | None = None,
    ) -> None:
        """Raise ``VenueConflictError`` if *sessions* collide with committed ones.

        Updates exclude the record itself unless another exclusion is given.
        """
        if record_id is not None and exclude_id is None:
            exclude_id, exclude_kind = record_id, kind
        result = self.check_conflicts(
            sessions, exclude_record_id=exclude_id, exclude_record_kind=exclude_kind
        )
        if not result.has_conflict:
            return
        self.bus.publish(
            ConflictDetected(
                record_kind=kind,
                operation=operation,
                record_id=record_id,
                conflicts=result.conflicts,
                actor=actor,
            )
        )
        raise VenueConflictError(message, result)

    def _sync_slots(
        self,
        kind: RecordKind,
        record: Enquiry | Booking,
        committed: bool,
        actor: Actor,
        operation: str,
        record_id: str | None = None,
        was_committed: bool = False,
        replacing: tuple = (),
    ) -> None:
        """Bring the slot index in line with *record*'s commitment.

        Owners in *replacing* give up their claims whether or not *record*
        takes the slots over.
        """
        if self.slot_index is None:
            return
        owner = (kind, record.id)
        if not committed:
            released = ((owner,) if was_committed else ()) + tuple(replacing)
            for claimant in released:
                self.slot_index.release(claimant)
            return

        label = (
            record.booking_number
            if isinstance(record, Booking)
            else record.enquiry_number
        )
        slots = session_slots(record.sessions, self.checker.local_tz)
        try:
            self.slot_index.reserve(owner, label, slots, replacing=replacing)
        except SlotConflictError as exc:
            self.bus.publish(
                ConflictDetected(
                    record_kind=kind,
                    operation=operation,
                    record_id=record_id,
                    slot_refusal=exc.message,
                    actor=actor,
                )
            )
            raise
