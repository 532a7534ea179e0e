"""Domain event handlers, wired to the bus at application startup."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from banquet.domain.bus import EventBus
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
    AuditEntry,
    EnquiryStatus,
    RecordKind,
    StatusHistoryEntry,
)
from banquet.repos.memory import (
    AuditLogRepository,
    BookingRepository,
    EnquiryRepository,
    StatusHistoryRepository,
)

logger = logging.getLogger(__name__)

_AUDIT_MODULES = {RecordKind.ENQUIRY: "enquiries", RecordKind.BOOKING: "bookings"}


class HandlerRegistry:
    """Wires domain-event handlers to the bus with access to all repositories."""

    def __init__(
        self,
        bus: EventBus,
        enquiry_repo: EnquiryRepository,
        booking_repo: BookingRepository,
        status_history_repo: StatusHistoryRepository,
        audit_repo: AuditLogRepository,
    ) -> None:
        self.bus = bus
        self.enquiry_repo = enquiry_repo
        self.booking_repo = booking_repo
        self.status_history_repo = status_history_repo
        self.audit_repo = audit_repo
        self._register()

    def _register(self) -> None:
        self.bus.subscribe(EnquiryCreated, self.on_enquiry_created)
        self.bus.subscribe(EnquiryUpdated, self.on_enquiry_updated)
        self.bus.subscribe(EnquiryStatusChanged, self.on_enquiry_status_changed)
        self.bus.subscribe(EnquiryReopened, self.on_enquiry_reopened)
        self.bus.subscribe(BookingCreated, self.on_booking_created)
        self.bus.subscribe(BookingUpdated, self.on_booking_updated)
        self.bus.subscribe(ConflictDetected, self.on_conflict_detected)

    def _audit(
        self, action: str, module: str, resource_id: str, actor: Actor, **details
    ) -> None:
        self.audit_repo.add(
            AuditEntry(
                action=action,
                module=module,
                resource_id=resource_id,
                actor_id=actor.user_id,
                actor_role=actor.role,
                details=details,
            )
        )

    # ------------------------------------------------------------------
    # Enquiries
    # ------------------------------------------------------------------

    def on_enquiry_created(self, event: EnquiryCreated) -> None:
        stored = self.enquiry_repo.get(event.enquiry_id)
        if stored is None:
            return
        self._audit(
            "enquiry_created",
            "enquiries",
            stored.id,
            event.actor,
            enquiryNumber=stored.enquiry_number,
            clientName=stored.client_name,
            eventType=stored.event_type,
            expectedPax=stored.expected_pax,
            source=stored.source,
            salespersonId=stored.salesperson_id,
        )

    def on_enquiry_updated(self, event: EnquiryUpdated) -> None:
        self._audit(
            "enquiry_updated",
            "enquiries",
            event.enquiry_id,
            event.actor,
            changedFields=event.changed_fields,
        )

    def on_enquiry_status_changed(self, event: EnquiryStatusChanged) -> None:
        self.status_history_repo.add(
            StatusHistoryEntry(
                enquiry_id=event.enquiry_id,
                from_status=event.from_status,
                to_status=event.to_status,
                changed_by=event.actor.user_id,
                notes=event.notes,
                follow_up_date=event.follow_up_date,
            )
        )
        self._audit(
            "enquiry_status_changed",
            "enquiries",
            event.enquiry_id,
            event.actor,
            fromStatus=event.from_status.value,
            toStatus=event.to_status.value,
        )

    def on_enquiry_reopened(self, event: EnquiryReopened) -> None:
        self.status_history_repo.add(
            StatusHistoryEntry(
                enquiry_id=event.enquiry_id,
                from_status=EnquiryStatus.LOST,
                to_status=EnquiryStatus.ONGOING,
                changed_by=event.actor.user_id,
                notes=event.notes or f"Reopened: {event.reason}",
            )
        )
        self._audit(
            "enquiry_reopened",
            "enquiries",
            event.enquiry_id,
            event.actor,
            reason=event.reason,
        )

    # ------------------------------------------------------------------
    # Bookings
    # ------------------------------------------------------------------

    def on_booking_created(self, event: BookingCreated) -> None:
        booking = self.booking_repo.get(event.booking_id)
        if booking is None:
            return

        self._audit(
            "booking_created",
            "bookings",
            booking.id,
            event.actor,
            bookingNumber=booking.booking_number,
            clientName=booking.client_name,
            eventType=booking.event_type,
            confirmedPax=booking.confirmed_pax,
            totalAmount=booking.total_amount,
        )

        # The booking now holds the venue slots; its enquiry moves on to booked
        if booking.enquiry_id is None:
            return
        enquiry = self.enquiry_repo.get(booking.enquiry_id)
        if enquiry is None or enquiry.status != EnquiryStatus.CONVERTED:
            return
        enquiry.status = EnquiryStatus.BOOKED
        enquiry.updated_at = datetime.now(timezone.utc)
        self.enquiry_repo.save(enquiry)
        self.bus.publish(
            EnquiryStatusChanged(
                enquiry_id=enquiry.id,
                from_status=EnquiryStatus.CONVERTED,
                to_status=EnquiryStatus.BOOKED,
                notes=f"Booking {booking.booking_number} created",
                actor=event.actor,
            )
        )

    def on_booking_updated(self, event: BookingUpdated) -> None:
        self._audit(
            "booking_updated",
            "bookings",
            event.booking_id,
            event.actor,
            changedFields=event.changed_fields,
        )
        if event.to_status is not None and event.to_status != event.from_status:
            self._audit(
                "booking_status_changed",
                "bookings",
                event.booking_id,
                event.actor,
                fromStatus=event.from_status.value if event.from_status else None,
                toStatus=event.to_status.value,
            )

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    def on_conflict_detected(self, event: ConflictDetected) -> None:
        for conflict in event.conflicts:
            logger.warning(
                "Blocked %s %s: %s on %s %s-%s overlaps %s %s (%s-%s)",
                event.record_kind.value,
                event.operation,
                conflict.venue,
                conflict.session_date.isoformat(),
                conflict.requested.start_time,
                conflict.requested.end_time,
                conflict.existing.record_kind.value,
                conflict.existing.record_number or "in request",
                conflict.existing.start_time,
                conflict.existing.end_time,
            )
        if event.slot_refusal:
            logger.warning(
                "Blocked %s %s: %s",
                event.record_kind.value,
                event.operation,
                event.slot_refusal,
            )
        self._audit(
            "venue_conflict_blocked",
            _AUDIT_MODULES[event.record_kind],
            event.record_id or "new",
            event.actor,
            operation=event.operation,
            conflicts=[c.model_dump(mode="json", by_alias=True) for c in event.conflicts],
            slotRefusal=event.slot_refusal,
        )
