"""Status workflows for enquiries and bookings.

Only two states hold a venue slot against other writes: a ``converted``
enquiry and a ``booked`` booking.
"""

from __future__ import annotations

from datetime import datetime

from banquet.domain.errors import InvalidStatusTransition
from banquet.domain.models import BookingStatus, EnquiryStatus

ENQUIRY_TRANSITIONS: dict[EnquiryStatus, tuple[EnquiryStatus, ...]] = {
    EnquiryStatus.NEW: (EnquiryStatus.QUOTATION_SENT, EnquiryStatus.LOST),
    EnquiryStatus.QUOTATION_SENT: (EnquiryStatus.ONGOING, EnquiryStatus.LOST),
    EnquiryStatus.ONGOING: (EnquiryStatus.CONVERTED, EnquiryStatus.LOST),
    EnquiryStatus.CONVERTED: (EnquiryStatus.BOOKED, EnquiryStatus.LOST),
    EnquiryStatus.BOOKED: (EnquiryStatus.CLOSED,),
    EnquiryStatus.CLOSED: (),
    EnquiryStatus.LOST: (),
}

# Bookings in these states are frozen
FINAL_BOOKING_STATUSES = frozenset({BookingStatus.CLOSED, BookingStatus.CANCELLED})


def is_committed_enquiry(status: EnquiryStatus) -> bool:
    return status == EnquiryStatus.CONVERTED


def is_committed_booking(status: BookingStatus) -> bool:
    return status == BookingStatus.BOOKED


def valid_next_statuses(current: EnquiryStatus) -> tuple[EnquiryStatus, ...]:
    return ENQUIRY_TRANSITIONS.get(current, ())


def validate_enquiry_transition(
    current: EnquiryStatus,
    target: EnquiryStatus,
    follow_up_date: datetime | None = None,
) -> None:
    """Raise ``InvalidStatusTransition`` unless *current* may move to *target*.

    Sending a quotation schedules a follow-up, so ``quotation_sent`` needs a
    follow-up date.
    """
    allowed = valid_next_statuses(current)
    if target not in allowed:
        valid = ", ".join(allowed) or "none"
        raise InvalidStatusTransition(
            f"Invalid status transition from {current} to {target}. "
            f"Valid transitions: {valid}"
        )
    if target == EnquiryStatus.QUOTATION_SENT and follow_up_date is None:
        raise InvalidStatusTransition(
            "Follow-up date is required when sending quotation"
        )


def validate_reopen(current: EnquiryStatus) -> EnquiryStatus:
    """Return the status a reopened enquiry moves to (always ``ongoing``)."""
    if current != EnquiryStatus.LOST:
        raise InvalidStatusTransition(
            f"Cannot reopen enquiry with status '{current}'. "
            "Only 'lost' enquiries can be reopened."
        )
    return EnquiryStatus.ONGOING


def validate_booking_transition(current: BookingStatus, target: BookingStatus) -> None:
    if target != current and current in FINAL_BOOKING_STATUSES:
        raise InvalidStatusTransition(
            f"Cannot update status: Booking is already {current}."
        )
