"""Domain exceptions and the HTTP status each one maps to."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from banquet.domain.models import ConflictCheckResult


class BanquetError(Exception):
    """Base class for errors raised by the scheduling domain."""

    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class RecordNotFound(BanquetError):
    status_code = 404

    def __init__(self, kind: str, record_id: str) -> None:
        super().__init__(f"{kind.capitalize()} not found")
        self.kind = kind
        self.record_id = record_id


class InvalidStatusTransition(BanquetError):
    status_code = 400


class VenueConflictError(BanquetError):
    """A write was blocked because its sessions overlap committed sessions."""

    status_code = 409

    def __init__(self, message: str, result: ConflictCheckResult) -> None:
        super().__init__(message)
        self.result = result


class SlotConflictError(BanquetError):
    """The committed-slot index refused a reservation.

    Raised when a concurrent write committed an overlapping slot between the
    conflict check and the write.
    """

    status_code = 409

    def __init__(self, venue: str, date_key: str, owner: str) -> None:
        super().__init__(
            f"Venue {venue} on {date_key} is already held by {owner}"
        )
        self.venue = venue
        self.date_key = date_key
        self.owner = owner


class StorageError(BanquetError):
    """The document store could not serve a read or write."""

    status_code = 500
