"""FastAPI entry point for the banquet scheduling service."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Header, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse

from banquet.config import settings
from banquet.domain.bus import EventBus
from banquet.domain.calendar import business_tz
from banquet.domain.errors import (
    BanquetError,
    SlotConflictError,
    StorageError,
    VenueConflictError,
)
from banquet.domain.handlers import HandlerRegistry
from banquet.domain.models import (
    Actor,
    AuditEntry,
    Booking,
    BookingCreate,
    BookingStatus,
    BookingUpdate,
    CheckConflictsRequest,
    ConflictCheckResult,
    ConflictResponse,
    Enquiry,
    EnquiryCreate,
    EnquiryStatus,
    EnquiryUpdate,
    ReopenRequest,
    StatusHistoryEntry,
)
from banquet.repos.memory import (
    AuditLogRepository,
    BookingRepository,
    CommittedSlotIndex,
    CounterRepository,
    EnquiryRepository,
    MemoryCommittedRecords,
    StatusHistoryRepository,
)
from banquet.services.conflicts import VenueConflictChecker
from banquet.services.scheduling import SchedulingService

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Banquet Scheduling Service")

# ── Singletons (created at import time for simplicity) ────────────────
event_bus = EventBus()
enquiry_repo = EnquiryRepository()
booking_repo = BookingRepository()
status_history_repo = StatusHistoryRepository()
audit_repo = AuditLogRepository()
counter_repo = CounterRepository()
slot_index = CommittedSlotIndex() if settings.slot_backstop_enabled else None

conflict_checker = VenueConflictChecker(
    store=MemoryCommittedRecords(enquiry_repo, booking_repo),
    local_tz=business_tz(settings.timezone),
    check_within_batch=settings.check_within_batch,
)

handler_registry = HandlerRegistry(
    bus=event_bus,
    enquiry_repo=enquiry_repo,
    booking_repo=booking_repo,
    status_history_repo=status_history_repo,
    audit_repo=audit_repo,
)

scheduling = SchedulingService(
    checker=conflict_checker,
    bus=event_bus,
    enquiry_repo=enquiry_repo,
    booking_repo=booking_repo,
    counter_repo=counter_repo,
    slot_index=slot_index,
)

_CONFLICT_RESPONSES = {409: {"model": ConflictResponse}}


def _actor(user_id: str | None, role: str | None) -> Actor:
    return Actor(user_id=user_id, role=role)


# ── Error translation ─────────────────────────────────────────────────


@app.exception_handler(VenueConflictError)
async def venue_conflict_handler(request: Request, exc: VenueConflictError) -> JSONResponse:
    body = ConflictResponse(message=exc.message, conflicts=exc.result.conflicts)
    return JSONResponse(status_code=409, content=body.model_dump(mode="json", by_alias=True))


@app.exception_handler(SlotConflictError)
async def slot_conflict_handler(request: Request, exc: SlotConflictError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"message": exc.message, "conflicts": []})


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=500, content={"message": "Storage unavailable"})


@app.exception_handler(BanquetError)
async def banquet_error_handler(request: Request, exc: BanquetError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"message": exc.message})


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError
) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content={"message": "Validation error", "errors": jsonable_encoder(exc.errors())},
    )


# ── Enquiries ─────────────────────────────────────────────────────────


@app.post(
    "/api/enquiries",
    response_model=Enquiry,
    status_code=201,
    responses=_CONFLICT_RESPONSES,
)
def create_enquiry(
    payload: EnquiryCreate,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Enquiry:
    """Create an enquiry; refused with 409 if a session collides with a committed one."""
    return scheduling.create_enquiry(payload, _actor(x_user_id, x_user_role))


@app.get("/api/enquiries", response_model=list[Enquiry])
def list_enquiries(status: EnquiryStatus | None = None) -> list[Enquiry]:
    return enquiry_repo.list_all(status=status)


@app.post("/api/enquiries/check-conflicts", response_model=ConflictCheckResult)
def check_enquiry_conflicts(payload: CheckConflictsRequest) -> ConflictCheckResult:
    """Dry-run conflict check; reports conflicts without blocking anything."""
    return scheduling.check_conflicts(
        payload.sessions,
        exclude_record_id=payload.exclude_record_id,
        exclude_record_kind=payload.exclude_record_kind,
    )


@app.get("/api/enquiries/{enquiry_id}", response_model=Enquiry)
def get_enquiry(enquiry_id: str) -> Enquiry:
    return scheduling.get_enquiry(enquiry_id)


@app.patch(
    "/api/enquiries/{enquiry_id}",
    response_model=Enquiry,
    responses=_CONFLICT_RESPONSES,
)
def update_enquiry(
    enquiry_id: str,
    payload: EnquiryUpdate,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Enquiry:
    return scheduling.update_enquiry(
        enquiry_id, payload, _actor(x_user_id, x_user_role)
    )


@app.post("/api/enquiries/{enquiry_id}/reopen", response_model=Enquiry)
def reopen_enquiry(
    enquiry_id: str,
    payload: ReopenRequest,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Enquiry:
    """Move a lost enquiry back to ongoing."""
    return scheduling.reopen_enquiry(
        enquiry_id, payload.reason, payload.notes, _actor(x_user_id, x_user_role)
    )


@app.get(
    "/api/enquiries/{enquiry_id}/status-history",
    response_model=list[StatusHistoryEntry],
)
def get_status_history(enquiry_id: str) -> list[StatusHistoryEntry]:
    scheduling.get_enquiry(enquiry_id)
    return status_history_repo.list_for_enquiry(enquiry_id)


# ── Bookings ──────────────────────────────────────────────────────────


@app.post(
    "/api/bookings",
    response_model=Booking,
    status_code=201,
    responses=_CONFLICT_RESPONSES,
)
def create_booking(
    payload: BookingCreate,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Booking:
    return scheduling.create_booking(payload, _actor(x_user_id, x_user_role))


@app.get("/api/bookings", response_model=list[Booking])
def list_bookings(
    status: BookingStatus | None = None,
    enquiry_id: str | None = Query(default=None, alias="enquiryId"),
) -> list[Booking]:
    return booking_repo.list_all(status=status, enquiry_id=enquiry_id)


@app.get("/api/bookings/{booking_id}", response_model=Booking)
def get_booking(booking_id: str) -> Booking:
    return scheduling.get_booking(booking_id)


@app.patch(
    "/api/bookings/{booking_id}",
    response_model=Booking,
    responses=_CONFLICT_RESPONSES,
)
def update_booking(
    booking_id: str,
    payload: BookingUpdate,
    x_user_id: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Booking:
    return scheduling.update_booking(booking_id, payload, _actor(x_user_id, x_user_role))


# ── Audit ─────────────────────────────────────────────────────────────


@app.get("/api/audit-logs", response_model=list[AuditEntry])
def list_audit_logs(
    module: str | None = None,
    resource_id: str | None = Query(default=None, alias="resourceId"),
) -> list[AuditEntry]:
    return audit_repo.list_all(module=module, resource_id=resource_id)
