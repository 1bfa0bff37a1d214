from datetime import date, timedelta
import uuid
from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.ext.asyncio import AsyncSession
from app.core.db import get_session
from app.core.security import get_principal, require_scopes, ensure_can_manage_provider, Principal
from app.modules.availability.service import AvailabilityService, provider_brief
from app.modules.availability.errors import PayerNotFound, ProviderNotFound, NetworkLookupFailed
from app.modules.availability.schedule import day_of_week, format_minutes
from app.modules.availability.schemas import (
    RecurringBlockCreate, RecurringBlockOut, ExceptionCreate, ExceptionOut, DayScheduleOut,
    MergedAvailabilityRequest, MergedAvailabilityOut, NetworkEntryOut,
)

router = APIRouter()

def svc(s: AsyncSession = Depends(get_session)) -> AvailabilityService:
    return AvailabilityService(s)

def _not_found(e: Exception) -> HTTPException:
    return HTTPException(404, str(e))

def _unavailable(e: Exception) -> HTTPException:
    return HTTPException(503, "Provider network is temporarily unavailable")

# Patient booking
@router.post("/patient-booking/merged-availability", response_model=MergedAvailabilityOut, dependencies=[Depends(require_scopes("availability:read"))])
async def merged_availability(payload: MergedAvailabilityRequest, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    try:
        return await service.merged_availability(principal.org_id, payload)
    except PayerNotFound as e:
        raise _not_found(e)
    except NetworkLookupFailed as e:
        raise _unavailable(e)

@router.get("/patient-booking/providers-for-payer", response_model=list[NetworkEntryOut], dependencies=[Depends(require_scopes("availability:read"))])
async def providers_for_payer(payer_id: uuid.UUID, start_date: date | None = None, end_date: date | None = None, provider_id: uuid.UUID | None = None, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    start = start_date or date.today()
    end = end_date or start + timedelta(days=30)
    if end < start:
        raise HTTPException(422, "end_date must not precede start_date")
    try:
        entries = await service.providers_for_payer(principal.org_id, payer_id, start, end, provider_id)
    except PayerNotFound as e:
        raise _not_found(e)
    except NetworkLookupFailed as e:
        raise _unavailable(e)
    return [
        {
            "provider": provider_brief(e.provider),
            "relationship_kind": e.kind,
            "billing_provider_id": e.billing_provider_id,
            "requires_co_visit": e.requires_co_visit,
            "supervision_level": getattr(e, "supervision_level", None),
            "effective_date": e.effective_date,
            "expiration_date": e.expiration_date,
        }
        for e in entries
    ]

# Provider schedule
@router.get("/providers/{provider_id}/schedule", response_model=DayScheduleOut, dependencies=[Depends(require_scopes("availability:read"))])
async def day_schedule(provider_id: uuid.UUID, date: date, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    try:
        sched = await service.day_schedule(principal.org_id, provider_id, date)
    except ProviderNotFound as e:
        raise _not_found(e)
    return {
        "provider_id": provider_id,
        "date": date,
        "day_of_week": day_of_week(date),
        "rule": sched.rule,
        "windows": [{"start_time": format_minutes(w.start), "end_time": format_minutes(w.end)} for w in sched.windows],
        "exception_ids": sched.exception_ids,
    }

@router.post("/providers/{provider_id}/availability", response_model=RecurringBlockOut, status_code=201, dependencies=[Depends(require_scopes("availability:write"))])
async def create_block(provider_id: uuid.UUID, payload: RecurringBlockCreate, request: Request, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_can_manage_provider(principal, provider_id)
    try:
        return await service.create_block(principal.org_id, provider_id, principal.user_id, request, **payload.model_dump())
    except ProviderNotFound as e:
        raise _not_found(e)

@router.get("/providers/{provider_id}/availability", response_model=list[RecurringBlockOut], dependencies=[Depends(require_scopes("availability:read"))])
async def list_blocks(provider_id: uuid.UUID, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    try:
        return await service.list_blocks(principal.org_id, provider_id)
    except ProviderNotFound as e:
        raise _not_found(e)

@router.delete("/providers/{provider_id}/availability/{block_id}", status_code=204, dependencies=[Depends(require_scopes("availability:write"))])
async def delete_block(provider_id: uuid.UUID, block_id: uuid.UUID, request: Request, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_can_manage_provider(principal, provider_id)
    if not await service.delete_block(principal.org_id, provider_id, block_id, principal.user_id, request):
        raise HTTPException(404, "Availability block not found")

@router.post("/providers/{provider_id}/exceptions", response_model=ExceptionOut, status_code=201, dependencies=[Depends(require_scopes("availability:write"))])
async def create_exception(provider_id: uuid.UUID, payload: ExceptionCreate, request: Request, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_can_manage_provider(principal, provider_id)
    try:
        return await service.create_exception(principal.org_id, provider_id, principal.user_id, request, **payload.model_dump())
    except ProviderNotFound as e:
        raise _not_found(e)

@router.get("/providers/{provider_id}/exceptions", response_model=list[ExceptionOut], dependencies=[Depends(require_scopes("availability:read"))])
async def list_exceptions(provider_id: uuid.UUID, start_date: date | None = None, end_date: date | None = None, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    try:
        return await service.list_exceptions(principal.org_id, provider_id, start_date, end_date)
    except ProviderNotFound as e:
        raise _not_found(e)

@router.delete("/providers/{provider_id}/exceptions/{exception_id}", status_code=204, dependencies=[Depends(require_scopes("availability:write"))])
async def delete_exception(provider_id: uuid.UUID, exception_id: uuid.UUID, request: Request, principal: Principal = Depends(get_principal), service: AvailabilityService = Depends(svc)):
    ensure_can_manage_provider(principal, provider_id)
    if not await service.delete_exception(principal.org_id, provider_id, exception_id, principal.user_id, request):
        raise HTTPException(404, "Availability exception not found")
