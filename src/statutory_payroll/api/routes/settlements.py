"""Full and final settlement API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query, status

from statutory_payroll.api.dependencies import ActorId, DbSession, TenantId
from statutory_payroll.api.schemas import (
    ErrorResponse,
    SettlementCancelRequest,
    SettlementCreate,
    SettlementListResponse,
    SettlementPayRequest,
    SettlementResponse,
    SettlementUpdate,
)
from statutory_payroll.services.settlement_service import SettlementService

router = APIRouter(prefix="/settlements", tags=["settlements"])

STATE_ERRORS = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


@router.post(
    "",
    response_model=SettlementResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
)
async def create_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payload: SettlementCreate,
) -> SettlementResponse:
    """Create a draft settlement, or return the one for the same exit."""
    settlement = await SettlementService(db).create_settlement(
        tenant_id=tenant_id,
        actor_user_id=actor_id,
        **payload.model_dump(),
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.get("", response_model=SettlementListResponse)
async def list_settlements(
    db: DbSession,
    tenant_id: TenantId,
    status_filter: Annotated[str | None, Query(alias="status")] = None,
) -> SettlementListResponse:
    settlements = await SettlementService(db).list_settlements(tenant_id, status_filter)
    return SettlementListResponse(
        items=[SettlementResponse.model_validate(s) for s in settlements],
        total=len(settlements),
    )


@router.get(
    "/{settlement_id}",
    response_model=SettlementResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_settlement(
    db: DbSession,
    tenant_id: TenantId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    settlement = await SettlementService(db).get_settlement(settlement_id, tenant_id)
    return SettlementResponse.model_validate(settlement)


@router.patch(
    "/{settlement_id}",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def update_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
    payload: SettlementUpdate,
) -> SettlementResponse:
    settlement = await SettlementService(db).update_settlement(
        settlement_id, tenant_id, payload.model_dump(exclude_unset=True), actor_id
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/recalculate",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def recalculate_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    settlement = await SettlementService(db).recalculate_settlement(settlement_id, tenant_id, actor_id)
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/submit",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def submit_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    settlement = await SettlementService(db).submit_settlement(settlement_id, tenant_id, actor_id)
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/approve",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def approve_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
) -> SettlementResponse:
    settlement = await SettlementService(db).approve_settlement(settlement_id, tenant_id, actor_id)
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/pay",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def pay_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
    payload: SettlementPayRequest,
) -> SettlementResponse:
    settlement = await SettlementService(db).mark_settlement_paid(
        settlement_id, tenant_id, payload.payment_reference, actor_id
    )
    await db.commit()
    return SettlementResponse.model_validate(settlement)


@router.post(
    "/{settlement_id}/cancel",
    response_model=SettlementResponse,
    responses=STATE_ERRORS,
)
async def cancel_settlement(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    settlement_id: Annotated[UUID, Path()],
    payload: SettlementCancelRequest | None = None,
) -> SettlementResponse:
    reason = payload.reason if payload else None
    settlement = await SettlementService(db).cancel_settlement(settlement_id, tenant_id, reason, actor_id)
    await db.commit()
    return SettlementResponse.model_validate(settlement)
