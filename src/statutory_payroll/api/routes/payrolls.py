"""Payroll period API endpoints."""

from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, status

from statutory_payroll.api.dependencies import ActorId, DbSession, TenantId
from statutory_payroll.api.schemas import (
    ApplyResponse,
    BatchResultResponse,
    DistributeResponse,
    ErrorResponse,
    FinalizeRequest,
    FreezeRequest,
    MarkPaidRequest,
    PayrollInitiate,
    PayrollPeriodListResponse,
    PayrollPeriodResponse,
    PayslipListResponse,
    PayslipResponse,
    PreCheckListResponse,
    PreCheckResolveRequest,
    PreCheckResponse,
    VoidPayslipRequest,
)
from statutory_payroll.services.payroll_service import PayrollService

router = APIRouter(prefix="/payrolls", tags=["payrolls"])

STATE_ERRORS = {404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}}


# ============================================================================
# Payroll periods
# ============================================================================


@router.post(
    "",
    response_model=PayrollPeriodResponse,
    status_code=status.HTTP_201_CREATED,
    responses={404: {"model": ErrorResponse}},
)
async def initiate_payroll(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payload: PayrollInitiate,
) -> PayrollPeriodResponse:
    """Create the period for a month, or return the existing one."""
    service = PayrollService(db)
    period = await service.initiate_payroll(tenant_id, payload.month, payload.year, actor_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.get("", response_model=PayrollPeriodListResponse)
async def list_payrolls(db: DbSession, tenant_id: TenantId) -> PayrollPeriodListResponse:
    """List the tenant's payroll periods, newest first."""
    periods = await PayrollService(db).list_periods(tenant_id)
    return PayrollPeriodListResponse(
        items=[PayrollPeriodResponse.model_validate(p) for p in periods],
        total=len(periods),
    )


@router.post(
    "/generate",
    response_model=BatchResultResponse,
    responses=STATE_ERRORS,
)
async def generate_payroll(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payload: PayrollInitiate,
) -> BatchResultResponse:
    """Generate payslips for a month. Idempotent; safe to call repeatedly."""
    result = await PayrollService(db).generate_payroll(tenant_id, payload.month, payload.year, actor_id)
    return BatchResultResponse(**result.to_dict())


@router.get(
    "/{payroll_id}",
    response_model=PayrollPeriodResponse,
    responses={404: {"model": ErrorResponse}},
)
async def get_payroll(
    db: DbSession,
    tenant_id: TenantId,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    period = await PayrollService(db).get_period(payroll_id, tenant_id)
    return PayrollPeriodResponse.model_validate(period)


@router.get(
    "/{payroll_id}/payslips",
    response_model=PayslipListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_payslips(
    db: DbSession,
    tenant_id: TenantId,
    payroll_id: Annotated[UUID, Path()],
    include_voided: bool = False,
) -> PayslipListResponse:
    payslips = await PayrollService(db).list_payslips(payroll_id, tenant_id, include_voided)
    return PayslipListResponse(
        items=[PayslipResponse.model_validate(p) for p in payslips],
        total=len(payslips),
    )


# ============================================================================
# Pre-checks and attendance
# ============================================================================


@router.post(
    "/{payroll_id}/pre-checks",
    response_model=PreCheckListResponse,
    responses=STATE_ERRORS,
)
async def run_pre_checks(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> PreCheckListResponse:
    """Scan the period for unresolved pre-run issues."""
    service = PayrollService(db)
    checks = await service.run_pre_checks(payroll_id, tenant_id, actor_id)
    period = await service.get_period(payroll_id, tenant_id)
    await db.commit()
    return PreCheckListResponse(
        items=[PreCheckResponse.model_validate(c) for c in checks],
        total=len(checks),
        pre_check_completed=period.pre_check_completed,
    )


@router.get(
    "/{payroll_id}/pre-checks",
    response_model=PreCheckListResponse,
    responses={404: {"model": ErrorResponse}},
)
async def list_pre_checks(
    db: DbSession,
    tenant_id: TenantId,
    payroll_id: Annotated[UUID, Path()],
) -> PreCheckListResponse:
    service = PayrollService(db)
    period = await service.get_period(payroll_id, tenant_id)
    checks = await service.list_pre_checks(payroll_id, tenant_id)
    return PreCheckListResponse(
        items=[PreCheckResponse.model_validate(c) for c in checks],
        total=len(checks),
        pre_check_completed=period.pre_check_completed,
    )


@router.post(
    "/pre-checks/{pre_check_id}/resolve",
    response_model=PreCheckResponse,
    responses=STATE_ERRORS,
)
async def resolve_pre_check(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    pre_check_id: Annotated[UUID, Path()],
    payload: PreCheckResolveRequest,
) -> PreCheckResponse:
    check = await PayrollService(db).resolve_pre_check(
        pre_check_id, tenant_id, payload.action, actor_id, payload.remarks
    )
    await db.commit()
    return PreCheckResponse.model_validate(check)


@router.post(
    "/{payroll_id}/attendance/lock",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def lock_attendance(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    period = await PayrollService(db).lock_attendance(payroll_id, tenant_id, actor_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/{payroll_id}/attendance/unlock",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def unlock_attendance(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    period = await PayrollService(db).unlock_attendance(payroll_id, tenant_id, actor_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/{payroll_id}/apply",
    response_model=ApplyResponse,
    responses=STATE_ERRORS,
)
async def apply_earnings_deductions(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> ApplyResponse:
    counts = await PayrollService(db).apply_earnings_deductions(payroll_id, tenant_id, actor_id)
    await db.commit()
    return ApplyResponse(payroll_period_id=payroll_id, **counts)


# ============================================================================
# Lifecycle transitions
# ============================================================================


@router.post(
    "/{payroll_id}/finalize",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def finalize_payroll(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    payload: FinalizeRequest | None = None,
) -> PayrollPeriodResponse:
    override = payload.override_pre_check if payload else False
    period = await PayrollService(db).finalize_payroll(payroll_id, tenant_id, actor_id, override)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/{payroll_id}/mark-paid",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def mark_paid(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    payload: MarkPaidRequest,
) -> PayrollPeriodResponse:
    period = await PayrollService(db).mark_paid(payroll_id, tenant_id, payload.payment_reference, actor_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/{payroll_id}/freeze",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def freeze_payroll(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
    payload: FreezeRequest | None = None,
) -> PayrollPeriodResponse:
    reason = payload.reason if payload else None
    period = await PayrollService(db).freeze(payroll_id, tenant_id, actor_id, reason)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


@router.post(
    "/{payroll_id}/unfreeze",
    response_model=PayrollPeriodResponse,
    responses=STATE_ERRORS,
)
async def unfreeze_payroll(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> PayrollPeriodResponse:
    period = await PayrollService(db).unfreeze(payroll_id, tenant_id, actor_id)
    await db.commit()
    return PayrollPeriodResponse.model_validate(period)


# ============================================================================
# Payslips
# ============================================================================


@router.post(
    "/{payroll_id}/distribute",
    response_model=DistributeResponse,
    responses=STATE_ERRORS,
)
async def distribute_payslips(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payroll_id: Annotated[UUID, Path()],
) -> DistributeResponse:
    count = await PayrollService(db).distribute_payslips(payroll_id, tenant_id, actor_id)
    await db.commit()
    return DistributeResponse(payroll_period_id=payroll_id, distributed_count=count)


@router.post(
    "/payslips/{payslip_id}/void",
    response_model=PayslipResponse,
    responses=STATE_ERRORS,
)
async def void_payslip(
    db: DbSession,
    tenant_id: TenantId,
    actor_id: ActorId,
    payslip_id: Annotated[UUID, Path()],
    payload: VoidPayslipRequest,
) -> PayslipResponse:
    payslip = await PayrollService(db).void_payslip(payslip_id, tenant_id, payload.reason, actor_id)
    await db.commit()
    return PayslipResponse.model_validate(payslip)
