"""Gratuity API endpoints."""

from datetime import date
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Path, Query

from statutory_payroll.api.dependencies import DbSession, TenantId
from statutory_payroll.api.schemas import ErrorResponse, GratuityBulkResponse, GratuityResponse
from statutory_payroll.calculators.gratuity import GratuityCalculator, GratuityResult
from statutory_payroll.calculators.types import ZERO

router = APIRouter(tags=["gratuity"])


def _to_response(result: GratuityResult) -> GratuityResponse:
    return GratuityResponse(
        employee_id=result.employee_id,
        employee_code=result.employee_code,
        eligible=result.eligible,
        years_of_service=result.years_of_service,
        completed_years=result.completed_years,
        last_drawn_salary=result.last_drawn_salary,
        gratuity_per_year=result.gratuity_per_year,
        gratuity_amount=result.gratuity_amount,
        max_limit_applied=result.max_limit_applied,
        reason=result.reason,
        warning=result.warning,
        calculation=result.calculation,
    )


@router.get(
    "/employees/{employee_id}/gratuity",
    response_model=GratuityResponse,
    responses={404: {"model": ErrorResponse}},
)
async def calculate_gratuity(
    db: DbSession,
    tenant_id: TenantId,
    employee_id: Annotated[UUID, Path()],
    exit_date: Annotated[date, Query()],
) -> GratuityResponse:
    """Gratuity for one employee as of an exit date."""
    result = await GratuityCalculator(db).calculate(employee_id, exit_date, tenant_id)
    return _to_response(result)


@router.get("/gratuity/bulk", response_model=GratuityBulkResponse)
async def calculate_bulk_gratuity(
    db: DbSession,
    tenant_id: TenantId,
    as_of: Annotated[date, Query()],
) -> GratuityBulkResponse:
    """Gratuity liability for every active employee."""
    results = await GratuityCalculator(db).calculate_bulk(tenant_id, as_of)
    return GratuityBulkResponse(
        as_of=as_of,
        items=[_to_response(r) for r in results],
        eligible_count=sum(1 for r in results if r.eligible),
        total_amount=sum((r.gratuity_amount for r in results), ZERO),
    )
