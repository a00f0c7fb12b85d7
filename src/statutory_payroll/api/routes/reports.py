"""Statutory report API endpoints."""

from typing import Annotated, Literal

from fastapi import APIRouter, Path, Query
from fastapi.responses import PlainTextResponse

from statutory_payroll.api.dependencies import DbSession, TenantId
from statutory_payroll.api.schemas import ErrorResponse, ReportResponse
from statutory_payroll.services.report_service import ReportService

router = APIRouter(prefix="/reports", tags=["reports"])

ReportType = Literal[
    "pf",
    "esi",
    "tds",
    "pt",
    "lwf",
    "salary-register",
    "bank-transfer",
    "reconciliation",
]


@router.get(
    "/{report_type}",
    response_model=ReportResponse,
    responses={409: {"model": ErrorResponse}},
)
async def get_report(
    db: DbSession,
    tenant_id: TenantId,
    report_type: Annotated[ReportType, Path()],
    month: Annotated[int, Query(ge=1, le=12)],
    year: Annotated[int, Query(ge=2000, le=2100)],
    format: Annotated[Literal["json", "csv"], Query()] = "json",
):
    """Build a report for a finalized period; 409 if it is not finalized."""
    report = await ReportService(db).generate(report_type, tenant_id, month, year)
    if format == "csv":
        return PlainTextResponse(
            report.to_csv(),
            media_type="text/csv",
            headers={
                "Content-Disposition": f'attachment; filename="{report_type}-{year}-{month:02d}.csv"'
            },
        )
    return ReportResponse(**report.to_dict())
