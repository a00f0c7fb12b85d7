"""Pydantic schemas for API request/response models.

Money fields are Decimal and serialize as decimal strings.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field


# ============================================================================
# Payroll period schemas
# ============================================================================


class PayrollInitiate(BaseModel):
    """Schema for initiating a payroll period."""

    month: int = Field(ge=1, le=12)
    year: int = Field(ge=2000, le=2100)


class PayrollPeriodResponse(BaseModel):
    """Schema for payroll period response."""

    model_config = ConfigDict(from_attributes=True)

    payroll_period_id: UUID
    tenant_id: UUID
    month: int
    year: int
    status: str
    frozen_from_status: str | None = None
    attendance_locked: bool
    pre_check_completed: bool
    earnings_applied: bool
    deductions_applied: bool
    payslips_generated: bool
    payslips_distributed: bool
    employee_count: int
    total_gross: Decimal
    total_deductions: Decimal
    total_net: Decimal
    total_employer_contributions: Decimal
    processed_by: UUID | None = None
    processed_at: datetime | None = None
    finalized_by: UUID | None = None
    finalized_at: datetime | None = None
    paid_at: datetime | None = None
    payment_reference: str | None = None
    created_at: datetime


class PayrollPeriodListResponse(BaseModel):
    """Schema for listing payroll periods."""

    items: list[PayrollPeriodResponse]
    total: int


class FinalizeRequest(BaseModel):
    """Schema for finalizing a payroll period."""

    override_pre_check: bool = False


class MarkPaidRequest(BaseModel):
    """Schema for recording payroll disbursement."""

    payment_reference: str | None = None


class FreezeRequest(BaseModel):
    """Schema for freezing a payroll period."""

    reason: str | None = None


class ApplyResponse(BaseModel):
    """Schema for the apply earnings/deductions stage."""

    payroll_period_id: UUID
    supplementary_items: int
    due_emis: int


class BatchResultResponse(BaseModel):
    """Schema for a payroll generation run."""

    payroll_period_id: UUID
    status: str
    created_count: int
    skipped_count: int
    errors: list[str]
    warnings: list[str]
    cancelled: bool = False


class DistributeResponse(BaseModel):
    """Schema for payslip distribution."""

    payroll_period_id: UUID
    distributed_count: int


# ============================================================================
# Payslip schemas
# ============================================================================


class PayslipResponse(BaseModel):
    """Schema for payslip response."""

    model_config = ConfigDict(from_attributes=True)

    payslip_id: UUID
    payroll_period_id: UUID
    employee_id: UUID
    month: int
    year: int
    earnings: dict[str, Decimal]
    deductions: dict[str, Decimal]
    employer_contributions: dict[str, Decimal]
    statutory_details: dict[str, Any]
    gross_salary: Decimal
    total_deductions: Decimal
    net_salary: Decimal
    total_employer_contributions: Decimal
    days_in_period: int
    payable_days: Decimal
    days_present: int
    days_absent: int
    half_days: int
    pro_ration_factor: Decimal
    is_negative_net: bool
    is_voided: bool
    void_reason: str | None = None
    is_distributed: bool
    calculation_hash: str
    engine_version: str


class PayslipListResponse(BaseModel):
    """Schema for listing payslips."""

    items: list[PayslipResponse]
    total: int


class VoidPayslipRequest(BaseModel):
    """Schema for voiding a payslip."""

    reason: str = Field(min_length=1)


# ============================================================================
# Pre-check schemas
# ============================================================================


class PreCheckResponse(BaseModel):
    """Schema for a payroll pre-check."""

    model_config = ConfigDict(from_attributes=True)

    pre_check_id: UUID
    payroll_period_id: UUID
    employee_id: UUID | None = None
    check_type: str
    check_status: str
    message: str
    details: dict[str, Any] | None = None
    reference_id: UUID | None = None
    resolved_by: UUID | None = None
    resolved_at: datetime | None = None
    remarks: str | None = None


class PreCheckListResponse(BaseModel):
    """Schema for listing pre-checks."""

    items: list[PreCheckResponse]
    total: int
    pre_check_completed: bool


class PreCheckResolveRequest(BaseModel):
    """Schema for resolving or ignoring a pre-check."""

    action: Literal["resolve", "ignore"]
    remarks: str | None = None


# ============================================================================
# Gratuity schemas
# ============================================================================


class GratuityResponse(BaseModel):
    """Schema for a gratuity calculation."""

    employee_id: UUID | None = None
    employee_code: str | None = None
    eligible: bool
    years_of_service: Decimal
    completed_years: int
    last_drawn_salary: Decimal
    gratuity_per_year: Decimal
    gratuity_amount: Decimal
    max_limit_applied: bool
    reason: str | None = None
    warning: str | None = None
    calculation: dict[str, Any]


class GratuityBulkResponse(BaseModel):
    """Schema for a bulk gratuity calculation."""

    as_of: date
    items: list[GratuityResponse]
    eligible_count: int
    total_amount: Decimal


# ============================================================================
# Settlement schemas
# ============================================================================


class SettlementCreate(BaseModel):
    """Schema for creating a full and final settlement."""

    employee_id: UUID
    settlement_date: date
    last_working_date: date
    notice_period_days: int = Field(default=0, ge=0)
    notice_period_amount: Decimal | None = Field(default=None, ge=0)
    bonus_amount: Decimal = Field(default=Decimal("0"), ge=0)
    other_payments: Decimal = Field(default=Decimal("0"), ge=0)
    unpaid_leave_days: Decimal = Field(default=Decimal("0"), ge=0)
    unpaid_leave_deduction: Decimal | None = Field(default=None, ge=0)
    other_deductions: Decimal = Field(default=Decimal("0"), ge=0)
    remarks: str | None = None


class SettlementUpdate(BaseModel):
    """Schema for editing settlement line items. Only set fields change."""

    settlement_date: date | None = None
    notice_period_days: int | None = Field(default=None, ge=0)
    notice_period_amount: Decimal | None = Field(default=None, ge=0)
    bonus_amount: Decimal | None = Field(default=None, ge=0)
    other_payments: Decimal | None = Field(default=None, ge=0)
    unpaid_leave_days: Decimal | None = Field(default=None, ge=0)
    unpaid_leave_deduction: Decimal | None = Field(default=None, ge=0)
    other_deductions: Decimal | None = Field(default=None, ge=0)
    remarks: str | None = None


class SettlementPayRequest(BaseModel):
    """Schema for recording settlement payment."""

    payment_reference: str | None = None


class SettlementCancelRequest(BaseModel):
    """Schema for cancelling a settlement."""

    reason: str | None = None


class SettlementResponse(BaseModel):
    """Schema for settlement response."""

    model_config = ConfigDict(from_attributes=True)

    settlement_id: UUID
    tenant_id: UUID
    employee_id: UUID
    settlement_date: date
    last_working_date: date
    status: str
    last_drawn_salary: Decimal
    notice_period_days: int
    notice_period_amount: Decimal
    earned_leave_days: Decimal
    earned_leave_amount: Decimal
    gratuity_amount: Decimal
    gratuity_details: dict[str, Any] | None = None
    bonus_amount: Decimal
    other_payments: Decimal
    unpaid_leave_days: Decimal
    unpaid_leave_deduction: Decimal
    outstanding_loans: Decimal
    outstanding_advances: Decimal
    other_deductions: Decimal
    pending_reimbursements: Decimal
    gross_amount: Decimal
    total_deductions: Decimal
    net_amount: Decimal
    remarks: str | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    paid_at: datetime | None = None
    payment_reference: str | None = None


class SettlementListResponse(BaseModel):
    """Schema for listing settlements."""

    items: list[SettlementResponse]
    total: int


# ============================================================================
# Report schemas
# ============================================================================


class ReportResponse(BaseModel):
    """Schema for a statutory or reconciliation report."""

    report_type: str
    month: int
    year: int
    payroll_period_id: UUID
    totals: dict[str, Any]
    rows: list[dict[str, Any]]
    excluded: list[dict[str, Any]] = []
    errors: list[str] = []


# ============================================================================
# Error schemas
# ============================================================================


class ErrorResponse(BaseModel):
    """Schema for error response."""

    detail: str
    code: str | None = None
