"""Statutory and reconciliation reports over finalized payroll periods."""

from __future__ import annotations

import csv
import io
import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.gratuity import finalized_period_clause
from statutory_payroll.calculators.types import ZERO, Deductions, Earnings, EmployerContributions
from statutory_payroll.errors import DataError, ReportNotAvailableError
from statutory_payroll.models import Employee, PayrollPeriod, Payslip
from statutory_payroll.services.state_machine import PayrollStateMachine

logger = logging.getLogger(__name__)

HUNDRED = Decimal("100")


@dataclass
class PayslipLine:
    """A payslip with its parsed components and owning employee."""

    payslip: Payslip
    employee: Employee
    earnings: Earnings
    deductions: Deductions
    employer: EmployerContributions


@dataclass
class ReportResult:
    """One report: a row per employee plus period totals."""

    report_type: str
    month: int
    year: int
    payroll_period_id: UUID
    totals: dict[str, Any] = field(default_factory=dict)
    rows: list[dict[str, Any]] = field(default_factory=list)
    excluded: list[dict[str, Any]] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return _jsonable(
            {
                "report_type": self.report_type,
                "month": self.month,
                "year": self.year,
                "payroll_period_id": self.payroll_period_id,
                "totals": self.totals,
                "rows": self.rows,
                "excluded": self.excluded,
                "errors": self.errors,
            }
        )

    def to_csv(self) -> str:
        """Rows as CSV, columns in first-row order; nested values are skipped."""
        output = io.StringIO()
        if not self.rows:
            return ""
        columns = [k for k, v in self.rows[0].items() if not isinstance(v, (dict, list))]
        writer = csv.writer(output)
        writer.writerow(columns)
        for row in self.rows:
            writer.writerow([_jsonable(row.get(column)) for column in columns])
        return output.getvalue()


class ReportService:
    """Builds read-only reports from a period's non-voided payslips.

    A period is reportable once finalized or paid, including when it was
    frozen after reaching one of those. Anything else raises
    ReportNotAvailableError. Payslips whose stored components cannot be
    read are left out and listed in the report's errors.
    """

    REPORT_TYPES = (
        "pf",
        "esi",
        "tds",
        "pt",
        "lwf",
        "salary-register",
        "bank-transfer",
        "reconciliation",
    )

    def __init__(self, session: AsyncSession):
        self.session = session

    async def generate(self, report_type: str, tenant_id: UUID, month: int, year: int) -> ReportResult:
        """Dispatch by report type name."""
        builders = {
            "pf": self.pf_report,
            "esi": self.esi_report,
            "tds": self.tds_report,
            "pt": self.pt_report,
            "lwf": self.lwf_report,
            "salary-register": self.salary_register,
            "bank-transfer": self.bank_transfer_report,
            "reconciliation": self.reconciliation_report,
        }
        if report_type not in builders:
            raise ValueError(f"Unknown report type '{report_type}'")
        return await builders[report_type](tenant_id, month, year)

    async def pf_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("pf", period, errors)
        for line in lines:
            if line.deductions.pf <= 0:
                continue
            pf_details = line.payslip.statutory_details.get("pf", {})
            employer_total = line.employer.pf
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "uan": line.employee.uan,
                    "pf_wages": Decimal(pf_details.get("wages", "0")),
                    "employee_contribution": line.deductions.pf,
                    "employer_provident": line.employer.pf_provident,
                    "employer_pension": line.employer.pf_pension,
                    "employer_contribution": employer_total,
                    "total_contribution": line.deductions.pf + employer_total,
                }
            )
        report.totals = self._sum_totals(
            report.rows,
            ["pf_wages", "employee_contribution", "employer_provident", "employer_pension",
             "employer_contribution", "total_contribution"],
        )
        return report

    async def esi_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("esi", period, errors)
        for line in lines:
            if line.deductions.esi <= 0 and line.employer.esi <= 0:
                continue
            esi_details = line.payslip.statutory_details.get("esi", {})
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "esi_number": line.employee.esi_number,
                    "esi_wages": Decimal(esi_details.get("base", str(line.payslip.gross_salary))),
                    "payable_days": line.payslip.payable_days,
                    "employee_contribution": line.deductions.esi,
                    "employer_contribution": line.employer.esi,
                    "total_contribution": line.deductions.esi + line.employer.esi,
                }
            )
        report.totals = self._sum_totals(
            report.rows,
            ["esi_wages", "employee_contribution", "employer_contribution", "total_contribution"],
        )
        return report

    async def tds_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("tds", period, errors)
        for line in lines:
            if line.deductions.tds <= 0:
                continue
            tds_details = line.payslip.statutory_details.get("tds", {})
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "pan": line.employee.pan,
                    "gross_salary": line.payslip.gross_salary,
                    "tax_regime": tds_details.get("regime"),
                    "annual_taxable_income": Decimal(tds_details.get("annual_taxable_income", "0")),
                    "annual_tax": Decimal(tds_details.get("annual_tax", "0")),
                    "tds": line.deductions.tds,
                }
            )
        report.totals = self._sum_totals(report.rows, ["gross_salary", "tds"])
        return report

    async def pt_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("pt", period, errors)
        by_state: dict[str, Decimal] = {}
        for line in lines:
            if line.deductions.pt <= 0:
                continue
            state = line.payslip.statutory_details.get("pt", {}).get("state") or line.employee.state
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "state": state,
                    "gross_salary": line.payslip.gross_salary,
                    "professional_tax": line.deductions.pt,
                }
            )
            by_state[state] = by_state.get(state, ZERO) + line.deductions.pt
        report.totals = self._sum_totals(report.rows, ["gross_salary", "professional_tax"])
        report.totals["by_state"] = by_state
        return report

    async def lwf_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("lwf", period, errors)
        for line in lines:
            if line.deductions.lwf <= 0 and line.employer.lwf <= 0:
                continue
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "state": line.employee.state,
                    "employee_contribution": line.deductions.lwf,
                    "employer_contribution": line.employer.lwf,
                    "total_contribution": line.deductions.lwf + line.employer.lwf,
                }
            )
        report.totals = self._sum_totals(
            report.rows, ["employee_contribution", "employer_contribution", "total_contribution"]
        )
        return report

    async def salary_register(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("salary-register", period, errors)
        for line in lines:
            payslip = line.payslip
            report.rows.append(
                {
                    "employee_code": line.employee.employee_code,
                    "employee_name": line.employee.full_name,
                    "days_in_period": payslip.days_in_period,
                    "payable_days": payslip.payable_days,
                    "gross_salary": payslip.gross_salary,
                    "total_deductions": payslip.total_deductions,
                    "net_salary": payslip.net_salary,
                    "employer_contributions": payslip.total_employer_contributions,
                    "is_negative_net": payslip.is_negative_net,
                    "earnings": dict(line.earnings.items()),
                    "deductions": dict(line.deductions.items()),
                }
            )
        report.totals = self._sum_totals(
            report.rows,
            ["gross_salary", "total_deductions", "net_salary", "employer_contributions"],
        )
        return report

    async def bank_transfer_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("bank-transfer", period, errors)
        for line in lines:
            employee = line.employee
            net = line.payslip.net_salary
            if net <= 0:
                report.excluded.append(
                    {"employee_code": employee.employee_code, "reason": f"Net salary is {net}"}
                )
                continue
            if not employee.bank_account_number or not employee.bank_ifsc:
                report.excluded.append(
                    {"employee_code": employee.employee_code, "reason": "Missing bank account or IFSC"}
                )
                continue
            report.rows.append(
                {
                    "employee_code": employee.employee_code,
                    "employee_name": employee.full_name,
                    "bank_name": employee.bank_name,
                    "account_number": employee.bank_account_number,
                    "ifsc": employee.bank_ifsc,
                    "amount": net,
                }
            )
        report.totals = self._sum_totals(report.rows, ["amount"])
        report.totals["excluded_count"] = len(report.excluded)
        return report

    async def reconciliation_report(self, tenant_id: UUID, month: int, year: int) -> ReportResult:
        """Compare the period with the two prior finalized periods.

        Per-employee variance is against the immediately prior finalized
        period; an employee missing on either side counts as zero.
        """
        period, lines, errors = await self._load(tenant_id, month, year)
        report = self._new("reconciliation", period, errors)

        current = self._summary(period, lines)
        result = await self.session.execute(
            select(PayrollPeriod)
            .where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.year * 12 + PayrollPeriod.month < year * 12 + month,
                finalized_period_clause(),
            )
            .order_by(PayrollPeriod.year.desc(), PayrollPeriod.month.desc())
            .limit(2)
        )
        prior_periods = list(result.scalars().all())

        comparisons = []
        prior_by_code: dict[str, tuple[Decimal, Decimal]] = {}
        for index, prior in enumerate(prior_periods):
            prior_lines, prior_errors = await self._lines(prior)
            report.errors.extend(prior_errors)
            summary = self._summary(prior, prior_lines)
            comparisons.append(
                {
                    "period": summary["period"],
                    "gross": summary["gross"],
                    "net": summary["net"],
                    "headcount": summary["headcount"],
                    "gross_variance": current["gross"] - summary["gross"],
                    "gross_variance_percent": _percent(current["gross"] - summary["gross"], summary["gross"]),
                    "net_variance": current["net"] - summary["net"],
                    "net_variance_percent": _percent(current["net"] - summary["net"], summary["net"]),
                    "headcount_variance": current["headcount"] - summary["headcount"],
                }
            )
            if index == 0:
                prior_by_code = {
                    line.employee.employee_code: (line.payslip.gross_salary, line.payslip.net_salary)
                    for line in prior_lines
                }

        current_by_code = {
            line.employee.employee_code: (line.payslip.gross_salary, line.payslip.net_salary)
            for line in lines
        }
        for code in sorted(set(current_by_code) | set(prior_by_code)):
            gross, net = current_by_code.get(code, (ZERO, ZERO))
            prior_gross, prior_net = prior_by_code.get(code, (ZERO, ZERO))
            report.rows.append(
                {
                    "employee_code": code,
                    "current_gross": gross,
                    "previous_gross": prior_gross,
                    "gross_variance": gross - prior_gross,
                    "current_net": net,
                    "previous_net": prior_net,
                    "net_variance": net - prior_net,
                    "status": _movement(code in current_by_code, code in prior_by_code),
                }
            )

        report.totals = {"current": current, "comparisons": comparisons}
        return report

    # ===== Helpers =====

    async def _load(
        self,
        tenant_id: UUID,
        month: int,
        year: int,
    ) -> tuple[PayrollPeriod, list[PayslipLine], list[str]]:
        result = await self.session.execute(
            select(PayrollPeriod).where(
                PayrollPeriod.tenant_id == tenant_id,
                PayrollPeriod.month == month,
                PayrollPeriod.year == year,
            )
        )
        period = result.scalar_one_or_none()
        if period is None:
            raise ReportNotAvailableError(month, year)
        if not PayrollStateMachine.is_reportable(period):
            raise ReportNotAvailableError(month, year, period.status)

        lines, errors = await self._lines(period)
        return period, lines, errors

    async def _lines(self, period: PayrollPeriod) -> tuple[list[PayslipLine], list[str]]:
        result = await self.session.execute(
            select(Payslip, Employee)
            .join(Employee, Employee.employee_id == Payslip.employee_id)
            .where(
                Payslip.payroll_period_id == period.payroll_period_id,
                Payslip.is_voided.is_(False),
            )
            .order_by(Employee.employee_code)
        )
        lines: list[PayslipLine] = []
        errors: list[str] = []
        for payslip, employee in result.all():
            try:
                lines.append(
                    PayslipLine(
                        payslip=payslip,
                        employee=employee,
                        earnings=Earnings.from_json(payslip.earnings, payslip.payslip_id),
                        deductions=Deductions.from_json(payslip.deductions, payslip.payslip_id),
                        employer=EmployerContributions.from_json(
                            payslip.employer_contributions, payslip.payslip_id
                        ),
                    )
                )
            except DataError as exc:
                logger.warning("Skipping payslip for emp %s: %s", employee.employee_code, exc)
                errors.append(str(exc))
        return lines, errors

    @staticmethod
    def _new(report_type: str, period: PayrollPeriod, errors: list[str]) -> ReportResult:
        return ReportResult(
            report_type=report_type,
            month=period.month,
            year=period.year,
            payroll_period_id=period.payroll_period_id,
            errors=list(errors),
        )

    @staticmethod
    def _summary(period: PayrollPeriod, lines: list[PayslipLine]) -> dict[str, Any]:
        return {
            "period": period.label,
            "gross": sum((line.payslip.gross_salary for line in lines), ZERO),
            "net": sum((line.payslip.net_salary for line in lines), ZERO),
            "headcount": len(lines),
        }

    @staticmethod
    def _sum_totals(rows: list[dict[str, Any]], columns: list[str]) -> dict[str, Any]:
        totals: dict[str, Any] = {"employee_count": len(rows)}
        for column in columns:
            totals[column] = sum((row[column] for row in rows), ZERO)
        return totals


def _percent(delta: Decimal, base: Decimal) -> Decimal | None:
    if base == 0:
        return None
    return ComponentBuilder.round_money(delta * HUNDRED / base)


def _movement(in_current: bool, in_prior: bool) -> str:
    if in_current and in_prior:
        return "continuing"
    return "new" if in_current else "left"


def _jsonable(value: Any) -> Any:
    """Decimals and UUIDs as strings, recursively."""
    if isinstance(value, dict):
        return {key: _jsonable(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_jsonable(item) for item in value]
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    return value
