"""Tests for statutory and reconciliation reports."""

from decimal import Decimal
from uuid import uuid4

import pytest

from statutory_payroll.errors import ReportNotAvailableError
from statutory_payroll.services.payroll_service import PayrollService
from statutory_payroll.services.report_service import ReportResult, ReportService

from .conftest import mark_month


async def _run_month(session, tenant_id, actor_id, month, year, finalize=True):
    service = PayrollService(session)
    period = await service.initiate_payroll(tenant_id, month, year, actor_id)
    await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
    await session.commit()
    await service.generate_payroll(tenant_id, month, year, actor_id)
    if finalize:
        await service.finalize_payroll(period.payroll_period_id, tenant_id, actor_id, override_pre_check=True)
        await session.commit()
    return period


class TestStatutoryReports:
    """Test per-levy reports for a finalized May 2025."""

    async def test_pf_report(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).pf_report(tenant_id, 5, 2025)

        assert [row["employee_code"] for row in report.rows] == ["E001", "E002"]
        first = report.rows[0]
        assert first["uan"] == "100200300400"
        assert first["pf_wages"] == Decimal("15000")
        assert first["employee_contribution"] == Decimal("1800.00")
        assert first["employer_pension"] == Decimal("1249.50")
        assert report.totals["employee_count"] == 2
        assert report.totals["employee_contribution"] == Decimal("3000.00")
        assert report.totals["total_contribution"] == Decimal("6000.00")

    async def test_esi_report(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).esi_report(tenant_id, 5, 2025)

        assert len(report.rows) == 1
        row = report.rows[0]
        assert row["employee_code"] == "E002"
        assert row["esi_number"] == "3100123456"
        assert row["employee_contribution"] == Decimal("120.00")
        assert row["employer_contribution"] == Decimal("520.00")
        assert report.totals["total_contribution"] == Decimal("640.00")

    async def test_pt_report(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).pt_report(tenant_id, 5, 2025)

        assert [row["employee_code"] for row in report.rows] == ["E001"]
        assert report.totals["professional_tax"] == Decimal("200.00")
        assert report.totals["by_state"] == {"MH": Decimal("200.00")}

    async def test_empty_levies(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)
        service = ReportService(session)

        lwf = await service.lwf_report(tenant_id, 5, 2025)
        tds = await service.tds_report(tenant_id, 5, 2025)

        assert lwf.rows == []
        assert tds.rows == []
        assert tds.totals["tds"] == 0

    async def test_salary_register(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).salary_register(tenant_id, 5, 2025)

        assert len(report.rows) == 2
        assert report.rows[0]["earnings"]["basic"] == Decimal("20000.00")
        assert report.totals["gross_salary"] == Decimal("46000.00")
        assert report.totals["net_salary"] == Decimal("42680.00")
        assert report.totals["employer_contributions"] == Decimal("3520.00")

    async def test_bank_transfer_lists_exclusions(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).bank_transfer_report(tenant_id, 5, 2025)

        assert report.rows == [
            {
                "employee_code": "E001",
                "employee_name": "Arjun Mehta",
                "bank_name": "HDFC Bank",
                "account_number": "50100012345678",
                "ifsc": "HDFC0000123",
                "amount": Decimal("28000.00"),
            }
        ]
        assert report.excluded == [{"employee_code": "E002", "reason": "Missing bank account or IFSC"}]
        assert report.totals["excluded_count"] == 1

    async def test_frozen_finalized_period_is_reportable(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        period = await _run_month(session, tenant_id, actor_id, 5, 2025)
        await PayrollService(session).freeze(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()

        report = await ReportService(session).generate("pf", tenant_id, 5, 2025)

        assert report.totals["employee_count"] == 2


class TestReportAvailability:
    """Test which periods can be reported on."""

    async def test_missing_period(self, session, tenant):
        with pytest.raises(ReportNotAvailableError, match="No finalized payroll found for 5/2025"):
            await ReportService(session).pf_report(tenant.tenant_id, 5, 2025)

    async def test_processing_period(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025, finalize=False)

        with pytest.raises(ReportNotAvailableError, match="current status: processing"):
            await ReportService(session).salary_register(tenant_id, 5, 2025)

    async def test_unknown_report_type(self, session, tenant):
        with pytest.raises(ValueError):
            await ReportService(session).generate("form-16", tenant.tenant_id, 5, 2025)


class TestReconciliation:
    """Test month-on-month variance."""

    async def test_first_period_has_zero_baseline(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).reconciliation_report(tenant_id, 5, 2025)

        assert [row["status"] for row in report.rows] == ["new", "new"]
        assert all(row["previous_gross"] == 0 for row in report.rows)
        assert report.totals["comparisons"] == []
        assert report.totals["current"]["gross"] == Decimal("46000.00")

    async def test_variance_against_prior_period(self, session, employees, actor_id):
        tenant_id = employees["E001"].tenant_id
        await mark_month(session, employees["E001"], 4, 2025)
        await mark_month(session, employees["E002"], 4, 2025, overrides={14: "absent", 15: "absent"})
        await session.commit()
        await _run_month(session, tenant_id, actor_id, 4, 2025)

        for code in ("E001", "E002"):
            await mark_month(session, employees[code], 5, 2025)
        await session.commit()
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).reconciliation_report(tenant_id, 5, 2025)

        rows = {row["employee_code"]: row for row in report.rows}
        assert rows["E001"]["gross_variance"] == 0
        assert rows["E001"]["status"] == "continuing"
        assert rows["E002"]["previous_gross"] == Decimal("14933.33")
        assert rows["E002"]["gross_variance"] == Decimal("1066.67")

        [comparison] = report.totals["comparisons"]
        assert comparison["period"] == "4/2025"
        assert comparison["gross_variance"] == Decimal("1066.67")
        assert comparison["gross_variance_percent"] == Decimal("2.37")
        assert comparison["headcount_variance"] == 0


class TestReportOutput:
    """Test serialized report output."""

    async def test_csv_skips_nested_columns(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        await _run_month(session, tenant_id, actor_id, 5, 2025)

        report = await ReportService(session).salary_register(tenant_id, 5, 2025)
        lines = report.to_csv().splitlines()

        assert lines[0] == (
            "employee_code,employee_name,days_in_period,payable_days,gross_salary,"
            "total_deductions,net_salary,employer_contributions,is_negative_net"
        )
        assert lines[1].startswith("E001,Arjun Mehta,31,")
        assert len(lines) == 3

    async def test_dict_is_json_safe(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        period = await _run_month(session, tenant_id, actor_id, 5, 2025)

        data = (await ReportService(session).pt_report(tenant_id, 5, 2025)).to_dict()

        assert data["payroll_period_id"] == str(period.payroll_period_id)
        assert data["totals"]["professional_tax"] == "200.00"
        assert data["rows"][0]["gross_salary"] == "30000.00"

    def test_empty_csv(self):
        assert ReportResult("pf", 5, 2025, uuid4()).to_csv() == ""
