"""Tests for gratuity calculation."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio

from statutory_payroll.calculators.gratuity import GratuityCalculator, compute_gratuity
from statutory_payroll.calculators.rate_tables import GratuityRules
from statutory_payroll.errors import NotFoundError
from statutory_payroll.models import Employee, SalaryStructure
from statutory_payroll.services.payroll_service import PayrollService


class TestComputeGratuity:
    """Test the pure formula."""

    def test_five_years_is_eligible(self):
        result = compute_gratuity(date(2020, 1, 1), date(2025, 1, 1), Decimal("26000"))

        assert result.eligible is True
        assert result.completed_years == 5
        assert result.years_of_service == Decimal("5.00")
        assert result.gratuity_per_year == Decimal("15000.00")
        assert result.gratuity_amount == Decimal("75000.00")
        assert result.max_limit_applied is False

    def test_short_tenure_is_not_eligible(self):
        result = compute_gratuity(date(2021, 6, 1), date(2025, 5, 31), Decimal("20000"))

        assert result.eligible is False
        assert result.gratuity_amount == 0
        assert result.years_of_service == Decimal("3.99")
        assert "Minimum 5 years" in result.reason

    def test_partial_years_are_not_counted(self):
        result = compute_gratuity(date(2015, 1, 1), date(2024, 12, 1), Decimal("26000"))

        assert result.completed_years == 9
        assert result.gratuity_amount == Decimal("135000.00")

    def test_statutory_cap(self):
        result = compute_gratuity(date(2000, 1, 1), date(2025, 1, 1), Decimal("1000000"))

        assert result.max_limit_applied is True
        assert result.gratuity_amount == Decimal("2000000")

    def test_custom_cap(self):
        rules = GratuityRules(max_amount=Decimal("50000"))
        result = compute_gratuity(date(2020, 1, 1), date(2025, 1, 1), Decimal("26000"), rules)

        assert result.gratuity_amount == Decimal("50000")
        assert result.max_limit_applied is True

    def test_exit_before_joining(self):
        result = compute_gratuity(date(2025, 1, 1), date(2024, 1, 1), Decimal("26000"))

        assert result.eligible is False
        assert result.reason == "Exit date is before the date of joining"

    def test_missing_salary_warns(self):
        result = compute_gratuity(date(2018, 1, 1), date(2025, 1, 1), Decimal("0"))

        assert result.eligible is True
        assert result.gratuity_amount == 0
        assert "No last drawn salary" in result.warning

    def test_calculation_breakdown(self):
        result = compute_gratuity(date(2020, 1, 1), date(2025, 1, 1), Decimal("26000"))
        data = result.to_dict()

        assert data["gratuity_amount"] == "75000.00"
        assert data["calculation"]["multiplier"] == "15/26"
        assert data["calculation"]["completed_years"] == 5


class TestGratuityCalculator:
    """Test salary lookup and tenure from stored records."""

    @pytest_asyncio.fixture
    async def veteran(self, session, statutory_setup):
        employee = Employee(
            tenant_id=statutory_setup.tenant_id,
            employee_code="E010",
            first_name="Meera",
            last_name="Iyer",
            gender="female",
            state="MH",
            date_of_joining=date(2020, 1, 1),
        )
        session.add(employee)
        await session.flush()
        session.add(
            SalaryStructure(
                employee_id=employee.employee_id,
                effective_date=date(2020, 1, 1),
                basic=Decimal("24000"),
                dearness_allowance=Decimal("2000"),
                hra=Decimal("9000"),
            )
        )
        await session.flush()
        return employee

    async def test_salary_from_structure(self, session, veteran):
        result = await GratuityCalculator(session).calculate(
            veteran.employee_id, date(2025, 1, 1), veteran.tenant_id
        )

        assert result.eligible is True
        assert result.last_drawn_salary == Decimal("26000.00")
        assert result.salary_source == "salary_structure"
        assert result.gratuity_amount == Decimal("75000.00")
        assert result.employee_code == "E010"

    async def test_salary_from_finalized_payslip(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)
        await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()
        await service.generate_payroll(tenant_id, 5, 2025, actor_id)
        await service.finalize_payroll(period.payroll_period_id, tenant_id, actor_id, override_pre_check=True)
        await session.commit()

        result = await GratuityCalculator(session).calculate(
            may_attendance["E001"].employee_id, date(2026, 6, 2), tenant_id
        )

        assert result.salary_source == "payslip"
        assert result.last_drawn_salary == Decimal("20000.00")
        assert result.completed_years == 5
        assert result.gratuity_amount == Decimal("57692.31")

    async def test_unfinalized_payslips_are_ignored(self, session, may_attendance, actor_id):
        tenant_id = may_attendance["E001"].tenant_id
        service = PayrollService(session)
        period = await service.initiate_payroll(tenant_id, 5, 2025, actor_id)
        await service.lock_attendance(period.payroll_period_id, tenant_id, actor_id)
        await session.commit()
        await service.generate_payroll(tenant_id, 5, 2025, actor_id)

        salary, source = await GratuityCalculator(session).last_drawn_salary(
            may_attendance["E001"].employee_id, date(2025, 5, 31)
        )

        assert source == "salary_structure"
        assert salary == Decimal("20000.00")

    async def test_bulk_liability(self, session, employees, veteran):
        results = await GratuityCalculator(session).calculate_bulk(veteran.tenant_id, date(2025, 1, 1))

        assert [r.employee_code for r in results] == ["E001", "E002", "E003", "E010"]
        eligible = [r for r in results if r.eligible]
        assert [r.employee_code for r in eligible] == ["E010"]

    async def test_other_tenant_is_not_found(self, session, veteran):
        with pytest.raises(NotFoundError):
            await GratuityCalculator(session).calculate(veteran.employee_id, date(2025, 1, 1), uuid4())
