"""Tests for full and final settlements."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest
import pytest_asyncio
from sqlalchemy import select

from statutory_payroll.errors import ImmutableRecordError, InvalidTransitionError, NotFoundError
from statutory_payroll.models import (
    AuditEvent,
    Employee,
    LeaveBalance,
    LeaveType,
    Loan,
    Reimbursement,
    SalaryStructure,
)
from statutory_payroll.services.settlement_service import SettlementService

EXIT = date(2025, 1, 1)


@pytest_asyncio.fixture
async def leaver(session, statutory_setup) -> Employee:
    """Five years of service, a loan, an advance and 10 days of PL."""
    tenant_id = statutory_setup.tenant_id
    employee = Employee(
        tenant_id=tenant_id,
        employee_code="E020",
        first_name="Kiran",
        last_name="Rao",
        gender="male",
        state="MH",
        date_of_joining=date(2020, 1, 1),
        exit_date=EXIT,
    )
    session.add(employee)
    await session.flush()

    leave_type = LeaveType(tenant_id=tenant_id, code="PL", name="Privilege Leave", is_encashable=True)
    session.add(leave_type)
    await session.flush()

    session.add_all(
        [
            SalaryStructure(
                employee_id=employee.employee_id,
                effective_date=date(2020, 1, 1),
                basic=Decimal("26000"),
                hra=Decimal("10400"),
            ),
            Loan(
                employee_id=employee.employee_id,
                loan_type="loan",
                principal_amount=Decimal("12000"),
                tenure_months=12,
                emi_amount=Decimal("1000"),
                outstanding_amount=Decimal("5000"),
                status="active",
            ),
            Loan(
                employee_id=employee.employee_id,
                loan_type="advance",
                principal_amount=Decimal("1000"),
                tenure_months=1,
                emi_amount=Decimal("1000"),
                outstanding_amount=Decimal("1000"),
                status="approved",
            ),
            LeaveBalance(
                employee_id=employee.employee_id,
                leave_type_id=leave_type.leave_type_id,
                year=2025,
                allocated=Decimal("10"),
                balance=Decimal("10"),
            ),
            Reimbursement(
                employee_id=employee.employee_id,
                category="travel",
                amount=Decimal("2500"),
                claim_date=date(2024, 12, 20),
            ),
        ]
    )
    await session.flush()
    return employee


async def _create(session, employee, actor_id, **kwargs):
    return await SettlementService(session).create_settlement(
        employee.tenant_id,
        employee.employee_id,
        settlement_date=date(2025, 1, 15),
        last_working_date=EXIT,
        actor_user_id=actor_id,
        **kwargs,
    )


class TestCreateSettlement:
    """Test derived figures on creation."""

    async def test_derived_figures(self, session, leaver, actor_id):
        settlement = await _create(session, leaver, actor_id, notice_period_days=15)

        assert settlement.status == "draft"
        assert settlement.last_drawn_salary == Decimal("26000.00")
        assert settlement.notice_period_amount == Decimal("13000.00")
        assert settlement.earned_leave_days == Decimal("10")
        assert settlement.earned_leave_amount == Decimal("8666.67")
        assert settlement.gratuity_amount == Decimal("75000.00")
        assert settlement.gratuity_details["eligible"] is True
        assert settlement.outstanding_loans == Decimal("5000.00")
        assert settlement.outstanding_advances == Decimal("1000.00")
        assert settlement.gross_amount == Decimal("96666.67")
        assert settlement.total_deductions == Decimal("6000.00")
        assert settlement.net_amount == Decimal("90666.67")

    async def test_reimbursements_are_informational(self, session, leaver, actor_id):
        settlement = await _create(session, leaver, actor_id)

        assert settlement.pending_reimbursements == Decimal("2500.00")
        assert settlement.net_amount == settlement.gross_amount - settlement.total_deductions

    async def test_explicit_notice_amount_wins(self, session, leaver, actor_id):
        settlement = await _create(
            session, leaver, actor_id, notice_period_days=15, notice_period_amount=Decimal("12000")
        )

        assert settlement.notice_period_amount == Decimal("12000.00")

    async def test_second_create_returns_existing(self, session, leaver, actor_id):
        first = await _create(session, leaver, actor_id, notice_period_days=15)
        second = await _create(session, leaver, actor_id, notice_period_days=30)

        assert second.settlement_id == first.settlement_id
        assert second.notice_period_amount == Decimal("13000.00")
        await session.flush()

        created = (
            await session.execute(
                select(AuditEvent).where(
                    AuditEvent.entity_id == first.settlement_id,
                    AuditEvent.action == "created",
                )
            )
        ).scalars().all()
        assert len(created) == 1

    async def test_exit_before_joining_is_rejected(self, session, leaver, actor_id):
        with pytest.raises(ValueError):
            await SettlementService(session).create_settlement(
                leaver.tenant_id,
                leaver.employee_id,
                settlement_date=date(2019, 12, 31),
                last_working_date=date(2019, 12, 1),
            )

    async def test_short_tenure_has_no_gratuity(self, session, employees, actor_id):
        employee = employees["E001"]
        settlement = await SettlementService(session).create_settlement(
            employee.tenant_id,
            employee.employee_id,
            settlement_date=date(2025, 6, 15),
            last_working_date=date(2025, 5, 31),
            actor_user_id=actor_id,
        )

        assert settlement.gratuity_amount == 0
        assert settlement.gratuity_details["eligible"] is False
        assert settlement.net_amount == 0


class TestUpdateSettlement:
    """Test manual line items and recalculation."""

    async def test_update_recomputes_totals(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id, notice_period_days=15)

        settlement = await service.update_settlement(
            settlement.settlement_id,
            leaver.tenant_id,
            {"bonus_amount": "5000", "unpaid_leave_days": Decimal("2")},
            actor_id,
        )

        assert settlement.bonus_amount == Decimal("5000.00")
        assert settlement.unpaid_leave_deduction == Decimal("1733.33")
        assert settlement.gross_amount == Decimal("101666.67")
        assert settlement.total_deductions == Decimal("7733.33")
        assert settlement.net_amount == Decimal("93933.34")

    async def test_derived_fields_cannot_be_edited(self, session, leaver, actor_id):
        settlement = await _create(session, leaver, actor_id)

        with pytest.raises(ValueError, match="gratuity_amount"):
            await SettlementService(session).update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"gratuity_amount": "1"}, actor_id
            )

    async def test_null_line_item_is_rejected(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id, notice_period_days=15)

        with pytest.raises(ValueError, match="bonus_amount cannot be null"):
            await service.update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"bonus_amount": None}, actor_id
            )
        with pytest.raises(ValueError, match="unpaid_leave_days cannot be null"):
            await service.update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"unpaid_leave_days": None}, actor_id
            )

        assert settlement.bonus_amount == 0
        assert settlement.net_amount == Decimal("90666.67")

    async def test_cleared_amount_follows_day_count(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(
            session, leaver, actor_id, notice_period_days=15, notice_period_amount=Decimal("12000")
        )

        settlement = await service.update_settlement(
            settlement.settlement_id,
            leaver.tenant_id,
            {"notice_period_amount": None, "remarks": None},
            actor_id,
        )

        assert settlement.notice_period_amount == Decimal("13000.00")
        assert settlement.remarks is None

    async def test_negative_line_items_are_rejected(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id, notice_period_days=15)

        with pytest.raises(ValueError, match="bonus_amount must not be negative"):
            await service.update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"bonus_amount": "-5000"}, actor_id
            )
        with pytest.raises(ValueError, match="unpaid_leave_days must not be negative"):
            await service.update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"unpaid_leave_days": Decimal("-2")}, actor_id
            )
        with pytest.raises(ValueError, match="other_deductions is not a number"):
            await service.update_settlement(
                settlement.settlement_id, leaver.tenant_id, {"other_deductions": "lots"}, actor_id
            )

        assert settlement.gross_amount == Decimal("96666.67")
        assert settlement.net_amount == Decimal("90666.67")

    async def test_negative_amount_on_create_is_rejected(self, session, leaver, actor_id):
        with pytest.raises(ValueError, match="bonus_amount must not be negative"):
            await _create(session, leaver, actor_id, bonus_amount=Decimal("-1"))

    async def test_recalculate_picks_up_new_advance(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id)
        session.add(
            Loan(
                employee_id=leaver.employee_id,
                loan_type="advance",
                principal_amount=Decimal("500"),
                tenure_months=1,
                emi_amount=Decimal("500"),
                outstanding_amount=Decimal("500"),
                status="active",
            )
        )
        await session.flush()

        settlement = await service.recalculate_settlement(settlement.settlement_id, leaver.tenant_id, actor_id)

        assert settlement.outstanding_advances == Decimal("1500.00")
        assert settlement.total_deductions == Decimal("6500.00")


class TestSettlementLifecycle:
    """Test approval, payment and cancellation."""

    async def test_submit_approve_pay(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id)
        tenant_id = leaver.tenant_id

        settlement = await service.submit_settlement(settlement.settlement_id, tenant_id, actor_id)
        assert settlement.status == "pending"

        settlement = await service.approve_settlement(settlement.settlement_id, tenant_id, actor_id)
        assert settlement.status == "approved"
        assert settlement.approved_by == actor_id

        with pytest.raises(ImmutableRecordError):
            await service.update_settlement(settlement.settlement_id, tenant_id, {"bonus_amount": "1"}, actor_id)

        settlement = await service.mark_settlement_paid(settlement.settlement_id, tenant_id, "NEFT-8841", actor_id)
        assert settlement.status == "paid"
        assert settlement.payment_reference == "NEFT-8841"
        assert settlement.paid_at is not None

        with pytest.raises(InvalidTransitionError, match="settlement is paid"):
            await service.cancel_settlement(settlement.settlement_id, tenant_id, "duplicate", actor_id)

    async def test_cannot_pay_before_approval(self, session, leaver, actor_id):
        settlement = await _create(session, leaver, actor_id)

        with pytest.raises(InvalidTransitionError):
            await SettlementService(session).mark_settlement_paid(
                settlement.settlement_id, leaver.tenant_id, "NEFT-1", actor_id
            )

    async def test_cancel_records_reason(self, session, leaver, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id)

        settlement = await service.cancel_settlement(
            settlement.settlement_id, leaver.tenant_id, "resignation withdrawn", actor_id
        )

        assert settlement.status == "cancelled"
        assert settlement.remarks == "resignation withdrawn"
        with pytest.raises(InvalidTransitionError, match="settlement is cancelled"):
            await service.approve_settlement(settlement.settlement_id, leaver.tenant_id, actor_id)

    async def test_list_by_status(self, session, leaver, employees, actor_id):
        service = SettlementService(session)
        settlement = await _create(session, leaver, actor_id)
        await service.create_settlement(
            leaver.tenant_id,
            employees["E001"].employee_id,
            settlement_date=date(2025, 6, 15),
            last_working_date=date(2025, 5, 31),
        )
        await service.submit_settlement(settlement.settlement_id, leaver.tenant_id, actor_id)
        await session.flush()

        pending = await service.list_settlements(leaver.tenant_id, status="pending")
        everything = await service.list_settlements(leaver.tenant_id)

        assert [s.settlement_id for s in pending] == [settlement.settlement_id]
        assert len(everything) == 2
        assert everything[0].last_working_date == date(2025, 5, 31)

    async def test_tenant_scoping(self, session, leaver, actor_id):
        settlement = await _create(session, leaver, actor_id)

        with pytest.raises(NotFoundError):
            await SettlementService(session).get_settlement(settlement.settlement_id, uuid4())
