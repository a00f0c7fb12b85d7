"""Full and final settlement lifecycle."""

from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.settlement import (
    SettlementCalculator,
    SettlementFigures,
    apply_totals,
    days_to_amount,
)
from statutory_payroll.calculators.types import ZERO
from statutory_payroll.config import Settings, get_settings
from statutory_payroll.database import insert_if_absent
from statutory_payroll.errors import ImmutableRecordError, NotFoundError
from statutory_payroll.models import AuditEvent, Employee, FullAndFinalSettlement
from statutory_payroll.models.base import utcnow
from statutory_payroll.services.state_machine import SettlementStateMachine, SettlementStatus

logger = logging.getLogger(__name__)

# Manual line items a caller may edit while the settlement is open
EDITABLE_FIELDS = (
    "settlement_date",
    "notice_period_days",
    "notice_period_amount",
    "bonus_amount",
    "other_payments",
    "unpaid_leave_days",
    "unpaid_leave_deduction",
    "other_deductions",
    "remarks",
)

MONEY_FIELDS = {
    "notice_period_amount",
    "bonus_amount",
    "other_payments",
    "unpaid_leave_deduction",
    "other_deductions",
}

DAY_FIELDS = {"notice_period_days", "unpaid_leave_days"}

NULLABLE_FIELDS = {"remarks"}

# Amounts derived from a day count when not given explicitly
DAY_AMOUNT_FIELDS = {
    "notice_period_amount": "notice_period_days",
    "unpaid_leave_deduction": "unpaid_leave_days",
}


class SettlementService:
    """Service for full and final settlements at employee exit.

    Derived figures (loans, advances, leave encashment, gratuity) come from
    SettlementCalculator; notice pay, bonus and other items are supplied by
    the caller. Totals are recomputed on every change so that
    net_amount == gross_amount - total_deductions always holds.
    """

    def __init__(self, session: AsyncSession, settings: Settings | None = None):
        self.session = session
        self.settings = settings or get_settings()
        self.calculator = SettlementCalculator(session, self.settings)

    async def create_settlement(
        self,
        tenant_id: UUID,
        employee_id: UUID,
        settlement_date: date,
        last_working_date: date,
        actor_user_id: UUID | None = None,
        notice_period_days: int = 0,
        notice_period_amount: Decimal | None = None,
        bonus_amount: Decimal = ZERO,
        other_payments: Decimal = ZERO,
        unpaid_leave_days: Decimal = ZERO,
        unpaid_leave_deduction: Decimal | None = None,
        other_deductions: Decimal = ZERO,
        remarks: str | None = None,
    ) -> FullAndFinalSettlement:
        """Create a draft settlement, or return the existing one.

        Settlements are unique per (employee, last working date); a second
        call for the same pair returns the first settlement unchanged.
        """
        supplied = {
            "notice_period_days": notice_period_days,
            "notice_period_amount": notice_period_amount,
            "bonus_amount": bonus_amount,
            "other_payments": other_payments,
            "unpaid_leave_days": unpaid_leave_days,
            "unpaid_leave_deduction": unpaid_leave_deduction,
            "other_deductions": other_deductions,
        }
        for name, value in supplied.items():
            if value is not None or name not in DAY_AMOUNT_FIELDS:
                _clean_line_item(name, value)

        employee = await self._get_employee(employee_id, tenant_id)
        if last_working_date < employee.date_of_joining:
            raise ValueError("Last working date precedes the date of joining")

        figures = await self.calculator.gather(employee_id, tenant_id, last_working_date)
        salary = figures.last_drawn_salary

        settlement = FullAndFinalSettlement(
            tenant_id=tenant_id,
            employee_id=employee_id,
            settlement_date=settlement_date,
            last_working_date=last_working_date,
            status=SettlementStatus.DRAFT.value,
            notice_period_days=notice_period_days,
            notice_period_amount=_money(
                notice_period_amount
                if notice_period_amount is not None
                else days_to_amount(Decimal(notice_period_days), salary)
            ),
            bonus_amount=_money(bonus_amount),
            other_payments=_money(other_payments),
            unpaid_leave_days=Decimal(unpaid_leave_days),
            unpaid_leave_deduction=_money(
                unpaid_leave_deduction
                if unpaid_leave_deduction is not None
                else days_to_amount(Decimal(unpaid_leave_days), salary)
            ),
            other_deductions=_money(other_deductions),
            remarks=remarks,
            created_by=actor_user_id,
        )
        self._apply_figures(settlement, figures)
        apply_totals(settlement)

        settlement_id = uuid4()
        values = {
            column.key: getattr(settlement, column.key)
            for column in FullAndFinalSettlement.__table__.columns
            if column.key not in ("settlement_id", "created_at", "updated_at")
        }
        created = await insert_if_absent(
            self.session,
            FullAndFinalSettlement,
            {"settlement_id": settlement_id, **values},
            index_elements=["employee_id", "last_working_date"],
        )

        result = await self.session.execute(
            select(FullAndFinalSettlement)
            .where(
                FullAndFinalSettlement.employee_id == employee_id,
                FullAndFinalSettlement.last_working_date == last_working_date,
            )
            .execution_options(populate_existing=True)
        )
        settlement = result.scalar_one()

        if created:
            logger.info(
                "Created settlement %s for emp %s (net %s)",
                settlement.settlement_id,
                employee.employee_code,
                settlement.net_amount,
            )
            await self._record_audit(
                settlement,
                "created",
                actor_user_id,
                {"net_amount": str(settlement.net_amount), "warnings": figures.warnings},
            )
        else:
            logger.info("Settlement for emp %s on %s already exists", employee.employee_code, last_working_date)
        return settlement

    async def get_settlement(self, settlement_id: UUID, tenant_id: UUID) -> FullAndFinalSettlement:
        result = await self.session.execute(
            select(FullAndFinalSettlement).where(
                FullAndFinalSettlement.settlement_id == settlement_id,
                FullAndFinalSettlement.tenant_id == tenant_id,
            )
        )
        settlement = result.scalar_one_or_none()
        if settlement is None:
            raise NotFoundError("Settlement", settlement_id)
        return settlement

    async def list_settlements(
        self,
        tenant_id: UUID,
        status: str | None = None,
    ) -> list[FullAndFinalSettlement]:
        query = select(FullAndFinalSettlement).where(FullAndFinalSettlement.tenant_id == tenant_id)
        if status:
            query = query.where(FullAndFinalSettlement.status == status)
        result = await self.session.execute(query.order_by(FullAndFinalSettlement.last_working_date.desc()))
        return list(result.scalars().all())

    async def update_settlement(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        changes: dict[str, Any],
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        """Edit manual line items of a draft or pending settlement."""
        settlement = await self.get_settlement(settlement_id, tenant_id)
        self._ensure_editable(settlement)

        unknown = set(changes) - set(EDITABLE_FIELDS)
        if unknown:
            raise ValueError(f"Fields cannot be edited: {', '.join(sorted(unknown))}")

        cleaned: dict[str, Any] = {}
        for name, value in changes.items():
            if value is None and (name in NULLABLE_FIELDS or name in DAY_AMOUNT_FIELDS):
                cleaned[name] = None
            else:
                cleaned[name] = _clean_line_item(name, value)

        before = {name: _jsonable(getattr(settlement, name)) for name in cleaned}
        for name, value in cleaned.items():
            if value is None and name in DAY_AMOUNT_FIELDS:
                continue
            setattr(settlement, name, value)

        # An amount left unset (or cleared) follows its day count
        for amount_field, days_field in DAY_AMOUNT_FIELDS.items():
            if (days_field in cleaned or amount_field in cleaned) and cleaned.get(amount_field) is None:
                setattr(
                    settlement,
                    amount_field,
                    days_to_amount(Decimal(getattr(settlement, days_field)), settlement.last_drawn_salary),
                )

        apply_totals(settlement)
        await self._record_audit(
            settlement,
            "updated",
            actor_user_id,
            {name: _jsonable(getattr(settlement, name)) for name in changes},
            before=before,
        )
        return settlement

    async def recalculate_settlement(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        """Refresh loans, leave encashment and gratuity from current data."""
        settlement = await self.get_settlement(settlement_id, tenant_id)
        self._ensure_editable(settlement)

        figures = await self.calculator.gather(
            settlement.employee_id, tenant_id, settlement.last_working_date
        )
        before = {"net_amount": str(settlement.net_amount)}
        self._apply_figures(settlement, figures)
        apply_totals(settlement)
        await self._record_audit(
            settlement,
            "recalculated",
            actor_user_id,
            {"net_amount": str(settlement.net_amount), "warnings": figures.warnings},
            before=before,
        )
        return settlement

    async def submit_settlement(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        settlement = await self.get_settlement(settlement_id, tenant_id)
        return await self._transition(settlement, SettlementStatus.PENDING, actor_user_id)

    async def approve_settlement(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        settlement = await self.get_settlement(settlement_id, tenant_id)
        await self._transition(settlement, SettlementStatus.APPROVED, actor_user_id)
        settlement.approved_by = actor_user_id
        settlement.approved_at = utcnow()
        return settlement

    async def mark_settlement_paid(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        payment_reference: str | None = None,
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        settlement = await self.get_settlement(settlement_id, tenant_id)
        await self._transition(
            settlement,
            SettlementStatus.PAID,
            actor_user_id,
            {"payment_reference": payment_reference},
        )
        settlement.paid_at = utcnow()
        settlement.payment_reference = payment_reference
        return settlement

    async def cancel_settlement(
        self,
        settlement_id: UUID,
        tenant_id: UUID,
        reason: str | None = None,
        actor_user_id: UUID | None = None,
    ) -> FullAndFinalSettlement:
        settlement = await self.get_settlement(settlement_id, tenant_id)
        await self._transition(settlement, SettlementStatus.CANCELLED, actor_user_id, {"reason": reason})
        if reason:
            settlement.remarks = reason
        return settlement

    async def _transition(
        self,
        settlement: FullAndFinalSettlement,
        to_status: SettlementStatus,
        actor_user_id: UUID | None,
        details: dict[str, Any] | None = None,
    ) -> FullAndFinalSettlement:
        SettlementStateMachine.validate_transition(settlement, to_status)
        from_status = settlement.status
        settlement.status = to_status.value
        await self._record_audit(
            settlement,
            f"status_change:{from_status}:{to_status.value}",
            actor_user_id,
            details,
        )
        logger.info("Settlement %s: %s -> %s", settlement.settlement_id, from_status, to_status.value)
        return settlement

    @staticmethod
    def _apply_figures(settlement: FullAndFinalSettlement, figures: SettlementFigures) -> None:
        settlement.last_drawn_salary = figures.last_drawn_salary
        settlement.outstanding_loans = figures.outstanding_loans
        settlement.outstanding_advances = figures.outstanding_advances
        settlement.pending_reimbursements = figures.pending_reimbursements
        settlement.earned_leave_days = figures.earned_leave_days
        settlement.earned_leave_amount = figures.earned_leave_amount
        settlement.gratuity_amount = figures.gratuity_amount
        settlement.gratuity_details = figures.gratuity.to_dict() if figures.gratuity else None

    @staticmethod
    def _ensure_editable(settlement: FullAndFinalSettlement) -> None:
        if not SettlementStateMachine.can_edit(settlement.status):
            raise ImmutableRecordError("Settlement", settlement.settlement_id, settlement.status)

    async def _get_employee(self, employee_id: UUID, tenant_id: UUID) -> Employee:
        result = await self.session.execute(
            select(Employee).where(Employee.employee_id == employee_id, Employee.tenant_id == tenant_id)
        )
        employee = result.scalar_one_or_none()
        if employee is None:
            raise NotFoundError("Employee", employee_id)
        return employee

    async def _record_audit(
        self,
        settlement: FullAndFinalSettlement,
        action: str,
        actor_user_id: UUID | None = None,
        details: dict | None = None,
        before: dict | None = None,
    ) -> None:
        """Record an audit event for a settlement action."""
        self.session.add(
            AuditEvent(
                tenant_id=settlement.tenant_id,
                actor_user_id=actor_user_id,
                entity_type="settlement",
                entity_id=settlement.settlement_id,
                action=action,
                before_json=before,
                after_json=details,
            )
        )


def _money(value: Any) -> Decimal:
    return ComponentBuilder.round_money(Decimal(str(value)))


def _jsonable(value: Any) -> Any:
    if isinstance(value, (Decimal, date)):
        return str(value)
    return value


def _clean_line_item(name: str, value: Any) -> Any:
    """Validate one caller-supplied line item; amounts and days must be non-negative."""
    if value is None:
        raise ValueError(f"{name} cannot be null")
    if name not in MONEY_FIELDS and name not in DAY_FIELDS:
        return value
    try:
        number = Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a number: {value!r}") from exc
    if not number.is_finite() or number < 0:
        raise ValueError(f"{name} must not be negative: {value!r}")
    if name == "notice_period_days":
        if number != number.to_integral_value():
            raise ValueError(f"{name} must be a whole number of days: {value!r}")
        return int(number)
    if name in MONEY_FIELDS:
        return _money(number)
    return number
