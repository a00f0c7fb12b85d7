"""Payroll period and settlement state machines with transition validation."""

from __future__ import annotations

from enum import Enum
from typing import TYPE_CHECKING

from statutory_payroll.errors import InvalidTransitionError

if TYPE_CHECKING:
    from statutory_payroll.models import FullAndFinalSettlement, PayrollPeriod

__all__ = [
    "InvalidTransitionError",
    "PayrollStateMachine",
    "PayrollStatus",
    "SettlementStateMachine",
    "SettlementStatus",
]


class PayrollStatus(str, Enum):
    """Payroll period status values."""

    DRAFT = "draft"
    PROCESSING = "processing"
    LOCKED = "locked"
    FINALIZED = "finalized"
    PAID = "paid"


class PayrollStateMachine:
    """State machine for payroll period status transitions.

    Allowed transitions:
    - draft → processing (generation starts; attendance must be locked)
    - processing → finalized (all payslips generated, totals recomputed)
    - finalized → paid (disbursement confirmed)
    - any unlocked state → locked (freeze)
    - locked → the state it was frozen from (unfreeze)
    """

    # Define valid transitions: {from_status: [allowed_to_statuses]}
    VALID_TRANSITIONS: dict[str, list[str]] = {
        PayrollStatus.DRAFT: [PayrollStatus.PROCESSING, PayrollStatus.LOCKED],
        PayrollStatus.PROCESSING: [PayrollStatus.FINALIZED, PayrollStatus.LOCKED],
        PayrollStatus.FINALIZED: [PayrollStatus.PAID, PayrollStatus.LOCKED],
        PayrollStatus.PAID: [PayrollStatus.LOCKED],
        PayrollStatus.LOCKED: [
            PayrollStatus.DRAFT,
            PayrollStatus.PROCESSING,
            PayrollStatus.FINALIZED,
            PayrollStatus.PAID,
        ],
    }

    # Statuses where payslips may be generated
    GENERATION_ALLOWED = {PayrollStatus.DRAFT, PayrollStatus.PROCESSING}

    # Statuses whose payslips are final
    RESULTS_IMMUTABLE = {PayrollStatus.FINALIZED, PayrollStatus.PAID, PayrollStatus.LOCKED}

    # Statuses reports may be produced from
    REPORTABLE = {PayrollStatus.FINALIZED, PayrollStatus.PAID}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        allowed = cls.VALID_TRANSITIONS.get(from_status, [])
        return to_status in allowed

    @classmethod
    def validate_transition(cls, from_status: str, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(from_status, to_status):
            raise InvalidTransitionError(from_status, to_status)

    @classmethod
    def can_generate(cls, status: str) -> bool:
        """Check if payslip generation is allowed in this status."""
        return status in cls.GENERATION_ALLOWED

    @classmethod
    def are_results_immutable(cls, status: str) -> bool:
        """Check if payslips and totals are immutable."""
        return status in cls.RESULTS_IMMUTABLE

    @classmethod
    def is_reportable(cls, period: PayrollPeriod) -> bool:
        """Finalized or paid, or frozen after reaching one of those."""
        if period.status in cls.REPORTABLE:
            return True
        return period.status == PayrollStatus.LOCKED and period.frozen_from_status in cls.REPORTABLE

    @classmethod
    def get_next_statuses(cls, current_status: str) -> list[str]:
        """Get list of valid next statuses from current status."""
        return cls.VALID_TRANSITIONS.get(current_status, [])

    @classmethod
    def validate_period_for_transition(
        cls,
        period: PayrollPeriod,
        to_status: str,
        override_pre_check: bool = False,
    ) -> list[str]:
        """Validate a period for a specific transition, returning any errors.

        Returns list of error messages (empty if valid).
        """
        errors: list[str] = []
        from_status = period.status

        # Basic transition check
        if not cls.can_transition(from_status, to_status):
            errors.append(f"Cannot transition from '{from_status}' to '{to_status}'")
            return errors

        # Unfreezing restores the prior status without re-running its gates
        if from_status == PayrollStatus.LOCKED:
            if to_status != period.frozen_from_status:
                errors.append(f"A frozen period can only return to '{period.frozen_from_status}'")
            return errors

        # Transition-specific validations
        if to_status == PayrollStatus.PROCESSING and from_status == PayrollStatus.DRAFT:
            if not period.attendance_locked:
                errors.append("Attendance must be locked before generating payslips")

        elif to_status == PayrollStatus.FINALIZED:
            if not period.attendance_locked:
                errors.append("Attendance must be locked before finalizing")
            if not override_pre_check:
                if not period.payslips_generated:
                    errors.append("Not every eligible employee has a payslip")
                if not period.pre_check_completed:
                    errors.append("Pre-checks have unresolved items")
            if period.employee_count == 0:
                errors.append("Payroll has no payslips")

        return errors


class SettlementStatus(str, Enum):
    """Full and final settlement status values."""

    DRAFT = "draft"
    PENDING = "pending"
    APPROVED = "approved"
    PAID = "paid"
    CANCELLED = "cancelled"


class SettlementStateMachine:
    """State machine for full and final settlements.

    Allowed transitions:
    - draft → pending → approved → paid
    - draft → approved
    - draft/pending/approved → cancelled
    paid and cancelled are terminal.
    """

    VALID_TRANSITIONS: dict[str, list[str]] = {
        SettlementStatus.DRAFT: [
            SettlementStatus.PENDING,
            SettlementStatus.APPROVED,
            SettlementStatus.CANCELLED,
        ],
        SettlementStatus.PENDING: [SettlementStatus.APPROVED, SettlementStatus.CANCELLED],
        SettlementStatus.APPROVED: [SettlementStatus.PAID, SettlementStatus.CANCELLED],
        SettlementStatus.PAID: [],  # Terminal state
        SettlementStatus.CANCELLED: [],  # Terminal state
    }

    # Statuses where line items can be edited
    EDITABLE = {SettlementStatus.DRAFT, SettlementStatus.PENDING}

    TERMINAL = {SettlementStatus.PAID, SettlementStatus.CANCELLED}

    @classmethod
    def can_transition(cls, from_status: str, to_status: str) -> bool:
        """Check if a transition is valid."""
        return to_status in cls.VALID_TRANSITIONS.get(from_status, [])

    @classmethod
    def validate_transition(cls, settlement: FullAndFinalSettlement, to_status: str) -> None:
        """Validate a transition, raising InvalidTransitionError if invalid."""
        if not cls.can_transition(settlement.status, to_status):
            reason = None
            if settlement.status in cls.TERMINAL:
                reason = f"settlement is {settlement.status}"
            raise InvalidTransitionError(settlement.status, to_status, reason)

    @classmethod
    def can_edit(cls, status: str) -> bool:
        """Check if settlement line items can be modified."""
        return status in cls.EDITABLE
