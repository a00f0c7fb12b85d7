"""Money rounding, pro-ration and payslip fingerprinting."""

from __future__ import annotations

import hashlib
import json
from decimal import ROUND_HALF_UP, Decimal

from statutory_payroll.calculators.types import ZERO, PayslipCalculation


class ComponentBuilder:
    """Helpers shared by every calculator.

    Rounding:
    - Every persisted amount is rounded to 2 decimals, half-up
    - Pro-ration multiplies by the exact payable/denominator ratio and rounds once
    - Totals are sums of already-rounded components, so they are exact
    """

    OUTPUT_PRECISION = Decimal("0.01")

    @staticmethod
    def round_money(amount: Decimal) -> Decimal:
        """Round amount to 2 decimal places."""
        return amount.quantize(ComponentBuilder.OUTPUT_PRECISION, rounding=ROUND_HALF_UP)

    @staticmethod
    def percent_of(amount: Decimal, rate: Decimal) -> Decimal:
        """rate% of amount, rounded; never negative."""
        if amount <= 0 or rate <= 0:
            return ZERO
        return ComponentBuilder.round_money(amount * rate / Decimal("100"))

    @staticmethod
    def prorate(amount: Decimal | None, payable_days: Decimal, denominator_days: int) -> Decimal:
        """Scale a monthly amount by payable/denominator days."""
        if not amount or amount <= 0 or denominator_days <= 0 or payable_days <= 0:
            return ZERO
        if payable_days >= denominator_days:
            return ComponentBuilder.round_money(amount)
        return ComponentBuilder.round_money(amount * payable_days / Decimal(denominator_days))

    @staticmethod
    def compute_calculation_hash(calculation: PayslipCalculation) -> str:
        """Deterministic fingerprint of the computed figures.

        Identical inputs produce identical hashes, which lets an audit re-run
        prove a stored payslip was not altered.
        """
        canonical = {
            "employee_id": str(calculation.employee_id),
            "salary_structure_id": str(calculation.salary_structure_id),
            "payable_days": str(calculation.attendance.payable_days),
            "denominator_days": calculation.attendance.denominator_days,
            "earnings": calculation.earnings.to_json(),
            "deductions": calculation.deductions.to_json(),
            "employer_contributions": calculation.employer_contributions.to_json(),
        }
        json_str = json.dumps(canonical, sort_keys=True)
        return hashlib.sha256(json_str.encode()).hexdigest()[:32]

    @staticmethod
    def validate(calculation: PayslipCalculation) -> list[str]:
        """Check payslip invariants, returning any violations."""
        errors: list[str] = []
        for name, amount in calculation.earnings.items() + calculation.deductions.items():
            if amount < 0:
                errors.append(f"Component {name} is negative: {amount}")
            if amount != ComponentBuilder.round_money(amount):
                errors.append(f"Component {name} has more than 2 decimals: {amount}")
        factor = calculation.attendance.pro_ration_factor
        if factor < 0 or factor > 1:
            errors.append(f"Pro-ration factor out of range: {factor}")
        return errors
