"""Active salary structure resolution."""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from statutory_payroll.calculators.types import ZERO
from statutory_payroll.errors import MalformedRecordError, SalaryStructureNotFoundError
from statutory_payroll.models import SalaryStructure


def sum_named_amounts(values: dict[str, Any] | None, record_id: UUID, field_name: str) -> Decimal:
    """Sum a {name: amount} JSON map from a salary structure."""
    if values is not None and not isinstance(values, dict):
        raise MalformedRecordError(
            "salary structure", record_id, f"{field_name} must be a name to amount map: {values!r}"
        )
    total = ZERO
    for name, raw in (values or {}).items():
        try:
            amount = Decimal(str(raw))
        except InvalidOperation as exc:
            raise MalformedRecordError(
                "salary structure", record_id, f"{field_name}.{name} is not a number: {raw!r}"
            ) from exc
        if not amount.is_finite() or amount < 0:
            raise MalformedRecordError(
                "salary structure", record_id, f"{field_name}.{name} is invalid: {raw!r}"
            )
        total += amount
    return total


def fixed_monthly_gross(structure: SalaryStructure) -> Decimal:
    """Full-month gross of a structure, before pro-ration."""
    return (
        structure.basic
        + (structure.dearness_allowance or ZERO)
        + (structure.hra or ZERO)
        + (structure.special_allowance or ZERO)
        + sum_named_amounts(structure.other_allowances, structure.salary_structure_id, "other_allowances")
    )


class SalaryStructureResolver:
    """Resolves the salary structure in force for an employee on a date.

    Among active structures, the one with the latest effective_date on or
    before the as-of date wins.
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def find(self, employee_id: UUID, as_of: date) -> SalaryStructure | None:
        result = await self.session.execute(
            select(SalaryStructure)
            .where(
                SalaryStructure.employee_id == employee_id,
                SalaryStructure.is_active.is_(True),
                SalaryStructure.effective_date <= as_of,
            )
            .order_by(SalaryStructure.effective_date.desc())
            .limit(1)
        )
        return result.scalar_one_or_none()

    async def resolve(self, employee_id: UUID, employee_code: str, as_of: date) -> SalaryStructure:
        """Resolve the structure, raising if the employee has none.

        Raises:
            SalaryStructureNotFoundError: If no active structure is effective on as_of
        """
        structure = await self.find(employee_id, as_of)
        if structure is None:
            raise SalaryStructureNotFoundError(employee_code, as_of)
        return structure
