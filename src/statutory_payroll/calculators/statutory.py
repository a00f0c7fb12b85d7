"""Statutory deduction calculators.

Every function here is pure: amounts, slab rows and employee flags in, a
result dataclass out. Missing or zero inputs yield a zero deduction and no
function ever returns a negative amount.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from statutory_payroll.calculators.component_builder import ComponentBuilder
from statutory_payroll.calculators.rate_tables import (
    DECLARATION_SECTIONS,
    ESIConfig,
    PFConfig,
    TDSConfig,
    month_key,
    remaining_fy_months,
)
from statutory_payroll.calculators.types import (
    ZERO,
    ESIResult,
    LabourWelfareRow,
    LWFResult,
    PFResult,
    ProfessionalTaxRow,
    TaxSlabRow,
    TDSResult,
)

round_money = ComponentBuilder.round_money
percent_of = ComponentBuilder.percent_of


def calculate_pf(pf_base: Decimal | None, config: PFConfig, opted_in: bool = True) -> PFResult:
    """Provident fund on basic (+DA), optionally capped at the wage limit.

    The employer share is split into the pension scheme (capped separately)
    and the provident fund remainder.
    """
    if not opted_in or not pf_base or pf_base <= 0:
        return PFResult(base=max(pf_base or ZERO, ZERO))

    wages = min(pf_base, config.wage_limit) if config.cap_wages else pf_base
    employee = percent_of(wages, config.employee_rate)
    employer = percent_of(wages, config.employer_rate)
    pension = min(percent_of(min(wages, config.pension_wage_limit), config.pension_rate), employer)

    return PFResult(
        base=pf_base,
        wages=wages,
        employee=employee,
        employer_provident=employer - pension,
        employer_pension=pension,
    )


def calculate_esi(gross: Decimal | None, config: ESIConfig, esi_base: Decimal | None = None) -> ESIResult:
    """ESI on gross wages, only when wages do not exceed the ceiling."""
    base = esi_base if esi_base is not None else (gross or ZERO)
    if base <= 0 or base > config.wage_ceiling:
        return ESIResult(base=max(base, ZERO))

    return ESIResult(
        base=base,
        applicable=True,
        employee=percent_of(base, config.employee_rate),
        employer=percent_of(base, config.employer_rate),
    )


def calculate_pt(
    gross: Decimal | None,
    slabs: Iterable[ProfessionalTaxRow],
    month: int,
    gender: str | None = None,
) -> tuple[Decimal, ProfessionalTaxRow | None]:
    """Professional tax from the state's slab for this month.

    Slabs specific to the employee's gender take precedence over 'all'.
    """
    if not gross or gross <= 0:
        return ZERO, None

    slabs = list(slabs)
    specific = [s for s in slabs if gender and s.person_type == gender.lower()]
    candidates = specific or [s for s in slabs if s.person_type == "all"]

    for slab in sorted(candidates, key=lambda s: s.min_amount):
        if slab.matches(gross):
            amount = slab.monthly_amounts.get(month_key(month), ZERO)
            return round_money(max(amount, ZERO)), slab
    return ZERO, None


def calculate_lwf(row: LabourWelfareRow | None, month: int) -> LWFResult:
    """Fixed labour welfare fund amounts for the month, not wage dependent."""
    if row is None:
        return LWFResult()
    key = month_key(month)
    return LWFResult(
        employee=round_money(max(row.employee_amounts.get(key, ZERO), ZERO)),
        employer=round_money(max(row.employer_amounts.get(key, ZERO), ZERO)),
    )


def progressive_tax(income: Decimal, slabs: Iterable[TaxSlabRow]) -> Decimal:
    """Tax on income using progressive slabs."""
    if income <= 0:
        return ZERO

    total_tax = ZERO
    for slab in sorted(slabs, key=lambda s: s.lower):
        if income <= slab.lower:
            break
        top = income if slab.upper is None else min(income, slab.upper)
        taxable_in_slab = top - slab.lower
        if taxable_in_slab > 0:
            total_tax += taxable_in_slab * slab.percent / Decimal("100")

    return round_money(total_tax)


def allowed_exemptions(declared: dict[str, Decimal] | None, config: TDSConfig) -> Decimal:
    """Sum of declared exemptions, each capped at its section limit."""
    total = ZERO
    for section in DECLARATION_SECTIONS:
        amount = (declared or {}).get(section) or ZERO
        if amount <= 0:
            continue
        cap = config.section_caps.get(section)
        total += min(amount, cap) if cap is not None else amount
    return total


def calculate_tds(
    month: int,
    current_gross: Decimal,
    projected_monthly_gross: Decimal,
    slabs: Iterable[TaxSlabRow],
    config: TDSConfig,
    declared: dict[str, Decimal] | None = None,
    ytd_gross: Decimal = ZERO,
    ytd_tds: Decimal = ZERO,
) -> TDSResult:
    """Monthly TDS from an annual projection.

    Annual income = earlier payslips this FY + this month + the full monthly
    salary for every month left after this one. The tax still owed for the
    year is spread evenly over the remaining months, this one included.
    """
    remaining = remaining_fy_months(month)
    annual_income = (
        max(ytd_gross, ZERO)
        + max(current_gross, ZERO)
        + max(projected_monthly_gross, ZERO) * (remaining - 1)
    )
    exemptions = allowed_exemptions(declared, config)
    taxable = max(annual_income - config.standard_deduction - exemptions, ZERO)

    tax = progressive_tax(taxable, slabs)
    annual_tax = round_money(tax + percent_of(tax, config.cess_rate))
    balance = max(annual_tax - max(ytd_tds, ZERO), ZERO)

    return TDSResult(
        regime=config.regime,
        annual_income=round_money(annual_income),
        exemptions=round_money(exemptions),
        annual_taxable_income=round_money(taxable),
        annual_tax=annual_tax,
        tds_already_deducted=max(ytd_tds, ZERO),
        remaining_months=remaining,
        monthly_tds=round_money(balance / Decimal(remaining)),
    )
