"""Statutory rate parameters, defaults and financial-year helpers.

Configuration rows store overrides as JSON; anything not overridden falls
back to the statutory defaults below.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from decimal import Decimal, InvalidOperation
from typing import Any

MONTH_KEYS = ("jan", "feb", "mar", "apr", "may", "jun", "jul", "aug", "sep", "oct", "nov", "dec")

DECLARATION_SECTIONS = ("80C", "80D", "80G", "80TTA", "24B", "80EE")


def month_key(month: int) -> str:
    """Key used by the Apr..Mar monthly amount tables."""
    return MONTH_KEYS[month - 1]


def financial_year(month: int, year: int) -> int:
    """Starting calendar year of the Indian financial year (April to March)."""
    return year if month >= 4 else year - 1


def financial_year_label(fy: int) -> str:
    return f"{fy}-{(fy + 1) % 100:02d}"


def remaining_fy_months(month: int) -> int:
    """Payroll months left in the financial year, including this one."""
    return (3 - month) % 12 + 1


def fy_months_before(month: int, year: int) -> list[tuple[int, int]]:
    """(month, year) pairs of the same financial year preceding this month."""
    fy = financial_year(month, year)
    pairs: list[tuple[int, int]] = []
    m, y = 4, fy
    while (m, y) != (month, year):
        pairs.append((m, y))
        m, y = (1, y + 1) if m == 12 else (m + 1, y)
    return pairs


def _decimal(name: str, raw: Any) -> Decimal:
    try:
        value = Decimal(str(raw))
    except InvalidOperation as exc:
        raise ValueError(f"{name} is not a number: {raw!r}") from exc
    if not value.is_finite() or value < 0:
        raise ValueError(f"{name} is invalid: {raw!r}")
    return value


def _apply(instance: Any, overrides: dict[str, Any] | None) -> Any:
    """Copy known keys from a JSON configuration onto a config dataclass.

    Raises ValueError naming the offending key when a value cannot be used.
    """
    if overrides is not None and not isinstance(overrides, dict):
        raise ValueError(f"configuration must be an object, got {overrides!r}")
    for f in fields(instance):
        if overrides and f.name in overrides and overrides[f.name] is not None:
            current = getattr(instance, f.name)
            value = overrides[f.name]
            if isinstance(current, bool):
                value = value if isinstance(value, bool) else str(value).lower() == "true"
            elif isinstance(current, Decimal):
                value = _decimal(f.name, value)
            elif isinstance(current, dict):
                if not isinstance(value, dict):
                    raise ValueError(f"{f.name} must be an object, got {value!r}")
                value = {k: _decimal(f"{f.name}.{k}", v) for k, v in value.items()}
            setattr(instance, f.name, value)
    return instance


@dataclass
class PFConfig:
    """Provident fund parameters (percentages)."""

    employee_rate: Decimal = Decimal("12")
    employer_rate: Decimal = Decimal("12")
    wage_limit: Decimal = Decimal("15000")
    cap_wages: bool = True
    pension_rate: Decimal = Decimal("8.33")
    pension_wage_limit: Decimal = Decimal("15000")

    @classmethod
    def from_config(cls, configuration: dict[str, Any] | None) -> PFConfig:
        return _apply(cls(), configuration)


@dataclass
class ESIConfig:
    """Employee State Insurance parameters (percentages)."""

    employee_rate: Decimal = Decimal("0.75")
    employer_rate: Decimal = Decimal("3.25")
    wage_ceiling: Decimal = Decimal("21000")

    @classmethod
    def from_config(cls, configuration: dict[str, Any] | None) -> ESIConfig:
        return _apply(cls(), configuration)


@dataclass
class TDSConfig:
    """Income tax withholding parameters."""

    regime: str = "new"
    standard_deduction: Decimal = Decimal("50000")
    cess_rate: Decimal = Decimal("4")
    section_caps: dict[str, Decimal] = field(
        default_factory=lambda: {
            "80C": Decimal("150000"),
            "80D": Decimal("100000"),
            "80TTA": Decimal("10000"),
            "24B": Decimal("200000"),
            "80EE": Decimal("50000"),
        }
    )

    @classmethod
    def from_config(cls, configuration: dict[str, Any] | None, regime: str | None = None) -> TDSConfig:
        config = _apply(cls(), configuration)
        if regime:
            config.regime = regime
        return config


@dataclass(frozen=True)
class GratuityRules:
    """Payment of Gratuity Act formula constants."""

    min_years: Decimal = Decimal("5")
    days_per_year: Decimal = Decimal("365.25")
    multiplier_days: Decimal = Decimal("15")
    wage_days: Decimal = Decimal("26")
    max_amount: Decimal = Decimal("2000000")


# Leave types whose balance is encashed at exit
ENCASHABLE_LEAVE_CODES = ("PL", "EL")

# Days per month used to convert monthly salary to a daily rate at exit
SETTLEMENT_DAYS_PER_MONTH = Decimal("30")
