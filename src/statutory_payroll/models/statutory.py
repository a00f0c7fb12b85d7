"""Statutory configuration and slab tables.

Slabs are versioned by financial year (start_fy/end_fy hold the starting
calendar year, 2025 for FY 2025-26; end_fy NULL means open-ended) and by
state. Rows are never updated retroactively: a rate change is a new row with
a later start_fy.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column

from statutory_payroll.models.base import Base, JSONType, Money, TimestampMixin

ALL_STATES = "ALL"


class StatutoryConfig(Base, TimestampMixin):
    """Tenant switch and parameters for one statutory deduction."""

    __tablename__ = "statutory_config"

    statutory_config_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    statutory_type: Mapped[str] = mapped_column(String, nullable=False)
    state: Mapped[str] = mapped_column(String, nullable=False, default=ALL_STATES)
    is_enabled: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    effective_from: Mapped[date] = mapped_column(Date, nullable=False)
    # Rates, limits and ceilings; see calculators.rate_tables for keys
    configuration: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False, default=dict)
    tax_regime: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "statutory_type",
            "state",
            "effective_from",
            name="statutory_config_version_unique",
        ),
        CheckConstraint(
            "statutory_type IN ('PF', 'ESI', 'PT', 'LWF', 'TDS')",
            name="statutory_config_type_check",
        ),
        CheckConstraint(
            "tax_regime IS NULL OR tax_regime IN ('old', 'new')",
            name="statutory_config_regime_check",
        ),
    )


class ProfessionalTaxSlab(Base, TimestampMixin):
    """Professional tax slab: gross range → monthly amounts Apr..Mar."""

    __tablename__ = "professional_tax_slab"

    pt_slab_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    state: Mapped[str] = mapped_column(String, nullable=False)
    person_type: Mapped[str] = mapped_column(String, nullable=False, default="all")
    min_amount: Mapped[Decimal] = mapped_column(Money, nullable=False)
    max_amount: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    # {"apr": "200.00", ..., "feb": "300.00", "mar": "200.00"}
    monthly_amounts: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    start_fy: Mapped[int] = mapped_column(Integer, nullable=False)
    end_fy: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        CheckConstraint(
            "person_type IN ('all', 'male', 'female')",
            name="pt_slab_person_type_check",
        ),
    )


class LabourWelfareFundSlab(Base, TimestampMixin):
    """Labour welfare fund amounts per state, Apr..Mar."""

    __tablename__ = "labour_welfare_fund_slab"

    lwf_slab_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    state: Mapped[str] = mapped_column(String, nullable=False)
    employee_monthly_amounts: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    employer_monthly_amounts: Mapped[dict[str, Any]] = mapped_column(JSONType, nullable=False)
    start_fy: Mapped[int] = mapped_column(Integer, nullable=False)
    end_fy: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint("tenant_id", "state", "start_fy", name="lwf_slab_version_unique"),
    )


class IncomeTaxSlab(Base, TimestampMixin):
    """Progressive income-tax slab row for a regime."""

    __tablename__ = "income_tax_slab"

    it_slab_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    tenant_id: Mapped[UUID] = mapped_column(
        Uuid,
        ForeignKey("tenant.tenant_id", ondelete="CASCADE"),
        nullable=False,
    )
    tax_regime: Mapped[str] = mapped_column(String, nullable=False)
    serial_number: Mapped[int] = mapped_column(Integer, nullable=False)
    lower_limit: Mapped[Decimal] = mapped_column(Money, nullable=False)
    upper_limit: Mapped[Decimal | None] = mapped_column(Money, nullable=True)
    tax_percent: Mapped[Decimal] = mapped_column(Numeric(5, 2), nullable=False)
    start_fy: Mapped[int] = mapped_column(Integer, nullable=False)
    end_fy: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            "tenant_id",
            "tax_regime",
            "start_fy",
            "serial_number",
            name="income_tax_slab_version_unique",
        ),
        CheckConstraint("tax_regime IN ('old', 'new')", name="income_tax_slab_regime_check"),
        CheckConstraint(
            "tax_percent >= 0 AND tax_percent <= 100",
            name="income_tax_slab_percent_check",
        ),
    )
