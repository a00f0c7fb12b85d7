"""Tenant (employer company) model."""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID, uuid4

from sqlalchemy import CheckConstraint, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from statutory_payroll.models.base import Base, TimestampMixin

if TYPE_CHECKING:
    from statutory_payroll.models.employee import Employee


class Tenant(Base, TimestampMixin):
    """Employer company; the unit of multi-tenancy."""

    __tablename__ = "tenant"

    tenant_id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="active")
    # Default state for statutory lookups when an employee has none
    state: Mapped[str | None] = mapped_column(String, nullable=True)
    pf_establishment_code: Mapped[str | None] = mapped_column(String, nullable=True)
    esi_employer_code: Mapped[str | None] = mapped_column(String, nullable=True)
    tan: Mapped[str | None] = mapped_column(String, nullable=True)

    __table_args__ = (
        CheckConstraint("status IN ('active', 'suspended', 'closed')", name="tenant_status_check"),
    )

    # Relationships
    employees: Mapped[list[Employee]] = relationship(back_populates="tenant")
