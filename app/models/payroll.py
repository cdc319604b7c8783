"""
Ledgerline Payroll - Payroll Models

Payroll system with Jamaican statutory compliance:
- PAYE (Pay As You Earn) - Income Tax
- NIS (National Insurance Scheme) - capped at an annual wage ceiling
- NHT (National Housing Trust)
- Education Tax
- HEART/NTA training levy (employer only)

Statutory deductions and contributions are remitted monthly to
Tax Administration Jamaica, due on the 14th of the following month.
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional, List

from sqlalchemy import (
    Boolean, Date, DateTime, ForeignKey, Integer, Numeric, String, Text, Uuid,
    Enum as SQLEnum, JSON, UniqueConstraint, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin


ZERO = Decimal("0.00")


# ===========================================
# ENUMS
# ===========================================

class PayrollStatus(str, Enum):
    """Payroll run lifecycle status."""
    DRAFT = "draft"
    APPROVED = "approved"
    PAID = "paid"


class PayrollRunType(str, Enum):
    """Kind of payroll run."""
    REGULAR = "regular"
    BACK_PAY = "back_pay"


class PayrollFrequency(str, Enum):
    """Payroll frequency."""
    WEEKLY = "weekly"
    BI_WEEKLY = "bi_weekly"
    MONTHLY = "monthly"


class RemittanceType(str, Enum):
    """Statutory remittance categories."""
    PAYE = "paye"
    NIS = "nis"
    NHT = "nht"
    EDUCATION_TAX = "education_tax"
    HEART_NTA = "heart_nta"


class RemittanceStatus(str, Enum):
    """Derived remittance status (never stored)."""
    PENDING = "pending"
    PAID = "paid"
    OVERDUE = "overdue"


# ===========================================
# EMPLOYEE (master record, read-only here)
# ===========================================

class Employee(BaseModel, AuditMixin):
    """
    Employee master record, maintained by employee management.

    Payroll only reads it: the base salary and active flag are
    snapshotted into each payroll entry at run creation.
    """

    __tablename__ = "employees"

    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )

    employee_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        comment="Internal employee ID/staff number",
    )
    first_name: Mapped[str] = mapped_column(String(100), nullable=False)
    last_name: Mapped[str] = mapped_column(String(100), nullable=False)
    trn: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True,
        comment="Taxpayer Registration Number",
    )
    nis_number: Mapped[Optional[str]] = mapped_column(String(20), nullable=True)

    base_salary: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=ZERO,
        nullable=False,
        comment="Monthly-equivalent base salary",
    )
    pay_frequency: Mapped[PayrollFrequency] = mapped_column(
        SQLEnum(PayrollFrequency),
        default=PayrollFrequency.MONTHLY,
        nullable=False,
    )
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    __table_args__ = (
        UniqueConstraint('entity_id', 'employee_number', name='uq_employee_entity_number'),
        CheckConstraint('base_salary >= 0', name='ck_employee_base_salary_non_negative'),
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"

    def __repr__(self) -> str:
        return f"<Employee(id={self.id}, number={self.employee_number})>"


# ===========================================
# PAYROLL RUN
# ===========================================

class PayrollRun(BaseModel, AuditMixin):
    """
    Payroll run/batch for processing employee salaries.

    A payroll run represents a single pay period processing. Totals are
    always derived from the entries; the run moves DRAFT -> APPROVED -> PAID
    and its ledger posting reference is set exactly once, on approval.
    """

    __tablename__ = "payroll_runs"

    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )

    # Payroll identification
    run_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Unique payroll run number e.g., PAY-2026-01-001",
    )
    name: Mapped[str] = mapped_column(
        String(200), nullable=False,
        comment="Descriptive name e.g., 'January 2026 Payroll'",
    )

    run_type: Mapped[PayrollRunType] = mapped_column(
        SQLEnum(PayrollRunType),
        default=PayrollRunType.REGULAR,
        nullable=False,
    )

    # Pay Period
    frequency: Mapped[PayrollFrequency] = mapped_column(
        SQLEnum(PayrollFrequency),
        default=PayrollFrequency.MONTHLY,
        nullable=False,
    )
    period_start: Mapped[date] = mapped_column(Date, nullable=False)
    period_end: Mapped[date] = mapped_column(Date, nullable=False)
    pay_date: Mapped[date] = mapped_column(
        Date, nullable=False, index=True,
        comment="Date employees will be paid",
    )

    # Status
    status: Mapped[PayrollStatus] = mapped_column(
        SQLEnum(PayrollStatus),
        default=PayrollStatus.DRAFT,
        nullable=False,
    )
    version: Mapped[int] = mapped_column(
        Integer, default=1, nullable=False,
        comment="Incremented on every status transition (compare-and-swap guard)",
    )

    # Statutory rules applied (snapshot taken at creation)
    rule_set_version: Mapped[str] = mapped_column(String(20), nullable=False)
    rule_set_snapshot: Mapped[Dict[str, Any]] = mapped_column(JSON, nullable=False)

    # Summary (calculated)
    total_employees: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False,
    )
    total_gross_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_net_pay: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_employer_contributions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )

    # Statutory Totals - employee side
    total_paye: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_nis: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_nht: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_education_tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_pension: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_other_deductions: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )

    # Statutory Totals - employer side
    total_employer_nis: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_employer_nht: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_employer_education_tax: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )
    total_heart: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2), default=ZERO, nullable=False,
    )

    # Ledger posting (set once, on approval)
    journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="RESTRICT"),
        nullable=True,
    )

    # Approval workflow
    approved_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(Uuid, nullable=True)
    approved_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )
    paid_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    # Relationships
    entries: Mapped[List["PayrollEntry"]] = relationship(
        "PayrollEntry",
        back_populates="payroll_run",
        cascade="all, delete-orphan",
        order_by="PayrollEntry.line_number",
    )

    __table_args__ = (
        UniqueConstraint('entity_id', 'run_number', name='uq_payroll_entity_run_number'),
    )

    def __repr__(self) -> str:
        return f"<PayrollRun(id={self.id}, number={self.run_number}, status={self.status})>"


# ===========================================
# PAYROLL ENTRY
# ===========================================

class PayrollEntry(BaseModel):
    """
    One employee's gross-to-net computation within a payroll run.
    """

    __tablename__ = "payroll_entries"

    payroll_run_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("payroll_runs.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    employee_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("employees.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Earnings
    basic_salary: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    overtime: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    bonus: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    commission: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    allowances: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    gross_pay: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)

    # Employee deductions
    paye: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    nis: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    nht: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    education_tax: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    pension_contribution: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    other_deductions: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    total_deductions: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    net_pay: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)

    # Employer contributions (informational, never deducted from net)
    employer_nis: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    employer_nht: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    employer_education_tax: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    heart_contribution: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)
    total_employer_contributions: Mapped[Decimal] = mapped_column(Numeric(precision=18, scale=2), default=ZERO, nullable=False)

    payroll_run: Mapped["PayrollRun"] = relationship(
        "PayrollRun", back_populates="entries",
    )
    employee: Mapped["Employee"] = relationship("Employee")

    __table_args__ = (
        UniqueConstraint('payroll_run_id', 'employee_id', name='uq_payroll_entry_run_employee'),
    )

    def __repr__(self) -> str:
        return f"<PayrollEntry(employee={self.employee_id}, net={self.net_pay})>"


# ===========================================
# STATUTORY REMITTANCE TRACKING
# ===========================================

class StatutoryRemittance(BaseModel, AuditMixin):
    """
    Track monthly statutory remittances (PAYE, NIS, NHT, Education Tax, HEART/NTA).

    Amounts combine the employee and employer portions. Status is derived
    from the amounts and due date when read.
    """

    __tablename__ = "statutory_remittances"

    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )

    remittance_type: Mapped[RemittanceType] = mapped_column(
        SQLEnum(RemittanceType),
        nullable=False,
    )

    # Period
    period_month: Mapped[int] = mapped_column(Integer, nullable=False)
    period_year: Mapped[int] = mapped_column(Integer, nullable=False)

    # Amount
    amount_due: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        nullable=False,
    )
    amount_paid: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=ZERO,
        nullable=False,
    )

    due_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Payment
    payment_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    reference_number: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    journal_entry_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="SET NULL"),
        nullable=True,
    )

    notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    __table_args__ = (
        UniqueConstraint(
            'entity_id', 'remittance_type', 'period_month', 'period_year',
            name='uq_remittance_entity_type_period'
        ),
    )

    @property
    def period_start(self) -> date:
        """First day of the covered month."""
        return date(self.period_year, self.period_month, 1)

    def status_on(self, today: date) -> RemittanceStatus:
        """Derive the remittance status as of ``today``."""
        if self.amount_paid >= self.amount_due:
            return RemittanceStatus.PAID
        if today > self.due_date:
            return RemittanceStatus.OVERDUE
        return RemittanceStatus.PENDING

    @property
    def outstanding(self) -> Decimal:
        return max(self.amount_due - self.amount_paid, ZERO)

    def __repr__(self) -> str:
        return f"<StatutoryRemittance(type={self.remittance_type}, period={self.period_month}/{self.period_year})>"
