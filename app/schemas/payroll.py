"""
Ledgerline Payroll - Payroll Schemas

Pydantic schemas for payroll run and statutory remittance requests and responses.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Annotated, Optional, List, Dict
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from app.models.payroll import (
    PayrollFrequency,
    PayrollRunType,
    PayrollStatus,
    RemittanceStatus,
    RemittanceType,
    StatutoryRemittance,
)


NonNegativeAmount = Annotated[Decimal, Field(ge=0, max_digits=16, decimal_places=2)]
ZERO = Decimal("0.00")


# ===========================================
# PAYROLL ENTRY SCHEMAS
# ===========================================

class PayrollEntryCreate(BaseModel):
    """Earnings and deductions for one employee in a new payroll run."""
    employee_id: UUID
    basic_salary: Optional[NonNegativeAmount] = Field(
        default=None, description="Defaults to the employee's base salary",
    )
    overtime: NonNegativeAmount = ZERO
    bonus: NonNegativeAmount = ZERO
    commission: NonNegativeAmount = ZERO
    allowances: NonNegativeAmount = ZERO
    pension_contribution: NonNegativeAmount = ZERO
    other_deductions: NonNegativeAmount = ZERO


class PayrollEntryUpdate(BaseModel):
    """Replace inputs of a DRAFT entry. Omitted fields keep their value."""
    model_config = ConfigDict(extra="forbid")

    basic_salary: Optional[NonNegativeAmount] = None
    overtime: Optional[NonNegativeAmount] = None
    bonus: Optional[NonNegativeAmount] = None
    commission: Optional[NonNegativeAmount] = None
    allowances: Optional[NonNegativeAmount] = None
    pension_contribution: Optional[NonNegativeAmount] = None
    other_deductions: Optional[NonNegativeAmount] = None


class PayrollEntryResponse(BaseModel):
    """Computed payroll entry."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    employee_id: UUID
    employee_name: str
    line_number: int

    basic_salary: Decimal
    overtime: Decimal
    bonus: Decimal
    commission: Decimal
    allowances: Decimal
    gross_pay: Decimal

    paye: Decimal
    nis: Decimal
    nht: Decimal
    education_tax: Decimal
    pension_contribution: Decimal
    other_deductions: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    employer_nis: Decimal
    employer_nht: Decimal
    employer_education_tax: Decimal
    heart_contribution: Decimal
    total_employer_contributions: Decimal


# ===========================================
# PAYROLL RUN SCHEMAS
# ===========================================

class PayrollRunCreate(BaseModel):
    """Create payroll run request."""
    name: Optional[str] = Field(default=None, max_length=200)
    notes: Optional[str] = None
    frequency: PayrollFrequency = PayrollFrequency.MONTHLY
    period_start: date
    period_end: date
    pay_date: date
    entries: List[PayrollEntryCreate] = Field(..., min_length=1)

    @model_validator(mode='after')
    def validate_dates(self):
        if self.period_end < self.period_start:
            raise ValueError("Period end must not be before period start")
        if self.pay_date < self.period_start:
            raise ValueError("Pay date must not be before period start")
        return self


class PayrollRunSummary(BaseModel):
    """Payroll run summary for lists."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    run_number: str
    name: str
    run_type: PayrollRunType = PayrollRunType.REGULAR
    status: PayrollStatus
    period_start: date
    period_end: date
    pay_date: date
    total_employees: int
    total_gross_pay: Decimal
    total_deductions: Decimal
    total_net_pay: Decimal
    total_employer_contributions: Decimal
    journal_entry_id: Optional[UUID] = None
    created_at: datetime


class PayrollRunResponse(PayrollRunSummary):
    """Full payroll run response."""
    entity_id: UUID
    frequency: PayrollFrequency
    version: int
    notes: Optional[str] = None
    rule_set_version: str
    rule_set_snapshot: Dict[str, str]

    total_paye: Decimal
    total_nis: Decimal
    total_nht: Decimal
    total_education_tax: Decimal
    total_pension: Decimal
    total_other_deductions: Decimal
    total_employer_nis: Decimal
    total_employer_nht: Decimal
    total_employer_education_tax: Decimal
    total_heart: Decimal

    approved_by_id: Optional[UUID] = None
    approved_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    updated_at: datetime

    entries: List[PayrollEntryResponse] = []


class PayrollRunListResponse(BaseModel):
    """Paginated payroll run list."""
    items: List[PayrollRunSummary]
    total: int
    page: int
    per_page: int


# ===========================================
# BACK PAY SCHEMAS
# ===========================================

class BackPayRequest(BaseModel):
    """Retroactive raise for one employee."""
    employee_id: UUID
    new_base_salary: Decimal = Field(..., gt=0, max_digits=16, decimal_places=2)
    effective_date: date = Field(..., description="Date the raise took effect")
    through_date: date = Field(..., description="Back pay is owed up to this date")
    pay_date: date
    frequency: PayrollFrequency = PayrollFrequency.MONTHLY
    reason: Optional[str] = Field(default=None, max_length=500)

    @model_validator(mode='after')
    def validate_dates(self):
        if self.through_date < self.effective_date:
            raise ValueError("Through date must not be before the effective date")
        return self


class BackPayCalculationResponse(BaseModel):
    """Back pay owed, before any run is created."""
    employee_id: UUID
    employee_name: str
    old_salary: Decimal
    new_salary: Decimal
    frequency: PayrollFrequency
    effective_date: date
    through_date: date
    periods: int
    period_difference: Decimal
    rule_set_version: str

    gross_pay: Decimal
    paye: Decimal
    nis: Decimal
    nht: Decimal
    education_tax: Decimal
    total_deductions: Decimal
    net_pay: Decimal

    employer_nis: Decimal
    employer_nht: Decimal
    employer_education_tax: Decimal
    heart_contribution: Decimal
    total_employer_contributions: Decimal
    total_cost: Decimal


# ===========================================
# STATUTORY REMITTANCE SCHEMAS
# ===========================================

class RemittanceGenerateRequest(BaseModel):
    """Generate remittances for one month."""
    year: int = Field(..., ge=2000, le=2100)
    month: int = Field(..., ge=1, le=12)


class RemittancePaymentRequest(BaseModel):
    """Record payment of a remittance to the tax authority."""
    payment_date: date
    reference_number: Optional[str] = Field(default=None, max_length=100)
    bank_account_code: Optional[str] = Field(default=None, max_length=20)
    notes: Optional[str] = Field(default=None, max_length=500)


class StatutoryRemittanceResponse(BaseModel):
    """Statutory remittance response with derived status."""
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    entity_id: UUID
    remittance_type: RemittanceType
    period_month: int
    period_year: int
    period_start: date
    amount_due: Decimal
    amount_paid: Decimal
    due_date: date
    status: RemittanceStatus
    payment_date: Optional[date] = None
    reference_number: Optional[str] = None
    journal_entry_id: Optional[UUID] = None
    notes: Optional[str] = None
    created_at: datetime

    @classmethod
    def from_record(cls, record: StatutoryRemittance, today: date) -> "StatutoryRemittanceResponse":
        return cls(
            id=record.id,
            entity_id=record.entity_id,
            remittance_type=record.remittance_type,
            period_month=record.period_month,
            period_year=record.period_year,
            period_start=record.period_start,
            amount_due=record.amount_due,
            amount_paid=record.amount_paid,
            due_date=record.due_date,
            status=record.status_on(today),
            payment_date=record.payment_date,
            reference_number=record.reference_number,
            journal_entry_id=record.journal_entry_id,
            notes=record.notes,
            created_at=record.created_at,
        )


class RemittanceSummary(BaseModel):
    """Totals across a list of remittances."""
    total_due: Decimal
    total_paid: Decimal
    outstanding: Decimal
    pending: int
    overdue: int
    paid: int


class RemittanceListResponse(BaseModel):
    """Remittances with summary."""
    items: List[StatutoryRemittanceResponse]
    summary: RemittanceSummary


class RemittancePaymentResponse(BaseModel):
    """Result of recording a remittance payment."""
    remittance: StatutoryRemittanceResponse
    payment_amount: Decimal
    journal_entry_id: UUID


# ===========================================
# STATUTORY RULES
# ===========================================

class StatutoryRuleSetResponse(BaseModel):
    """Statutory rates effective on a date."""
    model_config = ConfigDict(from_attributes=True)

    version: str
    effective_from: date
    nis_employee_rate: Decimal
    nis_employer_rate: Decimal
    nis_annual_ceiling: Decimal
    monthly_nis_ceiling: Decimal
    nht_employee_rate: Decimal
    nht_employer_rate: Decimal
    education_tax_employee_rate: Decimal
    education_tax_employer_rate: Decimal
    heart_employer_rate: Decimal
    paye_annual_threshold: Decimal
    paye_band1_rate: Decimal
    paye_band1_upper: Decimal
    paye_band2_rate: Decimal
