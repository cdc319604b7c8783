"""
Ledgerline Payroll - Retroactive Salary Increase (Back Pay)

When a raise takes effect before the payroll that first pays it, the
employee is owed the difference for every pay period already paid at
the old salary.

Computation:
1. Periods between the effective date and the through date:
   whole calendar months for MONTHLY, whole 14/7-day spans for
   BI_WEEKLY/WEEKLY
2. Per-period difference = monthly salary difference x 12 / periods per year
3. Statutory amounts: one period at the new salary minus one period at
   the old salary, scaled the same way and multiplied by the periods
4. Net back pay = gross back pay - statutory deductions difference
"""

from dataclasses import dataclass, asdict
from datetime import date
from decimal import Decimal
from typing import Any, Dict

from app.models.payroll import PayrollFrequency
from app.services.tax_calculators.payroll_calculator import EarningsInput, PayrollCalculator
from app.utils.error_handling import (
    InvalidAmountException,
    InvalidDateRangeException,
    ValidationException,
)
from app.utils.money import money, to_decimal


PERIODS_PER_YEAR: Dict[PayrollFrequency, int] = {
    PayrollFrequency.WEEKLY: 52,
    PayrollFrequency.BI_WEEKLY: 26,
    PayrollFrequency.MONTHLY: 12,
}

DEDUCTION_FIELDS = ("paye", "nis", "nht", "education_tax")
EMPLOYER_FIELDS = ("employer_nis", "employer_nht", "employer_education_tax", "heart_contribution")


@dataclass
class BackPayCalculation:
    """Lump-sum back pay owed for a retroactive raise."""
    old_salary: Decimal
    new_salary: Decimal
    frequency: PayrollFrequency
    effective_date: date
    through_date: date
    periods: int
    period_difference: Decimal

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

    @property
    def total_cost(self) -> Decimal:
        return self.gross_pay + self.total_employer_contributions

    def to_dict(self) -> Dict[str, Any]:
        values = asdict(self)
        values["total_cost"] = self.total_cost
        return values


def count_pay_periods(effective_date: date, through_date: date, frequency: PayrollFrequency) -> int:
    """Pay periods from ``effective_date`` up to ``through_date``."""
    if frequency == PayrollFrequency.MONTHLY:
        return (
            (through_date.year - effective_date.year) * 12
            + through_date.month - effective_date.month
        )
    days = (through_date - effective_date).days
    span = 14 if frequency == PayrollFrequency.BI_WEEKLY else 7
    return days // span


def calculate_back_pay(
    calculator: PayrollCalculator,
    old_salary: Any,
    new_salary: Any,
    effective_date: date,
    through_date: date,
    frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
) -> BackPayCalculation:
    """
    Compute back pay for a raise from ``old_salary`` to ``new_salary``
    (monthly amounts) effective ``effective_date``.

    Raises:
        InvalidAmountException: a salary is negative or not numeric
        ValidationException: the new salary is not higher, or no pay
            period falls between the dates
        InvalidDateRangeException: through date before effective date
    """
    amounts = {}
    for name, raw in (("old_salary", old_salary), ("new_salary", new_salary)):
        try:
            amount = to_decimal(raw)
        except ValueError:
            raise InvalidAmountException(raw, field=name)
        if amount < 0:
            raise InvalidAmountException(raw, field=name)
        amounts[name] = money(amount)
    old, new = amounts["old_salary"], amounts["new_salary"]

    if new <= old:
        raise ValidationException(
            "New salary must be greater than the current salary for back pay",
            field="new_base_salary",
            details={"current_salary": str(old), "new_salary": str(new)},
        )
    if through_date < effective_date:
        raise InvalidDateRangeException(
            effective_date.isoformat(), through_date.isoformat(), field="through_date",
        )

    periods = count_pay_periods(effective_date, through_date, frequency)
    if periods <= 0:
        raise ValidationException(
            "No pay periods between the effective date and the through date",
            field="through_date",
            details={"frequency": frequency.value},
        )

    per_year = PERIODS_PER_YEAR[frequency]
    new_calc = calculator.calculate(EarningsInput(basic_salary=new))
    old_calc = calculator.calculate(EarningsInput(basic_salary=old))

    def scaled(monthly_difference: Decimal) -> Decimal:
        return money(monthly_difference * periods * 12 / per_year)

    deductions = {
        name: scaled(getattr(new_calc, name) - getattr(old_calc, name)) for name in DEDUCTION_FIELDS
    }
    employer = {
        name: scaled(getattr(new_calc, name) - getattr(old_calc, name)) for name in EMPLOYER_FIELDS
    }
    gross = scaled(new - old)
    total_deductions = sum(deductions.values())

    return BackPayCalculation(
        old_salary=old,
        new_salary=new,
        frequency=frequency,
        effective_date=effective_date,
        through_date=through_date,
        periods=periods,
        period_difference=money((new - old) * 12 / per_year),
        gross_pay=gross,
        total_deductions=total_deductions,
        net_pay=gross - total_deductions,
        total_employer_contributions=sum(employer.values()),
        **deductions,
        **employer,
    )
