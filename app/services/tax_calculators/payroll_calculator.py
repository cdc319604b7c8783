"""
Ledgerline Payroll - Gross-to-Net Payroll Calculator

Pure computation of one employee's pay for one period against a
StatutoryRuleSet. No database access.

Order of computation:
1. Gross = basic + overtime + bonus + commission + allowances
2. NIS employee on gross capped at the monthly ceiling; employer NIS on full gross
3. NHT and Education Tax on gross, each independently
4. PAYE on annualised gross (gross x 12) above the threshold, two bands,
   divided back to a monthly figure
5. Total deductions = PAYE + NIS + NHT + Education Tax + pension + other
6. Net = gross - total deductions (may be negative; approval rejects that)
7. Employer contributions (NIS, NHT, Education Tax, HEART/NTA) never reduce net
"""

from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, List, Tuple

from app.services.tax_calculators.statutory_rules import StatutoryRuleSet
from app.utils.error_handling import InvalidAmountException
from app.utils.money import ZERO, money, sum_money, to_decimal


EARNING_FIELDS = ("basic_salary", "overtime", "bonus", "commission", "allowances")
DEDUCTION_INPUT_FIELDS = ("pension_contribution", "other_deductions")


@dataclass
class EarningsInput:
    """Per-employee inputs for one pay period."""
    basic_salary: Decimal = ZERO
    overtime: Decimal = ZERO
    bonus: Decimal = ZERO
    commission: Decimal = ZERO
    allowances: Decimal = ZERO
    pension_contribution: Decimal = ZERO
    other_deductions: Decimal = ZERO

    def validated(self) -> "EarningsInput":
        """
        Return a copy with every amount as a cent-rounded Decimal.

        Raises:
            InvalidAmountException: an amount is negative or not numeric
        """
        values = {}
        for name in EARNING_FIELDS + DEDUCTION_INPUT_FIELDS:
            raw = getattr(self, name)
            try:
                amount = to_decimal(raw)
            except ValueError:
                raise InvalidAmountException(raw, field=name)
            if amount < 0:
                raise InvalidAmountException(raw, field=name)
            values[name] = money(amount)
        return EarningsInput(**values)


@dataclass
class PayrollCalculation:
    """Result of a gross-to-net computation."""
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

    @property
    def has_negative_net_pay(self) -> bool:
        return self.net_pay < 0

    def is_consistent(self) -> bool:
        """Check the gross/deduction/net identities hold to the cent."""
        gross = self.basic_salary + self.overtime + self.bonus + self.commission + self.allowances
        deductions = (
            self.paye + self.nis + self.nht + self.education_tax
            + self.pension_contribution + self.other_deductions
        )
        employer = (
            self.employer_nis + self.employer_nht
            + self.employer_education_tax + self.heart_contribution
        )
        return (
            gross == self.gross_pay
            and deductions == self.total_deductions
            and self.gross_pay - self.total_deductions == self.net_pay
            and employer == self.total_employer_contributions
        )

    def to_dict(self) -> Dict[str, Decimal]:
        return asdict(self)


class PayrollCalculator:
    """
    Gross-to-net payroll calculator for Jamaican statutory deductions.

    Every component is rounded half-up to the cent on its own; totals are
    sums of the rounded components so the identities hold exactly.
    """

    def __init__(self, rules: StatutoryRuleSet):
        self.rules = rules

    @staticmethod
    def calculate_gross(earnings: EarningsInput) -> Decimal:
        return money(
            earnings.basic_salary
            + earnings.overtime
            + earnings.bonus
            + earnings.commission
            + earnings.allowances
        )

    def calculate_nis(self, gross: Decimal) -> Tuple[Decimal, Decimal]:
        """
        Calculate NIS contributions.

        Employee NIS is capped at the monthly insurable ceiling; the employer
        portion is charged on the full gross.

        Returns:
            Tuple of (employee_nis, employer_nis)
        """
        insurable = min(gross, self.rules.monthly_nis_ceiling)
        employee = money(insurable * self.rules.nis_employee_rate)
        employer = money(gross * self.rules.nis_employer_rate)
        return employee, employer

    def calculate_nht(self, gross: Decimal) -> Tuple[Decimal, Decimal]:
        return (
            money(gross * self.rules.nht_employee_rate),
            money(gross * self.rules.nht_employer_rate),
        )

    def calculate_education_tax(self, gross: Decimal) -> Tuple[Decimal, Decimal]:
        return (
            money(gross * self.rules.education_tax_employee_rate),
            money(gross * self.rules.education_tax_employer_rate),
        )

    def calculate_heart(self, gross: Decimal) -> Decimal:
        return money(gross * self.rules.heart_employer_rate)

    def calculate_annual_paye(self, annual_income: Decimal) -> Decimal:
        """Annual PAYE on annual income, unrounded."""
        rules = self.rules
        if annual_income <= rules.paye_annual_threshold:
            return ZERO

        taxable = annual_income - rules.paye_annual_threshold
        band1_width = rules.paye_band1_width
        if taxable <= band1_width:
            return taxable * rules.paye_band1_rate
        return band1_width * rules.paye_band1_rate + (taxable - band1_width) * rules.paye_band2_rate

    def calculate_paye(self, gross: Decimal) -> Decimal:
        """
        Monthly PAYE for a period's gross.

        The gross is annualised as gross x 12 regardless of pay frequency,
        and the annual tax is divided by 12.
        """
        annual_tax = self.calculate_annual_paye(gross * 12)
        return money(annual_tax / 12)

    def calculate(self, earnings: EarningsInput) -> PayrollCalculation:
        """
        Compute a full gross-to-net breakdown.

        Raises:
            InvalidAmountException: an input amount is negative or not numeric
        """
        earnings = earnings.validated()
        gross = self.calculate_gross(earnings)

        nis, employer_nis = self.calculate_nis(gross)
        nht, employer_nht = self.calculate_nht(gross)
        education_tax, employer_education_tax = self.calculate_education_tax(gross)
        paye = self.calculate_paye(gross)
        heart = self.calculate_heart(gross)

        total_deductions = (
            paye + nis + nht + education_tax
            + earnings.pension_contribution + earnings.other_deductions
        )
        net_pay = gross - total_deductions
        total_employer = employer_nis + employer_nht + employer_education_tax + heart

        return PayrollCalculation(
            basic_salary=earnings.basic_salary,
            overtime=earnings.overtime,
            bonus=earnings.bonus,
            commission=earnings.commission,
            allowances=earnings.allowances,
            gross_pay=gross,
            paye=paye,
            nis=nis,
            nht=nht,
            education_tax=education_tax,
            pension_contribution=earnings.pension_contribution,
            other_deductions=earnings.other_deductions,
            total_deductions=total_deductions,
            net_pay=net_pay,
            employer_nis=employer_nis,
            employer_nht=employer_nht,
            employer_education_tax=employer_education_tax,
            heart_contribution=heart,
            total_employer_contributions=total_employer,
        )

    def calculate_batch(
        self,
        inputs: List[EarningsInput],
    ) -> Tuple[List[PayrollCalculation], Dict[str, Any]]:
        """
        Calculate several employees at once.

        Returns:
            Tuple of (calculations, totals) where totals sums every
            monetary field across the calculations.
        """
        calculations = [self.calculate(earnings) for earnings in inputs]
        totals: Dict[str, Any] = {"employee_count": len(calculations)}
        for name in PayrollCalculation.__dataclass_fields__:
            totals[name] = sum_money(getattr(calc, name) for calc in calculations)
        return calculations, totals
