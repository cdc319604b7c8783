"""
Ledgerline Payroll - Tax Calculators Package

Statutory payroll calculations for Jamaica.

Modules:
- statutory_rules: versioned rates, ceilings and PAYE bands
- payroll_calculator: gross-to-net computation per employee
- back_pay: lump-sum differential for retroactive raises
"""

from datetime import date
from decimal import Decimal

from app.services.tax_calculators.statutory_rules import (
    JAMAICA_RULE_SETS,
    StatutoryRuleSet,
    get_rule_set,
    get_rule_set_by_version,
)
from app.services.tax_calculators.back_pay import (
    BackPayCalculation,
    calculate_back_pay,
    count_pay_periods,
)
from app.services.tax_calculators.payroll_calculator import (
    EarningsInput,
    PayrollCalculation,
    PayrollCalculator,
)


# ===========================================
# CONVENIENCE FUNCTIONS
# ===========================================

def calculate_monthly_paye(gross: Decimal, on_date: date) -> Decimal:
    """
    Calculate monthly PAYE on a period's gross pay.

    Args:
        gross: Gross pay for the period
        on_date: Date used to pick the statutory rule set

    Returns:
        PAYE amount rounded to the cent
    """
    return PayrollCalculator(get_rule_set(on_date)).calculate_paye(gross)


def calculate_net_pay(earnings: EarningsInput, on_date: date) -> PayrollCalculation:
    """Full gross-to-net breakdown using the rules effective on ``on_date``."""
    return PayrollCalculator(get_rule_set(on_date)).calculate(earnings)


__all__ = [
    "JAMAICA_RULE_SETS",
    "StatutoryRuleSet",
    "get_rule_set",
    "get_rule_set_by_version",
    "EarningsInput",
    "PayrollCalculation",
    "PayrollCalculator",
    "calculate_monthly_paye",
    "calculate_net_pay",
    "BackPayCalculation",
    "calculate_back_pay",
    "count_pay_periods",
]
