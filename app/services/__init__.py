"""
Ledgerline Payroll - Services Package

Business logic services.
"""

from app.services.employee_directory import EmployeeDirectory, EmployeeSnapshot, SQLEmployeeDirectory
from app.services.gl_event_service import GeneralLedger, GLEventService, GLPostingResult
from app.services.payroll_service import PayrollEntryInput, PayrollService
from app.services.remittance_service import RemittanceService

# Tax Calculators
from app.services.tax_calculators import PayrollCalculator, StatutoryRuleSet, get_rule_set

__all__ = [
    "EmployeeDirectory",
    "EmployeeSnapshot",
    "SQLEmployeeDirectory",
    "GeneralLedger",
    "GLEventService",
    "GLPostingResult",
    "PayrollEntryInput",
    "PayrollService",
    "RemittanceService",
    "PayrollCalculator",
    "StatutoryRuleSet",
    "get_rule_set",
]
