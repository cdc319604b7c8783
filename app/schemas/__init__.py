"""
Ledgerline Payroll - Schemas Package

Pydantic schemas for request/response validation.
"""

from app.schemas.payroll import (
    # Payroll entries
    PayrollEntryCreate,
    PayrollEntryUpdate,
    PayrollEntryResponse,
    # Payroll runs
    PayrollRunCreate,
    PayrollRunSummary,
    PayrollRunResponse,
    PayrollRunListResponse,
    # Back pay
    BackPayRequest,
    BackPayCalculationResponse,
    # Remittances
    RemittanceGenerateRequest,
    RemittancePaymentRequest,
    StatutoryRemittanceResponse,
    RemittanceSummary,
    RemittanceListResponse,
    RemittancePaymentResponse,
    # Rules
    StatutoryRuleSetResponse,
)

__all__ = [
    "PayrollEntryCreate",
    "PayrollEntryUpdate",
    "PayrollEntryResponse",
    "PayrollRunCreate",
    "PayrollRunSummary",
    "PayrollRunResponse",
    "PayrollRunListResponse",
    "BackPayRequest",
    "BackPayCalculationResponse",
    "RemittanceGenerateRequest",
    "RemittancePaymentRequest",
    "StatutoryRemittanceResponse",
    "RemittanceSummary",
    "RemittanceListResponse",
    "RemittancePaymentResponse",
    "StatutoryRuleSetResponse",
]
