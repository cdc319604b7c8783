"""
Ledgerline Payroll - Database Models

All SQLAlchemy models for the application.
"""

from app.models.base import BaseModel, TimestampMixin, AuditMixin
from app.models.accounting import (
    JournalEntry,
    JournalEntryLine,
    JournalEntryStatus,
    JournalEntryType,
)
from app.models.payroll import (
    Employee,
    PayrollEntry,
    PayrollFrequency,
    PayrollRun,
    PayrollRunType,
    PayrollStatus,
    RemittanceStatus,
    RemittanceType,
    StatutoryRemittance,
)

__all__ = [
    # Base
    "BaseModel",
    "TimestampMixin",
    "AuditMixin",
    # Accounting
    "JournalEntry",
    "JournalEntryLine",
    "JournalEntryStatus",
    "JournalEntryType",
    # Payroll
    "Employee",
    "PayrollEntry",
    "PayrollFrequency",
    "PayrollRun",
    "PayrollRunType",
    "PayrollStatus",
    "RemittanceStatus",
    "RemittanceType",
    "StatutoryRemittance",
]
