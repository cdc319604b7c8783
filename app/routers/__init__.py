"""
Ledgerline Payroll - Routers Package

FastAPI route handlers.

Routers:
- payroll: Payroll runs, statutory remittances and statutory rates
"""

from app.routers import payroll

__all__ = [
    "payroll",
]
