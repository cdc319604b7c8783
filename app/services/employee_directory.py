"""
Ledgerline Payroll - Employee Directory

Read-only lookup of employee master data for payroll. Employee records
are maintained elsewhere; payroll only needs the salary snapshot and
active flag at run creation.
"""

import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.payroll import Employee, PayrollFrequency


@dataclass(frozen=True)
class EmployeeSnapshot:
    """Employee attributes payroll reads at run creation."""
    id: uuid.UUID
    employee_number: str
    full_name: str
    base_salary: Decimal
    pay_frequency: PayrollFrequency
    is_active: bool


class EmployeeDirectory(ABC):
    """Abstract employee lookup used by the payroll service."""

    @abstractmethod
    async def get(self, employee_id: uuid.UUID) -> Optional[EmployeeSnapshot]:
        """Return the employee, or None if unknown."""
        pass

    async def get_many(self, employee_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, EmployeeSnapshot]:
        found = {}
        for employee_id in employee_ids:
            snapshot = await self.get(employee_id)
            if snapshot is not None:
                found[employee_id] = snapshot
        return found


class SQLEmployeeDirectory(EmployeeDirectory):
    """Employee directory backed by the employees table of one company."""

    def __init__(self, db: AsyncSession, entity_id: uuid.UUID):
        self.db = db
        self.entity_id = entity_id

    @staticmethod
    def _snapshot(employee: Employee) -> EmployeeSnapshot:
        return EmployeeSnapshot(
            id=employee.id,
            employee_number=employee.employee_number,
            full_name=employee.full_name,
            base_salary=employee.base_salary,
            pay_frequency=employee.pay_frequency,
            is_active=employee.is_active,
        )

    async def get(self, employee_id: uuid.UUID) -> Optional[EmployeeSnapshot]:
        result = await self.db.execute(
            select(Employee)
            .where(Employee.id == employee_id)
            .where(Employee.entity_id == self.entity_id)
        )
        employee = result.scalar_one_or_none()
        return self._snapshot(employee) if employee else None

    async def get_many(self, employee_ids: Iterable[uuid.UUID]) -> Dict[uuid.UUID, EmployeeSnapshot]:
        ids = list(employee_ids)
        if not ids:
            return {}
        result = await self.db.execute(
            select(Employee)
            .where(Employee.id.in_(ids))
            .where(Employee.entity_id == self.entity_id)
        )
        return {employee.id: self._snapshot(employee) for employee in result.scalars().all()}
