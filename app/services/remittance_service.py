"""
Ledgerline Payroll - Statutory Remittance Service

Aggregates approved payroll into monthly statutory remittances payable
to Tax Administration Jamaica, and records their payment.

Per company, remittance type and month there is exactly one record:
- PAYE          = employee PAYE
- NIS           = employee NIS + employer NIS
- NHT           = employee NHT + employer NHT
- EDUCATION_TAX = employee Education Tax + employer Education Tax
- HEART_NTA     = employer HEART/NTA levy

Generation is idempotent: re-running it recomputes amount_due from every
APPROVED or PAID run whose pay date falls in the month and never touches
payment fields. Remittances are due on the 14th of the following month.
"""

import logging
import uuid
from datetime import date
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, update, extract
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.payroll import (
    PayrollRun, PayrollStatus, RemittanceStatus, RemittanceType, StatutoryRemittance,
)
from app.services.gl_event_service import (
    GeneralLedger, GLEventService, build_remittance_payment_entry,
)
from app.utils.error_handling import (
    AppException,
    ConflictException,
    ErrorCode,
    LedgerPostingException,
    RemittanceAlreadyPaidException,
    RemittanceNotFoundException,
    ValidationException,
)
from app.utils.money import ZERO, money, sum_money

logger = logging.getLogger(__name__)


# Run total columns making up each remittance: (employee side, employer side)
REMITTANCE_COMPONENTS: Dict[RemittanceType, Tuple[Tuple[str, ...], Tuple[str, ...]]] = {
    RemittanceType.PAYE: (("total_paye",), ()),
    RemittanceType.NIS: (("total_nis",), ("total_employer_nis",)),
    RemittanceType.NHT: (("total_nht",), ("total_employer_nht",)),
    RemittanceType.EDUCATION_TAX: (("total_education_tax",), ("total_employer_education_tax",)),
    RemittanceType.HEART_NTA: ((), ("total_heart",)),
}

REMITTABLE_STATUSES = (PayrollStatus.APPROVED, PayrollStatus.PAID)


def remittance_due_date(year: int, month: int, due_day: Optional[int] = None) -> date:
    """Due date for a period: the configured day of the following month."""
    day = due_day or settings.remittance_due_day
    if month == 12:
        return date(year + 1, 1, day)
    return date(year, month + 1, day)


def summarize_remittances(records: List[StatutoryRemittance], today: date) -> Dict[str, Any]:
    """Totals and status counts for a list of remittances."""
    statuses = [record.status_on(today) for record in records]
    total_due = sum_money(record.amount_due for record in records)
    total_paid = sum_money(record.amount_paid for record in records)
    return {
        "total_due": total_due,
        "total_paid": total_paid,
        "outstanding": sum_money(record.outstanding for record in records),
        "pending": statuses.count(RemittanceStatus.PENDING),
        "overdue": statuses.count(RemittanceStatus.OVERDUE),
        "paid": statuses.count(RemittanceStatus.PAID),
    }


class RemittanceService:
    """Service for statutory remittance aggregation and payment."""

    def __init__(self, db: AsyncSession, ledger: Optional[GeneralLedger] = None):
        self.db = db
        self.ledger = ledger or GLEventService(db)

    # ===========================================
    # QUERIES
    # ===========================================

    async def _qualifying_runs(self, entity_id: uuid.UUID, year: int, month: int) -> List[PayrollRun]:
        result = await self.db.execute(
            select(PayrollRun)
            .where(PayrollRun.entity_id == entity_id)
            .where(PayrollRun.status.in_(REMITTABLE_STATUSES))
            .where(extract('year', PayrollRun.pay_date) == year)
            .where(extract('month', PayrollRun.pay_date) == month)
            .execution_options(populate_existing=True)
        )
        return list(result.scalars().all())

    @staticmethod
    def _component_totals(runs: List[PayrollRun], remittance_type: RemittanceType) -> Tuple[Decimal, Decimal]:
        """Return (employee_portion, employer_portion) for a type across runs."""
        employee_fields, employer_fields = REMITTANCE_COMPONENTS[remittance_type]
        employee = sum_money(getattr(run, name) for run in runs for name in employee_fields)
        employer = sum_money(getattr(run, name) for run in runs for name in employer_fields)
        return employee, employer

    async def _find(
        self,
        entity_id: uuid.UUID,
        remittance_type: RemittanceType,
        year: int,
        month: int,
    ) -> Optional[StatutoryRemittance]:
        result = await self.db.execute(
            select(StatutoryRemittance)
            .where(StatutoryRemittance.entity_id == entity_id)
            .where(StatutoryRemittance.remittance_type == remittance_type)
            .where(StatutoryRemittance.period_year == year)
            .where(StatutoryRemittance.period_month == month)
        )
        return result.scalar_one_or_none()

    async def get_remittance(
        self,
        entity_id: uuid.UUID,
        remittance_id: uuid.UUID,
    ) -> Optional[StatutoryRemittance]:
        result = await self.db.execute(
            select(StatutoryRemittance)
            .where(StatutoryRemittance.id == remittance_id)
            .where(StatutoryRemittance.entity_id == entity_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_remittances(
        self,
        entity_id: uuid.UUID,
        year: Optional[int] = None,
        month: Optional[int] = None,
        remittance_type: Optional[RemittanceType] = None,
        today: Optional[date] = None,
    ) -> Tuple[List[StatutoryRemittance], Dict[str, Any]]:
        """List remittances (newest period first) with a summary."""
        query = select(StatutoryRemittance).where(StatutoryRemittance.entity_id == entity_id)

        if year:
            query = query.where(StatutoryRemittance.period_year == year)
        if month:
            query = query.where(StatutoryRemittance.period_month == month)
        if remittance_type:
            query = query.where(StatutoryRemittance.remittance_type == remittance_type)

        query = query.order_by(
            StatutoryRemittance.period_year.desc(),
            StatutoryRemittance.period_month.desc(),
            StatutoryRemittance.remittance_type,
        ).execution_options(populate_existing=True)

        result = await self.db.execute(query)
        records = list(result.scalars().all())
        return records, summarize_remittances(records, today or date.today())

    # ===========================================
    # GENERATION
    # ===========================================

    @staticmethod
    def _validate_period(year: int, month: int) -> None:
        if not 2000 <= year <= 2100:
            raise ValidationException(
                f"Year must be between 2000 and 2100, got {year}",
                field="year",
                code=ErrorCode.INVALID_TAX_PERIOD,
            )
        if not 1 <= month <= 12:
            raise ValidationException(
                f"Month must be between 1 and 12, got {month}",
                field="month",
                code=ErrorCode.INVALID_TAX_PERIOD,
            )

    async def _upsert(
        self,
        entity_id: uuid.UUID,
        remittance_type: RemittanceType,
        year: int,
        month: int,
        amount_due: Decimal,
        due_date: date,
        user_id: Optional[uuid.UUID],
    ) -> Optional[StatutoryRemittance]:
        """
        Insert or update the record for (company, type, period).

        Only amount_due and due_date are written on update. A zero amount
        never creates a record but does update an existing one.
        """
        existing = await self._find(entity_id, remittance_type, year, month)
        if existing is None and amount_due == 0:
            return None

        if existing is None:
            record = StatutoryRemittance(
                entity_id=entity_id,
                remittance_type=remittance_type,
                period_year=year,
                period_month=month,
                amount_due=amount_due,
                amount_paid=ZERO,
                due_date=due_date,
                created_by_id=user_id,
                updated_by_id=user_id,
            )
            try:
                async with self.db.begin_nested():
                    self.db.add(record)
                return record
            except IntegrityError:
                # Another writer created the record first; fall through to update
                logger.info(
                    f"Remittance {remittance_type.value} {year}-{month:02d} created concurrently, updating",
                    extra={"entity_id": str(entity_id)},
                )
                existing = await self._find(entity_id, remittance_type, year, month)
                if existing is None:
                    raise

        existing.amount_due = amount_due
        existing.due_date = due_date
        existing.updated_by_id = user_id
        return existing

    async def generate_remittances(
        self,
        entity_id: uuid.UUID,
        year: int,
        month: int,
        user_id: Optional[uuid.UUID] = None,
        today: Optional[date] = None,
    ) -> Tuple[List[StatutoryRemittance], Dict[str, Any]]:
        """
        Compute and upsert the month's remittances from approved payroll.

        All types are written in one transaction.

        Raises:
            ValidationException: invalid period, or no approved/paid runs in it
        """
        self._validate_period(year, month)

        runs = await self._qualifying_runs(entity_id, year, month)
        if not runs:
            raise ValidationException(
                f"No approved payroll runs with a pay date in {year}-{month:02d}",
                field="month",
                details={"year": year, "month": month},
            )

        due_date = remittance_due_date(year, month)
        try:
            for remittance_type in RemittanceType:
                employee, employer = self._component_totals(runs, remittance_type)
                await self._upsert(
                    entity_id, remittance_type, year, month, money(employee + employer), due_date, user_id,
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            f"Generated remittances for {year}-{month:02d} from {len(runs)} payroll runs",
            extra={"entity_id": str(entity_id)},
        )
        return await self.list_remittances(entity_id, year=year, month=month, today=today)

    # ===========================================
    # PAYMENT
    # ===========================================

    async def record_payment(
        self,
        entity_id: uuid.UUID,
        remittance_id: uuid.UUID,
        payment_date: date,
        reference_number: Optional[str] = None,
        bank_account_code: Optional[str] = None,
        notes: Optional[str] = None,
        user_id: Optional[uuid.UUID] = None,
    ) -> Tuple[StatutoryRemittance, Decimal, uuid.UUID]:
        """
        Pay the outstanding amount of a remittance and post it to the ledger.

        Returns:
            Tuple of (remittance, amount paid now, journal entry id)

        Raises:
            RemittanceNotFoundException: unknown remittance
            RemittanceAlreadyPaidException: nothing outstanding
            LedgerPostingException: ledger rejected the posting (nothing saved)
        """
        remittance = await self.get_remittance(entity_id, remittance_id)
        if remittance is None:
            raise RemittanceNotFoundException(remittance_id)

        previously_paid = remittance.amount_paid
        amount = money(remittance.amount_due - previously_paid)
        if amount <= 0:
            raise RemittanceAlreadyPaidException(remittance_id)

        # Payments clear the employee withholding account before the employer account
        runs = await self._qualifying_runs(entity_id, remittance.period_year, remittance.period_month)
        employee_total, _ = self._component_totals(runs, remittance.remittance_type)
        employee_outstanding = max(employee_total - previously_paid, ZERO)

        result = await self.db.execute(
            update(StatutoryRemittance)
            .where(StatutoryRemittance.id == remittance_id)
            .where(StatutoryRemittance.amount_paid == previously_paid)
            .values(
                amount_paid=previously_paid + amount,
                payment_date=payment_date,
                reference_number=reference_number,
                notes=notes,
                updated_by_id=user_id,
            )
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await self.db.rollback()
            raise ConflictException(
                f"Remittance '{remittance_id}' was modified concurrently",
                resource_type="StatutoryRemittance",
                details={"resource_id": str(remittance_id)},
            )

        request = build_remittance_payment_entry(
            remittance,
            amount=amount,
            payment_date=payment_date,
            bank_account_code=bank_account_code or settings.default_bank_account_code,
            employee_portion=employee_outstanding,
            reference_number=reference_number,
            user_id=user_id,
        )
        try:
            posting = await self.ledger.post(request)
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Payment of remittance {remittance_id} aborted: ledger posting failed",
                extra={"entity_id": str(entity_id)},
            )
            if isinstance(e, AppException):
                raise
            raise LedgerPostingException(str(e), original_error=e) from e

        await self.db.execute(
            update(StatutoryRemittance)
            .where(StatutoryRemittance.id == remittance_id)
            .values(journal_entry_id=posting.journal_entry_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(
            f"Recorded payment of {amount} for remittance {remittance_id}, posted {posting.entry_number}",
            extra={"entity_id": str(entity_id)},
        )
        return await self.get_remittance(entity_id, remittance_id), amount, posting.journal_entry_id
