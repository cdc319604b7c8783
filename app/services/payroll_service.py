"""
Ledgerline Payroll - Payroll Service

Payroll run lifecycle with Jamaican statutory deductions.

Lifecycle:
    DRAFT ──approve──> APPROVED ──mark_paid──> PAID

1. Create (DRAFT)
   - Every employee must be known to the employee directory and active
   - Basic salary defaults to the employee's base salary snapshot
   - The statutory rule set effective on the pay date is snapshotted on the run

2. Edit entry (DRAFT only)
   - Recomputed with the run's own rule snapshot; run totals recomputed

3. Approve (DRAFT -> APPROVED)
   - Entry identities and non-negative net pay verified
   - Status changed by compare-and-swap on (status, version)
   - Accrual journal entry posted to the general ledger in the same
     transaction; any failure rolls both back and the run stays DRAFT

4. Mark paid (APPROVED -> PAID)

Back-pay runs hold a single lump-sum entry for a retroactive raise and
follow the same lifecycle, except that their entry cannot be edited.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy import select, func, update, extract
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.models.payroll import (
    PayrollEntry, PayrollFrequency, PayrollRun, PayrollRunType, PayrollStatus,
)
from app.services.employee_directory import EmployeeDirectory, EmployeeSnapshot, SQLEmployeeDirectory
from app.services.gl_event_service import GeneralLedger, GLEventService, build_payroll_entry
from app.services.tax_calculators.back_pay import BackPayCalculation, calculate_back_pay
from app.services.tax_calculators.payroll_calculator import (
    DEDUCTION_INPUT_FIELDS,
    EARNING_FIELDS,
    EarningsInput,
    PayrollCalculation,
    PayrollCalculator,
)
from app.services.tax_calculators.statutory_rules import StatutoryRuleSet, get_rule_set
from app.utils.error_handling import (
    AppException,
    ComputationInvariantException,
    ConflictException,
    ErrorCode,
    InactiveEmployeeException,
    InvalidDateRangeException,
    InvalidStateTransitionException,
    LedgerPostingException,
    NegativeNetPayException,
    PayrollEntryNotFoundException,
    PayrollRunNotFoundException,
    UnknownEmployeeException,
    ValidationException,
)
from app.utils.money import ZERO, sum_money

logger = logging.getLogger(__name__)


# ===========================================
# STATE MACHINE
# ===========================================

APPROVE = "approve"
MARK_PAID = "mark_paid"
EDIT = "edit"

RUN_NUMBER_ATTEMPTS = 3

PAYROLL_TRANSITIONS: Dict[Tuple[PayrollStatus, str], PayrollStatus] = {
    (PayrollStatus.DRAFT, APPROVE): PayrollStatus.APPROVED,
    (PayrollStatus.APPROVED, MARK_PAID): PayrollStatus.PAID,
}


def required_status(action: str) -> PayrollStatus:
    """Status a run must be in for ``action``."""
    if action == EDIT:
        return PayrollStatus.DRAFT
    for (from_status, transition), _ in PAYROLL_TRANSITIONS.items():
        if transition == action:
            return from_status
    raise ValueError(f"Unknown payroll action: {action}")


def next_status(
    current: PayrollStatus,
    action: str,
    run_id: Optional[uuid.UUID] = None,
) -> PayrollStatus:
    """
    Resolve the status a run moves to for ``action``.

    Raises:
        InvalidStateTransitionException: action not allowed from ``current``
    """
    target = PAYROLL_TRANSITIONS.get((current, action))
    if target is None:
        raise InvalidStateTransitionException(
            resource_id=run_id or "",
            action=action,
            expected_status=required_status(action).value,
            actual_status=current.value,
        )
    return target


# ===========================================
# INPUTS
# ===========================================

@dataclass
class PayrollEntryInput:
    """Earnings and employee-side deductions for one employee in a new run."""
    employee_id: uuid.UUID
    basic_salary: Optional[Decimal] = None
    overtime: Decimal = ZERO
    bonus: Decimal = ZERO
    commission: Decimal = ZERO
    allowances: Decimal = ZERO
    pension_contribution: Decimal = ZERO
    other_deductions: Decimal = ZERO


ENTRY_INPUT_FIELDS = EARNING_FIELDS + DEDUCTION_INPUT_FIELDS

RUN_TOTAL_FIELDS = {
    "total_gross_pay": "gross_pay",
    "total_deductions": "total_deductions",
    "total_net_pay": "net_pay",
    "total_employer_contributions": "total_employer_contributions",
    "total_paye": "paye",
    "total_nis": "nis",
    "total_nht": "nht",
    "total_education_tax": "education_tax",
    "total_pension": "pension_contribution",
    "total_other_deductions": "other_deductions",
    "total_employer_nis": "employer_nis",
    "total_employer_nht": "employer_nht",
    "total_employer_education_tax": "employer_education_tax",
    "total_heart": "heart_contribution",
}


def _apply_calculation(entry: PayrollEntry, calc: PayrollCalculation) -> None:
    for name, value in calc.to_dict().items():
        setattr(entry, name, value)


def _apply_totals(run: PayrollRun, entries: List[PayrollEntry]) -> None:
    run.total_employees = len(entries)
    for run_field, entry_field in RUN_TOTAL_FIELDS.items():
        setattr(run, run_field, sum_money(getattr(entry, entry_field) for entry in entries))


def _entry_is_consistent(entry: PayrollEntry) -> bool:
    gross = entry.basic_salary + entry.overtime + entry.bonus + entry.commission + entry.allowances
    deductions = (
        entry.paye + entry.nis + entry.nht + entry.education_tax
        + entry.pension_contribution + entry.other_deductions
    )
    employer = (
        entry.employer_nis + entry.employer_nht
        + entry.employer_education_tax + entry.heart_contribution
    )
    return (
        gross == entry.gross_pay
        and deductions == entry.total_deductions
        and entry.gross_pay - entry.total_deductions == entry.net_pay
        and employer == entry.total_employer_contributions
    )


class PayrollService:
    """Service for payroll run creation, editing and lifecycle transitions."""

    def __init__(
        self,
        db: AsyncSession,
        ledger: Optional[GeneralLedger] = None,
        directory: Optional[EmployeeDirectory] = None,
    ):
        self.db = db
        self.ledger = ledger or GLEventService(db)
        self._directory = directory

    def directory_for(self, entity_id: uuid.UUID) -> EmployeeDirectory:
        return self._directory or SQLEmployeeDirectory(self.db, entity_id)

    # ===========================================
    # QUERIES
    # ===========================================

    async def get_payroll_run(
        self,
        entity_id: uuid.UUID,
        run_id: uuid.UUID,
    ) -> Optional[PayrollRun]:
        """Get payroll run by ID with its entries."""
        result = await self.db.execute(
            select(PayrollRun)
            .options(selectinload(PayrollRun.entries))
            .where(PayrollRun.id == run_id)
            .where(PayrollRun.entity_id == entity_id)
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def _require_run(self, entity_id: uuid.UUID, run_id: uuid.UUID) -> PayrollRun:
        run = await self.get_payroll_run(entity_id, run_id)
        if run is None:
            raise PayrollRunNotFoundException(run_id)
        return run

    async def list_payroll_runs(
        self,
        entity_id: uuid.UUID,
        status: Optional[PayrollStatus] = None,
        year: Optional[int] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> Tuple[List[PayrollRun], int]:
        """List payroll runs with filters."""
        query = select(PayrollRun).where(PayrollRun.entity_id == entity_id)

        if status:
            query = query.where(PayrollRun.status == status)

        if year:
            query = query.where(extract('year', PayrollRun.pay_date) == year)

        # Count
        count_result = await self.db.execute(
            select(func.count()).select_from(query.subquery())
        )
        total = count_result.scalar()

        # Paginate
        query = query.order_by(PayrollRun.pay_date.desc(), PayrollRun.run_number.desc())
        query = query.offset((page - 1) * per_page).limit(per_page)

        result = await self.db.execute(query)
        runs = result.scalars().all()

        return list(runs), total

    # ===========================================
    # CREATE
    # ===========================================

    def _validate_run_inputs(
        self,
        period_start: Optional[date],
        period_end: Optional[date],
        pay_date: Optional[date],
        entries: List[PayrollEntryInput],
    ) -> None:
        for name, value in (("period_start", period_start), ("period_end", period_end), ("pay_date", pay_date)):
            if value is None:
                raise ValidationException(f"{name} is required", field=name, code=ErrorCode.MISSING_FIELD)

        if period_end < period_start:
            raise InvalidDateRangeException(
                period_start.isoformat(), period_end.isoformat(), field="period_end",
            )
        if pay_date < period_start:
            raise InvalidDateRangeException(
                period_start.isoformat(),
                pay_date.isoformat(),
                message="Pay date cannot be before the start of the pay period",
                field="pay_date",
            )

        if not entries:
            raise ValidationException("A payroll run needs at least one entry", field="entries")

        seen = set()
        duplicates = []
        for item in entries:
            if item.employee_id in seen:
                duplicates.append(str(item.employee_id))
            seen.add(item.employee_id)
        if duplicates:
            raise ValidationException(
                "Each employee may appear only once in a payroll run",
                field="entries",
                details={"employee_ids": duplicates},
            )

    async def _generate_run_number(self, entity_id: uuid.UUID, pay_date: date) -> str:
        """PAY-YYYY-MM-NNN, sequenced per company and year."""
        count_result = await self.db.execute(
            select(func.count())
            .select_from(PayrollRun)
            .where(PayrollRun.entity_id == entity_id)
            .where(extract('year', PayrollRun.pay_date) == pay_date.year)
        )
        sequence = (count_result.scalar() or 0) + 1
        return f"PAY-{pay_date.year}-{pay_date.month:02d}-{sequence:03d}"

    async def create_payroll_run(
        self,
        entity_id: uuid.UUID,
        period_start: date,
        period_end: date,
        pay_date: date,
        entries: List[PayrollEntryInput],
        frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
        name: Optional[str] = None,
        notes: Optional[str] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Create a DRAFT payroll run with one computed entry per employee.

        Raises:
            ValidationException: empty entries, bad dates, duplicate,
                unknown or inactive employees, negative amounts
        """
        self._validate_run_inputs(period_start, period_end, pay_date, entries)

        employees = await self.directory_for(entity_id).get_many(item.employee_id for item in entries)
        unknown = [item.employee_id for item in entries if item.employee_id not in employees]
        if unknown:
            raise UnknownEmployeeException(unknown)
        inactive = [item.employee_id for item in entries if not employees[item.employee_id].is_active]
        if inactive:
            raise InactiveEmployeeException(inactive)

        rules = get_rule_set(pay_date)
        calculator = PayrollCalculator(rules)

        calculated = []
        for item in entries:
            employee = employees[item.employee_id]
            basic = item.basic_salary if item.basic_salary is not None else employee.base_salary
            earnings = EarningsInput(
                basic_salary=basic,
                overtime=item.overtime,
                bonus=item.bonus,
                commission=item.commission,
                allowances=item.allowances,
                pension_contribution=item.pension_contribution,
                other_deductions=item.other_deductions,
            )
            calculated.append((employee, calculator.calculate(earnings)))

        run = await self._save_new_run(
            entity_id,
            pay_date,
            run_values=dict(
                name=name or f"{pay_date.strftime('%B %Y')} Payroll",
                frequency=frequency,
                period_start=period_start,
                period_end=period_end,
                rule_set_version=rules.version,
                rule_set_snapshot=rules.to_snapshot(),
                notes=notes,
                created_by_id=created_by_id,
                updated_by_id=created_by_id,
            ),
            entry_values=[
                {"employee_id": employee.id, "employee_name": employee.full_name, **calc.to_dict()}
                for employee, calc in calculated
            ],
        )

        negative = [calc for _, calc in calculated if calc.has_negative_net_pay]
        logger.info(
            f"Created payroll run {run.run_number} with {run.total_employees} entries "
            f"(gross {run.total_gross_pay}, rules {rules.version})",
            extra={"entity_id": str(entity_id), "run_id": str(run.id)},
        )
        if negative:
            logger.warning(
                f"Payroll run {run.run_number} has {len(negative)} entries with negative net pay",
                extra={"entity_id": str(entity_id), "run_id": str(run.id)},
            )

        return run

    async def _save_new_run(
        self,
        entity_id: uuid.UUID,
        pay_date: date,
        run_values: Dict[str, Any],
        entry_values: List[Dict[str, Any]],
    ) -> PayrollRun:
        """
        Insert a DRAFT run with its entries under a fresh run number.

        Two concurrent creates can draw the same sequence number; the
        loser of the unique constraint rolls back and draws again.
        """
        for attempt in range(1, RUN_NUMBER_ATTEMPTS + 1):
            run_number = await self._generate_run_number(entity_id, pay_date)
            run = PayrollRun(
                entity_id=entity_id,
                run_number=run_number,
                pay_date=pay_date,
                status=PayrollStatus.DRAFT,
                version=1,
                **run_values,
            )
            payroll_entries = [
                PayrollEntry(line_number=line_number, **values)
                for line_number, values in enumerate(entry_values, 1)
            ]
            run.entries = payroll_entries
            _apply_totals(run, payroll_entries)

            self.db.add(run)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if "run_number" not in str(e.orig):
                    raise
                if attempt == RUN_NUMBER_ATTEMPTS:
                    raise ConflictException(
                        f"Could not allocate a run number after {RUN_NUMBER_ATTEMPTS} attempts",
                        resource_type="payroll_run",
                        code=ErrorCode.DUPLICATE_ENTRY,
                        details={"run_number": run_number},
                    ) from e
                logger.warning(
                    f"Run number {run_number} taken by a concurrent create, retrying",
                    extra={"entity_id": str(entity_id), "attempt": attempt},
                )
                continue
            return await self._require_run(entity_id, run.id)

    # ===========================================
    # BACK PAY
    # ===========================================

    async def calculate_back_pay(
        self,
        entity_id: uuid.UUID,
        employee_id: uuid.UUID,
        new_base_salary: Decimal,
        effective_date: date,
        through_date: date,
        pay_date: date,
        frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
    ) -> Tuple[EmployeeSnapshot, BackPayCalculation, StatutoryRuleSet]:
        """
        Back pay owed to an employee whose raise to ``new_base_salary``
        took effect on ``effective_date``.

        The current base salary in the employee directory is the old
        salary. Statutory amounts use the rules effective on ``pay_date``.
        """
        employee = await self.directory_for(entity_id).get(employee_id)
        if employee is None:
            raise UnknownEmployeeException([employee_id])
        if not employee.is_active:
            raise InactiveEmployeeException([employee_id])

        rules = get_rule_set(pay_date)
        calc = calculate_back_pay(
            PayrollCalculator(rules),
            old_salary=employee.base_salary,
            new_salary=new_base_salary,
            effective_date=effective_date,
            through_date=through_date,
            frequency=frequency,
        )
        return employee, calc, rules

    async def create_back_pay_run(
        self,
        entity_id: uuid.UUID,
        employee_id: uuid.UUID,
        new_base_salary: Decimal,
        effective_date: date,
        through_date: date,
        pay_date: date,
        frequency: PayrollFrequency = PayrollFrequency.MONTHLY,
        reason: Optional[str] = None,
        created_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Create a DRAFT back-pay run holding one lump-sum entry.

        The run follows the regular lifecycle; approving it posts the
        accrual like any other run. Its entry cannot be edited.
        """
        if pay_date < effective_date:
            raise InvalidDateRangeException(
                effective_date.isoformat(),
                pay_date.isoformat(),
                message="Pay date cannot be before the effective date of the raise",
                field="pay_date",
            )

        employee, calc, rules = await self.calculate_back_pay(
            entity_id, employee_id, new_base_salary,
            effective_date, through_date, pay_date, frequency,
        )

        entry = {
            "employee_id": employee.id,
            "employee_name": employee.full_name,
            "basic_salary": calc.gross_pay,
            "overtime": ZERO,
            "bonus": ZERO,
            "commission": ZERO,
            "allowances": ZERO,
            "gross_pay": calc.gross_pay,
            "paye": calc.paye,
            "nis": calc.nis,
            "nht": calc.nht,
            "education_tax": calc.education_tax,
            "pension_contribution": ZERO,
            "other_deductions": ZERO,
            "total_deductions": calc.total_deductions,
            "net_pay": calc.net_pay,
            "employer_nis": calc.employer_nis,
            "employer_nht": calc.employer_nht,
            "employer_education_tax": calc.employer_education_tax,
            "heart_contribution": calc.heart_contribution,
            "total_employer_contributions": calc.total_employer_contributions,
        }

        run = await self._save_new_run(
            entity_id,
            pay_date,
            run_values=dict(
                run_type=PayrollRunType.BACK_PAY,
                name=f"Back Pay - {employee.full_name}",
                frequency=frequency,
                period_start=effective_date,
                period_end=through_date,
                rule_set_version=rules.version,
                rule_set_snapshot=rules.to_snapshot(),
                notes=reason,
                created_by_id=created_by_id,
                updated_by_id=created_by_id,
            ),
            entry_values=[entry],
        )

        logger.info(
            f"Created back-pay run {run.run_number} for {employee.employee_number}: "
            f"{calc.periods} periods, gross {calc.gross_pay}",
            extra={"entity_id": str(entity_id), "run_id": str(run.id)},
        )
        return run

    # ===========================================
    # EDIT (DRAFT ONLY)
    # ===========================================

    async def update_payroll_entry(
        self,
        entity_id: uuid.UUID,
        run_id: uuid.UUID,
        entry_id: uuid.UUID,
        changes: Dict[str, Any],
        updated_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Replace earnings/deduction inputs of a DRAFT entry and recompute.

        Only keys in ``changes`` are replaced; the run's own rule snapshot
        is used so the result matches the rules the run was created with.
        """
        run = await self._require_run(entity_id, run_id)
        if run.status != PayrollStatus.DRAFT:
            raise InvalidStateTransitionException(
                resource_id=run_id,
                action=EDIT,
                expected_status=PayrollStatus.DRAFT.value,
                actual_status=run.status.value,
            )
        if run.run_type == PayrollRunType.BACK_PAY:
            raise ValidationException(
                "Back-pay entries cannot be edited; create a new back-pay run instead",
                details={"run_type": run.run_type.value},
            )

        entry = next((item for item in run.entries if item.id == entry_id), None)
        if entry is None:
            raise PayrollEntryNotFoundException(entry_id)

        unknown_fields = set(changes) - set(ENTRY_INPUT_FIELDS)
        if unknown_fields:
            raise ValidationException(
                f"Cannot edit field(s): {', '.join(sorted(unknown_fields))}",
                details={"editable_fields": list(ENTRY_INPUT_FIELDS)},
            )

        values = {name: getattr(entry, name) for name in ENTRY_INPUT_FIELDS}
        values.update({name: value for name, value in changes.items() if value is not None})

        rules = StatutoryRuleSet.from_snapshot(run.rule_set_snapshot)
        calc = PayrollCalculator(rules).calculate(EarningsInput(**values))
        _apply_calculation(entry, calc)
        _apply_totals(run, run.entries)
        run.updated_by_id = updated_by_id

        expected_version = run.version
        await self.db.flush()
        await self._compare_and_swap(
            run_id,
            action=EDIT,
            expected_status=PayrollStatus.DRAFT,
            expected_version=expected_version,
            values={},
        )
        await self.db.commit()

        logger.info(
            f"Recomputed entry {entry_id} of payroll run {run.run_number}",
            extra={"entity_id": str(entity_id), "run_id": str(run_id)},
        )
        return await self._require_run(entity_id, run_id)

    # ===========================================
    # TRANSITIONS
    # ===========================================

    async def _compare_and_swap(
        self,
        run_id: uuid.UUID,
        action: str,
        expected_status: PayrollStatus,
        expected_version: int,
        values: Dict[str, Any],
    ) -> None:
        """
        Conditionally update a run only if it is still in the expected
        status and version. Rolls back and raises a conflict otherwise.
        """
        result = await self.db.execute(
            update(PayrollRun)
            .where(PayrollRun.id == run_id)
            .where(PayrollRun.status == expected_status)
            .where(PayrollRun.version == expected_version)
            .values(version=expected_version + 1, **values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 1:
            return

        await self.db.rollback()
        actual = await self.db.scalar(select(PayrollRun.status).where(PayrollRun.id == run_id))
        logger.warning(
            f"Concurrent modification of payroll run {run_id} during {action}",
            extra={"run_id": str(run_id), "actual_status": actual.value if actual else None},
        )
        raise InvalidStateTransitionException(
            resource_id=run_id,
            action=action,
            expected_status=expected_status.value,
            actual_status=actual.value if actual else "missing",
        )

    async def approve_payroll_run(
        self,
        entity_id: uuid.UUID,
        run_id: uuid.UUID,
        approved_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """
        Approve a DRAFT run and post its accrual to the general ledger.

        Raises:
            PayrollRunNotFoundException: unknown run
            InvalidStateTransitionException: run not DRAFT, or changed concurrently
            NegativeNetPayException / ComputationInvariantException: figures invalid
            LedgerPostingException: ledger rejected the posting (run stays DRAFT)
        """
        run = await self._require_run(entity_id, run_id)
        target = next_status(run.status, APPROVE, run_id)
        expected_version = run.version
        run_number = run.run_number

        self._verify_run_figures(run)

        # Row lock from the conditional update serialises concurrent approvers
        await self._compare_and_swap(
            run_id,
            action=APPROVE,
            expected_status=PayrollStatus.DRAFT,
            expected_version=expected_version,
            values={
                "status": target,
                "approved_by_id": approved_by_id,
                "approved_at": datetime.now(timezone.utc),
                "updated_by_id": approved_by_id,
            },
        )

        try:
            posting = await self.ledger.post(build_payroll_entry(run, approved_by_id))
        except Exception as e:
            await self.db.rollback()
            logger.error(
                f"Approval of payroll run {run_number} aborted: ledger posting failed",
                extra={"entity_id": str(entity_id), "run_id": str(run_id)},
            )
            if isinstance(e, AppException):
                raise
            raise LedgerPostingException(str(e), original_error=e) from e

        await self.db.execute(
            update(PayrollRun)
            .where(PayrollRun.id == run_id)
            .values(journal_entry_id=posting.journal_entry_id)
            .execution_options(synchronize_session=False)
        )
        await self.db.commit()

        logger.info(
            f"Approved payroll run {run_number}, posted {posting.entry_number}",
            extra={"entity_id": str(entity_id), "run_id": str(run_id)},
        )
        return await self._require_run(entity_id, run_id)

    def _verify_run_figures(self, run: PayrollRun) -> None:
        if not run.entries:
            raise ComputationInvariantException(
                message=f"Payroll run '{run.id}' has no entries",
                details={"run_id": str(run.id)},
            )

        inconsistent = [str(entry.employee_id) for entry in run.entries if not _entry_is_consistent(entry)]
        if inconsistent:
            raise ComputationInvariantException(
                message=f"Payroll run '{run.id}' has entries whose totals do not add up",
                details={"run_id": str(run.id), "employee_ids": inconsistent},
            )

        negative = [entry.employee_id for entry in run.entries if entry.net_pay < 0]
        if negative:
            raise NegativeNetPayException(run.id, negative)

        for run_field, entry_field in RUN_TOTAL_FIELDS.items():
            expected = sum_money(getattr(entry, entry_field) for entry in run.entries)
            if getattr(run, run_field) != expected:
                raise ComputationInvariantException(
                    message=f"Payroll run '{run.id}' {run_field} does not equal the sum of its entries",
                    details={
                        "run_id": str(run.id),
                        "field": run_field,
                        "stored": str(getattr(run, run_field)),
                        "expected": str(expected),
                    },
                )

    async def mark_payroll_paid(
        self,
        entity_id: uuid.UUID,
        run_id: uuid.UUID,
        paid_by_id: Optional[uuid.UUID] = None,
    ) -> PayrollRun:
        """Mark an APPROVED run as PAID. Amounts are not touched."""
        run = await self._require_run(entity_id, run_id)
        target = next_status(run.status, MARK_PAID, run_id)

        await self._compare_and_swap(
            run_id,
            action=MARK_PAID,
            expected_status=PayrollStatus.APPROVED,
            expected_version=run.version,
            values={
                "status": target,
                "paid_at": datetime.now(timezone.utc),
                "updated_by_id": paid_by_id,
            },
        )
        await self.db.commit()

        logger.info(
            f"Payroll run {run.run_number} marked paid",
            extra={"entity_id": str(entity_id), "run_id": str(run_id)},
        )
        return await self._require_run(entity_id, run_id)
