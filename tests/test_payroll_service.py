"""
Ledgerline Payroll - Payroll Service Tests

Tests for payroll run creation, editing and the approval lifecycle.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select, func, update

from app.models.accounting import JournalEntry, JournalEntryLine
from app.models.payroll import PayrollFrequency, PayrollRun, PayrollRunType, PayrollStatus
from app.services.gl_event_service import GeneralLedger
from app.services.payroll_service import (
    APPROVE,
    MARK_PAID,
    PayrollEntryInput,
    PayrollService,
    next_status,
)
from app.utils.error_handling import (
    ConflictException,
    ErrorCode,
    InactiveEmployeeException,
    InvalidAmountException,
    InvalidDateRangeException,
    InvalidStateTransitionException,
    LedgerPostingException,
    NegativeNetPayException,
    PayrollEntryNotFoundException,
    PayrollRunNotFoundException,
    UnknownEmployeeException,
    ValidationException,
)


JUNE_START = date(2025, 6, 1)
JUNE_END = date(2025, 6, 30)


class FailingLedger(GeneralLedger):
    """Ledger that rejects every posting."""

    def __init__(self):
        self.calls = 0

    async def post(self, request):
        self.calls += 1
        raise LedgerPostingException("ledger offline")


class UnavailableLedger(GeneralLedger):
    """Ledger whose connection drops on every posting."""

    async def post(self, request):
        raise ConnectionError("connection reset by peer")


async def _journal_entry_count(db_session) -> int:
    return await db_session.scalar(select(func.count(JournalEntry.id)))


async def _create_june_run(service, entity_id, employee_ids, **overrides):
    entries = overrides.pop("entries", None) or [PayrollEntryInput(employee_id=eid) for eid in employee_ids]
    return await service.create_payroll_run(
        entity_id=entity_id,
        period_start=overrides.pop("period_start", JUNE_START),
        period_end=overrides.pop("period_end", JUNE_END),
        pay_date=overrides.pop("pay_date", JUNE_END),
        entries=entries,
        **overrides,
    )


class TestStateMachine:
    """Test allowed lifecycle transitions."""

    def test_allowed_transitions(self):
        """DRAFT approves to APPROVED, APPROVED is marked PAID."""
        assert next_status(PayrollStatus.DRAFT, APPROVE) == PayrollStatus.APPROVED
        assert next_status(PayrollStatus.APPROVED, MARK_PAID) == PayrollStatus.PAID

    def test_rejected_transitions(self):
        """Any other combination is a conflict."""
        for current, action in [
            (PayrollStatus.APPROVED, APPROVE),
            (PayrollStatus.PAID, APPROVE),
            (PayrollStatus.DRAFT, MARK_PAID),
            (PayrollStatus.PAID, MARK_PAID),
        ]:
            with pytest.raises(InvalidStateTransitionException) as exc_info:
                next_status(current, action)
            assert exc_info.value.status_code == 409
            assert exc_info.value.details["actual_status"] == current.value


class TestCreatePayrollRun:
    """Test creating DRAFT payroll runs."""

    @pytest.mark.asyncio
    async def test_create_run_computes_entries_and_totals(self, db_session, entity_id, employees):
        """Entries default to base salary and totals are summed."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)

        run = await _create_june_run(service, entity_id, employee_ids)

        assert run.status == PayrollStatus.DRAFT
        assert run.version == 1
        assert run.run_number == "PAY-2025-06-001"
        assert run.name == "June 2025 Payroll"
        assert run.rule_set_version == "JM-2025-04"
        assert run.rule_set_snapshot["paye_annual_threshold"] == "1902360"
        assert run.total_employees == 2
        assert run.total_gross_pay == Decimal("600000.00")
        assert run.total_paye == Decimal("85367.50")
        assert run.total_net_pay == Decimal("473632.50")
        assert run.total_employer_contributions == Decimal("75000.00")
        assert run.journal_entry_id is None

        first = run.entries[0]
        assert first.line_number == 1
        assert first.employee_name == "Marcia Campbell"
        assert first.basic_salary == Decimal("500000.00")
        assert first.net_pay == Decimal("380882.50")

    @pytest.mark.asyncio
    async def test_entry_inputs_override_base_salary(self, db_session, entity_id, employees):
        """Explicit basic salary and extra earnings are used."""
        devon_id = employees[1].id
        service = PayrollService(db_session)

        run = await _create_june_run(service, entity_id, [], entries=[
            PayrollEntryInput(
                employee_id=devon_id,
                basic_salary=Decimal("80000"),
                overtime=Decimal("20000"),
                pension_contribution=Decimal("5000"),
            ),
        ])

        entry = run.entries[0]
        assert entry.gross_pay == Decimal("100000.00")
        assert entry.total_deductions == Decimal("12250.00")
        assert entry.net_pay == Decimal("87750.00")
        assert run.total_pension == Decimal("5000.00")

    @pytest.mark.asyncio
    async def test_run_numbers_sequence_per_year(self, db_session, entity_id, employees):
        """Each run in a year gets the next sequence number."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)

        await _create_june_run(service, entity_id, employee_ids)
        second = await _create_june_run(
            service, entity_id, employee_ids,
            period_start=date(2025, 7, 1), period_end=date(2025, 7, 31), pay_date=date(2025, 7, 31),
        )

        assert second.run_number == "PAY-2025-07-002"

    @pytest.mark.asyncio
    async def test_run_number_taken_concurrently_is_redrawn(self, db_session, entity_id, employees, monkeypatch):
        """A run number claimed by another create between count and insert is drawn again."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)
        await _create_june_run(service, entity_id, employee_ids)

        original_generate = service._generate_run_number
        calls = []

        async def stale_then_fresh(entity, pay_date):
            calls.append(pay_date)
            if len(calls) == 1:
                return "PAY-2025-06-001"
            return await original_generate(entity, pay_date)

        monkeypatch.setattr(service, "_generate_run_number", stale_then_fresh)

        second = await _create_june_run(service, entity_id, employee_ids)

        assert len(calls) == 2
        assert second.run_number == "PAY-2025-06-002"
        assert second.total_employees == 2
        assert [entry.line_number for entry in second.entries] == [1, 2]
        runs, total = await service.list_payroll_runs(entity_id)
        assert total == 2

    @pytest.mark.asyncio
    async def test_run_number_retries_exhausted_conflicts(self, db_session, entity_id, employees, monkeypatch):
        """If every drawn number is taken the create fails with a conflict and saves nothing."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)
        await _create_june_run(service, entity_id, employee_ids)

        async def always_taken(entity, pay_date):
            return "PAY-2025-06-001"

        monkeypatch.setattr(service, "_generate_run_number", always_taken)

        with pytest.raises(ConflictException) as exc_info:
            await _create_june_run(service, entity_id, employee_ids)

        assert exc_info.value.status_code == 409
        assert exc_info.value.code == ErrorCode.DUPLICATE_ENTRY
        monkeypatch.undo()
        runs, total = await service.list_payroll_runs(entity_id)
        assert total == 1

    @pytest.mark.asyncio
    async def test_missing_pay_date_rejected(self, db_session, entity_id, employees):
        """A missing date is reported as a missing field."""
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.create_payroll_run(
                entity_id, JUNE_START, JUNE_END, None, entries=[PayrollEntryInput(employee_id=employees[0].id)],
            )

        assert exc_info.value.code == ErrorCode.MISSING_FIELD
        assert exc_info.value.field == "pay_date"

    @pytest.mark.asyncio
    async def test_unknown_employee_rejected(self, db_session, entity_id, employees):
        """Employees not in the directory cannot be paid."""
        service = PayrollService(db_session)
        stranger = uuid4()

        with pytest.raises(UnknownEmployeeException) as exc_info:
            await _create_june_run(service, entity_id, [employees[0].id, stranger])

        assert exc_info.value.details["employee_ids"] == [str(stranger)]

    @pytest.mark.asyncio
    async def test_employee_of_other_company_is_unknown(self, db_session, employees):
        """The directory only sees the requesting company's employees."""
        service = PayrollService(db_session)

        with pytest.raises(UnknownEmployeeException):
            await _create_june_run(service, uuid4(), [employees[0].id])

    @pytest.mark.asyncio
    async def test_inactive_employee_rejected(self, db_session, entity_id, employees, inactive_employee):
        """Employees who have left cannot be paid."""
        service = PayrollService(db_session)

        with pytest.raises(InactiveEmployeeException):
            await _create_june_run(service, entity_id, [employees[0].id, inactive_employee.id])

    @pytest.mark.asyncio
    async def test_empty_entries_rejected(self, db_session, entity_id):
        """A run needs at least one entry."""
        service = PayrollService(db_session)

        with pytest.raises(ValidationException):
            await service.create_payroll_run(entity_id, JUNE_START, JUNE_END, JUNE_END, entries=[])

    @pytest.mark.asyncio
    async def test_duplicate_employee_rejected(self, db_session, entity_id, employees):
        """An employee may appear once per run."""
        marcia_id = employees[0].id
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await _create_june_run(service, entity_id, [marcia_id, marcia_id])

        assert exc_info.value.details["employee_ids"] == [str(marcia_id)]

    @pytest.mark.asyncio
    async def test_period_end_before_start_rejected(self, db_session, entity_id, employees):
        """Period end must not precede period start."""
        service = PayrollService(db_session)

        with pytest.raises(InvalidDateRangeException):
            await _create_june_run(
                service, entity_id, [employees[0].id], period_start=JUNE_END, period_end=JUNE_START,
            )

    @pytest.mark.asyncio
    async def test_pay_date_before_period_rejected(self, db_session, entity_id, employees):
        """Pay date must not precede the period start."""
        service = PayrollService(db_session)

        with pytest.raises(InvalidDateRangeException) as exc_info:
            await _create_june_run(service, entity_id, [employees[0].id], pay_date=date(2025, 5, 31))

        assert exc_info.value.field == "pay_date"

    @pytest.mark.asyncio
    async def test_negative_amount_rejected(self, db_session, entity_id, employees):
        """Negative earnings are rejected and nothing is saved."""
        service = PayrollService(db_session)

        with pytest.raises(InvalidAmountException):
            await _create_june_run(service, entity_id, [], entries=[
                PayrollEntryInput(employee_id=employees[0].id, bonus=Decimal("-100")),
            ])

        runs, total = await service.list_payroll_runs(entity_id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_pay_date_without_rules_rejected(self, db_session, entity_id, employees):
        """Pay dates before the first rule set cannot be computed."""
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await _create_june_run(
                service, entity_id, [employees[0].id],
                period_start=date(2024, 1, 1), period_end=date(2024, 1, 31), pay_date=date(2024, 1, 31),
            )

        assert exc_info.value.code == ErrorCode.NO_RULE_SET


class TestListPayrollRuns:
    """Test listing and filtering runs."""

    @pytest.mark.asyncio
    async def test_list_filters_by_status_and_year(self, db_session, entity_id, employees):
        """Status and pay-date year filters apply."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)

        june = await _create_june_run(service, entity_id, employee_ids)
        june_id = june.id
        await _create_june_run(
            service, entity_id, employee_ids,
            period_start=date(2025, 7, 1), period_end=date(2025, 7, 31), pay_date=date(2025, 7, 31),
        )
        await service.approve_payroll_run(entity_id, june_id)

        runs, total = await service.list_payroll_runs(entity_id)
        assert total == 2
        assert runs[0].pay_date == date(2025, 7, 31)

        approved, approved_total = await service.list_payroll_runs(entity_id, status=PayrollStatus.APPROVED)
        assert approved_total == 1
        assert approved[0].id == june_id

        _, other_year = await service.list_payroll_runs(entity_id, year=2026)
        assert other_year == 0

    @pytest.mark.asyncio
    async def test_runs_scoped_to_company(self, db_session, entity_id, employees):
        """Another company sees none of the runs."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])

        assert await service.get_payroll_run(uuid4(), run.id) is None


class TestEditPayrollEntry:
    """Test editing entries of DRAFT runs."""

    @pytest.mark.asyncio
    async def test_edit_recomputes_entry_and_totals(self, db_session, entity_id, employees):
        """A bonus is added and the run totals follow."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, employee_ids)
        run_id, entry_id = run.id, run.entries[1].id

        updated = await service.update_payroll_entry(entity_id, run_id, entry_id, {"bonus": Decimal("50000")})

        entry = next(item for item in updated.entries if item.id == entry_id)
        assert entry.gross_pay == Decimal("150000.00")
        assert entry.paye == Decimal("0.00")
        assert entry.net_pay == Decimal("139125.00")
        assert updated.total_gross_pay == Decimal("650000.00")
        assert updated.version == 2

    @pytest.mark.asyncio
    async def test_edit_uses_rules_snapshot_of_run(self, db_session, entity_id, employees):
        """A March 2025 run keeps the 2024 PAYE threshold when edited."""
        devon_id = employees[1].id
        service = PayrollService(db_session)
        run = await _create_june_run(
            service, entity_id, [devon_id],
            period_start=date(2025, 3, 1), period_end=date(2025, 3, 31), pay_date=date(2025, 3, 31),
        )
        assert run.rule_set_version == "JM-2024-04"

        updated = await service.update_payroll_entry(
            entity_id, run.id, run.entries[0].id, {"basic_salary": Decimal("150000")},
        )

        assert updated.entries[0].paye == Decimal("2081.50")

    @pytest.mark.asyncio
    async def test_edit_unknown_entry(self, db_session, entity_id, employees):
        """Editing an entry not in the run is a 404."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])

        with pytest.raises(PayrollEntryNotFoundException):
            await service.update_payroll_entry(entity_id, run.id, uuid4(), {"bonus": Decimal("1")})

    @pytest.mark.asyncio
    async def test_edit_computed_field_rejected(self, db_session, entity_id, employees):
        """Computed figures cannot be set directly."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])

        with pytest.raises(ValidationException):
            await service.update_payroll_entry(entity_id, run.id, run.entries[0].id, {"net_pay": Decimal("1")})

    @pytest.mark.asyncio
    async def test_edit_approved_run_rejected(self, db_session, entity_id, employees):
        """Approved runs are frozen."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])
        run_id, entry_id = run.id, run.entries[0].id
        await service.approve_payroll_run(entity_id, run_id)

        with pytest.raises(InvalidStateTransitionException):
            await service.update_payroll_entry(entity_id, run_id, entry_id, {"bonus": Decimal("1")})


class TestApprovePayrollRun:
    """Test approval and the ledger posting."""

    @pytest.mark.asyncio
    async def test_approve_posts_balanced_journal_entry(self, db_session, entity_id, employees):
        """Approval moves to APPROVED and links one balanced journal entry."""
        employee_ids = [employee.id for employee in employees]
        approver = uuid4()
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, employee_ids)

        approved = await service.approve_payroll_run(entity_id, run.id, approved_by_id=approver)

        assert approved.status == PayrollStatus.APPROVED
        assert approved.version == 2
        assert approved.approved_by_id == approver
        assert approved.approved_at is not None
        assert approved.journal_entry_id is not None

        journal = await db_session.scalar(
            select(JournalEntry).where(JournalEntry.id == approved.journal_entry_id)
        )
        assert journal.source_reference == approved.run_number
        assert journal.entry_date == JUNE_END
        assert journal.total_debit == Decimal("675000.00")
        assert journal.total_credit == Decimal("675000.00")

        line_count = await db_session.scalar(
            select(func.count(JournalEntryLine.id)).where(JournalEntryLine.journal_entry_id == journal.id)
        )
        assert line_count == 11

    @pytest.mark.asyncio
    async def test_approve_twice_conflicts(self, db_session, entity_id, employees):
        """A second approval is rejected and posts nothing."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])
        run_id = run.id
        await service.approve_payroll_run(entity_id, run_id)

        with pytest.raises(InvalidStateTransitionException):
            await service.approve_payroll_run(entity_id, run_id)

        assert await _journal_entry_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_concurrent_change_loses_compare_and_swap(self, db_session, entity_id, employees, monkeypatch):
        """A run changed after it was read is not approved and nothing is posted."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])
        run_id = run.id
        original_require_run = service._require_run

        async def require_run_then_modify(entity, run_ref):
            loaded = await original_require_run(entity, run_ref)
            await db_session.execute(
                update(PayrollRun)
                .where(PayrollRun.id == run_ref)
                .values(version=PayrollRun.version + 1)
                .execution_options(synchronize_session=False)
            )
            return loaded

        monkeypatch.setattr(service, "_require_run", require_run_then_modify)

        with pytest.raises(InvalidStateTransitionException):
            await service.approve_payroll_run(entity_id, run_id)

        monkeypatch.undo()
        assert await _journal_entry_count(db_session) == 0
        reloaded = await service.get_payroll_run(entity_id, run_id)
        assert reloaded.status == PayrollStatus.DRAFT
        assert reloaded.journal_entry_id is None

    @pytest.mark.asyncio
    async def test_ledger_failure_keeps_run_draft(self, db_session, entity_id, employees):
        """If the ledger rejects the posting the approval is rolled back."""
        ledger = FailingLedger()
        service = PayrollService(db_session, ledger=ledger)
        run = await _create_june_run(service, entity_id, [employees[0].id])
        run_id = run.id

        with pytest.raises(LedgerPostingException) as exc_info:
            await service.approve_payroll_run(entity_id, run_id)

        assert exc_info.value.status_code == 502
        assert ledger.calls == 1
        reloaded = await service.get_payroll_run(entity_id, run_id)
        assert reloaded.status == PayrollStatus.DRAFT
        assert reloaded.version == 1
        assert reloaded.approved_at is None
        assert reloaded.journal_entry_id is None

    @pytest.mark.asyncio
    async def test_unreachable_ledger_rolls_back_and_can_be_retried(self, db_session, entity_id, employees):
        """A dropped ledger connection leaves the run DRAFT and a later approval succeeds."""
        run = await _create_june_run(PayrollService(db_session), entity_id, [employees[0].id])
        run_id = run.id
        service = PayrollService(db_session, ledger=UnavailableLedger())

        with pytest.raises(LedgerPostingException) as exc_info:
            await service.approve_payroll_run(entity_id, run_id)

        assert exc_info.value.status_code == 502
        assert isinstance(exc_info.value.original_error, ConnectionError)
        reloaded = await service.get_payroll_run(entity_id, run_id)
        assert reloaded.status == PayrollStatus.DRAFT
        assert reloaded.version == 1
        assert reloaded.journal_entry_id is None
        assert await _journal_entry_count(db_session) == 0

        approved = await PayrollService(db_session).approve_payroll_run(entity_id, run_id)

        assert approved.status == PayrollStatus.APPROVED
        assert approved.version == 2
        assert approved.journal_entry_id is not None
        assert await _journal_entry_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_negative_net_pay_blocks_approval(self, db_session, entity_id, employees):
        """Runs with negative net pay are saved but cannot be approved."""
        devon_id = employees[1].id
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [], entries=[
            PayrollEntryInput(employee_id=devon_id, other_deductions=Decimal("200000")),
        ])
        run_id = run.id
        assert run.entries[0].net_pay == Decimal("-107250.00")

        with pytest.raises(NegativeNetPayException) as exc_info:
            await service.approve_payroll_run(entity_id, run_id)

        assert exc_info.value.details["employee_ids"] == [str(devon_id)]
        reloaded = await service.get_payroll_run(entity_id, run_id)
        assert reloaded.status == PayrollStatus.DRAFT
        assert await _journal_entry_count(db_session) == 0

    @pytest.mark.asyncio
    async def test_approve_unknown_run(self, db_session, entity_id):
        """Unknown runs are a 404."""
        service = PayrollService(db_session)

        with pytest.raises(PayrollRunNotFoundException):
            await service.approve_payroll_run(entity_id, uuid4())


class TestMarkPayrollPaid:
    """Test the APPROVED to PAID transition."""

    @pytest.mark.asyncio
    async def test_mark_paid(self, db_session, entity_id, employees):
        """Paid runs keep their amounts and journal entry."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, employee_ids)
        approved = await service.approve_payroll_run(entity_id, run.id)
        journal_entry_id = approved.journal_entry_id

        paid = await service.mark_payroll_paid(entity_id, approved.id)

        assert paid.status == PayrollStatus.PAID
        assert paid.version == 3
        assert paid.paid_at is not None
        assert paid.total_net_pay == Decimal("473632.50")
        assert paid.journal_entry_id == journal_entry_id
        assert await _journal_entry_count(db_session) == 1

    @pytest.mark.asyncio
    async def test_mark_draft_paid_rejected(self, db_session, entity_id, employees):
        """A DRAFT run cannot skip approval."""
        service = PayrollService(db_session)
        run = await _create_june_run(service, entity_id, [employees[0].id])

        with pytest.raises(InvalidStateTransitionException) as exc_info:
            await service.mark_payroll_paid(entity_id, run.id)

        assert exc_info.value.details["expected_status"] == "approved"
        assert exc_info.value.details["actual_status"] == "draft"


class TestBackPay:
    """Test back pay for retroactive raises."""

    @pytest.mark.asyncio
    async def test_calculate_uses_current_base_salary(self, db_session, entity_id, employees):
        """The employee's base salary is the old salary."""
        service = PayrollService(db_session)

        employee, calc, rules = await service.calculate_back_pay(
            entity_id, employees[0].id, Decimal("550000"),
            effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
        )

        assert employee.full_name == "Marcia Campbell"
        assert rules.version == "JM-2025-04"
        assert calc.old_salary == Decimal("500000.00")
        assert calc.periods == 2
        assert calc.gross_pay == Decimal("100000.00")
        assert calc.net_pay == Decimal("65750.00")
        assert calc.total_cost == Decimal("112500.00")

    @pytest.mark.asyncio
    async def test_calculate_unknown_employee(self, db_session, entity_id):
        """Back pay needs a known employee."""
        service = PayrollService(db_session)

        with pytest.raises(UnknownEmployeeException):
            await service.calculate_back_pay(
                entity_id, uuid4(), Decimal("550000"),
                effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
            )

    @pytest.mark.asyncio
    async def test_calculate_inactive_employee(self, db_session, entity_id, inactive_employee):
        """Employees who have left are not owed back pay through payroll."""
        service = PayrollService(db_session)

        with pytest.raises(InactiveEmployeeException):
            await service.calculate_back_pay(
                entity_id, inactive_employee.id, Decimal("250000"),
                effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
            )

    @pytest.mark.asyncio
    async def test_create_back_pay_run(self, db_session, entity_id, employees):
        """A DRAFT back-pay run holds one lump-sum entry for the employee."""
        marcia_id = employees[0].id
        service = PayrollService(db_session)

        run = await service.create_back_pay_run(
            entity_id, marcia_id, Decimal("550000"),
            effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
            reason="Promotion to senior accountant",
        )

        assert run.run_type == PayrollRunType.BACK_PAY
        assert run.status == PayrollStatus.DRAFT
        assert run.run_number == "PAY-2025-06-001"
        assert run.name == "Back Pay - Marcia Campbell"
        assert run.period_start == date(2025, 4, 1)
        assert run.period_end == JUNE_END
        assert run.notes == "Promotion to senior accountant"
        assert run.total_employees == 1

        entry = run.entries[0]
        assert entry.employee_id == marcia_id
        assert entry.basic_salary == Decimal("100000.00")
        assert entry.gross_pay == Decimal("100000.00")
        assert entry.paye == Decimal("30000.00")
        assert entry.nis == Decimal("0.00")
        assert entry.nht == Decimal("2000.00")
        assert entry.education_tax == Decimal("2250.00")
        assert entry.net_pay == Decimal("65750.00")
        assert entry.total_employer_contributions == Decimal("12500.00")
        assert run.total_net_pay == Decimal("65750.00")

    @pytest.mark.asyncio
    async def test_back_pay_run_shares_run_number_sequence(self, db_session, entity_id, employees):
        """Back-pay runs draw from the same yearly sequence as regular runs."""
        employee_ids = [employee.id for employee in employees]
        service = PayrollService(db_session)
        await _create_june_run(service, entity_id, employee_ids)

        run = await service.create_back_pay_run(
            entity_id, employee_ids[1], Decimal("126000"),
            effective_date=date(2025, 4, 1), through_date=date(2025, 4, 29), pay_date=JUNE_END,
            frequency=PayrollFrequency.WEEKLY,
        )

        assert run.run_number == "PAY-2025-06-002"
        assert run.frequency == PayrollFrequency.WEEKLY
        assert run.total_gross_pay == Decimal("24000.00")
        assert run.total_net_pay == Decimal("22260.00")

    @pytest.mark.asyncio
    async def test_approve_back_pay_run_posts_accrual(self, db_session, entity_id, employees):
        """Back-pay runs are approved like any other run."""
        service = PayrollService(db_session)
        run = await service.create_back_pay_run(
            entity_id, employees[0].id, Decimal("550000"),
            effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
        )

        approved = await service.approve_payroll_run(entity_id, run.id)

        assert approved.status == PayrollStatus.APPROVED
        journal = await db_session.scalar(
            select(JournalEntry).where(JournalEntry.id == approved.journal_entry_id)
        )
        assert journal.total_debit == Decimal("112500.00")
        assert journal.total_credit == Decimal("112500.00")

    @pytest.mark.asyncio
    async def test_back_pay_entry_cannot_be_edited(self, db_session, entity_id, employees):
        """The lump sum is fixed once the run is created."""
        service = PayrollService(db_session)
        run = await service.create_back_pay_run(
            entity_id, employees[0].id, Decimal("550000"),
            effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
        )

        with pytest.raises(ValidationException) as exc_info:
            await service.update_payroll_entry(entity_id, run.id, run.entries[0].id, {"bonus": Decimal("1")})

        assert exc_info.value.details["run_type"] == "back_pay"

    @pytest.mark.asyncio
    async def test_salary_not_increased_rejected(self, db_session, entity_id, employees):
        """A new salary at or below the current one owes nothing."""
        service = PayrollService(db_session)

        with pytest.raises(ValidationException) as exc_info:
            await service.create_back_pay_run(
                entity_id, employees[0].id, Decimal("500000"),
                effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=JUNE_END,
            )

        assert exc_info.value.field == "new_base_salary"
        runs, total = await service.list_payroll_runs(entity_id)
        assert total == 0

    @pytest.mark.asyncio
    async def test_pay_date_before_effective_date_rejected(self, db_session, entity_id, employees):
        """Back pay cannot be paid before the raise took effect."""
        service = PayrollService(db_session)

        with pytest.raises(InvalidDateRangeException) as exc_info:
            await service.create_back_pay_run(
                entity_id, employees[0].id, Decimal("550000"),
                effective_date=date(2025, 4, 1), through_date=JUNE_END, pay_date=date(2025, 3, 31),
            )

        assert exc_info.value.field == "pay_date"
