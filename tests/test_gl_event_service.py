"""
Ledgerline Payroll - GL Event Service Tests

Tests for journal entry construction and posting.
"""

import pytest
from datetime import date
from decimal import Decimal
from uuid import uuid4

from sqlalchemy import select

from app.models.accounting import JournalEntry, JournalEntryType
from app.services.gl_event_service import (
    GLEventService,
    GLSourceModule,
    LedgerEntryRequest,
    LedgerLine,
)
from app.utils.error_handling import (
    ComputationInvariantException,
    LedgerPostingException,
    UnbalancedEntryException,
)


def _request(entity_id, lines, reference="PAY-2025-06-001", document_id=None):
    return LedgerEntryRequest(
        entity_id=entity_id,
        entry_date=date(2025, 6, 30),
        description="Test payroll",
        entry_type=JournalEntryType.PAYROLL,
        source_module=GLSourceModule.PAYROLL,
        source_document_type="payroll_run",
        source_document_id=document_id or uuid4(),
        source_reference=reference,
        lines=lines,
    )


class TestLedgerEntryRequest:
    """Test validation of posting requests."""

    def test_zero_lines_are_dropped(self):
        """Zero lines are not posted."""
        request = _request(uuid4(), [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("1000")),
            LedgerLine.credit("PENSION_PAYABLE", Decimal("0")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("1000")),
        ])

        assert len(request.posting_lines()) == 2
        assert request.totals() == (Decimal("1000.00"), Decimal("1000.00"))

    def test_unbalanced_rejected(self):
        """Debits must equal credits to the cent."""
        request = _request(uuid4(), [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("1000.00")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("999.99")),
        ])

        with pytest.raises(UnbalancedEntryException):
            request.validate()

    def test_single_line_rejected(self):
        """An entry needs at least two non-zero lines."""
        request = _request(uuid4(), [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("0")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("0")),
        ])

        with pytest.raises(ComputationInvariantException):
            request.validate()

    def test_account_names_from_chart(self):
        """Lines carry the chart of accounts code and name."""
        line = LedgerLine.credit("PAYE_PAYABLE", Decimal("10"))

        assert line.account_code == "2200"
        assert line.account_name == "PAYE Payable"


class TestGLEventService:
    """Test posting to the database ledger."""

    @pytest.mark.asyncio
    async def test_post_creates_posted_entry(self, db_session, entity_id):
        """A balanced request becomes a posted journal entry with lines."""
        ledger = GLEventService(db_session)

        result = await ledger.post(_request(entity_id, [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("1000")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("1000")),
        ]))
        await db_session.commit()

        assert result.entry_number == "JE-202506-00001"
        assert result.total_debit == Decimal("1000.00")
        entry = await db_session.scalar(select(JournalEntry).where(JournalEntry.id == result.journal_entry_id))
        assert entry.currency == "JMD"
        assert entry.source_reference == "PAY-2025-06-001"

    @pytest.mark.asyncio
    async def test_same_document_reference_posted_once(self, db_session, entity_id):
        """Posting the same document reference twice is rejected."""
        ledger = GLEventService(db_session)
        document_id = uuid4()
        lines = [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("1000")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("1000")),
        ]
        await ledger.post(_request(entity_id, lines, document_id=document_id))

        with pytest.raises(LedgerPostingException):
            await ledger.post(_request(entity_id, lines, document_id=document_id))

    @pytest.mark.asyncio
    async def test_entry_numbers_increment(self, db_session, entity_id):
        """Entry numbers are sequential per company and month."""
        ledger = GLEventService(db_session)
        lines = [
            LedgerLine.debit("SALARY_EXPENSE", Decimal("5")),
            LedgerLine.credit("SALARIES_PAYABLE", Decimal("5")),
        ]

        await ledger.post(_request(entity_id, lines))
        second = await ledger.post(_request(entity_id, lines))

        assert second.entry_number == "JE-202506-00002"
