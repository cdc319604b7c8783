"""
Ledgerline Payroll - General Ledger Posting Models

Minimal double-entry journal storage that payroll approvals and
statutory remittance payments post to:
- Journal entries with balanced debit/credit totals
- Journal entry lines keyed by chart-of-accounts code
- One posting per source document reference (payroll run, remittance payment)
"""

import uuid
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import List, Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Integer, Numeric, String, Uuid,
    Enum as SQLEnum, UniqueConstraint, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from app.models.base import BaseModel, AuditMixin


# =============================================================================
# ENUMS
# =============================================================================

class JournalEntryStatus(str, Enum):
    """Status of a journal entry."""
    POSTED = "posted"


class JournalEntryType(str, Enum):
    """Type/source of journal entry."""
    PAYROLL = "payroll"
    PAYMENT = "payment"


# =============================================================================
# JOURNAL ENTRIES
# =============================================================================

class JournalEntry(BaseModel, AuditMixin):
    """
    Journal Entry - The core of double-entry accounting.

    Every posting creates a journal entry with balanced debits and credits.
    """

    __tablename__ = "journal_entries"

    entity_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        nullable=False,
        index=True,
    )

    # Entry Identification
    entry_number: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Auto-generated journal entry number (e.g., JE-202601-00001)",
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    # Entry Type & Source
    entry_type: Mapped[JournalEntryType] = mapped_column(
        SQLEnum(JournalEntryType),
        nullable=False,
    )
    source_module: Mapped[str] = mapped_column(
        String(50), nullable=False,
        comment="Module that created this entry (payroll, remittance)",
    )
    source_document_type: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True,
        comment="Type of source document (payroll_run, statutory_remittance)",
    )
    source_document_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, nullable=False,
        comment="ID of the source document",
    )
    source_reference: Mapped[str] = mapped_column(
        String(100), nullable=False,
        comment="Reference number from source document",
    )

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    # Totals (for quick reference - must always balance)
    total_debit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    total_credit: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    currency: Mapped[str] = mapped_column(String(3), default="JMD", nullable=False)

    status: Mapped[JournalEntryStatus] = mapped_column(
        SQLEnum(JournalEntryStatus),
        default=JournalEntryStatus.POSTED,
        nullable=False,
    )
    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    lines: Mapped[List["JournalEntryLine"]] = relationship(
        "JournalEntryLine",
        back_populates="journal_entry",
        cascade="all, delete-orphan",
        order_by="JournalEntryLine.line_number",
    )

    __table_args__ = (
        UniqueConstraint('entity_id', 'entry_number', name='uq_journal_entry_number'),
        UniqueConstraint(
            'entity_id', 'source_module', 'source_document_id', 'source_reference',
            name='uq_journal_entry_source_document',
        ),
        Index('ix_je_entity_date', 'entity_id', 'entry_date'),
        CheckConstraint('total_debit = total_credit', name='ck_balanced_entry'),
    )

    def __repr__(self) -> str:
        return f"<JournalEntry({self.entry_number}: {self.description[:50]})>"


class JournalEntryLine(BaseModel):
    """
    Individual line item in a journal entry.
    Each line is either a debit or credit to a specific account.
    """

    __tablename__ = "journal_entry_lines"

    journal_entry_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("journal_entries.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )

    line_number: Mapped[int] = mapped_column(Integer, nullable=False)
    account_code: Mapped[str] = mapped_column(String(20), nullable=False, index=True)
    account_name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(String(500), nullable=True)

    # Amount (one or the other, not both)
    debit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )
    credit_amount: Mapped[Decimal] = mapped_column(
        Numeric(precision=18, scale=2),
        default=Decimal("0.00"),
        nullable=False,
    )

    journal_entry: Mapped["JournalEntry"] = relationship(
        "JournalEntry", back_populates="lines",
    )

    __table_args__ = (
        UniqueConstraint('journal_entry_id', 'line_number', name='uq_je_line_number'),
        CheckConstraint(
            '(debit_amount > 0 AND credit_amount = 0) OR (credit_amount > 0 AND debit_amount = 0)',
            name='ck_debit_or_credit'
        ),
    )

    def __repr__(self) -> str:
        return f"<JournalEntryLine({self.account_code} DR: {self.debit_amount}, CR: {self.credit_amount})>"
