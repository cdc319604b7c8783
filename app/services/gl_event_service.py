"""
Ledgerline Payroll - GL Event Service

Posts the financial effect of payroll documents to the general ledger.
It ensures proper double-entry accounting for:
    - PayrollService.approve_payroll_run() -> build_payroll_entry() + post()
    - RemittanceService.record_payment() -> build_remittance_payment_entry() + post()

Postings are written in the caller's session and transaction, so a
failure later in the caller's unit of work rolls the posting back too.
"""

import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional, Tuple

from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.models.accounting import (
    JournalEntry, JournalEntryLine, JournalEntryStatus, JournalEntryType,
)
from app.models.payroll import PayrollRun, RemittanceType, StatutoryRemittance
from app.utils.error_handling import (
    ComputationInvariantException,
    LedgerPostingException,
    UnbalancedEntryException,
)
from app.utils.money import ZERO, money

logger = logging.getLogger(__name__)


class GLSourceModule(str, Enum):
    """Source modules that can post to GL."""
    PAYROLL = "PAYROLL"
    STATUTORY_REMITTANCE = "STATUTORY_REMITTANCE"


# Jamaican small-business chart of accounts: code, name
GL_ACCOUNTS: Dict[str, Tuple[str, str]] = {
    # Assets
    "BANK": ("1020", "Bank - Operating Account"),

    # Liabilities - employee withholdings
    "PAYE_PAYABLE": ("2200", "PAYE Payable"),
    "NIS_PAYABLE": ("2210", "NIS Payable - Employee"),
    "NHT_PAYABLE": ("2220", "NHT Payable - Employee"),
    "EDUCATION_TAX_PAYABLE": ("2230", "Education Tax Payable - Employee"),
    "HEART_PAYABLE": ("2240", "HEART/NTA Payable"),
    "PENSION_PAYABLE": ("2260", "Pension Contributions Payable"),
    "OTHER_DEDUCTIONS_PAYABLE": ("2270", "Other Payroll Deductions Payable"),
    "SALARIES_PAYABLE": ("2300", "Salaries Payable"),

    # Liabilities - employer contributions
    "EMPLOYER_NIS_PAYABLE": ("2310", "NIS Payable - Employer"),
    "EMPLOYER_NHT_PAYABLE": ("2320", "NHT Payable - Employer"),
    "EMPLOYER_EDUCATION_TAX_PAYABLE": ("2330", "Education Tax Payable - Employer"),

    # Expenses
    "SALARY_EXPENSE": ("6110", "Salaries & Wages"),
    "EMPLOYER_PAYROLL_TAX_EXPENSE": ("6120", "Employer Payroll Taxes"),
}


# ===========================================
# POSTING REQUEST / RESULT
# ===========================================

@dataclass
class LedgerLine:
    """One debit or credit line of a posting request."""
    account_code: str
    account_name: str
    debit_amount: Decimal = ZERO
    credit_amount: Decimal = ZERO
    description: Optional[str] = None

    @classmethod
    def debit(cls, account_key: str, amount: Decimal, description: Optional[str] = None) -> "LedgerLine":
        code, name = GL_ACCOUNTS[account_key]
        return cls(code, name, debit_amount=money(amount), description=description)

    @classmethod
    def credit(cls, account_key: str, amount: Decimal, description: Optional[str] = None) -> "LedgerLine":
        code, name = GL_ACCOUNTS[account_key]
        return cls(code, name, credit_amount=money(amount), description=description)

    @property
    def is_zero(self) -> bool:
        return self.debit_amount == 0 and self.credit_amount == 0


@dataclass
class LedgerEntryRequest:
    """A balanced journal entry to be posted for a source document."""
    entity_id: uuid.UUID
    entry_date: date
    description: str
    entry_type: JournalEntryType
    source_module: GLSourceModule
    source_document_type: str
    source_document_id: uuid.UUID
    source_reference: str
    lines: List[LedgerLine] = field(default_factory=list)
    user_id: Optional[uuid.UUID] = None

    def posting_lines(self) -> List[LedgerLine]:
        """Lines with a non-zero amount."""
        return [line for line in self.lines if not line.is_zero]

    def totals(self) -> Tuple[Decimal, Decimal]:
        lines = self.posting_lines()
        return (
            sum((line.debit_amount for line in lines), ZERO),
            sum((line.credit_amount for line in lines), ZERO),
        )

    def validate(self) -> None:
        """
        Raises:
            ComputationInvariantException: fewer than two non-zero lines
            UnbalancedEntryException: debits differ from credits
        """
        lines = self.posting_lines()
        if len(lines) < 2:
            raise ComputationInvariantException(
                message="Journal entry requires at least two non-zero lines",
                details={"reference": self.source_reference, "line_count": len(lines)},
            )
        for line in lines:
            if line.debit_amount < 0 or line.credit_amount < 0:
                raise ComputationInvariantException(
                    message=f"Journal line for account {line.account_code} has a negative amount",
                    details={"reference": self.source_reference, "account_code": line.account_code},
                )
        total_debit, total_credit = self.totals()
        if total_debit != total_credit:
            raise UnbalancedEntryException(total_debit, total_credit, reference=self.source_reference)


@dataclass
class GLPostingResult:
    """Reference returned by the ledger for a successful posting."""
    journal_entry_id: uuid.UUID
    entry_number: str
    total_debit: Decimal
    total_credit: Decimal


# ===========================================
# LEDGER INTERFACE
# ===========================================

class GeneralLedger(ABC):
    """Abstract general ledger that payroll postings go through."""

    @abstractmethod
    async def post(self, request: LedgerEntryRequest) -> GLPostingResult:
        """
        Post a balanced entry and return its reference.

        Raises:
            UnbalancedEntryException: the entry does not balance
            LedgerPostingException: the ledger could not record the entry
        """
        pass


class GLEventService(GeneralLedger):
    """
    Database-backed general ledger.

    This service ensures:
    1. Every posting is a balanced double-entry journal entry
    2. Entries are posted immediately (status POSTED)
    3. Source documents are linked to their journal entries
    4. A source document is posted at most once per reference
    """

    def __init__(self, db: AsyncSession, currency: Optional[str] = None):
        self.db = db
        self.currency = currency or settings.currency

    async def is_already_posted(
        self,
        entity_id: uuid.UUID,
        source_module: str,
        source_document_id: uuid.UUID,
        source_reference: str,
    ) -> bool:
        """Check if document has already been posted to GL under this reference."""
        result = await self.db.execute(
            select(JournalEntry.id)
            .where(JournalEntry.entity_id == entity_id)
            .where(JournalEntry.source_module == source_module)
            .where(JournalEntry.source_document_id == source_document_id)
            .where(JournalEntry.source_reference == source_reference)
        )
        return result.scalar_one_or_none() is not None

    async def _generate_entry_number(
        self,
        entity_id: uuid.UUID,
        entry_date: date,
    ) -> str:
        """Generate unique entry number."""
        prefix = f"JE-{entry_date.strftime('%Y%m')}"
        result = await self.db.execute(
            select(func.count(JournalEntry.id))
            .where(JournalEntry.entity_id == entity_id)
            .where(JournalEntry.entry_number.like(f"{prefix}%"))
        )
        count = result.scalar() or 0
        return f"{prefix}-{count + 1:05d}"

    async def post(self, request: LedgerEntryRequest) -> GLPostingResult:
        """
        Create and post a journal entry from a source document.

        The entry is flushed, not committed; the caller owns the transaction.
        """
        request.validate()
        source_module = request.source_module.value

        if await self.is_already_posted(
            request.entity_id, source_module, request.source_document_id, request.source_reference
        ):
            raise LedgerPostingException(
                f"{request.source_document_type} '{request.source_reference}' has already been posted"
            )

        total_debit, total_credit = request.totals()

        try:
            entry_number = await self._generate_entry_number(request.entity_id, request.entry_date)

            entry = JournalEntry(
                entity_id=request.entity_id,
                entry_number=entry_number,
                entry_date=request.entry_date,
                description=request.description,
                entry_type=request.entry_type,
                source_module=source_module,
                source_document_type=request.source_document_type,
                source_document_id=request.source_document_id,
                source_reference=request.source_reference,
                total_debit=total_debit,
                total_credit=total_credit,
                currency=self.currency,
                status=JournalEntryStatus.POSTED,
                posted_at=datetime.now(timezone.utc),
                created_by_id=request.user_id,
                updated_by_id=request.user_id,
            )
            self.db.add(entry)
            await self.db.flush()

            for idx, line_data in enumerate(request.posting_lines(), 1):
                self.db.add(JournalEntryLine(
                    journal_entry_id=entry.id,
                    line_number=idx,
                    account_code=line_data.account_code,
                    account_name=line_data.account_name,
                    description=line_data.description,
                    debit_amount=line_data.debit_amount,
                    credit_amount=line_data.credit_amount,
                ))
            await self.db.flush()
        except SQLAlchemyError as e:
            logger.error(
                f"GL posting failed for {request.source_document_type} {request.source_reference}: {e}",
                extra={"entity_id": str(request.entity_id)},
            )
            raise LedgerPostingException(str(e), original_error=e)

        logger.info(
            f"Posted {entry_number} for {request.source_document_type} {request.source_reference} "
            f"(DR {total_debit} / CR {total_credit})",
            extra={"entity_id": str(request.entity_id)},
        )
        return GLPostingResult(
            journal_entry_id=entry.id,
            entry_number=entry_number,
            total_debit=total_debit,
            total_credit=total_credit,
        )


# ===========================================
# ENTRY BUILDERS
# ===========================================

def build_payroll_entry(
    run: PayrollRun,
    user_id: Optional[uuid.UUID] = None,
) -> LedgerEntryRequest:
    """
    Build the accrual entry for an approved payroll run.

    Creates journal entry:
        Dr. Salaries & Wages (gross)
        Dr. Employer Payroll Taxes (employer contributions)
            Cr. PAYE / NIS / NHT / Education Tax Payable (employee)
            Cr. NIS / NHT / Education Tax Payable (employer)
            Cr. HEART/NTA Payable
            Cr. Pension / Other Deductions Payable
            Cr. Salaries Payable (net)
    """
    lines = [
        LedgerLine.debit("SALARY_EXPENSE", run.total_gross_pay, "Gross salaries"),
        LedgerLine.debit(
            "EMPLOYER_PAYROLL_TAX_EXPENSE", run.total_employer_contributions, "Employer statutory contributions"
        ),
        LedgerLine.credit("PAYE_PAYABLE", run.total_paye),
        LedgerLine.credit("NIS_PAYABLE", run.total_nis),
        LedgerLine.credit("NHT_PAYABLE", run.total_nht),
        LedgerLine.credit("EDUCATION_TAX_PAYABLE", run.total_education_tax),
        LedgerLine.credit("HEART_PAYABLE", run.total_heart),
        LedgerLine.credit("PENSION_PAYABLE", run.total_pension),
        LedgerLine.credit("OTHER_DEDUCTIONS_PAYABLE", run.total_other_deductions),
        LedgerLine.credit("SALARIES_PAYABLE", run.total_net_pay, "Net pay due to employees"),
        LedgerLine.credit("EMPLOYER_NIS_PAYABLE", run.total_employer_nis),
        LedgerLine.credit("EMPLOYER_NHT_PAYABLE", run.total_employer_nht),
        LedgerLine.credit("EMPLOYER_EDUCATION_TAX_PAYABLE", run.total_employer_education_tax),
    ]
    return LedgerEntryRequest(
        entity_id=run.entity_id,
        entry_date=run.pay_date,
        description=f"Payroll {run.run_number}: {run.name}",
        entry_type=JournalEntryType.PAYROLL,
        source_module=GLSourceModule.PAYROLL,
        source_document_type="payroll_run",
        source_document_id=run.id,
        source_reference=run.run_number,
        lines=lines,
        user_id=user_id,
    )


# Liability accounts cleared by each remittance type, employee side first
REMITTANCE_LIABILITY_ACCOUNTS: Dict[RemittanceType, Tuple[str, ...]] = {
    RemittanceType.PAYE: ("PAYE_PAYABLE",),
    RemittanceType.NIS: ("NIS_PAYABLE", "EMPLOYER_NIS_PAYABLE"),
    RemittanceType.NHT: ("NHT_PAYABLE", "EMPLOYER_NHT_PAYABLE"),
    RemittanceType.EDUCATION_TAX: ("EDUCATION_TAX_PAYABLE", "EMPLOYER_EDUCATION_TAX_PAYABLE"),
    RemittanceType.HEART_NTA: ("HEART_PAYABLE",),
}


def build_remittance_payment_entry(
    remittance: StatutoryRemittance,
    amount: Decimal,
    payment_date: date,
    bank_account_code: str,
    employee_portion: Decimal,
    reference_number: Optional[str] = None,
    user_id: Optional[uuid.UUID] = None,
) -> LedgerEntryRequest:
    """
    Build the entry clearing a statutory liability on payment.

    Creates journal entry:
        Dr. Liability account(s) for the remittance type
            Cr. Bank

    ``employee_portion`` is the part of ``amount`` cleared from the
    employee withholding account; the rest clears the employer account.
    """
    accounts = REMITTANCE_LIABILITY_ACCOUNTS[remittance.remittance_type]
    period = f"{remittance.period_year}-{remittance.period_month:02d}"
    label = remittance.remittance_type.value.upper()

    if len(accounts) == 1:
        debits = [LedgerLine.debit(accounts[0], amount, f"{label} remittance {period}")]
    else:
        employee_amount = min(employee_portion, amount)
        debits = [
            LedgerLine.debit(accounts[0], employee_amount, f"{label} employee portion {period}"),
            LedgerLine.debit(accounts[1], amount - employee_amount, f"{label} employer portion {period}"),
        ]

    bank_code, bank_name = GL_ACCOUNTS["BANK"]
    if bank_account_code != bank_code:
        bank_name = f"Bank Account {bank_account_code}"

    return LedgerEntryRequest(
        entity_id=remittance.entity_id,
        entry_date=payment_date,
        description=f"{label} statutory remittance for {period}" + (f" (ref {reference_number})" if reference_number else ""),
        entry_type=JournalEntryType.PAYMENT,
        source_module=GLSourceModule.STATUTORY_REMITTANCE,
        source_document_type="statutory_remittance",
        source_document_id=remittance.id,
        source_reference=f"REM-{label}-{period}-{payment_date.strftime('%Y%m%d')}",
        lines=debits + [LedgerLine(bank_account_code, bank_name, credit_amount=money(amount))],
        user_id=user_id,
    )