"""
Ledgerline Payroll - Payroll Router

API endpoints for payroll runs and statutory remittances with
Jamaican compliance (PAYE, NIS, NHT, Education Tax, HEART/NTA).
"""

import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Query, Path, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_async_session
from app.dependencies import get_current_entity_id, get_current_user_id
from app.models.payroll import PayrollStatus, RemittanceType
from app.services.payroll_service import PayrollEntryInput, PayrollService
from app.services.remittance_service import RemittanceService
from app.services.tax_calculators.statutory_rules import get_rule_set
from app.schemas.payroll import (
    # Payroll schemas
    PayrollRunCreate,
    PayrollRunResponse,
    PayrollRunSummary,
    PayrollRunListResponse,
    PayrollEntryUpdate,
    # Back pay
    BackPayRequest,
    BackPayCalculationResponse,
    # Remittance schemas
    RemittanceGenerateRequest,
    RemittancePaymentRequest,
    RemittancePaymentResponse,
    RemittanceListResponse,
    RemittanceSummary,
    StatutoryRemittanceResponse,
    # Rules
    StatutoryRuleSetResponse,
)
from app.utils.error_handling import PayrollRunNotFoundException


router = APIRouter()


def _remittance_list(records, summary, today: date) -> RemittanceListResponse:
    return RemittanceListResponse(
        items=[StatutoryRemittanceResponse.from_record(record, today) for record in records],
        summary=RemittanceSummary(**summary),
    )


# ===========================================
# PAYROLL RUN ENDPOINTS
# ===========================================

@router.post(
    "/payroll-runs",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create payroll run",
)
async def create_payroll_run(
    data: PayrollRunCreate,
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """
    Create a DRAFT payroll run and compute every entry.

    Basic salary defaults to the employee's base salary. The statutory
    rules in force on the pay date are captured on the run.
    """
    service = PayrollService(db)

    payroll = await service.create_payroll_run(
        entity_id=entity_id,
        period_start=data.period_start,
        period_end=data.period_end,
        pay_date=data.pay_date,
        entries=[PayrollEntryInput(**item.model_dump()) for item in data.entries],
        frequency=data.frequency,
        name=data.name,
        notes=data.notes,
        created_by_id=user_id,
    )
    return PayrollRunResponse.model_validate(payroll)


@router.get(
    "/payroll-runs",
    response_model=PayrollRunListResponse,
    summary="List payroll runs",
)
async def list_payroll_runs(
    status_filter: Optional[PayrollStatus] = Query(None, alias="status"),
    year: Optional[int] = Query(None, ge=2000, le=2100),
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
):
    """List payroll runs, newest pay date first."""
    service = PayrollService(db)

    runs, total = await service.list_payroll_runs(
        entity_id=entity_id,
        status=status_filter,
        year=year,
        page=page,
        per_page=per_page,
    )

    return PayrollRunListResponse(
        items=[PayrollRunSummary.model_validate(run) for run in runs],
        total=total,
        page=page,
        per_page=per_page,
    )


@router.get(
    "/payroll-runs/{run_id}",
    response_model=PayrollRunResponse,
    summary="Get payroll run",
)
async def get_payroll_run(
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
):
    """Get payroll run with its entries."""
    service = PayrollService(db)

    payroll = await service.get_payroll_run(entity_id, run_id)
    if not payroll:
        raise PayrollRunNotFoundException(run_id)

    return PayrollRunResponse.model_validate(payroll)


@router.patch(
    "/payroll-runs/{run_id}/entries/{entry_id}",
    response_model=PayrollRunResponse,
    summary="Edit payroll entry",
)
async def update_payroll_entry(
    data: PayrollEntryUpdate,
    run_id: uuid.UUID = Path(...),
    entry_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Change the inputs of an entry in a DRAFT run and recompute it."""
    service = PayrollService(db)

    payroll = await service.update_payroll_entry(
        entity_id=entity_id,
        run_id=run_id,
        entry_id=entry_id,
        changes=data.model_dump(exclude_unset=True),
        updated_by_id=user_id,
    )
    return PayrollRunResponse.model_validate(payroll)


@router.post(
    "/payroll-runs/{run_id}/approve",
    response_model=PayrollRunResponse,
    summary="Approve payroll run",
)
async def approve_payroll_run(
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Approve a DRAFT run and post the payroll accrual to the general ledger."""
    service = PayrollService(db)

    payroll = await service.approve_payroll_run(
        entity_id=entity_id,
        run_id=run_id,
        approved_by_id=user_id,
    )
    return PayrollRunResponse.model_validate(payroll)


@router.post(
    "/payroll-runs/{run_id}/mark-paid",
    response_model=PayrollRunResponse,
    summary="Mark payroll run paid",
)
async def mark_payroll_paid(
    run_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Mark an APPROVED run as paid to employees."""
    service = PayrollService(db)

    payroll = await service.mark_payroll_paid(
        entity_id=entity_id,
        run_id=run_id,
        paid_by_id=user_id,
    )
    return PayrollRunResponse.model_validate(payroll)


# ===========================================
# BACK PAY ENDPOINTS
# ===========================================

@router.post(
    "/back-pay/calculate",
    response_model=BackPayCalculationResponse,
    summary="Calculate back pay for a retroactive raise",
)
async def calculate_back_pay(
    data: BackPayRequest,
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
):
    """
    Gross, statutory differences and employer cost owed for every pay
    period between the effective date and the through date. Nothing is saved.
    """
    service = PayrollService(db)

    employee, calc, rules = await service.calculate_back_pay(
        entity_id=entity_id,
        employee_id=data.employee_id,
        new_base_salary=data.new_base_salary,
        effective_date=data.effective_date,
        through_date=data.through_date,
        pay_date=data.pay_date,
        frequency=data.frequency,
    )
    return BackPayCalculationResponse(
        employee_id=employee.id,
        employee_name=employee.full_name,
        rule_set_version=rules.version,
        **calc.to_dict(),
    )


@router.post(
    "/payroll-runs/back-pay",
    response_model=PayrollRunResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create back-pay run",
)
async def create_back_pay_run(
    data: BackPayRequest,
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Create a DRAFT run paying the back pay as a single lump-sum entry."""
    service = PayrollService(db)

    payroll = await service.create_back_pay_run(
        entity_id=entity_id,
        employee_id=data.employee_id,
        new_base_salary=data.new_base_salary,
        effective_date=data.effective_date,
        through_date=data.through_date,
        pay_date=data.pay_date,
        frequency=data.frequency,
        reason=data.reason,
        created_by_id=user_id,
    )
    return PayrollRunResponse.model_validate(payroll)


# ===========================================
# STATUTORY REMITTANCE ENDPOINTS
# ===========================================

@router.post(
    "/remittances/generate",
    response_model=RemittanceListResponse,
    summary="Generate statutory remittances for a month",
)
async def generate_remittances(
    data: RemittanceGenerateRequest,
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """
    Aggregate approved payroll in the month into PAYE, NIS, NHT,
    Education Tax and HEART/NTA remittances. Safe to repeat.
    """
    service = RemittanceService(db)
    today = date.today()

    records, summary = await service.generate_remittances(
        entity_id=entity_id,
        year=data.year,
        month=data.month,
        user_id=user_id,
        today=today,
    )
    return _remittance_list(records, summary, today)


@router.get(
    "/remittances",
    response_model=RemittanceListResponse,
    summary="List statutory remittances",
)
async def list_remittances(
    year: Optional[int] = Query(None, ge=2000, le=2100),
    month: Optional[int] = Query(None, ge=1, le=12),
    remittance_type: Optional[RemittanceType] = Query(None),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
):
    """List remittances with due, paid and outstanding totals."""
    service = RemittanceService(db)
    today = date.today()

    records, summary = await service.list_remittances(
        entity_id=entity_id,
        year=year,
        month=month,
        remittance_type=remittance_type,
        today=today,
    )
    return _remittance_list(records, summary, today)


@router.post(
    "/remittances/{remittance_id}/pay",
    response_model=RemittancePaymentResponse,
    summary="Record remittance payment",
)
async def record_remittance_payment(
    data: RemittancePaymentRequest,
    remittance_id: uuid.UUID = Path(...),
    db: AsyncSession = Depends(get_async_session),
    entity_id: uuid.UUID = Depends(get_current_entity_id),
    user_id: Optional[uuid.UUID] = Depends(get_current_user_id),
):
    """Pay the outstanding amount and post the payment to the general ledger."""
    service = RemittanceService(db)

    remittance, amount, journal_entry_id = await service.record_payment(
        entity_id=entity_id,
        remittance_id=remittance_id,
        payment_date=data.payment_date,
        reference_number=data.reference_number,
        bank_account_code=data.bank_account_code,
        notes=data.notes,
        user_id=user_id,
    )
    return RemittancePaymentResponse(
        remittance=StatutoryRemittanceResponse.from_record(remittance, date.today()),
        payment_amount=amount,
        journal_entry_id=journal_entry_id,
    )


# ===========================================
# STATUTORY RULES
# ===========================================

@router.get(
    "/statutory-rules",
    response_model=StatutoryRuleSetResponse,
    summary="Get statutory rates in force",
)
async def get_statutory_rules(
    on: Optional[date] = Query(None, description="Defaults to today"),
):
    """Statutory rates and thresholds effective on a date."""
    rules = get_rule_set(on or date.today())
    return StatutoryRuleSetResponse.model_validate(rules)
