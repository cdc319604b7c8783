"""
Error Handling Module for Ledgerline Payroll

This module provides centralized error handling with:
- Custom exception hierarchy
- Standardized error responses
- Error logging
- Payroll state-machine and ledger posting errors
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union
from uuid import UUID
import logging

from fastapi import FastAPI, Request, HTTPException, status
from fastapi.responses import JSONResponse
from fastapi.exceptions import RequestValidationError
from fastapi.encoders import jsonable_encoder
from sqlalchemy.exc import (
    SQLAlchemyError,
    IntegrityError,
    OperationalError,
    DataError,
)
from starlette.exceptions import HTTPException as StarletteHTTPException

# Configure logging
logger = logging.getLogger("ledgerline.errors")


class ErrorCode(str, Enum):
    """Standardized error codes for the application"""

    # Validation Errors (422)
    VALIDATION_ERROR = "VALIDATION_ERROR"
    INVALID_INPUT = "INVALID_INPUT"
    MISSING_FIELD = "MISSING_FIELD"
    INVALID_DATE_RANGE = "INVALID_DATE_RANGE"
    INVALID_AMOUNT = "INVALID_AMOUNT"
    INVALID_TAX_PERIOD = "INVALID_TAX_PERIOD"
    UNKNOWN_EMPLOYEE = "UNKNOWN_EMPLOYEE"
    INACTIVE_EMPLOYEE = "INACTIVE_EMPLOYEE"
    NO_RULE_SET = "NO_RULE_SET"

    # Resource Errors (404/409)
    NOT_FOUND = "NOT_FOUND"
    PAYROLL_RUN_NOT_FOUND = "PAYROLL_RUN_NOT_FOUND"
    PAYROLL_ENTRY_NOT_FOUND = "PAYROLL_ENTRY_NOT_FOUND"
    REMITTANCE_NOT_FOUND = "REMITTANCE_NOT_FOUND"
    RESOURCE_CONFLICT = "RESOURCE_CONFLICT"
    DUPLICATE_ENTRY = "DUPLICATE_ENTRY"
    INVALID_STATE_TRANSITION = "INVALID_STATE_TRANSITION"
    ALREADY_PAID = "ALREADY_PAID"

    # Computation Errors (422)
    COMPUTATION_INVARIANT_VIOLATED = "COMPUTATION_INVARIANT_VIOLATED"
    NEGATIVE_NET_PAY = "NEGATIVE_NET_PAY"
    UNBALANCED_ENTRY = "UNBALANCED_ENTRY"

    # External Service Errors (502)
    EXTERNAL_SERVICE_ERROR = "EXTERNAL_SERVICE_ERROR"
    LEDGER_POSTING_ERROR = "LEDGER_POSTING_ERROR"

    # Database Errors (500)
    DATABASE_ERROR = "DATABASE_ERROR"
    CONNECTION_ERROR = "CONNECTION_ERROR"
    DATA_INTEGRITY_ERROR = "DATA_INTEGRITY_ERROR"

    # Internal Errors (500)
    INTERNAL_ERROR = "INTERNAL_ERROR"


class AppException(Exception):
    """Base exception for all application exceptions"""

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR,
        details: Optional[Dict[str, Any]] = None,
        field: Optional[str] = None,
        original_error: Optional[Exception] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        self.field = field
        self.original_error = original_error
        self.timestamp = datetime.utcnow()
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for JSON response"""
        result = {
            "code": self.code.value,
            "message": self.message,
            "timestamp": self.timestamp.isoformat() + "Z",
        }
        if self.field:
            result["field"] = self.field
        if self.details:
            result["details"] = self.details
        return result


# ============================================================================
# Validation Exceptions
# ============================================================================

class ValidationException(AppException):
    """Base validation exception"""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        code: ErrorCode = ErrorCode.VALIDATION_ERROR,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
            field=field,
        )


class InvalidDateRangeException(ValidationException):
    """Invalid date range"""

    def __init__(self, start_date: str, end_date: str, message: Optional[str] = None, field: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid date range: {start_date} to {end_date}. Start date must not be after end date.",
            field=field,
            code=ErrorCode.INVALID_DATE_RANGE,
            details={"start_date": start_date, "end_date": end_date},
        )


class InvalidAmountException(ValidationException):
    """Invalid monetary amount"""

    def __init__(self, amount: Any, field: str = "amount", message: Optional[str] = None):
        super().__init__(
            message=message or f"Invalid amount for {field}: {amount}. Amount must be a non-negative number.",
            field=field,
            code=ErrorCode.INVALID_AMOUNT,
            details={"provided_amount": str(amount)},
        )


class UnknownEmployeeException(ValidationException):
    """One or more employees are not in the employee directory"""

    def __init__(self, employee_ids: List[Union[str, UUID]]):
        ids = [str(employee_id) for employee_id in employee_ids]
        super().__init__(
            message=f"Unknown employee(s): {', '.join(ids)}",
            field="entries",
            code=ErrorCode.UNKNOWN_EMPLOYEE,
            details={"employee_ids": ids},
        )


class InactiveEmployeeException(ValidationException):
    """Employee exists but is not active"""

    def __init__(self, employee_ids: List[Union[str, UUID]]):
        ids = [str(employee_id) for employee_id in employee_ids]
        super().__init__(
            message=f"Inactive employee(s) cannot be paid: {', '.join(ids)}",
            field="entries",
            code=ErrorCode.INACTIVE_EMPLOYEE,
            details={"employee_ids": ids},
        )


# ============================================================================
# Resource Exceptions
# ============================================================================

class NotFoundException(AppException):
    """Resource not found exception"""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[Union[str, UUID]] = None,
        message: Optional[str] = None,
        code: ErrorCode = ErrorCode.NOT_FOUND,
    ):
        if message is None:
            if resource_id:
                message = f"{resource_type} with ID '{resource_id}' not found"
            else:
                message = f"{resource_type} not found"
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_404_NOT_FOUND,
            details={"resource_type": resource_type, "resource_id": str(resource_id) if resource_id else None},
        )


class PayrollRunNotFoundException(NotFoundException):
    """Payroll run not found"""

    def __init__(self, run_id: Union[str, UUID]):
        super().__init__(
            resource_type="PayrollRun",
            resource_id=run_id,
            code=ErrorCode.PAYROLL_RUN_NOT_FOUND,
        )


class PayrollEntryNotFoundException(NotFoundException):
    """Payroll entry not found"""

    def __init__(self, entry_id: Union[str, UUID]):
        super().__init__(
            resource_type="PayrollEntry",
            resource_id=entry_id,
            code=ErrorCode.PAYROLL_ENTRY_NOT_FOUND,
        )


class RemittanceNotFoundException(NotFoundException):
    """Statutory remittance not found"""

    def __init__(self, remittance_id: Union[str, UUID]):
        super().__init__(
            resource_type="StatutoryRemittance",
            resource_id=remittance_id,
            code=ErrorCode.REMITTANCE_NOT_FOUND,
        )


class ConflictException(AppException):
    """Resource conflict exception"""

    def __init__(
        self,
        message: str,
        resource_type: Optional[str] = None,
        code: ErrorCode = ErrorCode.RESOURCE_CONFLICT,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        if resource_type:
            _details["resource_type"] = resource_type
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_409_CONFLICT,
            details=_details,
        )


class InvalidStateTransitionException(ConflictException):
    """Requested lifecycle action is not allowed from the current status"""

    def __init__(
        self,
        resource_id: Union[str, UUID],
        action: str,
        expected_status: str,
        actual_status: str,
        resource_type: str = "PayrollRun",
    ):
        super().__init__(
            message=(
                f"Cannot {action} {resource_type} '{resource_id}': "
                f"expected status '{expected_status}', found '{actual_status}'"
            ),
            resource_type=resource_type,
            code=ErrorCode.INVALID_STATE_TRANSITION,
            details={
                "resource_id": str(resource_id),
                "action": action,
                "expected_status": expected_status,
                "actual_status": actual_status,
            },
        )


class RemittanceAlreadyPaidException(ConflictException):
    """Remittance has already been paid in full"""

    def __init__(self, remittance_id: Union[str, UUID]):
        super().__init__(
            message=f"Remittance '{remittance_id}' has already been paid",
            resource_type="StatutoryRemittance",
            code=ErrorCode.ALREADY_PAID,
            details={"resource_id": str(remittance_id)},
        )


# ============================================================================
# Computation Exceptions
# ============================================================================

class ComputationInvariantException(AppException):
    """A computed figure violates an arithmetic invariant"""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.COMPUTATION_INVARIANT_VIOLATED,
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            details=details,
        )


class NegativeNetPayException(ComputationInvariantException):
    """Deductions exceed gross pay for one or more entries"""

    def __init__(self, run_id: Union[str, UUID], employee_ids: List[Union[str, UUID]]):
        ids = [str(employee_id) for employee_id in employee_ids]
        super().__init__(
            message=f"Payroll run '{run_id}' has entries with negative net pay; adjust deductions before approval",
            code=ErrorCode.NEGATIVE_NET_PAY,
            details={"run_id": str(run_id), "employee_ids": ids},
        )


class UnbalancedEntryException(ComputationInvariantException):
    """Journal entry debits and credits differ"""

    def __init__(self, total_debit: Any, total_credit: Any, reference: Optional[str] = None):
        details = {"total_debit": str(total_debit), "total_credit": str(total_credit)}
        if reference:
            details["reference"] = reference
        super().__init__(
            message=f"Journal entry not balanced: debits {total_debit} != credits {total_credit}",
            code=ErrorCode.UNBALANCED_ENTRY,
            details=details,
        )


# ============================================================================
# External Service Exceptions
# ============================================================================

class ExternalServiceException(AppException):
    """External service error exception"""

    def __init__(
        self,
        service_name: str,
        message: str,
        code: ErrorCode = ErrorCode.EXTERNAL_SERVICE_ERROR,
        original_error: Optional[Exception] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        _details = details or {}
        _details["service"] = service_name
        super().__init__(
            code=code,
            message=message,
            status_code=status.HTTP_502_BAD_GATEWAY,
            details=_details,
            original_error=original_error,
        )


class LedgerPostingException(ExternalServiceException):
    """General ledger rejected or failed a posting"""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(
            service_name="General Ledger",
            message=f"Ledger posting failed: {message}",
            code=ErrorCode.LEDGER_POSTING_ERROR,
            original_error=original_error,
        )


# ============================================================================
# Exception Handlers
# ============================================================================

def create_error_response(
    code: ErrorCode,
    message: str,
    status_code: int,
    details: Optional[Dict[str, Any]] = None,
    field: Optional[str] = None,
) -> JSONResponse:
    """Create a standardized error response"""
    content = {
        "detail": {
            "code": code.value,
            "message": message,
            "timestamp": datetime.utcnow().isoformat() + "Z",
        }
    }
    if field:
        content["detail"]["field"] = field
    if details:
        content["detail"]["details"] = details

    return JSONResponse(status_code=status_code, content=jsonable_encoder(content))


async def app_exception_handler(request: Request, exc: AppException) -> JSONResponse:
    """Handle AppException"""
    log = logger.error if exc.status_code >= 500 else logger.warning
    log(
        f"AppException: {exc.code.value} - {exc.message}",
        extra={
            "code": exc.code.value,
            "path": request.url.path,
            "method": request.method,
            "details": exc.details,
        },
        exc_info=exc.original_error,
    )

    return create_error_response(
        code=exc.code,
        message=exc.message,
        status_code=exc.status_code,
        details=exc.details,
        field=exc.field,
    )


async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Handle HTTPException"""
    # Map status codes to error codes
    code_map = {
        400: ErrorCode.INVALID_INPUT,
        404: ErrorCode.NOT_FOUND,
        409: ErrorCode.RESOURCE_CONFLICT,
        422: ErrorCode.VALIDATION_ERROR,
        500: ErrorCode.INTERNAL_ERROR,
        502: ErrorCode.EXTERNAL_SERVICE_ERROR,
    }

    error_code = code_map.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    message = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    logger.warning(
        f"HTTPException: {exc.status_code} - {message}",
        extra={"path": request.url.path, "method": request.method},
    )

    return create_error_response(
        code=error_code,
        message=message,
        status_code=exc.status_code,
    )


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Handle Pydantic validation errors"""
    errors = []
    for error in exc.errors():
        field = ".".join(str(loc) for loc in error["loc"])
        errors.append({
            "field": field,
            "message": error["msg"],
            "type": error["type"],
        })

    logger.warning(
        f"ValidationError: {len(errors)} validation errors",
        extra={"path": request.url.path, "method": request.method, "errors": errors},
    )

    return create_error_response(
        code=ErrorCode.VALIDATION_ERROR,
        message="Request validation failed",
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        details={"errors": errors},
    )


async def sqlalchemy_exception_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    """Handle SQLAlchemy errors"""
    error_message = "A database error occurred"
    error_code = ErrorCode.DATABASE_ERROR
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR

    if isinstance(exc, IntegrityError):
        error_message = "Data integrity constraint violated"
        error_code = ErrorCode.DATA_INTEGRITY_ERROR
        # Check for specific constraints
        error_str = str(exc.orig).lower() if exc.orig else ""
        if "unique" in error_str or "duplicate" in error_str:
            error_message = "A record with this value already exists"
            error_code = ErrorCode.DUPLICATE_ENTRY
            status_code = status.HTTP_409_CONFLICT
        elif "foreign key" in error_str:
            error_message = "Referenced record does not exist"
            status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    elif isinstance(exc, OperationalError):
        error_message = "Database operation failed"
        error_code = ErrorCode.CONNECTION_ERROR
    elif isinstance(exc, DataError):
        error_message = "Invalid data format for database"
        status_code = status.HTTP_422_UNPROCESSABLE_ENTITY

    logger.error(
        f"SQLAlchemyError: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    return create_error_response(
        code=error_code,
        message=error_message,
        status_code=status_code,
    )


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Handle unhandled exceptions"""
    logger.critical(
        f"UnhandledException: {type(exc).__name__} - {str(exc)}",
        extra={"path": request.url.path, "method": request.method},
        exc_info=True,
    )

    # In production, don't expose internal error details
    return create_error_response(
        code=ErrorCode.INTERNAL_ERROR,
        message="An unexpected error occurred. Please try again later.",
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
    )


def setup_exception_handlers(app: FastAPI) -> None:
    """Register all exception handlers with the FastAPI application"""
    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(SQLAlchemyError, sqlalchemy_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)


# Export all exceptions for easy importing
__all__ = [
    # Base
    "AppException",
    "ErrorCode",

    # Validation
    "ValidationException",
    "InvalidDateRangeException",
    "InvalidAmountException",
    "UnknownEmployeeException",
    "InactiveEmployeeException",

    # Resource
    "NotFoundException",
    "PayrollRunNotFoundException",
    "PayrollEntryNotFoundException",
    "RemittanceNotFoundException",
    "ConflictException",
    "InvalidStateTransitionException",
    "RemittanceAlreadyPaidException",

    # Computation
    "ComputationInvariantException",
    "NegativeNetPayException",
    "UnbalancedEntryException",

    # External Services
    "ExternalServiceException",
    "LedgerPostingException",

    # Handlers
    "setup_exception_handlers",
    "create_error_response",
]
