"""Утилиты приложения."""

from household_ledger.utils.logger import setup_logging, get_logger
from household_ledger.utils.error_handler import ErrorHandler, OperationResult, safe_operation
from household_ledger.utils.exceptions import (
    LedgerError,
    ValidationError,
    NotFoundError,
    InvalidStateError,
    UnsupportedFrequencyError,
    DatabaseError,
)

__all__ = [
    "setup_logging",
    "get_logger",
    "ErrorHandler",
    "OperationResult",
    "safe_operation",
    "LedgerError",
    "ValidationError",
    "NotFoundError",
    "InvalidStateError",
    "UnsupportedFrequencyError",
    "DatabaseError",
]
