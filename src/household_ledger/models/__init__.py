"""Модели данных Household Ledger."""

from household_ledger.models.enums import (
    TransactionType,
    Frequency,
    ScheduledStatus,
    NotificationKind,
    NotificationStatus,
    STATUS_SORT_ORDER,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from household_ledger.models.models import (
    Base,
    CurrencyDB,
    AccountDB,
    CategoryDB,
    ScheduledTransactionDB,
    TransactionDB,
    NotificationLogDB,
    ScheduledTransactionCreate,
    ScheduledTransactionUpdate,
    ScheduledTransactionFilter,
    ScheduledTransactionExecute,
    ScheduledTransaction,
    TransactionCreate,
    TransactionUpdate,
    Transaction,
    NotificationRecord,
    ExecutionOutcome,
    ExecutionResult,
    ScheduledTransactionPage,
)

__all__ = [
    "TransactionType",
    "Frequency",
    "ScheduledStatus",
    "NotificationKind",
    "NotificationStatus",
    "STATUS_SORT_ORDER",
    "ACTIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Base",
    "CurrencyDB",
    "AccountDB",
    "CategoryDB",
    "ScheduledTransactionDB",
    "TransactionDB",
    "NotificationLogDB",
    "ScheduledTransactionCreate",
    "ScheduledTransactionUpdate",
    "ScheduledTransactionFilter",
    "ScheduledTransactionExecute",
    "ScheduledTransaction",
    "TransactionCreate",
    "TransactionUpdate",
    "Transaction",
    "NotificationRecord",
    "ExecutionOutcome",
    "ExecutionResult",
    "ScheduledTransactionPage",
]
