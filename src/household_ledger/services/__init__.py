__all__ = [
    "signed_amount",
    "apply_balance_delta",
    "apply_transaction_effect",
    "next_due_date",
    "should_continue",
    "create_scheduled_transaction",
    "get_scheduled_transaction",
    "update_scheduled_transaction",
    "list_scheduled_transactions",
    "cancel_scheduled_transaction",
    "delete_scheduled_transaction",
    "sweep_overdue",
    "execute_scheduled_transaction",
    "pending_reminders",
    "mark_reminded",
    "overdue_needing_notification",
    "build_notification_record",
    "process_reminders",
    "process_overdue_notifications",
    "process_all_notifications",
    "create_notification_log",
    "update_notification_log",
    "was_notified_today",
    "get_transaction",
    "create_transaction",
    "update_transaction",
    "delete_transaction",
]

from household_ledger.services.balance_service import (
    signed_amount,
    apply_balance_delta,
    apply_transaction_effect
)

from household_ledger.services.recurrence_service import (
    next_due_date,
    should_continue
)

from household_ledger.services.overdue_service import sweep_overdue

from household_ledger.services.scheduled_transaction_service import (
    create_scheduled_transaction,
    get_scheduled_transaction,
    update_scheduled_transaction,
    list_scheduled_transactions,
    cancel_scheduled_transaction,
    delete_scheduled_transaction
)

from household_ledger.services.execution_service import execute_scheduled_transaction

from household_ledger.services.notification_log_service import (
    create_notification_log,
    update_notification_log,
    was_notified_today
)

from household_ledger.services.reminder_service import (
    pending_reminders,
    mark_reminded,
    overdue_needing_notification,
    build_notification_record,
    process_reminders,
    process_overdue_notifications,
    process_all_notifications
)

from household_ledger.services.transaction_service import (
    get_transaction,
    create_transaction,
    update_transaction,
    delete_transaction
)
