"""
Фасад операций ядра запланированных операций.

Каждая функция открывает собственную сессию БД, принимает данные в виде
словаря (валидируются Pydantic моделями) и возвращает OperationResult.
Исключения не выходят за пределы фасада: ErrorHandler преобразует их
в результат с видом ошибки и HTTP статусом.

ORM объекты преобразуются в Pydantic модели чтения внутри сессии,
поэтому результат не зависит от закрытой сессии.

Example:
    >>> init_db()
    >>> result = create_schedule(user_id, {
    ...     "amount": "15000", "currency": "JPY", "type": "EXPENSE",
    ...     "description": "Аренда", "account_id": account_id,
    ...     "due_date": "2025-02-01T00:00:00",
    ...     "is_recurring": True, "frequency": "MONTHLY",
    ... })
    >>> if result.success:
    ...     print(result.data.id)
    ... else:
    ...     print(result.status_code, result.message)
"""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

from household_ledger.database import get_db_session
from household_ledger.models import (
    ScheduledTransaction,
    ScheduledTransactionCreate,
    ScheduledTransactionUpdate,
    ScheduledTransactionFilter,
    ScheduledTransactionExecute,
    Transaction,
    ExecutionOutcome,
    NotificationKind,
    NotificationRecord,
)
from household_ledger.services import (
    overdue_service,
    reminder_service,
    execution_service,
    scheduled_transaction_service,
)
from household_ledger.services.reminder_service import Dispatcher
from household_ledger.utils.error_handler import safe_operation

logger = logging.getLogger(__name__)


def _to_read_model(scheduled) -> ScheduledTransaction:
    return ScheduledTransaction.model_validate(scheduled)


@safe_operation
def create_schedule(user_id: str, payload: Dict[str, Any]) -> ScheduledTransaction:
    """Создаёт запланированную операцию. Ошибки: 400, 404."""
    data = ScheduledTransactionCreate.model_validate(payload)
    with get_db_session() as session:
        scheduled = scheduled_transaction_service.create_scheduled_transaction(session, user_id, data)
        return _to_read_model(scheduled)


@safe_operation
def get_schedule(user_id: str, schedule_id: str) -> ScheduledTransaction:
    with get_db_session() as session:
        scheduled = scheduled_transaction_service.get_scheduled_transaction(session, schedule_id, user_id)
        return _to_read_model(scheduled)


@safe_operation
def update_schedule(user_id: str, schedule_id: str, patch: Dict[str, Any]) -> ScheduledTransaction:
    """Частично обновляет операцию. Ошибки: 400, 404, 409."""
    data = ScheduledTransactionUpdate.model_validate(patch)
    with get_db_session() as session:
        scheduled = scheduled_transaction_service.update_scheduled_transaction(
            session, schedule_id, user_id, data
        )
        return _to_read_model(scheduled)


@safe_operation
def cancel_schedule(user_id: str, schedule_id: str) -> ScheduledTransaction:
    with get_db_session() as session:
        scheduled = scheduled_transaction_service.cancel_scheduled_transaction(session, schedule_id, user_id)
        return _to_read_model(scheduled)


@safe_operation
def delete_schedule(user_id: str, schedule_id: str) -> Dict[str, Any]:
    with get_db_session() as session:
        deleted = scheduled_transaction_service.delete_scheduled_transaction(session, schedule_id, user_id)
        return {"id": schedule_id, "deleted": deleted}


@safe_operation
def list_schedules(user_id: str, filters: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """
    Возвращает страницу запланированных операций.

    Returns:
        Словарь {"items": [...], "page": ..., "limit": ..., "total": ..., "pages": ...}
    """
    data = ScheduledTransactionFilter.model_validate(filters or {})
    with get_db_session() as session:
        page = scheduled_transaction_service.list_scheduled_transactions(session, user_id, data)
        return {
            "items": [_to_read_model(item) for item in page.items],
            "page": page.page,
            "limit": page.limit,
            "total": page.total,
            "pages": page.pages,
        }


@safe_operation
def execute_schedule(
    user_id: str,
    schedule_id: str,
    execution_date: Optional[datetime] = None,
    create_recurring: bool = True
) -> ExecutionOutcome:
    """
    Исполняет запланированную операцию.

    Ошибки: 404 (не найдена), 409 (уже исполнена или отменена),
    500 (ошибка БД или данных повторения, изменения откатываются).
    """
    params = ScheduledTransactionExecute(
        execution_date=execution_date,
        create_recurring=create_recurring
    )
    with get_db_session() as session:
        result = execution_service.execute_scheduled_transaction(
            session,
            schedule_id,
            user_id,
            execution_date=params.execution_date,
            create_recurring=params.create_recurring
        )
        return ExecutionOutcome(
            transaction=Transaction.model_validate(result.transaction),
            scheduled_transaction=_to_read_model(result.scheduled_transaction),
            next_scheduled_transaction=(
                _to_read_model(result.next_scheduled_transaction)
                if result.next_scheduled_transaction is not None else None
            ),
        )


@safe_operation
def sweep_overdue(user_id: Optional[str] = None, now: Optional[datetime] = None) -> Dict[str, int]:
    with get_db_session() as session:
        return {"affected": overdue_service.sweep_overdue(session, user_id=user_id, now=now)}


@safe_operation
def pending_reminders(
    now: Optional[datetime] = None,
    user_id: Optional[str] = None
) -> List[NotificationRecord]:
    """Возвращает данные напоминаний для внешнего сервиса доставки."""
    now = now or datetime.now()
    with get_db_session() as session:
        reminders = reminder_service.pending_reminders(session, now=now, user_id=user_id)
        return [
            reminder_service.build_notification_record(scheduled, NotificationKind.REMINDER, now)
            for scheduled in reminders
        ]


@safe_operation
def mark_reminded(schedule_id: str) -> ScheduledTransaction:
    with get_db_session() as session:
        return _to_read_model(reminder_service.mark_reminded(session, schedule_id))


@safe_operation
def process_notifications(dispatcher: Dispatcher, now: Optional[datetime] = None) -> Dict[str, Dict[str, int]]:
    """Полный цикл уведомлений для внешнего планировщика."""
    with get_db_session() as session:
        return reminder_service.process_all_notifications(session, dispatcher, now)
