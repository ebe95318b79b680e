"""
Сервис исполнения запланированных операций.

Исполнение выполняется одной единицей работы (одна транзакция БД):
1. Повторное чтение операции с блокировкой строки и проверкой статуса
2. Создание фактической операции
3. Атомарное изменение баланса счёта
4. Перевод операции в COMPLETED с защитой от гонки по статусу
5. Создание следующего вхождения для периодической операции

При любой ошибке изменения откатываются целиком: операция остаётся
в PENDING/OVERDUE, фактическая операция и изменение баланса не сохраняются.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session

from household_ledger.models import (
    ScheduledTransactionDB,
    TransactionDB,
    ExecutionResult,
    ScheduledStatus,
    ACTIVE_STATUSES,
    TERMINAL_STATUSES,
)
from household_ledger.services.balance_service import apply_balance_delta, signed_amount
from household_ledger.services.recurrence_service import next_due_date, should_continue
from household_ledger.services.scheduled_transaction_service import get_owned_scheduled_transaction
from household_ledger.utils.exceptions import LedgerError, InvalidStateError

logger = logging.getLogger(__name__)

EXECUTION_DESCRIPTION_SUFFIX = "(исполнение запланированной операции)"


def _ensure_executable(scheduled: ScheduledTransactionDB) -> None:
    if scheduled.status in TERMINAL_STATUSES:
        if scheduled.status == ScheduledStatus.COMPLETED:
            error_msg = f"Запланированная операция ID {scheduled.id} уже исполнена"
        else:
            error_msg = (
                f"Нельзя исполнить операцию ID {scheduled.id} со статусом {scheduled.status.value}. "
                f"Исполнять можно только операции в статусах PENDING и OVERDUE."
            )
        logger.error(error_msg)
        raise InvalidStateError(error_msg)


def _build_realized_transaction(
    scheduled: ScheduledTransactionDB,
    execution_date: datetime
) -> TransactionDB:
    """Создаёт фактическую операцию со ссылкой на исходную запланированную."""
    notes = f"Запланированная операция ID: {scheduled.id}"
    if scheduled.notes:
        notes = f"{notes}\n{scheduled.notes}"

    description = f"{scheduled.description} {EXECUTION_DESCRIPTION_SUFFIX}".strip()

    return TransactionDB(
        user_id=scheduled.user_id,
        account_id=scheduled.account_id,
        category_id=scheduled.category_id,
        amount=scheduled.amount,
        currency=scheduled.currency,
        type=scheduled.type,
        description=description,
        transaction_date=execution_date,
        notes=notes,
        scheduled_transaction_id=scheduled.id,
    )


def _build_successor(
    scheduled: ScheduledTransactionDB,
    due_date: datetime
) -> ScheduledTransactionDB:
    """Создаёт следующее вхождение периодической операции."""
    return ScheduledTransactionDB(
        user_id=scheduled.user_id,
        account_id=scheduled.account_id,
        category_id=scheduled.category_id,
        amount=scheduled.amount,
        currency=scheduled.currency,
        type=scheduled.type,
        description=scheduled.description,
        due_date=due_date,
        frequency=scheduled.frequency,
        end_date=scheduled.end_date,
        is_recurring=True,
        status=ScheduledStatus.PENDING,
        reminder_days=scheduled.reminder_days,
        is_reminder_sent=False,
        notes=scheduled.notes,
    )


def execute_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str,
    execution_date: Optional[datetime] = None,
    create_recurring: bool = True
) -> ExecutionResult:
    """
    Исполняет запланированную операцию, создавая фактическую операцию.

    Повторное исполнение уже исполненной операции завершается
    InvalidStateError без создания второй фактической операции и без
    повторного изменения баланса, поэтому вызов безопасно повторять.

    Args:
        session: Активная сессия БД (единица работы)
        schedule_id: ID запланированной операции
        user_id: ID пользователя
        execution_date: Дата исполнения (None = текущий момент)
        create_recurring: Создавать ли следующее вхождение периодической операции

    Returns:
        ExecutionResult: фактическая операция, исполненная операция,
        следующее вхождение или None

    Raises:
        NotFoundError: Операция не найдена у пользователя
        InvalidStateError: Операция в статусе COMPLETED или CANCELLED
        UnsupportedFrequencyError: Неизвестная частота повторения
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> with get_db_session() as session:
        ...     result = execute_scheduled_transaction(session, schedule_id, user_id)
        ...     if result.next_scheduled_transaction:
        ...         print(f"Следующее исполнение: {result.next_scheduled_transaction.due_date}")
    """
    execution_date = execution_date or datetime.now()

    try:
        # Повторное чтение внутри транзакции с блокировкой строки
        scheduled = get_owned_scheduled_transaction(session, schedule_id, user_id, for_update=True)
        _ensure_executable(scheduled)

        transaction = _build_realized_transaction(scheduled, execution_date)
        session.add(transaction)
        session.flush()

        delta = signed_amount(scheduled.amount, scheduled.type)
        apply_balance_delta(session, scheduled.account_id, delta)

        # Переход статуса только из PENDING/OVERDUE: конкурентное исполнение,
        # успевшее зафиксироваться раньше, оставит здесь 0 строк
        result = session.execute(
            update(ScheduledTransactionDB)
            .where(
                ScheduledTransactionDB.id == scheduled.id,
                ScheduledTransactionDB.status.in_(ACTIVE_STATUSES)
            )
            .values(status=ScheduledStatus.COMPLETED, completed_at=execution_date)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            error_msg = f"Запланированная операция ID {schedule_id} уже исполнена"
            logger.error(error_msg)
            raise InvalidStateError(error_msg)
        session.expire(scheduled, ["status", "completed_at", "updated_at"])

        next_scheduled = None
        if scheduled.is_recurring and scheduled.frequency is not None and create_recurring:
            next_due = next_due_date(scheduled.due_date, scheduled.frequency)

            if should_continue(next_due, scheduled.end_date):
                next_scheduled = _build_successor(scheduled, next_due)
                session.add(next_scheduled)
            else:
                logger.info(
                    f"Повторение операции ID {schedule_id} завершено: "
                    f"{next_due} позже даты окончания {scheduled.end_date}"
                )

        session.commit()

        session.refresh(transaction)
        session.refresh(scheduled)
        if next_scheduled is not None:
            session.refresh(next_scheduled)

        logger.info(
            f"Исполнена запланированная операция ID {schedule_id}, "
            f"создана операция ID {transaction.id}, изменение баланса {delta} {scheduled.currency}"
            + (f", следующее вхождение ID {next_scheduled.id} на {next_scheduled.due_date}"
               if next_scheduled is not None else "")
        )

        return ExecutionResult(
            transaction=transaction,
            scheduled_transaction=scheduled,
            next_scheduled_transaction=next_scheduled,
        )

    except LedgerError:
        session.rollback()
        raise
    except Exception as e:
        session.rollback()
        logger.error(f"Ошибка при исполнении запланированной операции ID {schedule_id}, откат: {e}")
        raise
