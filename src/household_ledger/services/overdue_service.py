"""
Сервис перевода просроченных запланированных операций в статус OVERDUE.

OVERDUE хранится в БД, а не вычисляется при чтении: напоминания и
уведомления о просрочке выбирают записи по сохранённому статусу.
"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy import update
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.models import ScheduledTransactionDB, ScheduledStatus

logger = logging.getLogger(__name__)


def sweep_overdue(
    session: Session,
    user_id: Optional[str] = None,
    now: Optional[datetime] = None
) -> int:
    """
    Переводит операции PENDING с прошедшим сроком в статус OVERDUE.

    Выполняется одним UPDATE; кроме статуса меняется только служебная
    метка updated_at. Повторный вызов ничего не меняет и возвращает 0,
    поэтому функцию безопасно вызывать конкурентно и многократно.

    Args:
        session: Активная сессия БД
        user_id: Ограничить пользователем (None = все пользователи)
        now: Момент проверки (None = текущее время)

    Returns:
        Количество переведённых в OVERDUE операций

    Raises:
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> with get_db_session() as session:
        ...     count = sweep_overdue(session)
        ...     print(f"Просрочено {count} операций")
    """
    now = now or datetime.now()

    try:
        statement = (
            update(ScheduledTransactionDB)
            .where(
                ScheduledTransactionDB.status == ScheduledStatus.PENDING,
                ScheduledTransactionDB.due_date < now
            )
            .values(status=ScheduledStatus.OVERDUE)
            .execution_options(synchronize_session=False)
        )
        if user_id is not None:
            statement = statement.where(ScheduledTransactionDB.user_id == user_id)

        result = session.execute(statement)
        affected = result.rowcount or 0
        session.commit()

        if affected:
            logger.info(
                f"Обновлено {affected} просроченных операций "
                f"(пользователь: {user_id or 'все'})"
            )
        else:
            logger.debug("Просроченных операций не найдено")

        return affected

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении просроченных операций: {e}")
        raise
