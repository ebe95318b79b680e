"""
Сервис журнала уведомлений по запланированным операциям.

Журнал фиксирует каждую попытку отправки (PENDING → SENT/FAILED) и
используется для проверки, отправлялось ли уже уведомление сегодня.
"""

import logging
from datetime import datetime, time
from typing import Optional

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.models import (
    NotificationLogDB,
    NotificationKind,
    NotificationStatus,
)
from household_ledger.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def create_notification_log(
    session: Session,
    user_id: str,
    kind: NotificationKind,
    title: str,
    message: str = "",
    scheduled_transaction_id: Optional[str] = None
) -> NotificationLogDB:
    """
    Создаёт запись журнала со статусом PENDING.
    """
    try:
        log = NotificationLogDB(
            user_id=user_id,
            scheduled_transaction_id=scheduled_transaction_id,
            kind=kind,
            status=NotificationStatus.PENDING,
            title=title,
            message=message,
        )
        session.add(log)
        session.commit()
        session.refresh(log)

        logger.debug(f"Создана запись журнала уведомлений ID {log.id} ({kind.value})")
        return log

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при создании записи журнала уведомлений: {e}")
        raise


def update_notification_log(
    session: Session,
    log_id: str,
    status: NotificationStatus,
    error_message: Optional[str] = None
) -> NotificationLogDB:
    """
    Обновляет статус записи журнала.

    SENT проставляет sent_at, FAILED увеличивает счётчик попыток.

    Raises:
        NotFoundError: Если запись не найдена
    """
    log = session.get(NotificationLogDB, log_id)
    if log is None:
        error_msg = f"Запись журнала уведомлений ID {log_id} не найдена"
        logger.error(error_msg)
        raise NotFoundError(error_msg)

    try:
        log.status = status
        log.error_message = error_message
        if status == NotificationStatus.SENT:
            log.sent_at = datetime.now()
        elif status == NotificationStatus.FAILED:
            log.retry_count = (log.retry_count or 0) + 1

        session.commit()
        session.refresh(log)
        return log

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении записи журнала уведомлений ID {log_id}: {e}")
        raise


def was_notified_today(
    session: Session,
    scheduled_transaction_id: str,
    kind: NotificationKind,
    now: Optional[datetime] = None
) -> bool:
    """
    Проверяет, было ли уже успешно отправлено уведомление за текущие сутки.
    """
    now = now or datetime.now()
    start_of_day = datetime.combine(now.date(), time.min)

    existing = session.query(NotificationLogDB.id).filter(
        NotificationLogDB.scheduled_transaction_id == scheduled_transaction_id,
        NotificationLogDB.kind == kind,
        NotificationLogDB.status == NotificationStatus.SENT,
        NotificationLogDB.created_at >= start_of_day
    ).first()

    return existing is not None
