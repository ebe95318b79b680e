"""
Сервис напоминаний о запланированных операциях.

Предоставляет функции для:
- Выборки операций, для которых наступило время напоминания
- Отметки об отправленном напоминании
- Выборки недавно просроченных операций для уведомления
- Формирования данных уведомления для внешнего сервиса доставки
- Обработки очереди уведомлений с внешним диспетчером

Доставка (webhook, форматирование сообщения) выполняется внешним
диспетчером: вызываемым объектом, принимающим NotificationRecord и
возвращающим True при успешной отправке.
"""

import logging
from datetime import datetime, time, timedelta
from math import ceil
from typing import Callable, Dict, List, Optional

from sqlalchemy.orm import Session, joinedload
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.config import settings
from household_ledger.models import (
    ScheduledTransactionDB,
    NotificationRecord,
    NotificationKind,
    NotificationStatus,
    ScheduledStatus,
)
from household_ledger.services.notification_log_service import (
    create_notification_log,
    update_notification_log,
    was_notified_today,
)
from household_ledger.services.overdue_service import sweep_overdue
from household_ledger.utils.exceptions import NotFoundError
from household_ledger.utils.validation import validate_uuid_format

logger = logging.getLogger(__name__)

Dispatcher = Callable[[NotificationRecord], bool]


def pending_reminders(
    session: Session,
    now: Optional[datetime] = None,
    user_id: Optional[str] = None
) -> List[ScheduledTransactionDB]:
    """
    Возвращает операции, для которых пора отправить напоминание.

    Условия (все должны выполняться):
    - статус PENDING и напоминание ещё не отправлено
    - due_date не раньше начала текущих суток
    - due_date не дальше горизонта settings.reminder_lookahead_days
    - now >= due_date - reminder_days

    Args:
        session: Активная сессия БД
        now: Момент проверки (None = текущее время)
        user_id: Ограничить пользователем (None = все)

    Returns:
        Список операций, отсортированный по due_date
    """
    now = now or datetime.now()
    start_of_day = datetime.combine(now.date(), time.min)
    horizon = now + timedelta(days=settings.reminder_lookahead_days)

    try:
        query = session.query(ScheduledTransactionDB).options(
            joinedload(ScheduledTransactionDB.account),
            joinedload(ScheduledTransactionDB.category)
        ).filter(
            ScheduledTransactionDB.status == ScheduledStatus.PENDING,
            ScheduledTransactionDB.is_reminder_sent.is_(False),
            ScheduledTransactionDB.due_date >= start_of_day,
            ScheduledTransactionDB.due_date <= horizon
        )
        if user_id is not None:
            query = query.filter(ScheduledTransactionDB.user_id == user_id)

        candidates = query.order_by(ScheduledTransactionDB.due_date.asc()).all()

        # Порог напоминания у каждой записи свой
        reminders = [
            scheduled for scheduled in candidates
            if now >= scheduled.due_date - timedelta(days=scheduled.reminder_days)
        ]

        logger.info(
            f"Найдено {len(reminders)} операций для напоминания "
            f"(кандидатов в горизонте: {len(candidates)})"
        )
        return reminders

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при выборке напоминаний: {e}")
        raise


def mark_reminded(session: Session, schedule_id: str) -> ScheduledTransactionDB:
    """
    Отмечает, что напоминание по операции отправлено.

    Вызывается только после успешной отправки внешним диспетчером.

    Raises:
        NotFoundError: Если операция не найдена
    """
    validate_uuid_format(schedule_id, "schedule_id")

    scheduled = session.get(ScheduledTransactionDB, schedule_id)
    if scheduled is None:
        error_msg = f"Запланированная операция с ID {schedule_id} не найдена"
        logger.error(error_msg)
        raise NotFoundError(error_msg)

    try:
        scheduled.is_reminder_sent = True
        session.commit()
        session.refresh(scheduled)

        logger.info(f"Напоминание по операции ID {schedule_id} отмечено как отправленное")
        return scheduled

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при отметке напоминания по операции ID {schedule_id}: {e}")
        raise


def overdue_needing_notification(
    session: Session,
    since: Optional[datetime] = None,
    now: Optional[datetime] = None
) -> List[ScheduledTransactionDB]:
    """
    Возвращает недавно просроченные операции, по которым сегодня
    ещё не отправлялось уведомление о просрочке.

    Args:
        session: Активная сессия БД
        since: Нижняя граница момента перехода в OVERDUE
               (None = now - settings.overdue_notification_window_hours)
        now: Момент проверки (None = текущее время)
    """
    now = now or datetime.now()
    since = since or now - timedelta(hours=settings.overdue_notification_window_hours)

    try:
        candidates = session.query(ScheduledTransactionDB).options(
            joinedload(ScheduledTransactionDB.account),
            joinedload(ScheduledTransactionDB.category)
        ).filter(
            ScheduledTransactionDB.status == ScheduledStatus.OVERDUE,
            ScheduledTransactionDB.updated_at >= since
        ).order_by(ScheduledTransactionDB.due_date.asc()).all()

        overdue = [
            scheduled for scheduled in candidates
            if not was_notified_today(session, scheduled.id, NotificationKind.OVERDUE, now)
        ]

        logger.info(f"Найдено {len(overdue)} просроченных операций для уведомления")
        return overdue

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при выборке просроченных операций: {e}")
        raise


def build_notification_record(
    scheduled: ScheduledTransactionDB,
    kind: NotificationKind,
    now: Optional[datetime] = None
) -> NotificationRecord:
    """
    Формирует данные для внешнего сервиса уведомлений.

    days_until_due округляется вверх; для просроченных операций отрицательно.
    """
    now = now or datetime.now()
    days_until_due = ceil((scheduled.due_date - now).total_seconds() / 86400)

    return NotificationRecord(
        scheduled_transaction_id=scheduled.id,
        user_id=scheduled.user_id,
        kind=kind,
        amount=scheduled.amount,
        currency=scheduled.currency,
        type=scheduled.type,
        description=scheduled.description,
        due_date=scheduled.due_date,
        account_name=scheduled.account.name,
        category_name=scheduled.category.name if scheduled.category else None,
        notes=scheduled.notes,
        days_until_due=days_until_due,
    )


def _dispatch(
    session: Session,
    scheduled: ScheduledTransactionDB,
    kind: NotificationKind,
    title: str,
    dispatcher: Dispatcher,
    now: datetime
) -> bool:
    """Отправляет одно уведомление и фиксирует результат в журнале."""
    record = build_notification_record(scheduled, kind, now)
    log = create_notification_log(
        session,
        user_id=scheduled.user_id,
        kind=kind,
        title=title,
        message=f"Срок: {scheduled.due_date:%Y-%m-%d}, дней до срока: {record.days_until_due}",
        scheduled_transaction_id=scheduled.id,
    )

    try:
        delivered = bool(dispatcher(record))
        error_message = None if delivered else "Диспетчер сообщил об ошибке доставки"
    except Exception as e:
        logger.exception(f"Ошибка диспетчера уведомлений для операции ID {scheduled.id}")
        delivered = False
        error_message = str(e)

    if delivered:
        update_notification_log(session, log.id, NotificationStatus.SENT)
    else:
        update_notification_log(session, log.id, NotificationStatus.FAILED, error_message)
        logger.error(f"Не удалось отправить уведомление по операции ID {scheduled.id}: {error_message}")

    return delivered


def process_reminders(
    session: Session,
    dispatcher: Dispatcher,
    now: Optional[datetime] = None
) -> Dict[str, int]:
    """
    Отправляет напоминания по всем подходящим операциям.

    Флаг is_reminder_sent устанавливается только после успешной отправки;
    при ошибке он остаётся False и следующий запуск повторит попытку.

    Returns:
        Словарь {"processed": ..., "sent": ..., "failed": ...}
    """
    now = now or datetime.now()
    reminders = pending_reminders(session, now)
    sent = 0

    for scheduled in reminders:
        title = f"Напоминание: {scheduled.description}"
        if _dispatch(session, scheduled, NotificationKind.REMINDER, title, dispatcher, now):
            mark_reminded(session, scheduled.id)
            sent += 1

    logger.info(f"Обработка напоминаний завершена: отправлено {sent} из {len(reminders)}")
    return {"processed": len(reminders), "sent": sent, "failed": len(reminders) - sent}


def process_overdue_notifications(
    session: Session,
    dispatcher: Dispatcher,
    now: Optional[datetime] = None
) -> Dict[str, int]:
    """
    Отправляет уведомления о просрочке (не чаще раза в сутки на операцию).

    Returns:
        Словарь {"processed": ..., "sent": ..., "failed": ...}
    """
    now = now or datetime.now()
    overdue = overdue_needing_notification(session, now=now)
    sent = 0

    for scheduled in overdue:
        title = f"Просрочено: {scheduled.description}"
        if _dispatch(session, scheduled, NotificationKind.OVERDUE, title, dispatcher, now):
            sent += 1

    logger.info(f"Обработка уведомлений о просрочке завершена: отправлено {sent} из {len(overdue)}")
    return {"processed": len(overdue), "sent": sent, "failed": len(overdue) - sent}


def process_all_notifications(
    session: Session,
    dispatcher: Dispatcher,
    now: Optional[datetime] = None
) -> Dict[str, Dict[str, int]]:
    """
    Полный цикл уведомлений, запускаемый внешним планировщиком (cron):
    перевод просроченных в OVERDUE, напоминания, уведомления о просрочке.
    """
    now = now or datetime.now()
    swept = sweep_overdue(session, now=now)

    reminders = process_reminders(session, dispatcher, now)
    overdue = process_overdue_notifications(session, dispatcher, now)

    logger.info(
        f"Цикл уведомлений завершён: просрочено {swept}, "
        f"напоминаний {reminders['sent']}, уведомлений о просрочке {overdue['sent']}"
    )
    return {"swept": {"affected": swept}, "reminders": reminders, "overdue": overdue}
