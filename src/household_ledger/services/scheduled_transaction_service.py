"""
Сервис управления запланированными операциями.

Предоставляет функции для работы с запланированными операциями:
- Создание с проверкой справочников и инвариантов повторения
- Получение записи в пределах пользователя
- Частичное обновление (только для PENDING/OVERDUE)
- Список с фильтрацией, сортировкой по срочности и постраничным выводом
- Отмена и удаление

Все функции принимают сессию БД и явный user_id.
"""

import logging
from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from sqlalchemy import case, func
from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.config import settings
from household_ledger.models import (
    AccountDB,
    CategoryDB,
    CurrencyDB,
    ScheduledTransactionDB,
    ScheduledTransactionCreate,
    ScheduledTransactionUpdate,
    ScheduledTransactionFilter,
    ScheduledTransactionPage,
    TransactionDB,
    ScheduledStatus,
    STATUS_SORT_ORDER,
    TERMINAL_STATUSES,
)
from household_ledger.services.overdue_service import sweep_overdue
from household_ledger.utils.exceptions import (
    LedgerError,
    ValidationError,
    NotFoundError,
    InvalidStateError,
)
from household_ledger.utils.validation import validate_uuid_format, validate_user_id

logger = logging.getLogger(__name__)

# Поля, которые нельзя обнулить частичным обновлением
_REQUIRED_FIELDS = (
    "amount", "currency", "type", "description", "account_id",
    "due_date", "is_recurring", "reminder_days",
)


# =============================================================================
# Проверки
# =============================================================================

def get_owned_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str,
    for_update: bool = False
) -> ScheduledTransactionDB:
    """
    Возвращает запланированную операцию пользователя.

    Отсутствующая запись и запись другого пользователя неразличимы.

    Args:
        session: Активная сессия БД
        schedule_id: ID операции (UUID)
        user_id: ID пользователя
        for_update: Заблокировать строку до конца транзакции (SELECT ... FOR UPDATE)

    Raises:
        ValidationError: Если ID невалидный
        NotFoundError: Если запись не найдена
    """
    validate_user_id(user_id)
    validate_uuid_format(schedule_id, "schedule_id")

    query = session.query(ScheduledTransactionDB).filter(
        ScheduledTransactionDB.id == schedule_id,
        ScheduledTransactionDB.user_id == user_id
    )
    if for_update:
        query = query.with_for_update().populate_existing()

    scheduled = query.first()
    if not scheduled:
        error_msg = f"Запланированная операция с ID {schedule_id} не найдена"
        logger.warning(error_msg)
        raise NotFoundError(error_msg)

    return scheduled


def validate_references(
    session: Session,
    user_id: str,
    currency: Optional[str] = None,
    account_id: Optional[str] = None,
    category_id: Optional[str] = None
) -> None:
    """
    Проверяет ссылки на справочники (только для переданных значений).

    Raises:
        ValidationError: Если валюта неизвестна
        NotFoundError: Если счёт или категория не найдены у пользователя
    """
    if currency is not None:
        if session.get(CurrencyDB, currency) is None:
            error_msg = f"Неизвестный код валюты: {currency}"
            logger.error(error_msg)
            raise ValidationError(error_msg)

    if account_id is not None:
        account = session.query(AccountDB).filter(
            AccountDB.id == account_id,
            AccountDB.user_id == user_id
        ).first()
        if not account:
            error_msg = f"Счёт с ID {account_id} не найден"
            logger.error(error_msg)
            raise NotFoundError(error_msg)

    if category_id is not None:
        category = session.query(CategoryDB).filter(
            CategoryDB.id == category_id,
            CategoryDB.user_id == user_id
        ).first()
        if not category:
            error_msg = f"Категория с ID {category_id} не найдена"
            logger.error(error_msg)
            raise NotFoundError(error_msg)


def validate_amount_precision(session: Session, amount: Decimal, currency: str) -> None:
    """
    Проверяет, что сумма не точнее минимальной единицы валюты
    (для JPY дробная часть недопустима, для USD не более 2 знаков).

    Raises:
        ValidationError: Если знаков после запятой больше, чем в валюте
    """
    currency_ref = session.get(CurrencyDB, currency)
    if currency_ref is None:
        return

    exponent = Decimal(amount).normalize().as_tuple().exponent
    places = max(0, -exponent)
    if places > currency_ref.decimals:
        error_msg = (
            f"Сумма {amount} содержит {places} знаков после запятой, "
            f"для валюты {currency} допускается не более {currency_ref.decimals}"
        )
        logger.error(error_msg)
        raise ValidationError(error_msg)


def validate_recurrence(
    is_recurring: bool,
    frequency,
    due_date: datetime,
    end_date: Optional[datetime]
) -> None:
    """
    Проверяет инварианты повторения.

    Raises:
        ValidationError: Если периодическая операция без частоты
                         или дата окончания раньше даты исполнения
    """
    if is_recurring and frequency is None:
        error_msg = "Для периодической операции необходимо указать частоту повторения"
        logger.error(error_msg)
        raise ValidationError(error_msg)

    if end_date is not None and end_date < due_date:
        error_msg = (
            f"Дата окончания повторений ({end_date}) не может быть раньше "
            f"даты исполнения ({due_date})"
        )
        logger.error(error_msg)
        raise ValidationError(error_msg)


# =============================================================================
# CRUD
# =============================================================================

def create_scheduled_transaction(
    session: Session,
    user_id: str,
    data: ScheduledTransactionCreate
) -> ScheduledTransactionDB:
    """
    Создаёт запланированную операцию со статусом PENDING.

    Выполняется валидация:
    - Сумма положительная (проверяется Pydantic)
    - Валюта существует в справочнике
    - Точность суммы не превышает точность валюты
    - Счёт и категория (если указана) принадлежат пользователю
    - Периодическая операция имеет частоту

    Args:
        session: Активная сессия БД
        user_id: ID пользователя
        data: Данные для создания

    Returns:
        Созданный объект ScheduledTransactionDB

    Raises:
        ValidationError: Некорректные данные или неизвестная валюта
        NotFoundError: Счёт или категория не найдены
        SQLAlchemyError: При ошибках работы с БД

    Example:
        >>> with get_db_session() as session:
        ...     data = ScheduledTransactionCreate(
        ...         amount=Decimal('15000'),
        ...         currency="JPY",
        ...         type=TransactionType.EXPENSE,
        ...         description="Аренда",
        ...         account_id=account.id,
        ...         due_date=datetime(2025, 2, 1),
        ...         is_recurring=True,
        ...         frequency=Frequency.MONTHLY
        ...     )
        ...     scheduled = create_scheduled_transaction(session, user_id, data)
    """
    validate_user_id(user_id)
    validate_recurrence(data.is_recurring, data.frequency, data.due_date, data.end_date)
    validate_references(
        session,
        user_id,
        currency=data.currency,
        account_id=data.account_id,
        category_id=data.category_id
    )
    validate_amount_precision(session, data.amount, data.currency)

    try:
        scheduled = ScheduledTransactionDB(
            user_id=user_id,
            account_id=data.account_id,
            category_id=data.category_id,
            amount=data.amount,
            currency=data.currency,
            type=data.type,
            description=data.description,
            due_date=data.due_date,
            frequency=data.frequency,
            end_date=data.end_date,
            is_recurring=data.is_recurring,
            status=ScheduledStatus.PENDING,
            reminder_days=data.reminder_days,
            is_reminder_sent=False,
            notes=data.notes,
        )

        session.add(scheduled)
        session.commit()
        session.refresh(scheduled)

        logger.info(
            f"Создана {'периодическая' if scheduled.is_recurring else 'однократная'} "
            f"запланированная операция ID {scheduled.id}, "
            f"сумма {scheduled.amount} {scheduled.currency}, срок {scheduled.due_date}"
        )

        return scheduled

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при создании запланированной операции: {e}")
        raise


def get_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str
) -> ScheduledTransactionDB:
    """
    Получает запланированную операцию пользователя по ID.

    Raises:
        NotFoundError: Если запись не найдена или принадлежит другому пользователю
    """
    scheduled = get_owned_scheduled_transaction(session, schedule_id, user_id)
    logger.debug(f"Получена запланированная операция ID {schedule_id}")
    return scheduled


def update_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str,
    patch: ScheduledTransactionUpdate
) -> ScheduledTransactionDB:
    """
    Частично обновляет запланированную операцию.

    Обновлять можно только операции в статусах PENDING и OVERDUE.
    Изменение due_date сбрасывает флаг отправленного напоминания, а
    просроченная операция с новой датой в будущем возвращается в PENDING.

    Args:
        session: Активная сессия БД
        schedule_id: ID операции
        user_id: ID пользователя
        patch: Изменяемые поля (учитываются только явно переданные)

    Returns:
        Обновлённый объект ScheduledTransactionDB

    Raises:
        NotFoundError: Запись или новые ссылки не найдены
        InvalidStateError: Операция в терминальном статусе
        ValidationError: Нарушены инварианты
    """
    try:
        scheduled = get_owned_scheduled_transaction(session, schedule_id, user_id)

        if scheduled.status in TERMINAL_STATUSES:
            error_msg = (
                f"Нельзя изменить операцию ID {schedule_id} со статусом {scheduled.status.value}. "
                f"Изменять можно только операции в статусах PENDING и OVERDUE."
            )
            logger.error(error_msg)
            raise InvalidStateError(error_msg)

        changes: Dict[str, Any] = patch.model_dump(exclude_unset=True)

        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                error_msg = f"Поле {field} не может быть пустым"
                logger.error(error_msg)
                raise ValidationError(error_msg)

        validate_references(
            session,
            user_id,
            currency=changes.get("currency"),
            account_id=changes.get("account_id"),
            category_id=changes.get("category_id")
        )

        if "amount" in changes or "currency" in changes:
            validate_amount_precision(
                session,
                changes.get("amount", scheduled.amount),
                changes.get("currency", scheduled.currency)
            )

        validate_recurrence(
            changes.get("is_recurring", scheduled.is_recurring),
            changes.get("frequency", scheduled.frequency),
            changes.get("due_date", scheduled.due_date),
            changes.get("end_date", scheduled.end_date)
        )

        due_date_changed = "due_date" in changes and changes["due_date"] != scheduled.due_date

        for field, value in changes.items():
            setattr(scheduled, field, value)

        if due_date_changed:
            scheduled.is_reminder_sent = False
            if scheduled.status == ScheduledStatus.OVERDUE and scheduled.due_date >= datetime.now():
                scheduled.status = ScheduledStatus.PENDING
                logger.info(f"Операция ID {schedule_id} перенесена и возвращена в статус PENDING")

        session.commit()
        session.refresh(scheduled)

        logger.info(
            f"Обновлена запланированная операция ID {schedule_id}, "
            f"поля: {', '.join(sorted(changes)) or 'нет'}"
        )

        return scheduled

    except LedgerError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при обновлении запланированной операции ID {schedule_id}: {e}")
        raise


def list_scheduled_transactions(
    session: Session,
    user_id: str,
    filters: Optional[ScheduledTransactionFilter] = None
) -> ScheduledTransactionPage:
    """
    Возвращает страницу запланированных операций пользователя.

    Перед выборкой выполняется перевод просроченных операций в OVERDUE.
    Сортировка: статус по срочности (PENDING, OVERDUE, COMPLETED, CANCELLED),
    затем due_date по возрастанию.

    Args:
        session: Активная сессия БД
        user_id: ID пользователя
        filters: Фильтры и параметры страницы (None = без фильтров, первая страница)

    Returns:
        ScheduledTransactionPage с элементами и общим количеством

    Example:
        >>> with get_db_session() as session:
        ...     page = list_scheduled_transactions(
        ...         session, user_id,
        ...         ScheduledTransactionFilter(status=ScheduledStatus.PENDING, page=2)
        ...     )
        ...     print(page.total, page.pages)
    """
    validate_user_id(user_id)
    filters = filters or ScheduledTransactionFilter()

    limit = filters.limit or settings.default_page_size
    if limit > settings.max_page_size:
        logger.warning(f"Размер страницы {limit} ограничен до {settings.max_page_size}")
        limit = settings.max_page_size

    sweep_overdue(session, user_id=user_id)

    try:
        query = session.query(ScheduledTransactionDB).filter(
            ScheduledTransactionDB.user_id == user_id
        )

        if filters.status is not None:
            query = query.filter(ScheduledTransactionDB.status == filters.status)

        if filters.type is not None:
            query = query.filter(ScheduledTransactionDB.type == filters.type)

        if filters.account_id is not None:
            query = query.filter(ScheduledTransactionDB.account_id == filters.account_id)

        if filters.category_id is not None:
            query = query.filter(ScheduledTransactionDB.category_id == filters.category_id)

        if filters.is_recurring is not None:
            query = query.filter(ScheduledTransactionDB.is_recurring == filters.is_recurring)

        if filters.start_date is not None:
            query = query.filter(ScheduledTransactionDB.due_date >= filters.start_date)

        if filters.end_date is not None:
            query = query.filter(ScheduledTransactionDB.due_date <= filters.end_date)

        total = query.with_entities(func.count(ScheduledTransactionDB.id)).scalar() or 0

        status_order = case(
            *[
                (ScheduledTransactionDB.status == status, order)
                for status, order in STATUS_SORT_ORDER.items()
            ],
            else_=len(STATUS_SORT_ORDER)
        )

        items = (
            query.order_by(
                status_order,
                ScheduledTransactionDB.due_date.asc(),
                ScheduledTransactionDB.id.asc()
            )
            .offset((filters.page - 1) * limit)
            .limit(limit)
            .all()
        )

        logger.info(
            f"Получено {len(items)} из {total} запланированных операций "
            f"(страница {filters.page}, размер {limit})"
        )

        return ScheduledTransactionPage(items=items, page=filters.page, limit=limit, total=total)

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при получении списка запланированных операций: {e}")
        raise


def cancel_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str
) -> ScheduledTransactionDB:
    """
    Отменяет запланированную операцию (PENDING/OVERDUE → CANCELLED).

    Raises:
        NotFoundError: Если запись не найдена
        InvalidStateError: Если операция уже в терминальном статусе
    """
    try:
        scheduled = get_owned_scheduled_transaction(session, schedule_id, user_id)

        if scheduled.status in TERMINAL_STATUSES:
            error_msg = (
                f"Нельзя отменить операцию ID {schedule_id} со статусом {scheduled.status.value}. "
                f"Отменять можно только операции в статусах PENDING и OVERDUE."
            )
            logger.error(error_msg)
            raise InvalidStateError(error_msg)

        scheduled.status = ScheduledStatus.CANCELLED
        scheduled.is_reminder_sent = False

        session.commit()
        session.refresh(scheduled)

        logger.info(f"Отменена запланированная операция ID {schedule_id}")

        return scheduled

    except LedgerError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при отмене запланированной операции ID {schedule_id}: {e}")
        raise


def delete_scheduled_transaction(
    session: Session,
    schedule_id: str,
    user_id: str
) -> bool:
    """
    Удаляет запланированную операцию в любом статусе.

    Фактические операции, созданные при исполнении, сохраняются,
    ссылка на удалённую запись очищается.

    Returns:
        True, если запись удалена

    Raises:
        NotFoundError: Если запись не найдена
    """
    scheduled = get_owned_scheduled_transaction(session, schedule_id, user_id)

    try:
        unlinked = session.query(TransactionDB).filter(
            TransactionDB.scheduled_transaction_id == schedule_id
        ).update(
            {TransactionDB.scheduled_transaction_id: None},
            synchronize_session=False
        )

        session.delete(scheduled)
        session.commit()

        logger.info(
            f"Удалена запланированная операция ID {schedule_id}, "
            f"отвязано фактических операций: {unlinked}"
        )

        return True

    except SQLAlchemyError as e:
        session.rollback()
        logger.error(f"Ошибка при удалении запланированной операции ID {schedule_id}: {e}")
        raise
