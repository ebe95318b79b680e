"""
Сервис вычисления дат повторения запланированных операций.

Чистые функции без обращения к БД:
- Вычисление следующей даты исполнения по частоте
- Проверка, продолжается ли повторение с учётом даты окончания
"""

import logging
from calendar import monthrange
from datetime import datetime, timedelta
from typing import Optional, Union

from household_ledger.models.enums import Frequency
from household_ledger.utils.exceptions import UnsupportedFrequencyError

logger = logging.getLogger(__name__)


def _shift_months(current: datetime, months: int) -> datetime:
    """
    Сдвигает дату на указанное число месяцев с сохранением времени.

    Если в целевом месяце меньше дней, день ограничивается последним
    днём месяца (31 января + 1 месяц = 28/29 февраля).
    """
    month_index = current.month - 1 + months
    year = current.year + month_index // 12
    month = month_index % 12 + 1

    max_day_in_month = monthrange(year, month)[1]
    day = min(current.day, max_day_in_month)

    return current.replace(year=year, month=month, day=day)


def next_due_date(current: datetime, frequency: Union[Frequency, str]) -> datetime:
    """
    Вычисляет следующую дату исполнения.

    Args:
        current: Текущая дата исполнения
        frequency: Частота повторения

    Returns:
        Следующая дата исполнения (время суток сохраняется)

    Raises:
        UnsupportedFrequencyError: Если частота неизвестна

    Example:
        >>> next_due_date(datetime(2024, 1, 31), Frequency.MONTHLY)
        datetime.datetime(2024, 2, 29, 0, 0)
        >>> next_due_date(datetime(2024, 2, 29), Frequency.YEARLY)
        datetime.datetime(2025, 2, 28, 0, 0)
    """
    try:
        frequency = Frequency(frequency)
    except ValueError:
        error_msg = f"Неподдерживаемая частота повторения: {frequency}"
        logger.error(error_msg)
        raise UnsupportedFrequencyError(error_msg)

    if frequency == Frequency.DAILY:
        return current + timedelta(days=1)

    elif frequency == Frequency.WEEKLY:
        return current + timedelta(days=7)

    elif frequency == Frequency.MONTHLY:
        return _shift_months(current, 1)

    # Frequency.YEARLY: 29 февраля в невисокосном году становится 28 февраля
    return _shift_months(current, 12)


def should_continue(next_due: datetime, end_date: Optional[datetime]) -> bool:
    """
    Проверяет, создавать ли следующее вхождение.

    Returns:
        True, если дата окончания не задана или next_due не позже неё
    """
    return end_date is None or next_due <= end_date
