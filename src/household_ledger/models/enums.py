"""
Модуль перечислений (enums) для Household Ledger.

Содержит все Enum классы, используемые в моделях данных.
"""

from enum import Enum


class TransactionType(str, Enum):
    """
    Тип финансовой операции.

    Attributes:
        INCOME: Доход (поступление средств)
        EXPENSE: Расход (трата средств)
        TRANSFER: Перевод (списание со счёта-источника)
    """
    INCOME = "INCOME"
    EXPENSE = "EXPENSE"
    TRANSFER = "TRANSFER"


class Frequency(str, Enum):
    """
    Частота повторения запланированной операции.
    """
    DAILY = "DAILY"
    WEEKLY = "WEEKLY"
    MONTHLY = "MONTHLY"
    YEARLY = "YEARLY"


class ScheduledStatus(str, Enum):
    """
    Статус запланированной операции.

    Attributes:
        PENDING: Ожидает исполнения
        COMPLETED: Исполнена (создана фактическая транзакция), терминальный
        OVERDUE: Срок прошёл, операция не исполнена
        CANCELLED: Отменена пользователем, терминальный
    """
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    OVERDUE = "OVERDUE"
    CANCELLED = "CANCELLED"


# Порядок срочности при сортировке списка: активные раньше терминальных
STATUS_SORT_ORDER = {
    ScheduledStatus.PENDING: 0,
    ScheduledStatus.OVERDUE: 1,
    ScheduledStatus.COMPLETED: 2,
    ScheduledStatus.CANCELLED: 3,
}

ACTIVE_STATUSES = (ScheduledStatus.PENDING, ScheduledStatus.OVERDUE)
TERMINAL_STATUSES = (ScheduledStatus.COMPLETED, ScheduledStatus.CANCELLED)


class NotificationKind(str, Enum):
    """
    Вид уведомления по запланированной операции.
    """
    REMINDER = "REMINDER"
    OVERDUE = "OVERDUE"


class NotificationStatus(str, Enum):
    """
    Статус записи журнала уведомлений.

    Attributes:
        PENDING: Запись создана, отправка не завершена
        SENT: Успешно доставлено
        FAILED: Ошибка доставки
    """
    PENDING = "PENDING"
    SENT = "SENT"
    FAILED = "FAILED"
