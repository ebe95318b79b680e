"""
Модуль моделей данных для Household Ledger.

Содержит:
- SQLAlchemy модели справочников (валюты, счета, категории)
- ScheduledTransactionDB: запланированная операция (центральная сущность)
- TransactionDB: фактическая операция, создаваемая при исполнении
- NotificationLogDB: журнал уведомлений (напоминания, просрочка)
- Pydantic модели для создания, обновления, фильтрации и чтения
"""

from dataclasses import dataclass, field as dc_field
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import List, Optional
import uuid

from sqlalchemy import (
    Column, Integer, String, Numeric, DateTime, Enum as SQLEnum,
    Boolean, ForeignKey, Index,
)
from sqlalchemy.orm import relationship, DeclarativeBase
from pydantic import BaseModel, field_validator, Field, ConfigDict

from .enums import (
    TransactionType, Frequency, ScheduledStatus,
    NotificationKind, NotificationStatus,
)


# Знаков после запятой в денежных колонках
AMOUNT_SCALE = 2


def _new_uuid() -> str:
    return str(uuid.uuid4())


class Base(DeclarativeBase):
    """Базовый класс для всех SQLAlchemy моделей."""
    pass


class CurrencyDB(Base):
    """
    Справочник валют.

    Attributes:
        code: Код валюты ISO 4217 (первичный ключ)
        name: Название валюты
        symbol: Символ валюты
        decimals: Количество знаков после запятой
    """
    __tablename__ = "currencies"

    code = Column(String(3), primary_key=True)
    name = Column(String, nullable=False)
    symbol = Column(String(8), nullable=False)
    decimals = Column(Integer, nullable=False, default=2)


class AccountDB(Base):
    """
    Счёт пользователя (банковский, наличные, карта).

    Баланс изменяется только атомарным приращением через
    balance_service.apply_balance_delta.

    Attributes:
        id: Уникальный идентификатор (UUID)
        user_id: Владелец счёта
        name: Название счёта
        currency: Валюта счёта
        balance: Текущий баланс
    """
    __tablename__ = "accounts"

    id = Column(String(36), primary_key=True, default=_new_uuid, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    currency = Column(String(3), ForeignKey("currencies.code"), nullable=False)
    balance = Column(Numeric(18, AMOUNT_SCALE), nullable=False, default=Decimal('0'))
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    currency_ref = relationship("CurrencyDB")


class CategoryDB(Base):
    """
    Категория операций пользователя.
    """
    __tablename__ = "categories"

    id = Column(String(36), primary_key=True, default=_new_uuid, index=True)
    user_id = Column(String, nullable=False, index=True)
    name = Column(String, nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=True)
    created_at = Column(DateTime, default=datetime.now)


class ScheduledTransactionDB(Base):
    """
    Запланированная операция (однократная или периодическая).

    Сумма всегда положительна; знак изменения баланса выводится из типа
    в момент исполнения.

    Attributes:
        id: Уникальный идентификатор (UUID)
        user_id: Владелец
        account_id: Счёт, к которому применяется операция
        category_id: Категория (опционально)
        amount: Сумма (> 0)
        currency: Код валюты
        type: Тип операции
        description: Описание
        due_date: Дата и время исполнения
        frequency: Частота повторения (обязательна при is_recurring)
        end_date: Верхняя граница повторений (опционально)
        is_recurring: Признак периодичности
        status: Статус жизненного цикла
        completed_at: Момент исполнения (только для COMPLETED)
        reminder_days: За сколько дней до due_date напоминать
        is_reminder_sent: Напоминание уже отправлено
        notes: Заметки
    """
    __tablename__ = "scheduled_transactions"

    id = Column(String(36), primary_key=True, default=_new_uuid, index=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    amount = Column(Numeric(18, AMOUNT_SCALE), nullable=False)
    currency = Column(String(3), ForeignKey("currencies.code"), nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    description = Column(String, nullable=False, default="")
    due_date = Column(DateTime, nullable=False, index=True)
    frequency = Column(SQLEnum(Frequency), nullable=True)
    end_date = Column(DateTime, nullable=True)
    is_recurring = Column(Boolean, nullable=False, default=False)
    status = Column(SQLEnum(ScheduledStatus), nullable=False, default=ScheduledStatus.PENDING, index=True)
    completed_at = Column(DateTime, nullable=True)
    reminder_days = Column(Integer, nullable=False, default=1)
    is_reminder_sent = Column(Boolean, nullable=False, default=False)
    notes = Column(String, nullable=True)
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    account = relationship("AccountDB")
    category = relationship("CategoryDB")

    __table_args__ = (
        Index('ix_scheduled_transactions_user_status_due', 'user_id', 'status', 'due_date'),
        Index('ix_scheduled_transactions_status_reminder', 'status', 'is_reminder_sent'),
    )


class TransactionDB(Base):
    """
    Фактическая финансовая операция.

    Создаётся при исполнении запланированной операции либо напрямую
    через transaction_service.

    Attributes:
        scheduled_transaction_id: Ссылка на исходную запланированную операцию
    """
    __tablename__ = "transactions"

    id = Column(String(36), primary_key=True, default=_new_uuid, index=True)
    user_id = Column(String, nullable=False, index=True)
    account_id = Column(String(36), ForeignKey("accounts.id"), nullable=False)
    category_id = Column(String(36), ForeignKey("categories.id"), nullable=True)
    amount = Column(Numeric(18, AMOUNT_SCALE), nullable=False)
    currency = Column(String(3), ForeignKey("currencies.code"), nullable=False)
    type = Column(SQLEnum(TransactionType), nullable=False)
    description = Column(String, nullable=False, default="")
    transaction_date = Column(DateTime, nullable=False, index=True)
    notes = Column(String, nullable=True)
    scheduled_transaction_id = Column(
        String(36),
        ForeignKey("scheduled_transactions.id", ondelete="SET NULL"),
        nullable=True
    )
    created_at = Column(DateTime, default=datetime.now)
    updated_at = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    account = relationship("AccountDB")
    category = relationship("CategoryDB")

    __table_args__ = (
        Index('ix_transactions_user_date', 'user_id', 'transaction_date'),
    )


class NotificationLogDB(Base):
    """
    Журнал уведомлений по запланированным операциям.

    Используется для защиты от повторной отправки уведомления о просрочке
    чаще одного раза в календарный день.
    """
    __tablename__ = "notification_logs"

    id = Column(String(36), primary_key=True, default=_new_uuid, index=True)
    user_id = Column(String, nullable=False, index=True)
    scheduled_transaction_id = Column(
        String(36),
        ForeignKey("scheduled_transactions.id", ondelete="SET NULL"),
        nullable=True,
        index=True
    )
    kind = Column(SQLEnum(NotificationKind), nullable=False)
    status = Column(SQLEnum(NotificationStatus), nullable=False, default=NotificationStatus.PENDING)
    title = Column(String, nullable=False)
    message = Column(String, nullable=False, default="")
    error_message = Column(String, nullable=True)
    retry_count = Column(Integer, nullable=False, default=0)
    sent_at = Column(DateTime, nullable=True)
    created_at = Column(DateTime, default=datetime.now, index=True)


# =============================================================================
# Pydantic модели
# =============================================================================

def _check_uuid(v: Optional[str]) -> Optional[str]:
    if v is None:
        return v
    try:
        uuid.UUID(v)
        return v
    except ValueError:
        raise ValueError(f'Невалидный UUID: {v}')


def _to_naive_local(v: Optional[datetime]) -> Optional[datetime]:
    """Даты хранятся в локальном времени без часового пояса; aware значения (например, с суффиксом Z) переводятся в локальное время."""
    if v is not None and v.tzinfo is not None:
        return v.astimezone().replace(tzinfo=None)
    return v


class ScheduledTransactionCreate(BaseModel):
    """
    Pydantic модель для создания запланированной операции.

    Перекрёстные инварианты (is_recurring ⇒ frequency, end_date ≥ due_date)
    проверяются сервисом, чтобы они действовали и для частичных обновлений.
    """
    amount: Decimal = Field(gt=Decimal('0'), decimal_places=AMOUNT_SCALE, description="Сумма должна быть положительной")
    currency: str = Field(min_length=3, max_length=3, description="Код валюты ISO 4217")
    type: TransactionType
    description: str = ""
    account_id: str = Field(description="ID счёта (UUID)")
    category_id: Optional[str] = None
    due_date: datetime
    frequency: Optional[Frequency] = None
    end_date: Optional[datetime] = None
    is_recurring: bool = False
    reminder_days: int = Field(1, ge=0, le=30)
    notes: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        """Приводит код валюты к верхнему регистру."""
        return v.strip().upper()

    @field_validator('due_date', 'end_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)

    @field_validator('account_id', 'category_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        """Валидация формата UUID."""
        return _check_uuid(v)


class ScheduledTransactionUpdate(BaseModel):
    """
    Pydantic модель для частичного обновления запланированной операции.

    Применяются только явно переданные поля (model_dump(exclude_unset=True)).
    """
    amount: Optional[Decimal] = Field(None, gt=Decimal('0'), decimal_places=AMOUNT_SCALE)
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    type: Optional[TransactionType] = None
    description: Optional[str] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    due_date: Optional[datetime] = None
    frequency: Optional[Frequency] = None
    end_date: Optional[datetime] = None
    is_recurring: Optional[bool] = None
    reminder_days: Optional[int] = Field(None, ge=0, le=30)
    notes: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: Optional[str]) -> Optional[str]:
        return v.strip().upper() if v is not None else v

    @field_validator('due_date', 'end_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)

    @field_validator('account_id', 'category_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v)


class ScheduledTransactionFilter(BaseModel):
    """
    Параметры фильтрации и постраничного вывода списка.

    Attributes:
        start_date: Нижняя граница due_date (включительно)
        end_date: Верхняя граница due_date (включительно)
        limit: Размер страницы (None = значение из настроек)
    """
    status: Optional[ScheduledStatus] = None
    type: Optional[TransactionType] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    is_recurring: Optional[bool] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    page: int = Field(1, ge=1)
    limit: Optional[int] = Field(None, ge=1)

    @field_validator('start_date', 'end_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)


class ScheduledTransactionExecute(BaseModel):
    """
    Параметры исполнения запланированной операции.

    Attributes:
        execution_date: Дата исполнения (None = текущий момент)
        create_recurring: Создавать ли следующее вхождение для периодической операции
    """
    execution_date: Optional[datetime] = None
    create_recurring: bool = True

    @field_validator('execution_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)


class ScheduledTransaction(BaseModel):
    """
    Pydantic модель для чтения запланированной операции из БД.
    """
    id: str
    user_id: str
    account_id: str
    category_id: Optional[str] = None
    amount: Decimal
    currency: str
    type: TransactionType
    description: str
    due_date: datetime
    frequency: Optional[Frequency] = None
    end_date: Optional[datetime] = None
    is_recurring: bool
    status: ScheduledStatus
    completed_at: Optional[datetime] = None
    reminder_days: int
    is_reminder_sent: bool
    notes: Optional[str] = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TransactionCreate(BaseModel):
    """
    Pydantic модель для создания фактической операции.
    """
    amount: Decimal = Field(gt=Decimal('0'), decimal_places=AMOUNT_SCALE, description="Сумма должна быть положительной")
    currency: str = Field(min_length=3, max_length=3)
    type: TransactionType
    description: str = ""
    account_id: str
    category_id: Optional[str] = None
    transaction_date: datetime = Field(default_factory=datetime.now)
    notes: Optional[str] = None

    @field_validator('currency')
    @classmethod
    def normalize_currency(cls, v: str) -> str:
        return v.strip().upper()

    @field_validator('transaction_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)

    @field_validator('account_id', 'category_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v)


class TransactionUpdate(BaseModel):
    """
    Pydantic модель для обновления фактической операции.
    """
    amount: Optional[Decimal] = Field(None, gt=Decimal('0'), decimal_places=AMOUNT_SCALE)
    type: Optional[TransactionType] = None
    description: Optional[str] = None
    account_id: Optional[str] = None
    category_id: Optional[str] = None
    transaction_date: Optional[datetime] = None
    notes: Optional[str] = None

    @field_validator('transaction_date')
    @classmethod
    def normalize_datetime(cls, v: Optional[datetime]) -> Optional[datetime]:
        return _to_naive_local(v)

    @field_validator('account_id', 'category_id')
    @classmethod
    def validate_uuid(cls, v: Optional[str]) -> Optional[str]:
        return _check_uuid(v)


class Transaction(BaseModel):
    """
    Pydantic модель для чтения фактической операции из БД.
    """
    id: str
    user_id: str
    account_id: str
    category_id: Optional[str] = None
    amount: Decimal
    currency: str
    type: TransactionType
    description: str
    transaction_date: datetime
    notes: Optional[str] = None
    scheduled_transaction_id: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class NotificationRecord(BaseModel):
    """
    Данные запланированной операции, необходимые внешнему сервису
    для формирования напоминания или уведомления о просрочке.
    """
    scheduled_transaction_id: str
    user_id: str
    kind: NotificationKind
    amount: Decimal
    currency: str
    type: TransactionType
    description: str
    due_date: datetime
    account_name: str
    category_name: Optional[str] = None
    notes: Optional[str] = None
    days_until_due: int


class ExecutionOutcome(BaseModel):
    """
    Результат исполнения для внешних вызывающих (отделён от сессии БД).
    """
    transaction: Transaction
    scheduled_transaction: ScheduledTransaction
    next_scheduled_transaction: Optional[ScheduledTransaction] = None


@dataclass
class ExecutionResult:
    """
    Результат исполнения запланированной операции.

    Attributes:
        transaction: Созданная фактическая операция
        scheduled_transaction: Исполненная операция (статус COMPLETED)
        next_scheduled_transaction: Следующее вхождение или None
    """
    transaction: TransactionDB
    scheduled_transaction: ScheduledTransactionDB
    next_scheduled_transaction: Optional[ScheduledTransactionDB] = None


@dataclass
class ScheduledTransactionPage:
    """
    Страница списка запланированных операций.
    """
    items: List[ScheduledTransactionDB] = dc_field(default_factory=list)
    page: int = 1
    limit: int = 20
    total: int = 0

    @property
    def pages(self) -> int:
        """Общее количество страниц."""
        return ceil(self.total / self.limit) if self.limit else 0
