"""
Модуль сервисного слоя фактических операций.

Содержит CRUD операции для фактических операций:
- create_transaction: создание с применением изменения баланса
- get_transaction: получение операции пользователя
- update_transaction: обновление с пересчётом баланса
- delete_transaction: удаление с отменой изменения баланса

Каждая функция изменяет баланс только через balance_service и
фиксирует операцию и изменение баланса одним commit.
"""

from typing import Any, Dict
import logging

from sqlalchemy.orm import Session
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.models import TransactionDB, TransactionCreate, TransactionUpdate
from household_ledger.services.balance_service import apply_transaction_effect
from household_ledger.services.scheduled_transaction_service import (
    validate_references,
    validate_amount_precision,
)
from household_ledger.utils.exceptions import LedgerError, NotFoundError, ValidationError
from household_ledger.utils.validation import validate_uuid_format, validate_user_id


logger = logging.getLogger(__name__)

_REQUIRED_FIELDS = ("amount", "type", "description", "account_id", "transaction_date")


def get_transaction(session: Session, transaction_id: str, user_id: str) -> TransactionDB:
    """
    Получает фактическую операцию пользователя.

    Raises:
        NotFoundError: Если операция не найдена
    """
    validate_user_id(user_id)
    validate_uuid_format(transaction_id, "transaction_id")

    db_transaction = session.query(TransactionDB).filter(
        TransactionDB.id == transaction_id,
        TransactionDB.user_id == user_id
    ).first()

    if not db_transaction:
        error_msg = f"Операция с ID {transaction_id} не найдена"
        logger.warning(error_msg)
        raise NotFoundError(error_msg)

    return db_transaction


def create_transaction(session: Session, user_id: str, data: TransactionCreate) -> TransactionDB:
    """
    Создаёт фактическую операцию и применяет её к балансу счёта.
    
    Args:
        session: Активная сессия БД
        user_id: ID пользователя
        data: Данные операции (Pydantic модель)
        
    Returns:
        Созданная операция
        
    Raises:
        ValidationError: Неизвестная валюта
        NotFoundError: Счёт или категория не найдены
        SQLAlchemyError: При ошибках работы с базой данных
    """
    validate_user_id(user_id)

    try:
        validate_references(
            session, user_id,
            currency=data.currency,
            account_id=data.account_id,
            category_id=data.category_id
        )
        validate_amount_precision(session, data.amount, data.currency)

        db_transaction = TransactionDB(user_id=user_id, **data.model_dump())
        session.add(db_transaction)
        session.flush()

        apply_transaction_effect(session, data.account_id, data.amount, data.type)

        session.commit()
        session.refresh(db_transaction)

        logger.info(
            f"Создана операция ID {db_transaction.id}: {data.type.value} "
            f"{data.amount} {data.currency}, счёт {data.account_id}"
        )
        return db_transaction

    except LedgerError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при создании операции в БД: {e}")
        session.rollback()
        raise


def update_transaction(
    session: Session,
    transaction_id: str,
    user_id: str,
    data: TransactionUpdate
) -> TransactionDB:
    """
    Обновляет фактическую операцию.

    Эффект старой версии на баланс отменяется, эффект новой применяется
    (в том числе при смене счёта).
    
    Raises:
        NotFoundError: Операция, счёт или категория не найдены
        ValidationError: Попытка обнулить обязательное поле
        SQLAlchemyError: При ошибках работы с базой данных
    """
    try:
        db_transaction = get_transaction(session, transaction_id, user_id)
        changes: Dict[str, Any] = data.model_dump(exclude_unset=True)

        for field in _REQUIRED_FIELDS:
            if field in changes and changes[field] is None:
                error_msg = f"Поле {field} не может быть пустым"
                logger.error(error_msg)
                raise ValidationError(error_msg)

        validate_references(
            session, user_id,
            account_id=changes.get("account_id"),
            category_id=changes.get("category_id")
        )
        if "amount" in changes:
            validate_amount_precision(session, changes["amount"], db_transaction.currency)

        apply_transaction_effect(
            session, db_transaction.account_id, db_transaction.amount, db_transaction.type,
            reverse=True
        )

        for field, value in changes.items():
            setattr(db_transaction, field, value)
        session.flush()

        apply_transaction_effect(
            session, db_transaction.account_id, db_transaction.amount, db_transaction.type
        )

        session.commit()
        session.refresh(db_transaction)
        
        logger.info(f"Операция ID {transaction_id} успешно обновлена")
        return db_transaction

    except LedgerError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при обновлении операции в БД: {e}")
        session.rollback()
        raise


def delete_transaction(session: Session, transaction_id: str, user_id: str) -> bool:
    """
    Удаляет фактическую операцию и отменяет её эффект на баланс.
        
    Returns:
        True если операция удалена
        
    Raises:
        NotFoundError: Если операция не найдена
        SQLAlchemyError: При ошибках работы с базой данных
    """
    try:
        db_transaction = get_transaction(session, transaction_id, user_id)

        apply_transaction_effect(
            session, db_transaction.account_id, db_transaction.amount, db_transaction.type,
            reverse=True
        )
        session.delete(db_transaction)
        session.commit()
        
        logger.info(f"Операция ID {transaction_id} удалена, баланс счёта скорректирован")
        return True

    except LedgerError:
        session.rollback()
        raise
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при удалении операции из БД: {e}")
        session.rollback()
        raise
