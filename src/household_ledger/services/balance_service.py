"""
Сервис изменения балансов счетов.

Единственная точка изменения AccountDB.balance. Баланс никогда не
перезаписывается целиком: изменение выполняется одним SQL UPDATE
вида balance = balance + :delta, поэтому конкурентные исполнения не
теряют обновлений. Функции не вызывают commit и работают внутри
единицы работы вызывающего сервиса.
"""

import logging
from decimal import Decimal

from sqlalchemy import update
from sqlalchemy.orm import Session

from household_ledger.models import AccountDB, TransactionType
from household_ledger.utils.exceptions import NotFoundError

logger = logging.getLogger(__name__)


def signed_amount(amount: Decimal, transaction_type: TransactionType) -> Decimal:
    """
    Вычисляет знаковое изменение баланса для операции.

    Правило знака:
    - INCOME: +amount
    - EXPENSE: -amount
    - TRANSFER: -amount (списание со счёта-источника, второй ноги нет)

    Args:
        amount: Положительная сумма операции
        transaction_type: Тип операции

    Returns:
        Знаковая сумма изменения баланса

    Example:
        >>> signed_amount(Decimal('15000'), TransactionType.EXPENSE)
        Decimal('-15000')
    """
    amount = Decimal(amount)
    if TransactionType(transaction_type) == TransactionType.INCOME:
        return amount
    return -amount


def apply_balance_delta(session: Session, account_id: str, delta: Decimal) -> None:
    """
    Атомарно применяет знаковое изменение к балансу счёта.

    Args:
        session: Активная сессия БД (единица работы вызывающего)
        account_id: ID счёта
        delta: Знаковое изменение баланса

    Raises:
        NotFoundError: Если счёт не существует
        SQLAlchemyError: При ошибках работы с БД
    """
    result = session.execute(
        update(AccountDB)
        .where(AccountDB.id == account_id)
        .values(balance=AccountDB.balance + Decimal(delta))
        .execution_options(synchronize_session=False)
    )

    if result.rowcount != 1:
        error_msg = f"Счёт с ID {account_id} не найден"
        logger.error(error_msg)
        raise NotFoundError(error_msg)

    # Загруженный в сессию объект счёта должен перечитать баланс из БД
    account = session.identity_map.get(session.identity_key(AccountDB, account_id))
    if account is not None:
        session.expire(account, ["balance"])

    logger.debug(f"Баланс счёта ID {account_id} изменён на {delta}")


def apply_transaction_effect(
    session: Session,
    account_id: str,
    amount: Decimal,
    transaction_type: TransactionType,
    reverse: bool = False
) -> Decimal:
    """
    Применяет (или отменяет при reverse=True) эффект операции на баланс счёта.

    Returns:
        Применённое знаковое изменение
    """
    delta = signed_amount(amount, transaction_type)
    if reverse:
        delta = -delta
    apply_balance_delta(session, account_id, delta)
    return delta
