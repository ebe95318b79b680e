"""
Property-based тесты жизненного цикла запланированных операций.

Использует Hypothesis для генерации тестовых данных и проверки инвариантов:
- Идемпотентность перевода в OVERDUE
- Однократность исполнения
- Корректность изменения баланса
"""

import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta
from decimal import Decimal

import pytest
from hypothesis import given, strategies as st, settings
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from household_ledger.database import init_default_currencies
from household_ledger.models import (
    Base,
    AccountDB,
    CategoryDB,
    ScheduledTransactionDB,
    TransactionDB,
    NotificationLogDB,
    TransactionType,
    ScheduledStatus,
)
from household_ledger.services.overdue_service import sweep_overdue
from household_ledger.services.execution_service import execute_scheduled_transaction
from household_ledger.services.scheduled_transaction_service import create_scheduled_transaction
from household_ledger.utils.exceptions import InvalidStateError

from test_factories import create_test_account, create_test_scheduled_transaction, make_schedule_create

# Создаём тестовый движок БД в памяти
test_engine = create_engine(
    "sqlite:///:memory:",
    connect_args={"check_same_thread": False}
)


@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Включает поддержку foreign keys в SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


Base.metadata.create_all(test_engine)
TestSessionLocal = sessionmaker(bind=test_engine)

with TestSessionLocal() as _seed_session:
    init_default_currencies(_seed_session)


@contextmanager
def get_test_session():
    """Контекстный менеджер для создания тестовой сессии БД."""
    session = TestSessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        # Порядок важен из-за foreign keys: сначала зависимые, потом родительские
        session.query(NotificationLogDB).delete()
        session.query(TransactionDB).delete()
        session.query(ScheduledTransactionDB).delete()
        session.query(CategoryDB).delete()
        session.query(AccountDB).delete()
        session.commit()
        session.close()


# Стратегии генерации данных
amounts = st.decimals(min_value=Decimal('0.01'), max_value=Decimal('1000000.00'), places=2)
transaction_types = st.sampled_from(list(TransactionType))
statuses = st.sampled_from(list(ScheduledStatus))
hour_offsets = st.integers(min_value=-24 * 60, max_value=24 * 60)

SWEEP_NOW = datetime(2025, 6, 15, 12, 0)


class TestScheduledTransactionProperties:
    """
    Property-based тесты инвариантов жизненного цикла.
    """

    @given(schedules=st.lists(st.tuples(hour_offsets, statuses), max_size=15))
    @settings(max_examples=50, deadline=None)
    def test_sweep_is_idempotent(self, schedules):
        """
        Повторный перевод в OVERDUE не меняет состояние и возвращает 0.
        """
        with get_test_session() as session:
            user_id = str(uuid.uuid4())
            account = create_test_account(user_id)
            session.add(account)
            session.commit()

            session.add_all([
                create_test_scheduled_transaction(
                    user_id, account.id,
                    due_date=SWEEP_NOW + timedelta(hours=offset),
                    status=status
                )
                for offset, status in schedules
            ])
            session.commit()

            expected = sum(
                1 for offset, status in schedules
                if status == ScheduledStatus.PENDING and offset < 0
            )

            assert sweep_overdue(session, now=SWEEP_NOW) == expected
            first_state = {
                s.id: s.status for s in session.query(ScheduledTransactionDB).all()
            }

            assert sweep_overdue(session, now=SWEEP_NOW) == 0
            second_state = {
                s.id: s.status for s in session.query(ScheduledTransactionDB).all()
            }

            assert first_state == second_state
            assert all(
                status != ScheduledStatus.PENDING or s_due >= SWEEP_NOW
                for s_due, status in session.query(
                    ScheduledTransactionDB.due_date, ScheduledTransactionDB.status
                ).all()
            )

    @given(amount=amounts, transaction_type=transaction_types)
    @settings(max_examples=50, deadline=None)
    def test_execution_applies_signed_amount_once(self, amount, transaction_type):
        """
        Баланс после исполнения = баланс до ± сумма (+ для INCOME, - иначе);
        повторное исполнение отклоняется и баланс не меняет.
        """
        with get_test_session() as session:
            user_id = str(uuid.uuid4())
            account = create_test_account(user_id, currency="USD", balance=Decimal("1000000.00"))
            session.add(account)
            session.commit()

            scheduled = create_scheduled_transaction(
                session, user_id,
                make_schedule_create(
                    account.id, currency="USD", amount=amount, type=transaction_type
                )
            )

            execute_scheduled_transaction(session, scheduled.id, user_id)

            expected_delta = amount if transaction_type == TransactionType.INCOME else -amount
            expected_balance = Decimal("1000000.00") + expected_delta
            assert session.get(AccountDB, account.id).balance == expected_balance

            with pytest.raises(InvalidStateError):
                execute_scheduled_transaction(session, scheduled.id, user_id)

            assert session.get(AccountDB, account.id).balance == expected_balance
            assert session.query(TransactionDB).filter(
                TransactionDB.scheduled_transaction_id == scheduled.id
            ).count() == 1
