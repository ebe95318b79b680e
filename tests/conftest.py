"""
Конфигурация pytest для тестов household_ledger.
"""
import os
import tempfile
import uuid

# Данные пользователя (config.json, логи) не должны попадать в домашнюю директорию
os.environ.setdefault(
    "HOUSEHOLD_LEDGER_DATA_DIR",
    tempfile.mkdtemp(prefix="household_ledger_test_")
)

import pytest
from decimal import Decimal
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker

from household_ledger.database import init_db, close_db, init_default_currencies
from household_ledger.models import Base, TransactionType

from test_factories import create_test_account, create_test_category


def _enable_foreign_keys(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


@pytest.fixture
def db_session():
    """
    Централизованная фикстура для создания временной БД и сессии.
    Справочник валют заполняется значениями по умолчанию.
    Автоматически закрывает соединение после теста.
    """
    engine = create_engine("sqlite:///:memory:")
    event.listen(engine, "connect", _enable_foreign_keys)
    Base.metadata.create_all(engine)
    Session = sessionmaker(bind=engine)
    session = Session()

    init_default_currencies(session)

    yield session

    session.close()
    engine.dispose()


@pytest.fixture
def ledger_db(tmp_path):
    """
    Инициализирует глобальную БД приложения (для тестов фасада api).
    """
    engine = init_db(f"sqlite:///{tmp_path / 'ledger.db'}")
    yield engine
    close_db()


@pytest.fixture
def user_id():
    return str(uuid.uuid4())


@pytest.fixture
def other_user_id():
    return str(uuid.uuid4())


@pytest.fixture
def account(db_session, user_id):
    """Счёт в иенах с балансом 100000."""
    account = create_test_account(user_id, currency="JPY", balance=Decimal("100000"))
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def usd_account(db_session, user_id):
    """Счёт в долларах с балансом 2500.00."""
    account = create_test_account(user_id, name="Карта USD", currency="USD", balance=Decimal("2500.00"))
    db_session.add(account)
    db_session.commit()
    return account


@pytest.fixture
def category(db_session, user_id):
    category = create_test_category(user_id, name="Жильё", type=TransactionType.EXPENSE)
    db_session.add(category)
    db_session.commit()
    return category
