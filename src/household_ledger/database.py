"""
Модуль управления базой данных для Household Ledger.

Содержит функции для:
- Инициализации базы данных и создания таблиц
- Управления сессиями БД через контекстный менеджер
- Обработки ошибок с автоматическим откатом транзакций

Сессия SQLAlchemy является единицей работы (unit of work): сервисы
фиксируют изменения одним commit, при ошибке выполняется rollback.
URL базы данных определяется в config.py через settings.database_url
"""

from contextlib import contextmanager
from typing import Generator, Optional
import logging
import atexit

from sqlalchemy import create_engine, Engine, event
from sqlalchemy.orm import sessionmaker, Session
from sqlalchemy.exc import SQLAlchemyError

from household_ledger.config import settings
from household_ledger.utils.exceptions import DatabaseError

logger = logging.getLogger(__name__)


_engine: Optional[Engine] = None
_SessionLocal: Optional[sessionmaker] = None
_close_registered = False

# Валюты, создаваемые при первом запуске: (код, название, символ, знаков после запятой)
DEFAULT_CURRENCIES = [
    ("JPY", "Японская иена", "¥", 0),
    ("USD", "Доллар США", "$", 2),
    ("EUR", "Евро", "€", 2),
    ("GBP", "Фунт стерлингов", "£", 2),
    ("RUB", "Российский рубль", "₽", 2),
]


def _enable_sqlite_foreign_keys(dbapi_conn, connection_record) -> None:
    """Включает поддержку foreign keys в SQLite."""
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_default_currencies(session: Session) -> None:
    """
    Создаёт справочник валют при первом запуске.
    """
    from household_ledger.models import CurrencyDB

    try:
        existing_count = session.query(CurrencyDB).count()

        if existing_count > 0:
            logger.info(f"Валюты уже существуют ({existing_count} шт.), пропускаем инициализацию")
            return

        for code, name, symbol, decimals in DEFAULT_CURRENCIES:
            session.add(CurrencyDB(code=code, name=name, symbol=symbol, decimals=decimals))
            logger.debug(f"Добавлена валюта: {code}")

        session.commit()
        logger.info(f"Успешно создано {len(DEFAULT_CURRENCIES)} валют")

    except SQLAlchemyError as e:
        logger.error(f"Ошибка при инициализации валют: {e}")
        session.rollback()
        raise


def init_db(database_url: Optional[str] = None) -> Engine:
    """
    Инициализирует подключение к базе данных и создаёт таблицы.
    
    Args:
        database_url: URL подключения (None = settings.database_url)

    Returns:
        Engine: Созданный движок SQLAlchemy
    """
    global _engine, _SessionLocal, _close_registered
    
    from household_ledger.models import Base
    
    try:
        database_url = database_url or settings.database_url
        logger.info(f"Инициализация базы данных: {database_url}")

        is_sqlite = database_url.startswith("sqlite")
        _engine = create_engine(
            database_url,
            connect_args={"check_same_thread": False} if is_sqlite else {},
            echo=False
        )
        if is_sqlite:
            event.listen(_engine, "connect", _enable_sqlite_foreign_keys)
        
        Base.metadata.create_all(bind=_engine)
        logger.info("Таблицы базы данных успешно созданы/проверены")
        
        _SessionLocal = sessionmaker(
            autocommit=False,
            autoflush=False,
            bind=_engine
        )
        
        with get_db_session() as session:
            init_default_currencies(session)

        if not _close_registered:
            atexit.register(close_db)
            _close_registered = True

        logger.info("База данных успешно инициализирована")
        return _engine
        
    except SQLAlchemyError as e:
        logger.error(f"Ошибка при инициализации базы данных: {e}")
        raise


@contextmanager
def get_db_session() -> Generator[Session, None, None]:
    """
    Контекстный менеджер для работы с сессией базы данных.

    Любое исключение внутри блока откатывает незафиксированные изменения.
    """
    if _SessionLocal is None:
        error_msg = "База данных не инициализирована. Вызовите init_db() перед использованием."
        logger.error(error_msg)
        raise DatabaseError(error_msg)
    
    session: Session = _SessionLocal()
    
    try:
        logger.debug("Создана новая сессия БД")
        yield session
        
    except SQLAlchemyError as e:
        logger.error(f"Ошибка SQLAlchemy, откат транзакции: {e}")
        session.rollback()
        raise
        
    except Exception as e:
        logger.debug(f"Исключение в сессии, откат транзакции: {e}")
        session.rollback()
        raise
        
    finally:
        session.close()
        logger.debug("Сессия БД закрыта")


def close_db() -> None:
    """
    Закрывает соединение с базой данных и освобождает ресурсы.
    """
    global _engine, _SessionLocal
    
    if _engine is not None:
        logger.info("Закрытие соединения с базой данных...")
        _engine.dispose()
        _engine = None
        _SessionLocal = None
        logger.info("Соединение с базой данных закрыто")
