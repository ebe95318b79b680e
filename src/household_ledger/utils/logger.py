"""
Модуль настройки логирования для Household Ledger.

Обеспечивает:
- Структурированное логирование (JSON формат) в файл
- Отдельный файл лога на каждый сеанс
- Читаемый вывод в консоль
"""

import json
import logging
import sys
from pathlib import Path
from datetime import datetime, date
from typing import Any, Dict
from decimal import Decimal
from enum import Enum

from household_ledger.config import settings

# Стандартные атрибуты LogRecord, которые не переносятся в JSON как extra
_RESERVED_ATTRS = frozenset([
    "args", "asctime", "created", "exc_info", "exc_text", "filename",
    "funcName", "levelname", "levelno", "lineno", "module",
    "msecs", "message", "msg", "name", "pathname", "process",
    "processName", "relativeCreated", "stack_info", "thread", "threadName",
    "taskName",
])


class JsonFormatter(logging.Formatter):
    """
    Форматтер для вывода логов в формате JSON.
    """
    def format(self, record: logging.LogRecord) -> str:
        log_record: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).strftime('%Y-%m-%d %H:%M:%S'),
            "level": record.levelname,
            "logger": record.name,
            "function": record.funcName,
            "line": record.lineno,
            "message": record.getMessage(),
        }
        
        # Дополнительные поля из extra, например
        # logger.info("message", extra={"schedule_id": "..."})
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_record[key] = self._serialize_value(value)

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)
            
        return json.dumps(log_record, ensure_ascii=False)
    
    def _serialize_value(self, value: Any) -> Any:
        """
        Преобразует значение в JSON-сериализуемый формат.

        Decimal сериализуется строкой, чтобы не терять точность сумм.
        """
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        elif isinstance(value, Decimal):
            return str(value)
        elif isinstance(value, Enum):
            return value.value
        elif isinstance(value, (str, int, float, bool)) or value is None:
            return value
        else:
            return str(value)

def setup_logging() -> Path:
    """
    Настраивает систему логирования.
    
    - Создаёт новый файл лога для каждого сеанса (household_ledger_YYYYMMDD_HHMMSS.log)
    - JSON форматирование для файла
    - Текстовый формат для консоли

    Returns:
        Path: Путь к файлу лога текущего сеанса
    """
    log_file = Path(settings.log_file)
    log_dir = log_file.parent
    log_dir.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime('%Y%m%d_%H%M%S')
    session_log_file = log_dir / f"household_ledger_{timestamp}.log"

    root_logger = logging.getLogger()
    root_logger.setLevel(settings.log_level)
    
    # Удаляем существующие хендлеры
    root_logger.handlers = []

    file_handler = logging.FileHandler(session_log_file, encoding='utf-8')
    file_handler.setFormatter(JsonFormatter())
    root_logger.addHandler(file_handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(
        fmt='%(asctime)s | %(levelname)-8s | %(name)s:%(funcName)s | %(message)s',
        datefmt='%H:%M:%S'
    ))
    root_logger.addHandler(console_handler)

    logging.info("Система логирования инициализирована")
    logging.info(f"Логи записываются в: {session_log_file}")
    return session_log_file

def get_logger(name: str) -> logging.Logger:
    """
    Возвращает логгер с указанным именем.
    
    Args:
        name: Имя логгера (обычно __name__)
        
    Returns:
        logging.Logger: Настроенный логгер
    """
    return logging.getLogger(name)
