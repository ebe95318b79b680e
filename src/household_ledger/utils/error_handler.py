"""
Модуль централизованной обработки ошибок.
Преобразует исключения ядра в результат операции для слоя API.
"""

import functools
import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from pydantic import ValidationError as PydanticValidationError

from household_ledger.utils.exceptions import (
    ValidationError,
    NotFoundError,
    InvalidStateError,
    UnsupportedFrequencyError,
)

logger = logging.getLogger(__name__)

GENERIC_FAILURE_MESSAGE = "Не удалось выполнить операцию. Попробуйте позже."


@dataclass
class OperationResult:
    """
    Результат операции ядра.

    Attributes:
        success: Признак успеха
        data: Данные результата (только при успехе)
        error_kind: Вид ошибки (validation, not_found, invalid_state, internal)
        message: Понятное пользователю сообщение
        status_code: HTTP статус для слоя API
    """
    success: bool
    data: Any = None
    error_kind: Optional[str] = None
    message: Optional[str] = None
    status_code: int = 200

    @classmethod
    def ok(cls, data: Any = None) -> "OperationResult":
        return cls(success=True, data=data)


class ErrorHandler:
    """
    Класс для централизованной обработки ошибок.
    """

    def handle(self, exception: Exception, context_message: str = "") -> OperationResult:
        """
        Обрабатывает исключение: логирует и возвращает результат с описанием ошибки.
        
        Args:
            exception: Исключение, которое нужно обработать.
            context_message: Дополнительное сообщение о контексте ошибки.
        """
        log_message = f"{context_message}: {exception}" if context_message else str(exception)
        error_kind, status_code = self._classify(exception)

        if error_kind == "internal":
            logger.error(f"System error: {log_message}", exc_info=exception)
        else:
            logger.warning(f"User error: {log_message}")

        return OperationResult(
            success=False,
            error_kind=error_kind,
            message=self._get_user_message(exception, error_kind),
            status_code=status_code,
        )

    def _classify(self, exception: Exception):
        """Возвращает (вид ошибки, HTTP статус)."""
        if isinstance(exception, (ValidationError, PydanticValidationError)):
            return "validation", 400
        elif isinstance(exception, NotFoundError):
            return "not_found", 404
        elif isinstance(exception, InvalidStateError):
            return "invalid_state", 409
        else:
            # UnsupportedFrequencyError, ошибки БД и непредвиденные ошибки
            return "internal", 500

    def _get_user_message(self, exception: Exception, error_kind: str) -> str:
        """Возвращает понятное пользователю сообщение об ошибке."""
        if isinstance(exception, PydanticValidationError):
            details = "; ".join(
                f"{'.'.join(str(part) for part in error['loc'])}: {error['msg']}"
                for error in exception.errors()
            )
            return f"Ошибка ввода: {details}"
        elif error_kind == "validation":
            return f"Ошибка ввода: {exception}"
        elif error_kind in ("not_found", "invalid_state"):
            return str(exception)
        elif isinstance(exception, UnsupportedFrequencyError):
            return "Некорректные данные повторения операции."
        else:
            return GENERIC_FAILURE_MESSAGE


def safe_operation(func: Callable[..., Any]) -> Callable[..., OperationResult]:
    """
    Декоратор для операций ядра.
    Возвращаемое значение оборачивается в OperationResult.ok, исключения
    передаются в ErrorHandler и превращаются в OperationResult с ошибкой.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs) -> OperationResult:
        try:
            return OperationResult.ok(func(*args, **kwargs))
        except Exception as e:
            return ErrorHandler().handle(e, context_message=f"Error in {func.__name__}")
    return wrapper
