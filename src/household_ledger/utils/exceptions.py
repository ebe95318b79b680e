"""
Модуль пользовательских исключений ядра запланированных операций.
"""

class LedgerError(Exception):
    """Базовый класс для всех исключений приложения."""
    pass

class ValidationError(LedgerError):
    """Исключение при ошибке валидации данных (некорректный ввод, неизвестная ссылка)."""
    pass

class NotFoundError(LedgerError):
    """
    Исключение когда запись не найдена или принадлежит другому пользователю.

    Оба случая сознательно неразличимы для вызывающего кода.
    """
    pass

class InvalidStateError(LedgerError):
    """Исключение при операции над записью в несовместимом статусе (COMPLETED, CANCELLED)."""
    pass

class UnsupportedFrequencyError(LedgerError):
    """Исключение при неизвестной частоте повторения (дефект данных, не повторяется)."""
    pass

class DatabaseError(LedgerError):
    """Исключение при ошибках работы с базой данных."""
    pass
