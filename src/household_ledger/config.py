"""
Модуль конфигурации ядра запланированных операций Household Ledger.

Содержит настройки:
- Основные параметры (название, версия)
- Настройки базы данных (URL подключения)
- Настройки логирования
- Параметры напоминаний и просрочки
- Параметры постраничного вывода
- Персистентность настроек (загрузка/сохранение)
"""

import os
import json
import logging
from pathlib import Path

logger = logging.getLogger(__name__)

class Config:
    """
    Класс конфигурации приложения.
    Реализует паттерн Singleton для доступа к настройкам из любой части приложения.
    
    Пользовательские данные (БД по умолчанию, логи, настройки) хранятся в
    директории ~/.household_ledger_data/ либо в директории из переменной
    окружения HOUSEHOLD_LEDGER_DATA_DIR.
    """
    
    _instance = None
    
    # Константы приложения
    APP_NAME = "Household Ledger"
    VERSION = "1.0.0"

    DATA_DIR_ENV = "HOUSEHOLD_LEDGER_DATA_DIR"
    DATABASE_URL_ENV = "HOUSEHOLD_LEDGER_DATABASE_URL"
    
    @classmethod
    def get_user_data_dir(cls) -> Path:
        """
        Возвращает путь к директории пользовательских данных.
        
        Создаёт директорию и поддиректорию logs/ для файлов логов.
        
        Returns:
            Path: Путь к директории данных
        """
        override = os.environ.get(cls.DATA_DIR_ENV)
        data_dir = Path(override) if override else Path.home() / ".household_ledger_data"
        
        data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"Директория пользовательских данных: {data_dir}")
        
        logs_dir = data_dir / "logs"
        logs_dir.mkdir(exist_ok=True)
        logger.debug(f"Директория логов: {logs_dir}")
        
        return data_dir
    
    def __new__(cls):
        if cls._instance is None:
            cls._instance = super(Config, cls).__new__(cls)
            cls._instance._initialized = False
        return cls._instance
    
    def __init__(self):
        if self._initialized:
            return
            
        self._initialized = True
        
        self.user_data_dir = self.get_user_data_dir()
        
        # Пути к файлам
        self.config_file: str = str(self.user_data_dir / "config.json")
        self.log_file: str = str(self.user_data_dir / "logs" / "household_ledger.log")

        # База данных
        self.database_url: str = os.environ.get(
            self.DATABASE_URL_ENV,
            f"sqlite:///{self.user_data_dir / 'ledger.db'}"
        )
        
        # Настройки логирования
        self.log_level: str = "INFO"
        
        # Напоминания: горизонт выборки и окно уведомлений о просрочке
        self.reminder_lookahead_days: int = 30
        self.overdue_notification_window_hours: int = 24

        # Постраничный вывод
        self.default_page_size: int = 20
        self.max_page_size: int = 100
        
        self.load()

    def load(self) -> None:
        """
        Загружает настройки из файла конфигурации.
        
        Если файл не существует, используются значения по умолчанию.
        URL базы данных из переменной окружения имеет приоритет над файлом.
        """
        if not os.path.exists(self.config_file):
            logger.info(f"Файл конфигурации не найден, используются значения по умолчанию: {self.config_file}")
            return
            
        try:
            with open(self.config_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
            
            if self.DATABASE_URL_ENV not in os.environ:
                self.database_url = data.get("database_url", self.database_url)

            self.log_level = data.get("log_level", "INFO")

            self.reminder_lookahead_days = int(data.get("reminder_lookahead_days", 30))
            self.overdue_notification_window_hours = int(data.get("overdue_notification_window_hours", 24))

            self.default_page_size = int(data.get("default_page_size", 20))
            self.max_page_size = int(data.get("max_page_size", 100))
            
            logger.info(f"Конфигурация загружена из {self.config_file}")
            
        except Exception as e:
            logger.error(f"Ошибка при загрузке конфигурации: {e}")

    def save(self) -> None:
        """
        Сохраняет текущие настройки в файл конфигурации.
        """
        data = {
            "database_url": self.database_url,
            "log_level": self.log_level,
            "reminder_lookahead_days": self.reminder_lookahead_days,
            "overdue_notification_window_hours": self.overdue_notification_window_hours,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
        }
        
        try:
            with open(self.config_file, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=4, ensure_ascii=False)
            logger.info(f"Конфигурация сохранена в {self.config_file}")
        except Exception as e:
            logger.error(f"Ошибка при сохранении конфигурации: {e}")

# Глобальный экземпляр конфигурации
settings = Config()
