"""Конфигурация приложения"""
from pydantic_settings import BaseSettings
from typing import List, Optional


class Settings(BaseSettings):
    """Настройки приложения"""

    # Telegram Bot (push-уведомления). Пустой токен - только логирование
    BOT_TOKEN: str = ""

    # Database
    DATABASE_URL: Optional[str] = None  # Полный URL, перекрывает DB_* ниже
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "school_auction"

    # Admin
    ADMIN_USER_IDS: str = ""

    # FastAPI
    API_HOST: str = "0.0.0.0"
    API_PORT: int = 8000

    # Auction Settings
    # Период проверки истекших аукционов (в секундах)
    SCHEDULER_INTERVAL_SECONDS: float = 60.0
    # За сколько секунд до конца аукциона ставки больше не принимаются
    BID_GRACE_SECONDS: int = 60
    # Таймаут транзакции ставки (в секундах)
    BID_TIMEOUT_SECONDS: float = 10.0
    # Длительность аукциона по умолчанию: 1h, 6h, 1d, 3d
    DEFAULT_DURATION_CODE: str = "1d"

    # Logging
    LOG_LEVEL: str = "INFO"
    AUDIT_LOG_FILE: str = ""  # Путь к текстовому журналу аудита

    @property
    def admin_ids_list(self) -> List[int]:
        """Список ID администраторов"""
        if not self.ADMIN_USER_IDS:
            return []
        return [int(uid.strip()) for uid in self.ADMIN_USER_IDS.split(",") if uid.strip()]

    @property
    def database_url(self) -> str:
        """URL подключения к базе данных"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASSWORD}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
