"""Главный файл сервера"""
import logging
import uvicorn
from config import settings
from database.connection import async_session_maker, engine
from api.app import create_app
from services.audit import configure_audit_file

# Настройка логирования
logging.basicConfig(
    level=settings.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

if settings.AUDIT_LOG_FILE:
    configure_audit_file(settings.AUDIT_LOG_FILE)

app = create_app(async_session_maker, engine=engine)


def main():
    """Запуск сервера"""
    logger.info(f"Запуск API на {settings.API_HOST}:{settings.API_PORT}")
    uvicorn.run(app, host=settings.API_HOST, port=settings.API_PORT)


if __name__ == "__main__":
    main()
