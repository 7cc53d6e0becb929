"""Ошибки ядра аукциона

Все ошибки проверки - наследники ValueError, как и раньше в сервисах.
Проверки выполняются до любой записи, поэтому при ошибке в БД ничего не меняется.
"""
from typing import Any, Optional


class AuctionError(ValueError):
    """Базовая ошибка ядра"""

    status_code = 500
    reason = "error"

    def __init__(
        self,
        message: str,
        *,
        reason: Optional[str] = None,
        current_price: Optional[int] = None,
        status: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        if reason:
            self.reason = reason
        self.current_price = current_price
        self.status = status

    def to_dict(self) -> dict[str, Any]:
        """Тело ответа для клиента"""
        data: dict[str, Any] = {"message": self.message, "reason": self.reason}
        # Клиент перерисовывает цену перед повторной ставкой
        if self.current_price is not None:
            data["current_price"] = self.current_price
        if self.status is not None:
            data["status"] = self.status
        return data


class NotFound(AuctionError):
    """Аукцион, ставка или пользователь не найдены"""
    status_code = 404
    reason = "not_found"


class InvalidState(AuctionError):
    """Нарушено правило жизненного цикла или ставки"""
    status_code = 400
    reason = "invalid_state"


class Conflict(InvalidState):
    """Параллельная запись проиграла гонку"""
    reason = "conflict"


class InvalidInput(AuctionError):
    """Некорректные входные данные"""
    status_code = 400
    reason = "invalid_input"


class Unauthorized(AuctionError):
    """Нет токена или токен недействителен"""
    status_code = 401
    reason = "unauthorized"


class Forbidden(AuctionError):
    """Недостаточно прав"""
    status_code = 403
    reason = "forbidden"


class RequestTimeout(AuctionError):
    """Транзакция не успела завершиться и была откатана. Запрос можно повторить"""
    status_code = 503
    reason = "timeout"
