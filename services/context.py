"""Контекст запроса: кто выполняет операцию и откуда"""
from dataclasses import dataclass
from typing import Optional

ROLE_ADMIN = "admin"
ROLE_USER = "user"

# Действия планировщика выполняются от имени системы
SYSTEM_USER_ID: Optional[int] = None


@dataclass(frozen=True)
class AuthContext:
    """Аутентифицированный пользователь текущего запроса"""
    user_id: Optional[int]
    role: str = ROLE_USER

    @property
    def is_admin(self) -> bool:
        return self.role == ROLE_ADMIN

    @classmethod
    def system(cls) -> "AuthContext":
        return cls(user_id=SYSTEM_USER_ID, role=ROLE_ADMIN)


@dataclass(frozen=True)
class RequestMeta:
    """Данные запроса для журнала аудита"""
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
