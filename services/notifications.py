"""Сервис для отправки уведомлений

Уведомления отправляются только после commit транзакции, одна попытка,
без ожидания результата. Ошибка отправки логируется и не влияет на операцию.
"""
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Optional, Protocol
from aiogram import Bot
from database.models.user import User
import logging

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Recipient:
    """Получатель уведомления"""
    user_id: int
    username: str
    email: str
    telegram_id: Optional[int] = None

    @classmethod
    def from_user(cls, user: User) -> "Recipient":
        return cls(
            user_id=user.id,
            username=user.username,
            email=user.email,
            telegram_id=user.telegram_id
        )


class Notifier(Protocol):
    """Шлюз уведомлений (email / push)"""

    async def notify_win(self, recipient: Recipient, auction_title: str, amount: int, auction_id: int) -> None:
        ...

    async def notify_approval(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        ...

    async def notify_hot(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        ...

    async def notify_auction_ended(
        self,
        recipient: Recipient,
        auction_title: str,
        final_price: Optional[int],
        auction_id: int
    ) -> None:
        ...


class LoggingNotifier:
    """Уведомления только в лог (когда доставка не настроена)"""

    async def notify_win(self, recipient: Recipient, auction_title: str, amount: int, auction_id: int) -> None:
        logger.info(f"[уведомление] Победа: {recipient.email} - {auction_title} ({amount:,} вон), аукцион {auction_id}")

    async def notify_approval(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        logger.info(f"[уведомление] Одобрен: {recipient.email} - {auction_title}, аукцион {auction_id}")

    async def notify_hot(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        logger.info(f"[уведомление] Горячий аукцион: {recipient.email} - {auction_title}, аукцион {auction_id}")

    async def notify_auction_ended(
        self,
        recipient: Recipient,
        auction_title: str,
        final_price: Optional[int],
        auction_id: int
    ) -> None:
        logger.info(f"[уведомление] Завершен: {recipient.email} - {auction_title}, аукцион {auction_id}, цена: {final_price}")


class TelegramNotifier:
    """Push-уведомления через Telegram-бота"""

    def __init__(self, bot: Bot):
        self.bot = bot

    async def _send(self, recipient: Recipient, text: str) -> None:
        if not recipient.telegram_id:
            logger.debug(f"У пользователя {recipient.user_id} нет telegram_id, уведомление пропущено")
            return
        await self.bot.send_message(recipient.telegram_id, text, parse_mode="HTML")

    async def notify_win(self, recipient: Recipient, auction_title: str, amount: int, auction_id: int) -> None:
        text = (
            f"🎉 Поздравляем, {recipient.username}!\n\n"
            f"Вы выиграли аукцион <b>{auction_title}</b> (#{auction_id}).\n"
            f"Итоговая цена: <b>{amount:,} вон</b>\n\n"
            "Пожалуйста, оплатите покупку в течение 2 дней."
        )
        await self._send(recipient, text)

    async def notify_approval(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        text = (
            f"✅ Ваш аукцион <b>{auction_title}</b> (#{auction_id}) одобрен "
            "и опубликован."
        )
        await self._send(recipient, text)

    async def notify_hot(self, recipient: Recipient, auction_title: str, auction_id: int) -> None:
        text = f"🔥 Ваш аукцион <b>{auction_title}</b> (#{auction_id}) выбран горячим аукционом!"
        await self._send(recipient, text)

    async def notify_auction_ended(
        self,
        recipient: Recipient,
        auction_title: str,
        final_price: Optional[int],
        auction_id: int
    ) -> None:
        if final_price is None:
            text = f"Аукцион <b>{auction_title}</b> (#{auction_id}) завершен. Ставок не было."
        else:
            text = (
                f"Аукцион <b>{auction_title}</b> (#{auction_id}) завершен.\n"
                f"Итоговая цена: <b>{final_price:,} вон</b>"
            )
        await self._send(recipient, text)


class NotificationDispatcher:
    """Отправка уведомлений в фоне, fire-and-forget"""

    def __init__(self, notifier: Notifier):
        self.notifier = notifier
        self._tasks: set[asyncio.Task] = set()

    def _fire(self, description: str, coro: Awaitable[None]) -> asyncio.Task:
        task = asyncio.create_task(self._run(description, coro))
        # Держим ссылку, иначе задачу может собрать GC
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, description: str, coro: Awaitable[None]) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Ошибка отправки уведомления ({description}): {e!r}")

    def notify_win(self, recipient: Recipient, auction_title: str, amount: int, auction_id: int) -> asyncio.Task:
        return self._fire(
            f"победа, аукцион {auction_id}",
            self.notifier.notify_win(recipient, auction_title, amount, auction_id)
        )

    def notify_approval(self, recipient: Recipient, auction_title: str, auction_id: int) -> asyncio.Task:
        return self._fire(
            f"одобрение, аукцион {auction_id}",
            self.notifier.notify_approval(recipient, auction_title, auction_id)
        )

    def notify_hot(self, recipient: Recipient, auction_title: str, auction_id: int) -> asyncio.Task:
        return self._fire(
            f"горячий, аукцион {auction_id}",
            self.notifier.notify_hot(recipient, auction_title, auction_id)
        )

    def notify_auction_ended(
        self,
        recipient: Recipient,
        auction_title: str,
        final_price: Optional[int],
        auction_id: int
    ) -> asyncio.Task:
        return self._fire(
            f"завершение, аукцион {auction_id}",
            self.notifier.notify_auction_ended(recipient, auction_title, final_price, auction_id)
        )

    async def drain(self) -> None:
        """Дождаться отправки всех уведомлений"""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
