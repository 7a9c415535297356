"""
Telegram alerts for clinic staff about online requests
"""
import logging
import os
from typing import List, Optional

from telegram import Bot
from telegram.error import TelegramError

from . import config

logger = logging.getLogger(__name__)


class TelegramNotifier:
    """Sends HTML-formatted messages to the configured staff chats"""

    def __init__(self, bot_token: Optional[str] = None, chat_ids: Optional[List[int]] = None):
        self.bot_token = bot_token if bot_token is not None else os.getenv("TELEGRAM_BOT_TOKEN")
        self.admin_chat_ids = chat_ids if chat_ids is not None else self._parse_chat_ids()
        self.bot = None

        if self.bot_token:
            try:
                self.bot = Bot(token=self.bot_token)
                logger.info("Telegram bot initialised")
            except TelegramError as e:
                logger.error("Telegram bot initialisation failed: %s", e)
        else:
            logger.warning("TELEGRAM_BOT_TOKEN is not set, staff alerts are disabled")

    @staticmethod
    def _parse_chat_ids() -> List[int]:
        chat_ids_str = os.getenv("TELEGRAM_ADMIN_CHAT_IDS", "")
        return [int(chat_id.strip()) for chat_id in chat_ids_str.split(",") if chat_id.strip()]

    async def _broadcast(self, message: str) -> bool:
        if not self.bot or not self.admin_chat_ids:
            return False

        success_count = 0
        for chat_id in self.admin_chat_ids:
            try:
                await self.bot.send_message(chat_id=chat_id, text=message, parse_mode="HTML")
                success_count += 1
            except TelegramError as e:
                logger.error("Telegram message to %s failed: %s", chat_id, e)
        return success_count > 0

    async def send_new_request_notification(
        self,
        patient_name: str,
        service: str,
        booking_date: str,
        booking_time: str,
        status: str,
        request_id: int,
    ) -> bool:
        message = f"""
🦷 <b>New online request</b>

📅 <b>Date:</b> {booking_date}
🕐 <b>Time:</b> {booking_time}
💼 <b>Service:</b> {service}

👤 <b>Patient:</b> {patient_name}
📌 <b>Status:</b> {status}

🆔 Request #{request_id}

<b>{config.CLINIC_NAME}</b>
"""
        return await self._broadcast(message)

    async def send_cancelled_notification(
        self,
        patient_name: str,
        booking_date: str,
        booking_time: str,
        request_id: int,
    ) -> bool:
        message = f"""
❌ <b>Online request cancelled</b>

📅 <b>Date:</b> {booking_date}
🕐 <b>Time:</b> {booking_time}

👤 <b>Patient:</b> {patient_name}

🆔 Request #{request_id}

<b>{config.CLINIC_NAME}</b>
"""
        return await self._broadcast(message)

    async def send_test_message(self) -> bool:
        return await self._broadcast(f"✅ Test message from <b>{config.CLINIC_NAME}</b>")


telegram_notifier = TelegramNotifier()
