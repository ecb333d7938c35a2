import asyncio
import logging

from telegram import Update
from telegram.constants import ChatType
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    ContextTypes,
    MessageHandler,
    filters,
)

from core.errors import DeliveryError
from core.retry import retry_async

log = logging.getLogger(__name__)


class TelegramTransport:
    def __init__(self, assistant, token: str, *, retry_attempts: int = 3, retry_base_delay: float = 1.0):
        self.assistant = assistant
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self.application = Application.builder().token(token).build()
        self._register_handlers()
        self._stop_event = asyncio.Event()

    def _register_handlers(self):
        # slash commands are routed through the assistant like any other text
        self.application.add_handler(
            MessageHandler(filters.TEXT & filters.ChatType.PRIVATE, self.handle_message)
        )

    async def handle_message(self, update: Update, context: ContextTypes.DEFAULT_TYPE):
        message = update.effective_message
        user = update.effective_user
        chat = update.effective_chat
        if not message or not message.text or not user or user.is_bot or not chat:
            return
        if chat.type != ChatType.PRIVATE:
            return
        result = await self.assistant.handle_message("telegram", str(user.id), message.text)
        if not result:
            return
        try:
            await self._reply(message, result)
        except DeliveryError as exc:
            log.error("Failed to deliver reply to telegram:%s: %s", user.id, exc)

    async def _reply(self, message, text: str) -> None:
        async def _send():
            try:
                await message.reply_text(text)
            except TelegramError as exc:
                raise DeliveryError(str(exc)) from exc

        await retry_async(
            _send,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            retry_on=(DeliveryError,),
            label="telegram reply",
        )

    async def start(self):
        await self.application.initialize()
        await self.application.start()
        await self.application.updater.start_polling()
        log.info("Telegram transport polling")
        try:
            await self._stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            await self.application.updater.stop()
            await self.application.stop()
            await self.application.shutdown()

    async def stop(self):
        self._stop_event.set()
