import logging
from typing import List, Optional

import discord
from discord.ext import commands

from core.errors import DeliveryError
from core.retry import retry_async

log = logging.getLogger(__name__)

DISCORD_MESSAGE_LIMIT = 2000


def split_message(text: str, limit: int = DISCORD_MESSAGE_LIMIT) -> List[str]:
    """Split text into chunks of at most ``limit`` chars, preferring line breaks."""
    chunks: List[str] = []
    remaining = text
    while len(remaining) > limit:
        cut = remaining.rfind("\n", 0, limit + 1)
        if cut <= 0:
            cut = remaining.rfind(" ", 0, limit + 1)
        if cut <= 0:
            cut = limit
        chunks.append(remaining[:cut])
        remaining = remaining[cut:].lstrip("\n ")
    if remaining:
        chunks.append(remaining)
    return chunks


def should_bot_reply(message: discord.Message, bot_user: Optional[discord.User]) -> bool:
    """Only direct messages from other users reach the assistant."""

    if message.guild is not None:
        return False
    if not message.content or not message.content.strip():
        return False
    if message.author.bot:
        return False
    if bot_user is not None and message.author.id == bot_user.id:
        return False
    return True


class DiscordTransport(commands.Bot):
    def __init__(self, assistant, *, retry_attempts: int = 3, retry_base_delay: float = 1.0):
        intents = discord.Intents.default()
        intents.message_content = True
        intents.dm_messages = True
        # "/" is left to the assistant's own command dispatcher
        super().__init__(command_prefix="!", intents=intents, help_command=None)
        self.assistant = assistant
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay

    async def on_ready(self):
        log.info("Discord bot ready as %s", self.user)

    async def on_message(self, message: discord.Message):
        if not should_bot_reply(message, self.user):
            return
        result = await self.assistant.handle_message(
            "discord", str(message.author.id), message.content
        )
        if not result:
            return
        try:
            await self._send(message.channel, result)
        except DeliveryError as exc:
            log.error("Failed to deliver reply to discord:%s: %s", message.author.id, exc)

    async def _send(self, channel: discord.abc.Messageable, text: str) -> None:
        for chunk in split_message(text):
            await self._send_chunk(channel, chunk)

    async def _send_chunk(self, channel: discord.abc.Messageable, chunk: str) -> None:
        async def _attempt():
            try:
                await channel.send(chunk)
            except discord.HTTPException as exc:
                raise DeliveryError(str(exc)) from exc

        await retry_async(
            _attempt,
            attempts=self.retry_attempts,
            base_delay=self.retry_base_delay,
            retry_on=(DeliveryError,),
            label="discord reply",
        )


async def run_discord_bot(assistant, token: str, *, retry_attempts: int = 3, retry_base_delay: float = 1.0):
    bot = DiscordTransport(assistant, retry_attempts=retry_attempts, retry_base_delay=retry_base_delay)
    try:
        await bot.start(token)
    finally:
        await bot.close()
