import asyncio
import logging
import random
import time
from collections import defaultdict
from pathlib import Path
from typing import Awaitable, Callable, Dict, Optional

from .commands import CommandDispatcher, DEFAULT_MOOD_LIMIT
from .errors import UpstreamError
from .gateway import CompletionGateway
from .intents import Intent, MoodReport, SlashCommand, classify, intent_label
from .persona import PersonaConfig
from .retry import DEFAULT_ATTEMPTS, DEFAULT_BASE_DELAY, retry_async
from .store import HistoryStore, ProfileStore

log = logging.getLogger(__name__)

APOLOGY_TEXT = "I'm sorry, I'm having trouble processing your message right now. Please try again later."


class Assistant:
    """Conversation engine: the one entry point transports talk to."""

    def __init__(
        self,
        gateway: CompletionGateway,
        *,
        profiles: Optional[ProfileStore] = None,
        history: Optional[HistoryStore] = None,
        retry_attempts: int = DEFAULT_ATTEMPTS,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        mood_limit: int = DEFAULT_MOOD_LIMIT,
        admin_contact: str = "support@example.com",
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        rng: Callable[[float, float], float] = random.uniform,
        clock: Callable[[], float] = time.time,
    ):
        self.gateway = gateway
        self.profiles = profiles or ProfileStore()
        self.history = history or HistoryStore(self.profiles)
        self.retry_attempts = retry_attempts
        self.retry_base_delay = retry_base_delay
        self._sleep = sleep
        self._rng = rng
        self._clock = clock
        self._locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self.commands = CommandDispatcher(
            self.profiles,
            self.history,
            self._converse,
            mood_limit=mood_limit,
            admin_contact=admin_contact,
        )

    @classmethod
    def from_settings(cls, settings, *, client=None) -> "Assistant":
        override = Path(settings.mem_dir) / "persona.yaml"
        gateway = CompletionGateway.from_settings(
            settings, client=client, persona=PersonaConfig(override_path=override)
        )
        return cls(
            gateway,
            retry_attempts=settings.retry_attempts,
            retry_base_delay=settings.retry_base_delay,
            mood_limit=settings.mood_history_limit,
            admin_contact=settings.admin_contact,
        )

    async def close(self) -> None:
        await self.gateway.close()

    async def handle_message(self, platform: str, user_id: str, message: str) -> str:
        return await self.handle(f"{platform}:{user_id}", message)

    async def handle(self, user_id: str, text: str) -> str:
        if not text or not text.strip():
            return ""
        async with self._locks[user_id]:
            self.profiles.touch(user_id, self._clock())
            intent = classify(text)
            log.info("message from %s tagged %s", user_id, intent_label(intent))
            if isinstance(intent, SlashCommand):
                return await self.commands.dispatch(user_id, intent.name, text)
            is_premium = self.profiles.is_premium(user_id)
            log.debug("%s premium=%s", user_id, is_premium)
            if isinstance(intent, MoodReport):
                self.profiles.append_mood(user_id, intent.score, self._clock())
            return await self._converse(user_id, text, text, intent, intent_label(intent))

    def set_premium_status(self, user_id: str, is_premium: bool) -> None:
        self.profiles.set_premium(user_id, is_premium)
        log.info("premium status for %s set to %s", user_id, bool(is_premium))

    async def _converse(
        self,
        user_id: str,
        prompt: str,
        stored_text: str,
        intent: Optional[Intent],
        label: str,
    ) -> str:
        history = self.history.get(user_id)
        attempts = 0

        async def _attempt() -> str:
            nonlocal attempts
            attempts += 1
            return await self.gateway.complete(prompt, history, intent)

        try:
            reply = await retry_async(
                _attempt,
                attempts=self.retry_attempts,
                base_delay=self.retry_base_delay,
                retry_on=(UpstreamError,),
                label=f"completion for {user_id} ({label})",
                sleep=self._sleep,
                rng=self._rng,
            )
        except UpstreamError as exc:
            log.error(
                "completion failed for %s (%s) after %s attempts: %s",
                user_id,
                label,
                attempts,
                exc,
            )
            return APOLOGY_TEXT
        self.history.append(user_id, stored_text, reply)
        return reply
