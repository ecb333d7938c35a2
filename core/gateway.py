import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from openai import AsyncAzureOpenAI, AsyncOpenAI

from .errors import UpstreamError
from .intents import AffirmationRequest, ExerciseRequest, Intent, MoodReport
from .persona import PersonaConfig
from .store import Turn

log = logging.getLogger(__name__)


def tag_prompt(text: str, intent: Optional[Intent]) -> str:
    """Annotate the outbound prompt so the model sees the structured fact."""
    if isinstance(intent, MoodReport):
        return (
            f"[MOOD TRACKING] User reported mood score: {intent.score}/10. "
            f'Original message: "{text}"'
        )
    if isinstance(intent, ExerciseRequest):
        return f"[COPING EXERCISE REQUEST] {text}"
    if isinstance(intent, AffirmationRequest):
        return f"[AFFIRMATION REQUEST] {text}"
    return text


def build_client(settings) -> Any:
    if settings.uses_azure:
        return AsyncAzureOpenAI(
            api_key=settings.azure_api_key,
            azure_endpoint=settings.azure_endpoint,
            azure_deployment=settings.azure_deployment,
            api_version=settings.azure_api_version,
        )
    return AsyncOpenAI(api_key=settings.openai_api_key)


class CompletionGateway:
    """Single hosted-model call. Retries belong to the caller."""

    def __init__(
        self,
        client: Any,
        *,
        model: str,
        persona: Optional[PersonaConfig] = None,
        temperature: float = 0.7,
        max_tokens: int = 800,
        top_p: float = 0.95,
        frequency_penalty: float = 0.5,
        presence_penalty: float = 0.5,
        timeout: Optional[float] = 30.0,
    ) -> None:
        self.client = client
        self.model = model
        self.persona = persona or PersonaConfig()
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.top_p = top_p
        self.frequency_penalty = frequency_penalty
        self.presence_penalty = presence_penalty
        self.timeout = timeout

    @classmethod
    def from_settings(cls, settings, *, client: Any = None, persona: Optional[PersonaConfig] = None):
        return cls(
            client if client is not None else build_client(settings),
            model=settings.azure_deployment if settings.uses_azure else settings.model,
            persona=persona,
            temperature=settings.temperature,
            max_tokens=settings.max_tokens,
            top_p=settings.top_p,
            frequency_penalty=settings.frequency_penalty,
            presence_penalty=settings.presence_penalty,
            timeout=settings.completion_timeout,
        )

    def build_messages(
        self, prompt: str, history: Sequence[Turn], intent: Optional[Intent] = None
    ) -> List[Dict[str, str]]:
        messages = [{"role": "system", "content": self.persona.get_prompt()}]
        messages.extend(turn.to_message() for turn in history)
        messages.append({"role": "user", "content": tag_prompt(prompt, intent)})
        return messages

    async def complete(
        self, prompt: str, history: Sequence[Turn], intent: Optional[Intent] = None
    ) -> str:
        messages = self.build_messages(prompt, history, intent)
        try:
            request = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                top_p=self.top_p,
                frequency_penalty=self.frequency_penalty,
                presence_penalty=self.presence_penalty,
            )
            if self.timeout:
                response = await asyncio.wait_for(request, timeout=self.timeout)
            else:
                response = await request
        except asyncio.CancelledError:
            raise
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"completion timed out after {self.timeout}s") from exc
        except Exception as exc:
            raise UpstreamError(f"completion request failed: {exc}") from exc
        choices = getattr(response, "choices", None)
        if not choices:
            raise UpstreamError("completion returned no choices")
        try:
            content = choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise UpstreamError(f"completion returned a malformed choice: {exc}") from exc
        if not isinstance(content, str) or not content.strip():
            raise UpstreamError("completion returned empty content")
        return content.strip()

    async def close(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
