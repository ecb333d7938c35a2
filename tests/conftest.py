from __future__ import annotations

import sys
from pathlib import Path
from types import SimpleNamespace

import pytest


PROJECT_ROOT = Path(__file__).resolve().parents[1]
if str(PROJECT_ROOT) not in sys.path:
    sys.path.insert(0, str(PROJECT_ROOT))

from core.assistant import Assistant  # noqa: E402
from core.gateway import CompletionGateway  # noqa: E402
from core.persona import PersonaConfig  # noqa: E402


def completion(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


class FakeCompletions:
    """Stands in for ``client.chat.completions``; replays queued outcomes."""

    def __init__(self, outcomes=None) -> None:
        self.outcomes = list(outcomes or [])
        self.calls: list[dict] = []

    async def create(self, **kwargs):
        self.calls.append(kwargs)
        outcome = self.outcomes.pop(0) if self.outcomes else "ok"
        if isinstance(outcome, BaseException):
            raise outcome
        if isinstance(outcome, str):
            return completion(outcome)
        return outcome


class FakeClient:
    def __init__(self, outcomes=None) -> None:
        self.completions = FakeCompletions(outcomes)
        self.chat = SimpleNamespace(completions=self.completions)
        self.closed = False

    async def close(self) -> None:
        self.closed = True


class SleepRecorder:
    def __init__(self) -> None:
        self.delays: list[float] = []

    async def __call__(self, delay: float) -> None:
        self.delays.append(delay)


@pytest.fixture
def persona(tmp_path: Path) -> PersonaConfig:
    path = tmp_path / "persona.yaml"
    path.write_text("identity:\n  - You are a test coach.\n", encoding="utf-8")
    return PersonaConfig(default_path=path)


@pytest.fixture
def make_assistant(persona: PersonaConfig):
    def _build(outcomes=None, **kwargs):
        client = FakeClient(outcomes)
        gateway = CompletionGateway(client, model="test-model", persona=persona, timeout=None)
        sleep = SleepRecorder()
        kwargs.setdefault("sleep", sleep)
        kwargs.setdefault("rng", lambda low, high: high)
        kwargs.setdefault("clock", lambda: 1_700_000_000.0)
        assistant = Assistant(gateway, **kwargs)
        return assistant, client, sleep

    return _build
