"""Stateless tagging of inbound text."""

import re
from dataclasses import dataclass
from typing import Union

MOOD_PATTERN = re.compile(
    r"^(?:my mood is|i feel|i am feeling|mood)?[:\s]*([1-9]|10)(?:/10)?$",
    re.IGNORECASE,
)

EXERCISE_TRIGGERS = ("coping exercise", "help me cope")
AFFIRMATION_TRIGGERS = ("affirmation", "positive thought")


@dataclass(frozen=True)
class SlashCommand:
    name: str


@dataclass(frozen=True)
class MoodReport:
    score: int


@dataclass(frozen=True)
class ExerciseRequest:
    pass


@dataclass(frozen=True)
class AffirmationRequest:
    pass


@dataclass(frozen=True)
class Freeform:
    pass


Intent = Union[SlashCommand, MoodReport, ExerciseRequest, AffirmationRequest, Freeform]


def parse_mood_score(text: str):
    match = MOOD_PATTERN.match((text or "").strip())
    if not match:
        return None
    return int(match.group(1))


def classify(text: str) -> Intent:
    text = text or ""
    if text.startswith("/"):
        token = text.split(" ", 1)[0]
        return SlashCommand(token[1:].lower())
    score = parse_mood_score(text)
    if score is not None:
        return MoodReport(score)
    lowered = text.lower()
    if any(trigger in lowered for trigger in EXERCISE_TRIGGERS):
        return ExerciseRequest()
    if any(trigger in lowered for trigger in AFFIRMATION_TRIGGERS):
        return AffirmationRequest()
    return Freeform()


def intent_label(intent: Intent) -> str:
    if isinstance(intent, SlashCommand):
        return f"command:{intent.name}"
    if isinstance(intent, MoodReport):
        return f"mood:{intent.score}"
    if isinstance(intent, ExerciseRequest):
        return "exercise"
    if isinstance(intent, AffirmationRequest):
        return "affirmation"
    return "freeform"
