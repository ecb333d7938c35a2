import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

log = logging.getLogger(__name__)

FREE_HISTORY_PAIRS = 10
PREMIUM_HISTORY_PAIRS = 50


@dataclass
class MoodEntry:
    score: int
    observed_at: float


@dataclass
class UserProfile:
    user_id: str
    is_premium: bool = False
    mood_log: List[MoodEntry] = field(default_factory=list)
    last_activity: float = field(default_factory=time.time)


@dataclass
class Turn:
    role: str
    content: str

    def to_message(self) -> dict:
        return {"role": self.role, "content": self.content}


def history_capacity(is_premium: bool) -> int:
    return PREMIUM_HISTORY_PAIRS if is_premium else FREE_HISTORY_PAIRS


class ProfileStore:
    """In-process user profiles. Reads of unknown ids return defaults."""

    def __init__(self) -> None:
        self._profiles: Dict[str, UserProfile] = {}

    def get(self, user_id: str) -> Optional[UserProfile]:
        return self._profiles.get(user_id)

    def get_or_create(self, user_id: str) -> UserProfile:
        profile = self._profiles.get(user_id)
        if profile is None:
            profile = UserProfile(user_id=user_id)
            self._profiles[user_id] = profile
            log.info("created profile for %s", user_id)
        return profile

    def touch(self, user_id: str, now: Optional[float] = None) -> UserProfile:
        profile = self.get_or_create(user_id)
        profile.last_activity = time.time() if now is None else now
        return profile

    def set_premium(self, user_id: str, is_premium: bool) -> None:
        self.get_or_create(user_id).is_premium = bool(is_premium)

    def is_premium(self, user_id: str) -> bool:
        profile = self._profiles.get(user_id)
        return profile.is_premium if profile else False

    def append_mood(self, user_id: str, score: int, now: Optional[float] = None) -> MoodEntry:
        entry = MoodEntry(score=int(score), observed_at=time.time() if now is None else now)
        # the mood log is never trimmed
        self.get_or_create(user_id).mood_log.append(entry)
        return entry

    def get_mood_log(self, user_id: str) -> List[MoodEntry]:
        profile = self._profiles.get(user_id)
        return list(profile.mood_log) if profile else []


class HistoryStore:
    """Rolling per-user turn history bounded by the user's current tier."""

    def __init__(self, profiles: ProfileStore) -> None:
        self.profiles = profiles
        self._history: Dict[str, List[Turn]] = {}

    def capacity(self, user_id: str) -> int:
        return history_capacity(self.profiles.is_premium(user_id))

    def append(self, user_id: str, user_text: str, assistant_text: str) -> None:
        history = self._history.setdefault(user_id, [])
        history.append(Turn("user", user_text))
        history.append(Turn("assistant", assistant_text))
        limit = self.capacity(user_id) * 2
        if len(history) > limit:
            head = [history[0]] if history[0].role == "system" else []
            body = history[len(head):]
            self._history[user_id] = head + body[-limit:]

    def get(self, user_id: str) -> List[Turn]:
        return list(self._history.get(user_id, ()))

    def clear(self, user_id: str) -> None:
        self._history.pop(user_id, None)
