import logging
from datetime import datetime
from typing import Awaitable, Callable, Dict, List, Optional

from .intents import Intent
from .store import HistoryStore, MoodEntry, ProfileStore

log = logging.getLogger(__name__)

DEFAULT_MOOD_LIMIT = 10

HELP_TEXT = """*Available Commands:*

/help - Show this help message
/upgrade - Get information about premium features
/mood - View your mood history
/clear - Clear your conversation history
/exercise - Get a coping exercise
/affirmation - Get a positive affirmation

You can also type things like:
- "My mood is 7/10" to track your mood
- "I need a coping exercise for anxiety"
- "Give me an affirmation for confidence"
- "I'm feeling stressed, what should I do?\""""

ALREADY_PREMIUM_TEXT = "You're already a premium user! Thank you for your support."

UPGRADE_TEXT = """*Upgrade to Premium Features*

Get more from your mental health coach:
✅ Extended conversation history
✅ Detailed mood tracking and analysis
✅ Additional coping exercises and affirmations
✅ Priority response times

Contact us at {contact} to upgrade!"""

NO_MOOD_TEXT = "You haven't recorded any mood data yet. Try saying 'My mood is 7/10' to start tracking!"
MOOD_UPSELL_TEXT = "_Upgrade to premium to see your complete mood history and detailed analysis!_"
CLEARED_TEXT = "Your conversation history has been cleared. I'm still here if you need to talk!"
UNKNOWN_COMMAND_TEXT = "I don't recognize that command. Type /help to see available commands."

EXERCISE_PROMPT = "[COPING EXERCISE REQUEST] Please provide a coping exercise"
AFFIRMATION_PROMPT = "[AFFIRMATION REQUEST] Please provide a positive affirmation"

# (threshold, emoji) checked highest first; thresholds are inclusive
MOOD_EMOJI = (
    (9, "😄"),
    (7, "🙂"),
    (5, "😐"),
    (3, "😔"),
)
LOWEST_MOOD_EMOJI = "😢"

# converse(user_id, prompt, stored_text, intent, label) -> reply
Converse = Callable[[str, str, str, Optional[Intent], str], Awaitable[str]]


def mood_emoji(score: int) -> str:
    for threshold, emoji in MOOD_EMOJI:
        if score >= threshold:
            return emoji
    return LOWEST_MOOD_EMOJI


def format_mood_line(entry: MoodEntry) -> str:
    day = datetime.fromtimestamp(entry.observed_at).strftime("%Y-%m-%d")
    return f"{day}: {entry.score}/10 {mood_emoji(entry.score)}"


class CommandDispatcher:
    def __init__(
        self,
        profiles: ProfileStore,
        history: HistoryStore,
        converse: Converse,
        *,
        mood_limit: int = DEFAULT_MOOD_LIMIT,
        admin_contact: str = "support@example.com",
    ) -> None:
        self.profiles = profiles
        self.history = history
        self.converse = converse
        self.mood_limit = max(1, int(mood_limit))
        self.admin_contact = admin_contact
        self._handlers: Dict[str, Callable[[str, str], Awaitable[str]]] = {
            "help": self._help,
            "upgrade": self._upgrade,
            "mood": self._mood,
            "clear": self._clear,
            "exercise": self._exercise,
            "affirmation": self._affirmation,
        }

    @property
    def commands(self) -> List[str]:
        return list(self._handlers)

    async def dispatch(self, user_id: str, name: str, raw_text: str) -> str:
        handler = self._handlers.get(name)
        if handler is None:
            log.info("unknown command /%s from %s", name, user_id)
            return UNKNOWN_COMMAND_TEXT
        log.info("command /%s from %s", name, user_id)
        return await handler(user_id, raw_text)

    async def _help(self, user_id: str, raw_text: str) -> str:
        return HELP_TEXT

    async def _upgrade(self, user_id: str, raw_text: str) -> str:
        if self.profiles.is_premium(user_id):
            return ALREADY_PREMIUM_TEXT
        return UPGRADE_TEXT.format(contact=self.admin_contact)

    async def _mood(self, user_id: str, raw_text: str) -> str:
        return self.render_mood_history(user_id)

    def render_mood_history(self, user_id: str) -> str:
        mood_log = self.profiles.get_mood_log(user_id)
        if not mood_log:
            return NO_MOOD_TEXT
        recent = mood_log[-self.mood_limit:]
        average = sum(entry.score for entry in recent) / len(recent)
        lines = ["*Your Mood History*", ""]
        lines.extend(format_mood_line(entry) for entry in recent)
        lines.append("")
        lines.append(f"Average mood: {average:.1f}/10")
        if not self.profiles.is_premium(user_id) and len(mood_log) > len(recent):
            lines.append("")
            lines.append(MOOD_UPSELL_TEXT)
        return "\n".join(lines)

    async def _clear(self, user_id: str, raw_text: str) -> str:
        self.history.clear(user_id)
        return CLEARED_TEXT

    async def _exercise(self, user_id: str, raw_text: str) -> str:
        # the synthesised prompt is already tagged
        return await self.converse(user_id, EXERCISE_PROMPT, raw_text, None, "command:exercise")

    async def _affirmation(self, user_id: str, raw_text: str) -> str:
        return await self.converse(user_id, AFFIRMATION_PROMPT, raw_text, None, "command:affirmation")
