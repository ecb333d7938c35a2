import logging
import os
from dataclasses import dataclass
from typing import Optional

from dotenv import load_dotenv

log = logging.getLogger(__name__)


def _env_str(name: str, default: Optional[str] = None) -> Optional[str]:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip()
    return value if value else default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return int(raw.strip())
    except ValueError:
        log.warning("ignoring non-integer %s=%r", name, raw)
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        return float(raw.strip())
    except ValueError:
        log.warning("ignoring non-numeric %s=%r", name, raw)
        return default


@dataclass
class Settings:
    openai_api_key: Optional[str] = None
    model: str = "gpt-4o-mini"
    azure_endpoint: Optional[str] = None
    azure_api_key: Optional[str] = None
    azure_deployment: Optional[str] = None
    azure_api_version: str = "2023-12-01-preview"

    temperature: float = 0.7
    max_tokens: int = 800
    top_p: float = 0.95
    frequency_penalty: float = 0.5
    presence_penalty: float = 0.5
    completion_timeout: float = 30.0

    retry_attempts: int = 3
    retry_base_delay: float = 1.0
    mood_history_limit: int = 10
    admin_contact: str = "support@example.com"

    admin_api_key: Optional[str] = None
    host: str = "localhost"
    port: int = 3000
    outbound_webhook_url: Optional[str] = None
    webhook_enabled: bool = True

    telegram_token: Optional[str] = None
    discord_token: Optional[str] = None
    mem_dir: str = "mem"
    log_level: str = "INFO"

    @property
    def uses_azure(self) -> bool:
        return bool(self.azure_endpoint)

    def validate(self) -> None:
        if self.uses_azure:
            missing = [
                name
                for name, value in (
                    ("AZURE_OPENAI_API_KEY", self.azure_api_key),
                    ("AZURE_OPENAI_DEPLOYMENT_NAME", self.azure_deployment),
                )
                if not value
            ]
        else:
            missing = [] if self.openai_api_key else ["OPENAI_API_KEY"]
        if missing:
            raise SystemExit(f"Missing required environment variables: {', '.join(missing)}")
        if not (self.webhook_enabled or self.telegram_token or self.discord_token):
            raise SystemExit("No transport enabled.")


def load_settings(env_file: Optional[str] = None) -> Settings:
    load_dotenv(env_file)
    return Settings(
        openai_api_key=_env_str("OPENAI_API_KEY"),
        model=_env_str("MODEL", "gpt-4o-mini"),
        azure_endpoint=_env_str("AZURE_OPENAI_ENDPOINT"),
        azure_api_key=_env_str("AZURE_OPENAI_API_KEY"),
        azure_deployment=_env_str("AZURE_OPENAI_DEPLOYMENT_NAME"),
        azure_api_version=_env_str("AZURE_OPENAI_API_VERSION", "2023-12-01-preview"),
        temperature=_env_float("TEMPERATURE", 0.7),
        max_tokens=_env_int("MAX_TOKENS", 800),
        top_p=_env_float("TOP_P", 0.95),
        frequency_penalty=_env_float("FREQUENCY_PENALTY", 0.5),
        presence_penalty=_env_float("PRESENCE_PENALTY", 0.5),
        completion_timeout=_env_float("COMPLETION_TIMEOUT_SECONDS", 30.0),
        retry_attempts=_env_int("RETRY_ATTEMPTS", 3),
        retry_base_delay=_env_float("RETRY_BASE_DELAY", 1.0),
        mood_history_limit=_env_int("MOOD_HISTORY_LIMIT", 10),
        admin_contact=_env_str("ADMIN_CONTACT", "support@example.com"),
        admin_api_key=_env_str("ADMIN_API_KEY"),
        host=_env_str("HOST", "localhost"),
        port=_env_int("PORT", 3000),
        outbound_webhook_url=_env_str("OUTBOUND_WEBHOOK_URL"),
        webhook_enabled=(_env_str("WEBHOOK_ENABLED", "1") or "1").lower() in {"1", "true", "yes", "on"},
        telegram_token=_env_str("TELEGRAM_TOKEN"),
        discord_token=_env_str("DISCORD_TOKEN"),
        mem_dir=_env_str("MEM_DIR", "mem"),
        log_level=(_env_str("LOG_LEVEL", "INFO") or "INFO").upper(),
    )
