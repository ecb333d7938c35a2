import logging
from pathlib import Path
from typing import Dict, List, Optional

import yaml

log = logging.getLogger(__name__)

DEFAULT_PERSONA_PATH = Path(__file__).with_name("persona_config.yaml")
SECTION_ORDER = ("identity", "guidelines", "cbt", "daily_support", "format", "safety")
FALLBACK_PROMPT = (
    "You are a compassionate and supportive mental health coach named MindfulHelper. "
    "Be empathetic, warm, and non-judgmental. Keep responses concise and easy to read on mobile. "
    "If a user expresses thoughts of self-harm or suicide, encourage them to contact emergency "
    "services or a crisis helpline immediately."
)


class PersonaConfig:
    """Persona prompt assembled from YAML sections, reloaded when files change."""

    def __init__(
        self,
        *,
        default_path: Path = DEFAULT_PERSONA_PATH,
        override_path: Optional[Path] = None,
    ) -> None:
        self.default_path = default_path
        self.override_path = override_path
        self._cached_prompt = ""
        self._default_mtime: Optional[float] = None
        self._override_mtime: Optional[float] = None
        self._load()

    def _read_config(self, path: Optional[Path]) -> Dict[str, List[str]]:
        if path is None or not path.exists():
            return {}
        try:
            raw = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (OSError, yaml.YAMLError) as exc:
            log.warning("failed to read persona config %s: %s", path, exc)
            return {}
        sections: Dict[str, List[str]] = {}
        if isinstance(raw, dict):
            for key, value in raw.items():
                slug = str(key).strip().lower()
                if isinstance(value, (list, tuple)):
                    lines = [
                        " ".join(str(item or "").split())
                        for item in value
                        if str(item or "").strip()
                    ]
                elif isinstance(value, str):
                    lines = [" ".join(value.split())]
                else:
                    lines = []
                if lines:
                    sections[slug] = lines
        return sections

    def _compose_prompt(self, data: Dict[str, List[str]]) -> str:
        blocks: List[str] = []
        for key in SECTION_ORDER:
            lines = data.get(key)
            if lines:
                blocks.append("\n".join(lines))
        return "\n\n".join(blocks).strip()

    def _load(self) -> None:
        merged = dict(self._read_config(self.default_path))
        for key, lines in self._read_config(self.override_path).items():
            merged[key] = lines
        prompt = self._compose_prompt(merged)
        if prompt != self._cached_prompt:
            if self._cached_prompt:
                log.info("persona prompt reloaded (%s chars)", len(prompt))
            self._cached_prompt = prompt

    @staticmethod
    def _mtime(path: Optional[Path]) -> Optional[float]:
        if path is None:
            return None
        try:
            return path.stat().st_mtime if path.exists() else None
        except OSError:
            return None

    def get_prompt(self) -> str:
        default_mtime = self._mtime(self.default_path)
        override_mtime = self._mtime(self.override_path)
        if default_mtime != self._default_mtime or override_mtime != self._override_mtime:
            self._default_mtime = default_mtime
            self._override_mtime = override_mtime
            self._load()
        return self._cached_prompt or FALLBACK_PROMPT
