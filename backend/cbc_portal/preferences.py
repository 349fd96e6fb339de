"""Durable local key-value store for small JSON blobs (session, theme, custom curriculum)."""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

from .schemas import Profile, ThemeConfig


SESSION_KEY = "cbc_portal_session"
THEME_KEY = "cbc_portal_theme"
CUSTOM_TOPICS_KEY = "cbc_portal_custom_topics"
CUSTOM_LESSONS_KEY = "cbc_portal_custom_lessons"

DEFAULT_THEME = ThemeConfig(mode="light", primary="#4f46e5", secondary="#6366f1", accent="#10b981")

THEME_PRESETS: List[Dict[str, str]] = [
	{"name": "Indigo Dream", "primary": "#4f46e5", "secondary": "#6366f1", "accent": "#10b981"},
	{"name": "Sunset Orange", "primary": "#f97316", "secondary": "#fb923c", "accent": "#3b82f6"},
	{"name": "Forest Green", "primary": "#059669", "secondary": "#10b981", "accent": "#f59e0b"},
	{"name": "Midnight Berry", "primary": "#7c3aed", "secondary": "#a855f7", "accent": "#ec4899"},
]


class PreferenceStore:
	"""One JSON file per key under ``directory``.

	Writes happen synchronously on every call. A blob that fails to parse is
	not repaired: the decode error propagates to the caller.
	"""

	def __init__(self, directory: Path) -> None:
		self.directory = Path(directory)

	def _path(self, key: str) -> Path:
		return self.directory / f"{key}.json"

	def read(self, key: str) -> Optional[Any]:
		path = self._path(key)
		if not path.exists():
			return None
		return json.loads(path.read_text(encoding="utf-8"))

	def write(self, key: str, value: Any) -> None:
		self.directory.mkdir(parents=True, exist_ok=True)
		self._path(key).write_text(json.dumps(value), encoding="utf-8")

	def remove(self, key: str) -> None:
		self._path(key).unlink(missing_ok=True)

	def get_session(self) -> Optional[Profile]:
		raw = self.read(SESSION_KEY)
		if raw is None:
			return None
		return Profile.model_validate(raw)

	def set_session(self, profile: Optional[Profile]) -> None:
		if profile is None:
			self.remove(SESSION_KEY)
			return
		self.write(SESSION_KEY, profile.model_dump(mode="json"))

	def get_theme(self) -> ThemeConfig:
		raw = self.read(THEME_KEY)
		if raw is None:
			return DEFAULT_THEME.model_copy()
		return ThemeConfig.model_validate(raw)

	def set_theme(self, theme: ThemeConfig) -> None:
		self.write(THEME_KEY, theme.model_dump(mode="json"))


def find_preset(name: str) -> Optional[Dict[str, str]]:
	for preset in THEME_PRESETS:
		if preset["name"].lower() == (name or "").strip().lower():
			return preset
	return None
