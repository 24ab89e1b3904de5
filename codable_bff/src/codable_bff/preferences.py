# src/codable_bff/preferences.py

from .events import EventBus, THEME_CHANGED
from .local_storage import LocalStorage, THEME_KEY

THEMES = ("light", "dark", "system")
DEFAULT_THEME = "dark"


class ThemePreference:
    def __init__(self, storage: LocalStorage, bus: EventBus):
        self.storage = storage
        self.bus = bus

    def get_theme(self) -> str:
        saved = self.storage.get_item(THEME_KEY)
        return saved if saved in THEMES else DEFAULT_THEME

    async def set_theme(self, theme: str) -> str:
        if theme not in THEMES:
            raise ValueError(f"Unknown theme '{theme}'. Expected one of {THEMES}.")
        self.storage.set_item(THEME_KEY, theme)
        await self.bus.publish(THEME_CHANGED, theme)
        return theme
