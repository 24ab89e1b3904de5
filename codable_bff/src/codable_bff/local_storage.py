# src/codable_bff/local_storage.py

import json
import typing

AI_PROVIDER_KEY = "ai_provider"
THEME_KEY = "theme"
PENDING_SIGNUP_KEY = "pending_signup"


class LocalStorage:
    """
    Per-browser string key/value store, the server-side counterpart of the
    browser's localStorage. Values are always strings; JSON helpers wrap them.
    Writes are last-writer-wins.
    """

    def __init__(self, initial: typing.Optional[typing.Dict[str, str]] = None):
        self._items: typing.Dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> typing.Optional[str]:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def get_json(self, key: str) -> typing.Any:
        raw = self._items.get(key)
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except ValueError:
            print(f"LOCAL_STORAGE: Discarding unreadable value under key '{key}'")
            self._items.pop(key, None)
            return None

    def set_json(self, key: str, value: typing.Any) -> None:
        self._items[key] = json.dumps(value)

    def keys(self) -> typing.List[str]:
        return list(self._items.keys())

    def clear(self) -> None:
        self._items.clear()
