# src/codable_bff/events.py

import inspect
import typing

AUTH_STATE_CHANGE = "auth_state_change"
AI_PROVIDER_CHANGED = "ai_provider_changed"
THEME_CHANGED = "theme_changed"

Callback = typing.Callable[..., typing.Any]


class EventBus:
    """
    In-process publish/subscribe channel for one browser. Replaces the
    storage-event trick: publishers notify same-browser listeners explicitly.
    """

    def __init__(self):
        self._subscribers: typing.Dict[str, typing.List[Callback]] = {}

    def subscribe(self, topic: str, callback: Callback) -> typing.Callable[[], None]:
        self._subscribers.setdefault(topic, []).append(callback)

        def unsubscribe():
            callbacks = self._subscribers.get(topic, [])
            if callback in callbacks:
                callbacks.remove(callback)

        return unsubscribe

    def subscriber_count(self, topic: str) -> int:
        return len(self._subscribers.get(topic, []))

    async def publish(self, topic: str, *payload: typing.Any) -> None:
        # Snapshot so callbacks may unsubscribe while being notified
        for callback in list(self._subscribers.get(topic, [])):
            try:
                result = callback(*payload)
                if inspect.isawaitable(result):
                    await result
            except Exception as e:
                print(f"EVENTS: Subscriber {getattr(callback, '__name__', callback)} failed on '{topic}': {e}")
