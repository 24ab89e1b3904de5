# src/codable_bff/ai_switch.py

import enum
import typing

from .events import EventBus, AI_PROVIDER_CHANGED
from .local_storage import LocalStorage, AI_PROVIDER_KEY


class ProviderId(str, enum.Enum):
    GEMINI = "gemini"
    COPILOTKIT = "copilotkit"


class AIProviderSwitch:
    """
    Which AI backend this browser uses. Read from storage on every call so a
    switch takes effect on the next request without rebuilding anything.
    """

    def __init__(self, storage: LocalStorage, bus: EventBus,
                 default: ProviderId = ProviderId.GEMINI,
                 allowed: typing.Optional[typing.Iterable[ProviderId]] = None):
        self.storage = storage
        self.bus = bus
        self.default = default
        self.allowed = tuple(allowed) if allowed else tuple(ProviderId)

    def get_provider(self) -> ProviderId:
        saved = self.storage.get_item(AI_PROVIDER_KEY)
        try:
            provider = ProviderId(saved)
        except ValueError:
            return self.default
        return provider if provider in self.allowed else self.default

    async def set_provider(self, provider: typing.Union[ProviderId, str]) -> ProviderId:
        try:
            provider = ProviderId(provider)
        except ValueError:
            raise ValueError(f"Unknown AI provider '{provider}'")
        if provider not in self.allowed:
            raise ValueError(f"AI provider '{provider.value}' is not enabled")
        self.storage.set_item(AI_PROVIDER_KEY, provider.value)
        print(f"AI_SWITCH: Provider set to {provider.value}")
        await self.bus.publish(AI_PROVIDER_CHANGED, provider)
        return provider
