# src/codable_bff/ai_providers.py

import typing

import httpx
import openai
from pydantic import BaseModel

from .ai_switch import ProviderId
from .errors import NetworkOrProviderError, ProviderNotConfigured


class ProviderResponse(BaseModel):
    """Normalized reply of any provider, tagged with who produced it."""
    provider_id: ProviderId
    normalized_text: str


def _classify_provider_failure(provider_name: str, message: str) -> str:
    lowered = message.lower()
    if "api_key_invalid" in lowered or "api key" in lowered or "unauthorized" in lowered:
        return f"Invalid {provider_name} API key. Please check your configuration."
    if "quota" in lowered or "limit" in lowered:
        return f"{provider_name} API quota exceeded. Please try again later."
    if "safety" in lowered:
        return "Content was blocked by safety filters. Please try different input."
    if "recitation" in lowered:
        return "Content may contain copyrighted material. Please try with original code."
    return f"{provider_name} request failed: {message}"


def _gemini_error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    if isinstance(error, str) and error:
        return error
    return response.text


class GeminiProvider:
    """Provider A: Google Generative Language REST API."""

    provider_id = ProviderId.GEMINI
    display_name = "Gemini"
    remediation_hint = "Try switching to CopilotKit from the AI provider menu."

    def __init__(
            self,
            api_key: typing.Optional[str],
            model: str,
            base_url: str,
            temperature: float = 0.7,
            max_output_tokens: int = 2048,
            timeout: float = 30.0,
            http_client: typing.Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.base_url = base_url.rstrip("/")
        self.generation_config = {
            "temperature": temperature,
            "topP": 0.8,
            "topK": 40,
            "maxOutputTokens": max_output_tokens,
        }
        self._client = http_client or httpx.AsyncClient(timeout=timeout)

    def is_available(self) -> bool:
        return bool(self.api_key)

    async def aclose(self):
        await self._client.aclose()

    async def generate(self, prompt: str, system: typing.Optional[str] = None) -> ProviderResponse:
        if not self.is_available():
            raise ProviderNotConfigured(
                "Gemini API not configured. Please set GEMINI_API_KEY.", detail="missing GEMINI_API_KEY"
            )

        url = f"{self.base_url}/models/{self.model}:generateContent"
        body: typing.Dict[str, typing.Any] = {
            "contents": [{"role": "user", "parts": [{"text": prompt}]}],
            "generationConfig": self.generation_config,
        }
        if system:
            body["systemInstruction"] = {"parts": [{"text": system}]}

        try:
            print(f"AI: Calling Gemini model {self.model} (prompt: {len(prompt)} chars)")
            response = await self._client.post(url, params={"key": self.api_key}, json=body)
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            message = _gemini_error_message(e.response)
            print(f"AI: Gemini HTTP error: {e.response.status_code} - {message}")
            raise NetworkOrProviderError(_classify_provider_failure(self.display_name, message), detail=message)
        except httpx.RequestError as e:
            print(f"AI: Gemini request error: {str(e)}")
            raise NetworkOrProviderError("Could not reach Gemini. Please check your connection.", detail=str(e))

        block_reason = (data.get("promptFeedback") or {}).get("blockReason")
        if block_reason:
            raise NetworkOrProviderError(_classify_provider_failure(self.display_name, block_reason),
                                         detail=block_reason)

        candidates = data.get("candidates") or []
        parts = ((candidates[0].get("content") or {}).get("parts") or []) if candidates else []
        text = "".join(part.get("text", "") for part in parts).strip()
        if not text:
            finish_reason = candidates[0].get("finishReason", "") if candidates else ""
            raise NetworkOrProviderError(
                _classify_provider_failure(self.display_name, f"Empty response from Gemini AI {finish_reason}".strip()),
                detail=finish_reason or "empty",
            )
        return ProviderResponse(provider_id=self.provider_id, normalized_text=text)


class CopilotKitProvider:
    """Provider B: OpenAI-compatible chat completions endpoint."""

    provider_id = ProviderId.COPILOTKIT
    display_name = "CopilotKit"
    remediation_hint = "Try switching to Gemini from the AI provider menu."

    def __init__(
            self,
            api_key: typing.Optional[str],
            model: str,
            base_url: str,
            max_tokens: int = 1500,
            temperature: float = 0.7,
            timeout: float = 30.0,
            http_client: typing.Optional[httpx.AsyncClient] = None,
    ):
        self.api_key = api_key
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.client = None
        if api_key:
            self.client = openai.AsyncOpenAI(
                api_key=api_key,
                base_url=base_url,
                timeout=timeout,
                max_retries=0,
                http_client=http_client,
            )

    def is_available(self) -> bool:
        return self.client is not None

    async def aclose(self):
        if self.client is not None:
            await self.client.close()

    async def generate(self, prompt: str, system: typing.Optional[str] = None) -> ProviderResponse:
        if not self.is_available():
            raise ProviderNotConfigured(
                "CopilotKit API not configured. Please set COPILOTKIT_API_KEY.", detail="missing COPILOTKIT_API_KEY"
            )

        messages = [{
            "role": "system",
            "content": system or "You are a helpful coding assistant. Provide clear, concise answers about "
                                 "programming concepts, code explanations, debugging help, and best practices.",
        }, {"role": "user", "content": prompt}]

        try:
            print(f"AI: Calling CopilotKit model {self.model} (prompt: {len(prompt)} chars)")
            completion = await self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except openai.APIStatusError as e:
            print(f"AI: CopilotKit API error: {e.status_code} - {e.message}")
            raise NetworkOrProviderError(_classify_provider_failure(self.display_name, e.message), detail=e.message)
        except openai.APIConnectionError as e:
            print(f"AI: CopilotKit connection error: {str(e)}")
            raise NetworkOrProviderError("Could not reach CopilotKit. Please check your connection.", detail=str(e))
        except openai.APIError as e:
            print(f"AI: CopilotKit error: {str(e)}")
            raise NetworkOrProviderError(_classify_provider_failure(self.display_name, str(e)), detail=str(e))

        text = ""
        if completion.choices:
            text = (completion.choices[0].message.content or "").strip()
        if not text:
            raise NetworkOrProviderError("No response generated by CopilotKit.", detail="empty")
        return ProviderResponse(provider_id=self.provider_id, normalized_text=text)


AIProvider = typing.Union[GeminiProvider, CopilotKitProvider]


class ProviderRegistry:
    """Capability-keyed lookup: one call site, interchangeable backends."""

    def __init__(self, providers: typing.Iterable[AIProvider]):
        self._providers: typing.Dict[ProviderId, AIProvider] = {p.provider_id: p for p in providers}

    def get(self, provider_id: ProviderId) -> AIProvider:
        provider = self._providers.get(provider_id)
        if provider is None:
            raise ProviderNotConfigured(f"AI provider '{provider_id.value}' is not enabled.")
        return provider

    def available(self) -> typing.Dict[str, bool]:
        return {pid.value: provider.is_available() for pid, provider in self._providers.items()}

    async def aclose(self):
        for provider in self._providers.values():
            await provider.aclose()
