# src/codable_bff/config.py

from pathlib import Path
from typing import Any, List, Optional, Union

from dotenv import load_dotenv
from pydantic import AnyHttpUrl, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# .env is at the service root, two levels up from src/codable_bff/
CONFIG_FILE_DIR = Path(__file__).resolve().parent
PROJECT_ROOT_DIR = CONFIG_FILE_DIR.parent.parent
ENV_FILE_PATH = PROJECT_ROOT_DIR / ".env"

KNOWN_AI_PROVIDERS = ("gemini", "copilotkit")

if ENV_FILE_PATH.exists():
    load_dotenv(dotenv_path=ENV_FILE_PATH, override=False)
    print(f"Codable-BFF: Successfully loaded .env file from: {ENV_FILE_PATH}")
else:
    print(
        f"Codable-BFF: Warning: .env file not found at {ENV_FILE_PATH}. Relying on environment variables."
    )


class Settings(BaseSettings):
    # === Hosted auth / database service ===
    SUPABASE_URL: AnyHttpUrl
    SUPABASE_ANON_KEY: str

    # === Public origin, used for email-link redirect targets ===
    SITE_URL: AnyHttpUrl = "http://localhost:8000"

    # === Session Management ===
    SESSION_SECRET_KEY: str
    # Browser state is dropped once its cookie would have expired
    SESSION_MAX_AGE_SECONDS: int = 60 * 60 * 4

    # === Provider A: Gemini ===
    GEMINI_API_KEY: Optional[str] = None
    GEMINI_MODEL: str = "gemini-2.0-flash-exp"
    GEMINI_BASE_URL: AnyHttpUrl = "https://generativelanguage.googleapis.com/v1beta"
    GEMINI_TEMPERATURE: float = 0.7
    GEMINI_MAX_OUTPUT_TOKENS: int = 2048

    # === Provider B: CopilotKit (OpenAI-compatible chat completions) ===
    COPILOTKIT_API_KEY: Optional[str] = None
    COPILOTKIT_BASE_URL: AnyHttpUrl = "https://api.copilotkit.ai/v1"
    COPILOTKIT_MODEL: str = "gpt-4"

    # Allow Pydantic to see this as a comma-separated string from the env,
    # the validator converts it to List[str]
    AI_PROVIDERS: Union[str, List[str]] = "gemini,copilotkit"
    DEFAULT_AI_PROVIDER: str = "gemini"

    # === Auth flow tuning ===
    VERIFY_REDIRECT_DELAY_SECONDS: float = 1.5
    MIN_PASSWORD_LENGTH: int = 6

    # === Outbound HTTP ===
    HTTP_TIMEOUT_SECONDS: float = 30.0

    # === Derived properties ===
    @property
    def AUTH_URL(self) -> str:
        return f"{str(self.SUPABASE_URL).rstrip('/')}/auth/v1"

    @property
    def REST_URL(self) -> str:
        return f"{str(self.SUPABASE_URL).rstrip('/')}/rest/v1"

    @property
    def AUTH_CALLBACK_URL(self) -> str:
        return f"{str(self.SITE_URL).rstrip('/')}/auth/callback"

    model_config = SettingsConfigDict(
        env_file=str(ENV_FILE_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False
    )

    @field_validator("AI_PROVIDERS", mode='before')
    @classmethod
    def parse_comma_separated_providers(cls, v: Any) -> List[str]:
        if isinstance(v, str):
            return [p.strip().lower() for p in v.split(',') if p.strip()]
        if isinstance(v, list):
            return [str(p).strip().lower() for p in v]
        raise TypeError('AI_PROVIDERS: Expected a comma-separated string or a list.')

    @model_validator(mode='after')
    def check_providers(self) -> 'Settings':
        if not self.AI_PROVIDERS:
            raise ValueError("AI_PROVIDERS must name at least one provider.")
        unknown = [p for p in self.AI_PROVIDERS if p not in KNOWN_AI_PROVIDERS]
        if unknown:
            raise ValueError(f"AI_PROVIDERS contains unknown providers: {unknown}")
        self.DEFAULT_AI_PROVIDER = self.DEFAULT_AI_PROVIDER.strip().lower()
        if self.DEFAULT_AI_PROVIDER not in self.AI_PROVIDERS:
            raise ValueError(
                f"DEFAULT_AI_PROVIDER '{self.DEFAULT_AI_PROVIDER}' is not one of AI_PROVIDERS {self.AI_PROVIDERS}."
            )
        return self


try:
    settings = Settings()
    print(f"Codable-BFF: Auth URL: {settings.AUTH_URL}")
    print(f"Codable-BFF: Auth callback URL: {settings.AUTH_CALLBACK_URL}")
    print(f"Codable-BFF: AI providers: {settings.AI_PROVIDERS} (default: {settings.DEFAULT_AI_PROVIDER})")
except Exception as e:
    print(f"Codable-BFF: Error instantiating Settings: {e}")
    import traceback
    traceback.print_exc()
    raise
