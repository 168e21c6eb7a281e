from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_ignore_empty=True,
        extra="ignore",
    )

    PROJECT_NAME: str = "Creaticon"
    API_V1_STR: str = "/api/v1"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    LOG_LEVEL: str = "INFO"

    # Provider credentials. A provider without a key is left out of the default list.
    OPENROUTER_API_KEY: str = ""
    OPENAI_API_KEY: str = ""
    ANTHROPIC_API_KEY: str = ""
    GEMINI_API_KEY: str = ""
    HUGGINGFACE_API_KEY: str = ""

    OPENROUTER_BASE_URL: str = "https://openrouter.ai/api/v1"
    OPENAI_BASE_URL: str = "https://api.openai.com/v1"

    MODEL_OPENROUTER: str = "deepseek/deepseek-chat-v3-0324:free"
    MODEL_OPENAI: str = "gpt-4o-mini"
    MODEL_ANTHROPIC: str = "claude-3-5-sonnet-latest"
    MODEL_GEMINI: str = "gemini-2.0-flash"
    MODEL_HUGGINGFACE: str = "deepseek-ai/deepseek-coder-6.7b-instruct"

    GENERATION_TEMPERATURE: float = 0.7
    GENERATION_MAX_TOKENS: int = 8000
    ANALYSIS_TEMPERATURE: float = 0.3
    ANALYSIS_MAX_TOKENS: int = 1500

    PROVIDER_TIMEOUT_SECONDS: float = 120.0
    RATE_LIMIT_BACKOFF_SECONDS: float = 3.0

    PIPELINE_MAX_STEP_RETRIES: int = 2

    RENDER_DEBOUNCE_MS: int = 300
    RENDER_MAX_CONCURRENT: int = 3

    ARTIFACT_STORE: Literal["memory", "sql"] = "memory"
    DATABASE_URL: str = "sqlite:///./creaticon.db"


settings = Settings()  # type: ignore
