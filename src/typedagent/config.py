"""Configuration settings for the application."""

from pydantic_settings import (
    BaseSettings,
    SettingsConfigDict,
)


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical
    AGENT_FILE: str = "agent.json"

    # Completion providers
    OPENAI_API_KEY: str | None = None
    OPENAI_BASE_URL: str | None = None
    ANTHROPIC_API_KEY: str | None = None
    DEEPSEEK_API_KEY: str | None = None
    DEEPSEEK_BASE_URL: str = "https://api.deepseek.com/v1"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    LLM_TIMEOUT_S: float = 60.0

    # Sampling defaults
    DEFAULT_TEMPERATURE: float = 0.7
    DEFAULT_MAX_TOKENS: int = 4000
    SELECTION_TEMPERATURE: float = 0.3  # server/tool selection and parameter generation

    # Tool servers
    TOOL_TIMEOUT_S: float = 30.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
