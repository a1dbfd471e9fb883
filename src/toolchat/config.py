"""Configuration settings for the application."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Pydantic settings class for the application."""

    # Define the settings with default values and types
    # These will be loaded from environment variables or a .env file if not provided
    API_PORT: int = 8000
    DEBUG: bool = False
    LOG_LEVEL: str = "info"  # Options: debug, info, warning, error, critical

    # LLM Configuration
    PROVIDER: str = "anthropic"  # Options: anthropic, openai, tgi
    ANTHROPIC_API_KEY: str | None = None
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-latest"
    OPENAI_API_KEY: str | None = None
    OPENAI_MODEL: str = "gpt-4o-mini"
    TGI_ENDPOINT: str = "http://tgi:8080/generate"
    MAX_TOKENS: int = 4000
    TEMPERATURE: float = 0.7
    REQUEST_TIMEOUT: float = 60.0
    SYSTEM_PROMPT: str | None = None  # None -> built-in assistant prompt

    # Tools
    PROJECT_ROOT: str = "."

    # Memory document
    MEMORY_FILE: str = "CLAUDE.md"
    USE_MEMORY: bool = True

    # Forced tool use
    FORCE_TOOL_USE: bool = False
    USE_REAL_API: bool = True

    class Config:
        """Configuration for Pydantic settings."""

        # Load environment variables from a .env file
        env_file = ".env"
        env_file_encoding = "utf-8"


settings = Settings()
