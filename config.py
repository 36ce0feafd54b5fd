"""
Opinion Analysis - Configuration
"""
from pathlib import Path
from typing import Optional

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Paths
    BASE_DIR: Path = Path(__file__).parent
    DATA_DIR: Path = Field(default_factory=lambda: Path(__file__).parent / "data")
    DATABASE_PATH: Path = Field(default_factory=lambda: Path(__file__).parent / "data" / "opinions.db")
    DATABASE_URL: Optional[str] = Field(default=None, description="Overrides the sqlite URL built from DATABASE_PATH")
    LOG_DIR: Optional[Path] = Field(default_factory=lambda: Path(__file__).parent / "data" / "logs")

    # Logging
    LOG_LEVEL: str = Field(default="INFO")

    # LLM
    LLM_PROVIDER: str = Field(default="openai", description="openai, glm or anthropic")
    LLM_MODEL: str = Field(default="", description="Empty means provider default")
    LLM_VERIFY_SSL: bool = Field(default=True)
    LLM_TIMEOUT_SECONDS: float = Field(default=120.0)
    LLM_MAX_TOKENS: int = Field(default=4096)

    # API Keys
    OPENAI_API_KEY: str = Field(default="", description="OpenAI API key")
    GLM_API_KEY: str = Field(default="", description="Z.AI API key")
    ANTHROPIC_API_KEY: str = Field(default="", description="Claude API key")

    # Analysis defaults
    ANALYSIS_TOKEN_LIMIT: int = Field(default=4000)
    ANALYSIS_MAX_OPINIONS: int = Field(default=15)
    ANALYSIS_STRATEGY: str = Field(default="balanced")
    ANALYSIS_INCLUDE_INSIGHTS: bool = Field(default=True)
    ANALYSIS_STRICT_VALIDATION: bool = Field(default=True)

    # Reliability
    AI_MAX_RETRY_COUNT: int = Field(default=3, ge=1, le=10)
    AI_RETRY_BASE_DELAY_SECONDS: float = Field(default=1.0, ge=0)

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


# Global settings instance
settings = Settings()


def ensure_directories():
    """Ensure all required directories exist."""
    dirs = [settings.DATA_DIR]
    if settings.LOG_DIR:
        dirs.append(settings.LOG_DIR)
    for dir_path in dirs:
        dir_path.mkdir(parents=True, exist_ok=True)
