# deepguard/core/config.py
from functools import lru_cache
from typing import Optional

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    ENV: str = Field(default="development", validation_alias="DG_ENV")

    # Hosted multimodal model
    AI_GATEWAY_API_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("AI_GATEWAY_API_KEY", "LOVABLE_API_KEY"),
    )
    AI_GATEWAY_URL: str = "https://ai.gateway.lovable.dev/v1/chat/completions"
    AI_MODEL: str = "google/gemini-2.5-flash"
    AI_TEMPERATURE: float = 0.3
    REQUEST_TIMEOUT_SECONDS: float = 60.0

    # Frame sampling
    FRAME_SAMPLE_COUNT: int = Field(default=5, ge=1)
    JPEG_QUALITY: int = Field(default=80, ge=1, le=100)
    SEEK_TIMEOUT_SECONDS: float = 10.0

    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    return Settings()
