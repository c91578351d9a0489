"""Configuration for the OpenAPI tool chat service."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="", case_sensitive=False)

    service_name: str = Field(default="openapi-tool-chat")

    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8000)
    log_level: str = Field(default="INFO")

    openai_api_key: str = Field(default="")
    openai_organization_id: Optional[str] = Field(default=None)
    anthropic_api_key: str = Field(default="")
    google_gemini_api_key: str = Field(default="")
    mistral_api_key: str = Field(default="")
    groq_api_key: str = Field(default="")
    perplexity_api_key: str = Field(default="")
    openrouter_api_key: str = Field(default="")
    serpapi_api_key: str = Field(default="")
    hugging_face_api_key: str = Field(default="")

    tool_request_timeout_seconds: float = Field(default=30)
    model_timeout_seconds: float = Field(default=60)
    ref_fetch_timeout_seconds: float = Field(default=30)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
