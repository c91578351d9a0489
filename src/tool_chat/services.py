"""Maps declared OpenAPI server URLs to known backend services."""

from __future__ import annotations

import logging
from typing import Dict, Mapping, Optional

from .config import Settings
from .errors import MissingCredentialError, UnsupportedServiceError
from .models import ServiceConfig

logger = logging.getLogger(__name__)

OPENAI_API_BASE = "https://api.openai.com/v1"
DALLE_ENDPOINT = "https://api.openai.com/v1/images/generations"
OPENAI_SERVICES = frozenset({"OpenAI", "DALL-E", "openai"})

# server url -> (service name, settings attribute holding the key, canonical base)
KNOWN_SERVICES: Dict[str, tuple[str, str, str]] = {
    "https://api.openai.com": ("openai", "openai_api_key", OPENAI_API_BASE),
    "https://api.anthropic.com": ("anthropic", "anthropic_api_key", "https://api.anthropic.com/v1"),
    "https://gemini.googleapis.com": (
        "google_gemini",
        "google_gemini_api_key",
        "https://gemini.googleapis.com/v1",
    ),
    "https://api.mistral.com": ("mistral", "mistral_api_key", "https://api.mistral.com/v1"),
    "https://api.groq.com": ("groq", "groq_api_key", "https://api.groq.com/v1"),
    "https://api.perplexity.ai": ("perplexity", "perplexity_api_key", "https://api.perplexity.ai/v1"),
    "https://api.openrouter.ai": ("openrouter", "openrouter_api_key", "https://api.openrouter.ai/v1"),
    "https://serpapi.com": ("serpapi", "serpapi_api_key", "https://serpapi.com/v1"),
    "https://api.huggingface.co": (
        "huggingface",
        "hugging_face_api_key",
        "https://api.huggingface.co",
    ),
}


class ServiceResolver:
    def __init__(self, services: Mapping[str, ServiceConfig], openai_api_key: str = "") -> None:
        self.services = {url.rstrip("/"): config for url, config in services.items()}
        self.openai_api_key = openai_api_key

    @classmethod
    def from_settings(cls, settings: Settings) -> "ServiceResolver":
        services = {
            url: ServiceConfig(name=name, credential=getattr(settings, key_attr) or "", base_url=base)
            for url, (name, key_attr, base) in KNOWN_SERVICES.items()
        }
        return cls(services, openai_api_key=settings.openai_api_key)

    def resolve(self, server_url: str) -> ServiceConfig:
        if "openai.com" in server_url:
            if "/images/generations" in server_url:
                return ServiceConfig(
                    name="DALL-E", credential=self.openai_api_key, base_url=DALLE_ENDPOINT
                )
            return ServiceConfig(
                name="OpenAI", credential=self.openai_api_key, base_url=OPENAI_API_BASE
            )

        service = self.services.get(server_url.rstrip("/"))
        if not service:
            raise UnsupportedServiceError(f"Unsupported service for server URL: {server_url}")
        logger.debug("Resolved server url=%s to service=%s", server_url, service.name)
        return service

    def get_api_key(self, service: str) -> str:
        config = self._find(service)
        if not config or not config.credential:
            raise MissingCredentialError(f"API key not found for service: {service}")
        return config.credential

    def _find(self, service: str) -> Optional[ServiceConfig]:
        config = self.services.get(service.rstrip("/"))
        if config:
            return config
        for candidate in self.services.values():
            if candidate.name == service:
                return candidate
        return None
