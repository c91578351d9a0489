"""Credential profile lookup used before calling the model provider."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .config import Settings
from .errors import MissingCredentialError


@dataclass(frozen=True)
class Profile:
    openai_api_key: Optional[str] = None
    openai_organization_id: Optional[str] = None


class ProfileLookup:
    async def get_profile(self) -> Profile:
        raise NotImplementedError


class SettingsProfileLookup(ProfileLookup):
    """Serves the process-wide credentials as the caller's profile."""

    def __init__(self, settings: Settings) -> None:
        self.settings = settings

    async def get_profile(self) -> Profile:
        return Profile(
            openai_api_key=self.settings.openai_api_key or None,
            openai_organization_id=self.settings.openai_organization_id,
        )


def check_api_key(api_key: Optional[str], provider: str) -> None:
    if not api_key:
        raise MissingCredentialError(f"{provider} API Key not found")
