"""HTTP surface for the tool chat service."""

from __future__ import annotations

import logging
from typing import Callable, Optional, Tuple

import httpx
from openai import APIError
from pydantic import ValidationError
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse, Response, StreamingResponse
from starlette.routing import Route

from .config import Settings
from .dispatch import ChatDispatcher
from .errors import ToolChatError
from .executors import ToolCallExecutor
from .models import ChatRequest
from .openapi import SchemaConverter
from .profile import Profile, ProfileLookup, SettingsProfileLookup
from .providers import ModelProvider, OpenAIChatProvider
from .refs import RefResolver
from .services import ServiceResolver

logger = logging.getLogger(__name__)

DEFAULT_ERROR_MESSAGE = "An unexpected error occurred"


def build_app(
    settings: Settings,
    profile_lookup: Optional[ProfileLookup] = None,
    provider_factory: Optional[Callable[[Profile], ModelProvider]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> Starlette:
    resolver = ServiceResolver.from_settings(settings)
    profiles = profile_lookup or SettingsProfileLookup(settings)
    make_provider = provider_factory or _openai_provider_factory(settings)

    def new_dispatcher() -> ChatDispatcher:
        ref_resolver = RefResolver(settings.ref_fetch_timeout_seconds, transport=transport)
        return ChatDispatcher(
            converter=SchemaConverter(resolver, ref_resolver),
            provider_factory=make_provider,
            executor=ToolCallExecutor(settings.tool_request_timeout_seconds, transport=transport),
        )

    async def chat_tools(request: Request) -> Response:
        try:
            chat_request = ChatRequest.model_validate(await request.json())
        except ValidationError as exc:
            return JSONResponse(
                {"message": "Invalid payload", "details": exc.errors(include_context=False)},
                status_code=422,
            )
        except ValueError:
            # Malformed JSON or a body that is not UTF-8.
            return JSONResponse({"message": "Request body must be valid JSON"}, status_code=400)

        try:
            profile = await profiles.get_profile()
            result = await new_dispatcher().dispatch(chat_request, profile)
        except Exception as exc:
            logger.exception("Error in chat tools handler")
            message, status_code = _error_details(exc)
            return JSONResponse({"message": message}, status_code=status_code)

        if result.stream is not None:
            return StreamingResponse(result.stream, media_type="text/plain; charset=utf-8")
        return Response(result.content or "", media_type="application/json")

    async def healthcheck(_request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok"})

    return Starlette(
        routes=[
            Route("/api/chat/tools", chat_tools, methods=["POST"]),
            Route("/health", healthcheck, methods=["GET"]),
        ],
        middleware=[
            Middleware(
                CORSMiddleware,
                allow_origins=["*"],
                allow_credentials=True,
                allow_methods=["*"],
                allow_headers=["*"],
            )
        ],
    )


def _openai_provider_factory(settings: Settings) -> Callable[[Profile], ModelProvider]:
    def factory(profile: Profile) -> ModelProvider:
        return OpenAIChatProvider(
            api_key=profile.openai_api_key or "",
            organization=profile.openai_organization_id,
            timeout_seconds=settings.model_timeout_seconds,
        )

    return factory


def _error_details(exc: Exception) -> Tuple[str, int]:
    if isinstance(exc, ToolChatError):
        return exc.message, exc.status_code
    if isinstance(exc, APIError):
        return exc.message or DEFAULT_ERROR_MESSAGE, getattr(exc, "status_code", None) or 500
    status_code = getattr(exc, "status_code", None) or getattr(exc, "status", None)
    return DEFAULT_ERROR_MESSAGE, status_code if isinstance(status_code, int) else 500
