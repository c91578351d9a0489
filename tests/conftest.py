"""Pytest configuration and fixtures."""

import json
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence

import pytest

from tool_chat.config import Settings
from tool_chat.models import SelectedTool
from tool_chat.openapi import SchemaConverter
from tool_chat.providers import ModelMessage, ModelProvider
from tool_chat.refs import RefResolver
from tool_chat.services import ServiceResolver


class FakeProvider(ModelProvider):
    """In-memory model provider returning queued first-turn messages."""

    def __init__(self, reply: ModelMessage, tokens: Sequence[str] = ("Done", ".")) -> None:
        self.reply = reply
        self.tokens = list(tokens)
        self.complete_calls: List[Dict[str, Any]] = []
        self.stream_calls: List[Dict[str, Any]] = []

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        **options: Any,
    ) -> ModelMessage:
        self.complete_calls.append(
            {"model": model, "messages": list(messages), "tools": tools, "options": options}
        )
        return self.reply

    async def stream(
        self, model: str, messages: List[Dict[str, Any]], **options: Any
    ) -> AsyncIterator[str]:
        self.stream_calls.append({"model": model, "messages": list(messages), "options": options})
        return self._tokens()

    async def _tokens(self) -> AsyncIterator[str]:
        for token in self.tokens:
            yield token


@pytest.fixture
def settings():
    return Settings(
        openai_api_key="sk-test",
        serpapi_api_key="serp-key",
        groq_api_key="",
    )


@pytest.fixture
def resolver(settings):
    return ServiceResolver.from_settings(settings)


@pytest.fixture
def converter(resolver):
    return SchemaConverter(resolver, RefResolver())


@pytest.fixture
def search_spec():
    """SerpAPI-style document with one GET operation and one POST operation."""
    return {
        "openapi": "3.0.0",
        "info": {"title": "Search", "description": "Web search", "version": "1.0"},
        "servers": [{"url": "https://serpapi.com"}],
        "paths": {
            "/search": {
                "get": {
                    "operationId": "searchWeb",
                    "summary": "Search the web",
                    "parameters": [
                        {"name": "q", "in": "query", "required": True, "schema": {"type": "string"}}
                    ],
                }
            },
            "/users/{id}": {
                "post": {
                    "operationId": "updateUser",
                    "description": "Update a user",
                    "parameters": [
                        {"name": "id", "in": "path", "required": True, "schema": {"type": "string"}}
                    ],
                    "requestBody": {
                        "content": {
                            "application/json": {
                                "schema": {"$ref": "#/components/schemas/User"}
                            }
                        }
                    },
                }
            },
        },
        "components": {
            "schemas": {
                "User": {
                    "type": "object",
                    "properties": {"name": {"type": "string"}},
                }
            }
        },
    }


@pytest.fixture
def dalle_spec():
    return {
        "openapi": "3.0.0",
        "info": {"title": "DALL-E", "version": "1.0"},
        "servers": [{"url": "https://api.openai.com/v1/images/generations"}],
        "paths": {
            "/images/generations": {
                "post": {
                    "operationId": "createImage",
                    "description": "Generate an image",
                    "requestBody": {
                        "content": {
                            "application/json": {
                                "schema": {
                                    "type": "object",
                                    "properties": {"prompt": {"type": "string"}},
                                }
                            }
                        }
                    },
                }
            }
        },
    }


@pytest.fixture
def search_tool(search_spec):
    return SelectedTool(name="search", schema=json.dumps(search_spec))


@pytest.fixture
def fake_provider_factory():
    def build(reply: ModelMessage, tokens: Sequence[str] = ("Done", ".")) -> FakeProvider:
        return FakeProvider(reply, tokens)

    return build
