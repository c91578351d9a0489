"""Model provider interface and the OpenAI chat completions implementation."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, AsyncIterator, Dict, List, Optional, Sequence, Tuple

from openai import AsyncOpenAI


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ToolCall:
    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class ModelMessage:
    content: Optional[str]
    tool_calls: Tuple[ToolCall, ...] = ()

    def as_message(self) -> Dict[str, Any]:
        message: Dict[str, Any] = {"role": "assistant", "content": self.content}
        if self.tool_calls:
            message["tool_calls"] = [
                {
                    "id": call.id,
                    "type": "function",
                    "function": {"name": call.name, "arguments": call.arguments},
                }
                for call in self.tool_calls
            ]
        return message


class ModelProvider:
    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        **options: Any,
    ) -> ModelMessage:
        raise NotImplementedError

    async def stream(
        self, model: str, messages: List[Dict[str, Any]], **options: Any
    ) -> AsyncIterator[str]:
        """Start a streamed completion and return an iterator of content deltas."""
        raise NotImplementedError


class OpenAIChatProvider(ModelProvider):
    def __init__(
        self,
        api_key: str,
        organization: Optional[str] = None,
        timeout_seconds: float = 60,
        client: Optional[AsyncOpenAI] = None,
    ) -> None:
        self.client = client or AsyncOpenAI(
            api_key=api_key, organization=organization, timeout=timeout_seconds
        )

    async def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        tools: Optional[Sequence[Dict[str, Any]]] = None,
        **options: Any,
    ) -> ModelMessage:
        kwargs: Dict[str, Any] = {"model": model, "messages": messages, **options}
        if tools:
            kwargs["tools"] = list(tools)

        response = await self.client.chat.completions.create(**kwargs)
        message = response.choices[0].message
        tool_calls = tuple(
            ToolCall(
                id=call.id,
                name=call.function.name,
                arguments=call.function.arguments or "",
            )
            for call in message.tool_calls or []
        )
        logger.info("Chat completion returned %s tool call(s)", len(tool_calls))
        return ModelMessage(content=message.content, tool_calls=tool_calls)

    async def stream(
        self, model: str, messages: List[Dict[str, Any]], **options: Any
    ) -> AsyncIterator[str]:
        response = await self.client.chat.completions.create(
            model=model, messages=messages, stream=True, **options
        )
        return self._deltas(response)

    async def _deltas(self, response: Any) -> AsyncIterator[str]:
        async for chunk in response:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta.content
            if delta:
                yield delta
