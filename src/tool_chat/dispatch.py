"""Two-turn tool dispatch loop between the model and OpenAPI-described tools."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, AsyncIterator, Callable, Dict, List, Optional

from .catalog import build_catalog, substitute_path_params
from .errors import FunctionNotFoundError, PathNotFoundError, ToolArgumentsError
from .executors import ToolCallExecutor
from .models import ChatRequest, SchemaDetail, ToolCatalog
from .openapi import SchemaConverter
from .profile import Profile, check_api_key
from .providers import ModelProvider, ToolCall
from .services import OPENAI_SERVICES

logger = logging.getLogger(__name__)


class DispatchState(str, Enum):
    PREPARING = "preparing"
    FIRST_TURN = "first_turn"
    AWAITING_TOOLS = "awaiting_tools"
    EXECUTING_TOOL = "executing_tool"
    SECOND_TURN = "second_turn"
    DONE = "done"


@dataclass
class DispatchResult:
    content: Optional[str] = None
    stream: Optional[AsyncIterator[str]] = None
    catalog: Optional[ToolCatalog] = None

    @property
    def streaming(self) -> bool:
        return self.stream is not None


class ChatDispatcher:
    """
    Runs one chat request against the selected tools.

    The first model turn is offered every converted function. When the model
    answers without function calls its content is returned as is. Otherwise
    each call is resolved to a route, executed over HTTP, and its result is
    appended to the conversation before a second, streamed turn.

    Resolution failures (unknown function, path or parameter) abort the whole
    request. HTTP failures of a resolved call are handed to the model as the
    tool result.
    """

    def __init__(
        self,
        converter: SchemaConverter,
        provider_factory: Callable[[Profile], ModelProvider],
        executor: ToolCallExecutor,
    ) -> None:
        self.converter = converter
        self.provider_factory = provider_factory
        self.executor = executor
        self.state = DispatchState.PREPARING

    async def dispatch(self, request: ChatRequest, profile: Profile) -> DispatchResult:
        check_api_key(profile.openai_api_key, "OpenAI")
        provider = self.provider_factory(profile)
        model = request.chat_settings.model
        options = self._model_options(request)
        messages: List[Dict[str, Any]] = list(request.messages)

        self._enter(DispatchState.PREPARING)
        catalog = await build_catalog(request.selected_tools, self.converter)
        if catalog.failures:
            logger.warning("Excluded tools after conversion failure: %s", sorted(catalog.failures))

        self._enter(DispatchState.FIRST_TURN)
        logger.info("Sending request for chat completion with %s tool(s)", len(catalog.tools))
        message = await provider.complete(model, messages, catalog.tools or None, **options)
        messages.append(message.as_message())

        if not message.tool_calls:
            self._enter(DispatchState.DONE)
            return DispatchResult(content=message.content, catalog=catalog)

        self._enter(DispatchState.AWAITING_TOOLS)
        for tool_call in message.tool_calls:
            self._enter(DispatchState.EXECUTING_TOOL)
            messages.append(await self._run_tool_call(catalog, tool_call, profile))

        self._enter(DispatchState.SECOND_TURN)
        logger.info("Sending second request for streamed chat completion")
        stream = await provider.stream(model, messages, **options)
        self._enter(DispatchState.DONE)
        return DispatchResult(stream=stream, catalog=catalog)

    async def _run_tool_call(
        self, catalog: ToolCatalog, tool_call: ToolCall, profile: Profile
    ) -> Dict[str, Any]:
        function_name = tool_call.name
        logger.info("Processing tool call: %s", function_name)

        detail = catalog.find_detail(function_name)
        if not detail:
            raise FunctionNotFoundError(f"Function {function_name} not found in any schema")
        arguments = self._parse_arguments(tool_call)

        route = detail.routes.get(function_name)
        if not route or not route.route_path:
            raise PathNotFoundError(f"Path for function {function_name} not found")

        parameters = arguments.get("parameters")
        path = substitute_path_params(
            route.route_path, parameters if isinstance(parameters, dict) else {}, function_name
        )

        credential = self._credential(detail, profile)
        result = await self.executor.execute(detail, route, path, arguments, credential)
        return {
            "tool_call_id": tool_call.id,
            "role": "tool",
            "name": function_name,
            "content": json.dumps(result),
        }

    def _credential(self, detail: SchemaDetail, profile: Profile) -> str:
        if detail.credential:
            return detail.credential
        # The profile key is an OpenAI key and never leaves for other hosts.
        if detail.service_name in OPENAI_SERVICES:
            return profile.openai_api_key or ""
        return ""

    def _parse_arguments(self, tool_call: ToolCall) -> Dict[str, Any]:
        raw = (tool_call.arguments or "").strip() or "{}"
        try:
            arguments = json.loads(raw)
        except json.JSONDecodeError as exc:
            raise ToolArgumentsError(
                f"Invalid arguments for function {tool_call.name}: {exc}"
            ) from exc
        if not isinstance(arguments, dict):
            raise ToolArgumentsError(f"Arguments for function {tool_call.name} must be an object")
        return arguments

    def _model_options(self, request: ChatRequest) -> Dict[str, Any]:
        if request.chat_settings.temperature is None:
            return {}
        return {"temperature": request.chat_settings.temperature}

    def _enter(self, state: DispatchState) -> None:
        logger.debug("Dispatch state %s -> %s", self.state.value, state.value)
        self.state = state
