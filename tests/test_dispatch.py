"""Tests for the two-turn dispatch loop."""

import json

import httpx
import pytest

from tool_chat.config import Settings
from tool_chat.dispatch import ChatDispatcher, DispatchState
from tool_chat.errors import (
    FunctionNotFoundError,
    MissingCredentialError,
    ParameterNotFoundError,
    ToolArgumentsError,
)
from tool_chat.executors import ToolCallExecutor
from tool_chat.models import ChatRequest, SelectedTool
from tool_chat.openapi import SchemaConverter
from tool_chat.profile import Profile
from tool_chat.providers import ModelMessage, ToolCall
from tool_chat.refs import RefResolver
from tool_chat.services import ServiceResolver


PROFILE = Profile(openai_api_key="sk-profile", openai_organization_id="org-1")


def make_request(tools, messages=None, **settings):
    return ChatRequest.model_validate(
        {
            "chatSettings": {"model": "gpt-4o", **settings},
            "messages": messages or [{"role": "user", "content": "Find cats"}],
            "selectedTools": tools,
        }
    )


async def collect(stream):
    return [token async for token in stream]


class TestChatDispatcher:
    @pytest.fixture
    def http_log(self):
        return []

    @pytest.fixture
    def executor(self, http_log):
        def handler(request: httpx.Request) -> httpx.Response:
            http_log.append(request)
            if request.url.path.endswith("/missing"):
                return httpx.Response(404, json={"error": "gone"})
            return httpx.Response(200, json={"url": str(request.url)})

        return ToolCallExecutor(transport=httpx.MockTransport(handler))

    def dispatcher(self, converter, executor, provider):
        return ChatDispatcher(converter, lambda profile: provider, executor)

    @pytest.mark.asyncio
    async def test_no_tool_calls_returns_content(
        self, converter, executor, fake_provider_factory, search_spec, http_log
    ):
        provider = fake_provider_factory(ModelMessage(content='{"answer": 1}'))
        dispatcher = self.dispatcher(converter, executor, provider)

        result = await dispatcher.dispatch(
            make_request([{"name": "search", "schema": json.dumps(search_spec)}]), PROFILE
        )

        assert result.content == '{"answer": 1}'
        assert result.streaming is False
        assert http_log == []
        assert provider.stream_calls == []
        assert len(provider.complete_calls) == 1
        assert dispatcher.state is DispatchState.DONE

    @pytest.mark.asyncio
    async def test_tools_are_offered_on_first_turn(
        self, converter, executor, fake_provider_factory, search_spec
    ):
        provider = fake_provider_factory(ModelMessage(content="hi"))

        await self.dispatcher(converter, executor, provider).dispatch(
            make_request([{"name": "search", "schema": search_spec}], temperature=0.2), PROFILE
        )

        call = provider.complete_calls[0]
        assert call["model"] == "gpt-4o"
        assert [t["function"]["name"] for t in call["tools"]] == ["searchWeb", "updateUser"]
        assert call["options"] == {"temperature": 0.2}

    @pytest.mark.asyncio
    async def test_no_tools_selected_sends_none(self, converter, executor, fake_provider_factory):
        provider = fake_provider_factory(ModelMessage(content="hi"))

        await self.dispatcher(converter, executor, provider).dispatch(make_request([]), PROFILE)

        assert provider.complete_calls[0]["tools"] is None

    @pytest.mark.asyncio
    async def test_tool_calls_are_executed_then_streamed(
        self, converter, executor, fake_provider_factory, search_spec, http_log
    ):
        calls = (
            ToolCall(id="call_1", name="searchWeb", arguments='{"parameters": {"q": "cats"}}'),
            ToolCall(
                id="call_2",
                name="updateUser",
                arguments='{"parameters": {"id": "42"}, "requestBody": {"name": "Ada"}}',
            ),
        )
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls), ["A", "B"])
        dispatcher = self.dispatcher(converter, executor, provider)

        result = await dispatcher.dispatch(
            make_request([{"name": "search", "schema": search_spec}]), PROFILE
        )

        assert await collect(result.stream) == ["A", "B"]
        assert [(r.method, str(r.url)) for r in http_log] == [
            ("GET", "https://serpapi.com/v1/search?q=cats"),
            ("POST", "https://serpapi.com/v1/users/42"),
        ]
        assert http_log[0].headers["authorization"] == "Bearer serp-key"

        messages = provider.stream_calls[0]["messages"]
        assert messages[0] == {"role": "user", "content": "Find cats"}
        assert messages[1]["role"] == "assistant"
        assert [c["id"] for c in messages[1]["tool_calls"]] == ["call_1", "call_2"]
        assert messages[2] == {
            "tool_call_id": "call_1",
            "role": "tool",
            "name": "searchWeb",
            "content": json.dumps({"url": "https://serpapi.com/v1/search?q=cats"}),
        }
        assert messages[3]["tool_call_id"] == "call_2"

    @pytest.mark.asyncio
    async def test_http_failure_becomes_tool_result(
        self, converter, executor, fake_provider_factory, search_spec
    ):
        search_spec["paths"]["/missing"] = {"get": {"operationId": "getMissing"}}
        calls = (ToolCall(id="call_1", name="getMissing", arguments="{}"),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        result = await self.dispatcher(converter, executor, provider).dispatch(
            make_request([{"name": "search", "schema": search_spec}]), PROFILE
        )

        assert result.streaming is True
        tool_message = provider.stream_calls[0]["messages"][-1]
        assert json.loads(tool_message["content"]) == {"error": "Not Found", "details": {"error": "gone"}}

    @pytest.mark.asyncio
    async def test_failed_tool_does_not_block_others(
        self, converter, executor, fake_provider_factory, search_spec
    ):
        provider = fake_provider_factory(ModelMessage(content="ok"))
        tools = [
            {"name": "broken", "schema": "{}"},
            {"name": "search", "schema": search_spec},
        ]

        result = await self.dispatcher(converter, executor, provider).dispatch(
            make_request(tools), PROFILE
        )

        offered = [t["function"]["name"] for t in provider.complete_calls[0]["tools"]]
        assert offered == ["searchWeb", "updateUser"]
        assert list(result.catalog.failures) == ["broken"]

    @pytest.mark.asyncio
    async def test_image_generation_is_forced_to_dalle(
        self, converter, executor, fake_provider_factory, dalle_spec, http_log
    ):
        calls = (ToolCall(id="c", name="createImage", arguments='{"requestBody": {"prompt": "cat"}}'),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        await self.dispatcher(converter, executor, provider).dispatch(
            make_request([{"name": "dalle", "schema": dalle_spec}]), PROFILE
        )

        assert str(http_log[0].url) == "https://api.openai.com/v1/images/generations"
        assert http_log[0].headers["authorization"] == "Bearer sk-test"
        assert json.loads(http_log[0].content) == {"prompt": "cat"}

    @pytest.mark.asyncio
    async def test_unknown_function_aborts(self, converter, executor, fake_provider_factory, search_spec):
        calls = (ToolCall(id="c", name="nope", arguments="{}"),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        with pytest.raises(FunctionNotFoundError) as exc_info:
            await self.dispatcher(converter, executor, provider).dispatch(
                make_request([{"name": "search", "schema": search_spec}]), PROFILE
            )

        assert str(exc_info.value) == "Function nope not found in any schema"
        assert provider.stream_calls == []

    @pytest.mark.asyncio
    async def test_unknown_function_wins_over_bad_arguments(
        self, converter, executor, fake_provider_factory, search_spec
    ):
        calls = (ToolCall(id="c", name="nope", arguments="{not json"),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        with pytest.raises(FunctionNotFoundError):
            await self.dispatcher(converter, executor, provider).dispatch(
                make_request([{"name": "search", "schema": search_spec}]), PROFILE
            )

    @pytest.mark.asyncio
    async def test_missing_path_parameter_aborts(
        self, converter, executor, fake_provider_factory, search_spec, http_log
    ):
        calls = (ToolCall(id="c", name="updateUser", arguments='{"requestBody": {}}'),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        with pytest.raises(ParameterNotFoundError):
            await self.dispatcher(converter, executor, provider).dispatch(
                make_request([{"name": "search", "schema": search_spec}]), PROFILE
            )

        assert http_log == []

    @pytest.mark.asyncio
    async def test_malformed_arguments_abort(self, converter, executor, fake_provider_factory, search_spec):
        calls = (ToolCall(id="c", name="searchWeb", arguments="{not json"),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        with pytest.raises(ToolArgumentsError):
            await self.dispatcher(converter, executor, provider).dispatch(
                make_request([{"name": "search", "schema": search_spec}]), PROFILE
            )

    @pytest.mark.asyncio
    async def test_missing_openai_key_fails_before_model_call(
        self, converter, executor, fake_provider_factory
    ):
        provider = fake_provider_factory(ModelMessage(content="hi"))

        with pytest.raises(MissingCredentialError) as exc_info:
            await self.dispatcher(converter, executor, provider).dispatch(
                make_request([]), Profile()
            )

        assert str(exc_info.value) == "OpenAI API Key not found"
        assert provider.complete_calls == []

    @pytest.mark.asyncio
    async def test_mixed_routes_use_their_own_body_flag(
        self, converter, executor, fake_provider_factory, search_spec, http_log
    ):
        search_spec["paths"] = {
            "/users/{id}": search_spec["paths"]["/users/{id}"],
            "/search": search_spec["paths"]["/search"],
        }
        calls = (ToolCall(id="c", name="searchWeb", arguments='{"parameters": {"q": "dogs"}}'),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        await self.dispatcher(converter, executor, provider).dispatch(
            make_request([SelectedTool(name="search", schema=search_spec).model_dump(by_alias=True)]),
            PROFILE,
        )

        assert http_log[0].method == "GET"
        assert str(http_log[0].url) == "https://serpapi.com/v1/search?q=dogs"

    @pytest.mark.asyncio
    async def test_profile_key_is_not_sent_to_other_services(
        self, converter, executor, fake_provider_factory, search_spec, http_log
    ):
        search_spec["servers"] = [{"url": "https://api.groq.com"}]
        calls = (ToolCall(id="c", name="searchWeb", arguments='{"parameters": {"q": "cats"}}'),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        await self.dispatcher(converter, executor, provider).dispatch(
            make_request([{"name": "groq", "schema": search_spec}]), PROFILE
        )

        assert str(http_log[0].url) == "https://api.groq.com/v1/search?q=cats"
        assert "sk-profile" not in http_log[0].headers["authorization"]

    @pytest.mark.asyncio
    async def test_openai_tools_fall_back_to_profile_key(
        self, executor, fake_provider_factory, dalle_spec, http_log
    ):
        converter = SchemaConverter(
            ServiceResolver.from_settings(Settings(openai_api_key="")), RefResolver()
        )
        calls = (ToolCall(id="c", name="createImage", arguments='{"requestBody": {"prompt": "cat"}}'),)
        provider = fake_provider_factory(ModelMessage(content=None, tool_calls=calls))

        await self.dispatcher(converter, executor, provider).dispatch(
            make_request([{"name": "dalle", "schema": dalle_spec}]), PROFILE
        )

        assert http_log[0].headers["authorization"] == "Bearer sk-profile"
