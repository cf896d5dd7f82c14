"""
Tests for the text-generation client
"""
import asyncio
from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest
from anthropic import APIConnectionError, RateLimitError

from interview_dispatch.errors import GenerationError
from interview_dispatch.generation_client import GenerationClient
from interview_dispatch.models import ChatMessage

REQUEST = httpx.Request("POST", "https://api.anthropic.com/v1/messages")


@pytest.fixture
def sdk_client():
    client = MagicMock()
    client.messages.create = AsyncMock(return_value=SimpleNamespace(content=[
        SimpleNamespace(type="text", text="Bonjour, je relance le candidat."),
        SimpleNamespace(type="tool_use", name="send_reminder_email", input={"email": "paul@example.com"}),
    ]))
    return client


@pytest.fixture
def generator(sdk_client):
    return GenerationClient(api_key="", model="claude-test", temperature=0.7, max_tokens=500, client=sdk_client)


class TestGenerationClient:
    """Test GenerationClient class"""

    def test_requires_api_key_without_client(self):
        with pytest.raises(ValueError):
            GenerationClient(api_key="", model="claude-test")

    def test_request_and_reply(self, generator, sdk_client):
        reply = asyncio.run(generator.generate(
            system="Tu es un assistant.",
            messages=[ChatMessage(role="user", content="Relance Paul")],
            tools=[{"name": "send_reminder_email"}]
        ))

        kwargs = sdk_client.messages.create.call_args.kwargs
        assert kwargs["model"] == "claude-test"
        assert kwargs["temperature"] == 0.7
        assert kwargs["max_tokens"] == 500
        assert kwargs["system"] == "Tu es un assistant."
        assert kwargs["messages"] == [{"role": "user", "content": "Relance Paul"}]
        assert kwargs["tools"] == [{"name": "send_reminder_email"}]

        assert reply.text == "Bonjour, je relance le candidat."
        assert reply.tool_calls[0].name == "send_reminder_email"
        assert reply.tool_calls[0].arguments == {"email": "paul@example.com"}

    def test_overrides_and_no_tools(self, generator, sdk_client):
        asyncio.run(generator.generate(
            system="s",
            messages=[ChatMessage(role="user", content="x")],
            temperature=0.3,
            max_tokens=800
        ))

        kwargs = sdk_client.messages.create.call_args.kwargs
        assert kwargs["temperature"] == 0.3
        assert kwargs["max_tokens"] == 800
        assert "tools" not in kwargs

    def test_rate_limit_becomes_generation_error(self, generator, sdk_client):
        response = httpx.Response(429, request=REQUEST)
        sdk_client.messages.create = AsyncMock(side_effect=RateLimitError("slow down", response=response, body=None))

        with pytest.raises(GenerationError, match="Rate limit"):
            asyncio.run(generator.generate(system="s", messages=[ChatMessage(role="user", content="x")]))

    def test_connection_error_becomes_generation_error(self, generator, sdk_client):
        sdk_client.messages.create = AsyncMock(side_effect=APIConnectionError(request=REQUEST))

        with pytest.raises(GenerationError, match="Connection error"):
            asyncio.run(generator.generate(system="s", messages=[ChatMessage(role="user", content="x")]))


class TestNormalizeMessages:
    """Test shaping of conversation turns"""

    def test_merges_consecutive_roles(self, generator):
        messages = [
            ChatMessage(role="user", content="a"),
            ChatMessage(role="user", content="b"),
            ChatMessage(role="assistant", content="c"),
        ]
        assert generator.normalize_messages(messages) == [
            {"role": "user", "content": "a\n\nb"},
            {"role": "assistant", "content": "c"},
        ]

    def test_leading_assistant_gets_user_turn(self, generator):
        messages = [
            ChatMessage(role="assistant", content="Bonjour"),
            ChatMessage(role="user", content="Salut"),
        ]
        normalized = generator.normalize_messages(messages)
        assert normalized[0] == {"role": "user", "content": GenerationClient.CONVERSATION_START}
        assert normalized[1]["role"] == "assistant"
