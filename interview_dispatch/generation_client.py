"""
Text-generation client wrapper using the Anthropic SDK
"""
import logging
from typing import Any, Dict, List, Optional

from anthropic import APIConnectionError, APIError, AsyncAnthropic, RateLimitError

from interview_dispatch.config import Settings, get_settings
from interview_dispatch.errors import GenerationError
from interview_dispatch.models import ChatMessage, GenerationReply, ToolCall

logger = logging.getLogger(__name__)


class GenerationClient:
    """Wrapper for single request/response text generation"""

    # Placeholder user turn when the history starts with the assistant
    CONVERSATION_START = "(début de la conversation)"

    def __init__(
        self,
        api_key: str,
        model: str,
        temperature: float = 0.7,
        max_tokens: int = 500,
        client: Optional[AsyncAnthropic] = None
    ):
        """
        Initialize generation client

        Args:
            api_key: Anthropic API key
            model: Model identifier
            temperature: Default sampling temperature
            max_tokens: Default maximum tokens per reply
            client: Preconfigured SDK client (tests)
        """
        if client is None and not api_key:
            raise ValueError("ANTHROPIC_API_KEY must be provided or set in environment")

        self.model = model
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.client = client or AsyncAnthropic(api_key=api_key)

    async def generate(
        self,
        system: str,
        messages: List[ChatMessage],
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        tools: Optional[List[Dict[str, Any]]] = None
    ) -> GenerationReply:
        """
        Generate one assistant reply

        Args:
            system: Instruction prompt
            messages: Ordered conversation turns, latest user message last
            temperature: Override default temperature
            max_tokens: Override default max tokens
            tools: Optional tool definitions the model may call

        Returns:
            GenerationReply with the reply text and any tool calls

        Raises:
            GenerationError: If the provider call fails
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "temperature": self.temperature if temperature is None else temperature,
            "system": system,
            "messages": self.normalize_messages(messages),
        }
        if tools:
            request["tools"] = tools

        logger.info(f"Requesting generation ({len(request['messages'])} messages, model {self.model})")
        logger.debug(f"System prompt: {system[:200]}...")

        try:
            message = await self.client.messages.create(**request)
        except RateLimitError as e:
            logger.error(f"Rate limit exceeded: {e}")
            raise GenerationError(f"Rate limit exceeded: {e}") from e
        except APIConnectionError as e:
            logger.error(f"Connection error to generation API: {e}")
            raise GenerationError(f"Connection error: {e}") from e
        except APIError as e:
            logger.error(f"Generation API error: {e}")
            raise GenerationError(str(e)) from e

        text_parts = []
        tool_calls = []
        for block in message.content:
            if block.type == "text":
                text_parts.append(block.text)
            elif block.type == "tool_use":
                tool_calls.append(ToolCall(name=block.name, arguments=dict(block.input or {})))

        text = "\n".join(text_parts).strip()
        logger.info(f"Generated reply: {len(text)} chars, {len(tool_calls)} tool call(s)")
        logger.debug(f"Reply: {text[:100]}...")

        return GenerationReply(text=text, tool_calls=tool_calls)

    def normalize_messages(self, messages: List[ChatMessage]) -> List[Dict[str, str]]:
        """
        Shape turns into the user-first alternating list the provider expects.

        Consecutive same-role turns are merged; a leading assistant turn is
        preceded by a placeholder user turn.
        """
        normalized: List[Dict[str, str]] = []
        for msg in messages:
            if normalized and normalized[-1]["role"] == msg.role:
                normalized[-1]["content"] += "\n\n" + msg.content
            else:
                normalized.append({"role": msg.role, "content": msg.content})

        if normalized and normalized[0]["role"] == "assistant":
            normalized.insert(0, {"role": "user", "content": self.CONVERSATION_START})

        return normalized


def get_generation_client(settings: Optional[Settings] = None) -> GenerationClient:
    """
    Get generation client instance from settings.

    Returns:
        GenerationClient instance
    """
    settings = settings or get_settings()
    return GenerationClient(
        api_key=settings.anthropic_api_key,
        model=settings.generation_model,
        temperature=settings.generation_temperature,
        max_tokens=settings.generation_max_tokens
    )
