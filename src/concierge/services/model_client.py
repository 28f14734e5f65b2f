"""Model backend interface and the OpenAI implementation."""

import logging
import os
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from concierge.lib.config import ConfigurationError, LLMConfig
from concierge.models.agent import ModelSettings


logger = logging.getLogger(__name__)


class ToolCall(BaseModel):
    """A function call requested by the model."""

    call_id: str
    name: str
    arguments: str = "{}"


class ModelResponse(BaseModel):
    """Normalized completion returned by any backend."""

    content: Optional[str] = Field(None, description="Assistant text, if any")
    tool_calls: List[ToolCall] = Field(default_factory=list, description="Requested tool calls")
    refusal: Optional[str] = Field(None, description="Refusal text if the model declined")
    tokens_used: int = Field(default=0, ge=0)


class ModerationResult(BaseModel):
    """Normalized moderation verdict."""

    flagged: bool = False
    categories: Dict[str, bool] = Field(default_factory=dict)
    category_scores: Dict[str, float] = Field(default_factory=dict)


class BaseModelClient(ABC):
    """Backend able to run chat completions and content moderation."""

    @abstractmethod
    async def create_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        settings: Optional[ModelSettings] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[Dict[str, Any]] = None
    ) -> ModelResponse:
        """Run one chat completion.

        Args:
            model: Model identifier
            messages: Chat messages in chat-completions format
            settings: Sampling settings
            tools: Function tool definitions
            response_format: Structured output constraint

        Returns:
            ModelResponse with text and/or tool calls
        """
        pass

    @abstractmethod
    async def moderate(self, text: str) -> ModerationResult:
        """Classify text against the provider's moderation categories."""
        pass


class OpenAIModelClient(BaseModelClient):
    """Chat completions and moderation through the OpenAI async SDK."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        moderation_model: str = "omni-moderation-latest"
    ):
        api_key = api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is not set in the environment variables.")

        self.moderation_model = moderation_model
        self.client = AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout)

    @classmethod
    def from_config(cls, config: LLMConfig) -> "OpenAIModelClient":
        return cls(api_key=config.api_key, base_url=config.base_url, timeout=config.timeout)

    async def create_completion(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        settings: Optional[ModelSettings] = None,
        tools: Optional[List[Dict[str, Any]]] = None,
        response_format: Optional[Dict[str, Any]] = None
    ) -> ModelResponse:
        settings = settings or ModelSettings()
        request: Dict[str, Any] = {"model": model, "messages": messages}

        if settings.temperature is not None:
            request["temperature"] = settings.temperature
        if settings.top_p is not None:
            request["top_p"] = settings.top_p
        if settings.max_tokens is not None:
            request["max_completion_tokens"] = settings.max_tokens
        if tools:
            request["tools"] = tools
            if settings.parallel_tool_calls is not None:
                request["parallel_tool_calls"] = settings.parallel_tool_calls
        if response_format:
            request["response_format"] = response_format

        completion = await self.client.chat.completions.create(**request)

        if not completion.choices:
            return ModelResponse()

        message = completion.choices[0].message
        tool_calls = [
            ToolCall(call_id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        ]

        return ModelResponse(
            content=message.content,
            tool_calls=tool_calls,
            refusal=getattr(message, "refusal", None),
            tokens_used=completion.usage.total_tokens if completion.usage else 0
        )

    async def moderate(self, text: str) -> ModerationResult:
        response = await self.client.moderations.create(model=self.moderation_model, input=text)
        result = response.results[0]
        return ModerationResult(
            flagged=result.flagged,
            categories={k: bool(v) for k, v in result.categories.model_dump().items() if v is not None},
            category_scores={k: float(v) for k, v in result.category_scores.model_dump().items() if v is not None}
        )


def json_schema_format(schema_model: type, name: Optional[str] = None) -> Dict[str, Any]:
    """Build a strict json_schema response format from a pydantic model."""
    schema = schema_model.model_json_schema()
    schema.pop("title", None)
    for prop in schema.get("properties", {}).values():
        prop.pop("title", None)
        prop.pop("description", None)
    schema["additionalProperties"] = False
    schema["required"] = list(schema.get("properties", {}).keys())
    return {
        "type": "json_schema",
        "json_schema": {
            "name": name or schema_model.__name__,
            "schema": schema,
            "strict": True
        }
    }
