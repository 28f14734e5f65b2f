"""Agent, tool and run result models."""

from typing import Any, Awaitable, Callable, Dict, List, Optional, Type, Union

from pydantic import BaseModel, Field, field_validator

from concierge.models.conversation import HistoryItem


InstructionSource = Union[str, Callable[[Dict[str, Any]], str]]


class ModelSettings(BaseModel):
    """Sampling parameters passed to the model backend."""

    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    parallel_tool_calls: Optional[bool] = None


class ToolSpec(BaseModel):
    """A callable the agent runtime may invoke mid-generation."""

    name: str = Field(..., description="Tool name exposed to the model")
    description: str = Field(..., description="What the tool does")
    parameters: Type[BaseModel] = Field(..., description="Pydantic model describing the arguments")
    execute: Callable[..., Union[Any, Awaitable[Any]]] = Field(..., description="Sync or async implementation")

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True
        frozen = True

    def to_openai_tool(self) -> Dict[str, Any]:
        """Render the tool as a chat-completions function definition."""
        schema = self.parameters.model_json_schema()
        schema.pop("title", None)
        schema["additionalProperties"] = False
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": schema,
                "strict": True,
            },
        }


class AgentSpec(BaseModel):
    """
    Stateless persona descriptor.

    Instructions are either static text or a function of the run context,
    evaluated fresh on every run.
    """

    name: str = Field(..., description="Agent display name")
    instructions: InstructionSource = Field(..., description="System prompt or prompt factory")
    model: str = Field(default="gpt-4o-mini", description="Model identifier")
    tools: List[ToolSpec] = Field(default_factory=list, description="Tools the agent may call")
    output_schema: Optional[Type[BaseModel]] = Field(None, description="Structured output model")
    model_settings: ModelSettings = Field(default_factory=ModelSettings, description="Sampling settings")

    class Config:
        """Pydantic configuration."""

        arbitrary_types_allowed = True
        frozen = True

    @field_validator('name')
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("agent name cannot be empty")
        return v

    def resolve_instructions(self, context: Optional[Dict[str, Any]] = None) -> str:
        if callable(self.instructions):
            return self.instructions(context or {})
        return self.instructions

    def get_tool(self, name: str) -> Optional[ToolSpec]:
        for tool in self.tools:
            if tool.name == name:
                return tool
        return None


class AgentRunResult(BaseModel):
    """Final output of an agent run plus every item it emitted."""

    agent_name: str
    final_output: Any = Field(..., description="Final text, or parsed output_schema instance")
    new_items: List[HistoryItem] = Field(default_factory=list, description="Items to append to history")
    duration_ms: int = Field(default=0, ge=0)
    tokens_used: int = Field(default=0, ge=0)

    @property
    def text(self) -> str:
        if isinstance(self.final_output, BaseModel):
            return self.final_output.model_dump_json()
        return str(self.final_output)
