"""Conversation history models shared by every workflow stage."""

from enum import Enum
from typing import List, Literal, Union

from pydantic import BaseModel, Field, field_validator


class MessageRole(str, Enum):
    """Role of a conversation turn."""

    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"


class ContentKind(str, Enum):
    """Kinds of text-bearing content parts."""

    INPUT_TEXT = "input_text"
    OUTPUT_TEXT = "output_text"
    TEXT = "text"


TEXT_BEARING_KINDS = frozenset(kind.value for kind in ContentKind)


class ContentPart(BaseModel):
    """A single typed text span inside a turn."""

    type: ContentKind = Field(..., description="Kind of the part")
    text: str = Field(..., description="Text payload")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True
        validate_assignment = True


class ConversationTurn(BaseModel):
    """
    One message exchanged in the dialog.

    Content is an ordered list of parts rather than a bare string so that
    redaction can rewrite text without knowing the turn semantics.
    """

    role: MessageRole = Field(..., description="Who produced the turn")
    content: List[ContentPart] = Field(..., description="Ordered content parts")

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @field_validator('content')
    def validate_content(cls, v):
        """A turn always carries at least one part."""
        if not v:
            raise ValueError("content cannot be empty")
        return v

    @property
    def text(self) -> str:
        """All part texts joined with newlines."""
        return "\n".join(part.text for part in self.content)

    @classmethod
    def user(cls, text: str) -> "ConversationTurn":
        return cls(role=MessageRole.USER, content=[ContentPart(type=ContentKind.INPUT_TEXT, text=text)])

    @classmethod
    def assistant(cls, text: str) -> "ConversationTurn":
        return cls(role=MessageRole.ASSISTANT, content=[ContentPart(type=ContentKind.OUTPUT_TEXT, text=text)])


class FunctionCallItem(BaseModel):
    """Tool invocation requested by the model during an agent run."""

    type: Literal["function_call"] = "function_call"
    call_id: str = Field(..., description="Identifier linking call and output")
    name: str = Field(..., description="Tool name")
    arguments: str = Field(default="{}", description="JSON encoded arguments")


class FunctionCallOutputItem(BaseModel):
    """Result of a tool invocation, fed back to the model."""

    type: Literal["function_call_output"] = "function_call_output"
    call_id: str = Field(..., description="Identifier of the originating call")
    output: str = Field(..., description="Tool output rendered as text")


HistoryItem = Union[ConversationTurn, FunctionCallItem, FunctionCallOutputItem]

ConversationHistory = List[HistoryItem]


def copy_history(history: ConversationHistory) -> ConversationHistory:
    """Deep copy a history so the caller's snapshot is never mutated."""
    return [item.model_copy(deep=True) for item in history]


def history_from_dicts(raw_items: List[dict]) -> ConversationHistory:
    """Build history items from plain dictionaries."""
    items: ConversationHistory = []
    for raw in raw_items:
        item_type = raw.get("type")
        if item_type == "function_call":
            items.append(FunctionCallItem(**raw))
        elif item_type == "function_call_output":
            items.append(FunctionCallOutputItem(**raw))
        else:
            items.append(ConversationTurn(**raw))
    return items
