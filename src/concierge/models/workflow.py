"""Workflow input and result models."""

from typing import List, Literal, Optional, Union

from pydantic import BaseModel, Field

from concierge.models.conversation import ConversationHistory
from concierge.models.guardrail import GuardrailFailureReport


class WorkflowInput(BaseModel):
    """Raw input that seeds one workflow invocation."""

    input_as_text: str = Field(..., description="The user's message")
    input_text: Optional[str] = Field(None, description="Alternate raw input field")

    class Config:
        """Pydantic configuration."""

        extra = "allow"
        validate_assignment = True


class GuardrailFailureResult(GuardrailFailureReport):
    """The input gate rejected the message."""

    type: Literal["guardrail_failure"] = "guardrail_failure"


class SuccessResult(BaseModel):
    """A specialist (or the fallback) produced the reply."""

    type: Literal["success"] = "success"
    output_text: str


WorkflowResult = Union[GuardrailFailureResult, SuccessResult]


class WorkflowRun(BaseModel):
    """Everything one invocation produced; ``result`` is what callers persist."""

    result: WorkflowResult = Field(..., discriminator="type")
    history: ConversationHistory = Field(default_factory=list, description="Working history at exit")
    new_items: ConversationHistory = Field(default_factory=list, description="Items appended during the run")
    safe_text: Optional[str] = Field(None, description="Guardrail checked input text")
