"""Intent classification models."""

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class Intent(str, Enum):
    """Intents the specialist agents are dispatched on."""

    GET_INFORMATION = "get_information"
    START_PROJECT = "start_project"


class ClassificationOutput(BaseModel):
    """Structured output the classification agent must produce."""

    classification: str = Field(
        ...,
        description="Detected intent",
        json_schema_extra={"enum": [intent.value for intent in Intent]},
    )
    language: str = Field(..., description="Language the user writes in")


class ClassificationResult(BaseModel):
    """Immutable result of classifying one turn."""

    intent: str = Field(..., description="Intent value as produced by the model")
    language: str = Field(..., description="Detected user language")
    output_text: str = Field(..., description="Raw structured output rendered as JSON")

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def known_intent(self) -> Optional[Intent]:
        """The matching Intent, or None when the model strayed off the enum."""
        try:
            return Intent(self.intent)
        except ValueError:
            return None
