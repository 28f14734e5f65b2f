"""Persisted chat session and message models."""

from datetime import datetime, timezone
from typing import Optional
from uuid import uuid4

from pydantic import BaseModel, Field, field_validator

from concierge.models.conversation import MessageRole


class StoredMessage(BaseModel):
    """A chat message as the persistence layer keeps it."""

    message_id: str = Field(default_factory=lambda: str(uuid4()))
    session_id: str = Field(..., description="Owning chat session")
    role: MessageRole = Field(..., description="Author role")
    content: str = Field(..., description="Plain message text")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    class Config:
        """Pydantic configuration."""

        use_enum_values = True

    @field_validator('session_id')
    def validate_session_id(cls, v):
        if not v.strip():
            raise ValueError("session_id cannot be empty")
        return v.strip()


class ChatSession(BaseModel):
    """A chat session, optionally bound to a signed-in user."""

    session_id: str = Field(..., description="Client supplied session identifier")
    user_id: Optional[str] = Field(None, description="Owner if authenticated")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updated_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    def touch(self) -> None:
        self.updated_at = datetime.now(timezone.utc)
