"""Shared fixtures: a scripted model backend and quiet audit/metrics sinks."""

import json
from typing import Any, Dict, List, Optional
from unittest.mock import Mock

import pytest

from concierge.lib.logging_config import AuditLogger
from concierge.lib.metrics import MetricsCollector
from concierge.services.model_client import BaseModelClient, ModelResponse, ModerationResult


class ScriptedModelClient(BaseModelClient):
    """
    Model backend double.

    Calls are routed by their response format: guardrail checks, the
    classification agent, and everything else (specialist agents).
    """

    def __init__(self):
        self.guardrail_output: Dict[str, Any] = {"flagged": False, "confidence": 0.05}
        self.classification_output: Optional[str] = json.dumps(
            {"classification": "get_information", "language": "English"}
        )
        self.agent_responses: List[ModelResponse] = []
        self.default_agent_reply = "Sleads has a presence in Amsterdam, New York and London."
        self.moderation = ModerationResult()
        self.calls: List[Dict[str, Any]] = []
        self.moderation_calls: List[str] = []

    def calls_of(self, kind: str) -> List[Dict[str, Any]]:
        return [call for call in self.calls if call["kind"] == kind]

    async def create_completion(self, model, messages, settings=None, tools=None, response_format=None):
        schema_name = (response_format or {}).get("json_schema", {}).get("name")
        if schema_name == "guardrail_check":
            kind = "guardrail"
        elif schema_name == "ClassificationOutput":
            kind = "classification"
        else:
            kind = "agent"

        self.calls.append({
            "kind": kind,
            "model": model,
            "messages": messages,
            "settings": settings,
            "tools": tools,
        })

        if kind == "guardrail":
            return ModelResponse(content=json.dumps(self.guardrail_output), tokens_used=12)
        if kind == "classification":
            return ModelResponse(content=self.classification_output, tokens_used=20)
        if self.agent_responses:
            return self.agent_responses.pop(0)
        return ModelResponse(content=self.default_agent_reply, tokens_used=40)

    async def moderate(self, text):
        self.moderation_calls.append(text)
        return self.moderation


@pytest.fixture
def model_client():
    return ScriptedModelClient()


@pytest.fixture
def audit_logger():
    return Mock(spec=AuditLogger)


@pytest.fixture
def metrics():
    return Mock(spec=MetricsCollector)
