"""Agent runtime: drives a model through tool calls to a final output."""

import asyncio
import inspect
import json
import logging
import time
from typing import Any, Dict, List, Optional

from opentelemetry import trace
from pydantic import BaseModel, ValidationError

from concierge.lib.logging_config import AuditLogger, get_audit_logger
from concierge.lib.metrics import MetricsCollector, get_metrics_collector
from concierge.lib.observability import create_agent_span
from concierge.models.agent import AgentRunResult, AgentSpec, ToolSpec
from concierge.models.conversation import (
    ConversationHistory,
    ConversationTurn,
    FunctionCallItem,
    FunctionCallOutputItem,
    HistoryItem,
)
from concierge.services.model_client import BaseModelClient, ToolCall, json_schema_format


logger = logging.getLogger(__name__)


class EmptyResultError(Exception):
    """The classifier or an agent produced no usable output."""

    def __init__(self, agent_name: str, message: str = "Agent result is undefined"):
        super().__init__(f"{agent_name}: {message}")
        self.agent_name = agent_name


class MaxTurnsExceededError(Exception):
    """An agent kept calling tools past its turn budget."""
    pass


class ToolExecutionError(Exception):
    """A tool call could not be completed."""
    pass


def to_chat_messages(instructions: str, history: List[HistoryItem]) -> List[Dict[str, Any]]:
    """Render instructions and history items as chat-completions messages."""
    messages: List[Dict[str, Any]] = [{"role": "system", "content": instructions}]

    for item in history:
        if isinstance(item, FunctionCallItem):
            tool_call = {
                "id": item.call_id,
                "type": "function",
                "function": {"name": item.name, "arguments": item.arguments},
            }
            last = messages[-1]
            if last["role"] == "assistant" and last.get("tool_calls"):
                last["tool_calls"].append(tool_call)
            else:
                messages.append({"role": "assistant", "content": None, "tool_calls": [tool_call]})
        elif isinstance(item, FunctionCallOutputItem):
            messages.append({"role": "tool", "tool_call_id": item.call_id, "content": item.output})
        else:
            messages.append({"role": item.role, "content": item.text})

    return messages


class AgentRunner:
    """Runs an AgentSpec against a conversation history."""

    def __init__(
        self,
        client: BaseModelClient,
        max_turns: int = 10,
        audit_logger: Optional[AuditLogger] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.client = client
        self.max_turns = max_turns
        self.logger = logging.getLogger(__name__)
        self._audit = audit_logger or get_audit_logger()
        self._metrics = metrics or get_metrics_collector()

    async def run(
        self,
        agent: AgentSpec,
        history: ConversationHistory,
        context: Optional[Dict[str, Any]] = None
    ) -> AgentRunResult:
        """Run ``agent`` over the full ``history``.

        The caller's history is not modified; every item the run produces
        is returned in ``new_items`` for the caller to append.

        Raises:
            EmptyResultError: If the model finishes without usable output
            MaxTurnsExceededError: If tool calls do not settle within max_turns
        """
        start = time.perf_counter()
        success = False
        tokens_used = 0
        tools_used: List[str] = []

        span = create_agent_span(agent.name, "run")
        try:
            with trace.use_span(span, end_on_exit=True):
                instructions = agent.resolve_instructions(context)
                tools = [tool.to_openai_tool() for tool in agent.tools] or None
                response_format = json_schema_format(agent.output_schema) if agent.output_schema else None
                new_items: List[HistoryItem] = []

                for _ in range(self.max_turns):
                    response = await self.client.create_completion(
                        model=agent.model,
                        messages=to_chat_messages(instructions, [*history, *new_items]),
                        settings=agent.model_settings,
                        tools=tools,
                        response_format=response_format,
                    )
                    tokens_used += response.tokens_used

                    if response.tool_calls:
                        new_items.extend(
                            FunctionCallItem(call_id=call.call_id, name=call.name, arguments=call.arguments)
                            for call in response.tool_calls
                        )
                        new_items.extend(await self._execute_tools(agent, response.tool_calls))
                        tools_used.extend(call.name for call in response.tool_calls)
                        continue

                    final_output = self._final_output(agent, response.content, response.refusal)
                    new_items.append(ConversationTurn.assistant(response.content))
                    success = True

                    return AgentRunResult(
                        agent_name=agent.name,
                        final_output=final_output,
                        new_items=new_items,
                        duration_ms=int((time.perf_counter() - start) * 1000),
                        tokens_used=tokens_used,
                    )

                raise MaxTurnsExceededError(f"{agent.name}: no final output after {self.max_turns} turns")
        finally:
            duration_ms = int((time.perf_counter() - start) * 1000)
            self._metrics.record_agent_run(agent.name, duration_ms, tokens_used, success)
            self._audit.log_agent_event(
                event_type="agent_run",
                agent_name=agent.name,
                result="success" if success else "failed",
                execution_time_ms=duration_ms,
                tools_used=tools_used,
            )

    def _final_output(self, agent: AgentSpec, content: Optional[str], refusal: Optional[str]) -> Any:
        if refusal:
            raise EmptyResultError(agent.name, f"model refused: {refusal}")
        if not content or not content.strip():
            raise EmptyResultError(agent.name)
        if agent.output_schema is None:
            return content
        try:
            return agent.output_schema.model_validate_json(content)
        except ValidationError as e:
            raise EmptyResultError(agent.name, f"structured output did not match schema: {e}") from e

    async def _execute_tools(
        self,
        agent: AgentSpec,
        calls: List[ToolCall]
    ) -> List[FunctionCallOutputItem]:
        if agent.model_settings.parallel_tool_calls:
            outputs = await asyncio.gather(*(self._tool_output(agent, call) for call in calls))
        else:
            outputs = [await self._tool_output(agent, call) for call in calls]
        return [FunctionCallOutputItem(call_id=call.call_id, output=output) for call, output in zip(calls, outputs)]

    async def _tool_output(self, agent: AgentSpec, call: ToolCall) -> str:
        try:
            return await self._invoke_tool(agent.get_tool(call.name), call)
        except ToolExecutionError as e:
            self.logger.warning(f"Tool call {call.name} for {agent.name} failed: {e}")
            return f"An error occurred while running the tool. Please try again. Error: {e}"

    async def _invoke_tool(self, tool: Optional[ToolSpec], call: ToolCall) -> str:
        if tool is None:
            raise ToolExecutionError(f"Tool {call.name} not found")

        try:
            arguments = tool.parameters.model_validate_json(call.arguments or "{}")
        except ValidationError as e:
            raise ToolExecutionError(f"Invalid arguments for {tool.name}: {e}") from e

        try:
            result = tool.execute(arguments)
            if inspect.isawaitable(result):
                result = await result
        except Exception as e:
            raise ToolExecutionError(str(e)) from e

        if isinstance(result, BaseModel):
            return result.model_dump_json()
        if isinstance(result, (dict, list)):
            return json.dumps(result)
        return str(result)
