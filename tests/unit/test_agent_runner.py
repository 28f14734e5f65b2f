"""Unit tests for the agent runtime loop."""

import json

import pytest
from pydantic import BaseModel

from concierge import prompts
from concierge.models.agent import AgentSpec, ToolSpec
from concierge.models.classification import ClassificationOutput
from concierge.models.conversation import ConversationTurn, FunctionCallItem, FunctionCallOutputItem
from concierge.services.agent_runner import (
    AgentRunner,
    EmptyResultError,
    MaxTurnsExceededError,
    to_chat_messages,
)
from concierge.services.model_client import ModelResponse, ToolCall
from concierge.services.specialist_agents import (
    build_classification_agent,
    build_information_agent,
    build_project_agent,
)


@pytest.fixture
def runner(model_client, audit_logger, metrics):
    return AgentRunner(model_client, audit_logger=audit_logger, metrics=metrics)


def _tool_call(call_id="call_1", name="getSleadsProjectStartInfo", url="https://sleads.nl/contact"):
    return ToolCall(call_id=call_id, name=name, arguments=json.dumps({"url": url}))


class TestChatMessages:
    """Test history to chat message rendering."""

    def test_turns_and_tool_items(self):
        history = [
            ConversationTurn.user("Hi"),
            FunctionCallItem(call_id="a", name="lookup", arguments="{}"),
            FunctionCallItem(call_id="b", name="lookup", arguments="{}"),
            FunctionCallOutputItem(call_id="a", output="one"),
            FunctionCallOutputItem(call_id="b", output="two"),
            ConversationTurn.assistant("Done"),
        ]

        messages = to_chat_messages("system prompt", history)

        assert messages[0] == {"role": "system", "content": "system prompt"}
        assert messages[1] == {"role": "user", "content": "Hi"}
        assert messages[2]["role"] == "assistant"
        assert [call["id"] for call in messages[2]["tool_calls"]] == ["a", "b"]
        assert messages[3] == {"role": "tool", "tool_call_id": "a", "content": "one"}
        assert messages[4] == {"role": "tool", "tool_call_id": "b", "content": "two"}
        assert messages[5] == {"role": "assistant", "content": "Done"}


class TestAgentRunner:
    """Test AgentRunner.run()."""

    @pytest.mark.asyncio
    async def test_plain_text_run(self, runner, model_client, audit_logger):
        history = [ConversationTurn.user("Where are you located?")]

        result = await runner.run(build_information_agent(), history)

        assert result.text == model_client.default_agent_reply
        assert len(result.new_items) == 1
        assert result.new_items[0].role == "assistant"
        assert result.new_items[0].content[0].type == "output_text"
        assert len(history) == 1
        audit_logger.log_agent_event.assert_called_once()

    @pytest.mark.asyncio
    async def test_full_history_and_instructions_sent(self, runner, model_client):
        history = [ConversationTurn.user("Hello"), ConversationTurn.assistant("Hi!"), ConversationTurn.user("Privacy?")]

        await runner.run(build_information_agent(), history)

        call = model_client.calls_of("agent")[0]
        assert call["messages"][0]["content"] == prompts.INFORMATION_INSTRUCTIONS
        assert [m["content"] for m in call["messages"][1:]] == ["Hello", "Hi!", "Privacy?"]
        assert call["model"] == "gpt-4o-mini"
        assert call["settings"].max_tokens == 2048

    @pytest.mark.asyncio
    async def test_instructions_use_context(self, runner, model_client):
        await runner.run(build_project_agent(), [ConversationTurn.user("Ik wil een website")], {"language": "Dutch"})

        system_prompt = model_client.calls_of("agent")[0]["messages"][0]["content"]
        assert "Answer the question in the users language Dutch" in system_prompt

    @pytest.mark.asyncio
    async def test_tool_loop(self, runner, model_client):
        model_client.agent_responses = [
            ModelResponse(tool_calls=[_tool_call()]),
            ModelResponse(content="Please fill in the form at https://sleads.nl/contact"),
        ]

        result = await runner.run(build_project_agent(), [ConversationTurn.user("Start a project")], {"language": "English"})

        call_item, output_item, final_turn = result.new_items
        assert isinstance(call_item, FunctionCallItem)
        assert isinstance(output_item, FunctionCallOutputItem)
        assert output_item.call_id == "call_1"
        assert output_item.output == prompts.PROJECT_START_INFO
        assert final_turn.text == "Please fill in the form at https://sleads.nl/contact"

        second_call = model_client.calls_of("agent")[1]
        assert second_call["messages"][-2]["tool_calls"][0]["id"] == "call_1"
        assert second_call["messages"][-1] == {
            "role": "tool",
            "tool_call_id": "call_1",
            "content": prompts.PROJECT_START_INFO,
        }
        assert second_call["tools"][0]["function"]["name"] == "getSleadsProjectStartInfo"

    @pytest.mark.asyncio
    async def test_unknown_tool_reported_to_model(self, runner, model_client):
        model_client.agent_responses = [
            ModelResponse(tool_calls=[_tool_call(name="deleteEverything")]),
            ModelResponse(content="Sorry about that."),
        ]

        result = await runner.run(build_project_agent(), [ConversationTurn.user("Hi")], {"language": "English"})

        assert result.new_items[1].output.startswith("An error occurred while running the tool")
        assert result.text == "Sorry about that."

    @pytest.mark.asyncio
    async def test_invalid_tool_arguments_reported_to_model(self, runner, model_client):
        model_client.agent_responses = [
            ModelResponse(tool_calls=[ToolCall(call_id="c", name="getSleadsProjectStartInfo", arguments="{}")]),
            ModelResponse(content="Let me try differently."),
        ]

        result = await runner.run(build_project_agent(), [ConversationTurn.user("Hi")], {"language": "English"})

        assert "Invalid arguments" in result.new_items[1].output

    @pytest.mark.asyncio
    async def test_empty_output_raises(self, runner, model_client):
        model_client.agent_responses = [ModelResponse(content="  ")]

        with pytest.raises(EmptyResultError):
            await runner.run(build_information_agent(), [ConversationTurn.user("Hi")])

    @pytest.mark.asyncio
    async def test_refusal_raises(self, runner, model_client):
        model_client.agent_responses = [ModelResponse(refusal="I can't help with that.")]

        with pytest.raises(EmptyResultError):
            await runner.run(build_information_agent(), [ConversationTurn.user("Hi")])

    @pytest.mark.asyncio
    async def test_max_turns(self, model_client, audit_logger, metrics):
        runner = AgentRunner(model_client, max_turns=2, audit_logger=audit_logger, metrics=metrics)
        model_client.agent_responses = [
            ModelResponse(tool_calls=[_tool_call("c1")]),
            ModelResponse(tool_calls=[_tool_call("c2")]),
        ]

        with pytest.raises(MaxTurnsExceededError):
            await runner.run(build_project_agent(), [ConversationTurn.user("Hi")], {"language": "English"})

        metrics.record_agent_run.assert_called_once()
        assert metrics.record_agent_run.call_args.args[3] is False

    @pytest.mark.asyncio
    async def test_structured_output(self, runner, model_client):
        model_client.classification_output = json.dumps({"classification": "start_project", "language": "German"})

        result = await runner.run(build_classification_agent(), [ConversationTurn.user("Ich brauche eine Website")])

        assert isinstance(result.final_output, ClassificationOutput)
        assert result.final_output.language == "German"
        assert json.loads(result.text) == {"classification": "start_project", "language": "German"}

    @pytest.mark.asyncio
    async def test_structured_output_mismatch_raises(self, runner, model_client):
        model_client.classification_output = "not json"

        with pytest.raises(EmptyResultError):
            await runner.run(build_classification_agent(), [ConversationTurn.user("Hi")])

    @pytest.mark.asyncio
    async def test_async_tool(self, runner, model_client):
        class Args(BaseModel):
            city: str

        async def weather(args):
            return {"city": args.city, "forecast": "rain"}

        agent = AgentSpec(
            name="Weather agent",
            instructions="Answer with the forecast.",
            tools=[ToolSpec(name="weather", description="Forecast", parameters=Args, execute=weather)],
        )
        model_client.agent_responses = [
            ModelResponse(tool_calls=[ToolCall(call_id="w1", name="weather", arguments='{"city": "Amsterdam"}')]),
            ModelResponse(content="Rain in Amsterdam."),
        ]

        result = await runner.run(agent, [ConversationTurn.user("Weather?")])

        assert json.loads(result.new_items[1].output) == {"city": "Amsterdam", "forecast": "rain"}
