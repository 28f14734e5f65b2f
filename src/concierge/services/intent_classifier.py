"""Intent classification over the (redacted) conversation history."""

import logging
from typing import List, Optional, Tuple

from concierge.lib.metrics import MetricsCollector, get_metrics_collector
from concierge.models.agent import AgentSpec
from concierge.models.classification import ClassificationOutput, ClassificationResult
from concierge.models.conversation import ConversationHistory, HistoryItem
from concierge.services.agent_runner import AgentRunner, EmptyResultError


class IntentClassifier:
    """Runs the classification agent and normalises its structured output."""

    def __init__(
        self,
        runner: AgentRunner,
        agent: AgentSpec,
        metrics: Optional[MetricsCollector] = None
    ):
        if agent.output_schema is None:
            raise ValueError(f"{agent.name} must declare an output schema")
        self.runner = runner
        self.agent = agent
        self.logger = logging.getLogger(__name__)
        self._metrics = metrics or get_metrics_collector()

    async def classify(self, history: ConversationHistory) -> Tuple[ClassificationResult, List[HistoryItem]]:
        """
        Classify the latest turn given the full history.

        Args:
            history: Working history, already redacted when PII masking is on

        Returns:
            The classification and the items the classification run emitted

        Raises:
            EmptyResultError: If the agent produced no structured output
        """
        run = await self.runner.run(self.agent, history)
        output = run.final_output

        if not isinstance(output, ClassificationOutput):
            raise EmptyResultError(self.agent.name)

        result = ClassificationResult(
            intent=output.classification,
            language=output.language,
            output_text=output.model_dump_json(),
        )

        if result.known_intent is None:
            self.logger.warning(f"Classifier returned unknown intent '{result.intent}'")

        self._metrics.record_classification(result.intent)
        self.logger.debug(f"Classified turn as {result.intent} ({result.language})")
        return result, run.new_items
