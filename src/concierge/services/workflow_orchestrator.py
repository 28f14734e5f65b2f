"""Workflow orchestrator: guardrail gate, redaction, classification and dispatch."""

import logging
from typing import Any, Dict, List, Optional

from concierge.lib.config import ConciergeConfig, LLMConfig
from concierge.lib.logging_config import AuditLogger, get_audit_logger
from concierge.lib.metrics import MetricsCollector, get_metrics_collector
from concierge.lib.observability import workflow_span
from concierge.models.conversation import ConversationHistory, ConversationTurn, HistoryItem, copy_history
from concierge.models.guardrail import GuardrailConfig, any_tripped, build_failure_report, extract_safe_text
from concierge.models.workflow import (
    GuardrailFailureResult,
    SuccessResult,
    WorkflowInput,
    WorkflowResult,
    WorkflowRun,
)
from concierge.services.agent_runner import AgentRunner
from concierge.services.guardrail_evaluator import GuardrailEvaluator
from concierge.services.history_redactor import HistoryRedactor
from concierge.services.intent_classifier import IntentClassifier
from concierge.services.model_client import BaseModelClient, OpenAIModelClient
from concierge.services.specialist_agents import AgentCatalogue


WORKFLOW_NAME = "Sleads - Customer agent"


class WorkflowOrchestrator:
    """
    Runs one conversation turn through the agent workflow.

    Stages run strictly in sequence: the input gate, PII masking (only when
    the gate config carries a masking PII check), classification and a single
    specialist dispatch. Each run works on its own copy of the history.
    """

    def __init__(
        self,
        evaluator: GuardrailEvaluator,
        redactor: HistoryRedactor,
        classifier: IntentClassifier,
        runner: AgentRunner,
        catalogue: AgentCatalogue,
        input_guardrails: GuardrailConfig,
        workflow_id: str = LLMConfig().workflow_id,
        trace_source: str = LLMConfig().trace_source,
        audit_logger: Optional[AuditLogger] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        self.evaluator = evaluator
        self.redactor = redactor
        self.classifier = classifier
        self.runner = runner
        self.catalogue = catalogue
        self.input_guardrails = input_guardrails
        self.pii_config = input_guardrails.pii_mask_only()
        self.workflow_id = workflow_id
        self.trace_source = trace_source
        self.logger = logging.getLogger(__name__)
        self._audit = audit_logger or get_audit_logger()
        self._metrics = metrics or get_metrics_collector()

    async def run_workflow(
        self,
        workflow_input: WorkflowInput,
        history: Optional[ConversationHistory] = None
    ) -> WorkflowResult:
        """Run one turn and return only the caller-facing result."""
        run = await self.run(workflow_input, history)
        return run.result

    async def run(
        self,
        workflow_input: WorkflowInput,
        history: Optional[ConversationHistory] = None
    ) -> WorkflowRun:
        """
        Run one turn of the workflow.

        Args:
            workflow_input: Raw input; its text fields are masked in place
                when PII masking is configured
            history: Prior conversation, treated as a read-only snapshot

        Returns:
            The result plus the working history and the items this run appended

        Raises:
            ConfigurationError: If the model backend credential is missing
            EmptyResultError: If the classifier or the dispatched agent gave no output
        """
        working: List[HistoryItem] = copy_history(history or [])
        start_index = len(working)
        user_text = workflow_input.input_as_text

        with workflow_span(WORKFLOW_NAME, self.workflow_id, self.trace_source), \
                self._metrics.time_workflow() as outcome:
            # Start
            working.append(ConversationTurn.user(user_text))

            # GuardrailCheck
            verdicts = await self.evaluator.evaluate(user_text, self.input_guardrails)
            safe_text = extract_safe_text(verdicts, user_text)

            if any_tripped(verdicts):
                report = build_failure_report(verdicts)
                outcome["outcome"] = "guardrail_failure"
                self._audit.log_workflow_event(
                    event_type="workflow_rejected",
                    outcome="guardrail_failure",
                    metadata={"tripped_checks": [v.check_name for v in verdicts if v.tripped]},
                )
                return WorkflowRun(
                    result=GuardrailFailureResult(**report.model_dump()),
                    history=working,
                    new_items=working[start_index:],
                    safe_text=safe_text,
                )

            # Redact
            if self.pii_config is not None:
                await self.redactor.redact_pii(working, workflow_input, self.pii_config)

            # Classify
            classification, emitted = await self.classifier.classify(working)
            working.extend(emitted)

            # Dispatch
            intent = classification.intent
            if self.catalogue.is_fallback(intent):
                self.logger.warning(
                    f"Unrecognized intent '{intent}', returning raw classifier output"
                )
                self._metrics.record_fallback_dispatch(intent)
                outcome["outcome"] = "fallback"
                self._audit.log_workflow_event(
                    event_type="workflow_completed",
                    outcome="fallback",
                    intent=intent,
                )
                return WorkflowRun(
                    result=SuccessResult(output_text=classification.output_text),
                    history=working,
                    new_items=working[start_index:],
                    safe_text=safe_text,
                )

            agent = self.catalogue.route(intent)
            context: Dict[str, Any] = {}
            if agent is self.catalogue.project:
                context["language"] = classification.language

            agent_run = await self.runner.run(agent, working, context)
            working.extend(agent_run.new_items)

            outcome["outcome"] = "success"
            self._audit.log_workflow_event(
                event_type="workflow_completed",
                outcome="success",
                intent=intent,
                agent_name=agent.name,
                duration_ms=agent_run.duration_ms,
            )
            return WorkflowRun(
                result=SuccessResult(output_text=agent_run.text),
                history=working,
                new_items=working[start_index:],
                safe_text=safe_text,
            )


def build_workflow(
    config: ConciergeConfig,
    client: Optional[BaseModelClient] = None,
    audit_logger: Optional[AuditLogger] = None,
    metrics: Optional[MetricsCollector] = None
) -> WorkflowOrchestrator:
    """
    Wire a WorkflowOrchestrator from configuration.

    Raises:
        ConfigurationError: If no client is given and OPENAI_API_KEY is unset
    """
    client = client or OpenAIModelClient.from_config(config.llm)
    audit_logger = audit_logger or get_audit_logger()
    metrics = metrics or get_metrics_collector()

    catalogue = AgentCatalogue.from_settings(config.agents)
    max_turns = max((settings.max_turns for settings in config.agents.values()), default=10)

    evaluator = GuardrailEvaluator(
        guardrail_llm=client,
        fail_closed=config.guardrails.fail_closed,
        audit_logger=audit_logger,
        metrics=metrics,
    )
    runner = AgentRunner(client, max_turns=max_turns, audit_logger=audit_logger, metrics=metrics)

    return WorkflowOrchestrator(
        evaluator=evaluator,
        redactor=HistoryRedactor(evaluator, metrics=metrics),
        classifier=IntentClassifier(runner, catalogue.classification, metrics=metrics),
        runner=runner,
        catalogue=catalogue,
        input_guardrails=config.guardrails.to_guardrail_config(),
        workflow_id=config.llm.workflow_id,
        trace_source=config.llm.trace_source,
        audit_logger=audit_logger,
        metrics=metrics,
    )
