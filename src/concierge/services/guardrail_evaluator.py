"""Guardrail evaluation service with configurable detector error policy."""

import logging
from typing import Dict, List, Optional

from concierge.lib.config import ConfigurationError
from concierge.lib.logging_config import AuditLogger, get_audit_logger
from concierge.lib.metrics import MetricsCollector, get_metrics_collector
from concierge.models.guardrail import (
    GenericInfo,
    GuardrailCheck,
    GuardrailConfig,
    GuardrailVerdict,
)
from concierge.services.guardrail_detectors import (
    DEFAULT_DETECTORS,
    Detector,
    DetectorError,
    GuardrailContext,
)
from concierge.services.model_client import BaseModelClient


logger = logging.getLogger(__name__)

__all__ = ["GuardrailEvaluator", "DetectorError"]


class GuardrailEvaluator:
    """Runs configured safety checks against text and returns one verdict per check."""

    def __init__(
        self,
        guardrail_llm: Optional[BaseModelClient],
        detectors: Optional[Dict[str, Detector]] = None,
        fail_closed: bool = False,
        audit_logger: Optional[AuditLogger] = None,
        metrics: Optional[MetricsCollector] = None
    ):
        """Initialize the evaluator.

        Args:
            guardrail_llm: Backend used by LLM-judged and moderation checks
            detectors: Detector registry keyed by check name
            fail_closed: Treat a detector that fails to execute as tripped
            audit_logger: Audit sink for evaluation outcomes
            metrics: Metrics collector
        """
        self.logger = logging.getLogger(__name__)
        self.guardrail_llm = guardrail_llm
        self.fail_closed = fail_closed
        self._detectors: Dict[str, Detector] = dict(detectors if detectors is not None else DEFAULT_DETECTORS)
        self._audit = audit_logger or get_audit_logger()
        self._metrics = metrics or get_metrics_collector()

    @property
    def detector_names(self) -> List[str]:
        return list(self._detectors)

    def register_detector(self, name: str, detector: Detector) -> None:
        """Register or replace the detector behind a check name."""
        self._detectors[name] = detector

    def _context(self) -> GuardrailContext:
        if self.guardrail_llm is None:
            raise ConfigurationError("OPENAI_API_KEY is not set in the environment variables.")
        return GuardrailContext(guardrail_llm=self.guardrail_llm)

    async def evaluate(self, text: str, config: GuardrailConfig) -> List[GuardrailVerdict]:
        """Evaluate ``text`` against every check in ``config``, in order.

        Args:
            text: Text to check, may be empty
            config: Checks to run

        Returns:
            One verdict per configured check

        Raises:
            ConfigurationError: If the backend credential is missing
        """
        if not config.guardrails:
            return []

        ctx = self._context()
        verdicts: List[GuardrailVerdict] = []

        for check in config.guardrails:
            try:
                verdict = await self.run_check(text, check, ctx)
            except DetectorError as e:
                verdict = self._failed_verdict(check, e)
            verdicts.append(verdict)

        tripped = [v.check_name for v in verdicts if v.tripped]
        failed = [v.check_name for v in verdicts if v.execution_failed]
        for name in tripped:
            self._metrics.record_guardrail_trip(name)

        self._audit.log_guardrail_event(
            event_type="guardrail_evaluated",
            checks=config.names,
            tripped_checks=tripped,
            failed_checks=failed,
        )

        return verdicts

    async def run_check(self, text: str, check: GuardrailCheck, ctx: GuardrailContext) -> GuardrailVerdict:
        """Run a single check, raising DetectorError if it cannot execute."""
        detector = self._detectors.get(check.name)
        if detector is None:
            raise DetectorError(check.name, "unrecognized guardrail")
        return await detector(text, dict(check.config), ctx)

    def _failed_verdict(self, check: GuardrailCheck, error: DetectorError) -> GuardrailVerdict:
        self.logger.warning(
            f"Guardrail check '{check.name}' failed to execute "
            f"({'fail-closed' if self.fail_closed else 'fail-open'}): {error}"
        )
        self._metrics.record_detector_error(check.name)
        return GuardrailVerdict(
            check_name=check.name,
            tripped=self.fail_closed,
            info=GenericInfo(guardrail_name=check.name, error=str(error)),
            execution_failed=True,
        )
