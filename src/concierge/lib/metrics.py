"""
Metrics collection for workflow runs, guardrails and agents.

Uses OpenTelemetry metrics. Instruments created against the global meter
provider are no-ops until telemetry is initialized.
"""

import time
from contextlib import contextmanager
from typing import Iterator, Optional

from opentelemetry import metrics


class MetricsCollector:
    """Collects and manages concierge workflow metrics."""

    def __init__(self, meter: Optional[metrics.Meter] = None):
        self.meter = meter or metrics.get_meter("concierge")
        self._setup_instruments()

    def _setup_instruments(self) -> None:
        """Setup OpenTelemetry metric instruments."""
        self.workflow_runs = self.meter.create_counter(
            name="concierge_workflow_runs_total",
            description="Workflow invocations by outcome",
            unit="1"
        )

        self.workflow_duration = self.meter.create_histogram(
            name="concierge_workflow_duration_ms",
            description="End to end workflow duration",
            unit="ms"
        )

        self.guardrail_trips = self.meter.create_counter(
            name="concierge_guardrail_trips_total",
            description="Tripped guardrail checks by name",
            unit="1"
        )

        self.detector_errors = self.meter.create_counter(
            name="concierge_detector_errors_total",
            description="Guardrail detectors that failed to execute",
            unit="1"
        )

        self.redactions = self.meter.create_counter(
            name="concierge_redacted_parts_total",
            description="Content parts rewritten by PII masking",
            unit="1"
        )

        self.classifications = self.meter.create_counter(
            name="concierge_classifications_total",
            description="Classified intents",
            unit="1"
        )

        self.fallback_dispatches = self.meter.create_counter(
            name="concierge_fallback_dispatch_total",
            description="Turns whose intent matched no specialist agent",
            unit="1"
        )

        self.agent_duration = self.meter.create_histogram(
            name="concierge_agent_duration_ms",
            description="Agent run duration",
            unit="ms"
        )

        self.agent_tokens = self.meter.create_histogram(
            name="concierge_agent_tokens_used",
            description="Tokens used by agent runs",
            unit="1"
        )

    def record_workflow(self, outcome: str, duration_ms: float) -> None:
        attributes = {"outcome": outcome}
        self.workflow_runs.add(1, attributes)
        self.workflow_duration.record(duration_ms, attributes)

    def record_guardrail_trip(self, check_name: str) -> None:
        self.guardrail_trips.add(1, {"check": check_name})

    def record_detector_error(self, check_name: str) -> None:
        self.detector_errors.add(1, {"check": check_name})

    def record_redaction(self, count: int = 1) -> None:
        if count:
            self.redactions.add(count)

    def record_classification(self, intent: str) -> None:
        self.classifications.add(1, {"intent": intent})

    def record_fallback_dispatch(self, intent: str) -> None:
        self.fallback_dispatches.add(1, {"intent": intent})

    def record_agent_run(self, agent_name: str, duration_ms: float, tokens_used: int, success: bool) -> None:
        attributes = {"agent": agent_name, "success": success}
        self.agent_duration.record(duration_ms, attributes)
        if tokens_used:
            self.agent_tokens.record(tokens_used, attributes)

    @contextmanager
    def time_workflow(self) -> Iterator[dict]:
        """Time a block and record it under the outcome the block sets."""
        state = {"outcome": "error"}
        start = time.perf_counter()
        try:
            yield state
        finally:
            self.record_workflow(state["outcome"], (time.perf_counter() - start) * 1000)


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def initialize_metrics(meter: metrics.Meter) -> MetricsCollector:
    """Initialize global metrics collector."""
    global _metrics_collector
    _metrics_collector = MetricsCollector(meter)
    return _metrics_collector


def get_metrics_collector() -> MetricsCollector:
    """Get the global metrics collector, creating a default one if needed."""
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector()
    return _metrics_collector
