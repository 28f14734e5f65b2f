"""
OpenTelemetry setup for the concierge workflow.

Every workflow run opens one span tagged with the workflow id and trace
source; agent runs open child spans. Until ``initialize_telemetry`` is
called the spans go to the global no-op provider.
"""

import logging
from contextlib import contextmanager
from typing import Any, Iterator, Optional

from opentelemetry import trace, metrics
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.sdk.trace.sampling import TraceIdRatioBased
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.instrumentation.asyncio import AsyncioInstrumentor
from opentelemetry.instrumentation.logging import LoggingInstrumentor

from concierge.lib.config import ObservabilityConfig


logger = logging.getLogger(__name__)

INSTRUMENTATION_NAME = "concierge"
METRIC_EXPORT_INTERVAL_MS = 10000


class TelemetryManager:
    """Owns the tracer and meter providers for one process."""

    def __init__(self, config: ObservabilityConfig):
        self.config = config
        self._tracer_provider: Optional[TracerProvider] = None
        self._meter_provider: Optional[MeterProvider] = None

    @property
    def initialized(self) -> bool:
        return self._tracer_provider is not None

    def initialize(self) -> None:
        """Install OTLP exporters and the asyncio/logging instrumentation."""
        if self.initialized:
            logger.warning("Telemetry already initialized")
            return

        resource = Resource.create({
            "service.name": self.config.service_name,
            "service.version": self.config.service_version,
            "deployment.environment": self.config.environment,
            **self.config.resource_attributes,
        })

        try:
            tracer_provider = TracerProvider(
                resource=resource,
                sampler=TraceIdRatioBased(self.config.trace_sampling_ratio)
            )
            tracer_provider.add_span_processor(BatchSpanProcessor(
                OTLPSpanExporter(endpoint=self.config.otlp_endpoint, timeout=self.config.export_timeout),
                export_timeout_millis=self.config.export_timeout * 1000
            ))

            meter_provider = MeterProvider(
                resource=resource,
                metric_readers=[PeriodicExportingMetricReader(
                    exporter=OTLPMetricExporter(endpoint=self.config.otlp_endpoint, timeout=self.config.export_timeout),
                    export_interval_millis=METRIC_EXPORT_INTERVAL_MS
                )]
            )

            trace.set_tracer_provider(tracer_provider)
            metrics.set_meter_provider(meter_provider)

            AsyncioInstrumentor().instrument()
            LoggingInstrumentor().instrument(set_logging_format=False)
        except Exception as e:
            logger.error(f"Failed to initialize OpenTelemetry: {e}")
            raise

        self._tracer_provider = tracer_provider
        self._meter_provider = meter_provider
        logger.info(
            f"OpenTelemetry exporting to {self.config.otlp_endpoint} "
            f"for service {self.config.service_name}"
        )

    def get_meter(self) -> metrics.Meter:
        if not self.initialized:
            raise RuntimeError("Telemetry not initialized")
        return self._meter_provider.get_meter(INSTRUMENTATION_NAME)

    def shutdown(self) -> None:
        """Flush pending spans and metrics."""
        if not self.initialized:
            return

        try:
            self._tracer_provider.shutdown()
            self._meter_provider.shutdown()
            logger.info("OpenTelemetry shutdown completed")
        except Exception as e:
            logger.error(f"Error during telemetry shutdown: {e}")
        finally:
            self._tracer_provider = None
            self._meter_provider = None


_telemetry_manager: Optional[TelemetryManager] = None


def initialize_telemetry(config: ObservabilityConfig) -> TelemetryManager:
    """Initialize the global telemetry manager."""
    global _telemetry_manager

    _telemetry_manager = TelemetryManager(config)
    _telemetry_manager.initialize()
    return _telemetry_manager


def shutdown_telemetry() -> None:
    global _telemetry_manager
    if _telemetry_manager:
        _telemetry_manager.shutdown()
        _telemetry_manager = None


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(INSTRUMENTATION_NAME)


@contextmanager
def workflow_span(name: str, workflow_id: str, trace_source: str, **attributes: Any) -> Iterator[trace.Span]:
    """Open the span that correlates one workflow invocation."""
    span_attributes = {
        "workflow.id": workflow_id,
        "workflow.trace_source": trace_source,
    }
    span_attributes.update({f"workflow.{key}": value for key, value in attributes.items() if value is not None})

    with get_tracer().start_as_current_span(name, attributes=span_attributes) as span:
        yield span


def create_agent_span(agent_name: str, operation: str) -> trace.Span:
    """Create a child span for an agent run; the caller ends it."""
    return get_tracer().start_span(
        name=f"agent.{operation}",
        attributes={
            "agent.name": agent_name,
            "agent.operation": operation
        }
    )
