"""Shared infrastructure: configuration, logging, telemetry and metrics."""
