"""Workflow services: guardrails, redaction, agents, orchestration and chat."""
