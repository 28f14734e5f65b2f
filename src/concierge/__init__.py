"""
Concierge - guarded customer conversation workflow for Sleads.

Screens each user message with guardrails, masks PII in the running
conversation, classifies the intent and hands the turn to the matching
specialist agent.
"""

__version__ = "1.0.0"

__all__ = [
    "models",
    "services",
    "lib",
    "cli"
]
