"""PII masking over conversation history and raw workflow input."""

import asyncio
import logging
from collections.abc import MutableMapping
from typing import Any, List, Optional, Sequence, Union

from pydantic import BaseModel

from concierge.lib.metrics import MetricsCollector, get_metrics_collector
from concierge.models.conversation import TEXT_BEARING_KINDS, ContentPart, ConversationHistory, ConversationTurn
from concierge.models.guardrail import GuardrailConfig, extract_safe_text
from concierge.services.guardrail_evaluator import GuardrailEvaluator


logger = logging.getLogger(__name__)

RAW_INPUT_KEYS = ("input_as_text", "input_text")

RawInputs = Union[MutableMapping, BaseModel]


class HistoryRedactor:
    """Rewrites detected PII spans in place, preserving turn and part structure."""

    def __init__(
        self,
        evaluator: GuardrailEvaluator,
        concurrent: bool = False,
        metrics: Optional[MetricsCollector] = None
    ):
        """Initialize the redactor.

        Args:
            evaluator: Evaluator used to run the PII check per text span
            concurrent: Evaluate all parts concurrently instead of one at a time
            metrics: Metrics collector
        """
        self.evaluator = evaluator
        self.concurrent = concurrent
        self._metrics = metrics or get_metrics_collector()

    async def redact_pii(
        self,
        history: ConversationHistory,
        raw_inputs: Optional[RawInputs],
        pii_config: GuardrailConfig,
        input_keys: Sequence[str] = RAW_INPUT_KEYS
    ) -> int:
        """Mask PII in every text part of ``history`` and in the raw input fields.

        Turns are processed oldest to newest, parts in order. Every part is
        evaluated independently of the others.

        Returns:
            Number of texts that were rewritten
        """
        parts = self._text_parts(history)

        if self.concurrent:
            rewritten = sum(await asyncio.gather(*(self._redact_part(part, pii_config) for part in parts)))
        else:
            rewritten = 0
            for part in parts:
                rewritten += await self._redact_part(part, pii_config)

        if raw_inputs is not None:
            for key in input_keys:
                rewritten += await self._redact_field(raw_inputs, key, pii_config)

        self._metrics.record_redaction(rewritten)
        if rewritten:
            logger.info(f"Masked PII in {rewritten} text span(s)")
        return rewritten

    @staticmethod
    def _text_parts(history: ConversationHistory) -> List[ContentPart]:
        parts: List[ContentPart] = []
        for item in history or []:
            if not isinstance(item, ConversationTurn):
                continue
            for part in item.content:
                if part.type in TEXT_BEARING_KINDS and isinstance(part.text, str):
                    parts.append(part)
        return parts

    async def _redact_part(self, part: ContentPart, pii_config: GuardrailConfig) -> int:
        verdicts = await self.evaluator.evaluate(part.text, pii_config)
        safe_text = extract_safe_text(verdicts, part.text)
        if safe_text == part.text:
            return 0
        part.text = safe_text
        return 1

    async def _redact_field(self, raw_inputs: RawInputs, key: str, pii_config: GuardrailConfig) -> int:
        value = _get_field(raw_inputs, key)
        if not isinstance(value, str):
            return 0
        verdicts = await self.evaluator.evaluate(value, pii_config)
        safe_text = extract_safe_text(verdicts, value)
        if safe_text == value:
            return 0
        _set_field(raw_inputs, key, safe_text)
        return 1


def _get_field(raw_inputs: RawInputs, key: str) -> Any:
    if isinstance(raw_inputs, MutableMapping):
        return raw_inputs.get(key)
    return getattr(raw_inputs, key, None)


def _set_field(raw_inputs: RawInputs, key: str, value: str) -> None:
    if isinstance(raw_inputs, MutableMapping):
        raw_inputs[key] = value
    else:
        setattr(raw_inputs, key, value)
