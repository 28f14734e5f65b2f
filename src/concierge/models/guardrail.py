"""Guardrail configuration, verdict and failure report models."""

from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_validator


PII_CHECK = "Contains PII"
MODERATION_CHECK = "Moderation"
JAILBREAK_CHECK = "Jailbreak"
HALLUCINATION_CHECK = "Hallucination Detection"
NSFW_CHECK = "NSFW Text"
URL_FILTER_CHECK = "URL Filter"
CUSTOM_PROMPT_CHECK = "Custom Prompt Check"
PROMPT_INJECTION_CHECK = "Prompt Injection Detection"
OFF_TOPIC_CHECK = "Off Topic Prompts"


class GuardrailCheck(BaseModel):
    """A named check descriptor with detector specific parameters."""

    name: str = Field(..., description="Detector name, e.g. 'Jailbreak'")
    config: Dict[str, Any] = Field(default_factory=dict, description="Detector parameters")

    class Config:
        """Pydantic configuration."""

        frozen = True

    @field_validator('name')
    def validate_name(cls, v):
        if not v.strip():
            raise ValueError("guardrail name cannot be empty")
        return v.strip()

    @property
    def is_pii_mask(self) -> bool:
        """True for a PII check configured to mask instead of block."""
        return self.name == PII_CHECK and self.config.get("block") is False


class GuardrailConfig(BaseModel):
    """Ordered list of checks evaluated together."""

    guardrails: List[GuardrailCheck] = Field(default_factory=list, description="Checks in evaluation order")

    class Config:
        """Pydantic configuration."""

        frozen = True

    @property
    def names(self) -> List[str]:
        return [check.name for check in self.guardrails]

    def pii_mask_only(self) -> Optional["GuardrailConfig"]:
        """Derive the PII-only masking config, or None if masking is not configured."""
        for check in self.guardrails:
            if check.is_pii_mask:
                return GuardrailConfig(guardrails=[check])
        return None


class GuardrailInfo(BaseModel):
    """Detector detail common to every check."""

    guardrail_name: str = Field(..., description="Name of the check that produced this info")
    checked_text: Optional[str] = Field(None, description="Text the check evaluated, possibly rewritten")
    error: Optional[str] = Field(None, description="Execution error if the detector failed")


class PiiInfo(GuardrailInfo):
    guardrail_name: Literal["Contains PII"] = PII_CHECK
    detected_entities: Dict[str, List[str]] = Field(default_factory=dict)
    entity_types_checked: List[str] = Field(default_factory=list)
    block: bool = False


class ModerationInfo(GuardrailInfo):
    guardrail_name: Literal["Moderation"] = MODERATION_CHECK
    flagged_categories: List[str] = Field(default_factory=list)
    category_scores: Dict[str, float] = Field(default_factory=dict)


class LlmCheckInfo(GuardrailInfo):
    """Result of an LLM-judged check (jailbreak, NSFW, prompt injection, ...)."""

    guardrail_name: Literal[
        "Jailbreak",
        "NSFW Text",
        "Prompt Injection Detection",
        "Custom Prompt Check",
        "Off Topic Prompts",
    ]
    flagged: bool = False
    confidence: float = Field(default=0.0, ge=0.0, le=1.0)
    threshold: float = Field(default=0.7, ge=0.0, le=1.0)
    reason: Optional[str] = None


class UrlFilterInfo(GuardrailInfo):
    guardrail_name: Literal["URL Filter"] = URL_FILTER_CHECK
    detected: List[str] = Field(default_factory=list)
    allowed: List[str] = Field(default_factory=list)
    blocked: List[str] = Field(default_factory=list)
    blocked_reasons: List[str] = Field(default_factory=list)


class HallucinationInfo(GuardrailInfo):
    guardrail_name: Literal["Hallucination Detection"] = HALLUCINATION_CHECK
    reasoning: Optional[str] = None
    hallucination_type: Optional[str] = None
    hallucinated_statements: List[str] = Field(default_factory=list)
    verified_statements: List[str] = Field(default_factory=list)


class GenericInfo(GuardrailInfo):
    """Opaque detail for detectors without a dedicated shape."""

    class Config:
        """Pydantic configuration."""

        extra = "allow"


DetectorInfo = Union[PiiInfo, ModerationInfo, LlmCheckInfo, UrlFilterInfo, HallucinationInfo, GenericInfo]


class GuardrailVerdict(BaseModel):
    """Outcome of running one check against one text."""

    check_name: str = Field(..., description="Name of the check")
    tripped: bool = Field(default=False, description="Whether the tripwire fired")
    info: DetectorInfo = Field(..., description="Detector specific detail")
    execution_failed: bool = Field(default=False, description="Detector raised instead of answering")


def any_tripped(verdicts: List[GuardrailVerdict]) -> bool:
    """Logical OR over every verdict; an empty list is never tripped."""
    return any(verdict.tripped for verdict in verdicts or [])


def extract_safe_text(verdicts: List[GuardrailVerdict], fallback: str) -> str:
    """Return the first checked text exposed by a verdict, else ``fallback``."""
    for verdict in verdicts or []:
        checked = verdict.info.checked_text
        if checked is not None:
            return checked
    return fallback


class PiiReport(BaseModel):
    failed: bool = False
    detected_counts: List[str] = Field(default_factory=list)


class ModerationReport(BaseModel):
    failed: bool = False
    flagged_categories: Optional[List[str]] = None


class HallucinationReport(BaseModel):
    failed: bool = False
    reasoning: Optional[str] = None
    hallucination_type: Optional[str] = None
    hallucinated_statements: Optional[List[str]] = None
    verified_statements: Optional[List[str]] = None


class CheckReport(BaseModel):
    failed: bool = False


class GuardrailFailureReport(BaseModel):
    """Per-detector summary returned to callers when the gate rejects input."""

    pii: PiiReport = Field(default_factory=PiiReport)
    moderation: ModerationReport = Field(default_factory=ModerationReport)
    jailbreak: CheckReport = Field(default_factory=CheckReport)
    hallucination: HallucinationReport = Field(default_factory=HallucinationReport)
    nsfw: CheckReport = Field(default_factory=CheckReport)
    url_filter: CheckReport = Field(default_factory=CheckReport)
    custom_prompt_check: CheckReport = Field(default_factory=CheckReport)
    prompt_injection: CheckReport = Field(default_factory=CheckReport)


def build_failure_report(verdicts: List[GuardrailVerdict]) -> GuardrailFailureReport:
    """Summarise verdicts into the fixed failure report shape."""

    def get(name: str) -> Optional[GuardrailVerdict]:
        for verdict in verdicts or []:
            if verdict.info.guardrail_name == name:
                return verdict
        return None

    def tripped(verdict: Optional[GuardrailVerdict]) -> bool:
        return verdict is not None and verdict.tripped

    pii = get(PII_CHECK)
    mod = get(MODERATION_CHECK)
    hal = get(HALLUCINATION_CHECK)

    pii_counts: List[str] = []
    if pii is not None and isinstance(pii.info, PiiInfo):
        pii_counts = [f"{entity}:{len(found)}" for entity, found in pii.info.detected_entities.items() if found]

    flagged_categories = None
    if mod is not None and isinstance(mod.info, ModerationInfo):
        flagged_categories = list(mod.info.flagged_categories)

    hallucination = HallucinationReport(failed=tripped(hal))
    if hal is not None and isinstance(hal.info, HallucinationInfo):
        hallucination.reasoning = hal.info.reasoning
        hallucination.hallucination_type = hal.info.hallucination_type
        hallucination.hallucinated_statements = hal.info.hallucinated_statements
        hallucination.verified_statements = hal.info.verified_statements

    return GuardrailFailureReport(
        pii=PiiReport(failed=bool(pii_counts) or tripped(pii), detected_counts=pii_counts),
        moderation=ModerationReport(
            failed=tripped(mod) or bool(flagged_categories),
            flagged_categories=flagged_categories,
        ),
        jailbreak=CheckReport(failed=tripped(get(JAILBREAK_CHECK))),
        hallucination=hallucination,
        nsfw=CheckReport(failed=tripped(get(NSFW_CHECK))),
        url_filter=CheckReport(failed=tripped(get(URL_FILTER_CHECK))),
        custom_prompt_check=CheckReport(failed=tripped(get(CUSTOM_PROMPT_CHECK))),
        prompt_injection=CheckReport(failed=tripped(get(PROMPT_INJECTION_CHECK))),
    )
