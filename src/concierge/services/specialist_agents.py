"""Agent catalogue: the classification agent and the two specialists."""

import logging
from typing import Any, Dict, Mapping, Optional

from pydantic import BaseModel, Field

from concierge import prompts
from concierge.lib.config import AgentSettingsConfig
from concierge.models.agent import AgentSpec, ModelSettings, ToolSpec
from concierge.models.classification import ClassificationOutput, Intent


logger = logging.getLogger(__name__)

CLASSIFICATION_AGENT = "classification"
PROJECT_AGENT = "project"
INFORMATION_AGENT = "information"

DEFAULT_MODEL = "gpt-4o-mini"
DEFAULT_TEMPERATURE = 1.0
DEFAULT_TOP_P = 1.0
DEFAULT_MAX_TOKENS = 2048


class ProjectStartInfoArgs(BaseModel):
    """Arguments for the project start info tool."""

    url: str = Field(..., description="sleads.nl page to read project start details from")


def get_project_start_info(args: ProjectStartInfoArgs) -> str:
    """Return project onboarding details for the consultant agent."""
    logger.info(f"get_project_start_info called with url={args.url}")
    return prompts.PROJECT_START_INFO


PROJECT_START_INFO_TOOL = ToolSpec(
    name="getSleadsProjectStartInfo",
    description="Retrieve important information about starting a project with Sleads from the sleads.nl website.",
    parameters=ProjectStartInfoArgs,
    execute=get_project_start_info,
)


def _project_instructions(context: Dict[str, Any]) -> str:
    return prompts.build_project_instructions(context.get("language", ""))


def _settings(
    overrides: Optional[AgentSettingsConfig],
    parallel_tool_calls: Optional[bool] = None
) -> Dict[str, Any]:
    """Model and ModelSettings for one agent, with config overrides applied."""
    overrides = overrides or AgentSettingsConfig()
    return {
        "model": overrides.model or DEFAULT_MODEL,
        "model_settings": ModelSettings(
            temperature=overrides.temperature if overrides.temperature is not None else DEFAULT_TEMPERATURE,
            top_p=overrides.top_p if overrides.top_p is not None else DEFAULT_TOP_P,
            max_tokens=overrides.max_tokens or DEFAULT_MAX_TOKENS,
            parallel_tool_calls=parallel_tool_calls,
        ),
    }


def build_classification_agent(overrides: Optional[AgentSettingsConfig] = None) -> AgentSpec:
    return AgentSpec(
        name="Classification agent",
        instructions=prompts.CLASSIFICATION_INSTRUCTIONS,
        output_schema=ClassificationOutput,
        **_settings(overrides),
    )


def build_project_agent(overrides: Optional[AgentSettingsConfig] = None) -> AgentSpec:
    return AgentSpec(
        name="Project agent",
        instructions=_project_instructions,
        tools=[PROJECT_START_INFO_TOOL],
        **_settings(overrides, parallel_tool_calls=True),
    )


def build_information_agent(overrides: Optional[AgentSettingsConfig] = None) -> AgentSpec:
    return AgentSpec(
        name="Information agent",
        instructions=prompts.INFORMATION_INSTRUCTIONS,
        **_settings(overrides),
    )


class AgentCatalogue:
    """
    Fixed set of agents the workflow can run.

    ``route`` is total: ``start_project`` maps to the project agent and
    every other value to the information agent. The orchestrator checks
    ``is_fallback`` first and answers intents outside the Intent enum with
    the classifier's raw output, so only enum members are ever routed.
    """

    def __init__(
        self,
        classification: AgentSpec,
        project: AgentSpec,
        information: AgentSpec
    ):
        self.classification = classification
        self.project = project
        self.information = information

    @classmethod
    def from_settings(cls, settings: Optional[Mapping[str, AgentSettingsConfig]] = None) -> "AgentCatalogue":
        settings = settings or {}
        return cls(
            classification=build_classification_agent(settings.get(CLASSIFICATION_AGENT)),
            project=build_project_agent(settings.get(PROJECT_AGENT)),
            information=build_information_agent(settings.get(INFORMATION_AGENT)),
        )

    def route(self, intent: str) -> AgentSpec:
        """Pick the specialist for a classified intent."""
        if intent == Intent.START_PROJECT.value:
            return self.project
        return self.information

    def is_fallback(self, intent: str) -> bool:
        """True when ``intent`` is not one the catalogue routes explicitly."""
        return intent not in {i.value for i in Intent}
