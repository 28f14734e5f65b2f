"""
Configuration management and validation for the concierge workflow.

Provides configuration loading from YAML, environment overrides and
validation for the guardrails, agents, model backend and chat layer.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List

from pydantic import BaseModel, Field, ValidationError, field_validator

from concierge.models.guardrail import GuardrailCheck, GuardrailConfig, JAILBREAK_CHECK, PII_CHECK


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""
    pass


class ObservabilityConfig(BaseModel):
    """Configuration for observability settings."""
    enabled: bool = False
    service_name: str = "concierge"
    service_version: str = "1.0.0"
    environment: str = "development"
    otlp_endpoint: str = "http://localhost:4317"
    trace_sampling_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    export_timeout: int = Field(default=30, gt=0)
    resource_attributes: Dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Configuration for logging settings."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="structured", pattern="^(structured|simple)$")
    directory: str = "~/.concierge/logs"
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)  # 10MB
    backup_count: int = Field(default=5, ge=1)
    include_trace: bool = True
    environment: str = "development"


class LLMConfig(BaseModel):
    """Configuration for the model backend."""
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    timeout: float = Field(default=60.0, gt=0)
    workflow_id: str = "wf_6935a33cc3d08190929d3beacafaf4c801ba6ee5195d7f06"
    trace_source: str = "agent-builder"


class GuardrailsConfig(BaseModel):
    """Configuration for the input guardrail gate."""
    input: List[GuardrailCheck] = Field(
        default_factory=lambda: [
            GuardrailCheck(name=JAILBREAK_CHECK, config={"model": "gpt-5-nano", "confidence_threshold": 0.7})
        ]
    )
    fail_closed: bool = False

    def to_guardrail_config(self) -> GuardrailConfig:
        return GuardrailConfig(guardrails=list(self.input))


class AgentSettingsConfig(BaseModel):
    """Per-agent model overrides."""
    model: Optional[str] = None
    temperature: Optional[float] = Field(default=None, ge=0.0, le=2.0)
    top_p: Optional[float] = Field(default=None, ge=0.0, le=1.0)
    max_tokens: Optional[int] = Field(default=None, ge=1)
    max_turns: int = Field(default=10, ge=1, le=50)


class ChatConfig(BaseModel):
    """Configuration for the chat calling layer."""
    storage_directory: str = "~/.concierge/sessions"
    turn_timeout: float = Field(default=120.0, gt=0)
    guardrail_notice: str = "I cannot process that request due to safety guidelines."
    failure_notice: str = "Sorry, something went wrong. Please try again later."
    unexpected_result_notice: str = "Sorry, I encountered an error processing your request."

    @field_validator('guardrail_notice', 'failure_notice', 'unexpected_result_notice')
    def validate_notice(cls, v):
        if not v.strip():
            raise ValueError("notice text cannot be empty")
        return v


class ConciergeConfig(BaseModel):
    """Main concierge configuration."""
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    llm: LLMConfig = Field(default_factory=LLMConfig)
    guardrails: GuardrailsConfig = Field(default_factory=GuardrailsConfig)
    agents: Dict[str, AgentSettingsConfig] = Field(default_factory=dict)
    chat: ChatConfig = Field(default_factory=ChatConfig)

    # Global settings
    debug: bool = False
    config_file_path: Optional[str] = None


class ConfigurationManager:
    """Manages concierge configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.config: Optional[ConciergeConfig] = None

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path."""
        if "CONCIERGE_CONFIG_PATH" in os.environ:
            return os.environ["CONCIERGE_CONFIG_PATH"]

        candidates = [
            "~/.concierge/config.yaml",
            "./config/config.yaml",
            "./config.yaml"
        ]

        for candidate in candidates:
            path = Path(candidate).expanduser()
            if path.exists():
                return str(path)

        return "~/.concierge/config.yaml"

    def load_config(self, config_path: Optional[str] = None) -> ConciergeConfig:
        """Load and validate configuration from file."""
        if config_path:
            self.config_path = config_path

        config_file = Path(self.config_path).expanduser()

        if not config_file.exists():
            self._create_default_config(config_file)

        try:
            with open(config_file, 'r') as f:
                config_data = yaml.safe_load(f) or {}

            config_data = self._merge_environment_config(config_data)

            self.config = ConciergeConfig(**config_data)
            self.config.config_file_path = str(config_file)

            return self.config

        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_file}: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")
        except OSError as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

    def _create_default_config(self, config_file: Path) -> None:
        """Create a default configuration file."""
        config_file.parent.mkdir(parents=True, exist_ok=True)

        default_config = {
            "observability": {
                "enabled": False,
                "service_name": "concierge",
                "environment": "development",
                "otlp_endpoint": os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT", "http://localhost:4317")
            },
            "logging": {
                "level": os.getenv("CONCIERGE_LOG_LEVEL", "INFO"),
                "directory": "~/.concierge/logs"
            },
            "guardrails": {
                "fail_closed": False,
                "input": [
                    {
                        "name": JAILBREAK_CHECK,
                        "config": {"model": "gpt-5-nano", "confidence_threshold": 0.7}
                    },
                    {
                        "name": PII_CHECK,
                        "config": {"block": False}
                    }
                ]
            },
            "agents": {
                "classification": {"model": "gpt-4o-mini"},
                "project": {"model": "gpt-4o-mini"},
                "information": {"model": "gpt-4o-mini"}
            },
            "chat": {
                "storage_directory": "~/.concierge/sessions",
                "turn_timeout": 120
            }
        }

        # The API key is never written to disk; it comes from OPENAI_API_KEY.
        with open(config_file, 'w') as f:
            yaml.dump(default_config, f, default_flow_style=False, indent=2)

    def _merge_environment_config(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration with environment variables."""
        env_mappings = {
            "CONCIERGE_LOG_LEVEL": ["logging", "level"],
            "CONCIERGE_DEBUG": ["debug"],
            "OPENAI_API_KEY": ["llm", "api_key"],
            "OPENAI_BASE_URL": ["llm", "base_url"],
            "OTEL_EXPORTER_OTLP_ENDPOINT": ["observability", "otlp_endpoint"]
        }

        for env_var, config_path in env_mappings.items():
            if env_var in os.environ:
                value = os.environ[env_var]

                if env_var == "CONCIERGE_DEBUG":
                    value = value.lower() in ("true", "1", "yes")

                current = config_data
                for key in config_path[:-1]:
                    current = current.setdefault(key, {})
                current[config_path[-1]] = value

        return config_data

    def get_config(self) -> ConciergeConfig:
        """Get the loaded configuration."""
        if self.config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self.config

    def validate_config(self) -> List[str]:
        """Validate the current configuration and return any warnings."""
        warnings = []
        config = self.get_config()

        if config.debug and config.observability.environment == "production":
            warnings.append("Debug mode enabled in production environment")

        if not config.llm.api_key:
            warnings.append("No API key configured; set OPENAI_API_KEY before running the workflow")

        guardrails = config.guardrails.to_guardrail_config()
        if JAILBREAK_CHECK not in guardrails.names:
            warnings.append("Input guardrails do not include a Jailbreak check")

        for check in guardrails.guardrails:
            if check.name == PII_CHECK and "block" not in check.config:
                warnings.append("PII check has no explicit 'block' flag; history will not be masked")

        for agent_key in config.agents:
            if agent_key not in ("classification", "project", "information"):
                warnings.append(f"Unknown agent settings key: {agent_key}")

        return warnings


def initialize_config(config_path: Optional[str] = None) -> ConfigurationManager:
    """Create a configuration manager and load its file.

    Raises:
        ConfigurationError: If the file cannot be read or fails validation
    """
    config_manager = ConfigurationManager(config_path)
    config_manager.load_config()
    return config_manager
