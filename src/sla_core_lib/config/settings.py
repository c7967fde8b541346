"""Settings for the SLA analytics library.

Two groups of settings are exposed:
- LLMSettings: provider selection, credentials, models and endpoints
- AnalysisSettings: tunable constants used by the statistics engine and the
  forensic orchestrator

Values are read from the process environment. A ``.env`` file in the working
directory is loaded first when present; it never overrides variables that are
already set.
"""

import logging
import os
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, SecretStr, field_validator

logger = logging.getLogger(__name__)


class LLMSettings(BaseModel):
    """Provider configuration for the capability gateway"""

    provider: str = Field("ollama", description="Default provider identifier")

    ollama_host: str = Field("http://localhost:11434", description="Ollama server URL")
    ollama_model: str = Field("llama3.2:3b", description="Ollama model name")

    openai_api_key: Optional[SecretStr] = None
    openai_model: str = "gpt-4o"
    openai_base_url: str = "https://api.openai.com/v1"

    gemini_api_key: Optional[SecretStr] = None
    gemini_model: str = "gemini-pro"
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"

    claude_api_key: Optional[SecretStr] = None
    claude_model: str = "claude-3-5-sonnet-20240620"
    claude_base_url: str = "https://api.anthropic.com/v1"

    request_timeout: int = Field(120, ge=1, description="Request timeout in seconds")
    max_retries: int = Field(3, ge=1, description="Attempts for transport failures")

    @field_validator("provider")
    @classmethod
    def normalize_provider(cls, v):
        """Provider identifiers are matched case-insensitively"""
        return (v or "ollama").strip().lower()

    @field_validator("openai_api_key", "gemini_api_key", "claude_api_key", mode="before")
    @classmethod
    def empty_key_is_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "LLMSettings":
        """Build settings from environment variables"""
        env = os.environ if environ is None else environ
        values = {}
        mapping = {
            "provider": "LLM_PROVIDER",
            "ollama_host": "OLLAMA_HOST",
            "ollama_model": "OLLAMA_MODEL",
            "openai_api_key": "OPENAI_API_KEY",
            "openai_model": "OPENAI_MODEL",
            "openai_base_url": "OPENAI_API_BASE",
            "gemini_api_key": "GEMINI_API_KEY",
            "gemini_model": "GEMINI_MODEL",
            "gemini_base_url": "GEMINI_API_BASE",
            "claude_api_key": "CLAUDE_API_KEY",
            "claude_model": "CLAUDE_MODEL",
            "claude_base_url": "CLAUDE_API_BASE",
            "request_timeout": "LLM_REQUEST_TIMEOUT",
            "max_retries": "LLM_MAX_RETRIES",
        }
        for field_name, env_var in mapping.items():
            raw = env.get(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw
        return cls(**values)


class AnalysisSettings(BaseModel):
    """Constants for deterministic analysis and generative batching"""

    sla_threshold_days: float = Field(5.0, gt=0, description="SLA limit used for breach percentages")
    anomaly_z_threshold: float = Field(3.0, description="|z| above which a step is anomalous")
    min_role_samples: int = Field(5, description="Role needs more samples than this to be a bottleneck")
    min_performer_tasks: int = Field(10, description="Minimum tasks to rank as a performer")
    top_performer_count: int = 5
    risk_z_threshold: float = 1.5
    risk_cap: int = Field(15, description="Maximum risk applications kept")
    applicant_risk_bonus: int = Field(25, description="Risk offset for applicant-side steps")
    zone_limit: int = 6
    department_limit: int = 5

    refinement_delay_threshold: float = Field(7.0, description="Days rested that force refinement")
    refinement_batch_size: int = Field(2, ge=1)
    refinement_cooldown_seconds: float = Field(1.0, ge=0)
    ticket_cooldown_seconds: float = Field(1.0, ge=0)
    forensic_ticket_limit: Optional[int] = Field(None, description="Cap on tickets sent for forensic analysis")
    fallback_provider: str = "ollama"

    # Metric intelligence
    metric_warning_z: float = Field(2.0, gt=0)
    metric_critical_z: float = Field(3.0, gt=0)
    prediction_horizon_days: int = Field(3, ge=1)
    time_series_window: int = Field(14, ge=1, description="Trailing points shown to the model")
    recent_value_window: int = Field(10, ge=1)
    chat_history_limit: int = Field(10, ge=0, description="Prior chat turns forwarded with a question")
    alert_max_length: int = Field(200, ge=20)

    @classmethod
    def from_environment(cls, environ: Optional[Mapping[str, str]] = None) -> "AnalysisSettings":
        env = os.environ if environ is None else environ
        values = {}
        mapping = {
            "sla_threshold_days": "SLA_THRESHOLD_DAYS",
            "refinement_batch_size": "REFINEMENT_BATCH_SIZE",
            "refinement_cooldown_seconds": "REFINEMENT_COOLDOWN_SECONDS",
            "ticket_cooldown_seconds": "TICKET_COOLDOWN_SECONDS",
            "forensic_ticket_limit": "FORENSIC_TICKET_LIMIT",
            "fallback_provider": "FALLBACK_LLM_PROVIDER",
        }
        for field_name, env_var in mapping.items():
            raw = env.get(env_var)
            if raw is not None and raw != "":
                values[field_name] = raw
        return cls(**values)


class Settings(BaseModel):
    llm: LLMSettings = Field(default_factory=LLMSettings)
    analysis: AnalysisSettings = Field(default_factory=AnalysisSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Load settings once per process (``.env`` first, then the environment)"""
    env_file = os.path.join(os.getcwd(), ".env")
    if os.path.exists(env_file):
        logger.info(f"Loading environment from {env_file}")
        load_dotenv(env_file, override=False)
    return Settings(
        llm=LLMSettings.from_environment(),
        analysis=AnalysisSettings.from_environment(),
    )
