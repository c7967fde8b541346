from sla_core_lib.config.settings import (
    AnalysisSettings,
    LLMSettings,
    Settings,
    get_settings,
)

__all__ = ["AnalysisSettings", "LLMSettings", "Settings", "get_settings"]
