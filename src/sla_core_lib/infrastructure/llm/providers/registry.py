"""
Provider registry for the capability gateway.

This module selects and caches provider instances. Providers form a closed
set keyed by ProviderId; the registry keeps one cached instance per provider
and builds a private, uncached instance whenever a caller supplies its own
credential, so request credentials never leak into shared state.

The registry is an ordinary object owned by whoever constructs it (usually
the forensic orchestrator); there is no module-level singleton.
"""

import logging
from enum import Enum
from typing import Dict, Optional, Type, Union

from sla_core_lib.config.settings import LLMSettings

from .anthropic import AnthropicProvider
from .base import BaseLLMProvider, LLMProviderError, ProviderConfig
from .gemini import GeminiProvider
from .ollama_provider import OllamaProvider
from .openai_provider import OpenAIProvider


class ProviderId(str, Enum):
    OLLAMA = "ollama"
    OPENAI = "openai"
    GEMINI = "gemini"
    CLAUDE = "claude"


PROVIDER_ALIASES = {
    "local": ProviderId.OLLAMA,
    "anthropic": ProviderId.CLAUDE,
}


# Data-driven provider schema - single source of truth
PROVIDER_SCHEMA = {
    ProviderId.OLLAMA: {
        "api_key_field": None,  # No API key needed
        "model_field": "ollama_model",
        "base_url_field": "ollama_host",
        "provider_class": OllamaProvider,
    },
    ProviderId.OPENAI: {
        "api_key_field": "openai_api_key",
        "model_field": "openai_model",
        "base_url_field": "openai_base_url",
        "provider_class": OpenAIProvider,
    },
    ProviderId.GEMINI: {
        "api_key_field": "gemini_api_key",
        "model_field": "gemini_model",
        "base_url_field": "gemini_base_url",
        "provider_class": GeminiProvider,
    },
    ProviderId.CLAUDE: {
        "api_key_field": "claude_api_key",
        "model_field": "claude_model",
        "base_url_field": "claude_base_url",
        "provider_class": AnthropicProvider,
    },
}

DEFAULT_PROVIDER = ProviderId.OLLAMA


def _mask(secret: Optional[str]) -> str:
    if not secret:
        return "NOT_SET"
    return secret[:4] + "..."


class ProviderRegistry:
    """Cache of provider instances keyed by provider id"""

    def __init__(
        self,
        settings: Optional[LLMSettings] = None,
        provider_classes: Optional[Dict[ProviderId, Type[BaseLLMProvider]]] = None,
    ):
        self.logger = logging.getLogger(__name__)
        self.settings = settings or LLMSettings()
        self._provider_classes = {
            provider_id: schema["provider_class"] for provider_id, schema in PROVIDER_SCHEMA.items()
        }
        if provider_classes:
            self._provider_classes.update(provider_classes)
        self._instances: Dict[ProviderId, BaseLLMProvider] = {}

    @property
    def default_provider(self) -> ProviderId:
        return self.resolve(self.settings.provider)

    def resolve(self, provider: Union[str, ProviderId, None]) -> ProviderId:
        """Map an identifier onto ProviderId; unknown values fall back to the default"""
        if isinstance(provider, ProviderId):
            return provider
        if not provider:
            provider = self.settings.provider
        name = str(provider).strip().lower()
        if name in PROVIDER_ALIASES:
            return PROVIDER_ALIASES[name]
        try:
            return ProviderId(name)
        except ValueError:
            self.logger.warning(
                f"Unknown provider '{provider}'. Valid options: {[p.value for p in ProviderId]}. "
                f"Using '{DEFAULT_PROVIDER.value}'"
            )
            return DEFAULT_PROVIDER

    def get_service(
        self,
        provider: Union[str, ProviderId, None] = None,
        api_key: Optional[str] = None,
    ) -> BaseLLMProvider:
        """
        Return a provider instance.

        Args:
            provider: Provider identifier; None selects the configured default
            api_key: Per-call credential. When given, a fresh instance is built
                and never cached.

        Raises:
            LLMProviderError: LLM_CONFIG_ERROR when a cloud provider has no key
        """
        provider_id = self.resolve(provider)

        if api_key:
            self.logger.info(f"Creating uncached '{provider_id.value}' instance for per-call credential")
            return self._create(provider_id, api_key)

        instance = self._instances.get(provider_id)
        if instance is None:
            instance = self._create(provider_id, None)
            self._instances[provider_id] = instance
            self.logger.info(f"Provider '{provider_id.value}' initialized (model {instance.config.default_model})")
        return instance

    def _create_config(self, provider_id: ProviderId, api_key: Optional[str]) -> ProviderConfig:
        schema = PROVIDER_SCHEMA[provider_id]
        key_field = schema["api_key_field"]

        key = api_key
        if key is None and key_field:
            secret = getattr(self.settings, key_field)
            key = secret.get_secret_value() if secret else None
        if key_field and not key:
            raise LLMProviderError(
                f"{provider_id.value} API key is not configured",
                error_code="LLM_CONFIG_ERROR",
                context={"provider": provider_id.value, "api_key": _mask(key)},
            )

        model = getattr(self.settings, schema["model_field"])
        return ProviderConfig(
            name=provider_id.value,
            api_key=key,
            base_url=getattr(self.settings, schema["base_url_field"]),
            models=[model],
            default_model=model,
            max_retries=self.settings.max_retries,
            timeout=self.settings.request_timeout,
        )

    def _create(self, provider_id: ProviderId, api_key: Optional[str]) -> BaseLLMProvider:
        config = self._create_config(provider_id, api_key)
        return self._provider_classes[provider_id](config)

    def get_provider_status(self) -> Dict[str, Dict[str, object]]:
        """Per-provider configuration summary; builds nothing"""
        status = {}
        for provider_id, schema in PROVIDER_SCHEMA.items():
            key_field = schema["api_key_field"]
            configured = key_field is None or getattr(self.settings, key_field) is not None
            status[provider_id.value] = {
                "configured": configured,
                "cached": provider_id in self._instances,
                "model": getattr(self.settings, schema["model_field"]),
                "default": provider_id == self.default_provider,
            }
        return status

    def clear(self) -> None:
        """Drop cached instances"""
        self._instances.clear()
