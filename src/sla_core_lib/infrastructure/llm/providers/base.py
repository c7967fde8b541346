"""
Base provider interface for text-generation providers.

This module defines the capability interface every provider implements
(single-turn generation, multi-turn chat and a liveness check) together with
the response, configuration and error types shared by all providers.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import aiohttp

from sla_core_lib.utils.resilience import call_with_retry

DEFAULT_TEMPERATURE = 0.3


class OutputFormat(str, Enum):
    TEXT = "text"
    JSON = "json"


class LLMProviderError(Exception):
    """Provider failure with a machine-readable code and context"""

    def __init__(self, message: str, error_code: str = "LLM_ERROR", context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.context = context or {}

    def __str__(self) -> str:
        return f"[{self.error_code}] {self.message}"


@dataclass
class LLMResponse:
    """Response from a provider; content is arbitrary text"""

    content: str
    provider: str
    model: str
    tokens_used: Optional[int] = None
    response_time_ms: int = 0


@dataclass
class HealthStatus:
    status: str  # "healthy" | "unhealthy"
    message: str

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"


@dataclass
class ProviderConfig:
    """Configuration for a provider instance"""

    name: str
    api_key: Optional[str] = None
    base_url: Optional[str] = None
    models: List[str] = field(default_factory=list)
    max_retries: int = 3
    timeout: int = 120
    retry_max_wait: float = 8.0
    default_model: Optional[str] = None

    def __post_init__(self):
        if self.default_model is None and self.models:
            self.default_model = self.models[0]


class BaseLLMProvider(ABC):
    """Abstract base class for all providers"""

    def __init__(self, config: ProviderConfig):
        self.config = config
        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the unique name of this provider"""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        system_prompt: Optional[str] = None,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """
        Single-turn generation

        Args:
            prompt: Input prompt
            temperature: Sampling temperature
            system_prompt: Optional system instruction
            output_format: TEXT, or JSON to request the backend's JSON mode
            model: Specific model to use (optional)

        Returns:
            LLMResponse with generated content

        Raises:
            LLMProviderError: on transport, HTTP or empty-content failures
        """

    @abstractmethod
    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = DEFAULT_TEMPERATURE,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Multi-turn chat over ``[{"role": ..., "content": ...}]`` messages"""

    @abstractmethod
    async def health_check(self) -> HealthStatus:
        """Liveness check; never raises"""

    def _start_timing(self) -> float:
        return time.monotonic()

    def _get_response_time_ms(self, started: float) -> int:
        return int((time.monotonic() - started) * 1000)

    def _validate_response_content(self, content: Optional[str]) -> str:
        """Validate and clean response content"""
        if content is None:
            raise LLMProviderError(f"{self.provider_name} returned None content", error_code="LLM_EMPTY_RESPONSE")
        if not isinstance(content, str):
            raise LLMProviderError(
                f"{self.provider_name} returned non-text content ({type(content).__name__})",
                error_code="LLM_INVALID_RESPONSE",
            )

        content = content.strip()
        if not content:
            raise LLMProviderError(f"{self.provider_name} returned empty content", error_code="LLM_EMPTY_RESPONSE")

        return content

    def get_effective_model(self, requested_model: Optional[str] = None) -> str:
        """Get the model to use, with fallback logic"""
        if requested_model:
            return requested_model

        if self.config.default_model:
            return self.config.default_model

        if self.config.models:
            return self.config.models[0]

        raise LLMProviderError(
            f"No valid model available for provider {self.provider_name}",
            error_code="LLM_CONFIG_ERROR",
        )

    @staticmethod
    def _as_dict(value: Any) -> Dict[str, Any]:
        """Nested response objects; anything else reads as empty"""
        return value if isinstance(value, dict) else {}

    @staticmethod
    def _dict_items(value: Any) -> List[Dict[str, Any]]:
        """Object entries of a response list; a non-list reads as empty"""
        if not isinstance(value, list):
            return []
        return [item for item in value if isinstance(item, dict)]

    @staticmethod
    def _first_dict(value: Any) -> Dict[str, Any]:
        if isinstance(value, list) and value and isinstance(value[0], dict):
            return value[0]
        return {}

    @staticmethod
    def _split_system_messages(messages: List[Dict[str, str]]):
        """Separate system instructions from the conversation turns"""
        system_parts = [m.get("content", "") for m in messages if m.get("role") == "system"]
        turns = [m for m in messages if m.get("role") != "system"]
        return "\n\n".join(p for p in system_parts if p) or None, turns

    async def _send(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """One HTTP exchange; non-200 responses raise LLM_REQUEST_ERROR"""
        async with aiohttp.ClientSession() as session:
            async with session.request(
                method,
                url,
                json=payload,
                headers=headers,
                params=params,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as response:
                if response.status != 200:
                    error_text = await response.text()
                    raise LLMProviderError(
                        f"{self.provider_name} API error {response.status}: {error_text[:500]}",
                        error_code="LLM_REQUEST_ERROR",
                        context={"status": response.status, "url": url},
                    )
                return await response.json(content_type=None)

    async def _request_json(
        self,
        method: str,
        url: str,
        payload: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
    ) -> Dict[str, Any]:
        """
        HTTP exchange with retries on transient transport failures.

        Raises:
            LLMProviderError: LLM_TIMEOUT, LLM_CONNECTION_ERROR, or
                LLM_INVALID_RESPONSE when the body is not a JSON object
        """
        try:
            data = await call_with_retry(
                self._send,
                method,
                url,
                payload,
                headers,
                params,
                max_attempts=self.config.max_retries,
                min_wait=0,
                max_wait=self.config.retry_max_wait,
            )
        except asyncio.TimeoutError as e:
            raise LLMProviderError(
                f"{self.provider_name} request timed out after {self.config.timeout} seconds",
                error_code="LLM_TIMEOUT",
                context={"url": url},
            ) from e
        except aiohttp.ClientError as e:
            raise LLMProviderError(
                f"{self.provider_name} connection failed: {e}",
                error_code="LLM_CONNECTION_ERROR",
                context={"url": url},
            ) from e
        except ValueError as e:
            raise LLMProviderError(
                f"{self.provider_name} returned a body that is not JSON: {e}",
                error_code="LLM_INVALID_RESPONSE",
                context={"url": url},
            ) from e

        if not isinstance(data, dict):
            raise LLMProviderError(
                f"{self.provider_name} returned JSON {type(data).__name__}, expected an object",
                error_code="LLM_INVALID_RESPONSE",
                context={"url": url},
            )
        return data

    async def _post_json(self, url: str, payload: Dict[str, Any], **kwargs) -> Dict[str, Any]:
        return await self._request_json("POST", url, payload, **kwargs)

    async def _get_json(self, url: str, **kwargs) -> Dict[str, Any]:
        return await self._request_json("GET", url, **kwargs)
