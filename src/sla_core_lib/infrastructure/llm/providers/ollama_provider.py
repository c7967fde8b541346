"""
Ollama provider implementation.

This module implements the local provider for self-hosted models served by
an Ollama inference host. No API key is needed.
"""

from typing import Dict, List, Optional

from .base import (
    DEFAULT_TEMPERATURE,
    BaseLLMProvider,
    HealthStatus,
    LLMProviderError,
    LLMResponse,
    OutputFormat,
)


class OllamaProvider(BaseLLMProvider):
    """Local Ollama provider implementation"""

    @property
    def provider_name(self) -> str:
        return "ollama"

    def _url(self, path: str) -> str:
        return f"{self.config.base_url.rstrip('/')}{path}"

    def _options(self, payload: Dict, temperature: float, output_format: OutputFormat) -> Dict:
        payload["stream"] = False
        payload["options"] = {"temperature": temperature}
        if output_format == OutputFormat.JSON:
            payload["format"] = "json"
        return payload

    async def generate(
        self,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        system_prompt: Optional[str] = None,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using the Ollama /api/generate endpoint"""
        started = self._start_timing()
        effective_model = self.get_effective_model(model)

        payload = {"model": effective_model, "prompt": prompt}
        if system_prompt:
            payload["system"] = system_prompt
        self._options(payload, temperature, output_format)

        self.logger.debug(f"Ollama generate: model={effective_model}, prompt chars={len(prompt)}")
        data = await self._post_json(self._url("/api/generate"), payload)
        content = self._validate_response_content(data.get("response"))

        return LLMResponse(
            content=content,
            provider=self.provider_name,
            model=effective_model,
            tokens_used=data.get("eval_count"),
            response_time_ms=self._get_response_time_ms(started),
        )

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = DEFAULT_TEMPERATURE,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Chat using the Ollama /api/chat endpoint"""
        started = self._start_timing()
        effective_model = self.get_effective_model(model)

        payload = {"model": effective_model, "messages": messages}
        self._options(payload, temperature, output_format)

        data = await self._post_json(self._url("/api/chat"), payload)
        message = self._as_dict(data.get("message"))
        content = self._validate_response_content(message.get("content"))

        return LLMResponse(
            content=content,
            provider=self.provider_name,
            model=effective_model,
            tokens_used=data.get("eval_count"),
            response_time_ms=self._get_response_time_ms(started),
        )

    async def health_check(self) -> HealthStatus:
        """List installed models; healthy when the host answers"""
        try:
            data = await self._get_json(self._url("/api/tags"))
        except LLMProviderError as e:
            return HealthStatus(status="unhealthy", message=f"Ollama unreachable: {e.message}")

        installed = [m.get("name", "") for m in self._dict_items(data.get("models"))]
        model = self.config.default_model
        if model and model not in installed:
            return HealthStatus(
                status="healthy",
                message=f"Ollama reachable; model '{model}' not installed ({len(installed)} available)",
            )
        return HealthStatus(status="healthy", message=f"Ollama reachable with {len(installed)} models")
