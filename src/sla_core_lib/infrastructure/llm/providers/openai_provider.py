"""
OpenAI provider implementation.

This module implements the OpenAI provider for GPT models over the chat
completions API.
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


class OpenAIProvider(BaseLLMProvider):
    """OpenAI provider implementation"""

    @property
    def provider_name(self) -> str:
        return "openai"

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }

    async def generate(
        self,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        system_prompt: Optional[str] = None,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": prompt})
        return await self.chat(messages, temperature=temperature, output_format=output_format, model=model)

    async def chat(
        self,
        messages: List[Dict[str, str]],
        temperature: float = DEFAULT_TEMPERATURE,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        """Generate response using the chat completions endpoint"""
        started = self._start_timing()
        effective_model = self.get_effective_model(model)

        payload = {
            "model": effective_model,
            "messages": messages,
            "temperature": temperature,
        }
        if output_format == OutputFormat.JSON:
            payload["response_format"] = {"type": "json_object"}

        data = await self._post_json(
            f"{self.config.base_url.rstrip('/')}/chat/completions",
            payload,
            headers=self._headers(),
        )

        choice = self._first_dict(data.get("choices"))
        if not choice:
            raise LLMProviderError("OpenAI API returned no choices", error_code="LLM_EMPTY_RESPONSE")
        content = self._validate_response_content(self._as_dict(choice.get("message")).get("content"))

        usage = self._as_dict(data.get("usage"))
        return LLMResponse(
            content=content,
            provider=self.provider_name,
            model=data.get("model", effective_model),
            tokens_used=usage.get("total_tokens"),
            response_time_ms=self._get_response_time_ms(started),
        )

    async def health_check(self) -> HealthStatus:
        try:
            await self._get_json(f"{self.config.base_url.rstrip('/')}/models", headers=self._headers())
        except LLMProviderError as e:
            return HealthStatus(status="unhealthy", message=f"OpenAI unavailable: {e.message}")
        return HealthStatus(status="healthy", message=f"OpenAI reachable (model {self.config.default_model})")
