"""
Anthropic provider implementation.

This module implements the Claude provider over the Anthropic messages API.
System instructions travel in the dedicated ``system`` field.
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

ANTHROPIC_VERSION = "2023-06-01"
MAX_OUTPUT_TOKENS = 4096
JSON_INSTRUCTION = "Respond with valid JSON only."


class AnthropicProvider(BaseLLMProvider):
    """Anthropic Claude provider implementation"""

    @property
    def provider_name(self) -> str:
        return "claude"

    def _headers(self) -> Dict[str, str]:
        return {
            "Content-Type": "application/json",
            "x-api-key": self.config.api_key or "",
            "anthropic-version": ANTHROPIC_VERSION,
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
        """
        Generate text using the Anthropic messages API

        Args:
            messages: Role-tagged turns; system turns are merged into ``system``
            temperature: Sampling temperature (0.0-1.0)
            output_format: JSON adds an instruction, the API has no JSON mode
            model: Specific Claude model to use

        Returns:
            LLMResponse with generated text
        """
        started = self._start_timing()
        selected_model = self.get_effective_model(model)

        system, turns = self._split_system_messages(messages)
        if output_format == OutputFormat.JSON:
            system = f"{system}\n\n{JSON_INSTRUCTION}" if system else JSON_INSTRUCTION

        request_body = {
            "model": selected_model,
            "max_tokens": MAX_OUTPUT_TOKENS,
            "temperature": temperature,
            "messages": [{"role": t.get("role", "user"), "content": t.get("content", "")} for t in turns],
        }
        if system:
            request_body["system"] = system

        response_data = await self._post_json(
            f"{self.config.base_url.rstrip('/')}/messages",
            request_body,
            headers=self._headers(),
        )

        # Anthropic returns content as a list of blocks
        content = "".join(
            block["text"]
            for block in self._dict_items(response_data.get("content"))
            if block.get("type") == "text" and isinstance(block.get("text"), str)
        )
        content = self._validate_response_content(content)

        return LLMResponse(
            content=content,
            provider=self.provider_name,
            model=selected_model,
            tokens_used=self._as_dict(response_data.get("usage")).get("output_tokens"),
            response_time_ms=self._get_response_time_ms(started),
        )

    async def health_check(self) -> HealthStatus:
        try:
            await self._get_json(f"{self.config.base_url.rstrip('/')}/models", headers=self._headers())
        except LLMProviderError as e:
            return HealthStatus(status="unhealthy", message=f"Claude unavailable: {e.message}")
        return HealthStatus(status="healthy", message=f"Claude reachable (model {self.config.default_model})")
