"""
Google Gemini provider implementation.

This module implements the Gemini provider over the generateContent API.
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

MAX_OUTPUT_TOKENS = 4096


class GeminiProvider(BaseLLMProvider):
    """Google Gemini provider implementation"""

    @property
    def provider_name(self) -> str:
        return "gemini"

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
        Generate text using Google Gemini API

        Args:
            messages: Role-tagged turns; assistant turns map to Gemini's "model" role
            temperature: Sampling temperature (0.0-2.0)
            output_format: JSON sets responseMimeType to application/json
            model: Specific Gemini model to use

        Returns:
            LLMResponse with generated text
        """
        started = self._start_timing()
        selected_model = self.get_effective_model(model)

        system, turns = self._split_system_messages(messages)
        generation_config = {
            "temperature": temperature,
            "maxOutputTokens": MAX_OUTPUT_TOKENS,
        }
        if output_format == OutputFormat.JSON:
            generation_config["responseMimeType"] = "application/json"

        request_body = {
            "contents": [
                {
                    "role": "model" if t.get("role") == "assistant" else "user",
                    "parts": [{"text": t.get("content", "")}],
                }
                for t in turns
            ],
            "generationConfig": generation_config,
        }
        if system:
            request_body["systemInstruction"] = {"parts": [{"text": system}]}

        # API key as query parameter (Gemini API format)
        response_data = await self._post_json(
            f"{self.config.base_url.rstrip('/')}/models/{selected_model}:generateContent",
            request_body,
            params={"key": self.config.api_key or ""},
            headers={"Content-Type": "application/json"},
        )

        candidate = self._first_dict(response_data.get("candidates"))
        if not candidate:
            raise LLMProviderError("Gemini API returned no candidates", error_code="LLM_EMPTY_RESPONSE")
        parts = self._as_dict(candidate.get("content")).get("parts")
        texts = [p["text"] for p in self._dict_items(parts) if isinstance(p.get("text"), str)]
        content = self._validate_response_content("".join(texts))

        return LLMResponse(
            content=content,
            provider=self.provider_name,
            model=selected_model,
            tokens_used=self._as_dict(response_data.get("usageMetadata")).get("totalTokenCount"),
            response_time_ms=self._get_response_time_ms(started),
        )

    async def health_check(self) -> HealthStatus:
        try:
            await self._get_json(
                f"{self.config.base_url.rstrip('/')}/models",
                params={"key": self.config.api_key or ""},
            )
        except LLMProviderError as e:
            return HealthStatus(status="unhealthy", message=f"Gemini unavailable: {e.message}")
        return HealthStatus(status="healthy", message=f"Gemini reachable (model {self.config.default_model})")
