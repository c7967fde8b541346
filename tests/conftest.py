"""Shared fixtures: workflow steps, a scripted provider and a recording sleep."""

from typing import Any, Dict, List, Optional, Sequence, Tuple

import pytest

from sla_core_lib.config.settings import AnalysisSettings, LLMSettings
from sla_core_lib.infrastructure.llm.providers.base import (
    DEFAULT_TEMPERATURE,
    BaseLLMProvider,
    HealthStatus,
    LLMResponse,
    OutputFormat,
    ProviderConfig,
)
from sla_core_lib.infrastructure.llm.providers.registry import ProviderId, ProviderRegistry
from sla_core_lib.models.workflow import WorkflowStep


def make_step(**overrides) -> WorkflowStep:
    fields = dict(
        ticket_id="T-1",
        department="Planning",
        parent_service="Building Permission",
        service_name="Building Plan Approval",
        role="Assistant Engineer",
        zone="Zone 1",
        employee_name="R. Kumar",
        remark="",
        remark_from="R. Kumar",
        days_rested=1.0,
    )
    fields.update(overrides)
    return WorkflowStep(**fields)


class ScriptedProvider(BaseLLMProvider):
    """
    In-memory provider answering by prompt substring.

    ``rules`` is a list of (marker, reply); the first marker found in the
    prompt wins. A reply may be a string, an exception instance (raised) or a
    callable taking the prompt.
    """

    def __init__(self, name: str = "ollama", rules: Sequence[Tuple[str, Any]] = (), default: Any = "OK"):
        super().__init__(ProviderConfig(name=name, base_url="http://scripted", models=["scripted-model"]))
        self._name = name
        self.rules: List[Tuple[str, Any]] = list(rules)
        self.default = default
        self.calls: List[Dict[str, Any]] = []
        self.chats: List[List[Dict[str, str]]] = []

    @property
    def provider_name(self) -> str:
        return self._name

    async def generate(
        self,
        prompt: str,
        temperature: float = DEFAULT_TEMPERATURE,
        system_prompt: Optional[str] = None,
        output_format: OutputFormat = OutputFormat.TEXT,
        model: Optional[str] = None,
    ) -> LLMResponse:
        self.calls.append({
            "prompt": prompt,
            "system_prompt": system_prompt,
            "temperature": temperature,
            "output_format": output_format,
        })
        reply = self.default
        for marker, response in self.rules:
            if marker in prompt:
                reply = response
                break
        if callable(reply) and not isinstance(reply, BaseException):
            reply = reply(prompt)
        if isinstance(reply, BaseException):
            raise reply
        return LLMResponse(content=reply, provider=self._name, model="scripted-model")

    async def chat(self, messages, temperature=DEFAULT_TEMPERATURE, output_format=OutputFormat.TEXT, model=None):
        self.chats.append(list(messages))
        return await self.generate(messages[-1]["content"], temperature=temperature, output_format=output_format)

    async def health_check(self) -> HealthStatus:
        return HealthStatus(status="healthy", message="scripted")

    def prompts_containing(self, marker: str) -> List[str]:
        return [c["prompt"] for c in self.calls if marker in c["prompt"]]


class RecordingSleep:
    """Stands in for asyncio.sleep and records requested delays"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


def registry_with(settings: Optional[LLMSettings] = None, **providers: BaseLLMProvider) -> ProviderRegistry:
    """Registry whose provider ids resolve to the given ready-made instances"""
    factories = {ProviderId(name): (lambda config, p=p: p) for name, p in providers.items()}
    return ProviderRegistry(settings or LLMSettings(), provider_classes=factories)


@pytest.fixture
def step_factory():
    return make_step


@pytest.fixture
def recording_sleep():
    return RecordingSleep()


@pytest.fixture
def fast_settings():
    """Analysis settings with cooldowns kept but no real sleeping involved"""
    return AnalysisSettings(ticket_cooldown_seconds=1.0, refinement_cooldown_seconds=1.0)


@pytest.fixture
def scripted_provider_cls():
    return ScriptedProvider


@pytest.fixture
def make_registry():
    return registry_with
