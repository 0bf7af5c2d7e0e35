"""
Shared fixtures for the capability orchestrator test-suite.
"""

import asyncio
from typing import Callable, Optional

import pytest

from cortex.services.capabilities.providers.base import BaseCapabilityProvider
from cortex.services.capabilities.schemas import (
    ActivationDecision,
    Intervention,
    InterventionMetadata,
    InterventionType,
    ReasoningContext,
    ResourceRequirements,
)


class StubProvider(BaseCapabilityProvider):
    """Scriptable provider: fixed decision, optional delay and failure modes."""

    def __init__(
        self,
        provider_id: str,
        priority: int = 50,
        load: float = 0.2,
        activate: bool = True,
        delay: float = 0.0,
        fail_activation: bool = False,
        fail_intervene: bool = False,
    ) -> None:
        super().__init__(provider_id, name=f"Stub {provider_id}")
        self.priority = priority
        self.load = load
        self.activate = activate
        self.delay = delay
        self.fail_activation = fail_activation
        self.fail_intervene = fail_intervene
        self.activation_calls = 0
        self.intervene_calls = 0
        self.adapt_calls = []
        self.destroyed = False

    async def should_activate(self, context: ReasoningContext) -> ActivationDecision:
        self.activation_calls += 1
        if self.fail_activation:
            raise RuntimeError(f"{self.id} activation exploded")
        return ActivationDecision(
            should_activate=self.activate,
            priority=self.priority,
            confidence=0.8,
            reason="stub",
            resource_requirements=ResourceRequirements(cognitive_load=self.load),
        )

    async def intervene(self, context: ReasoningContext) -> Intervention:
        self.intervene_calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_intervene:
            raise RuntimeError(f"{self.id} intervention exploded")
        return Intervention(
            type=InterventionType.META_GUIDANCE,
            content=f"guidance from {self.id}",
            metadata=InterventionMetadata(provider_id=self.id, confidence=0.7),
        )

    async def adapt(self, learning_data):
        self.adapt_calls.append(learning_data)

    async def destroy(self) -> None:
        self.destroyed = True
        await super().destroy()


@pytest.fixture
def make_provider() -> Callable[..., StubProvider]:
    """Factory fixture building ``StubProvider`` instances."""

    def _make(provider_id: str, **kwargs) -> StubProvider:
        return StubProvider(provider_id, **kwargs)

    return _make


@pytest.fixture
def context() -> ReasoningContext:
    return ReasoningContext(current_unit="Think about the problem", domain="math")


@pytest.fixture
def make_intervention() -> Callable[..., Intervention]:
    def _make(provider_id: str, content: Optional[str] = None) -> Intervention:
        return Intervention(
            type=InterventionType.PROMPT_INJECTION,
            content=content or f"from {provider_id}",
            metadata=InterventionMetadata(provider_id=provider_id),
        )

    return _make
