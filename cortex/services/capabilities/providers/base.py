"""Common provider interfaces for the capability orchestrator."""

from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Protocol, runtime_checkable

from cortex.services.capabilities.metrics_ledger import MetricsLedger, ProviderMetrics
from cortex.services.capabilities.schemas import (
    ActivationDecision,
    FeedbackOutcome,
    Intervention,
    ReasoningContext,
)
from cortex.utils.logger import get_logger

logger = get_logger(__name__)

PROVIDER_EVENTS = ("metrics_updated", "config_updated")


@runtime_checkable
class CapabilityProvider(Protocol):
    """A protocol that defines the interface for a capability provider."""

    @property
    def id(self) -> str:
        """The unique id of the provider."""
        ...

    async def should_activate(self, context: ReasoningContext) -> ActivationDecision:
        """
        Decide whether the provider wants to run for the given context.

        This must be a pure assessment: it may read the context and the
        provider's own state but must not mutate shared state. Raising is
        treated by the orchestrator as declining to activate.
        """
        ...

    async def intervene(self, context: ReasoningContext) -> Intervention:
        """Produce this provider's intervention. Only called once admitted."""
        ...

    async def receive_feedback(
        self,
        intervention: Intervention,
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
        response_time: float = 0.0,
    ) -> None:
        """Fold the caller's evaluation of an intervention into the ledger."""
        ...

    async def adapt(self, learning_data: Dict[str, Any]) -> None:
        """Out-of-band adaptation hook; never called during a pass."""
        ...

    def get_metrics(self) -> ProviderMetrics:
        ...


class BaseCapabilityProvider(ABC):
    """Abstract base class for capability providers."""

    def __init__(
        self,
        provider_id: str,
        name: str,
        description: str = "",
        version: str = "1.0.0",
        config: Dict[str, Any] | None = None,
    ) -> None:
        self._id = provider_id
        self.name = name
        self.description = description
        self.version = version
        self.config: Dict[str, Any] = dict(config or {})
        self.learning_enabled = True
        self._ledger = MetricsLedger()
        self._event_callbacks: Dict[str, List[Callable]] = {
            event: [] for event in PROVIDER_EVENTS
        }
        self.logger = get_logger(f"{__name__}.{self.__class__.__name__}")

    @property
    def id(self) -> str:
        return self._id

    @abstractmethod
    async def should_activate(self, context: ReasoningContext) -> ActivationDecision:
        """Core activation assessment to be provided by subclasses."""

    @abstractmethod
    async def intervene(self, context: ReasoningContext) -> Intervention:
        """Core intervention to be provided by subclasses."""

    async def receive_feedback(
        self,
        intervention: Intervention,
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
        response_time: float = 0.0,
    ) -> None:
        """Update the ledger, then give subclasses a chance to learn."""
        if not self.learning_enabled:
            return
        self._ledger.record(
            outcome=outcome,
            impact_score=impact_score,
            response_time=response_time,
            complexity=context.complexity,
            domain=context.domain,
        )
        await self._on_feedback(intervention, FeedbackOutcome(outcome), impact_score, context)
        await self._emit("metrics_updated", self.get_metrics())

    async def _on_feedback(
        self,
        intervention: Intervention,
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        """Provider-specific learning; the default does nothing."""

    async def adapt(self, learning_data: Dict[str, Any]) -> None:
        """Optional adaptation hook; the default ignores the data."""

    def record_co_activation(self, other_provider_id: str, outcome: FeedbackOutcome) -> None:
        if self.learning_enabled:
            self._ledger.record_co_activation(other_provider_id, outcome)

    def get_metrics(self) -> ProviderMetrics:
        return self._ledger.snapshot()

    def reset(self) -> None:
        """Reset provider metrics (useful for testing)."""
        self._ledger = MetricsLedger()

    def set_learning_enabled(self, enabled: bool) -> None:
        self.learning_enabled = enabled

    async def update_config(self, new_config: Dict[str, Any]) -> None:
        self.config = {**self.config, **new_config}
        await self._emit("config_updated", dict(new_config))

    def add_event_callback(self, event: str, callback: Callable) -> None:
        """Add callback for provider events"""
        if event in self._event_callbacks:
            self._event_callbacks[event].append(callback)
        else:
            logger.warning(f"Unknown provider event: {event}", provider_id=self.id)

    async def _emit(self, event: str, payload: Any) -> None:
        for callback in self._event_callbacks.get(event, []):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(self.id, payload)
                else:
                    callback(self.id, payload)
            except Exception as e:
                logger.error(
                    "Provider event callback failed",
                    event=event,
                    provider_id=self.id,
                    error=str(e),
                    exc_info=True,
                )

    async def destroy(self) -> None:
        """Release owned resources. Subclasses holding I/O handles extend this."""
        for callbacks in self._event_callbacks.values():
            callbacks.clear()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, version={self.version!r})"


__all__ = [
    "BaseCapabilityProvider",
    "CapabilityProvider",
    "PROVIDER_EVENTS",
]
