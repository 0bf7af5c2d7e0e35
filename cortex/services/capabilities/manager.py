"""Orchestrator for pluggable capability providers."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Optional

from cortex.services import metrics
from cortex.services.capabilities.admission import (
    AdmissionController,
    AdmissionResult,
    Candidate,
)
from cortex.services.capabilities.metrics_ledger import ProviderMetrics
from cortex.services.capabilities.providers.base import CapabilityProvider
from cortex.services.capabilities.registry import ConflictDependencyRegistry
from cortex.services.capabilities.schemas import (
    ActivationDecision,
    FeedbackOutcome,
    Intervention,
    ReasoningContext,
)
from cortex.utils.error_handler import (
    DuplicateProviderError,
    ErrorCategory,
    ErrorSeverity,
    UnknownProviderError,
    log_orchestration_error,
)
from cortex.utils.logger import add_provider_context, get_logger

logger = get_logger(__name__)

MANAGER_EVENTS = (
    "provider_registered",
    "provider_unregistered",
    "provider_metrics_updated",
    "provider_config_updated",
    "orchestration_complete",
    "orchestration_error",
)


@dataclass
class ActiveIntervention:
    """An intervention awaiting feedback"""

    intervention: Intervention
    response_time: float


class CapabilityManager:
    """
    Registry and orchestration engine for capability providers.

    One pass fans ``should_activate`` out to every provider, ranks and admits
    the activated ones, then fans ``intervene`` out to the admitted subset.
    Provider failures are isolated per call; anything else propagates.
    """

    def __init__(
        self,
        providers: Iterable[CapabilityProvider] | None = None,
        max_concurrent: int = 3,
        adaptive_priority: bool = True,
        learning_enabled: bool = True,
    ) -> None:
        self._providers: Dict[str, CapabilityProvider] = {}
        self._active: Dict[str, ActiveIntervention] = {}
        self.relations = ConflictDependencyRegistry()
        self.admission = AdmissionController(
            self.relations,
            max_concurrent=max_concurrent,
            adaptive_priority=adaptive_priority,
        )
        self.learning_enabled = learning_enabled
        self._event_callbacks: Dict[str, List[Callable]] = {
            event: [] for event in MANAGER_EVENTS
        }
        self._pending_events: List[asyncio.Task] = []

        for provider in providers or []:
            self.register_provider(provider)

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def register_provider(self, provider: CapabilityProvider) -> None:
        """Register a provider; duplicate ids are a configuration error."""
        if provider.id in self._providers:
            raise DuplicateProviderError(provider.id)

        self._providers[provider.id] = provider

        add_callback = getattr(provider, "add_event_callback", None)
        if add_callback is not None:
            add_callback("metrics_updated", self._forward_metrics_updated)
            add_callback("config_updated", self._forward_config_updated)

        logger.info(
            "Registered capability provider",
            provider_id=provider.id,
            name=getattr(provider, "name", provider.__class__.__name__),
            version=getattr(provider, "version", None),
        )
        self._emit_soon("provider_registered", provider_id=provider.id)

    async def unregister_provider(self, provider_id: str) -> bool:
        """Remove a provider, its pending intervention and every edge touching it."""
        provider = self._providers.pop(provider_id, None)
        if provider is None:
            return False

        self._active.pop(provider_id, None)
        self.relations.remove(provider_id)

        destroy = getattr(provider, "destroy", None)
        if destroy is not None:
            try:
                await destroy()
            except Exception as e:
                log_orchestration_error(
                    "CapabilityManager",
                    "unregister_provider",
                    e,
                    ErrorSeverity.MEDIUM,
                    ErrorCategory.PROVIDER,
                    **add_provider_context(provider_id, "destroy"),
                )

        logger.info("Unregistered capability provider", provider_id=provider_id)
        await self._notify("provider_unregistered", provider_id=provider_id)
        return True

    def get_providers(self) -> List[CapabilityProvider]:
        return list(self._providers.values())

    def get_provider(self, provider_id: str) -> Optional[CapabilityProvider]:
        return self._providers.get(provider_id)

    def set_conflicts(self, provider_id: str, conflicting_ids: Iterable[str]) -> None:
        """Declare mutual exclusion between ``provider_id`` and each of ``conflicting_ids``."""
        conflicting_ids = list(conflicting_ids)
        self._require_known(provider_id, *conflicting_ids)
        self.relations.set_conflicts(provider_id, conflicting_ids)

    def set_dependencies(self, provider_id: str, dependency_ids: Iterable[str]) -> None:
        """Declare providers that must already be admitted before ``provider_id``."""
        dependency_ids = list(dependency_ids)
        self._require_known(provider_id, *dependency_ids)
        self.relations.set_dependencies(provider_id, dependency_ids)

    def _require_known(self, *provider_ids: str) -> None:
        for provider_id in provider_ids:
            if provider_id not in self._providers:
                raise UnknownProviderError(provider_id)

    @property
    def active_interventions(self) -> Dict[str, Intervention]:
        return {pid: entry.intervention for pid, entry in self._active.items()}

    # ------------------------------------------------------------------
    # Orchestration
    # ------------------------------------------------------------------

    async def orchestrate(self, context: ReasoningContext) -> List[Intervention]:
        """
        Run one orchestration pass.

        Args:
            context: Read-only snapshot shared by every provider in this pass

        Returns:
            Interventions in admission order; may be empty

        Raises:
            Any error raised outside the per-provider isolation boundary.
        """
        start = time.perf_counter()
        try:
            providers = list(self._providers.values())
            decisions = await asyncio.gather(
                *[self._safe_should_activate(p, context) for p in providers]
            )
            candidates = [
                Candidate(provider=provider, decision=decision)
                for provider, decision in zip(providers, decisions)
                if decision is not None and decision.should_activate
            ]

            ranked = self.admission.rank(candidates, context)
            admission = self.admission.select(ranked)

            results = await asyncio.gather(
                *[self._safe_intervene(c.provider, context) for c in admission.selected]
            )
            interventions = [result for result in results if result is not None]

            duration = time.perf_counter() - start
            self._record_pass(admission, interventions, duration, len(providers))
        except Exception as e:
            log_orchestration_error(
                "CapabilityManager",
                "orchestrate",
                e,
                ErrorSeverity.CRITICAL,
                ErrorCategory.INFRASTRUCTURE,
                domain=context.domain,
            )
            await self._notify("orchestration_error", error=str(e))
            raise

        await self._notify(
            "orchestration_complete",
            interventions=interventions,
            duration=duration,
            providers_activated=len(admission.selected),
            providers_considered=len(providers),
        )
        return interventions

    async def _safe_should_activate(
        self, provider: CapabilityProvider, context: ReasoningContext
    ) -> Optional[ActivationDecision]:
        """Query a provider, treating any failure as a decline."""
        try:
            with metrics.PROVIDER_LATENCY_SECONDS.labels(provider.id, "activation").time():
                decision = await provider.should_activate(context)
            decision = ActivationDecision.model_validate(decision)
            metrics.PROVIDER_CALLS_TOTAL.labels(provider.id, "activation").inc()
            return decision
        except Exception as e:
            metrics.PROVIDER_FAILURES_TOTAL.labels(provider.id, "activation").inc()
            log_orchestration_error(
                "CapabilityManager",
                "orchestrate",
                e,
                ErrorSeverity.MEDIUM,
                ErrorCategory.PROVIDER,
                **add_provider_context(provider.id, "activation"),
            )
            return None

    async def _safe_intervene(
        self, provider: CapabilityProvider, context: ReasoningContext
    ) -> Optional[Intervention]:
        """Run a provider's intervention; a failure only drops this provider's output."""
        started = time.perf_counter()
        try:
            intervention = Intervention.model_validate(await provider.intervene(context))
        except Exception as e:
            metrics.PROVIDER_FAILURES_TOTAL.labels(provider.id, "intervention").inc()
            log_orchestration_error(
                "CapabilityManager",
                "orchestrate",
                e,
                ErrorSeverity.HIGH,
                ErrorCategory.PROVIDER,
                **add_provider_context(provider.id, "intervention"),
            )
            return None

        elapsed = time.perf_counter() - started
        metrics.PROVIDER_LATENCY_SECONDS.labels(provider.id, "intervention").observe(elapsed)
        metrics.PROVIDER_CALLS_TOTAL.labels(provider.id, "intervention").inc()
        self._active[provider.id] = ActiveIntervention(intervention, elapsed)
        return intervention

    def _record_pass(
        self,
        admission: AdmissionResult,
        interventions: List[Intervention],
        duration: float,
        considered: int,
    ) -> None:
        metrics.ORCHESTRATION_PASSES_TOTAL.labels(
            "interventions" if interventions else "empty"
        ).inc()
        metrics.ORCHESTRATION_SELECTED_PROVIDERS.observe(len(admission.selected))
        metrics.ORCHESTRATION_LOAD_USED.observe(admission.load_used)
        metrics.ORCHESTRATION_DURATION_SECONDS.observe(duration)
        logger.info(
            "Orchestration pass complete",
            providers_considered=considered,
            providers_selected=admission.selected_ids,
            interventions=len(interventions),
            load_used=round(admission.load_used, 4),
            duration_ms=round(duration * 1000, 2),
        )

    # ------------------------------------------------------------------
    # Feedback
    # ------------------------------------------------------------------

    async def provide_feedback(
        self,
        interventions: List[Intervention],
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        """
        Deliver the caller's evaluation to every provider that contributed.

        The owning provider is resolved from ``metadata.provider_id``; the
        caller is trusted to pass back interventions it received.
        """
        outcome = FeedbackOutcome(outcome)
        metrics.FEEDBACK_EVENTS_TOTAL.labels(outcome.value).inc()

        if self.learning_enabled:
            await asyncio.gather(
                *[
                    self._safe_feedback(intervention, outcome, impact_score, context)
                    for intervention in interventions
                ]
            )
            self._record_co_activation(interventions, outcome)

        for intervention in interventions:
            self._active.pop(intervention.provider_id, None)

    async def _safe_feedback(
        self,
        intervention: Intervention,
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        provider_id = intervention.provider_id
        provider = self._providers.get(provider_id)
        if provider is None:
            logger.warning(
                "Feedback for unknown provider ignored", provider_id=provider_id
            )
            return

        active = self._active.get(provider_id)
        response_time = active.response_time if active else 0.0
        try:
            await provider.receive_feedback(
                intervention, outcome, impact_score, context, response_time=response_time
            )
            metrics.PROVIDER_CALLS_TOTAL.labels(provider_id, "feedback").inc()
        except Exception as e:
            metrics.PROVIDER_FAILURES_TOTAL.labels(provider_id, "feedback").inc()
            log_orchestration_error(
                "CapabilityManager",
                "provide_feedback",
                e,
                ErrorSeverity.MEDIUM,
                ErrorCategory.PROVIDER,
                outcome=outcome.value,
                **add_provider_context(provider_id, "feedback"),
            )

    def _record_co_activation(
        self, interventions: List[Intervention], outcome: FeedbackOutcome
    ) -> None:
        provider_ids = list(dict.fromkeys(i.provider_id for i in interventions))
        if len(provider_ids) < 2:
            return
        for provider_id in provider_ids:
            provider = self._providers.get(provider_id)
            record = getattr(provider, "record_co_activation", None)
            if record is None:
                continue
            for other_id in provider_ids:
                if other_id != provider_id:
                    record(other_id, outcome)

    # ------------------------------------------------------------------
    # Administrative surface
    # ------------------------------------------------------------------

    def get_performance_summary(self) -> Dict[str, ProviderMetrics]:
        return {pid: provider.get_metrics() for pid, provider in self._providers.items()}

    async def adapt_providers(self, learning_data: Dict[str, Any]) -> None:
        """Hand accumulated learning data to every provider, out of band."""
        for provider_id, provider in list(self._providers.items()):
            try:
                await provider.adapt(learning_data)
            except Exception as e:
                log_orchestration_error(
                    "CapabilityManager",
                    "adapt_providers",
                    e,
                    ErrorSeverity.MEDIUM,
                    ErrorCategory.PROVIDER,
                    **add_provider_context(provider_id, "adapt"),
                )

    async def destroy(self) -> None:
        """Destroy every provider and clear all registries."""
        for provider_id in list(self._providers):
            await self.unregister_provider(provider_id)
        for task in self._pending_events:
            task.cancel()
        self._pending_events.clear()
        for callbacks in self._event_callbacks.values():
            callbacks.clear()
        self._active.clear()
        self.relations.clear()

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_callback(self, event: str, callback: Callable) -> None:
        """Add callback for manager events"""
        if event in self._event_callbacks:
            self._event_callbacks[event].append(callback)
        else:
            logger.warning(f"Unknown manager event: {event}")

    async def _notify(self, event: str, **payload: Any) -> None:
        """Notify all callbacks for an event"""
        for callback in self._event_callbacks.get(event, []):
            try:
                if asyncio.iscoroutinefunction(callback):
                    await callback(**payload)
                else:
                    callback(**payload)
            except Exception as e:
                logger.error(
                    "Manager event callback failed",
                    event=event,
                    error=str(e),
                    exc_info=True,
                )

    def _emit_soon(self, event: str, **payload: Any) -> None:
        """Notify from synchronous code: run now without a loop, else schedule."""
        if not self._event_callbacks.get(event):
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            asyncio.run(self._notify(event, **payload))
            return
        task = loop.create_task(self._notify(event, **payload))
        self._pending_events.append(task)
        task.add_done_callback(self._pending_events.remove)

    async def _forward_metrics_updated(self, provider_id: str, provider_metrics: Any) -> None:
        await self._notify(
            "provider_metrics_updated", provider_id=provider_id, metrics=provider_metrics
        )

    async def _forward_config_updated(self, provider_id: str, config: Any) -> None:
        await self._notify("provider_config_updated", provider_id=provider_id, config=config)
