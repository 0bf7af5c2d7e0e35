"""
Session wrapper around the capability manager.

Adds cooldown throttling between passes, caller-visible scalar state,
bounded history buffers, derived signals, plain-text recommendations and
best-effort persistence of each processed unit.
"""

from __future__ import annotations

import time
import uuid
from typing import Any, Callable, Dict, List, Optional

from pydantic import BaseModel

from cortex.core.config import settings
from cortex.services import metrics
from cortex.services.capabilities.history import HistoryFilter, HistoryStore
from cortex.services.capabilities.manager import CapabilityManager
from cortex.services.capabilities.metrics_ledger import ProviderMetrics
from cortex.services.capabilities.schemas import (
    CognitiveState,
    DerivedSignal,
    FeedbackOutcome,
    HistoryRecord,
    Intervention,
    ProcessRequest,
    ReasoningContext,
    SessionResult,
    SessionState,
    SignalKind,
)
from cortex.utils.bounded_buffer import BoundedBuffer
from cortex.utils.error_handler import (
    ErrorCategory,
    ErrorSeverity,
    log_orchestration_error,
)
from cortex.utils.logger import add_session_context, get_logger

logger = get_logger(__name__)

COOLDOWN_NOTE = "Cognitive cooldown active - allowing natural processing"
NO_ACTIVATION_NOTE = "No capability provider was admitted for this unit"
DEGRADED_NOTE = "Error in cognitive processing - continuing with basic reasoning"

CONFIDENCE_TRAJECTORY_SIZE = 10


class SessionConfig(BaseModel):
    """Per-session tuning; defaults come from application settings."""

    cooldown_ms: int = 1000
    max_concurrent_interventions: int = 3
    adaptive_priority: bool = True
    learning_enabled: bool = True
    self_optimization_enabled: bool = True
    history_context_limit: int = 10

    # Buffer caps: (max size, retained count after overflow)
    intervention_history: tuple[int, int] = (100, 50)
    signal_history: tuple[int, int] = (50, 25)
    output_history: tuple[int, int] = (50, 25)

    @classmethod
    def from_settings(cls) -> "SessionConfig":
        return cls(
            cooldown_ms=settings.ORCHESTRATOR_INTERVENTION_COOLDOWN_MS,
            max_concurrent_interventions=settings.ORCHESTRATOR_MAX_CONCURRENT_INTERVENTIONS,
            adaptive_priority=settings.ORCHESTRATOR_ADAPTIVE_PRIORITY,
            learning_enabled=settings.ORCHESTRATOR_LEARNING_ENABLED,
            self_optimization_enabled=settings.ORCHESTRATOR_SELF_OPTIMIZATION_ENABLED,
            history_context_limit=settings.HISTORY_CONTEXT_LIMIT,
        )


class CapabilitySession:
    """Stateful front door used by the upstream protocol layer."""

    def __init__(
        self,
        manager: CapabilityManager | None = None,
        history_store: HistoryStore | None = None,
        config: SessionConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.status = SessionState.INITIALIZING
        self.config = config or SessionConfig.from_settings()
        self.manager = manager or CapabilityManager(
            max_concurrent=self.config.max_concurrent_interventions,
            adaptive_priority=self.config.adaptive_priority,
            learning_enabled=self.config.learning_enabled,
        )
        self.history_store = history_store
        self._clock = clock

        self._state = CognitiveState(session_id=str(uuid.uuid4()))
        self._last_intervention_at: Optional[float] = None
        self._interventions: BoundedBuffer[Intervention] = BoundedBuffer(
            *self.config.intervention_history
        )
        self._signals: BoundedBuffer[DerivedSignal] = BoundedBuffer(
            *self.config.signal_history
        )
        self._outputs: BoundedBuffer[str] = BoundedBuffer(*self.config.output_history)
        self._learning_data: Dict[str, Dict[str, Any]] = {}
        self._adaptation_triggers: set[str] = set()

        self.status = SessionState.READY
        logger.info(
            "Capability session initialized",
            cooldown_ms=self.config.cooldown_ms,
            providers=len(self.manager.get_providers()),
            **add_session_context(self._state.session_id),
        )

    # ------------------------------------------------------------------
    # Per-unit processing
    # ------------------------------------------------------------------

    async def process(self, request: ProcessRequest) -> SessionResult:
        """Process one unit of work and return the full result bundle."""
        self._update_state(request)
        history = await self._load_history()
        context = self._build_context(request, history)

        result = await self.orchestrate(context)

        # Throttled and degraded passes leave no trace in history.
        if result.note not in (COOLDOWN_NOTE, DEGRADED_NOTE):
            await self._persist(request, context, result.interventions)
        return result

    async def orchestrate(self, context: ReasoningContext) -> SessionResult:
        """Run one pass through the manager, honouring the cooldown."""
        if self._cooling_down():
            self.status = SessionState.COOLING_DOWN
            metrics.ORCHESTRATION_PASSES_TOTAL.labels("cooldown").inc()
            logger.debug(
                "Cooldown active; skipping orchestration",
                **add_session_context(self._state.session_id, self._state.pass_count),
            )
            return self._result(context, [], [], note=COOLDOWN_NOTE)

        self.status = SessionState.PROCESSING
        try:
            interventions = await self.manager.orchestrate(context)
        except Exception as e:
            log_orchestration_error(
                "CapabilitySession",
                "orchestrate",
                e,
                ErrorSeverity.HIGH,
                ErrorCategory.INFRASTRUCTURE,
                degraded=True,
                **add_session_context(self._state.session_id, self._state.pass_count),
            )
            metrics.ORCHESTRATION_PASSES_TOTAL.labels("error").inc()
            self.status = SessionState.READY
            return self._result(context, [], [], note=DEGRADED_NOTE)

        signals = self.detect_signals(context, interventions)
        self._interventions.extend(interventions)
        self._signals.extend(signals)
        if interventions:
            self._outputs.append("\n".join(i.content for i in interventions))
            self._last_intervention_at = self._clock()

        self.status = SessionState.READY
        note = None if interventions else NO_ACTIVATION_NOTE
        return self._result(context, interventions, signals, note=note)

    def _cooling_down(self) -> bool:
        if self._last_intervention_at is None:
            return False
        elapsed_ms = (self._clock() - self._last_intervention_at) * 1000
        return elapsed_ms < self.config.cooldown_ms

    def _result(
        self,
        context: ReasoningContext,
        interventions: List[Intervention],
        signals: List[DerivedSignal],
        note: Optional[str] = None,
    ) -> SessionResult:
        recommendations = self.generate_recommendations(context, interventions, signals)
        if note in (COOLDOWN_NOTE, DEGRADED_NOTE):
            recommendations = [note]
        return SessionResult(
            interventions=interventions,
            signals=signals,
            state=self.get_state(),
            recommendations=recommendations,
            note=note,
            context=context,
        )

    # ------------------------------------------------------------------
    # Context assembly
    # ------------------------------------------------------------------

    def _update_state(self, request: ProcessRequest) -> None:
        state = self._state
        state.pass_count += 1
        if request.session_id and request.session_id != state.session_id:
            state.session_id = request.session_id
        if request.complexity is not None:
            state.current_complexity = request.complexity
        if request.confidence is not None:
            state.confidence_trajectory.append(request.confidence)
            state.confidence_trajectory = state.confidence_trajectory[
                -CONFIDENCE_TRAJECTORY_SIZE:
            ]
        for field_name in ("curiosity", "frustration", "engagement", "metacognitive_awareness"):
            value = getattr(request, field_name)
            if value is not None:
                setattr(state, field_name, value)

    async def _load_history(self) -> List[HistoryRecord]:
        if self.history_store is None or self.config.history_context_limit <= 0:
            return []
        try:
            return await self.history_store.query(
                HistoryFilter(
                    session_id=self._state.session_id,
                    limit=self.config.history_context_limit,
                )
            )
        except Exception as e:
            log_orchestration_error(
                "CapabilitySession",
                "load_history",
                e,
                ErrorSeverity.LOW,
                ErrorCategory.PERSISTENCE,
                **add_session_context(self._state.session_id),
            )
            return []

    def _build_context(
        self, request: ProcessRequest, history: List[HistoryRecord]
    ) -> ReasoningContext:
        state = self._state
        return ReasoningContext(
            current_unit=request.unit,
            history=history,
            domain=request.domain,
            complexity=state.current_complexity,
            urgency=request.urgency,
            confidence=state.latest_confidence,
            curiosity=state.curiosity,
            frustration=state.frustration,
            engagement=state.engagement,
            metacognitive_awareness=state.metacognitive_awareness,
            session_id=state.session_id,
            available_tools=request.available_tools,
            last_output=self._outputs.last(),
            context_trace=self._outputs.recent(5),
        )

    async def _persist(
        self,
        request: ProcessRequest,
        context: ReasoningContext,
        interventions: List[Intervention],
    ) -> None:
        if self.history_store is None:
            return
        tags = []
        if context.domain:
            tags.append(context.domain)
        if context.complexity > 7:
            tags.append("complex")
        if context.confidence > 0.8:
            tags.append("high_confidence")
        if interventions:
            tags.append("cognitive_intervention")
        record = HistoryRecord(
            session_id=self._state.session_id,
            unit=request.unit,
            domain=context.domain,
            complexity=context.complexity,
            confidence=context.confidence,
            output="\n".join(i.content for i in interventions),
            provider_ids=[i.provider_id for i in interventions],
            tags=tags,
        )
        try:
            await self.history_store.append(record)
        except Exception as e:
            log_orchestration_error(
                "CapabilitySession",
                "persist",
                e,
                ErrorSeverity.LOW,
                ErrorCategory.PERSISTENCE,
                **add_session_context(self._state.session_id),
            )

    # ------------------------------------------------------------------
    # Signals and recommendations
    # ------------------------------------------------------------------

    def detect_signals(
        self, context: ReasoningContext, interventions: List[Intervention]
    ) -> List[DerivedSignal]:
        signals: List[DerivedSignal] = []

        provider_ids = list(dict.fromkeys(i.provider_id for i in interventions))
        if len(provider_ids) >= 2:
            confidence = sum(i.metadata.confidence for i in interventions) / len(interventions)
            signals.append(
                DerivedSignal(
                    kind=SignalKind.MULTI_PERSPECTIVE,
                    confidence=confidence,
                    description=f"{len(provider_ids)} providers contributed to this unit",
                    provider_ids=provider_ids,
                )
            )

        trajectory = self._state.confidence_trajectory
        if len(trajectory) >= 6:
            recent = sum(trajectory[-3:]) / 3
            earlier = sum(trajectory[-6:-3]) / 3
            shift = recent - earlier
            if abs(shift) > 0.2:
                direction = "rose" if shift > 0 else "fell"
                signals.append(
                    DerivedSignal(
                        kind=SignalKind.CONFIDENCE_SHIFT,
                        confidence=min(1.0, abs(shift) * 2),
                        description=f"Confidence {direction} by {abs(shift):.2f} over recent units",
                    )
                )

        if context.confidence < 0.3:
            signals.append(
                DerivedSignal(
                    kind=SignalKind.LOW_CONFIDENCE,
                    confidence=1.0 - context.confidence,
                    description="Confidence in the current unit is low",
                )
            )

        if context.frustration > 0.7:
            signals.append(
                DerivedSignal(
                    kind=SignalKind.HIGH_FRUSTRATION,
                    confidence=context.frustration,
                    description="Frustration is elevated",
                )
            )

        return signals

    def generate_recommendations(
        self,
        context: ReasoningContext,
        interventions: List[Intervention],
        signals: List[DerivedSignal],
    ) -> List[str]:
        recommendations: List[str] = []

        if context.complexity > 8 and context.confidence > 0.8:
            recommendations.append(
                "Consider breaking down this complex problem into smaller components"
            )
        if context.confidence < 0.3:
            recommendations.append(
                "Low confidence detected - consider gathering more information"
            )
        if not interventions and context.complexity > 6:
            recommendations.append(
                "Complex problem with no cognitive interventions - consider seeking "
                "alternative perspectives"
            )
        if signals:
            recommendations.append(
                f"{len(signals)} cognitive signal(s) detected - consider exploring these further"
            )
        if context.frustration > 0.7:
            recommendations.append(
                "High frustration detected - consider taking a break or changing approach"
            )
        if context.metacognitive_awareness < 0.4:
            recommendations.append(
                "Low metacognitive awareness - consider reflecting on your thinking process"
            )

        return recommendations

    # ------------------------------------------------------------------
    # Feedback and adaptation
    # ------------------------------------------------------------------

    async def provide_feedback(
        self,
        interventions: List[Intervention],
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        """Forward feedback to providers and fold it into session-level state."""
        outcome = FeedbackOutcome(outcome)
        try:
            await self.manager.provide_feedback(interventions, outcome, impact_score, context)
            self._update_state_from_feedback(outcome, impact_score)
            self._record_learning(interventions, outcome, impact_score, context)
            self._check_adaptation_triggers(outcome, impact_score)
            if self._adaptation_triggers and self.config.self_optimization_enabled:
                await self.adapt()
        except Exception as e:
            log_orchestration_error(
                "CapabilitySession",
                "provide_feedback",
                e,
                ErrorSeverity.MEDIUM,
                outcome=outcome.value,
                impact_score=impact_score,
                **add_session_context(self._state.session_id),
            )

    def _update_state_from_feedback(self, outcome: FeedbackOutcome, impact_score: float) -> None:
        state = self._state
        state.recent_success_rate = state.recent_success_rate * 0.9 + outcome.success_value * 0.1
        state.cognitive_efficiency = state.cognitive_efficiency * 0.9 + impact_score * 0.1

    def _record_learning(
        self,
        interventions: List[Intervention],
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        key = f"{context.domain}_{context.complexity_bucket.value}_{outcome.value}"
        entry = self._learning_data.setdefault(
            key, {"count": 0, "total_impact": 0.0, "providers": {}}
        )
        entry["count"] += 1
        entry["total_impact"] += impact_score
        if interventions:
            share = impact_score / len(interventions)
            for intervention in interventions:
                providers = entry["providers"]
                providers[intervention.provider_id] = (
                    providers.get(intervention.provider_id, 0.0) + share
                )

    def _check_adaptation_triggers(self, outcome: FeedbackOutcome, impact_score: float) -> None:
        if outcome is FeedbackOutcome.FAILURE and impact_score < 0.3:
            self._adaptation_triggers.add("poor_performance")
        if self._state.recent_success_rate < 0.4:
            self._adaptation_triggers.add("low_success_rate")
        if self._state.cognitive_efficiency < 0.4:
            self._adaptation_triggers.add("low_efficiency")

    async def adapt(self) -> None:
        """Out-of-band: hand accumulated learning data to every provider."""
        learning_data = {
            "triggers": sorted(self._adaptation_triggers),
            "learning": {key: dict(value) for key, value in self._learning_data.items()},
            "recent_success_rate": self._state.recent_success_rate,
            "cognitive_efficiency": self._state.cognitive_efficiency,
        }
        logger.info(
            "Adapting providers",
            triggers=learning_data["triggers"],
            **add_session_context(self._state.session_id),
        )
        await self.manager.adapt_providers(learning_data)
        self._adaptation_triggers.clear()

    # ------------------------------------------------------------------
    # Administrative surface
    # ------------------------------------------------------------------

    def get_state(self) -> CognitiveState:
        return self._state.model_copy(deep=True)

    def get_performance_summary(self) -> Dict[str, ProviderMetrics]:
        return self.manager.get_performance_summary()

    @property
    def adaptation_triggers(self) -> set[str]:
        return set(self._adaptation_triggers)

    @property
    def intervention_history(self) -> List[Intervention]:
        return self._interventions.to_list()

    @property
    def signal_history(self) -> List[DerivedSignal]:
        return self._signals.to_list()

    @property
    def output_history(self) -> List[str]:
        return self._outputs.to_list()

    def reset(self, include_providers: bool = False) -> None:
        """Clear buffers and restore scalar state defaults (useful for testing)."""
        self._state = CognitiveState(session_id=str(uuid.uuid4()))
        self._last_intervention_at = None
        self._interventions.clear()
        self._signals.clear()
        self._outputs.clear()
        self._learning_data.clear()
        self._adaptation_triggers.clear()
        if include_providers:
            for provider in self.manager.get_providers():
                reset = getattr(provider, "reset", None)
                if reset is not None:
                    reset()
        self.status = SessionState.READY
        logger.info("Capability session reset", **add_session_context(self._state.session_id))
