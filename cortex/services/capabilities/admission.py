"""
Admission control for capability providers.

Ranks activated providers by an adaptive priority derived from their
historical performance, then greedily admits them under a shared cognitive
load budget, registered conflicts, declared dependencies and a concurrency
cap.
"""

from dataclasses import dataclass, field
from typing import List, Sequence, Set

from cortex.services.capabilities.metrics_ledger import ProviderMetrics
from cortex.services.capabilities.providers.base import CapabilityProvider
from cortex.services.capabilities.registry import ConflictDependencyRegistry
from cortex.services.capabilities.schemas import ActivationDecision, ReasoningContext
from cortex.utils.logger import get_logger

logger = get_logger(__name__)

MAX_COGNITIVE_LOAD = 1.0


@dataclass
class Candidate:
    """An activated provider waiting for admission"""

    provider: CapabilityProvider
    decision: ActivationDecision
    effective_priority: float = 0.0

    @property
    def provider_id(self) -> str:
        return self.provider.id

    @property
    def cognitive_load(self) -> float:
        return self.decision.resource_requirements.cognitive_load


@dataclass
class AdmissionResult:
    """Outcome of one greedy admission scan"""

    selected: List[Candidate] = field(default_factory=list)
    load_used: float = 0.0
    skipped_for_load: List[str] = field(default_factory=list)
    skipped_for_conflict: List[str] = field(default_factory=list)
    skipped_for_dependency: List[str] = field(default_factory=list)
    truncated: List[str] = field(default_factory=list)

    @property
    def selected_ids(self) -> List[str]:
        return [c.provider_id for c in self.selected]


class AdmissionController:
    """
    Priority computation plus greedy selection.

    The scan is a single pass with no rollback: once a candidate is admitted
    its load stays committed. A dependency ranked below its dependent can
    therefore never be satisfied within the same pass.
    """

    def __init__(
        self,
        registry: ConflictDependencyRegistry,
        max_concurrent: int = 3,
        adaptive_priority: bool = True,
        max_load: float = MAX_COGNITIVE_LOAD,
    ):
        """
        Initialize admission controller.

        Args:
            registry: Conflict/dependency edges consulted during selection
            max_concurrent: Maximum providers admitted per pass
            adaptive_priority: Scale declared priority by historical performance
            max_load: Per-pass cognitive load budget
        """
        self.registry = registry
        self.max_concurrent = max(1, max_concurrent)
        self.adaptive_priority = adaptive_priority
        self.max_load = max_load

    def effective_priority(
        self,
        decision: ActivationDecision,
        metrics: ProviderMetrics,
        context: ReasoningContext,
    ) -> float:
        """
        Calculate effective priority from declared priority and history.

        Args:
            decision: The provider's activation decision
            metrics: Snapshot of the provider's ledger
            context: Context of the current pass

        Returns:
            Effective priority (higher = admitted earlier)
        """
        base_priority = float(decision.priority)
        if not self.adaptive_priority:
            return base_priority

        success_multiplier = 0.5 + 0.5 * metrics.success_rate

        domain_multiplier = 1.0
        if context.domain and context.domain in metrics.performance_by_domain:
            domain_multiplier = 0.7 + 0.6 * metrics.performance_by_domain[context.domain]

        complexity_multiplier = 1.0
        bucket = context.complexity_bucket.value
        if bucket in metrics.performance_by_complexity:
            complexity_multiplier = 0.8 + 0.4 * metrics.performance_by_complexity[bucket]

        efficiency_multiplier = 0.8 + 0.4 * metrics.cognitive_efficiency

        return (
            base_priority
            * success_multiplier
            * domain_multiplier
            * complexity_multiplier
            * efficiency_multiplier
        )

    def rank(
        self, candidates: Sequence[Candidate], context: ReasoningContext
    ) -> List[Candidate]:
        """Score candidates and sort them descending; ties keep discovery order."""
        for candidate in candidates:
            candidate.effective_priority = self.effective_priority(
                candidate.decision, candidate.provider.get_metrics(), context
            )
        return sorted(candidates, key=lambda c: c.effective_priority, reverse=True)

    def select(self, ranked: Sequence[Candidate]) -> AdmissionResult:
        """Greedily admit ranked candidates under budget, conflicts and dependencies."""
        result = AdmissionResult()
        selected_ids: Set[str] = set()

        for position, candidate in enumerate(ranked):
            provider_id = candidate.provider_id
            load = candidate.cognitive_load

            # A lighter candidate further down may still fit
            if result.load_used + load > self.max_load:
                result.skipped_for_load.append(provider_id)
                continue

            if self.registry.conflicts_with_any(provider_id, selected_ids):
                result.skipped_for_conflict.append(provider_id)
                continue

            if len(result.selected) >= self.max_concurrent:
                result.truncated.extend(c.provider_id for c in ranked[position:])
                break

            if not self.registry.dependencies_met(provider_id, selected_ids):
                result.skipped_for_dependency.append(provider_id)
                continue

            result.selected.append(candidate)
            selected_ids.add(provider_id)
            result.load_used += load

        logger.debug(
            "Admission scan complete",
            selected=result.selected_ids,
            load_used=round(result.load_used, 4),
            skipped_for_load=result.skipped_for_load,
            skipped_for_conflict=result.skipped_for_conflict,
            skipped_for_dependency=result.skipped_for_dependency,
            truncated=result.truncated,
        )
        return result
