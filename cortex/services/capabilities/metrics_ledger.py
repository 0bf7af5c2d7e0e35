"""
Per-provider performance ledger.

Every statistic is an exact running mean updated in O(1) from the previous
mean and its sample count: ``new_mean = (old_mean * (n - 1) + sample) / n``.
Samples themselves are never retained.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional

from pydantic import BaseModel, Field

from cortex.services.capabilities.schemas import ComplexityBucket, FeedbackOutcome


class ProviderMetrics(BaseModel):
    """Immutable snapshot of a provider's ledger."""

    activation_count: int = 0
    success_rate: float = 0.0
    average_impact_score: float = 0.0
    average_response_time: float = 0.0
    cognitive_efficiency: float = 0.0
    performance_by_domain: Dict[str, float] = Field(default_factory=dict)
    performance_by_complexity: Dict[str, float] = Field(default_factory=dict)
    synergy_with_providers: Dict[str, int] = Field(default_factory=dict)
    conflict_count: int = 0


def running_mean(previous: float, count: int, sample: float) -> float:
    """Fold ``sample`` into a mean that already covers ``count - 1`` samples."""
    if count <= 0:
        raise ValueError("count must be positive")
    return (previous * (count - 1) + sample) / count


@dataclass
class _KeyedMean:
    mean: float = 0.0
    count: int = 0

    def add(self, sample: float) -> None:
        self.count += 1
        self.mean = running_mean(self.mean, self.count, sample)


@dataclass
class MetricsLedger:
    """Running statistics owned by a single capability provider."""

    activation_count: int = 0
    success_rate: float = 0.0
    average_impact_score: float = 0.0
    average_response_time: float = 0.0
    cognitive_efficiency: float = 0.0
    conflict_count: int = 0
    _by_domain: Dict[str, _KeyedMean] = field(default_factory=dict)
    _by_complexity: Dict[str, _KeyedMean] = field(default_factory=dict)
    _synergy: Dict[str, int] = field(default_factory=dict)

    def record(
        self,
        outcome: FeedbackOutcome,
        impact_score: float,
        response_time: float,
        complexity: float,
        domain: Optional[str] = None,
    ) -> None:
        """Fold one feedback event into every running mean."""
        outcome = FeedbackOutcome(outcome)
        success_value = outcome.success_value
        self.activation_count += 1
        n = self.activation_count

        self.success_rate = running_mean(self.success_rate, n, success_value)
        self.average_impact_score = running_mean(self.average_impact_score, n, impact_score)
        self.average_response_time = running_mean(
            self.average_response_time, n, response_time
        )
        # Impact that actually landed: a failed intervention contributes nothing.
        self.cognitive_efficiency = running_mean(
            self.cognitive_efficiency, n, impact_score * success_value
        )

        if domain:
            self._by_domain.setdefault(domain, _KeyedMean()).add(success_value)

        bucket = ComplexityBucket.for_complexity(complexity).value
        self._by_complexity.setdefault(bucket, _KeyedMean()).add(success_value)

    def record_co_activation(self, other_provider_id: str, outcome: FeedbackOutcome) -> None:
        """Track how this provider fares alongside another one in the same pass."""
        outcome = FeedbackOutcome(outcome)
        if outcome is FeedbackOutcome.FAILURE:
            self.conflict_count += 1
        else:
            self._synergy[other_provider_id] = self._synergy.get(other_provider_id, 0) + 1

    def domain_performance(self, domain: Optional[str]) -> Optional[float]:
        if not domain or domain not in self._by_domain:
            return None
        return self._by_domain[domain].mean

    def complexity_performance(self, bucket: ComplexityBucket) -> Optional[float]:
        entry = self._by_complexity.get(bucket.value)
        return entry.mean if entry else None

    def snapshot(self) -> ProviderMetrics:
        return ProviderMetrics(
            activation_count=self.activation_count,
            success_rate=self.success_rate,
            average_impact_score=self.average_impact_score,
            average_response_time=self.average_response_time,
            cognitive_efficiency=self.cognitive_efficiency,
            performance_by_domain={k: v.mean for k, v in self._by_domain.items()},
            performance_by_complexity={k: v.mean for k, v in self._by_complexity.items()},
            synergy_with_providers=dict(self._synergy),
            conflict_count=self.conflict_count,
        )
