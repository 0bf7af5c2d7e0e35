"""Schemas and enums shared by the capability orchestrator."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class Urgency(str, Enum):
    """Urgency class attached to a unit of work."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class EstimatedImpact(str, Enum):
    """Provider-declared impact estimate."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InterventionType(str, Enum):
    """Closed set of intervention kinds a provider may return."""

    PROMPT_INJECTION = "prompt_injection"
    THOUGHT_MODIFICATION = "thought_modification"
    CONTEXT_ENHANCEMENT = "context_enhancement"
    META_GUIDANCE = "meta_guidance"


class FeedbackOutcome(str, Enum):
    """Caller-evaluated outcome of a set of interventions."""

    SUCCESS = "success"
    FAILURE = "failure"
    PARTIAL = "partial"

    @property
    def success_value(self) -> float:
        """Contribution of this outcome toward a success rate."""
        if self is FeedbackOutcome.SUCCESS:
            return 1.0
        if self is FeedbackOutcome.PARTIAL:
            return 0.5
        return 0.0


class ComplexityBucket(str, Enum):
    """Coarse complexity classes used for per-complexity performance."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @classmethod
    def for_complexity(cls, complexity: float) -> "ComplexityBucket":
        if complexity < 3:
            return cls.LOW
        if complexity < 7:
            return cls.MEDIUM
        return cls.HIGH


class HistoryRecord(BaseModel):
    """One prior unit of work as kept by the history store."""

    model_config = ConfigDict(frozen=True)

    session_id: str
    unit: Optional[str] = None
    domain: Optional[str] = None
    complexity: float = 5.0
    confidence: float = 0.5
    output: Optional[str] = None
    provider_ids: List[str] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


class ReasoningContext(BaseModel):
    """Read-only snapshot shared by every provider during one pass."""

    model_config = ConfigDict(frozen=True)

    current_unit: Optional[str] = None
    history: List[HistoryRecord] = Field(default_factory=list)
    domain: Optional[str] = None
    complexity: float = Field(default=5.0, ge=1, le=10)
    urgency: Urgency = Urgency.LOW
    confidence: float = Field(default=0.5, ge=0, le=1)

    # Motivational state
    curiosity: float = Field(default=0.7, ge=0, le=1)
    frustration: float = Field(default=0.2, ge=0, le=1)
    engagement: float = Field(default=0.8, ge=0, le=1)
    metacognitive_awareness: float = Field(default=0.5, ge=0, le=1)

    session_id: Optional[str] = None
    available_tools: List[str] = Field(default_factory=list)
    last_output: Optional[str] = None
    context_trace: List[str] = Field(default_factory=list)

    @property
    def complexity_bucket(self) -> ComplexityBucket:
        return ComplexityBucket.for_complexity(self.complexity)


class ResourceRequirements(BaseModel):
    """Resources a provider will consume if admitted."""

    cognitive_load: float = Field(default=0.0, ge=0, le=1)
    time_cost: int = Field(default=0, ge=0)
    creativity_required: bool = False
    analysis_required: bool = False


class ActivationDecision(BaseModel):
    """A provider's answer to 'should you run for this context?'."""

    should_activate: bool
    priority: int = Field(default=50, ge=0, le=100)
    confidence: float = Field(default=0.5, ge=0, le=1)
    reason: str = ""
    estimated_impact: EstimatedImpact = EstimatedImpact.LOW
    resource_requirements: ResourceRequirements = Field(
        default_factory=ResourceRequirements
    )

    @classmethod
    def decline(cls, reason: str = "") -> "ActivationDecision":
        return cls(should_activate=False, priority=0, confidence=0.0, reason=reason)


class InterventionMetadata(BaseModel):
    provider_id: str
    confidence: float = Field(default=0.5, ge=0, le=1)
    expected_benefit: str = ""
    side_effects: Optional[List[str]] = None


class Intervention(BaseModel):
    """Output of a selected provider for one pass."""

    type: InterventionType
    content: str
    metadata: InterventionMetadata

    follow_up_needed: bool = False
    next_check_after: Optional[int] = None
    success_metrics: Optional[List[str]] = None
    failure_indicators: Optional[List[str]] = None

    @property
    def provider_id(self) -> str:
        return self.metadata.provider_id


class SessionState(str, Enum):
    """Lifecycle states of an orchestration session."""

    INITIALIZING = "initializing"
    READY = "ready"
    COOLING_DOWN = "cooling_down"
    PROCESSING = "processing"


class SignalKind(str, Enum):
    MULTI_PERSPECTIVE = "multi_perspective"
    CONFIDENCE_SHIFT = "confidence_shift"
    LOW_CONFIDENCE = "low_confidence"
    HIGH_FRUSTRATION = "high_frustration"


class DerivedSignal(BaseModel):
    """Session-level observation derived from a pass."""

    kind: SignalKind
    confidence: float = Field(ge=0, le=1)
    description: str
    provider_ids: List[str] = Field(default_factory=list)


class CognitiveState(BaseModel):
    """Caller-visible scalar state maintained across passes."""

    session_id: str = ""
    pass_count: int = 0
    current_complexity: float = 5.0
    confidence_trajectory: List[float] = Field(default_factory=list)
    curiosity: float = 0.7
    frustration: float = 0.2
    engagement: float = 0.8
    metacognitive_awareness: float = 0.5
    recent_success_rate: float = 0.5
    cognitive_efficiency: float = 0.6

    @property
    def latest_confidence(self) -> float:
        if not self.confidence_trajectory:
            return 0.5
        return self.confidence_trajectory[-1]


class ProcessRequest(BaseModel):
    """One unit of work as supplied by the upstream protocol layer."""

    unit: str
    session_id: Optional[str] = None
    domain: Optional[str] = None
    complexity: Optional[float] = Field(default=None, ge=1, le=10)
    urgency: Urgency = Urgency.LOW
    confidence: Optional[float] = Field(default=None, ge=0, le=1)
    curiosity: Optional[float] = Field(default=None, ge=0, le=1)
    frustration: Optional[float] = Field(default=None, ge=0, le=1)
    engagement: Optional[float] = Field(default=None, ge=0, le=1)
    metacognitive_awareness: Optional[float] = Field(default=None, ge=0, le=1)
    available_tools: List[str] = Field(default_factory=list)


class SessionResult(BaseModel):
    """Result bundle returned for one unit of work."""

    interventions: List[Intervention] = Field(default_factory=list)
    signals: List[DerivedSignal] = Field(default_factory=list)
    state: CognitiveState
    recommendations: List[str] = Field(default_factory=list)
    note: Optional[str] = None
    context: Optional[ReasoningContext] = None

    @property
    def is_empty(self) -> bool:
        return not self.interventions


class FeedbackRequest(BaseModel):
    """Caller evaluation of a previously returned intervention list."""

    interventions: List[Intervention]
    outcome: FeedbackOutcome
    impact_score: float = Field(ge=0, le=1)
    context: ReasoningContext = Field(default_factory=ReasoningContext)


__all__ = [
    "ActivationDecision",
    "CognitiveState",
    "ComplexityBucket",
    "DerivedSignal",
    "EstimatedImpact",
    "FeedbackOutcome",
    "FeedbackRequest",
    "HistoryRecord",
    "Intervention",
    "InterventionMetadata",
    "InterventionType",
    "ProcessRequest",
    "ReasoningContext",
    "ResourceRequirements",
    "SessionResult",
    "SessionState",
    "SignalKind",
    "Urgency",
]
