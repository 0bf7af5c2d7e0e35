"""Built-in provider that nudges the caller to reflect on its own reasoning."""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from cortex.services.capabilities.providers.base import BaseCapabilityProvider
from cortex.services.capabilities.schemas import (
    ActivationDecision,
    EstimatedImpact,
    FeedbackOutcome,
    Intervention,
    InterventionMetadata,
    InterventionType,
    ReasoningContext,
    ResourceRequirements,
)

# pattern -> trigger phrases
PATTERN_TRIGGERS: Dict[str, Tuple[str, ...]] = {
    "confidence_calibration": ("definitely", "certainly", "obviously", "clearly", "without doubt"),
    "assumption_questioning": ("assume", "probably", "likely", "should be", "must be"),
    "alternative_generation": ("only way", "best approach", "single solution", "no other"),
    "bias_detection": ("confirms", "proves", "validates", "supports my view"),
    "reasoning_evaluation": ("simple", "easy", "straightforward", "just need to"),
    "uncertainty_acknowledgment": ("will work", "is correct", "final answer", "solved"),
}

PROMPTS: Dict[str, str] = {
    "confidence_calibration": (
        "Confidence Check: what evidence would change your mind, and how "
        "strong is the evidence you already have?"
    ),
    "assumption_questioning": (
        "Assumption Check: list the assumptions behind this step and mark "
        "which ones you have actually verified."
    ),
    "alternative_generation": (
        "Alternative Thinking: sketch two other ways to approach this before "
        "committing to the current one."
    ),
    "bias_detection": (
        "Bias Alert: are you looking for information that confirms what you "
        "already believe?"
    ),
    "reasoning_evaluation": (
        "Reasoning Audit: this problem looks harder than the current plan "
        "suggests. Walk through each step and its justification."
    ),
    "uncertainty_acknowledgment": (
        "Uncertainty Reality: name what could still go wrong and how likely it is."
    ),
}

EXPECTED_BENEFITS: Dict[str, str] = {
    "confidence_calibration": "Better calibrated confidence",
    "assumption_questioning": "Hidden assumptions surfaced and validated",
    "alternative_generation": "Wider solution space",
    "bias_detection": "Reduced impact of cognitive bias",
    "reasoning_evaluation": "More rigorous step-by-step reasoning",
    "uncertainty_acknowledgment": "Better handling of risk and uncertainty",
}

FOLLOW_UP_PATTERNS = {"confidence_calibration", "bias_detection", "reasoning_evaluation"}


class MetacognitiveProvider(BaseCapabilityProvider):
    """Detects overconfidence, unverified assumptions and tunnel vision."""

    def __init__(self, config: Dict[str, Any] | None = None) -> None:
        super().__init__(
            "metacognitive",
            "Metacognitive Reviewer",
            description="Self-reflection and confidence calibration prompts",
            config={"sensitivity": 0.5, "cognitive_load": 0.3, **(config or {})},
        )

    @property
    def sensitivity(self) -> float:
        return float(self.config["sensitivity"])

    async def should_activate(self, context: ReasoningContext) -> ActivationDecision:
        need = self._metacognitive_need(context)
        score = (
            need * 0.4
            + (context.complexity / 10) * 0.2
            + (1 - context.confidence) * 0.2
            + self._history_factor(context) * 0.2
        )
        if score <= self.sensitivity:
            return ActivationDecision.decline(f"Activation score {score:.2f} below sensitivity")

        if score > 0.8:
            impact = EstimatedImpact.HIGH
        elif score > 0.5:
            impact = EstimatedImpact.MEDIUM
        else:
            impact = EstimatedImpact.LOW

        return ActivationDecision(
            should_activate=True,
            priority=min(95, int(score * 100)),
            confidence=min(1.0, score),
            reason=self._reason(need),
            estimated_impact=impact,
            resource_requirements=ResourceRequirements(
                cognitive_load=self.config["cognitive_load"],
                time_cost=1,
                analysis_required=True,
            ),
        )

    async def intervene(self, context: ReasoningContext) -> Intervention:
        pattern = self._select_pattern(context)
        return Intervention(
            type=InterventionType.META_GUIDANCE,
            content=PROMPTS[pattern],
            metadata=InterventionMetadata(
                provider_id=self.id,
                confidence=self._intervention_confidence(pattern, context),
                expected_benefit=EXPECTED_BENEFITS[pattern],
            ),
            follow_up_needed=pattern in FOLLOW_UP_PATTERNS,
            next_check_after=2 if pattern == "confidence_calibration" else 3,
            success_metrics=["improved_accuracy", "reduced_bias"],
            failure_indicators=["increased_confusion", "analysis_paralysis"],
        )

    async def _on_feedback(
        self,
        intervention: Intervention,
        outcome: FeedbackOutcome,
        impact_score: float,
        context: ReasoningContext,
    ) -> None:
        # Misfires make the provider harder to trigger; clear wins make it easier.
        if outcome is FeedbackOutcome.FAILURE and impact_score < 0.3:
            await self.update_config({"sensitivity": min(1.0, self.sensitivity + 0.05)})
        elif outcome is FeedbackOutcome.SUCCESS and impact_score > 0.8:
            await self.update_config({"sensitivity": max(0.3, self.sensitivity - 0.02)})

    async def adapt(self, learning_data: Dict[str, Any]) -> None:
        triggers = learning_data.get("triggers", [])
        if "poor_performance" in triggers:
            await self.update_config({"sensitivity": min(1.0, self.sensitivity + 0.05)})
            self.logger.info(
                "Raised sensitivity after poor performance",
                provider_id=self.id,
                sensitivity=self.sensitivity,
            )

    def _metacognitive_need(self, context: ReasoningContext) -> float:
        need = self._pattern_score(context.current_unit)
        need += abs(context.confidence - (1 - context.complexity / 10)) * 0.5
        need += (1 - context.metacognitive_awareness) * 0.3
        return min(1.0, need)

    def _pattern_score(self, text: Optional[str]) -> float:
        if not text:
            return 0.0
        lowered = text.lower()
        score = 0.0
        for triggers in PATTERN_TRIGGERS.values():
            hits = sum(1 for trigger in triggers if trigger in lowered)
            if hits:
                score += hits / len(triggers) * 0.2
        return min(1.0, score)

    def _history_factor(self, context: ReasoningContext) -> float:
        units = [record.unit for record in context.history[-3:] if record.unit]
        if len(units) < 2:
            return 0.0
        # Repeating the same unit suggests the caller is going in circles.
        repeated = len(units) - len(set(units))
        return min(1.0, repeated / (len(units) - 1))

    def _select_pattern(self, context: ReasoningContext) -> str:
        scores: List[Tuple[str, float]] = []
        text = (context.current_unit or "").lower()
        for pattern, triggers in PATTERN_TRIGGERS.items():
            score = sum(1 for trigger in triggers if trigger in text) * 0.3
            if pattern == "confidence_calibration" and context.confidence > 0.8 and context.complexity > 6:
                score += 0.8
            if pattern == "reasoning_evaluation" and context.complexity > 7 and context.confidence > 0.7:
                score += 0.6
            if pattern == "uncertainty_acknowledgment" and context.confidence > 0.8:
                score += 0.5
            scores.append((pattern, score))
        best, best_score = max(scores, key=lambda item: item[1])
        return best if best_score > 0 else "assumption_questioning"

    def _intervention_confidence(self, pattern: str, context: ReasoningContext) -> float:
        if pattern == "confidence_calibration":
            match = 0.8 if context.confidence > 0.8 else 0.3
        elif pattern == "assumption_questioning":
            match = 0.9 if self._pattern_score(context.current_unit) else 0.2
        else:
            match = 0.5
        return min(0.95, 0.7 + match * 0.2)

    @staticmethod
    def _reason(need: float) -> str:
        if need > 0.8:
            return "High metacognitive need: confidence/complexity mismatch or bias indicators"
        if need > 0.6:
            return "Moderate metacognitive need: reasoning patterns worth reflecting on"
        if need > 0.4:
            return "Low metacognitive need: preventive self-reflection"
        return "Minimal metacognitive need"
