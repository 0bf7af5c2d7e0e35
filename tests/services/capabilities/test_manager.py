import asyncio

import pytest

from cortex.services.capabilities.manager import CapabilityManager
from cortex.services.capabilities.schemas import FeedbackOutcome, ReasoningContext
from cortex.utils.error_handler import (
    DuplicateProviderError,
    ProviderConfigurationError,
    UnknownProviderError,
)

pytestmark = pytest.mark.asyncio


def _manager(*providers, **kwargs) -> CapabilityManager:
    kwargs.setdefault("adaptive_priority", False)
    return CapabilityManager(providers=providers, **kwargs)


class TestRegistration:
    async def test_duplicate_id_rejected(self, make_provider):
        manager = _manager(make_provider("a"))
        with pytest.raises(DuplicateProviderError) as exc_info:
            manager.register_provider(make_provider("a"))
        assert isinstance(exc_info.value, ProviderConfigurationError)
        assert len(manager.get_providers()) == 1

    async def test_unknown_ids_rejected_by_registry_mutators(self, make_provider):
        manager = _manager(make_provider("a"))
        with pytest.raises(UnknownProviderError):
            manager.set_conflicts("a", ["ghost"])
        with pytest.raises(UnknownProviderError):
            manager.set_dependencies("ghost", ["a"])

    async def test_unregister_cleans_up(self, make_provider, context):
        a, b, c = make_provider("a"), make_provider("b"), make_provider("c")
        manager = _manager(a, b, c)
        manager.set_conflicts("a", ["b"])
        manager.set_dependencies("c", ["a"])
        await manager.orchestrate(context)
        assert "a" in manager.active_interventions

        assert await manager.unregister_provider("a") is True

        assert manager.get_provider("a") is None
        assert "a" not in manager.active_interventions
        assert manager.relations.conflicts_of("b") == frozenset()
        assert manager.relations.dependencies_of("c") == frozenset()
        assert a.destroyed

    async def test_unregister_unknown_returns_false(self):
        assert await _manager().unregister_provider("ghost") is False

    async def test_registration_event(self, make_provider):
        manager = _manager()
        seen = []
        manager.add_event_callback("provider_registered", lambda **kw: seen.append(kw))
        manager.register_provider(make_provider("a"))
        await asyncio.sleep(0)
        assert seen == [{"provider_id": "a"}]


class TestOrchestrate:
    async def test_no_providers_yields_empty_list(self, context):
        assert await _manager().orchestrate(context) == []

    async def test_selection_order_survives_completion_order(self, make_provider, context):
        slow = make_provider("p1", priority=90, delay=0.05)
        fast = make_provider("p2", priority=40, delay=0.0)
        manager = _manager(fast, slow)

        interventions = await manager.orchestrate(context)

        assert [i.provider_id for i in interventions] == ["p1", "p2"]

    async def test_throwing_intervene_is_isolated(self, make_provider, context):
        manager = _manager(
            make_provider("boom", priority=90, fail_intervene=True),
            make_provider("ok", priority=50),
        )
        interventions = await manager.orchestrate(context)
        assert [i.provider_id for i in interventions] == ["ok"]
        assert "boom" not in manager.active_interventions

    async def test_throwing_activation_is_a_decline(self, make_provider, context):
        broken = make_provider("broken", priority=99, fail_activation=True)
        manager = _manager(broken, make_provider("ok"))
        interventions = await manager.orchestrate(context)
        assert [i.provider_id for i in interventions] == ["ok"]
        assert broken.intervene_calls == 0

    async def test_declined_providers_not_invoked(self, make_provider, context):
        shy = make_provider("shy", activate=False)
        manager = _manager(shy)
        assert await manager.orchestrate(context) == []
        assert shy.activation_calls == 1
        assert shy.intervene_calls == 0

    async def test_budget_scenario(self, make_provider, context):
        manager = _manager(
            make_provider("A", priority=80, load=0.6),
            make_provider("B", priority=70, load=0.6),
        )
        interventions = await manager.orchestrate(context)
        assert [i.provider_id for i in interventions] == ["A"]

    async def test_conflict_scenario(self, make_provider, context):
        a = make_provider("A", priority=80)
        b = make_provider("B", priority=70)
        manager = _manager(a, b)
        manager.set_conflicts("A", ["B"])
        interventions = await manager.orchestrate(context)
        assert [i.provider_id for i in interventions] == ["A"]
        assert b.intervene_calls == 0

    async def test_concurrency_cap(self, make_provider, context):
        providers = [make_provider(f"p{i}", priority=90 - i, load=0.1) for i in range(5)]
        manager = _manager(*providers, max_concurrent=2)
        interventions = await manager.orchestrate(context)
        assert [i.provider_id for i in interventions] == ["p0", "p1"]

    async def test_infrastructure_failure_propagates(self, make_provider, context, monkeypatch):
        manager = _manager(make_provider("a"))
        errors = []
        manager.add_event_callback("orchestration_error", lambda **kw: errors.append(kw))

        def broken_select(ranked):
            raise RuntimeError("selection bug")

        monkeypatch.setattr(manager.admission, "select", broken_select)
        with pytest.raises(RuntimeError, match="selection bug"):
            await manager.orchestrate(context)
        assert errors == [{"error": "selection bug"}]

    async def test_malformed_activation_is_a_decline(self, make_provider, context):
        malformed = make_provider("malformed", priority=99)

        async def dict_decision(ctx):
            return {"priority": 90, "reason": "not a decision"}

        malformed.should_activate = dict_decision
        manager = _manager(malformed, make_provider("ok"))

        interventions = await manager.orchestrate(context)

        assert [i.provider_id for i in interventions] == ["ok"]
        assert malformed.intervene_calls == 0

    async def test_malformed_intervention_is_dropped(self, make_provider, context):
        malformed = make_provider("malformed", priority=99)

        async def text_intervention(ctx):
            return "just a string"

        malformed.intervene = text_intervention
        manager = _manager(malformed, make_provider("ok"))

        interventions = await manager.orchestrate(context)

        assert [i.provider_id for i in interventions] == ["ok"]
        assert "malformed" not in manager.active_interventions

    async def test_pass_bookkeeping_failure_is_reported(self, make_provider, context, monkeypatch):
        manager = _manager(make_provider("a"))
        errors = []
        manager.add_event_callback("orchestration_error", lambda **kw: errors.append(kw))

        def broken_record(*args, **kwargs):
            raise RuntimeError("metrics backend gone")

        monkeypatch.setattr(manager, "_record_pass", broken_record)
        with pytest.raises(RuntimeError, match="metrics backend gone"):
            await manager.orchestrate(context)
        assert errors == [{"error": "metrics backend gone"}]

    async def test_completion_event(self, make_provider, context):
        manager = _manager(make_provider("a"))
        events = []

        async def on_complete(**payload):
            events.append(payload)

        manager.add_event_callback("orchestration_complete", on_complete)
        await manager.orchestrate(context)
        assert len(events) == 1
        assert events[0]["providers_activated"] == 1
        assert events[0]["providers_considered"] == 1


class TestFeedback:
    async def test_partial_feedback_moves_success_rate(self, make_provider, context):
        provider = make_provider("a")
        manager = _manager(provider)

        for outcome in (FeedbackOutcome.SUCCESS, FeedbackOutcome.FAILURE):
            interventions = await manager.orchestrate(context)
            await manager.provide_feedback(interventions, outcome, 0.5, context)

        old = provider.get_metrics().success_rate
        interventions = await manager.orchestrate(context)
        await manager.provide_feedback(interventions, FeedbackOutcome.PARTIAL, 0.6, context)

        metrics = provider.get_metrics()
        n = metrics.activation_count
        assert n == 3
        assert metrics.success_rate == pytest.approx((old * (n - 1) + 0.5) / n)

    async def test_impact_mean_exact_under_interleaving(self, make_provider, make_intervention, context):
        a, b = make_provider("a"), make_provider("b")
        manager = _manager(a, b)
        a_scores = [0.1, 0.9, 0.4, 0.7]
        b_scores = [0.3, 0.2, 1.0]

        for index in range(max(len(a_scores), len(b_scores))):
            if index < len(b_scores):
                await manager.provide_feedback(
                    [make_intervention("b")], FeedbackOutcome.SUCCESS, b_scores[index], context
                )
            if index < len(a_scores):
                await manager.provide_feedback(
                    [make_intervention("a")], FeedbackOutcome.FAILURE, a_scores[index], context
                )

        assert a.get_metrics().average_impact_score == pytest.approx(sum(a_scores) / len(a_scores))
        assert b.get_metrics().average_impact_score == pytest.approx(sum(b_scores) / len(b_scores))

    async def test_feedback_clears_active_interventions(self, make_provider, context):
        manager = _manager(make_provider("a"), make_provider("b"))
        interventions = await manager.orchestrate(context)
        assert set(manager.active_interventions) == {"a", "b"}

        await manager.provide_feedback(interventions[:1], FeedbackOutcome.SUCCESS, 0.8, context)
        assert set(manager.active_interventions) == {"b"}

    async def test_feedback_failure_is_isolated(self, make_provider, make_intervention, context):
        a, b = make_provider("a"), make_provider("b")

        async def broken(*args, **kwargs):
            raise RuntimeError("ledger on fire")

        a.receive_feedback = broken
        manager = _manager(a, b)

        await manager.provide_feedback(
            [make_intervention("a"), make_intervention("b")], FeedbackOutcome.SUCCESS, 0.8, context
        )
        assert b.get_metrics().activation_count == 1

    async def test_unknown_provider_feedback_ignored(self, make_provider, make_intervention, context):
        provider = make_provider("a")
        manager = _manager(provider)
        await manager.provide_feedback(
            [make_intervention("ghost"), make_intervention("a")], FeedbackOutcome.SUCCESS, 0.5, context
        )
        assert provider.get_metrics().activation_count == 1

    async def test_co_activation_recorded(self, make_provider, make_intervention, context):
        a, b = make_provider("a"), make_provider("b")
        manager = _manager(a, b)
        batch = [make_intervention("a"), make_intervention("b")]

        await manager.provide_feedback(batch, FeedbackOutcome.SUCCESS, 0.8, context)
        await manager.provide_feedback(batch, FeedbackOutcome.FAILURE, 0.1, context)

        assert a.get_metrics().synergy_with_providers == {"b": 1}
        assert b.get_metrics().synergy_with_providers == {"a": 1}
        assert a.get_metrics().conflict_count == 1

    async def test_learning_disabled_skips_ledgers(self, make_provider, make_intervention, context):
        provider = make_provider("a")
        manager = _manager(provider, learning_enabled=False)
        await manager.provide_feedback(
            [make_intervention("a")], FeedbackOutcome.SUCCESS, 0.8, context
        )
        assert provider.get_metrics().activation_count == 0

    async def test_metrics_event_forwarded(self, make_provider, make_intervention, context):
        manager = _manager(make_provider("a"))
        seen = []
        manager.add_event_callback(
            "provider_metrics_updated", lambda **kw: seen.append(kw["provider_id"])
        )
        await manager.provide_feedback(
            [make_intervention("a")], FeedbackOutcome.SUCCESS, 0.8, context
        )
        assert seen == ["a"]


class TestAdministration:
    async def test_performance_summary_is_idempotent(self, make_provider, context):
        manager = _manager(make_provider("a"), make_provider("b"))
        interventions = await manager.orchestrate(context)
        await manager.provide_feedback(interventions, FeedbackOutcome.PARTIAL, 0.4, context)

        first = manager.get_performance_summary()
        second = manager.get_performance_summary()
        assert first == second
        assert first is not second

    async def test_adapt_providers_isolated(self, make_provider):
        good = make_provider("good")
        bad = make_provider("bad")

        async def broken(learning_data):
            raise RuntimeError("cannot adapt")

        bad.adapt = broken
        manager = _manager(bad, good)
        await manager.adapt_providers({"triggers": ["low_efficiency"]})
        assert good.adapt_calls == [{"triggers": ["low_efficiency"]}]

    async def test_destroy(self, make_provider):
        a = make_provider("a")
        manager = _manager(a)
        await manager.destroy()
        assert manager.get_providers() == []
        assert a.destroyed
