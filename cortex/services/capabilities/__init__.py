"""Capability orchestration package."""

from typing import Iterable

from cortex.services.capabilities.history import HistoryStore, InMemoryHistoryStore
from cortex.services.capabilities.manager import CapabilityManager
from cortex.services.capabilities.providers import (
    BaseCapabilityProvider,
    CapabilityProvider,
    MetacognitiveProvider,
)
from cortex.services.capabilities.session import CapabilitySession, SessionConfig


def build_default_session(
    providers: Iterable[CapabilityProvider] | None = None,
    history_store: HistoryStore | None = None,
) -> CapabilitySession:
    """Construct a session wired from application settings."""

    config = SessionConfig.from_settings()
    if providers is None:
        providers = [MetacognitiveProvider()]
    manager = CapabilityManager(
        providers=providers,
        max_concurrent=config.max_concurrent_interventions,
        adaptive_priority=config.adaptive_priority,
        learning_enabled=config.learning_enabled,
    )
    store = history_store if history_store is not None else InMemoryHistoryStore()
    return CapabilitySession(manager=manager, history_store=store, config=config)


__all__ = [
    "BaseCapabilityProvider",
    "CapabilityManager",
    "CapabilityProvider",
    "CapabilitySession",
    "InMemoryHistoryStore",
    "MetacognitiveProvider",
    "SessionConfig",
    "build_default_session",
]
