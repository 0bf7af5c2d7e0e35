"""Capability provider contract and built-in providers."""

from cortex.services.capabilities.providers.base import (
    PROVIDER_EVENTS,
    BaseCapabilityProvider,
    CapabilityProvider,
)
from cortex.services.capabilities.providers.metacognitive import MetacognitiveProvider

__all__ = [
    "BaseCapabilityProvider",
    "CapabilityProvider",
    "MetacognitiveProvider",
    "PROVIDER_EVENTS",
]
