"""Cortex: orchestration runtime for pluggable cognitive-capability providers."""

__version__ = "1.0.0"
