"""
Error handling system for the capability orchestrator.

This module provides standardized exception classes, error categorization
and severity, and a logging helper shared by the manager and the session
wrapper. Provider-local failures are logged and absorbed at the call site;
configuration errors are raised to the caller; infrastructure failures
propagate out of the manager.
"""

import traceback
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from cortex.services import metrics
from cortex.utils.logger import get_logger

logger = get_logger(__name__)


class ErrorSeverity(str, Enum):
    """Error severity levels for categorization and alerting"""

    LOW = "low"  # Expected degradation, logging only
    MEDIUM = "medium"  # Provider misbehaviour, contributes nothing this round
    HIGH = "high"  # Provider failure during execution
    CRITICAL = "critical"  # Orchestration infrastructure failure


class ErrorCategory(str, Enum):
    """Error categories for systematic handling"""

    CONFIGURATION = "configuration"  # Registration/setup errors
    PROVIDER = "provider"  # Failures inside a capability provider
    INFRASTRUCTURE = "infrastructure"  # Failures in orchestration logic itself
    PERSISTENCE = "persistence"  # History store failures
    VALIDATION = "validation"  # Input validation errors


class ErrorContext:
    """Container for error context information"""

    def __init__(
        self,
        error: Exception,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        component: Optional[str] = None,
        operation: Optional[str] = None,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        self.error = error
        self.severity = severity
        self.category = category
        self.component = component
        self.operation = operation
        self.technical_details = technical_details or {}
        self.timestamp = datetime.now(timezone.utc)
        self.error_id = f"err_{int(self.timestamp.timestamp())}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert error context to dictionary for logging/serialization"""
        return {
            "error_id": self.error_id,
            "timestamp": self.timestamp.isoformat(),
            "error_type": type(self.error).__name__,
            "error_message": str(self.error),
            "severity": self.severity.value,
            "category": self.category.value,
            "component": self.component,
            "operation": self.operation,
            "technical_details": self.technical_details,
            "traceback": traceback.format_exc()
            if self.severity in [ErrorSeverity.HIGH, ErrorSeverity.CRITICAL]
            else None,
        }


# === Custom Exception Classes ===


class OrchestratorError(Exception):
    """Base exception for orchestrator errors"""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.INFRASTRUCTURE,
        technical_details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.severity = severity
        self.category = category
        self.technical_details = technical_details or {}


class ProviderConfigurationError(OrchestratorError):
    """Raised when provider registration or wiring is invalid"""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs,
        )


class DuplicateProviderError(ProviderConfigurationError):
    """Raised when a provider id is registered twice"""

    def __init__(self, provider_id: str):
        super().__init__(
            f"Provider with ID '{provider_id}' is already registered",
            technical_details={"provider_id": provider_id},
        )
        self.provider_id = provider_id


class UnknownProviderError(ProviderConfigurationError):
    """Raised when a registry mutation references an unregistered provider"""

    def __init__(self, provider_id: str):
        super().__init__(
            f"Provider with ID '{provider_id}' is not registered",
            technical_details={"provider_id": provider_id},
        )
        self.provider_id = provider_id


# === Logging helper ===


def log_orchestration_error(
    component: str,
    operation: str,
    error: Exception,
    severity: ErrorSeverity = ErrorSeverity.MEDIUM,
    category: Optional[ErrorCategory] = None,
    **details: Any,
) -> ErrorContext:
    """
    Log an error raised inside the orchestration runtime.

    Args:
        component: Component that observed the error (e.g. "CapabilityManager")
        operation: Operation in progress (e.g. "orchestrate")
        error: The exception that occurred
        severity: Severity used to pick the log level
        category: Error category; derived from the exception when omitted
        **details: Extra key/value context (provider id, phase, ...)

    Returns:
        ErrorContext describing the logged error
    """
    if category is None:
        category = (
            error.category
            if isinstance(error, OrchestratorError)
            else ErrorCategory.INFRASTRUCTURE
        )

    error_context = ErrorContext(
        error=error,
        severity=severity,
        category=category,
        component=component,
        operation=operation,
        technical_details=details,
    )

    log_data = {
        "error_id": error_context.error_id,
        "error_type": type(error).__name__,
        "error": str(error),
        "category": category.value,
        "severity": severity.value,
        "component": component,
        "operation": operation,
        **details,
    }

    if severity == ErrorSeverity.CRITICAL:
        logger.critical("Orchestration infrastructure failure", **log_data, exc_info=error)
    elif severity == ErrorSeverity.HIGH:
        logger.error("Orchestration error", **log_data, exc_info=error)
    elif severity == ErrorSeverity.MEDIUM:
        logger.warning("Orchestration warning", **log_data)
    else:  # LOW
        logger.info("Orchestration notice", **log_data)

    metrics.ORCHESTRATOR_ERRORS_TOTAL.labels(
        component=component, category=category.value, severity=severity.value
    ).inc()

    return error_context
