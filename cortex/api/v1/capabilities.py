"""Capability orchestration API endpoints."""

from typing import Dict

from fastapi import APIRouter, Depends, HTTPException, Query, Request

from cortex.services.capabilities import CapabilitySession
from cortex.services.capabilities.metrics_ledger import ProviderMetrics
from cortex.services.capabilities.schemas import (
    CognitiveState,
    FeedbackRequest,
    ProcessRequest,
    SessionResult,
)
from cortex.utils.error_handler import (
    DuplicateProviderError,
    ProviderConfigurationError,
    UnknownProviderError,
)
from cortex.utils.logger import get_logger

router = APIRouter(prefix="/capabilities", tags=["capabilities"])
logger = get_logger(__name__)


def get_session(request: Request) -> CapabilitySession:
    """Dependency returning the application-wide capability session."""
    return request.app.state.capability_session


def configuration_error_to_http(exc: ProviderConfigurationError) -> HTTPException:
    if isinstance(exc, UnknownProviderError):
        return HTTPException(status_code=404, detail=str(exc))
    if isinstance(exc, DuplicateProviderError):
        return HTTPException(status_code=409, detail=str(exc))
    return HTTPException(status_code=400, detail=str(exc))


@router.post("/process", response_model=SessionResult)
async def process_unit(
    payload: ProcessRequest,
    session: CapabilitySession = Depends(get_session),
) -> SessionResult:
    """Run one unit of work through the orchestrator."""
    return await session.process(payload)


@router.post("/feedback")
async def submit_feedback(
    payload: FeedbackRequest,
    session: CapabilitySession = Depends(get_session),
) -> Dict[str, str]:
    """Report how a previously returned set of interventions worked out."""
    unknown = [
        i.provider_id
        for i in payload.interventions
        if session.manager.get_provider(i.provider_id) is None
    ]
    if unknown:
        raise configuration_error_to_http(UnknownProviderError(unknown[0]))

    await session.provide_feedback(
        payload.interventions, payload.outcome, payload.impact_score, payload.context
    )
    logger.info(
        "Feedback accepted",
        outcome=payload.outcome.value,
        interventions=len(payload.interventions),
    )
    return {"status": "accepted"}


@router.get("/performance", response_model=Dict[str, ProviderMetrics])
async def get_performance(
    session: CapabilitySession = Depends(get_session),
) -> Dict[str, ProviderMetrics]:
    """Per-provider metrics snapshot."""
    return session.get_performance_summary()


@router.get("/state", response_model=CognitiveState)
async def get_state(session: CapabilitySession = Depends(get_session)) -> CognitiveState:
    return session.get_state()


@router.post("/reset")
async def reset_session(
    include_providers: bool = Query(default=False),
    session: CapabilitySession = Depends(get_session),
) -> Dict[str, str]:
    """Clear session buffers and state; optionally reset provider ledgers too."""
    session.reset(include_providers=include_providers)
    return {"status": "reset"}
