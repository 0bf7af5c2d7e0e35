from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from prometheus_fastapi_instrumentator import Instrumentator

from cortex import __version__
from cortex.api.v1 import capabilities as capabilities_routes
from cortex.core.config import settings
from cortex.services.capabilities import build_default_session
from cortex.utils.logger import configure_logging, get_logger

# Configure logging before anything else
configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Cortex Capability Orchestrator",
    description=(
        "Routes each unit of reasoning work through a pool of pluggable "
        "capability providers"
    ),
    version=__version__,
)

# Add CORS middleware with environment-aware defaults
allowed_origins = settings.CORS_ALLOW_ORIGINS or ["http://localhost:3000"]
app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.state.capability_session = build_default_session()
app.include_router(capabilities_routes.router, prefix="/api/v1")

# Initialize Prometheus metrics
instrumentator = Instrumentator(
    should_group_status_codes=False,
    excluded_handlers=["/metrics"],  # Don't monitor the metrics endpoint itself
)
instrumentator.instrument(app).expose(app)


@app.on_event("startup")
async def startup_event():
    """Application startup event"""
    logger.info(
        "Capability orchestrator starting up",
        app_name=settings.APP_NAME,
        environment=settings.APP_ENV,
        providers=[p.id for p in app.state.capability_session.manager.get_providers()],
    )


@app.on_event("shutdown")
async def shutdown_event():
    """Release provider resources"""
    await app.state.capability_session.manager.destroy()
    logger.info("Capability orchestrator shut down")


@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint"""
    session = app.state.capability_session
    return {
        "status": "ok",
        "session_state": session.status.value,
        "providers": len(session.manager.get_providers()),
    }
