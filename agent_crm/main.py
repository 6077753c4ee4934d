"""
Agent CRM Engine - FastAPI Application Entry Point.

Autonomous agent orchestration for a sales CRM:
- Batch agents (lead scoring, pipeline, follow-ups, deal creation, probability recompute)
- Human-in-the-loop approval queue for agent-proposed actions
- Live meeting lifecycle with confidence-driven manager escalation
- Deal stage inference from inbound email

Run with:
    uvicorn agent_crm.main:app --reload --port 8000
"""

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from agent_crm import __version__
from agent_crm.api.routes import routers, status_code_for
from agent_crm.core.config import (
    CONFIDENCE_ALERT_THRESHOLD,
    DEAL_CREATION_SCORE_THRESHOLD,
    get_settings,
)
from agent_crm.core.exceptions import AgentCRMError


# ===========================================
# Logging Configuration
# ===========================================

def setup_logging():
    """Configure application logging."""
    settings = get_settings()

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S"
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    console_handler.setLevel(logging.DEBUG if settings.DEBUG else logging.INFO)
    root_logger.addHandler(console_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("LiteLLM").setLevel(logging.WARNING)

    return logging.getLogger(__name__)


logger = setup_logging()


# ===========================================
# Application Lifespan
# ===========================================

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """Application lifespan handler for startup/shutdown."""
    settings = get_settings()

    logger.info("=" * 50)
    logger.info("Agent CRM Engine Starting Up")
    logger.info("=" * 50)
    logger.info(f"Environment: {'Development' if settings.DEBUG else 'Production'}")
    logger.info(f"Deal creation threshold: {DEAL_CREATION_SCORE_THRESHOLD}")
    logger.info(f"Manager alert confidence: {CONFIDENCE_ALERT_THRESHOLD}")

    if not settings.SUPABASE_URL or not settings.SUPABASE_KEY:
        logger.warning("Supabase credentials not configured!")

    if not settings.GEMINI_API_KEY:
        logger.warning("Gemini API key not configured - signals will use fallback values")

    if not settings.RESEND_API_KEY:
        logger.warning("Resend API key not configured - email actions cannot execute")

    logger.info("Startup complete - ready to accept requests")

    yield

    logger.info("Agent CRM Engine shutting down...")


# ===========================================
# FastAPI Application
# ===========================================

def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Agent CRM Engine",
        description="""
        Autonomous agent orchestration and escalation engine for a sales CRM.

        ## Agents

        - `POST /agents/run` - Lead scoring and pipeline agents (or one named agent)

        ## Deals

        - `POST /deals/analyze-email` - Fold an email into deal state
        - `POST /deals/recalculate` - Periodic probability recompute
        - `POST /deals/auto-create` - Deals for high-intent leads

        ## Meetings

        - `POST /meetings/{id}/prepare|join|analyze|complete`

        ## Approval Queue

        - `GET /actions/pending`
        - `POST /actions/{id}/approve|reject|execute`

        ## Replies

        - `POST /replies` - Inbound email reply
        """,
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    for router in routers:
        app.include_router(router)

    return app


# Create app instance
app = create_app()


# ===========================================
# Root Endpoint
# ===========================================

@app.get("/", tags=["root"])
async def root():
    """Root endpoint with API information."""
    return JSONResponse({
        "service": "Agent CRM Engine",
        "version": __version__,
        "status": "running",
        "endpoints": {
            "agents": {"run": "POST /agents/run"},
            "deals": {
                "analyze_email": "POST /deals/analyze-email",
                "recalculate": "POST /deals/recalculate",
                "auto_create": "POST /deals/auto-create"
            },
            "meetings": {
                "prepare": "POST /meetings/{meeting_id}/prepare",
                "join": "POST /meetings/{meeting_id}/join",
                "analyze": "POST /meetings/{meeting_id}/analyze",
                "complete": "POST /meetings/{meeting_id}/complete"
            },
            "actions": {
                "pending": "GET /actions/pending",
                "approve": "POST /actions/{action_id}/approve",
                "reject": "POST /actions/{action_id}/reject",
                "execute": "POST /actions/{action_id}/execute"
            },
            "replies": "POST /replies",
            "health": "GET /health",
            "docs": "GET /docs"
        }
    })


# ===========================================
# Error Handlers
# ===========================================

@app.exception_handler(AgentCRMError)
async def engine_exception_handler(request: Request, exc: AgentCRMError):
    """Engine errors carry their own error/details body."""
    status_code = status_code_for(exc)
    log = logger.error if status_code >= 500 else logger.warning
    log(f"{request.method} {request.url.path} -> {status_code}: {exc.message}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


@app.exception_handler(Exception)
async def global_exception_handler(request, exc):
    """Global exception handler for unhandled errors."""
    logger.error(f"Unhandled error: {exc}", exc_info=True)
    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": str(exc) if get_settings().DEBUG else "An error occurred"
        }
    )


# ===========================================
# Main Entry Point
# ===========================================

if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "agent_crm.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.DEBUG,
        log_level="debug" if settings.DEBUG else "info"
    )
