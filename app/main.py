"""
Personal-Accident Claim Service

FastAPI application entry point.
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api import router as sessions_router
from app.core.config import get_settings

# Configure logging
logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle management."""
    settings = get_settings()
    logger.info(f"Starting Personal-Accident Claim Service (policy service: {settings.policy_api_url})")
    if not settings.telegram_bot_token or not settings.receipt_group_id:
        logger.warning("Audit channel not configured - claims cannot be finalized")
    yield
    logger.info("Shutting down Personal-Accident Claim Service")


# Create FastAPI application
app = FastAPI(
    title="Personal-Accident Claim Service",
    description="""
    Look up an employee's personal-accident policy and record a benefit claim against it.

    ## Workflow

    - **IDLE**: open a session with `POST /sessions` and look up a policy
    - **AMOUNT_ENTRY**: select a benefit, then submit an amount; it is checked against the remaining limit
    - **PAYMENT_SELECTION**: choose `cash` or `credit`
    - **EVIDENCE_COLLECTION**: attach optional documents (cash only), then finalize
    - **FINALIZING**: the audit channel is notified, then the new used amount is committed

    A claim can be voided with `POST /sessions/{id}/cancel` at any step before finalizing.
    A failed finalize keeps the claim intact for a retry.
    """,
    version="1.0.0",
    lifespan=lifespan
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(sessions_router)


@app.get("/", tags=["root"])
async def root():
    """Root endpoint with system info."""
    return {
        "system": "Personal-Accident Claim Service",
        "version": "1.0.0",
        "status": "operational",
        "docs": "/docs"
    }


@app.get("/health", tags=["health"])
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}
