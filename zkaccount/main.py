"""Main FastAPI application."""
import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from zkaccount.api import accounts_router, recipients_router, transfers_router
from zkaccount.api.deps import build_chain_sessions
from zkaccount.config import get_settings
from zkaccount.exceptions import ErrorKind, ZKAccountError
from zkaccount.schemas.common import ErrorResponse
from zkaccount.services.confirmation import ConfirmationTracker, SettlementBoard
from zkaccount.services.ethereum import EthereumGateway

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# Errors raised outside a transfer attempt (before orchestration starts)
ERROR_STATUS = {
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
    ErrorKind.RECIPIENT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.ACCOUNT_NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.CHAIN_NOT_CONFIGURED: status.HTTP_404_NOT_FOUND,
    ErrorKind.TIMEOUT: status.HTTP_504_GATEWAY_TIMEOUT,
    ErrorKind.NODE_UNAVAILABLE: status.HTTP_503_SERVICE_UNAVAILABLE,
}


def configure_state(app: FastAPI, http_client: httpx.AsyncClient) -> None:
    """Attach shared collaborators to the application state."""
    app.state.settings = settings
    app.state.http_client = http_client
    app.state.gateway_factory = lambda profile: EthereumGateway(profile, settings)
    app.state.chain_sessions = build_chain_sessions(settings, http_client, app.state.gateway_factory)
    app.state.tracker = ConfirmationTracker(settings, app.state.gateway_factory)
    app.state.board = SettlementBoard()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting ZK Account orchestrator...")

    http_client = httpx.AsyncClient(timeout=httpx.Timeout(settings.proof_timeout_seconds))
    configure_state(app, http_client)
    logger.info(
        f"Configuration service: {settings.config_service_url}, "
        f"proof service: {settings.proof_service_url}"
    )

    yield

    # Shutdown
    logger.info("Shutting down...")
    await app.state.tracker.aclose()
    await http_client.aclose()
    logger.info("Shutdown complete")


app = FastAPI(
    title="ZK Account Orchestrator",
    description="""
## Transaction orchestration for proof-gated smart-contract accounts

### Features
- **Accounts**: Deterministic ZK Account creation bound to an identity session
- **Transfers**: Native and ERC-20 spends with optional zero-knowledge proofs
- **Recipients**: Address or email recipients resolved through an on-chain directory
- **Confirmation**: Non-blocking settlement tracking after submission
    """,
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["http://localhost:3000", "http://127.0.0.1:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ZKAccountError)
async def zkaccount_exception_handler(request: Request, exc: ZKAccountError):
    """Map orchestration errors raised outside a transfer attempt to HTTP errors."""
    logger.warning(f"{exc.kind.value}: {exc}")
    body = ErrorResponse(
        correlation_id=request.headers.get("X-Correlation-ID", "unknown"),
        error=exc.message,
        error_code=exc.kind.value,
        details={"reason": str(exc.details)} if exc.details is not None else None,
    )
    return JSONResponse(
        status_code=ERROR_STATUS.get(exc.kind, status.HTTP_422_UNPROCESSABLE_ENTITY),
        content=body.model_dump(mode="json"),
    )


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle uncaught exceptions."""
    logger.error(f"Unhandled exception: {exc}", exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "correlation_id": request.headers.get("X-Correlation-ID", "unknown"),
            "error": "Internal server error",
            "error_code": "INTERNAL_ERROR"
        }
    )


# Include routers
app.include_router(accounts_router)
app.include_router(transfers_router)
app.include_router(recipients_router)


@app.get("/health")
async def health_check(request: Request):
    """Health check endpoint."""
    tracker = getattr(request.app.state, "tracker", None)
    return {
        "status": "healthy",
        "environment": settings.environment,
        "pending_confirmations": tracker.pending if tracker else 0,
    }


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "name": "ZK Account Orchestrator API",
        "version": "1.0.0",
        "docs": "/docs",
        "openapi": "/openapi.json"
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("zkaccount.main:app", host="0.0.0.0", port=8000, reload=True)
