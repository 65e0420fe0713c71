"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from payout_ledger.api import health, payouts
from payout_ledger.core.database import close_db, init_db
from payout_ledger.core.exceptions import PaymentExecutionError, PayoutError
from payout_ledger.core.settings import settings

# Configure logging
logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    logger.info("Starting payout ledger application...")

    # Initialize database
    await init_db()
    logger.info("Database initialized")

    # Monthly payouts run in the separate scheduler worker
    logger.info("Web server mode - payout scheduler runs in separate worker process")

    yield

    await close_db()
    logger.info("Application stopped")


# Create FastAPI app
app = FastAPI(
    title="Teacher Payout Ledger",
    description="Teacher payout records, installments and settlement",
    version="1.0.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
    allow_headers=["*"],
)


@app.exception_handler(PayoutError)
async def payout_error_handler(request: Request, exc: PayoutError) -> JSONResponse:
    logger.warning(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(PaymentExecutionError)
async def payment_error_handler(request: Request, exc: PaymentExecutionError) -> JSONResponse:
    logger.error(f"{request.method} {request.url.path} payment failed: {exc}")
    return JSONResponse(
        status_code=502,
        content={
            "code": exc.code,
            "message": str(exc),
            "context": {"reference_id": exc.reference_id},
        },
    )


# Include API routers
app.include_router(health.router)
app.include_router(payouts.router)


if __name__ == "__main__":
    import uvicorn
    import os
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(
        "payout_ledger.main:app",
        host="0.0.0.0",
        port=port,
        reload=settings.env == "dev",
        proxy_headers=True,
        forwarded_allow_ips="*",
    )
