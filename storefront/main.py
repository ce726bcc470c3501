# storefront/main.py

import logging
from contextlib import asynccontextmanager
from fastapi.middleware.cors import CORSMiddleware
from fastapi import APIRouter, FastAPI, Request
from fastapi.responses import JSONResponse
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from storefront.core.config import settings as config
from storefront.core.exceptions import LoyaltyError
from storefront.core.limiter import limiter
from storefront.core.logging_config import setup_logging
from storefront.core.milestones import load_milestone_table

from storefront.routers.v1.api import api_router as v1_router
from storefront.routers.webhooks import router as webhooks_router

logger = logging.getLogger(__name__)


async def loyalty_exception_handler(request: Request, exc: LoyaltyError):
    """Domain errors are expected; they carry their own status and message."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    else:
        logger.info(f"{exc.code} on {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail, "code": exc.code},
    )


async def unhandled_exception_handler(request: Request, exc: Exception):
    """Last resort: log with traceback, answer with a generic 500."""
    logger.critical(f"Unhandled exception for request: {request.method} {request.url}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal Server Error"},
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    setup_logging()
    logger.info("Application lifespan startup...")

    # A broken milestone table must stop the service from starting
    app.state.milestones = load_milestone_table(config.MILESTONE_SETTINGS)
    logger.info(f"Loaded {len(app.state.milestones)} loyalty milestones.")

    yield

    logger.info("Application shutting down.")


app = FastAPI(
    title="Storefront Loyalty Service",
    description="Loyalty points ledger, milestone rewards and voucher redemption",
    version="0.1.0",
    lifespan=lifespan
)

app.state.limiter = limiter

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.add_exception_handler(LoyaltyError, loyalty_exception_handler)
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)
app.add_exception_handler(Exception, unhandled_exception_handler)

api_router = APIRouter(prefix="/api")
api_router.include_router(v1_router)
app.include_router(api_router)

app.include_router(webhooks_router, prefix="/internal/webhooks", tags=["Internal Webhooks"])
