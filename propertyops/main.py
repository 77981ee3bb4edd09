import logging
from contextlib import asynccontextmanager
from typing import Any, cast

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from propertyops.core.config import settings
from propertyops.core.errors import init_sentry
from propertyops.core.logging_config import configure_logging
from propertyops.core.scheduler import start_scheduler, scheduler
from propertyops.api import circuit_breakers, compliance, maintenance, vendors
from propertyops.middleware.context import RequestContextMiddleware

logger = logging.getLogger(__name__)

configure_logging()


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"{settings.PROJECT_NAME} API starting ({settings.ENVIRONMENT})")
    init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    if settings.RUN_SCHEDULER:
        start_scheduler()
    else:
        logger.info("RUN_SCHEDULER is false, skipping scheduler startup in this process.")

    try:
        yield
    finally:
        if scheduler.running:
            scheduler.shutdown(wait=False)


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

app.add_middleware(cast(Any, RequestContextMiddleware))

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=["http://localhost:5173", "http://localhost:3000"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID"],
)

app.include_router(vendors.router, prefix=f"{settings.API_V1_STR}/vendors", tags=["vendors"])
app.include_router(circuit_breakers.router, prefix=f"{settings.API_V1_STR}/circuit-breakers", tags=["circuit-breakers"])
app.include_router(compliance.router, prefix=f"{settings.API_V1_STR}/compliance", tags=["compliance"])
app.include_router(maintenance.router, prefix=f"{settings.API_V1_STR}/maintenance", tags=["maintenance"])


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "healthy"}
