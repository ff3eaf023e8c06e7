import logging
from typing import Any, cast
from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from app.core.config import settings
from app.core.errors import init_sentry
from app.core.logging_config import configure_logging
from app.api import customers, products, webhooks
from app.middleware.context import RequestContextMiddleware
from uvicorn.middleware.proxy_headers import ProxyHeadersMiddleware

configure_logging(production=settings.is_production)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    logger.info("=" * 50)
    logger.info(f"{settings.PROJECT_NAME} API Starting")
    logger.info(f"Environment: {settings.ENVIRONMENT}")
    logger.info(f"Stripe: {'CONFIGURED' if settings.STRIPE_SECRET_KEY else 'NOT CONFIGURED'}")
    logger.info(f"Webhook signing: {'CONFIGURED' if settings.STRIPE_WEBHOOK_SECRET else 'NOT CONFIGURED'}")
    logger.info("=" * 50)
    if settings.SENTRY_DSN:
        init_sentry(settings.SENTRY_DSN, environment=settings.ENVIRONMENT)

    yield


app = FastAPI(title=settings.PROJECT_NAME, openapi_url=f"{settings.API_V1_STR}/openapi.json", lifespan=lifespan)

# Set all CORS enabled origins
origins = [
    "http://localhost:3000",  # Admin dashboard dev server
    "http://127.0.0.1:3000",
    settings.FRONTEND_URL,  # Dynamic from env
]

# Clean up duplicates and empty strings
origins = list(set([o for o in origins if o]))

# Trust X-Forwarded-* headers from the hosting proxy
app.add_middleware(cast(Any, ProxyHeadersMiddleware), trusted_hosts=["*"])

# Request/correlation ids for every log line of a request
app.add_middleware(cast(Any, RequestContextMiddleware))

app.add_middleware(
    cast(Any, CORSMiddleware),
    allow_origins=origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Request-ID", "X-Correlation-ID"],
)

app.include_router(webhooks.router, prefix=settings.API_V1_STR)
app.include_router(products.router, prefix=settings.API_V1_STR)
app.include_router(customers.router, prefix=settings.API_V1_STR)


@app.get("/")
def root():
    return {"message": f"Welcome to {settings.PROJECT_NAME} API"}


@app.get("/health")
def health():
    """Basic health check endpoint."""
    return {"status": "healthy"}
