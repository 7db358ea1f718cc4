"""
FastAPI application factory and configuration.

This module creates the FastAPI application instance,
configures exception handlers and lifespan events.
"""

import logging
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from psycopg_pool import ConnectionPool

from src.adapters.crypto import AesCbcCipher, PlaintextPasswordDecryptor, RsaPasswordDecryptor
from src.adapters.repository.postgres import run_migrations
from src.adapters.store import RedisKeyValueStore, create_client
from src.adapters.tokens import JwtOtpKeyVerifier
from src.api.errors import register_exception_handlers
from src.api.v1 import router as v1_router
from src.config.settings import get_settings

logger = logging.getLogger(__name__)

# OpenAPI tags for documentation grouping
tags_metadata = [
    {
        "name": "v1",
        "description": "Account API v1 - Credentials, profile and relationships",
    },
]


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """
    FastAPI lifespan context manager.

    Manages application startup and shutdown:
    - Creates database connection pool and runs migrations on startup
    - Connects the Redis-backed key-value store
    - Loads hash cipher, OTP verification key and password decryption key
    - Closes pool and Redis client on shutdown
    """
    settings = get_settings()

    logger.info("Starting application...")
    logger.info("Connecting to database...")

    # Create connection pool with explicit sizing
    pool = ConnectionPool(
        conninfo=settings.database_url,
        min_size=settings.pool_min_size,
        max_size=settings.pool_max_size,
    )

    # Run migrations
    logger.info("Running database migrations...")
    run_migrations(pool)

    logger.info("Connecting to key-value store...")
    redis_client = create_client(settings.redis_url)
    store = RedisKeyValueStore(redis_client)

    # Store long-lived resources in app state for dependency injection
    app.state.pool = pool
    app.state.redis = redis_client
    app.state.store = store
    app.state.hash_cipher = AesCbcCipher(settings.hash_aes_key, settings.hash_aes_iv)
    app.state.otp_keys = JwtOtpKeyVerifier.from_pem_file(settings.jwt_public_key_path, store)
    if settings.encrypt_password:
        app.state.passwords = RsaPasswordDecryptor.from_pem_file(settings.rsa_private_key_path)
    else:
        logger.warning("Password transport encryption is disabled")
        app.state.passwords = PlaintextPasswordDecryptor()

    logger.info("Application startup complete")

    yield

    # Shutdown
    logger.info("Shutting down application...")
    redis_client.close()
    pool.close()
    logger.info("Database connection pool and key-value store closed")


app = FastAPI(
    title="tether",
    description="Account service - Credentials, login throttling and friend relationships",
    version="0.1.0",
    openapi_tags=tags_metadata,
    lifespan=lifespan,
)

register_exception_handlers(app)

# Include v1 API routes
app.include_router(v1_router, prefix="/v1")


@app.get("/health")
async def health_check(request: Request) -> dict[str, str]:
    """
    Health check endpoint with database and key-value store validation.

    Returns 200 OK if application, database and Redis are healthy.
    Raises exception if either connection fails.
    """
    # Validate database connectivity
    pool = request.app.state.pool
    with pool.connection() as conn:
        conn.execute("SELECT 1")

    request.app.state.redis.ping()

    return {"status": "healthy"}
