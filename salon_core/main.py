import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .config import REDIS_URL
from .container import Container, build_container
from .database import create_tables
from .domain.appointments.router import router as appointments_router
from .domain.availability.router import router as availability_router
from .domain.customers.router import router as customers_router

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Reduce verbosity of third-party libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)
logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)

ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:3000").split(",")


def create_app(container: Optional[Container] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        container: Prebuilt object graph (tests); built from the environment at startup otherwise
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("Application starting up...")
        redis = None
        if getattr(app.state, "container", None) is None:
            if REDIS_URL:
                from arq import create_pool

                from .worker import get_redis_settings

                try:
                    redis = await create_pool(get_redis_settings())
                    logger.info("Redis connection established, sync runs on the worker")
                except Exception as e:
                    logger.warning(f"Redis connection failed - sync will run in-process: {e}")

            app.state.container = build_container(redis=redis)
            if app.state.container.engine is not None:
                try:
                    await create_tables(app.state.container.engine)
                except Exception as e:
                    # Ignore "already exists" errors from race conditions between workers
                    error_msg = str(e)
                    if "already exists" in error_msg or "duplicate key" in error_msg:
                        logger.info("Database tables already exist (created by another worker)")
                    else:
                        logger.error(f"Failed to create database tables: {e}")

        yield

        logger.info("Application shutting down...")
        await app.state.container.close()
        if redis is not None:
            await redis.close()

    app = FastAPI(title="Salon Scheduling API", version="1.0.0", lifespan=lifespan)
    if container is not None:
        app.state.container = container

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error for {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=422,
            content={"detail": [{"loc": e.get("loc"), "msg": e.get("msg"), "type": e.get("type")} for e in exc.errors()]},
        )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS", "PATCH"],
        allow_headers=["*"],
    )

    # Routes
    app.include_router(appointments_router)
    app.include_router(availability_router)
    app.include_router(customers_router)

    @app.get("/")
    def root():
        return {"message": "Salon Scheduling API is running"}

    @app.get("/health")
    def health(request: Request):
        container: Optional[Container] = getattr(request.app.state, "container", None)
        circuits = container.breakers.all_stats() if container else {}
        return {"status": "healthy", "circuits": circuits}

    return app


app = create_app()
