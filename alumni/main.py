"""
FastAPI application entry point

Alumni engagement platform backend
"""
from contextlib import asynccontextmanager
from fastapi import FastAPI, HTTPException
from fastapi.routing import APIRoute
from fastapi.middleware.cors import CORSMiddleware
from fastapi.exceptions import RequestValidationError
from loguru import logger

from alumni.core.config import settings
from alumni.core.database import init_db, close_db, session_scope
from alumni.core.response import success_response, DictResponse
from alumni.core.exceptions import (
    AppException,
    app_exception_handler,
    http_exception_handler,
    validation_exception_handler,
    general_exception_handler,
)
from alumni.api import api_router
from alumni.services.ab_testing import ab_testing_service

VERSION = "1.0.0"


def custom_generate_unique_id(route: APIRoute) -> str:
    """OpenAPI operationId is the route function name"""
    return route.name


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Creates tables and seeds the default A/B tests on startup,
    disposes the engine on shutdown
    """
    logger.info("Starting {}", settings.app_name)
    logger.info("Environment: {}", settings.app_env)
    logger.info("Debug: {}", settings.debug)

    await init_db()
    async with session_scope() as session:
        await ab_testing_service.seed_default_tests(session)
    logger.info("Database ready")

    yield

    await close_db()
    logger.info("Application stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title=settings.app_name,
        description="Multi-tenant alumni engagement platform API",
        version=VERSION,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        openapi_url="/openapi.json" if settings.debug else None,
        lifespan=lifespan,
        generate_unique_id_function=custom_generate_unique_id,
    )

    app.add_exception_handler(AppException, app_exception_handler)
    app.add_exception_handler(HTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, general_exception_handler)

    app.include_router(api_router, prefix="/api/v1")

    @app.get("/health", tags=["System"], response_model=DictResponse)
    async def health_check():
        return success_response(data={"status": "healthy"})

    @app.get("/", tags=["System"], response_model=DictResponse)
    async def root():
        return success_response(data={
            "name": settings.app_name,
            "version": VERSION,
            "docs": "/docs" if settings.debug else None,
        })

    # added last so it runs first
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "alumni.main:app",
        host="127.0.0.1",
        port=8000,
        reload=settings.debug,
    )
