import logging
import time
import uvicorn
from contextlib import asynccontextmanager
from typing import Optional
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from agents.code_explainer_agent import CodeExplainerAgent
from api_server.routes import router as explain_router
from models.explain_models import ErrorResponse
from utils.config import Settings, get_settings
from utils.errors import ExplainError, InvalidRequestError
from utils.logging import log_error
from utils.rate_limit import RateLimitStore, build_rate_limit_store
from utils.request_middleware import (
    BodySizeLimitMiddleware, RateLimitMiddleware, RequestLoggingMiddleware,
    SecurityHeadersMiddleware, error_json
)

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger("codesplain.server")

HTTP_ERROR_MESSAGES = {
    404: "Not found",
    405: "Method not allowed",
    413: "Payload too large",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    settings: Settings = app.state.settings
    try:
        await app.state.rate_limit_store.connect()
        logger.info(f"Rate limit store initialized: {type(app.state.rate_limit_store).__name__}")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    logger.info(f"Code explanation API listening on http://{settings.host}:{settings.port}")
    logger.info(f"Health check: http://{settings.host}:{settings.port}/api/health")
    logger.info(f"API Key configured: {settings.has_api_key}")

    yield

    try:
        await app.state.rate_limit_store.close()
        logger.info("Rate limit store closed")
    except Exception as e:
        logger.error(f"Shutdown cleanup failed: {e}")


def register_exception_handlers(app: FastAPI) -> None:

    @app.exception_handler(ExplainError)
    async def explain_error_handler(request: Request, exc: ExplainError):
        settings: Settings = request.app.state.settings
        endpoint = f"{request.method} {request.url.path}"

        if exc.status_code >= 500:
            log_error(exc, endpoint, {"kind": exc.kind, "details": exc.details})
        else:
            logger.info(f"Rejected {endpoint}: {exc.kind}")

        details = exc.details if settings.expose_error_details else None
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=exc.message, details=details).model_dump(exclude_none=True)
        )

    @app.exception_handler(RequestValidationError)
    async def validation_error_handler(request: Request, exc: RequestValidationError):
        logger.info(f"Invalid body for {request.method} {request.url.path}: {exc.errors()}")
        return error_json(InvalidRequestError())

    @app.exception_handler(StarletteHTTPException)
    async def http_error_handler(request: Request, exc: StarletteHTTPException):
        message = HTTP_ERROR_MESSAGES.get(exc.status_code, str(exc.detail))
        return JSONResponse(
            status_code=exc.status_code,
            content=ErrorResponse(error=message).model_dump(exclude_none=True),
            headers=getattr(exc, "headers", None)
        )


def create_app(
    settings: Optional[Settings] = None,
    explainer: Optional[CodeExplainerAgent] = None,
    rate_limit_store: Optional[RateLimitStore] = None,
) -> FastAPI:
    settings = settings or get_settings()
    rate_limit_store = rate_limit_store or build_rate_limit_store(settings.redis_url)

    app = FastAPI(
        title="CodeSplain API",
        description="Explains source code snippets using a hosted language model",
        version="1.0.0",
        lifespan=lifespan
    )
    app.state.settings = settings
    app.state.explainer = explainer or CodeExplainerAgent(settings)
    app.state.rate_limit_store = rate_limit_store
    app.state.started_at = time.monotonic()

    # Last added runs first
    app.add_middleware(
        RateLimitMiddleware,
        store=rate_limit_store,
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
    )
    app.add_middleware(BodySizeLimitMiddleware, max_body_bytes=settings.max_body_bytes)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=[settings.frontend_url],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)

    register_exception_handlers(app)
    app.include_router(explain_router)

    return app


app = create_app()


if __name__ == "__main__":
    settings = app.state.settings
    uvicorn.run(app, host=settings.host, port=settings.port)
