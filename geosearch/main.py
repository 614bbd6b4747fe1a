# geosearch/main.py
# Application wiring: logging, the entity store and result cache lifecycle,
# routes and the last-resort exception handler.

import uuid
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from geosearch.api.routes import router as api_router
from geosearch.core.config import settings
from geosearch.logging import configure_logging
from geosearch.middleware.logging import LoggingMiddleware
from geosearch.services.cache import build_cache
from geosearch.services.search_service import SearchService
from geosearch.services.store import InMemoryEntityStore

configure_logging()
logger = structlog.get_logger(__name__)


# --- Application Lifecycle Management ---
@asynccontextmanager
async def lifespan(app: FastAPI):
    # Opened once per process and handed to the service explicitly.
    logger.info("app_startup", version=settings.VERSION, env=settings.ENV)
    store = InMemoryEntityStore.from_file(settings.SEED_PATH)
    cache = build_cache(settings)
    app.state.store = store
    app.state.cache = cache
    app.state.search_service = SearchService(store, cache, settings)
    logger.info("entity_store_ready", entities=len(store))

    yield

    logger.info("app_shutdown")
    await cache.close()
    await store.close()


# --- FastAPI Application Initialization ---
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.VERSION,
    description=settings.BRIEF_DESCRIPTION,
    lifespan=lifespan,
)

app.add_middleware(LoggingMiddleware)

# --- API Routes ---
app.include_router(api_router, prefix="/api")


# --- Health Check Endpoint ---
@app.get("/health", status_code=status.HTTP_200_OK)
async def health_check(request: Request):
    store = getattr(request.app.state, "store", None)
    return {
        "status": "ok" if store is not None and store.is_open else "degraded",
        "version": settings.VERSION,
        "entities": len(store) if store is not None else 0,
    }


# --- Global Exception Handler (for unhandled errors) ---
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    error_id = str(uuid.uuid4())
    logger.error("unhandled_exception", error_id=error_id, error=str(exc), exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={
            "detail": {
                "error": "INTERNAL_SERVER_ERROR",
                "detail": "An unexpected error occurred. Please report this error ID.",
                "error_id": error_id,
            }
        },
    )
