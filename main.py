import uvicorn
import time
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from starlette.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from smart_builder.api.builds import router as builds_router
from smart_builder.api.history import router as history_router
from smart_builder.api.catalog import router as catalog_router
from smart_builder.api.dependencies import get_orchestrator
from smart_builder.utils.logging_config import setup_logging

# Initialize enhanced logging
setup_logging(level=logging.INFO)
logger = logging.getLogger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    yield
    # Only touch the orchestrator if a request ever created it
    if get_orchestrator.cache_info().currsize:
        get_orchestrator().registry.stop_all("shutdown")


app = FastAPI(title="OpenWrt Smart Builder API", lifespan=lifespan)

# ---------------------------------------------------------------------------
# Logging Middleware
# ---------------------------------------------------------------------------
class LoggingMiddleware(BaseHTTPMiddleware):
    """One line per request: method, path, status and latency."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.perf_counter()
        response = await call_next(request)
        logger.info(
            "%s %s -> %d (%.1fms)",
            request.method, request.url.path, response.status_code,
            (time.perf_counter() - start_time) * 1000,
        )
        return response


app.add_middleware(LoggingMiddleware)

# ---------------------------------------------------------------------------
# CORS: the static wizard page calls the backend from another origin
# ---------------------------------------------------------------------------
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:8000",
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Health endpoint
@app.get("/health")
async def health_check():
    return {"status": "ok"}

# Register routers
app.include_router(builds_router)
app.include_router(history_router)
app.include_router(catalog_router, tags=["Catalog"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="127.0.0.1", port=8000, reload=True)
