"""FastAPI application for the pool simulator."""

import os

import uvicorn
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from stablepool.api.endpoints import router
from stablepool.errors import StablePoolError, UnknownPool
from stablepool.models.api import ErrorResponse

# Configuration from environment variables with sensible defaults
HOST = os.environ.get("STABLEPOOL_HOST", "0.0.0.0")
PORT = int(os.environ.get("STABLEPOOL_PORT", "8000"))
DEBUG = os.environ.get("STABLEPOOL_DEBUG", "false").lower() in ("true", "1", "yes")

# Maximum request body size (1 MB)
MAX_REQUEST_SIZE = 1024 * 1024

app = FastAPI(
    title="StablePool simulator",
    description="Quotes against simulated StableSwap pools",
    version="0.1.0",
)


@app.middleware("http")
async def limit_request_size(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Reject requests with body larger than MAX_REQUEST_SIZE."""
    content_length = request.headers.get("content-length")
    if content_length and int(content_length) > MAX_REQUEST_SIZE:
        return JSONResponse(status_code=413, content={"detail": "Request too large"})
    return await call_next(request)


app.include_router(router)


@app.exception_handler(StablePoolError)
@app.exception_handler(ArithmeticError)
async def pool_error(request: Request, exc: Exception) -> JSONResponse:
    """Map engine errors to 404 (unknown pool) or 400 (rejected call)."""
    status_code = 404 if isinstance(exc, UnknownPool) else 400
    body = ErrorResponse(error=type(exc).__name__, detail=str(exc))
    return JSONResponse(status_code=status_code, content=body.model_dump())


@app.get("/health")
async def health() -> dict[str, object]:
    """Health check endpoint."""
    return {"status": "ok"}


def run() -> None:
    """Run the simulator API server.

    Configuration via environment variables:
    - STABLEPOOL_HOST: Host to bind to (default: 0.0.0.0)
    - STABLEPOOL_PORT: Port to bind to (default: 8000)
    - STABLEPOOL_DEBUG: Enable debug/reload mode (default: false)
    - STABLEPOOL_POOLS_FILE: JSON list of pool definitions to load
    """
    uvicorn.run(
        "stablepool.api.main:app",
        host=HOST,
        port=PORT,
        reload=DEBUG,
    )


if __name__ == "__main__":
    run()
