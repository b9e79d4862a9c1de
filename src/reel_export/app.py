"""FastAPI application for reel-export."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from .api import export_router
from .api import router as api_router
from .config import ensure_dirs
from .core.scheduler import CleanupScheduler
from .errors import ExportError
from .server import mcp

logger = logging.getLogger(__name__)

# Create global cleanup scheduler instance
cleanup_scheduler = CleanupScheduler(sweep_on_start=True)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifespan."""
    ensure_dirs()

    await cleanup_scheduler.start()

    # Initialize MCP session manager (required for streamable HTTP)
    mcp.streamable_http_app()
    async with mcp.session_manager.run():
        yield

    await cleanup_scheduler.stop()


app = FastAPI(
    title="Reel Export",
    description="Cut, crop to 9:16 and subtitle video segments into vertical reels",
    version="0.1.0",
    lifespan=lifespan,
)


@app.exception_handler(ExportError)
async def export_error_handler(request: Request, exc: ExportError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": str(exc.detail)},
        headers=exc.headers,
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    logger.info(f"{request.method} {request.url.path} rejected: invalid request")
    return JSONResponse(
        status_code=400,
        content={"error": "Invalid request", "details": jsonable_encoder(exc.errors())},
    )


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.error(f"{request.method} {request.url.path} crashed: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"error": "Internal error", "details": str(exc)})


app.include_router(export_router, tags=["Export"])
app.include_router(api_router, prefix="/api", tags=["API"])

# Mount MCP server routes last (streamable HTTP, provides /mcp endpoint)
app.mount("/", mcp.streamable_http_app())


def main():
    """Run the server."""
    import uvicorn

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(
        "reel_export.app:app",
        host="0.0.0.0",
        port=8000,
        reload=False,
    )


if __name__ == "__main__":
    main()
