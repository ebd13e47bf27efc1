"""
main.py - FastAPI application entrypoint for MoodWise

Purpose:
- Wires the auth and wellness routers into one app.
- Renders every error as `{"error": <message>}` with the status carried by the
  exception (MoodWiseError subclasses, HTTPException, request validation).
- Initializes Vertex AI on startup (best-effort; generation calls retry the
  initialization lazily and fail over per capability if it is unavailable).

Run locally with:
    python -m moodwise.main
"""

import logging
from datetime import datetime

import pytz
import redis
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from . import auth
from . import config
from . import wellness
from .errors import MoodWiseError
from .gcp_clients import init_vertex

# Configure logging (configurable via LOG_LEVEL env var)
logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
_logger = logging.getLogger(__name__)

# FastAPI app and routers
app = FastAPI(title="MoodWise")
app.include_router(auth.router)
app.include_router(wellness.router)


# -------------------------
# Error rendering
# -------------------------
@app.exception_handler(MoodWiseError)
async def moodwise_error_handler(request: Request, exc: MoodWiseError):
    if exc.status_code >= 500:
        _logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(StarletteHTTPException)
async def http_error_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)}, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    problems = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        problems.append(f"{location}: {err.get('msg')}" if location else str(err.get("msg")))
    return JSONResponse(status_code=400, content={"error": "; ".join(problems) or "Invalid request."})


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    _logger.exception("Unhandled error on %s %s: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=500, content={"error": "An internal error occurred."})


# -------------------------
# Startup event
# -------------------------
@app.on_event("startup")
async def startup_event():
    """
    App startup hook:
    - Logs startup and attempts to initialize Vertex AI (best-effort).
    """
    _logger.info("MoodWise starting up")
    if not init_vertex():
        _logger.warning("Vertex AI unavailable at startup; Vertex-backed capabilities will use their fallbacks")


@app.get("/health")
async def health_check():
    """
    Simple health endpoint:
    - reports whether Redis answers a ping, a timestamp, and the configured Vertex model.
    """
    try:
        redis_available = bool(auth.get_redis_client().ping())
    except redis.exceptions.RedisError as e:
        _logger.warning("Health check: Redis unavailable: %s", e)
        redis_available = False
    return {
        "status": "healthy",
        "timestamp": datetime.now(pytz.utc).isoformat(),
        "redis_available": redis_available,
        "vertex_model": config.VERTEX_MODEL_NAME,
    }


# -------------------------
# Run with Uvicorn when executed directly
# -------------------------
if __name__ == "__main__":
    import os

    import uvicorn

    port = int(os.environ.get("PORT", 8000))
    uvicorn.run("moodwise.main:app", host="0.0.0.0", port=port, reload=True)
