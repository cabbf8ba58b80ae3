# FILE: main.py
"""
lawdesk Backend - FastAPI Application
Version: 0.4.0

Korean legal-information Q&A over an indexed document set.

Endpoints:
- POST /api/vector-search  moderated, intent-routed, citation-carrying answers
- GET  /ping               liveness + configured models
"""
import logging
import os
from dataclasses import asdict

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Load .env FIRST before any other imports that might need env vars
load_dotenv()

from lawdesk import __version__
from lawdesk.config import models_from_env
from lawdesk.errors import ApplicationError, UserError, error_body, status_for
from lawdesk.rag.router import router as vector_search_router

logging.basicConfig(
    level=os.getenv("LAWDESK_LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("lawdesk")

app = FastAPI(
    title="lawdesk",
    version=__version__,
    description="Legal-information Q&A with retrieval and streamed citations",
)

# ====== CORS ======

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        o.strip()
        for o in os.getenv("LAWDESK_CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000").split(",")
        if o.strip()
    ],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ====== ERRORS ======

@app.exception_handler(UserError)
async def handle_user_error(request: Request, exc: UserError):
    logger.info("[api] %s %s -> 400 %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=status_for(exc), content=error_body(exc))


@app.exception_handler(ApplicationError)
async def handle_application_error(request: Request, exc: ApplicationError):
    logger.error("[api] %s %s -> 500 %s (%s)", request.method, request.url.path, exc.message, exc.data)
    return JSONResponse(status_code=status_for(exc), content=error_body(exc))


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    if any(e.get("type") == "missing" and tuple(e.get("loc", ())) == ("body",) for e in errors):
        err = UserError("Missing request data")
    else:
        err = UserError("Invalid request data", {"errors": [e.get("msg") for e in errors]})
    return JSONResponse(status_code=status_for(err), content=error_body(err))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("[api] Unexpected error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content=error_body(exc))


# ====== STARTUP ======

@app.on_event("startup")
def on_startup():
    os.makedirs("data", exist_ok=True)

    logger.info("[startup] Checking environment variables...")
    if os.getenv("OPENAI_API_KEY") or os.getenv("OPENAI_KEY"):
        logger.info("[startup] OPENAI_API_KEY: [OK] set")
    else:
        logger.warning("[startup] OPENAI_API_KEY: [X] NOT SET - every question will fail")


# ====== ROUTERS ======

app.include_router(vector_search_router)


# ====== PUBLIC ENDPOINTS ======

@app.get("/ping")
def ping():
    """Health check (public)."""
    return {"status": "ok", "version": __version__, "models": asdict(models_from_env())}


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("main:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
