"""
Main FastAPI application for the lesson note generator.
Handles CORS, request logging middleware, lifespan events, error rendering,
and router registration.
"""
import logging
import os
import time
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from notegen.config import settings
from notegen.routers import chat, export, health, tables
from notegen.services.knowledge import load_docx_from_dir

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Startup helpers
# ---------------------------------------------------------------------------

async def _check_knowledge_base() -> int:
    """Count reference documents.  A missing directory is only a warning."""
    if not os.path.isdir(settings.KNOWLEDGE_DIR):
        logger.warning(
            "⚠ Knowledge directory %s not found — notes will be generated without "
            "reference excerpts",
            os.path.abspath(settings.KNOWLEDGE_DIR),
        )
        return 0
    docs = await load_docx_from_dir(settings.KNOWLEDGE_DIR)
    logger.info(
        "✓ Knowledge directory: %s (%d document(s))",
        os.path.abspath(settings.KNOWLEDGE_DIR),
        len(docs),
    )
    return len(docs)


async def _check_llm() -> bool:
    """
    Verify the completion provider looks usable.  Never raises — warnings are
    logged instead.
    """
    provider = settings.LLM_PROVIDER.lower()
    if provider == "ollama":
        try:
            async with httpx.AsyncClient(timeout=10.0) as client:
                resp = await client.get(f"{settings.OLLAMA_BASE_URL}/api/tags")
            if resp.status_code != 200:
                logger.warning("⚠ Ollama responded with status %d", resp.status_code)
                return False
            available = [m["name"] for m in resp.json().get("models", [])]
            model = settings.OLLAMA_LLM_MODEL
            if any(m == model or m.startswith(model.split(":")[0]) for m in available):
                logger.info("✓ Ollama model '%s' is available", model)
                return True
            logger.warning("⚠ Ollama model '%s' not found — run: ollama pull %s", model, model)
            return False
        except Exception as exc:
            logger.error("✗ Ollama unreachable (%s) — note generation will fail", exc)
            return False

    if not settings.GEMINI_API_KEY:
        logger.warning("⚠ GEMINI_API_KEY is not set — note generation will fail")
        return False
    logger.info("✓ Gemini model: %s", settings.GEMINI_MODEL)
    return True


# ---------------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown event handler."""
    logger.info("=" * 60)
    logger.info("  Starting lesson note generator …")
    logger.info("=" * 60)

    await _check_knowledge_base()
    await _check_llm()

    logger.info("=" * 60)
    logger.info("  Ready on http://%s:%d", settings.HOST, settings.PORT)
    logger.info("  Swagger UI : http://%s:%d/docs", settings.HOST, settings.PORT)
    logger.info("=" * 60)

    yield

    logger.info("✓ Shutdown complete.")


# ---------------------------------------------------------------------------
# Application
# ---------------------------------------------------------------------------

app = FastAPI(
    title="Lesson Note Generator API",
    description=(
        "Generates lecture notes for Nigerian secondary/tertiary classes from "
        "a scheme of work, streams them from an LLM, and exports them.\n\n"
        "Key endpoints:\n"
        "- `POST /api/chat` — stream a generated note\n"
        "- `POST /api/export` — export a note to DOCX, PDF or HTML\n"
        "- `POST /api/extract-tables` — detect tables in a PDF scheme of work\n"
    ),
    version="0.1.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)


# ---------------------------------------------------------------------------
# CORS
# ---------------------------------------------------------------------------

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["X-Note-Mode", "X-Knowledge-Sources", "Content-Disposition"],
)


# ---------------------------------------------------------------------------
# Request / response logging middleware
# ---------------------------------------------------------------------------

@app.middleware("http")
async def log_requests(request: Request, call_next):
    """
    Log every request with method, path, status code, and elapsed time.
    Attaches an ``X-Process-Time`` header (milliseconds) to every response.
    For streamed notes the time covers only the first chunk.
    """
    t0 = time.monotonic()
    response = await call_next(request)
    elapsed_ms = round((time.monotonic() - t0) * 1000, 2)

    if request.url.path not in ("/api/health/", "/"):
        logger.info(
            "%s %s → %d  (%.2f ms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed_ms,
        )

    response.headers["X-Process-Time"] = f"{elapsed_ms}ms"
    return response


# ---------------------------------------------------------------------------
# Exception handlers — every error body is {"error": "<message>"}
# ---------------------------------------------------------------------------

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    logger.info("Invalid payload on %s: %s", request.url.path, exc.errors())
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": "Invalid payload"},
    )


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Return an opaque JSON error for any unhandled exception."""
    logger.error(
        "Unhandled exception on %s %s: %s",
        request.method,
        request.url.path,
        exc,
        exc_info=True,
    )
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "Internal server error"},
    )


# ---------------------------------------------------------------------------
# Routers
# ---------------------------------------------------------------------------

app.include_router(health.router,  prefix="/api/health", tags=["Health"])
app.include_router(chat.router,    prefix="/api",        tags=["Chat"])
app.include_router(export.router,  prefix="/api",        tags=["Export"])
app.include_router(tables.router,  prefix="/api",        tags=["Tables"])


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------

@app.get("/", tags=["Root"], include_in_schema=False)
async def root():
    """API root — returns basic service info."""
    return {
        "name": "Lesson Note Generator API",
        "version": "0.1.0",
        "docs": "/docs",
        "health": "/api/health",
        "endpoints": {
            "chat": "/api/chat",
            "export": "/api/export",
            "extract_tables": "/api/extract-tables",
        },
    }


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "notegen.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=True,
        log_level="info",
    )
