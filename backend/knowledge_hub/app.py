"""FastAPI application setup for Knowledge Hub."""

from __future__ import annotations

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from knowledge_hub.api.dependencies import (
    get_app_settings,
    get_blob_store,
    get_database,
    get_notifier,
    get_processor,
)
from knowledge_hub.api.routes_admin import router as admin_router
from knowledge_hub.api.routes_chat import router as chat_router
from knowledge_hub.api.routes_chunks import router as chunks_router
from knowledge_hub.api.routes_files import router as files_router
from knowledge_hub.api.routes_processing import router as processing_router
from knowledge_hub.core.errors import KnowledgeHubError
from knowledge_hub.core.logging import configure_logging, get_logger

configure_logging()
logger = get_logger(__name__)

app = FastAPI(
    title="Knowledge Hub",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://127.0.0.1:5173",
        "http://localhost:5173",
    ],
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

app.include_router(files_router, prefix="/files", tags=["files"])
app.include_router(chunks_router, prefix="", tags=["chunks"])
app.include_router(processing_router, prefix="", tags=["processing"])
app.include_router(chat_router, prefix="/chat", tags=["chat"])
app.include_router(admin_router, prefix="", tags=["admin"])


@app.exception_handler(KnowledgeHubError)
async def knowledge_hub_error_handler(request: Request, exc: KnowledgeHubError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.on_event("startup")
async def startup() -> None:
    """Warm up core singletons on startup."""
    get_app_settings()
    get_database()
    get_blob_store()
    get_notifier()
    get_processor()


@app.get("/health", tags=["admin"])
def health() -> dict[str, bool]:
    """Simple liveness check."""
    return {"ok": True}
