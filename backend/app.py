import asyncio
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from backend.application import get_document_service
from backend.core.errors import TriageError
from backend.core.settings import get_settings
from backend.infrastructure import close_classifier_client
from backend.routes import documents, upload
from backend.workers.ingest import ScannerWatcher, WatcherConfig

SHUTDOWN_GRACE = 10.0


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = get_settings()
    service = get_document_service()

    handle = None
    if settings.scanner_dir is not None:
        watcher = ScannerWatcher(
            service.ingest,
            WatcherConfig(
                source_dir=settings.scanner_dir,
                interval=settings.poll_interval,
                actor=settings.user_name,
            ),
        )
        handle = watcher.start()
    app.state.scanner_watcher = handle

    try:
        yield
    finally:
        if handle is not None:
            handle.stop()
            # let a poll in progress finish before the loop goes away
            done, _ = await asyncio.wait({handle.task}, timeout=SHUTDOWN_GRACE)
            if not done:
                handle.task.cancel()
        await close_classifier_client()


def create_app() -> FastAPI:
    app = FastAPI(title="Document Triage API", version="0.1.0", lifespan=lifespan)

    settings = get_settings()
    app.add_middleware(
        CORSMiddleware,
        allow_origins=list(settings.cors_origins),
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "OPTIONS"],
        allow_headers=["Content-Type", "X-User"],
    )

    @app.exception_handler(TriageError)
    async def triage_error_handler(request: Request, exc: TriageError) -> JSONResponse:
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())

    app.include_router(documents.router, prefix="/api")
    app.include_router(upload.router, prefix="/api")

    @app.get("/api/health")
    async def health() -> dict:
        return {"status": "ok"}

    @app.get("/", include_in_schema=False)
    async def root() -> JSONResponse:
        """Provide a lightweight landing page for container checks."""
        return JSONResponse(
            {
                "message": "Document Triage API",
                "docs": "/docs",
                "health": "/api/health",
            }
        )

    return app


app = create_app()
