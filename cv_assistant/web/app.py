"""FastAPI app entrypoint for the CV assistant web API."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from time import perf_counter
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError

from ..config import AppConfig, load_config
from ..core.observability import TurnObserver
from ..core.orchestrator import ConversationOrchestrator, ProviderFactory
from ..errors import CVAssistantError
from ..providers import GenerationConfig, create_provider
from ..storage.kv import KeyValueStore, SQLiteKeyValueStore
from ..storage.project_store import ProjectStore
from .api.v1.router import api_v1_router
from .errors import APIError, api_error_handler, domain_error_handler, validation_error_handler

logger = logging.getLogger("cv_assistant.web.api")


def default_provider_factory(config: AppConfig) -> ProviderFactory:
    def factory(model: str, credential: str):
        return create_provider(config.provider, credential, model, config.api_base)

    return factory


def create_app(
    config: Optional[AppConfig] = None,
    storage: Optional[KeyValueStore] = None,
    provider_factory: Optional[ProviderFactory] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Without *storage* the app opens the SQLite store at ``config.db_path``
    for the lifetime of the server.
    """
    config = config or load_config()
    owned_storage = storage is None
    kv = storage if storage is not None else SQLiteKeyValueStore(config.resolved_db_path)

    store = ProjectStore(kv)
    orchestrator = ConversationOrchestrator(
        store,
        provider_factory or default_provider_factory(config),
        generation=GenerationConfig(max_tokens=config.max_tokens, temperature=config.temperature),
        observer=TurnObserver(verbose=config.verbose),
        timeout_seconds=config.chat_timeout_seconds,
    )

    @asynccontextmanager
    async def lifespan(_: FastAPI):
        if owned_storage:
            await kv.start()
        try:
            project = await store.ensure_default_project()
            logger.info("active project id=%s name=%r", project.id, project.name)
            yield
        finally:
            if owned_storage:
                await kv.stop()

    app = FastAPI(title="CV Assistant API", version="0.1.0", lifespan=lifespan)
    app.state.config = config
    app.state.project_store = store
    app.state.orchestrator = orchestrator
    app.include_router(api_v1_router)

    @app.middleware("http")
    async def request_logging_middleware(request: Request, call_next):
        start = perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            logger.info(
                "api_request method=%s path=%s status=%s duration_ms=%.2f project_id=%s",
                request.method,
                request.url.path,
                500,
                (perf_counter() - start) * 1000,
                request.scope.get("path_params", {}).get("project_id", "-"),
            )
            raise

        logger.info(
            "api_request method=%s path=%s status=%s duration_ms=%.2f project_id=%s",
            request.method,
            request.url.path,
            response.status_code,
            (perf_counter() - start) * 1000,
            request.scope.get("path_params", {}).get("project_id", "-"),
        )
        return response

    @app.get("/healthz", tags=["system"])
    async def healthz() -> dict:
        return {"status": "ok"}

    app.add_exception_handler(APIError, api_error_handler)
    app.add_exception_handler(CVAssistantError, domain_error_handler)
    app.add_exception_handler(RequestValidationError, validation_error_handler)
    return app


def main() -> None:
    """Run development API server."""
    import uvicorn
    from dotenv import load_dotenv

    load_dotenv()
    uvicorn.run("cv_assistant.web.app:create_app", factory=True, host="127.0.0.1", port=8000)
