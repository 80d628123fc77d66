"""
Documentation Server Entry Point

This module defines the FastAPI application factory, registers all routers,
configures global exception handling, and provides the ``docs-mcp-serve``
console entry point.

Design Goals
------------
- Explicit component construction, owned by the application instance
- Startup never fails because the index is absent; queries report 503 instead
- Centralized router and exception handler registration
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from fastapi import FastAPI

from .config import Settings, settings
from .logging_config import configure_logging
from .core.errors import (
    index_not_loaded_handler,
    invalid_session_handler,
    llm_error_handler,
    unhandled_exception_handler,
)
from .embeddings.embedder import Embedder, EmbeddingFunction
from .embeddings.index import IndexNotLoadedError, VectorStoreManager
from .llm.client import LLMClient, LLMError
from .query.agent import AgentService
from .sessions.store import InvalidSessionIdError, SessionStore

from .api import (
    agent_routes,
    health_routes,
    search_routes,
    session_routes,
)


logger = logging.getLogger("docs.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app(
    app_settings: Optional[Settings] = None,
    vector_store: Optional[VectorStoreManager] = None,
    embedder: Optional[EmbeddingFunction] = None,
    llm: Optional[LLMClient] = None,
    session_store: Optional[SessionStore] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Every collaborator can be injected, which lets tests run the full HTTP
    surface against fakes. Anything not supplied is built from settings.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    cfg = app_settings or settings

    if vector_store is None:
        vector_store = VectorStoreManager(
            cfg.resolved_index_dir(),
            embedder or Embedder(
                api_key=cfg.openai_api_key.get_secret_value(),
                model=cfg.embedding_model,
                base_url=cfg.embedding_base_url,
                batch_size=cfg.embedding_batch_size,
            ),
            base_url=cfg.site_base_url,
            embedding_model=cfg.embedding_model,
            chunk_size=cfg.chunk_size,
            chunk_overlap=cfg.chunk_overlap,
        )
    if session_store is None:
        session_store = SessionStore(
            cfg.resolved_sessions_dir(),
            max_messages_per_session=cfg.session_max_messages,
        )
    agent_service = AgentService(
        llm or LLMClient(
            api_key=cfg.openai_api_key.get_secret_value(),
            model=cfg.chat_model,
            base_url=cfg.chat_base_url,
        ),
        vector_store,
        session_store,
        max_steps=cfg.agent_max_steps,
        search_limit=cfg.agent_query_limit_default,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting docs-mcp-server")

        if vector_store.load_index():
            logger.info("Documentation index loaded from %s", vector_store.index_dir)
        else:
            logger.warning(
                "No usable index at %s; queries will fail until docs-build-index is run",
                vector_store.index_dir,
            )

        yield

        logger.info("Shutting down docs-mcp-server")

    app = FastAPI(
        title="docs-mcp-server",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.state.settings = cfg
    app.state.vector_store = vector_store
    app.state.session_store = session_store
    app.state.agent_service = agent_service

    # --------------------------------------------------------------
    # Global Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(IndexNotLoadedError, index_not_loaded_handler)
    app.add_exception_handler(InvalidSessionIdError, invalid_session_handler)
    app.add_exception_handler(LLMError, llm_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(search_routes.router)
    app.include_router(agent_routes.router)
    app.include_router(session_routes.router)

    return app


def serve() -> None:
    """Run the HTTP server with uvicorn (``docs-mcp-serve``)."""
    import uvicorn

    configure_logging(settings.log_level)
    uvicorn.run(create_app(), host=settings.host, port=settings.port, log_config=None)
