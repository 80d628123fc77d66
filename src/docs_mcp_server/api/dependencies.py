"""
Request Dependencies

Components are constructed once by ``create_app`` and stored on
``app.state``; routes receive them through these accessors so tests can
swap them with ``app.dependency_overrides``.
"""

from fastapi import Request

from ..embeddings.index import VectorStoreManager
from ..query.agent import AgentService
from ..query.direct import DirectQueryService


def get_vector_store(request: Request) -> VectorStoreManager:
    return request.app.state.vector_store


def get_agent_service(request: Request) -> AgentService:
    return request.app.state.agent_service


def get_direct_query_service(request: Request) -> DirectQueryService:
    """
    Build the direct query service against the currently loaded index.

    Raises IndexNotLoadedError (mapped to 503) when no index is loaded.
    """
    return DirectQueryService(
        request.app.state.vector_store,
        default_limit=request.app.state.settings.direct_query_limit_default,
    )
