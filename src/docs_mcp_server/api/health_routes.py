from fastapi import APIRouter, Depends
from typing import Annotated

from .dependencies import get_vector_store
from .models import HealthResponse
from ..embeddings.index import VectorStoreManager

router = APIRouter(tags=["health"])


@router.get("/health", response_model=HealthResponse)
async def health(
    vector_store: Annotated[VectorStoreManager, Depends(get_vector_store)],
) -> HealthResponse:
    loaded = vector_store.is_index_loaded()
    return HealthResponse(status="ok" if loaded else "degraded", index_loaded=loaded)
