"""
Search Routes

Direct similarity search over the documentation index, without the LLM.
Responds 503 when no index is loaded, so an empty list always means
"loaded, but nothing matched".
"""

from fastapi import APIRouter, Depends, status
from typing import List, Annotated

from .models import SearchRequest, FormattedSearchResult
from .dependencies import get_direct_query_service
from ..query.direct import DirectQueryService

router = APIRouter(prefix="/search", tags=["search"])


@router.post(
    "",
    response_model=List[FormattedSearchResult],
    summary="Direct similarity search",
    status_code=status.HTTP_200_OK,
)
async def search(
    req: SearchRequest,
    service: Annotated[DirectQueryService, Depends(get_direct_query_service)],
) -> List[FormattedSearchResult]:
    """
    Perform a vector similarity search over the documentation.

    Parameters
    ----------
    req : SearchRequest
        Contains:
        - query: Search query string
        - limit: Optional number of results (server default otherwise)

    Returns
    -------
    List[FormattedSearchResult]
        Ranked list of matching passages.
    """
    return await service.perform_search(req.query, req.limit)
