from fastapi import APIRouter, Depends
from typing import Annotated, Optional

from .models import ClearSessionRequest, OperationResult
from .dependencies import get_agent_service
from ..query.agent import AgentService

router = APIRouter(prefix="/sessions", tags=["sessions"])


@router.delete(
    "",
    response_model=OperationResult,
    summary="Clear conversation memory",
)
async def clear_memory(
    agent: Annotated[AgentService, Depends(get_agent_service)],
    req: Optional[ClearSessionRequest] = None,
) -> OperationResult:
    """
    Clear one session's memory, or every session when no id is given.
    """
    session_id = req.session_id if req else None
    count = await agent.clear_session(session_id)

    if session_id is not None:
        message = f"Cleared memory for session {session_id}."
    else:
        message = f"Cleared memory for {count} session(s)."

    return OperationResult(status="deleted", count=count, message=message)
