"""
Agent Routes

Conversational question answering over the documentation. The agent may
call the ``search_docs`` tool any number of times (bounded by the step
limit) before producing a final answer, and remembers prior turns per
session.
"""

from fastapi import APIRouter, Depends, status
from typing import Annotated

from .models import AgentQueryRequest, AgentResponse
from .dependencies import get_agent_service
from ..query.agent import AgentService

router = APIRouter(prefix="/agent", tags=["agent"])


@router.post(
    "/query",
    response_model=AgentResponse,
    summary="Ask the documentation agent",
    status_code=status.HTTP_200_OK,
)
async def agent_query(
    req: AgentQueryRequest,
    agent: Annotated[AgentService, Depends(get_agent_service)],
) -> AgentResponse:
    return await agent.generate_agent_response(req.query, req.session_id)
