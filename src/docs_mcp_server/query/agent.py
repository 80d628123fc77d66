"""
Agent Service

Multi-turn question answering over the documentation index.

Major Responsibilities
----------------------
1. Load the session's prior messages (if a session id is given).
2. Call the LLM with the system prompt, history, the new question and the
   tool definitions.
3. Validate and execute every tool call the LLM makes, feeding results back.
4. Stop when the LLM answers without tools, or force a final answer once
   ``max_steps`` iterations are used.
5. Save the question and answer back to the session store.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ValidationError

from ..api.models import (
    AgentResponse,
    ChatMessage,
    SearchToolOutcome,
    ToolCallRecord,
    ToolOutcome,
)
from ..embeddings.index import VectorStoreManager
from ..llm.client import LLMClient, LLMError
from ..prompts import AGENT_SYSTEM_PROMPT, STEP_LIMIT_NOTE
from ..sessions.store import SessionStore
from ..tools.base import dispatch_tool_call
from ..tools.definitions import TOOL_DEFINITIONS

logger = logging.getLogger("docs.query.agent")


class _FunctionCall(BaseModel):
    name: str
    arguments: Any = "{}"


class _ToolCall(BaseModel):
    """Shape of one entry in an assistant message's ``tool_calls``."""
    id: str
    type: str = "function"
    function: _FunctionCall


class AgentService:
    def __init__(
        self,
        llm: LLMClient,
        vector_store: VectorStoreManager,
        session_store: SessionStore,
        max_steps: int = 8,
        search_limit: int = 5,
    ) -> None:
        self.llm = llm
        self.vector_store = vector_store
        self.sessions = session_store
        self.max_steps = max_steps
        self.search_limit = search_limit

    async def generate_agent_response(
        self,
        query: str,
        session_id: Optional[str] = None,
    ) -> AgentResponse:
        """
        Answer ``query``, continuing the conversation in ``session_id``.

        Raises
        ------
        InvalidSessionIdError
            If the session id cannot be mapped to storage.

        LLMError
            If the completion service fails or returns malformed tool calls.
        """
        history = self.sessions.get_history(session_id) if session_id else []

        loop_messages: List[Dict[str, Any]] = [
            {"role": m.role, "content": m.content} for m in history
        ]
        loop_messages.append({"role": "user", "content": query})

        tool_calls: List[ToolCallRecord] = []
        tool_results: List[ToolOutcome] = []
        answer: Optional[str] = None

        for step in range(self.max_steps):
            response_msg = await self.llm.chat(
                AGENT_SYSTEM_PROMPT,
                loop_messages,
                tools=TOOL_DEFINITIONS,
            )
            loop_messages.append(response_msg)

            raw_calls = response_msg.get("tool_calls") or []
            if not raw_calls:
                answer = response_msg.get("content") or ""
                break

            for raw in raw_calls:
                call = self._validate_tool_call(raw)
                content, outcome = await dispatch_tool_call(
                    call.function.name,
                    call.function.arguments,
                    self.vector_store,
                    self.search_limit,
                )
                tool_calls.append(
                    ToolCallRecord(
                        tool=call.function.name,
                        query=outcome.query if isinstance(outcome, SearchToolOutcome) else "",
                        timestamp=outcome.timestamp,
                    )
                )
                tool_results.append(outcome)
                loop_messages.append({
                    "role": "tool",
                    "tool_call_id": call.id,
                    "content": content,
                })

            logger.debug("Agent step %d executed %d tool calls", step + 1, len(raw_calls))

        if answer is None:
            logger.warning("Agent hit the %d step limit; forcing a final answer", self.max_steps)
            loop_messages.append({"role": "user", "content": STEP_LIMIT_NOTE})
            final_msg = await self.llm.chat(AGENT_SYSTEM_PROMPT, loop_messages)
            answer = final_msg.get("content") or ""

        if session_id:
            new_messages = [ChatMessage(role="user", content=query)]
            if answer:
                new_messages.append(ChatMessage(role="assistant", content=answer))
            self.sessions.add_messages(session_id, new_messages)

        return AgentResponse(
            answer=answer,
            tool_calls=tool_calls,
            tool_results=tool_results,
            session_id=session_id,
        )

    async def clear_session(self, session_id: Optional[str] = None) -> int:
        """
        Clear one session, or every session when ``session_id`` is None.

        Returns the number of session files removed.

        Raises
        ------
        InvalidSessionIdError
            If an explicit id (including an empty one) is unusable.
        """
        if session_id is not None:
            return 1 if self.sessions.clear(session_id) else 0
        return self.sessions.clear_all()

    @staticmethod
    def _validate_tool_call(raw: Any) -> _ToolCall:
        try:
            return _ToolCall.model_validate(raw)
        except ValidationError as exc:
            raise LLMError(f"Malformed tool call from LLM: {exc}") from exc
