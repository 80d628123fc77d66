"""
Agent and Tool Dispatch Tests

The LLM is replaced by a scripted fake; searches run against a real index
built from the fake embedder.
"""

import json
from typing import Any, Dict, List

import pytest

from conftest import BASE_URL, FakeEmbedder, page_url
from docs_mcp_server.api.models import ChatMessage, SearchToolOutcome, ToolErrorOutcome
from docs_mcp_server.embeddings.index import IndexNotLoadedError, VectorStoreManager
from docs_mcp_server.indexing.models import CorpusDocument
from docs_mcp_server.llm.client import LLMError
from docs_mcp_server.prompts import STEP_LIMIT_NOTE
from docs_mcp_server.query.agent import AgentService
from docs_mcp_server.query.direct import DirectQueryService
from docs_mcp_server.sessions.store import InvalidSessionIdError, SessionStore
from docs_mcp_server.tools.base import dispatch_tool_call, parse_arguments
from docs_mcp_server.tools.definitions import TOOL_DEFINITIONS, TOOL_SEARCH_DOCS


class ScriptedLLM:
    """Returns canned assistant messages in order and records each request."""

    def __init__(self, replies: List[Dict[str, Any]]) -> None:
        self.replies = list(replies)
        self.requests: List[Dict[str, Any]] = []

    async def chat(self, system_prompt, messages, tools=None, temperature=0.2):
        self.requests.append({"messages": list(messages), "tools": tools})
        if not self.replies:
            raise AssertionError("LLM called more times than scripted")
        return self.replies.pop(0)


def _tool_call(call_id, query, name=TOOL_SEARCH_DOCS):
    return {
        "id": call_id,
        "type": "function",
        "function": {"name": name, "arguments": json.dumps({"query": query})},
    }


def _answer(text):
    return {"role": "assistant", "content": text}


def _calls(*calls):
    return {"role": "assistant", "content": None, "tool_calls": list(calls)}


async def _loaded_store(tmp_path):
    store = VectorStoreManager(tmp_path / "faiss_index", FakeEmbedder(), base_url=BASE_URL)
    await store.build_index([
        CorpusDocument(
            url=page_url("streaming"),
            title="Streaming",
            content="streamText streams tokens from the model",
        ),
        CorpusDocument(
            url=page_url("tools"),
            title="Tools",
            content="define tools with a schema so the model can call functions",
        ),
    ])
    return store


class TestToolDispatch:
    """Tests for dispatch_tool_call."""

    @pytest.mark.asyncio
    async def test_search_returns_documents(self, tmp_path):
        store = await _loaded_store(tmp_path)

        content, outcome = await dispatch_tool_call(
            TOOL_SEARCH_DOCS, '{"query": "streamText tokens", "limit": 1}', store
        )

        assert isinstance(outcome, SearchToolOutcome)
        assert outcome.status == "ok"
        assert outcome.query == "streamText tokens"
        assert [d.url for d in outcome.documents] == [page_url("streaming")]
        assert "URL: " + page_url("streaming") in content

    @pytest.mark.asyncio
    async def test_unknown_tool(self, tmp_path):
        content, outcome = await dispatch_tool_call("delete_everything", "{}", None)

        assert isinstance(outcome, ToolErrorOutcome)
        assert "Unknown tool" in outcome.error
        assert json.loads(content)["error"] == outcome.error

    @pytest.mark.asyncio
    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", '{"limit": 3}', '{"query": ""}'])
    async def test_bad_arguments(self, tmp_path, raw):
        store = await _loaded_store(tmp_path)
        _, outcome = await dispatch_tool_call(TOOL_SEARCH_DOCS, raw, store)

        assert isinstance(outcome, ToolErrorOutcome)
        assert outcome.error.startswith("Invalid arguments")

    @pytest.mark.asyncio
    async def test_index_not_loaded_is_tool_error(self, tmp_path):
        store = VectorStoreManager(tmp_path / "none", FakeEmbedder(), base_url=BASE_URL)

        _, outcome = await dispatch_tool_call(TOOL_SEARCH_DOCS, '{"query": "x"}', store)

        assert isinstance(outcome, ToolErrorOutcome)
        assert "IndexNotLoadedError" in outcome.error

    def test_parse_arguments_accepts_dict(self):
        assert parse_arguments({"query": "a"}) == {"query": "a"}
        assert parse_arguments("") == {}

    def test_definitions_match_registry(self):
        names = [d["function"]["name"] for d in TOOL_DEFINITIONS]
        assert names == [TOOL_SEARCH_DOCS]


class TestDirectQuery:
    """Tests for DirectQueryService."""

    @pytest.mark.asyncio
    async def test_results_numbered_from_one(self, tmp_path):
        service = DirectQueryService(await _loaded_store(tmp_path), default_limit=2)

        results = await service.perform_search("define tools schema")

        assert [r.index for r in results] == [1, 2]
        assert results[0].title == "Tools"
        assert results[0].source == "docs-tools.json"

    def test_requires_loaded_index(self, tmp_path):
        store = VectorStoreManager(tmp_path / "none", FakeEmbedder(), base_url=BASE_URL)
        with pytest.raises(IndexNotLoadedError):
            DirectQueryService(store)


class TestAgentService:
    """Tests for AgentService.generate_agent_response()."""

    @pytest.mark.asyncio
    async def test_answer_without_tools(self, tmp_path):
        llm = ScriptedLLM([_answer("Hello!")])
        agent = AgentService(llm, await _loaded_store(tmp_path), SessionStore(tmp_path / "s"))

        response = await agent.generate_agent_response("hi")

        assert response.answer == "Hello!"
        assert response.tool_calls == []
        assert llm.requests[0]["tools"] == TOOL_DEFINITIONS

    @pytest.mark.asyncio
    async def test_tool_call_then_answer(self, tmp_path):
        llm = ScriptedLLM([
            _calls(_tool_call("call_1", "streamText tokens")),
            _answer("Use streamText."),
        ])
        agent = AgentService(llm, await _loaded_store(tmp_path), SessionStore(tmp_path / "s"))

        response = await agent.generate_agent_response("How do I stream?", "sess")

        assert response.answer == "Use streamText."
        assert [c.query for c in response.tool_calls] == ["streamText tokens"]
        assert response.tool_results[0].status == "ok"

        tool_msg = llm.requests[1]["messages"][-1]
        assert tool_msg["role"] == "tool"
        assert tool_msg["tool_call_id"] == "call_1"
        assert page_url("streaming") in tool_msg["content"]

    @pytest.mark.asyncio
    async def test_history_is_replayed_and_saved(self, tmp_path):
        sessions = SessionStore(tmp_path / "s")
        store = await _loaded_store(tmp_path)

        first = ScriptedLLM([_answer("First answer")])
        await AgentService(first, store, sessions).generate_agent_response("Q1", "sess")

        second = ScriptedLLM([_answer("Second answer")])
        await AgentService(second, store, sessions).generate_agent_response("Q2", "sess")

        sent = second.requests[0]["messages"]
        assert [m["content"] for m in sent] == ["Q1", "First answer", "Q2"]
        assert [m.content for m in sessions.get_history("sess")] == [
            "Q1", "First answer", "Q2", "Second answer",
        ]

    @pytest.mark.asyncio
    async def test_step_limit_forces_final_answer(self, tmp_path):
        llm = ScriptedLLM([
            _calls(_tool_call("c1", "streaming")),
            _calls(_tool_call("c2", "streaming again")),
            _answer("Best effort answer"),
        ])
        agent = AgentService(
            llm, await _loaded_store(tmp_path), SessionStore(tmp_path / "s"), max_steps=2
        )

        response = await agent.generate_agent_response("loop forever")

        assert response.answer == "Best effort answer"
        assert len(response.tool_calls) == 2
        final = llm.requests[-1]
        assert final["tools"] is None
        assert final["messages"][-1]["content"] == STEP_LIMIT_NOTE

    @pytest.mark.asyncio
    async def test_failed_tool_reported_to_llm(self, tmp_path):
        llm = ScriptedLLM([
            _calls(_tool_call("c1", "x", name="no_such_tool")),
            _answer("Sorry."),
        ])
        agent = AgentService(llm, await _loaded_store(tmp_path), SessionStore(tmp_path / "s"))

        response = await agent.generate_agent_response("q")

        assert isinstance(response.tool_results[0], ToolErrorOutcome)
        assert "error" in json.loads(llm.requests[1]["messages"][-1]["content"])

    @pytest.mark.asyncio
    async def test_malformed_tool_call_raises(self, tmp_path):
        llm = ScriptedLLM([{"role": "assistant", "tool_calls": [{"function": {}}]}])
        agent = AgentService(llm, await _loaded_store(tmp_path), SessionStore(tmp_path / "s"))

        with pytest.raises(LLMError):
            await agent.generate_agent_response("q")

    @pytest.mark.asyncio
    async def test_clear_session(self, tmp_path):
        sessions = SessionStore(tmp_path / "s")
        agent = AgentService(ScriptedLLM([]), None, sessions)
        sessions.add_messages("a", [ChatMessage(role="user", content="x")])
        sessions.add_messages("b", [ChatMessage(role="user", content="y")])

        assert await agent.clear_session("a") == 1
        assert await agent.clear_session("a") == 0
        assert await agent.clear_session() == 1

    @pytest.mark.asyncio
    @pytest.mark.parametrize("session_id", ["", "/"])
    async def test_clear_session_rejects_unusable_id(self, tmp_path, session_id):
        sessions = SessionStore(tmp_path / "s")
        agent = AgentService(ScriptedLLM([]), None, sessions)
        sessions.add_messages("a", [ChatMessage(role="user", content="x")])

        with pytest.raises(InvalidSessionIdError):
            await agent.clear_session(session_id)
        assert sessions.has_session("a")
