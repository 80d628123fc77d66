"""
LLM Tool Definitions

Function schemas offered to the chat model. Every name here needs a handler
in tools/base.py (TOOL_REGISTRY); the agent never runs anything else.
"""

from __future__ import annotations

from typing import Any, Dict, Final, List

TOOL_SEARCH_DOCS: Final[str] = "search_docs"


def _function_tool(name: str, description: str, properties: Dict[str, Any], required: List[str]) -> Dict[str, Any]:
    return {
        "type": "function",
        "function": {
            "name": name,
            "description": description,
            "parameters": {
                "type": "object",
                "properties": properties,
                "required": required,
                "additionalProperties": False,
            },
        },
    }


_SEARCH_DOCS_PROPERTIES: Dict[str, Any] = {
    "query": {
        "type": "string",
        "minLength": 1,
        "description": "What to look for, phrased in plain language.",
    },
    "limit": {
        "type": "integer",
        "minimum": 1,
        "maximum": 20,
        "description": "How many passages to return at most.",
    },
}

TOOL_DEFINITIONS: List[Dict[str, Any]] = [
    _function_tool(
        TOOL_SEARCH_DOCS,
        "Look up the documentation and get back the closest matching passages, "
        "each with its page title and URL. Use it before answering anything "
        "about the documented library.",
        _SEARCH_DOCS_PROPERTIES,
        required=["query"],
    ),
]
