import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings

logger = logging.getLogger("docs.llm")


class LLMError(RuntimeError):
    """Raised when the completion service fails or answers malformed."""


def _first_message(body: Any) -> Dict[str, Any]:
    try:
        message = body["choices"][0]["message"]
    except (KeyError, IndexError, TypeError) as exc:
        raise LLMError("Completion response has no choices[0].message") from exc
    if not isinstance(message, dict):
        raise LLMError("Completion message is not an object")
    return message


class LLMClient:
    """Thin chat-completions client; callers interpret tool calls themselves."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.openai_api_key.get_secret_value()
        self.model = model or settings.chat_model
        self.base_url = base_url or settings.chat_base_url
        self.timeout = timeout
        self._transport = transport

    async def chat(
        self,
        system_prompt: str,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]] | None = None,
        temperature: float = 0.2,
    ) -> Dict[str, Any]:
        """
        Send one completion round and return the assistant message as-is,
        including any ``tool_calls`` it carries.
        """
        request: Dict[str, Any] = {
            "model": self.model,
            "temperature": temperature,
            "messages": [{"role": "system", "content": system_prompt}, *messages],
        }
        if tools:
            request["tools"] = tools

        headers = {"Authorization": f"Bearer {self.api_key}"}
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            try:
                resp = await client.post(self.base_url, json=request, headers=headers)
                resp.raise_for_status()
                body = resp.json()
            except httpx.HTTPError as exc:
                logger.warning("Chat completion failed: %s: %s", type(exc).__name__, exc)
                raise LLMError(f"Completion request failed: {type(exc).__name__}") from exc
            except ValueError as exc:
                raise LLMError("Completion response is not JSON") from exc

        return _first_message(body)
