"""
OpenAI LLM
Responses API client with hosted tools (web_search).
"""
from typing import List, Optional, Dict
import logging
import inspect

from openai import AsyncOpenAI, OpenAIError

from utils.exceptions import LLMError

from .base import BaseLLM, Message, LLMResponse


logger = logging.getLogger(__name__)


class OpenAILLM(BaseLLM):
    """OpenAI client built on ``responses.create``."""

    def __init__(
        self,
        model: str = "gpt-4o-mini",
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        temperature: float = 0.2,
        top_p: float = 1.0,
        max_output_tokens: int = 300,
        timeout: float = 60.0,
        **kwargs,
    ):
        super().__init__(model, temperature, top_p, max_output_tokens, timeout, **kwargs)
        self.api_key = api_key
        self.base_url = base_url
        self._async_client = None

    @property
    def provider(self) -> str:
        return "openai"

    def _get_async_client(self) -> AsyncOpenAI:
        if self._async_client is None:
            self._async_client = AsyncOpenAI(
                api_key=self.api_key,
                base_url=self.base_url,
                timeout=self.timeout,
            )
        return self._async_client

    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        client = self._get_async_client()

        request_params = {
            "model": self.model,
            "input": [m.to_dict() for m in messages],
            "temperature": kwargs.get("temperature", self.temperature),
            "top_p": kwargs.get("top_p", self.top_p),
            "max_output_tokens": kwargs.get("max_output_tokens", self.max_output_tokens),
        }
        if tools:
            request_params["tools"] = tools

        try:
            response = await client.responses.create(**request_params)
        except OpenAIError as exc:
            raise LLMError(f"OpenAI request failed: {exc}", provider=self.provider) from exc

        usage = getattr(response, "usage", None)
        return LLMResponse(
            content=getattr(response, "output_text", "") or "",
            model=getattr(response, "model", self.model),
            usage={
                "input_tokens": int(getattr(usage, "input_tokens", 0) or 0),
                "output_tokens": int(getattr(usage, "output_tokens", 0) or 0),
                "total_tokens": int(getattr(usage, "total_tokens", 0) or 0),
            },
            raw_response=response,
        )

    async def aclose(self) -> None:
        client = self._async_client
        if client is None:
            return
        try:
            close_fn = getattr(client, "close", None)
            if callable(close_fn):
                maybe_awaitable = close_fn()
                if inspect.isawaitable(maybe_awaitable):
                    await maybe_awaitable
        except Exception as exc:
            logger.debug("openai client close failed: %s", exc)
        self._async_client = None
