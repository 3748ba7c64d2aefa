"""
Base LLM
Provider-neutral message/response types and client interface.
"""
from abc import ABC, abstractmethod
from typing import List, Optional, Dict, Any
from dataclasses import dataclass, field
from enum import Enum


class MessageRole(str, Enum):
    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


@dataclass
class Message:
    """Conversation message"""
    role: MessageRole
    content: str

    def to_dict(self) -> Dict[str, Any]:
        return {"role": self.role.value, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        return cls(role=MessageRole.SYSTEM, content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        return cls(role=MessageRole.USER, content=content)


@dataclass
class LLMResponse:
    """LLM response"""
    content: str
    model: str
    usage: Dict[str, int] = field(default_factory=dict)
    raw_response: Optional[Any] = None


class BaseLLM(ABC):
    """
    LLM client interface.

    Tools use the provider's hosted-tool format, e.g. ``{"type": "web_search"}``.
    """

    def __init__(
        self,
        model: str,
        temperature: float = 0.2,
        top_p: float = 1.0,
        max_output_tokens: int = 300,
        timeout: float = 60.0,
        **kwargs,
    ):
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_output_tokens = max_output_tokens
        self.timeout = timeout
        self.extra_config = kwargs

    @property
    @abstractmethod
    def provider(self) -> str:
        pass

    @abstractmethod
    async def acomplete(
        self,
        messages: List[Message],
        tools: Optional[List[Dict]] = None,
        **kwargs,
    ) -> LLMResponse:
        """
        Generate a response asynchronously.

        Args:
            messages: conversation messages
            tools: hosted tool definitions
            **kwargs: per-call overrides (temperature, top_p, max_output_tokens)

        Returns:
            LLMResponse
        """
        pass

    async def aclose(self) -> None:
        """Release underlying client resources (default no-op)."""
        return None

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model}, provider={self.provider})"
