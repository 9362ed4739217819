"""Summarization collaborator — the LLM interface the engine calls out to."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections import deque
from enum import StrEnum

from pydantic import BaseModel

# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


class ChatRole(StrEnum):
    """Role of a prompt segment."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """Single role-tagged prompt segment."""

    role: ChatRole
    content: str


class ChatRequest(BaseModel):
    """Request payload sent to an LLM provider."""

    model: str
    messages: list[ChatMessage]
    max_tokens: int | None = None
    temperature: float | None = None


class TokenUsage(BaseModel):
    """Token consumption metrics for a single request."""

    prompt_tokens: int
    completion_tokens: int


class ChatResponse(BaseModel):
    """Response returned from an LLM provider."""

    content: str
    usage: TokenUsage | None = None


# ---------------------------------------------------------------------------
# LLMProvider ABC
# ---------------------------------------------------------------------------


class LLMProvider(ABC):
    """Abstract base class for summarization back-ends.

    Timeouts and retries belong to implementations. Cancelling the calling
    task must cancel the in-flight request.
    """

    @abstractmethod
    def name(self) -> str:
        """Return the canonical provider name."""

    @abstractmethod
    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Send a chat completion request."""


# ---------------------------------------------------------------------------
# Stub implementation (for testing / offline development)
# ---------------------------------------------------------------------------


class StubLLMProvider(LLMProvider):
    """Replays scripted replies and records every request it receives."""

    _CANNED = "This is a stub summary."

    def __init__(self, replies: list[str] | None = None) -> None:
        self._replies: deque[str] = deque(replies or [])
        self.requests: list[ChatRequest] = []

    def name(self) -> str:
        return "stub"

    def queue(self, reply: str) -> None:
        self._replies.append(reply)

    @property
    def call_count(self) -> int:
        return len(self.requests)

    async def chat(self, request: ChatRequest) -> ChatResponse:
        """Return the next scripted reply, or a canned one when exhausted."""
        self.requests.append(request)
        reply = self._replies.popleft() if self._replies else self._CANNED
        prompt_tokens = sum(len(m.content.split()) for m in request.messages)
        return ChatResponse(
            content=reply,
            usage=TokenUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=len(reply.split()),
            ),
        )
