"""Token estimation — tokenizer-backed counts with a character fallback."""

from __future__ import annotations

import logging
import math
import re
from typing import Any, Protocol

import tiktoken

from .provider import ChatMessage

logger = logging.getLogger(__name__)

CHARS_PER_TOKEN = 4
MESSAGE_OVERHEAD = 4
REPLY_PRIMING = 2

_CODE_CHARS = re.compile(r"""[{}\[\]()=<>:;,.\-+*/\\|&!@#$%^~`'"]""")


class TokenCounter(Protocol):
    """Anything that can approximate the token length of a text."""

    def count(self, text: str) -> int: ...


def heuristic_tokens(text: str) -> int:
    """Character-count estimate: one token per four characters."""
    if not text:
        return 0
    return math.ceil(len(text) / CHARS_PER_TOKEN)


class HeuristicTokenEstimator:
    """Tokenizer-free estimator. Deterministic, used as the fallback."""

    def count(self, text: str) -> int:
        return heuristic_tokens(text)


class TokenEstimator:
    """Counts tokens with a tiktoken encoding, falling back to characters.

    The encoding is loaded lazily. If it cannot be loaded (unknown name,
    no cached BPE file offline) or encoding a text fails, the estimator
    degrades to :func:`heuristic_tokens` instead of raising.
    """

    def __init__(self, encoding_name: str = "cl100k_base") -> None:
        self._encoding_name = encoding_name
        self._encoding: Any = None
        self._unavailable = False

    @property
    def encoding_name(self) -> str:
        return self._encoding_name

    def _load(self) -> Any:
        if self._encoding is None and not self._unavailable:
            try:
                self._encoding = tiktoken.get_encoding(self._encoding_name)
            except Exception:  # noqa: BLE001
                logger.debug(
                    "Tokenizer %s unavailable, using character heuristic",
                    self._encoding_name,
                    exc_info=True,
                )
                self._unavailable = True
        return self._encoding

    def count(self, text: str) -> int:
        if not text:
            return 0
        encoding = self._load()
        if encoding is None:
            return heuristic_tokens(text)
        try:
            return len(encoding.encode(text, disallowed_special=()))
        except Exception:  # noqa: BLE001
            logger.debug("Token encoding failed, using character heuristic", exc_info=True)
            return heuristic_tokens(text)

    def truncate(self, text: str, max_tokens: int) -> str:
        """Cut *text* to roughly *max_tokens*, marking the cut with ``...``."""
        if max_tokens <= 0:
            return ""
        if self.count(text) <= max_tokens:
            return text
        keep = max(0, max_tokens - 3)
        encoding = self._load()
        if encoding is not None:
            try:
                return encoding.decode(encoding.encode(text, disallowed_special=())[:keep]) + "..."
            except Exception:  # noqa: BLE001
                logger.debug("Token truncation failed, cutting by characters", exc_info=True)
        return text[: max_tokens * CHARS_PER_TOKEN] + "..."


_DEFAULT_ESTIMATOR: TokenEstimator | None = None


def default_estimator() -> TokenEstimator:
    global _DEFAULT_ESTIMATOR  # noqa: PLW0603
    if _DEFAULT_ESTIMATOR is None:
        _DEFAULT_ESTIMATOR = TokenEstimator()
    return _DEFAULT_ESTIMATOR


def count_tokens(text: str, counter: TokenCounter | None = None) -> int:
    """Approximate token count of *text*."""
    return (counter or default_estimator()).count(text)


def count_message_tokens(
    messages: list[ChatMessage], counter: TokenCounter | None = None
) -> int:
    """Token cost of a chat prompt, including per-message framing."""
    total = sum(count_tokens(m.content, counter) + MESSAGE_OVERHEAD for m in messages)
    return total + REPLY_PRIMING


def estimate_conversation_tokens(
    system_prompt: str,
    messages: list[ChatMessage],
    new_message: str | None = None,
    counter: TokenCounter | None = None,
) -> int:
    total = count_tokens(system_prompt, counter) + MESSAGE_OVERHEAD
    total += count_message_tokens(messages, counter)
    if new_message:
        total += count_tokens(new_message, counter) + MESSAGE_OVERHEAD
    return total


def rough_token_estimate(text: str) -> int:
    """Quick estimate that charges extra for code-like punctuation."""
    code_chars = len(_CODE_CHARS.findall(text))
    return math.ceil(len(text) / CHARS_PER_TOKEN + code_chars * 0.5)


def truncate_to_token_limit(text: str, max_tokens: int, estimator: TokenEstimator | None = None) -> str:
    return (estimator or default_estimator()).truncate(text, max_tokens)
