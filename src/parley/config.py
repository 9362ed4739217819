"""Engine configuration — tunables for budgeting, scoring and distillation."""

from __future__ import annotations

import os
from dataclasses import dataclass, field

from .budget import AllocationPolicy, BudgetAllocator
from .scoring import DecayConfig, ImportanceScorer, ImportanceWeights
from .tokens import TokenEstimator


@dataclass
class DistillationConfig:
    """When to compact, how to call the summarizer, what to show afterwards."""

    first_round: int = 2
    max_round_lag: int = 1
    undistilled_threshold: int = 10
    model: str = "default"
    temperature: float = 0.2
    max_tokens: int = 2000
    fact_display_threshold: int = 7
    max_displayed_facts: int = 5


@dataclass
class EngineConfig:
    """Configuration for one conversation's context engine."""

    max_context_tokens: int = 8000
    response_reserve: int = 1000
    allocation: AllocationPolicy = field(default_factory=AllocationPolicy)
    weights: ImportanceWeights = field(default_factory=ImportanceWeights)
    decay: DecayConfig = field(default_factory=DecayConfig)
    distillation: DistillationConfig = field(default_factory=DistillationConfig)
    tokenizer_encoding: str = "cl100k_base"

    @classmethod
    def from_env(cls) -> EngineConfig:
        """Build a config, overriding defaults from ``PARLEY_*`` variables.

        Reads ``PARLEY_MAX_CONTEXT_TOKENS``, ``PARLEY_RESPONSE_RESERVE`` and
        ``PARLEY_TOKENIZER``.

        Raises:
            ValueError: If a numeric variable is not an integer.
        """
        config = cls()
        config.max_context_tokens = _env_int("PARLEY_MAX_CONTEXT_TOKENS", config.max_context_tokens)
        config.response_reserve = _env_int("PARLEY_RESPONSE_RESERVE", config.response_reserve)
        tokenizer = os.environ.get("PARLEY_TOKENIZER", "").strip()
        if tokenizer:
            config.tokenizer_encoding = tokenizer
        return config

    def allocator(self) -> BudgetAllocator:
        return BudgetAllocator(
            self.max_context_tokens, self.response_reserve, self.allocation
        )

    def scorer(self) -> ImportanceScorer:
        return ImportanceScorer(weights=self.weights, decay=self.decay)

    def estimator(self) -> TokenEstimator:
        return TokenEstimator(self.tokenizer_encoding)


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        msg = f"{name} must be an integer, got {raw!r}"
        raise ValueError(msg) from None
