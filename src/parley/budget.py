"""Budget allocation — split the free context window between prompt parts."""

from __future__ import annotations

from dataclasses import dataclass, replace

from .models import CompactMemory
from .tokens import TokenCounter, count_tokens

PINNED_FACT_TOKENS = 20
SUMMARY_FRAMING_TOKENS = 20
STANCE_FRAMING_TOKENS = 10


@dataclass(frozen=True)
class AllocationPolicy:
    """Fractions of the available tokens given to each prompt part."""

    notebook: float = 0.10
    interjections: float = 0.15
    messages: float = 0.75

    def __post_init__(self) -> None:
        shares = (self.notebook, self.interjections, self.messages)
        if any(s < 0 for s in shares):
            msg = "allocation shares must be non-negative"
            raise ValueError(msg)
        if sum(shares) > 1.0 + 1e-9:
            msg = "allocation shares must sum to at most 1.0"
            raise ValueError(msg)


@dataclass(frozen=True)
class BudgetAllocation:
    """Token sub-budgets for one turn."""

    total: int
    system_prompt: int
    response_reserve: int
    available: int
    notebook: int
    interjections: int
    messages: int
    compact_memory: int = 0

    def reserve_for_memory(self, tokens: int) -> BudgetAllocation:
        """Move *tokens* from the message share to compact memory."""
        tokens = max(0, tokens)
        return replace(
            self,
            messages=max(0, self.messages - tokens),
            compact_memory=self.compact_memory + tokens,
        )


class BudgetAllocator:
    """Tracks the context ceiling and hands out per-turn allocations."""

    def __init__(
        self,
        max_tokens: int,
        response_reserve: int = 1000,
        policy: AllocationPolicy | None = None,
    ) -> None:
        if max_tokens <= 0:
            msg = "max_tokens must be positive"
            raise ValueError(msg)
        self._max = max_tokens
        self._reserve = response_reserve
        self._policy = policy or AllocationPolicy()

    @property
    def max_tokens(self) -> int:
        return self._max

    @property
    def response_reserve(self) -> int:
        return self._reserve

    @property
    def policy(self) -> AllocationPolicy:
        return self._policy

    def allocate(self, system_tokens: int) -> BudgetAllocation:
        """Split what is left after the system prompt and response reserve.

        A non-positive remainder yields zero for every share; the caller
        then sends a system-only prompt.
        """
        available = self._max - self._reserve - system_tokens
        if available <= 0:
            return BudgetAllocation(
                total=self._max,
                system_prompt=system_tokens,
                response_reserve=self._reserve,
                available=available,
                notebook=0,
                interjections=0,
                messages=0,
            )
        return BudgetAllocation(
            total=self._max,
            system_prompt=system_tokens,
            response_reserve=self._reserve,
            available=available,
            notebook=int(available * self._policy.notebook),
            interjections=int(available * self._policy.interjections),
            messages=int(available * self._policy.messages),
        )


def estimate_compact_memory_tokens(
    memory: CompactMemory, counter: TokenCounter | None = None
) -> int:
    """Approximate prompt footprint of a compact-memory block."""
    tokens = 0
    if memory.distilled_summary:
        tokens += count_tokens(memory.distilled_summary, counter) + SUMMARY_FRAMING_TOKENS
    tokens += len(memory.pinned_facts) * PINNED_FACT_TOKENS
    if memory.current_stance:
        tokens += count_tokens(memory.current_stance, counter) + STANCE_FRAMING_TOKENS
    return tokens
