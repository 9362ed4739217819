"""Tests for budget module — allocation and compact-memory estimates."""

from __future__ import annotations

import pytest

from parley.budget import (
    AllocationPolicy,
    BudgetAllocator,
    estimate_compact_memory_tokens,
)
from parley.models import CompactMemory, PinnedFact
from parley.tokens import HeuristicTokenEstimator


def test_allocation_split():
    allocation = BudgetAllocator(4000, response_reserve=1000).allocate(200)
    assert allocation.available == 2800
    assert allocation.notebook == 280
    assert allocation.interjections == 420
    assert allocation.messages == 2100
    assert allocation.compact_memory == 0


def test_allocation_floors_shares():
    allocation = BudgetAllocator(1000, response_reserve=0).allocate(1)
    assert allocation.available == 999
    assert allocation.notebook == 99
    assert allocation.interjections == 149
    assert allocation.messages == 749


@pytest.mark.parametrize("system_tokens", [3000, 3500])
def test_exhausted_budget_gives_zero_shares(system_tokens: int):
    allocation = BudgetAllocator(4000, response_reserve=1000).allocate(system_tokens)
    assert allocation.available <= 0
    assert allocation.notebook == 0
    assert allocation.interjections == 0
    assert allocation.messages == 0


def test_reserve_for_memory_moves_tokens_from_messages():
    allocation = BudgetAllocator(4000, response_reserve=1000).allocate(200)
    reserved = allocation.reserve_for_memory(500)
    assert reserved.messages == 1600
    assert reserved.compact_memory == 500
    assert reserved.notebook == allocation.notebook

    assert allocation.reserve_for_memory(5000).messages == 0


def test_custom_policy():
    policy = AllocationPolicy(notebook=0.0, interjections=0.5, messages=0.5)
    allocation = BudgetAllocator(2000, response_reserve=0, policy=policy).allocate(0)
    assert allocation.notebook == 0
    assert allocation.interjections == 1000
    assert allocation.messages == 1000


def test_invalid_policy_rejected():
    with pytest.raises(ValueError):
        AllocationPolicy(notebook=0.5, interjections=0.5, messages=0.5)
    with pytest.raises(ValueError):
        AllocationPolicy(notebook=-0.1)


def test_non_positive_ceiling_rejected():
    with pytest.raises(ValueError):
        BudgetAllocator(0)


def test_compact_memory_estimate():
    memory = CompactMemory(
        conversation_id="c1",
        distilled_summary="a" * 40,
        current_stance="b" * 8,
        pinned_facts=[
            PinnedFact(id="pf-1-0", content="x"),
            PinnedFact(id="pf-1-1", content="y"),
        ],
    )
    # (10 + 20) + 2 * 20 + (2 + 10)
    assert estimate_compact_memory_tokens(memory, HeuristicTokenEstimator()) == 82


def test_empty_memory_costs_nothing():
    memory = CompactMemory(conversation_id="c1")
    assert estimate_compact_memory_tokens(memory, HeuristicTokenEstimator()) == 0
