"""Tests for assembler module — gating, block order and role mapping."""

from __future__ import annotations

from parley.assembler import (
    BuildOptions,
    ContextAssembler,
    discussion_phase,
    format_utterance,
    should_use_compact_memory,
)
from parley.config import EngineConfig
from parley.models import (
    CompactMemory,
    ConversationInfo,
    DistillationCursor,
    FactCategory,
    Interjection,
    Notebook,
    PinnedFact,
    Speaker,
    Utterance,
    UtteranceKind,
)
from parley.provider import ChatRole
from parley.templates import DiscussionPhase, EnglishTemplates
from parley.tokens import HeuristicTokenEstimator

COUNTER = HeuristicTokenEstimator()
BASE = 1_700_000_000_000

ALICE = Speaker(id="a", name="Alice", role="economist")
BOB = Speaker(id="b", name="Bob")
MOD = Speaker(id="m", name="Mod", is_coordinator=True)
SPEAKERS = [ALICE, BOB, MOD]


def _conversation(**kw) -> ConversationInfo:
    defaults = {
        "id": "c1",
        "subject": "Pricing",
        "opening_statement": "Should we raise prices?",
        "max_rounds": 6,
        "round_scope_reasoning": "three options to weigh",
    }
    defaults.update(kw)
    return ConversationInfo(**defaults)


def _assembler(conversation: ConversationInfo | None = None, **config) -> ContextAssembler:
    cfg = EngineConfig(max_context_tokens=config.pop("max_context_tokens", 100_000), **config)
    return ContextAssembler(conversation or _conversation(), cfg, counter=COUNTER)


def _history(n: int) -> list[Utterance]:
    return [
        Utterance(
            id=f"U{i}",
            conversation_id="c1",
            speaker_id="b",
            content=f"message {i}",
            round=i // 3,
            created_at=BASE + i * 1000,
        )
        for i in range(1, n + 1)
    ]


def _memory(cursor_id: str | None, **kw) -> CompactMemory:
    return CompactMemory(
        conversation_id="c1",
        distilled_summary=kw.pop("summary", "Earlier rounds agreed on a tiered model."),
        cursor=DistillationCursor(last_round=1, last_utterance_id=cursor_id),
        total_distilled=kw.pop("total", 5),
        **kw,
    )


# ---------------------------------------------------------------------------
# Compact-memory gating
# ---------------------------------------------------------------------------


def test_gating_uses_cursor_position():
    history = _history(10)
    memory = _memory("U5")
    assert should_use_compact_memory(memory, history) is True

    assembled = _assembler().build(
        ALICE, SPEAKERS, history, [], None,
        BuildOptions(is_first_turn=False, current_round=3, compact_memory=memory, now=BASE),
    )
    assert assembled.compact_memory_used is True
    assert [u.id for u in assembled.utterances] == ["U6", "U7", "U8", "U9", "U10"]
    assert assembled.allocation.compact_memory > 0


def test_gating_false_without_fresh_history():
    history = _history(5)
    assert should_use_compact_memory(_memory("U5"), history) is False


def test_gating_false_for_empty_memory():
    history = _history(5)
    assert should_use_compact_memory(None, history) is False
    assert should_use_compact_memory(_memory("U2", summary=""), history) is False
    assert should_use_compact_memory(_memory("U2", total=0), history) is False


def test_unused_memory_keeps_full_history():
    history = _history(5)
    assembled = _assembler().build(
        ALICE, SPEAKERS, history, [], None,
        BuildOptions(is_first_turn=False, current_round=1, compact_memory=_memory("U5"), now=BASE),
    )
    assert assembled.compact_memory_used is False
    assert len(assembled.utterances) == 5
    assert not any(m.content.startswith("DISCUSSION HISTORY") for m in assembled.prompt_messages)


# ---------------------------------------------------------------------------
# Layout
# ---------------------------------------------------------------------------


def test_block_order():
    history = [
        Utterance(id="U0", conversation_id="c1", content="Should we?", kind=UtteranceKind.OPENING,
                  created_at=BASE),
        Utterance(id="U1", conversation_id="c1", speaker_id="b", content="Maybe.",
                  created_at=BASE + 1),
        Utterance(id="U2", conversation_id="c1", speaker_id="b", content="Alice, thoughts?",
                  addressed_to="a", weight=3, round=1, created_at=BASE + 2),
        Utterance(id="U3", conversation_id="c1", speaker_id="a", content="Yes, tiered.",
                  round=1, created_at=BASE + 3),
    ]
    interjection = Interjection(conversation_id="c1", content="Consider churn", created_at=BASE)
    notebook = Notebook(speaker_id="a", entries=["Bob favors flat pricing"])

    assembled = _assembler().build(
        ALICE, SPEAKERS, history, [interjection], notebook,
        BuildOptions(
            is_first_turn=False,
            current_round=1,
            compact_memory=_memory("U1"),
            running_summary="So far so good",
            now=BASE + 10,
        ),
    )
    msgs = assembled.prompt_messages

    assert msgs[0].role == ChatRole.SYSTEM
    assert "You are Alice, economist." in msgs[0].content
    assert "RESPONSE LENGTH" in msgs[0].content
    assert msgs[1].content.startswith("CURRENT STATE: Round 2 of 6. PHASE: Development")
    assert msgs[1].content.endswith("Discussion scope: three options to weigh")
    assert msgs[2].content.startswith("DISCUSSION HISTORY (summarized from earlier rounds):")
    assert msgs[3].content == "Current discussion summary:\nSo far so good"
    assert msgs[4].content == "Your personal notes from this conversation:\nBob favors flat pricing"
    assert msgs[5].role == ChatRole.USER
    assert msgs[5].content == "[USER GUIDANCE]: Consider churn"
    assert msgs[6].role == ChatRole.USER
    assert msgs[6].content == "[Bob] (to Alice) ⭐: Alice, thoughts?"
    assert msgs[7].role == ChatRole.ASSISTANT
    assert msgs[7].content == "Yes, tiered."
    assert msgs[8].role == ChatRole.USER
    assert msgs[8].content.startswith("It's your turn to contribute, Alice.")
    assert "(Bob)" in msgs[8].content
    assert len(msgs) == 9
    assert assembled.notes == "Bob favors flat pricing"


def test_first_turn_gets_opening_and_strategy():
    conversation = _conversation(starting_strategy="devils-advocate")
    assembled = _assembler(conversation).build(ALICE, SPEAKERS, [], [], None, BuildOptions(now=BASE))
    msgs = assembled.prompt_messages
    assert len(msgs) == 3
    assert msgs[1].content == "DISCUSSION CONTEXT:\nShould we raise prices?"
    assert msgs[2].content.startswith("You are opening this discussion, Alice.")
    assert "Challenge the assumptions" in msgs[2].content


def test_scope_reasoning_only_in_second_round():
    assembled = _assembler().build(
        ALICE, SPEAKERS, _history(3), [], None,
        BuildOptions(is_first_turn=False, current_round=3, now=BASE),
    )
    state = assembled.prompt_messages[1].content
    assert state.startswith("CURRENT STATE: Round 4 of 6. PHASE: Convergence")
    assert "Discussion scope" not in state


def test_coordinator_gets_no_word_limit():
    assembled = _assembler().build(
        MOD, SPEAKERS, _history(3), [], None,
        BuildOptions(is_first_turn=False, current_round=1, now=BASE),
    )
    assert "RESPONSE LENGTH" not in assembled.system_prompt
    assert assembled.prompt_messages[-1].content == EnglishTemplates().coordinator_request()


def test_extended_response_raises_word_limit():
    assembled = _assembler(_conversation(depth="brief")).build(
        ALICE, SPEAKERS, [], [], None, BuildOptions(extended_response=True, now=BASE)
    )
    assert "around 80 words" in assembled.system_prompt


def test_exhausted_budget_gives_system_only_prompt():
    assembled = _assembler(max_context_tokens=50).build(
        ALICE, SPEAKERS, _history(5), [Interjection(content="hi")],
        Notebook(speaker_id="a", entries=["n"]),
        BuildOptions(is_first_turn=False, current_round=1, now=BASE),
    )
    assert assembled.utterances == []
    assert assembled.interjections == []
    assert assembled.notebook_entries == []
    assert assembled.allocation.messages == 0


def test_compact_memory_shows_top_facts_only():
    importances = [9, 7, 5, 8, 10, 7, 7]
    facts = [
        PinnedFact(id=f"pf-1-{i}", content=f"fact {i}", category=FactCategory.DECISION,
                   importance=imp)
        for i, imp in enumerate(importances)
    ]
    memory = _memory("U1", pinned_facts=facts, current_stance="Leaning tiered",
                     key_decisions=["Keep free tier"])
    text = _assembler().format_compact_memory(memory)
    fact_lines = [line for line in text.splitlines() if line.startswith("- [")]
    assert len(fact_lines) == 5
    assert fact_lines[0] == "- [decision]: fact 4"
    assert "fact 2" not in text
    assert "Current discussion state: Leaning tiered" in text
    assert "Key decisions made: Keep free tier" in text


def test_discussion_phase_thresholds():
    assert discussion_phase(1, 6) == DiscussionPhase.EXPLORATION
    assert discussion_phase(3, 6) == DiscussionPhase.DEVELOPMENT
    assert discussion_phase(5, 6) == DiscussionPhase.CONVERGENCE


# ---------------------------------------------------------------------------
# Role mapping
# ---------------------------------------------------------------------------


def _one(kind: UtteranceKind, speaker_id: str | None = "b", **kw) -> Utterance:
    return Utterance(conversation_id="c1", speaker_id=speaker_id, content="hi", kind=kind, **kw)


NAMES = {s.id: s.name for s in SPEAKERS}


def test_role_mapping():
    own = format_utterance(_one(UtteranceKind.RESPONSE, "a"), ALICE, NAMES)
    assert (own.role, own.content) == (ChatRole.ASSISTANT, "hi")

    other = format_utterance(_one(UtteranceKind.RESPONSE), ALICE, NAMES)
    assert (other.role, other.content) == (ChatRole.USER, "[Bob]: hi")

    opening = format_utterance(_one(UtteranceKind.OPENING, None), ALICE, NAMES)
    assert (opening.role, opening.content) == (ChatRole.SYSTEM, "[DISCUSSION OPENING]: hi")

    user = format_utterance(_one(UtteranceKind.INTERJECTION, None), ALICE, NAMES)
    assert (user.role, user.content) == (ChatRole.USER, "[USER]: hi")

    system = format_utterance(_one(UtteranceKind.SYSTEM, None), ALICE, NAMES)
    assert (system.role, system.content) == (ChatRole.SYSTEM, "hi")

    summary = format_utterance(_one(UtteranceKind.SUMMARY, "m"), ALICE, NAMES)
    assert (summary.role, summary.content) == (ChatRole.SYSTEM, "[Mod Summary]: hi")


def test_unknown_sender_labels():
    stray = format_utterance(_one(UtteranceKind.RESPONSE, "zz", addressed_to="yy"), ALICE, NAMES)
    assert stray.content == "[Unknown] (to someone): hi"
