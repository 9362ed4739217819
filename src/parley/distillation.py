"""Distillation — fold older rounds into the conversation's compact memory."""

from __future__ import annotations

import asyncio
import json
import logging
import re
import weakref
from typing import Any

from pydantic import BaseModel, Field

from .config import DistillationConfig
from .errors import DistillationError, DistillationParseError
from .models import (
    CompactMemory,
    ConversationInfo,
    DistillationCursor,
    FactCategory,
    PinnedFact,
    Speaker,
    Utterance,
    UtteranceKind,
)
from .provider import ChatMessage, ChatRequest, ChatRole, LLMProvider
from .storage import ContextStore
from .telemetry import get_tracer, trace_distillation
from .templates import EnglishTemplates, PromptTemplates

logger = logging.getLogger(__name__)

DISTILLABLE_KINDS = frozenset(
    {UtteranceKind.RESPONSE, UtteranceKind.INTERJECTION, UtteranceKind.OPENING}
)

_CATEGORIES = frozenset(c.value for c in FactCategory)
_FENCE = re.compile(r"^```[a-zA-Z]*\s*|\s*```$")


# ---------------------------------------------------------------------------
# Trigger
# ---------------------------------------------------------------------------


def needs_distillation(
    current_round: int,
    memory: CompactMemory | None,
    utterances: list[Utterance],
    config: DistillationConfig | None = None,
) -> bool:
    """Decide, once per round, whether older rounds should be compacted."""
    cfg = config or DistillationConfig()
    if memory is None and current_round >= cfg.first_round:
        return True
    if memory is not None and current_round > memory.cursor.last_round + cfg.max_round_lag:
        return True
    last_round = memory.cursor.last_round if memory is not None else 0
    undistilled = sum(1 for u in utterances if u.round > last_round)
    return undistilled > cfg.undistilled_threshold


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class ExtractedFact(BaseModel):
    content: str
    category: FactCategory = FactCategory.DEFINITION
    source: str | None = None
    importance: int = 5


class DistillationResult(BaseModel):
    """Validated summarizer output, before ids and rounds are assigned."""

    distilled_summary: str
    current_stance: str = ""
    key_decisions: list[str] = Field(default_factory=list)
    open_questions: list[str] = Field(default_factory=list)
    constraints: list[str] = Field(default_factory=list)
    action_items: list[str] = Field(default_factory=list)
    pinned_facts: list[ExtractedFact] = Field(default_factory=list)

    def is_empty(self) -> bool:
        return not (
            self.key_decisions
            or self.open_questions
            or self.constraints
            or self.action_items
            or self.pinned_facts
        )


def _first_json_object(text: str) -> dict[str, Any] | None:
    decoder = json.JSONDecoder()
    start = text.find("{")
    while start != -1:
        try:
            obj, _ = decoder.raw_decode(text, start)
        except json.JSONDecodeError:
            start = text.find("{", start + 1)
            continue
        if isinstance(obj, dict):
            return obj
        start = text.find("{", start + 1)
    return None


def _strings(value: Any) -> list[str]:
    if not isinstance(value, list):
        return []
    return [v for v in value if isinstance(v, str)]


def _category(value: Any) -> FactCategory:
    if isinstance(value, str) and value in _CATEGORIES:
        return FactCategory(value)
    return FactCategory.DEFINITION


def _fact(raw: Any) -> ExtractedFact | None:
    if not isinstance(raw, dict) or not isinstance(raw.get("content"), str):
        return None
    importance = raw.get("importance")
    if isinstance(importance, bool) or not isinstance(importance, int | float):
        importance = 5
    source = raw.get("source")
    return ExtractedFact(
        content=raw["content"],
        category=_category(raw.get("category")),
        source=source if isinstance(source, str) else None,
        importance=int(min(10, max(1, importance))),
    )


def parse_distillation_result(text: str) -> DistillationResult:
    """Parse the summarizer's structured reply.

    Tolerates a fenced block and commentary around the object.

    Raises:
        DistillationParseError: If no JSON object is found or
            ``distilledSummary`` is missing or empty.
    """
    cleaned = _FENCE.sub("", text.strip()).strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError:
        parsed = None
    if not isinstance(parsed, dict):
        parsed = _first_json_object(cleaned)
    if parsed is None:
        msg = "No JSON object in distillation response"
        raise DistillationParseError(msg, raw=text)

    summary = parsed.get("distilledSummary")
    if not isinstance(summary, str) or not summary.strip():
        msg = "Distillation response is missing distilledSummary"
        raise DistillationParseError(msg, raw=text)

    stance = parsed.get("currentStance")
    facts = parsed.get("pinnedFacts")
    return DistillationResult(
        distilled_summary=summary,
        current_stance=stance if isinstance(stance, str) else "",
        key_decisions=_strings(parsed.get("keyDecisions")),
        open_questions=_strings(parsed.get("openQuestions")),
        constraints=_strings(parsed.get("constraints")),
        action_items=_strings(parsed.get("actionItems")),
        pinned_facts=[f for f in map(_fact, facts if isinstance(facts, list) else []) if f],
    )


# ---------------------------------------------------------------------------
# Prompt
# ---------------------------------------------------------------------------


def format_for_distillation(utterances: list[Utterance], speakers: list[Speaker]) -> str:
    names = {s.id: s.name for s in speakers}
    lines = []
    for u in utterances:
        name = names.get(u.speaker_id, "Unknown") if u.speaker_id else "System"
        lines.append(f"[{name}]: {u.content}")
    return "\n\n".join(lines)


def existing_memory_context(memory: CompactMemory) -> str:
    """Render the current compact memory so the summarizer merges into it."""
    parts = []
    if memory.distilled_summary:
        parts.append(f"Previous Summary:\n{memory.distilled_summary}")
    if memory.current_stance:
        parts.append(f"Previous Stance:\n{memory.current_stance}")
    if memory.key_decisions:
        parts.append("Previous Decisions:\n- " + "\n- ".join(memory.key_decisions))
    if memory.open_questions:
        parts.append("Previous Open Questions:\n- " + "\n- ".join(memory.open_questions))
    if memory.constraints:
        parts.append("Previous Constraints:\n- " + "\n- ".join(memory.constraints))
    if memory.action_items:
        parts.append("Previous Action Items:\n- " + "\n- ".join(memory.action_items))
    if memory.pinned_facts:
        facts = "\n".join(f"- [{f.category}] {f.content}" for f in memory.pinned_facts)
        parts.append(f"Previous Pinned Facts:\n{facts}")
    if not parts:
        return ""
    return "\n\nEXISTING DISTILLATION (merge with new insights):\n" + "\n\n".join(parts)


def build_distillation_messages(
    utterances: list[Utterance],
    speakers: list[Speaker],
    memory: CompactMemory,
    conversation: ConversationInfo,
    templates: PromptTemplates,
) -> list[ChatMessage]:
    system = templates.distillation_system(conversation.subject, conversation.target_language)
    user = templates.distillation_user(
        existing_memory_context(memory), format_for_distillation(utterances, speakers)
    )
    return [
        ChatMessage(role=ChatRole.SYSTEM, content=system),
        ChatMessage(role=ChatRole.USER, content=user),
    ]


# ---------------------------------------------------------------------------
# Compactor
# ---------------------------------------------------------------------------


class DistillationCompactor:
    """Merges newly eligible utterances into compact memory.

    Calls for the same conversation are serialized on a per-conversation
    lock, and the final write is version-checked against the record that
    was read, so overlapping turns cannot clobber each other. A failed or
    cancelled call leaves the stored record and its cursor untouched.
    """

    def __init__(
        self,
        store: ContextStore,
        provider: LLMProvider,
        config: DistillationConfig | None = None,
        templates: PromptTemplates | None = None,
    ) -> None:
        self._store = store
        self._provider = provider
        self._config = config or DistillationConfig()
        self._templates = templates or EnglishTemplates()
        # entries vanish once no caller holds or awaits the lock
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, conversation_id: str) -> asyncio.Lock:
        lock = self._locks.get(conversation_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[conversation_id] = lock
        return lock

    def should_distill(self, conversation_id: str, current_round: int) -> bool:
        memory = self._store.get_compact_memory(conversation_id)
        utterances = self._store.list_utterances(conversation_id)
        return needs_distillation(current_round, memory, utterances, self._config)

    async def compact(
        self,
        conversation: ConversationInfo,
        current_round: int,
        target_round: int | None = None,
        speakers: list[Speaker] | None = None,
    ) -> CompactMemory:
        """Distill everything up to *target_round* (default: the last finished round).

        Raises:
            DistillationParseError: The summarizer reply was unusable.
            DistillationError: The summarizer call failed.
        """
        target = target_round if target_round is not None else max(0, current_round - 1)
        cid = conversation.id
        async with self._lock_for(cid):
            with trace_distillation(cid, target) as span:
                existing = self._store.get_or_create_compact_memory(cid)
                if existing.cursor.last_round >= target:
                    logger.info(
                        "Already distilled %s up to round %d, skipping",
                        cid,
                        existing.cursor.last_round,
                    )
                    return existing

                eligible = [
                    u
                    for u in existing.cursor.after(self._store.list_utterances(cid))
                    if u.round <= target and u.kind in DISTILLABLE_KINDS
                ]
                if not eligible:
                    logger.info("No new utterances to distill for %s", cid)
                    return existing

                logger.info(
                    "Distilling %d utterances of %s from round %d to %d",
                    len(eligible),
                    cid,
                    existing.cursor.last_round + 1,
                    target,
                )
                span.set_attribute("distillation.utterances", len(eligible))

                request = ChatRequest(
                    model=self._config.model,
                    messages=build_distillation_messages(
                        eligible, speakers or [], existing, conversation, self._templates
                    ),
                    temperature=self._config.temperature,
                    max_tokens=self._config.max_tokens,
                )
                try:
                    response = await self._provider.chat(request)
                except Exception as exc:
                    logger.error("Summarizer call failed for %s", cid, exc_info=True)
                    msg = f"Summarizer call failed: {exc}"
                    raise DistillationError(msg, conversation_id=cid) from exc

                try:
                    result = parse_distillation_result(response.content)
                except DistillationParseError as exc:
                    exc.conversation_id = cid
                    logger.error("Failed to parse distillation response for %s: %s", cid, exc)
                    raise

                if result.is_empty():
                    logger.info("Distillation of %s produced no structured items", cid)
                    get_tracer().record_event(
                        "distillation/empty_result", {"conversation.id": cid}
                    )

                updated = self._merge(existing, result, target, eligible)
                saved = self._store.save_compact_memory(updated, expected_version=existing.version)
                logger.info(
                    "Distillation of %s complete: %d utterances into %d chars, %d pinned facts",
                    cid,
                    len(eligible),
                    len(result.distilled_summary),
                    len(saved.pinned_facts),
                )
                return saved

    @staticmethod
    def _merge(
        existing: CompactMemory,
        result: DistillationResult,
        target: int,
        eligible: list[Utterance],
    ) -> CompactMemory:
        facts = [
            PinnedFact(
                id=f"pf-{target}-{i}",
                content=f.content,
                category=f.category,
                source=f.source,
                round=target,
                importance=f.importance,
            )
            for i, f in enumerate(result.pinned_facts)
        ]
        return existing.model_copy(
            update={
                "distilled_summary": result.distilled_summary,
                "current_stance": result.current_stance,
                "key_decisions": result.key_decisions,
                "open_questions": result.open_questions,
                "constraints": result.constraints,
                "action_items": result.action_items,
                "pinned_facts": facts,
                "cursor": DistillationCursor(
                    last_round=max(existing.cursor.last_round, target),
                    last_utterance_id=eligible[-1].id,
                ),
                "total_distilled": existing.total_distilled + len(eligible),
            }
        )
