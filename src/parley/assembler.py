"""Context assembler — composes a bounded prompt for one speaker's turn."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from .budget import BudgetAllocation, estimate_compact_memory_tokens
from .config import EngineConfig
from .models import (
    CompactMemory,
    ConversationInfo,
    Interjection,
    Notebook,
    Speaker,
    Utterance,
    UtteranceKind,
)
from .provider import ChatMessage, ChatRole
from .selection import MessageSelector, select_interjections, truncate_notebook
from .telemetry import trace_context_assembly
from .templates import DiscussionPhase, EnglishTemplates, PromptTemplates
from .tokens import MESSAGE_OVERHEAD, TokenCounter, count_tokens

logger = logging.getLogger(__name__)

HIGH_RATING_WEIGHT = 3
HIGH_RATING_MARKER = " ⭐"


@dataclass
class BuildOptions:
    """Per-turn flags for :meth:`ContextAssembler.build`."""

    is_first_turn: bool | None = None
    current_round: int = 0
    compact_memory: CompactMemory | None = None
    running_summary: str | None = None
    extended_response: bool = False
    now: int | None = None


@dataclass
class AssembledContext:
    """Everything that went into one turn's prompt."""

    system_prompt: str
    notebook_entries: list[str]
    interjections: list[Interjection]
    utterances: list[Utterance]
    prompt_messages: list[ChatMessage]
    compact_memory_used: bool
    allocation: BudgetAllocation
    notes: str = ""
    compact_memory: CompactMemory | None = None

    def estimated_tokens(self, counter: TokenCounter | None = None) -> int:
        return sum(
            count_tokens(m.content, counter) + MESSAGE_OVERHEAD for m in self.prompt_messages
        )


def should_use_compact_memory(
    memory: CompactMemory | None, history: list[Utterance]
) -> bool:
    """Compact memory is injected only alongside genuinely fresh history."""
    if memory is None:
        return False
    if not memory.distilled_summary:
        return False
    if memory.total_distilled == 0:
        return False
    return bool(memory.cursor.after(history))


def discussion_phase(display_round: int, max_rounds: int) -> DiscussionPhase:
    progress = display_round / max_rounds
    if progress <= 0.33:
        return DiscussionPhase.EXPLORATION
    if progress <= 0.66:
        return DiscussionPhase.DEVELOPMENT
    return DiscussionPhase.CONVERGENCE


class ContextAssembler:
    """Builds the ordered prompt for a speaker under the context ceiling.

    1. Render the identity prompt (plus word-limit instruction for
       non-coordinators) and measure it.
    2. Decide whether compact memory replaces older history.
    3. Allocate the remaining budget, reserving compact memory's share.
    4. Truncate the notebook, pick interjections, pick utterances.
    5. Lay the blocks out in prompt order.
    """

    def __init__(
        self,
        conversation: ConversationInfo,
        config: EngineConfig | None = None,
        templates: PromptTemplates | None = None,
        counter: TokenCounter | None = None,
    ) -> None:
        self._conversation = conversation
        self._config = config or EngineConfig()
        self._templates = templates or EnglishTemplates()
        self._counter = counter or self._config.estimator()
        self._allocator = self._config.allocator()
        self._selector = MessageSelector(scorer=self._config.scorer(), counter=self._counter)

    @property
    def conversation(self) -> ConversationInfo:
        return self._conversation

    def build(  # noqa: PLR0913
        self,
        speaker: Speaker,
        speakers: list[Speaker],
        history: list[Utterance],
        interjections: list[Interjection],
        notebook: Notebook | None,
        options: BuildOptions | None = None,
    ) -> AssembledContext:
        opts = options or BuildOptions()
        is_first_turn = opts.is_first_turn
        if is_first_turn is None:
            is_first_turn = not any(u.kind == UtteranceKind.RESPONSE for u in history)

        with trace_context_assembly(self._conversation.id, speaker.id) as span:
            system_prompt = self._templates.identity_prompt(speaker, self._conversation)
            if not speaker.is_coordinator:
                system_prompt += self._templates.word_limit_instruction(
                    speaker, self._conversation, opts.extended_response
                )
            allocation = self._allocator.allocate(count_tokens(system_prompt, self._counter))

            memory = opts.compact_memory
            use_memory = should_use_compact_memory(memory, history)
            candidates = history
            if use_memory and memory is not None:
                candidates = memory.cursor.after(history)
                allocation = allocation.reserve_for_memory(
                    estimate_compact_memory_tokens(memory, self._counter)
                )

            notes = truncate_notebook(
                notebook.entries if notebook else [], allocation.notebook, self._counter
            )
            chosen_interjections = select_interjections(
                interjections, allocation.interjections, self._counter
            )
            chosen = self._selector.select(
                candidates, allocation.messages, speaker.id, opts.current_round, opts.now
            )

            rendered_notes = notebook.render(notes) if notebook and notes else ""
            messages = self._layout(
                system_prompt=system_prompt,
                speaker=speaker,
                speakers=speakers,
                utterances=chosen,
                interjections=chosen_interjections,
                notes=rendered_notes,
                running_summary=opts.running_summary,
                is_first_turn=is_first_turn,
                current_round=opts.current_round,
                memory=memory if use_memory else None,
            )

            span.set_attribute("context.compact_memory_used", use_memory)
            span.set_attribute("context.utterances", len(chosen))
            logger.debug(
                "Assembled context for %s: %d/%d utterances, %d interjections, "
                "%d notes, compact memory %s",
                speaker.id,
                len(chosen),
                len(candidates),
                len(chosen_interjections),
                len(notes),
                "used" if use_memory else "unused",
            )

        return AssembledContext(
            system_prompt=system_prompt,
            notebook_entries=notes,
            interjections=chosen_interjections,
            utterances=chosen,
            prompt_messages=messages,
            compact_memory_used=use_memory,
            allocation=allocation,
            notes=rendered_notes,
            compact_memory=memory if use_memory else None,
        )

    # ------------------------------------------------------------------
    # Layout
    # ------------------------------------------------------------------

    def _layout(  # noqa: PLR0913
        self,
        *,
        system_prompt: str,
        speaker: Speaker,
        speakers: list[Speaker],
        utterances: list[Utterance],
        interjections: list[Interjection],
        notes: str,
        running_summary: str | None,
        is_first_turn: bool,
        current_round: int,
        memory: CompactMemory | None,
    ) -> list[ChatMessage]:
        t = self._templates
        conv = self._conversation
        result = [ChatMessage(role=ChatRole.SYSTEM, content=system_prompt)]

        if is_first_turn and conv.opening_statement:
            result.append(
                ChatMessage(role=ChatRole.SYSTEM, content=t.opening_context(conv.opening_statement))
            )

        if current_round > 0 or not is_first_turn:
            result.append(ChatMessage(role=ChatRole.SYSTEM, content=self._state_note(current_round)))

        if memory is not None and memory.distilled_summary:
            result.append(ChatMessage(role=ChatRole.SYSTEM, content=self.format_compact_memory(memory)))

        if running_summary:
            result.append(ChatMessage(role=ChatRole.SYSTEM, content=t.running_summary(running_summary)))

        if notes:
            result.append(ChatMessage(role=ChatRole.SYSTEM, content=t.notebook_block(notes)))

        for item in interjections:
            result.append(ChatMessage(role=ChatRole.USER, content=t.user_guidance(item.content)))

        names = {s.id: s.name for s in speakers}
        for utterance in utterances:
            result.append(format_utterance(utterance, speaker, names))

        result.append(self._final_prompt(speaker, speakers, is_first_turn))
        return result

    def _state_note(self, current_round: int) -> str:
        conv = self._conversation
        display_round = current_round + 1
        max_rounds = conv.effective_max_rounds
        phase = discussion_phase(display_round, max_rounds) if max_rounds else None
        reasoning = conv.round_scope_reasoning if display_round == 2 else ""
        return self._templates.state_note(display_round, max_rounds, phase, reasoning)

    def format_compact_memory(self, memory: CompactMemory) -> str:
        cfg = self._config.distillation
        parts = [self._templates.compact_memory_heading()]
        if memory.distilled_summary:
            parts.append(memory.distilled_summary)
        if memory.current_stance:
            parts.append(f"\nCurrent discussion state: {memory.current_stance}")
        if memory.key_decisions:
            parts.append(f"\nKey decisions made: {'; '.join(memory.key_decisions)}")
        if memory.open_questions:
            parts.append(f"\nOpen questions: {'; '.join(memory.open_questions)}")

        facts = sorted(
            (f for f in memory.pinned_facts if f.importance >= cfg.fact_display_threshold),
            key=lambda f: f.importance,
            reverse=True,
        )[: cfg.max_displayed_facts]
        if facts:
            lines = []
            for fact in facts:
                source = f" ({fact.source})" if fact.source else ""
                lines.append(f"- [{fact.category}]{source}: {fact.content}")
            parts.append("\nKey facts/decisions:\n" + "\n".join(lines))
        return "\n".join(parts)

    def _final_prompt(
        self, speaker: Speaker, speakers: list[Speaker], is_first_turn: bool
    ) -> ChatMessage:
        t = self._templates
        if speaker.is_coordinator:
            return ChatMessage(role=ChatRole.USER, content=t.coordinator_request())
        others = [s.name for s in speakers if s.id != speaker.id and not s.is_coordinator]
        if is_first_turn:
            content = t.first_turn_prompt(speaker, others, self._conversation.starting_strategy)
        else:
            content = t.turn_prompt(speaker, others)
        return ChatMessage(role=ChatRole.USER, content=content)


def format_utterance(
    utterance: Utterance, speaker: Speaker, names: dict[str, str]
) -> ChatMessage:
    """Map one utterance onto a chat role from *speaker*'s point of view."""
    if utterance.kind == UtteranceKind.OPENING:
        return ChatMessage(role=ChatRole.SYSTEM, content=f"[DISCUSSION OPENING]: {utterance.content}")

    if utterance.speaker_id is not None and utterance.speaker_id == speaker.id:
        return ChatMessage(role=ChatRole.ASSISTANT, content=utterance.content)

    if utterance.kind == UtteranceKind.INTERJECTION:
        return ChatMessage(role=ChatRole.USER, content=f"[USER]: {utterance.content}")

    if utterance.kind == UtteranceKind.SYSTEM:
        return ChatMessage(role=ChatRole.SYSTEM, content=utterance.content)

    sender = names.get(utterance.speaker_id or "")
    if utterance.kind == UtteranceKind.SUMMARY:
        return ChatMessage(
            role=ChatRole.SYSTEM,
            content=f"[{sender or 'Coordinator'} Summary]: {utterance.content}",
        )

    prefix = f"[{sender or 'Unknown'}]"
    if utterance.addressed_to:
        prefix += f" (to {names.get(utterance.addressed_to, 'someone')})"
    if utterance.weight >= HIGH_RATING_WEIGHT:
        prefix += HIGH_RATING_MARKER
    return ChatMessage(role=ChatRole.USER, content=f"{prefix}: {utterance.content}")
