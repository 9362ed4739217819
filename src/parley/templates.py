"""Template collaborator — pre-rendered prompt strings.

The engine never parses template syntax. It asks a :class:`PromptTemplates`
implementation for finished strings and only decides where they go.
:class:`EnglishTemplates` is the reference set used when no localized
implementation is supplied.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import StrEnum

from .models import ConversationInfo, Speaker


class DiscussionPhase(StrEnum):
    EXPLORATION = "exploration"
    DEVELOPMENT = "development"
    CONVERGENCE = "convergence"


@dataclass(frozen=True)
class DepthConfig:
    """Response-length guidance for one conversation depth level."""

    word_limit: int
    extended_multiplier: int


DEPTH_CONFIGS: dict[str, DepthConfig] = {
    "brief": DepthConfig(word_limit=40, extended_multiplier=2),
    "concise": DepthConfig(word_limit=85, extended_multiplier=2),
    "standard": DepthConfig(word_limit=150, extended_multiplier=3),
    "detailed": DepthConfig(word_limit=300, extended_multiplier=2),
    "deep": DepthConfig(word_limit=500, extended_multiplier=2),
}


class PromptTemplates(ABC):
    """Supplies localized, already-substituted prompt text."""

    @abstractmethod
    def identity_prompt(self, speaker: Speaker, conversation: ConversationInfo) -> str:
        """Role and identity block for *speaker*."""

    @abstractmethod
    def word_limit_instruction(
        self, speaker: Speaker, conversation: ConversationInfo, extended: bool
    ) -> str:
        """Response-length instruction appended to the identity block."""

    @abstractmethod
    def opening_context(self, opening_statement: str) -> str: ...

    @abstractmethod
    def state_note(
        self,
        display_round: int,
        max_rounds: int | None,
        phase: DiscussionPhase | None,
        scope_reasoning: str = "",
    ) -> str: ...

    @abstractmethod
    def compact_memory_heading(self) -> str: ...

    @abstractmethod
    def running_summary(self, summary: str) -> str: ...

    @abstractmethod
    def notebook_block(self, notes: str) -> str: ...

    @abstractmethod
    def user_guidance(self, content: str) -> str: ...

    @abstractmethod
    def coordinator_request(self) -> str: ...

    @abstractmethod
    def first_turn_prompt(
        self, speaker: Speaker, others: list[str], strategy: str | None
    ) -> str: ...

    @abstractmethod
    def turn_prompt(self, speaker: Speaker, others: list[str]) -> str: ...

    @abstractmethod
    def distillation_system(self, subject: str, target_language: str | None) -> str: ...

    @abstractmethod
    def distillation_user(self, existing_context: str, messages: str) -> str: ...


_STRATEGY_OPENERS: dict[str, str] = {
    "open-brainstorm": "Start by sharing your initial ideas and thoughts freely. "
    "Encourage creative exploration.",
    "structured-debate": "Present your initial position on the topic with clear reasoning.",
    "decision-matrix": "Begin by identifying the key options or alternatives we should consider.",
    "problem-first": "Start by analyzing and defining the problem clearly "
    "before jumping to solutions.",
    "expert-deep-dive": "Provide your expert analysis and insights on the topic.",
    "devils-advocate": "Challenge the assumptions and conventional thinking around this topic.",
}
_DEFAULT_OPENER = "Share your perspective to kick off the discussion."

_PHASE_GUIDANCE: dict[DiscussionPhase, str] = {
    DiscussionPhase.EXPLORATION: "PHASE: Exploration - share initial thoughts "
    "and explore different perspectives.",
    DiscussionPhase.DEVELOPMENT: "PHASE: Development - build on ideas, "
    "address disagreements, find common ground.",
    DiscussionPhase.CONVERGENCE: "PHASE: Convergence - work toward conclusions "
    "and actionable outcomes.",
}

_DISTILLATION_SYSTEM = """You compress a long discussion about "{subject}" into a compact memory.
Merge the existing distillation with the new messages; never drop earlier decisions unless
they were explicitly reversed.

Reply with a single JSON object and nothing else:
{{
  "distilledSummary": "narrative summary of the discussion so far",
  "currentStance": "where the group currently stands",
  "keyDecisions": ["..."],
  "openQuestions": ["..."],
  "constraints": ["..."],
  "actionItems": ["..."],
  "pinnedFacts": [
    {{"content": "...", "category": "decision|constraint|definition|consensus|disagreement|action",
      "source": "speaker name", "importance": 7}}
  ]
}}"""


class EnglishTemplates(PromptTemplates):
    """Reference English prompt set."""

    def identity_prompt(self, speaker: Speaker, conversation: ConversationInfo) -> str:
        parts = [f"You are {speaker.name}" + (f", {speaker.role}." if speaker.role else ".")]
        if speaker.persona:
            parts.append(speaker.persona)
        if conversation.subject:
            parts.append(f"\nYou are taking part in a discussion about: {conversation.subject}")
        if speaker.is_coordinator:
            parts.append(
                "\nYou are the neutral coordinator. Track the discussion, do not take sides, "
                "and summarize faithfully."
            )
        return "\n".join(parts)

    def word_limit_instruction(
        self, speaker: Speaker, conversation: ConversationInfo, extended: bool
    ) -> str:
        config = DEPTH_CONFIGS.get(conversation.depth or "standard", DEPTH_CONFIGS["standard"])
        if extended:
            limit = config.word_limit * config.extended_multiplier
            return (
                f"\nRESPONSE LENGTH: You may elaborate more this turn. Aim for around {limit} "
                "words, but prioritize quality over hitting the exact count."
            )
        return (
            f"\nRESPONSE LENGTH: Keep your response concise, around {config.word_limit} words. "
            "Be focused and get to the point quickly while still being substantive."
        )

    def opening_context(self, opening_statement: str) -> str:
        return f"DISCUSSION CONTEXT:\n{opening_statement}"

    def state_note(
        self,
        display_round: int,
        max_rounds: int | None,
        phase: DiscussionPhase | None,
        scope_reasoning: str = "",
    ) -> str:
        if max_rounds and phase is not None:
            note = f"CURRENT STATE: Round {display_round} of {max_rounds}. {_PHASE_GUIDANCE[phase]}"
        else:
            note = f"CURRENT STATE: Round {display_round}. Continue building on the discussion."
        if scope_reasoning:
            note += f"\nDiscussion scope: {scope_reasoning}"
        return note

    def compact_memory_heading(self) -> str:
        return "DISCUSSION HISTORY (summarized from earlier rounds):"

    def running_summary(self, summary: str) -> str:
        return f"Current discussion summary:\n{summary}"

    def notebook_block(self, notes: str) -> str:
        return f"Your personal notes from this conversation:\n{notes}"

    def user_guidance(self, content: str) -> str:
        return f"[USER GUIDANCE]: {content}"

    def coordinator_request(self) -> str:
        return (
            "As the coordinator, provide a brief update on the key points discussed. "
            "Focus on decisions, insights, and any emerging consensus."
        )

    def first_turn_prompt(
        self, speaker: Speaker, others: list[str], strategy: str | None
    ) -> str:
        prompt = f"You are opening this discussion, {speaker.name}. "
        prompt += _STRATEGY_OPENERS.get(strategy or "", _DEFAULT_OPENER)
        if others:
            prompt += f" Other participants ({', '.join(others)}) will respond after you."
        return prompt

    def turn_prompt(self, speaker: Speaker, others: list[str]) -> str:
        if others:
            return (
                f"It's your turn to contribute, {speaker.name}. Consider what others have said "
                "and share your perspective. You can address specific participants "
                f"({', '.join(others)}) or respond to the group."
            )
        return f"It's your turn to contribute, {speaker.name}. Share your perspective on the topic."

    def distillation_system(self, subject: str, target_language: str | None) -> str:
        prompt = _DISTILLATION_SYSTEM.format(subject=subject)
        if target_language:
            prompt += (
                f"\n\nIMPORTANT: Write ALL content in {target_language}. The JSON keys remain "
                f"in English, but all string values must be in {target_language}."
            )
        return prompt

    def distillation_user(self, existing_context: str, messages: str) -> str:
        return f"Distill the following discussion.{existing_context}\n\nNEW MESSAGES:\n{messages}"
