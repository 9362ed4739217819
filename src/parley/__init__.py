"""Parley — context budgeting and distillation for multi-participant LLM discussions."""

from __future__ import annotations

__version__ = "0.1.0"

from .assembler import (
    AssembledContext,
    BuildOptions,
    ContextAssembler,
    format_utterance,
    should_use_compact_memory,
)
from .budget import (
    AllocationPolicy,
    BudgetAllocation,
    BudgetAllocator,
    estimate_compact_memory_tokens,
)
from .config import DistillationConfig, EngineConfig
from .distillation import (
    DistillationCompactor,
    DistillationResult,
    needs_distillation,
    parse_distillation_result,
)
from .errors import (
    DistillationError,
    DistillationParseError,
    InterjectionValidationError,
    ParleyError,
    StaleMemoryError,
)
from .interjections import (
    interjections_for_round,
    new_interjection,
    pending_interjections,
    validate_interjection,
)
from .models import (
    CompactMemory,
    ContextSnapshot,
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
from .notebook import NotebookKeeper
from .provider import (
    ChatMessage,
    ChatRequest,
    ChatResponse,
    ChatRole,
    LLMProvider,
    StubLLMProvider,
    TokenUsage,
)
from .scoring import DecayConfig, ImportanceScorer, ImportanceWeights, ScoredUtterance
from .selection import MessageSelector, select_interjections, truncate_notebook
from .snapshot import SnapshotRecorder
from .sqlite_store import SqliteContextStore
from .storage import ContextStore, InMemoryContextStore
from .telemetry import (
    ParleyTracer,
    TelemetryConfig,
    configure_tracing,
    trace_context_assembly,
    trace_distillation,
    trace_snapshot,
)
from .templates import DiscussionPhase, EnglishTemplates, PromptTemplates
from .tokens import (
    HeuristicTokenEstimator,
    TokenCounter,
    TokenEstimator,
    count_message_tokens,
    count_tokens,
    truncate_to_token_limit,
)

__all__ = [
    "AllocationPolicy",
    "AssembledContext",
    "BudgetAllocation",
    "BudgetAllocator",
    "BuildOptions",
    "ChatMessage",
    "ChatRequest",
    "ChatResponse",
    "ChatRole",
    "CompactMemory",
    "ContextAssembler",
    "ContextSnapshot",
    "ContextStore",
    "ConversationInfo",
    "DecayConfig",
    "DiscussionPhase",
    "DistillationCompactor",
    "DistillationConfig",
    "DistillationCursor",
    "DistillationError",
    "DistillationParseError",
    "DistillationResult",
    "EngineConfig",
    "EnglishTemplates",
    "FactCategory",
    "HeuristicTokenEstimator",
    "ImportanceScorer",
    "ImportanceWeights",
    "InMemoryContextStore",
    "Interjection",
    "InterjectionValidationError",
    "LLMProvider",
    "MessageSelector",
    "Notebook",
    "NotebookKeeper",
    "ParleyError",
    "ParleyTracer",
    "PinnedFact",
    "PromptTemplates",
    "ScoredUtterance",
    "SnapshotRecorder",
    "Speaker",
    "SqliteContextStore",
    "StaleMemoryError",
    "StubLLMProvider",
    "TelemetryConfig",
    "TokenCounter",
    "TokenEstimator",
    "TokenUsage",
    "Utterance",
    "UtteranceKind",
    "configure_tracing",
    "count_message_tokens",
    "count_tokens",
    "estimate_compact_memory_tokens",
    "format_utterance",
    "interjections_for_round",
    "needs_distillation",
    "new_interjection",
    "parse_distillation_result",
    "pending_interjections",
    "select_interjections",
    "should_use_compact_memory",
    "trace_context_assembly",
    "trace_distillation",
    "trace_snapshot",
    "truncate_notebook",
    "truncate_to_token_limit",
    "validate_interjection",
]
