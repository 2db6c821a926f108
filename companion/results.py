"""
Result types returned by DialogueOrchestrator.handle()

These are the ONLY return types from the command handler.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from companion.contracts import ConversationState, DataGap, InquiryQuestion, StructuredSoothingReply
from companion.core.context_optimizer import ContextDecision
from companion.core.response_variation import VariationStrategy


@dataclass(frozen=True)
class TurnResult:
    """
    Prompt ready for the model call.

    Returned by: PrepareTurn

    Attributes:
        prompt: Complete system prompt text
        state: Conversation state derived from the transcript
        decision: Context decision (health context flags, evidence)
        strategy: Variation strategy embedded in the prompt
        context_block: Rendered context block embedded in the prompt
        debug: Flat, JSON-safe debug information
    """
    prompt: str
    state: ConversationState
    decision: ContextDecision
    strategy: VariationStrategy
    context_block: str
    debug: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class InquiryResult:
    """
    Returned by: RequestInquiry

    Attributes:
        question: Question for the highest-priority askable gap, or None
        gaps: All gaps, prioritized
    """
    question: Optional[InquiryQuestion]
    gaps: Tuple[DataGap, ...]


@dataclass(frozen=True)
class ReplyVerdict:
    """
    Returned by: ReviewReply

    valid=False means the caller should regenerate the reply.

    Attributes:
        valid: Whether all five parts are present
        missing_parts: Section ids of absent parts, in section order
        reply: Parsed reply, None if the input could not be parsed
    """
    valid: bool
    missing_parts: List[str]
    reply: Optional[StructuredSoothingReply]


@dataclass(frozen=True)
class IllegalCommand:
    """
    Command rejected by the orchestrator.

    Attributes:
        reason: Human-readable explanation
        command_type: Name of rejected command type
    """
    reason: str
    command_type: str
