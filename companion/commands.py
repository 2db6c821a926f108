"""
Command types for DialogueOrchestrator control flow.

Commands are the public interface to DialogueOrchestrator.handle().
Each command carries everything its operation needs; the orchestrator
keeps no conversation state between calls.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Mapping, Optional, Tuple, Union

from companion.contracts import ChatMessage, Evidence, InquiryRecord, StructuredSoothingReply
from companion.utils.prompt_builder import AISettings


@dataclass(frozen=True)
class PrepareTurn:
    """
    Build the prompt for the next assistant reply.

    transcript is the full conversation so far, oldest first, ending
    with the user message being answered.
    Returns: TurnResult with prompt, derived state and decisions.
    """
    transcript: Tuple[Union[ChatMessage, Mapping[str, Any]], ...]
    language: str = "zh"
    health_focus: Optional[str] = None
    evidence: Tuple[Evidence, ...] = ()
    ai_settings: Optional[AISettings] = None
    persona_context: Optional[str] = None
    personality: Optional[str] = None
    inquiry_summary: Optional[str] = None
    inquiry_records: Tuple[InquiryRecord, ...] = field(default_factory=tuple)
    memory_context: Optional[str] = None
    playbook_context: Optional[str] = None
    seed: Optional[int] = None


@dataclass(frozen=True)
class RequestInquiry:
    """
    Find the next proactive question to ask.

    Returns: InquiryResult (question is None when nothing is missing).
    """
    recent_data: Mapping[str, Any]
    language: str = "zh"
    stale_threshold_hours: Optional[float] = None
    now: Optional[datetime] = None


@dataclass(frozen=True)
class ReviewReply:
    """
    Check a model reply against the five-part contract.

    reply may be a StructuredSoothingReply, a decoded mapping or raw
    JSON text.
    Returns: ReplyVerdict.
    """
    reply: Union[StructuredSoothingReply, Mapping[str, Any], str, None]


# Command union type for type hints
Command = Union[PrepareTurn, RequestInquiry, ReviewReply]
