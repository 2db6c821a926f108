"""
Semantic contracts for the Max dialogue orchestration core.

This module defines immutable data structures that serve as contracts
between modules. These are NOT validators - they define shape and
semantics without enforcing business rules.

Design principles:
- Frozen dataclasses (immutable after creation)
- Tuples instead of lists so snapshots cannot be mutated in place
- String-valued enums for clean JSON serialization
- No dependencies on other modules beyond utils.helpers

Contents:
- Role, ChatMessage: transcript entries
- ResponseStructure, ConversationState: derived conversation snapshot
- Evidence: ranked evidence candidate (from external retrieval)
- EvidenceCitation, StructuredSoothingReply: model output contract
- Importance, DataGap: missing/stale user data
- InquiryOption, InquiryQuestion, InquiryRecord: templated questions and history

Usage:
    from companion.contracts import ChatMessage, ConversationState, Evidence
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from companion.utils.helpers import normalize_title


class Role(str, Enum):
    """Transcript roles. Anything else in a transcript is skipped."""
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatMessage:
    """
    One transcript entry.

    Attributes:
        role: Role.USER or Role.ASSISTANT
        content: Plain text, possibly containing labelled reply sections
    """
    role: Role
    content: str

    @classmethod
    def user(cls, content: str) -> "ChatMessage":
        return cls(role=Role.USER, content=content)

    @classmethod
    def assistant(cls, content: str) -> "ChatMessage":
        return cls(role=Role.ASSISTANT, content=content)

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role.value, "content": self.content}


@dataclass(frozen=True)
class ResponseStructure:
    """
    Section layout of the most recent assistant reply.

    has_evidence / has_action_advice / has_follow_up drive the
    anti-repetition logic; the remaining flags are descriptive.
    """
    has_evidence: bool = False
    has_action_advice: bool = False
    has_follow_up: bool = False
    has_key_takeaway: bool = False
    has_bullet_points: bool = False
    has_numbered_list: bool = False


@dataclass(frozen=True)
class ConversationState:
    """
    Snapshot derived from a transcript. Recomputed from scratch each call.

    Set-valued attributes are stored as tuples of unique items in
    first-seen order, so membership tests behave like sets while
    renderings stay deterministic.

    Attributes:
        turn_count: Number of user messages (>= 0)
        mentioned_health_context: Health focus already given to the user (sticky)
        cited_source_ids: Normalized citation keys (e.g. lower-cased paper titles)
        used_formats: Format tags of assistant replies, chronological, duplicates kept
        used_endearments: Address terms already used
        last_response_structure: Layout of the latest assistant reply, None if none
        established_context: Fragments already told to the user
        user_shared_details: Fragments the user volunteered
    """
    turn_count: int = 0
    mentioned_health_context: bool = False
    cited_source_ids: Tuple[str, ...] = ()
    used_formats: Tuple[str, ...] = ()
    used_endearments: Tuple[str, ...] = ()
    last_response_structure: Optional[ResponseStructure] = None
    established_context: Tuple[str, ...] = ()
    user_shared_details: Tuple[str, ...] = ()

    @classmethod
    def initial(cls) -> "ConversationState":
        """State of a conversation with no messages."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        structure = self.last_response_structure
        return {
            "turn_count": self.turn_count,
            "mentioned_health_context": self.mentioned_health_context,
            "cited_source_ids": list(self.cited_source_ids),
            "used_formats": list(self.used_formats),
            "used_endearments": list(self.used_endearments),
            "last_response_structure": None if structure is None else {
                "has_evidence": structure.has_evidence,
                "has_action_advice": structure.has_action_advice,
                "has_follow_up": structure.has_follow_up,
                "has_key_takeaway": structure.has_key_takeaway,
                "has_bullet_points": structure.has_bullet_points,
                "has_numbered_list": structure.has_numbered_list,
            },
            "established_context": list(self.established_context),
            "user_shared_details": list(self.user_shared_details),
        }


@dataclass(frozen=True)
class Evidence:
    """
    Evidence candidate supplied by the external retrieval collaborator.

    Identity for deduplication is the normalized title (see key).
    """
    title: str
    year: Optional[int] = None

    @property
    def key(self) -> str:
        return normalize_title(self.title)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Evidence":
        year = data.get("year")
        try:
            year = int(year) if year not in (None, "") else None
        except (TypeError, ValueError):
            year = None
        return cls(title=str(data.get("title") or ""), year=year)


@dataclass(frozen=True)
class EvidenceCitation:
    """One citation inside a structured model reply."""
    source: str
    title: str
    year: Optional[str] = None
    confidence: Optional[str] = None


@dataclass(frozen=True)
class StructuredSoothingReply:
    """
    Five-part reply produced by the external model.

    Validated once (see utils.output_validator), then accepted or
    rejected as a whole. Never partially repaired.
    """
    understanding_conclusion: str
    mechanism_explanation: str
    evidence_citations: Tuple[EvidenceCitation, ...]
    executable_actions: Tuple[str, ...]
    follow_up_question: str


class Importance(str, Enum):
    """
    Data-gap importance.

    rank gives the sort position: HIGH sorts first.
    """
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        return _IMPORTANCE_RANK[self]


_IMPORTANCE_RANK = {Importance.HIGH: 0, Importance.MEDIUM: 1, Importance.LOW: 2}


@dataclass(frozen=True)
class DataGap:
    """
    A required profile/metric field that is missing or stale.

    Attributes:
        field: Registry key, e.g. 'sleep_hours'
        importance: Baseline importance from the registry
        description: Localized human-readable description
        last_updated_at: When the field was last recorded (None if never or unparseable)
    """
    field: str
    importance: Importance
    description: str
    last_updated_at: Optional[datetime] = None


@dataclass(frozen=True)
class InquiryOption:
    label: str
    value: str


@dataclass(frozen=True)
class InquiryQuestion:
    """
    Rendered inquiry template.

    options is None for free-text fields, a non-empty tuple for
    multiple-choice fields.
    """
    id: str
    question_text: str
    question_type: str
    priority: Importance
    data_gaps_addressed: Tuple[str, ...]
    options: Optional[Tuple[InquiryOption, ...]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "question_text": self.question_text,
            "question_type": self.question_type,
            "priority": self.priority.value,
            "data_gaps_addressed": list(self.data_gaps_addressed),
            "options": None if self.options is None else [
                {"label": option.label, "value": option.value} for option in self.options
            ],
        }


@dataclass(frozen=True)
class InquiryRecord:
    """
    A previously asked inquiry and the user's answer (if any).

    Supplied by the caller from its own storage, newest first.
    """
    id: str
    question_text: str
    user_response: Optional[str] = None
    data_gaps_addressed: Tuple[str, ...] = field(default_factory=tuple)
    created_at: str = ""
    responded_at: Optional[str] = None
