"""
Conversation State Extractor - Transcript -> ConversationState

Responsibilities:
- Count turns (user messages only)
- Classify the format of every assistant reply
- Collect cited sources, address terms and established facts
- Describe the section layout of the latest assistant reply
- Collect details the user volunteered

NOT responsible for:
- Deciding what to inject into the prompt (Context Optimizer)
- Choosing a response style (Response Variation Selector)
- Any persistence or caching across calls

Design principles:
- Single left fold over the transcript into an immutable snapshot
- Recomputed from scratch on every call
- Never fails on malformed content: unknown roles and non-text
  content are skipped, not raised
- Label matching is data-driven (utils.section_labels)
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterable, List, Mapping, Optional, Sequence, Tuple

from companion.config import CoreConfig
from companion.contracts import ChatMessage, ConversationState, ResponseStructure, Role
from companion.utils.helpers import normalize_key, normalize_title
from companion.utils.section_labels import (
    SectionID,
    has_all_sections,
    has_legacy_structure,
    has_section,
)

logger = logging.getLogger(__name__)


class ResponseFormat(str, Enum):
    """
    Detected layout of an assistant reply, checked in declaration order.
    """
    FULL_STRUCTURED = "full_structured"
    PLAN_FORMAT = "plan_format"
    BULLET_POINTS = "bullet_points"
    NUMBERED_LIST = "numbered_list"
    BRIEF = "brief"
    CASUAL = "casual"


# =============================================================================
# Lookup tables
# =============================================================================

# [1] "Title", [2] “Title”, [3] 「Title」
CITATION_PATTERN = re.compile(r"\[(\d+)\]\s*[\"“「『]([^\"”」』\n]+)[\"”」』]")

# 参考文献：[1] Title / References: [1] Title
REFERENCE_LIST_PATTERNS = (
    re.compile(r"参考文献[：:]\s*\[?\d+\]?\s*([^。\n]+)"),
    re.compile(r"(?i)\breferences?\s*[:：]\s*\[?\d+\]?\s*([^\n]+)"),
)

# Trailing "(2020)" after a reference-list title
YEAR_SUFFIX_PATTERN = re.compile(r"\s*[(（]\d{4}[)）]\s*$")

HEALTH_CONTEXT_MENTIONS = (
    "考虑到你目前有【",
    "考虑到你的",
    "鉴于你有",
    "由于你",
    "considering your",
    "given your",
    "since you have",
)

# Covers every term the variation selector offers (ENDEARMENT_POOL)
ENDEARMENTS = ("宝子", "亲爱的", "小伙伴", "老铁", "兄弟", "姐妹", "朋友", "同伴",
               "buddy", "dear", "friend", "partner")

PLAN_PATTERN = re.compile(r"方案\s*1|(?i:\b(?:plan|option)\s*1\b)")
BULLET_PATTERN = re.compile(r"^\s*[-•*]\s", re.MULTILINE)
NUMBERED_PATTERN = re.compile(r"^\s*\d+\.\s", re.MULTILINE)

USER_DETAIL_PATTERNS = (
    re.compile(r"我(?:有|出现|感觉|觉得)[^，。！？,.!?\n]+"),
    re.compile(r"最近[^，。！？,.!?\n]+"),
    re.compile(r"我的[^，。！？,.!?\n]*(?:疼|痛|不舒服|问题)"),
    re.compile(r"(?i)\bI(?:'ve| have| feel| am|'m| keep)\b[^,.!?\n]+"),
    re.compile(r"(?i)\brecently\b[^,.!?\n]+"),
)

# Sentence-sized pieces; the terminator is kept so questions can be dropped.
# A '.' only ends a sentence when followed by whitespace (keeps "7.5", "e.g").
FRAGMENT_PATTERN = re.compile(r"(?:[^。！？!?；;.\n]|\.(?=\S))+(?:[。！？!?；;]|\.(?=\s|$))?")
QUESTION_ENDINGS = ("?", "？")

# Leading "标签：" / "Label:" prefixes stripped from assistant fragments
LABEL_PREFIX_PATTERN = re.compile(r"^[\s#*>\-•\d.)]*[^：:\n]{1,30}[：:]\s*")


@dataclass
class _Accumulator:
    """Mutable scratch space for one fold. Never escapes extract()."""
    turn_count: int = 0
    mentioned_health_context: bool = False
    cited: List[str] = field(default_factory=list)
    formats: List[str] = field(default_factory=list)
    endearments: List[str] = field(default_factory=list)
    last_structure: Optional[ResponseStructure] = None
    established: List[str] = field(default_factory=list)
    shared: List[str] = field(default_factory=list)


class ConversationStateExtractor:
    """
    Derive a ConversationState from an ordered transcript.

    Pure function of (transcript, health_focus); the instance only
    holds configuration.
    """

    def __init__(self, config: Optional[CoreConfig] = None):
        self.config = config or CoreConfig()

    def extract(
        self,
        transcript: Sequence[Any],
        health_focus: Optional[str] = None,
    ) -> ConversationState:
        """
        Fold a transcript into a ConversationState.

        Args:
            transcript: Ordered list/tuple of ChatMessage or {'role', 'content'} mappings
            health_focus: The user's stored focus text, used to detect
                whether the assistant already referenced it

        Returns:
            ConversationState (initial state for an empty transcript)

        Raises:
            TypeError: If transcript is not a list or tuple
        """
        if not isinstance(transcript, (list, tuple)):
            raise TypeError(f"transcript must be list or tuple, got {type(transcript).__name__}")

        acc = _Accumulator()
        for position, raw in enumerate(transcript):
            message = self._coerce_message(raw, position)
            if message is None:
                continue
            if message.role == Role.USER:
                self._fold_user(acc, message.content)
            else:
                self._fold_assistant(acc, message.content, health_focus)

        return ConversationState(
            turn_count=acc.turn_count,
            mentioned_health_context=acc.mentioned_health_context,
            cited_source_ids=_unique(acc.cited),
            used_formats=tuple(acc.formats),
            used_endearments=_unique(acc.endearments),
            last_response_structure=acc.last_structure,
            established_context=_unique_fragments(acc.established),
            user_shared_details=_unique_fragments(acc.shared),
        )

    # ========================
    # Fold steps
    # ========================

    def _fold_user(self, acc: _Accumulator, content: str) -> None:
        acc.turn_count += 1
        acc.shared.extend(self.extract_user_details(content))

    def _fold_assistant(self, acc: _Accumulator, content: str, health_focus: Optional[str]) -> None:
        response_format = self.detect_response_format(content)
        acc.formats.append(response_format.value)

        # Sticky: once given, health context stays established
        if not acc.mentioned_health_context:
            acc.mentioned_health_context = (
                contains_health_context_mention(content, health_focus)
                or response_format == ResponseFormat.FULL_STRUCTURED
            )

        citations = extract_cited_titles(content)
        acc.cited.extend(citations)

        endearment = extract_endearment(content)
        if endearment is not None:
            acc.endearments.append(endearment)

        acc.last_structure = analyze_response_structure(content)
        acc.established.extend(self.extract_established_facts(content))

        logger.debug(
            f"Assistant reply classified as {response_format.value} "
            f"({len(citations)} citation(s))"
        )

    def _coerce_message(self, raw: Any, position: int) -> Optional[ChatMessage]:
        """Accept ChatMessage or mapping; skip anything unrecognised."""
        if isinstance(raw, ChatMessage):
            role, content = raw.role, raw.content
        elif isinstance(raw, Mapping):
            role, content = raw.get("role"), raw.get("content")
        else:
            logger.warning(f"Skipping transcript entry {position}: unsupported type {type(raw).__name__}")
            return None

        try:
            role = Role(role)
        except ValueError:
            logger.warning(f"Skipping transcript entry {position}: unknown role {role!r}")
            return None

        if not isinstance(content, str):
            content = ""
        return ChatMessage(role=role, content=content)

    # ========================
    # Fragment heuristics
    # ========================

    def extract_user_details(self, content: str) -> List[str]:
        """Self-disclosure fragments ("我最近…", "I have …") in a user message."""
        if not content:
            return []
        details = []
        for pattern in USER_DETAIL_PATTERNS:
            details.extend(match.group(0).strip() for match in pattern.finditer(content))
        return [d for d in details if self._fragment_fits(d)]

    def extract_established_facts(self, content: str) -> List[str]:
        """
        Declarative fragments from an assistant reply.

        Section labels are stripped, questions dropped, and fragments
        outside [min_fragment_length, max_fragment_length] discarded.
        """
        if not content:
            return []
        facts = []
        for match in FRAGMENT_PATTERN.finditer(content):
            fragment = match.group(0).strip()
            if not fragment or fragment.endswith(QUESTION_ENDINGS):
                continue
            fragment = LABEL_PREFIX_PATTERN.sub("", fragment, count=1).strip()
            fragment = fragment.rstrip("。！!；;.").strip()
            if self._fragment_fits(fragment):
                facts.append(fragment)
        return facts

    def _fragment_fits(self, fragment: str) -> bool:
        return self.config.min_fragment_length <= len(fragment) <= self.config.max_fragment_length

    def detect_response_format(self, content: str) -> ResponseFormat:
        """
        Classify an assistant reply.

        FULL_STRUCTURED requires all five section labels (any language)
        or the legacy two-heading layout.
        """
        if not content or not content.strip():
            return ResponseFormat.BRIEF
        if has_all_sections(content) or has_legacy_structure(content):
            return ResponseFormat.FULL_STRUCTURED
        if PLAN_PATTERN.search(content):
            return ResponseFormat.PLAN_FORMAT
        if BULLET_PATTERN.search(content):
            return ResponseFormat.BULLET_POINTS
        if NUMBERED_PATTERN.search(content):
            return ResponseFormat.NUMBERED_LIST
        if len(content.strip()) <= self.config.brief_max_chars:
            return ResponseFormat.BRIEF
        return ResponseFormat.CASUAL


# =============================================================================
# Module-level helpers (stateless)
# =============================================================================

def contains_health_context_mention(content: str, health_focus: Optional[str] = None) -> bool:
    """
    Whether an assistant reply referenced the user's health focus.

    True if the focus text appears verbatim (case/whitespace-folded)
    or a fixed mention phrase is present.
    """
    if not content:
        return False
    folded = normalize_key(content)
    focus = normalize_key(health_focus)
    if focus and focus in folded:
        return True
    return any(normalize_key(phrase) in folded for phrase in HEALTH_CONTEXT_MENTIONS)


def extract_cited_titles(content: str) -> List[str]:
    """
    Normalized citation keys found in content, unique, first-seen order.

    A reference-list line whose title is already a quoted `[n] "Title"`
    citation counts once.

    Examples:
        >>> extract_cited_titles('证据来源：[1] "Sleep and Amygdala Reactivity"')
        ['sleep and amygdala reactivity']
        >>> extract_cited_titles('References: [1] "Paper A" (2020)')
        ['paper a']
    """
    if not content:
        return []
    quoted = list(CITATION_PATTERN.finditer(content))
    titles = [match.group(2) for match in quoted]
    for pattern in REFERENCE_LIST_PATTERNS:
        for match in pattern.finditer(content):
            start, end = match.span(1)
            if any(start < other.end() and other.start() < end for other in quoted):
                continue
            titles.append(YEAR_SUFFIX_PATTERN.sub("", match.group(1)))
    return list(_unique(t for t in (normalize_title(title) for title in titles) if t))


def extract_endearment(content: str) -> Optional[str]:
    if not content:
        return None
    lowered = content.casefold()
    for term in ENDEARMENTS:
        if term.isascii():
            if re.search(rf"\b{re.escape(term)}\b", lowered):
                return term
        elif term in content:
            return term
    return None


def analyze_response_structure(content: str) -> ResponseStructure:
    return ResponseStructure(
        has_evidence=has_section(content, SectionID.EVIDENCE),
        has_action_advice=has_section(content, SectionID.ACTION),
        has_follow_up=has_section(content, SectionID.FOLLOW_UP),
        has_key_takeaway=has_section(content, SectionID.UNDERSTANDING),
        has_bullet_points=bool(content) and BULLET_PATTERN.search(content) is not None,
        has_numbered_list=bool(content) and NUMBERED_PATTERN.search(content) is not None,
    )


def _unique(items: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate preserving first-seen order."""
    return tuple(dict.fromkeys(items))


def _unique_fragments(fragments: Iterable[str]) -> Tuple[str, ...]:
    """Deduplicate on the folded key, keep the first spelling."""
    seen = {}
    for fragment in fragments:
        key = normalize_key(fragment)
        if key and key not in seen:
            seen[key] = fragment
    return tuple(seen.values())


def extract_state(
    transcript: Sequence[Any],
    health_focus: Optional[str] = None,
    config: Optional[CoreConfig] = None,
) -> ConversationState:
    """Convenience wrapper: ConversationStateExtractor(config).extract(...)"""
    return ConversationStateExtractor(config).extract(transcript, health_focus)
