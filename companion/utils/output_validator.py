"""
Structured-output validator for the five-part soothing reply.

Decides whether a model reply carries every required part. The verdict
is all-or-nothing: a reply missing any part is regenerated by the
caller, never patched.

Design principles:
- Dumb, mechanical, predictable
- No semantic interpretation of the text
- Parsing fails safely (return None, never raise)
- Wrong argument types are caller bugs and raise TypeError
"""

import json
import logging
import re
from typing import Any, List, Mapping, Optional, Tuple, Union

from companion.contracts import EvidenceCitation, StructuredSoothingReply
from companion.utils.section_labels import SectionID

logger = logging.getLogger(__name__)

# Accepted key spellings per reply part (camelCase from the app, snake_case from Python callers)
REPLY_KEYS = {
    SectionID.UNDERSTANDING: ("understandingConclusion", "understanding_conclusion"),
    SectionID.MECHANISM: ("mechanismExplanation", "mechanism_explanation"),
    SectionID.EVIDENCE: ("evidenceSources", "evidenceCitations", "evidence_sources", "evidence_citations"),
    SectionID.ACTION: ("executableActions", "executable_actions"),
    SectionID.FOLLOW_UP: ("followUpQuestion", "follow_up_question"),
}

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*(.*?)\s*```$", re.DOTALL | re.IGNORECASE)


def _is_blank(text: Optional[str]) -> bool:
    return text is None or not str(text).strip()


def missing_parts(reply: StructuredSoothingReply) -> List[str]:
    """
    List the required parts that are absent, in section order.

    Text parts count as absent when empty or whitespace-only. List parts
    count as absent only when empty.

    Raises:
        TypeError: If reply is not a StructuredSoothingReply
    """
    if not isinstance(reply, StructuredSoothingReply):
        raise TypeError(f"reply must be StructuredSoothingReply, got {type(reply).__name__}")

    missing = []
    if _is_blank(reply.understanding_conclusion):
        missing.append(SectionID.UNDERSTANDING.value)
    if _is_blank(reply.mechanism_explanation):
        missing.append(SectionID.MECHANISM.value)
    if not reply.evidence_citations:
        missing.append(SectionID.EVIDENCE.value)
    if not reply.executable_actions:
        missing.append(SectionID.ACTION.value)
    if _is_blank(reply.follow_up_question):
        missing.append(SectionID.FOLLOW_UP.value)
    return missing


def is_valid(reply: StructuredSoothingReply) -> bool:
    """
    True iff all five parts are present.

    Raises:
        TypeError: If reply is not a StructuredSoothingReply
    """
    return not missing_parts(reply)


def _lookup(data: Mapping[str, Any], section: SectionID) -> Any:
    for key in REPLY_KEYS[section]:
        if key in data:
            return data[key]
    return None


def _parse_citation(entry: Any) -> Optional[EvidenceCitation]:
    if isinstance(entry, str):
        return EvidenceCitation(source="", title=entry.strip())
    if not isinstance(entry, Mapping):
        return None

    title = entry.get("title")
    source = entry.get("source")
    if title is not None and not isinstance(title, str):
        return None
    if source is not None and not isinstance(source, str):
        return None

    year = entry.get("year")
    confidence = entry.get("confidence")
    return EvidenceCitation(
        source=source or "",
        title=title or "",
        year=None if year is None else str(year),
        confidence=None if confidence is None else str(confidence),
    )


def parse_structured_reply(raw: Union[str, bytes, Mapping[str, Any], None]) -> Optional[StructuredSoothingReply]:
    """
    Parse model output into a StructuredSoothingReply.

    Accepts JSON text (optionally inside a ```json fence) or an already
    decoded mapping. Missing parts become empty values so is_valid()
    can judge them; structurally malformed input returns None.

    Args:
        raw: Model output

    Returns:
        StructuredSoothingReply, or None if raw is not a reply object
    """
    if raw is None:
        return None

    data = raw
    if isinstance(raw, bytes):
        try:
            data = raw.decode("utf-8")
        except UnicodeDecodeError:
            logger.debug("Reply is not valid UTF-8")
            return None

    if isinstance(data, str):
        text = data.strip()
        fenced = _CODE_FENCE_RE.match(text)
        if fenced:
            text = fenced.group(1)
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            logger.debug("Reply is not valid JSON")
            return None

    if not isinstance(data, Mapping):
        return None

    texts = {}
    for section in (SectionID.UNDERSTANDING, SectionID.MECHANISM, SectionID.FOLLOW_UP):
        value = _lookup(data, section)
        if value is not None and not isinstance(value, str):
            logger.debug(f"Reply part {section.value} is not text")
            return None
        texts[section] = value or ""

    raw_citations = _lookup(data, SectionID.EVIDENCE)
    raw_actions = _lookup(data, SectionID.ACTION)
    if raw_citations is not None and not isinstance(raw_citations, list):
        return None
    if raw_actions is not None and not isinstance(raw_actions, list):
        return None

    citations: List[EvidenceCitation] = []
    for entry in raw_citations or ():
        citation = _parse_citation(entry)
        if citation is None:
            logger.debug("Skipping malformed evidence citation")
            continue
        citations.append(citation)

    actions: Tuple[str, ...] = tuple(
        action.strip() for action in raw_actions or () if isinstance(action, str)
    )

    return StructuredSoothingReply(
        understanding_conclusion=texts[SectionID.UNDERSTANDING],
        mechanism_explanation=texts[SectionID.MECHANISM],
        evidence_citations=tuple(citations),
        executable_actions=actions,
        follow_up_question=texts[SectionID.FOLLOW_UP],
    )
