"""
Section Label Registry

Bilingual lookup table for the five canonical reply sections.

The conversation state extractor uses SECTION_LABELS to recognise
sections in assistant replies; the prompt builder uses section_title()
to tell the model which headings to emit.

Matching rules:
- Chinese labels: literal substring
- English labels: case-insensitive, must open a line (after optional
  markdown/list markers) or be followed by a colon, so ordinary prose
  such as "there is evidence that" does not count as a section

Adding a language means adding a column to the tables below, not
new branching in callers.
"""

import re
from enum import Enum
from typing import Dict, Iterable, Pattern, Tuple


class SectionID(str, Enum):
    """
    Canonical reply sections, in emission order.
    """
    UNDERSTANDING = "understanding_conclusion"
    MECHANISM = "mechanism_explanation"
    EVIDENCE = "evidence_sources"
    ACTION = "executable_actions"
    FOLLOW_UP = "follow_up_question"


SECTION_ORDER: Tuple[SectionID, ...] = (
    SectionID.UNDERSTANDING,
    SectionID.MECHANISM,
    SectionID.EVIDENCE,
    SectionID.ACTION,
    SectionID.FOLLOW_UP,
)


# Recognised label synonyms per section and language.
# First entry per language is the canonical title.
SECTION_LABELS: Dict[SectionID, Dict[str, Tuple[str, ...]]] = {
    SectionID.UNDERSTANDING: {
        "zh": ("理解结论", "关键要点"),
        "en": ("Understanding Conclusion", "Key Takeaway"),
    },
    SectionID.MECHANISM: {
        "zh": ("机制解释",),
        "en": ("Mechanism Explanation", "Mechanism"),
    },
    SectionID.EVIDENCE: {
        "zh": ("证据来源", "科学证据", "证据基础"),
        "en": ("Evidence Sources", "Evidence"),
    },
    SectionID.ACTION: {
        "zh": ("可执行动作", "行动建议", "实用建议"),
        "en": ("Executable Actions", "Actionable", "Action Steps"),
    },
    SectionID.FOLLOW_UP: {
        "zh": ("跟进问题",),
        "en": ("Follow-up Question", "Follow up Question", "Follow-up"),
    },
}

# Older replies marked structure with two bold headings only
LEGACY_STRUCTURED_MARKERS: Tuple[str, ...] = ("**关键要点**", "**科学证据**")


def _compile_latin(label: str) -> Pattern:
    escaped = re.escape(label).replace(r"\ ", r"[\s-]*")
    return re.compile(
        rf"(?:^[\s#*>\-•]*(?:\d+[.)]\s*)?{escaped}\b|{escaped}\s*[:：])",
        re.IGNORECASE | re.MULTILINE,
    )


_LATIN_PATTERNS: Dict[SectionID, Tuple[Pattern, ...]] = {
    section: tuple(_compile_latin(label) for label in labels["en"])
    for section, labels in SECTION_LABELS.items()
}


def section_title(section: SectionID, language: str) -> str:
    """
    Canonical title of a section in a language.

    Raises:
        KeyError: If language has no column in SECTION_LABELS
    """
    return SECTION_LABELS[section][language][0]


def has_section(content: str, section: SectionID) -> bool:
    """
    Check whether content carries a label for section in any language.

    Never raises; empty content has no sections.
    """
    if not content:
        return False
    if any(label in content for label in SECTION_LABELS[section]["zh"]):
        return True
    return any(pattern.search(content) for pattern in _LATIN_PATTERNS[section])


def has_all_sections(content: str, sections: Iterable[SectionID] = SECTION_ORDER) -> bool:
    return all(has_section(content, section) for section in sections)


def has_legacy_structure(content: str) -> bool:
    return bool(content) and all(marker in content for marker in LEGACY_STRUCTURED_MARKERS)
