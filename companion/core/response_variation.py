"""
Response Variation - Non-repeating format/citation/address strategy

Responsibilities:
- Pick a format style that differs from the most recent reply
- Degrade citation style once enough sources were cited
- Decide whether the health focus may be mentioned again
- Offer an address term on a fixed cadence, avoiding repeats
- Render the strategy as prompt instructions

Rules:
- Opening exchange (turn_count <= 1, no previous replies):
  STRUCTURED + FORMAL + mention health context
- Later turns:
  citation MINIMAL once cited sources >= minimal_citation_threshold,
  otherwise CASUAL; NONE when no evidence is offered this turn.
  Health context only if it was never mentioned.
  Format: first entry of the rotation that does not match the most
  recent used format.

Deterministic: same state (and seed) -> same strategy.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Dict, FrozenSet, Optional, Tuple

from companion.config import CoreConfig
from companion.contracts import ConversationState
from companion.utils.helpers import resolve_language

logger = logging.getLogger(__name__)


class FormatStyle(str, Enum):
    STRUCTURED = "structured"
    BRIEF = "brief"
    CASUAL = "casual"
    NARRATIVE = "narrative"
    PLAN = "plan"

    def matches(self, used_format: Optional[str]) -> bool:
        """Whether a recorded format tag counts as this style."""
        return used_format in FORMAT_TAGS[self]


class CitationStyle(str, Enum):
    FORMAL = "formal"
    CASUAL = "casual"
    MINIMAL = "minimal"
    NONE = "none"


# Recorded format tags (see state_extractor.ResponseFormat) per style
FORMAT_TAGS: Dict[FormatStyle, FrozenSet[str]] = {
    FormatStyle.STRUCTURED: frozenset({"structured", "full_structured"}),
    FormatStyle.BRIEF: frozenset({"brief", "concise", "bullet_points"}),
    FormatStyle.CASUAL: frozenset({"casual", "conversational"}),
    FormatStyle.NARRATIVE: frozenset({"narrative", "detailed"}),
    FormatStyle.PLAN: frozenset({"plan", "plan_format", "numbered_list"}),
}

FORMAT_ROTATION: Tuple[FormatStyle, ...] = (
    FormatStyle.CASUAL,
    FormatStyle.BRIEF,
    FormatStyle.NARRATIVE,
    FormatStyle.STRUCTURED,
    FormatStyle.PLAN,
)

ENDEARMENT_POOL = {
    "zh": ("朋友", "同伴", "小伙伴"),
    "en": ("friend", "partner", "buddy"),
}

FORMAT_TEMPLATES = {
    "zh": {
        FormatStyle.STRUCTURED: "回复结构：\n1. 理解结论\n2. 机制解释\n3. 证据来源\n4. 可执行动作\n5. 跟进问题",
        FormatStyle.CASUAL: "回复风格：\n- 自然但保持结构完整\n- 避免空泛安慰\n- 每轮都能推动闭环",
        FormatStyle.BRIEF: "回复风格：\n- 简洁直接\n- 不重复已知信息\n- 优先给低阻力动作",
        FormatStyle.NARRATIVE: "回复风格：\n- 详细解释\n- 优先机制与证据\n- 结尾收敛到可执行动作",
        FormatStyle.PLAN: "回复格式：\n- 直接给出方案\n- 动作步骤可打勾执行\n- 明确下一轮复盘点",
    },
    "en": {
        FormatStyle.STRUCTURED: (
            "Reply structure:\n1. Understanding Conclusion\n2. Mechanism Explanation\n"
            "3. Evidence Sources\n4. Executable Actions\n5. Follow-up Question"
        ),
        FormatStyle.CASUAL: "Reply style:\n- Natural, but keep the structure complete\n- No empty reassurance\n- Move the loop forward every turn",
        FormatStyle.BRIEF: "Reply style:\n- Short and direct\n- Do not repeat known information\n- Lead with low-friction actions",
        FormatStyle.NARRATIVE: "Reply style:\n- Explain in detail\n- Mechanism and evidence first\n- Converge on executable actions at the end",
        FormatStyle.PLAN: "Reply format:\n- Give the plan directly\n- Steps the user can tick off\n- Name the next review point",
    },
}

CITATION_TEMPLATES = {
    "zh": {
        CitationStyle.FORMAL: "引用格式：使用 [1], [2] 标注，末尾列出参考文献",
        CitationStyle.CASUAL: "引用格式：自然地提及研究发现，如\"研究表明...\"",
        CitationStyle.MINIMAL: "引用格式：仅在必要时简短提及，不重复已引用的论文",
        CitationStyle.NONE: "引用格式：本轮不引用论文，直接基于已知机制说明",
    },
    "en": {
        CitationStyle.FORMAL: "Citations: mark with [1], [2] and list references at the end",
        CitationStyle.CASUAL: "Citations: mention findings naturally, e.g. \"research shows...\"",
        CitationStyle.MINIMAL: "Citations: mention briefly only when necessary, never re-cite papers already cited",
        CitationStyle.NONE: "Citations: do not cite papers this turn, explain from known mechanisms",
    },
}

INSTRUCTION_TEXT = {
    "zh": {
        "header": "[RESPONSE VARIATION INSTRUCTIONS - 回复变化指令]",
        "endearment": "称呼：可以使用\"{term}\"，但不要每句都用",
        "no_endearment": "称呼：这次不使用特定称呼语，保持自然",
        "no_focus": (
            "⚠️ 重要：不要重复提及用户的焦虑重点，已经在之前的对话中说过了\n"
            "直接回答问题，不要以\"考虑到你的XXX状况\"开头"
        ),
        "avoid": (
            "⚠️ 避免重复：\n"
            "- 不要使用和上一条回复相同的格式结构\n"
            "- 不要重复引用已经引用过的论文\n"
            "- 不要重复解释已经解释过的概念"
        ),
    },
    "en": {
        "header": "[RESPONSE VARIATION INSTRUCTIONS]",
        "endearment": "Address: you may call the user \"{term}\", but not in every sentence",
        "no_endearment": "Address: no particular address term this time, keep it natural",
        "no_focus": (
            "⚠️ IMPORTANT: Do not repeat the user's anxiety focus, it was already covered earlier in this conversation\n"
            "Answer directly, do not open with \"Considering your XXX condition\""
        ),
        "avoid": (
            "⚠️ Avoid repetition:\n"
            "- Do not reuse the format structure of the previous reply\n"
            "- Do not re-cite papers that were already cited\n"
            "- Do not re-explain concepts already explained"
        ),
    },
}


@dataclass(frozen=True)
class VariationStrategy:
    """
    How the next reply should be shaped.

    Attributes:
        format_style: Layout to request
        citation_style: How heavily to cite
        should_mention_health_context: Whether the health focus may be restated
        endearment: Address term to offer, None for none
        language: Resolved language of the endearment and instructions
    """
    format_style: FormatStyle
    citation_style: CitationStyle
    should_mention_health_context: bool
    endearment: Optional[str] = None
    language: str = "zh"


class ResponseVariationSelector:
    """
    Choose a VariationStrategy from a ConversationState.

    Args:
        config: Thresholds and cadence
        seed: Optional rotation offset; None keeps the fixed rotation
    """

    def __init__(self, config: Optional[CoreConfig] = None, seed: Optional[int] = None):
        self.config = config or CoreConfig()
        self.seed = seed

    def select_variation_strategy(
        self,
        state: ConversationState,
        language: str = "zh",
        evidence_available: bool = True,
    ) -> VariationStrategy:
        """
        Args:
            state: Snapshot from the Conversation State Extractor
            language: Language for the endearment pool
            evidence_available: False when no evidence is offered this turn

        Raises:
            TypeError: If state is not a ConversationState
        """
        if not isinstance(state, ConversationState):
            raise TypeError(f"state must be ConversationState, got {type(state).__name__}")

        lang = resolve_language(language, self.config.default_language)
        endearment = self._select_endearment(state, lang)

        if state.turn_count <= 1 and not state.used_formats:
            strategy = VariationStrategy(
                format_style=FormatStyle.STRUCTURED,
                citation_style=CitationStyle.FORMAL,
                should_mention_health_context=True,
                endearment=endearment,
                language=lang,
            )
        else:
            strategy = VariationStrategy(
                format_style=self._select_format_style(state),
                citation_style=self._select_citation_style(state, evidence_available),
                should_mention_health_context=not state.mentioned_health_context,
                endearment=endearment,
                language=lang,
            )

        logger.debug(
            f"Variation strategy: format={strategy.format_style.value}, "
            f"citation={strategy.citation_style.value}, "
            f"mention_health={strategy.should_mention_health_context}"
        )
        return strategy

    def _select_format_style(self, state: ConversationState) -> FormatStyle:
        last_format = state.used_formats[-1] if state.used_formats else None

        rotation = FORMAT_ROTATION
        if self.seed is not None:
            offset = (self.seed + state.turn_count) % len(rotation)
            rotation = rotation[offset:] + rotation[:offset]

        for style in rotation:
            if not style.matches(last_format):
                return style
        return FormatStyle.CASUAL

    def _select_citation_style(self, state: ConversationState, evidence_available: bool) -> CitationStyle:
        if not evidence_available:
            return CitationStyle.NONE
        if len(state.cited_source_ids) >= self.config.minimal_citation_threshold:
            return CitationStyle.MINIMAL
        return CitationStyle.CASUAL

    def _select_endearment(self, state: ConversationState, language: str) -> Optional[str]:
        """
        Offered on turns 1, 1+cadence, 1+2*cadence, ...; prefers unused
        terms, never repeats the last one.
        """
        if state.turn_count % self.config.endearment_cadence != 1 % self.config.endearment_cadence:
            return None

        pool = ENDEARMENT_POOL[language]
        used = state.used_endearments
        candidates = [term for term in pool if term not in used]
        if not candidates:
            last_used = used[-1] if used else None
            candidates = [term for term in pool if term != last_used]
        if not candidates:
            return None
        return candidates[(state.turn_count + len(used)) % len(candidates)]

    def generate_variation_instructions(self, strategy: VariationStrategy) -> str:
        """
        Render a strategy as natural-language directives.

        When should_mention_health_context is False the output carries an
        explicit instruction not to repeat the user's anxiety focus.
        """
        text = INSTRUCTION_TEXT[strategy.language]
        parts = [
            text["header"],
            "",
            FORMAT_TEMPLATES[strategy.language][strategy.format_style],
            "",
            CITATION_TEMPLATES[strategy.language][strategy.citation_style],
        ]

        if strategy.endearment:
            parts.append("\n" + text["endearment"].format(term=strategy.endearment))
        else:
            parts.append("\n" + text["no_endearment"])

        if not strategy.should_mention_health_context:
            parts.append("\n" + text["no_focus"])

        parts.append("\n" + text["avoid"])
        return "\n".join(parts)
