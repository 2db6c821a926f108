"""
Context Optimizer - Decide what background context to inject this turn

Responsibilities:
- Full health context vs. short reminder vs. nothing
- Drop evidence the assistant has already cited (with a never-empty fallback)
- One-line debug summary of the conversation
- Render the context block that goes into the prompt

Rules (each flag decided independently):
1. include_full_health_context  iff the health context has never been given
2. include_health_reminder      iff it has been given AND
                                turn_count >= reminder_turn_threshold
3. filtered_evidence: candidates minus already-cited titles, input order
   kept, duplicates removed; if nothing is left, the (deduplicated)
   candidates are returned unfiltered so the prompt always has evidence
4. context_summary always embeds the literal turn count

Design principles:
- Pure: (state, focus, candidates) -> ContextDecision
- Evidence identity = normalized title (Evidence.key)
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from companion.config import CoreConfig
from companion.contracts import ConversationState, Evidence
from companion.utils.helpers import normalize_title, resolve_language

logger = logging.getLogger(__name__)

REMINDER_MARKER = "ANTI-ANXIETY REMINDER"
FULL_CONTEXT_MARKER = "CRITICAL ANTI-ANXIETY CONTEXT"

FULL_CONTEXT_TEMPLATE = {
    "zh": (
        f"[{FULL_CONTEXT_MARKER} - 关键闭环上下文]\n"
        "🚨 用户当前焦虑重点: {focus}\n"
        "\n"
        "⚠️ 这是最高优先级的上下文！你必须：\n"
        "1. 在回答时优先围绕这个焦虑重点\n"
        "2. 如果用户行为可能加重紧张反应，必须提醒风险\n"
        "3. 输出可执行动作，并保留下一轮跟进问题\n"
        "\n"
        "注意：这是第一次提及，可以在回复中说明\"考虑到你当前的{focus}重点...\""
    ),
    "en": (
        f"[{FULL_CONTEXT_MARKER}]\n"
        "🚨 User's current anxiety focus: {focus}\n"
        "\n"
        "⚠️ This is the highest-priority context. You must:\n"
        "1. Center the answer on this anxiety focus\n"
        "2. Warn about risks if the user's behaviour may amplify the tension response\n"
        "3. Give executable actions and keep a follow-up question for the next turn\n"
        "\n"
        "Note: this is the first mention, you may say \"Considering your focus on {focus}...\""
    ),
}

REMINDER_TEMPLATE = {
    "zh": (
        f"[{REMINDER_MARKER} - 闭环提醒（内部参考）]\n"
        "用户焦虑重点: {focus}\n"
        "⚠️ 重要：你已经在之前的对话中提及过这个重点了！\n"
        "❌ 不要再次以\"考虑到你的XXX状况\"开头\n"
        "✅ 直接回答问题，在必要时隐式考虑触发限制"
    ),
    "en": (
        f"[{REMINDER_MARKER} - internal reference]\n"
        "User's anxiety focus: {focus}\n"
        "⚠️ Important: you already mentioned this focus earlier in the conversation.\n"
        "❌ Do not open with \"Considering your XXX condition\" again\n"
        "✅ Answer directly and take the triggers into account implicitly"
    ),
}

BLOCK_TEXT = {
    "zh": {
        "evidence_header": "[SCIENTIFIC CONTEXT - 科学上下文]",
        "evidence_count": "可引用的新论文 ({count}篇):",
        "excluded": "⚠️ 以下论文已在之前引用过，请勿重复完整引用：",
        "turns": "对话轮次: {n}",
        "cited": "已引用论文: {n}篇",
        "details": "用户分享的细节: {details}",
        "focus": "用户目标/关注: {focus}",
    },
    "en": {
        "evidence_header": "[SCIENTIFIC CONTEXT]",
        "evidence_count": "New papers available to cite ({count}):",
        "excluded": "⚠️ These papers were already cited earlier, do not cite them in full again:",
        "turns": "turn: {n}",
        "cited": "cited papers: {n}",
        "details": "user-shared details: {details}",
        "focus": "user focus: {focus}",
    },
}

FOCUS_DIGEST_LENGTH = 60


@dataclass(frozen=True)
class ContextDecision:
    """
    What to inject into the next prompt.

    Attributes:
        include_full_health_context: Give the health focus in full
        include_health_reminder: Give only the short do-not-repeat nudge
        filtered_evidence: Evidence to offer, duplicates and cited titles removed
        context_summary: Debug/telemetry line, always contains the turn count
        health_context_text: Rendered health section ("" if no focus or neither flag)
        excluded_titles: Normalized titles dropped because already cited
        language: Resolved language of the rendered texts
    """
    include_full_health_context: bool
    include_health_reminder: bool
    filtered_evidence: Tuple[Evidence, ...]
    context_summary: str
    health_context_text: str = ""
    excluded_titles: Tuple[str, ...] = ()
    language: str = "zh"


class ContextOptimizer:
    """
    Decide full vs. reminder health context and which evidence to offer.
    """

    def __init__(self, config: Optional[CoreConfig] = None):
        self.config = config or CoreConfig()
        logger.info("Context Optimizer initialized")

    def optimize(
        self,
        state: ConversationState,
        health_focus: Optional[str] = None,
        evidence_candidates: Sequence[Evidence] = (),
        language: str = "zh",
    ) -> ContextDecision:
        """
        Build the ContextDecision for the next turn.

        Args:
            state: Snapshot from the Conversation State Extractor
            health_focus: User's stored focus text (may be None/empty)
            evidence_candidates: Already-ranked candidates from retrieval
            language: Language for rendered texts

        Raises:
            TypeError: If state is not a ConversationState
        """
        if not isinstance(state, ConversationState):
            raise TypeError(f"state must be ConversationState, got {type(state).__name__}")

        lang = resolve_language(language, self.config.default_language)
        focus = (health_focus or "").strip()

        include_full = not state.mentioned_health_context
        include_reminder = (
            state.mentioned_health_context
            and state.turn_count >= self.config.reminder_turn_threshold
        )

        health_text = ""
        if focus and include_full:
            health_text = FULL_CONTEXT_TEMPLATE[lang].format(focus=focus)
        elif focus and include_reminder:
            health_text = REMINDER_TEMPLATE[lang].format(focus=focus)
        elif include_reminder:
            health_text = REMINDER_TEMPLATE[lang].splitlines()[0]

        filtered, excluded = self.filter_evidence(state, evidence_candidates)

        decision = ContextDecision(
            include_full_health_context=include_full,
            include_health_reminder=include_reminder,
            filtered_evidence=filtered,
            context_summary=self.generate_context_summary(state, focus, lang),
            health_context_text=health_text,
            excluded_titles=excluded,
            language=lang,
        )
        logger.debug(
            f"Context decision: full={include_full}, reminder={include_reminder}, "
            f"evidence={len(filtered)}, excluded={len(excluded)}"
        )
        return decision

    def filter_evidence(
        self,
        state: ConversationState,
        candidates: Sequence[Evidence],
    ) -> Tuple[Tuple[Evidence, ...], Tuple[str, ...]]:
        """
        Returns (filtered_evidence, excluded_titles).

        Falls back to the deduplicated candidates (nothing excluded)
        when every candidate was already cited, and to the raw candidates
        when none has a usable title. Never empty for non-empty input.
        """
        cited = {normalize_title(source) for source in state.cited_source_ids}

        unique: List[Evidence] = []
        seen = set()
        for candidate in candidates or ():
            key = candidate.key
            if not key or key in seen:
                continue
            seen.add(key)
            unique.append(candidate)

        fresh = tuple(candidate for candidate in unique if candidate.key not in cited)
        excluded = tuple(candidate.key for candidate in unique if candidate.key in cited)

        if not fresh and unique:
            logger.debug("All evidence already cited, falling back to unfiltered candidates")
            return tuple(unique), ()
        if not unique and candidates:
            logger.debug("No candidate has a usable title, falling back to raw candidates")
            return tuple(candidates), ()
        return fresh, excluded

    def generate_context_summary(self, state: ConversationState, health_focus: str, language: str) -> str:
        text = BLOCK_TEXT[language]
        parts = [text["turns"].format(n=state.turn_count)]
        if state.cited_source_ids:
            parts.append(text["cited"].format(n=len(state.cited_source_ids)))
        if state.user_shared_details:
            details = state.user_shared_details[:self.config.max_details_in_summary]
            parts.append(text["details"].format(details=", ".join(details)))
        if health_focus:
            digest = health_focus if len(health_focus) <= FOCUS_DIGEST_LENGTH \
                else health_focus[:FOCUS_DIGEST_LENGTH] + "…"
            parts.append(text["focus"].format(focus=digest))
        return " | ".join(parts)

    def build_context_block(self, decision: ContextDecision) -> str:
        """
        Render the labelled context block.

        Contains the ANTI-ANXIETY REMINDER marker exactly when
        decision.include_health_reminder is true, and lists every
        offered evidence title.
        """
        text = BLOCK_TEXT.get(decision.language, BLOCK_TEXT["zh"])
        parts = []

        if decision.health_context_text:
            parts.append(decision.health_context_text)

        if decision.filtered_evidence:
            parts.append("\n" + text["evidence_header"])
            parts.append(text["evidence_count"].format(count=len(decision.filtered_evidence)))
            for index, evidence in enumerate(decision.filtered_evidence, start=1):
                year = str(evidence.year) if evidence.year is not None else "N/A"
                parts.append(f"[{index}] \"{evidence.title}\" ({year})")

            if decision.excluded_titles:
                parts.append("\n" + text["excluded"])
                parts.append(", ".join(decision.excluded_titles[:self.config.max_excluded_in_block]))

        if decision.context_summary:
            parts.append(f"\n[CONTEXT SUMMARY] {decision.context_summary}")

        return "\n".join(parts).strip("\n")
