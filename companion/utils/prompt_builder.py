"""
Prompt Builder - Assemble the per-turn system prompt from structured input

Responsibilities:
- Render the AI configuration (honesty/humor sliders, persona mode)
- Embed the turn-aware persona and scope/safety rules
- Enforce the five-section response format, localized
- Embed variation instructions and every non-empty optional context
- Close with language-specific final-answer rules

NOT responsible for:
- Deciding what context to include (Context Optimizer)
- Choosing format/citation style (Response-Variation Selector)
- Model calls or output validation

Design principles:
- Fail-fast validation (no partial builds)
- Deterministic: same PromptInput -> same prompt text
- Omitted optional sections leave no stray headers
- Smoke case (only language given) must build

Section order:
1. [AI CONFIGURATION]
2. Persona (turn-aware)
3. [SCOPE & SAFETY]
4. [ANTI-ANXIETY RESPONSE FORMAT]
5. [RESPONSE VARIATION INSTRUCTIONS]
6. [USER FOCUS], [PERSONA CONTEXT], [INQUIRY CONTEXT],
   [MEMORY CONTEXT], [PLAYBOOK CONTEXT]   (only when non-empty)
7. Context block (pre-rendered)
8. [FINAL ANSWER ONLY]
"""

import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from companion.contracts import ConversationState
from companion.core.response_variation import ResponseVariationSelector, VariationStrategy
from companion.utils.helpers import resolve_language
from companion.utils.persona_prompt import full_system_prompt
from companion.utils.section_labels import SECTION_ORDER, section_title

logger = logging.getLogger(__name__)

DEFAULT_HONESTY = 90
DEFAULT_HUMOR = 65

RESPONSE_FORMAT_HEADER = "[ANTI-ANXIETY RESPONSE FORMAT]"


class PromptBuildError(Exception):
    """Raised when prompt cannot be built due to invalid/incomplete input"""
    pass


class PersonaMode(str, Enum):
    """
    Persona modes. Unknown mode strings fall back to MAX.
    """
    MAX = "max"
    ZEN_MASTER = "zen_master"
    DR_HOUSE = "dr_house"

    @property
    def display_name(self) -> str:
        return MODE_NAMES[self]

    @classmethod
    def resolve(cls, mode: Optional[str]) -> "PersonaMode":
        try:
            return cls(mode)
        except ValueError:
            if mode:
                logger.warning(f"Unknown persona mode '{mode}', using 'max'")
            return cls.MAX


MODE_NAMES = {
    PersonaMode.MAX: "MAX",
    PersonaMode.ZEN_MASTER: "Zen Master",
    PersonaMode.DR_HOUSE: "Dr. House",
}

MODE_STYLES = {
    PersonaMode.MAX: "Prioritize brevity and dry, intellectual humor. Use Bayesian reasoning. Be crisp and to the point.",
    PersonaMode.ZEN_MASTER: "Use calming, philosophical language. Guide with wisdom and patience. Speak with tranquility.",
    PersonaMode.DR_HOUSE: "Be blunt and diagnostic. Cut through the noise. Use medical expertise and evidence-based analysis.",
}

# Sliders embedded in the persona context by the settings screen
HONESTY_PATTERNS = (
    re.compile(r"诚实度[:：]\s*(\d+)%"),
    re.compile(r"honesty[:：]\s*(\d+)%", re.IGNORECASE),
)
HUMOR_PATTERNS = (
    re.compile(r"幽默感[:：]\s*(\d+)%"),
    re.compile(r"humou?r[:：]\s*(\d+)%", re.IGNORECASE),
)

SCOPE_AND_SAFETY = {
    "zh": (
        "[SCOPE & SAFETY]\n"
        "- 仅处理焦虑、压力、睡眠、情绪调节、行为执行相关问题\n"
        "- 遇到政治选举、博彩赔率、金融预测等话题，必须拒答并引导回反焦虑目标\n"
        "- 不提供医疗诊断；如出现急性风险信号，建议联系专业机构\n"
        "- 禁止编造研究、引用、数据或统计；没有可靠数据就直说未知"
    ),
    "en": (
        "[SCOPE & SAFETY]\n"
        "- Only handle anxiety, stress, sleep, mood regulation and behaviour execution\n"
        "- Decline political elections, betting odds and financial predictions, and steer back to the anti-anxiety goal\n"
        "- No medical diagnosis; on acute risk signals, recommend contacting professional services\n"
        "- Never fabricate studies, citations, data or statistics; say it is unknown when there is no reliable data"
    ),
}

FORMAT_RULES = {
    "zh": {
        "loop": "- 你是闭环编排器：理解 -> 机制解释 -> 证据 -> 动作 -> 跟进",
        "sections": "- 回答必须严格包含以下 5 个小节（按顺序）：",
        "rules": (
            "- 禁止输出空小节；若证据不足，明确写“当前证据不足”",
            "- 可执行动作必须 1-3 条、可在今天开始、低阻力且可追踪",
            "- 跟进问题只能 1 条，并用于下一轮校准或行动复盘",
        ),
    },
    "en": {
        "loop": "- You are a loop orchestrator: understanding -> mechanism -> evidence -> actions -> follow-up",
        "sections": "- The answer must contain exactly these 5 sections, in order:",
        "rules": (
            "- Never output an empty section; if evidence is insufficient, say \"current evidence is insufficient\"",
            "- Executable actions: 1-3 items, startable today, low-friction and trackable",
            "- Exactly one follow-up question, used to calibrate the next turn or review actions",
        ),
    },
}

FINAL_ANSWER_RULES = {
    "zh": (
        "- 只输出最终回答（中文）",
        "- 小节标题使用中文：" + " / ".join(section_title(s, "zh") for s in SECTION_ORDER),
        "- 不要输出思考过程、推理内容或分析步骤",
        "- 禁止输出 <think> 标签或 reasoning_content",
    ),
    "en": (
        "- Output final answer in English",
        "- Use the English section titles exactly as listed above",
        "- Do not output thinking, reasoning or analysis steps",
        "- Never output <think> tags or reasoning_content",
    ),
}


@dataclass(frozen=True)
class AISettings:
    """
    User-tunable persona sliders.

    Attributes:
        honesty_level: 0-100, None to read from persona context
        humor_level: 0-100, None to read from persona context
        mode: Persona mode tag ('max', 'zen_master', 'dr_house')
    """
    honesty_level: Optional[float] = None
    humor_level: Optional[float] = None
    mode: str = PersonaMode.MAX.value

    def __post_init__(self):
        for name in ("honesty_level", "humor_level"):
            value = getattr(self, name)
            if value is None:
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)):
                raise PromptBuildError(f"{name} must be a number, got {type(value).__name__}")
            if not 0 <= value <= 100:
                raise PromptBuildError(f"{name} must be within 0-100, got {value}")


@dataclass(frozen=True)
class PromptInput:
    """
    Everything the prompt is built from.

    All fields are optional; the builder omits sections whose input
    is None or empty.
    """
    conversation_state: ConversationState = field(default_factory=ConversationState.initial)
    ai_settings: Optional[AISettings] = None
    persona_context: Optional[str] = None
    personality: Optional[str] = None
    health_focus: Optional[str] = None
    inquiry_summary: Optional[str] = None
    memory_context: Optional[str] = None
    playbook_context: Optional[str] = None
    context_block: Optional[str] = None
    language: str = "zh"
    variation_strategy: Optional[VariationStrategy] = None


def parse_settings_from_context(context: Optional[str]) -> Tuple[float, float]:
    """
    Read honesty/humor percentages from free-text persona context.

    Returns:
        (honesty, humor), each defaulting to 90 / 65 when absent
    """
    if not context:
        return float(DEFAULT_HONESTY), float(DEFAULT_HUMOR)
    return (
        _extract_percent(context, HONESTY_PATTERNS, DEFAULT_HONESTY),
        _extract_percent(context, HUMOR_PATTERNS, DEFAULT_HUMOR),
    )


def _extract_percent(text: str, patterns, default: float) -> float:
    for pattern in patterns:
        match = pattern.search(text)
        if match:
            return float(min(int(match.group(1)), 100))
    return float(default)


def honesty_instruction(level: float) -> str:
    if level >= 90:
        return "Be direct and precise"
    if level >= 70:
        return "Be honest but tactful"
    if level >= 40:
        return "Be diplomatic and gentle"
    return "Be very gentle and supportive"


def humor_instruction(level: float) -> str:
    if level >= 100:
        return "High lightness allowed, but keep scientific rigor and respect."
    if level >= 80:
        return "HIGH LIGHTNESS: occasional playful analogies are acceptable"
    if level >= 60:
        return "MODERATE LIGHTNESS: one light remark at most"
    if level >= 40:
        return "LIGHT HUMOR: rare lightness while staying professional"
    return "MINIMAL HUMOR: serious, calm and supportive"


class PromptBuilder:
    """
    Build the system prompt from PromptInput.

    Pure apart from logging: PromptInput -> prompt_text.
    """

    def __init__(self, selector: Optional[ResponseVariationSelector] = None):
        self.selector = selector or ResponseVariationSelector()

    def build(self, prompt_input: PromptInput) -> str:
        """
        Build the complete prompt.

        Args:
            prompt_input: Bundled per-turn input

        Returns:
            Prompt text ready for the model call

        Raises:
            TypeError: If prompt_input is not a PromptInput
            PromptBuildError: If the input is inconsistent
        """
        if not isinstance(prompt_input, PromptInput):
            raise TypeError(f"prompt_input must be PromptInput, got {type(prompt_input).__name__}")
        if not isinstance(prompt_input.conversation_state, ConversationState):
            raise PromptBuildError(
                f"conversation_state must be ConversationState, "
                f"got {type(prompt_input.conversation_state).__name__}"
            )
        if prompt_input.ai_settings is not None and not isinstance(prompt_input.ai_settings, AISettings):
            raise PromptBuildError(
                f"ai_settings must be AISettings, got {type(prompt_input.ai_settings).__name__}"
            )

        lang = resolve_language(prompt_input.language)
        state = prompt_input.conversation_state

        strategy = prompt_input.variation_strategy
        if strategy is None:
            strategy = self.selector.select_variation_strategy(state, lang)

        parts = [
            self._build_ai_configuration(prompt_input),
            "",
            full_system_prompt(turn_count=state.turn_count, language=lang),
            "",
            SCOPE_AND_SAFETY[lang],
            "",
            self._build_response_format(lang),
            "",
            self.selector.generate_variation_instructions(strategy),
        ]

        optional_sections = (
            ("[USER FOCUS]", prompt_input.health_focus),
            ("[PERSONA CONTEXT]", prompt_input.persona_context),
            ("[INQUIRY CONTEXT]", prompt_input.inquiry_summary),
            ("[MEMORY CONTEXT]", prompt_input.memory_context),
            ("[PLAYBOOK CONTEXT]", prompt_input.playbook_context),
        )
        for header, content in optional_sections:
            if content and content.strip():
                parts.append("\n" + header)
                parts.append(content)

        if prompt_input.context_block and prompt_input.context_block.strip():
            parts.append("\n" + prompt_input.context_block.strip())

        parts.append("\n[FINAL ANSWER ONLY]")
        parts.extend(FINAL_ANSWER_RULES[lang])

        prompt = "\n".join(parts)
        logger.debug(f"Built prompt ({len(prompt)} chars, language={lang}, turn={state.turn_count})")
        return prompt

    def _build_ai_configuration(self, prompt_input: PromptInput) -> str:
        """
        Honesty/humor/mode header. Slider values missing from ai_settings
        are read from the persona context text.
        """
        settings = prompt_input.ai_settings
        mode = PersonaMode.resolve(
            settings.mode if settings is not None and settings.mode else prompt_input.personality
        )

        parsed_honesty, parsed_humor = parse_settings_from_context(prompt_input.persona_context)
        honesty = parsed_honesty
        humor = parsed_humor
        if settings is not None and settings.honesty_level is not None:
            honesty = settings.honesty_level
        if settings is not None and settings.humor_level is not None:
            humor = settings.humor_level

        honesty_text = honesty_instruction(honesty)
        humor_text = humor_instruction(humor)
        calibration = (
            "Speak truth clearly and avoid vague reassurance."
            if honesty >= 70
            else "Be supportive and frame things positively while remaining truthful."
        )

        return "\n".join([
            f"[AI CONFIGURATION - {mode.display_name}]",
            "",
            "Current Settings:",
            f"- Honesty: {int(honesty)}% ({honesty_text})",
            f"- Humor: {int(humor)}% - {humor_text}",
            f"- Mode: {mode.display_name} - {MODE_STYLES[mode]}",
            "",
            "VOICE & TONE CALIBRATION:",
            f"- Honesty Calibration: {calibration}",
            f"- Humor Calibration: {humor_text}",
            "- Relationship Style: calm, respectful, non-judgmental, never mock anxiety experiences",
            "",
            "FORBIDDEN BEHAVIORS:",
            "- Do not joke about the user's anxiety or panic episodes",
            "- Do not fabricate papers, references, numbers, or certainty",
            "- Do not give generic slogans without concrete actions",
            "",
            "APPROVED PHRASES:",
            "- \"当前数据提示...\" / \"Current data suggests...\"",
            "- \"机制上可以这样理解...\" / \"Mechanistically, think of it as...\"",
            "- \"可先执行这一步...\" / \"Start with this step...\"",
            "- \"我们下一轮用这个问题校准...\" / \"Next turn we calibrate with this question...\"",
        ])

    def _build_response_format(self, language: str) -> str:
        rules = FORMAT_RULES[language]
        lines = [RESPONSE_FORMAT_HEADER, rules["loop"], rules["sections"]]
        for index, section in enumerate(SECTION_ORDER, start=1):
            english = section_title(section, "en")
            if language == "zh":
                lines.append(f"{index}. {section_title(section, 'zh')} / {english}")
            else:
                lines.append(f"{index}. {english}")
        lines.extend(rules["rules"])
        return "\n".join(lines)
