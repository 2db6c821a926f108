"""
Unit tests for the Prompt Builder and persona prompt
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from companion.contracts import ConversationState
from companion.core.response_variation import CitationStyle, FormatStyle, VariationStrategy
from companion.utils.persona_prompt import build_persona, full_system_prompt, tone_adjustment
from companion.utils.prompt_builder import (
    AISettings,
    PersonaMode,
    PromptBuildError,
    PromptBuilder,
    PromptInput,
    parse_settings_from_context,
)


@pytest.fixture
def builder():
    return PromptBuilder()


def full_zh_input(**overrides):
    values = dict(
        conversation_state=ConversationState.initial(),
        ai_settings=AISettings(honesty_level=90, humor_level=30, mode="max"),
        personality="max",
        health_focus="工作场景触发焦虑",
        inquiry_summary="最近两天晚间焦虑升高",
        memory_context="上次执行了呼吸训练",
        playbook_context="证据库建议先做低阻力动作",
        context_block="[CONTEXT BLOCK]",
        language="zh",
    )
    values.update(overrides)
    return PromptInput(**values)


# ========================
# Localized format section
# ========================

def test_chinese_closed_loop_sections(builder):
    prompt = builder.build(full_zh_input())

    assert "[ANTI-ANXIETY RESPONSE FORMAT]" in prompt
    assert "1. 理解结论 / Understanding Conclusion" in prompt
    assert "5. 跟进问题 / Follow-up Question" in prompt
    assert "小节标题使用中文" in prompt
    assert "[USER FOCUS]" in prompt
    assert "工作场景触发焦虑" in prompt


def test_english_output_rules(builder):
    prompt = builder.build(PromptInput(language="en"))

    assert "- Output final answer in English" in prompt
    assert "- Use the English section titles exactly as listed above" in prompt
    assert "1. Understanding Conclusion" in prompt
    assert "小节标题使用中文" not in prompt


def test_unknown_language_falls_back_to_chinese(builder):
    assert "小节标题使用中文" in builder.build(PromptInput(language="fr"))


# ========================
# Optional sections
# ========================

def test_all_optional_sections_embedded(builder):
    prompt = builder.build(full_zh_input(persona_context="用户偏好简短回答"))

    for header, content in (
        ("[USER FOCUS]", "工作场景触发焦虑"),
        ("[PERSONA CONTEXT]", "用户偏好简短回答"),
        ("[INQUIRY CONTEXT]", "最近两天晚间焦虑升高"),
        ("[MEMORY CONTEXT]", "上次执行了呼吸训练"),
        ("[PLAYBOOK CONTEXT]", "证据库建议先做低阻力动作"),
    ):
        assert f"{header}\n{content}" in prompt
    assert "[CONTEXT BLOCK]" in prompt


def test_smoke_only_language(builder):
    """Every optional field empty: builds, no stray headers"""
    prompt = builder.build(PromptInput(language="zh"))

    for header in ("[USER FOCUS]", "[PERSONA CONTEXT]", "[INQUIRY CONTEXT]",
                   "[MEMORY CONTEXT]", "[PLAYBOOK CONTEXT]"):
        assert header not in prompt
    assert prompt.rstrip().endswith("禁止输出 <think> 标签或 reasoning_content")


def test_focus_embedded_verbatim(builder):
    focus = "  工作场景触发焦虑\n  （尤其是周一早会）  "
    prompt = builder.build(PromptInput(health_focus=focus))
    assert "[USER FOCUS]\n" + focus + "\n" in prompt


def test_whitespace_only_sections_omitted(builder):
    prompt = builder.build(PromptInput(memory_context="   ", health_focus=""))
    assert "[MEMORY CONTEXT]" not in prompt
    assert "[USER FOCUS]" not in prompt


def test_section_order(builder):
    prompt = builder.build(full_zh_input())
    order = [
        "[AI CONFIGURATION",
        "[AI PERSONA",
        "[SCOPE & SAFETY]",
        "[ANTI-ANXIETY RESPONSE FORMAT]",
        "[RESPONSE VARIATION INSTRUCTIONS",
        "[USER FOCUS]",
        "[INQUIRY CONTEXT]",
        "[MEMORY CONTEXT]",
        "[PLAYBOOK CONTEXT]",
        "[CONTEXT BLOCK]",
        "[FINAL ANSWER ONLY]",
    ]
    positions = [prompt.index(marker) for marker in order]
    assert positions == sorted(positions)


def test_deterministic(builder):
    assert builder.build(full_zh_input()) == PromptBuilder().build(full_zh_input())


# ========================
# AI configuration
# ========================

def test_settings_rendered(builder):
    prompt = builder.build(full_zh_input())
    assert "- Honesty: 90% (Be direct and precise)" in prompt
    assert "- Humor: 30% - MINIMAL HUMOR" in prompt
    assert "[AI CONFIGURATION - MAX]" in prompt


def test_settings_parsed_from_persona_context(builder):
    prompt = builder.build(PromptInput(persona_context="诚实度: 75%\n幽默感: 85%"))
    assert "- Honesty: 75% (Be honest but tactful)" in prompt
    assert "- Humor: 85% - HIGH LIGHTNESS" in prompt


def test_default_settings(builder):
    prompt = builder.build(PromptInput())
    assert "- Honesty: 90%" in prompt
    assert "- Humor: 65% - MODERATE LIGHTNESS" in prompt


def test_persona_modes(builder):
    assert "[AI CONFIGURATION - Zen Master]" in builder.build(PromptInput(personality="zen_master"))
    assert "[AI CONFIGURATION - Dr. House]" in builder.build(
        PromptInput(ai_settings=AISettings(mode="dr_house"))
    )
    assert "[AI CONFIGURATION - MAX]" in builder.build(PromptInput(personality="pirate"))


def test_parse_settings_from_context():
    assert parse_settings_from_context(None) == (90.0, 65.0)
    assert parse_settings_from_context("Honesty: 40%, Humor: 10%") == (40.0, 10.0)
    assert parse_settings_from_context("诚实度: 55%") == (55.0, 65.0)


def test_persona_mode_resolve():
    assert PersonaMode.resolve("dr_house") is PersonaMode.DR_HOUSE
    assert PersonaMode.resolve(None) is PersonaMode.MAX


# ========================
# Validation
# ========================

def test_settings_out_of_range():
    with pytest.raises(PromptBuildError):
        AISettings(honesty_level=120)
    with pytest.raises(PromptBuildError):
        AISettings(humor_level=-5)


def test_settings_wrong_type():
    with pytest.raises(PromptBuildError):
        AISettings(honesty_level="high")


def test_wrong_input_type(builder):
    with pytest.raises(TypeError):
        builder.build({"language": "zh"})


def test_wrong_state_type(builder):
    with pytest.raises(PromptBuildError):
        builder.build(PromptInput(conversation_state={"turn_count": 1}))


# ========================
# Variation strategy
# ========================

def test_explicit_strategy_used(builder):
    strategy = VariationStrategy(
        format_style=FormatStyle.PLAN,
        citation_style=CitationStyle.NONE,
        should_mention_health_context=False,
    )
    prompt = builder.build(PromptInput(variation_strategy=strategy))

    assert "直接给出方案" in prompt
    assert "本轮不引用论文" in prompt
    assert "不要重复提及用户的焦虑重点" in prompt


def test_later_turn_strategy_selected(builder):
    state = ConversationState(turn_count=4, mentioned_health_context=True,
                              cited_source_ids=("a", "b", "c"), used_formats=("structured",))
    prompt = builder.build(PromptInput(conversation_state=state))

    assert "不要重复提及用户的焦虑重点" in prompt
    assert "【深入对话】" in prompt


# ========================
# Persona prompt
# ========================

def test_persona_phases():
    assert "【首次对话】" in build_persona(1)
    assert "【对话进行中】" in build_persona(2)
    assert "【深入对话】" in build_persona(5)
    assert "这不是第一轮对话" in build_persona(2)
    assert "这不是第一轮对话" not in build_persona(1)


def test_persona_english():
    prompt = full_system_prompt(turn_count=1, language="en")
    assert prompt.startswith("[AI PERSONA")
    assert "[FIRST CONVERSATION]" in prompt


def test_tone_adjustment():
    assert tone_adjustment(1) == "保持专业友好的基调"
    assert tone_adjustment(5, "anxious") == "可以更简洁，聚焦执行反馈，降低刺激，强调可控步骤"
    assert tone_adjustment(1, "curious", language="en") == "add mechanism explanations and evidence detail"
