"""
Unit tests for the Context Optimizer

Full-context vs. reminder decisions, evidence filtering and the
rendered context block.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from companion.config import CoreConfig
from companion.contracts import ConversationState, Evidence
from companion.core.context_optimizer import (
    FULL_CONTEXT_MARKER,
    REMINDER_MARKER,
    ContextOptimizer,
)


@pytest.fixture
def optimizer():
    return ContextOptimizer()


@pytest.fixture
def reminder_state():
    return ConversationState(
        turn_count=2,
        mentioned_health_context=True,
        cited_source_ids=("paper a",),
        user_shared_details=("夜间惊醒",),
    )


# ========================
# Health context flags
# ========================

def test_reminder_after_mention(optimizer, reminder_state):
    """Mentioned + turn >= 2 -> reminder, not full context"""
    decision = optimizer.optimize(
        reminder_state,
        health_focus="睡前焦虑",
        evidence_candidates=[Evidence("Paper A", 2024), Evidence("Paper B", 2023)],
    )

    assert decision.include_full_health_context is False
    assert decision.include_health_reminder is True
    assert [e.title for e in decision.filtered_evidence] == ["Paper B"]
    assert "对话轮次: 2" in decision.context_summary

    block = optimizer.build_context_block(decision)
    assert REMINDER_MARKER in block
    assert "Paper B" in block


def test_full_context_before_mention(optimizer):
    decision = optimizer.optimize(ConversationState(turn_count=1), health_focus="睡前焦虑")

    assert decision.include_full_health_context is True
    assert decision.include_health_reminder is False
    block = optimizer.build_context_block(decision)
    assert FULL_CONTEXT_MARKER in block
    assert "睡前焦虑" in block
    assert REMINDER_MARKER not in block


def test_no_reminder_below_turn_threshold(optimizer):
    """Mentioned on turn 1 -> neither flag"""
    state = ConversationState(turn_count=1, mentioned_health_context=True)
    decision = optimizer.optimize(state, health_focus="睡前焦虑")

    assert decision.include_full_health_context is False
    assert decision.include_health_reminder is False
    assert REMINDER_MARKER not in optimizer.build_context_block(decision)


def test_reminder_threshold_is_configurable(reminder_state):
    optimizer = ContextOptimizer(CoreConfig(reminder_turn_threshold=3))
    assert optimizer.optimize(reminder_state, "睡前焦虑").include_health_reminder is False


def test_reminder_marker_without_focus(optimizer, reminder_state):
    """Reminder flag still renders its marker when no focus text is known"""
    decision = optimizer.optimize(reminder_state)
    assert decision.include_health_reminder is True
    assert REMINDER_MARKER in optimizer.build_context_block(decision)


def test_full_context_without_focus_renders_nothing(optimizer):
    decision = optimizer.optimize(ConversationState.initial())
    assert decision.include_full_health_context is True
    assert decision.health_context_text == ""


def test_english_texts(optimizer, reminder_state):
    decision = optimizer.optimize(reminder_state, "evening anxiety", [Evidence("Paper B")], language="en")

    assert "turn: 2" in decision.context_summary
    block = optimizer.build_context_block(decision)
    assert "User's anxiety focus: evening anxiety" in block
    assert '[1] "Paper B" (N/A)' in block


def test_wrong_state_type_raises(optimizer):
    with pytest.raises(TypeError):
        optimizer.optimize({"turn_count": 2})


# ========================
# Evidence filtering
# ========================

def test_cited_evidence_filtered_by_normalized_title(optimizer):
    state = ConversationState(turn_count=3, cited_source_ids=("sleep and amygdala reactivity",))
    candidates = [Evidence("  Sleep and Amygdala  Reactivity "), Evidence("Breathing and HRV", 2021)]

    decision = optimizer.optimize(state, evidence_candidates=candidates)
    assert [e.title for e in decision.filtered_evidence] == ["Breathing and HRV"]
    assert decision.excluded_titles == ("sleep and amygdala reactivity",)


def test_duplicates_removed_order_kept(optimizer):
    candidates = [Evidence("B"), Evidence("A"), Evidence("b"), Evidence("C")]
    decision = optimizer.optimize(ConversationState.initial(), evidence_candidates=candidates)
    assert [e.title for e in decision.filtered_evidence] == ["B", "A", "C"]


def test_all_cited_falls_back_to_candidates(optimizer):
    """Never leave the prompt without evidence when candidates exist"""
    state = ConversationState(turn_count=3, cited_source_ids=("paper a", "paper b"))
    decision = optimizer.optimize(state, evidence_candidates=[Evidence("Paper A"), Evidence("Paper B")])

    assert [e.title for e in decision.filtered_evidence] == ["Paper A", "Paper B"]
    assert decision.excluded_titles == ()


def test_blank_titles_fall_back_to_raw_candidates(optimizer):
    candidates = [Evidence("  ", 2020)]
    decision = optimizer.optimize(ConversationState.initial(), evidence_candidates=candidates)

    assert decision.filtered_evidence == (Evidence("  ", 2020),)
    assert decision.excluded_titles == ()


def test_no_candidates(optimizer):
    decision = optimizer.optimize(ConversationState.initial())
    assert decision.filtered_evidence == ()


def test_block_lists_every_offered_title(optimizer):
    candidates = [Evidence(f"Paper {i}", 2000 + i) for i in range(6)]
    decision = optimizer.optimize(ConversationState.initial(), evidence_candidates=candidates)
    block = optimizer.build_context_block(decision)

    for i in range(6):
        assert f'[{i + 1}] "Paper {i}" ({2000 + i})' in block


def test_excluded_titles_capped_in_block():
    optimizer = ContextOptimizer(CoreConfig(max_excluded_in_block=1))
    state = ConversationState(turn_count=3, cited_source_ids=("a", "b"))
    decision = optimizer.optimize(state, evidence_candidates=[Evidence("A"), Evidence("B"), Evidence("C")])
    block = optimizer.build_context_block(decision)

    assert decision.excluded_titles == ("a", "b")
    lines = block.splitlines()
    assert "a" in lines
    assert "a, b" not in block


# ========================
# Summary
# ========================

def test_summary_always_has_turn_count(optimizer):
    for turn in (0, 1, 2, 17):
        decision = optimizer.optimize(ConversationState(turn_count=turn))
        assert str(turn) in decision.context_summary


def test_summary_details(optimizer, reminder_state):
    decision = optimizer.optimize(reminder_state, health_focus="睡前焦虑")
    assert "已引用论文: 1篇" in decision.context_summary
    assert "夜间惊醒" in decision.context_summary
    assert "睡前焦虑" in decision.context_summary


def test_block_ends_with_summary(optimizer, reminder_state):
    decision = optimizer.optimize(reminder_state, health_focus="睡前焦虑")
    block = optimizer.build_context_block(decision)
    assert block.splitlines()[-1] == f"[CONTEXT SUMMARY] {decision.context_summary}"
