"""
Unit tests for the Conversation State Extractor

Covers turn counting, format classification, citation capture,
health-context detection and fragment heuristics.
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from companion.config import CoreConfig
from companion.contracts import ChatMessage, ConversationState
from companion.core.state_extractor import (
    ConversationStateExtractor,
    ResponseFormat,
    contains_health_context_mention,
    extract_cited_titles,
    extract_endearment,
    extract_state,
)


STRUCTURED_ZH_REPLY = """理解结论：你处在高唤醒状态。
机制解释：睡眠剥夺会放大杏仁核反应。
证据来源：[1] "Sleep and Amygdala Reactivity"
可执行动作：今晚先做 3 分钟呼吸训练。
跟进问题：执行后入睡时间有变化吗？
"""

STRUCTURED_EN_REPLY = """Understanding Conclusion: You are in a state of high arousal.
Mechanism Explanation: Sleep loss amplifies amygdala reactivity.
Evidence Sources: [1] "Sleep and Amygdala Reactivity"
Executable Actions: Do 3 minutes of slow breathing tonight.
Follow-up Question: Did it take less time to fall asleep?
"""


@pytest.fixture
def extractor():
    return ConversationStateExtractor()


# ========================
# Turn counting
# ========================

def test_empty_transcript_yields_initial_state(extractor):
    """Empty transcript -> turn_count 0 and every collection empty"""
    state = extractor.extract([])

    assert state == ConversationState.initial()
    assert state.turn_count == 0
    assert state.cited_source_ids == ()
    assert state.used_formats == ()
    assert state.used_endearments == ()
    assert state.established_context == ()
    assert state.user_shared_details == ()
    assert state.last_response_structure is None
    assert state.mentioned_health_context is False


def test_turn_count_counts_user_messages_only(extractor):
    """Assistant messages never count as turns"""
    transcript = [
        ChatMessage.user("你好"),
        ChatMessage.assistant("你好，今天感觉怎么样？"),
        ChatMessage.user("有点焦虑"),
        ChatMessage.assistant("能具体说说吗？"),
        ChatMessage.assistant("比如在什么场景下？"),
        ChatMessage.user("开会的时候"),
    ]
    assert extractor.extract(transcript).turn_count == 3


def test_assistant_only_transcript_has_zero_turns(extractor):
    state = extractor.extract([ChatMessage.assistant("欢迎回来")])
    assert state.turn_count == 0
    assert len(state.used_formats) == 1


def test_dict_messages_accepted(extractor):
    """{'role', 'content'} mappings work like ChatMessage"""
    transcript = [
        {"role": "user", "content": "hello"},
        {"role": "assistant", "content": "hi"},
        {"role": "user", "content": "again"},
    ]
    assert extractor.extract(transcript).turn_count == 2


def test_unknown_roles_are_skipped(extractor):
    """System/tool entries and junk are ignored, not raised"""
    transcript = [
        {"role": "system", "content": "ignored"},
        {"role": "user", "content": "hello"},
        42,
        {"role": "assistant", "content": None},
    ]
    state = extractor.extract(transcript)
    assert state.turn_count == 1
    assert state.used_formats == (ResponseFormat.BRIEF.value,)


def test_non_sequence_transcript_raises(extractor):
    with pytest.raises(TypeError):
        extractor.extract("user: hello")


def test_extract_is_pure(extractor):
    """Same transcript -> equal state on every call"""
    transcript = [ChatMessage.user("我最近睡不好"), ChatMessage.assistant(STRUCTURED_ZH_REPLY)]
    assert extractor.extract(transcript) == extractor.extract(list(transcript))


# ========================
# Structured replies and citations
# ========================

def test_structured_chinese_reply_and_citation(extractor):
    """Five labelled sections -> full_structured, evidence + action detected"""
    transcript = [
        ChatMessage.user("我最近总是心慌，晚上难以入睡。"),
        ChatMessage.assistant(STRUCTURED_ZH_REPLY),
    ]
    state = extractor.extract(transcript)

    assert state.turn_count == 1
    assert state.used_formats[-1] == "full_structured"
    assert "sleep and amygdala reactivity" in state.cited_source_ids
    assert state.last_response_structure.has_evidence is True
    assert state.last_response_structure.has_action_advice is True
    assert state.last_response_structure.has_follow_up is True


def test_structured_english_reply(extractor):
    transcript = [ChatMessage.user("I can't sleep"), ChatMessage.assistant(STRUCTURED_EN_REPLY)]
    state = extractor.extract(transcript)

    assert state.used_formats == ("full_structured",)
    assert state.cited_source_ids == ("sleep and amygdala reactivity",)


def test_full_structured_reply_marks_health_context_mentioned(extractor):
    state = extractor.extract([ChatMessage.user("hi"), ChatMessage.assistant(STRUCTURED_ZH_REPLY)])
    assert state.mentioned_health_context is True


def test_legacy_structured_markers(extractor):
    content = "**关键要点**\n先稳住呼吸\n\n**科学证据**\n慢呼吸可以降低心率"
    assert extractor.detect_response_format(content) == ResponseFormat.FULL_STRUCTURED


def test_cited_titles_deduplicated_across_replies(extractor):
    transcript = [
        ChatMessage.user("q1"),
        ChatMessage.assistant('见 [1] "Paper A" 和 [2] “Paper B”'),
        ChatMessage.user("q2"),
        ChatMessage.assistant('再看 [1] "paper  a"'),
    ]
    state = extractor.extract(transcript)
    assert state.cited_source_ids == ("paper a", "paper b")


def test_extract_cited_titles_quote_styles():
    content = '[1] "Alpha Study"\n[2] “Beta Study”\n[3] 「Gamma Study」'
    assert extract_cited_titles(content) == ["alpha study", "beta study", "gamma study"]


def test_extract_cited_titles_reference_list():
    assert extract_cited_titles("参考文献：[1] Breathing and HRV") == ["breathing and hrv"]
    assert extract_cited_titles("References: [1] Breathing and HRV") == ["breathing and hrv"]


def test_reference_list_with_quoted_title_counts_once():
    assert extract_cited_titles('References: [1] "Paper A" (2020)') == ["paper a"]
    assert extract_cited_titles('参考文献：[1] "Paper A" (2020)') == ["paper a"]


def test_reference_list_year_suffix_stripped():
    assert extract_cited_titles("References: [1] Breathing and HRV (2021)") == ["breathing and hrv"]


def test_single_reference_does_not_inflate_state(extractor):
    transcript = [
        ChatMessage.user("hi"),
        ChatMessage.assistant('References: [1] "Paper A" (2020)'),
    ]
    assert extractor.extract(transcript).cited_source_ids == ("paper a",)


def test_extract_cited_titles_none():
    assert extract_cited_titles("no citations here") == []
    assert extract_cited_titles("") == []


# ========================
# Format taxonomy
# ========================

class TestResponseFormat:
    """detect_response_format() checks formats in declaration order"""

    def setup_method(self):
        self.extractor = ConversationStateExtractor()

    def test_plan_format(self):
        assert self.extractor.detect_response_format("方案1：先散步\n方案2：先呼吸") == ResponseFormat.PLAN_FORMAT
        assert self.extractor.detect_response_format("Option 1: walk. Option 2: breathe.") == ResponseFormat.PLAN_FORMAT

    def test_bullet_points(self):
        content = "你可以试试：\n- 慢呼吸\n- 散步"
        assert self.extractor.detect_response_format(content) == ResponseFormat.BULLET_POINTS

    def test_numbered_list(self):
        content = "步骤如下：\n1. 坐下\n2. 深呼吸"
        assert self.extractor.detect_response_format(content) == ResponseFormat.NUMBERED_LIST

    def test_brief(self):
        assert self.extractor.detect_response_format("好的，我们明天再看。") == ResponseFormat.BRIEF

    def test_empty_is_brief(self):
        assert self.extractor.detect_response_format("   ") == ResponseFormat.BRIEF

    def test_casual_fallback(self):
        content = "Anxiety often spikes in the evening because the day's unresolved tension " * 3
        assert self.extractor.detect_response_format(content) == ResponseFormat.CASUAL

    def test_brief_threshold_is_configurable(self):
        extractor = ConversationStateExtractor(CoreConfig(brief_max_chars=5))
        assert extractor.detect_response_format("好的，我们明天再看。") == ResponseFormat.CASUAL


def test_used_formats_keep_every_reply_in_order(extractor):
    transcript = [
        ChatMessage.user("a"),
        ChatMessage.assistant(STRUCTURED_ZH_REPLY),
        ChatMessage.user("b"),
        ChatMessage.assistant("好的。"),
        ChatMessage.user("c"),
        ChatMessage.assistant("好的。"),
    ]
    state = extractor.extract(transcript)
    assert state.used_formats == ("full_structured", "brief", "brief")


# ========================
# Health context detection
# ========================

def test_health_context_mention_phrases():
    assert contains_health_context_mention("考虑到你的睡眠情况，我们先……")
    assert contains_health_context_mention("Given your evening anxiety, start small.")
    assert not contains_health_context_mention("今天天气不错。")


def test_health_context_mention_by_focus_text():
    assert contains_health_context_mention("睡前焦虑是很常见的。", health_focus="睡前焦虑")
    assert not contains_health_context_mention("今天天气不错。", health_focus="睡前焦虑")


def test_health_context_is_sticky(extractor):
    """Once mentioned, later replies without a mention keep it true"""
    transcript = [
        ChatMessage.user("a"),
        ChatMessage.assistant("考虑到你的睡前焦虑，先做呼吸。"),
        ChatMessage.user("b"),
        ChatMessage.assistant("好的。"),
    ]
    assert extractor.extract(transcript).mentioned_health_context is True


def test_health_focus_argument(extractor):
    transcript = [ChatMessage.user("a"), ChatMessage.assistant("关于工作焦虑，我们可以这样看。")]
    assert extractor.extract(transcript, health_focus="工作焦虑").mentioned_health_context is True
    assert extractor.extract(transcript).mentioned_health_context is False


# ========================
# Endearments and fragments
# ========================

def test_endearments_unique_first_seen(extractor):
    transcript = [
        ChatMessage.user("a"),
        ChatMessage.assistant("朋友，先别急。"),
        ChatMessage.user("b"),
        ChatMessage.assistant("Take it slow, buddy."),
        ChatMessage.user("c"),
        ChatMessage.assistant("朋友，做得好。"),
    ]
    assert extractor.extract(transcript).used_endearments == ("朋友", "buddy")


def test_extract_endearment_word_boundary():
    assert extract_endearment("Dear reader, relax.") == "dear"
    assert extract_endearment("That was endearing.") is None


def test_user_shared_details(extractor):
    transcript = [ChatMessage.user("我最近总是心慌，晚上难以入睡。"), ChatMessage.user("I feel tense at work.")]
    details = extractor.extract(transcript).user_shared_details

    assert any("最近总是心慌" in detail for detail in details)
    assert any("feel tense at work" in detail for detail in details)


def test_established_context_skips_questions_and_labels(extractor):
    state = extractor.extract([ChatMessage.user("a"), ChatMessage.assistant(STRUCTURED_ZH_REPLY)])

    assert "你处在高唤醒状态" in state.established_context
    assert all(not fact.endswith(("?", "？")) for fact in state.established_context)
    assert all("理解结论" not in fact for fact in state.established_context)


def test_established_context_deduplicated(extractor):
    transcript = [
        ChatMessage.user("a"),
        ChatMessage.assistant("慢呼吸可以降低心率。"),
        ChatMessage.user("b"),
        ChatMessage.assistant("慢呼吸可以降低心率。"),
    ]
    assert extractor.extract(transcript).established_context == ("慢呼吸可以降低心率",)


def test_established_context_english_sentences(extractor):
    content = "Slow breathing lowers heart rate. A 7.5 hour sleep window helps. Ready to try?"
    facts = extractor.extract_established_facts(content)

    assert facts == ["Slow breathing lowers heart rate", "A 7.5 hour sleep window helps"]


def test_fragments_outside_length_bounds_dropped():
    extractor = ConversationStateExtractor(CoreConfig(min_fragment_length=10, max_fragment_length=20))
    facts = extractor.extract_established_facts("短句。这是一个长度刚好合适的句子。")
    assert facts == ["这是一个长度刚好合适的句子"]


def test_extract_state_wrapper():
    state = extract_state([ChatMessage.user("hi")])
    assert state.turn_count == 1


def test_every_offered_endearment_is_recognised():
    from companion.core.response_variation import ENDEARMENT_POOL

    for language, pool in ENDEARMENT_POOL.items():
        for term in pool:
            assert extract_endearment(f"慢慢来，{term}。 Take care, {term}.") == term, (language, term)
