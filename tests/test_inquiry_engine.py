"""
Unit tests for the Inquiry Engine and its template registry
"""

import sys
import os
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from datetime import datetime, timedelta, timezone

import pytest

from companion.config import CoreConfig
from companion.contracts import DataGap, Importance
from companion.core.inquiry_engine import InquiryEngine
from companion.utils.inquiry_templates import INQUIRY_TEMPLATES, REQUIRED_FIELDS


NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def engine():
    return InquiryEngine(clock=lambda: NOW)


def fresh_data(**overrides):
    """Every required field updated one hour ago"""
    data = {definition.field: (NOW - timedelta(hours=1)).isoformat() for definition in REQUIRED_FIELDS}
    data.update(overrides)
    return data


# ========================
# Gap detection
# ========================

def test_empty_data_yields_one_gap_per_field(engine):
    gaps = engine.identify_data_gaps({})
    assert [gap.field for gap in gaps] == [definition.field for definition in REQUIRED_FIELDS]
    assert all(gap.last_updated_at is None for gap in gaps)


def test_fresh_data_yields_no_gaps(engine):
    assert engine.identify_data_gaps(fresh_data()) == []


def test_stale_field_is_a_gap(engine):
    data = fresh_data(sleep_hours=(NOW - timedelta(hours=30)).isoformat())
    gaps = engine.identify_data_gaps(data)

    assert [gap.field for gap in gaps] == ["sleep_hours"]
    assert gaps[0].last_updated_at == NOW - timedelta(hours=30)


def test_exactly_at_threshold_is_fresh(engine):
    data = fresh_data(mood=NOW - timedelta(hours=24))
    assert engine.identify_data_gaps(data) == []


def test_custom_threshold(engine):
    data = fresh_data(mood=NOW - timedelta(hours=3))
    assert [gap.field for gap in engine.identify_data_gaps(data, stale_threshold_hours=2)] == ["mood"]


def test_configured_threshold():
    engine = InquiryEngine(CoreConfig(stale_threshold_hours=2), clock=lambda: NOW)
    data = fresh_data(mood=NOW - timedelta(hours=3))
    assert [gap.field for gap in engine.identify_data_gaps(data)] == ["mood"]


def test_unparseable_timestamp_counts_as_stale(engine):
    gaps = engine.identify_data_gaps(fresh_data(stress_level="yesterday-ish"))
    assert [gap.field for gap in gaps] == ["stress_level"]


def test_value_timestamp_pairs_and_dates(engine):
    data = fresh_data(
        sleep_hours=(7.5, "2024-05-01T10:00:00Z"),
        mood={"value": "okay", "timestamp": "2024-04-01"},
    )
    assert [gap.field for gap in engine.identify_data_gaps(data)] == ["mood"]


def test_unknown_fields_ignored(engine):
    assert engine.identify_data_gaps(fresh_data(favourite_colour=None)) == []


def test_english_descriptions(engine):
    gaps = engine.identify_data_gaps({}, language="en")
    assert gaps[0].description == "Sleep duration"


def test_negative_threshold_raises(engine):
    with pytest.raises(ValueError):
        engine.identify_data_gaps({}, stale_threshold_hours=-1)


def test_non_mapping_raises(engine):
    with pytest.raises(TypeError):
        engine.identify_data_gaps(["sleep_hours"])


# ========================
# Prioritization
# ========================

def test_high_gaps_first(engine):
    prioritized = engine.prioritize_data_gaps(engine.identify_data_gaps({}))
    assert prioritized[0].importance == Importance.HIGH

    ranks = [gap.importance.rank for gap in prioritized]
    assert ranks == sorted(ranks)


def test_prioritize_is_stable():
    gaps = [
        DataGap("a", Importance.LOW, ""),
        DataGap("b", Importance.HIGH, ""),
        DataGap("c", Importance.LOW, ""),
        DataGap("d", Importance.HIGH, ""),
        DataGap("e", Importance.MEDIUM, ""),
    ]
    assert [gap.field for gap in InquiryEngine.prioritize_data_gaps(gaps)] == ["b", "d", "e", "a", "c"]


# ========================
# Templates
# ========================

def test_meal_quality_template(engine):
    gap = DataGap(field="meal_quality", importance=Importance.MEDIUM, description="焦虑触发场景数据")
    question = engine.inquiry_template(gap, "zh")

    assert question is not None
    assert "焦虑触发点" in question.question_text
    assert any("工作/学习压力" in option.label for option in question.options)
    assert question.data_gaps_addressed == ("meal_quality",)


def test_template_is_single_language(engine):
    gap = DataGap("stress_level", Importance.HIGH, "")
    question = engine.inquiry_template(gap, "en")

    assert question.question_text == "Are you feeling stressed today?"
    assert all(option.label.isascii() for option in question.options)


def test_free_text_template_has_no_options(engine):
    question = engine.inquiry_template(DataGap("body_signals", Importance.LOW, ""), "zh")
    assert question.question_type == "open_text"
    assert question.options is None


def test_field_without_template(engine):
    assert engine.inquiry_template(DataGap("hrv", Importance.LOW, ""), "zh") is None
    assert engine.inquiry_template(DataGap("unknown_field", Importance.LOW, ""), "zh") is None


def test_template_requires_data_gap(engine):
    with pytest.raises(TypeError):
        engine.inquiry_template("sleep_hours", "zh")


def test_every_template_has_both_languages():
    for field, template in INQUIRY_TEMPLATES.items():
        assert set(template.text) == {"zh", "en"}, field
        for _, labels in template.options or ():
            assert set(labels) == {"zh", "en"}, field


# ========================
# next_inquiry
# ========================

def test_next_inquiry_picks_highest_priority(engine):
    question = engine.next_inquiry({}, language="zh")
    assert question.id == "inquiry_sleep"


def test_next_inquiry_skips_untemplated_gaps(engine):
    data = fresh_data()
    del data["hrv"]
    assert engine.next_inquiry(data) is None

    del data["body_signals"]
    assert engine.next_inquiry(data).id == "inquiry_body_signals"


def test_next_inquiry_none_when_fresh(engine):
    assert engine.next_inquiry(fresh_data()) is None
