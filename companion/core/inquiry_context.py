"""
Inquiry Context - Summarize answered inquiries for the prompt

Turns the caller's inquiry history (newest first) into compact insights
and a localized status summary that the Prompt Builder embeds under
[INQUIRY CONTEXT].
"""

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from companion.contracts import InquiryRecord
from companion.utils.helpers import resolve_language

MAX_RECENT_RESPONSES = 5

SLEEP_PATTERNS = {"under_6": "poor", "over_8": "good"}
STRESS_VALUES = ("low", "medium", "high")
EXERCISE_VALUES = ("none", "light", "moderate", "intense")
MOOD_VALUES = ("bad", "okay", "great")

# Insight value that suggests extra topics
SUGGESTED_TOPICS: Dict[Tuple[str, str], Tuple[str, ...]] = {
    ("sleep", "poor"): ("sleep_optimization", "circadian_rhythm"),
    ("stress", "high"): ("stress_management", "cortisol_regulation", "breathing_exercises"),
    ("exercise", "none"): ("exercise_benefits", "zone2_cardio"),
    ("mood", "bad"): ("mental_health", "neurotransmitters"),
}

SUMMARY_TEXT = {
    "zh": {
        "empty": "暂无最近的问询数据。",
        "header": "用户最近的状态：",
        "sleep": ("睡眠", {"poor": "睡眠不足（少于6小时）", "average": "睡眠一般（6-8小时）", "good": "睡眠充足（8小时以上）"}),
        "stress": ("压力", {"low": "压力较低", "medium": "压力中等", "high": "压力较大"}),
        "exercise": ("运动", {"none": "未运动", "light": "轻度运动", "moderate": "中等强度运动", "intense": "高强度运动"}),
        "mood": ("情绪", {"bad": "心情不佳", "okay": "心情一般", "great": "心情很好"}),
        "rate": "响应率：{rate}%",
        "separator": "：",
    },
    "en": {
        "empty": "No recent inquiry data available.",
        "header": "User's recent status:",
        "sleep": ("Sleep", {"poor": "Poor sleep (less than 6 hours)", "average": "Average sleep (6-8 hours)", "good": "Good sleep (8+ hours)"}),
        "stress": ("Stress", {"low": "Low stress", "medium": "Medium stress", "high": "High stress"}),
        "exercise": ("Exercise", {"none": "No exercise", "light": "Light exercise", "moderate": "Moderate exercise", "intense": "Intense exercise"}),
        "mood": ("Mood", {"bad": "Bad mood", "okay": "Okay mood", "great": "Great mood"}),
        "rate": "Response rate: {rate}%",
        "separator": ": ",
    },
}


@dataclass(frozen=True)
class InquiryInsights:
    sleep: Optional[str] = None
    stress: Optional[str] = None
    exercise: Optional[str] = None
    mood: Optional[str] = None
    last_inquiry_time: Optional[str] = None
    total_responses: int = 0
    response_rate: float = 0.0


@dataclass(frozen=True)
class RecentResponse:
    question: str
    response: str
    timestamp: str
    data_gap: str


@dataclass(frozen=True)
class InquiryContext:
    insights: InquiryInsights = field(default_factory=InquiryInsights)
    recent_responses: Tuple[RecentResponse, ...] = ()
    suggested_topics: Tuple[str, ...] = ()


def _classify(data_gap: str, response: str) -> Optional[Tuple[str, str]]:
    """Map an answer onto (insight, value), None if it carries no insight."""
    if data_gap == "sleep_hours":
        return "sleep", SLEEP_PATTERNS.get(response, "average")
    if data_gap == "stress_level" and response in STRESS_VALUES:
        return "stress", response
    if data_gap == "exercise_duration" and response in EXERCISE_VALUES:
        return "exercise", response
    if data_gap == "mood" and response in MOOD_VALUES:
        return "mood", response
    return None


def build_inquiry_context(records: Sequence[InquiryRecord]) -> InquiryContext:
    """
    Derive insights from inquiry history.

    Records are expected newest first: the first answer per insight wins.
    Unanswered records count toward the response rate only.
    """
    if not records:
        return InquiryContext()

    values: Dict[str, str] = {}
    topics: List[str] = []
    recent: List[RecentResponse] = []
    responded = 0

    for record in records:
        response = (record.user_response or "").strip()
        if not response:
            continue
        responded += 1
        data_gap = record.data_gaps_addressed[0] if record.data_gaps_addressed else "unknown"

        classified = _classify(data_gap, response)
        if classified is not None and classified[0] not in values:
            insight, value = classified
            values[insight] = value
            topics.extend(SUGGESTED_TOPICS.get((insight, value), ()))

        recent.append(RecentResponse(
            question=record.question_text,
            response=response,
            timestamp=record.responded_at or record.created_at,
            data_gap=data_gap,
        ))

    insights = InquiryInsights(
        sleep=values.get("sleep"),
        stress=values.get("stress"),
        exercise=values.get("exercise"),
        mood=values.get("mood"),
        last_inquiry_time=records[0].created_at or None,
        total_responses=responded,
        response_rate=responded / len(records),
    )
    return InquiryContext(
        insights=insights,
        recent_responses=tuple(recent[:MAX_RECENT_RESPONSES]),
        suggested_topics=tuple(dict.fromkeys(topics)),
    )


def generate_inquiry_summary(context: InquiryContext, language: str = "zh") -> str:
    """
    Localized status summary for the prompt.

    Example (en):
        User's recent status:
        - Sleep: Poor sleep (less than 6 hours)
        - Stress: High stress

        Response rate: 67%
    """
    text = SUMMARY_TEXT[resolve_language(language)]
    if not context.recent_responses:
        return text["empty"]

    lines = [text["header"]]
    for insight in ("sleep", "stress", "exercise", "mood"):
        value = getattr(context.insights, insight)
        if value is None:
            continue
        label, names = text[insight]
        lines.append(f"- {label}{text['separator']}{names.get(value, value)}")

    rate = int(round(context.insights.response_rate * 100))
    lines.append("\n" + text["rate"].format(rate=rate))
    return "\n".join(lines)
