"""
Inquiry Template Registry

Defines the required-field registry and the per-field question templates
used by the Inquiry Engine.

Registry:
- REQUIRED_FIELDS lists every profile/metric field the core expects to
  be fresh, in declaration order, with its baseline importance and a
  localized description.

Templates:
- INQUIRY_TEMPLATES maps field -> template. Not every field is
  user-askable: wearable-measured fields (e.g. 'hrv') have no template
  and render to None.
- Every text carries a column per supported language; rendering picks
  one column, so output is never mixed-language.
- Multiple-choice templates carry options; free-text templates carry
  options=None.
"""

from dataclasses import dataclass
from typing import Dict, Optional, Tuple

from companion.contracts import Importance, InquiryOption, InquiryQuestion


@dataclass(frozen=True)
class FieldDefinition:
    """Registry entry for a required field."""
    field: str
    importance: Importance
    description: Dict[str, str]


@dataclass(frozen=True)
class InquiryTemplate:
    """
    Unrendered question for one field.

    options: tuple of (value, {language: label}); None for free text.
    """
    id: str
    question_type: str
    priority: Importance
    text: Dict[str, str]
    options: Optional[Tuple[Tuple[str, Dict[str, str]], ...]] = None

    def render(self, field: str, language: str) -> InquiryQuestion:
        options = None
        if self.options is not None:
            options = tuple(
                InquiryOption(label=labels[language], value=value)
                for value, labels in self.options
            )
        return InquiryQuestion(
            id=self.id,
            question_text=self.text[language],
            question_type=self.question_type,
            priority=self.priority,
            data_gaps_addressed=(field,),
            options=options,
        )


REQUIRED_FIELDS: Tuple[FieldDefinition, ...] = (
    FieldDefinition("sleep_hours", Importance.HIGH,
                    {"zh": "睡眠时长数据", "en": "Sleep duration"}),
    FieldDefinition("stress_level", Importance.HIGH,
                    {"zh": "焦虑紧张水平数据", "en": "Anxiety / tension level"}),
    FieldDefinition("exercise_duration", Importance.MEDIUM,
                    {"zh": "运动时长数据", "en": "Exercise duration"}),
    FieldDefinition("meal_quality", Importance.MEDIUM,
                    {"zh": "焦虑触发场景数据", "en": "Anxiety trigger context"}),
    FieldDefinition("mood", Importance.LOW,
                    {"zh": "情绪状态数据", "en": "Mood"}),
    FieldDefinition("water_intake", Importance.LOW,
                    {"zh": "恢复动作执行数据", "en": "Recovery action follow-through"}),
    FieldDefinition("body_signals", Importance.LOW,
                    {"zh": "身体紧张信号数据", "en": "Bodily tension signals"}),
    # Measured by the wearable, never asked
    FieldDefinition("hrv", Importance.LOW,
                    {"zh": "心率变异性数据", "en": "Heart rate variability"}),
)


INQUIRY_TEMPLATES: Dict[str, InquiryTemplate] = {
    "sleep_hours": InquiryTemplate(
        id="inquiry_sleep",
        question_type="diagnostic",
        priority=Importance.HIGH,
        text={
            "zh": "昨晚睡得怎么样？大概睡了几个小时？",
            "en": "How did you sleep last night? About how many hours?",
        },
        options=(
            ("under_6", {"zh": "不到6小时", "en": "Less than 6 hours"}),
            ("6_7", {"zh": "6-7小时", "en": "6-7 hours"}),
            ("7_8", {"zh": "7-8小时", "en": "7-8 hours"}),
            ("over_8", {"zh": "8小时以上", "en": "More than 8 hours"}),
        ),
    ),
    "stress_level": InquiryTemplate(
        id="inquiry_stress",
        question_type="diagnostic",
        priority=Importance.HIGH,
        text={
            "zh": "今天感觉压力大吗？",
            "en": "Are you feeling stressed today?",
        },
        options=(
            ("low", {"zh": "很轻松", "en": "Very relaxed"}),
            ("medium", {"zh": "有点紧张", "en": "A bit tense"}),
            ("high", {"zh": "压力很大", "en": "Very stressed"}),
        ),
    ),
    "exercise_duration": InquiryTemplate(
        id="inquiry_exercise",
        question_type="diagnostic",
        priority=Importance.MEDIUM,
        text={
            "zh": "今天有运动吗？",
            "en": "Did you exercise today?",
        },
        options=(
            ("none", {"zh": "没有", "en": "No"}),
            ("light", {"zh": "轻度活动", "en": "Light activity"}),
            ("moderate", {"zh": "中等强度", "en": "Moderate intensity"}),
            ("intense", {"zh": "高强度", "en": "High intensity"}),
        ),
    ),
    "meal_quality": InquiryTemplate(
        id="inquiry_meal",
        question_type="diagnostic",
        priority=Importance.MEDIUM,
        text={
            "zh": "今天最大的焦虑触发点是什么？",
            "en": "What was the biggest anxiety trigger today?",
        },
        options=(
            ("work", {"zh": "工作/学习压力", "en": "Work / study pressure"}),
            ("social", {"zh": "社交/关系紧张", "en": "Social / relationship tension"}),
            ("unknown", {"zh": "暂不明确", "en": "No clear trigger yet"}),
        ),
    ),
    "mood": InquiryTemplate(
        id="inquiry_mood",
        question_type="diagnostic",
        priority=Importance.LOW,
        text={
            "zh": "现在心情如何？",
            "en": "How are you feeling right now?",
        },
        options=(
            ("great", {"zh": "很好", "en": "Great"}),
            ("okay", {"zh": "还行", "en": "Okay"}),
            ("bad", {"zh": "不太好", "en": "Not good"}),
        ),
    ),
    "water_intake": InquiryTemplate(
        id="inquiry_water",
        question_type="diagnostic",
        priority=Importance.LOW,
        text={
            "zh": "今天你做过恢复动作吗？",
            "en": "Have you done any recovery action today?",
        },
        options=(
            ("none", {"zh": "还没有", "en": "Not yet"}),
            ("breathing", {"zh": "呼吸/正念", "en": "Breathing / mindfulness"}),
            ("movement", {"zh": "散步/拉伸", "en": "Walk / stretching"}),
        ),
    ),
    "body_signals": InquiryTemplate(
        id="inquiry_body_signals",
        question_type="open_text",
        priority=Importance.LOW,
        text={
            "zh": "今天身体有没有出现紧张信号（心跳快、胸闷、肩颈紧）？简单描述一下。",
            "en": "Did your body show any tension signals today (racing heart, tight chest, stiff shoulders)? Describe briefly.",
        },
    ),
}


def get_field_definition(field: str) -> Optional[FieldDefinition]:
    for definition in REQUIRED_FIELDS:
        if definition.field == field:
            return definition
    return None


def get_template(field: str) -> Optional[InquiryTemplate]:
    """Template for field, or None if the field is not user-askable."""
    return INQUIRY_TEMPLATES.get(field)
