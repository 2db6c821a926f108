"""
Inquiry Engine - Data-gap detection and templated follow-up questions

Responsibilities:
- Compare the caller's freshness map against the required-field registry
- Rank gaps by importance (stable)
- Render a localized question template for a gap
- Pick the first askable question across ranked gaps

NOT responsible for:
- Storing answers (caller persistence)
- Deciding when to ask (runs once per session or on demand)

Design principles:
- Registry and templates are fixed tables (utils.inquiry_templates)
- "No template for this field" is not an error: returns None
- Clock is injectable for deterministic tests
"""

import logging
from datetime import datetime, timedelta
from typing import Any, Callable, List, Mapping, Optional, Sequence

from companion.config import CoreConfig
from companion.contracts import DataGap, InquiryQuestion
from companion.utils.helpers import ensure_utc, parse_timestamp, resolve_language, utc_now
from companion.utils.inquiry_templates import REQUIRED_FIELDS, get_template

logger = logging.getLogger(__name__)


class InquiryEngine:
    """
    Detect missing/stale user data and phrase the next question.

    Stateless apart from configuration and the clock.
    """

    def __init__(
        self,
        config: Optional[CoreConfig] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.config = config or CoreConfig()
        self.clock = clock
        logger.info(f"Inquiry Engine initialized ({len(REQUIRED_FIELDS)} required fields)")

    def identify_data_gaps(
        self,
        recent_data: Mapping[str, Any],
        stale_threshold_hours: Optional[float] = None,
        now: Optional[datetime] = None,
        language: str = "zh",
    ) -> List[DataGap]:
        """
        Report every required field that is absent or stale.

        Args:
            recent_data: field -> last update (datetime, ISO-8601 string,
                'YYYY-MM-DD', or a (value, timestamp) pair). Fields not in
                the registry are ignored.
            stale_threshold_hours: Age beyond which a field is stale
                (default: config.stale_threshold_hours)
            now: Reference time (default: the engine clock)
            language: Language of the gap descriptions

        Returns:
            Gaps in registry order. Absent fields are always gaps;
            unparseable timestamps count as stale.

        Raises:
            TypeError: If recent_data is not a mapping
            ValueError: If stale_threshold_hours is negative
        """
        if not isinstance(recent_data, Mapping):
            raise TypeError(f"recent_data must be a mapping, got {type(recent_data).__name__}")

        if stale_threshold_hours is None:
            stale_threshold_hours = self.config.stale_threshold_hours
        if stale_threshold_hours < 0:
            raise ValueError(f"stale_threshold_hours must be >= 0, got {stale_threshold_hours}")

        lang = resolve_language(language, self.config.default_language)
        reference = ensure_utc(now) if now is not None else self.clock()
        threshold = timedelta(hours=stale_threshold_hours)

        gaps = []
        for definition in REQUIRED_FIELDS:
            description = definition.description[lang]

            if definition.field not in recent_data:
                gaps.append(DataGap(definition.field, definition.importance, description))
                continue

            updated_at = parse_timestamp(_timestamp_of(recent_data[definition.field]))
            if updated_at is None or reference - updated_at > threshold:
                gaps.append(DataGap(definition.field, definition.importance, description, updated_at))

        logger.debug(f"Identified {len(gaps)} data gap(s)")
        return gaps

    @staticmethod
    def prioritize_data_gaps(gaps: Sequence[DataGap]) -> List[DataGap]:
        """
        Stable sort: HIGH before MEDIUM before LOW, ties keep input order.
        """
        return sorted(gaps, key=lambda gap: gap.importance.rank)

    def inquiry_template(self, gap: DataGap, language: str = "zh") -> Optional[InquiryQuestion]:
        """
        Render the question for a gap.

        Returns:
            InquiryQuestion fully in the resolved language, or None if the
            field has no template (not user-askable)

        Raises:
            TypeError: If gap is not a DataGap
        """
        if not isinstance(gap, DataGap):
            raise TypeError(f"gap must be DataGap, got {type(gap).__name__}")

        template = get_template(gap.field)
        if template is None:
            return None
        return template.render(gap.field, resolve_language(language, self.config.default_language))

    def next_inquiry(
        self,
        recent_data: Mapping[str, Any],
        language: str = "zh",
        stale_threshold_hours: Optional[float] = None,
        now: Optional[datetime] = None,
    ) -> Optional[InquiryQuestion]:
        """
        First askable question across prioritized gaps, or None when
        nothing is missing or no gap has a template.
        """
        gaps = self.identify_data_gaps(recent_data, stale_threshold_hours, now, language)
        for gap in self.prioritize_data_gaps(gaps):
            question = self.inquiry_template(gap, language)
            if question is not None:
                return question
        return None


def _timestamp_of(entry: Any) -> Any:
    """Accept a bare timestamp or a (value, timestamp) pair."""
    if isinstance(entry, (tuple, list)) and len(entry) == 2:
        return entry[1]
    if isinstance(entry, Mapping):
        return entry.get("timestamp") or entry.get("last_updated_at")
    return entry
