"""
Loop Status - Macro anti-anxiety loop phase tracking

Invariants:
- Exactly one step is current at any time
- Steps only move forward along LOOP_STEP_ORDER
- Transitions are explicit (advance/block); nothing advances implicitly
- Advancing at the terminal step is a no-op, never an error
- Blocking records a reason but never changes the current step

Design:
- LoopStep is a string-based enum for JSON serialization
- LoopStatus is immutable; transitions return a new LoopStatus
- updated_at is rendered as ISO-8601 UTC ('1970-01-01T00:00:00Z')
- Persistence is the caller's job (to_dict/from_dict)

This tracks the multi-session loop, independent of per-message chat state.
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Tuple

from companion.utils.helpers import format_iso8601, utc_now

logger = logging.getLogger(__name__)


class LoopStep(str, Enum):
    """
    Phases of the anti-anxiety loop.

    PROACTIVE_INQUIRY:
        Max asks about missing/stale data (Inquiry Engine).
    DAILY_CALIBRATION:
        User answers calibrate today's state.
    SCIENTIFIC_EXPLANATION:
        Max explains the mechanism with evidence.
    ACTION_CLOSURE:
        User executes and reviews the suggested actions.
    CLOSED:
        Terminal. Loop instance finished.
    """
    PROACTIVE_INQUIRY = "proactiveInquiry"
    DAILY_CALIBRATION = "dailyCalibration"
    SCIENTIFIC_EXPLANATION = "scientificExplanation"
    ACTION_CLOSURE = "actionClosure"
    CLOSED = "closed"

    @property
    def index(self) -> int:
        return LOOP_STEP_ORDER.index(self)

    @property
    def is_terminal(self) -> bool:
        return self is LOOP_STEP_ORDER[-1]

    def title(self, language: str = "zh") -> str:
        return STEP_TITLES[self]["en" if language == "en" else "zh"]


LOOP_STEP_ORDER: Tuple[LoopStep, ...] = (
    LoopStep.PROACTIVE_INQUIRY,
    LoopStep.DAILY_CALIBRATION,
    LoopStep.SCIENTIFIC_EXPLANATION,
    LoopStep.ACTION_CLOSURE,
    LoopStep.CLOSED,
)

STEP_TITLES: Dict[LoopStep, Dict[str, str]] = {
    LoopStep.PROACTIVE_INQUIRY: {"zh": "Max 主动问询", "en": "Max Proactive Inquiry"},
    LoopStep.DAILY_CALIBRATION: {"zh": "每日校准", "en": "Daily Calibration"},
    LoopStep.SCIENTIFIC_EXPLANATION: {"zh": "科学解释", "en": "Scientific Explanation"},
    LoopStep.ACTION_CLOSURE: {"zh": "行动闭环", "en": "Action Closure"},
    LoopStep.CLOSED: {"zh": "已完成", "en": "Closed"},
}

# Single source of truth for valid step strings
VALID_STEPS = {step.value for step in LoopStep}


@dataclass(frozen=True)
class LoopStatus:
    """
    State of one user loop instance.

    Attributes:
        current_step: Step in progress
        completed_steps: Steps left behind, in the order they were completed
        blocked_reasons: Reasons recorded by block(), oldest first
        updated_at: ISO-8601 UTC rendering of the last transition
    """
    current_step: LoopStep
    completed_steps: Tuple[LoopStep, ...]
    blocked_reasons: Tuple[str, ...]
    updated_at: str

    @classmethod
    def initial(cls, now: Optional[datetime] = None) -> "LoopStatus":
        """
        Fresh loop at PROACTIVE_INQUIRY.

        Args:
            now: Creation time (defaults to current UTC time)

        Example:
            status = LoopStatus.initial(datetime(1970, 1, 1))
            # status.updated_at == '1970-01-01T00:00:00Z'
        """
        return cls(
            current_step=LoopStep.PROACTIVE_INQUIRY,
            completed_steps=(),
            blocked_reasons=(),
            updated_at=format_iso8601(now or utc_now()),
        )

    @property
    def is_closed(self) -> bool:
        return self.current_step.is_terminal

    def advance(self, to: Optional[LoopStep] = None, now: Optional[datetime] = None) -> "LoopStatus":
        """
        Move forward to step `to` (default: the next step).

        The previous step is appended to completed_steps; steps skipped
        over are not marked completed.

        Args:
            to: Target step, must come after the current step
            now: Transition time (defaults to current UTC time)

        Returns:
            New LoopStatus, or self unchanged if already at the terminal step

        Raises:
            TypeError: If `to` is not a LoopStep
            ValueError: If `to` is not after the current step
        """
        if self.current_step.is_terminal:
            logger.debug("Loop already closed, advance ignored")
            return self

        if to is None:
            to = LOOP_STEP_ORDER[self.current_step.index + 1]
        elif not isinstance(to, LoopStep):
            raise TypeError(f"to must be LoopStep, got {type(to).__name__}")

        if to.index <= self.current_step.index:
            raise ValueError(
                f"Cannot move loop from '{self.current_step.value}' back to '{to.value}'"
            )

        logger.info(f"Loop advanced: {self.current_step.value} -> {to.value}")
        return replace(
            self,
            current_step=to,
            completed_steps=self.completed_steps + (self.current_step,),
            updated_at=format_iso8601(now or utc_now()),
        )

    def block(self, reason: str, now: Optional[datetime] = None) -> "LoopStatus":
        """
        Record why the loop cannot progress. current_step is unchanged.

        Raises:
            ValueError: If reason is empty or whitespace-only
        """
        if not isinstance(reason, str) or not reason.strip():
            raise ValueError("block reason must be a non-empty string")

        logger.info(f"Loop blocked at {self.current_step.value}: {reason.strip()}")
        return replace(
            self,
            blocked_reasons=self.blocked_reasons + (reason.strip(),),
            updated_at=format_iso8601(now or utc_now()),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "currentStep": self.current_step.value,
            "completedSteps": [step.value for step in self.completed_steps],
            "blockedReasons": list(self.blocked_reasons),
            "updatedAt": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LoopStatus":
        """
        Restore a persisted status.

        Raises:
            ValueError: On unknown step strings or missing keys (fail-fast on corruption)
        """
        try:
            current = data["currentStep"]
            updated_at = data["updatedAt"]
        except KeyError as e:
            raise ValueError(f"Loop status missing key: {e}") from e

        steps = [current, *data.get("completedSteps", [])]
        invalid = [step for step in steps if step not in VALID_STEPS]
        if invalid:
            raise ValueError(f"Invalid loop steps: {invalid}. Must be one of: {sorted(VALID_STEPS)}")

        return cls(
            current_step=LoopStep(current),
            completed_steps=tuple(LoopStep(step) for step in data.get("completedSteps", [])),
            blocked_reasons=tuple(str(reason) for reason in data.get("blockedReasons", [])),
            updated_at=str(updated_at),
        )
