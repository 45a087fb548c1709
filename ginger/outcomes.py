from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum

from .errors import InputProtocolError
from .steps import StepType


class Outcome(str, Enum):
    # Declaration order is the report order.
    HIT = "HIT"
    MISS = "MISS"
    FALSE_ALARM = "FALSE_ALARM"
    CORRECT_REJECTION = "CORRECT_REJECTION"


class Trigger(str, Enum):
    INPUT = "INPUT"
    TIMEOUT = "TIMEOUT"


@dataclass(frozen=True, slots=True)
class StepOutcome:
    stage_index: int
    step_index: int
    step_type: StepType
    outcome: Outcome
    response_time_ms: float | None  # None means no response
    timestamp_ms: float


_TABLE: dict[tuple[StepType, Trigger], Outcome | None] = {
    (StepType.GO, Trigger.INPUT): Outcome.HIT,
    (StepType.GO, Trigger.TIMEOUT): Outcome.MISS,
    (StepType.NOGO, Trigger.INPUT): Outcome.FALSE_ALARM,
    (StepType.NOGO, Trigger.TIMEOUT): Outcome.CORRECT_REJECTION,
    # BLOCK steps are not response-eligible.
    (StepType.BLOCK, Trigger.INPUT): None,
    (StepType.BLOCK, Trigger.TIMEOUT): Outcome.CORRECT_REJECTION,
}


def classify(step_type: StepType, trigger: Trigger) -> Outcome | None:
    """Map a step type and what ended it to a signal-detection outcome.

    Returns None for input during a BLOCK step. Anything outside the table is
    a programming error.
    """

    try:
        return _TABLE[(StepType(step_type), Trigger(trigger))]
    except (KeyError, ValueError) as exc:
        raise InputProtocolError(f"unclassifiable step/trigger: {step_type!r}/{trigger!r}") from exc


def response_time_ms(event_ms: float, step_start_ms: float) -> float:
    """Response time relative to the step's scheduled start, to 0.1 ms."""

    return round_half_up(float(event_ms - step_start_ms) * 10.0) / 10.0


def percent(count: int, total: int) -> int:
    if total == 0:
        return 0
    return round_half_up(100.0 * count / total)


def round_half_up(x: float) -> int:
    # Matches the usual "0.5 rounds up" convention instead of banker's rounding.
    return int(math.floor(x + 0.5))
