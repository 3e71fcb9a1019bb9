"""Effort score (RR) calculation.

RR is a quality signal in [0, 2.0]. It gates workout submissions (RR >= 1.0)
and feeds leaderboard averages; it never multiplies points.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Callable, Dict, Optional

from .errors import ScoreTooLow, ValidationError
from .models import ENTRY_KINDS, ActivityMetrics

MIN_RR = 1.0
MAX_RR = 2.0
NEUTRAL_RR = 1.0


@dataclass(slots=True, frozen=True)
class AgeThresholds:
    min_steps: int = 10000
    max_steps: int = 20000
    base_duration: float = 45.0


DEFAULT_THRESHOLDS = AgeThresholds()


def age_on(date_of_birth: Optional[date], today: date) -> Optional[int]:
    if date_of_birth is None:
        return None
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def thresholds_for_age(age: Optional[int]) -> AgeThresholds:
    if age is None:
        return DEFAULT_THRESHOLDS
    if age > 75:
        return AgeThresholds(min_steps=3000, max_steps=6000, base_duration=30.0)
    if age > 65:
        return AgeThresholds(min_steps=5000, max_steps=10000, base_duration=30.0)
    return DEFAULT_THRESHOLDS


def _clamp(value: float) -> float:
    return max(0.0, min(float(value), MAX_RR))


def _steps_rr(steps: int, th: AgeThresholds) -> float:
    if steps < th.min_steps:
        return 0.0
    capped = min(steps, th.max_steps)
    return 1 + (capped - th.min_steps) / (th.max_steps - th.min_steps)


# A strategy returns None when none of the metrics it understands are present,
# which hands the entry to the generic duration rule and then the neutral RR.
Strategy = Callable[[ActivityMetrics, AgeThresholds], Optional[float]]


def _score_steps(m: ActivityMetrics, th: AgeThresholds) -> Optional[float]:
    return _steps_rr(m.steps, th) if m.steps is not None else None


def _score_golf(m: ActivityMetrics, th: AgeThresholds) -> Optional[float]:
    return m.holes / 9 if m.holes is not None else None


def _duration_or_distance(divisor: float) -> Strategy:
    def _score(m: ActivityMetrics, th: AgeThresholds) -> Optional[float]:
        if m.duration is None and m.distance is None:
            return None
        by_duration = m.duration / th.base_duration if m.duration is not None else 0.0
        by_distance = m.distance / divisor if m.distance is not None else 0.0
        return max(by_duration, by_distance)

    return _score


def _score_duration(m: ActivityMetrics, th: AgeThresholds) -> Optional[float]:
    return m.duration / th.base_duration if m.duration is not None else None


STRATEGIES: Dict[str, Strategy] = {
    "steps": _score_steps,
    "golf": _score_golf,
    "run": _duration_or_distance(4),
    "cardio": _duration_or_distance(4),
    "cycling": _duration_or_distance(10),
}


def validate_metrics(metrics: ActivityMetrics) -> None:
    for name in ("duration", "distance", "steps", "holes"):
        v = getattr(metrics, name)
        if v is None:
            continue
        if isinstance(v, bool) or not isinstance(v, (int, float)) or not math.isfinite(v):
            raise ValidationError(f"{name} must be a number")
        if v < 0:
            raise ValidationError(f"{name} must be >= 0")


def compute_rr(
    kind: str,
    subtype: Optional[str],
    metrics: Optional[ActivityMetrics],
    *,
    age: Optional[int] = None,
    unmeasured: bool = False,
) -> float:
    """RR for one entry, dispatched on the activity subtype."""
    if kind not in ENTRY_KINDS:
        raise ValidationError("type must be 'workout' or 'rest'")
    if kind == "rest":
        return NEUTRAL_RR
    if unmeasured:
        return NEUTRAL_RR

    metrics = metrics or ActivityMetrics()
    validate_metrics(metrics)
    th = thresholds_for_age(age)

    strategy = STRATEGIES.get((subtype or "").strip().lower())
    score = strategy(metrics, th) if strategy else None
    if score is None:
        score = _score_duration(metrics, th)
    if score is None:
        return NEUTRAL_RR
    return _clamp(score)


def preview_rr(
    kind: str,
    subtype: Optional[str],
    metrics: Optional[ActivityMetrics],
    *,
    age: Optional[int] = None,
    unmeasured: bool = False,
) -> dict:
    """Best RR across every metric present, so a member qualifies via the strongest one."""
    if kind not in ENTRY_KINDS:
        raise ValidationError("type must be 'workout' or 'rest'")

    if kind == "rest" or unmeasured:
        rr = NEUTRAL_RR
    else:
        metrics = metrics or ActivityMetrics()
        validate_metrics(metrics)
        th = thresholds_for_age(age)
        candidates = []
        if metrics.steps is not None:
            candidates.append(_steps_rr(metrics.steps, th))
        if metrics.holes is not None:
            candidates.append(metrics.holes / 9)
        if metrics.duration:
            candidates.append(metrics.duration / th.base_duration)
        if metrics.distance:
            divisor = 10 if (subtype or "").strip().lower() == "cycling" else 4
            candidates.append(metrics.distance / divisor)
        rr = _clamp(max(candidates)) if candidates else NEUTRAL_RR

    return {
        "rr_value": rr,
        "can_submit": kind == "rest" or rr >= MIN_RR,
        "min_rr": MIN_RR,
        "max_rr": MAX_RR,
    }


def ensure_submittable(kind: str, rr_value: float) -> None:
    if kind == "workout" and rr_value < MIN_RR:
        raise ScoreTooLow(rr_value, MIN_RR)
