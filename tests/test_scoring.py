from datetime import date

import pytest

from fitleague.errors import ScoreTooLow, ValidationError
from fitleague.models import ActivityMetrics
from fitleague.scoring import age_on, compute_rr, ensure_submittable, preview_rr, thresholds_for_age


def test_rest_is_always_neutral():
    assert compute_rr("rest", None, ActivityMetrics(steps=0)) == 1.0
    assert compute_rr("rest", "run", None) == 1.0


def test_run_by_duration_for_thirty_year_old():
    rr = compute_rr("workout", "run", ActivityMetrics(duration=50), age=30)
    assert rr == pytest.approx(50 / 45)
    ensure_submittable("workout", rr)


def test_steps_below_threshold_scores_zero_and_is_refused():
    rr = compute_rr("workout", "steps", ActivityMetrics(steps=4000))
    assert rr == 0.0
    with pytest.raises(ScoreTooLow):
        ensure_submittable("workout", rr)


@pytest.mark.parametrize(
    "subtype, metrics, expected",
    [
        ("steps", ActivityMetrics(steps=10000), 1.0),
        ("steps", ActivityMetrics(steps=15000), 1.5),
        ("steps", ActivityMetrics(steps=40000), 2.0),
        ("golf", ActivityMetrics(holes=9), 1.0),
        ("golf", ActivityMetrics(holes=27), 2.0),
        ("run", ActivityMetrics(duration=10, distance=6), 1.5),
        ("cycling", ActivityMetrics(distance=15), 1.5),
        ("yoga", ActivityMetrics(duration=90), 2.0),
        ("yoga", ActivityMetrics(), 1.0),
        ("run", ActivityMetrics(), 1.0),
    ],
)
def test_strategy_table(subtype, metrics, expected):
    assert compute_rr("workout", subtype, metrics) == pytest.approx(expected)


def test_strategy_without_its_metric_falls_back_to_duration():
    assert compute_rr("workout", "golf", ActivityMetrics(duration=45)) == pytest.approx(1.0)


@pytest.mark.parametrize("steps", [0, 9999, 10000, 19999, 20000, 10**7])
@pytest.mark.parametrize("duration", [None, 0, 22.5, 300])
def test_score_stays_within_bounds(steps, duration):
    rr = compute_rr("workout", "steps", ActivityMetrics(steps=steps, duration=duration))
    assert 0.0 <= rr <= 2.0


def test_unmeasured_activity_is_neutral():
    assert compute_rr("workout", "meditation", ActivityMetrics(steps=1), unmeasured=True) == 1.0


def test_age_thresholds():
    assert thresholds_for_age(None).min_steps == 10000
    assert thresholds_for_age(66).min_steps == 5000
    assert thresholds_for_age(76).max_steps == 6000
    assert compute_rr("workout", "steps", ActivityMetrics(steps=5000), age=70) == 1.0
    assert compute_rr("workout", "walk", ActivityMetrics(duration=30), age=80) == 1.0


def test_age_on_respects_birthday_not_reached():
    assert age_on(date(1960, 6, 1), date(2024, 5, 31)) == 63
    assert age_on(date(1960, 6, 1), date(2024, 6, 1)) == 64
    assert age_on(None, date(2024, 6, 1)) is None


@pytest.mark.parametrize(
    "metrics",
    [ActivityMetrics(duration=-1), ActivityMetrics(steps=float("nan")), ActivityMetrics(distance=float("inf"))],
)
def test_invalid_metrics(metrics):
    with pytest.raises(ValidationError):
        compute_rr("workout", "run", metrics)


def test_unknown_kind():
    with pytest.raises(ValidationError):
        compute_rr("nap", None, None)


def test_preview_takes_best_metric():
    p = preview_rr("workout", "walk", ActivityMetrics(steps=4000, duration=60))
    assert p["rr_value"] == pytest.approx(60 / 45)
    assert p["can_submit"] is True
    assert (p["min_rr"], p["max_rr"]) == (1.0, 2.0)


def test_preview_cycling_distance_divisor():
    assert preview_rr("workout", "cycling", ActivityMetrics(distance=5))["rr_value"] == pytest.approx(0.5)
    assert preview_rr("workout", "run", ActivityMetrics(distance=5))["rr_value"] == pytest.approx(1.25)


def test_preview_without_metrics():
    p = preview_rr("workout", "run", ActivityMetrics())
    assert p["rr_value"] == 1.0
    assert p["can_submit"] is True


def test_preview_low_score_cannot_submit():
    assert preview_rr("workout", "steps", ActivityMetrics(steps=2000))["can_submit"] is False
