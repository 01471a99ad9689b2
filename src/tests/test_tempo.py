"""
Tests for tempo planning.
"""

import pytest

from src.dubsync.tempo import atempo_filter, plan_tempo


def _in_bounds(plan, lo=0.5, hi=2.0):
    return all(lo <= f <= hi for f in plan.factors)


def test_matching_duration_needs_no_plan():
    plan = plan_tempo(10.0, 10.0)

    assert plan.is_empty
    assert plan.product == 1.0
    assert not plan.clamped


def test_imperceptible_drift_is_ignored():
    """1.5% off stays within the default 2% ratio epsilon."""
    assert plan_tempo(10.0, 10.15).is_empty


def test_single_step_slowdown():
    plan = plan_tempo(60.0, 90.0)

    assert len(plan.factors) == 1
    assert plan.factors[0] == pytest.approx(0.6667, abs=1e-3)
    assert plan.required_ratio == pytest.approx(1.5)


def test_single_step_speedup():
    plan = plan_tempo(30.0, 20.0)

    assert plan.factors == pytest.approx((1.5,))


def test_chained_slowdown_stays_in_bounds():
    """A 5x slowdown needs more than one atempo step."""
    plan = plan_tempo(100.0, 500.0, max_total_stretch=5.0)

    assert len(plan.factors) >= 2
    assert _in_bounds(plan)
    assert plan.factors == pytest.approx((0.5, 0.5, 0.8))
    assert plan.product == pytest.approx(0.2)
    assert not plan.clamped


def test_five_fold_slowdown_is_clamped_by_default():
    plan = plan_tempo(100.0, 500.0)

    assert plan.clamped
    assert plan.factors == pytest.approx((0.5, 0.5))


def test_stretch_at_the_limit_is_not_clamped():
    plan = plan_tempo(100.0, 400.0, max_total_stretch=4.0)

    assert not plan.clamped
    assert plan.product == pytest.approx(0.25)


@pytest.mark.parametrize("slow_down", [True, False])
def test_stretch_never_shrinks_as_the_request_grows(slow_down):
    """A bigger requested change never yields a smaller applied change."""
    last = 1.0
    for k in range(10, 120):
        fold = k / 10.0
        if slow_down:
            plan = plan_tempo(10.0, 10.0 * fold)
        else:
            plan = plan_tempo(10.0 * fold, 10.0)
        achieved = max(plan.product, 1.0 / plan.product)
        assert achieved >= last - 1e-9
        last = achieved
    assert last == pytest.approx(4.0)


def test_chained_speedup_stays_in_bounds():
    plan = plan_tempo(30.0, 10.0)

    assert plan.factors == pytest.approx((2.0, 1.5))
    assert _in_bounds(plan)


def test_extreme_slowdown_is_clamped():
    """10x would need an unbounded chain; it is clamped to the 4x maximum."""
    plan = plan_tempo(10.0, 100.0, max_total_stretch=4.0)

    assert plan.clamped
    assert plan.factors == pytest.approx((0.5, 0.5))
    assert plan.product == pytest.approx(0.25)


def test_extreme_speedup_is_clamped():
    plan = plan_tempo(100.0, 10.0, max_total_stretch=4.0)

    assert plan.clamped
    assert plan.factors == pytest.approx((2.0, 2.0))


def test_custom_bounds_are_respected():
    plan = plan_tempo(10.0, 40.0, bounds=(0.8, 1.25))

    assert _in_bounds(plan, 0.8, 1.25)
    assert plan.product == pytest.approx(0.25)


@pytest.mark.parametrize("rendered, target", [(0.0, 5.0), (5.0, 0.0), (-1.0, 5.0)])
def test_non_positive_durations_are_rejected(rendered, target):
    with pytest.raises(ValueError):
        plan_tempo(rendered, target)


def test_invalid_bounds_are_rejected():
    with pytest.raises(ValueError):
        plan_tempo(10.0, 20.0, bounds=(1.2, 2.0))


def test_atempo_filter():
    assert atempo_filter(plan_tempo(30.0, 10.0)) == "atempo=2.000000,atempo=1.500000"
    assert atempo_filter(plan_tempo(10.0, 10.0)) == ""
