"""
Mode engine tests: parameter generation, priority-ordered selection, output shaping.
Run with: python3 -m pytest tests/test_modes.py -v
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

import pytest

from chartsync_app.schemas import Metrics, ModeId, ModeParams
from chartsync_app.services.modes import (
    MODE_CONFIGS,
    MODE_PRIORITY,
    compute_mode,
    generate_mode_params,
    get_mode_name,
    select_mode_from_metrics,
)
from chartsync_app.services.rng import SeededRandom


# ── Helpers ──────────────────────────────────────────────────────────────────

def make_params(**overrides) -> ModeParams:
    defaults = dict(
        trend_cap=0.005,
        chop_cap=0.010,
        accel_cap=0.004,
        dev_cap=0.010,
        liq_drop_cap=0.10,
        weight_trend=0.6,
        weight_chop=0.4,
        ema_n=3,
    )
    defaults.update(overrides)
    return ModeParams(**defaults)


# ── Parameter generation ─────────────────────────────────────────────────────

def test_generated_params_within_ranges():
    for seed in (0, 1, 42, 2 ** 31 - 2, 604912525):
        p = generate_mode_params(SeededRandom(seed))
        assert 0.003 <= p.trend_cap <= 0.010
        assert 0.005 <= p.chop_cap <= 0.020
        assert 0.002 <= p.accel_cap <= 0.008
        assert 0.005 <= p.dev_cap <= 0.020
        assert 0.03 <= p.liq_drop_cap <= 0.15
        assert 0.5 <= p.weight_trend <= 0.75
        assert p.weight_trend + p.weight_chop == pytest.approx(1.0)
        assert p.ema_n in (2, 3, 4)


def test_generated_params_are_deterministic():
    a = generate_mode_params(SeededRandom(777))
    b = generate_mode_params(SeededRandom(777))
    assert a == b, "Same seed must give structurally equal ModeParams"


def test_mode_specific_reroll_only_touches_its_cap():
    base = generate_mode_params(SeededRandom(31337), ModeId.TREND_RIDER)
    chop = generate_mode_params(SeededRandom(31337), ModeId.CHOP_MONSTER)
    panic = generate_mode_params(SeededRandom(31337), ModeId.LIQUIDITY_PANIC)

    assert 0.004 <= chop.chop_cap <= 0.015
    assert chop.model_dump(exclude={"chop_cap"}) == base.model_dump(exclude={"chop_cap"})
    assert 0.03 <= panic.liq_drop_cap <= 0.12
    assert panic.model_dump(exclude={"liq_drop_cap"}) == base.model_dump(exclude={"liq_drop_cap"})


def test_weights_must_sum_to_one():
    with pytest.raises(ValueError):
        make_params(weight_trend=0.7, weight_chop=0.7)


# ── Selection ────────────────────────────────────────────────────────────────

def test_priority_order_is_fixed():
    assert MODE_PRIORITY == (
        ModeId.LIQUIDITY_PANIC,
        ModeId.MOMENTUM_BURSTS,
        ModeId.CHOP_MONSTER,
        ModeId.DEVIATION_SNAP,
    )
    assert set(MODE_CONFIGS) == set(ModeId), "Every mode needs exactly one config entry"


def test_liquidity_panic_wins_over_everything():
    """Volume collapse: liq_drop 0.8 over a 0.10 cap beats any trend/chop reading."""
    params = make_params(liq_drop_cap=0.10)
    metrics = Metrics(trend=0.5, chop=0.5, accel=0.5, deviation=0.5, liq_drop=0.8)
    assert select_mode_from_metrics(metrics, params) == ModeId.LIQUIDITY_PANIC


@pytest.mark.parametrize(
    "metrics, expected",
    [
        (Metrics(accel=0.01, chop=0.05, deviation=0.05), ModeId.MOMENTUM_BURSTS),
        (Metrics(chop=0.05, deviation=0.05), ModeId.CHOP_MONSTER),
        (Metrics(deviation=-0.05), ModeId.DEVIATION_SNAP),
        (Metrics(trend=0.004, chop=0.002), ModeId.TREND_RIDER),
        (Metrics(), ModeId.TREND_RIDER),
    ],
)
def test_selection_priority(metrics, expected):
    assert select_mode_from_metrics(metrics, make_params()) == expected


def test_selection_is_memoryless():
    params = make_params()
    hot = Metrics(liq_drop=0.9)
    calm = Metrics()
    assert select_mode_from_metrics(hot, params) == ModeId.LIQUIDITY_PANIC
    assert select_mode_from_metrics(calm, params) == ModeId.TREND_RIDER
    assert select_mode_from_metrics(hot, params) == ModeId.LIQUIDITY_PANIC


# ── Output ───────────────────────────────────────────────────────────────────

def test_flat_market_gives_trend_rider_base_output():
    cfg = MODE_CONFIGS[ModeId.TREND_RIDER]
    r = compute_mode(ModeId.TREND_RIDER, Metrics(), make_params())
    assert r.intensity == 0.0
    assert r.speed == cfg.base_speed
    assert r.amplitude == cfg.base_amplitude
    assert r.style == cfg.calm_style


def test_trend_rider_blends_with_weights():
    params = make_params(weight_trend=0.75, weight_chop=0.25)
    trend_only = compute_mode(ModeId.TREND_RIDER, Metrics(trend=0.005), params)
    chop_only = compute_mode(ModeId.TREND_RIDER, Metrics(chop=0.010), params)
    # same cap-relative reading, trend weighted heavier
    assert trend_only.intensity > chop_only.intensity
    assert trend_only.speed > chop_only.speed
    assert trend_only.style.endswith("-up")


def test_intensity_bounded_and_monotonic():
    params = make_params()
    last = -1.0
    for liq in (0.0, 0.05, 0.1, 0.5, 5.0, 500.0):
        r = compute_mode(ModeId.LIQUIDITY_PANIC, Metrics(liq_drop=liq), params)
        assert 0.0 <= r.intensity < 1.0
        assert r.intensity >= last
        last = r.intensity
    assert r.style == MODE_CONFIGS[ModeId.LIQUIDITY_PANIC].hot_style


def test_mode_names():
    assert get_mode_name(1) == "Trend Rider"
    assert get_mode_name(ModeId.LIQUIDITY_PANIC) == "Liquidity Panic"
    assert get_mode_name(99) == "Unknown"


if __name__ == "__main__":
    sys.exit(pytest.main([__file__, "-v"]))
