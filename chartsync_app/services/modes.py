import logging
from dataclasses import dataclass
from typing import Dict, Tuple

from chartsync_app.schemas import Metrics, ModeId, ModeParams, ModeResult
from chartsync_app.services.rng import SeededRandom

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModeConfig:
    name: str
    base_speed: float
    speed_gain: float
    base_amplitude: float
    amplitude_gain: float
    calm_style: str
    hot_style: str


# ── Mode table ──
# All speed/amplitude tuning lives here. Output may leave [0, 100];
# the safety pipeline is the only stage that bounds it.
MODE_CONFIGS: Dict[ModeId, ModeConfig] = {
    ModeId.TREND_RIDER: ModeConfig(
        name="Trend Rider",
        base_speed=30.0, speed_gain=50.0,
        base_amplitude=30.0, amplitude_gain=40.0,
        calm_style="smooth-drift", hot_style="smooth-ride",
    ),
    ModeId.CHOP_MONSTER: ModeConfig(
        name="Chop Monster",
        base_speed=55.0, speed_gain=45.0,
        base_amplitude=20.0, amplitude_gain=25.0,
        calm_style="jitter", hot_style="jackhammer",
    ),
    ModeId.MOMENTUM_BURSTS: ModeConfig(
        name="Momentum Bursts",
        base_speed=50.0, speed_gain=60.0,
        base_amplitude=45.0, amplitude_gain=50.0,
        calm_style="surge", hot_style="burst",
    ),
    ModeId.DEVIATION_SNAP: ModeConfig(
        name="Deviation Snap",
        base_speed=35.0, speed_gain=40.0,
        base_amplitude=50.0, amplitude_gain=45.0,
        calm_style="stretch", hot_style="snap-back",
    ),
    ModeId.LIQUIDITY_PANIC: ModeConfig(
        name="Liquidity Panic",
        base_speed=70.0, speed_gain=45.0,
        base_amplitude=15.0, amplitude_gain=15.0,
        calm_style="nervous", hot_style="frantic",
    ),
}

# Checked in this order; the first mode whose condition holds wins.
# Trend Rider is the fallback and has no condition.
MODE_PRIORITY: Tuple[ModeId, ...] = (
    ModeId.LIQUIDITY_PANIC,
    ModeId.MOMENTUM_BURSTS,
    ModeId.CHOP_MONSTER,
    ModeId.DEVIATION_SNAP,
)

# Intensity above which a mode uses its hot style label.
_HOT_STYLE_INTENSITY = 0.6


def get_mode_name(mode_id: int) -> str:
    try:
        return MODE_CONFIGS[ModeId(mode_id)].name
    except ValueError:
        return "Unknown"


def generate_mode_params(rng: SeededRandom, mode_id: ModeId = ModeId.TREND_RIDER) -> ModeParams:
    """
    Draw the session's thresholds from ``rng``.

    The draw order is fixed; changing it changes every session's parameters
    for a given seed.
    """
    trend_cap = rng.range(0.003, 0.010)
    chop_cap = rng.range(0.005, 0.020)
    accel_cap = rng.range(0.002, 0.008)
    dev_cap = rng.range(0.005, 0.020)
    liq_drop_cap = rng.range(0.03, 0.15)
    weight_trend = rng.range(0.5, 0.75)
    ema_n = rng.int(2, 4)

    # Mode-specific re-rolls bias sensitivity for the starting mode
    if mode_id == ModeId.CHOP_MONSTER:
        chop_cap = rng.range(0.004, 0.015)
    elif mode_id == ModeId.MOMENTUM_BURSTS:
        accel_cap = rng.range(0.002, 0.008)
    elif mode_id == ModeId.LIQUIDITY_PANIC:
        liq_drop_cap = rng.range(0.03, 0.12)

    params = ModeParams(
        trend_cap=trend_cap,
        chop_cap=chop_cap,
        accel_cap=accel_cap,
        dev_cap=dev_cap,
        liq_drop_cap=liq_drop_cap,
        weight_trend=weight_trend,
        weight_chop=1.0 - weight_trend,
        ema_n=ema_n,
    )
    logger.debug(
        "Mode params generated: trend_cap=%.4f chop_cap=%.4f accel_cap=%.4f dev_cap=%.4f liq_drop_cap=%.4f ema_n=%d",
        params.trend_cap, params.chop_cap, params.accel_cap, params.dev_cap, params.liq_drop_cap, params.ema_n,
    )
    return params


def _condition_ratio(mode_id: ModeId, metrics: Metrics, params: ModeParams) -> float:
    """Metric relative to its cap for the specialised modes (> 1 means triggered)."""
    if mode_id == ModeId.LIQUIDITY_PANIC:
        return metrics.liq_drop / params.liq_drop_cap
    if mode_id == ModeId.MOMENTUM_BURSTS:
        return metrics.accel / params.accel_cap
    if mode_id == ModeId.CHOP_MONSTER:
        return metrics.chop / params.chop_cap
    if mode_id == ModeId.DEVIATION_SNAP:
        return abs(metrics.deviation) / params.dev_cap
    # Trend Rider: weighted blend of the trend and chop contributions
    return (
        params.weight_trend * abs(metrics.trend) / params.trend_cap
        + params.weight_chop * metrics.chop / params.chop_cap
    )


def select_mode_from_metrics(metrics: Metrics, params: ModeParams) -> ModeId:
    for mode_id in MODE_PRIORITY:
        if _condition_ratio(mode_id, metrics, params) > 1.0:
            return mode_id
    return ModeId.TREND_RIDER


def compute_mode(mode_id: ModeId, metrics: Metrics, params: ModeParams) -> ModeResult:
    mode_id = ModeId(mode_id)
    cfg = MODE_CONFIGS[mode_id]

    ratio = max(0.0, _condition_ratio(mode_id, metrics, params))
    intensity = ratio / (1.0 + ratio)

    speed = cfg.base_speed + cfg.speed_gain * intensity
    amplitude = cfg.base_amplitude + cfg.amplitude_gain * intensity

    style = cfg.hot_style if intensity >= _HOT_STYLE_INTENSITY else cfg.calm_style
    if mode_id == ModeId.TREND_RIDER and metrics.trend != 0:
        style = f"{style}-{'up' if metrics.trend > 0 else 'down'}"

    return ModeResult(
        mode_id=mode_id,
        intensity=intensity,
        speed=speed,
        amplitude=amplitude,
        style=style,
    )
