from typing import Tuple

from chartsync_app.schemas import BoosterResult

# Mode intensity at or above which the overlay engages
BOOSTER_THRESHOLD = 0.6

# (name, speed offset, amplitude multiplier), indexed by step % len.
BOOSTER_PATTERN: Tuple[Tuple[str, float, float], ...] = (
    ("pulse-up", 10.0, 1.00),
    ("wide-dip", -5.0, 1.20),
    ("tight-surge", 15.0, 0.80),
    ("hold-wide", 0.0, 1.10),
    ("ripple", 5.0, 0.90),
    ("swell", -10.0, 1.30),
)
PATTERN_LENGTH = len(BOOSTER_PATTERN)


def get_booster_pattern_name(step: int) -> str:
    return BOOSTER_PATTERN[step % PATTERN_LENGTH][0]


def apply_booster(intensity: float, speed: float, amplitude: float, current_step: int) -> BoosterResult:
    """
    Overlay the fixed booster pattern while intensity is high.

    Dormant below the threshold: inputs pass through and the step stays put.
    Active: the step advances by one and the entry at the new step is applied,
    so the same starting step always replays the same sequence.
    """
    if intensity < BOOSTER_THRESHOLD:
        return BoosterResult(speed=speed, amplitude=amplitude, new_step=current_step, was_applied=False)

    new_step = current_step + 1
    _, speed_offset, amplitude_mult = BOOSTER_PATTERN[new_step % PATTERN_LENGTH]
    return BoosterResult(
        speed=speed + speed_offset,
        amplitude=amplitude * amplitude_mult,
        new_step=new_step,
        was_applied=True,
    )
