from chartsync_app.config import ANTI_BORED_MIN_SPEED, MAX_AMPLITUDE_DELTA, MAX_SPEED_DELTA
from chartsync_app.schemas import DeviceCommand, SafetyResult
from chartsync_app.utils.numeric import clamp

_CENTER_Y = 50.0


def _rate_limit(target: float, last: float, max_delta: float) -> float:
    delta = target - last
    if delta > max_delta:
        return last + max_delta
    if delta < -max_delta:
        return last - max_delta
    return target


def apply_safety_pipeline(
    raw_speed: float,
    raw_amplitude: float,
    last_speed: float,
    last_amplitude: float,
    anti_bored_floor_enabled: bool = False,
) -> SafetyResult:
    """
    Final guard before the device: clamp to [0, 100], then move at most
    MAX_*_DELTA away from the previous tick's values.

    The anti-bored floor raises the target speed (not the output) so the
    rate limit still holds when it is enabled.
    """
    last_speed = clamp(float(last_speed), 0.0, 100.0)
    last_amplitude = clamp(float(last_amplitude), 0.0, 100.0)

    speed = clamp(float(raw_speed), 0.0, 100.0)
    amplitude = clamp(float(raw_amplitude), 0.0, 100.0)
    was_limited = speed != raw_speed or amplitude != raw_amplitude

    if anti_bored_floor_enabled and speed < ANTI_BORED_MIN_SPEED:
        speed = ANTI_BORED_MIN_SPEED
        was_limited = True

    limited_speed = _rate_limit(speed, last_speed, MAX_SPEED_DELTA)
    limited_amplitude = _rate_limit(amplitude, last_amplitude, MAX_AMPLITUDE_DELTA)
    if limited_speed != speed or limited_amplitude != amplitude:
        was_limited = True

    return SafetyResult(speed=limited_speed, amplitude=limited_amplitude, was_limited=was_limited)


def create_device_command(result: SafetyResult) -> DeviceCommand:
    half = result.amplitude / 2.0
    return DeviceCommand(
        speed=int(round(clamp(result.speed, 0.0, 100.0))),
        min_y=int(round(clamp(_CENTER_Y - half, 0.0, 100.0))),
        max_y=int(round(clamp(_CENTER_Y + half, 0.0, 100.0))),
    )
