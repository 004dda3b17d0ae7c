import os
from typing import Optional

from pydantic import BaseModel, field_validator


# ── Session timing ──
SESSION_DURATION_MS: int = 10 * 60 * 1000   # 10 minutes per displayed token
TICK_INTERVAL_MS: int = 60 * 1000           # caller's scheduler fires once a minute
SEED_BUCKET_MS: int = 60 * 1000             # sessions started in the same minute share a seed

# ── Market data ──
BUFFER_SIZE: int = 20                        # rolling candle window (oldest evicted first)
DEFAULT_EMA_N: int = 3                       # smoothing window when no ModeParams are at hand

# ── Session defaults ──
INITIAL_SPEED: int = 40                      # non-zero so the first tick already moves
INITIAL_AMPLITUDE: int = 25

# ── Safety pipeline ──
MAX_SPEED_DELTA: float = 20.0                # max speed change per tick
MAX_AMPLITUDE_DELTA: float = 15.0            # max stroke-range change per tick
ANTI_BORED_MIN_SPEED: float = 15.0           # floor used only when explicitly enabled

# ── Degraded tick output ──
DEGRADED_SPEED_STEP: int = 10
DEGRADED_MIN_SPEED: int = 20
DEGRADED_MIN_Y: int = 40
DEGRADED_MAX_Y: int = 60

# ── Device transport ──
COMMAND_INTERVAL_MS: int = 60 * 1000
COMMAND_GRACE_MS: int = 5 * 1000             # scheduler jitter tolerated by the throttle
AUTOBLOW_LATENCY_API: str = "https://latency.autoblowapi.com"

# ── Candle API ──
DEFAULT_CANDLE_API: str = "https://api.geckoterminal.com/api/v2"
DEFAULT_NETWORK: str = "solana"
CANDLE_FETCH_LIMIT: int = 5


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


class DeviceSettings(BaseModel):
    """Deployment settings read from the environment."""

    device_token: str = ""
    device_enabled: bool = False
    cluster: str = ""
    candle_api: str = DEFAULT_CANDLE_API
    network: str = DEFAULT_NETWORK
    http_timeout_sec: float = 8.0
    log_level: str = "INFO"
    log_dir: Optional[str] = None

    @field_validator("http_timeout_sec")
    @classmethod
    def timeout_positive(cls, v):
        if v <= 0:
            raise ValueError("http_timeout_sec must be > 0")
        return v

    @field_validator("log_level")
    @classmethod
    def valid_log_level(cls, v):
        vv = str(v).upper().strip()
        if vv not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("log_level must be one of: DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return vv

    @field_validator("candle_api")
    @classmethod
    def strip_trailing_slash(cls, v):
        return str(v).rstrip("/")

    @property
    def device_configured(self) -> bool:
        return bool(self.device_token)

    @classmethod
    def from_env(cls) -> "DeviceSettings":
        return cls(
            device_token=os.getenv("AUTOBLOW_DEVICE_TOKEN", ""),
            device_enabled=_env_bool("AUTOBLOW_ENABLED"),
            cluster=os.getenv("AUTOBLOW_CLUSTER", ""),
            candle_api=os.getenv("CHARTSYNC_CANDLE_API", DEFAULT_CANDLE_API),
            network=os.getenv("CHARTSYNC_NETWORK", DEFAULT_NETWORK),
            http_timeout_sec=float(os.getenv("CHARTSYNC_HTTP_TIMEOUT", "8.0") or 8.0),
            log_level=os.getenv("CHARTSYNC_LOG_LEVEL", "INFO"),
            log_dir=os.getenv("CHARTSYNC_LOG_DIR") or None,
        )
