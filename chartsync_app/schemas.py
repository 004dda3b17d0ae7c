from enum import IntEnum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ModeId(IntEnum):
    TREND_RIDER = 1
    CHOP_MONSTER = 2
    MOMENTUM_BURSTS = 3
    DEVIATION_SNAP = 4
    LIQUIDITY_PANIC = 5


class Candle(BaseModel):
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @field_validator("open", "high", "low", "close", "volume")
    @classmethod
    def non_negative(cls, v, info):
        if v < 0:
            raise ValueError(f"{info.field_name} must be >= 0")
        return v


class ModeParams(BaseModel):
    """Per-session thresholds. Generated once from the session seed, never mutated."""

    model_config = ConfigDict(frozen=True)

    trend_cap: float
    chop_cap: float
    accel_cap: float
    dev_cap: float
    liq_drop_cap: float
    weight_trend: float
    weight_chop: float
    ema_n: int

    @field_validator("trend_cap", "chop_cap", "accel_cap", "dev_cap", "liq_drop_cap")
    @classmethod
    def cap_positive(cls, v, info):
        if v <= 0:
            raise ValueError(f"{info.field_name} must be > 0")
        return v

    @field_validator("ema_n")
    @classmethod
    def ema_window(cls, v):
        if v < 1:
            raise ValueError("ema_n must be >= 1")
        return v

    def model_post_init(self, __context):
        if abs(self.weight_trend + self.weight_chop - 1.0) > 1e-9:
            raise ValueError(
                f"weight_trend + weight_chop must equal 1, got "
                f"{self.weight_trend:.4f} + {self.weight_chop:.4f}"
            )


class Metrics(BaseModel):
    trend: float = 0.0
    chop: float = 0.0
    accel: float = 0.0
    deviation: float = 0.0
    liq_drop: float = 0.0


class ModeResult(BaseModel):
    mode_id: ModeId
    intensity: float
    speed: float
    amplitude: float
    style: str


class BoosterResult(BaseModel):
    speed: float
    amplitude: float
    new_step: int
    was_applied: bool


class SafetyResult(BaseModel):
    speed: float
    amplitude: float
    was_limited: bool


class DeviceCommand(BaseModel):
    speed: int = Field(ge=0, le=100)
    min_y: int = Field(ge=0, le=100)
    max_y: int = Field(ge=0, le=100)

    @classmethod
    def stop(cls) -> "DeviceCommand":
        return cls(speed=0, min_y=50, max_y=50)

    @property
    def is_stop(self) -> bool:
        return self.speed == 0


class ChartSyncSession(BaseModel):
    # Assignments are validated so runtime fields can never leave their ranges.
    model_config = ConfigDict(validate_assignment=True)

    session_id: str
    token_mint: str
    start_time: int
    end_time: int
    seed: int = Field(ge=0)
    mode_params: ModeParams
    mode_id: ModeId = ModeId.TREND_RIDER
    last_speed: float = Field(default=40.0, ge=0, le=100)
    last_amplitude: float = Field(default=25.0, ge=0, le=100)
    booster_step: int = Field(default=0, ge=0)
    candle_buffer: List[Candle] = Field(default_factory=list)
    is_active: bool = True


class LastCommand(BaseModel):
    speed: float
    amplitude: float


class SessionStatus(BaseModel):
    exists: bool
    is_active: bool
    elapsed: Optional[int] = None
    remaining: Optional[int] = None
    mode: Optional[str] = None
    last_command: Optional[LastCommand] = None


class TickResult(BaseModel):
    session_id: str
    token_mint: str
    mode: str
    command: Optional[DeviceCommand] = None
    device_result: bool = False
    expired: bool = False


class SessionStartResult(BaseModel):
    success: bool
    session_id: str
    mode_id: Optional[ModeId] = None
    mode_name: Optional[str] = None
    start_time: Optional[int] = None
    end_time: Optional[int] = None
    command: Optional[DeviceCommand] = None
    device_result: Optional[bool] = None
    error: Optional[str] = None
