"""
Session table and per-tick orchestration.

A session lives in a ``SessionStore`` owned by the ``SessionManager``. Table
operations (create, lookup, cleanup) are synchronous and guarded by one
threading lock; tick processing holds only the ticked session's asyncio lock,
so different tokens tick in parallel while two ticks on the same session
never interleave their read-modify-write of speed/amplitude.
"""

import asyncio
import logging
import threading
import time
from typing import Callable, Dict, List, Optional, Union

from chartsync_app.config import (
    BUFFER_SIZE,
    DEGRADED_MAX_Y,
    DEGRADED_MIN_SPEED,
    DEGRADED_MIN_Y,
    DEGRADED_SPEED_STEP,
    INITIAL_AMPLITUDE,
    INITIAL_SPEED,
    SESSION_DURATION_MS,
)
from chartsync_app.schemas import ChartSyncSession, DeviceCommand, LastCommand, ModeId, SessionStatus
from chartsync_app.services.booster import apply_booster, get_booster_pattern_name
from chartsync_app.services.market_data import CandleSource, compute_metrics, update_buffer
from chartsync_app.services.modes import compute_mode, generate_mode_params, get_mode_name, select_mode_from_metrics
from chartsync_app.services.rng import SeededRandom, generate_seed
from chartsync_app.services.safety import apply_safety_pipeline, create_device_command

logger = logging.getLogger(__name__)


def _wall_clock_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    def __init__(self):
        self._sessions: Dict[str, ChartSyncSession] = {}
        self._locks: Dict[str, asyncio.Lock] = {}
        self._table_lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._sessions

    def put(self, session: ChartSyncSession) -> None:
        with self._table_lock:
            self._sessions[session.session_id] = session
            self._locks.setdefault(session.session_id, asyncio.Lock())

    def get(self, session_id: str) -> Optional[ChartSyncSession]:
        return self._sessions.get(session_id)

    def remove(self, session_id: str) -> bool:
        with self._table_lock:
            self._locks.pop(session_id, None)
            return self._sessions.pop(session_id, None) is not None

    def snapshot(self) -> List[ChartSyncSession]:
        with self._table_lock:
            return list(self._sessions.values())

    def lock_for(self, session_id: str) -> Optional[asyncio.Lock]:
        """The session's tick lock, or None once the session has been removed."""
        with self._table_lock:
            return self._locks.get(session_id)


class SessionManager:
    def __init__(
        self,
        candle_source: CandleSource,
        store: Optional[SessionStore] = None,
        clock: Optional[Callable[[], int]] = None,
        buffer_size: int = BUFFER_SIZE,
    ):
        self._candles = candle_source
        self._store = store if store is not None else SessionStore()
        self._clock = clock or _wall_clock_ms
        self._buffer_size = int(buffer_size)

    @property
    def store(self) -> SessionStore:
        return self._store

    def now(self) -> int:
        return int(self._clock())

    # ── Lifecycle ──

    def create_session(
        self,
        session_state_id: str,
        token_mint: str,
        start_time: Optional[int] = None,
    ) -> ChartSyncSession:
        """
        Register a new session. Callers check ``get_active_session_for_token``
        first; duplicates for a token are not rejected here.
        """
        start_time = int(start_time) if start_time is not None else self.now()
        seed = generate_seed(session_state_id, token_mint, start_time)
        mode_id = ModeId.TREND_RIDER

        session = ChartSyncSession(
            session_id=f"{session_state_id}-{start_time}",
            token_mint=token_mint,
            start_time=start_time,
            end_time=start_time + SESSION_DURATION_MS,
            seed=seed,
            mode_params=generate_mode_params(SeededRandom(seed), mode_id),
            mode_id=mode_id,
            last_speed=INITIAL_SPEED,
            last_amplitude=INITIAL_AMPLITUDE,
        )
        self._store.put(session)

        logger.info(
            "Session created: id=%s token=%s mode=%s seed=%d duration=%ds",
            session.session_id, token_mint, get_mode_name(mode_id), seed, SESSION_DURATION_MS // 1000,
        )
        return session

    def get_session(self, session_id: str) -> Optional[ChartSyncSession]:
        return self._store.get(session_id)

    def get_active_session_for_token(self, token_mint: str) -> Optional[ChartSyncSession]:
        for session in self._store.snapshot():
            if session.token_mint == token_mint and session.is_active:
                return session
        return None

    def is_session_expired(self, session: Union[ChartSyncSession, str]) -> bool:
        if isinstance(session, str):
            session = self._store.get(session)
            if session is None:
                return False
        return self.now() >= session.end_time

    def end_session(self, session_id: str) -> bool:
        session = self._store.get(session_id)
        if session is None:
            return False
        session.is_active = False
        logger.info("Session ended: %s", session_id)
        return True

    def cleanup_expired_sessions(self) -> int:
        cleaned = 0
        for session in self._store.snapshot():
            if not session.is_active or self.is_session_expired(session):
                if self._store.remove(session.session_id):
                    cleaned += 1
        if cleaned:
            logger.info("Cleaned up %d expired sessions", cleaned)
        return cleaned

    def get_all_active_sessions(self) -> List[ChartSyncSession]:
        return [s for s in self._store.snapshot() if s.is_active and not self.is_session_expired(s)]

    def get_session_status(self, session_id: str) -> SessionStatus:
        session = self._store.get(session_id)
        if session is None:
            return SessionStatus(exists=False, is_active=False)

        now = self.now()
        return SessionStatus(
            exists=True,
            is_active=session.is_active and not self.is_session_expired(session),
            elapsed=(now - session.start_time) // 1000,
            remaining=max(0, (session.end_time - now) // 1000),
            mode=get_mode_name(session.mode_id),
            last_command=LastCommand(speed=session.last_speed, amplitude=session.last_amplitude),
        )

    # ── Tick ──

    async def _refresh_buffer(self, session: ChartSyncSession) -> None:
        try:
            new_candles = await self._candles.fetch_candles(session.token_mint)
        except Exception as e:
            logger.warning("Candle fetch failed for %s, keeping stale buffer: %s", session.token_mint, e)
            return

        if new_candles:
            session.candle_buffer = update_buffer(session.candle_buffer, new_candles[0], self._buffer_size)

    def _degraded_command(self, session: ChartSyncSession) -> DeviceCommand:
        speed = max(DEGRADED_MIN_SPEED, int(round(session.last_speed)) - DEGRADED_SPEED_STEP)
        return DeviceCommand(speed=speed, min_y=DEGRADED_MIN_Y, max_y=DEGRADED_MAX_Y)

    async def process_session_tick(self, session_id: str) -> Optional[DeviceCommand]:
        """
        Run one pass of the control pipeline for ``session_id``.

        Returns None for an unknown session and the stop command for an
        expired or ended one. Otherwise always returns a command: failures
        inside the pipeline yield a degraded, easing-down command instead of
        raising.
        """
        lock = self._store.lock_for(session_id) if session_id in self._store else None
        if lock is None:
            logger.error("Session not found: %s", session_id)
            return None

        async with lock:
            session = self._store.get(session_id)
            if session is None:
                return None

            if self.is_session_expired(session) or not session.is_active:
                if session.is_active:
                    logger.info("Session expired: %s", session_id)
                    self.end_session(session_id)
                return DeviceCommand.stop()

            await self._refresh_buffer(session)

            try:
                buffer = session.candle_buffer
                prev_volume = buffer[-2].volume if len(buffer) > 1 else None
                metrics = compute_metrics(buffer, prev_volume, session.mode_params.ema_n)
                logger.debug(
                    "Raw metrics: trend=%.5f chop=%.5f accel=%.5f deviation=%.5f liq_drop=%.5f buffer=%d",
                    metrics.trend, metrics.chop, metrics.accel, metrics.deviation, metrics.liq_drop, len(buffer),
                )

                mode_id = select_mode_from_metrics(metrics, session.mode_params)
                mode = compute_mode(mode_id, metrics, session.mode_params)
                boosted = apply_booster(mode.intensity, mode.speed, mode.amplitude, session.booster_step)
                safe = apply_safety_pipeline(
                    boosted.speed,
                    boosted.amplitude,
                    session.last_speed,
                    session.last_amplitude,
                    False,  # booster already keeps output non-monotone
                )
                command = create_device_command(safe)

                session.mode_id = mode_id
                session.booster_step = boosted.new_step
                session.last_speed = safe.speed
                session.last_amplitude = safe.amplitude
            except Exception:
                logger.exception("Tick failed for session %s, sending degraded command", session_id)
                return self._degraded_command(session)

            logger.info(
                "Tick @ %ds: session=%s mode=%s style=%s intensity=%.3f booster=%s limited=%s command=%s",
                (self.now() - session.start_time) // 1000,
                session_id,
                get_mode_name(mode_id),
                mode.style,
                mode.intensity,
                get_booster_pattern_name(boosted.new_step) if boosted.was_applied else "off",
                safe.was_limited,
                command.model_dump(),
            )
            return command
