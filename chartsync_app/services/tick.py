"""
Call paths that drive sessions: the scheduled sweep, session start and stop.

Each path is a sequence of independently guarded steps. A failure in a later
step (device send, external state sink) is logged and never rolls back a
state change an earlier step already committed.
"""

import asyncio
import logging
from typing import Awaitable, Callable, List, Optional

from chartsync_app.schemas import ChartSyncSession, DeviceCommand, SessionStartResult, TickResult
from chartsync_app.services.device import DeviceTransport
from chartsync_app.services.modes import get_mode_name
from chartsync_app.services.session import SessionManager

logger = logging.getLogger(__name__)

SessionSink = Callable[[ChartSyncSession], Awaitable[None]]
SweepHook = Callable[[], Awaitable[None]]


async def _publish(sink: Optional[SessionSink], manager: SessionManager, session_id: str) -> None:
    if sink is None:
        return
    session = manager.get_session(session_id)
    if session is None:
        return
    try:
        await sink(session)
    except Exception as e:
        logger.error("Failed to publish session %s: %s", session_id, e)


async def _send(device: DeviceTransport, command: DeviceCommand) -> bool:
    try:
        return await device.send_command(command)
    except Exception as e:
        logger.error("Device transport raised: %s", e)
        return False


async def _tick_one(
    manager: SessionManager,
    device: DeviceTransport,
    device_enabled: bool,
    session: ChartSyncSession,
    sink: Optional[SessionSink],
) -> TickResult:
    if manager.is_session_expired(session):
        manager.end_session(session.session_id)
        command = DeviceCommand.stop()
        return TickResult(
            session_id=session.session_id,
            token_mint=session.token_mint,
            mode=get_mode_name(session.mode_id),
            command=command,
            device_result=await _send(device, command) if device_enabled else False,
            expired=True,
        )

    command = await manager.process_session_tick(session.session_id)
    device_result = False
    if command is not None and device_enabled:
        device_result = await _send(device, command)

    await _publish(sink, manager, session.session_id)

    return TickResult(
        session_id=session.session_id,
        token_mint=session.token_mint,
        mode=get_mode_name(session.mode_id),
        command=command,
        device_result=device_result,
        expired=False,
    )


async def run_tick_sweep(
    manager: SessionManager,
    device: DeviceTransport,
    device_enabled: bool = True,
    sink: Optional[SessionSink] = None,
    before_sweep: Optional[SweepHook] = None,
) -> List[TickResult]:
    """
    Tick every live session once, in parallel across sessions, then clean up.

    Sessions past their end time but still flagged active are ended here and
    get an explicit stop command.
    """
    if before_sweep is not None:
        try:
            await before_sweep()
        except Exception as e:
            logger.error("Pre-sweep hook failed: %s", e)

    live = [s for s in manager.store.snapshot() if s.is_active]
    results: List[TickResult] = []
    if live:
        results = list(
            await asyncio.gather(*(_tick_one(manager, device, device_enabled, s, sink) for s in live))
        )

    cleaned = manager.cleanup_expired_sessions()
    logger.info("Sweep processed %d sessions, cleaned %d", len(results), cleaned)
    return results


async def start_device_session(
    manager: SessionManager,
    device: DeviceTransport,
    session_state_id: str,
    token_mint: str,
    device_enabled: bool = True,
    sink: Optional[SessionSink] = None,
) -> SessionStartResult:
    """Create a session for ``token_mint`` unless one is already active, then run its first tick."""
    existing = manager.get_active_session_for_token(token_mint)
    if existing is not None:
        return SessionStartResult(
            success=False,
            session_id=existing.session_id,
            error="Session already active for this token",
        )

    session = manager.create_session(session_state_id, token_mint)

    command = None
    device_result = None
    if device_enabled:
        command = await manager.process_session_tick(session.session_id)
        if command is not None:
            device_result = await _send(device, command)

    await _publish(sink, manager, session.session_id)

    return SessionStartResult(
        success=True,
        session_id=session.session_id,
        mode_id=session.mode_id,
        mode_name=get_mode_name(session.mode_id),
        start_time=session.start_time,
        end_time=session.end_time,
        command=command,
        device_result=device_result,
    )


async def stop_device_session(
    manager: SessionManager,
    device: DeviceTransport,
    session_id: Optional[str] = None,
    token_mint: Optional[str] = None,
    device_enabled: bool = True,
) -> Optional[str]:
    """End the session found by id or token and stop the device. Returns the ended session id."""
    session = None
    if session_id:
        session = manager.get_session(session_id)
    elif token_mint:
        session = manager.get_active_session_for_token(token_mint)

    if session is not None:
        manager.end_session(session.session_id)

    if device_enabled:
        try:
            await device.stop_device()
        except Exception as e:
            logger.error("Device stop raised: %s", e)

    return session.session_id if session is not None else None


async def emergency_stop(manager: SessionManager, device: DeviceTransport) -> int:
    sessions = manager.get_all_active_sessions()
    for session in sessions:
        manager.end_session(session.session_id)

    try:
        await device.stop_device()
    except Exception as e:
        logger.error("Device stop raised: %s", e)

    logger.warning("Emergency stop: %d sessions ended", len(sessions))
    return len(sessions)
