from chartsync_app.services.session import SessionManager, SessionStore
from chartsync_app.services.tick import emergency_stop, run_tick_sweep, start_device_session, stop_device_session

__all__ = [
    "SessionManager",
    "SessionStore",
    "emergency_stop",
    "run_tick_sweep",
    "start_device_session",
    "stop_device_session",
]
