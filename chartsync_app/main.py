import argparse
import asyncio
import logging

from chartsync_app.config import TICK_INTERVAL_MS, DeviceSettings
from chartsync_app.services.device import AutoblowClient
from chartsync_app.services.market_data import GeckoTerminalCandleSource
from chartsync_app.services.session import SessionManager
from chartsync_app.services.tick import run_tick_sweep, start_device_session, stop_device_session
from chartsync_app.utils.logging_setup import setup_logging

logger = logging.getLogger(__name__)


def _parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run one chart-synced device session locally.")
    parser.add_argument("session_state_id", help="Opaque session-state identifier from the queue")
    parser.add_argument("token_mint", help="Token mint address to follow")
    parser.add_argument("--ticks", type=int, default=0, help="Stop after N ticks (0 = until the session ends)")
    parser.add_argument(
        "--interval",
        type=float,
        default=TICK_INTERVAL_MS / 1000.0,
        help="Seconds between ticks",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace, settings: DeviceSettings) -> None:
    candles = GeckoTerminalCandleSource(
        base_url=settings.candle_api,
        network=settings.network,
        timeout=settings.http_timeout_sec,
    )
    device = AutoblowClient(settings)
    manager = SessionManager(candles)
    device_enabled = settings.device_enabled and settings.device_configured

    try:
        started = await start_device_session(
            manager, device, args.session_state_id, args.token_mint, device_enabled=device_enabled
        )
        logger.info("Session start: %s", started.model_dump())
        if not started.success:
            return

        ticks = 0
        while manager.get_all_active_sessions():
            await asyncio.sleep(args.interval)
            results = await run_tick_sweep(manager, device, device_enabled=device_enabled)
            for r in results:
                logger.info("Tick result: %s", r.model_dump())
            ticks += 1
            if args.ticks and ticks >= args.ticks:
                await stop_device_session(
                    manager, device, session_id=started.session_id, device_enabled=device_enabled
                )
                break
    finally:
        await candles.aclose()
        await device.aclose()


def run(argv=None):
    settings = DeviceSettings.from_env()
    setup_logging(settings.log_level, settings.log_dir)
    args = _parse_args(argv)
    try:
        asyncio.run(_run(args, settings))
    except KeyboardInterrupt:
        logger.warning("Interrupted, exiting")
