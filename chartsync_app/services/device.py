import logging
import time
from typing import Any, Callable, Dict, Optional, Protocol

import httpx

from chartsync_app.config import AUTOBLOW_LATENCY_API, COMMAND_GRACE_MS, COMMAND_INTERVAL_MS, DeviceSettings
from chartsync_app.schemas import DeviceCommand

logger = logging.getLogger(__name__)


class DeviceUnavailableError(RuntimeError):
    pass


class DeviceTransport(Protocol):
    async def send_command(self, command: DeviceCommand) -> bool:
        ...

    async def stop_device(self) -> bool:
        ...


class CommandThrottle:
    """
    Process-wide limit on outbound commands, independent of session.

    A command arriving sooner than ``interval_ms - grace_ms`` after the last
    one is skipped, never queued.
    """

    def __init__(
        self,
        interval_ms: int = COMMAND_INTERVAL_MS,
        grace_ms: int = COMMAND_GRACE_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self._min_gap_ms = max(0, int(interval_ms) - int(grace_ms))
        self._clock = clock or (lambda: int(time.time() * 1000))
        self._last_command_time: Optional[int] = None

    def try_acquire(self) -> bool:
        """Claim the send slot. Check and record happen together, with no await in between."""
        now = self._clock()
        if self._last_command_time is not None and now - self._last_command_time < self._min_gap_ms:
            return False
        self._last_command_time = now
        return True


class AutoblowClient:
    """
    Device transport for the Autoblow cloud API.

    Every public call reports success as a bool; transport errors are logged
    and never retried within the same tick. Stop requests bypass the throttle.
    """

    def __init__(
        self,
        settings: DeviceSettings,
        throttle: Optional[CommandThrottle] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._settings = settings
        self._throttle = throttle or CommandThrottle()
        self._client = client or httpx.AsyncClient(timeout=httpx.Timeout(settings.http_timeout_sec, connect=3.0))
        self._cluster_url: Optional[str] = None

    async def aclose(self) -> None:
        await self._client.aclose()

    @property
    def _headers(self) -> Dict[str, str]:
        return {"x-device-token": self._settings.device_token}

    async def _get_cluster_url(self) -> str:
        if self._cluster_url:
            return self._cluster_url

        if self._settings.cluster:
            self._cluster_url = f"https://{self._settings.cluster}.autoblowapi.com"
            return self._cluster_url

        response = await self._client.get(f"{AUTOBLOW_LATENCY_API}/autoblow/connected", headers=self._headers)
        if not response.is_success:
            raise DeviceUnavailableError(f"Device not connected: HTTP {response.status_code}")
        data = response.json()
        if not data.get("connected") or not data.get("cluster"):
            raise DeviceUnavailableError("Device not connected")

        self._cluster_url = str(data["cluster"]).rstrip("/")
        return self._cluster_url

    async def _put_stop(self) -> bool:
        base_url = await self._get_cluster_url()
        response = await self._client.put(f"{base_url}/autoblow/oscillate/stop", headers=self._headers)
        return response.is_success

    async def send_command(self, command: DeviceCommand) -> bool:
        if not self._settings.device_configured:
            return False

        try:
            if command.is_stop:
                return await self._put_stop()

            # The slot is claimed before the first await so concurrent sends cannot both pass.
            if not self._throttle.try_acquire():
                logger.info("Device command skipped (cooldown): %s", command.model_dump())
                return False

            base_url = await self._get_cluster_url()
            response = await self._client.put(
                f"{base_url}/autoblow/oscillate",
                headers=self._headers,
                json={"speed": command.speed, "minY": command.min_y, "maxY": command.max_y},
            )
            if not response.is_success:
                logger.error("Device command failed: HTTP %d - %s", response.status_code, response.text)
                return False
            return True
        except (httpx.HTTPError, DeviceUnavailableError) as e:
            logger.error("Error sending device command: %s", e)
            return False

    async def stop_device(self) -> bool:
        if not self._settings.device_configured:
            return False
        try:
            return await self._put_stop()
        except (httpx.HTTPError, DeviceUnavailableError) as e:
            logger.error("Error stopping device: %s", e)
            return False

    async def get_state(self) -> Dict[str, Any]:
        """Raw device state. Raises on transport or status errors."""
        if not self._settings.device_configured:
            raise DeviceUnavailableError("Device token not configured")
        base_url = await self._get_cluster_url()
        response = await self._client.get(f"{base_url}/autoblow/state", headers=self._headers)
        response.raise_for_status()
        return response.json()
