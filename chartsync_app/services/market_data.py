import logging
from typing import Dict, List, Optional, Protocol, Sequence

import httpx
import numpy as np

from chartsync_app.config import CANDLE_FETCH_LIMIT, DEFAULT_CANDLE_API, DEFAULT_EMA_N, DEFAULT_NETWORK
from chartsync_app.schemas import Candle, Metrics
from chartsync_app.utils.numeric import finite_or_zero

logger = logging.getLogger(__name__)


class CandleSource(Protocol):
    async def fetch_candles(self, token_mint: str) -> List[Candle]:
        """Return recent candles, newest first. May be empty; may raise."""
        ...


# ── Buffer ──

def update_buffer(buffer: Sequence[Candle], sample: Candle, capacity: int) -> List[Candle]:
    """Append ``sample`` and evict from the front so at most ``capacity`` remain."""
    if capacity < 1:
        raise ValueError("capacity must be >= 1")
    out = list(buffer)
    out.append(sample)
    if len(out) > capacity:
        out = out[len(out) - capacity:]
    return out


# ── Metrics ──

def _ema(values: np.ndarray, n: int) -> np.ndarray:
    alpha = 2.0 / (n + 1.0)
    out = np.empty_like(values)
    out[0] = values[0]
    for i in range(1, len(values)):
        out[i] = alpha * values[i] + (1.0 - alpha) * out[i - 1]
    return out


def _liquidity_drop(volume: float, previous_volume: Optional[float]) -> float:
    if previous_volume is None or previous_volume <= 0:
        return 0.0
    return max(0.0, (previous_volume - volume) / previous_volume)


def compute_metrics(
    buffer: Sequence[Candle],
    previous_volume: Optional[float] = None,
    ema_n: int = DEFAULT_EMA_N,
) -> Metrics:
    """
    Derive the per-tick metrics from the candle window (oldest first).

      trend    : mean of the recent half vs the earlier half, relative (signed)
      chop     : path length minus net move of the simple returns, per return (>= 0)
      accel    : change of the EMA(ema_n) of returns over the last step (>= 0)
      deviation: last close vs SMA of the last ema_n closes, relative (signed)
      liq_drop : fractional volume drop vs ``previous_volume`` (>= 0)

    An empty buffer gives all zeros. A single sample gives zeros for everything
    that needs a prior sample.
    """
    if not buffer:
        return Metrics()

    liq_drop = finite_or_zero(_liquidity_drop(buffer[-1].volume, previous_volume))

    closes = np.array([c.close for c in buffer], dtype=float)
    n = len(closes)
    if n == 1:
        return Metrics(liq_drop=liq_drop)

    window_n = max(1, int(ema_n))
    with np.errstate(divide="ignore", invalid="ignore"):
        half = n // 2
        earlier = float(np.mean(closes[:half]))
        recent = float(np.mean(closes[-half:]))
        trend = (recent - earlier) / earlier if earlier > 0 else 0.0

        prev = closes[:-1]
        returns = np.where(prev > 0, np.diff(closes) / prev, 0.0)
        chop = (float(np.sum(np.abs(returns))) - abs(float(np.sum(returns)))) / len(returns)

        smoothed = _ema(returns, window_n)
        accel = abs(float(smoothed[-1] - smoothed[-2])) if len(smoothed) >= 2 else 0.0

        sma = float(np.mean(closes[-window_n:]))
        deviation = (float(closes[-1]) - sma) / sma if sma > 0 else 0.0

    return Metrics(
        trend=finite_or_zero(trend),
        chop=max(0.0, finite_or_zero(chop)),
        accel=finite_or_zero(accel),
        deviation=finite_or_zero(deviation),
        liq_drop=liq_drop,
    )


# ── Fetch ──

class GeckoTerminalCandleSource:
    """
    1-minute OHLCV for a token's top pool from the GeckoTerminal public API.

    Pool addresses are cached per mint. Transport and HTTP status errors
    propagate to the caller.
    """

    def __init__(
        self,
        base_url: str = DEFAULT_CANDLE_API,
        network: str = DEFAULT_NETWORK,
        limit: int = CANDLE_FETCH_LIMIT,
        timeout: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._network = network
        self._limit = int(limit)
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout, connect=3.0),
            headers={"Accept": "application/json"},
        )
        self._pool_cache: Dict[str, str] = {}

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, params: Optional[dict] = None) -> dict:
        response = await self._client.get(f"{self._base_url}{path}", params=params)
        response.raise_for_status()
        return response.json()

    async def _resolve_pool(self, token_mint: str) -> Optional[str]:
        cached = self._pool_cache.get(token_mint)
        if cached:
            return cached

        data = await self._get_json(f"/networks/{self._network}/tokens/{token_mint}/pools", {"page": 1})
        pools = data.get("data") or []
        if not pools:
            logger.warning("No pools listed for token %s", token_mint)
            return None

        address = (pools[0].get("attributes") or {}).get("address")
        if address:
            self._pool_cache[token_mint] = address
        return address

    async def fetch_candles(self, token_mint: str) -> List[Candle]:
        pool = await self._resolve_pool(token_mint)
        if not pool:
            return []

        data = await self._get_json(
            f"/networks/{self._network}/pools/{pool}/ohlcv/minute",
            {"aggregate": 1, "limit": self._limit},
        )
        rows = ((data.get("data") or {}).get("attributes") or {}).get("ohlcv_list") or []

        candles = []
        for row in rows:
            if len(row) < 6:
                continue
            ts, o, h, l, c, v = row[:6]
            candles.append(
                Candle(
                    timestamp=int(ts) * 1000,
                    open=float(o),
                    high=float(h),
                    low=float(l),
                    close=float(c),
                    volume=float(v),
                )
            )

        candles.sort(key=lambda c: c.timestamp, reverse=True)
        return candles
