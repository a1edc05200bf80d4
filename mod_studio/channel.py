from __future__ import annotations

import logging
from typing import Any, Optional
import numpy as np

from config import SAMPLE_RATE
from rng import SimRng, resolve
from utils import ChannelParams

logger = logging.getLogger(__name__)

FADE_RATE_HZ = 2.0


def signal_power(signal: np.ndarray) -> float:
    """Mean-square power, floored at 1e-10 (NaN also lands on the floor)."""
    x = np.asarray(signal, dtype=float)
    if x.size == 0:
        return 1e-10
    p = float(np.mean(x * x))
    return max(1e-10, p) if p == p else 1e-10


def _fade_time(t: np.ndarray, n: int) -> np.ndarray:
    """Per-sample time for the fade; falls back to idx / fs where t is unusable."""
    fallback = np.arange(n, dtype=float) / SAMPLE_RATE
    t = np.asarray(t, dtype=float).ravel()
    if t.size == 0:
        return fallback
    tt = fallback.copy()
    m = min(n, t.size)
    head = t[:m]
    tt[:m] = np.where(np.isfinite(head), head, fallback[:m])
    return tt


def apply_channel(
    signal: np.ndarray,
    t: np.ndarray,
    channel: Any,
    *,
    rng: Optional[SimRng] = None,
) -> np.ndarray:
    """
    Slow amplitude fading followed by AWGN at the requested SNR.

      g(t)   = 1 - d + d * (0.5 + 0.5 sin(2π·2Hz·t))
      faded  = g(t) * x(t)
      sigma² = P(faded) / 10^(SNR/10)
    """
    x = np.asarray(signal, dtype=float)
    n = int(x.size)
    if n == 0:
        return np.array([], dtype=float)

    ch: ChannelParams = ChannelParams.coerce(channel)
    depth = ch.fading_depth

    tt = _fade_time(t, n)
    gain = 1.0 - depth + depth * (0.5 + 0.5 * np.sin(2 * np.pi * FADE_RATE_HZ * tt))
    faded = x * gain

    power = signal_power(faded)
    snr_linear = max(1e-9, 10.0 ** (ch.snr_db / 10.0))
    sigma = float(np.sqrt(power / snr_linear))

    noise = resolve(rng).gaussian(n)
    return faded + sigma * noise
