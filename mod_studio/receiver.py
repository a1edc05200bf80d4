from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional
import numpy as np

from config import PLL_LOOP_GAIN, PLL_MAX_FREQ_CORRECTION_HZ, SAMPLE_RATE
from utils import ModulationParams, coherent_iq, unwrap_phase

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReceiverEstimate:
    receiver_fc: float
    receiver_phase: float
    timing_offset: int = 0


def symbol_samples_for_scheme(scheme_id: str, bit_samples: int) -> int:
    if scheme_id == "qpsk":
        return int(bit_samples) * 2
    if scheme_id == "qam16":
        return int(bit_samples) * 4
    return int(bit_samples)


def modulation_order(scheme_id: str) -> int:
    """Power that strips the data modulation off the carrier (z^order)."""
    if scheme_id == "bpsk":
        return 2
    if scheme_id in ("qpsk", "qam16"):
        return 4
    return 1


def window_shift(offset: int, symbol_samples: int) -> int:
    """
    Map a timing offset in [0, S) to the nearest symbol boundary: offsets past
    half a symbol become negative shifts.
    """
    offset = int(offset)
    symbol_samples = int(symbol_samples)
    if symbol_samples > 0 and offset > symbol_samples // 2:
        return offset - symbol_samples
    return offset


def _downmix(rx: np.ndarray, t: np.ndarray, fc: float, phase: float) -> np.ndarray:
    theta = 2 * np.pi * fc * t + phase
    return rx * np.exp(-1j * theta)


def _phase_error(z: np.ndarray, scheme_id: str) -> float:
    order = modulation_order(scheme_id)
    if order == 2:
        return 0.5 * float(np.angle(np.sum(z * z)))
    if order == 4:
        z2 = z * z
        return 0.25 * float(np.angle(np.sum(z2 * z2)))
    return float(np.angle(np.sum(z)))


def _frequency_error_hz(
    rx: np.ndarray, t: np.ndarray, fc: float, phase: float, scheme_id: str, bit_samples: int
) -> Optional[float]:
    window = max(3, int(bit_samples) // 5)
    i, q = coherent_iq(rx, t, fc, phase, window)
    inst_phase = unwrap_phase(np.arctan2(q, i))
    if inst_phase.size <= 10:
        return None

    steps = np.diff(inst_phase)
    # symbol transitions show up as large jumps; only the slow drift counts
    steps = steps[np.isfinite(steps) & (np.abs(steps) < np.pi / 2)]
    if steps.size <= 4:
        return None

    mean_step = float(np.mean(steps))
    return mean_step * SAMPLE_RATE / (2 * np.pi * modulation_order(scheme_id))


def _timing_offset(rx: np.ndarray, symbol_samples: int) -> int:
    """
    Brute-force symbol phase search: score each candidate offset by the mean
    magnitude of the signal sampled once per symbol at that phase. The first
    offset reaching the maximum wins.
    """
    S = int(symbol_samples)
    eval_len = min(rx.size, S * 128)
    if S <= 1 or eval_len == 0:
        return 0

    mag = np.abs(rx[:eval_len])
    mag = np.where(np.isfinite(mag), mag, 0.0)

    best_offset = 0
    best_score = -math.inf
    for offset in range(S):
        picks = mag[offset:eval_len:S]
        score = float(np.sum(picks)) / max(1, picks.size)
        if score > best_score:
            best_score = score
            best_offset = offset
    return best_offset


def estimate_adaptive_receiver_state(
    rx: np.ndarray,
    t: np.ndarray,
    params: ModulationParams,
    scheme_id: str,
    bit_samples: int,
    *,
    loop_gain: float = PLL_LOOP_GAIN,
    max_freq_correction_hz: float = PLL_MAX_FREQ_CORRECTION_HZ,
) -> ReceiverEstimate:
    """
    One-shot receiver adaptation over the head of the received buffer.

    - "pll": carrier phase from the angle of sum(z^order) (order 2 for BPSK,
      4 for QPSK/16-QAM), then a frequency correction from the mean phase drift
      of the coherent I/Q pair, clamped to +/- max_freq_correction_hz. The phase
      is nudged once by loop_gain times the error; it is not re-estimated
      against the corrected oscillator.
    - timing recovery: symbol phase in [0, symbol_samples) with the largest
      mean |rx| when sampled once per symbol.
    Any other receiver model passes the configured frequency/phase through.
    """
    receiver_fc = float(params.carrier_freq if params.receiver_fc is None else params.receiver_fc)
    receiver_phase = float(params.receiver_phase)
    timing_offset = 0

    rx = np.asarray(rx, dtype=float)
    t = np.asarray(t, dtype=float)
    n = min(rx.size, t.size)
    if n == 0:
        return ReceiverEstimate(receiver_fc, receiver_phase, 0)
    rx, t = rx[:n], t[:n]

    sample_limit = min(n, max(128, int(bit_samples) * 64))
    if str(params.receiver_model).lower() == "pll" and sample_limit > 16:
        head_rx, head_t = rx[:sample_limit], t[:sample_limit]

        z = _downmix(head_rx, head_t, receiver_fc, receiver_phase)
        err = _phase_error(z, scheme_id)
        if math.isfinite(err):
            receiver_phase += float(loop_gain) * err

        freq_err = _frequency_error_hz(head_rx, head_t, receiver_fc, receiver_phase, scheme_id, bit_samples)
        if freq_err is not None and math.isfinite(freq_err):
            lim = abs(float(max_freq_correction_hz))
            receiver_fc += max(-lim, min(lim, freq_err))

    if params.timing_recovery:
        S = symbol_samples_for_scheme(scheme_id, bit_samples)
        timing_offset = _timing_offset(rx, S)

    logger.debug(
        "receiver estimate (%s, %s): fc=%.3f Hz phase=%.4f rad offset=%d",
        scheme_id, params.receiver_model, receiver_fc, receiver_phase, timing_offset,
    )
    return ReceiverEstimate(receiver_fc, receiver_phase, timing_offset)
