from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
import numpy as np

from channel import apply_channel
from config import LEVEL_TO_BITS, SAMPLE_RATE
from receiver import (
    ReceiverEstimate,
    estimate_adaptive_receiver_state,
    symbol_samples_for_scheme,
    window_shift,
)
from rng import SimRng, resolve
from utils import ModulationParams, WaveformResult, param_warnings

logger = logging.getLogger(__name__)

QAM_NORM = 1.0 / math.sqrt(10.0)

# ----------------------------
# Mapping tables
# ----------------------------

# QPSK Gray mapping (00,01,11,10) -> carrier phase
_QPSK_PHASE: Dict[Tuple[int, int], float] = {
    (0, 0): math.pi / 4,
    (0, 1): 3 * math.pi / 4,
    (1, 1): -3 * math.pi / 4,
    (1, 0): -math.pi / 4,
}

# 16-QAM Gray per axis: 2 bits -> level in {-3,-1,+1,+3}
_16QAM_AXIS_MAP: Dict[Tuple[int, int], int] = {
    (0, 0): -3,
    (0, 1): -1,
    (1, 1): 1,
    (1, 0): 3,
}

_QAM_LEVELS = (-3, -1, 1, 3)


# ----------------------------
# Small utilities
# ----------------------------

def bits_to_waveform(bits: Sequence[int], samples_per_bit: int) -> np.ndarray:
    """NRZ: bit 1 -> +1, bit 0 -> -1, each held for samples_per_bit samples."""
    levels = np.where(np.asarray(bits, dtype=int) == 1, 1.0, -1.0)
    return np.repeat(levels, max(1, int(samples_per_bit)))


def map_2bits_to_level(b1: int, b0: int) -> int:
    return _16QAM_AXIS_MAP.get((int(b1), int(b0)), 3)


def quantize_level(value: float) -> int:
    """Nearest of {-3,-1,+1,+3}; first level wins on ties."""
    best = _QAM_LEVELS[0]
    best_err = math.inf
    for level in _QAM_LEVELS:
        err = abs(float(value) - level)
        if err < best_err:
            best_err = err
            best = level
    return best


def decode_qpsk_quadrant(i_comp: float, q_comp: float) -> Tuple[int, int]:
    if i_comp >= 0 and q_comp >= 0:
        return 0, 0
    if i_comp < 0 and q_comp >= 0:
        return 0, 1
    if i_comp < 0 and q_comp < 0:
        return 1, 1
    return 1, 0


def integrate_segment(signal: Sequence[float], start: float, end: float, tone: Callable[[np.ndarray], Any]) -> float:
    """
    sum(signal[i] * tone(i)) over i in [start, end), with both bounds clamped
    into [0, len(signal)]. `tone` receives the index array.
    """
    x = np.asarray(signal, dtype=float)
    n = int(x.size)
    try:
        lo = max(0, min(n, int(math.floor(start))))
        hi = max(0, min(n, int(math.floor(end))))
    except (OverflowError, ValueError):
        return 0.0
    if hi <= lo:
        return 0.0
    idx = np.arange(lo, hi)
    return float(np.sum(x[lo:hi] * np.asarray(tone(idx), dtype=float)))


def required_pool_size(bit_count: int) -> int:
    return 4 * int(bit_count) + 32


def _lookup_level_bits(level_to_bits: Mapping[Any, Sequence[int]], level: int) -> Tuple[int, int]:
    bits = level_to_bits.get(level)
    if bits is None:
        bits = level_to_bits.get(str(level))
    if bits is None:
        return 0, 0
    return int(bits[0]), int(bits[1])


def _iq_window(rx: np.ndarray, t: np.ndarray, start: int, end: int, fc: float, phase: float) -> Tuple[float, float]:
    """
    Coherent I/Q correlator over one window, scaled by 2/len so that a symbol
    Ac*(I cos - Q sin) comes back as (Ac*I, Ac*Q).
    """
    length = max(1, end - start)
    i_sum = integrate_segment(rx, start, end, lambda k: np.cos(2 * np.pi * fc * t[k] + phase))
    q_sum = integrate_segment(rx, start, end, lambda k: np.sin(2 * np.pi * fc * t[k] + phase))
    return (2.0 / length) * i_sum, (-2.0 / length) * q_sum


# ----------------------------
# Per-scheme modulators / detectors
# ----------------------------

@dataclass(frozen=True)
class SymbolPlan:
    bits: Tuple[int, ...]
    label: str


@dataclass(frozen=True)
class Detection:
    bits: Tuple[int, ...]
    label: str
    point: Tuple[float, float]
    level: float


def _linear_tx(amps: np.ndarray, t: np.ndarray, params: ModulationParams) -> np.ndarray:
    # Ac * Re{a * e^{j 2π fc t}} = Ac * (Re a cos - Im a sin)
    theta = 2 * np.pi * float(params.carrier_freq) * t
    return float(params.carrier_amp) * (amps.real * np.cos(theta) - amps.imag * np.sin(theta))


def _plan_binary(bits: Sequence[int], count: int) -> List[SymbolPlan]:
    return [SymbolPlan((int(bits[k]),), str(int(bits[k]))) for k in range(count)]


def _plan_qpsk(bits: Sequence[int], count: int) -> List[SymbolPlan]:
    out = []
    for k in range(count):
        b1, b0 = int(bits[2 * k]), int(bits[2 * k + 1])
        out.append(SymbolPlan((b1, b0), f"{b1}{b0}"))
    return out


def _plan_qam16(bits: Sequence[int], count: int) -> List[SymbolPlan]:
    out = []
    for k in range(count):
        b1, b0, b3, b2 = (int(b) for b in bits[4 * k: 4 * k + 4])
        i_level = map_2bits_to_level(b1, b0)
        q_level = map_2bits_to_level(b3, b2)
        out.append(SymbolPlan((b1, b0, b3, b2), f"{i_level},{q_level}"))
    return out


def _amps_ask(plan: SymbolPlan) -> complex:
    return complex(0.2 + 0.8 * plan.bits[0], 0.0)


def _amps_bpsk(plan: SymbolPlan) -> complex:
    return complex(1.0 if plan.bits[0] == 1 else -1.0, 0.0)


def _amps_qpsk(plan: SymbolPlan) -> complex:
    phi = _QPSK_PHASE[(plan.bits[0], plan.bits[1])]
    return complex(math.cos(phi), math.sin(phi))


def _amps_qam16(plan: SymbolPlan) -> complex:
    b1, b0, b3, b2 = plan.bits
    return complex(map_2bits_to_level(b1, b0) * QAM_NORM, map_2bits_to_level(b3, b2) * QAM_NORM)


def _modulate_linear(amp_fn: Callable[[SymbolPlan], complex]):
    def modulate(plan: List[SymbolPlan], sym_idx: np.ndarray, t: np.ndarray, params: ModulationParams) -> np.ndarray:
        table = np.array([amp_fn(p) for p in plan], dtype=complex)
        return _linear_tx(table[sym_idx], t, params)
    return modulate


def _modulate_fsk(plan: List[SymbolPlan], sym_idx: np.ndarray, t: np.ndarray, params: ModulationParams) -> np.ndarray:
    f0 = float(params.carrier_freq) - float(params.freq_dev) / 2.0
    f1 = float(params.carrier_freq) + float(params.freq_dev) / 2.0
    bits = np.array([p.bits[0] for p in plan], dtype=int)[sym_idx]
    f = np.where(bits == 1, f1, f0)
    return float(params.carrier_amp) * np.cos(2 * np.pi * f * t)


Windows = List[Tuple[int, int]]


def _detect_ask(rx, t, windows: Windows, est: ReceiverEstimate, params, level_to_bits) -> List[Detection]:
    points = [_iq_window(rx, t, a, z, est.receiver_fc, est.receiver_phase) for a, z in windows]
    comps = np.array([p[0] for p in points], dtype=float)
    finite = comps[np.isfinite(comps)]
    thr = 0.5 * (float(np.max(finite)) + float(np.min(finite))) if finite.size else 0.0
    out = []
    for (i_c, q_c) in points:
        b = 1 if i_c > thr else 0
        out.append(Detection((b,), str(b), (i_c, q_c), 1.0 if b else -1.0))
    return out


def _detect_fsk(rx, t, windows: Windows, est: ReceiverEstimate, params, level_to_bits) -> List[Detection]:
    rf0 = est.receiver_fc - float(params.freq_dev) / 2.0
    rf1 = est.receiver_fc + float(params.freq_dev) / 2.0
    out = []
    for a, z in windows:
        i0, q0 = _iq_window(rx, t, a, z, rf0, est.receiver_phase)
        i1, q1 = _iq_window(rx, t, a, z, rf1, est.receiver_phase)
        e0 = i0 * i0 + q0 * q0
        e1 = i1 * i1 + q1 * q1
        b = 1 if e1 > e0 else 0
        out.append(Detection((b,), str(b), (math.sqrt(e1), math.sqrt(e0)), 1.0 if b else -1.0))
    return out


def _detect_bpsk(rx, t, windows: Windows, est: ReceiverEstimate, params, level_to_bits) -> List[Detection]:
    out = []
    for a, z in windows:
        i_c, q_c = _iq_window(rx, t, a, z, est.receiver_fc, est.receiver_phase)
        b = 1 if i_c >= 0 else 0
        out.append(Detection((b,), str(b), (i_c, q_c), 1.0 if b else -1.0))
    return out


def _detect_qpsk(rx, t, windows: Windows, est: ReceiverEstimate, params, level_to_bits) -> List[Detection]:
    out = []
    for a, z in windows:
        i_c, q_c = _iq_window(rx, t, a, z, est.receiver_fc, est.receiver_phase)
        b1, b0 = decode_qpsk_quadrant(i_c, q_c)
        out.append(Detection((b1, b0), f"{b1}{b0}", (i_c, q_c), 1.0 if b1 else -1.0))
    return out


def _detect_qam16(rx, t, windows: Windows, est: ReceiverEstimate, params, level_to_bits) -> List[Detection]:
    ac = max(1e-9, float(params.carrier_amp))
    out = []
    for a, z in windows:
        i_c, q_c = _iq_window(rx, t, a, z, est.receiver_fc, est.receiver_phase)
        # back to the {-3,-1,1,3} grid
        i_lv = (i_c / ac) / QAM_NORM
        q_lv = (q_c / ac) / QAM_NORM
        i_hat = quantize_level(i_lv)
        q_hat = quantize_level(q_lv)
        ib = _lookup_level_bits(level_to_bits, i_hat)
        qb = _lookup_level_bits(level_to_bits, q_hat)
        out.append(Detection(ib + qb, f"{i_hat},{q_hat}", (i_lv, q_lv), 1.0 if i_hat > 0 else -1.0))
    return out


@dataclass(frozen=True)
class DigitalScheme:
    id: str
    bits_per_symbol: int
    min_symbols: int
    plan: Callable[[Sequence[int], int], List[SymbolPlan]]
    modulate: Callable[..., np.ndarray]
    detect: Callable[..., List[Detection]]


DIGITAL_SCHEMES: Dict[str, DigitalScheme] = {
    "ask": DigitalScheme("ask", 1, 16, _plan_binary, _modulate_linear(_amps_ask), _detect_ask),
    "fsk": DigitalScheme("fsk", 1, 16, _plan_binary, _modulate_fsk, _detect_fsk),
    "bpsk": DigitalScheme("bpsk", 1, 16, _plan_binary, _modulate_linear(_amps_bpsk), _detect_bpsk),
    "qpsk": DigitalScheme("qpsk", 2, 8, _plan_qpsk, _modulate_linear(_amps_qpsk), _detect_qpsk),
    "qam16": DigitalScheme("qam16", 4, 6, _plan_qam16, _modulate_linear(_amps_qam16), _detect_qam16),
}


def _detection_windows(symbol_count: int, symbol_samples: int, shift: int, n: int) -> Windows:
    windows: Windows = []
    for k in range(symbol_count):
        start = k * symbol_samples + shift
        end = start + symbol_samples
        a, z = max(0, start), min(n, end)
        if z <= a:
            # past the end of the buffer
            continue
        windows.append((a, z))
    return windows


# ----------------------------
# Modulation + channel + demodulation
# ----------------------------

def generate_digital(
    t: np.ndarray,
    params: ModulationParams,
    scheme_id: str,
    bit_pool: Optional[Sequence[int]] = None,
    level_to_bits: Mapping[Any, Sequence[int]] = LEVEL_TO_BITS,
    *,
    rng: Optional[SimRng] = None,
) -> WaveformResult:
    scheme = DIGITAL_SCHEMES.get(scheme_id)
    if scheme is None:
        raise ValueError(f"Unsupported digital scheme: {scheme_id}")

    t = np.asarray(t, dtype=float)
    n = int(t.size)
    if n == 0:
        return WaveformResult.empty({"scheme": scheme_id})

    params = params.clamped()
    src = resolve(rng)

    bit_samples = max(4, int(SAMPLE_RATE // float(params.bit_rate)))
    bit_count = max(16, n // bit_samples)
    needed = required_pool_size(bit_count)
    if bit_pool is not None and len(bit_pool) >= needed:
        pool = [int(b) for b in bit_pool]
    else:
        logger.debug("bit pool too short (%s < %d); drawing %d fresh bits",
                     None if bit_pool is None else len(bit_pool), needed, needed + 64)
        pool = src.random_bits(needed + 64)

    S = symbol_samples_for_scheme(scheme_id, bit_samples)
    symbol_count = max(scheme.min_symbols, n // S)
    # a trailing partial symbol is transmitted but never detected
    plan = scheme.plan(pool, max(symbol_count, -(-n // S)))

    sym_idx = np.arange(n) // S
    tx = scheme.modulate(plan, sym_idx, t, params)

    rx = apply_channel(tx, t, params.channel, rng=src)

    est = estimate_adaptive_receiver_state(rx, t, params, scheme_id, bit_samples)
    shift = window_shift(est.timing_offset, S)
    windows = _detection_windows(symbol_count, S, shift, n)
    detections = scheme.detect(rx, t, windows, est, params, level_to_bits)

    demod = np.zeros(n, dtype=float)
    for (a, z), det in zip(windows, detections):
        demod[a:z] = det.level

    # transmit side trimmed to what the receiver actually sampled
    sent = plan[: len(detections)]
    tx_bits = [b for p in sent for b in p.bits]
    rx_bits = [b for d in detections for b in d.bits]

    baseband = bits_to_waveform(pool[: -(-n // bit_samples)], bit_samples)[:n]

    extra = []
    if scheme_id == "fsk":
        extra = [params.carrier_freq - params.freq_dev / 2.0, params.carrier_freq + params.freq_dev / 2.0]
    warnings = param_warnings(params, extra_freqs=extra, symbol_samples=S)
    for w in warnings:
        logger.warning("%s: %s", scheme_id, w)

    meta: Dict[str, Any] = {
        "scheme": scheme_id,
        "bits_per_symbol": scheme.bits_per_symbol,
        "bit_samples": bit_samples,
        "bit_count": bit_count,
        "symbol_samples": S,
        "symbol_count": symbol_count,
        "detected_symbols": len(detections),
        "receiver": {
            "model": params.receiver_model,
            "receiver_fc": est.receiver_fc,
            "receiver_phase": est.receiver_phase,
            "timing_offset": est.timing_offset,
            "window_shift": shift,
        },
        "warnings": warnings,
    }

    return WaveformResult(
        baseband=baseband,
        tx_signal=tx,
        rx_signal=rx,
        demodulated=demod,
        constellation=[d.point for d in detections],
        tx_bits=tx_bits,
        rx_bits=rx_bits,
        tx_symbols=[p.label for p in sent],
        rx_symbols=[d.label for d in detections],
        meta=meta,
    )
