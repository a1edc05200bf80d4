from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional

import numpy as np

from a2a import generate_analog
from analysis import (
    ErrorRate,
    Spectrum,
    compute_bit_error_rate,
    compute_correlation,
    compute_spectrum,
    compute_symbol_error_rate,
)
from config import DEFAULT_CONTROLS, SAMPLE_RATE, SCENARIO_PRESETS
from d2a import generate_digital
from rng import SimRng, resolve
from schemes import SchemeDescriptor, generate_baseband, get_scheme
from utils import ModulationParams, WaveformResult, build_time_base, normalize

logger = logging.getLogger(__name__)

SHARED_POOL_BITS = 10000


@dataclass
class RunMetrics:
    correlation: Optional[float] = None
    ber: Optional[ErrorRate] = None
    ser: Optional[ErrorRate] = None
    bandwidth_hz: float = 0.0
    tx_spectrum: Optional[Spectrum] = None
    rx_spectrum: Optional[Spectrum] = None


@dataclass
class SimulationRun:
    scheme: SchemeDescriptor
    result: WaveformResult
    metrics: RunMetrics

    @property
    def metric_text(self) -> str:
        return format_metric_text(self.scheme, self.metrics)


@dataclass
class Simulation:
    t: np.ndarray
    params: ModulationParams
    controls: Dict[str, Any]
    primary: SimulationRun
    compare: Optional[SimulationRun] = None
    warnings: List[str] = field(default_factory=list)


def merge_controls(controls: Optional[Mapping[str, Any]] = None, preset: Optional[str] = None) -> Dict[str, Any]:
    """DEFAULT_CONTROLS <- scenario preset <- explicit controls."""
    merged: Dict[str, Any] = dict(DEFAULT_CONTROLS)
    if preset is not None:
        if preset not in SCENARIO_PRESETS:
            raise ValueError(f"Unknown scenario preset: {preset}")
        merged.update(SCENARIO_PRESETS[preset])
    if controls:
        merged.update(controls)
    return merged


def estimate_bandwidth_hz(scheme_id: str, params: ModulationParams) -> float:
    fm = float(params.message_freq)
    rb = float(params.bit_rate)
    if scheme_id in ("am_dsb_lc", "am_dsb_sc"):
        bw = 2.0 * fm
    elif scheme_id == "fm":
        bw = 2.0 * (float(params.freq_dev) + fm)           # Carson
    elif scheme_id == "pm":
        bw = 2.0 * fm * (1.0 + float(params.mod_index))
    elif scheme_id in ("ask", "bpsk"):
        bw = 2.0 * rb
    elif scheme_id == "fsk":
        bw = 2.0 * (float(params.freq_dev) + rb)
    elif scheme_id == "qpsk":
        bw = rb
    elif scheme_id == "qam16":
        bw = rb / 2.0
    else:
        bw = fm
    return max(1.0, bw)


def run_scheme(
    scheme: SchemeDescriptor,
    t: np.ndarray,
    params: ModulationParams,
    baseband_kind: str,
    shared_bits: Optional[List[int]],
    *,
    rng: Optional[SimRng] = None,
) -> WaveformResult:
    if scheme.digital:
        return generate_digital(t, params, scheme.id, shared_bits, rng=rng)
    baseband = generate_baseband(t, baseband_kind, params.message_amp, params.message_freq)
    return generate_analog(t, params, scheme.id, baseband, rng=rng)


def score_result(scheme: SchemeDescriptor, result: WaveformResult, params: ModulationParams) -> RunMetrics:
    metrics = RunMetrics(
        bandwidth_hz=estimate_bandwidth_hz(scheme.id, params),
        tx_spectrum=compute_spectrum(result.tx_signal, SAMPLE_RATE),
        rx_spectrum=compute_spectrum(result.rx_signal, SAMPLE_RATE),
    )
    if scheme.digital:
        metrics.ber = compute_bit_error_rate(result.tx_bits, result.rx_bits)
        metrics.ser = compute_symbol_error_rate(result.tx_symbols, result.rx_symbols)
    else:
        metrics.correlation = compute_correlation(normalize(result.baseband), normalize(result.demodulated))
    return metrics


def format_metric_text(scheme: SchemeDescriptor, metrics: RunMetrics) -> str:
    if scheme.digital:
        ber = metrics.ber or ErrorRate(0, 0, 0.0)
        ser = metrics.ser or ErrorRate(0, 0, 0.0)
        return (
            f"BER {ber.rate:.4f} ({ber.errors}/{ber.total}), "
            f"SER {ser.rate:.4f} ({ser.errors}/{ser.total})"
        )
    corr = metrics.correlation if metrics.correlation is not None else 0.0
    return f"Correlation(baseband, demod): {corr:.4f}"


def format_hz(hz: float) -> str:
    if hz >= 1000.0:
        return f"{hz / 1000.0:.2f} kHz"
    return f"{hz:.1f} Hz"


def _run(scheme, t, params, kind, shared_bits, rng) -> SimulationRun:
    result = run_scheme(scheme, t, params, kind, shared_bits, rng=rng)
    metrics = score_result(scheme, result, params)
    logger.debug("%s: %s, BW %s", scheme.id, format_metric_text(scheme, metrics), format_hz(metrics.bandwidth_hz))
    return SimulationRun(scheme=scheme, result=result, metrics=metrics)


def run_simulation(
    controls: Optional[Mapping[str, Any]] = None,
    *,
    seed: Optional[int] = None,
    rng: Optional[SimRng] = None,
) -> Simulation:
    """
    One full render: build the time base, run the primary scheme and (when
    compareMode is set and the schemes differ) the comparison scheme on the
    same bit pool, then score both.
    """
    merged = merge_controls(controls)
    if rng is None and seed is not None:
        rng = SimRng(seed)
    src = resolve(rng)

    primary_scheme = get_scheme(merged["scheme"])
    compare_scheme: Optional[SchemeDescriptor] = None
    if merged.get("compareMode"):
        candidate = get_scheme(merged.get("compareScheme", primary_scheme.id))
        if candidate.id != primary_scheme.id:
            compare_scheme = candidate

    params = ModulationParams.from_controls(merged).clamped()
    t = build_time_base(params.duration, SAMPLE_RATE)
    kind = str(merged.get("baseband", "sine"))

    need_bits = primary_scheme.digital or (compare_scheme is not None and compare_scheme.digital)
    shared_bits = src.random_bits(SHARED_POOL_BITS) if need_bits else None

    primary = _run(primary_scheme, t, params, kind, shared_bits, src)
    compare = _run(compare_scheme, t, params, kind, shared_bits, src) if compare_scheme else None

    warnings = list(primary.result.meta.get("warnings", []))
    if compare is not None:
        warnings += [w for w in compare.result.meta.get("warnings", []) if w not in warnings]

    return Simulation(t=t, params=params, controls=merged, primary=primary, compare=compare, warnings=warnings)
