from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional

import numpy as np

from channel import apply_channel
from config import SAMPLE_RATE
from rng import SimRng, resolve
from utils import ModulationParams, WaveformResult, coherent_iq, moving_average, normalize, param_warnings, unwrap_phase

logger = logging.getLogger(__name__)


# -----------------------------
# Modulators (m_n is the peak-normalized message)
# -----------------------------
def am_lc_modulate(mn: np.ndarray, t: np.ndarray, *, Ac: float, fc: float, mu: float) -> np.ndarray:
    """
    Conventional AM (DSB-LC):
      s(t) = Ac * [1 + mu * m_n(t)] * cos(2π f_c t)
    """
    return float(Ac) * (1.0 + float(mu) * mn) * np.cos(2 * np.pi * float(fc) * t)


def am_sc_modulate(mn: np.ndarray, t: np.ndarray, *, Ac: float, fc: float) -> np.ndarray:
    return float(Ac) * mn * np.cos(2 * np.pi * float(fc) * t)


def fm_modulate(mn: np.ndarray, t: np.ndarray, *, Ac: float, fc: float, kf: float, fs: float = SAMPLE_RATE) -> np.ndarray:
    """
    Frequency modulation (FM):
      s(t) = Ac cos( 2π f_c t + 2π kf ∫ m_n(τ) dτ )

    kf is a frequency sensitivity in Hz per unit amplitude, so the
    instantaneous frequency is f_c + kf*m_n(t).
    """
    integral = np.cumsum(mn) / float(fs)  # rectangular integration
    phase = 2 * np.pi * float(fc) * t + 2 * np.pi * float(kf) * integral
    return float(Ac) * np.cos(phase)


def pm_modulate(mn: np.ndarray, t: np.ndarray, *, Ac: float, fc: float, kp: float) -> np.ndarray:
    """
    Phase modulation (PM):
      s(t) = Ac cos(2π f_c t + kp * m_n(t))
    """
    return float(Ac) * np.cos(2 * np.pi * float(fc) * t + float(kp) * mn)


# -----------------------------
# Demodulators
# -----------------------------
def am_lc_demodulate(rx: np.ndarray, *, fm: float) -> np.ndarray:
    """Envelope detector: LPF{|r(t)|} with the DC (carrier) level removed."""
    win = max(3, int(SAMPLE_RATE // (float(fm) * 4.5)))
    env = moving_average(np.abs(rx), win)
    return env - float(np.mean(env))


def am_sc_demodulate(rx: np.ndarray, *, t: np.ndarray, frx: float, phi_rx: float, fm: float) -> np.ndarray:
    """Synchronous detector: LPF{2 r(t) cos(2π f_rx t + φ_rx)}."""
    win = max(3, int(SAMPLE_RATE // (float(fm) * 4.0)))
    mixed = 2.0 * rx * np.cos(2 * np.pi * float(frx) * t + float(phi_rx))
    return moving_average(mixed, win)


def _carrier_phase(rx: np.ndarray, t: np.ndarray, frx: float, phi_rx: float, fm: float) -> np.ndarray:
    """
    Absolute received carrier phase: the unwrapped I/Q angle plus the
    oscillator phase the down-conversion took out.
    """
    win = max(5, int(SAMPLE_RATE // (float(fm) * 6.0)))
    i, q = coherent_iq(rx, t, frx, phi_rx, win)
    return unwrap_phase(np.arctan2(q, i)) + 2 * np.pi * float(frx) * t + float(phi_rx)


def fm_demodulate(rx: np.ndarray, *, t: np.ndarray, frx: float, phi_rx: float, fm: float, kf: float) -> np.ndarray:
    """
    Instantaneous-frequency discriminator:
      f_i = (1/2π) dφ/dt,   m_hat = (f_i - f_rx) / kf
    """
    phase = _carrier_phase(rx, t, frx, phi_rx, fm)
    out = np.zeros_like(phase)
    if phase.size < 2:
        return out
    f_inst = np.diff(phase) * SAMPLE_RATE / (2 * np.pi)
    out[1:] = (f_inst - float(frx)) / max(1.0, float(kf))
    out[0] = out[1]
    return out


def pm_demodulate(rx: np.ndarray, *, t: np.ndarray, frx: float, phi_rx: float, fm: float, kp: float) -> np.ndarray:
    """m_hat = (φ(t) - 2π f_rx t) / kp"""
    phase = _carrier_phase(rx, t, frx, phi_rx, fm)
    return (phase - 2 * np.pi * float(frx) * t) / max(1e-9, float(kp))


# -----------------------------
# Scheme registry
# -----------------------------
@dataclass(frozen=True)
class AnalogScheme:
    id: str
    modulate: Callable[[np.ndarray, np.ndarray, ModulationParams], np.ndarray]
    demodulate: Callable[[np.ndarray, np.ndarray, ModulationParams], np.ndarray]


ANALOG_SCHEMES: Dict[str, AnalogScheme] = {
    "am_dsb_lc": AnalogScheme(
        "am_dsb_lc",
        lambda mn, t, p: am_lc_modulate(mn, t, Ac=p.carrier_amp, fc=p.carrier_freq, mu=p.mod_index),
        lambda rx, t, p: am_lc_demodulate(rx, fm=p.message_freq),
    ),
    "am_dsb_sc": AnalogScheme(
        "am_dsb_sc",
        lambda mn, t, p: am_sc_modulate(mn, t, Ac=p.carrier_amp, fc=p.carrier_freq),
        lambda rx, t, p: am_sc_demodulate(rx, t=t, frx=p.receiver_fc, phi_rx=p.receiver_phase, fm=p.message_freq),
    ),
    "fm": AnalogScheme(
        "fm",
        lambda mn, t, p: fm_modulate(mn, t, Ac=p.carrier_amp, fc=p.carrier_freq, kf=p.freq_dev),
        lambda rx, t, p: fm_demodulate(
            rx, t=t, frx=p.receiver_fc, phi_rx=p.receiver_phase, fm=p.message_freq, kf=p.freq_dev
        ),
    ),
    "pm": AnalogScheme(
        "pm",
        lambda mn, t, p: pm_modulate(mn, t, Ac=p.carrier_amp, fc=p.carrier_freq, kp=p.mod_index),
        lambda rx, t, p: pm_demodulate(
            rx, t=t, frx=p.receiver_fc, phi_rx=p.receiver_phase, fm=p.message_freq, kp=p.mod_index
        ),
    ),
}


def _scheme_meta(scheme_id: str, params: ModulationParams) -> Dict[str, Any]:
    fm = float(params.message_freq)
    if scheme_id in ("am_dsb_lc", "am_dsb_sc"):
        mu = abs(float(params.mod_index)) if scheme_id == "am_dsb_lc" else None
        Ac = float(params.carrier_amp)
        am: Dict[str, Any] = {"bandwidth_hint_hz": float(2.0 * fm)}  # DSB ≈ 2B, single-tone B≈fm
        if mu is not None:
            am.update({
                "modulation_index_mu": mu,
                "overmodulated": bool(mu > 1.0),
                "envelope_min_theory": float(Ac * (1.0 - mu)),
                "envelope_max_theory": float(Ac * (1.0 + mu)),
            })
        return {"am": am}

    if scheme_id == "fm":
        delta_f = abs(float(params.freq_dev))  # |m_n| peaks at 1
        return {"fm": {
            "kf_hz_per_unit": float(params.freq_dev),
            "delta_f_max_hz": delta_f,
            "beta_index": float(delta_f / fm) if fm > 0 else float("inf"),
            "bw_carson_hz": float(2.0 * (delta_f + fm)),
        }}

    kp = abs(float(params.mod_index))
    return {"pm": {
        "kp_rad_per_unit": float(params.mod_index),
        "delta_phi_max_rad": kp,
        "delta_f_max_hz_sine_approx": float(kp * fm),
        "bw_carson_hz_sine_approx": float(2.0 * (kp * fm + fm)),
    }}


# -----------------------------
# Modulation + channel + demodulation
# -----------------------------
def generate_analog(
    t: np.ndarray,
    params: ModulationParams,
    scheme_id: str,
    baseband: np.ndarray,
    *,
    rng: Optional[SimRng] = None,
) -> WaveformResult:
    """
    Analog message → analog carrier → channel → recovered message.

    Pipeline:
      1) Normalize the message by its peak
      2) Modulate (AM-LC / AM-SC / FM / PM)
      3) Fade + AWGN
      4) Demodulate with the receiver's frequency and phase
    """
    t = np.asarray(t, dtype=float)
    baseband = np.asarray(baseband, dtype=float)
    if t.size != baseband.size:
        raise ValueError(f"mismatched time/baseband arrays ({t.size} vs {baseband.size})")

    scheme = ANALOG_SCHEMES.get(scheme_id)
    if scheme is None:
        raise ValueError(f"Unsupported analog scheme: {scheme_id}")

    if t.size == 0:
        return WaveformResult.empty({"scheme": scheme_id})

    params = params.clamped()

    mn = normalize(baseband)
    tx = scheme.modulate(mn, t, params)
    rx = apply_channel(tx, t, params.channel, rng=resolve(rng))
    demod = scheme.demodulate(rx, t, params)

    warnings = param_warnings(params, extra_freqs=[params.message_freq])
    for w in warnings:
        logger.warning("%s: %s", scheme_id, w)

    meta: Dict[str, Any] = {
        "scheme": scheme_id,
        "fc": float(params.carrier_freq),
        "Ac": float(params.carrier_amp),
        "fm": float(params.message_freq),
        "receiver_fc": float(params.receiver_fc),
        "receiver_phase": float(params.receiver_phase),
        "warnings": warnings,
    }
    meta.update(_scheme_meta(scheme_id, params))

    return WaveformResult(
        baseband=baseband.copy(),
        tx_signal=tx,
        rx_signal=rx,
        demodulated=demod,
        meta=meta,
    )
