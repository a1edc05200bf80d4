from __future__ import annotations

import math
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple
import numpy as np

from config import CONTROL_LIMITS, SAMPLE_RATE


def _clamp(value: Any, name: str, default: float) -> float:
    lo, hi = CONTROL_LIMITS[name]
    try:
        v = float(value)
    except (TypeError, ValueError):
        return float(default)
    if not math.isfinite(v):
        return float(default)
    return max(lo, min(hi, v))


@dataclass
class ChannelParams:
    snr_db: float = 30.0          # dB, unconstrained
    fading_depth: float = 0.0     # [0, 0.95]

    def clamped(self) -> "ChannelParams":
        snr = float(self.snr_db) if math.isfinite(float(self.snr_db)) else 30.0
        depth = float(self.fading_depth) if math.isfinite(float(self.fading_depth)) else 0.0
        return ChannelParams(snr_db=snr, fading_depth=max(0.0, min(0.95, depth)))

    @classmethod
    def coerce(cls, channel: Any) -> "ChannelParams":
        """Accept a ChannelParams, a mapping ({snrDb, fadingDepth} or snake_case) or None."""
        if isinstance(channel, ChannelParams):
            return channel.clamped()
        if isinstance(channel, Mapping):
            snr = channel.get("snr_db", channel.get("snrDb", 30.0))
            depth = channel.get("fading_depth", channel.get("fadingDepth", 0.0))
            try:
                snr = float(snr)
            except (TypeError, ValueError):
                snr = 30.0
            try:
                depth = float(depth)
            except (TypeError, ValueError):
                depth = 0.0
            return cls(snr_db=snr, fading_depth=depth).clamped()
        return cls()


@dataclass
class ModulationParams:
    carrier_freq: float = 250.0      # Hz
    message_freq: float = 20.0       # Hz
    carrier_amp: float = 1.0
    message_amp: float = 1.0
    mod_index: float = 0.8           # AM mu / PM kp
    freq_dev: float = 60.0           # FM kf / FSK tone spacing (Hz)
    bit_rate: float = 120.0          # bit/s
    duration: float = 0.08           # s
    receiver_fc: Optional[float] = None   # None tracks the (clamped) carrier
    receiver_phase: float = 0.0      # rad
    receiver_model: str = "manual"   # "manual" | "pll"
    timing_recovery: bool = False
    channel: ChannelParams = field(default_factory=ChannelParams)

    def __post_init__(self) -> None:
        if isinstance(self.channel, Mapping):
            self.channel = ChannelParams.coerce(self.channel)

    def clamped(self) -> "ModulationParams":
        """Copy with every physical quantity forced into its sane range."""
        fc = _clamp(self.carrier_freq, "carrierFreq", 250.0)
        rx_fc = float(self.receiver_fc) if self.receiver_fc is not None else fc
        if not math.isfinite(rx_fc):
            rx_fc = fc
        rx_phase = float(self.receiver_phase)
        return replace(
            self,
            carrier_freq=fc,
            message_freq=_clamp(self.message_freq, "messageFreq", 20.0),
            carrier_amp=_clamp(self.carrier_amp, "carrierAmp", 1.0),
            message_amp=_clamp(self.message_amp, "messageAmp", 1.0),
            mod_index=_clamp(self.mod_index, "modIndex", 0.8),
            freq_dev=_clamp(self.freq_dev, "freqDev", 60.0),
            bit_rate=_clamp(self.bit_rate, "bitRate", 120.0),
            duration=_clamp(self.duration, "duration", 0.08),
            receiver_fc=max(1.0, min(SAMPLE_RATE / 2.0, rx_fc)),
            receiver_phase=rx_phase if math.isfinite(rx_phase) else 0.0,
            receiver_model=str(self.receiver_model or "manual").lower(),
            timing_recovery=bool(self.timing_recovery),
            channel=ChannelParams.coerce(self.channel),
        )

    @classmethod
    def from_controls(cls, controls: Mapping[str, Any]) -> "ModulationParams":
        """
        Build params from UI-style controls (camelCase keys). The receiver is
        given as an offset from the carrier (Hz) and a phase offset (degrees).
        """
        fc = _clamp(controls.get("carrierFreq", 250.0), "carrierFreq", 250.0)
        offset = _clamp(controls.get("rxCarrierOffset", 0.0), "rxCarrierOffset", 0.0)
        phase_deg = _clamp(controls.get("rxPhaseOffset", 0.0), "rxPhaseOffset", 0.0)
        return cls(
            carrier_freq=fc,
            message_freq=_clamp(controls.get("messageFreq", 20.0), "messageFreq", 20.0),
            carrier_amp=_clamp(controls.get("carrierAmp", 1.0), "carrierAmp", 1.0),
            message_amp=_clamp(controls.get("messageAmp", 1.0), "messageAmp", 1.0),
            mod_index=_clamp(controls.get("modIndex", 0.8), "modIndex", 0.8),
            freq_dev=_clamp(controls.get("freqDev", 60.0), "freqDev", 60.0),
            bit_rate=_clamp(controls.get("bitRate", 120.0), "bitRate", 120.0),
            duration=_clamp(controls.get("duration", 0.08), "duration", 0.08),
            receiver_fc=fc + offset,
            receiver_phase=phase_deg * math.pi / 180.0,
            receiver_model=str(controls.get("receiverModel", "manual")),
            timing_recovery=bool(controls.get("timingRecovery", False)),
            channel=ChannelParams(
                snr_db=_clamp(controls.get("snrDb", 24.0), "snrDb", 24.0),
                fading_depth=_clamp(controls.get("fadingDepth", 0.0), "fadingDepth", 0.0),
            ),
        )


@dataclass(frozen=True)
class WaveformResult:
    baseband: np.ndarray
    tx_signal: np.ndarray
    rx_signal: np.ndarray
    demodulated: np.ndarray
    constellation: List[Tuple[float, float]] = field(default_factory=list)
    tx_bits: List[int] = field(default_factory=list)
    rx_bits: List[int] = field(default_factory=list)
    tx_symbols: List[str] = field(default_factory=list)
    rx_symbols: List[str] = field(default_factory=list)
    meta: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def empty(cls, meta: Optional[Dict[str, Any]] = None) -> "WaveformResult":
        e = np.array([], dtype=float)
        return cls(baseband=e, tx_signal=e.copy(), rx_signal=e.copy(), demodulated=e.copy(), meta=dict(meta or {}))


def make_time_axis(num_samples: int, fs: float) -> np.ndarray:
    return np.arange(num_samples, dtype=float) / float(fs)


def build_time_base(duration: float, sample_rate: float = SAMPLE_RATE) -> np.ndarray:
    # never fewer than 64 samples, even for tiny durations
    n = max(64, int(math.floor(float(duration) * float(sample_rate))))
    return make_time_axis(n, sample_rate)


def normalize(signal: Sequence[float]) -> np.ndarray:
    """
    Scale by peak absolute value. Non-finite samples are dropped to 0 and do
    not take part in the peak search; a peak below 1e-9 gives all zeros.
    """
    x = np.asarray(signal, dtype=float)
    if x.size == 0:
        return x.copy()
    finite = np.isfinite(x)
    x = np.where(finite, x, 0.0)
    peak = float(np.max(np.abs(x)))
    if peak < 1e-9:
        return np.zeros_like(x)
    return x / max(peak, 1e-9)


def moving_average(x: np.ndarray, win: int) -> np.ndarray:
    """
    Moving average with reflect-padding to avoid edge artifacts.
    Output length == input length; the window is centered (zero delay).
    """
    x = np.asarray(x, dtype=float)
    win = int(max(1, math.floor(win)))
    if win <= 1 or x.size < 2:
        return x.copy()

    # odd window keeps the output centered and length-exact
    if win % 2 == 0:
        win += 1

    pad = win // 2
    xpad = np.pad(x, (pad, pad), mode="reflect")
    k = np.ones(win, dtype=float) / float(win)
    return np.convolve(xpad, k, mode="valid")


def unwrap_phase(phase: np.ndarray) -> np.ndarray:
    phase = np.asarray(phase, dtype=float)
    if phase.size == 0:
        return phase.copy()
    return np.unwrap(phase)


def coherent_iq(
    signal: np.ndarray, t: np.ndarray, rx_fc: float, rx_phase: float, lpf_window: int
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Down-convert with the receiver oscillator and low-pass both rails.
    For signal = A cos(2π f t + φ) and a matched oscillator, I ≈ A cos(φ - φrx),
    Q ≈ A sin(φ - φrx).
    """
    signal = np.asarray(signal, dtype=float)
    t = np.asarray(t, dtype=float)
    theta = 2 * np.pi * float(rx_fc) * t + float(rx_phase)
    i_raw = 2.0 * signal * np.cos(theta)
    q_raw = -2.0 * signal * np.sin(theta)
    return moving_average(i_raw, lpf_window), moving_average(q_raw, lpf_window)


def param_warnings(params: ModulationParams, extra_freqs: Sequence[float] = (), symbol_samples: Optional[int] = None) -> List[str]:
    warnings: List[str] = []
    nyq = SAMPLE_RATE / 2.0
    rx_fc = params.carrier_freq if params.receiver_fc is None else params.receiver_fc
    all_freqs = [float(params.carrier_freq), float(rx_fc)] + [float(x) for x in extra_freqs]
    for f in all_freqs:
        if f <= 0:
            warnings.append(f"Frequency {f:.3g} Hz is non-positive; results may be invalid.")
        if f >= nyq:
            warnings.append(f"Frequency {f:.3g} Hz >= Nyquist ({nyq:.3g} Hz): aliasing likely.")
    if symbol_samples is not None and symbol_samples <= 4:
        warnings.append("Symbols span very few samples; demod decisions may be unstable.")
    return warnings
