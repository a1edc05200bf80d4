from __future__ import annotations

from typing import NamedTuple, Sequence
import numpy as np

from config import SAMPLE_RATE


class ErrorRate(NamedTuple):
    errors: int
    total: int
    rate: float


class Spectrum(NamedTuple):
    freq: np.ndarray
    mag_db: np.ndarray


def compute_correlation(a: Sequence[float], b: Sequence[float]) -> float:
    """Pearson correlation over the shared prefix (0 when either is empty)."""
    a = np.asarray(a, dtype=float)
    b = np.asarray(b, dtype=float)
    n = min(a.size, b.size)
    if n == 0:
        return 0.0
    da = a[:n] - np.mean(a[:n])
    db = b[:n] - np.mean(b[:n])
    num = float(np.sum(da * db))
    den = float(np.sqrt(np.sum(da * da) * np.sum(db * db)))
    return num / max(1e-9, den)


def _error_rate(tx: Sequence, rx: Sequence) -> ErrorRate:
    total = min(len(tx), len(rx))
    if total == 0:
        return ErrorRate(0, 0, 0.0)
    errors = sum(1 for i in range(total) if tx[i] != rx[i])
    return ErrorRate(errors, total, errors / total)


def compute_bit_error_rate(tx_bits: Sequence[int], rx_bits: Sequence[int]) -> ErrorRate:
    return _error_rate(tx_bits, rx_bits)


def compute_symbol_error_rate(tx_symbols: Sequence[str], rx_symbols: Sequence[str]) -> ErrorRate:
    return _error_rate(tx_symbols, rx_symbols)


def nearest_power_of_2(n: int) -> int:
    """Largest power of two <= n (1 for n < 2)."""
    n = int(n)
    if n < 2:
        return 1
    return 1 << (n.bit_length() - 1)


def compute_spectrum(signal: Sequence[float], sample_rate: float = SAMPLE_RATE) -> Spectrum:
    """
    Hann-windowed one-sided magnitude spectrum of the first n samples,
    n = min(512, largest power of two <= len(signal)).
      mag_db[k] = 20 log10(|X[k]|/n + 1e-8),  freq[k] = k * fs / n,  k < n/2
    """
    x = np.asarray(signal, dtype=float)
    if x.size < 2:
        return Spectrum(np.array([], dtype=float), np.array([], dtype=float))

    n = min(512, nearest_power_of_2(x.size))
    w = np.hanning(n)  # symmetric, (n-1) denominator
    X = np.fft.fft(x[:n] * w)
    half = n // 2
    mag = np.abs(X[:half]) / n
    freq = np.arange(half, dtype=float) * float(sample_rate) / n
    return Spectrum(freq, 20.0 * np.log10(mag + 1e-8))
