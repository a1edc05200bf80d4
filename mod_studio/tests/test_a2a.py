# test_a2a.py
#
# Analog message → analog carrier unit tests for `generate_analog(...)`.
#
# Coverage goals:
#   1) Input validation & error paths (mismatched arrays, unknown scheme, empty input)
#   2) Output shape invariants + finiteness
#   3) Modulation identities (AM-LC / AM-SC / FM / PM)
#   4) Recovery quality through a quiet channel
#   5) Meta (AM overmodulation flag, FM Carson bandwidth, PM phase deviation, warnings)
#
# How to run
# ----------
#   pytest -q mod_studio/tests/test_a2a.py

from __future__ import annotations

import numpy as np
import pytest

from a2a import (
    ANALOG_SCHEMES,
    am_lc_modulate,
    am_sc_demodulate,
    fm_demodulate,
    fm_modulate,
    generate_analog,
    pm_demodulate,
    pm_modulate,
)
from analysis import compute_correlation
from rng import SimRng
from schemes import generate_baseband
from utils import ChannelParams, ModulationParams, build_time_base, moving_average, normalize


SCHEMES = ["am_dsb_lc", "am_dsb_sc", "fm", "pm"]


# =========================
# Helpers / shared utilities
# =========================

def make_params(**overrides) -> ModulationParams:
    base = dict(
        carrier_freq=320.0,
        message_freq=25.0,
        carrier_amp=1.0,
        message_amp=1.0,
        mod_index=0.6,
        freq_dev=60.0,
        duration=0.08,
        channel=ChannelParams(snr_db=60.0, fading_depth=0.0),
    )
    base.update(overrides)
    return ModulationParams(**base)


def run(scheme: str, params: ModulationParams, kind: str = "sine", seed: int = 11):
    t = build_time_base(params.duration)
    m = generate_baseband(t, kind, params.message_amp, params.message_freq)
    return t, generate_analog(t, params, scheme, m, rng=SimRng(seed))


def corr(res) -> float:
    return compute_correlation(normalize(res.baseband), normalize(res.demodulated))


def assert_finite(arr: np.ndarray, name: str):
    arr = np.asarray(arr, dtype=float)
    assert np.all(np.isfinite(arr)), f"{name} contains NaN/inf"


# ==================================
# 0) Basic API / validation behavior
# ==================================

def test_unknown_scheme_raises():
    t = build_time_base(0.05)
    with pytest.raises(ValueError, match="Unsupported analog scheme: qpsk"):
        generate_analog(t, make_params(), "qpsk", np.zeros_like(t))


def test_mismatched_time_and_baseband_raise_before_anything_else():
    t = build_time_base(0.05)
    with pytest.raises(ValueError, match="mismatched time/baseband"):
        generate_analog(t, make_params(), "NOT-A-SCHEME", np.zeros(t.size - 1))


def test_empty_input_gives_empty_result():
    res = generate_analog(np.array([]), make_params(), "fm", np.array([]))
    assert res.tx_signal.size == 0
    assert res.rx_signal.size == 0
    assert res.demodulated.size == 0
    assert res.tx_bits == [] and res.constellation == []


def test_registry_covers_all_analog_schemes():
    assert sorted(ANALOG_SCHEMES) == sorted(SCHEMES)


@pytest.mark.parametrize("scheme", SCHEMES)
@pytest.mark.parametrize("kind", ["sine", "square", "triangle"])
def test_shapes_and_finiteness(scheme, kind):
    params = make_params()
    t, res = run(scheme, params, kind)
    for name in ("baseband", "tx_signal", "rx_signal", "demodulated"):
        arr = getattr(res, name)
        assert arr.shape == t.shape, name
        assert_finite(arr, name)
    assert res.tx_bits == [] and res.rx_symbols == []
    assert res.meta["scheme"] == scheme


# =======================
# 1) Modulation identities
# =======================

def test_am_lc_envelope_bounds():
    t = build_time_base(0.1)
    mn = np.sin(2 * np.pi * 10 * t)
    s = am_lc_modulate(mn, t, Ac=2.0, fc=400.0, mu=0.5)
    assert float(np.max(np.abs(s))) <= 2.0 * 1.5 + 1e-9


def test_fm_with_zero_message_is_plain_carrier():
    t = build_time_base(0.05)
    s = fm_modulate(np.zeros_like(t), t, Ac=1.5, fc=500.0, kf=80.0)
    assert np.allclose(s, 1.5 * np.cos(2 * np.pi * 500.0 * t))


def test_pm_phase_offset_matches_message():
    t = build_time_base(0.05)
    mn = np.full_like(t, 0.5)
    s = pm_modulate(mn, t, Ac=1.0, fc=500.0, kp=2.0)
    assert np.allclose(s, np.cos(2 * np.pi * 500.0 * t + 1.0))


def test_baseband_is_returned_unnormalized():
    params = make_params(message_amp=2.5)
    _, res = run("am_dsb_lc", params)
    assert float(np.max(np.abs(res.baseband))) == pytest.approx(2.5, rel=1e-3)


# ==============================
# 2) Recovery through the channel
# ==============================

def test_am_dsb_sc_clean_round_trip():
    params = make_params(carrier_freq=320.0, message_freq=25.0, mod_index=0.6, duration=0.08)
    _, res = run("am_dsb_sc", params)
    assert corr(res) > 0.75


def test_am_dsb_lc_clean_round_trip():
    params = make_params(carrier_freq=320.0, message_freq=25.0, mod_index=0.6, duration=0.08)
    _, res = run("am_dsb_lc", params)
    assert corr(res) > 0.8


def test_fm_clean_round_trip():
    params = make_params(carrier_freq=1000.0, message_freq=20.0, freq_dev=60.0, duration=0.2)
    _, res = run("fm", params)
    assert corr(res) > 0.6
    # the discriminator output still carries carrier-rate ripple; smooth it out
    smoothed = moving_average(res.demodulated, 41)
    assert compute_correlation(normalize(res.baseband), normalize(smoothed)) > 0.9


def test_pm_clean_round_trip():
    params = make_params(carrier_freq=1000.0, message_freq=20.0, mod_index=0.8, duration=0.2)
    _, res = run("pm", params)
    assert corr(res) > 0.8


def test_am_dsb_sc_quadrature_receiver_loses_the_message():
    params = make_params(receiver_phase=np.pi / 2)
    _, res = run("am_dsb_sc", params)
    assert float(np.max(np.abs(res.demodulated))) < 0.1


def test_pm_scale_tracks_modulation_index():
    # demod is phase / kp, so the recovered amplitude is ~1 for any kp
    for kp in (0.5, 1.5):
        params = make_params(carrier_freq=1000.0, message_freq=20.0, mod_index=kp, duration=0.2)
        _, res = run("pm", params)
        mid = res.demodulated[200:-200]
        assert 0.7 < (float(np.max(mid)) - float(np.min(mid))) / 2.0 < 1.3


def test_seeded_runs_are_identical():
    params = make_params(channel=ChannelParams(snr_db=10.0, fading_depth=0.3))
    _, a = run("fm", params, seed=5)
    _, b = run("fm", params, seed=5)
    assert np.array_equal(a.rx_signal, b.rx_signal)
    assert np.array_equal(a.demodulated, b.demodulated)


# ====================
# 3) NaN tolerance
# ====================

def test_demodulators_tolerate_nan_input():
    t = build_time_base(0.05)
    rx = np.full_like(t, np.nan)
    assert am_sc_demodulate(rx, t=t, frx=300.0, phi_rx=0.0, fm=20.0).shape == t.shape
    assert fm_demodulate(rx, t=t, frx=300.0, phi_rx=0.0, fm=20.0, kf=60.0).shape == t.shape
    assert pm_demodulate(rx, t=t, frx=300.0, phi_rx=0.0, fm=20.0, kp=0.8).shape == t.shape


def test_non_finite_baseband_samples_are_filtered():
    t = build_time_base(0.05)
    m = np.sin(2 * np.pi * 20 * t)
    m[10] = np.nan
    m[20] = np.inf
    res = generate_analog(t, make_params(), "am_dsb_lc", m, rng=SimRng(1))
    assert_finite(res.tx_signal, "tx")


# ==========
# 4) Meta
# ==========

def test_am_overmodulation_flag():
    _, ok = run("am_dsb_lc", make_params(mod_index=0.8))
    _, over = run("am_dsb_lc", make_params(mod_index=1.5))
    assert ok.meta["am"]["overmodulated"] is False
    assert over.meta["am"]["overmodulated"] is True
    assert over.meta["am"]["envelope_min_theory"] == pytest.approx(-0.5)


def test_fm_meta_carson_bandwidth():
    _, res = run("fm", make_params(freq_dev=75.0, message_freq=25.0))
    fm = res.meta["fm"]
    assert fm["beta_index"] == pytest.approx(3.0)
    assert fm["bw_carson_hz"] == pytest.approx(200.0)


def test_pm_meta_phase_deviation():
    _, res = run("pm", make_params(mod_index=1.2))
    assert res.meta["pm"]["delta_phi_max_rad"] == pytest.approx(1.2)


def test_nyquist_warning_for_receiver_above_half_rate():
    params = make_params(carrier_freq=2000.0, receiver_fc=4500.0)
    _, res = run("am_dsb_sc", params)
    assert any("Nyquist" in w for w in res.meta["warnings"])


def test_no_warnings_in_safe_regime():
    _, res = run("am_dsb_lc", make_params())
    assert res.meta["warnings"] == []
