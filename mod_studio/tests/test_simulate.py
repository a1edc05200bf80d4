# test_simulate.py
#
# End-to-end renders through run_simulation plus the scheme registry.
#
# Covered:
#   1) Scheme registry and baseband generators
#   2) Control merging and presets
#   3) Primary / comparison runs on a shared bit pool
#   4) Bandwidth table and metric text

from __future__ import annotations

import numpy as np
import pytest

from analysis import ErrorRate
from config import DEFAULT_CONTROLS, SCENARIO_PRESETS
from schemes import (
    ALL_SCHEMES,
    BASEBAND_KINDS,
    FAMILY_NAMES,
    MODULATION_FAMILIES,
    generate_baseband,
    get_scheme,
    schemes_in_family,
)
from simulate import (
    RunMetrics,
    estimate_bandwidth_hz,
    format_hz,
    format_metric_text,
    merge_controls,
    run_simulation,
)
from utils import ModulationParams, build_time_base


# ===========
# 1) Registry
# ===========

def test_registry_lists_every_scheme_once():
    ids = [s.id for s in ALL_SCHEMES]
    assert ids == ["am_dsb_lc", "am_dsb_sc", "fm", "pm", "ask", "fsk", "bpsk", "qpsk", "qam16"]
    assert set(FAMILY_NAMES) == set(MODULATION_FAMILIES) == {"amplitude", "angle", "digital"}


def test_digital_flag_follows_family():
    for s in ALL_SCHEMES:
        assert s.digital == (s.family_id == "digital")
        assert s.modulation_eq and s.demod_eq


def test_get_scheme_and_family_lookup():
    assert get_scheme("qam16").label == "16-QAM"
    assert [s.id for s in schemes_in_family("angle")] == ["fm", "pm"]
    with pytest.raises(ValueError, match="Unknown scheme"):
        get_scheme("ofdm")
    with pytest.raises(ValueError):
        schemes_in_family("pulse")


@pytest.mark.parametrize("kind", sorted(BASEBAND_KINDS))
def test_baseband_kinds_span_the_message_amplitude(kind):
    t = build_time_base(0.2)
    m = generate_baseband(t, kind, 2.0, 10.0)
    assert m.shape == t.shape
    assert float(np.max(m)) == pytest.approx(2.0, abs=0.05)
    assert float(np.min(m)) == pytest.approx(-2.0, abs=0.05)


def test_unknown_baseband_raises():
    with pytest.raises(ValueError, match="Unknown message type"):
        generate_baseband(build_time_base(0.02), "sawtooth", 1.0, 10.0)


# =====================
# 2) Controls / presets
# =====================

def test_merge_controls_layers_preset_then_overrides():
    merged = merge_controls({"snrDb": 3.0}, preset="noisyBpsk")
    assert merged["scheme"] == "bpsk"
    assert merged["snrDb"] == 3.0
    assert merged["duration"] == DEFAULT_CONTROLS["duration"]


def test_unknown_preset_raises():
    with pytest.raises(ValueError, match="Unknown scenario preset"):
        merge_controls(preset="deepSpace")


def test_unknown_scheme_control_raises():
    with pytest.raises(ValueError):
        run_simulation({"scheme": "nope"}, seed=1)


@pytest.mark.parametrize("preset", sorted(SCENARIO_PRESETS))
def test_every_preset_renders(preset):
    sim = run_simulation(merge_controls(preset=preset), seed=5)
    assert sim.primary.result.tx_signal.size == sim.t.size
    assert np.all(np.isfinite(sim.primary.result.rx_signal))
    assert sim.primary.metric_text
    if SCENARIO_PRESETS[preset].get("compareMode"):
        assert sim.compare is not None


# ============
# 3) End to end
# ============

def test_default_render_recovers_the_message():
    sim = run_simulation(seed=7)
    assert sim.primary.scheme.id == "am_dsb_lc"
    assert sim.compare is None
    assert sim.primary.metrics.correlation > 0.7
    assert sim.primary.metrics.ber is None


def test_seeded_renders_are_reproducible():
    controls = {"scheme": "qpsk", "snrDb": 8.0}
    a = run_simulation(controls, seed=21)
    b = run_simulation(controls, seed=21)
    assert np.array_equal(a.primary.result.rx_signal, b.primary.result.rx_signal)
    assert a.primary.result.rx_bits == b.primary.result.rx_bits


def test_compare_runs_share_the_bit_pool():
    sim = run_simulation(
        {"scheme": "bpsk", "compareMode": True, "compareScheme": "qpsk", "duration": 0.2, "snrDb": 40.0},
        seed=3,
    )
    assert sim.compare is not None
    primary_bits = sim.primary.result.tx_bits
    compare_bits = sim.compare.result.tx_bits
    k = min(len(primary_bits), len(compare_bits))
    assert k >= 16
    assert primary_bits[:k] == compare_bits[:k]


def test_compare_with_same_scheme_is_skipped():
    sim = run_simulation({"scheme": "fm", "compareMode": True, "compareScheme": "fm"}, seed=1)
    assert sim.compare is None


def test_compare_mode_off_ignores_compare_scheme():
    sim = run_simulation({"scheme": "fm", "compareMode": False, "compareScheme": "pm"}, seed=1)
    assert sim.compare is None


def test_digital_metrics_present():
    sim = run_simulation({"scheme": "bpsk", "snrDb": 40.0, "fadingDepth": 0.0}, seed=2)
    ber = sim.primary.metrics.ber
    assert ber.total == len(sim.primary.result.tx_bits)
    assert ber.rate < 0.05
    assert sim.primary.metrics.correlation is None
    assert sim.primary.metrics.tx_spectrum.freq.size > 0


def test_warnings_are_collected_from_both_runs():
    sim = run_simulation(
        {"scheme": "bpsk", "bitRate": 2000.0, "compareMode": True, "compareScheme": "ask"}, seed=4
    )
    assert any("few samples" in w for w in sim.warnings)
    assert len(sim.warnings) == len(set(sim.warnings))


# ====================
# 4) Bandwidth / text
# ====================

@pytest.mark.parametrize(
    "scheme, expected",
    [
        ("am_dsb_lc", 40.0),
        ("am_dsb_sc", 40.0),
        ("fm", 160.0),
        ("pm", 72.0),
        ("ask", 240.0),
        ("bpsk", 240.0),
        ("fsk", 360.0),
        ("qpsk", 120.0),
        ("qam16", 60.0),
    ],
)
def test_bandwidth_table(scheme, expected):
    params = ModulationParams()  # fm 20, kf 60, mu 0.8, rb 120
    assert estimate_bandwidth_hz(scheme, params) == pytest.approx(expected)


def test_bandwidth_is_floored():
    assert estimate_bandwidth_hz("qam16", ModulationParams(bit_rate=1.0)) == 1.0


def test_format_hz():
    assert format_hz(250.0) == "250.0 Hz"
    assert format_hz(1500.0) == "1.50 kHz"


def test_metric_text():
    digital = RunMetrics(ber=ErrorRate(3, 100, 0.03), ser=ErrorRate(2, 50, 0.04))
    assert format_metric_text(get_scheme("qpsk"), digital) == "BER 0.0300 (3/100), SER 0.0400 (2/50)"
    analog = RunMetrics(correlation=0.98766)
    assert format_metric_text(get_scheme("fm"), analog) == "Correlation(baseband, demod): 0.9877"
