from __future__ import annotations

import logging

import streamlit as st
import numpy as np
import plotly.graph_objects as go

from config import CONTROL_LIMITS, DEFAULT_CONTROLS, SAMPLE_RATE, SCENARIO_PRESETS
from schemes import ALL_SCHEMES, BASEBAND_KINDS, FAMILY_NAMES, MODULATION_FAMILIES, get_scheme
from simulate import format_hz, merge_controls, run_simulation
from utils import normalize

logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

st.set_page_config(layout="wide")

st.markdown(
    """
    <style>
    [data-testid="InputInstructions"] {
        display: none !important;
    }
    </style>
    """,
    unsafe_allow_html=True,
)

PRIMARY_COLOR = "#00c27a"
COMPARE_COLOR = "#ff9c00"


def plot_signal(t, traces, title, grid=False, step=False):
    fig = go.Figure()
    for name, x, color in traces:
        fig.add_trace(go.Scatter(
            x=t, y=x, mode="lines", name=name,
            line=dict(color=color), line_shape="hv" if step else "linear",
        ))
    fig.update_layout(title=title, xaxis_title="Time (s)", yaxis_title="Amplitude (normalized)")
    fig.update_xaxes(showgrid=grid)
    fig.update_yaxes(showgrid=grid)
    return fig


def plot_spectrum(spectra, title):
    fig = go.Figure()
    for name, spec, color in spectra:
        fig.add_trace(go.Scatter(x=spec.freq, y=spec.mag_db, mode="lines", name=name, line=dict(color=color)))
    fig.update_layout(title=title, xaxis_title="Frequency (Hz)", yaxis_title="Magnitude (dB)")
    return fig


def plot_constellation(runs, title):
    fig = go.Figure()
    for name, points, color in runs:
        if not points:
            continue
        pts = np.asarray(points, dtype=float)
        fig.add_trace(go.Scatter(x=pts[:, 0], y=pts[:, 1], mode="markers", name=name, marker=dict(color=color, size=6)))
    fig.update_layout(title=title, xaxis_title="I", yaxis_title="Q")
    fig.update_yaxes(scaleanchor="x", scaleratio=1)
    return fig


def _slider(label, name, defaults, step, key_prefix):
    lo, hi = CONTROL_LIMITS[name]
    value = float(min(hi, max(lo, float(defaults[name]))))
    return st.slider(label, float(lo), float(hi), value, step=step, key=f"{key_prefix}_{name}")


st.title("Modulation Studio: Modulation / Demodulation Simulator")

with st.sidebar:
    st.header("Controls")

    preset = st.selectbox("Scenario preset", ["(none)"] + list(SCENARIO_PRESETS.keys()))
    defaults = merge_controls(preset=None if preset == "(none)" else preset)
    kp = preset  # widget keys follow the preset so its values become the defaults

    show_grid = st.checkbox("Show grid", value=True)

    st.divider()
    st.subheader("Scheme")

    family_ids = list(MODULATION_FAMILIES.keys())
    family = st.selectbox(
        "Family", family_ids,
        index=family_ids.index(defaults["family"]),
        format_func=lambda f: FAMILY_NAMES[f], key=f"{kp}_family",
    )
    family_schemes = [s.id for s in MODULATION_FAMILIES[family]]
    scheme_default = defaults["scheme"] if defaults["scheme"] in family_schemes else family_schemes[0]
    scheme_id = st.selectbox(
        "Modulation", family_schemes,
        index=family_schemes.index(scheme_default),
        format_func=lambda s: get_scheme(s).label, key=f"{kp}_scheme_{family}",
    )
    baseband_ids = list(BASEBAND_KINDS.keys())
    baseband = st.selectbox(
        "Baseband message", baseband_ids,
        index=baseband_ids.index(defaults["baseband"]),
        format_func=lambda b: BASEBAND_KINDS[b].label, key=f"{kp}_baseband",
    )

    st.divider()
    st.subheader("Signal parameters")
    controls = {
        "family": family,
        "scheme": scheme_id,
        "baseband": baseband,
        "carrierFreq": _slider("Carrier frequency fc (Hz)", "carrierFreq", defaults, 5.0, kp),
        "messageFreq": _slider("Message frequency fm (Hz)", "messageFreq", defaults, 1.0, kp),
        "carrierAmp": _slider("Carrier amplitude Ac", "carrierAmp", defaults, 0.1, kp),
        "messageAmp": _slider("Message amplitude Am", "messageAmp", defaults, 0.1, kp),
        "modIndex": _slider("Modulation index μ / kp", "modIndex", defaults, 0.05, kp),
        "freqDev": _slider("Frequency deviation kf / Δf (Hz)", "freqDev", defaults, 1.0, kp),
        "bitRate": _slider("Bit rate (bit/s)", "bitRate", defaults, 10.0, kp),
        "duration": _slider("Duration (s)", "duration", defaults, 0.01, kp),
    }

    st.divider()
    st.subheader("Channel")
    controls["snrDb"] = _slider("SNR (dB)", "snrDb", defaults, 1.0, kp)
    controls["fadingDepth"] = _slider("Fading depth", "fadingDepth", defaults, 0.05, kp)

    st.divider()
    st.subheader("Receiver")
    controls["rxCarrierOffset"] = _slider("Carrier offset (Hz)", "rxCarrierOffset", defaults, 1.0, kp)
    controls["rxPhaseOffset"] = _slider("Phase offset (deg)", "rxPhaseOffset", defaults, 1.0, kp)
    models = ["manual", "pll"]
    controls["receiverModel"] = st.selectbox(
        "Receiver model", models, index=models.index(defaults["receiverModel"]), key=f"{kp}_receiverModel"
    )
    controls["timingRecovery"] = st.checkbox(
        "Timing recovery", value=bool(defaults["timingRecovery"]), key=f"{kp}_timingRecovery"
    )

    st.divider()
    st.subheader("Comparison")
    controls["compareMode"] = st.checkbox("Compare with another scheme", value=bool(defaults["compareMode"]), key=f"{kp}_compareMode")
    all_ids = [s.id for s in ALL_SCHEMES]
    compare_default = defaults.get("compareScheme", DEFAULT_CONTROLS["compareScheme"])
    controls["compareScheme"] = st.selectbox(
        "Comparison scheme", all_ids,
        index=all_ids.index(compare_default),
        format_func=lambda s: get_scheme(s).label,
        disabled=not controls["compareMode"], key=f"{kp}_compareScheme",
    )

    st.divider()
    seed_text = st.text_input("Seed (blank = random)", value="", key="seed")

seed = None
if seed_text.strip():
    try:
        seed = int(seed_text.strip())
    except ValueError:
        st.sidebar.error("Seed must be an integer.")

try:
    sim = run_simulation(controls, seed=seed)
except ValueError as exc:
    st.error(str(exc))
    st.stop()

primary = sim.primary
compare = sim.compare

st.subheader("Results")
cols = st.columns(3)
cols[0].metric(primary.scheme.label, primary.metric_text)
cols[1].metric(
    "Estimated occupied BW",
    format_hz(primary.metrics.bandwidth_hz) + (f" | {format_hz(compare.metrics.bandwidth_hz)}" if compare else ""),
)
cols[2].metric(compare.scheme.label if compare else "Comparison", compare.metric_text if compare else "Comparison disabled")

for w in sim.warnings:
    st.warning(w)

tab1, tab2, tab3, tab4 = st.tabs(["Waveforms", "Frequency", "Constellation", "Details"])

t = sim.t


def _traces(attr):
    out = [(primary.scheme.label, normalize(getattr(primary.result, attr)), PRIMARY_COLOR)]
    if compare is not None:
        out.append((compare.scheme.label, normalize(getattr(compare.result, attr)), COMPARE_COLOR))
    return out


with tab1:
    st.plotly_chart(plot_signal(t, _traces("baseband"), "Baseband", grid=show_grid, step=primary.scheme.digital), width='stretch')
    st.plotly_chart(plot_signal(t, _traces("rx_signal"), "Received signal", grid=show_grid), width='stretch')
    st.plotly_chart(plot_signal(t, _traces("demodulated"), "Demodulated", grid=show_grid, step=primary.scheme.digital), width='stretch')

with tab2:
    spectra = [(primary.scheme.label, primary.metrics.rx_spectrum, PRIMARY_COLOR)]
    if compare is not None:
        spectra.append((compare.scheme.label, compare.metrics.rx_spectrum, COMPARE_COLOR))
    st.plotly_chart(plot_spectrum(spectra, f"Spectrum of received signal (fs = {SAMPLE_RATE:g} Hz)"), width='stretch')

with tab3:
    runs = [(primary.scheme.label, primary.result.constellation, PRIMARY_COLOR)]
    if compare is not None:
        runs.append((compare.scheme.label, compare.result.constellation, COMPARE_COLOR))
    if any(points for _, points, _ in runs):
        st.plotly_chart(plot_constellation(runs, "Detected symbols"), width='stretch')
    else:
        st.info("Constellation is shown for digital schemes.")

with tab4:
    st.latex(primary.scheme.modulation_eq)
    st.latex(primary.scheme.demod_eq)
    if compare is not None:
        st.latex(compare.scheme.modulation_eq)
        st.latex(compare.scheme.demod_eq)
    st.json(primary.result.meta)
    if compare is not None:
        st.json(compare.result.meta)
