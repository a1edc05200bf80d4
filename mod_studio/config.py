from __future__ import annotations

from typing import Any, Dict, Tuple

SAMPLE_RATE = 8000.0

# Single-shot PLL tuning (empirical, adjustable per call in receiver.py)
PLL_LOOP_GAIN = 0.85
PLL_MAX_FREQ_CORRECTION_HZ = 80.0

# control name -> (min, max)
CONTROL_LIMITS: Dict[str, Tuple[float, float]] = {
    "carrierFreq": (20.0, 2200.0),
    "messageFreq": (1.0, 500.0),
    "carrierAmp": (0.2, 5.0),
    "messageAmp": (0.1, 5.0),
    "modIndex": (0.1, 5.0),
    "freqDev": (1.0, 600.0),
    "bitRate": (10.0, 2000.0),
    "duration": (0.02, 0.4),
    "snrDb": (0.0, 60.0),
    "fadingDepth": (0.0, 0.95),
    "rxCarrierOffset": (-300.0, 300.0),
    "rxPhaseOffset": (-180.0, 180.0),
}

# 16-QAM axis decoding: level -> (b1, b0)
LEVEL_TO_BITS: Dict[int, Tuple[int, int]] = {
    -3: (0, 0),
    -1: (0, 1),
    1: (1, 1),
    3: (1, 0),
}

DEFAULT_CONTROLS: Dict[str, Any] = {
    "family": "amplitude",
    "scheme": "am_dsb_lc",
    "baseband": "sine",
    "carrierFreq": 250.0,
    "messageFreq": 20.0,
    "carrierAmp": 1.0,
    "messageAmp": 1.0,
    "modIndex": 0.8,
    "freqDev": 60.0,
    "bitRate": 120.0,
    "duration": 0.08,
    "snrDb": 24.0,
    "fadingDepth": 0.25,
    "rxCarrierOffset": 0.0,
    "rxPhaseOffset": 0.0,
    "receiverModel": "manual",
    "timingRecovery": False,
    "compareMode": False,
    "compareScheme": "qpsk",
}

SCENARIO_PRESETS: Dict[str, Dict[str, Any]] = {
    "cleanAnalog": {
        "family": "amplitude",
        "scheme": "am_dsb_lc",
        "baseband": "sine",
        "messageFreq": 20.0,
        "modIndex": 0.6,
        "snrDb": 38.0,
        "fadingDepth": 0.05,
        "rxCarrierOffset": 0.0,
        "rxPhaseOffset": 0.0,
        "receiverModel": "manual",
        "timingRecovery": False,
        "compareMode": False,
    },
    "noisyBpsk": {
        "family": "digital",
        "scheme": "bpsk",
        "baseband": "sine",
        "carrierFreq": 260.0,
        "bitRate": 180.0,
        "snrDb": 6.0,
        "fadingDepth": 0.35,
        "rxCarrierOffset": 5.0,
        "rxPhaseOffset": 8.0,
        "receiverModel": "pll",
        "timingRecovery": True,
        "compareMode": True,
        "compareScheme": "qpsk",
    },
    "offsetQpsk": {
        "family": "digital",
        "scheme": "qpsk",
        "carrierFreq": 280.0,
        "bitRate": 220.0,
        "snrDb": 16.0,
        "fadingDepth": 0.2,
        "rxCarrierOffset": 22.0,
        "rxPhaseOffset": 24.0,
        "receiverModel": "pll",
        "timingRecovery": True,
        "compareMode": True,
        "compareScheme": "qam16",
    },
    "wideFm": {
        "family": "angle",
        "scheme": "fm",
        "baseband": "triangle",
        "carrierFreq": 330.0,
        "messageFreq": 35.0,
        "freqDev": 180.0,
        "snrDb": 26.0,
        "fadingDepth": 0.12,
        "receiverModel": "manual",
        "timingRecovery": False,
        "compareMode": True,
        "compareScheme": "pm",
    },
}
