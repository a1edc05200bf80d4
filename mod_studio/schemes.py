from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple
import numpy as np


@dataclass(frozen=True)
class SchemeDescriptor:
    id: str
    label: str
    family_id: str
    family_name: str
    digital: bool
    modulation_eq: str = ""
    demod_eq: str = ""


@dataclass(frozen=True)
class BasebandKind:
    id: str
    label: str
    equation: str
    generator: Callable[[np.ndarray, float, float], np.ndarray]


# -----------------------------
# Scheme registry
# -----------------------------
_FAMILIES: List[Tuple[str, str, List[Tuple[str, str, bool, str, str]]]] = [
    (
        "amplitude",
        "Amplitude Modulation",
        [
            ("am_dsb_lc", "AM DSB-LC (Conventional AM)", False,
             r"s(t) = A_c [1 + \mu \cdot m_n(t)] \cos(2\pi f_c t)",
             r"\hat{m}(t) \approx \text{LPF}\{|r(t)|\} - \text{DC}"),
            ("am_dsb_sc", "AM DSB-SC", False,
             r"s(t) = A_c \cdot m_n(t) \cdot \cos(2\pi f_c t)",
             r"\hat{m}(t) = \text{LPF}\{2 r(t) \cos(2\pi f_{rx} t + \phi_{rx})\}"),
        ],
    ),
    (
        "angle",
        "Angle Modulation",
        [
            ("fm", "Frequency Modulation (FM)", False,
             r"s(t) = A_c \cos\left(2\pi f_c t + 2\pi k_f \int m_n(t)\,dt\right)",
             r"\hat{m}(t) = \frac{f_{inst}(t) - f_{rx}}{k_f}, \quad f_{inst} = \frac{1}{2\pi}\frac{d\phi}{dt}"),
            ("pm", "Phase Modulation (PM)", False,
             r"s(t) = A_c \cos(2\pi f_c t + k_p \cdot m_n(t))",
             r"\hat{m}(t) = \frac{\phi(t) - 2\pi f_{rx} t}{k_p}"),
        ],
    ),
    (
        "digital",
        "Digital Modulation",
        [
            ("ask", "ASK (Binary)", True,
             r"s(t) = A_c [a_0 + a_1 \cdot b(k)] \cos(2\pi f_c t)",
             r"\hat{b}(k) = \text{threshold}\left\{\int r(t) \cos(2\pi f_{rx} t + \phi_{rx})\,dt\right\}"),
            ("fsk", "FSK (Binary)", True,
             r"s(t) = A_c \cos(2\pi f_i t), \quad f_i \in \{f_c-\Delta f/2, f_c+\Delta f/2\}",
             r"\hat{b}(k) = \arg\max_i \left|\int r(t) e^{-j 2\pi f_{i,rx} t}\,dt\right|^2"),
            ("bpsk", "BPSK", True,
             r"s(t) = A_c \cos(2\pi f_c t + \pi(1-b(k)))",
             r"\hat{b}(k) = \text{sign}\left\{\int r(t) \cos(2\pi f_{rx} t + \phi_{rx})\,dt\right\}"),
            ("qpsk", "QPSK", True,
             r"s(t) = A_c[I_k \cos(2\pi f_c t) - Q_k \sin(2\pi f_c t)]",
             r"\hat{I}, \hat{Q} \text{ from coherent I/Q integrators}"),
            ("qam16", "16-QAM", True,
             r"s(t) = A_c[I_k \cos(2\pi f_c t) - Q_k \sin(2\pi f_c t)], \quad I,Q \in \{-3,-1,1,3\}",
             r"\text{Nearest-neighbor symbol decision in I/Q plane}"),
        ],
    ),
]

MODULATION_FAMILIES: Dict[str, List[SchemeDescriptor]] = {
    fam_id: [
        SchemeDescriptor(
            id=sid, label=label, family_id=fam_id, family_name=fam_name,
            digital=digital, modulation_eq=mod_eq, demod_eq=demod_eq,
        )
        for sid, label, digital, mod_eq, demod_eq in entries
    ]
    for fam_id, fam_name, entries in _FAMILIES
}

FAMILY_NAMES: Dict[str, str] = {fam_id: fam_name for fam_id, fam_name, _ in _FAMILIES}

ALL_SCHEMES: List[SchemeDescriptor] = [s for group in MODULATION_FAMILIES.values() for s in group]

_BY_ID: Dict[str, SchemeDescriptor] = {s.id: s for s in ALL_SCHEMES}


def get_scheme(scheme_id: str) -> SchemeDescriptor:
    try:
        return _BY_ID[str(scheme_id)]
    except KeyError:
        raise ValueError(f"Unknown scheme: {scheme_id}") from None


def schemes_in_family(family_id: str) -> List[SchemeDescriptor]:
    if family_id not in MODULATION_FAMILIES:
        raise ValueError(f"Unknown modulation family: {family_id}")
    return list(MODULATION_FAMILIES[family_id])


# -----------------------------
# Baseband messages
# -----------------------------
def _sine(t: np.ndarray, am: float, fm: float) -> np.ndarray:
    return am * np.sin(2 * np.pi * fm * t)


def _square(t: np.ndarray, am: float, fm: float) -> np.ndarray:
    s = np.sin(2 * np.pi * fm * t)
    return am * np.where(s >= 0.0, 1.0, -1.0)


def _triangle(t: np.ndarray, am: float, fm: float) -> np.ndarray:
    # arcsin(sin) folds the phase into a unit-slope triangle
    return (2 * am / np.pi) * np.arcsin(np.sin(2 * np.pi * fm * t))


BASEBAND_KINDS: Dict[str, BasebandKind] = {
    "sine": BasebandKind("sine", "Sine Wave", r"m(t) = A_m \sin(2\pi f_m t)", _sine),
    "square": BasebandKind("square", "Square Wave", r"m(t) = A_m \cdot \text{sgn}(\sin(2\pi f_m t))", _square),
    "triangle": BasebandKind("triangle", "Triangle Wave", r"m(t) = \frac{2A_m}{\pi} \arcsin(\sin(2\pi f_m t))", _triangle),
}


def generate_baseband(t: np.ndarray, kind: str, am: float, fm: float) -> np.ndarray:
    if kind not in BASEBAND_KINDS:
        raise ValueError(f"Unknown message type: {kind}")
    t = np.asarray(t, dtype=float)
    return BASEBAND_KINDS[kind].generator(t, float(am), float(fm))
