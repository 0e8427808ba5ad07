"""
Lattice Family Framework

Classifies sets of four 4-dimensional vectors into 23 named lattice families
(crystal-system style categories defined by edge-length equalities and
inter-vector angle relations), inverts a family back into a concrete vector
set, and tracks sequences of classifications against known actor signatures.

COMPONENTS (leaves first):

  Geometry metrics:
    - magnitude, dot_product, angle_between (degrees, clamped arccos)
    - extract_metrics(a, b, c, d): edge lengths {a,b,c,d} and the six pair
      angles α=(b,c) β=(a,c) γ=(a,b) δ=(a,d) ε=(b,d) ζ=(c,d)

  Rule catalog:
    - RULE_CATALOG: 23 CategoryDefinition records, most symmetric (id 23,
      Hypercubic) first, fully generic (id 1, Hexaclinic) last
    - ids 6-23 carry generation parameters; ids 1-5 are classify-only

  Engines:
    - Classifier: first matching family, or id 0 "Unclassified configuration"
    - Generator: family -> Gram matrix -> Cholesky rows (four vectors)
    - Assembler: labels a history and finds contiguous actor signatures
    - Verifier: per-session trust accumulator with phase-lock evidence

Usage:
    from lattice_family_framework import Classifier, Generator, Assembler, Verifier

    result = Classifier().analyze([1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1])
    print(result.category)                     # Hypercubic

    vectors = Generator().generate(17)         # rows reproduce a=b=c≠d, all 90°

    assembler = Assembler({"PlayerA": ["Decagonal", "Cubic orthogonal"]})
    report = assembler.verify_chain([Generator().generate(19), vectors])
    print(report.matched_protocol)             # PlayerA

    verifier = Verifier()
    audit = verifier.audit_snapshot(raw_vectors, ranges)
    print(audit.motif, audit.trust)
"""

import json
import logging
import math
import os
import warnings
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

import numpy as np

import lattice_config


logger = logging.getLogger(__name__)

UNCLASSIFIED_ID = 0
UNCLASSIFIED_NAME = "Unclassified configuration"
UNKNOWN_ACTOR = lattice_config.get('signatures.unknown_actor', "Unknown Actor")

EDGE_NAMES = ("a", "b", "c", "d")
ANGLE_NAMES = ("alpha", "beta", "gamma", "delta", "epsilon", "zeta")

# Vector index pair spanned by each named angle. Gram entries are filled from
# this table, so it must stay in step with extract_metrics().
ANGLE_PAIRS = {
    "alpha": (1, 2),
    "beta": (0, 2),
    "gamma": (0, 1),
    "delta": (0, 3),
    "epsilon": (1, 3),
    "zeta": (2, 3),
}


# =============================================================================
# ERRORS
# =============================================================================

class LatticeError(Exception):
    """Base class for framework errors."""


class ConfigurationError(LatticeError, ValueError):
    """Unknown family id, classify-only family, or malformed signature table."""


class GeometryError(LatticeError, ValueError):
    """Requested constraints have no real realization."""


# =============================================================================
# GEOMETRY METRICS
# =============================================================================

def _as_vector(v) -> np.ndarray:
    arr = np.asarray(v, dtype=float)
    if arr.shape != (4,):
        raise ValueError(f"Expected a 4-component vector, got shape {arr.shape}")
    return arr


def _as_snapshot(snapshot) -> np.ndarray:
    arr = np.asarray(snapshot, dtype=float)
    if arr.shape != (4, 4):
        raise ValueError(f"Expected four 4-component vectors, got shape {arr.shape}")
    return arr


def _cos(degrees: float) -> float:
    return math.cos(math.radians(degrees))


def magnitude(v) -> float:
    """Euclidean length of a vector."""
    v = np.asarray(v, dtype=float)
    return float(np.sqrt(np.dot(v, v)))


def dot_product(v1, v2) -> float:
    return float(np.dot(np.asarray(v1, dtype=float), np.asarray(v2, dtype=float)))


def angle_between(v1, v2) -> float:
    """
    Angle between two vectors in degrees.

    The cosine is clamped to [-1, 1] before arccos so rounding never yields
    NaN. A zero-length vector has no direction; its angle to anything is
    reported as 90°.
    """
    mag1, mag2 = magnitude(v1), magnitude(v2)
    if mag1 == 0 or mag2 == 0:
        return 90.0
    cos_theta = np.clip(dot_product(v1, v2) / (mag1 * mag2), -1.0, 1.0)
    return float(np.degrees(np.arccos(cos_theta)))


def extract_metrics(a, b, c, d) -> Tuple[Dict[str, float], Dict[str, float]]:
    """Edge lengths and the six pair angles of a four-vector set."""
    vectors = [_as_vector(v) for v in (a, b, c, d)]
    lengths = {name: magnitude(v) for name, v in zip(EDGE_NAMES, vectors)}
    angles = {name: angle_between(vectors[i], vectors[j])
              for name, (i, j) in ANGLE_PAIRS.items()}
    return lengths, angles


# =============================================================================
# SYMMETRY MAP
# =============================================================================

@dataclass(frozen=True)
class SymmetryMap:
    """Derived predicates for one classification at one tolerance pair."""
    tolerance: float
    angle_tolerance: float
    all_edges_eq: bool
    abc_eq: bool
    bc_eq: bool
    ad_eq: bool
    all_edges_diff: bool
    all90: bool
    all_eq: bool
    none90: bool

    def eq(self, x: float, y: float) -> bool:
        return abs(x - y) < self.tolerance

    def ang(self, x: float, y: float) -> bool:
        return abs(x - y) < self.angle_tolerance

    def is90(self, x: float) -> bool:
        return self.ang(x, 90.0)

    def is120(self, x: float) -> bool:
        return self.ang(x, 120.0)

    @classmethod
    def build(cls, lengths: Mapping[str, float], angles: Mapping[str, float],
              tolerance: float, angle_tolerance: float) -> 'SymmetryMap':
        def eq(x, y):
            return abs(x - y) < tolerance

        def is90(x):
            return abs(x - 90.0) < angle_tolerance

        L = lengths
        A = [angles[name] for name in ANGLE_NAMES]
        edge_pairs = [(L["a"], L["b"]), (L["a"], L["c"]), (L["a"], L["d"]),
                      (L["b"], L["c"]), (L["b"], L["d"]), (L["c"], L["d"])]
        return cls(
            tolerance=tolerance,
            angle_tolerance=angle_tolerance,
            all_edges_eq=eq(L["a"], L["b"]) and eq(L["b"], L["c"]) and eq(L["c"], L["d"]),
            abc_eq=eq(L["a"], L["b"]) and eq(L["b"], L["c"]),
            bc_eq=eq(L["b"], L["c"]),
            ad_eq=eq(L["a"], L["d"]),
            all_edges_diff=not any(eq(x, y) for x, y in edge_pairs),
            all90=all(is90(x) for x in A),
            # consecutive chain α≈β≈γ≈δ≈ε≈ζ
            all_eq=all(abs(x - y) < angle_tolerance for x, y in zip(A, A[1:])),
            none90=not any(is90(x) for x in A),
        )


# =============================================================================
# RULE CATALOG
# =============================================================================

@dataclass(frozen=True)
class CategoryDefinition:
    """One lattice family: identity, documentation, predicate, generation preset."""
    id: int
    name: str
    edges: str
    angles: str
    check: Callable[[Mapping[str, float], Mapping[str, float], SymmetryMap], bool]
    gen_params: Optional[Mapping[str, Any]] = None

    @property
    def invertible(self) -> bool:
        return self.gen_params is not None

    def __repr__(self):
        return f"CategoryDefinition(id={self.id}, name={self.name!r})"


def _hypercubic(L, A, S):
    return S.all_edges_eq and S.all90


def _icosagonal(L, A, S):
    return S.all_edges_eq and S.all_eq and S.eq(_cos(A["alpha"]), -0.25)


def _diisohexagonal_orthogonal(L, A, S):
    return (S.all_edges_eq and S.is120(A["alpha"]) and S.is120(A["zeta"])
            and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _dodecagonal(L, A, S):
    return (S.all_edges_eq and S.is90(A["alpha"]) and S.is90(A["zeta"])
            and S.is120(A["beta"]) and S.is120(A["epsilon"])
            and S.ang(A["gamma"], A["delta"]) and not S.is90(A["gamma"]))


def _decagonal(L, A, S):
    return (S.all_edges_eq
            and S.ang(A["alpha"], A["gamma"]) and S.ang(A["gamma"], A["zeta"])
            and S.ang(A["beta"], A["delta"]) and S.ang(A["delta"], A["epsilon"])
            and S.eq(_cos(A["beta"]), -0.5 - _cos(A["alpha"])))


def _octagonal(L, A, S):
    return (S.all_edges_eq
            and S.ang(A["alpha"], A["gamma"]) and S.ang(A["gamma"], A["zeta"])
            and not S.is90(A["alpha"]) and S.is90(A["beta"]) and S.is90(A["epsilon"])
            and S.ang(A["delta"], 180.0 - A["alpha"]))


def _cubic_orthogonal(L, A, S):
    return S.abc_eq and not S.eq(L["c"], L["d"]) and S.all90


def _dihexagonal_orthogonal(L, A, S):
    return (S.ad_eq and S.bc_eq and not S.eq(L["a"], L["b"])
            and S.is120(A["alpha"]) and S.is120(A["zeta"])
            and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _hexagonal_tetragonal(L, A, S):
    return (S.ad_eq and S.bc_eq and not S.eq(L["a"], L["b"]) and S.is120(A["zeta"])
            and S.is90(A["alpha"]) and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _ditetragonal_orthogonal(L, A, S):
    return S.ad_eq and S.bc_eq and not S.eq(L["a"], L["b"]) and S.all90


def _ditrigonal_monoclinic(L, A, S):
    return (S.ad_eq and S.bc_eq and S.is120(A["alpha"]) and S.is120(A["zeta"])
            and S.ang(A["beta"], A["epsilon"]) and S.ang(A["gamma"], A["delta"])
            and S.eq(_cos(A["gamma"]), -0.5 * _cos(A["beta"]))
            and not S.is90(A["beta"]) and not S.is90(A["gamma"]))


def _ditetragonal_monoclinic(L, A, S):
    return (S.ad_eq and S.bc_eq and not S.eq(L["a"], L["b"])
            and S.is90(A["alpha"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["zeta"])
            and S.ang(A["beta"], A["epsilon"]) and not S.is90(A["beta"]))


def _hexagonal_orthogonal(L, A, S):
    return (not S.eq(L["a"], L["b"]) and S.bc_eq and not S.eq(L["c"], L["d"])
            and S.is120(A["zeta"]) and S.is90(A["alpha"]) and S.is90(A["beta"])
            and S.is90(A["gamma"]) and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _tetragonal_orthogonal(L, A, S):
    return (not S.eq(L["a"], L["b"]) and S.bc_eq and not S.eq(L["c"], L["d"])
            and S.all90)


def _ditrigonal_diclinic(L, A, S):
    return (S.ad_eq and S.bc_eq and S.is120(A["alpha"]) and S.is120(A["zeta"])
            and S.ang(A["beta"], A["epsilon"]) and not S.ang(A["gamma"], A["delta"])
            and not S.is90(A["gamma"]) and not S.is90(A["beta"]) and not S.is90(A["delta"])
            and S.eq(_cos(A["delta"]), _cos(A["beta"]) - _cos(A["gamma"])))


def _ditetragonal_diclinic(L, A, S):
    return (S.ad_eq and S.bc_eq and S.is90(A["alpha"]) and S.is90(A["zeta"])
            and S.ang(A["beta"], A["epsilon"]) and not S.is90(A["beta"])
            and not S.is90(A["gamma"]) and S.ang(A["delta"], 180.0 - A["gamma"]))


def _hexagonal_monoclinic(L, A, S):
    return (not S.eq(L["a"], L["b"]) and S.bc_eq and not S.eq(L["c"], L["d"])
            and not S.is90(A["alpha"]) and S.is120(A["zeta"])
            and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _tetragonal_monoclinic(L, A, S):
    return (not S.eq(L["a"], L["b"]) and S.bc_eq and not S.eq(L["c"], L["d"])
            and not S.is90(A["alpha"]) and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]) and S.is90(A["zeta"]))


def _orthogonal(L, A, S):
    return S.all_edges_diff and S.all90


def _monoclinic(L, A, S):
    return (S.all_edges_diff and not S.is90(A["alpha"])
            and S.is90(A["beta"]) and S.is90(A["gamma"]) and S.is90(A["delta"])
            and S.is90(A["epsilon"]) and S.is90(A["zeta"]))


def _diclinic(L, A, S):
    return (S.all_edges_diff and not S.is90(A["alpha"]) and not S.is90(A["zeta"])
            and S.is90(A["beta"]) and S.is90(A["gamma"])
            and S.is90(A["delta"]) and S.is90(A["epsilon"]))


def _triclinic(L, A, S):
    return (S.all_edges_diff and not S.is90(A["alpha"]) and not S.is90(A["beta"])
            and not S.is90(A["gamma"]) and S.is90(A["delta"])
            and S.is90(A["epsilon"]) and S.is90(A["zeta"]))


def _hexaclinic(L, A, S):
    return S.all_edges_diff and S.none90 and not S.all_eq


def _fixed(alpha, beta, gamma, delta, epsilon, zeta):
    return {"alpha": alpha, "beta": beta, "gamma": gamma,
            "delta": delta, "epsilon": epsilon, "zeta": zeta}


# Most specific first. Classification walks this tuple in order.
RULE_CATALOG: Tuple[CategoryDefinition, ...] = (
    CategoryDefinition(
        23, "Hypercubic", "a=b=c=d", "all 90°", _hypercubic,
        {"edges": (1, 1, 1, 1), "angles": {"all": 90}}),
    CategoryDefinition(
        22, "Icosagonal", "a=b=c=d", "all eq, cos α = -1/4", _icosagonal,
        {"edges": (1, 1, 1, 1), "angles": {"rule": "icosagonal"}}),
    CategoryDefinition(
        21, "Diisohexagonal orthogonal", "a=b=c=d", "α=ζ=120°, others 90°",
        _diisohexagonal_orthogonal,
        {"edges": (1, 1, 1, 1), "angles": _fixed(120, 90, 90, 90, 90, 120)}),
    CategoryDefinition(
        20, "Dodecagonal", "a=b=c=d", "α=ζ=90°, β=ε=120°, γ=δ≠90°", _dodecagonal,
        {"edges": (1, 1, 1, 1), "angles": _fixed(90, 120, 80, 80, 120, 90)}),
    CategoryDefinition(
        19, "Decagonal", "a=b=c=d", "α=γ=ζ, β=δ=ε, cos β = -0.5 - cos α", _decagonal,
        {"edges": (1, 1, 1, 1), "angles": {"rule": "decagonal", "alpha": 144}}),
    CategoryDefinition(
        18, "Octagonal", "a=b=c=d", "α=γ=ζ≠90°, β=ε=90°, δ=180-α", _octagonal,
        {"edges": (1, 1, 1, 1), "angles": _fixed(45, 90, 45, 135, 90, 45)}),
    CategoryDefinition(
        17, "Cubic orthogonal", "a=b=c ≠ d", "all 90°", _cubic_orthogonal,
        {"edges": (1, 1, 1, 2), "angles": {"all": 90}}),
    CategoryDefinition(
        16, "Dihexagonal orthogonal", "a=d ≠ b=c", "α=ζ=120°, others 90°",
        _dihexagonal_orthogonal,
        {"edges": (1, 2, 2, 1), "angles": _fixed(120, 90, 90, 90, 90, 120)}),
    CategoryDefinition(
        15, "Hexagonal tetragonal", "a=d ≠ b=c", "all 90°, ζ=120°", _hexagonal_tetragonal,
        {"edges": (1, 2, 2, 1), "angles": _fixed(90, 90, 90, 90, 90, 120)}),
    CategoryDefinition(
        14, "Ditetragonal orthogonal", "a=d ≠ b=c", "all 90°", _ditetragonal_orthogonal,
        {"edges": (1, 2, 2, 1), "angles": {"all": 90}}),
    CategoryDefinition(
        13, "Ditrigonal monoclinic", "a=d ≠ b=c",
        "α=ζ=120°, β=ε, γ=δ, cos γ = -0.5 cos β", _ditrigonal_monoclinic,
        {"edges": (1, 2, 2, 1), "angles": {"rule": "ditrigonal_monoclinic", "beta": 60}}),
    CategoryDefinition(
        12, "Ditetragonal monoclinic", "a=d ≠ b=c", "α=γ=δ=ζ=90°, β=ε≠90°",
        _ditetragonal_monoclinic,
        {"edges": (1, 2, 2, 1), "angles": _fixed(90, 45, 90, 90, 45, 90)}),
    CategoryDefinition(
        11, "Hexagonal orthogonal", "a≠b=c≠d", "ζ=120°, others 90°", _hexagonal_orthogonal,
        {"edges": (1, 2, 2, 3), "angles": _fixed(90, 90, 90, 90, 90, 120)}),
    CategoryDefinition(
        10, "Tetragonal orthogonal", "a≠b=c≠d", "all 90°", _tetragonal_orthogonal,
        {"edges": (1, 2, 2, 3), "angles": {"all": 90}}),
    CategoryDefinition(
        9, "Ditrigonal diclinic", "a=d ≠ b=c",
        "α=ζ=120°, β=ε≠90°, cos δ = cos β - cos γ", _ditrigonal_diclinic,
        {"edges": (1, 2, 2, 1),
         "angles": {"rule": "ditrigonal_diclinic", "beta": 75, "gamma": 100}}),
    CategoryDefinition(
        8, "Ditetragonal diclinic", "a=d ≠ b=c", "α=ζ=90°, β=ε≠90°, γ≠90°, δ=180°−γ",
        _ditetragonal_diclinic,
        {"edges": (1, 2, 2, 1), "angles": _fixed(90, 75, 60, 120, 75, 90)}),
    CategoryDefinition(
        7, "Hexagonal monoclinic", "a≠b=c≠d", "α≠90°, ζ=120°, others 90°",
        _hexagonal_monoclinic,
        {"edges": (1, 2, 2, 3), "angles": _fixed(75, 90, 90, 90, 90, 120)}),
    CategoryDefinition(
        6, "Tetragonal monoclinic", "a≠b=c≠d", "α≠90°, others 90°", _tetragonal_monoclinic,
        {"edges": (1, 2, 2, 3), "angles": _fixed(75, 90, 90, 90, 90, 90)}),
    CategoryDefinition(5, "Orthogonal", "a≠b≠c≠d", "all 90°", _orthogonal),
    CategoryDefinition(4, "Monoclinic", "a≠b≠c≠d", "α≠90°, others 90°", _monoclinic),
    CategoryDefinition(3, "Diclinic", "a≠b≠c≠d", "α≠90°, ζ≠90°, others 90°", _diclinic),
    CategoryDefinition(2, "Triclinic", "a≠b≠c≠d", "α≠β≠γ≠90°, δ=ε=ζ=90°", _triclinic),
    CategoryDefinition(1, "Hexaclinic", "a≠b≠c≠d", "all ≠ 90°, none eq", _hexaclinic),
)

_CATALOG_BY_ID = {definition.id: definition for definition in RULE_CATALOG}
_CATALOG_BY_NAME = {definition.name: definition for definition in RULE_CATALOG}


def get_definition(category_id: int) -> CategoryDefinition:
    try:
        return _CATALOG_BY_ID[category_id]
    except KeyError:
        raise ConfigurationError(f"Unknown category id: {category_id}") from None


def definition_by_name(name: str) -> Optional[CategoryDefinition]:
    return _CATALOG_BY_NAME.get(strip_qualifier(name))


def family_names() -> List[str]:
    return [definition.name for definition in RULE_CATALOG]


def invertible_ids() -> List[int]:
    """Ids of the families the Generator can realize, most specific first."""
    return [definition.id for definition in RULE_CATALOG if definition.invertible]


def strip_qualifier(label: str) -> str:
    """'Decagonal (Verified)' -> 'Decagonal'. Qualifiers are presentational."""
    return label.split(" (")[0].strip()


# =============================================================================
# CLASSIFIER
# =============================================================================

@dataclass(frozen=True)
class ClassificationResult:
    """Outcome of one Classifier.analyze call."""
    category: str
    category_id: int
    lengths: Dict[str, float]
    angles: Dict[str, float]
    tolerances: Dict[str, float]
    history: Tuple[str, ...] = ()

    @property
    def is_named(self) -> bool:
        return self.category_id != UNCLASSIFIED_ID

    def summary(self) -> str:
        lines = [f"{self.category} (id {self.category_id})",
                 "  lengths: " + ", ".join(f"{k}={v:.4f}" for k, v in self.lengths.items()),
                 "  angles:  " + ", ".join(f"{k}={v:.2f}°" for k, v in self.angles.items()),
                 f"  tol={self.tolerances['tolerance']:g} "
                 f"angle_tol={self.tolerances['angle_tolerance']:g}"]
        return "\n".join(lines)

    def __repr__(self):
        return f"ClassificationResult({self.category!r}, id={self.category_id})"


class Classifier:
    """
    Assigns four vectors to the most specific matching lattice family.

    Parameters
    ----------
    tolerance : float, optional
        Absolute tolerance for edge-length equality and cosine relations.
    angle_tolerance : float, optional
        Tolerance in degrees for angle equality and the 90°/120° checks.
    definitions : sequence of CategoryDefinition, optional
        Rule table walked in order; defaults to RULE_CATALOG.
    """

    def __init__(self, tolerance: Optional[float] = None,
                 angle_tolerance: Optional[float] = None,
                 definitions: Sequence[CategoryDefinition] = RULE_CATALOG):
        self.tolerance = lattice_config.get('tolerance.length') if tolerance is None else tolerance
        self.angle_tolerance = (lattice_config.get('tolerance.angle')
                                if angle_tolerance is None else angle_tolerance)
        self.definitions = tuple(definitions)
        self.history: List[str] = []

    def _add_to_history(self, event: str):
        timestamp = datetime.now().strftime("%H:%M:%S.%f")[:-3]
        self.history.append(f"[{timestamp}] {event}")

    def analyze(self, a, b, c, d, tolerance: Optional[float] = None,
                angle_tolerance: Optional[float] = None) -> ClassificationResult:
        """Classify four vectors; per-call tolerances override the instance defaults."""
        active_tol = self.tolerance if tolerance is None else tolerance
        active_ang_tol = self.angle_tolerance if angle_tolerance is None else angle_tolerance

        lengths, angles = extract_metrics(a, b, c, d)
        sym = SymmetryMap.build(lengths, angles, active_tol, active_ang_tol)

        matched = next((definition for definition in self.definitions
                        if definition.check(lengths, angles, sym)), None)
        if matched is None:
            category, category_id = UNCLASSIFIED_NAME, UNCLASSIFIED_ID
        else:
            category, category_id = matched.name, matched.id

        event = f"Analysis with Tol: {active_tol}, AngTol: {active_ang_tol} -> Result: {category}"
        self._add_to_history(event)
        logger.debug(event)

        return ClassificationResult(
            category=category,
            category_id=category_id,
            lengths=lengths,
            angles=angles,
            tolerances={"tolerance": active_tol, "angle_tolerance": active_ang_tol},
            history=tuple(self.history),
        )

    def analyze_snapshot(self, snapshot, tolerance: Optional[float] = None,
                         angle_tolerance: Optional[float] = None) -> ClassificationResult:
        """Classify a (4, 4) array whose rows are the four vectors."""
        a, b, c, d = _as_snapshot(snapshot)
        return self.analyze(a, b, c, d, tolerance, angle_tolerance)


# =============================================================================
# GENERATOR
# =============================================================================

def _free_parameter(params: Mapping[str, Any], name: str, rule: str) -> float:
    if name not in params:
        raise ConfigurationError(f"Angle rule '{rule}' requires a free '{name}' angle")
    return float(params[name])


def _icosagonal_rule(angles, params):
    ico = math.degrees(math.acos(-0.25))
    return dict.fromkeys(ANGLE_NAMES, ico)


def _decagonal_rule(angles, params):
    alpha = _free_parameter(params, "alpha", "decagonal")
    cos_beta = -0.5 - _cos(alpha)
    if abs(cos_beta) > 1:
        raise GeometryError(f"Impossible geometry: decagonal closure has no real "
                            f"solution for alpha={alpha}")
    beta = math.degrees(math.acos(cos_beta))
    angles.update(alpha=alpha, gamma=alpha, zeta=alpha,
                  beta=beta, delta=beta, epsilon=beta)
    return angles


def _ditrigonal_monoclinic_rule(angles, params):
    beta = _free_parameter(params, "beta", "ditrigonal_monoclinic")
    # -0.5 cos β always lies in [-0.5, 0.5]
    gamma = math.degrees(math.acos(-0.5 * _cos(beta)))
    angles.update(alpha=120.0, zeta=120.0, beta=beta, epsilon=beta,
                  gamma=gamma, delta=gamma)
    return angles


def _ditrigonal_diclinic_rule(angles, params):
    beta = _free_parameter(params, "beta", "ditrigonal_diclinic")
    gamma = _free_parameter(params, "gamma", "ditrigonal_diclinic")
    cos_delta = _cos(beta) - _cos(gamma)
    if abs(cos_delta) > 1:
        raise GeometryError(f"Impossible geometry: ditrigonal diclinic closure has no "
                            f"real solution for beta={beta}, gamma={gamma}")
    angles.update(alpha=120.0, zeta=120.0, beta=beta, epsilon=beta, gamma=gamma,
                  delta=math.degrees(math.acos(cos_delta)))
    return angles


ANGLE_RULES: Dict[str, Callable[[Dict[str, float], Mapping[str, Any]], Dict[str, float]]] = {
    "icosagonal": _icosagonal_rule,
    "decagonal": _decagonal_rule,
    "ditrigonal_monoclinic": _ditrigonal_monoclinic_rule,
    "ditrigonal_diclinic": _ditrigonal_diclinic_rule,
}


def build_gram_matrix(lengths: Mapping[str, float], angles: Mapping[str, float]) -> np.ndarray:
    """G[i, j] = |v_i| |v_j| cos(angle of pair i, j); diagonal = |v_i|²."""
    edges = np.array([lengths[name] for name in EDGE_NAMES], dtype=float)
    gram = np.outer(edges, edges)
    for name, (i, j) in ANGLE_PAIRS.items():
        c = _cos(angles[name])
        gram[i, j] *= c
        gram[j, i] *= c
    return gram


def cholesky_rows(gram, psd_floor: Optional[float] = None) -> np.ndarray:
    """
    Lower-triangular L with L @ L.T == gram, tolerant of semidefinite input.

    Diagonal residuals are clamped at zero; a residual below ``psd_floor``
    means the matrix is not positive semidefinite and raises GeometryError.
    Entries under a zero pivot are set to zero.
    """
    if psd_floor is None:
        psd_floor = lattice_config.get('generator.psd_floor')
    gram = np.asarray(gram, dtype=float)
    if gram.ndim != 2 or gram.shape[0] != gram.shape[1]:
        raise ValueError(f"Gram matrix must be square, got shape {gram.shape}")

    n = gram.shape[0]
    factor = np.zeros((n, n))
    for i in range(n):
        for j in range(i + 1):
            running = float(np.dot(factor[i, :j], factor[j, :j]))
            if i == j:
                residual = gram[i, i] - running
                if residual < psd_floor:
                    raise GeometryError(
                        f"Impossible geometry: not positive semidefinite at index {i} "
                        f"(residual {residual:.3e})")
                factor[i, j] = math.sqrt(max(0.0, residual))
            elif factor[j, j] == 0:
                factor[i, j] = 0.0
            else:
                factor[i, j] = (gram[i, j] - running) / factor[j, j]
    return factor


def gram_of(vectors) -> np.ndarray:
    """Pairwise inner products of the rows of ``vectors``."""
    v = np.asarray(vectors, dtype=float)
    return v @ v.T


class Generator:
    """
    Inverse of the Classifier for families that carry generation parameters.

    Resolves the family's symbolic edges and angles, builds the Gram matrix
    and returns the rows of its Cholesky factor as four concrete vectors.
    """

    def __init__(self, classifier: Optional[Classifier] = None):
        if classifier is None:
            classifier = Classifier()
        if not getattr(classifier, "definitions", None):
            raise ConfigurationError("Generator requires a Classifier with a rule catalog")
        self.classifier = classifier
        self.psd_floor = lattice_config.get('generator.psd_floor')

    def definition(self, category_id: int) -> CategoryDefinition:
        for definition in self.classifier.definitions:
            if definition.id == category_id:
                return definition
        raise ConfigurationError(f"Unknown category id: {category_id}")

    def generate(self, category_id: int) -> np.ndarray:
        """Four vectors (rows of a 4x4 array) realizing the family's constraints."""
        definition = self.definition(category_id)
        if not definition.invertible:
            raise ConfigurationError(
                f"No generation parameters defined for id {category_id} "
                f"({definition.name}); the family is classify-only")
        params = definition.gen_params
        lengths = self.resolve_lengths(params["edges"])
        angles = self.resolve_angles(params["angles"])
        logger.debug("Generating %s from lengths=%s angles=%s", definition.name, lengths, angles)
        gram = build_gram_matrix(lengths, angles)
        return cholesky_rows(gram, self.psd_floor)

    @staticmethod
    def resolve_lengths(edges: Sequence[float]) -> Dict[str, float]:
        if len(edges) != 4:
            raise ConfigurationError(f"Expected four edge ratios, got {len(edges)}")
        return {name: float(e) for name, e in zip(EDGE_NAMES, edges)}

    @staticmethod
    def resolve_angles(angle_params: Mapping[str, Any]) -> Dict[str, float]:
        """Fixed degrees, a uniform 'all' value, or a named closure rule."""
        if "all" in angle_params:
            return dict.fromkeys(ANGLE_NAMES, float(angle_params["all"]))

        angles = dict.fromkeys(ANGLE_NAMES, 90.0)
        angles.update({k: float(v) for k, v in angle_params.items() if k in ANGLE_PAIRS})

        rule = angle_params.get("rule")
        if rule is None:
            return angles
        if rule not in ANGLE_RULES:
            raise ConfigurationError(f"Unknown angle rule: {rule!r}")
        return ANGLE_RULES[rule](angles, angle_params)

    def round_trip(self, category_id: int, tolerance: float = 1e-3,
                   angle_tolerance: float = 1e-3) -> ClassificationResult:
        """Generate a family and classify the result."""
        vectors = self.generate(category_id)
        return self.classifier.analyze_snapshot(vectors, tolerance, angle_tolerance)


# =============================================================================
# ASSEMBLER
# =============================================================================

@dataclass(frozen=True)
class ChainMatchResult:
    """Labels of a whole history and the actor whose signature it contains."""
    chain: Tuple[str, ...]
    matched_protocol: str
    entropy: float
    timestamp: str

    @property
    def clean_chain(self) -> Tuple[str, ...]:
        return tuple(strip_qualifier(label) for label in self.chain)

    @property
    def matched(self) -> bool:
        return self.matched_protocol != UNKNOWN_ACTOR


def chain_entropy(chain: Sequence[str]) -> float:
    """Distinct labels over total labels; 0 for an empty chain."""
    if len(chain) == 0:
        return 0.0
    return len(set(chain)) / len(chain)


def _contains_window(chain: Sequence[str], signature: Tuple[str, ...]) -> bool:
    n = len(signature)
    return any(tuple(chain[i:i + n]) == signature for i in range(len(chain) - n + 1))


def _validate_signatures(known_signatures, definitions) -> Dict[str, Tuple[str, ...]]:
    if not isinstance(known_signatures, Mapping):
        raise ConfigurationError("Known signatures must map actor name -> family sequence")
    valid_names = {definition.name for definition in definitions} | {UNCLASSIFIED_NAME}
    signatures = {}
    for actor, sequence in known_signatures.items():
        if isinstance(sequence, str) or not sequence:
            raise ConfigurationError(f"Signature for {actor!r} must be a non-empty "
                                     f"sequence of family names")
        cleaned = tuple(strip_qualifier(label) for label in sequence)
        unknown = [label for label in cleaned if label not in valid_names]
        if unknown:
            raise ConfigurationError(f"Signature for {actor!r} names unknown families: {unknown}")
        signatures[str(actor)] = cleaned
    return signatures


class Assembler:
    """
    Recognizes known actor signatures inside a history of four-vector snapshots.

    A signature is an ordered run of family names; it matches only as a
    contiguous window of the classified (qualifier-stripped) chain.
    """

    def __init__(self, known_signatures: Optional[Mapping[str, Sequence[str]]] = None,
                 classifier: Optional[Classifier] = None):
        self.classifier = classifier if classifier is not None else Classifier()
        if known_signatures is None:
            known_signatures = lattice_config.get('signatures.default')
        self.known_signatures = _validate_signatures(known_signatures,
                                                     self.classifier.definitions)

    @classmethod
    def from_signature_dir(cls, signature_dir: str = "signatures",
                           classifier: Optional[Classifier] = None) -> 'Assembler':
        """Build an Assembler from ``{"name", "sequence"}`` JSON files."""
        classifier = classifier if classifier is not None else Classifier()
        signatures = {}
        if os.path.isdir(signature_dir):
            for filename in sorted(os.listdir(signature_dir)):
                if not filename.endswith(".json"):
                    continue
                try:
                    with open(os.path.join(signature_dir, filename), 'r') as f:
                        sig = json.load(f)
                    signatures.update(_validate_signatures({sig["name"]: sig["sequence"]},
                                                           classifier.definitions))
                except (OSError, ValueError, KeyError, TypeError) as e:
                    warnings.warn(f"Failed to load signature {filename}: {e}")
        if not signatures:
            warnings.warn(f"No signatures found in {signature_dir!r}. "
                          f"Use train_signature.py to create them.")
        return cls(signatures, classifier)

    def match_labels(self, labels: Sequence[str]) -> str:
        """First actor (in table order) whose signature is a window of ``labels``."""
        clean = [strip_qualifier(label) for label in labels]
        for actor, sequence in self.known_signatures.items():
            if _contains_window(clean, sequence):
                return actor
        return UNKNOWN_ACTOR

    def verify_chain(self, history, tolerance: Optional[float] = None,
                     angle_tolerance: Optional[float] = None) -> ChainMatchResult:
        """Classify every snapshot of ``history`` and search for known signatures."""
        raw_chain = tuple(
            self.classifier.analyze_snapshot(snapshot, tolerance, angle_tolerance).category
            for snapshot in history)
        clean_chain = [strip_qualifier(label) for label in raw_chain]
        matched = self.match_labels(clean_chain)

        logger.debug("Chain of %d snapshots -> %s", len(raw_chain), matched)
        if matched != UNKNOWN_ACTOR:
            logger.info("Signature match: %s", matched)

        return ChainMatchResult(
            chain=raw_chain,
            matched_protocol=matched,
            entropy=chain_entropy(clean_chain),
            timestamp=datetime.now(timezone.utc).isoformat(),
        )


# =============================================================================
# VERIFIER
# =============================================================================

@dataclass(frozen=True)
class AuditReport:
    """What a consumer reads back after each audit step."""
    motif: str
    trust: float
    angle: float
    protocol: str

    def as_dict(self) -> Dict[str, Any]:
        return {"motif": self.motif, "trust": self.trust,
                "angle": self.angle, "protocol": self.protocol}


class Verifier:
    """
    Per-session trust accumulator.

    Each audit normalizes a raw snapshot into [-1, 1], appends it to the
    session history, rewards named-family or phase-locked snapshots and
    penalizes the rest. A full signature match over the whole history locks
    trust at 1.0. The motif label is read after that lock, so the step on
    which a signature first matches already reports a verified label.

    Each snapshot is classified once, when it is audited; its label is kept
    in ``labels`` and the signature search runs over those labels.

    One instance owns its trust and history; concurrent audits on the same
    instance must be serialized by the caller.
    """

    def __init__(self, assembler: Optional[Assembler] = None,
                 tolerance: Optional[float] = None,
                 angle_tolerance: Optional[float] = None):
        self.assembler = assembler if assembler is not None else Assembler()
        classifier = self.assembler.classifier
        self.tolerance = classifier.tolerance if tolerance is None else tolerance
        self.angle_tolerance = (classifier.angle_tolerance
                                if angle_tolerance is None else angle_tolerance)

        cfg = lattice_config.CONFIG['verifier']
        self.initial_trust = cfg['initial_trust']
        self.reward = cfg['reward']
        self.penalty = cfg['penalty']
        self.phase_threshold = cfg['phase_threshold']
        self.emergent_threshold = cfg['emergent_threshold']
        self.phase_lock_angles = tuple(cfg['phase_lock_angles'])
        self.zero_snap = cfg['zero_snap']

        self.phase_trust = self.initial_trust
        self.history: List[np.ndarray] = []
        self.labels: List[str] = []

    def reset(self):
        """Start a fresh session: initial trust, empty history."""
        self.phase_trust = self.initial_trust
        self.history = []
        self.labels = []

    @staticmethod
    def normalize(val: float, lo: float, hi: float, zero_snap: float = 0.01) -> float:
        """Map ``val`` from [lo, hi] onto [-1, 1]; near-zero results snap to +zero_snap."""
        if hi == lo:
            raise ValueError(f"Degenerate range [{lo}, {hi}]")
        n = 2.0 * (val - lo) / (hi - lo) - 1.0
        n = min(1.0, max(-1.0, n))
        return zero_snap if abs(n) < zero_snap else n

    @staticmethod
    def get_angle(vec_a, vec_b) -> float:
        return angle_between(vec_a, vec_b)

    def normalize_snapshot(self, raw_vectors, ranges) -> np.ndarray:
        raw = _as_snapshot(raw_vectors)
        ranges = np.asarray(ranges, dtype=float)
        if ranges.shape != (4, 2):
            raise ValueError(f"Expected four (min, max) ranges, got shape {ranges.shape}")
        return np.array([[self.normalize(val, lo, hi, self.zero_snap)
                          for val, (lo, hi) in zip(point, ranges)]
                         for point in raw])

    def is_phase_locked(self, angle: float) -> bool:
        return any(abs(angle - node) < self.angle_tolerance for node in self.phase_lock_angles)

    def _motif_label(self, named_motif: Optional[str], angle: float) -> str:
        if self.phase_trust > self.phase_threshold:
            if named_motif is not None:
                return f"{named_motif} (Verified)"
            if abs(angle - 90.0) < self.angle_tolerance:
                return "Orthogonal Sync (90°)"
            if abs(angle - 120.0) < self.angle_tolerance:
                return "Decagonal Sync (120°)"
            return "Relational Sync"
        if self.phase_trust > self.emergent_threshold:
            return "Emergent Symmetry"
        return "Baseline Entropy"

    def audit_snapshot(self, raw_vectors, ranges) -> AuditReport:
        """Fold one raw snapshot into the session and report motif and trust."""
        vectors = self.normalize_snapshot(raw_vectors, ranges)
        self.history.append(vectors)

        latest = self.assembler.classifier.analyze_snapshot(vectors, self.tolerance,
                                                            self.angle_tolerance)
        named_motif = latest.category
        self.labels.append(strip_qualifier(named_motif))
        is_named_family = latest.is_named

        angle = self.get_angle(vectors[0], vectors[1])
        phase_locked = self.is_phase_locked(angle)

        previous = self.phase_trust
        if is_named_family or phase_locked:
            self.phase_trust = min(1.0, self.phase_trust + self.reward)
        else:
            self.phase_trust = max(0.0, self.phase_trust - self.penalty)
        logger.debug("Audit step %d: %s, angle=%.2f, trust %.2f -> %.2f",
                     len(self.history), named_motif, angle, previous, self.phase_trust)

        protocol = self.assembler.match_labels(self.labels)
        if protocol != UNKNOWN_ACTOR:
            logger.info("Trust locked by signature match: %s", protocol)
            self.phase_trust = 1.0

        motif = self._motif_label(named_motif if is_named_family else None, angle)
        return AuditReport(
            motif=motif,
            trust=self.phase_trust,
            angle=angle,
            protocol=protocol,
        )
