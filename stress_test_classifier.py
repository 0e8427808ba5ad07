#!/usr/bin/env python3
"""
Stress Test for the lattice family Classifier, Assembler and Verifier.

Scenarios:
  1. Progressive classification: random -> structured -> targeted vectors,
     targeted ones read at strict and loose tolerances.
  2. Chain audit: a jittered signature motif read at several tolerances,
     plus pure noise that must be rejected.
  3. Trust: intentional 120° alignment vs random alignment in the Verifier.
"""

import sys
from collections import Counter
import numpy as np
from scipy import stats
from lattice_family_framework import (
    Assembler, Classifier, Verifier, family_names, UNKNOWN_ACTOR,
)


# ── Vector sources ───────────────────────────────────────────────────

def gen_random_vectors(rng):
    return rng.random((4, 4)) * 2


def gen_structured_vectors(level, rng):
    if level == 0:
        return np.array([[2, 0, 0, 0], [0, 1.5, 0, 0], [0, 0, 2.2, 0], [0, 0, 0, 1.8]])
    if level == 1:
        return np.array([[2, 0, 0, 0], [0, 2, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]])
    if level == 2:
        return np.array([[1, 0, 0, 0], [-0.5, 0.866, 0, 0], [0, 0, 2, 0], [0, 0, 0, 1]])
    return gen_random_vectors(rng)


TARGETED = {
    "Hypercubic": [[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 0], [0, 0, 0, 1]],
    "Decagonal": [[1, 0, 0, 0], [-0.809, 0.588, 0, 0], [0.309, -0.951, 0, 0], [0.309, 0.951, 0, 0]],
    "Cubic orthogonal": [[1, 0, 0, 0], [0, 1, 0, 0], [0, 0, 1, 0], [0, 0, 0, 2]],
    "Hexagonal tetragonal": [[1, 0, 0, 0], [0, 2, 0, 0], [0, 0, 2, 0], [0, 0, -0.5, 0.866]],
    "Ditetragonal diclinic": [[1, 0, 0, 0], [1, 1.732, 0, 0], [0.518, -0.299, 1.909, 0],
                              [-0.5, 0.588, 0.228, 0.594]],
    "Orthogonal": [[2, 0, 0, 0], [0, 1.5, 0, 0], [0, 0, 2.2, 0], [0, 0, 0, 1.1]],
    "Monoclinic": [[1, 0, 0, 0], [0, 1, 0, 0], [0.5, 0.866, 0, 0], [0, 0, 0, 3]],
    "Triclinic": [[1, 0.2, 0.3, 0], [0.1, 1, 0.2, 0], [0.3, 0.1, 1, 0], [0, 0, 0, 1]],
}


def gen_targeted_vectors(name, rng):
    if name in TARGETED:
        return np.array(TARGETED[name], dtype=float)
    return gen_random_vectors(rng)


def apply_jitter(history, amount, rng):
    return [np.asarray(s, dtype=float) + (rng.random((4, 4)) - 0.5) * amount for s in history]


# ── Distribution reporting ───────────────────────────────────────────

def distribution_entropy(counts):
    """Shannon entropy (bits) of a category histogram."""
    values = np.array(list(counts.values()), dtype=float)
    if values.sum() == 0:
        return 0.0
    return float(stats.entropy(values, base=2))


def display_distribution(counts):
    total = sum(counts.values())
    print(f"  {'Rank':>4} | {'Motif Type':<30} | {'Count':>6} | {'Share':>7}")
    print("  " + "-" * 58)
    for i, (name, count) in enumerate(counts.most_common()):
        print(f"  {i + 1:>4} | {name:<30} | {count:>6} | {count / total:>7.1%}")
    print(f"  Entropy: {distribution_entropy(counts):.3f} bits over {len(counts)} motifs")


def run_progressive(n_random=50, n_structured=100, n_targeted=100, seed=42, verbose=True):
    """
    Classify random, structured and targeted vectors.

    Returns dict of Counters: random, structured, strict, loose.
    """
    rng = np.random.default_rng(seed)
    classifier = Classifier()
    targets = family_names()
    results = {k: Counter() for k in ("random", "structured", "strict", "loose")}

    for _ in range(n_random):
        results["random"][classifier.analyze_snapshot(gen_random_vectors(rng)).category] += 1

    for _ in range(n_structured):
        vectors = gen_structured_vectors(int(rng.integers(0, 3)), rng)
        results["structured"][classifier.analyze_snapshot(vectors).category] += 1

    for _ in range(n_targeted):
        target = targets[int(rng.integers(0, len(targets)))]
        jittered = apply_jitter([gen_targeted_vectors(target, rng)], 0.001, rng)[0]
        results["strict"][classifier.analyze_snapshot(jittered, 1e-7, 0.1).category] += 1
        results["loose"][classifier.analyze_snapshot(jittered, 0.01, 5.0).category] += 1

    if verbose:
        for phase, title in [("random", "RANDOM VECTORS"), ("structured", "STRUCTURED VECTORS"),
                             ("strict", "TARGETED, STRICT (1e-7)"), ("loose", "TARGETED, LOOSE (0.01)")]:
            print("\n" + "=" * 64)
            print(f"{title} ({sum(results[phase].values())} tests)")
            print("=" * 64)
            display_distribution(results[phase])

        seen = set().union(*(set(c) for c in results.values()))
        hidden = [name for name in targets if name not in seen]
        print(f"\nMotif types NOT observed ({len(hidden)}):")
        for name in hidden:
            print(f"  {name}")
    return results


# ── Chain audit ──────────────────────────────────────────────────────

CHAIN_SIGNATURES = {
    "PlayerA": ["Decagonal", "Cubic orthogonal", "Hexagonal tetragonal"],
    "PlayerB": ["Hypercubic", "Decagonal", "Ditetragonal diclinic"],
}


def run_chain_audit(seed=7, verbose=True):
    """
    Read a jittered PlayerA motif at several tolerances.

    Returns dict label -> ChainMatchResult.
    """
    rng = np.random.default_rng(seed)
    assembler = Assembler(CHAIN_SIGNATURES)
    motif = [TARGETED[name] for name in CHAIN_SIGNATURES["PlayerA"]]
    soft = apply_jitter(motif, 0.001, rng)
    noise = [gen_random_vectors(rng) * 2.5 for _ in range(3)]

    reports = {
        "motif@1e-3": assembler.verify_chain(soft, tolerance=1e-3),
        "motif@1e-7": assembler.verify_chain(soft, tolerance=1e-7),
        "motif@1e-1": assembler.verify_chain(soft, tolerance=0.1),
        "noise@1e-1": assembler.verify_chain(noise, tolerance=0.1),
    }
    if verbose:
        print("\n" + "=" * 64)
        print("CHAIN AUDIT")
        print("=" * 64)
        for label, report in reports.items():
            status = "MATCH" if report.matched else "REJECTED"
            print(f"\n  [{status}] {label}  entropy={report.entropy:.2f}")
            print(f"    Chain: {' -> '.join(report.chain)}")
            print(f"    Protocol: {report.matched_protocol}")
    return reports


# ── Trust scenarios ──────────────────────────────────────────────────

BASE_RANGES = [[0, 23], [1, 10], [1, 5], [3, 8]]


def run_trust_scenario(alignment, steps=7, seed=3, verbose=True):
    """
    Feed the Verifier a week of snapshots.

    alignment: 'high' keeps vectors A and B at 120°, 'low' randomizes B.
    Returns list of AuditReport.
    """
    rng = np.random.default_rng(seed)
    verifier = Verifier()
    reports = []
    if verbose:
        print(f"\n=== SCENARIO: {alignment.upper()} ALIGNMENT ===")
    for day in range(1, steps + 1):
        point_a = [0, 1, 1, 3]
        if alignment == "high":
            target = [23, 10, 5, 3]
            point_b = [min(hi, max(lo, val + (rng.random() - 0.5) * 0.1))
                       for val, (lo, hi) in zip(target, BASE_RANGES)]
        else:
            point_b = [lo + rng.random() * (hi - lo) for lo, hi in BASE_RANGES]
        raw = [point_a, point_b, [23, 1, 1, 3], [0, 10, 5, 8]]
        report = verifier.audit_snapshot(raw, BASE_RANGES)
        reports.append(report)
        if verbose:
            print(f"  Measure {day}: [{report.motif:<28}] | Angle: {report.angle:6.1f}° "
                  f"(Δ{abs(report.angle - 120):.2f}°) | Trust: {report.trust:4.0%}")
    if verbose:
        verdict = "PROTOCOL VERIFIED" if verifier.phase_trust > 0.8 else UNKNOWN_ACTOR
        print(f"  Final Verdict: {verdict}")
    return reports


if __name__ == "__main__":
    run_progressive()
    run_chain_audit()
    run_trust_scenario("high")
    run_trust_scenario("low")
    sys.exit(0)
