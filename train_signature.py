#!/usr/bin/env python3
"""
Signature recorder for the Lattice Family Framework.
Classifies a demonstration history and saves it as an actor signature that
Assembler.from_signature_dir() can load.
"""

import os
import json
import numpy as np
from lattice_family_framework import (
    Classifier, Generator, strip_qualifier, UNCLASSIFIED_NAME,
)

DEFAULT_SIGNATURE_DIR = "signatures"


def record_chain(history, classifier=None, tolerance=None, angle_tolerance=None):
    """Qualifier-free family labels of each snapshot in ``history``."""
    if classifier is None:
        classifier = Classifier()
    return [strip_qualifier(classifier.analyze_snapshot(s, tolerance, angle_tolerance).category)
            for s in history]


def train_actor_signature(name, history, classifier=None, tolerance=None,
                          angle_tolerance=None, out_dir=DEFAULT_SIGNATURE_DIR):
    """
    Record the signature for an actor.

    history: sequence of (4, 4) snapshots demonstrating the actor's motif.
    Unclassified snapshots cannot anchor a signature and are rejected.
    """
    print(f"Recording signature for '{name}'...")
    sequence = record_chain(history, classifier, tolerance, angle_tolerance)
    if not sequence:
        raise ValueError("Cannot record a signature from an empty history")
    if UNCLASSIFIED_NAME in sequence:
        step = sequence.index(UNCLASSIFIED_NAME)
        raise ValueError(f"Snapshot {step} is unclassified; refine it or loosen tolerances")
    print(f"  Chain: {' -> '.join(sequence)}")

    signature_data = {
        "name": name,
        "sequence": sequence,
        "tolerance": tolerance,
        "angle_tolerance": angle_tolerance,
    }

    os.makedirs(out_dir, exist_ok=True)
    filename = os.path.join(out_dir, f"{name.lower().replace(' ', '_')}.json")
    with open(filename, 'w') as f:
        json.dump(signature_data, f, indent=2)
    print(f"  Saved to {filename}")
    return filename


# --- Example motifs for an initial library ---

def jitter(snapshot, amount, rng):
    """Uniform component noise of total width ``amount``."""
    snapshot = np.asarray(snapshot, dtype=float)
    return snapshot + (rng.random(snapshot.shape) - 0.5) * amount


def motif_from_ids(ids, generator=None, amount=0.0, seed=0):
    generator = generator or Generator()
    rng = np.random.default_rng(seed)
    return [jitter(generator.generate(i), amount, rng) for i in ids]


if __name__ == "__main__":
    generator = Generator()
    train_actor_signature("PlayerA", motif_from_ids([19, 17, 15], generator, 0.001),
                          tolerance=1e-2)
    train_actor_signature("PlayerB", motif_from_ids([23, 19, 8], generator, 0.001),
                          tolerance=1e-2)
