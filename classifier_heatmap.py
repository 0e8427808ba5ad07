#!/usr/bin/env python3
"""
Generate a recovery heatmap: for each invertible family, realize it with the
Generator, jitter the vectors, classify them across a sweep of length
tolerances and plot the fraction of samples recovered as the same family.

Left columns (tight tolerance) show which families survive noise;
right columns show where loose tolerances start merging families.
"""

import numpy as np
import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
from lattice_family_framework import Classifier, Generator, get_definition, invertible_ids

DEFAULT_TOLERANCES = (1e-4, 1e-3, 1e-2, 5e-2, 1e-1)
DEFAULT_JITTER = 0.002
DEFAULT_SAMPLES = 20


def recovery_matrix(ids=None, tolerances=DEFAULT_TOLERANCES, angle_tolerance=5.0,
                    jitter=DEFAULT_JITTER, n_samples=DEFAULT_SAMPLES, seed=0):
    """
    Fraction of jittered samples classified back to their own family.

    Returns (ids, matrix) with matrix shape (len(ids), len(tolerances)).
    """
    ids = list(invertible_ids() if ids is None else ids)
    rng = np.random.default_rng(seed)
    classifier = Classifier()
    generator = Generator(classifier)
    matrix = np.zeros((len(ids), len(tolerances)))

    for row, family_id in enumerate(ids):
        base = generator.generate(family_id)
        samples = [base + (rng.random(base.shape) - 0.5) * jitter for _ in range(n_samples)]
        for col, tol in enumerate(tolerances):
            hits = sum(classifier.analyze_snapshot(s, tol, angle_tolerance).category_id == family_id
                       for s in samples)
            matrix[row, col] = hits / n_samples
    return ids, matrix


def plot_recovery(ids, matrix, tolerances=DEFAULT_TOLERANCES, output="family_recovery_heatmap.png"):
    names = [f"{get_definition(i).name} ({i})" for i in ids]
    fig, ax = plt.subplots(figsize=(2 + 1.2 * len(tolerances), 1 + 0.4 * len(ids)))
    im = ax.imshow(matrix, cmap="viridis", vmin=0, vmax=1, aspect="auto")

    ax.set_xticks(range(len(tolerances)))
    ax.set_xticklabels([f"{t:g}" for t in tolerances])
    ax.set_yticks(range(len(ids)))
    ax.set_yticklabels(names, fontsize=8)
    ax.set_xlabel("Length tolerance")
    ax.set_title("Round-trip recovery under jitter")

    for r in range(matrix.shape[0]):
        for c in range(matrix.shape[1]):
            ax.text(c, r, f"{matrix[r, c]:.0%}", ha="center", va="center",
                    color="white" if matrix[r, c] < 0.5 else "black", fontsize=7)

    fig.colorbar(im, ax=ax, label="Recovered fraction")
    fig.tight_layout()
    fig.savefig(output, dpi=150)
    plt.close(fig)
    print(f"Saved {output}")
    return output


if __name__ == "__main__":
    ids, matrix = recovery_matrix()
    plot_recovery(ids, matrix)
