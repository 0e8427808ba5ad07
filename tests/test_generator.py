import math
import pytest
import numpy as np
from lattice_family_framework import (
    Classifier, Generator, ConfigurationError, GeometryError, RULE_CATALOG,
    build_gram_matrix, cholesky_rows, extract_metrics, gram_of, get_definition,
    invertible_ids,
)


@pytest.mark.parametrize("family_id", invertible_ids())
def test_round_trip(family_id):
    """Classifying a generated family must recover the requested id."""
    generator = Generator()
    result = generator.round_trip(family_id, tolerance=1e-3, angle_tolerance=1e-3)
    assert result.category_id == family_id, \
        f"{get_definition(family_id).name} came back as {result.category}"


@pytest.mark.parametrize("family_id", invertible_ids())
def test_matrix_contract(family_id):
    vectors = Generator().generate(family_id)
    assert isinstance(vectors, np.ndarray)
    assert vectors.shape == (4, 4)
    assert np.all(np.isfinite(vectors))
    # rows of a lower-triangular factor
    assert np.allclose(np.triu(vectors, 1), 0)


@pytest.mark.parametrize("family_id", invertible_ids())
def test_rows_reproduce_gram(family_id):
    generator = Generator()
    params = get_definition(family_id).gen_params
    target = build_gram_matrix(generator.resolve_lengths(params["edges"]),
                               generator.resolve_angles(params["angles"]))
    assert np.allclose(gram_of(generator.generate(family_id)), target, atol=1e-8)


def test_cubic_orthogonal_scenario():
    vectors = Generator().generate(17)
    lengths, angles = extract_metrics(*vectors)
    assert [lengths[k] for k in "abcd"] == pytest.approx([1, 1, 1, 2], abs=1e-6)
    for name, value in angles.items():
        assert value == pytest.approx(90.0, abs=1e-6), name


@pytest.mark.parametrize("family_id", [1, 2, 3, 4, 5])
def test_classify_only_families(family_id):
    with pytest.raises(ConfigurationError, match="classify-only"):
        Generator().generate(family_id)


@pytest.mark.parametrize("family_id", [0, 24, -3, 99])
def test_unknown_ids(family_id):
    with pytest.raises(ConfigurationError, match="Unknown category id"):
        Generator().generate(family_id)


def test_errors_are_value_errors():
    with pytest.raises(ValueError):
        Generator().generate(42)


def test_generator_uses_its_classifier_catalog():
    generator = Generator(Classifier(definitions=RULE_CATALOG[:1]))
    assert generator.generate(23).shape == (4, 4)
    with pytest.raises(ConfigurationError):
        generator.generate(17)


# ── Angle closure rules ──────────────────────────────────────────────

def test_icosagonal_rule():
    angles = Generator.resolve_angles({"rule": "icosagonal"})
    expected = math.degrees(math.acos(-0.25))
    assert all(v == pytest.approx(expected) for v in angles.values())


def test_decagonal_rule():
    angles = Generator.resolve_angles({"rule": "decagonal", "alpha": 144})
    assert angles["alpha"] == angles["gamma"] == angles["zeta"] == 144
    assert angles["beta"] == pytest.approx(72.0)
    assert angles["beta"] == angles["delta"] == angles["epsilon"]


def test_decagonal_rule_without_real_solution():
    # cos β = -0.5 - cos 10° < -1
    with pytest.raises(GeometryError, match="[Ii]mpossible geometry"):
        Generator.resolve_angles({"rule": "decagonal", "alpha": 10})


def test_ditrigonal_monoclinic_rule():
    angles = Generator.resolve_angles({"rule": "ditrigonal_monoclinic", "beta": 60})
    assert angles["alpha"] == angles["zeta"] == 120
    assert angles["epsilon"] == 60
    assert math.cos(math.radians(angles["gamma"])) == pytest.approx(-0.25)
    assert angles["gamma"] == angles["delta"]


def test_ditrigonal_diclinic_rule():
    angles = Generator.resolve_angles({"rule": "ditrigonal_diclinic", "beta": 75, "gamma": 100})
    cos = lambda deg: math.cos(math.radians(deg))
    assert angles["alpha"] == angles["zeta"] == 120
    assert angles["epsilon"] == 75
    assert cos(angles["delta"]) == pytest.approx(cos(75) - cos(100))


def test_ditrigonal_diclinic_without_real_solution():
    with pytest.raises(GeometryError):
        Generator.resolve_angles({"rule": "ditrigonal_diclinic", "beta": 10, "gamma": 170})


def test_rule_parameter_errors():
    with pytest.raises(ConfigurationError, match="alpha"):
        Generator.resolve_angles({"rule": "decagonal"})
    with pytest.raises(ConfigurationError, match="Unknown angle rule"):
        Generator.resolve_angles({"rule": "heptagonal"})


def test_fixed_and_uniform_angles():
    assert Generator.resolve_angles({"all": 90}) == dict.fromkeys(
        ["alpha", "beta", "gamma", "delta", "epsilon", "zeta"], 90.0)
    angles = Generator.resolve_angles({"alpha": 75, "zeta": 120})
    assert angles["alpha"] == 75 and angles["zeta"] == 120 and angles["beta"] == 90


# ── Gram matrix and factorization ────────────────────────────────────

def test_gram_pair_mapping():
    """Each named angle lands on its own vector pair and nowhere else."""
    lengths = {"a": 1.0, "b": 2.0, "c": 3.0, "d": 4.0}
    angles = dict.fromkeys(["alpha", "beta", "gamma", "delta", "epsilon", "zeta"], 90.0)
    angles["alpha"] = 60.0      # b, c
    angles["delta"] = 180.0     # a, d
    gram = build_gram_matrix(lengths, angles)

    assert np.allclose(np.diag(gram), [1, 4, 9, 16])
    assert gram[1, 2] == pytest.approx(3.0) and gram[2, 1] == pytest.approx(3.0)
    assert gram[0, 3] == pytest.approx(-4.0) and gram[3, 0] == pytest.approx(-4.0)
    assert gram[0, 2] == pytest.approx(0.0, abs=1e-12)
    assert gram[2, 3] == pytest.approx(0.0, abs=1e-12)


def test_cholesky_rejects_indefinite():
    with pytest.raises(GeometryError, match="not positive semidefinite"):
        cholesky_rows(np.array([[1.0, 2.0], [2.0, 1.0]]))


def test_cholesky_tolerates_rounding():
    factor = cholesky_rows(np.array([[1.0, 1.0], [1.0, 1.0 - 1e-12]]))
    assert factor[1, 1] == 0.0
    assert factor[1, 0] == pytest.approx(1.0)


def test_cholesky_zero_pivot():
    factor = cholesky_rows(np.array([[0.0, 0.0], [0.0, 4.0]]))
    assert np.array_equal(factor, np.array([[0.0, 0.0], [0.0, 2.0]]))


def test_cholesky_rejects_non_square():
    with pytest.raises(ValueError, match="square"):
        cholesky_rows(np.zeros((2, 3)))


def test_semidefinite_families_are_planar():
    """Decagonal and Octagonal presets span only a plane."""
    for family_id in (19, 18):
        vectors = Generator().generate(family_id)
        assert np.linalg.matrix_rank(vectors, tol=1e-6) == 2
