import json
from datetime import datetime
import pytest
import numpy as np
from lattice_family_framework import (
    Assembler, ChainMatchResult, Classifier, ConfigurationError, Generator,
    UNKNOWN_ACTOR, chain_entropy, strip_qualifier,
)
from train_signature import motif_from_ids, record_chain, train_actor_signature

PLAYER_A = ["Decagonal", "Cubic orthogonal", "Hexagonal tetragonal"]


@pytest.fixture(scope="module")
def generator():
    return Generator()


def test_player_a_scenario(generator):
    assembler = Assembler({"PlayerA": PLAYER_A})
    history = [generator.generate(19), generator.generate(17), generator.generate(15)]
    report = assembler.verify_chain(history)

    assert isinstance(report, ChainMatchResult)
    assert list(report.chain) == PLAYER_A
    assert report.matched_protocol == "PlayerA"
    assert report.matched
    assert report.entropy == pytest.approx(1.0)


def test_signature_inside_longer_history(generator):
    assembler = Assembler({"PlayerA": PLAYER_A})
    history = [generator.generate(23)] + [generator.generate(i) for i in (19, 17, 15)] \
        + [generator.generate(10)]
    assert assembler.verify_chain(history).matched_protocol == "PlayerA"


def test_noise_is_unknown_actor():
    rng = np.random.default_rng(0)
    assembler = Assembler({"PlayerA": PLAYER_A})
    report = assembler.verify_chain([rng.random((4, 4)) * 5 - 2.5 for _ in range(3)])
    assert report.matched_protocol == UNKNOWN_ACTOR
    assert not report.matched


# ── Window matching ──────────────────────────────────────────────────

CHAIN = ["Orthogonal", "Hypercubic", "Decagonal", "Cubic orthogonal"]


def test_contiguous_match():
    assembler = Assembler({"fwd": ["Hypercubic", "Decagonal", "Cubic orthogonal"]})
    assert assembler.match_labels(CHAIN) == "fwd"


def test_order_matters():
    assembler = Assembler({"swap": ["Decagonal", "Hypercubic", "Cubic orthogonal"]})
    assert assembler.match_labels(CHAIN) == UNKNOWN_ACTOR


def test_partial_chain_does_not_match_full_signature():
    assembler = Assembler({"fwd": ["Hypercubic", "Decagonal", "Cubic orthogonal"]})
    assert assembler.match_labels(["Orthogonal", "Hypercubic", "Decagonal"]) == UNKNOWN_ACTOR


def test_gaps_are_not_allowed():
    assembler = Assembler({"fwd": ["Hypercubic", "Decagonal", "Cubic orthogonal"]})
    gapped = ["Hypercubic", "Orthogonal", "Decagonal", "Cubic orthogonal"]
    assert assembler.match_labels(gapped) == UNKNOWN_ACTOR


def test_first_actor_in_table_order_wins():
    assembler = Assembler({"first": ["Decagonal"], "second": ["Hypercubic", "Decagonal"]})
    assert assembler.match_labels(CHAIN) == "first"


def test_qualifier_stripping():
    assert strip_qualifier("Decagonal (Verified)") == "Decagonal"
    assert strip_qualifier("Orthogonal Sync (90°)") == "Orthogonal Sync"
    assembler = Assembler({"A": ["Decagonal"]})
    assert assembler.match_labels(["Decagonal (Verified)"]) == "A"

    # qualifiers inside the signature table are ignored too
    qualified = Assembler({"B": ["Hypercubic (Verified)", "Decagonal"]})
    assert qualified.known_signatures["B"] == ("Hypercubic", "Decagonal")
    assert qualified.match_labels(CHAIN) == "B"


def test_chain_longer_than_history():
    assembler = Assembler({"long": CHAIN + ["Octagonal"]})
    assert assembler.match_labels(CHAIN) == UNKNOWN_ACTOR
    assert assembler.match_labels([]) == UNKNOWN_ACTOR


# ── Entropy ──────────────────────────────────────────────────────────

def test_entropy_bounds():
    assert chain_entropy([]) == 0.0
    assert chain_entropy(["Hypercubic"] * 4) == pytest.approx(0.25)
    assert chain_entropy(CHAIN) == pytest.approx(1.0)
    assert chain_entropy(["Hypercubic", "Decagonal", "Hypercubic"]) == pytest.approx(2 / 3)


def test_entropy_of_repeated_snapshots():
    identity = np.eye(4)
    report = Assembler().verify_chain([identity, identity, identity])
    assert report.chain == ("Hypercubic",) * 3
    assert report.entropy == pytest.approx(1 / 3)
    assert 0 < report.entropy <= 1


def test_empty_history():
    report = Assembler().verify_chain([])
    assert report.chain == ()
    assert report.entropy == 0.0
    assert report.matched_protocol == UNKNOWN_ACTOR


def test_timestamp_is_iso():
    report = Assembler().verify_chain([np.eye(4)])
    assert datetime.fromisoformat(report.timestamp).tzinfo is not None


# ── Signature tables ─────────────────────────────────────────────────

def test_default_signatures():
    assembler = Assembler()
    assert list(assembler.known_signatures) == ["PlayerA", "PlayerB"]
    assert all(len(seq) == 3 for seq in assembler.known_signatures.values())


def test_signature_table_is_copied():
    table = {"A": ["Decagonal"]}
    assembler = Assembler(table)
    table["A"].append("Hypercubic")
    assert assembler.known_signatures["A"] == ("Decagonal",)


@pytest.mark.parametrize("table", [
    {"X": ["Not a family"]},
    {"X": []},
    {"X": "Decagonal"},
    [("X", ["Decagonal"])],
])
def test_invalid_signature_tables(table):
    with pytest.raises(ConfigurationError):
        Assembler(table)


def test_assembler_shares_classifier_trail():
    classifier = Classifier()
    assembler = Assembler({"A": ["Hypercubic"]}, classifier=classifier)
    assembler.verify_chain([np.eye(4), np.eye(4)])
    assert len(classifier.history) == 2


def test_per_call_tolerances():
    assembler = Assembler({"A": ["Cubic orthogonal"]})
    stretched = np.diag([1.0, 1.0, 1.0, 1.05])
    assert assembler.verify_chain([stretched]).matched_protocol == "A"
    assert assembler.verify_chain([stretched], tolerance=0.1).matched_protocol == UNKNOWN_ACTOR


# ── Signature files ──────────────────────────────────────────────────

def test_from_signature_dir(tmp_path):
    (tmp_path / "a.json").write_text(json.dumps({"name": "PlayerA", "sequence": PLAYER_A}))
    (tmp_path / "notes.txt").write_text("ignored")
    assembler = Assembler.from_signature_dir(str(tmp_path))
    assert assembler.known_signatures == {"PlayerA": tuple(PLAYER_A)}


def test_bad_signature_files_are_skipped(tmp_path):
    (tmp_path / "a.json").write_text(json.dumps({"name": "PlayerA", "sequence": PLAYER_A}))
    (tmp_path / "broken.json").write_text("{not json")
    (tmp_path / "unknown.json").write_text(json.dumps({"name": "Z", "sequence": ["Nope"]}))
    (tmp_path / "nameless.json").write_text(json.dumps({"sequence": PLAYER_A}))
    with pytest.warns(UserWarning, match="Failed to load signature"):
        assembler = Assembler.from_signature_dir(str(tmp_path))
    assert list(assembler.known_signatures) == ["PlayerA"]


def test_missing_signature_dir(tmp_path):
    with pytest.warns(UserWarning, match="No signatures found"):
        assembler = Assembler.from_signature_dir(str(tmp_path / "absent"))
    assert assembler.known_signatures == {}
    assert assembler.verify_chain([np.eye(4)]).matched_protocol == UNKNOWN_ACTOR


def test_trained_signature_round_trip(tmp_path, generator):
    history = motif_from_ids([19, 17, 15], generator)
    assert record_chain(history) == PLAYER_A

    path = train_actor_signature("Player C", history, out_dir=str(tmp_path))
    assert path.endswith("player_c.json")
    with open(path) as f:
        assert json.load(f)["sequence"] == PLAYER_A

    assembler = Assembler.from_signature_dir(str(tmp_path))
    assert assembler.verify_chain(history).matched_protocol == "Player C"


def test_training_rejects_unclassified(tmp_path):
    unclassified = [[1, 0, 0, 0], [0, 1, 0, 0], [0.6, 0.8, 0, 0], [0, 0, 0.6, 0.8]]
    with pytest.raises(ValueError, match="unclassified"):
        train_actor_signature("Noise", [np.eye(4), unclassified], out_dir=str(tmp_path))
    with pytest.raises(ValueError, match="empty"):
        train_actor_signature("Nobody", [], out_dir=str(tmp_path))
