#!/usr/bin/env python3
"""
CLI tool to classify four vectors, realize a family, or list the catalog.

Usage:
    python quick_classify.py classify 1,0,0,0 0,1,0,0 0,0,1,0 0,0,0,1
    python quick_classify.py classify 5,0,0,0 0,1,0,0 0,0,2,0 0,0,0,3 --angle-tol 5
    python quick_classify.py generate 17
    python quick_classify.py list
"""

import argparse
import sys
import numpy as np
from lattice_family_framework import (
    Classifier, Generator, RULE_CATALOG, LatticeError, gram_of,
)


def parse_vector(text):
    """'1,0,0.5,2' -> array of four floats."""
    try:
        values = [float(x) for x in text.split(",")]
    except ValueError:
        raise argparse.ArgumentTypeError(f"not a numeric vector: {text!r}")
    if len(values) != 4:
        raise argparse.ArgumentTypeError(f"expected 4 components, got {len(values)}: {text!r}")
    return np.array(values)


def cmd_classify(args):
    classifier = Classifier(tolerance=args.tol, angle_tolerance=args.angle_tol)
    result = classifier.analyze(*args.vectors)
    print(result.summary())
    return 0


def cmd_generate(args):
    generator = Generator(Classifier(tolerance=args.tol, angle_tolerance=args.angle_tol))
    try:
        vectors = generator.generate(args.id)
    except LatticeError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    definition = generator.definition(args.id)
    print(f"{definition.name} (id {definition.id}): edges {definition.edges}, "
          f"angles {definition.angles}")
    for label, row in zip("abcd", vectors):
        print(f"  {label} = [{', '.join(f'{x:8.4f}' for x in row)} ]")

    print("\n  Gram matrix:")
    for row in gram_of(vectors):
        print("    " + " ".join(f"{x:8.4f}" for x in row))

    check = generator.classifier.analyze_snapshot(vectors, 1e-3, 1e-3)
    tag = "PASS" if check.category_id == args.id else "FAIL"
    print(f"\n  Round trip: {check.category} [{tag}]")
    return 0 if tag == "PASS" else 1


def cmd_list(args):
    print(f"\n  {'ID':>3}  {'Family':<28} {'Edges':<11} {'Gen':<4} Angles")
    print(f"  {'─'*3}  {'─'*28} {'─'*11} {'─'*4} {'─'*30}")
    for definition in RULE_CATALOG:
        gen_flag = "yes" if definition.invertible else "-"
        print(f"  {definition.id:>3}  {definition.name:<28} {definition.edges:<11} "
              f"{gen_flag:<4} {definition.angles}")
    n_gen = sum(1 for d in RULE_CATALOG if d.invertible)
    print(f"\nTotal: {len(RULE_CATALOG)} families  |  invertible={n_gen}")
    return 0


def main(argv=None):
    parser = argparse.ArgumentParser(
        description="Classify four 4D vectors into lattice families."
    )
    parser.add_argument("--tol", type=float, default=None,
                        help="Edge-length tolerance (default: 1e-4)")
    parser.add_argument("--angle-tol", type=float, default=None,
                        help="Angle tolerance in degrees (default: 15)")
    sub = parser.add_subparsers(dest="command", required=True)

    p_classify = sub.add_parser("classify", help="Classify four vectors")
    p_classify.add_argument("vectors", nargs=4, type=parse_vector,
                            help="Four comma-separated vectors")
    p_classify.set_defaults(func=cmd_classify)

    p_generate = sub.add_parser("generate", help="Realize a family as four vectors")
    p_generate.add_argument("id", type=int, help="Family id (6-23)")
    p_generate.set_defaults(func=cmd_generate)

    p_list = sub.add_parser("list", help="Show the rule catalog")
    p_list.set_defaults(func=cmd_list)

    args = parser.parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
