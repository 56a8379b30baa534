import os, sys
import pytest

# Ensure `src/` is importable
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
SRC = os.path.join(ROOT, "src")
if SRC not in sys.path:
    sys.path.insert(0, SRC)

from boltzmann_brain.system.model import Atom, Constructor, MSet, Seq, System, Type

WINDOW = {"samples": 5, "lowerBound": 10, "upperBound": 200}


@pytest.fixture
def binary_trees():
    # T = Leaf(@) | Node(@, T, T); rho = 1/2, T(rho) = 1
    return System([
        Type("T", [
            Constructor("Leaf", ["@"]),
            Constructor("Node", ["@", "T", "T"]),
        ]),
    ], WINDOW)


@pytest.fixture
def motzkin_trees():
    # M = Leaf(@) | Unary(@, M) | Binary(@, M, M); rho = 1/3, M(rho) = 1
    return System([
        Type("M", [
            Constructor("MLeaf", ["@"]),
            Constructor("Unary", ["@", "M"]),
            Constructor("Binary", ["@", "M", "M"]),
        ]),
    ], WINDOW)


@pytest.fixture
def words():
    # W = a(@, W) | b(@, W) | End; W(z) = 1/(1 - 2z), pole at 1/2
    return System([
        Type("W", [
            Constructor("a", ["@", "W"]),
            Constructor("b", ["@", "W"]),
            Constructor("End", []),
        ]),
    ], WINDOW)


@pytest.fixture
def plane_trees():
    # T = Node(@, Seq(T)); rho = 1/4, T(rho) = 1/2
    return System([
        Type("P", [Constructor("PNode", [Atom(), Seq("P")])]),
    ], WINDOW)


@pytest.fixture
def weighted_bag():
    # R = Root(Seq(C)), C = X(@) | Y(@) with weight 3: P(X) = 1/4 at any z
    return System([
        Type("R", [Constructor("Root", [Seq("C")])]),
        Type("C", [
            Constructor("X", ["@"]),
            Constructor("Y", ["@"], weight=3.0),
        ]),
    ], WINDOW)


@pytest.fixture
def multiset_forest():
    # F = Forest(Set(B)), B = Leaf(@, @) | Node(@, B, B); B(rho) < 1 keeps Set(B) finite
    return System([
        Type("F", [Constructor("Forest", [MSet("B")])]),
        Type("B", [
            Constructor("BLeaf", ["@", "@"]),
            Constructor("BNode", ["@", "B", "B"]),
        ]),
    ], WINDOW)


@pytest.fixture
def zero_size_loop():
    # Wrap adds no size and can be repeated forever
    return System([
        Type("T", [
            Constructor("Wrap", ["T"]),
            Constructor("Leaf", ["@"]),
        ]),
    ], WINDOW)
