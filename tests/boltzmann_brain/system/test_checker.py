import pytest

from boltzmann_brain.errors import IllFoundedSystem
from boltzmann_brain.system.checker import (
    Severity,
    SystemType,
    check,
    classify,
    nullable_types,
    productive_types,
    recursive_arity,
    zero_size_graph,
)
from boltzmann_brain.system.model import Constructor, Seq, System, Type


def codes(result):
    return [d.code for d in result.diagnostics]


def test_classification(binary_trees, motzkin_trees, words, plane_trees, weighted_bag, multiset_forest):
    assert check(binary_trees).system_type is SystemType.ALGEBRAIC
    assert check(motzkin_trees).system_type is SystemType.ALGEBRAIC
    assert check(words).system_type is SystemType.RATIONAL
    assert check(plane_trees).system_type is SystemType.ALGEBRAIC
    assert check(weighted_bag).system_type is SystemType.RATIONAL
    assert check(multiset_forest).system_type is SystemType.ALGEBRAIC


def test_recursive_arity_counts_multiplicity(binary_trees, words):
    assert recursive_arity(binary_trees) == {"Leaf": 0, "Node": 2}
    assert recursive_arity(words) == {"a": 1, "b": 1, "End": 0}


def test_mutual_recursion_through_two_types_is_still_rational():
    # A -> B -> A, one same-component reference per constructor
    s = System([
        Type("A", [Constructor("toB", ["@", "B"]), Constructor("stop", ["@"])]),
        Type("B", [Constructor("toA", ["@", "@", "A"])]),
    ])
    assert classify(s) is SystemType.RATIONAL


def test_zero_size_cycle_is_rejected(zero_size_loop):
    with pytest.raises(IllFoundedSystem) as ei:
        check(zero_size_loop)
    assert ei.value.type_name == "T"
    assert "size-0" in str(ei.value)


def test_zero_size_cycle_forced(zero_size_loop):
    res = check(zero_size_loop, allow_unsafe=True)
    assert res.system_type is SystemType.ILL_FORMED
    assert not res.well_founded
    assert [d.code for d in res.errors] == ["ZERO_SIZE_CYCLE"]
    assert all(d.severity is Severity.ERROR for d in res.errors)


def test_non_productive_type():
    s = System([
        Type("S", [Constructor("Start", ["@", "T"]), Constructor("Stop", ["@"])]),
        Type("T", [Constructor("Grow", ["@", "T"])]),
    ])
    assert productive_types(s) == {"S"}
    with pytest.raises(IllFoundedSystem) as ei:
        check(s)
    assert ei.value.type_name == "T"
    forced = check(s, allow_unsafe=True)
    assert [d.code for d in forced.errors] == ["NON_PRODUCTIVE"]


def test_epsilon_constructor_is_fine_without_a_cycle(words):
    # End has size 0 but references nothing
    assert nullable_types(words) == {"W"}
    assert zero_size_graph(words).number_of_edges() == 0
    assert check(words).well_founded


def test_sequence_of_nullable_type_is_a_zero_size_cycle():
    s = System([
        Type("T", [Constructor("Many", [Seq("E")]), Constructor("One", ["@"])]),
        Type("E", [Constructor("Empty", ["_"]), Constructor("Full", ["@"])]),
    ])
    # Seq(E).Cons(E, Seq(E)) can repeat an empty E forever
    with pytest.raises(IllFoundedSystem):
        check(s)


def test_warnings_dead_trivial_and_missing_metadata():
    s = System([
        Type("T", [Constructor("Leaf", ["@"]), Constructor("Node", ["@", "T", "T"])]),
        Type("U", [Constructor("Lonely", ["@"])]),
    ])
    res = check(s)
    assert res.system_type is SystemType.ALGEBRAIC
    assert codes(res) == ["DEAD_TYPE", "TRIVIAL_TYPE", "MISSING_METADATA"]
    assert all(d.severity is Severity.WARNING for d in res.warnings)
    assert res.errors == ()
    assert "@samples = 1" in res.warnings[-1].message


def test_no_warnings_with_full_metadata(binary_trees):
    assert check(binary_trees).diagnostics == ()


def test_check_is_pure(binary_trees):
    first = check(binary_trees)
    second = check(binary_trees)
    assert first == second
