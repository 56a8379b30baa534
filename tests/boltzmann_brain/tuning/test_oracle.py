import numpy as np
import pytest

from boltzmann_brain.config import TuningConfig
from boltzmann_brain.errors import IllFoundedSystem, TuningDidNotConverge
from boltzmann_brain.system.checker import SystemType, check
from boltzmann_brain.system.model import Constructor, System, Type
from boltzmann_brain.tuning.equations import Equations
from boltzmann_brain.tuning.oracle import IterativeOracle, TuningFileOracle, select_oracle, tune
from boltzmann_brain.tuning.tuned import Mode


def test_binary_trees_regular(binary_trees):
    ts = tune(binary_trees)
    assert ts.system_type is SystemType.ALGEBRAIC
    assert ts.mode is Mode.REGULAR
    assert ts.singularity == pytest.approx(0.5, rel=1e-8)
    assert ts.parameter == ts.singularity
    assert ts.probabilities["T"] == pytest.approx((0.5, 0.5), abs=1e-6)
    assert ts.values["T"] == pytest.approx(1.0, abs=1e-6)


def test_motzkin_trees(motzkin_trees):
    ts = tune(motzkin_trees)
    assert ts.singularity == pytest.approx(1.0 / 3.0, rel=1e-8)
    assert ts.probabilities["M"] == pytest.approx((1 / 3, 1 / 3, 1 / 3), abs=1e-6)


def test_plane_trees_with_sequence(plane_trees):
    ts = tune(plane_trees)
    assert ts.singularity == pytest.approx(0.25, rel=1e-8)
    assert ts.probabilities["P"] == (1.0,)
    assert ts.probabilities["Seq(P)"] == pytest.approx((0.5, 0.5), abs=1e-6)
    assert ts.values["Seq(P)"] == pytest.approx(2.0, abs=1e-5)


def test_plane_trees_values_at_the_fold(plane_trees):
    ts = tune(plane_trees)
    assert ts.values["P"] == pytest.approx(0.5, abs=1e-7)
    assert ts.probabilities["Seq(P)"] == pytest.approx((0.5, 0.5), abs=1e-7)


def test_polishing_accepts_a_fold_just_below_a_stalled_bracket(plane_trees):
    # Newton converges to the residual bound slightly past rho = 1/4, leaving
    # the bisection point above the fold and P short of 1/2 by ~sqrt(precision)
    eqs = Equations(plane_trees)
    idx = plane_trees.index
    y_lo = np.empty(eqs.n)
    y_lo[idx["P"]] = 0.4999966
    y_lo[idx["Seq(P)"]] = 1.0 / (1.0 - 0.4999966)
    lo = 0.25 + 4.66e-10
    polished = IterativeOracle._polish(eqs, lo, lo + 2.5e-10, y_lo, 1e-9)
    assert polished is not None
    z, y = polished
    assert z == pytest.approx(0.25, rel=1e-8)
    assert y[idx["P"]] == pytest.approx(0.5, abs=1e-7)
    assert y[idx["Seq(P)"]] == pytest.approx(2.0, abs=1e-6)


def test_probabilities_are_normalised(binary_trees, motzkin_trees, words, plane_trees, weighted_bag, multiset_forest):
    for s in (binary_trees, motzkin_trees, words, plane_trees, weighted_bag, multiset_forest):
        for mode in Mode:
            ts = tune(s, mode)
            assert ts.normalization_error() < 1e-9
            for t in s:
                assert ts.thresholds(t.name)[-1] == 1.0


def test_rational_words_regular_sits_at_the_pole(words):
    ts = tune(words, Mode.REGULAR)
    assert ts.system_type is SystemType.RATIONAL
    assert ts.singularity == pytest.approx(0.5, rel=1e-8)
    assert ts.parameter == ts.singularity


def test_rational_words_cumulative_hits_expected_size(words):
    # W(z) = 1/(1-2z), E(z) = 2z/(1-2z) = 105  =>  z = 105/212
    ts = tune(words, Mode.CUMULATIVE)
    z = 105.0 / 212.0
    assert ts.mode is Mode.CUMULATIVE
    assert ts.parameter == pytest.approx(z, rel=1e-7)
    assert ts.parameter < ts.singularity
    assert ts.probabilities["W"] == pytest.approx((z, z, 1.0 - 2.0 * z), rel=1e-6)
    assert ts.values["W"] == pytest.approx(106.0, rel=1e-5)


def test_cumulative_target_from_config(words):
    ts = tune(words, Mode.CUMULATIVE, TuningConfig(expected_size=1.0))
    assert ts.parameter == pytest.approx(0.25, rel=1e-7)


def test_algebraic_cumulative_stays_singular(binary_trees):
    reg = tune(binary_trees, Mode.REGULAR)
    cum = tune(binary_trees, Mode.CUMULATIVE)
    assert cum.parameter == reg.parameter
    assert cum.probabilities == reg.probabilities


def test_weights_shift_probabilities(weighted_bag):
    ts = tune(weighted_bag, Mode.CUMULATIVE)
    assert ts.probabilities["C"] == pytest.approx((0.25, 0.75))
    assert ts.singularity == pytest.approx(0.25, rel=1e-8)


def test_ill_founded_systems_are_checked_first(zero_size_loop):
    with pytest.raises(IllFoundedSystem):
        tune(zero_size_loop)


def test_forced_ill_founded_system_fails_to_tune(zero_size_loop):
    forced = check(zero_size_loop, allow_unsafe=True)
    with pytest.raises(TuningDidNotConverge):
        tune(forced)


def test_finite_class_has_no_singularity():
    s = System([
        Type("Pair", [Constructor("P", ["@", "Bit", "Bit"])]),
        Type("Bit", [Constructor("Zero", ["@"]), Constructor("One", ["@"])]),
    ])
    with pytest.raises(TuningDidNotConverge):
        tune(s)


def test_tight_iteration_cap_is_reported(binary_trees):
    with pytest.raises(TuningDidNotConverge):
        tune(binary_trees, config=TuningConfig(precision=1e-12, maxiter=3))


def test_unreachable_expected_size(words):
    with pytest.raises(TuningDidNotConverge):
        tune(words, Mode.CUMULATIVE, TuningConfig(expected_size=1e-9))


def test_select_oracle(tmp_path):
    assert isinstance(select_oracle(), IterativeOracle)
    assert isinstance(select_oracle(None), IterativeOracle)
    oracle = select_oracle(str(tmp_path / "t.json"))
    assert isinstance(oracle, TuningFileOracle)
    assert oracle.path.endswith("t.json")


def test_explicit_oracle_is_used(binary_trees):
    class Fixed(IterativeOracle):
        calls = 0

        def tune(self, checked, mode, config):
            Fixed.calls += 1
            return super().tune(checked, mode, config)

    ts = tune(binary_trees, oracle=Fixed())
    assert Fixed.calls == 1
    assert np.isclose(ts.singularity, 0.5)
