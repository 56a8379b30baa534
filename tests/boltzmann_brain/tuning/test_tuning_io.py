import json

import pandas as pd
import pytest

from boltzmann_brain.errors import InvalidTuningData, TuningDataMismatch
from boltzmann_brain.tuning.io import load_tuning, read_tuning_data, tuning_problem, write_tuning
from boltzmann_brain.tuning.oracle import TuningFileOracle, tune
from boltzmann_brain.tuning.tuned import Mode
from boltzmann_brain.config import TuningConfig
from boltzmann_brain.system.checker import check


def write_json(path, doc):
    path.write_text(json.dumps(doc))
    return path


@pytest.mark.parametrize("name", ["tuning.json", "tuning.csv"])
def test_round_trip_is_exact(tmp_path, motzkin_trees, name):
    ts = tune(motzkin_trees)
    path = write_tuning(ts, tmp_path / name)
    back = load_tuning(motzkin_trees, path)
    assert back.singularity == ts.singularity
    assert back.parameter == ts.parameter
    assert dict(back.probabilities) == dict(ts.probabilities)
    assert dict(back.values) == dict(ts.values)
    assert back.system_type is ts.system_type


def test_round_trip_with_auxiliary_types(tmp_path, plane_trees):
    ts = tune(plane_trees)
    for name in ("p.json", "p.csv"):
        back = load_tuning(plane_trees, write_tuning(ts, tmp_path / name))
        assert dict(back.probabilities) == dict(ts.probabilities)


def test_csv_layout(tmp_path, binary_trees):
    ts = tune(binary_trees)
    path = write_tuning(ts, tmp_path / "t.csv")
    df = pd.read_csv(path)
    assert list(df.columns) == ["type", "constructor", "probability", "singularity", "parameter", "value"]
    assert df["constructor"].tolist() == ["Leaf", "Node"]


def test_format_can_be_forced(tmp_path, binary_trees):
    ts = tune(binary_trees)
    path = write_tuning(ts, tmp_path / "t.dat", fmt="csv")
    assert read_tuning_data(path, fmt="csv").probabilities.keys() == {"Leaf", "Node"}
    with pytest.raises(ValueError):
        write_tuning(ts, tmp_path / "t.xml", fmt="xml")


def test_missing_constructor_is_a_mismatch(tmp_path, binary_trees):
    path = write_json(tmp_path / "t.json", {"singularity": 0.5, "probabilities": {"Leaf": 1.0}})
    with pytest.raises(TuningDataMismatch) as ei:
        load_tuning(binary_trees, path)
    assert ei.value.missing == ("Node",)
    assert ei.value.extra == ()


def test_unknown_constructor_is_a_mismatch(tmp_path, binary_trees):
    path = write_json(tmp_path / "t.json", {
        "singularity": 0.5,
        "probabilities": {"Leaf": 0.5, "Node": 0.5, "Fork": 0.0},
    })
    with pytest.raises(TuningDataMismatch) as ei:
        load_tuning(binary_trees, path)
    assert ei.value.extra == ("Fork",)


def test_duplicate_key_is_a_mismatch(tmp_path, binary_trees):
    path = tmp_path / "t.json"
    path.write_text('{"singularity": 0.5, "probabilities": {"Leaf": 0.5, "Node": 0.5, "Leaf": 0.5}}')
    with pytest.raises(TuningDataMismatch) as ei:
        load_tuning(binary_trees, path)
    assert ei.value.duplicated == ("Leaf",)


def test_duplicate_csv_row_is_a_mismatch(tmp_path, binary_trees):
    path = tmp_path / "t.csv"
    path.write_text(
        "type,constructor,probability,singularity\n"
        "T,Leaf,0.5,0.5\n"
        "T,Node,0.5,0.5\n"
        "T,Node,0.5,0.5\n"
    )
    with pytest.raises(TuningDataMismatch):
        load_tuning(binary_trees, path)


@pytest.mark.parametrize("doc", [
    {"probabilities": {"Leaf": 0.5, "Node": 0.5}},
    {"singularity": 0.0, "probabilities": {"Leaf": 0.5, "Node": 0.5}},
    {"singularity": "half", "probabilities": {"Leaf": 0.5, "Node": 0.5}},
    {"singularity": 0.5, "probabilities": {"Leaf": 0.6, "Node": 0.6}},
    {"singularity": 0.5, "probabilities": {"Leaf": 1.5, "Node": -0.5}},
    {"singularity": 0.5, "probabilities": {"Leaf": 0.5, "Node": 0.5}, "values": {"U": 1.0}},
    {"singularity": 0.5, "probabilities": {"Leaf": 0.5, "Node": 0.5}, "values": {"T": -1.0}},
    {"singularity": 0.5, "probabilities": ["Leaf", "Node"]},
    {"singularity": 0.5},
])
def test_invalid_tuning_data(tmp_path, binary_trees, doc):
    path = write_json(tmp_path / "t.json", doc)
    with pytest.raises(InvalidTuningData):
        load_tuning(binary_trees, path)


def test_sum_tolerance(tmp_path, binary_trees):
    path = write_json(tmp_path / "t.json", {"singularity": 0.5, "probabilities": {"Leaf": 0.5, "Node": 0.5000001}})
    ts = load_tuning(binary_trees, path)
    # values are used exactly as read
    assert ts.probabilities["T"] == (0.5, 0.5000001)
    assert ts.thresholds("T")[-1] == 1.0


def test_csv_without_singularity_column(tmp_path, binary_trees):
    path = tmp_path / "t.csv"
    path.write_text("constructor,probability\nLeaf,0.5\nNode,0.5\n")
    with pytest.raises(InvalidTuningData):
        load_tuning(binary_trees, path)


def test_not_a_json_document(tmp_path, binary_trees):
    path = tmp_path / "t.json"
    path.write_text("{not json")
    with pytest.raises(InvalidTuningData):
        load_tuning(binary_trees, path)


def test_tune_command_document_is_accepted(tmp_path, plane_trees):
    ts = tune(plane_trees)
    path = write_json(tmp_path / "tuned.json", ts.to_dict())
    back = load_tuning(plane_trees, path)
    assert dict(back.probabilities) == dict(ts.probabilities)
    assert back.singularity == ts.singularity


def test_file_oracle_keeps_requested_mode(tmp_path, words):
    ts = tune(words, Mode.CUMULATIVE)
    path = write_tuning(ts, tmp_path / "w.json")
    back = TuningFileOracle(str(path)).tune(check(words), Mode.CUMULATIVE, TuningConfig())
    assert back.mode is Mode.CUMULATIVE
    assert back.parameter == ts.parameter
    assert back.parameter < back.singularity


def test_rational_tuning_in_another_mode_is_rejected(tmp_path, words):
    path = write_tuning(tune(words, Mode.REGULAR), tmp_path / "w.json")
    with pytest.raises(InvalidTuningData, match="regular"):
        load_tuning(words, path, mode=Mode.CUMULATIVE)
    assert load_tuning(words, path, mode=Mode.REGULAR).mode is Mode.REGULAR


def test_algebraic_tuning_loads_in_either_mode(tmp_path, binary_trees):
    path = write_tuning(tune(binary_trees, Mode.REGULAR), tmp_path / "t.json")
    assert load_tuning(binary_trees, path, mode=Mode.CUMULATIVE).mode is Mode.CUMULATIVE


def test_unknown_mode_in_file(tmp_path, binary_trees):
    path = write_json(tmp_path / "t.json", {
        "mode": "sideways",
        "singularity": 0.5,
        "probabilities": {"Leaf": 0.5, "Node": 0.5},
    })
    with pytest.raises(InvalidTuningData):
        load_tuning(binary_trees, path)


def test_tuning_problem_for_external_solvers(tmp_path, words):
    doc = tuning_problem(words)
    assert doc["type"] == "rational"
    assert doc["precision"] == pytest.approx(1e-9)
    assert doc["types"] == ["W"]
    rows = {r["name"]: r for r in doc["constructors"]}
    assert rows["a"]["exponents"] == {"W": 1}
    assert rows["End"] == {"name": "End", "type": "W", "weight": 1.0, "size": 0, "exponents": {}}

    # an external answer keyed by the same names loads back
    answer = write_json(tmp_path / "answer.json", {
        "mode": "regular",
        "singularity": 0.5,
        "probabilities": {name: p for name, p in zip(rows, (0.5, 0.5, 0.0))},
    })
    ts = load_tuning(words, answer)
    assert ts.probability("End") == 0.0
