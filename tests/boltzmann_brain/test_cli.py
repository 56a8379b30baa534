import json

import pytest

from boltzmann_brain import console
from boltzmann_brain.cli import build_parser, main
from boltzmann_brain.system.serialize import system_to_dict


@pytest.fixture(autouse=True)
def reset_quiet():
    yield
    console.set_quiet(False)


@pytest.fixture
def trees_file(tmp_path, binary_trees):
    path = tmp_path / "trees.json"
    path.write_text(json.dumps(system_to_dict(binary_trees)))
    return path


def test_parser_requires_a_command():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])


def test_tune_writes_tuned_document(tmp_path, trees_file):
    out = tmp_path / "tuned.json"
    assert main(["tune", "-i", str(trees_file), "-o", str(out), "--quiet"]) == 0
    doc = json.loads(out.read_text())
    assert doc["type"] == "algebraic"
    assert doc["mode"] == "regular"
    assert doc["singularity"] == pytest.approx(0.5, rel=1e-8)
    probs = [c["probability"] for c in doc["types"][0]["constructors"]]
    assert probs == pytest.approx([0.5, 0.5], abs=1e-6)


def test_tune_to_stdout(trees_file, capsys):
    assert main(["tune", "-i", str(trees_file), "--quiet"]) == 0
    doc = json.loads(capsys.readouterr().out)
    assert [t["name"] for t in doc["types"]] == ["T"]


def test_sample_writes_structures(tmp_path, trees_file):
    out = tmp_path / "samples.json"
    rc = main(["sample", "-i", str(trees_file), "-o", str(out), "-n", "3",
               "--lower-bound", "5", "--upper-bound", "40", "--seed", "1", "--quiet"])
    assert rc == 0
    structures = json.loads(out.read_text())
    assert len(structures) == 3
    assert all(s["type"] == "T" for s in structures)


def test_saved_tuning_can_be_reused(tmp_path, trees_file):
    saved = tmp_path / "tuning.csv"
    first = tmp_path / "a.json"
    second = tmp_path / "b.json"
    assert main(["tune", "-i", str(trees_file), "-o", str(first), "--save-tuning", str(saved), "--quiet"]) == 0
    assert saved.exists()
    assert main(["tune", "-i", str(trees_file), "-o", str(second), "-t", str(saved), "--quiet"]) == 0
    a, b = json.loads(first.read_text()), json.loads(second.read_text())
    assert a["singularity"] == b["singularity"]
    assert a["types"] == b["types"]


def test_ill_founded_input_fails(tmp_path, zero_size_loop, capsys):
    path = tmp_path / "loop.json"
    path.write_text(json.dumps(system_to_dict(zero_size_loop)))
    assert main(["tune", "-i", str(path), "--quiet"]) == 1
    assert "Ill-founded" in capsys.readouterr().err


def test_werror_fails_on_missing_metadata(tmp_path):
    path = tmp_path / "bare.json"
    path.write_text(json.dumps({"types": [{"name": "T", "constructors": [
        {"name": "Leaf", "args": ["@"]},
        {"name": "Node", "args": ["@", "T", "T"]},
    ]}]}))
    assert main(["tune", "-i", str(path), "-w", "--quiet"]) == 1
    assert main(["tune", "-i", str(path), "-o", str(tmp_path / "o.json"), "--quiet"]) == 0


def test_bad_window_override_fails(trees_file):
    assert main(["sample", "-i", str(trees_file), "--lower-bound", "50", "--upper-bound", "10", "--quiet"]) == 1


def test_missing_input_file_fails(tmp_path):
    assert main(["tune", "-i", str(tmp_path / "nope.json"), "--quiet"]) == 1


def test_sample_window_overrides_retune(tmp_path, words):
    # annotated window is [10, 200]; words are long chains, so this also
    # writes structures far deeper than the JSON encoder's recursion limit
    src = tmp_path / "words.json"
    src.write_text(json.dumps(system_to_dict(words)))
    out = tmp_path / "samples.json"
    rc = main(["sample", "-i", str(src), "-o", str(out), "-n", "2",
               "--lower-bound", "3000", "--upper-bound", "4000", "--seed", "4",
               "--max-attempts", "2000", "--quiet"])
    assert rc == 0
    structures = json.loads(out.read_text())
    assert all(3000 <= s["size"] <= 4000 for s in structures)
    assert all(sum(n["weight"] for n in s["nodes"]) == s["size"] for s in structures)


def test_spec_writes_tuning_problem(tmp_path, trees_file):
    out = tmp_path / "problem.json"
    assert main(["spec", "-i", str(trees_file), "-o", str(out), "--quiet"]) == 0
    doc = json.loads(out.read_text())
    assert doc["type"] == "algebraic"
    assert doc["types"] == ["T"]
    assert [c["name"] for c in doc["constructors"]] == ["Leaf", "Node"]
    assert doc["constructors"][1]["exponents"] == {"T": 2}
