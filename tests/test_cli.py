from pathlib import Path

import pytest

import build_markov
import generate_text
from markov import load_graph


def test_build_then_generate(tmp_path: Path, capsys):
    corpus = tmp_path / "alice.txt"
    corpus.write_text("Down the rabbit hole.", encoding="utf-8")
    db = tmp_path / "alice.mrkv"
    snap = tmp_path / "alice.json.gz"

    build_markov.main(["--corpus", str(tmp_path / "*.txt"), "--out", str(db), "--json", str(snap)])
    assert db.exists() and snap.exists()
    assert len(load_graph(str(db))) == 5

    capsys.readouterr()
    generate_text.main(["--db", str(db), "--length", "10", "--count", "2", "--rng-seed", "1"])
    lines = capsys.readouterr().out.strip().splitlines()
    assert len(lines) == 3 and lines[1] == "---"
    for line in (lines[0], lines[2]):
        assert "Down the rabbit hole.".endswith(line)


def test_build_without_files(tmp_path: Path):
    with pytest.raises(SystemExit):
        build_markov.main(["--corpus", str(tmp_path / "*.txt"), "--out", str(tmp_path / "x.mrkv")])


def test_generate_missing_db(tmp_path: Path):
    with pytest.raises(SystemExit):
        generate_text.main(["--db", str(tmp_path / "none.mrkv")])
