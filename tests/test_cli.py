import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from canvassync.cli import cli


@pytest.fixture
def runner():
    return CliRunner()


def _write(name, doc):
    Path(name).write_text(json.dumps(doc), encoding="utf-8")


def test_init_and_rerun(runner):
    with runner.isolated_filesystem():
        first = runner.invoke(cli, ["init"])
        second = runner.invoke(cli, ["init"])

        assert first.exit_code == 0
        assert "Created" in first.output
        assert Path("canvassync.toml").exists()
        assert "already exists" in second.output


def test_new_creates_empty_canvas(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["new", "board.canvas"])

        assert result.exit_code == 0
        assert json.loads(Path("board.canvas").read_text()) == {"nodes": [], "edges": []}

        again = runner.invoke(cli, ["new", "board.canvas"])
        assert again.exit_code != 0
        assert "already exists" in again.output

        wrong = runner.invoke(cli, ["new", "board.json"])
        assert wrong.exit_code != 0


def test_fmt_normalizes_in_place(runner, sample_doc):
    with runner.isolated_filesystem():
        _write("a.canvas", sample_doc)

        check = runner.invoke(cli, ["fmt", "a.canvas", "--check"])
        assert check.exit_code == 1
        assert "would be reformatted" in check.output

        result = runner.invoke(cli, ["fmt", "a.canvas"])
        assert result.exit_code == 0
        doc = json.loads(Path("a.canvas").read_text())
        assert doc["nodes"][1]["width"] == 250
        assert doc["edges"][1]["toSide"] == "left"

        again = runner.invoke(cli, ["fmt", "a.canvas", "--check"])
        assert again.exit_code == 0
        assert "already normalized" in again.output


def test_fmt_uses_project_defaults(runner):
    with runner.isolated_filesystem():
        Path("canvassync.toml").write_text("[canvas]\ndefault_width = 180\n")
        _write("a.canvas", {"nodes": [{"id": "n", "x": 0, "y": 0, "type": "text", "text": "t"}], "edges": []})

        runner.invoke(cli, ["fmt", "a.canvas"])

        assert json.loads(Path("a.canvas").read_text())["nodes"][0]["width"] == 180


def test_fmt_reports_parse_errors(runner):
    with runner.isolated_filesystem():
        Path("bad.canvas").write_text("{oops")

        result = runner.invoke(cli, ["fmt", "bad.canvas"])

        assert result.exit_code == 1
        assert "Invalid canvas JSON" in result.output


def test_check_ok(runner, sample_doc):
    with runner.isolated_filesystem():
        _write("a.canvas", sample_doc)

        result = runner.invoke(cli, ["check", "a.canvas"])

        assert result.exit_code == 0
        assert "ok (3 nodes, 2 edges)" in result.output


def test_check_reports_problems(runner):
    doc = {
        "nodes": [{"id": "a", "x": 0, "y": 0}, {"id": "a", "x": 1, "y": 1}],
        "edges": [{"id": "e", "fromNode": "a", "toNode": "ghost"}],
    }
    with runner.isolated_filesystem():
        _write("a.canvas", doc)

        result = runner.invoke(cli, ["check", "a.canvas"])

        assert result.exit_code == 1
        assert "duplicate node id: a (x2)" in result.output
        assert "dangling edge: e (a -> ghost)" in result.output


def test_show_lists_nodes_and_edges(runner, sample_doc):
    with runner.isolated_filesystem():
        _write("a.canvas", sample_doc)

        result = runner.invoke(cli, ["show", "a.canvas"])

        assert result.exit_code == 0
        assert "alpha" in result.output
        assert "notes/f.md" in result.output
        assert "next" in result.output


def test_missing_file_is_a_clean_error(runner):
    with runner.isolated_filesystem():
        result = runner.invoke(cli, ["check", "nope.canvas"])

        assert result.exit_code == 1
        assert "nope.canvas" in result.output
