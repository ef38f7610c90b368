import json

from typer.testing import CliRunner

from mindweave.cli import app

runner = CliRunner()


def _run(home, *args):
    return runner.invoke(app, ["--home", str(home), *args])


def test_add_update_and_roll_up(tmp_path):
    # A fresh board starts with the sample project as T-1.
    result = _run(tmp_path, "add", "Alpha")
    assert result.exit_code == 0, result.stdout
    assert "T-2" in result.stdout

    _run(tmp_path, "add", "Child", "-p", "T-2", "--due", "2030-01-01")
    result = _run(tmp_path, "update", "T-3", "--progress", "100")
    assert result.exit_code == 0, result.stdout
    assert "done" in result.stdout

    result = _run(tmp_path, "show", "T-2")
    assert "done" in result.stdout
    assert "100%" in result.stdout
    assert "T-3" in result.stdout


def test_add_with_unknown_parent_fails(tmp_path):
    result = _run(tmp_path, "add", "Lost", "-p", "T-99")
    assert result.exit_code == 1


def test_update_invalid_status(tmp_path):
    result = _run(tmp_path, "update", "T-1", "--status", "finished")
    assert result.exit_code == 1
    assert "Invalid status" in result.stdout


def test_unknown_task(tmp_path):
    result = _run(tmp_path, "show", "T-42")
    assert result.exit_code == 1
    assert "not found" in result.stdout


def test_tree_views(tmp_path):
    _run(tmp_path, "add", "Alpha")
    _run(tmp_path, "add", "Hidden child", "-p", "T-2")

    result = _run(tmp_path, "tree")
    assert result.exit_code == 0, result.stdout
    assert "Alpha" in result.stdout
    assert "Hidden child" not in result.stdout

    result = _run(tmp_path, "tree", "--project", "T-2")
    assert "Hidden child" in result.stdout

    _run(tmp_path, "collapse", "T-2")
    result = _run(tmp_path, "tree", "--project", "T-2")
    assert "Hidden child" not in result.stdout
    result = _run(tmp_path, "tree", "--project", "T-2", "-q", "hidden")
    assert "Hidden child" in result.stdout

    _run(tmp_path, "focus", "T-3")
    result = _run(tmp_path, "tree", "--focus")
    assert "Alpha" in result.stdout
    assert "Hidden child" in result.stdout
    assert "Project Map" not in result.stdout


def test_list_with_search(tmp_path):
    _run(tmp_path, "add", "Buy milk", "--notes", "semi-skimmed")
    _run(tmp_path, "add", "Call mom")
    result = _run(tmp_path, "list", "-q", "skimmed")
    assert result.exit_code == 0, result.stdout
    assert "Buy milk" in result.stdout
    assert "Call mom" not in result.stdout


def test_connect_refuses_cycle(tmp_path):
    _run(tmp_path, "add", "Parent")
    _run(tmp_path, "add", "Kid", "-p", "T-2")
    result = _run(tmp_path, "connect", "T-3", "T-2")
    assert result.exit_code == 1

    result = _run(tmp_path, "connect", "T-2", "T-1")
    assert result.exit_code == 0, result.stdout
    result = _run(tmp_path, "show", "T-1")
    assert "T-2" in result.stdout


def test_delete_removes_subtree(tmp_path):
    _run(tmp_path, "add", "Parent")
    _run(tmp_path, "add", "Kid", "-p", "T-2")
    result = _run(tmp_path, "delete", "T-2")
    assert result.exit_code == 0, result.stdout
    assert "2 task(s)" in result.stdout
    assert _run(tmp_path, "show", "T-3").exit_code == 1


def test_export_import_round_trip(tmp_path):
    home = tmp_path / "a"
    _run(home, "add", "Exported")
    out = tmp_path / "board.json"
    result = _run(home, "export", "-o", str(out))
    assert result.exit_code == 0, result.stdout
    doc = json.loads(out.read_text())
    assert {t["title"] for t in doc["tasks"].values()} == {"Project Map", "Exported"}

    other = tmp_path / "b"
    result = _run(other, "import", str(out))
    assert result.exit_code == 0, result.stdout
    assert "Imported 2 task(s)" in result.stdout
    assert "Exported" in _run(other, "list").stdout


def test_import_rejects_bad_file(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text('{"nodes": []}')
    result = _run(tmp_path, "import", str(bad))
    assert result.exit_code == 1
    assert "Import failed" in result.stdout


def test_info_and_clear(tmp_path):
    _run(tmp_path, "add", "Something")
    result = _run(tmp_path, "info")
    assert "Data:          yes" in result.stdout
    result = _run(tmp_path, "clear", "--yes")
    assert result.exit_code == 0
    assert "Data:          no" in _run(tmp_path, "info").stdout


def test_stats(tmp_path):
    _run(tmp_path, "add", "Overdue", "--due", "2000-01-01")
    result = _run(tmp_path, "stats")
    assert result.exit_code == 0, result.stdout
    assert "overdue" in result.stdout


def test_viz_writes_mermaid(tmp_path):
    _run(tmp_path, "add", "Alpha")
    out = tmp_path / "map.md"
    result = _run(tmp_path, "viz", "-o", str(out))
    assert result.exit_code == 0, result.stdout
    text = out.read_text()
    assert "flowchart LR" in text
    assert "Alpha" in text


def test_import_reports_malformed_positions(tmp_path):
    bad = tmp_path / "bad.json"
    bad.write_text(json.dumps({
        "nodes": [{"id": "a", "position": [1, 2]}],
        "edges": [],
        "tasks": {"a": {"title": "A"}},
    }))
    result = _run(tmp_path, "import", str(bad))
    assert result.exit_code == 1
    assert "Import failed" in result.stdout
    assert "Project Map" in _run(tmp_path, "list").stdout
