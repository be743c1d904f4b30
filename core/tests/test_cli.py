"""Tests for the flows command-line interface."""

from __future__ import annotations

import io
import json

import pytest

from flows.cli import main


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    monkeypatch.setenv("FLOWS_CONFIG_FILE", str(tmp_path / "missing.json"))
    for name in ("FLOWS_JOURNAL_DIR", "FLOWS_TRAVERSAL", "FLOWS_STOP_ON_FAILURE", "LOG_FORMAT"):
        monkeypatch.delenv(name, raising=False)


def write_json(path, data):
    path.write_text(json.dumps(data))
    return str(path)


def run_cli(capsys, *argv):
    code = main(list(argv))
    return code, json.loads(capsys.readouterr().out)


SNAPSHOT = {
    "workflowId": "wf-1",
    "nodes": [
        {"_id": "t", "type": "trigger", "position": {"x": 0, "y": 0}},
        {"_id": "x", "type": "text", "position": {"x": 0, "y": 100}},
        {"_id": "lonely", "type": "text", "position": {"x": 0, "y": 50}},
    ],
    "edges": [{"sourceNodeId": "t", "targetNodeId": "x"}],
}


class TestOrderCommand:
    def test_order(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        code, out = run_cli(capsys, "order", path)
        assert code == 0
        assert out == {"order": ["t", "x"]}

    def test_order_all_keeps_isolated_nodes(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        code, out = run_cli(capsys, "order", path, "--all", "--check")
        assert code == 0
        assert out == {"order": ["t", "x", "lonely"]}

    def test_order_from_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO(json.dumps(SNAPSHOT)))
        code, out = run_cli(capsys, "order", "-", "--strategy", "branch_kahn")
        assert code == 0
        assert out["order"] == ["t", "x"]

    def test_cycle_is_reported(self, tmp_path, capsys):
        snapshot = {
            "nodes": [{"_id": "a"}, {"_id": "b"}],
            "edges": [
                {"sourceNodeId": "a", "targetNodeId": "b"},
                {"sourceNodeId": "b", "targetNodeId": "a"},
            ],
        }
        code, out = run_cli(capsys, "order", write_json(tmp_path / "wf.json", snapshot))
        assert code == 1
        assert out["type"] == "GraphStructureError"

    def test_missing_file(self, tmp_path, capsys):
        code, out = run_cli(capsys, "order", str(tmp_path / "nope.json"))
        assert code == 1
        assert out["type"] == "FileNotFoundError"


class TestRunCommand:
    def test_run(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        code, out = run_cli(capsys, "run", path, "--trigger", '{"user": "u1"}')
        assert code == 0
        assert out["status"] == "success"
        assert out["outputs"]["t"] == {"payload": {"user": "u1"}}

    def test_run_with_journal_then_resume(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        journal_dir = tmp_path / "journal"
        code, out = run_cli(capsys, "run", path, "--journal-dir", str(journal_dir))
        assert code == 0
        run_id = out["run_id"]
        assert (journal_dir / "runs" / run_id / "journal.jsonl").exists()

        code, resumed = run_cli(
            capsys, "run", path, "--journal-dir", str(journal_dir), "--resume", run_id
        )
        assert code == 0
        assert resumed["run_id"] == run_id

    def test_resume_requires_journal_dir(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        code, out = run_cli(capsys, "run", path, "--resume", "run-1")
        assert code == 1
        assert "journal" in out["error"]

    def test_failed_run_exits_nonzero(self, tmp_path, capsys):
        snapshot = json.loads(json.dumps(SNAPSHOT))
        snapshot["nodes"][1]["type"] = "mystery"
        code, out = run_cli(capsys, "run", write_json(tmp_path / "wf.json", snapshot))
        assert code == 1
        assert out["failed_nodes"] == ["x"]

    def test_invalid_trigger(self, tmp_path, capsys):
        path = write_json(tmp_path / "wf.json", SNAPSHOT)
        code, out = run_cli(capsys, "run", path, "--trigger", "{oops")
        assert code == 1
        assert out["type"] == "JSONDecodeError"


class TestNodesCommand:
    def test_lists_catalog(self, capsys):
        code, out = run_cli(capsys, "nodes")
        assert code == 0
        by_type = {entry["type"]: entry for entry in out}
        assert sorted(by_type) == ["branch", "http", "switch", "text", "trigger", "wait"]
        assert by_type["http"]["id"] == "http-request"
        assert by_type["http"]["retryable"] is True
        assert by_type["switch"]["outputs"] == ["matched", "route", "value"]
        assert all(entry["diagnostics"] == [] for entry in out)


class TestPlanEdgeCommand:
    def request(self, **overrides):
        data = {
            "workflowId": "wf-1",
            "sourceNode": {"id": "br", "workflowId": "wf-1", "type": "branch"},
            "targetNode": {"id": "t", "workflowId": "wf-1", "type": "http"},
            "branchKey": "if",
        }
        data.update(overrides)
        return data

    def test_accepted_edge(self, tmp_path, capsys):
        code, out = run_cli(capsys, "plan-edge", write_json(tmp_path / "req.json", self.request()))
        assert code == 0
        assert out == {"edgeBranchKey": "if", "assignment": {"scopeId": "br", "branchKey": "if"}}

    def test_rejected_edge(self, tmp_path, capsys):
        request = self.request(branchKey=None)
        code, out = run_cli(capsys, "plan-edge", write_json(tmp_path / "req.json", request))
        assert code == 1
        assert out["type"] == "MissingBranchKeyError"
