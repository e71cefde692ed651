from __future__ import annotations

from strategy_optimizer.optimize import run_registry


def test_record_and_load_runs(tmp_path):
    run_registry.record_run_event("run-1", "running", root=tmp_path, strategy="sma")
    run_registry.record_run_event("run-1", "completed", root=tmp_path, best=1.5)
    runs = run_registry.load_runs(root=tmp_path)
    assert len(runs) == 2
    assert runs[0]["status"] == "completed"
    assert runs[0]["best"] == 1.5
    assert runs[1]["status"] == "running"
    assert runs[1]["strategy"] == "sma"


def test_manifest_root_defaults_to_settings(tmp_path, monkeypatch):
    monkeypatch.setenv("OPTIMIZER_OUTPUT_DIR", str(tmp_path / "out"))
    path = run_registry.manifest_path()
    assert path == tmp_path / "out" / run_registry.MANIFEST_NAME
    assert run_registry.load_runs() == []


def test_skips_corrupt_lines(tmp_path):
    path = run_registry.manifest_path(tmp_path)
    path.write_text('{"run_id": "a", "status": "queued"}\nnot-json\n\n')
    assert [r["run_id"] for r in run_registry.load_runs(root=tmp_path)] == ["a"]
