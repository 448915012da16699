"""Tests for the command-line entrypoint."""

import json
import sqlite3

import pytest

from conftest import CURRENT_WINDOW, sample_workflow_definition
from rcaflow.cli import build_parser, main
from rcaflow.queries.executor import initialize_tenant_database


@pytest.fixture
def workflow_file(tmp_path):
    path = tmp_path / "workflow.json"
    path.write_text(json.dumps(sample_workflow_definition()), encoding="utf-8")
    return path


def test_validate_ok(workflow_file, capsys):
    assert main(["validate", str(workflow_file)]) == 0
    assert "OK: cvr-drop (8 nodes, start=validate)" in capsys.readouterr().out


def test_validate_rejects(tmp_path, capsys):
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"nodes": []}), encoding="utf-8")
    assert main(["validate", str(path)]) == 1
    assert "Invalid workflow" in capsys.readouterr().err


def test_run_against_tenant_database(tmp_path, workflow_file, capsys):
    initialize_tenant_database(tmp_path / "brand-42.sqlite")
    conn = sqlite3.connect(str(tmp_path / "brand-42.sqlite"))
    conn.executemany(
        "INSERT INTO overall_summary (bucket_start, total_sessions, total_orders, total_sales) VALUES (?, ?, ?, ?)",
        [("2026-01-15 10:00:00", 100, 5, 500.0), ("2026-01-14 10:00:00", 100, 10, 1000.0)],
    )
    conn.commit()
    conn.close()
    alert_file = tmp_path / "alert.json"
    alert_file.write_text(
        json.dumps(
            {
                "metric": "cvr",
                "drop_pct": 50,
                "current_window": CURRENT_WINDOW,
                "baseline_window": "prev_day_same_hour",
            }
        ),
        encoding="utf-8",
    )

    code = main(
        [
            "run",
            "--workflow", str(workflow_file),
            "--alert", str(alert_file),
            "--tenant", "brand-42",
            "--tenant-db", str(tmp_path / "{tenant_id}.sqlite"),
        ]
    )

    payload = json.loads(capsys.readouterr().out)
    assert code == 0
    assert payload["status"] == "success"
    assert payload["classification"] == "inconclusive"


def test_command_required():
    with pytest.raises(SystemExit):
        build_parser().parse_args([])
