from pathlib import Path

import duckdb

from bookflow.app.cli import main

REPO_CONFIG = Path(__file__).resolve().parents[2] / "config" / "bookflow.yaml"


def test_cli_runs_a_config_file(tmp_path, capsys):
    (tmp_path / "content.yaml").write_text(
        "treatments:\n"
        "  - {id: t-1, slug: facial, title: Luxury Facial, category: facials, price: '£50'}\n"
    )
    cfg = tmp_path / "bookflow.yaml"
    cfg.write_text(
        f"""
run: {{run_id: cli_run, seed: 7, start_date: "2026-01-05"}}
storage: {{duckdb_path: "{tmp_path / 'out' / 'bookflow.duckdb'}"}}
logging: {{level: WARNING}}
content: {{path: content.yaml}}
journeys:
  - id: j1
    consent: true
    steps:
      - {{action: visit, path: /treatments/facials/facial}}
      - {{action: view_treatment, slug: facial}}
"""
    )

    assert main(["run", "--config", str(cfg)]) == 0

    out = capsys.readouterr().out.strip().splitlines()[-1]
    assert out == f"run_id=cli_run duckdb={tmp_path / 'out' / 'bookflow.duckdb'} events=1"

    con = duckdb.connect(str(tmp_path / "out" / "bookflow.duckdb"), read_only=True)
    (name,) = con.execute("SELECT event_name FROM tracked_events").fetchone()
    con.close()
    assert name == "view_item"


def test_shipped_config_parses():
    from bookflow.core.config import load_config
    from bookflow.features.bootstrap.types import parse_journeys

    cfg = load_config(REPO_CONFIG, environ={})

    assert cfg.experiment.enabled is True
    assert cfg.content.path == "content.yaml"
    assert len(parse_journeys(cfg.journeys)) == 3
