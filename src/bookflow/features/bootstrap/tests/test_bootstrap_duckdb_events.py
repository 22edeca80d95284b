import duckdb

from bookflow.core.config import parse_config
from bookflow.features.bootstrap.service import bootstrap_run


def test_bootstrap_writes_tracked_events(tmp_path):
    db_path = tmp_path / "bookflow.duckdb"
    cfg_dict = {
        "run": {"run_id": "auto", "seed": 123, "start_date": "2026-01-01"},
        "storage": {"duckdb_path": str(db_path), "clean_slate": True},
        "logging": {"level": "INFO"},
        "experiment": {"enabled": True},
        "journeys": [
            {
                "id": "j1",
                "consent": True,
                "steps": [
                    {"action": "visit", "path": "/treatments", "document_height": 2000},
                    {"action": "wait", "seconds": 2},
                    {"action": "scroll", "percent": 100},
                    {"action": "wait", "seconds": 1},
                ],
            }
        ],
    }
    cfg = parse_config(cfg_dict, environ={})

    res = bootstrap_run(cfg)

    assert db_path.exists()
    assert res.duckdb_path == str(db_path)

    con = duckdb.connect(str(db_path), read_only=True)
    rows = con.execute(
        "SELECT event_name, sim_time_s, journey_id, visitor_id, ab_test_variant, page_path "
        "FROM tracked_events ORDER BY event_id"
    ).fetchall()
    con.close()

    assert res.num_events == len(rows) == 5
    assert rows[0][0] == "ab_test_variant_assigned"
    assert rows[0][1] == 0.0
    assert [r[0] for r in rows[1:]] == ["scroll_depth"] * 4
    assert rows[1][1] == 2.0

    visitor_id = rows[0][3]
    assert visitor_id.startswith("user_")
    assert {r[2] for r in rows} == {"j1"}
    assert {r[3] for r in rows} == {visitor_id}
    assert {r[4] for r in rows} == {rows[0][4]}
    assert {r[5] for r in rows} == {"/treatments"}
