from __future__ import annotations

TRACKED_EVENTS_TABLE_NAME = "tracked_events"

TRACKED_EVENTS_DDL = f"""
CREATE TABLE IF NOT EXISTS {TRACKED_EVENTS_TABLE_NAME} (
    run_id TEXT NOT NULL,
    event_id TEXT NOT NULL,

    ts_utc TIMESTAMP NOT NULL,
    sim_time_s DOUBLE NOT NULL,

    journey_id TEXT,
    visitor_id TEXT,
    ab_test_variant TEXT,

    page_path TEXT,
    event_name TEXT NOT NULL,

    payload_json TEXT
);
"""

# Optional but helpful for query speed
TRACKED_EVENTS_INDEXES = [
    f"CREATE INDEX IF NOT EXISTS idx_tracked_events_run_id ON {TRACKED_EVENTS_TABLE_NAME}(run_id);",
    f"CREATE INDEX IF NOT EXISTS idx_tracked_events_event_name ON {TRACKED_EVENTS_TABLE_NAME}(event_name);",
    f"CREATE INDEX IF NOT EXISTS idx_tracked_events_variant ON {TRACKED_EVENTS_TABLE_NAME}(ab_test_variant);",
]


def create_schema(conn) -> None:
    """
    Create tables/indexes. No migrations. Safe to call per run.
    """
    conn.execute(TRACKED_EVENTS_DDL)
    for ddl in TRACKED_EVENTS_INDEXES:
        conn.execute(ddl)
