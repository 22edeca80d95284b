from __future__ import annotations

from collections.abc import Mapping

from bookflow.core.config import load_config
from bookflow.features.bootstrap.service import BootstrapResult, bootstrap_run


def run(config_path: str, environ: Mapping[str, str] | None = None) -> BootstrapResult:
    # relative content paths in the config resolve against config_path
    cfg = load_config(config_path, environ=environ)
    return bootstrap_run(cfg, config_path=config_path)


def summary_line(result: BootstrapResult) -> str:
    return (
        f"run_id={result.ctx.run_id} duckdb={result.duckdb_path or '-'} "
        f"events={result.num_events}"
    )
