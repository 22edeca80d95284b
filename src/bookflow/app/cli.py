from __future__ import annotations

import argparse
import sys

from bookflow.app.runner import run, summary_line


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="bookflow")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Replay the configured visitor journeys")
    p_run.add_argument("--config", default="config/bookflow.yaml")

    args = parser.parse_args(argv)

    if args.cmd == "run":
        result = run(args.config)
        # minimal stdout signal
        print(summary_line(result))
        return 0

    return 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
