"""Entrypoint.

Usage:
  python -m neurotrade.app.main engine     # run the per-asset strategy engine
  python -m neurotrade.app.main api        # run the FastAPI server
  python -m neurotrade.app.main backtest   # backtest (or: python -m neurotrade.app.backtest --help)
  python -m neurotrade.app.main optimize   # genetic search (or: python -m neurotrade.app.optimize --help)

Arguments after ``backtest`` / ``optimize`` are forwarded to those commands.
"""

from __future__ import annotations

import argparse
import asyncio
from pathlib import Path
from typing import List, Optional

import uvicorn

from neurotrade.app.engine import run_engine
from neurotrade.infrastructure.utils.config import reload_config


def main(argv: Optional[List[str]] = None) -> None:
    parser = argparse.ArgumentParser("neurotrade")
    parser.add_argument("command", choices=["engine", "api", "backtest", "optimize"], help="What to run")
    parser.add_argument("--config", type=Path, default=None, help="Path to config YAML (engine/api)")
    args, rest = parser.parse_known_args(argv)

    if args.command == "engine":
        asyncio.run(run_engine(args.config))
        return

    if args.command == "api":
        config = reload_config(args.config)
        uvicorn.run("neurotrade.api.server:app", host=config.api.host, port=config.api.port, reload=False)
        return

    if args.config is not None:
        rest = ["--config", str(args.config), *rest]

    if args.command == "backtest":
        from neurotrade.app.backtest import main as backtest_main
        backtest_main(rest)
        return

    if args.command == "optimize":
        from neurotrade.app.optimize import main as optimize_main
        optimize_main(rest)
        return


if __name__ == "__main__":
    main()
