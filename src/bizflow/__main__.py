"""Entry point: python -m bizflow [reminders|export <collection>|serve]

- No args / "reminders": print today's due follow-ups
- "export <collection>":  print the collection as CSV
- "serve":                Daemon mode (subscriptions + reminder scheduler)
"""

from __future__ import annotations

import asyncio
import logging
import sys

from bizflow.config import BizflowConfig, load_config
from bizflow.models import COLLECTIONS


def _setup_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%H:%M:%S",
        stream=sys.stderr,
    )


async def _one_shot(config: BizflowConfig, command: str, collection: str | None) -> int:
    from bizflow.daemon import build_workspace
    from bizflow.reminders import format_reminders

    workspace = build_workspace(config)
    try:
        if not await workspace.start():
            return 1
        await workspace.synced()
        if command == "export":
            filename, content = workspace.export(collection)
            print(f"# {filename}", file=sys.stderr)
            print(content)
        else:
            print(format_reminders(workspace.reminders()))
        return 0
    finally:
        await workspace.stop()


def _run_serve(config: BizflowConfig) -> None:
    from bizflow.daemon import BizflowDaemon

    daemon = BizflowDaemon(config)
    asyncio.run(daemon.run())


def _usage() -> None:
    print("Usage: python -m bizflow [reminders|export <collection>|serve]")
    print("  reminders            Today's due follow-ups (default)")
    print(f"  export <collection>  CSV of one of: {', '.join(COLLECTIONS)}")
    print("  serve                Daemon mode with subscriptions + scheduler")


def main() -> None:
    cmd = sys.argv[1] if len(sys.argv) > 1 else "reminders"
    config = load_config()
    _setup_logging(config.log_level)

    if cmd == "reminders":
        sys.exit(asyncio.run(_one_shot(config, cmd, None)))
    elif cmd == "export":
        collection = sys.argv[2] if len(sys.argv) > 2 else ""
        if collection not in COLLECTIONS:
            _usage()
            sys.exit(1)
        sys.exit(asyncio.run(_one_shot(config, cmd, collection)))
    elif cmd == "serve":
        _run_serve(config)
    else:
        _usage()
        sys.exit(1)


if __name__ == "__main__":
    main()
