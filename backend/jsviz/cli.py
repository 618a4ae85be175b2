"""Command line front-end.

Usage:
  python -m backend.jsviz run snippet.js [--speed 0] [--trace] [--json]
  python -m backend.jsviz translate snippet.js
  python -m backend.jsviz serve --port 8000

`run` uses a virtual clock unless --realtime is given, so a snippet with a
10 second timer still finishes immediately.
"""

import argparse
import asyncio
import json
import logging
import os
import sys
from typing import List, Optional

from .clock import AsyncioClock, VirtualClock
from .instructions import to_dict
from .session import Session
from .state import ConsoleEntry, Topic, to_jsonable
from .translator import TranslationError, translate_with_diagnostics

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="jsviz", description="Step-by-step JavaScript runtime visualizer")
    p.add_argument(
        "--log-level",
        default=os.getenv("JSVIZ_LOG_LEVEL", "WARNING"),
        help="Logging level (default: JSVIZ_LOG_LEVEL or WARNING)",
    )
    sub = p.add_subparsers(dest="command", required=True)

    run = sub.add_parser("run", help="Run a snippet and print its console output")
    run.add_argument("file", help="Snippet path, or - for stdin")
    run.add_argument("--speed", type=int, default=0, help="Pacing delay between steps in ms")
    run.add_argument("--realtime", action="store_true", help="Wait in real time instead of a virtual clock")
    run.add_argument("--trace", action="store_true", help="Print every state event")
    run.add_argument("--json", action="store_true", help="Print the final state snapshot as JSON")
    run.add_argument("--quiet-info", action="store_true", help="Hide info entries (hoisting, queue notes)")

    tr = sub.add_parser("translate", help="Print the instruction sequence of a snippet")
    tr.add_argument("file", help="Snippet path, or - for stdin")

    serve = sub.add_parser("serve", help="Serve the HTTP API with uvicorn")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    return p.parse_args(argv)


def read_source(path: str) -> str:
    if path == "-":
        return sys.stdin.read()
    with open(path, encoding="utf-8") as fh:
        return fh.read()


def format_entry(entry: ConsoleEntry) -> str:
    if entry.type == "log":
        return entry.text
    return f"[{entry.type}] {entry.text}"


def cmd_run(ns: argparse.Namespace) -> int:
    clock = AsyncioClock() if ns.realtime else VirtualClock()
    session = Session(speed_ms=ns.speed, clock=clock)

    def print_console(entry: ConsoleEntry, snapshot) -> None:
        if ns.quiet_info and entry.type == "info":
            return
        print(format_entry(entry))

    def print_event(event, snapshot) -> None:
        action = getattr(event, "action", "")
        print(f"# {event.topic.value} {action}".rstrip(), file=sys.stderr)

    session.store.subscribe(Topic.CONSOLE, print_console)
    if ns.trace:
        session.store.subscribe(Topic.ALL, print_event)
    if session.load(read_source(ns.file)):
        asyncio.run(session.run())
    if ns.json:
        print(json.dumps(to_jsonable(session.snapshot()), indent=2))
    failed = bool(session.errors) or any(e.type == "error" for e in session.console)
    return 1 if failed else 0


def cmd_translate(ns: argparse.Namespace) -> int:
    try:
        translation = translate_with_diagnostics(read_source(ns.file))
    except TranslationError as e:
        print(f"TranslationError: {e}", file=sys.stderr)
        return 1
    out = {
        "instructions": [to_dict(i) for i in translation.instructions],
        "diagnostics": [to_jsonable(d) for d in translation.diagnostics],
    }
    print(json.dumps(out, indent=2))
    return 0


def cmd_serve(ns: argparse.Namespace) -> int:
    import uvicorn

    from backend.app import main

    logger.info("serving jsviz API on %s:%d", ns.host, ns.port)
    uvicorn.run(main.app, host=ns.host, port=ns.port, log_level=ns.log_level.lower())
    return 0


COMMANDS = {"run": cmd_run, "translate": cmd_translate, "serve": cmd_serve}


def main(argv: Optional[List[str]] = None) -> int:
    ns = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, str(ns.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    return COMMANDS[ns.command](ns)


if __name__ == "__main__":
    sys.exit(main())
