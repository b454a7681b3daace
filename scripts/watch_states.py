#!/usr/bin/env python3
"""Watch ioBroker states through the subscription engine.

Connects with settings from ``IOB_*`` environment variables, registers one
``read_value`` feedback per state id given on the command line and prints
every recheck the bridge signals.

Use this to verify that subscriptions are pushed once per burst and that
values arrive after a reconnect.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pyiobroker import ConnectionStatus, FeedbackKind, IobBridge, IobConfig  # noqa: E402
from pyiobroker.exceptions import IobConfigError  # noqa: E402


@dataclass
class WatchStats:
    started_at: float
    rechecks: int = 0
    reconnects: int = 0


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Print value changes of ioBroker states.",
    )
    parser.add_argument(
        "state_ids",
        nargs="+",
        help="State ids to watch, e.g. alias.0.living.lamp.on",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--objects",
        action="store_true",
        help="Load and print the object catalogue of the configured namespaces first.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: WatchStats) -> None:
    runtime = time.time() - stats.started_at
    print("[watch] Summary")
    print(f"[watch]   runtime_s  : {runtime:.1f}")
    print(f"[watch]   rechecks   : {stats.rechecks}")
    print(f"[watch]   reconnects : {stats.reconnects}")


async def _watch(config: IobConfig, args: argparse.Namespace, stats: WatchStats) -> int:
    stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, stop.set)

    bridge: IobBridge

    def register() -> None:
        for state_id in args.state_ids:
            bridge.register_dependent(state_id, state_id, FeedbackKind.READ_VALUE)

    def on_recheck(*dependent_ids: str) -> None:
        stats.rechecks += 1
        ts_text = time.strftime("%H:%M:%S")
        for state_id in dependent_ids:
            value = json.dumps(bridge.current_value(state_id), default=str)
            print(f"[watch] {ts_text} {state_id} = {value} (ts={bridge.last_changed_timestamp(state_id)})")

    def on_status(status: ConnectionStatus, message: str | None) -> None:
        print(f"[watch] status={status}" + (f" ({message})" if message else ""))

    def on_reregister() -> None:
        stats.reconnects += 1
        register()

    bridge = IobBridge(config, on_recheck=on_recheck, on_status=on_status, on_reregister=on_reregister)
    if not await bridge.connect():
        return 2
    try:
        if args.objects:
            for obj in await bridge.load_objects():
                print(f"[watch] object {obj.id} type={obj.common.type} name={obj.common.display_name()}")
        register()
        timeout = args.duration if args.duration > 0 else None
        try:
            await asyncio.wait_for(stop.wait(), timeout)
        except TimeoutError:
            pass
    finally:
        await bridge.close()
    return 0


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = IobConfig.from_env()
    except IobConfigError as exc:
        print(f"[watch] Invalid configuration: {exc}", file=sys.stderr)
        return 2

    print(f"[watch] Connecting to {config.url} as {config.client_name!r}")
    stats = WatchStats(started_at=time.time())
    try:
        return asyncio.run(_watch(config, args, stats))
    finally:
        _print_summary(stats)


if __name__ == "__main__":
    raise SystemExit(_main())
