"""CLI entry point for the meteogram renderer."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from meteogram.config.loader import (
    get_config_value,
    load_config,
    save_config,
    set_config_value,
)
from meteogram.config.schema import MeteogramConfig
from meteogram.daemon import RefreshDaemon, daemon_status, stop_daemon
from meteogram.ingest.url_resolver import normalize_url, resolve_fetch_target
from meteogram.models.errors import MeteogramError
from meteogram.models.status import RenderState
from meteogram.pipeline.meteogram_pipeline import MeteogramPipeline

DEFAULT_CONFIG = "meteogram.yaml"
DEFAULT_OUT = "data/meteogram.svg"


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="meteogram",
        description="Weather meteogram fetcher and SVG renderer",
    )
    parser.add_argument(
        "--config", default=DEFAULT_CONFIG, help="Config YAML path"
    )

    sub = parser.add_subparsers(dest="command")

    # resolve
    resolve_p = sub.add_parser("resolve", help="Show where a source URL is fetched from")
    resolve_p.add_argument("source", help="Source URL as a user would type it")

    # render
    render_p = sub.add_parser("render", help="Run one fetch cycle and write the chart")
    render_p.add_argument("--source", help="Override source.source_url")
    render_p.add_argument("--out", help="Output SVG path (default: stdout)")

    # daemon
    daemon_p = sub.add_parser("daemon", help="Refresh the chart on an interval")
    daemon_p.add_argument("--out", default=DEFAULT_OUT, help="Output SVG path")
    daemon_p.add_argument(
        "--interval", type=float, default=None,
        help="Refresh interval in minutes (default: from config)",
    )
    daemon_p.add_argument("--stop", action="store_true", help="Stop running daemon")
    daemon_p.add_argument("--status", action="store_true", help="Show daemon status")

    # config show / config set
    config_p = sub.add_parser("config", help="Config operations")
    config_sub = config_p.add_subparsers(dest="config_command")
    config_sub.add_parser("show", help="Display current config")
    set_p = config_sub.add_parser("set", help="Set a config value")
    set_p.add_argument("keyvalue", help="key=value to set")

    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = load_config(args.config)

    if args.command == "resolve":
        return _cmd_resolve(args)
    elif args.command == "render":
        return _cmd_render(config, args)
    elif args.command == "daemon":
        return _cmd_daemon(config, args)
    elif args.command == "config":
        return _cmd_config(config, args)
    else:
        parser.print_help()
        return 1


def _cmd_resolve(args) -> int:
    normalized = normalize_url(args.source)
    if normalized is None:
        print("Error: empty source URL")
        return 1
    try:
        target = resolve_fetch_target(normalized)
    except MeteogramError as e:
        print(f"Error: {e.message}")
        return 1
    print(f"{target.kind.value} {target.request_url}")
    return 0


async def _render_once(config: MeteogramConfig):
    pipeline = MeteogramPipeline(config)
    try:
        return await pipeline.run_cycle()
    finally:
        await pipeline.shutdown()


def _cmd_render(config, args) -> int:
    if args.source is not None:
        config = config.model_copy(
            update={"source": config.source.model_copy(update={"source_url": args.source})}
        )
    status = asyncio.run(_render_once(config))

    if status.message:
        print(status.message, file=sys.stderr)
    if status.svg is None:
        return 1

    if args.out:
        out = Path(args.out)
        out.parent.mkdir(parents=True, exist_ok=True)
        out.write_text(status.svg)
        print(f"Wrote {out} ({status.origin.value if status.origin else 'unknown'})")
    else:
        print(status.svg)
    return 0 if status.state == RenderState.READY else 1


def _cmd_daemon(config, args) -> int:
    if args.stop:
        return stop_daemon()
    if args.status:
        return daemon_status()
    daemon = RefreshDaemon(config, out_path=args.out, interval_minutes=args.interval)
    daemon.start()
    return 0


def _cmd_config(config, args) -> int:
    if args.config_command == "show":
        print(config.model_dump_json(indent=2))
        return 0
    elif args.config_command == "set":
        kv = args.keyvalue
        if "=" not in kv:
            print("Error: use key=value format")
            return 1
        key, value = kv.split("=", 1)
        try:
            new_config = set_config_value(config, key.strip(), value.strip())
        except (KeyError, ValueError) as e:
            print(f"Error: {e}")
            return 1
        save_config(new_config, args.config)
        print(f"Set {key.strip()} = {get_config_value(new_config, key.strip())}")
        return 0
    else:
        print("Use: config show | config set key=value")
        return 1
