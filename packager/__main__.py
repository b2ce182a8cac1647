from __future__ import annotations

import argparse
import asyncio
import logging
import sqlite3
import sys
from typing import List, Optional

from packager.core.config import load_config
from packager.domain.errors import ConfigurationError, ReleaseSourceError, VersionResolutionError
from packager.domain.models import RunReport
from packager.main import configure_logging, create_app
from packager.services.release.feed import FeedReleaseSource
from packager.services.release.local import LocalReleaseSource
from packager.services.runner import PackagerRunner

logger = logging.getLogger("packager")


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="packager", description="Build incremental upgrade packages.")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("run-once", help="Check the release feed once and package a new release.")

    package = sub.add_parser("package", help="Package a local release (ZIP or directory).")
    package.add_argument("path", help="Release ZIP archive or extracted directory.")
    package.add_argument("--version", dest="version", default=None, help="Override the detected version.")

    loop = sub.add_parser("loop", help="Check the release feed on a schedule.")
    loop.add_argument("--interval", type=int, default=None, help="Seconds between runs.")

    serve = sub.add_parser("serve", help="Serve the upgrade API.")
    serve.add_argument("--host", default="0.0.0.0")
    serve.add_argument("--port", type=int, default=8000)
    serve.add_argument("--schedule", action="store_true", help="Also run the packager loop in the background.")
    return parser


def _print_report(report: RunReport) -> None:
    print(f"state: {report.state.value}")
    if report.new_version:
        print(f"version: {report.new_version}")
    for package in report.created:
        print(f"created: {package.from_version} -> {package.to_version} {package.update_url}")
    for from_version, to_version in report.failed_pairs:
        print(f"failed: {from_version} -> {to_version}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    try:
        config = load_config()
    except ConfigurationError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        return 2
    configure_logging(config)

    if args.command == "serve":
        import uvicorn

        uvicorn.run(create_app(config, schedule=args.schedule), host=args.host, port=args.port)
        return 0

    try:
        if args.command == "package":
            runner = PackagerRunner(config, LocalReleaseSource(args.path))
            report = asyncio.run(runner.run_once(version_override=args.version))
        elif args.command == "loop":
            runner = PackagerRunner(config, FeedReleaseSource(config))
            asyncio.run(runner.run_forever(args.interval))
            return 0
        else:
            runner = PackagerRunner(config, FeedReleaseSource(config))
            report = asyncio.run(runner.run_once())
    except (ReleaseSourceError, VersionResolutionError, OSError, sqlite3.Error) as e:
        logger.error(f"Packager run aborted: {e}")
        return 1
    except KeyboardInterrupt:
        return 130

    _print_report(report)
    return 0 if report.succeeded else 1


if __name__ == "__main__":
    sys.exit(main())
