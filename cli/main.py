import argparse
import asyncio
import json
import logging

from core.config import settings
from core.resolver import ResolutionError
from pipeline.orchestrator import Orchestrator


def _print(obj):
    print(json.dumps(obj, indent=2, default=str))


def cmd_scan(args):
    orch = Orchestrator()
    if args.known_only:
        report = asyncio.run(
            orch.scan_known(args.target, timeout_ms=args.timeout_ms, max_parallelism=args.parallelism)
        )
    else:
        report = asyncio.run(
            orch.scan(
                args.target,
                timeout_ms=args.timeout_ms,
                max_parallelism=args.parallelism,
                stop_on_first=False if args.all else None,
                include_middle=True if args.full else None,
            )
        )
    _print(report.model_dump())


def cmd_browse(args):
    orch = Orchestrator()
    instances = orch.browse(args.target)
    _print([dict(i.model_dump(), connection=i.connection_target(args.target)) for i in instances])


def cmd_report(args):
    orch = Orchestrator()
    _print(orch.report(args.host))


def cmd_verify(args):
    orch = Orchestrator()
    _print(orch.verify())


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="SQL Server discovery: TDS-validating port scanner")
    sub = parser.add_subparsers()

    p_scan = sub.add_parser("scan", help="Known ports, then ephemeral range (then middle with --full)")
    p_scan.add_argument("target")
    p_scan.add_argument("--timeout-ms", type=int, default=None, help=f"initial probe timeout (default: {settings.scan_timeout_ms})")
    p_scan.add_argument("--parallelism", type=int, default=None, help=f"max in-flight probes (default: {settings.max_parallelism})")
    p_scan.add_argument("--all", action="store_true", help="keep scanning after the first hit")
    p_scan.add_argument("--full", action="store_true", help="also scan 1433-49151")
    p_scan.add_argument("--known-only", action="store_true", help="scan the known ports only")
    p_scan.set_defaults(func=cmd_scan)

    p_browse = sub.add_parser("browse", help="Query the SQL Browser service (UDP 1434)")
    p_browse.add_argument("target")
    p_browse.set_defaults(func=cmd_browse)

    p_report = sub.add_parser("report", help="List recorded ports for a host")
    p_report.add_argument("host")
    p_report.set_defaults(func=cmd_report)

    p_verify = sub.add_parser("verify", help="Config + ES connectivity check")
    p_verify.set_defaults(func=cmd_verify)
    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(level=settings.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    if not hasattr(args, "func"):
        parser.print_help()
        return
    try:
        args.func(args)
    except ResolutionError as exc:
        parser.exit(2, f"error: could not scan, {exc}\n")
    except ValueError as exc:
        parser.exit(2, f"error: {exc}\n")


if __name__ == "__main__":
    main()
