from __future__ import annotations

import argparse
import logging
import os
import sys
from dataclasses import dataclass
from importlib.metadata import PackageNotFoundError, version
from typing import Sequence

from gpssnmp.exporter import SatelliteMetricsPublisher, lookup_metric, reduce_report, render_gauge_line
from gpssnmp.gpsd import parse_source_spec
from gpssnmp.service import AcquireConfig, AcquireFailure, acquire_report


LOGGER = logging.getLogger("gpssnmp")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")

USAGE_EXAMPLES = """\
Examples:
to get OID_VISIBLE
   $ gpssnmp -g .1.3.6.1.2.1.25.1.31
   .1.3.6.1.2.1.25.1.31 = gauge: 13

to get OID_USED
   $ gpssnmp -g .1.3.6.1.2.1.25.1.32
   .1.3.6.1.2.1.25.1.32 = gauge: 4

to get OID_SNR_AVG
   $ gpssnmp -g .1.3.6.1.2.1.25.1.33
   .1.3.6.1.2.1.25.1.33 = gauge: 22.250000
"""


@dataclass(frozen=True)
class AppConfig:
    acquire: AcquireConfig
    oid: str | None
    output_format: str
    log_level: str


def _int_env(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None:
        return default
    return int(value)


def _package_version() -> str:
    try:
        return version("gpssnmp")
    except PackageNotFoundError:
        return "unknown"


def _debug_log_level(debug: int, default: str) -> str:
    if debug >= 2:
        return "DEBUG"
    if debug == 1:
        return "INFO"
    return default


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gpssnmp",
        description="Poll a local gpsd for SNMP satellite gauges",
        epilog=USAGE_EXAMPLES,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "-g",
        "--get",
        dest="oid",
        metavar="OID",
        help="OID to report",
    )
    parser.add_argument(
        "-D",
        "--debug",
        type=int,
        default=_int_env("GPSSNMP_DEBUG", 0),
        help="debug level (1=info, 2=frame traces)",
    )
    parser.add_argument(
        "--log-level",
        default=os.getenv("GPSSNMP_LOG_LEVEL", "WARNING"),
        help="python logging level when --debug is not set",
    )
    parser.add_argument(
        "--format",
        dest="output_format",
        choices=("gauge", "prometheus"),
        default=os.getenv("GPSSNMP_FORMAT", "gauge"),
        help="gauge: one SNMP gauge line for OID; prometheus: text exposition of all gauges",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="store_true",
        help="print the version on stderr and exit",
    )
    parser.add_argument(
        "source",
        nargs="?",
        default=os.getenv("GPSSNMP_SOURCE"),
        metavar="server[:port[:device]]",
        help="gpsd to poll (default localhost:2947)",
    )
    return parser


def load_config(argv: Sequence[str] | None = None) -> AppConfig:
    parser = build_arg_parser()
    args = parser.parse_args(argv)
    if args.version:
        sys.stderr.write(f"gpssnmp: {_package_version()}\n")
        sys.exit(0)
    log_level = args.log_level.upper()
    if log_level not in LOG_LEVELS:
        parser.error(f"invalid log level {args.log_level!r} (choose from {', '.join(LOG_LEVELS)})")
    try:
        source = parse_source_spec(args.source)
    except ValueError as error:
        parser.error(str(error))
    return AppConfig(
        acquire=AcquireConfig(source=source),
        oid=args.oid,
        output_format=args.output_format,
        log_level=_debug_log_level(args.debug, log_level),
    )


def _usage_error(message: str) -> None:
    LOGGER.error(message)
    build_arg_parser().print_help(sys.stderr)
    sys.exit(1)


def main(argv: Sequence[str] | None = None) -> None:
    config = load_config(argv)
    logging.basicConfig(
        level=config.log_level,
        format="%(name)s: %(levelname)s: %(message)s",
        stream=sys.stderr,
    )

    kind = None
    if config.output_format == "gauge":
        if not config.oid:
            _usage_error("Missing option")
        kind = lookup_metric(config.oid)
        if kind is None:
            _usage_error(f"Unknown OID {config.oid}")

    try:
        result = acquire_report(config.acquire)
    except KeyboardInterrupt:
        LOGGER.info("interrupted, exiting")
        sys.exit(130)

    if not result.success:
        if result.failure is AcquireFailure.TIMED_OUT:
            LOGGER.error("timeout")
        else:
            LOGGER.error("%s: %s", result.failure.value if result.failure else "poll failed", result.error)

    if config.output_format == "prometheus":
        # a failed poll is still published so scrapers see gpsd_poll_success 0
        publisher = SatelliteMetricsPublisher()
        publisher.apply_acquire_result(source=str(config.acquire.source), result=result)
        sys.stdout.write(publisher.render())
        if not result.success:
            sys.exit(1)
        return

    if not result.success:
        sys.exit(1)

    metrics = reduce_report(result.report)
    print(render_gauge_line(kind, metrics))


if __name__ == "__main__":
    main()
