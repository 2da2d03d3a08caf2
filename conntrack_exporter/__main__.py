"""진입점: python -m conntrack_exporter"""

from __future__ import annotations

import argparse
import asyncio
import sys
from importlib.metadata import PackageNotFoundError, version


def _version() -> str:
    try:
        return version("conntrack-exporter")
    except PackageNotFoundError:
        return "dev"


def build_parser() -> argparse.ArgumentParser:
    """CLI 파서를 만든다. 점 표기 플래그는 같은 이름의 설정 키를 오버라이드한다."""
    parser = argparse.ArgumentParser(
        prog="conntrack-exporter",
        description="Prometheus exporter for the kernel connection tracking table",
    )
    parser.add_argument(
        "-c", "--config",
        default=None,
        help="Path to configuration YAML file (default: config/default.yaml if present)",
    )
    parser.add_argument(
        "--collector.interval", dest="collector.interval", type=float, default=None,
        help="Seconds between collecting info about connections (default: 60)",
    )
    parser.add_argument(
        "--configure.nf_conntrack_acct", dest="collector.configure_nf_conntrack_acct",
        action="store_true", default=None,
        help="Set the nf_conntrack_acct sysctl so packets/bytes are recorded",
    )
    parser.add_argument(
        "--path.procfs", dest="path.procfs", default=None,
        help="procfs mountpoint (default: /proc)",
    )
    parser.add_argument(
        "--web.telemetry-path", dest="web.telemetry_path", default=None,
        help="Path under which to expose metrics (default: /metrics)",
    )
    parser.add_argument(
        "--web.disable-exporter-metrics", dest="web.disable_exporter_metrics",
        action="store_true", default=None,
        help="Exclude metrics about the exporter itself (conntrack_exporter_*, process_*, python_*)",
    )
    parser.add_argument(
        "--web.max-requests", dest="web.max_requests", type=int, default=None,
        help="Maximum number of parallel scrape requests, 0 disables the limit (default: 40)",
    )
    parser.add_argument(
        "--web.listen-address", dest="web.listen_addresses", action="append", default=None,
        help="Address to expose metrics on, repeatable (e.g. :9100 or [::1]:9100)",
    )
    parser.add_argument(
        "--log.level", dest="logging.level", default=None,
        choices=["debug", "info", "warn", "warning", "error"],
        help="Only log messages with the given severity or above (default: info)",
    )
    parser.add_argument(
        "--log.format", dest="logging.format", default=None,
        choices=["logfmt", "json", "text"],
        help="Output format of log messages (default: logfmt)",
    )
    parser.add_argument(
        "-v", "--version", action="version", version=f"%(prog)s {_version()}",
    )
    return parser


def main(argv: list[str] | None = None) -> int:
    """conntrack-exporter CLI 진입점. 설정을 로드하고 애플리케이션을 실행한다."""
    parser = build_parser()
    args = vars(parser.parse_args(argv))
    config_path = args.pop("config")

    from conntrack_exporter.app import ConntrackExporter
    from conntrack_exporter.utils.config import Config

    try:
        config = Config.load(config_path, overrides=args)
    except (FileNotFoundError, ValueError) as exc:
        print(f"conntrack-exporter: {exc}", file=sys.stderr)
        return 2

    app = ConntrackExporter(config, version=_version())

    try:
        return asyncio.run(app.run())
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
