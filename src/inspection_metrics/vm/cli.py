"""CLI to run a host-scoped instant query against VictoriaMetrics."""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path
from typing import TextIO

from ..logging import get_logger, log_structured
from ..settings import get_settings
from .client import VictoriaMetricsClient
from .config import HostFilterSettings, load_config
from .exceptions import VictoriaMetricsError
from .filter import HostFilter, rewrite_query

LOGGER = get_logger(__name__)


def _parse_tag(value: str) -> tuple[str, str]:
    key, sep, tag_value = value.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"tag must look like KEY=VALUE: {value!r}")
    return key, tag_value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("query", help="PromQL instant query.")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to inspection YAML config (defaults to package config).",
    )
    parser.add_argument(
        "--endpoint",
        type=str,
        default=None,
        help="Override VictoriaMetrics endpoint from config.",
    )
    parser.add_argument(
        "--business-group",
        dest="business_groups",
        action="append",
        default=None,
        help="Restrict to a business group; repeat for several (OR).",
    )
    parser.add_argument(
        "--tag",
        dest="tags",
        action="append",
        type=_parse_tag,
        default=None,
        help="Restrict to hosts carrying KEY=VALUE; repeat for several (AND).",
    )
    parser.add_argument(
        "--by-ident",
        action="store_true",
        help="Keep only the last sample per host identity.",
    )
    parser.add_argument(
        "--show-query",
        action="store_true",
        help="Print the rewritten query and exit without executing it.",
    )
    return parser


def resolve_filter(args: argparse.Namespace, configured: HostFilterSettings) -> HostFilter | None:
    """Command-line filters replace the configured ones when given."""

    if args.business_groups is None and args.tags is None:
        return configured.to_filter()
    host_filter = HostFilter(
        business_groups=args.business_groups or (),
        tags=dict(args.tags or ()),
    )
    return None if host_filter.is_empty() else host_filter


def main(argv: list[str] | None = None, out: TextIO | None = None) -> int:
    out = out or sys.stdout
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config or get_settings().config_path)
    if args.endpoint:
        config.victoriametrics = config.victoriametrics.model_copy(
            update={"endpoint": args.endpoint.rstrip("/")}
        )

    host_filter = resolve_filter(args, config.host_filter)
    if args.show_query:
        print(rewrite_query(args.query, host_filter), file=out)
        return 0

    with VictoriaMetricsClient.from_config(config) as client:
        try:
            if args.by_ident:
                grouped = client.query_by_ident(args.query, host_filter)
                payload: object = {ident: asdict(result) for ident, result in grouped.items()}
                count = len(grouped)
            else:
                results = client.query_results(args.query, host_filter)
                payload = [asdict(result) for result in results]
                count = len(results)
        except VictoriaMetricsError as exc:
            LOGGER.error("Query failed: %s", exc)
            print(f"error: {exc}", file=sys.stderr)
            return 1

    json.dump(payload, out, indent=2, sort_keys=True)
    out.write("\n")
    log_structured(LOGGER, "query complete", results=count, by_ident=args.by_ident)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
