from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import time
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .aggregator import build_search_query
from .config import load_config
from .errors import ConfigurationError
from .logging_config import configure_logging
from .models import DateRange
from .util.dates import PRESETS, preset_range
from .util.debug_bundle import create_debug_bundle
from .util.money import int_to_yen_str


logger = logging.getLogger("card_usage_aggregator")


def _add_range_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--start", default="", help="First day to include (YYYY-MM-DD).")
    p.add_argument("--end", default="", help="Last day to include (YYYY-MM-DD).")
    p.add_argument(
        "--preset",
        choices=PRESETS,
        default="",
        help="Quick range instead of --start/--end: this-month, last-month or last-3-months.",
    )


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="card_usage_aggregator")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml)")

    sub = p.add_subparsers(dest="cmd", required=True)

    agg = sub.add_parser("aggregate", help="Total card usage notifications in Gmail over a date range")
    _add_range_args(agg)
    agg.add_argument("--headful", action="store_true", help="Run the launched browser headful (debug)")
    agg.add_argument(
        "--cdp-url",
        default="",
        help="Attach to a running, signed-in Chrome (e.g. http://localhost:9222) instead of launching one.",
    )
    agg.add_argument("--slowmo-ms", type=int, default=0, help="Playwright slow motion in milliseconds (debug).")
    agg.add_argument("--step-debug", action="store_true", help="Save step-by-step screenshots under data/debug/.")
    agg.add_argument("--json", action="store_true", help="Print the raw {data|error} response as JSON")

    query = sub.add_parser("query", help="Print the Gmail search query for a date range (no browser)")
    _add_range_args(query)

    return p


def _resolve_range(args: argparse.Namespace) -> DateRange:
    if args.preset:
        start, end = preset_range(args.preset)
        return DateRange(start=start, end=end)
    return DateRange.from_iso(args.start, args.end)


def _print_result(data: dict) -> None:
    print(f"合計 {int_to_yen_str(data['totalAmount'])}  ({data['count']}件)")
    for item in data["details"]:
        print(f"{item['date']:<10}  {item['merchant']:<30}  {int_to_yen_str(item['amount']):>12}")


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    cfg = load_config(args.config)
    configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path)

    try:
        date_range = _resolve_range(args)
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if args.cmd == "query":
        print(build_search_query(date_range, sender=cfg.search.sender, subject=cfg.search.subject))
        return 0

    if args.cmd == "aggregate":
        # Playwright is only needed for this command.
        from .gmail.client import GmailClient

        if args.cdp_url:
            cfg = cfg.model_copy(update={"gmail": cfg.gmail.model_copy(update={"cdp_url": args.cdp_url})})

        logger.info("Starting aggregation (%s..%s)", date_range.start, date_range.end)
        t0 = time.time()
        client = GmailClient(cfg)
        response = client.handle_request(
            {"startDate": date_range.start.isoformat(), "endDate": date_range.end.isoformat()},
            headless=False if args.headful else None,
            slow_mo_ms=args.slowmo_ms,
            step_debug=args.step_debug,
        )
        logger.info("Aggregation finished (ok=%s seconds=%.2f)", "data" in response, time.time() - t0)

        if args.json:
            print(json.dumps(response, ensure_ascii=False, indent=2))

        if "error" in response:
            # Bundle screenshots + log for easy sharing.
            try:
                bundle = create_debug_bundle(
                    debug_dir=cfg.debug_dir,
                    log_file=cfg.logging.file_path or "data/aggregate.log",
                    out_dir="data",
                    label="aggregate",
                )
                logger.error("Wrote debug bundle: %s", bundle)
            except Exception:
                logger.debug("Failed to create debug bundle.", exc_info=True)
            if not args.json:
                print(f"error: {response['error']}", file=sys.stderr)
            return 1

        if not args.json:
            _print_result(response["data"])
        return 0

    raise AssertionError("Unhandled command")
