from __future__ import annotations

import argparse
import asyncio
import json
import logging
import os
import sys
import time
from datetime import date
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv
from pydantic import ValidationError

from .config import load_config
from .logging_config import configure_logging
from .models import BillingRecord
from .portal.client import KepcoPortalClient, PortalCredentials
from .portal.errors import NavigationError
from .portal.extractor import SCHEMAS, records_from_rows
from .reconcile import filter_since, merge_passes


logger = logging.getLogger("kepco_billing_export")


def _month_arg(value: str) -> date:
    s = (value or "").strip()
    try:
        return date.fromisoformat(s if len(s) > 7 else f"{s}-01")
    except ValueError:
        raise argparse.ArgumentTypeError(f"expected YYYY-MM or YYYY-MM-DD, got {value!r}") from None


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="kepco_billing_export")
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )

    sub = p.add_subparsers(dest="cmd", required=True)

    export = sub.add_parser("export", help="Log into the KEPCO portal and print the billing history as JSON")
    export.add_argument("--config", default="config.yaml", help="Path to YAML config (default: config.yaml, optional)")
    export.add_argument("--headful", action="store_true", help="Run browser headful (debug)")
    export.add_argument("--slowmo-ms", type=int, default=0, help="Playwright slow motion in milliseconds (debug).")
    export.add_argument("--log-steps", action="store_true", help="Log every navigation step at INFO level.")
    export.add_argument(
        "--recent-only",
        action="store_true",
        help="Only fetch the recent one-year window (skip the month-picker rounds for older bills).",
    )
    export.add_argument(
        "--max-concurrency",
        type=int,
        default=None,
        help="Cap concurrent row extraction tasks (default: extraction.max_concurrency, 0 = unbounded).",
    )
    export.add_argument("--since", type=_month_arg, default=None, help="Drop periods before this month (YYYY-MM).")
    export.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")

    normalize = sub.add_parser(
        "normalize",
        help="Normalize captured raw rows (JSON list of field dicts) offline, without a browser.",
    )
    normalize.add_argument("--file", required=True, help="Path to a JSON file: [{\"id\": ..., \"payYm\": ..., ...}, ...]")
    normalize.add_argument(
        "--schema",
        default="annual_card",
        choices=sorted(SCHEMAS),
        help="Row layout the raw fields came from (default: annual_card).",
    )
    normalize.add_argument("--since", type=_month_arg, default=None, help="Drop periods before this month (YYYY-MM).")
    normalize.add_argument("--out", default="", help="Optional output JSON path (otherwise prints to stdout)")

    return p


def records_to_json(records: List[BillingRecord]) -> str:
    return json.dumps([r.model_dump(mode="json") for r in records], ensure_ascii=False, indent=2)


def _emit(records: List[BillingRecord], out: str) -> None:
    text = records_to_json(records)
    if out:
        path = Path(out)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text + "\n", encoding="utf-8")
        logger.info("Wrote %d record(s) to %s", len(records), path)
        return
    print(text)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    if args.cmd == "export":
        try:
            cfg = load_config(args.config)
        except ValidationError as e:
            print(f"Invalid configuration: {e}", file=sys.stderr)
            return 2
        configure_logging(
            level=cfg.logging.level,
            file_path=cfg.logging.file_path,
            redact=(cfg.portal.password, cfg.portal.customer_number),
        )

        client = KepcoPortalClient(
            base_url=cfg.portal.base_url,
            creds=PortalCredentials(
                user_id=cfg.portal.user_id,
                password=cfg.portal.password,
                customer_number=cfg.portal.customer_number,
            ),
            locators=cfg.portal_locators(),
            timing=cfg.timing.to_timing(),
            recent_schema=SCHEMAS[cfg.extraction.recent_schema],
            older_schema=SCHEMAS[cfg.extraction.older_schema],
        )
        max_concurrency = cfg.extraction.max_concurrency if args.max_concurrency is None else args.max_concurrency

        headless = cfg.browser.headless and not args.headful
        t0 = time.time()
        logger.info("Starting export (base_url=%s headless=%s)", cfg.portal.base_url, headless)
        try:
            records = asyncio.run(
                client.extract(
                    headless=headless,
                    viewport=(cfg.browser.viewport_width, cfg.browser.viewport_height),
                    slow_mo_ms=args.slowmo_ms or cfg.browser.slow_mo_ms,
                    log_steps=args.log_steps,
                    max_concurrency=max(0, max_concurrency),
                    include_history=cfg.extraction.include_history and not args.recent_only,
                )
            )
        except NavigationError as e:
            logger.error("Run failed (seconds=%.2f)", time.time() - t0)
            print(
                f"❌ export failed at step={e.step or '?'} locator={e.locator or '-'}: {e}",
                file=sys.stderr,
            )
            return 1

        records = filter_since(records, args.since)
        _emit(records, args.out)
        logger.info("Run finished (records=%d seconds=%.2f)", len(records), time.time() - t0)
        return 0

    if args.cmd == "normalize":
        path = Path(args.file)
        if not path.exists():
            raise SystemExit(f"File not found: {path}")
        try:
            rows = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            raise SystemExit(f"Invalid JSON in {path}: {e}") from None
        if not isinstance(rows, list):
            raise SystemExit(f"Expected a JSON list of row objects in {path}")

        records = merge_passes(records_from_rows(rows, SCHEMAS[args.schema]))
        records = filter_since(records, args.since)
        _emit(records, args.out)
        return 0

    raise AssertionError("Unhandled command")
