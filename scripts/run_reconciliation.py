"""
Run the janitorial jobs once, for cron or manual use.

Usage:
    python -m scripts.run_reconciliation                 # ledger sync + notification resend
    python -m scripts.run_reconciliation --inbox         # also ingest the submission inbox
    python -m scripts.run_reconciliation --config path/to/expense_flow.yaml
"""
from __future__ import annotations

import argparse
import asyncio
import json
from dataclasses import asdict

from backend.app.container import build_container
from expense_flow.config import load_config
from expense_flow.logging_config import setup_logging


async def run(args: argparse.Namespace) -> dict:
    config = load_config(args.config)
    setup_logging(config.logging.level, config.logging.logs_path)
    container = build_container(config)
    service = container.service

    results: dict = {}
    if args.inbox:
        if service.ingestor is None:
            results["inbox"] = "inbox not enabled in config"
        else:
            results["inbox"] = asdict(await service.ingestor.ingest())
    if not args.skip_ledger:
        results["ledger"] = asdict(await service.reconciler.sync_unsynced())
    if not args.skip_notifications:
        results["notifications"] = asdict(await service.reconciler.resend_notifications())
    return results


def main() -> int:
    parser = argparse.ArgumentParser(description="Reconcile the expense ledger and notifications")
    parser.add_argument("--config", type=str, default=None, help="Path to the YAML config file")
    parser.add_argument("--inbox", action="store_true", help="Ingest unread submission emails first")
    parser.add_argument("--skip-ledger", action="store_true", help="Do not re-append unsynced expenses")
    parser.add_argument(
        "--skip-notifications",
        action="store_true",
        help="Do not resend missing decision notices",
    )
    args = parser.parse_args()

    results = asyncio.run(run(args))
    print(json.dumps(results, indent=2))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
