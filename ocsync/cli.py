# ocsync/cli.py
# Drive a full run against a running sync server, one step at a time.
# Usage: ocsync-run --start-product 1 --api-url http://localhost:8000
import argparse
import asyncio
import logging
import sys

from ocsync.config import settings
from ocsync.logging_filters import install_log_filters
from ocsync.sync.orchestrator import HttpStepTransport, SyncOrchestrator


def _parse_args(argv=None):
    p = argparse.ArgumentParser(description="OpenCart → WooCommerce variations sync")
    p.add_argument("--start-product", type=int, default=1, help="1-based product number to start at")
    p.add_argument("--api-url", default=settings.SYNC_API_URL)
    p.add_argument("--user", default=settings.ADMIN_USER)
    p.add_argument("--password", default=settings.ADMIN_PASS)
    p.add_argument("--retry-delay", type=float, default=settings.SYNC_RETRY_DELAY)
    p.add_argument("--step-delay", type=float, default=settings.SYNC_STEP_DELAY)
    p.add_argument("--max-retries", type=int, default=settings.SYNC_MAX_RETRIES)
    return p.parse_args(argv)


async def _run(args) -> int:
    async with HttpStepTransport(args.api_url, auth=(args.user, args.password)) as transport:
        orch = SyncOrchestrator(
            transport,
            step_delay=args.step_delay,
            retry_delay=args.retry_delay,
            max_retries=args.max_retries,
            on_log=print,
        )
        outcome = await orch.run(max(1, args.start_product) - 1)
    return 0 if outcome.completed else 1


def main(argv=None) -> int:
    logging.basicConfig(level=logging.WARNING, format="%(asctime)s %(levelname)s %(name)s | %(message)s")
    install_log_filters()
    args = _parse_args(argv)
    try:
        return asyncio.run(_run(args))
    except KeyboardInterrupt:
        print("Interrupted")
        return 1


if __name__ == "__main__":
    sys.exit(main())
