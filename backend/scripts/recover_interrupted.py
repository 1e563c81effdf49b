"""Settle generations whose run was cut off by a process exit.

Items still pending or generating are marked error (or aborted when an abort was
requested) and each generation gets its terminal status. The API does the same on
startup; this script is for running it by hand against a stopped deployment.

Usage:
    uv run python scripts/recover_interrupted.py [--dry-run] [--db-url URL]
"""

import argparse
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

_BACKEND_DIR = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(_BACKEND_DIR))

load_dotenv(_BACKEND_DIR.parent / ".env")

_pre = argparse.ArgumentParser(add_help=False)
_pre.add_argument("--db-url", default=os.environ.get("DATABASE_URL", "sqlite:///uibattles.db"))
_pre_args, _ = _pre.parse_known_args()
os.environ["DATABASE_URL"] = _pre_args.db_url

from uibattles.db import create_tables, get_session_factory  # noqa: E402
from uibattles.services.background import BackgroundRunner  # noqa: E402
from uibattles.services.executor import GenerationExecutor  # noqa: E402
from uibattles.services.generation import GenerationService  # noqa: E402
from uibattles.services.store import GenerationStore  # noqa: E402


def main() -> None:
    parser = argparse.ArgumentParser(description="Settle generations interrupted by a shutdown.")
    parser.add_argument(
        "--db-url",
        default=os.environ["DATABASE_URL"],
        help="SQLAlchemy database URL",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="List unfinished generations without writing to the DB.",
    )
    args = parser.parse_args()

    create_tables()
    store = GenerationStore(get_session_factory())
    unfinished = store.list_unfinished_generations()
    print(f"Found {len(unfinished)} unfinished generation(s).\n")

    for generation in unfinished:
        open_items = [i for i in store.get_items(generation.id) if i.status in ("pending", "generating")]
        flag = "  abort requested" if generation.abort_requested else ""
        print(f"  {generation.id}  {generation.status:<11}  {len(open_items)} open item(s){flag}")

    if args.dry_run:
        print("\nDRY RUN: no changes written.")
        return

    service = GenerationService(store, GenerationExecutor(store), BackgroundRunner())
    settled = service.recover_interrupted()
    print(f"\nDone: {settled} generation(s) settled.")


if __name__ == "__main__":
    main()
