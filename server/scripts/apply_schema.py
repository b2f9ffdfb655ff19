"""Admin CLI: Create the delivery tables in the configured database.

Runs delivery/schema.sql (CREATE ... IF NOT EXISTS, safe to re-run).

Usage examples:
  python scripts/apply_schema.py
  python scripts/apply_schema.py --schema /path/to/custom.sql
"""

import argparse
import asyncio
import os
import sys
from pathlib import Path
from typing import Optional


def _ensure_import_path() -> None:
    server_root = os.path.dirname(os.path.dirname(__file__))
    if server_root not in sys.path:
        sys.path.insert(0, server_root)


async def _run(schema: Optional[str]) -> int:
    _ensure_import_path()

    from delivery.settings import DATABASE_URL
    from delivery import db

    if not DATABASE_URL:
        print("ERROR: DATABASE_URL is not set.")
        return 2

    path = Path(schema) if schema else db.SCHEMA_PATH
    if not path.is_file():
        print(f"ERROR: schema file not found: {path}")
        return 2

    await db.init_pool()
    try:
        await db.apply_schema(path)
        print(f"Applied schema: {path}")
        return 0
    finally:
        await db.close_pool()


def main() -> int:
    parser = argparse.ArgumentParser(description="Apply the delivery schema to DATABASE_URL.")
    parser.add_argument("--schema", help="Path to an alternative schema file")
    args = parser.parse_args()
    return asyncio.run(_run(args.schema))


if __name__ == "__main__":
    raise SystemExit(main())
