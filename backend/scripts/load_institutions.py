"""
Load Reference Institutions

Inserts the institutions bundled with the backend (or a JSON file given on
the command line) that are not stored yet, matching by name, and refreshes
the country/acronym of the ones that are.

Usage:
    python backend/scripts/load_institutions.py [--file institutions.json] [--dry-run]
"""

import argparse
import asyncio
import json
import os
from pathlib import Path

from intercamb.dependencies import DB_PATH, create_query_facade
from intercamb.services import InstitutionService

RESOURCES_DIR = Path(__file__).resolve().parent.parent / "intercamb" / "resources"
DEFAULT_FILE = RESOURCES_DIR / "institutions_ar.json"


def load_records(path: Path) -> list:
    """Read institution records from a JSON array file."""
    with open(path, "r", encoding="utf-8") as f:
        records = json.load(f)
    if not isinstance(records, list):
        raise ValueError(f"{path} must contain a JSON array of institutions")
    return records


async def run(records: list, db_path: Path) -> None:
    service = InstitutionService(create_query_facade(db_path))
    result = await service.sync_institutions(records)
    print(f"  Inserted: {result.inserted}")
    print(f"  Updated:  {result.updated}")


def main():
    parser = argparse.ArgumentParser(description="Load reference institutions into the document store")
    parser.add_argument("--file", type=Path, default=DEFAULT_FILE, help="JSON array of institutions")
    parser.add_argument("--db", type=Path, default=Path(os.environ.get("DATABASE_PATH", str(DB_PATH))),
                        help="SQLite database file")
    parser.add_argument("--dry-run", action="store_true", help="Only report what would be loaded")
    args = parser.parse_args()

    print(f"Loading institutions from {args.file}")
    records = load_records(args.file)
    print(f"  Records: {len(records)}")
    if args.dry_run:
        print("Dry run: nothing written.")
        return
    asyncio.run(run(records, args.db))
    print("Done.")


if __name__ == "__main__":
    main()
