from __future__ import annotations

import argparse
import importlib
import sys
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from dotenv import load_dotenv

from config import get_settings_module

from src.workforce_attendance.workforce_attendance.database.bootstrap import apply_schema, list_tables


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Create the attendance database and apply its schema.")
    parser.add_argument("--schema", type=Path, default=REPO_ROOT / "database" / "schema.sql")
    args = parser.parse_args(argv)

    load_dotenv(override=False)
    db_config = dict(importlib.import_module(get_settings_module()).DB_CONFIG)

    applied = apply_schema(db_config, schema_path=args.schema)
    tables = list_tables(db_config)
    print(f"{applied} statements applied to {db_config.get('database')}@{db_config.get('host')}: {', '.join(tables)}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
