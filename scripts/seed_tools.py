"""Load catalog entries from a JSON array file.

Usage:
  python scripts/seed_tools.py path/to/tools.json [--approve]

Accepts the legacy data-file layout (camelCase keys such as shortDescription,
usageCount); ids and timestamps in the file are ignored.
"""

import argparse
import json
import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from velora.catalog.tools import create_tool
from velora.config import load_config
from velora.db import connect, init_db


def _snake(key: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", key).lower()


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("path")
    ap.add_argument("--approve", action="store_true", help="publish every seeded tool")
    args = ap.parse_args()

    items = json.loads(Path(args.path).read_text(encoding="utf-8"))
    if not isinstance(items, list):
        raise SystemExit("expected a JSON array of tools")

    cfg = load_config()
    init_db(cfg.DB_DSN)

    n = 0
    with connect(cfg.DB_DSN) as conn:
        for raw in items:
            fields = {_snake(k): v for k, v in dict(raw).items() if k not in ("id", "createdAt", "created_at")}
            if args.approve:
                fields["approved"] = True
            create_tool(conn, fields)
            n += 1

    print(f"Seeded {n} tools into {cfg.DB_DSN}")


if __name__ == "__main__":
    main()
