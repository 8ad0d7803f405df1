"""Create a user account.

Usage:
  python scripts/create_user.py --email alice@example.com --username alice --password '...' --role user

Omit --password for a passwordless account (OTP / Google sign-in only).
"""

import argparse
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from velora.auth.crud import create_user, public_user
from velora.config import load_config
from velora.db import connect, init_db


def main() -> None:
    ap = argparse.ArgumentParser()
    ap.add_argument("--email", required=True)
    ap.add_argument("--username", default="")
    ap.add_argument("--password", default=None)
    ap.add_argument("--role", choices=["user", "admin"], default="user")
    args = ap.parse_args()

    cfg = load_config()
    init_db(cfg.DB_DSN)

    with connect(cfg.DB_DSN) as conn:
        u = create_user(
            conn,
            username=args.username or args.email.split("@")[0],
            email=args.email,
            password=args.password,
            role=args.role,
            email_verified=True,
        )

    print("Created user:")
    print(public_user(u))


if __name__ == "__main__":
    main()
