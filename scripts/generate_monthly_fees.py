"""Generate one month's tuition charges for every active student.

Safe to run repeatedly (e.g. from cron on the 1st): existing charges for the
month are left untouched.

    python scripts/generate_monthly_fees.py --month 9 --year 2026 --as-user admin
"""

from __future__ import annotations

import argparse
import importlib
import logging
import sys
from decimal import Decimal
from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))

from config import get_settings_module

from src.school_fees.school_fees.container import build_container
from src.school_fees.school_fees.core.exceptions import DomainError
from src.school_fees.school_fees.users.service import SessionUser


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--month", type=int, help="1-12, defaults to the current month")
    parser.add_argument("--year", type=int, help="defaults to the current year")
    parser.add_argument("--fee-amount", help="fallback fee for students without an individual monthly fee")
    parser.add_argument("--as-user", default="admin", help="admin or principal username recorded on the charges")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    settings = importlib.import_module(get_settings_module())
    logging.basicConfig(
        level=str(getattr(settings, "LOG_LEVEL", "INFO")).upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    container = build_container(
        db_config=dict(settings.DB_CONFIG),
        default_monthly_fee=Decimal(str(getattr(settings, "DEFAULT_MONTHLY_FEE", "2500"))),
    )
    user = container.users_repo.get_by_username(args.as_user)
    if not user or not user.is_active:
        print(f"ERROR: unknown or inactive user '{args.as_user}'", file=sys.stderr)
        return 2

    actor = SessionUser(user_id=user.user_id, full_name=user.full_name, role=user.role)
    try:
        result = container.fee_service.generate_monthly(
            actor=actor,
            month=args.month,
            year=args.year,
            fee_amount=args.fee_amount,
        )
    except DomainError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1

    print(
        f"OK: {result.month}/{result.year} created={result.created} existing={result.updated} "
        f"errors={len(result.errors)} students={result.total_students}"
    )
    for err in result.errors:
        print(f"  student {err['studentId']}: {err['error']}")
    return 1 if result.errors else 0


if __name__ == "__main__":
    raise SystemExit(main())
