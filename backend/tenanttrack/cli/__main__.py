# backend/tenanttrack/cli/__main__.py
from __future__ import annotations

import argparse
from datetime import date

from tenanttrack.cli.seed_demo import seed_demo
from tenanttrack.db import SessionLocal
from tenanttrack.logging_config import configure_logging
from tenanttrack.services.lease_state_machine import expire_due_leases


def _seed(args: argparse.Namespace) -> None:
    out = seed_demo(
        landlord_email=args.landlord_email,
        tenant_email=args.tenant_email,
        staff_email=args.staff_email,
        with_application=(not args.no_application),
    )
    print(
        {
            "ok": True,
            "landlord_email": out.landlord_email,
            "tenant_email": out.tenant_email,
            "staff_email": out.staff_email,
            "property_id": out.property_id,
            "lease_id": out.lease_id,
        }
    )


def _expire(args: argparse.Namespace) -> None:
    today = date.fromisoformat(args.today) if args.today else date.today()
    db = SessionLocal()
    try:
        expired = expire_due_leases(db, today=today)
    finally:
        db.close()
    print({"ok": True, "today": today.isoformat(), "expired_lease_ids": expired})


def main() -> None:
    configure_logging()

    p = argparse.ArgumentParser(prog="python -m tenanttrack.cli")
    sub = p.add_subparsers(dest="command", required=True)

    seed = sub.add_parser("seed-demo", help="create a demo landlord, property, units, tenant and application")
    seed.add_argument("--landlord-email", default="landlord@demo.local")
    seed.add_argument("--tenant-email", default="tenant@demo.local")
    seed.add_argument("--staff-email", default="maintenance@demo.local")
    seed.add_argument("--no-application", action="store_true")
    seed.set_defaults(func=_seed)

    expire = sub.add_parser("expire-leases", help="move active leases past their end date to Expired")
    expire.add_argument("--today", default=None, help="ISO date, defaults to today")
    expire.set_defaults(func=_expire)

    args = p.parse_args()
    args.func(args)


if __name__ == "__main__":
    main()
