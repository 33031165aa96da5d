# dealdesk/cli/__main__.py
from __future__ import annotations

import argparse
from dataclasses import asdict

from ..db import init_db
from .seed_demo import seed_demo


def main() -> None:
    p = argparse.ArgumentParser(prog="python -m dealdesk.cli", description="Seed a demo tenant.")
    p.add_argument("--tenant-slug", default="demo")
    p.add_argument("--tenant-name", default="Demo Brokerage")
    p.add_argument("--no-sample-listing", action="store_true")
    p.add_argument("--init-db", action="store_true", help="create tables before seeding")
    args = p.parse_args()

    if args.init_db:
        init_db()

    out = seed_demo(
        tenant_slug=args.tenant_slug,
        tenant_name=args.tenant_name,
        create_sample_listing=(not args.no_sample_listing),
    )
    print({"ok": True, **asdict(out)})


if __name__ == "__main__":
    main()
