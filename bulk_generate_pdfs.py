# bulk_generate_pdfs.py
import argparse
import logging
import os
from pathlib import Path

from sqlalchemy import extract

from config import Config
from models import Base, make_engine, make_session_factory, WorkOrder
from pdf_service import Profile, generate_and_store_pdf


def main(argv=None):
    parser = argparse.ArgumentParser(description="Bulk generate repair order PDFs.")
    parser.add_argument("--year", type=str, default="", help="Only generate PDFs for orders created in a given year (YYYY).")
    parser.add_argument("--all", action="store_true", help="Regenerate PDFs even if one already exists.")
    parser.add_argument(
        "--profile",
        default=Profile.STANDARD.value,
        choices=[p.value for p in Profile],
        help="Layout profile to generate (default: standard).",
    )
    args = parser.parse_args(argv)

    logging.basicConfig(level=Config.LOG_LEVEL)
    profile = Profile.parse(args.profile)

    # Ensure exports dir exists
    Path(Config.EXPORTS_DIR).mkdir(parents=True, exist_ok=True)

    engine = make_engine(Config.SQLALCHEMY_DATABASE_URI, echo=Config.SQLALCHEMY_ECHO)
    Base.metadata.create_all(engine)
    SessionLocal = make_session_factory(engine)

    target_year = (args.year or "").strip()
    if target_year and not (target_year.isdigit() and len(target_year) == 4):
        raise SystemExit("Year must be 4 digits, e.g. --year 2025")

    with SessionLocal() as s:
        q = s.query(WorkOrder).order_by(WorkOrder.created_at.asc())

        if target_year:
            q = q.filter(extract("year", WorkOrder.created_at) == int(target_year))

        orders = q.all()

        if not orders:
            print("No orders found for the given filter.")
            return

        total = len(orders)
        generated = 0
        skipped = 0
        failed = 0

        for i, order in enumerate(orders, start=1):
            try:
                # Only the standard profile is tracked on the order row
                has_pdf = profile is Profile.STANDARD and bool(order.pdf_path) and os.path.exists(order.pdf_path or "")
                if has_pdf and not args.all:
                    skipped += 1
                    print(f"[{i}/{total}] SKIP  {order.order_number} (already has PDF)")
                    continue

                path = generate_and_store_pdf(s, order.id, profile)
                generated += 1
                print(f"[{i}/{total}] DONE  {order.order_number} -> {path}")

            except Exception as e:
                s.rollback()
                failed += 1
                print(f"[{i}/{total}] FAIL  {order.order_number}  ({e})")

        print("\n✅ Bulk PDF generation complete.")
        print(f"Profile:   {profile.value}")
        print(f"Generated: {generated}")
        print(f"Skipped:   {skipped}")
        print(f"Failed:    {failed}")
        print(f"Exports:   {Config.EXPORTS_DIR}")


if __name__ == "__main__":
    main()
