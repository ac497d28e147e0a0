# =============================================
# File: school_records/cli/init_db.py
# Purpose: CLI entrypoint to create the tables and optionally load demo records.
# Usage:
#   python -m school_records.cli.init_db --db sqlite:///./school_records.db --seed
# =============================================
from __future__ import annotations
import argparse
import sys
from datetime import date

from sqlmodel import func, select

from school_records.db import repo
from school_records.db.models import Establishment
from school_records.services import classes, establishments, staff, students

DEMO_ESTABLISHMENT = {
    "name": "Lycée Victor Hugo",
    "address": "12 rue des Écoles, Paris",
    "phone": "+33 1 23 45 67 89",
    "email": "contact@lycee-hugo.example",
    "school_year": "2025-2026",
}
DEMO_CLASSES = [("6ème A", "6ème"), ("5ème B", "5ème")]
DEMO_STUDENTS = [
    ("Dupont", "Jean", date(2013, 5, 15), "M"),
    ("Martin", "Marie", date(2013, 8, 20), "F"),
    ("Bernard", "Lucas", date(2012, 2, 3), "M"),
]
DEMO_STAFF = [
    ("Durand", "Claire", "directeur", "Directrice"),
    ("Petit", "Paul", "enseignant", "Professeur de mathématiques"),
]


def seed(session) -> int:
    """Insert one demo establishment with classes, students and staff. Returns records created."""
    est = establishments.create_establishment(session, dict(DEMO_ESTABLISHMENT))
    created = 1
    class_ids = []
    for name, level in DEMO_CLASSES:
        klass = classes.create_class(session, {"name": name, "level": level, "establishment_id": est["id"]})
        class_ids.append(klass["id"])
        created += 1
    for i, (last, first, born, sex) in enumerate(DEMO_STUDENTS):
        students.create_student(
            session,
            {
                "last_name": last,
                "first_name": first,
                "birth_date": born,
                "birth_place": "Paris",
                "nationality": "Française",
                "sex": sex,
                "class_id": class_ids[i % len(class_ids)],
            },
        )
        created += 1
    for last, first, role, position in DEMO_STAFF:
        staff.create_staff_member(
            session,
            {
                "last_name": last,
                "first_name": first,
                "role": role,
                "position": position,
                "establishment_id": est["id"],
            },
        )
        created += 1
    return created


def main(argv=None):
    ap = argparse.ArgumentParser(description="Create the school records tables (and demo data).")
    ap.add_argument("--db", default=repo.DB_URL, help="Database URL (default: $DB_URL or sqlite:///./school_records.db)")
    ap.add_argument("--seed", action="store_true", help="Insert demo records when the database is empty")
    args = ap.parse_args(argv)

    if args.db != repo.DB_URL:
        repo.reset_engine(args.db)
    repo.init_db()

    if not args.seed:
        print(f"[OK] Tables ready at {args.db}")
        return

    with repo.get_session() as session:
        existing = session.exec(select(func.count(Establishment.id))).one()
        if existing:
            print("[WARN] Database already has establishments; skipping demo data.", file=sys.stderr)
            sys.exit(1)
        created = seed(session)

    print(f"[OK] Seeded {created} records into {args.db}")


if __name__ == "__main__":
    main()
