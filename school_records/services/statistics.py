# =============================================
# File: school_records/services/statistics.py
# Purpose: Dashboard totals
# =============================================
from __future__ import annotations

from typing import Dict

from sqlmodel import Session, func, select

from school_records.db.models import Establishment, SchoolClass, StaffMember, Student


def dashboard_statistics(session: Session) -> Dict[str, int]:
    total_establishments = session.exec(select(func.count(Establishment.id))).one()
    total_classes = session.exec(select(func.count(SchoolClass.id))).one()
    total_students = session.exec(select(func.count(Student.id))).one()
    total_staff = session.exec(select(func.count(StaffMember.id))).one()
    return {
        "total_establishments": int(total_establishments),
        "total_classes": int(total_classes),
        "total_students": int(total_students),
        "total_staff": int(total_staff),
        # one ID card per student
        "cards_generated": int(total_students),
    }
