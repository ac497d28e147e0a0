# =============================================
# File: school_records/services/classes.py
# Purpose: Class queries (with establishment + enrolment counts) and writes
# =============================================
from __future__ import annotations

from typing import Any, Dict, List, Optional

from sqlmodel import Session, func, select

from school_records.db.models import Establishment, SchoolClass, Student
from school_records.services.errors import InvalidReference, RecordInUse, RecordNotFound
from school_records.services.establishments import ensure_exists as ensure_establishment
from school_records.utils.serializers import apply_changes, serialize, serialize_all


def _get_or_404(session: Session, class_id: int) -> SchoolClass:
    klass = session.get(SchoolClass, class_id)
    if klass is None:
        raise RecordNotFound("Class not found")
    return klass


def ensure_exists(session: Session, class_id: int) -> SchoolClass:
    klass = session.get(SchoolClass, class_id)
    if klass is None:
        raise InvalidReference("The specified class does not exist")
    return klass


def _student_counts(session: Session) -> Dict[int, int]:
    rows = session.exec(
        select(Student.class_id, func.count(Student.id)).group_by(Student.class_id)
    ).all()
    return {class_id: int(n) for class_id, n in rows}


def list_classes(session: Session, establishment_id: Optional[int] = None) -> List[Dict[str, Any]]:
    stmt = select(SchoolClass, Establishment).join(
        Establishment, SchoolClass.establishment_id == Establishment.id, isouter=True
    )
    if establishment_id is not None:
        stmt = stmt.where(SchoolClass.establishment_id == establishment_id)
    stmt = stmt.order_by(SchoolClass.level, SchoolClass.name)

    counts = _student_counts(session)
    out: List[Dict[str, Any]] = []
    for klass, est in session.exec(stmt).all():
        out.append(
            serialize(
                klass,
                establishment=serialize(est),
                student_count=counts.get(klass.id, 0),
            )
        )
    return out


def get_class(session: Session, class_id: int) -> Dict[str, Any]:
    """Class with its establishment and enrolled students."""
    klass = _get_or_404(session, class_id)
    est = session.get(Establishment, klass.establishment_id)
    students = session.exec(
        select(Student).where(Student.class_id == class_id).order_by(Student.last_name, Student.first_name)
    ).all()
    return serialize(
        klass,
        establishment=serialize(est),
        students=serialize_all(students),
        student_count=len(students),
    )


def create_class(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    est = ensure_establishment(session, data["establishment_id"])
    klass = SchoolClass(**data)
    session.add(klass)
    session.commit()
    session.refresh(klass)
    return serialize(klass, establishment=serialize(est), student_count=0)


def update_class(session: Session, class_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    klass = _get_or_404(session, class_id)
    if changes.get("establishment_id") is not None:
        ensure_establishment(session, changes["establishment_id"])
    apply_changes(klass, changes)
    session.add(klass)
    session.commit()
    session.refresh(klass)
    return serialize(klass, establishment=serialize(session.get(Establishment, klass.establishment_id)))


def delete_class(session: Session, class_id: int) -> None:
    klass = _get_or_404(session, class_id)
    enrolled = session.exec(select(func.count(Student.id)).where(Student.class_id == class_id)).one()
    if enrolled:
        raise RecordInUse("Cannot delete: students are enrolled in this class")
    session.delete(klass)
    session.commit()
