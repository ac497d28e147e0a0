# =============================================
# File: school_records/services/establishments.py
# Purpose: Establishment queries and writes (sync, one Session per call)
# =============================================
from __future__ import annotations

from typing import Any, Dict, List

from sqlmodel import Session, func, select

from school_records.db.models import Establishment, SchoolClass, Student
from school_records.services.errors import InvalidReference, RecordInUse, RecordNotFound
from school_records.utils.serializers import apply_changes, serialize, serialize_all


def _get_or_404(session: Session, establishment_id: int) -> Establishment:
    est = session.get(Establishment, establishment_id)
    if est is None:
        raise RecordNotFound("Establishment not found")
    return est


def ensure_exists(session: Session, establishment_id: int) -> Establishment:
    """Parent check used by class/staff writes."""
    est = session.get(Establishment, establishment_id)
    if est is None:
        raise InvalidReference("The specified establishment does not exist")
    return est


def list_establishments(session: Session) -> List[Dict[str, Any]]:
    rows = session.exec(select(Establishment).order_by(Establishment.name)).all()
    return serialize_all(rows)


def get_establishment(session: Session, establishment_id: int) -> Dict[str, Any]:
    """Establishment with its classes and class/student totals."""
    est = _get_or_404(session, establishment_id)
    classes = session.exec(
        select(SchoolClass)
        .where(SchoolClass.establishment_id == establishment_id)
        .order_by(SchoolClass.name)
    ).all()
    student_count = session.exec(
        select(func.count(Student.id))
        .join(SchoolClass, Student.class_id == SchoolClass.id)
        .where(SchoolClass.establishment_id == establishment_id)
    ).one()
    return serialize(
        est,
        classes=serialize_all(classes),
        class_count=len(classes),
        student_count=int(student_count or 0),
    )


def create_establishment(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    est = Establishment(**data)
    session.add(est)
    session.commit()
    session.refresh(est)
    return serialize(est)


def update_establishment(session: Session, establishment_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    est = _get_or_404(session, establishment_id)
    apply_changes(est, changes)
    session.add(est)
    session.commit()
    session.refresh(est)
    return serialize(est)


def delete_establishment(session: Session, establishment_id: int) -> None:
    est = _get_or_404(session, establishment_id)
    linked = session.exec(
        select(func.count(SchoolClass.id)).where(SchoolClass.establishment_id == establishment_id)
    ).one()
    if linked:
        raise RecordInUse("Cannot delete: classes are linked to this establishment")
    session.delete(est)
    session.commit()
