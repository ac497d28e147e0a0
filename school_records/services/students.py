# =============================================
# File: school_records/services/students.py
# Purpose: Student queries (joined with class + establishment), writes and bulk import
# =============================================
from __future__ import annotations

from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlmodel import Session, col, func, select

from school_records.db.models import Establishment, SchoolClass, Student
from school_records.services.classes import ensure_exists as ensure_class
from school_records.services.errors import RecordNotFound
from school_records.utils.serializers import apply_changes, serialize

DEFAULT_YEAR = "2025"
MAX_BULK_ROWS = 1000
MAX_ERROR_DETAILS = 10


def _get_or_404(session: Session, student_id: int) -> Student:
    student = session.get(Student, student_id)
    if student is None:
        raise RecordNotFound("Student not found")
    return student


def _joined(student: Student, klass: Optional[SchoolClass], est: Optional[Establishment]) -> Dict[str, Any]:
    return serialize(student, **{"class": serialize(klass), "establishment": serialize(est)})


def _school_year_start(est: Optional[Establishment]) -> str:
    year = (est.school_year if est else "") or ""
    return year.split("-")[0].strip() or DEFAULT_YEAR


def next_registration_number(session: Session, est: Optional[Establishment], offset: int = 0) -> str:
    """<first year of school year><5-digit sequence>, e.g. 202500042."""
    count = session.exec(select(func.count(Student.id))).one()
    return f"{_school_year_start(est)}{int(count) + 1 + offset:05d}"


def list_students(
    session: Session,
    class_id: Optional[int] = None,
    establishment_id: Optional[int] = None,
) -> List[Dict[str, Any]]:
    stmt = (
        select(Student, SchoolClass, Establishment)
        .join(SchoolClass, Student.class_id == SchoolClass.id, isouter=True)
        .join(Establishment, SchoolClass.establishment_id == Establishment.id, isouter=True)
    )
    if class_id is not None:
        stmt = stmt.where(Student.class_id == class_id)
    if establishment_id is not None:
        stmt = stmt.where(SchoolClass.establishment_id == establishment_id)
    stmt = stmt.order_by(Student.last_name, Student.first_name)
    return [_joined(s, c, e) for s, c, e in session.exec(stmt).all()]


def get_student(session: Session, student_id: int) -> Dict[str, Any]:
    student = _get_or_404(session, student_id)
    klass = session.get(SchoolClass, student.class_id)
    est = session.get(Establishment, klass.establishment_id) if klass else None
    return _joined(student, klass, est)


def create_student(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    klass = ensure_class(session, data["class_id"])
    est = session.get(Establishment, klass.establishment_id)
    student = Student(**data)
    student.last_name = student.last_name.upper()
    student.registration_number = next_registration_number(session, est)
    session.add(student)
    session.commit()
    session.refresh(student)
    return _joined(student, klass, est)


def update_student(session: Session, student_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    student = _get_or_404(session, student_id)
    if changes.get("class_id") is not None:
        ensure_class(session, changes["class_id"])
    if changes.get("last_name"):
        changes = {**changes, "last_name": changes["last_name"].upper()}
    apply_changes(student, changes)
    session.add(student)
    session.commit()
    return get_student(session, student_id)


def delete_student(session: Session, student_id: int) -> None:
    student = _get_or_404(session, student_id)
    session.delete(student)
    session.commit()


def bulk_import(
    session: Session,
    rows: List[Tuple[int, Dict[str, Any]]],
    errors: List[Dict[str, Any]],
    total_received: int,
) -> Dict[str, Any]:
    """
    Insert pre-validated rows (index, data) whose class exists.

    `errors` carries the rows rejected by payload validation; rows pointing at
    an unknown class are appended to it here.
    """
    class_ids = {data["class_id"] for _, data in rows}
    classes = {
        c.id: c for c in session.exec(select(SchoolClass).where(col(SchoolClass.id).in_(class_ids))).all()
    } if class_ids else {}
    est_ids = {c.establishment_id for c in classes.values()}
    establishments = {
        e.id: e for e in session.exec(select(Establishment).where(col(Establishment.id).in_(est_ids))).all()
    } if est_ids else {}

    errors = list(errors)
    to_insert: List[Student] = []
    for index, data in rows:
        klass = classes.get(data["class_id"])
        if klass is None:
            errors.append({"index": index, "error": "Invalid class", "row": data})
            continue
        student = Student(**data)
        student.last_name = student.last_name.upper()
        student.registration_number = next_registration_number(
            session, establishments.get(klass.establishment_id), offset=len(to_insert)
        )
        to_insert.append(student)

    if to_insert:
        session.add_all(to_insert)
        session.commit()

    imported = len(to_insert)
    logger.info(f"[students.bulk] received={total_received} imported={imported} errors={len(errors)}")
    errors.sort(key=lambda e: e["index"])
    return {
        "total_received": total_received,
        "imported": imported,
        "errors": len(errors),
        "success_rate": round(100 * imported / total_received) if total_received else 0,
        "details": errors[:MAX_ERROR_DETAILS],
    }


IMPORT_TEMPLATE: Dict[str, Any] = {
    "columns": [
        {"name": "last_name", "required": True, "example": "DUPONT", "description": "Family name (stored upper-case)"},
        {"name": "first_name", "required": True, "example": "Jean", "description": "Given name"},
        {"name": "birth_date", "required": True, "example": "2010-05-15", "description": "Format: YYYY-MM-DD"},
        {"name": "birth_place", "required": False, "example": "Paris", "description": "Place of birth"},
        {"name": "nationality", "required": False, "example": "Française", "description": "Nationality"},
        {"name": "sex", "required": False, "example": "M or F", "description": "Sex (default M)"},
        {"name": "class_id", "required": True, "example": "12", "description": "Id of an existing class"},
        {"name": "photo", "required": False, "example": "https://...", "description": "Photo URL"},
    ],
    "example": [
        {"last_name": "DUPONT", "first_name": "Jean", "birth_date": "2010-05-15", "birth_place": "Paris", "sex": "M", "class_id": 1},
        {"last_name": "MARTIN", "first_name": "Marie", "birth_date": "2010-08-20", "birth_place": "Lyon", "sex": "F", "class_id": 1},
    ],
    "instructions": [
        "1. Fill one row per student",
        "2. Check that every class_id exists",
        "3. Convert the rows to a JSON array",
        f"4. POST {{\"students\": [...]}} (at most {MAX_BULK_ROWS} rows)",
    ],
}
