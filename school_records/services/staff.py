# =============================================
# File: school_records/services/staff.py
# Purpose: Staff queries (paginated, filtered, searchable), writes and bulk import
# =============================================
from __future__ import annotations

import math
from typing import Any, Dict, List, Optional, Tuple

from loguru import logger
from sqlmodel import Session, col, func, or_, select

from school_records.db.models import Establishment, StaffMember
from school_records.services.errors import RecordNotFound
from school_records.services.establishments import ensure_exists as ensure_establishment
from school_records.utils.serializers import apply_changes, serialize

SORTABLE_FIELDS = ("created_at", "last_name", "first_name", "role", "position")
MAX_BULK_ROWS = 500
MAX_ERROR_DETAILS = 10


def _get_or_404(session: Session, staff_id: int) -> StaffMember:
    member = session.get(StaffMember, staff_id)
    if member is None:
        raise RecordNotFound("Staff member not found")
    return member


def pagination_meta(total: int, page: int, limit: int) -> Dict[str, Any]:
    total_pages = math.ceil(total / limit) if limit else 0
    return {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next_page": page < total_pages,
        "has_prev_page": page > 1,
    }


def list_staff(
    session: Session,
    page: int = 1,
    limit: int = 50,
    establishment_id: Optional[int] = None,
    role: Optional[str] = None,
    search: Optional[str] = None,
    sort_by: str = "created_at",
    sort_order: str = "desc",
) -> Dict[str, Any]:
    """One page of staff joined with their establishment, plus pagination meta."""
    filters = []
    if establishment_id is not None:
        filters.append(StaffMember.establishment_id == establishment_id)
    if role:
        filters.append(StaffMember.role == role)
    if search:
        like = f"%{search.strip()}%"
        filters.append(
            or_(
                col(StaffMember.last_name).ilike(like),
                col(StaffMember.first_name).ilike(like),
                col(StaffMember.position).ilike(like),
            )
        )

    total = session.exec(select(func.count(StaffMember.id)).where(*filters)).one()

    sort_col = col(getattr(StaffMember, sort_by if sort_by in SORTABLE_FIELDS else "created_at"))
    order = sort_col.asc() if sort_order == "asc" else sort_col.desc()
    stmt = (
        select(StaffMember, Establishment)
        .join(Establishment, StaffMember.establishment_id == Establishment.id, isouter=True)
        .where(*filters)
        .order_by(order, col(StaffMember.id))
        .offset((page - 1) * limit)
        .limit(limit)
    )
    items = [serialize(m, establishment=serialize(e)) for m, e in session.exec(stmt).all()]
    return {"items": items, "meta": pagination_meta(int(total), page, limit)}


def get_staff_member(session: Session, staff_id: int) -> Dict[str, Any]:
    member = _get_or_404(session, staff_id)
    return serialize(member, establishment=serialize(session.get(Establishment, member.establishment_id)))


def create_staff_member(session: Session, data: Dict[str, Any]) -> Dict[str, Any]:
    est = ensure_establishment(session, data["establishment_id"])
    member = StaffMember(**data)
    session.add(member)
    session.commit()
    session.refresh(member)
    return serialize(member, establishment=serialize(est))


def update_staff_member(session: Session, staff_id: int, changes: Dict[str, Any]) -> Dict[str, Any]:
    member = _get_or_404(session, staff_id)
    if changes.get("establishment_id") is not None:
        ensure_establishment(session, changes["establishment_id"])
    apply_changes(member, changes)
    session.add(member)
    session.commit()
    return get_staff_member(session, staff_id)


def delete_staff_member(session: Session, staff_id: int) -> None:
    member = _get_or_404(session, staff_id)
    session.delete(member)
    session.commit()


def bulk_import(
    session: Session,
    rows: List[Tuple[int, Dict[str, Any]]],
    errors: List[Dict[str, Any]],
    total_received: int,
) -> Dict[str, Any]:
    """Insert pre-validated rows whose establishment exists; same report shape as students."""
    est_ids = {data["establishment_id"] for _, data in rows}
    known = set(
        session.exec(select(Establishment.id).where(col(Establishment.id).in_(est_ids))).all()
    ) if est_ids else set()

    errors = list(errors)
    to_insert: List[StaffMember] = []
    for index, data in rows:
        if data["establishment_id"] not in known:
            errors.append({"index": index, "error": "Invalid establishment", "row": data})
            continue
        to_insert.append(StaffMember(**data))

    if to_insert:
        session.add_all(to_insert)
        session.commit()

    imported = len(to_insert)
    logger.info(f"[staff.bulk] received={total_received} imported={imported} errors={len(errors)}")
    errors.sort(key=lambda e: e["index"])
    return {
        "total_received": total_received,
        "imported": imported,
        "errors": len(errors),
        "success_rate": round(100 * imported / total_received) if total_received else 0,
        "details": errors[:MAX_ERROR_DETAILS],
    }
