# =============================================
# File: school_records/utils/serializers.py
# Purpose: Turn SQLModel rows into JSON-ready dicts (these dicts are what the API cache stores)
# =============================================
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from sqlmodel import SQLModel


def serialize(record: Optional[SQLModel], **extra: Any) -> Optional[Dict[str, Any]]:
    """Dump a row in JSON mode (dates as ISO strings) and merge `extra` on top."""
    if record is None:
        return None
    data = record.model_dump(mode="json")
    data.update(extra)
    return data


def serialize_all(records: Iterable[SQLModel]) -> List[Dict[str, Any]]:
    return [serialize(r) for r in records if r is not None]


def apply_changes(record: SQLModel, changes: Dict[str, Any]) -> SQLModel:
    """Copy a partial update onto a row and bump `updated_at`."""
    for field, value in changes.items():
        setattr(record, field, value)
    if hasattr(record, "updated_at"):
        record.updated_at = datetime.now(timezone.utc)
    return record
