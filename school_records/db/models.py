# =============================================
# File: school_records/db/models.py
# Purpose: SQLModel tables for school records: establishments, classes, students and staff.
# =============================================
from datetime import date, datetime, timezone
from typing import Literal, Optional, get_args

from sqlmodel import Field, SQLModel

DEFAULT_COLOR = "#1e40af"
DEFAULT_FONT = "Arial"

StaffRole = Literal[
    "directeur",
    "enseignant",
    "censeur",
    "surveillant",
    "informaticien",
    "secretaire",
    "gestionnaire",
    "infirmier",
    "bibliothecaire",
    "autre",
]
STAFF_ROLES = get_args(StaffRole)


def _utcnow() -> datetime:
    # timestamp columns only accept aware datetimes
    return datetime.now(timezone.utc)


class Establishment(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str = Field(index=True)
    logo: Optional[str] = None
    address: str
    phone: str = ""
    email: Optional[str] = None
    website: Optional[str] = None
    school_year: str  # e.g. "2025-2026"
    color: str = DEFAULT_COLOR
    font: str = DEFAULT_FONT
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class SchoolClass(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    name: str
    level: str
    establishment_id: int = Field(foreign_key="establishment.id", index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class Student(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    last_name: str = Field(index=True)
    first_name: str
    birth_date: Optional[date] = None
    birth_place: str = ""
    nationality: str = ""
    sex: str = "M"
    photo: Optional[str] = None
    registration_number: Optional[str] = Field(default=None, index=True)
    class_id: int = Field(foreign_key="schoolclass.id", index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


class StaffMember(SQLModel, table=True):
    id: Optional[int] = Field(default=None, primary_key=True)
    last_name: str = Field(index=True)
    first_name: str
    role: str = Field(index=True)
    position: str
    email: Optional[str] = None
    phone: Optional[str] = None
    photo: Optional[str] = None
    birth_date: Optional[date] = None
    birth_place: Optional[str] = None
    nationality: Optional[str] = None
    establishment_id: int = Field(foreign_key="establishment.id", index=True)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)
