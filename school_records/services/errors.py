# =============================================
# File: school_records/services/errors.py
# Purpose: Domain errors raised by the record services (mapped to HTTP codes in main.py)
# =============================================


class RecordNotFound(LookupError):
    """The requested record does not exist (404)."""


class InvalidReference(ValueError):
    """A payload points at a parent record that does not exist (400)."""


class RecordInUse(RuntimeError):
    """Delete refused because other records still depend on this one (400)."""
