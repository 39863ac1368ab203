"""SQLAlchemy metadata registry import for Alembic."""

from sitelog.models import (
    ConstraintCostRollup,
    ConstraintRecord,
    EntityNameKey,
    ExtractionAttempt,
    LaborRollup,
    Person,
    PersonHistory,
    Report,
    ResolutionEvent,
    RollupLock,
    ReviewDecision,
    TeamAssignment,
    Vendor,
    VendorDelivery,
    VendorRollup,
    WorkLogEntry,
)
from sitelog.models.base import Base

__all__ = [
    "Base",
    "Report",
    "ExtractionAttempt",
    "Person",
    "PersonHistory",
    "Vendor",
    "VendorDelivery",
    "EntityNameKey",
    "TeamAssignment",
    "WorkLogEntry",
    "ConstraintRecord",
    "ResolutionEvent",
    "ReviewDecision",
    "LaborRollup",
    "VendorRollup",
    "ConstraintCostRollup",
    "RollupLock",
]
