"""ORM models package exports."""

from sitelog.models.constraint_record import ConstraintRecord
from sitelog.models.entity_name_key import EntityNameKey
from sitelog.models.extraction_attempt import ExtractionAttempt
from sitelog.models.person import Person, PersonHistory
from sitelog.models.report import Report
from sitelog.models.resolution_event import ResolutionEvent
from sitelog.models.review_decision import ReviewDecision
from sitelog.models.rollups import ConstraintCostRollup, LaborRollup, RollupLock, VendorRollup
from sitelog.models.team_assignment import TeamAssignment
from sitelog.models.vendor import Vendor, VendorDelivery
from sitelog.models.work_log import WorkLogEntry

__all__ = [
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
