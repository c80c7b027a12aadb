"""Business logic services."""

from oos_engine.services.audit import ChangeLogService, record_change
from oos_engine.services.inspections import InspectionService
from oos_engine.services.rule_versions import RuleVersionService
from oos_engine.services.seeding import seed_starter_rules
from oos_engine.services.sources import SourceService
from oos_engine.services.triage import TriageService

__all__ = [
    "ChangeLogService",
    "record_change",
    "InspectionService",
    "RuleVersionService",
    "seed_starter_rules",
    "SourceService",
    "TriageService",
]
