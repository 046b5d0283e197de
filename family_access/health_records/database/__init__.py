from .changes import ChangeEvent, ChangeFeed, Subscription
from .connection import get_connection, init_database
from .family_repository import FamilyMember, FamilyRelationship, FamilyRepository
from .health_repository import HealthRecordRepository

__all__ = [
    "get_connection", "init_database",
    "ChangeEvent", "ChangeFeed", "Subscription",
    "FamilyMember", "FamilyRelationship", "FamilyRepository",
    "HealthRecordRepository",
]
