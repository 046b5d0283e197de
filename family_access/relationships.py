"""Relationship directory: who may see whose health data, with which permissions."""

import logging

from family_access.errors import AuthorizationError, NotFoundError
from family_access.health_records.database.family_repository import (
    FamilyMember,
    FamilyRelationship,
    FamilyRepository,
)
from family_access.invitation_state import InviteStatus
from family_access.permissions import AccessPermissions

logger = logging.getLogger(__name__)


class RelationshipDirectory:
    """Read access to active family relationships."""

    def __init__(self, repository: FamilyRepository):
        self.repository = repository

    def relationships_for(self, family_member_account_id: str) -> list[FamilyRelationship]:
        """Active relationships where this account is the family member."""
        return self.repository.list_active_for_member(family_member_account_id)

    def relationships_of_patient(self, patient_account_id: str) -> list[FamilyRelationship]:
        """Active relationships a patient has granted."""
        return self.repository.list_active_for_patient(patient_account_id)

    def permissions_for(self, family_member_account_id: str, patient_account_id: str) -> AccessPermissions | None:
        """Frozen permissions of the active relationship for this pair.

        None means no access; it is a normal outcome, not an error.
        """
        relationship = self.repository.get_active_relationship(patient_account_id, family_member_account_id)
        return relationship.access_permissions if relationship else None

    def relationship_for_member(self, member: FamilyMember) -> FamilyRelationship | None:
        """The active relationship an accepted invitation created, if still active."""
        if member.invite_status != InviteStatus.ACCEPTED or not member.family_member_uid:
            return None
        return self.repository.get_active_relationship(member.added_by, member.family_member_uid)

    def update_permissions(
        self,
        patient_id: str,
        relationship_id: str,
        permissions: AccessPermissions,
    ) -> FamilyRelationship:
        """Explicitly change what a family member may see.

        This is the only path that alters permissions after acceptance; the
        role policy table is never re-applied.
        """
        relationship = self.repository.get_relationship(relationship_id)
        if relationship is None or not relationship.is_active:
            raise NotFoundError("Relationship not found")
        if relationship.patient_uid != patient_id:
            raise AuthorizationError("Unauthorized to change these permissions")

        updated = self.repository.update_permissions(relationship_id, permissions)
        if updated is None:
            raise NotFoundError("Relationship not found")
        logger.info("Patient %s updated permissions on relationship %s", patient_id, relationship_id)
        return updated
