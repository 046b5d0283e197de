"""Invitation lifecycle: invite, accept, reject, list, remove, expire."""

import logging
import secrets
import sqlite3
from datetime import datetime, timezone

from pydantic import BaseModel, EmailStr, Field, ValidationError as PydanticValidationError, field_validator, model_validator

from family_access import config
from family_access.errors import AuthorizationError, NotFoundError, ValidationError
from family_access.health_records.database.connection import utc_timestamp
from family_access.health_records.database.family_repository import (
    FamilyMember,
    FamilyRelationship,
    FamilyRepository,
)
from family_access.invitation_state import expiry_cutoff
from family_access.notifier import InvitationDeliveryError, InvitationNotifier
from family_access.permissions import FamilyRole, resolve_permissions, role_label

logger = logging.getLogger(__name__)

INVALID_INVITATION = "Invalid or expired invitation"


class InviteRequest(BaseModel):
    """Validated input for a new family member invitation."""

    name: str = Field(..., description="Invitee's display name")
    email: EmailStr = Field(..., description="Invitee's email, stored lower-case")
    role: FamilyRole = Field(..., description="Relationship to the patient")
    custom_role: str | None = Field(None, description="Free-text role, only for 'other'")

    @field_validator("name", mode="before")
    @classmethod
    def strip_name(cls, v):
        if not v or not str(v).strip():
            raise ValueError("Name is required")
        return str(v).strip()

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return str(v or "").strip()

    @field_validator("email", mode="after")
    @classmethod
    def lowercase_email(cls, v):
        """Emails match case-insensitively, so store them lower-case."""
        return v.lower()

    @field_validator("role", mode="before")
    @classmethod
    def coerce_role(cls, v):
        if isinstance(v, str):
            return v.strip().lower()
        return v

    @field_validator("custom_role", mode="before")
    @classmethod
    def blank_to_none(cls, v):
        if v is None:
            return None
        v = str(v).strip()
        return v or None

    @model_validator(mode="after")
    def couple_custom_role(self):
        if self.role == FamilyRole.OTHER:
            if not self.custom_role:
                raise ValueError("A custom role is required when role is 'other'")
        else:
            self.custom_role = None
        return self


class InvitationService:
    """Creates and resolves family member invitations for patients."""

    def __init__(
        self,
        repository: FamilyRepository,
        notifier: InvitationNotifier | None = None,
        expiry_days: int | None = None,
    ):
        self.repository = repository
        self.notifier = notifier
        self.expiry_days = config.INVITE_EXPIRY_DAYS if expiry_days is None else expiry_days

    def invite(
        self,
        patient_id: str,
        name: str,
        email: str,
        role: FamilyRole | str,
        custom_role: str | None = None,
    ) -> str:
        """Create a pending invitation and return its ID."""
        try:
            request = InviteRequest(name=name, email=email, role=role, custom_role=custom_role)
        except PydanticValidationError as e:
            messages = "; ".join(error["msg"].removeprefix("Value error, ") for error in e.errors())
            raise ValidationError(messages) from e

        member = self.repository.create_invitation(FamilyMember(
            name=request.name,
            email=request.email,
            role=request.role,
            custom_role=request.custom_role,
            added_by=patient_id,
            invite_token=secrets.token_urlsafe(32),
        ))
        logger.info("Patient %s invited %s as %s", patient_id, member.email, member.role.value)

        self._notify(member)
        return member.id

    def get_invitation(self, token: str) -> FamilyMember:
        """Preview a pending invitation before accepting it."""
        self._expire_token(token)
        member = self.repository.find_pending_by_token(token)
        if not member:
            raise NotFoundError(INVALID_INVITATION)
        return member

    def accept(self, token: str, acceptee_account_id: str) -> FamilyRelationship:
        """Accept an invitation, creating the family relationship."""
        if not acceptee_account_id or not acceptee_account_id.strip():
            raise ValidationError("An account id is required to accept an invitation")
        self._expire_token(token)
        try:
            result = self.repository.accept_invitation(token, acceptee_account_id, resolve_permissions)
        except sqlite3.Error:
            logger.exception("Accepting invitation failed; status and relationship rolled back")
            raise

        if result is None:
            raise NotFoundError(INVALID_INVITATION)

        member, relationship = result
        logger.info(
            "Account %s accepted invitation %s from patient %s",
            acceptee_account_id, member.id, member.added_by,
        )
        return relationship

    def reject(self, token: str) -> None:
        """Reject an invitation. No relationship is created."""
        self._expire_token(token)
        member = self.repository.reject_invitation(token)
        if member is None:
            raise NotFoundError(INVALID_INVITATION)
        logger.info("Invitation %s rejected", member.id)

    def list_pending_for_email(self, email: str) -> list[FamilyMember]:
        """Pending invitations addressed to an email, any case."""
        self.expire_stale()
        return self.repository.find_pending_by_email(email.strip().lower())

    def list_for_patient(self, patient_id: str) -> list[FamilyMember]:
        """Every invitation the patient sent, newest first."""
        self.expire_stale()
        return self.repository.list_by_patient(patient_id)

    def remove(self, patient_id: str, member_id: str) -> None:
        """Delete a family member and revoke any access it granted."""
        member = self.repository.get_by_id(member_id)
        if member is None:
            raise NotFoundError("Family member not found")
        if member.added_by != patient_id:
            logger.warning("Patient %s tried to remove family member %s they did not add", patient_id, member_id)
            raise AuthorizationError("Unauthorized to remove this family member")

        result = self.repository.delete_member(member_id, patient_id)
        if result is None:
            # Deleted by a concurrent request between the check and the write
            raise NotFoundError("Family member not found")

        _, deactivated = result
        logger.info(
            "Patient %s removed family member %s (%d relationship(s) deactivated)",
            patient_id, member_id, len(deactivated),
        )

    def resend(self, patient_id: str, member_id: str) -> None:
        """Deliver a still-pending invitation again."""
        member = self.repository.get_by_id(member_id)
        if member is None:
            raise NotFoundError("Family member not found")
        if member.added_by != patient_id:
            raise AuthorizationError("Unauthorized to resend this invitation")
        self._expire_token(member.invite_token)
        if self.repository.find_pending_by_token(member.invite_token) is None:
            raise NotFoundError(INVALID_INVITATION)
        self._notify(member)

    def expire_stale(self, now: datetime | None = None) -> int:
        """Expire pending invitations older than the expiry window."""
        count = self.repository.expire_pending(self._cutoff(now))
        if count:
            logger.info("Expired %d stale invitation(s)", count)
        return count

    # Private helpers

    def _cutoff(self, now: datetime | None = None) -> str:
        return utc_timestamp(expiry_cutoff(now or datetime.now(timezone.utc), self.expiry_days))

    def _expire_token(self, token: str) -> None:
        self.repository.expire_pending(self._cutoff(), token=token)

    def _notify(self, member: FamilyMember) -> None:
        if self.notifier is None:
            return
        try:
            self.notifier.send_invitation(
                email=member.email,
                name=member.name,
                role_label=role_label(member.role, member.custom_role),
                token=member.invite_token,
                invited_by=member.added_by,
            )
        except InvitationDeliveryError as e:
            # The invitation stands; the patient can resend from the members list
            logger.warning("Invitation %s saved but not delivered: %s", member.id, e)
