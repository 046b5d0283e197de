"""Family member and relationship repository with conditional state updates."""

import logging
import uuid
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable

from family_access.invitation_state import InviteStatus, ensure_transition
from family_access.permissions import AccessPermissions, FamilyRole

from .changes import ChangeFeed
from .connection import get_connection, immediate_transaction, utc_timestamp

logger = logging.getLogger(__name__)

FAMILY_MEMBERS = "family_members"
FAMILY_RELATIONSHIPS = "family_relationships"

PERMISSION_COLUMNS = [
    "can_view_medications", "can_view_vitals", "can_view_appointments",
    "can_view_reports", "can_view_emergency_contacts",
]


@dataclass
class FamilyMember:
    name: str
    email: str
    role: FamilyRole
    added_by: str
    invite_token: str
    id: str | None = None
    custom_role: str | None = None
    invite_status: InviteStatus = InviteStatus.PENDING
    invited_at: str | None = None
    accepted_at: str | None = None
    rejected_at: str | None = None
    family_member_uid: str | None = None


@dataclass
class FamilyRelationship:
    patient_uid: str
    family_member_uid: str
    role: FamilyRole
    id: str | None = None
    custom_role: str | None = None
    access_permissions: AccessPermissions = field(default_factory=AccessPermissions)
    created_at: str | None = None
    is_active: bool = True


class FamilyRepository:
    """Repository for invitations and the relationships they create."""

    def __init__(self, db_path: str | Path | None = None, feed: ChangeFeed | None = None):
        self.db_path = db_path
        self.feed = feed

    # Invitation methods

    def create_invitation(self, member: FamilyMember) -> FamilyMember:
        """Insert a new pending invitation."""
        conn = self._connect()
        member.id = member.id or str(uuid.uuid4())
        member.invited_at = utc_timestamp()
        member.invite_status = InviteStatus.PENDING

        try:
            conn.execute("""
                INSERT INTO family_members (
                    id, name, email, role, custom_role, invite_status, invite_token,
                    added_by, invited_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
            """, (
                member.id, member.name, member.email, member.role.value, member.custom_role,
                member.invite_status.value, member.invite_token, member.added_by,
                member.invited_at,
            ))
            conn.commit()
        finally:
            conn.close()

        self._publish(FAMILY_MEMBERS, "created", member.id)
        return member

    def get_by_id(self, member_id: str) -> FamilyMember | None:
        """Get an invitation by ID."""
        conn = self._connect()
        row = conn.execute("SELECT * FROM family_members WHERE id = ?", (member_id,)).fetchone()
        conn.close()
        return self._row_to_member(row) if row else None

    def find_pending_by_token(self, token: str) -> FamilyMember | None:
        """Get the pending invitation holding this token."""
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM family_members WHERE invite_token = ? AND invite_status = 'pending'",
            (token,)
        ).fetchone()
        conn.close()
        return self._row_to_member(row) if row else None

    def find_pending_by_email(self, email: str) -> list[FamilyMember]:
        """Find pending invitations sent to an email (case-insensitive)."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT * FROM family_members
            WHERE email = ? AND invite_status = 'pending'
            ORDER BY invited_at DESC
        """, (email.strip().lower(),)).fetchall()
        conn.close()
        return [self._row_to_member(row) for row in rows]

    def list_by_patient(self, patient_id: str) -> list[FamilyMember]:
        """All invitations a patient has sent, newest first."""
        conn = self._connect()
        rows = conn.execute(
            "SELECT * FROM family_members WHERE added_by = ? ORDER BY invited_at DESC",
            (patient_id,)
        ).fetchall()
        conn.close()
        return [self._row_to_member(row) for row in rows]

    def expire_pending(self, cutoff: str, token: str | None = None) -> int:
        """Mark pending invitations sent before cutoff as expired."""
        where = "invite_status = 'pending' AND invited_at < ?"
        params = [cutoff]
        if token is not None:
            where += " AND invite_token = ?"
            params.append(token)

        conn = self._connect()
        try:
            with immediate_transaction(conn):
                rows = conn.execute(f"SELECT id FROM family_members WHERE {where}", params).fetchall()
                expired_ids = [row["id"] for row in rows]
                if expired_ids:
                    conn.execute(f"UPDATE family_members SET invite_status = 'expired' WHERE {where}", params)
        finally:
            conn.close()

        for member_id in expired_ids:
            self._publish(FAMILY_MEMBERS, "updated", member_id)
        return len(expired_ids)

    def accept_invitation(
        self,
        token: str,
        family_member_uid: str,
        resolve_permissions: Callable[[FamilyRole], AccessPermissions],
    ) -> tuple[FamilyMember, FamilyRelationship] | None:
        """Accept a pending invitation and create its relationship atomically.

        Returns None if no pending invitation holds the token. The status flip
        only succeeds while the row is still pending, so a token is accepted
        at most once even under concurrent callers.
        """
        conn = self._connect()
        now = utc_timestamp()
        try:
            with immediate_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM family_members WHERE invite_token = ? AND invite_status = 'pending'",
                    (token,)
                ).fetchone()
                if not row:
                    return None

                member = self._row_to_member(row)
                ensure_transition(member.invite_status, InviteStatus.ACCEPTED)

                cursor = conn.execute("""
                    UPDATE family_members
                    SET invite_status = 'accepted', family_member_uid = ?, accepted_at = ?
                    WHERE id = ? AND invite_status = 'pending'
                """, (family_member_uid, now, member.id))
                if cursor.rowcount == 0:
                    return None

                member.invite_status = InviteStatus.ACCEPTED
                member.family_member_uid = family_member_uid
                member.accepted_at = now

                # A newer acceptance for the same pair supersedes the old link
                superseded = self._deactivate_pair(conn, member.added_by, family_member_uid)

                relationship = FamilyRelationship(
                    id=str(uuid.uuid4()),
                    patient_uid=member.added_by,
                    family_member_uid=family_member_uid,
                    role=member.role,
                    custom_role=member.custom_role,
                    access_permissions=resolve_permissions(member.role),
                    created_at=now,
                    is_active=True,
                )
                self._insert_relationship(conn, relationship)
        finally:
            conn.close()

        self._publish(FAMILY_MEMBERS, "updated", member.id)
        for relationship_id in superseded:
            self._publish(FAMILY_RELATIONSHIPS, "updated", relationship_id)
        self._publish(FAMILY_RELATIONSHIPS, "created", relationship.id)
        return member, relationship

    def reject_invitation(self, token: str) -> FamilyMember | None:
        """Reject a pending invitation. Returns None if none holds the token."""
        conn = self._connect()
        now = utc_timestamp()
        try:
            with immediate_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM family_members WHERE invite_token = ? AND invite_status = 'pending'",
                    (token,)
                ).fetchone()
                if not row:
                    return None

                member = self._row_to_member(row)
                ensure_transition(member.invite_status, InviteStatus.REJECTED)

                cursor = conn.execute("""
                    UPDATE family_members SET invite_status = 'rejected', rejected_at = ?
                    WHERE id = ? AND invite_status = 'pending'
                """, (now, member.id))
                if cursor.rowcount == 0:
                    return None
        finally:
            conn.close()

        member.invite_status = InviteStatus.REJECTED
        member.rejected_at = now
        self._publish(FAMILY_MEMBERS, "updated", member.id)
        return member

    def delete_member(self, member_id: str, patient_id: str) -> tuple[FamilyMember, list[str]] | None:
        """Delete a patient's invitation and deactivate the relationship it created.

        The row is re-read inside the transaction so an acceptance that landed
        after the caller's check is still revoked. Returns None if the patient
        owns no such record.
        """
        conn = self._connect()
        try:
            with immediate_transaction(conn):
                row = conn.execute(
                    "SELECT * FROM family_members WHERE id = ? AND added_by = ?",
                    (member_id, patient_id)
                ).fetchone()
                if not row:
                    return None

                member = self._row_to_member(row)
                conn.execute("DELETE FROM family_members WHERE id = ?", (member_id,))

                deactivated = []
                if member.family_member_uid:
                    deactivated = self._deactivate_pair(conn, patient_id, member.family_member_uid)
        finally:
            conn.close()

        self._publish(FAMILY_MEMBERS, "deleted", member_id)
        for relationship_id in deactivated:
            self._publish(FAMILY_RELATIONSHIPS, "updated", relationship_id)
        return member, deactivated

    # Relationship methods

    def get_relationship(self, relationship_id: str) -> FamilyRelationship | None:
        """Get a relationship by ID, active or not."""
        conn = self._connect()
        row = conn.execute(
            "SELECT * FROM family_relationships WHERE id = ?", (relationship_id,)
        ).fetchone()
        conn.close()
        return self._row_to_relationship(row) if row else None

    def get_active_relationship(self, patient_uid: str, family_member_uid: str) -> FamilyRelationship | None:
        """The single active relationship for a pair, if any."""
        conn = self._connect()
        row = conn.execute("""
            SELECT * FROM family_relationships
            WHERE patient_uid = ? AND family_member_uid = ? AND is_active = 1
        """, (patient_uid, family_member_uid)).fetchone()
        conn.close()
        return self._row_to_relationship(row) if row else None

    def list_active_for_member(self, family_member_uid: str) -> list[FamilyRelationship]:
        """Active relationships where this account is the family member."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT * FROM family_relationships
            WHERE family_member_uid = ? AND is_active = 1
            ORDER BY created_at DESC
        """, (family_member_uid,)).fetchall()
        conn.close()
        return [self._row_to_relationship(row) for row in rows]

    def list_active_for_patient(self, patient_uid: str) -> list[FamilyRelationship]:
        """Active relationships a patient has granted."""
        conn = self._connect()
        rows = conn.execute("""
            SELECT * FROM family_relationships
            WHERE patient_uid = ? AND is_active = 1
            ORDER BY created_at DESC
        """, (patient_uid,)).fetchall()
        conn.close()
        return [self._row_to_relationship(row) for row in rows]

    def update_permissions(self, relationship_id: str, permissions: AccessPermissions) -> FamilyRelationship | None:
        """Overwrite the permissions of an active relationship."""
        set_clause = ", ".join(f"{column} = ?" for column in PERMISSION_COLUMNS)
        values = [int(getattr(permissions, column)) for column in PERMISSION_COLUMNS]

        conn = self._connect()
        try:
            with immediate_transaction(conn):
                cursor = conn.execute(
                    f"UPDATE family_relationships SET {set_clause} WHERE id = ? AND is_active = 1",
                    values + [relationship_id]
                )
                updated = cursor.rowcount > 0
        finally:
            conn.close()

        if not updated:
            return None
        self._publish(FAMILY_RELATIONSHIPS, "updated", relationship_id)
        return self.get_relationship(relationship_id)

    # Private helpers

    def _connect(self):
        return get_connection(self.db_path)

    def _publish(self, collection: str, action: str, record_id: str) -> None:
        if self.feed is not None:
            self.feed.publish(collection, action, record_id)

    def _deactivate_pair(self, conn, patient_uid: str, family_member_uid: str) -> list[str]:
        """Deactivate active relationships for a pair. Returns their IDs."""
        rows = conn.execute("""
            SELECT id FROM family_relationships
            WHERE patient_uid = ? AND family_member_uid = ? AND is_active = 1
        """, (patient_uid, family_member_uid)).fetchall()
        ids = [row["id"] for row in rows]
        if ids:
            conn.execute("""
                UPDATE family_relationships SET is_active = 0
                WHERE patient_uid = ? AND family_member_uid = ? AND is_active = 1
            """, (patient_uid, family_member_uid))
            logger.info("Deactivated %d relationship(s) for patient %s", len(ids), patient_uid)
        return ids

    def _insert_relationship(self, conn, relationship: FamilyRelationship) -> None:
        permissions = relationship.access_permissions
        conn.execute(f"""
            INSERT INTO family_relationships (
                id, patient_uid, family_member_uid, role, custom_role,
                {", ".join(PERMISSION_COLUMNS)}, created_at, is_active
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            relationship.id, relationship.patient_uid, relationship.family_member_uid,
            relationship.role.value, relationship.custom_role,
            *[int(getattr(permissions, column)) for column in PERMISSION_COLUMNS],
            relationship.created_at, int(relationship.is_active),
        ))

    def _row_to_member(self, row) -> FamilyMember:
        """Convert a database row to a FamilyMember object."""
        return FamilyMember(
            id=row["id"],
            name=row["name"],
            email=row["email"],
            role=FamilyRole(row["role"]),
            custom_role=row["custom_role"],
            invite_status=InviteStatus(row["invite_status"]),
            invite_token=row["invite_token"],
            added_by=row["added_by"],
            family_member_uid=row["family_member_uid"],
            invited_at=row["invited_at"],
            accepted_at=row["accepted_at"],
            rejected_at=row["rejected_at"],
        )

    def _row_to_relationship(self, row) -> FamilyRelationship:
        """Convert a database row to a FamilyRelationship object."""
        return FamilyRelationship(
            id=row["id"],
            patient_uid=row["patient_uid"],
            family_member_uid=row["family_member_uid"],
            role=FamilyRole(row["role"]),
            custom_role=row["custom_role"],
            access_permissions=AccessPermissions(
                **{column: bool(row[column]) for column in PERMISSION_COLUMNS}
            ),
            created_at=row["created_at"],
            is_active=bool(row["is_active"]),
        )
