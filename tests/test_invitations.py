"""Tests for the invitation lifecycle."""

import threading

import pytest

from family_access.errors import AuthorizationError, NotFoundError, ValidationError
from family_access.health_records.database.connection import get_connection
from family_access.invitation_state import InviteStatus
from family_access.invitations import InvitationService
from family_access.permissions import AccessPermissions, FamilyRole


class TestInvite:
    """Tests for creating invitations."""

    def test_spouse_invitation_is_pending(self, invite):
        member = invite(role="spouse", email="family@x.com")
        assert member.invite_status == InviteStatus.PENDING
        assert member.invite_token
        assert member.custom_role is None
        assert member.family_member_uid is None
        assert member.invited_at is not None
        assert member.added_by == "u-patient"

    def test_email_lowercased(self, invite):
        member = invite(email="  Jane@Example.COM ")
        assert member.email == "jane@example.com"

    def test_tokens_are_unique(self, invite):
        tokens = {invite(email=f"person{i}@example.com").invite_token for i in range(5)}
        assert len(tokens) == 5

    def test_other_requires_custom_role(self, invitations, app):
        with pytest.raises(ValidationError, match="custom role"):
            invitations.invite("u-patient", "Ana", "ana@example.com", "other")
        assert app.family_repository.list_by_patient("u-patient") == []

    def test_other_blank_custom_role_rejected(self, invitations):
        with pytest.raises(ValidationError):
            invitations.invite("u-patient", "Ana", "ana@example.com", "other", "   ")

    def test_other_keeps_custom_role(self, invite):
        member = invite(role="other", custom_role=" Neighbor ")
        assert member.role == FamilyRole.OTHER
        assert member.custom_role == "Neighbor"

    def test_custom_role_dropped_for_other_roles(self, invite):
        member = invite(role="parent", custom_role="Mom")
        assert member.custom_role is None

    @pytest.mark.parametrize("email", [
        "", "not-an-email", "a@b", "a b@c.com", "@example.com",
        "jane@example..com", "jane@.example.com", "jane@example.com.", "j,ane@example.com",
    ])
    def test_bad_email(self, invitations, email):
        with pytest.raises(ValidationError):
            invitations.invite("u-patient", "Jane", email, "spouse")

    def test_unknown_role(self, invitations):
        with pytest.raises(ValidationError):
            invitations.invite("u-patient", "Jane", "jane@example.com", "cousin")

    def test_blank_name(self, invitations):
        with pytest.raises(ValidationError, match="Name is required"):
            invitations.invite("u-patient", "  ", "jane@example.com", "spouse")

    def test_notifier_called(self, app, mock_webhook):
        from family_access.notifier import InvitationNotifier

        service = InvitationService(
            app.family_repository,
            InvitationNotifier(webhook_url="https://hooks.example.com/invite", base_url="https://app/accept"),
        )
        member_id = service.invite("u-patient", "Jane", "Jane@Example.com", "caregiver")
        member = app.family_repository.get_by_id(member_id)

        mock_webhook.assert_called_once()
        payload = mock_webhook.call_args.kwargs["json"]
        assert payload["email"] == "jane@example.com"
        assert payload["role"] == "Caregiver"
        assert payload["invite_url"].endswith(f"token={member.invite_token}")

    def test_delivery_failure_keeps_invitation(self, app, mock_webhook):
        from family_access.notifier import InvitationNotifier

        mock_webhook.return_value.status_code = 500
        service = InvitationService(
            app.family_repository, InvitationNotifier(webhook_url="https://hooks.example.com/invite")
        )
        member_id = service.invite("u-patient", "Jane", "jane@example.com", "spouse")
        assert app.family_repository.get_by_id(member_id).invite_status == InviteStatus.PENDING


class TestAccept:
    """Tests for accepting invitations."""

    def test_accept_creates_relationship(self, invitations, invite, directory):
        member = invite(patient_id="P", email="family@x.com", role="spouse")
        relationship = invitations.accept(member.invite_token, "F")

        assert relationship.patient_uid == "P"
        assert relationship.family_member_uid == "F"
        assert relationship.role == FamilyRole.SPOUSE
        assert relationship.is_active
        assert relationship.access_permissions == AccessPermissions(True, True, True, True, True)
        assert directory.relationships_for("F")[0].id == relationship.id

    def test_accept_updates_invitation(self, invitations, invite, app):
        member = invite(patient_id="P")
        invitations.accept(member.invite_token, "F")

        stored = app.family_repository.get_by_id(member.id)
        assert stored.invite_status == InviteStatus.ACCEPTED
        assert stored.family_member_uid == "F"
        assert stored.accepted_at is not None
        assert stored.rejected_at is None

    def test_token_single_use(self, invitations, invite, directory):
        member = invite(patient_id="P")
        invitations.accept(member.invite_token, "F")

        with pytest.raises(NotFoundError, match="Invalid or expired invitation"):
            invitations.accept(member.invite_token, "F")
        assert len(directory.relationships_for("F")) == 1

    def test_second_account_cannot_reuse_token(self, invitations, invite, directory):
        member = invite(patient_id="P")
        invitations.accept(member.invite_token, "F")

        with pytest.raises(NotFoundError):
            invitations.accept(member.invite_token, "G")
        assert directory.relationships_for("G") == []

    def test_unknown_token(self, invitations):
        with pytest.raises(NotFoundError, match="Invalid or expired invitation"):
            invitations.accept("no-such-token", "F")

    @pytest.mark.parametrize("account_id", ["", "   "])
    def test_blank_account_keeps_invitation_pending(self, invitations, invite, app, directory, account_id):
        member = invite(patient_id="P")

        with pytest.raises(ValidationError, match="account id is required"):
            invitations.accept(member.invite_token, account_id)

        stored = app.family_repository.get_by_id(member.id)
        assert stored.invite_status == InviteStatus.PENDING
        assert stored.family_member_uid is None
        assert directory.relationships_of_patient("P") == []
        assert invitations.accept(member.invite_token, "F").family_member_uid == "F"

    def test_rejected_token_cannot_be_accepted(self, invitations, invite, directory):
        member = invite()
        invitations.reject(member.invite_token)
        with pytest.raises(NotFoundError, match="Invalid or expired invitation"):
            invitations.accept(member.invite_token, "F")
        assert directory.relationships_for("F") == []

    def test_custom_role_carried_to_relationship(self, invitations, invite):
        member = invite(role="other", custom_role="Neighbor")
        relationship = invitations.accept(member.invite_token, "F")
        assert relationship.custom_role == "Neighbor"
        assert relationship.access_permissions == AccessPermissions(can_view_vitals=True)

    def test_concurrent_accept_succeeds_once(self, invitations, invite, directory):
        member = invite(patient_id="P")
        barrier = threading.Barrier(4)
        outcomes = []
        lock = threading.Lock()

        def attempt(account_id):
            barrier.wait()
            try:
                invitations.accept(member.invite_token, account_id)
                result = "ok"
            except NotFoundError:
                result = "not_found"
            with lock:
                outcomes.append(result)

        threads = [threading.Thread(target=attempt, args=(f"F{i}",)) for i in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert outcomes.count("ok") == 1
        assert outcomes.count("not_found") == 3
        active = sum(len(directory.relationships_for(f"F{i}")) for i in range(4))
        assert active == 1

    def test_failed_relationship_insert_rolls_back(self, invitations, invite, app, monkeypatch):
        member = invite(patient_id="P")

        def broken_insert(conn, relationship):
            conn.execute("INSERT INTO no_such_table VALUES (1)")

        monkeypatch.setattr(app.family_repository, "_insert_relationship", broken_insert)
        with pytest.raises(Exception):
            invitations.accept(member.invite_token, "F")

        stored = app.family_repository.get_by_id(member.id)
        assert stored.invite_status == InviteStatus.PENDING
        assert stored.family_member_uid is None


class TestReject:
    """Tests for rejecting invitations."""

    def test_reject(self, invitations, invite, app):
        member = invite()
        invitations.reject(member.invite_token)

        stored = app.family_repository.get_by_id(member.id)
        assert stored.invite_status == InviteStatus.REJECTED
        assert stored.rejected_at is not None
        assert stored.family_member_uid is None

    def test_reject_twice(self, invitations, invite):
        member = invite()
        invitations.reject(member.invite_token)
        with pytest.raises(NotFoundError):
            invitations.reject(member.invite_token)

    def test_reject_after_accept(self, invitations, invite):
        member = invite()
        invitations.accept(member.invite_token, "F")
        with pytest.raises(NotFoundError):
            invitations.reject(member.invite_token)


class TestListing:
    """Tests for listing invitations."""

    def test_pending_for_email_case_insensitive(self, invitations, invite):
        member = invite(email="Jane@Example.com")
        pending = invitations.list_pending_for_email("jane@example.com")
        assert [m.id for m in pending] == [member.id]
        assert [m.id for m in invitations.list_pending_for_email("JANE@EXAMPLE.COM")] == [member.id]

    def test_pending_excludes_resolved(self, invitations, invite):
        accepted = invite(email="jane@example.com")
        rejected = invite(email="jane@example.com", patient_id="u-other")
        waiting = invite(email="jane@example.com", patient_id="u-third")
        invitations.accept(accepted.invite_token, "F")
        invitations.reject(rejected.invite_token)

        assert [m.id for m in invitations.list_pending_for_email("jane@example.com")] == [waiting.id]

    def test_list_for_patient_newest_first(self, invitations, invite):
        first = invite(email="a@example.com")
        second = invite(email="b@example.com")
        invite(patient_id="u-somebody-else", email="c@example.com")

        members = invitations.list_for_patient("u-patient")
        assert [m.id for m in members] == [second.id, first.id]

    def test_get_invitation_preview(self, invitations, invite):
        member = invite()
        assert invitations.get_invitation(member.invite_token).id == member.id

    def test_get_invitation_after_accept(self, invitations, invite):
        member = invite()
        invitations.accept(member.invite_token, "F")
        with pytest.raises(NotFoundError):
            invitations.get_invitation(member.invite_token)


class TestExpiry:
    """Tests for time-based invitation expiry."""

    def test_stale_invitation_cannot_be_accepted(self, invitations, invite, backdate, app):
        member = invite()
        backdate(member.id)

        with pytest.raises(NotFoundError, match="Invalid or expired invitation"):
            invitations.accept(member.invite_token, "F")
        assert app.family_repository.get_by_id(member.id).invite_status == InviteStatus.EXPIRED

    def test_stale_invitation_expired_on_list(self, invitations, invite, backdate):
        stale = invite(email="jane@example.com")
        fresh = invite(email="jane@example.com", patient_id="u-other")
        backdate(stale.id)

        assert [m.id for m in invitations.list_pending_for_email("jane@example.com")] == [fresh.id]
        statuses = {m.id: m.invite_status for m in invitations.list_for_patient("u-patient")}
        assert statuses[stale.id] == InviteStatus.EXPIRED

    def test_expire_stale_count(self, invitations, invite, backdate):
        for i in range(3):
            backdate(invite(email=f"p{i}@example.com").id)
        invite(email="fresh@example.com")
        assert invitations.expire_stale() == 3
        assert invitations.expire_stale() == 0

    def test_accepted_never_expires(self, invitations, invite, backdate, app):
        member = invite()
        invitations.accept(member.invite_token, "F")
        backdate(member.id)
        invitations.expire_stale()
        assert app.family_repository.get_by_id(member.id).invite_status == InviteStatus.ACCEPTED


class TestRemove:
    """Tests for removing family members."""

    def test_remove_deactivates_relationship(self, invitations, invite, app, db_path):
        member = invite(patient_id="P")
        relationship = invitations.accept(member.invite_token, "F")

        invitations.remove("P", member.id)

        assert app.family_repository.get_by_id(member.id) is None
        stored = app.family_repository.get_relationship(relationship.id)
        assert stored is not None
        assert stored.is_active is False

    def test_remove_pending(self, invitations, invite, app):
        member = invite(patient_id="P")
        invitations.remove("P", member.id)
        assert app.family_repository.get_by_id(member.id) is None

    def test_remove_requires_ownership(self, invitations, invite, app, directory):
        member = invite(patient_id="A-owner")
        invitations.accept(member.invite_token, "F")

        with pytest.raises(AuthorizationError):
            invitations.remove("B-intruder", member.id)

        stored = app.family_repository.get_by_id(member.id)
        assert stored is not None
        assert stored.invite_status == InviteStatus.ACCEPTED
        assert len(directory.relationships_for("F")) == 1

    def test_remove_missing(self, invitations):
        with pytest.raises(NotFoundError):
            invitations.remove("P", "no-such-member")

    def test_remove_leaves_other_patients_alone(self, invitations, invite, directory):
        mine = invite(patient_id="P", email="f@example.com")
        theirs = invite(patient_id="Q", email="f@example.com")
        invitations.accept(mine.invite_token, "F")
        invitations.accept(theirs.invite_token, "F")

        invitations.remove("P", mine.id)

        remaining = directory.relationships_for("F")
        assert [r.patient_uid for r in remaining] == ["Q"]


class TestResend:
    """Tests for resending invitations."""

    def test_resend_pending(self, app, mock_webhook):
        from family_access.notifier import InvitationNotifier

        service = InvitationService(
            app.family_repository, InvitationNotifier(webhook_url="https://hooks.example.com/invite")
        )
        member_id = service.invite("P", "Jane", "jane@example.com", "spouse")
        service.resend("P", member_id)
        assert mock_webhook.call_count == 2

    def test_resend_accepted(self, invitations, invite):
        member = invite(patient_id="P")
        invitations.accept(member.invite_token, "F")
        with pytest.raises(NotFoundError):
            invitations.resend("P", member.id)

    def test_resend_not_owner(self, invitations, invite):
        member = invite(patient_id="P")
        with pytest.raises(AuthorizationError):
            invitations.resend("Q", member.id)


class TestStoredInvariants:
    """Row-level invariants across a mixed history."""

    def test_custom_role_iff_other(self, invitations, invite, db_path):
        invite(role="other", custom_role="Coach", email="a@example.com")
        invite(role="parent", custom_role="Mom", email="b@example.com")
        accepted = invite(role="sibling", email="c@example.com")
        invitations.accept(accepted.invite_token, "F")

        conn = get_connection(db_path)
        rows = conn.execute("SELECT role, custom_role, invite_status, family_member_uid FROM family_members").fetchall()
        conn.close()

        for row in rows:
            assert (row["custom_role"] is not None) == (row["role"] == "other")
            assert (row["family_member_uid"] is not None) == (row["invite_status"] == "accepted")
