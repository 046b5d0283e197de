"""Shared pytest fixtures."""

import pytest
from unittest.mock import patch, MagicMock

from family_access.app import FamilyAccessApp
from family_access.health_records.database.connection import get_connection


@pytest.fixture(autouse=True)
def mock_webhook():
    """Stub the invitation webhook so no test reaches the network."""
    with patch("family_access.notifier.requests.post") as mock_post:
        response = MagicMock()
        response.status_code = 200
        response.content = b'{"queued": true}'
        response.json.return_value = {"queued": True}
        mock_post.return_value = response
        yield mock_post


@pytest.fixture
def db_path(tmp_path):
    """Path to a fresh database file for one test."""
    return tmp_path / "family_access_test.db"


@pytest.fixture
def app(db_path):
    """A started FamilyAccessApp on a temporary database."""
    family_app = FamilyAccessApp(db_path, expiry_days=7).start()
    yield family_app
    family_app.stop()


@pytest.fixture
def invitations(app):
    return app.invitations


@pytest.fixture
def directory(app):
    return app.directory


@pytest.fixture
def projector(app):
    return app.projector


@pytest.fixture
def invite(app):
    """Create an invitation and return the stored FamilyMember."""
    def _invite(patient_id="u-patient", name="Jane Doe", email="jane@example.com", role="spouse", custom_role=None):
        member_id = app.invitations.invite(patient_id, name, email, role, custom_role)
        return app.family_repository.get_by_id(member_id)
    return _invite


@pytest.fixture
def backdate(db_path):
    """Move an invitation's invited_at into the past."""
    def _backdate(member_id, invited_at="2000-01-01T00:00:00.000000+00:00"):
        conn = get_connection(db_path)
        conn.execute("UPDATE family_members SET invited_at = ? WHERE id = ?", (invited_at, member_id))
        conn.commit()
        conn.close()
    return _backdate
