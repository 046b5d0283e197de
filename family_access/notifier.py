"""Invitation delivery through an HTTP webhook (email/SMS gateway)."""

import logging
from urllib.parse import urlencode

import requests

from family_access import config

logger = logging.getLogger(__name__)


class InvitationDeliveryError(Exception):
    """Raised when an invitation could not be handed to the gateway."""
    pass


def build_invite_url(token: str, base_url: str | None = None) -> str:
    """Link the invitee opens to accept or reject."""
    base_url = base_url or config.INVITE_BASE_URL
    return f"{base_url}?{urlencode({'token': token})}"


class InvitationNotifier:
    """Posts invitation links to the configured webhook."""

    def __init__(self, webhook_url: str | None = None, base_url: str | None = None, timeout: int = 10):
        self.webhook_url = webhook_url or config.INVITE_WEBHOOK_URL
        self.base_url = base_url or config.INVITE_BASE_URL
        self.timeout = timeout

    def send_invitation(self, email: str, name: str, role_label: str, token: str, invited_by: str) -> dict:
        """
        Deliver an invitation.

        Returns the gateway's JSON body (empty dict if it sent none).
        Raises InvitationDeliveryError on timeouts, connection errors and
        non-2xx responses.
        """
        if not self.webhook_url:
            raise InvitationDeliveryError("INVITE_WEBHOOK_URL environment variable not set")

        payload = {
            "email": email,
            "name": name,
            "role": role_label,
            "invite_url": build_invite_url(token, self.base_url),
            "invited_by": invited_by,
        }

        try:
            response = requests.post(self.webhook_url, json=payload, timeout=self.timeout)
        except requests.exceptions.Timeout:
            raise InvitationDeliveryError("Invitation webhook timed out")
        except requests.exceptions.ConnectionError:
            raise InvitationDeliveryError("Failed to connect to invitation webhook")

        if response.status_code == 400:
            raise InvitationDeliveryError("Invalid invitation payload")
        elif response.status_code in (401, 403):
            raise InvitationDeliveryError("Invitation webhook rejected credentials")
        elif not 200 <= response.status_code < 300:
            raise InvitationDeliveryError(f"Invitation webhook error: {response.status_code}")

        logger.info("Invitation delivered to %s", email)
        if not response.content:
            return {}
        try:
            return response.json()
        except ValueError:
            return {}
