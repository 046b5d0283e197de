"""Service container with an explicit start/stop lifecycle."""

import logging
from pathlib import Path
from typing import Callable

from family_access import config
from family_access.health_records.database import (
    ChangeEvent,
    ChangeFeed,
    FamilyRepository,
    HealthRecordRepository,
    Subscription,
    init_database,
)
from family_access.invitations import InvitationService
from family_access.notifier import InvitationNotifier
from family_access.projector import DelegatedHealthProjector
from family_access.relationships import RelationshipDirectory

logger = logging.getLogger(__name__)


class FamilyAccessApp:
    """Builds the family access services for one application session.

    Usage:
        with FamilyAccessApp(db_path) as app:
            app.invitations.invite(...)
    """

    def __init__(
        self,
        db_path: str | Path | None = None,
        notifier: InvitationNotifier | None = None,
        expiry_days: int | None = None,
    ):
        self.db_path = Path(db_path or config.DB_PATH)
        self.feed = ChangeFeed()
        self.family_repository = FamilyRepository(self.db_path, self.feed)
        self.health_repository = HealthRecordRepository(self.db_path, self.feed)
        self.invitations = InvitationService(self.family_repository, notifier, expiry_days)
        self.directory = RelationshipDirectory(self.family_repository)
        self.projector = DelegatedHealthProjector(
            self.family_repository, self.health_repository, self.directory
        )
        self._subscriptions: list[Subscription] = []
        self.started = False

    def start(self) -> "FamilyAccessApp":
        """Create the schema if needed and mark the session live."""
        init_database(self.db_path)
        self.started = True
        logger.info("Family access started (db=%s)", self.db_path)
        return self

    def stop(self) -> None:
        """Cancel every subscription registered through this app."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()
        self.started = False
        logger.info("Family access stopped")

    def subscribe(self, collection: str, callback: Callable[[ChangeEvent], None]) -> Subscription:
        """Listen for changes; cancelled automatically on stop()."""
        subscription = self.feed.subscribe(collection, callback)
        self._subscriptions.append(subscription)
        return subscription

    def __enter__(self):
        return self.start()

    def __exit__(self, exc_type, exc, tb):
        self.stop()
        return False
