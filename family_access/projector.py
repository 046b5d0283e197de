"""Read-only projection of a linked account's health data.

Resolution always goes FamilyMember.id -> family_member_uid -> active
relationship -> records whose user_id is that account. Each category is
gated by the relationship's frozen permissions:

    vitals         can_view_vitals
    prescriptions  can_view_medications
    reports        can_view_reports
"""

import logging
import sqlite3
from dataclasses import dataclass

from family_access.errors import PartialFailure
from family_access.health_records.database.family_repository import FamilyRepository
from family_access.health_records.database.health_repository import (
    HealthRecordRepository,
    Prescription,
    Report,
    Vitals,
)
from family_access.permissions import AccessPermissions
from family_access.relationships import RelationshipDirectory

logger = logging.getLogger(__name__)

CATEGORIES = ("vitals", "prescriptions", "reports")


@dataclass(frozen=True)
class HealthSnapshot:
    """What a family member is allowed to see for one account."""
    user_id: str
    permissions: AccessPermissions
    vitals: Vitals | None = None
    prescriptions: tuple[Prescription, ...] = ()
    reports: tuple[Report, ...] = ()
    failed_categories: tuple[str, ...] = ()

    @property
    def has_any_data(self) -> bool:
        return bool(self.vitals or self.prescriptions or self.reports)


@dataclass(frozen=True)
class _Target:
    user_id: str
    permissions: AccessPermissions


class DelegatedHealthProjector:
    """Assembles a family member's permitted view of health records."""

    def __init__(
        self,
        family_repository: FamilyRepository,
        health_repository: HealthRecordRepository,
        directory: RelationshipDirectory,
    ):
        self.family_repository = family_repository
        self.health_repository = health_repository
        self.directory = directory

    def get_family_member_user_id(self, family_member_id: str) -> str | None:
        """Account id behind a FamilyMember record, once accepted."""
        member = self.family_repository.get_by_id(family_member_id)
        if member is None:
            logger.debug("Family member %s does not exist", family_member_id)
            return None
        return member.family_member_uid

    def get_family_member_vitals(self, family_member_id: str) -> Vitals | None:
        target = self._resolve_quietly(family_member_id)
        if target is None:
            return None
        vitals, _ = self._best_effort("vitals", lambda: self._fetch_vitals(target))
        return vitals

    def get_family_member_prescriptions(self, family_member_id: str) -> list[Prescription]:
        target = self._resolve_quietly(family_member_id)
        if target is None:
            return []
        prescriptions, _ = self._best_effort("prescriptions", lambda: self._fetch_prescriptions(target))
        return list(prescriptions or ())

    def get_family_member_reports(self, family_member_id: str) -> list[Report]:
        target = self._resolve_quietly(family_member_id)
        if target is None:
            return []
        reports, _ = self._best_effort("reports", lambda: self._fetch_reports(target))
        return list(reports or ())

    def get_family_member_health(self, family_member_id: str) -> HealthSnapshot | None:
        """Fetch every category independently; one failing leaves the others intact."""
        target = self._resolve_quietly(family_member_id)
        if target is None:
            return None
        return self._snapshot(target)

    def get_patient_view(self, viewer_account_id: str, patient_account_id: str) -> HealthSnapshot | None:
        """A family member's dashboard view of a patient who granted them access."""
        permissions = self.directory.permissions_for(viewer_account_id, patient_account_id)
        if permissions is None:
            return None
        return self._snapshot(_Target(patient_account_id, permissions))

    # Private helpers

    def _resolve(self, family_member_id: str) -> _Target | None:
        member = self.family_repository.get_by_id(family_member_id)
        if member is None or not member.family_member_uid:
            return None
        relationship = self.directory.relationship_for_member(member)
        if relationship is None:
            return None
        return _Target(member.family_member_uid, relationship.access_permissions)

    def _resolve_quietly(self, family_member_id: str) -> _Target | None:
        try:
            return self._resolve(family_member_id)
        except sqlite3.Error as e:
            logger.warning("Could not resolve family member %s: %s", family_member_id, e)
            return None

    def _snapshot(self, target: _Target) -> HealthSnapshot:
        vitals, vitals_failed = self._best_effort("vitals", lambda: self._fetch_vitals(target))
        prescriptions, prescriptions_failed = self._best_effort(
            "prescriptions", lambda: self._fetch_prescriptions(target)
        )
        reports, reports_failed = self._best_effort("reports", lambda: self._fetch_reports(target))

        failed = tuple(
            category for category, did_fail in zip(
                CATEGORIES, (vitals_failed, prescriptions_failed, reports_failed)
            ) if did_fail
        )
        snapshot = HealthSnapshot(
            user_id=target.user_id,
            permissions=target.permissions,
            vitals=vitals,
            prescriptions=prescriptions or (),
            reports=reports or (),
            failed_categories=failed,
        )
        logger.info(
            "Health snapshot for %s: vitals=%s prescriptions=%d reports=%d failed=%s",
            target.user_id, "available" if vitals else "none",
            len(snapshot.prescriptions), len(snapshot.reports), list(failed),
        )
        return snapshot

    def _best_effort(self, category: str, fetch):
        """Run one category fetch. Returns (value, failed)."""
        try:
            return fetch(), False
        except sqlite3.Error as e:
            logger.warning("%s", PartialFailure(category, e))
            return None, True

    def _fetch_vitals(self, target: _Target) -> Vitals | None:
        if not target.permissions.can_view_vitals:
            return None
        return self.health_repository.get_vitals(target.user_id)

    def _fetch_prescriptions(self, target: _Target) -> tuple[Prescription, ...]:
        if not target.permissions.can_view_medications:
            return ()
        return tuple(self.health_repository.get_prescriptions(target.user_id))

    def _fetch_reports(self, target: _Target) -> tuple[Report, ...]:
        if not target.permissions.can_view_reports:
            return ()
        return tuple(self.health_repository.get_reports(target.user_id))
