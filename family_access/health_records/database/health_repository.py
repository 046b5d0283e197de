"""Vitals, prescription and report records, always scoped to one account."""

import json
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from .changes import ChangeFeed
from .connection import get_connection, utc_timestamp

VITALS = "vitals"
PRESCRIPTIONS = "prescriptions"
REPORTS = "reports"


@dataclass(frozen=True)
class Vitals:
    user_id: str
    heart_rate: str = "72"
    oxygen_saturation: str = "98"
    steps: str = "0"
    last_updated: str | None = None


@dataclass(frozen=True)
class Medication:
    name: str
    dosage: str = ""
    frequency: str = ""
    times: tuple[str, ...] = ()
    notes: str | None = None


@dataclass(frozen=True)
class Prescription:
    id: str
    user_id: str
    medications: tuple[Medication, ...] = ()
    raw_text: str = ""
    extracted_at: str | None = None
    saved_at: str | None = None
    image_url: str | None = None
    health_suggestions: str | None = None


@dataclass(frozen=True)
class Report:
    id: str
    user_id: str
    title: str = "Medical Report"
    type: str = "General"
    date: str | None = None
    content: str | None = None
    status: str | None = None
    urgent: bool = False


class HealthRecordRepository:
    """Repository for per-account health records.

    Every read takes the owning account id; there is no cross-account query.
    """

    def __init__(self, db_path: str | Path | None = None, feed: ChangeFeed | None = None):
        self.db_path = db_path
        self.feed = feed

    def get_vitals(self, user_id: str) -> Vitals | None:
        """Latest vitals for an account."""
        conn = get_connection(self.db_path)
        row = conn.execute("SELECT * FROM vitals WHERE user_id = ?", (user_id,)).fetchone()
        conn.close()
        return self._row_to_vitals(row) if row else None

    def get_prescriptions(self, user_id: str, limit: int = 10) -> list[Prescription]:
        """Most recently saved prescriptions for an account."""
        conn = get_connection(self.db_path)
        rows = conn.execute(
            "SELECT * FROM prescriptions WHERE user_id = ? ORDER BY saved_at DESC LIMIT ?",
            (user_id, limit)
        ).fetchall()
        conn.close()
        return [self._row_to_prescription(row) for row in rows]

    def get_reports(self, user_id: str, limit: int = 10) -> list[Report]:
        """Most recent reports for an account."""
        conn = get_connection(self.db_path)
        rows = conn.execute(
            "SELECT * FROM reports WHERE user_id = ? ORDER BY date DESC LIMIT ?",
            (user_id, limit)
        ).fetchall()
        conn.close()
        return [self._row_to_report(row) for row in rows]

    # Owner writes (vitals sync, prescription upload, report import)

    def save_vitals(self, user_id: str, heart_rate: str, oxygen_saturation: str, steps: str) -> Vitals:
        """Insert or replace an account's vitals."""
        now = utc_timestamp()
        conn = get_connection(self.db_path)
        conn.execute("""
            INSERT INTO vitals (user_id, heart_rate, oxygen_saturation, steps, last_updated)
            VALUES (?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                heart_rate = excluded.heart_rate,
                oxygen_saturation = excluded.oxygen_saturation,
                steps = excluded.steps,
                last_updated = excluded.last_updated
        """, (user_id, heart_rate, oxygen_saturation, steps, now))
        conn.commit()
        conn.close()

        self._publish(VITALS, "updated", user_id)
        return Vitals(user_id, heart_rate, oxygen_saturation, steps, now)

    def save_prescription(
        self,
        user_id: str,
        medications: list[dict],
        raw_text: str = "",
        image_url: str | None = None,
        health_suggestions: str | None = None,
        extracted_at: str | None = None,
    ) -> Prescription:
        """Store an extracted prescription."""
        prescription_id = str(uuid.uuid4())
        now = utc_timestamp()
        conn = get_connection(self.db_path)
        conn.execute("""
            INSERT INTO prescriptions (
                id, user_id, medications, raw_text, extracted_at, saved_at, image_url, health_suggestions
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (
            prescription_id, user_id, json.dumps(medications), raw_text,
            extracted_at or now, now, image_url, health_suggestions,
        ))
        conn.commit()
        conn.close()

        self._publish(PRESCRIPTIONS, "created", prescription_id)
        return self._build_prescription(
            prescription_id, user_id, medications, raw_text, extracted_at or now, now,
            image_url, health_suggestions,
        )

    def save_report(
        self,
        user_id: str,
        title: str,
        date: str,
        report_type: str = "General",
        content: str | None = None,
        status: str | None = None,
        urgent: bool = False,
    ) -> Report:
        """Store a medical report."""
        report_id = str(uuid.uuid4())
        conn = get_connection(self.db_path)
        conn.execute("""
            INSERT INTO reports (id, user_id, title, type, date, content, status, urgent)
            VALUES (?, ?, ?, ?, ?, ?, ?, ?)
        """, (report_id, user_id, title, report_type, date, content, status, int(urgent)))
        conn.commit()
        conn.close()

        self._publish(REPORTS, "created", report_id)
        return Report(report_id, user_id, title, report_type, date, content, status, urgent)

    # Private helpers

    def _publish(self, collection: str, action: str, record_id: str) -> None:
        if self.feed is not None:
            self.feed.publish(collection, action, record_id)

    def _build_prescription(
        self, prescription_id, user_id, medications, raw_text, extracted_at, saved_at,
        image_url, health_suggestions,
    ) -> Prescription:
        return Prescription(
            id=prescription_id,
            user_id=user_id,
            medications=tuple(
                Medication(
                    name=item.get("name", ""),
                    dosage=item.get("dosage", ""),
                    frequency=item.get("frequency", ""),
                    times=tuple(item.get("times", [])),
                    notes=item.get("notes"),
                )
                for item in medications
            ),
            raw_text=raw_text or "",
            extracted_at=extracted_at,
            saved_at=saved_at,
            image_url=image_url,
            health_suggestions=health_suggestions,
        )

    def _row_to_vitals(self, row) -> Vitals:
        """Convert a database row to Vitals, filling the display defaults."""
        return Vitals(
            user_id=row["user_id"],
            heart_rate=row["heart_rate"] or "72",
            oxygen_saturation=row["oxygen_saturation"] or "98",
            steps=row["steps"] or "0",
            last_updated=row["last_updated"],
        )

    def _row_to_prescription(self, row) -> Prescription:
        """Convert a database row to a Prescription object."""
        return self._build_prescription(
            row["id"], row["user_id"],
            json.loads(row["medications"]) if row["medications"] else [],
            row["raw_text"], row["extracted_at"], row["saved_at"],
            row["image_url"], row["health_suggestions"],
        )

    def _row_to_report(self, row) -> Report:
        """Convert a database row to a Report object."""
        return Report(
            id=row["id"],
            user_id=row["user_id"],
            title=row["title"] or "Medical Report",
            type=row["type"] or "General",
            date=row["date"],
            content=row["content"],
            status=row["status"],
            urgent=bool(row["urgent"]),
        )
