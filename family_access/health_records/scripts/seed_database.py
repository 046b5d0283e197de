"""Seed the database with mock accounts, health records and family invitations."""

import sys
from pathlib import Path

from family_access.app import FamilyAccessApp


MOCK_VITALS = [
    {"user_id": "u-patient-001", "heart_rate": "68", "oxygen_saturation": "98", "steps": "6421"},
    {"user_id": "u-family-001", "heart_rate": "75", "oxygen_saturation": "97", "steps": "3120"},
    {"user_id": "u-family-002", "heart_rate": "82", "oxygen_saturation": "96", "steps": "1045"},
]

MOCK_PRESCRIPTIONS = [
    {
        "user_id": "u-patient-001",
        "medications": [
            {"name": "Metformin", "dosage": "500mg", "frequency": "twice daily", "times": ["08:00", "20:00"]},
            {"name": "Atorvastatin", "dosage": "10mg", "frequency": "once daily", "times": ["21:00"]},
        ],
        "raw_text": "Metformin 500mg BID; Atorvastatin 10mg HS",
    },
    {
        "user_id": "u-family-001",
        "medications": [
            {"name": "Amlodipine", "dosage": "5mg", "frequency": "once daily", "times": ["09:00"],
             "notes": "Take with water"},
        ],
        "raw_text": "Amlodipine 5mg OD",
    },
]

MOCK_REPORTS = [
    {"user_id": "u-patient-001", "title": "Lipid Panel", "report_type": "Lab", "date": "2026-09-02",
     "content": "LDL 128 mg/dL", "status": "reviewed"},
    {"user_id": "u-patient-001", "title": "Chest X-Ray", "report_type": "Imaging", "date": "2026-06-14",
     "content": "No acute findings", "status": "reviewed"},
    {"user_id": "u-family-001", "title": "HbA1c", "report_type": "Lab", "date": "2026-08-20",
     "content": "7.4%", "status": "pending", "urgent": True},
]

# (patient, name, email, role, custom_role, accepting account or None)
MOCK_INVITATIONS = [
    ("u-patient-001", "Maria Smith", "Maria.Smith@email.com", "spouse", None, "u-family-001"),
    ("u-patient-001", "Leo Smith", "leo.smith@email.com", "child", None, None),
    ("u-patient-001", "Ana Ruiz", "ana.ruiz@email.com", "other", "Neighbor", "u-family-002"),
]


def seed_database(db_path: str | Path | None = None):
    """Populate a database with demo data. Skips accounts that already have vitals."""
    with FamilyAccessApp(db_path) as app:
        print(f"Seeding {app.db_path}...")

        print("Creating vitals...")
        seeded_users = set()
        for vitals in MOCK_VITALS:
            if app.health_repository.get_vitals(vitals["user_id"]):
                print(f"  Skipping {vitals['user_id']} (already exists)")
                continue
            app.health_repository.save_vitals(**vitals)
            seeded_users.add(vitals["user_id"])
            print(f"  Created vitals for {vitals['user_id']}")

        print("Creating prescriptions...")
        for prescription in MOCK_PRESCRIPTIONS:
            if prescription["user_id"] in seeded_users:
                app.health_repository.save_prescription(**prescription)
                print(f"  Created prescription for {prescription['user_id']}")

        print("Creating reports...")
        for report in MOCK_REPORTS:
            if report["user_id"] in seeded_users:
                app.health_repository.save_report(**report)
                print(f"  Created report: {report['title']}")

        if "u-patient-001" not in seeded_users:
            print("\nFamily invitations already seeded.")
            return

        print("Creating family invitations...")
        for patient_id, name, email, role, custom_role, acceptee in MOCK_INVITATIONS:
            member_id = app.invitations.invite(patient_id, name, email, role, custom_role)
            member = app.family_repository.get_by_id(member_id)
            if acceptee:
                app.invitations.accept(member.invite_token, acceptee)
                print(f"  {name} ({role}) accepted as {acceptee}")
            else:
                print(f"  {name} ({role}) pending, token {member.invite_token}")

    print("\nDatabase seeded successfully!")
    print(f"  - {len(MOCK_VITALS)} vitals records")
    print(f"  - {len(MOCK_PRESCRIPTIONS)} prescriptions")
    print(f"  - {len(MOCK_REPORTS)} reports")
    print(f"  - {len(MOCK_INVITATIONS)} invitations")


if __name__ == "__main__":
    seed_database(sys.argv[1] if len(sys.argv) > 1 else None)
