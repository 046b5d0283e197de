"""
Family Access Database Schema
Supports family invitations, delegated relationships, and the patient health
records those relationships grant read access to.
"""

SCHEMA = """
-- =============================================================================
-- 1. FAMILY_MEMBERS - Invitations and their lifecycle
-- =============================================================================
CREATE TABLE IF NOT EXISTS family_members (
    id TEXT PRIMARY KEY,

    -- Invitee
    name TEXT NOT NULL,
    email TEXT NOT NULL,               -- always stored lower-case
    role TEXT NOT NULL,
    custom_role TEXT,                  -- only when role = 'other'

    -- Status: pending, accepted, rejected, expired
    invite_status TEXT NOT NULL DEFAULT 'pending',
    invite_token TEXT NOT NULL UNIQUE,

    -- Ownership
    added_by TEXT NOT NULL,            -- inviting patient's account id
    family_member_uid TEXT,            -- accepting account id

    -- Timestamps (UTC ISO-8601)
    invited_at TEXT NOT NULL,
    accepted_at TEXT,
    rejected_at TEXT,

    CHECK ((role = 'other') = (custom_role IS NOT NULL)),
    CHECK ((invite_status = 'accepted') = (COALESCE(family_member_uid, '') <> ''))
);

CREATE INDEX IF NOT EXISTS idx_family_members_added_by ON family_members(added_by);
CREATE INDEX IF NOT EXISTS idx_family_members_email ON family_members(email);
CREATE INDEX IF NOT EXISTS idx_family_members_status ON family_members(invite_status);
CREATE INDEX IF NOT EXISTS idx_family_members_uid ON family_members(family_member_uid);


-- =============================================================================
-- 2. FAMILY_RELATIONSHIPS - Permission-bearing links created on acceptance
-- =============================================================================
CREATE TABLE IF NOT EXISTS family_relationships (
    id TEXT PRIMARY KEY,
    patient_uid TEXT NOT NULL,
    family_member_uid TEXT NOT NULL CHECK (family_member_uid <> ''),
    role TEXT NOT NULL,
    custom_role TEXT,

    -- Frozen at acceptance time
    can_view_medications INTEGER NOT NULL DEFAULT 0,
    can_view_vitals INTEGER NOT NULL DEFAULT 0,
    can_view_appointments INTEGER NOT NULL DEFAULT 0,
    can_view_reports INTEGER NOT NULL DEFAULT 0,
    can_view_emergency_contacts INTEGER NOT NULL DEFAULT 0,

    created_at TEXT NOT NULL,
    is_active INTEGER NOT NULL DEFAULT 1
);

CREATE INDEX IF NOT EXISTS idx_relationships_member ON family_relationships(family_member_uid, is_active);
CREATE INDEX IF NOT EXISTS idx_relationships_patient ON family_relationships(patient_uid, is_active);

-- At most one active relationship per (patient, family member) pair
CREATE UNIQUE INDEX IF NOT EXISTS idx_relationships_active_pair
    ON family_relationships(patient_uid, family_member_uid)
    WHERE is_active = 1;


-- =============================================================================
-- 3. VITALS - Latest synced vitals, one row per account
-- =============================================================================
CREATE TABLE IF NOT EXISTS vitals (
    user_id TEXT PRIMARY KEY,
    heart_rate TEXT,
    oxygen_saturation TEXT,
    steps TEXT,
    last_updated TEXT
);


-- =============================================================================
-- 4. PRESCRIPTIONS - Saved prescription extractions
-- =============================================================================
CREATE TABLE IF NOT EXISTS prescriptions (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,

    -- JSON array: [{"name", "dosage", "frequency", "times", "notes"}]
    medications TEXT NOT NULL DEFAULT '[]',
    raw_text TEXT,
    extracted_at TEXT,
    saved_at TEXT NOT NULL,
    image_url TEXT,
    health_suggestions TEXT
);

CREATE INDEX IF NOT EXISTS idx_prescriptions_user ON prescriptions(user_id, saved_at);


-- =============================================================================
-- 5. REPORTS - Medical reports
-- =============================================================================
CREATE TABLE IF NOT EXISTS reports (
    id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    title TEXT,
    type TEXT,
    date TEXT,
    content TEXT,
    status TEXT,
    urgent INTEGER DEFAULT 0
);

CREATE INDEX IF NOT EXISTS idx_reports_user ON reports(user_id, date);
"""
