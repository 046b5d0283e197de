"""Family delegated access: invitations, relationships and read-only health views."""
