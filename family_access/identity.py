"""Current actor as supplied by the identity provider."""

from dataclasses import dataclass
from enum import Enum


class AccountRole(Enum):
    """Account types the identity provider issues."""
    PATIENT = "patient"
    DOCTOR = "doctor"
    HEALTH_WORKER = "health_worker"


@dataclass(frozen=True)
class Actor:
    account_id: str
    email: str
    role: AccountRole = AccountRole.PATIENT

    @property
    def is_patient(self) -> bool:
        return self.role == AccountRole.PATIENT
