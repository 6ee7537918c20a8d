import json
import logging
from typing import Iterable, List, Optional
from medisync.models import Doctor


logger = logging.getLogger(__name__)


class DoctorRoster:
    """Fixed list of doctors, loaded once at startup."""

    def __init__(self, doctors: Iterable[Doctor] = ()):
        self.doctors: List[Doctor] = list(doctors)

    @classmethod
    async def load(cls, backend) -> "DoctorRoster":
        doctors = await backend.list_doctors()
        logger.info(f"Retrieved {len(doctors)} doctors from database")
        return cls(doctors)

    def __iter__(self):
        return iter(self.doctors)

    def __len__(self):
        return len(self.doctors)

    def get(self, doctor_id: str) -> Optional[Doctor]:
        return next((d for d in self.doctors if d.id == doctor_id), None)

    def find_by_email(self, email: str) -> Optional[Doctor]:
        """Correlate a signed-in account to its doctor profile. Exact match only."""
        wanted = (email or "").strip().lower()
        if not wanted:
            return None
        return next((d for d in self.doctors if d.email.strip().lower() == wanted), None)

    def to_json(self) -> str:
        """Doctor list for the front end"""
        return json.dumps([
            {"id": d.id, "name": d.name, "specialty": d.specialty}
            for d in self.doctors
        ])
