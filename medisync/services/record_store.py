"""In-memory projections of the patients and appointments collections.

Every write goes to the persistent store and is followed by a full refetch of
the affected collection, so the projections only ever hold what the store
returned. Two concurrent writes may interleave their refetches; whichever
finishes last decides what is visible.
"""
import logging
from enum import Enum
from datetime import datetime
from typing import List, Optional, Union
from medisync.config import TEMP_ID_PREFIX
from medisync.errors import StoreError, RecordNotFound, InvalidStatusTransition, PromotionPartialFailure
from medisync.models import (
    Patient,
    Appointment,
    AppointmentStatus,
    AppointmentCreate,
    PatientCreate,
)
from medisync.utils.helpers import normalize_name
from medisync.utils.prescription_record import effective_activity


logger = logging.getLogger(__name__)

# Only transition the workflow ever makes
ALLOWED_TRANSITIONS = {
    AppointmentStatus.SCHEDULED: {AppointmentStatus.COMPLETED},
}

# Fields that are derived or identity-only and never copied on promotion
PROMOTION_EXCLUDED_FIELDS = {"id", "prescriptions"}


class PatientSort(str, Enum):
    ACTIVITY = "activity"
    NAME = "name"
    AGE = "age"


class SortDirection(str, Enum):
    ASC = "asc"
    DESC = "desc"


def temporary_patient_id(appointment_id: str) -> str:
    return f"{TEMP_ID_PREFIX}appointment-{appointment_id}"


class RecordStore:
    def __init__(self, backend):
        self.backend = backend
        self.patients: List[Patient] = []
        self.appointments: List[Appointment] = []

    # -- refresh ----------------------------------------------------------

    async def refresh_patients(self) -> List[Patient]:
        self.patients = await self.backend.list_patients()
        logger.info(f"Loaded {len(self.patients)} patients")
        return self.patients

    async def refresh_appointments(self) -> List[Appointment]:
        self.appointments = await self.backend.list_appointments()
        logger.info(f"Loaded {len(self.appointments)} appointments")
        return self.appointments

    async def refresh(self) -> None:
        await self.refresh_patients()
        await self.refresh_appointments()

    # -- patients ---------------------------------------------------------

    def effective_activity(self, patient: Patient) -> datetime:
        return effective_activity(patient.created_at, patient.prescriptions)

    def list_patients(
        self,
        sort: Union[PatientSort, str] = PatientSort.ACTIVITY,
        direction: Union[SortDirection, str] = SortDirection.DESC,
        search: str = "",
    ) -> List[Patient]:
        """Filter by ``search`` then sort the current projection.

        Ties keep fetch order; descending sorts keep it too.
        """
        sort = PatientSort(sort)
        direction = SortDirection(direction)

        term = (search or "").strip().lower()
        if term:
            matches = [
                p for p in self.patients
                if term in (p.name or "").lower()
                or term in (p.diagnosis or "").lower()
                or term in (p.history or "").lower()
            ]
        else:
            matches = list(self.patients)

        if sort is PatientSort.NAME:
            key = lambda p: (p.name or "").lower()
        elif sort is PatientSort.AGE:
            key = lambda p: p.age or 0
        else:
            key = self.effective_activity

        return sorted(matches, key=key, reverse=direction is SortDirection.DESC)

    def get_patient(self, patient_id: str) -> Optional[Patient]:
        for patient in self.patients:
            if patient.id == patient_id:
                return patient
        return None

    def find_patient_by_name(self, name: str) -> Optional[Patient]:
        """Best-effort match on trimmed, case-insensitive name.

        Names are not unique; the first patient in fetch order wins.
        """
        wanted = normalize_name(name)
        if not wanted:
            return None
        for patient in self.patients:
            if normalize_name(patient.name) == wanted:
                return patient
        return None

    def patient_for_appointment(self, appointment: Appointment) -> Patient:
        """The known patient behind an appointment, or a temporary stand-in."""
        patient = self.find_patient_by_name(appointment.patient_name)
        if patient is not None:
            return patient
        logger.info(f"No patient record for {appointment.patient_name!r}, using a temporary one")
        return Patient(
            id=temporary_patient_id(appointment.id),
            name=appointment.patient_name.strip(),
            age=appointment.patient_age or 0,
            diagnosis="",
            history=f"Presented with: {appointment.symptoms}" if appointment.symptoms else "",
            prescriptions=[],
        )

    async def add_patient(self, data: Union[PatientCreate, dict]) -> Patient:
        """Create a patient and refetch.

        Returns the object built here, which may lag server-side defaults;
        read ``get_patient`` afterwards for the stored version.
        """
        if isinstance(data, dict):
            data = PatientCreate(**data)
        patient = Patient(**data.model_dump())
        patient.id = await self.backend.add(patient)
        await self.refresh_patients()
        return patient

    async def update_patient(self, patient_id: str, changes: dict) -> None:
        if patient_id.startswith(TEMP_ID_PREFIX):
            raise RecordNotFound("patient", patient_id)
        changes = {k: v for k, v in changes.items() if k not in PROMOTION_EXCLUDED_FIELDS}
        await self.backend.update(Patient, patient_id, changes)
        await self.refresh_patients()

    async def append_prescription(self, patient_id: str, text: str) -> Patient:
        if patient_id.startswith(TEMP_ID_PREFIX):
            raise RecordNotFound("patient", patient_id)
        await self.backend.append_prescription(patient_id, text)
        await self.refresh_patients()
        patient = self.get_patient(patient_id)
        if patient is None:
            raise RecordNotFound("patient", patient_id)
        return patient

    async def promote_patient(self, temporary: Patient, prescription_text: str) -> Patient:
        """Persist a temporary patient and attach its first prescription.

        The temporary id is dropped; the returned patient carries the new
        persistent id and should replace the temporary one wherever it is held.
        If the append fails after the create, the new record is left in place
        and PromotionPartialFailure tells the caller which id to retry against.
        """
        data = temporary.model_dump(exclude=PROMOTION_EXCLUDED_FIELDS)
        record = Patient(**data)
        new_id = await self.backend.add(record)
        logger.info(f"Promoted temporary patient {temporary.id} to {new_id}")
        try:
            await self.backend.append_prescription(new_id, prescription_text)
        except StoreError as e:
            logger.error(f"Prescription append failed after promoting {temporary.id} to {new_id}: {e}")
            await self.refresh_patients()
            raise PromotionPartialFailure(self.get_patient(new_id) or record, e) from e
        await self.refresh_patients()
        patient = self.get_patient(new_id)
        if patient is None:
            raise RecordNotFound("patient", new_id)
        return patient

    # -- appointments -----------------------------------------------------

    def list_appointments(self) -> List[Appointment]:
        return list(self.appointments)

    def get_appointment(self, appointment_id: str) -> Optional[Appointment]:
        for appointment in self.appointments:
            if appointment.id == appointment_id:
                return appointment
        return None

    def get_appointments_for_doctor(self, doctor_id: str) -> List[Appointment]:
        """A doctor's appointments, latest appointment date first."""
        mine = [a for a in self.appointments if a.doctor_id == doctor_id]
        return sorted(mine, key=lambda a: a.appointment_date, reverse=True)

    async def add_appointment(self, data: Union[AppointmentCreate, dict]) -> Appointment:
        if isinstance(data, dict):
            data = AppointmentCreate(**data)
        appointment = Appointment(**data.model_dump(), status=AppointmentStatus.SCHEDULED)
        appointment.id = await self.backend.add(appointment)
        await self.refresh_appointments()
        return appointment

    async def set_appointment_status(self, appointment_id: str, status: Union[AppointmentStatus, str]) -> None:
        status = AppointmentStatus(status)
        current = self.get_appointment(appointment_id)
        if current is None:
            await self.refresh_appointments()
            current = self.get_appointment(appointment_id)
            if current is None:
                raise RecordNotFound("appointment", appointment_id)
        if status not in ALLOWED_TRANSITIONS.get(current.status, set()):
            raise InvalidStatusTransition(current.status, status)
        await self.backend.update(Appointment, appointment_id, {"status": status})
        await self.refresh_appointments()
