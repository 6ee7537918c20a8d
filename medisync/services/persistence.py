import logging
from typing import List
from sqlalchemy.exc import SQLAlchemyError
from sqlmodel import select
from medisync.db import get_session
from medisync.errors import StoreError, RecordNotFound
from medisync.models import Patient, Appointment, Doctor


logger = logging.getLogger(__name__)


class SQLModelStore:
    """Persistent store for the patients and appointments collections.

    Only list-all, add, partial update and prescription append are offered;
    filtering and sorting are the caller's job.
    """

    def __init__(self, bind=None):
        self.bind = bind

    def _session(self):
        return get_session(self.bind)

    async def list_patients(self) -> List[Patient]:
        try:
            with self._session() as session:
                return list(session.exec(select(Patient)).all())
        except SQLAlchemyError as e:
            logger.error(f"Error fetching patients: {e}")
            raise StoreError(f"Could not load patients: {e}") from e

    async def list_appointments(self) -> List[Appointment]:
        try:
            with self._session() as session:
                return list(session.exec(select(Appointment)).all())
        except SQLAlchemyError as e:
            logger.error(f"Error fetching appointments: {e}")
            raise StoreError(f"Could not load appointments: {e}") from e

    async def list_doctors(self) -> List[Doctor]:
        try:
            with self._session() as session:
                return list(session.exec(select(Doctor)).all())
        except SQLAlchemyError as e:
            logger.error(f"Error fetching doctors: {e}")
            raise StoreError(f"Could not load doctors: {e}") from e

    async def add(self, record):
        """Insert a new record and return its store-assigned id."""
        try:
            with self._session() as session:
                session.add(record)
                session.commit()
                session.refresh(record)
                return record.id
        except SQLAlchemyError as e:
            logger.error(f"Error saving {type(record).__name__}: {e}")
            raise StoreError(f"Could not save {type(record).__name__}: {e}") from e

    async def update(self, model, record_id: str, changes: dict) -> None:
        try:
            with self._session() as session:
                record = session.get(model, record_id)
                if record is None:
                    raise RecordNotFound(model.__tablename__, record_id)
                for key, value in changes.items():
                    setattr(record, key, value)
                session.add(record)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error updating {model.__tablename__} {record_id}: {e}")
            raise StoreError(f"Could not update {model.__tablename__} {record_id}: {e}") from e

    async def append_prescription(self, patient_id: str, text: str) -> None:
        try:
            with self._session() as session:
                patient = session.get(Patient, patient_id)
                if patient is None:
                    raise RecordNotFound("patient", patient_id)
                # Reassign so the JSON column is flagged dirty
                patient.prescriptions = [*(patient.prescriptions or []), text]
                session.add(patient)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error appending prescription to patient {patient_id}: {e}")
            raise StoreError(f"Could not append prescription to {patient_id}: {e}") from e
