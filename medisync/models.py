from enum import Enum
from uuid import uuid4
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field as PydanticField
from sqlalchemy import Column, JSON
from sqlmodel import SQLModel, Field
from medisync.config import TEMP_ID_PREFIX
from medisync.utils.time_utils import utc_now


def new_record_id() -> str:
    return uuid4().hex


class AppointmentStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"


class Patient(SQLModel, table=True):
    id: str = Field(default_factory=new_record_id, primary_key=True)
    name: str
    age: int = 0
    diagnosis: str = ""
    history: str = ""
    avatar_url: Optional[str] = None
    # Insertion order is authorship order, not activity order
    prescriptions: List[str] = Field(default_factory=list, sa_column=Column(JSON))
    created_at: datetime = Field(default_factory=utc_now)

    @property
    def is_temporary(self) -> bool:
        return self.id.startswith(TEMP_ID_PREFIX)


class Appointment(SQLModel, table=True):
    id: str = Field(default_factory=new_record_id, primary_key=True)
    patient_name: str
    patient_age: Optional[int] = None
    symptoms: str = ""
    doctor_id: str
    doctor_name: str
    appointment_date: datetime
    status: AppointmentStatus = Field(default=AppointmentStatus.SCHEDULED)


class Doctor(SQLModel, table=True):
    id: str = Field(primary_key=True)
    name: str
    specialty: str
    email: str


# --- request / response shapes -------------------------------------------


class PatientCreate(SQLModel):
    name: str
    age: int = 0
    diagnosis: str = ""
    history: str = ""
    avatar_url: Optional[str] = None


class PatientUpdate(SQLModel):
    name: Optional[str] = None
    age: Optional[int] = None
    diagnosis: Optional[str] = None
    history: Optional[str] = None
    avatar_url: Optional[str] = None


class AppointmentCreate(SQLModel):
    patient_name: str
    patient_age: Optional[int] = None
    symptoms: str = ""
    doctor_id: str
    doctor_name: str
    appointment_date: datetime


class StatusUpdate(SQLModel):
    status: AppointmentStatus


# --- collaborator payloads -----------------------------------------------
# The collaborators speak camelCase JSON; the python side uses snake_case.


class TranscriptExtraction(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_name: Optional[str] = PydanticField(default=None, alias="patientName")
    patient_age: Optional[int] = PydanticField(default=None, alias="patientAge")
    symptoms: Optional[str] = None
    doctor_query: Optional[str] = PydanticField(default=None, alias="doctorQuery")
    appointment_date: Optional[str] = PydanticField(default=None, alias="appointmentDateYYYYMMDD")
    appointment_time: Optional[str] = PydanticField(default=None, alias="appointmentTimeHHMM")


class MedicationDetail(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    name: str = ""
    dosage: str = ""
    frequency: str = ""
    duration: Optional[str] = None
    route: Optional[str] = None
    additional_instructions: Optional[str] = PydanticField(default=None, alias="additionalInstructions")


class PrescriptionSuggestion(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    medications: List[MedicationDetail] = PydanticField(default_factory=list)
    general_instructions: Optional[str] = PydanticField(default=None, alias="generalInstructions")
    follow_up: Optional[str] = PydanticField(default=None, alias="followUp")
    additional_notes: Optional[str] = PydanticField(default=None, alias="additionalNotes")

    def is_empty(self) -> bool:
        """No medication and no note explaining why."""
        return not self.medications and not (self.additional_notes or "").strip()


class SuggestionRequest(BaseModel):
    symptoms: str
    diagnosis: str
    patient_history: Optional[str] = None
    prior_prescriptions: List[str] = PydanticField(default_factory=list)
    doctor_name: Optional[str] = None


class ShiftSummary(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    patient_count: int = PydanticField(default=0, alias="patientCount")
    common_ailments: str = PydanticField(default="", alias="commonAilments")
    frequent_medications: str = PydanticField(default="", alias="frequentMedications")
    summary: str = ""


class AppointmentForm(BaseModel):
    """Live booking form filled by hand and by voice intake."""

    patient_name: str = ""
    patient_age: Optional[int] = None
    symptoms: str = ""
    doctor_id: Optional[str] = None
    appointment_date: Optional[datetime] = None
