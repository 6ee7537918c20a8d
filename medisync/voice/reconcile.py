import re
import logging
from enum import Enum
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional, Sequence, Union
from medisync.errors import CollaboratorUnavailable
from medisync.models import AppointmentCreate, AppointmentForm, Doctor, TranscriptExtraction
from medisync.utils.helpers import capitalize_name
from medisync.utils.time_utils import as_naive_utc, utc_now


logger = logging.getLogger(__name__)

MIN_DOCTOR_QUERY_LENGTH = 3

_HONORIFIC = re.compile(r"^(?:doctor|dr)\b\.?\s*")
_DATE_SHAPE = re.compile(r"\d{4}-\d{2}-\d{2}")
_TIME_SHAPE = re.compile(r"\d{2}:\d{2}")

# Fields voice intake may fill; doctor and date are kept when a new capture starts
VOICE_FIELDS = ("patient_name", "patient_age", "symptoms")


class ReconcileOutcome(str, Enum):
    FIELDS_UPDATED = "fields_updated"
    DOCTOR_NOT_MATCHED = "doctor_not_matched"
    PARTIAL_DATETIME = "partial_datetime"
    INVALID_DATETIME = "invalid_datetime"
    NOTHING_EXTRACTED = "nothing_extracted"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"
    EMPTY_TRANSCRIPT = "empty_transcript"
    STALE = "stale"


NOTIFICATIONS = {
    ReconcileOutcome.FIELDS_UPDATED: "Form fields updated from voice input. Please verify.",
    ReconcileOutcome.DOCTOR_NOT_MATCHED: "Could not find a doctor for {doctor_query!r}. Please select manually.",
    ReconcileOutcome.PARTIAL_DATETIME: "Only part of the date/time was understood. Please complete it manually.",
    ReconcileOutcome.INVALID_DATETIME: "The date/time could not be understood. Please set it manually.",
    ReconcileOutcome.NOTHING_EXTRACTED: "Could not extract details. The transcript was placed in symptoms.",
    ReconcileOutcome.COLLABORATOR_UNAVAILABLE: "Voice processing is unavailable. The transcript was placed in symptoms.",
    ReconcileOutcome.EMPTY_TRANSCRIPT: "Nothing to parse.",
    ReconcileOutcome.STALE: "",
}


@dataclass
class ReconcileResult:
    transcript: str
    changes: Dict[str, object] = field(default_factory=dict)
    outcomes: List[ReconcileOutcome] = field(default_factory=list)
    extraction: Optional[TranscriptExtraction] = None
    form: Optional[AppointmentForm] = None

    @property
    def fields_updated(self) -> int:
        return len(self.changes)

    def has(self, outcome: ReconcileOutcome) -> bool:
        return outcome in self.outcomes

    def apply_to(self, form: AppointmentForm) -> AppointmentForm:
        """Overwrite only the fields the extraction produced."""
        return form.model_copy(update=self.changes)

    @property
    def notifications(self) -> List[str]:
        doctor_query = self.extraction.doctor_query if self.extraction else ""
        messages = []
        for outcome in self.outcomes:
            message = NOTIFICATIONS[outcome].format(doctor_query=doctor_query)
            if message:
                messages.append(message)
        return messages


def normalize_doctor_name(name: str) -> str:
    name = " ".join((name or "").lower().split())
    return _HONORIFIC.sub("", name).strip()


def match_doctor(query: str, roster: Sequence[Doctor]) -> Optional[Doctor]:
    """Loose match of a spoken doctor reference against the roster.

    Honorifics are ignored and either name may contain the other. Queries
    shorter than three characters never match.
    """
    wanted = normalize_doctor_name(query)
    if len(wanted) < MIN_DOCTOR_QUERY_LENGTH:
        return None
    for doctor in roster:
        candidate = normalize_doctor_name(doctor.name)
        if len(candidate) < MIN_DOCTOR_QUERY_LENGTH:
            continue
        if wanted in candidate or candidate in wanted:
            return doctor
    return None


def compose_appointment_datetime(date_text: Optional[str], time_text: Optional[str]):
    """Combine YYYY-MM-DD and HH:MM into one instant.

    Returns ``(datetime, None)`` on success, otherwise ``(None, outcome)``;
    outcome is None only when neither part was given.
    """
    date_text = (date_text or "").strip()
    time_text = (time_text or "").strip()
    if not date_text and not time_text:
        return None, None
    if not date_text or not time_text:
        return None, ReconcileOutcome.PARTIAL_DATETIME
    if not (_DATE_SHAPE.fullmatch(date_text) and _TIME_SHAPE.fullmatch(time_text)):
        return None, ReconcileOutcome.INVALID_DATETIME
    try:
        return datetime.strptime(f"{date_text} {time_text}", "%Y-%m-%d %H:%M"), None
    except ValueError:
        logger.warning(f"Extraction returned an impossible date/time: {date_text} {time_text}")
        return None, ReconcileOutcome.INVALID_DATETIME


class TranscriptReconciler:
    def __init__(self, extractor, roster: Sequence[Doctor]):
        self.extractor = extractor
        self.roster = list(roster)

    async def reconcile(self, transcript: str, current_date: Union[date, str, None] = None) -> ReconcileResult:
        result = ReconcileResult(transcript=transcript or "")
        if not result.transcript.strip():
            result.outcomes.append(ReconcileOutcome.EMPTY_TRANSCRIPT)
            return result

        if current_date is None:
            current_date = utc_now().date()
        if isinstance(current_date, date):
            current_date = current_date.strftime("%Y-%m-%d")

        try:
            extraction = await self.extractor.extract(transcript, current_date)
        except CollaboratorUnavailable as e:
            logger.error(f"Error parsing transcript: {e}")
            result.changes = {"symptoms": transcript}
            result.outcomes.append(ReconcileOutcome.COLLABORATOR_UNAVAILABLE)
            return result

        result.extraction = extraction
        changes = result.changes

        if extraction.patient_name and extraction.patient_name.strip():
            changes["patient_name"] = capitalize_name(extraction.patient_name.strip())
        if extraction.patient_age is not None:
            changes["patient_age"] = extraction.patient_age
        if extraction.symptoms and extraction.symptoms.strip():
            changes["symptoms"] = extraction.symptoms.strip()

        if extraction.doctor_query and extraction.doctor_query.strip():
            doctor = match_doctor(extraction.doctor_query, self.roster)
            if doctor is not None:
                changes["doctor_id"] = doctor.id
            else:
                logger.info(f"No doctor matched {extraction.doctor_query!r}")
                result.outcomes.append(ReconcileOutcome.DOCTOR_NOT_MATCHED)

        when, problem = compose_appointment_datetime(extraction.appointment_date, extraction.appointment_time)
        if when is not None:
            changes["appointment_date"] = when
        elif problem is not None:
            result.outcomes.append(problem)

        if changes:
            result.outcomes.insert(0, ReconcileOutcome.FIELDS_UPDATED)
        else:
            changes["symptoms"] = transcript
            result.outcomes.append(ReconcileOutcome.NOTHING_EXTRACTED)
        return result


class IntakeSession:
    """A booking form plus the voice results allowed to touch it.

    Each capture bumps ``generation``; a result that comes back for an older
    generation, or after ``close()``, is dropped instead of applied.
    """

    def __init__(self, reconciler: TranscriptReconciler, form: Optional[AppointmentForm] = None):
        self.reconciler = reconciler
        self.form = form or AppointmentForm()
        self.generation = 0
        self.closed = False

    def begin_capture(self, clear_fields: bool = True) -> int:
        self.generation += 1
        if clear_fields:
            blank = AppointmentForm()
            self.form = self.form.model_copy(update={name: getattr(blank, name) for name in VOICE_FIELDS})
        return self.generation

    def update_form(self, **changes) -> AppointmentForm:
        """Manual edits; validated since they come straight from the client."""
        self.form = AppointmentForm.model_validate({**self.form.model_dump(), **changes})
        return self.form

    def reset(self) -> AppointmentForm:
        self.form = AppointmentForm()
        return self.form

    def close(self) -> None:
        self.closed = True

    async def handle_transcript(
        self,
        transcript: str,
        current_date: Union[date, str, None] = None,
        generation: Optional[int] = None,
    ) -> ReconcileResult:
        token = self.generation if generation is None else generation
        result = await self.reconciler.reconcile(transcript, current_date)
        if self.closed or token != self.generation:
            logger.info(f"Discarding transcript result for superseded capture {token}")
            result.outcomes = [ReconcileOutcome.STALE]
            result.form = self.form
            return result
        self.form = result.apply_to(self.form)
        result.form = self.form
        return result


class BookingError(ValueError):
    pass


async def submit_booking(form: AppointmentForm, roster: Sequence[Doctor], store):
    doctor = next((d for d in roster if d.id == form.doctor_id), None)
    if doctor is None:
        raise BookingError("Selected doctor not found.")
    if not form.patient_name.strip() or not form.symptoms.strip():
        raise BookingError("Patient name and symptoms are required.")
    if form.appointment_date is None:
        raise BookingError("Please select a date and time.")

    appointment = await store.add_appointment(
        AppointmentCreate(
            patient_name=form.patient_name.strip(),
            patient_age=form.patient_age,
            symptoms=form.symptoms.strip(),
            doctor_id=doctor.id,
            doctor_name=doctor.name,
            appointment_date=as_naive_utc(form.appointment_date),
        )
    )
    logger.info(f"Appointment booked for {appointment.patient_name} with {doctor.name}")
    return appointment
