import copy
import logging
from enum import Enum
from uuid import uuid4
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from medisync.errors import CollaboratorUnavailable, PromotionPartialFailure, StoreError
from medisync.models import MedicationDetail, Patient, PrescriptionSuggestion, SuggestionRequest
from medisync.utils.prescription_record import format_prescription


logger = logging.getLogger(__name__)

MEDICATION_FIELDS = tuple(MedicationDetail.model_fields)
SECTIONS = ("general_instructions", "follow_up", "additional_notes")


@dataclass
class GenerationContext:
    """What the suggestion was generated from, frozen at request time."""

    symptoms: str
    diagnosis: str
    patient_history: str = ""
    prior_prescriptions: List[str] = field(default_factory=list)
    doctor_name: Optional[str] = None

    def to_request(self) -> SuggestionRequest:
        return SuggestionRequest(
            symptoms=self.symptoms,
            diagnosis=self.diagnosis,
            patient_history=self.patient_history or None,
            prior_prescriptions=list(self.prior_prescriptions),
            doctor_name=self.doctor_name,
        )


class CommitStatus(str, Enum):
    COMMITTED = "committed"
    MISSING_PATIENT = "missing_patient"
    EMPTY_SUGGESTION = "empty_suggestion"
    STORE_UNAVAILABLE = "store_unavailable"
    PROMOTION_PARTIAL_FAILURE = "promotion_partial_failure"


@dataclass
class CommitResult:
    status: CommitStatus
    patient: Optional[Patient] = None
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.status is CommitStatus.COMMITTED


class SuggestionSession:
    """An editable copy of one generated suggestion for one patient."""

    def __init__(self, patient: Optional[Patient], context: GenerationContext, suggestion: PrescriptionSuggestion):
        self.id = uuid4().hex
        self.patient = patient
        self.context = copy.deepcopy(context)
        self.suggestion = suggestion.model_copy(deep=True)

    def _medication(self, index: int) -> MedicationDetail:
        if not 0 <= index < len(self.suggestion.medications):
            raise IndexError(f"No medication at position {index}")
        return self.suggestion.medications[index]

    def edit_medication(self, index: int, field_name: str, value: Optional[str]) -> MedicationDetail:
        if field_name not in MEDICATION_FIELDS:
            raise ValueError(f"Unknown medication field {field_name!r}")
        medication = self._medication(index)
        setattr(medication, field_name, value if value is not None else "")
        return medication

    def add_medication(self) -> MedicationDetail:
        # New entries go on top, where the editor shows them
        medication = MedicationDetail()
        self.suggestion.medications.insert(0, medication)
        return medication

    def remove_medication(self, index: int) -> MedicationDetail:
        self._medication(index)
        return self.suggestion.medications.pop(index)

    def set_section(self, section: str, text: Optional[str]) -> None:
        if section not in SECTIONS:
            raise ValueError(f"Unknown section {section!r}")
        setattr(self.suggestion, section, text or "")

    async def commit(self, store, committed_at: Optional[datetime] = None) -> CommitResult:
        """Format, persist and return the patient with the new prescription.

        A temporary patient is promoted first; on success ``self.patient`` is
        replaced by the persistent record.
        """
        if self.patient is None:
            return CommitResult(CommitStatus.MISSING_PATIENT, error="No patient selected.")
        if self.suggestion.is_empty():
            return CommitResult(CommitStatus.EMPTY_SUGGESTION, patient=self.patient, error="Nothing to save.")

        text = format_prescription(
            self.suggestion,
            symptoms=self.context.symptoms,
            diagnosis=self.context.diagnosis,
            committed_at=committed_at,
        )
        try:
            if self.patient.is_temporary:
                updated = await store.promote_patient(self.patient, text)
            else:
                updated = await store.append_prescription(self.patient.id, text)
        except PromotionPartialFailure as e:
            # Later retries must target the persistent record, never re-create it
            self.patient = e.patient
            return CommitResult(
                CommitStatus.PROMOTION_PARTIAL_FAILURE,
                patient=e.patient,
                text=text,
                error=str(e),
            )
        except StoreError as e:
            logger.error(f"Error saving prescription for {self.patient.id}: {e}")
            return CommitResult(CommitStatus.STORE_UNAVAILABLE, patient=self.patient, text=text, error=str(e))

        logger.info(f"Prescription saved for patient {updated.id}")
        self.patient = updated
        return CommitResult(CommitStatus.COMMITTED, patient=updated, text=text)


class GenerationStatus(str, Enum):
    READY = "ready"
    COLLABORATOR_UNAVAILABLE = "collaborator_unavailable"
    STALE = "stale"


@dataclass
class GenerationResult:
    status: GenerationStatus
    session: Optional[SuggestionSession] = None
    error: Optional[str] = None


class PrescriptionAssistant:
    """Requests suggestions for the selected patient and owns the editing session.

    Selecting another patient or asking again supersedes any request still in
    flight; its result is dropped when it arrives.
    """

    def __init__(self, suggester):
        self.id = uuid4().hex
        self.suggester = suggester
        self.patient: Optional[Patient] = None
        self.session: Optional[SuggestionSession] = None
        self.generation = 0
        self.closed = False

    def select_patient(self, patient: Optional[Patient]) -> None:
        self.generation += 1
        self.patient = patient
        self.session = None

    async def generate(
        self,
        symptoms: str,
        diagnosis: str,
        patient_history: Optional[str] = None,
        doctor_name: Optional[str] = None,
    ) -> GenerationResult:
        self.generation += 1
        token = self.generation
        patient = self.patient
        context = GenerationContext(
            symptoms=symptoms,
            diagnosis=diagnosis,
            patient_history=patient_history if patient_history is not None else (patient.history if patient else ""),
            prior_prescriptions=list(patient.prescriptions or []) if patient else [],
            doctor_name=doctor_name,
        )
        try:
            suggestion = await self.suggester.suggest(context.to_request())
        except CollaboratorUnavailable as e:
            logger.error(f"Error generating prescription: {e}")
            if self.closed or token != self.generation:
                return GenerationResult(GenerationStatus.STALE)
            return GenerationResult(GenerationStatus.COLLABORATOR_UNAVAILABLE, error=str(e))

        if self.closed or token != self.generation:
            logger.info(f"Discarding prescription suggestion for superseded request {token}")
            return GenerationResult(GenerationStatus.STALE)

        self.session = SuggestionSession(patient, context, suggestion)
        return GenerationResult(GenerationStatus.READY, session=self.session)

    async def commit(self, store, committed_at: Optional[datetime] = None) -> CommitResult:
        if self.session is None:
            return CommitResult(CommitStatus.EMPTY_SUGGESTION, patient=self.patient, error="No suggestion to save.")
        result = await self.session.commit(store, committed_at=committed_at)
        if result.patient is not None:
            # Adopt the persistent record as the current selection
            self.patient = result.patient
        return result

    def close(self) -> None:
        self.closed = True
        self.session = None
