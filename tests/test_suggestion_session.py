import asyncio
import pytest
from medisync.models import Patient, PrescriptionSuggestion
from medisync.services.record_store import RecordStore
from medisync.services.suggestion_session import (
    CommitStatus,
    GenerationContext,
    GenerationStatus,
    PrescriptionAssistant,
    SuggestionSession,
)
from medisync.utils.prescription_record import parse_prescribed_on
from tests.conftest import FakeSuggester, FlakyBackend


def temporary_patient():
    return Patient(id="temp-appointment-42", name="Sarah Connor", age=35, history="Presented with: sore throat")


def context():
    return GenerationContext(symptoms="sore throat", diagnosis="Pharyngitis")


def test_edits_do_not_touch_the_generated_suggestion(cough_suggestion):
    session = SuggestionSession(temporary_patient(), context(), cough_suggestion)

    session.edit_medication(0, "dosage", "20mg")
    session.add_medication()
    session.set_section("follow_up", None)

    assert cough_suggestion.medications[0].dosage == "10mg"
    assert len(cough_suggestion.medications) == 1
    assert session.suggestion.medications[0].name == ""
    assert session.suggestion.medications[1].dosage == "20mg"
    assert session.suggestion.follow_up == ""


def test_invalid_edits(cough_suggestion):
    session = SuggestionSession(None, context(), cough_suggestion)
    with pytest.raises(IndexError):
        session.edit_medication(3, "name", "x")
    with pytest.raises(ValueError):
        session.edit_medication(0, "colour", "blue")
    with pytest.raises(ValueError):
        session.set_section("diagnosis", "flu")
    with pytest.raises(IndexError):
        session.remove_medication(-1)
    session.remove_medication(0)
    assert session.suggestion.medications == []


async def test_commit_promotes_temporary_patient(store, cough_suggestion, fixed_now):
    session = SuggestionSession(temporary_patient(), context(), cough_suggestion)

    result = await session.commit(store, committed_at=fixed_now)

    assert result.ok
    assert not result.patient.is_temporary
    assert session.patient.id == result.patient.id
    assert result.patient.prescriptions == [result.text]
    assert parse_prescribed_on(result.text) == fixed_now
    assert "Symptoms: sore throat" in result.text
    assert store.get_patient("temp-appointment-42") is None


async def test_commit_notes_only_suggestion_for_temporary_patient(store, fixed_now):
    suggestion = PrescriptionSuggestion(additional_notes="no medication warranted; monitor only")
    session = SuggestionSession(temporary_patient(), context(), suggestion)

    result = await session.commit(store, committed_at=fixed_now)

    assert result.status is CommitStatus.COMMITTED
    assert "No specific medications suggested" in result.text


async def test_commit_appends_for_existing_patient(store, cough_suggestion):
    patient = await store.add_patient({"name": "Rohan Sharma", "age": 34})
    session = SuggestionSession(patient, context(), cough_suggestion)
    first = await session.commit(store)
    second = await session.commit(store)
    assert first.ok and second.ok
    assert len(store.get_patient(patient.id).prescriptions) == 2
    assert len(store.patients) == 1


async def test_commit_rejects_missing_patient_and_empty_suggestion(store, cough_suggestion):
    assert (await SuggestionSession(None, context(), cough_suggestion).commit(store)).status is CommitStatus.MISSING_PATIENT
    empty = SuggestionSession(temporary_patient(), context(), PrescriptionSuggestion(additional_notes="  "))
    assert (await empty.commit(store)).status is CommitStatus.EMPTY_SUGGESTION
    assert store.patients == []


async def test_retry_after_partial_failure_does_not_duplicate(backend, cough_suggestion):
    flaky = FlakyBackend(backend, fail_append=True)
    store = RecordStore(flaky)
    session = SuggestionSession(temporary_patient(), context(), cough_suggestion)

    failed = await session.commit(store)
    assert failed.status is CommitStatus.PROMOTION_PARTIAL_FAILURE
    assert not session.patient.is_temporary

    flaky.fail_append = False
    retried = await session.commit(store)
    assert retried.ok
    assert retried.patient.id == failed.patient.id
    assert len(flaky.added) == 1
    assert len(store.patients) == 1


async def test_store_failure_is_reported(backend, cough_suggestion):
    store = RecordStore(FlakyBackend(backend, fail_add=True))
    result = await SuggestionSession(temporary_patient(), context(), cough_suggestion).commit(store)
    assert result.status is CommitStatus.STORE_UNAVAILABLE
    assert result.patient.is_temporary


async def test_generate_uses_patient_history(cough_suggestion):
    suggester = FakeSuggester(cough_suggestion)
    assistant = PrescriptionAssistant(suggester)
    patient = temporary_patient()
    patient.prescriptions = ["older prescription"]
    assistant.select_patient(patient)

    result = await assistant.generate("sore throat", "Pharyngitis", doctor_name="Alisha Mehta")

    assert result.status is GenerationStatus.READY
    request = suggester.requests[0]
    assert request.patient_history == "Presented with: sore throat"
    assert request.prior_prescriptions == ["older prescription"]
    assert request.doctor_name == "Alisha Mehta"
    assert assistant.session.context.diagnosis == "Pharyngitis"


async def test_generate_reports_unavailable(unavailable):
    assistant = PrescriptionAssistant(FakeSuggester(unavailable))
    assistant.select_patient(temporary_patient())
    result = await assistant.generate("cough", "Cold")
    assert result.status is GenerationStatus.COLLABORATOR_UNAVAILABLE
    assert assistant.session is None


class SlowSuggester(FakeSuggester):
    def __init__(self, result):
        super().__init__(result)
        self.release = asyncio.Event()

    async def suggest(self, request):
        await self.release.wait()
        return await super().suggest(request)


async def test_late_suggestion_for_previous_patient_is_discarded(cough_suggestion):
    suggester = SlowSuggester(cough_suggestion)
    assistant = PrescriptionAssistant(suggester)
    assistant.select_patient(temporary_patient())

    pending = asyncio.ensure_future(assistant.generate("sore throat", "Pharyngitis"))
    await asyncio.sleep(0)
    other = Patient(id="p2", name="Priya Singh", age=28)
    assistant.select_patient(other)
    suggester.release.set()
    result = await pending

    assert result.status is GenerationStatus.STALE
    assert assistant.session is None
    assert assistant.patient is other


async def test_assistant_commit_adopts_persistent_patient(store, cough_suggestion):
    assistant = PrescriptionAssistant(FakeSuggester(cough_suggestion))
    assistant.select_patient(temporary_patient())
    await assistant.generate("sore throat", "Pharyngitis")

    result = await assistant.commit(store)

    assert result.ok
    assert assistant.patient.id == result.patient.id
    assert not assistant.patient.is_temporary
