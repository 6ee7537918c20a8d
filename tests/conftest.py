from datetime import datetime
import pytest
from medisync.db import init_db, make_engine
from medisync.errors import CollaboratorUnavailable, StoreError
from medisync.models import PrescriptionSuggestion, ShiftSummary, TranscriptExtraction
from medisync.seed import seed_all
from medisync.services.persistence import SQLModelStore
from medisync.services.record_store import RecordStore
from medisync.services.roster import DoctorRoster


@pytest.fixture
def engine():
    engine = make_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def seeded_engine(engine):
    seed_all(engine)
    return engine


@pytest.fixture
def backend(engine):
    return SQLModelStore(engine)


@pytest.fixture
async def store(backend):
    store = RecordStore(backend)
    await store.refresh()
    return store


@pytest.fixture
async def roster(seeded_engine):
    return await DoctorRoster.load(SQLModelStore(seeded_engine))


class FakeExtractor:
    """Returns canned extractions, or raises when given an exception."""

    def __init__(self, result=None):
        self.result = result if result is not None else TranscriptExtraction()
        self.calls = []

    async def extract(self, transcript, current_date):
        self.calls.append((transcript, current_date))
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeSuggester:
    def __init__(self, result=None):
        self.result = result
        self.requests = []

    async def suggest(self, request):
        self.requests.append(request)
        if isinstance(self.result, Exception):
            raise self.result
        return self.result


class FakeSummarizer:
    def __init__(self):
        self.calls = []

    async def summarize(self, doctor_name, shift_date, patients):
        self.calls.append((doctor_name, shift_date, patients))
        return ShiftSummary(
            patient_count=len(patients),
            common_ailments="cough",
            frequent_medications="Paracetamol",
            summary=f"{doctor_name} saw {len(patients)} patients on {shift_date}.",
        )


class FlakyBackend:
    """Wraps a real backend and fails selected operations."""

    def __init__(self, inner, fail_append=False, fail_add=False):
        self.inner = inner
        self.fail_append = fail_append
        self.fail_add = fail_add
        self.added = []

    async def list_patients(self):
        return await self.inner.list_patients()

    async def list_appointments(self):
        return await self.inner.list_appointments()

    async def list_doctors(self):
        return await self.inner.list_doctors()

    async def add(self, record):
        if self.fail_add:
            raise StoreError("add failed")
        new_id = await self.inner.add(record)
        self.added.append(new_id)
        return new_id

    async def update(self, model, record_id, changes):
        return await self.inner.update(model, record_id, changes)

    async def append_prescription(self, patient_id, text):
        if self.fail_append:
            raise StoreError("append failed")
        return await self.inner.append_prescription(patient_id, text)


@pytest.fixture
def cough_suggestion():
    return PrescriptionSuggestion.model_validate({
        "medications": [
            {
                "name": "Dextromethorphan",
                "dosage": "10mg",
                "frequency": "every 6 hours",
                "duration": "5 days",
                "route": "oral",
            }
        ],
        "generalInstructions": "Rest and fluids.",
        "followUp": "Return in one week if not improved.",
    })


@pytest.fixture
def unavailable():
    return CollaboratorUnavailable("model timed out")


@pytest.fixture
def fixed_now():
    return datetime(2024, 6, 15, 9, 30)
