from fastapi import APIRouter, HTTPException, Request
from medisync.models import Patient, PatientCreate, PatientUpdate
from medisync.services.record_store import PatientSort, RecordStore, SortDirection


router = APIRouter(tags=["patients"])


def patient_payload(store: RecordStore, patient: Patient) -> dict:
    data = patient.model_dump()
    data["is_temporary"] = patient.is_temporary
    data["last_activity"] = store.effective_activity(patient)
    return data


@router.get("/patients")
async def list_patients(
    request: Request,
    sort: PatientSort = PatientSort.ACTIVITY,
    direction: SortDirection = SortDirection.DESC,
    search: str = "",
    refresh: bool = False,
):
    store: RecordStore = request.app.state.store
    if refresh:
        await store.refresh_patients()
    return [patient_payload(store, p) for p in store.list_patients(sort, direction, search)]


@router.get("/patients/{patient_id}")
async def get_patient(patient_id: str, request: Request):
    store: RecordStore = request.app.state.store
    patient = store.get_patient(patient_id)
    if patient is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    return patient_payload(store, patient)


@router.post("/patients", status_code=201)
async def add_patient(payload: PatientCreate, request: Request):
    store: RecordStore = request.app.state.store
    patient = await store.add_patient(payload)
    return {"status": "ok", "data": patient_payload(store, patient)}


@router.patch("/patients/{patient_id}")
async def update_patient(patient_id: str, payload: PatientUpdate, request: Request):
    store: RecordStore = request.app.state.store
    if store.get_patient(patient_id) is None:
        raise HTTPException(status_code=404, detail="Patient not found")
    await store.update_patient(patient_id, payload.model_dump(exclude_unset=True))
    return {"status": "ok", "data": patient_payload(store, store.get_patient(patient_id))}
