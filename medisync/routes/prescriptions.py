import logging
from typing import Optional
from fastapi import APIRouter, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from medisync.routes.patients import patient_payload
from medisync.services.record_store import RecordStore
from medisync.services.suggestion_session import (
    CommitStatus,
    GenerationStatus,
    PrescriptionAssistant,
)


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/prescriptions", tags=["prescriptions"])


class SuggestPayload(BaseModel):
    assistant_id: Optional[str] = None
    patient_id: Optional[str] = None
    appointment_id: Optional[str] = None
    symptoms: str
    diagnosis: str
    patient_history: Optional[str] = None
    doctor_id: Optional[str] = None


class MedicationEdit(BaseModel):
    field: str
    value: Optional[str] = None


class SectionEdit(BaseModel):
    text: Optional[str] = None


def _assistant(request: Request, assistant_id: str) -> PrescriptionAssistant:
    assistant = request.app.state.assistants.get(assistant_id)
    if assistant is None:
        raise HTTPException(status_code=404, detail="Prescription session not found")
    return assistant


def _session(request: Request, assistant_id: str):
    assistant = _assistant(request, assistant_id)
    if assistant.session is None:
        raise HTTPException(status_code=409, detail="No suggestion to edit")
    return assistant.session


def _session_payload(request: Request, assistant: PrescriptionAssistant) -> dict:
    store: RecordStore = request.app.state.store
    session = assistant.session
    return {
        "assistant_id": assistant.id,
        "patient": patient_payload(store, assistant.patient) if assistant.patient else None,
        "context": session.context if session else None,
        "suggestion": session.suggestion.model_dump() if session else None,
    }


@router.post("/suggest")
async def suggest(payload: SuggestPayload, request: Request):
    store: RecordStore = request.app.state.store
    assistants = request.app.state.assistants

    if payload.patient_id:
        patient = store.get_patient(payload.patient_id)
    elif payload.appointment_id:
        appointment = store.get_appointment(payload.appointment_id)
        patient = store.patient_for_appointment(appointment) if appointment else None
    else:
        patient = None
    if patient is None:
        raise HTTPException(status_code=404, detail="Select a patient or appointment first")

    doctor_name = None
    if payload.doctor_id:
        doctor = request.app.state.roster.get(payload.doctor_id)
        doctor_name = doctor.name if doctor else None

    assistant = assistants.get(payload.assistant_id) if payload.assistant_id else None
    if assistant is None:
        assistant = PrescriptionAssistant(request.app.state.suggester)
        assistants[assistant.id] = assistant
    if assistant.patient is None or assistant.patient.id != patient.id:
        assistant.select_patient(patient)

    result = await assistant.generate(
        symptoms=payload.symptoms,
        diagnosis=payload.diagnosis,
        patient_history=payload.patient_history,
        doctor_name=doctor_name,
    )
    if result.status is GenerationStatus.COLLABORATOR_UNAVAILABLE:
        raise HTTPException(status_code=502, detail="Failed to generate prescription suggestion. Please try again.")
    if result.status is GenerationStatus.STALE:
        raise HTTPException(status_code=409, detail="A newer suggestion request replaced this one")
    return _session_payload(request, assistant)


@router.get("/{assistant_id}")
async def get_suggestion(assistant_id: str, request: Request):
    return _session_payload(request, _assistant(request, assistant_id))


@router.patch("/{assistant_id}/medications/{index}")
async def edit_medication(assistant_id: str, index: int, payload: MedicationEdit, request: Request):
    session = _session(request, assistant_id)
    try:
        session.edit_medication(index, payload.field, payload.value)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _session_payload(request, _assistant(request, assistant_id))


@router.post("/{assistant_id}/medications")
async def add_medication(assistant_id: str, request: Request):
    _session(request, assistant_id).add_medication()
    return _session_payload(request, _assistant(request, assistant_id))


@router.delete("/{assistant_id}/medications/{index}")
async def remove_medication(assistant_id: str, index: int, request: Request):
    try:
        _session(request, assistant_id).remove_medication(index)
    except IndexError as e:
        raise HTTPException(status_code=404, detail=str(e))
    return _session_payload(request, _assistant(request, assistant_id))


@router.put("/{assistant_id}/sections/{section}")
async def edit_section(assistant_id: str, section: str, payload: SectionEdit, request: Request):
    try:
        _session(request, assistant_id).set_section(section, payload.text)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return _session_payload(request, _assistant(request, assistant_id))


@router.post("/{assistant_id}/commit")
async def commit(assistant_id: str, request: Request):
    assistant = _assistant(request, assistant_id)
    store: RecordStore = request.app.state.store
    result = await assistant.commit(store)
    if result.status is CommitStatus.COMMITTED:
        return {"status": "ok", "patient": patient_payload(store, result.patient), "prescription": result.text}
    if result.status is CommitStatus.PROMOTION_PARTIAL_FAILURE:
        # The patient now exists; a retry appends to it instead of creating another
        return JSONResponse(
            {
                "status": result.status.value,
                "detail": "Patient saved but the prescription was not. Please retry saving.",
                "patient_id": result.patient.id,
            },
            status_code=503,
        )
    if result.status is CommitStatus.STORE_UNAVAILABLE:
        raise HTTPException(status_code=503, detail="Could not save the prescription. Please retry.")
    raise HTTPException(status_code=400, detail=result.error)


@router.delete("/{assistant_id}")
async def close(assistant_id: str, request: Request):
    assistant = request.app.state.assistants.pop(assistant_id, None)
    if assistant is not None:
        assistant.close()
    return {"status": "ok"}
