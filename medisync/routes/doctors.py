import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel
from medisync.services.record_store import RecordStore
from medisync.utils.time_utils import utc_now


logger = logging.getLogger(__name__)

router = APIRouter(tags=["doctors"])


class SummaryRequest(BaseModel):
    shift_date: Optional[date] = None


@router.get("/doctors")
async def list_doctors(request: Request):
    return request.app.state.roster.doctors


@router.get("/doctors/by-email")
async def doctor_for_account(email: str, request: Request):
    doctor = request.app.state.roster.find_by_email(email)
    if doctor is None:
        raise HTTPException(status_code=404, detail="No doctor profile for this account")
    return doctor


@router.get("/doctors/{doctor_id}/appointments")
async def doctor_appointments(doctor_id: str, request: Request):
    if request.app.state.roster.get(doctor_id) is None:
        raise HTTPException(status_code=404, detail="Doctor not found")
    store: RecordStore = request.app.state.store
    return store.get_appointments_for_doctor(doctor_id)


@router.post("/doctors/{doctor_id}/summary")
async def shift_summary(doctor_id: str, payload: SummaryRequest, request: Request):
    doctor = request.app.state.roster.get(doctor_id)
    if doctor is None:
        raise HTTPException(status_code=404, detail="Doctor not found")
    store: RecordStore = request.app.state.store
    shift_date = payload.shift_date or utc_now().date()

    seen = {}
    for appointment in store.get_appointments_for_doctor(doctor_id):
        if appointment.appointment_date.date() != shift_date:
            continue
        patient = store.patient_for_appointment(appointment)
        seen.setdefault(patient.id, patient)

    logger.info(f"Summarizing {len(seen)} patients for {doctor.name} on {shift_date}")
    summary = await request.app.state.summarizer.summarize(
        doctor.name, shift_date.strftime("%Y-%m-%d"), list(seen.values())
    )
    return summary
