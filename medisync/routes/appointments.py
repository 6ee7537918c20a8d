from fastapi import APIRouter, HTTPException, Request
from medisync.models import AppointmentForm, StatusUpdate
from medisync.routes.patients import patient_payload
from medisync.services.record_store import RecordStore
from medisync.voice.reconcile import BookingError, submit_booking


router = APIRouter(tags=["appointments"])


@router.post("/book-appointment", status_code=201)
async def book_appointment(payload: AppointmentForm, request: Request):
    try:
        appointment = await submit_booking(payload, request.app.state.roster, request.app.state.store)
    except BookingError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return {"status": "ok", "data": appointment}


@router.get("/appointments")
async def list_appointments(request: Request, refresh: bool = False):
    store: RecordStore = request.app.state.store
    if refresh:
        await store.refresh_appointments()
    return store.list_appointments()


@router.patch("/appointments/{appointment_id}/status")
async def set_status(appointment_id: str, payload: StatusUpdate, request: Request):
    store: RecordStore = request.app.state.store
    await store.set_appointment_status(appointment_id, payload.status)
    return {"status": "ok", "data": store.get_appointment(appointment_id)}


@router.get("/appointments/{appointment_id}/patient")
async def appointment_patient(appointment_id: str, request: Request):
    """Patient record behind an appointment; a temporary one if nobody matches."""
    store: RecordStore = request.app.state.store
    appointment = store.get_appointment(appointment_id)
    if appointment is None:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return patient_payload(store, store.patient_for_appointment(appointment))
