import json
import asyncio
import logging
from datetime import date
from typing import Optional
from fastapi import APIRouter, Request, WebSocket, WebSocketDisconnect
from pydantic import BaseModel
from medisync.errors import StoreError
from medisync.models import AppointmentForm
from medisync.voice.capture import CaptureState, QueueSpeechDevice, VoiceCaptureSession
from medisync.voice.reconcile import (
    BookingError,
    IntakeSession,
    ReconcileOutcome,
    TranscriptReconciler,
    submit_booking,
)


logger = logging.getLogger(__name__)

router = APIRouter(tags=["intake"])


class TranscriptPayload(BaseModel):
    transcript: str
    current_date: Optional[date] = None
    form: AppointmentForm = AppointmentForm()


def reconcile_payload(result) -> dict:
    return {
        "form": result.form.model_dump(mode="json") if result.form else None,
        "outcomes": [o.value for o in result.outcomes],
        "notifications": result.notifications,
        "fields_updated": result.fields_updated,
    }


@router.post("/api/intake/transcript")
async def reconcile_transcript(payload: TranscriptPayload, request: Request):
    """Merge one finalized transcript into the form the client sends along."""
    reconciler = TranscriptReconciler(request.app.state.extractor, request.app.state.roster.doctors)
    result = await reconciler.reconcile(payload.transcript, payload.current_date)
    result.form = result.apply_to(payload.form)
    return reconcile_payload(result)


@router.websocket("/ws/intake")
async def websocket_intake(websocket: WebSocket):
    """Voice booking over a web socket.

    The browser does speech recognition and reports each finalized result.
    Client messages: ``START``, ``STOP``, ``TRANSCRIPT: <text>``, ``NO_SPEECH``,
    ``ERROR: <message>``, ``FORM: <json>`` for manual edits, ``BOOK``.
    """
    await websocket.accept()
    logger.info("WebSocket connection accepted")

    state = websocket.app.state
    intake = IntakeSession(TranscriptReconciler(state.extractor, state.roster.doctors))
    device = QueueSpeechDevice()
    capture = VoiceCaptureSession(
        device,
        on_state_change=lambda s: asyncio.ensure_future(websocket.send_text(f"STATE: {s.value}")),
    )
    capture_task: Optional[asyncio.Task] = None

    async def send_form():
        await websocket.send_text(f"FORM: {intake.form.model_dump_json()}")

    async def run_capture():
        generation = intake.begin_capture()
        await send_form()
        outcome = await capture.capture()
        if outcome is None or outcome.cancelled:
            return
        if outcome.state is CaptureState.NO_SPEECH:
            await websocket.send_text("NOTICE: No speech detected. Please try speaking again.")
            return
        if outcome.state is CaptureState.CAPTURE_ERROR:
            await websocket.send_text(f"NOTICE: Speech recognition error: {outcome.error}")
            return

        await websocket.send_text(f"TRANSCRIPT: {outcome.transcript}")
        result = await intake.handle_transcript(outcome.transcript, generation=generation)
        if result.has(ReconcileOutcome.STALE):
            return
        for message in result.notifications:
            await websocket.send_text(f"NOTICE: {message}")
        await send_form()

    await websocket.send_text(f"DOCTORS: {state.roster.to_json()}")
    await send_form()

    try:
        while True:
            data = await websocket.receive_text()
            logger.info(f"Received: {data}")

            if data == "START":
                if capture.is_listening:
                    await websocket.send_text("NOTICE: Already listening.")
                    continue
                capture_task = asyncio.create_task(run_capture())
            elif data == "STOP":
                capture.stop()
            elif data.startswith("TRANSCRIPT: "):
                device.push_transcript(data[len("TRANSCRIPT: "):])
            elif data == "NO_SPEECH":
                device.push_no_speech()
            elif data.startswith("ERROR: "):
                device.push_error(data[len("ERROR: "):])
            elif data.startswith("FORM: "):
                try:
                    intake.update_form(**json.loads(data[len("FORM: "):]))
                except (ValueError, TypeError) as e:
                    await websocket.send_text(f"NOTICE: Invalid form update: {e}")
                await send_form()
            elif data == "BOOK":
                try:
                    appointment = await submit_booking(intake.form, state.roster, state.store)
                except BookingError as e:
                    await websocket.send_text(f"NOTICE: {e}")
                    continue
                except StoreError as e:
                    logger.error(f"Error saving appointment: {e}")
                    await websocket.send_text("NOTICE: Could not save the appointment. Please retry.")
                    continue
                await websocket.send_text(f"BOOKED: {appointment.model_dump_json()}")
                intake.reset()
                await send_form()
            else:
                await websocket.send_text(f"NOTICE: Unknown command {data!r}")

    except WebSocketDisconnect:
        logger.info("WebSocket connection closed")
    finally:
        intake.close()
        capture.stop()
        if capture_task is not None and not capture_task.done():
            capture_task.cancel()
