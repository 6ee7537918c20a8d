import asyncio
import logging
from dataclasses import dataclass
from typing import Optional
from fastapi import APIRouter, HTTPException, Request, Response
from twilio.request_validator import RequestValidator
from twilio.twiml.voice_response import VoiceResponse
from medisync.config import TWILIO_AUTH_TOKEN
from medisync.errors import StoreError
from medisync.voice.capture import CaptureState, QueueSpeechDevice, VoiceCaptureSession
from medisync.voice.reconcile import BookingError, IntakeSession, TranscriptReconciler, submit_booking


logger = logging.getLogger(__name__)

if not TWILIO_AUTH_TOKEN:
    logger.warning("Twilio auth token not found. Webhook signatures will not be checked.")

router = APIRouter(prefix="/phone", tags=["phone"])

VOICE = "Polly.Joanna"
LANGUAGE = "en-US"


@dataclass
class PhoneCall:
    """Intake state for one call, kept between Twilio webhooks."""

    device: QueueSpeechDevice
    capture: VoiceCaptureSession
    intake: IntakeSession
    task: Optional[asyncio.Task] = None
    generation: int = 0


def twiml(resp: VoiceResponse) -> Response:
    return Response(content=str(resp), media_type="application/xml")


async def verified_form(request: Request):
    form = await request.form()
    if TWILIO_AUTH_TOKEN:
        validator = RequestValidator(TWILIO_AUTH_TOKEN)
        signature = request.headers.get("X-Twilio-Signature", "")
        if not validator.validate(str(request.url), dict(form), signature):
            logger.warning("Rejected phone webhook with a bad signature")
            raise HTTPException(status_code=403, detail="Invalid signature")
    return form


def start_listening(call: PhoneCall, clear_fields: bool) -> None:
    call.generation = call.intake.begin_capture(clear_fields=clear_fields)
    call.task = asyncio.ensure_future(call.capture.capture())


def gather(resp: VoiceResponse, prompt: str) -> None:
    step = resp.gather(
        input="speech",
        action="/api/phone/process_speech",
        method="POST",
        timeout=3,
        language=LANGUAGE,
    )
    step.say(prompt, language=LANGUAGE, voice=VOICE)
    # If no input received, hang up politely
    resp.redirect("/api/phone/no_input", method="POST")


def end_call(request: Request, call_sid: str) -> None:
    call = request.app.state.phone_calls.pop(call_sid, None)
    if call is not None:
        call.intake.close()
        call.capture.stop()


@router.post("/voice")
async def voice(request: Request):
    """Handle incoming voice calls"""
    form = await verified_form(request)
    call_sid = form.get("CallSid", "")
    logger.info(f"Incoming call from {form.get('From', '')} with CallSid {call_sid}")

    state = request.app.state
    device = QueueSpeechDevice()
    call = PhoneCall(
        device=device,
        capture=VoiceCaptureSession(device),
        intake=IntakeSession(TranscriptReconciler(state.extractor, state.roster.doctors)),
    )
    state.phone_calls[call_sid] = call
    start_listening(call, clear_fields=True)

    resp = VoiceResponse()
    gather(resp, "Hello! This is the clinic front desk. Who is the appointment for, what are the symptoms, "
                 "and which doctor and time would you like?")
    return twiml(resp)


@router.post("/process_speech")
async def process_speech(request: Request):
    """Process speech input from caller"""
    form = await verified_form(request)
    call_sid = form.get("CallSid", "")
    speech_result = (form.get("SpeechResult") or "").strip()
    logger.info(f"Speech result: {speech_result}")

    resp = VoiceResponse()
    call = request.app.state.phone_calls.get(call_sid)
    if call is None or call.task is None:
        resp.redirect("/api/phone/voice", method="POST")
        return twiml(resp)

    if speech_result:
        call.device.push_transcript(speech_result)
    else:
        call.device.push_no_speech()
    outcome = await call.task

    if outcome is None or outcome.state is not CaptureState.TRANSCRIBED:
        start_listening(call, clear_fields=False)
        gather(resp, "Sorry, I didn't understand what you said. Please try again.")
        return twiml(resp)

    result = await call.intake.handle_transcript(outcome.transcript, generation=call.generation)
    try:
        appointment = await submit_booking(call.intake.form, request.app.state.roster, request.app.state.store)
    except BookingError as e:
        # Keep what we have and ask for the rest
        start_listening(call, clear_fields=False)
        gather(resp, " ".join([*result.notifications, str(e)]))
        return twiml(resp)
    except StoreError as e:
        logger.error(f"Error saving appointment: {e}")
        resp.say("Sorry, there was an issue saving your appointment. Please call again later.",
                 language=LANGUAGE, voice=VOICE)
        resp.hangup()
        end_call(request, call_sid)
        return twiml(resp)

    when = appointment.appointment_date.strftime("%B %d at %I:%M %p")
    resp.say(f"Thank you. {appointment.patient_name} is booked with {appointment.doctor_name} on {when}. Goodbye!",
             language=LANGUAGE, voice=VOICE)
    resp.hangup()
    end_call(request, call_sid)
    return twiml(resp)


@router.post("/no_input")
async def no_input(request: Request):
    """Caller went quiet"""
    form = await verified_form(request)
    end_call(request, form.get("CallSid", ""))
    resp = VoiceResponse()
    resp.say("We couldn't hear you. Please call again later.", language=LANGUAGE, voice=VOICE)
    resp.hangup()
    return twiml(resp)
