"""Single-shot speech capture.

A session goes ``idle -> listening -> (transcribed | no_speech |
capture_error) -> idle``. Each ``capture()`` yields at most one transcript.
``stop()`` while listening is a user cancel and goes straight back to idle.

Only one capture should be running at a time. The session logs and ignores a
second ``capture()`` but callers are expected to disable their start control
while listening rather than rely on that.
"""
import asyncio
import logging
from enum import Enum
from dataclasses import dataclass
from typing import Callable, Optional, Protocol


logger = logging.getLogger(__name__)


class CaptureState(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    TRANSCRIBED = "transcribed"
    NO_SPEECH = "no_speech"
    CAPTURE_ERROR = "capture_error"


@dataclass
class SpeechEvent:
    """What a device reports for one listen: a transcript, silence or an error."""

    kind: CaptureState
    transcript: str = ""
    error: Optional[str] = None


@dataclass
class CaptureOutcome:
    state: CaptureState
    transcript: Optional[str] = None
    error: Optional[str] = None
    cancelled: bool = False


class SpeechDevice(Protocol):
    async def listen(self) -> SpeechEvent:
        ...

    def stop(self) -> None:
        ...


class QueueSpeechDevice:
    """Device fed by a transport (web socket, telephony webhook).

    The transport does the actual recognition and pushes the finalized result.
    """

    def __init__(self):
        self._events: asyncio.Queue = asyncio.Queue()

    async def listen(self) -> SpeechEvent:
        return await self._events.get()

    def stop(self) -> None:
        # Anything pushed for the cancelled session must not leak into the next one
        while not self._events.empty():
            self._events.get_nowait()

    def push_transcript(self, text: str) -> None:
        self._events.put_nowait(SpeechEvent(CaptureState.TRANSCRIBED, transcript=text))

    def push_no_speech(self) -> None:
        self._events.put_nowait(SpeechEvent(CaptureState.NO_SPEECH))

    def push_error(self, message: str) -> None:
        self._events.put_nowait(SpeechEvent(CaptureState.CAPTURE_ERROR, error=message))


class VoiceCaptureSession:
    def __init__(self, device: SpeechDevice, on_state_change: Optional[Callable[[CaptureState], None]] = None):
        self.device = device
        self.on_state_change = on_state_change
        self.state = CaptureState.IDLE
        self.last_outcome: Optional[CaptureOutcome] = None
        self._listen_task: Optional[asyncio.Task] = None
        self._stop_requested = False

    @property
    def is_listening(self) -> bool:
        return self.state is CaptureState.LISTENING

    def _set_state(self, state: CaptureState) -> None:
        self.state = state
        logger.info(f"Voice capture state: {state.value}")
        if self.on_state_change:
            self.on_state_change(state)

    def _finish(self, outcome: CaptureOutcome) -> CaptureOutcome:
        if not outcome.cancelled:
            self._set_state(outcome.state)
        self._set_state(CaptureState.IDLE)
        self.last_outcome = outcome
        return outcome

    async def capture(self) -> Optional[CaptureOutcome]:
        """Listen once and return the outcome. Returns None if already listening."""
        if self.is_listening:
            logger.warning("Capture requested while already listening; ignoring")
            return None

        self._stop_requested = False
        self._set_state(CaptureState.LISTENING)
        self._listen_task = asyncio.ensure_future(self.device.listen())
        try:
            event = await self._listen_task
        except asyncio.CancelledError:
            if not self._stop_requested:
                self._set_state(CaptureState.IDLE)
                raise
            outcome = CaptureOutcome(CaptureState.IDLE, cancelled=True)
            self.last_outcome = outcome
            return outcome
        except Exception as e:
            logger.error(f"Speech capture error: {e}")
            return self._finish(CaptureOutcome(CaptureState.CAPTURE_ERROR, error=str(e)))
        finally:
            self._listen_task = None

        if event.kind is CaptureState.CAPTURE_ERROR:
            logger.error(f"Speech capture error: {event.error}")
            return self._finish(CaptureOutcome(CaptureState.CAPTURE_ERROR, error=event.error or "Unknown error"))
        transcript = (event.transcript or "").strip()
        if event.kind is CaptureState.NO_SPEECH or not transcript:
            return self._finish(CaptureOutcome(CaptureState.NO_SPEECH))
        return self._finish(CaptureOutcome(CaptureState.TRANSCRIBED, transcript=transcript))

    def stop(self) -> bool:
        """Cancel a running capture. Returns False when there was nothing to stop."""
        if not self.is_listening:
            return False
        self._stop_requested = True
        self.device.stop()
        if self._listen_task is not None:
            self._listen_task.cancel()
        self._set_state(CaptureState.IDLE)
        return True
