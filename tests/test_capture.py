import asyncio
from medisync.voice.capture import CaptureState, QueueSpeechDevice, VoiceCaptureSession


class BrokenDevice:
    async def listen(self):
        raise RuntimeError("microphone unplugged")

    def stop(self):
        pass


def recording_session(device):
    states = []
    return VoiceCaptureSession(device, on_state_change=states.append), states


async def test_transcript_is_trimmed_and_session_returns_to_idle():
    device = QueueSpeechDevice()
    session, states = recording_session(device)
    device.push_transcript("  headache since monday ")

    outcome = await session.capture()

    assert outcome.state is CaptureState.TRANSCRIBED
    assert outcome.transcript == "headache since monday"
    assert states == [CaptureState.LISTENING, CaptureState.TRANSCRIBED, CaptureState.IDLE]
    assert session.state is CaptureState.IDLE
    assert session.last_outcome is outcome


async def test_blank_transcript_counts_as_no_speech():
    device = QueueSpeechDevice()
    session, _ = recording_session(device)
    device.push_transcript("   ")
    assert (await session.capture()).state is CaptureState.NO_SPEECH

    device.push_no_speech()
    assert (await session.capture()).state is CaptureState.NO_SPEECH


async def test_device_errors_become_capture_error():
    device = QueueSpeechDevice()
    session, states = recording_session(device)
    device.push_error("not-allowed")
    outcome = await session.capture()
    assert outcome.state is CaptureState.CAPTURE_ERROR
    assert outcome.error == "not-allowed"
    assert states[-2:] == [CaptureState.CAPTURE_ERROR, CaptureState.IDLE]

    session = VoiceCaptureSession(BrokenDevice())
    outcome = await session.capture()
    assert outcome.state is CaptureState.CAPTURE_ERROR
    assert "unplugged" in outcome.error


async def test_stop_cancels_listening():
    device = QueueSpeechDevice()
    session, states = recording_session(device)

    task = asyncio.ensure_future(session.capture())
    await asyncio.sleep(0)
    assert session.is_listening

    assert session.stop() is True
    outcome = await task
    assert outcome.cancelled
    assert session.state is CaptureState.IDLE
    assert CaptureState.TRANSCRIBED not in states
    assert session.stop() is False


async def test_second_capture_while_listening_is_ignored():
    device = QueueSpeechDevice()
    session, _ = recording_session(device)

    first = asyncio.ensure_future(session.capture())
    await asyncio.sleep(0)
    assert await session.capture() is None

    device.push_transcript("fever")
    assert (await first).transcript == "fever"


async def test_stop_discards_queued_results():
    device = QueueSpeechDevice()
    session, _ = recording_session(device)

    task = asyncio.ensure_future(session.capture())
    await asyncio.sleep(0)
    session.stop()
    await task
    device.push_transcript("late words")
    device.stop()

    task = asyncio.ensure_future(session.capture())
    await asyncio.sleep(0)
    device.push_transcript("fresh words")
    assert (await task).transcript == "fresh words"
