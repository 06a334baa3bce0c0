"""Tests for audio pipeline components (no hardware or models needed)."""
import asyncio
import sys
from types import SimpleNamespace

import numpy as np
import pytest

from audio.audio_capture import AudioCapture
from audio.listener import Listener
from audio.speaker import Speaker, parse_style
from audio.stt import CloudSpeechToText
from audio.vad import VADDetector
from audio.wake_word import WakeWordDetector

LOUD = (np.ones(16000) * 2000).astype(np.int16)
QUIET = np.zeros(16000, dtype=np.int16)


class FakeTTS:
    def __init__(self):
        self.calls = []

    async def synthesize(self, text, style=None):
        self.calls.append((text, style))
        return b"RIFF"


class FakePlayer:
    def __init__(self, block=False):
        self.block = block
        self.played = []
        self.stopped = False
        self._release = asyncio.Event()

    async def play(self, wav_bytes):
        self.played.append(wav_bytes)
        if self.block:
            await self._release.wait()

    async def stop(self):
        self.stopped = True
        self._release.set()


class FakeVAD:
    def __init__(self, audio):
        self.audio = audio

    async def capture_until_silence(self, audio_capture, stop_event, initial_wait=5.0):
        return self.audio


class FakeSTT:
    def __init__(self, text):
        self.text = text
        self.calls = 0

    async def transcribe(self, audio):
        self.calls += 1
        return self.text


class FakeCapture:
    def read_chunk(self):
        return np.zeros(1280, dtype=np.int16)


class FakeWakeModel:
    """Scores rise past the threshold after a few chunks."""

    def __init__(self, scores):
        self.scores = list(scores)
        self.prediction_buffer = {"hey_jarvis_v0.1": []}
        self.resets = 0

    def predict(self, chunk):
        self.prediction_buffer["hey_jarvis_v0.1"].append(self.scores.pop(0) if self.scores else 0.0)

    def reset(self):
        self.resets += 1
        self.prediction_buffer = {"hey_jarvis_v0.1": []}


class TestParseStyle:
    def test_no_marker(self):
        assert parse_style("Hello there.") == (None, "Hello there.")

    def test_leading_marker(self):
        assert parse_style("~cheerful~ Nice to meet you!") == ("cheerful", "Nice to meet you!")

    def test_trailing_marker(self):
        assert parse_style("See you soon. ~Calm~") == ("calm", "See you soon.")

    def test_tilde_inside_text_untouched(self):
        assert parse_style("It costs ~5 dollars") == (None, "It costs ~5 dollars")

    def test_marker_only(self):
        assert parse_style("~sad~") == ("sad", "")


class TestSpeaker:
    @pytest.mark.asyncio
    async def test_speaks_without_marker(self):
        tts, player = FakeTTS(), FakePlayer()
        await Speaker(tts, player).speak("~excited~ We did it!", asyncio.Event())

        assert tts.calls == [("We did it!", "excited")]
        assert player.played == [b"RIFF"]

    @pytest.mark.asyncio
    async def test_unknown_style_uses_default(self):
        tts = FakeTTS()
        await Speaker(tts, FakePlayer()).speak("~grumpy~ Fine.", asyncio.Event())
        assert tts.calls == [("Fine.", None)]

    @pytest.mark.asyncio
    async def test_stopped_before_speaking(self):
        tts, player = FakeTTS(), FakePlayer()
        stop = asyncio.Event()
        stop.set()
        await Speaker(tts, player).speak("Hello", stop)

        assert tts.calls == []
        assert player.played == []

    @pytest.mark.asyncio
    async def test_stop_interrupts_playback(self):
        player = FakePlayer(block=True)
        stop = asyncio.Event()

        speak = asyncio.create_task(Speaker(FakeTTS(), player).speak("A long story", stop))
        await asyncio.sleep(0.01)
        stop.set()
        await asyncio.wait_for(speak, timeout=1.0)

        assert player.stopped


class TestListener:
    @pytest.mark.asyncio
    async def test_returns_transcript(self):
        listener = Listener(FakeCapture(), FakeVAD(LOUD), FakeSTT("  What's the weather?  "))
        assert await listener.listen(asyncio.Event()) == "What's the weather?"

    @pytest.mark.asyncio
    async def test_no_speech(self):
        stt = FakeSTT("ignored")
        listener = Listener(FakeCapture(), FakeVAD(None), stt)
        assert await listener.listen(asyncio.Event()) == ""
        assert stt.calls == 0

    @pytest.mark.asyncio
    async def test_quiet_audio_skipped(self):
        stt = FakeSTT("ignored")
        listener = Listener(FakeCapture(), FakeVAD(QUIET), stt)
        assert await listener.listen(asyncio.Event()) == ""
        assert stt.calls == 0

    @pytest.mark.asyncio
    async def test_hallucination_filtered(self):
        listener = Listener(FakeCapture(), FakeVAD(LOUD), FakeSTT("Thanks for watching."))
        assert await listener.listen(asyncio.Event()) == ""

    @pytest.mark.asyncio
    async def test_goodbye_is_not_filtered(self):
        listener = Listener(FakeCapture(), FakeVAD(LOUD), FakeSTT("Goodbye."))
        assert await listener.listen(asyncio.Event()) == "Goodbye."

    @pytest.mark.asyncio
    async def test_cloud_falls_back_to_local(self):
        cloud, local = FakeSTT(""), FakeSTT("local text")
        listener = Listener(FakeCapture(), FakeVAD(LOUD), local, cloud_stt=cloud)
        assert await listener.listen(asyncio.Event()) == "local text"
        assert cloud.calls == 1 and local.calls == 1

    @pytest.mark.asyncio
    async def test_cloud_used_first(self):
        cloud, local = FakeSTT("cloud text"), FakeSTT("local text")
        listener = Listener(FakeCapture(), FakeVAD(LOUD), local, cloud_stt=cloud)
        assert await listener.listen(asyncio.Event()) == "cloud text"
        assert local.calls == 0


class TestWakeWordDetector:
    def _detector(self, tmp_path, scores):
        detector = WakeWordDetector(FakeCapture(), model_dir=tmp_path)
        detector._model = FakeWakeModel(scores)
        return detector

    @pytest.mark.asyncio
    async def test_detects_wake_word(self, tmp_path):
        detector = self._detector(tmp_path, [0.1, 0.2, 0.9])
        assert await detector.wait_for_wake_word(asyncio.Event())
        assert detector._model.resets == 1

    @pytest.mark.asyncio
    async def test_restartable(self, tmp_path):
        detector = self._detector(tmp_path, [0.9, 0.0, 0.95])
        assert await detector.wait_for_wake_word(asyncio.Event())
        assert await detector.wait_for_wake_word(asyncio.Event())
        assert detector._model.resets == 2

    @pytest.mark.asyncio
    async def test_stop_returns_false(self, tmp_path):
        detector = self._detector(tmp_path, [])
        stop = asyncio.Event()
        stop.set()
        assert not await detector.wait_for_wake_word(stop)

    def test_label_mapping(self, tmp_path):
        assert WakeWordDetector(FakeCapture(), tmp_path, "Hey Jarvis")._target_label == "hey_jarvis"
        assert WakeWordDetector(FakeCapture(), tmp_path, "ok robot")._target_label == "ok_robot"


class TestVAD:
    def _vad(self, speech_pattern):
        vad = VADDetector(silence_duration=0.1, max_duration=2.0)
        vad._model = SimpleNamespace(reset_states=lambda: None)
        pattern = list(speech_pattern)
        vad._is_speech = lambda window: pattern.pop(0) if pattern else False
        return vad

    @pytest.mark.asyncio
    async def test_stop_abandons_capture(self):
        stop = asyncio.Event()
        stop.set()
        assert await self._vad([True] * 10).capture_until_silence(FakeCapture(), stop) is None

    @pytest.mark.asyncio
    async def test_no_speech_times_out(self):
        audio = await self._vad([]).capture_until_silence(
            FakeCapture(), asyncio.Event(), initial_wait=0.5
        )
        assert audio is None

    @pytest.mark.asyncio
    async def test_speech_then_silence(self):
        audio = await self._vad([True] * 5).capture_until_silence(FakeCapture(), asyncio.Event())
        assert audio is not None
        assert audio.dtype == np.int16


class TestCloudSTT:
    def test_wav_container(self):
        wav = CloudSpeechToText.to_wav_bytes(QUIET)
        assert wav[:4] == b"RIFF"
        assert wav[8:12] == b"WAVE"

    @pytest.mark.asyncio
    async def test_no_key_returns_empty(self):
        assert await CloudSpeechToText(api_key="").transcribe(LOUD) == ""


class RejectingPyAudio:
    """PyAudio stand-in whose input device refuses every rate."""

    instances = []

    def __init__(self):
        self.rates = []
        self.terminated = False
        RejectingPyAudio.instances.append(self)

    def open(self, rate, **kwargs):
        self.rates.append(rate)
        raise OSError("Invalid sample rate")

    def terminate(self):
        self.terminated = True


class TestAudioCapture:
    def test_unopenable_device_releases_pyaudio(self, monkeypatch):
        RejectingPyAudio.instances.clear()
        fake = SimpleNamespace(paInt16=8, PyAudio=RejectingPyAudio)
        monkeypatch.setitem(sys.modules, "pyaudio", fake)

        capture = AudioCapture()
        with pytest.raises(RuntimeError):
            capture.read_chunk()

        pa = RejectingPyAudio.instances[0]
        assert pa.rates == [16000, 44100, 48000]
        assert pa.terminated
        assert capture._pa is None
        assert capture._stream is None
