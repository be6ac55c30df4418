from __future__ import annotations

import pytest

from baker_scale.backends.base import ScaleBackend
from baker_scale.models import ScaleDevice, WeightSample
from baker_scale.speech import SpeechScheduler, Voice
from baker_scale.storage import MemoryStore

FAST_SPEECH = {
    "repeat_interval": 3.0,
    "word_pause": 0,
    "poll_interval": 0.001,
    "max_polls": 5,
    "settle_delay": 0,
    "sequence_delay": 0,
    "step_delay": 0,
}


class RecordingEngine:
    """Speech engine that records every word it is asked to say."""

    def __init__(self, voices=None, stuck=False):
        self.words = []
        self.options = []
        self.stop_calls = 0
        self.polls = 0
        self.stuck = stuck
        self.fail_on = None
        self._voices = voices or []

    @property
    def transcript(self):
        return " ".join(self.words)

    def speak(self, text, options):
        if self.fail_on is not None and text == self.fail_on:
            raise RuntimeError("engine crashed")
        self.words.append(text)
        self.options.append(options)

    async def is_speaking(self):
        self.polls += 1
        return self.stuck

    def stop(self):
        self.stop_calls += 1

    async def get_voices(self):
        return list(self._voices)


class FakeBackend(ScaleBackend):
    """Backend whose scan and connect outcomes are set by the test."""

    identifier = "FAKE"

    def __init__(self, device=None, connect_error=None, find=True):
        super().__init__()
        self.scan_device = device or ScaleDevice(id="fake-1", name="Fake Scale")
        self.connect_error = connect_error
        self.find = find
        self.calls = []
        self.linked = False
        self.on_weight_update = None
        self.on_link_lost = None

    @property
    def is_connected(self):
        return self.linked

    async def start_scan(self, on_found):
        self.calls.append("start_scan")
        if self.find:
            on_found(self.scan_device)

    async def stop_scan(self):
        self.calls.append("stop_scan")

    async def connect(self, device_id, on_weight_update, on_link_lost=None):
        self.calls.append("connect")
        if self.connect_error is not None:
            raise self.connect_error
        self.linked = True
        self.on_weight_update = on_weight_update
        self.on_link_lost = on_link_lost
        self._device = ScaleDevice(id=device_id, name=self.scan_device.name)
        return self._device

    async def disconnect(self):
        self.calls.append("disconnect")
        self.linked = False
        self._device = None

    async def read_weight(self, device):
        return 0.0

    def emit(self, value, is_stable=False, is_tare=False):
        self.on_weight_update(
            WeightSample(value=value, is_stable=is_stable, is_tare=is_tare)
        )

    def drop(self):
        self.linked = False
        self._device = None
        self.on_link_lost()


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def engine():
    return RecordingEngine(
        voices=[
            Voice("com.apple.voice.en-US.male", "Fred", "en-US"),
            Voice("com.apple.voice.en-GB.female", "Kate", "en-GB"),
        ]
    )


@pytest.fixture
def speech(engine):
    return SpeechScheduler(engine, FAST_SPEECH)


@pytest.fixture
def store():
    return MemoryStore()
