import asyncio
from types import SimpleNamespace

import pytest

from baker_scale import async_setup, async_unload
from baker_scale.event_bus import CONNECTION_STATUS
from baker_scale.models import ConnectionStatus
from baker_scale.speech import SpeechOptions
from baker_scale.tts import Pyttsx3Engine

from conftest import FAST_SPEECH, FakeBackend


@pytest.mark.anyio
async def test_setup_and_unload(store, engine):
    backend = FakeBackend()
    runtime = await async_setup(
        store,
        engine,
        speech_settings=FAST_SPEECH,
        backend_factories={"MOCK": lambda: backend},
    )
    statuses = []
    runtime.coordinator.subscribe_to_connection_status(statuses.append)
    announcer = runtime.create_announcer()

    await runtime.coordinator.connect_to_scale()
    await async_unload(runtime)

    assert runtime.speech.preferred_voice.name == "Kate"
    assert announcer.step is None
    assert statuses[-1] == ConnectionStatus.IDLE
    assert backend.calls[-1] == "disconnect"
    assert runtime.bus.listener_count(CONNECTION_STATUS) == 0


class FakeDriver:
    def __init__(self):
        self.properties = {}
        self.said = []
        self.stopped = False

    def setProperty(self, name, value):
        self.properties[name] = value

    def getProperty(self, name):
        return [
            SimpleNamespace(id="english-female", name="Zira", languages=[b"\x05en_US"]),
        ]

    def say(self, text):
        self.said.append(text)

    def runAndWait(self):
        pass

    def stop(self):
        self.stopped = True


@pytest.mark.anyio
async def test_pyttsx3_engine_runs_on_worker(monkeypatch):
    tts = Pyttsx3Engine()
    driver = FakeDriver()
    monkeypatch.setattr(tts, "_get_engine", lambda: driver)

    voices = await tts.get_voices()
    tts.speak("hello", SpeechOptions(rate=0.5, voice="english-female"))
    while await tts.is_speaking():
        await asyncio.sleep(0.01)
    tts.close()

    assert voices[0].language == "en-US"
    assert driver.said == ["hello"]
    assert driver.properties == {"rate": 100, "voice": "english-female"}
