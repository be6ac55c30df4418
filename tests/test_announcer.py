import asyncio

import pytest

from baker_scale.announcer import (
    StepAnnouncer,
    build_instruction_line,
    select_progress_message,
)
from baker_scale.coordinator import ScaleCoordinator
from baker_scale.event_bus import WEIGHT_UPDATE
from baker_scale.models import IngredientStep, StepType, TareState, WeighingResult
from baker_scale.speech import SpeechScheduler

from conftest import FAST_SPEECH, FakeBackend

FLOUR = IngredientStep(
    id="1", name="flour", amount=100, unit="g", tolerance=5, require_tare=True
)
SUGAR = IngredientStep(id="2", name="sugar", amount=100, unit="g", tolerance=5)


@pytest.fixture
async def connected(store):
    backend = FakeBackend()
    coordinator = ScaleCoordinator(store, backend_factories={"MOCK": lambda: backend})
    await coordinator.connect_to_scale()
    return coordinator, backend


@pytest.mark.anyio
async def test_weight_is_held_back_until_tared(connected, speech, engine):
    coordinator, backend = connected
    events = []
    announcer = StepAnnouncer(
        coordinator,
        speech,
        on_weight_change=lambda s: events.append(s.value),
        on_tare=lambda: events.append("tared"),
    )
    announcer.set_step(FLOUR)
    announcer.start(announce=False)

    backend.emit(5)
    assert events == []
    assert announcer.tare_state == TareState.PENDING

    backend.emit(0, is_tare=True)
    assert events == ["tared"]
    assert announcer.tare_state == TareState.TARED

    backend.emit(50)
    assert events == ["tared", 50]

    await asyncio.sleep(0.05)
    assert engine.transcript.startswith("Please tare the scale")
    assert "Add more" in engine.transcript
    await announcer.stop()


@pytest.mark.anyio
async def test_tare_reminder_is_spoken_once_per_step(connected, speech, engine):
    coordinator, backend = connected
    announcer = StepAnnouncer(coordinator, speech)
    announcer.set_step(FLOUR)
    announcer.start(announce=False)

    backend.emit(5)
    backend.emit(8)
    await asyncio.sleep(0.05)
    assert engine.transcript == "Please tare the scale"

    announcer.set_step(FLOUR, index=1)
    assert announcer.tare_state == TareState.PENDING
    await announcer.stop()


@pytest.mark.anyio
async def test_progress_feedback(connected, speech, engine):
    coordinator, backend = connected
    announcer = StepAnnouncer(coordinator, speech)
    announcer.set_step(SUGAR)
    announcer.start(announce=False)

    backend.emit(50)
    await asyncio.sleep(0.02)
    backend.emit(103, is_stable=True)
    await asyncio.sleep(0.02)

    assert engine.transcript == "Add more Stop. Well done! Click Next"
    assert announcer.weight_reached
    assert announcer.result.is_within_tolerance
    await announcer.stop()


@pytest.mark.anyio
async def test_stop_releases_everything(connected, speech, engine):
    coordinator, backend = connected
    announcer = StepAnnouncer(coordinator, speech)
    announcer.set_step(SUGAR)
    announcer.start()

    await announcer.stop()
    await announcer.stop()
    backend.emit(50)
    await asyncio.sleep(0.02)

    assert coordinator.bus.listener_count(WEIGHT_UPDATE) == 0
    assert "Add more" not in engine.transcript
    assert engine.stop_calls == 2


@pytest.mark.anyio
async def test_step_introduction(connected, speech, engine):
    coordinator, _ = connected
    announcer = StepAnnouncer(coordinator, speech)
    announcer.set_step(FLOUR, index=0, is_last=False)

    await announcer.announce_step()

    assert engine.transcript == (
        "Let's start baking! Please tare the scale First ingredient "
        "100 g of flour Please add flour. Press next when ready."
    )
    assert announcer.instruction == "Please add flour. Press next when ready."


@pytest.mark.anyio
async def test_instruction_step_introduction(connected, speech, engine):
    coordinator, _ = connected
    step = IngredientStep(
        id="9",
        name="mix",
        step_type=StepType.INSTRUCTION,
        instruction_text="Mix everything",
    )
    announcer = StepAnnouncer(coordinator, speech)
    announcer.set_step(step, index=4, is_last=True)

    await announcer.announce_step()

    assert engine.transcript == "Next ingredient Mix everything. Press finish to complete."
    assert announcer.tare_state == TareState.NOT_REQUIRED


@pytest.mark.anyio
async def test_replay_instruction(connected, engine):
    coordinator, _ = connected
    now = [0.0]
    speech = SpeechScheduler(engine, FAST_SPEECH, clock=lambda: now[0])
    announcer = StepAnnouncer(coordinator, speech)
    assert not await announcer.replay_instruction()

    announcer.set_step(SUGAR, index=1, is_last=True)
    await announcer.announce_step()
    now[0] += 10
    assert await announcer.replay_instruction()

    assert engine.transcript.count("Please add sugar. Press finish to complete.") == 2


def test_weighable_default_instruction():
    step = IngredientStep(id="3", name="butter", step_type=StepType.WEIGHABLE)
    assert build_instruction_line(step, False) == (
        "Place butter on the scale. Press next when ready."
    )


@pytest.mark.parametrize(
    "result, is_stable, expected",
    [
        (WeighingResult(is_over_tolerance=True, progress=1.2), True, "Too much. Take some out"),
        (WeighingResult(is_within_tolerance=True, progress=1.0), True, "Stop. Well done! Click Next"),
        (WeighingResult(is_within_tolerance=True, progress=0.96), False, "Add slowly"),
        (WeighingResult(progress=0.85), False, "Add slowly"),
        (WeighingResult(progress=0.3), True, "Add more"),
        (WeighingResult(), False, None),
    ],
)
def test_message_priority(result, is_stable, expected):
    assert select_progress_message(result, is_stable) == expected
