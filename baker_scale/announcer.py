"""Voice guidance and tare handling for the recipe step being weighed."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
import contextlib
import logging
from typing import Any

from .const import (
    CONF_STEP_DELAY,
    MSG_ADD_MORE,
    MSG_ADD_SLOWLY,
    MSG_INGREDIENT_INSTRUCTION,
    MSG_PERFECT_WEIGHT,
    MSG_PRESS_FINISH,
    MSG_PRESS_NEXT,
    MSG_START_BAKING,
    MSG_TARE_NEEDED,
    MSG_TOO_MUCH,
    ordinal_message,
)
from .coordinator import ScaleCoordinator
from .event_bus import Subscription
from .models import IngredientStep, StepType, TareState, WeighingResult, WeightSample
from .speech import SpeechScheduler
from .weighing import compute_weighing, parse_quantity

_LOGGER = logging.getLogger(__name__)

# Progress from which the user is told to slow down
SLOW_DOWN_PROGRESS = 0.8


def select_progress_message(result: WeighingResult, is_stable: bool) -> str | None:
    """Pick the feedback phrase for the current weighing state.

    Examples:
        >>> select_progress_message(WeighingResult(progress=0.5), False)
        'Add more'
        >>> select_progress_message(WeighingResult(), False) is None
        True
    """
    if result.is_over_tolerance:
        return MSG_TOO_MUCH
    if result.is_within_tolerance and is_stable:
        return MSG_PERFECT_WEIGHT
    if result.is_within_tolerance or result.progress >= SLOW_DOWN_PROGRESS:
        return MSG_ADD_SLOWLY
    if result.progress > 0:
        return MSG_ADD_MORE
    return None


def build_instruction_line(step: IngredientStep, is_last: bool) -> str:
    """Return the spoken instruction for ``step``, ending with what to press."""
    line = step.instruction_text.strip()
    if not line:
        if step.step_type == StepType.WEIGHT:
            line = f"{MSG_INGREDIENT_INSTRUCTION} {step.name}"
        elif step.step_type == StepType.WEIGHABLE:
            line = f"Place {step.name} on the scale"
        else:
            line = step.name
    return line + (MSG_PRESS_FINISH if is_last else MSG_PRESS_NEXT)


def _goal_line(step: IngredientStep) -> str:
    amount = parse_quantity(step.amount)
    if amount <= 0:
        return step.name
    return f"{amount:g} {step.unit} of {step.name}"


class StepAnnouncer:
    """Turns weight samples for the active step into spoken guidance.

    While a required tare is pending, weight is held back and the user is
    asked once to tare. After the tare (or when none is needed) every
    sample is forwarded to ``on_weight_change`` and a progress phrase is
    queued on the speech scheduler, which throttles repeats.
    """

    def __init__(
        self,
        coordinator: ScaleCoordinator,
        speech: SpeechScheduler,
        *,
        on_weight_change: Callable[[WeightSample], None] | None = None,
        on_tare: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the announcer.

        Args:
            coordinator: Source of weight updates.
            speech: Scheduler all voice output goes through.
            on_weight_change: Called with every sample let through the tare gate.
            on_tare: Called when the scale reports a tare.
        """
        self._coordinator = coordinator
        self._speech = speech
        self._on_weight_change = on_weight_change
        self._on_tare = on_tare
        self._subscription: Subscription | None = None
        self._tasks: set[asyncio.Task] = set()

        self._step: IngredientStep | None = None
        self._index = 0
        self._is_last = False
        self._instruction = ""
        self._tare_state = TareState.NOT_REQUIRED
        self._tare_announced = False
        self.current_weight: float = 0
        self.is_stable = False
        self.weight_reached = False

    @property
    def step(self) -> IngredientStep | None:
        return self._step

    @property
    def tare_state(self) -> TareState:
        return self._tare_state

    @property
    def instruction(self) -> str:
        """The last instruction line spoken by :meth:`announce_step`."""
        return self._instruction

    @property
    def result(self) -> WeighingResult:
        return compute_weighing(self._step, self.current_weight)

    def set_step(
        self, step: IngredientStep | None, index: int = 0, is_last: bool = False
    ) -> None:
        """Make ``step`` the active step and start a fresh tare cycle."""
        self._step = step
        self._index = index
        self._is_last = is_last
        self._instruction = ""
        self._tare_announced = False
        if step is not None and step.require_tare and step.step_type != StepType.INSTRUCTION:
            self._tare_state = TareState.PENDING
        else:
            self._tare_state = TareState.NOT_REQUIRED
        self.current_weight = 0
        self.is_stable = False
        self.weight_reached = False
        _LOGGER.debug(
            "Active step %s (tare %s)", step.name if step else None, self._tare_state
        )

    def _schedule(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        task = asyncio.get_running_loop().create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    def handle_sample(self, sample: WeightSample) -> None:
        """Apply the tare gate to one sample and queue any resulting phrase."""
        if sample.is_tare:
            self._tare_state = TareState.TARED
            _LOGGER.debug("Scale tared")
            if self._on_tare is not None:
                self._on_tare()
            return

        if self._tare_state == TareState.PENDING:
            if sample.value > 0 and not self._tare_announced:
                self._tare_announced = True
                self._schedule(self._speech.speak(MSG_TARE_NEEDED))
            return

        self.current_weight = sample.value
        self.is_stable = sample.is_stable
        if self._on_weight_change is not None:
            self._on_weight_change(sample)

        result = self.result
        if result.progress >= 1:
            self.weight_reached = True
        message = select_progress_message(result, sample.is_stable)
        if message is not None:
            self._schedule(self._speech.speak(message))

    async def announce_step(self) -> None:
        """Introduce the active step: greeting, tare reminder, goal, instruction."""
        step = self._step
        if step is None:
            return
        if self._index == 0:
            await self._speech.speak(MSG_START_BAKING)
        if step.step_type == StepType.WEIGHT and step.require_tare:
            await self._speech.speak(MSG_TARE_NEEDED)
        await self._speech.speak(ordinal_message(self._index))

        if step.step_type != StepType.INSTRUCTION:
            await self._speech.speak(_goal_line(step))
            await self._speech.wait_until_done()
            await asyncio.sleep(self._speech.settings[CONF_STEP_DELAY])

        self._instruction = build_instruction_line(step, self._is_last)
        await self._speech.speak(self._instruction)
        await self._speech.wait_until_done()

    async def replay_instruction(self) -> bool:
        """Speak the last instruction line again."""
        if not self._instruction:
            return False
        return await self._speech.speak(self._instruction)

    def start(self, announce: bool = True) -> None:
        """Listen for weight updates and, optionally, introduce the step."""
        if self._subscription is None:
            self._subscription = self._coordinator.subscribe_to_weight_updates(
                self.handle_sample
            )
        if announce:
            self._schedule(self.announce_step())

    async def stop(self) -> None:
        """Stop listening, cancel queued phrases and silence the speech engine."""
        if self._subscription is not None:
            self._subscription.unsubscribe()
            self._subscription = None
        tasks = list(self._tasks)
        self._tasks.clear()
        for task in tasks:
            task.cancel()
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self._speech.stop()
