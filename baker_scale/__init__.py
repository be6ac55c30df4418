"""Scale connection, weighing and voice guidance for the inclusive baker app."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Any

from .announcer import StepAnnouncer
from .const import DOMAIN
from .coordinator import ScaleCoordinator
from .event_bus import EventBus
from .speech import SpeechEngine, SpeechScheduler
from .storage import KeyValueStore

_LOGGER = logging.getLogger(__name__)

__all__ = [
    "DOMAIN",
    "ScaleRuntime",
    "async_setup",
    "async_unload",
]


@dataclass
class ScaleRuntime:
    """The explicitly owned instances shared by every screen of the app."""

    bus: EventBus
    coordinator: ScaleCoordinator
    speech: SpeechScheduler

    def create_announcer(self, **kwargs: Any) -> StepAnnouncer:
        """Return a step announcer wired to this runtime's coordinator and voice."""
        return StepAnnouncer(self.coordinator, self.speech, **kwargs)


async def async_setup(
    store: KeyValueStore,
    engine: SpeechEngine,
    *,
    scale_settings: dict[str, Any] | None = None,
    speech_settings: dict[str, Any] | None = None,
    **coordinator_kwargs: Any,
) -> ScaleRuntime:
    """Build the runtime, resolve the preferred voice and start health checks.

    Args:
        store: Persistence for the selected backend.
        engine: Text-to-speech engine used for all voice output.
        scale_settings: Overrides for the scale settings schema.
        speech_settings: Overrides for the speech settings schema.
        **coordinator_kwargs: Passed to :class:`ScaleCoordinator`
            (permissions, backend factories, Lefu SDK).

    Raises:
        voluptuous.Invalid: If any setting is invalid.
    """
    bus = EventBus()
    coordinator = ScaleCoordinator(
        store, bus, settings=scale_settings, **coordinator_kwargs
    )
    speech = SpeechScheduler(engine, speech_settings)
    await speech.initialize()
    await coordinator.async_start()
    _LOGGER.debug("%s runtime ready", DOMAIN)
    return ScaleRuntime(bus=bus, coordinator=coordinator, speech=speech)


async def async_unload(runtime: ScaleRuntime) -> None:
    """Stop voice output, disconnect the scale and release every listener."""
    runtime.speech.stop()
    await runtime.coordinator.async_stop()
    runtime.bus.clear()
    _LOGGER.debug("%s runtime unloaded", DOMAIN)
