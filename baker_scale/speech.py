"""Serialized, throttled voice output on top of a single speech engine."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
import logging
import time
from typing import Any, Protocol

from .config import speech_settings
from .const import (
    CONF_LANGUAGE,
    CONF_MAX_POLLS,
    CONF_PITCH,
    CONF_POLL_INTERVAL,
    CONF_RATE,
    CONF_REPEAT_INTERVAL,
    CONF_SEQUENCE_DELAY,
    CONF_SETTLE_DELAY,
    CONF_WORD_PAUSE,
)

_LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class Voice:
    """A voice offered by the speech engine."""

    identifier: str
    name: str = ""
    language: str = ""


@dataclass(frozen=True)
class SpeechOptions:
    """Per-utterance engine options."""

    language: str = "en-US"
    pitch: float = 1.0
    rate: float = 0.8
    voice: str | None = None


class SpeechEngine(Protocol):
    """The raw text-to-speech primitive.

    ``speak`` starts one utterance and returns immediately; completion is
    observed through ``is_speaking``.
    """

    def speak(self, text: str, options: SpeechOptions) -> None: ...

    async def is_speaking(self) -> bool: ...

    def stop(self) -> None: ...

    async def get_voices(self) -> list[Voice]: ...


def select_preferred_voice(voices: Iterable[Voice]) -> Voice | None:
    """Return the first English voice whose identifier suggests a female voice."""
    for voice in voices:
        if voice.language.lower().startswith("en") and "female" in voice.identifier.lower():
            return voice
    return None


class SpeechScheduler:
    """Single queue in front of the speech engine.

    Utterances are spoken one at a time in the order they are accepted, word
    by word with a short pause. A phrase repeated within the repeat interval
    is dropped. Engine failures are logged and never raised to callers.
    """

    def __init__(
        self,
        engine: SpeechEngine,
        settings: dict[str, Any] | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the scheduler.

        Args:
            engine: The speech engine all voice output goes through.
            settings: Overrides for the speech settings schema.
            clock: Monotonic time source used for repeat suppression.
        """
        self._engine = engine
        self._settings = speech_settings(settings)
        self._clock = clock
        self._lock = asyncio.Lock()
        self._last_spoken: dict[str, float] = {}
        self._pending: dict[str, int] = {}
        self._generation = 0
        self._voice_resolved = False
        self.preferred_voice: Voice | None = None

    @property
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    @property
    def default_options(self) -> SpeechOptions:
        return SpeechOptions(
            language=self._settings[CONF_LANGUAGE],
            pitch=self._settings[CONF_PITCH],
            rate=self._settings[CONF_RATE],
            voice=self.preferred_voice.identifier if self.preferred_voice else None,
        )

    async def initialize(self) -> None:
        """Resolve the preferred voice once; later calls are no-ops."""
        if self._voice_resolved:
            return
        self._voice_resolved = True
        try:
            voices = await self._engine.get_voices()
        except Exception as ex:
            _LOGGER.warning("Could not list speech voices, using default: %s", ex)
            return
        self.preferred_voice = select_preferred_voice(voices)
        _LOGGER.debug(
            "Preferred voice: %s",
            self.preferred_voice.identifier if self.preferred_voice else "engine default",
        )

    async def speak(self, text: str, options: SpeechOptions | None = None) -> bool:
        """Queue ``text`` and wait until it has been spoken.

        Args:
            text: Phrase to speak. Empty or blank text is ignored.
            options: Engine options; defaults to the configured voice settings.

        Returns:
            True if the phrase was spoken to the end, False if it was empty,
            suppressed as a repeat, cancelled by :meth:`stop` or the engine failed.
        """
        if not text or not text.strip():
            return False

        now = self._clock()
        interval = self._settings[CONF_REPEAT_INTERVAL]
        self._last_spoken = {
            phrase: spoken_at
            for phrase, spoken_at in self._last_spoken.items()
            if now - spoken_at < interval
        }
        generation = self._generation
        # queued phrases count as spoken until stop() cancels them
        if text in self._last_spoken or self._pending.get(text) == generation:
            _LOGGER.debug("Suppressing repeated phrase %r", text)
            return False
        self._pending[text] = generation
        try:
            async with self._lock:
                if generation != self._generation:
                    return False
                if not await self._deliver(text, options, generation):
                    return False
                self._last_spoken[text] = self._clock()
                return True
        finally:
            if self._pending.get(text) == generation:
                del self._pending[text]

    async def _deliver(
        self, text: str, options: SpeechOptions | None, generation: int
    ) -> bool:
        await self.initialize()
        if options is None:
            options = self.default_options
        elif options.voice is None and self.preferred_voice is not None:
            options = replace(options, voice=self.preferred_voice.identifier)
        await self.wait_until_done()
        for index, word in enumerate(text.split()):
            if index:
                await asyncio.sleep(self._settings[CONF_WORD_PAUSE])
            if generation != self._generation:
                _LOGGER.debug("Utterance %r cancelled", text)
                return False
            try:
                self._engine.speak(word, options)
            except Exception as ex:
                _LOGGER.warning("Speech engine failed on %r: %s", text, ex)
                return False
            await self.wait_until_done()
        return generation == self._generation

    async def wait_until_done(self) -> bool:
        """Wait for the engine to go quiet, bounded by the poll budget.

        Returns:
            True once the engine reported idle, False if it stayed busy past
            the timeout or could not be queried.
        """
        poll_interval = self._settings[CONF_POLL_INTERVAL]
        max_polls = self._settings[CONF_MAX_POLLS]
        for _ in range(max_polls):
            try:
                speaking = await self._engine.is_speaking()
            except Exception as ex:
                _LOGGER.warning("Could not query speech engine state: %s", ex)
                return False
            if not speaking:
                await asyncio.sleep(self._settings[CONF_SETTLE_DELAY])
                return True
            await asyncio.sleep(poll_interval)
        _LOGGER.warning(
            "Speech engine still busy after %.1f s, continuing",
            poll_interval * max_polls,
        )
        return False

    def stop(self) -> None:
        """Cancel the current utterance and everything queued behind it."""
        self._generation += 1
        try:
            self._engine.stop()
        except Exception as ex:
            _LOGGER.warning("Error stopping speech engine: %s", ex)

    async def speak_sequence(self, items: Iterable[str]) -> None:
        """Speak ``Step N: <item>`` for each item, strictly one after another."""
        generation = self._generation
        for index, item in enumerate(items):
            if index:
                await asyncio.sleep(self._settings[CONF_SEQUENCE_DELAY])
            if generation != self._generation:
                return
            await self.speak(f"Step {index + 1}: {item}")

    async def announce_weight(
        self, ingredient: str, weight: float, unit: str = "grams"
    ) -> bool:
        """Speak ``<ingredient>: <weight> <unit>``."""
        return await self.speak(f"{ingredient}: {weight:g} {unit}")
