"""pyttsx3-backed speech engine.

pyttsx3 blocks in ``runAndWait``, so every engine call runs on one dedicated
worker thread and the asyncio side only ever sees futures.
"""

from __future__ import annotations

import asyncio
from concurrent.futures import Future, ThreadPoolExecutor
import logging
from typing import Any

from .speech import SpeechOptions, Voice

_LOGGER = logging.getLogger(__name__)

# pyttsx3 rates are words per minute; SpeechOptions.rate scales this
BASE_WORDS_PER_MINUTE = 200


def _voice_language(voice: Any) -> str:
    languages = getattr(voice, "languages", None) or []
    if not languages:
        return ""
    language = languages[0]
    if isinstance(language, bytes):
        language = language.decode("utf-8", errors="ignore")
    return str(language).lstrip("\x05").replace("_", "-")


class Pyttsx3Engine:
    """:class:`~baker_scale.speech.SpeechEngine` over the local pyttsx3 driver."""

    def __init__(self, driver_name: str | None = None) -> None:
        self._driver_name = driver_name
        self._executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="tts")
        self._engine: Any = None
        self._current: Future | None = None

    def _get_engine(self) -> Any:
        # Runs on the worker thread only
        if self._engine is None:
            import pyttsx3

            self._engine = pyttsx3.init(self._driver_name)
        return self._engine

    def _say(self, text: str, options: SpeechOptions) -> None:
        engine = self._get_engine()
        engine.setProperty("rate", int(BASE_WORDS_PER_MINUTE * options.rate))
        if options.voice:
            engine.setProperty("voice", options.voice)
        engine.say(text)
        engine.runAndWait()

    def _list_voices(self) -> list[Voice]:
        engine = self._get_engine()
        return [
            Voice(
                identifier=str(voice.id),
                name=str(getattr(voice, "name", "") or ""),
                language=_voice_language(voice),
            )
            for voice in engine.getProperty("voices") or []
        ]

    def speak(self, text: str, options: SpeechOptions) -> None:
        self._current = self._executor.submit(self._say, text, options)
        self._current.add_done_callback(self._log_failure)

    @staticmethod
    def _log_failure(future: Future) -> None:
        if future.cancelled():
            return
        error = future.exception()
        if error is not None:
            _LOGGER.warning("pyttsx3 utterance failed: %s", error)

    async def is_speaking(self) -> bool:
        return self._current is not None and not self._current.done()

    def stop(self) -> None:
        if self._engine is not None:
            self._engine.stop()

    async def get_voices(self) -> list[Voice]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(self._executor, self._list_voices)

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
