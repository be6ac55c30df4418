"""Settings schemas for the coordinator and the speech scheduler."""

from __future__ import annotations

from typing import Any

import voluptuous as vol

from .const import (
    CONF_AUTO_RECONNECT,
    CONF_CONNECT_TIMEOUT,
    CONF_HEALTH_CHECK_INTERVAL,
    CONF_LANGUAGE,
    CONF_MAX_POLLS,
    CONF_PITCH,
    CONF_POLL_INTERVAL,
    CONF_RATE,
    CONF_REPEAT_INTERVAL,
    CONF_SCALE_SERVICE,
    CONF_SCAN_TIMEOUT,
    CONF_SEQUENCE_DELAY,
    CONF_SETTLE_DELAY,
    CONF_STEP_DELAY,
    CONF_WORD_PAUSE,
    DEFAULT_CONNECT_TIMEOUT,
    DEFAULT_HEALTH_CHECK_INTERVAL,
    DEFAULT_SCALE_SERVICE,
    DEFAULT_SCAN_TIMEOUT,
    DEFAULT_SPEECH_LANGUAGE,
    DEFAULT_SPEECH_PITCH,
    DEFAULT_SPEECH_RATE,
    SCALE_SERVICES,
    SPEECH_MAX_POLLS,
    SPEECH_POLL_INTERVAL,
    SPEECH_REPEAT_INTERVAL,
    SPEECH_SEQUENCE_DELAY,
    SPEECH_SETTLE_DELAY,
    SPEECH_STEP_DELAY,
    SPEECH_WORD_PAUSE,
)

_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0))
_POSITIVE_SECONDS = vol.All(vol.Coerce(float), vol.Range(min=0, min_included=False))

SCALE_SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_SCALE_SERVICE, default=DEFAULT_SCALE_SERVICE): vol.In(
            SCALE_SERVICES
        ),
        vol.Required(
            CONF_CONNECT_TIMEOUT, default=DEFAULT_CONNECT_TIMEOUT
        ): _POSITIVE_SECONDS,
        vol.Required(CONF_SCAN_TIMEOUT, default=DEFAULT_SCAN_TIMEOUT): _POSITIVE_SECONDS,
        vol.Required(
            CONF_HEALTH_CHECK_INTERVAL, default=DEFAULT_HEALTH_CHECK_INTERVAL
        ): _POSITIVE_SECONDS,
        vol.Required(CONF_AUTO_RECONNECT, default=True): vol.Boolean(),
    }
)

SPEECH_SETTINGS_SCHEMA = vol.Schema(
    {
        vol.Required(CONF_RATE, default=DEFAULT_SPEECH_RATE): vol.All(
            vol.Coerce(float), vol.Range(min=0.1, max=2.0)
        ),
        vol.Required(CONF_PITCH, default=DEFAULT_SPEECH_PITCH): vol.All(
            vol.Coerce(float), vol.Range(min=0.5, max=2.0)
        ),
        vol.Required(CONF_LANGUAGE, default=DEFAULT_SPEECH_LANGUAGE): str,
        vol.Required(CONF_REPEAT_INTERVAL, default=SPEECH_REPEAT_INTERVAL): _SECONDS,
        vol.Required(CONF_WORD_PAUSE, default=SPEECH_WORD_PAUSE): _SECONDS,
        vol.Required(
            CONF_POLL_INTERVAL, default=SPEECH_POLL_INTERVAL
        ): _POSITIVE_SECONDS,
        vol.Required(CONF_MAX_POLLS, default=SPEECH_MAX_POLLS): vol.All(
            vol.Coerce(int), vol.Range(min=1)
        ),
        vol.Required(CONF_SETTLE_DELAY, default=SPEECH_SETTLE_DELAY): _SECONDS,
        vol.Required(CONF_SEQUENCE_DELAY, default=SPEECH_SEQUENCE_DELAY): _SECONDS,
        vol.Required(CONF_STEP_DELAY, default=SPEECH_STEP_DELAY): _SECONDS,
    }
)


def scale_settings(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return validated coordinator settings with defaults filled in.

    Raises:
        vol.Invalid: If any override is out of range or of the wrong type.
    """
    return SCALE_SETTINGS_SCHEMA(dict(overrides or {}))


def speech_settings(overrides: dict[str, Any] | None = None) -> dict[str, Any]:
    """Return validated speech settings with defaults filled in.

    Raises:
        vol.Invalid: If any override is out of range or of the wrong type.
    """
    return SPEECH_SETTINGS_SCHEMA(dict(overrides or {}))
