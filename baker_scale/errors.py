"""Errors raised by scale backends and the coordinator."""

from __future__ import annotations


class ScaleError(Exception):
    """Base class for every scale error."""


class PermissionDenied(ScaleError):
    """Bluetooth scan/connect or location permission was not granted."""


class ScanTimeout(ScaleError):
    """No matching scale was discovered in time."""


class ConnectTimeout(ScaleError):
    """The connection attempt did not complete in time."""


class LinkLost(ScaleError):
    """The link to the scale dropped or could not be established."""


class AlreadyConnected(ScaleError):
    """The backend already holds a connection."""


class NotConnected(ScaleError):
    """The backend is not connected to the requested device."""


class BackendUnavailable(ScaleError):
    """The selected backend cannot run on this host."""


class ScaleConnectionError(ScaleError):
    """Connecting to the scale failed; the backend error is the ``__cause__``."""
