"""Permission collaborator consulted before any Bluetooth scan."""

from __future__ import annotations

import logging
from typing import Protocol

_LOGGER = logging.getLogger(__name__)

PERMISSION_BLUETOOTH_SCAN = "bluetooth_scan"
PERMISSION_BLUETOOTH_CONNECT = "bluetooth_connect"
PERMISSION_FINE_LOCATION = "fine_location"

BLUETOOTH_PERMISSIONS = (
    PERMISSION_BLUETOOTH_SCAN,
    PERMISSION_BLUETOOTH_CONNECT,
    PERMISSION_FINE_LOCATION,
)


class PermissionProvider(Protocol):
    """Grants platform permissions.

    ``request_permissions`` returns normally when every permission is granted
    and raises :class:`~baker_scale.errors.PermissionDenied` otherwise.
    """

    async def request_permissions(self, permissions: tuple[str, ...]) -> None: ...


class GrantAllPermissions:
    """Provider for hosts without runtime permission prompts (desktop Linux, macOS)."""

    async def request_permissions(self, permissions: tuple[str, ...]) -> None:
        _LOGGER.debug("Permissions implicitly granted: %s", ", ".join(permissions))
