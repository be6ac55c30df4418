"""Capability set every scale backend implements."""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
import logging

from ..errors import PermissionDenied
from ..models import ScaleDevice, WeightSample
from ..permissions import BLUETOOTH_PERMISSIONS, GrantAllPermissions, PermissionProvider

_LOGGER = logging.getLogger(__name__)

DeviceFoundCallback = Callable[[ScaleDevice], None]
WeightUpdateCallback = Callable[[WeightSample], None]
LinkLostCallback = Callable[[], None]


class ScaleBackend(ABC):
    """A scale transport: discovery, connection and weight delivery.

    Backends push every reading through the ``on_weight_update`` callback
    given to :meth:`connect`, and report an unexpected drop of the link
    through ``on_link_lost``. They raise the categories from
    :mod:`baker_scale.errors`, never transport-specific exceptions.
    """

    identifier: str = ""
    requires_permissions: bool = False

    def __init__(self, permissions: PermissionProvider | None = None) -> None:
        self._permissions = permissions or GrantAllPermissions()
        self._device: ScaleDevice | None = None

    @property
    def device(self) -> ScaleDevice | None:
        """The connected device, if any."""
        return self._device

    @property
    @abstractmethod
    def is_connected(self) -> bool:
        """Whether the backend currently holds a live link."""

    async def request_permissions(self) -> None:
        """Ask for scan/connect/location permissions when the transport needs them.

        Raises:
            PermissionDenied: If any permission is refused.
        """
        if not self.requires_permissions:
            return
        try:
            await self._permissions.request_permissions(BLUETOOTH_PERMISSIONS)
        except PermissionDenied:
            raise
        except Exception as ex:
            raise PermissionDenied(str(ex)) from ex

    async def set_active(self, active: bool) -> None:
        """Prepare the backend for use while a screen needs the scale.

        Permission problems are logged; the following scan reports them to
        the caller.
        """
        if not active:
            return
        try:
            await self.request_permissions()
        except PermissionDenied as err:
            _LOGGER.warning("%s backend permissions not granted: %s", self.identifier, err)

    @abstractmethod
    async def start_scan(self, on_found: DeviceFoundCallback) -> None:
        """Start discovery; ``on_found`` is called for each matching scale."""

    @abstractmethod
    async def stop_scan(self) -> None:
        """Stop discovery. Safe to call when no scan is running."""

    @abstractmethod
    async def connect(
        self,
        device_id: str,
        on_weight_update: WeightUpdateCallback,
        on_link_lost: LinkLostCallback | None = None,
    ) -> ScaleDevice:
        """Connect to ``device_id`` and start delivering weight samples.

        Raises:
            AlreadyConnected: If a link is already held.
            ConnectTimeout: If the link is not up within the timeout.
            LinkLost: If the link could not be established.
        """

    @abstractmethod
    async def disconnect(self) -> None:
        """Release the link. Safe to call when not connected."""

    @abstractmethod
    async def read_weight(self, device: ScaleDevice) -> float:
        """Return the current weight of ``device``.

        Raises:
            NotConnected: If ``device`` is not the connected device.
        """
