"""Etekcity nutrition scale backend (GATT service FFF0, characteristic FFF1)."""

from __future__ import annotations

import logging

from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData

from ..const import (
    ETEKCITY_CHARACTERISTIC_UUID,
    ETEKCITY_DEVICE_NAME,
    ETEKCITY_NAME_PATTERN,
    ETEKCITY_SERVICE_UUID,
    SCALE_SERVICE_ETEKCITY,
    UNIT_GRAMS,
)
from ..errors import NotConnected, ScaleError, ScanTimeout
from ..models import ScaleDevice, WeightSample
from .base import DeviceFoundCallback, LinkLostCallback, WeightUpdateCallback
from .bluetooth import BluetoothScaleBackend

_LOGGER = logging.getLogger(__name__)

TARE_FRAME_LENGTH = 11
TARE_FRAME_PREFIX = b"\xa5\x02"
WEIGHT_FRAME_LENGTH = 16
WEIGHT_OFFSET = 11
UNIT_OFFSET = 13
STABLE_OFFSET = 15
STABLE_FLAG = 0x01

# unit byte -> (unit, divisor)
UNITS: dict[int, tuple[str, int]] = {
    0x00: ("oz", 100),
    0x01: ("oz", 100),
    0x02: (UNIT_GRAMS, 10),
    0x03: ("ml", 10),
    0x04: ("fl oz", 100),
}
DEFAULT_UNIT = (UNIT_GRAMS, 10)


def parse_etekcity_frame(data: bytes) -> WeightSample:
    """Decode one notification from the scale.

    An 11-byte ``A5 02`` frame is the tare button; a 16-byte frame carries
    the reading. Anything else decodes to an unstable zero.

    Examples:
        >>> parse_etekcity_frame(b"\xa5\x02" + bytes(9)).is_tare
        True
    """
    if len(data) == TARE_FRAME_LENGTH and data.startswith(TARE_FRAME_PREFIX):
        _LOGGER.debug("Tare frame: %s", data.hex())
        return WeightSample(value=0.0, unit=UNIT_GRAMS, is_tare=True)

    if len(data) != WEIGHT_FRAME_LENGTH:
        _LOGGER.warning("Invalid frame (%d bytes): %s", len(data), data.hex())
        return WeightSample(value=0.0, unit=UNIT_GRAMS)

    raw = int.from_bytes(data[WEIGHT_OFFSET : WEIGHT_OFFSET + 2], "little")
    unit, divisor = UNITS.get(data[UNIT_OFFSET], DEFAULT_UNIT)
    return WeightSample(
        value=raw / divisor,
        unit=unit,
        is_stable=data[STABLE_OFFSET] == STABLE_FLAG,
    )


class EtekcityScaleBackend(BluetoothScaleBackend):
    """Etekcity nutrition scale.

    The address of the last connected scale is remembered for the lifetime
    of the process. The next scan looks that address up directly and only
    falls back to a full scan when the scale no longer answers.
    """

    identifier = SCALE_SERVICE_ETEKCITY
    service_uuid = ETEKCITY_SERVICE_UUID
    characteristic_uuid = ETEKCITY_CHARACTERISTIC_UUID
    default_name = ETEKCITY_DEVICE_NAME

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.last_address: str | None = None

    def matches(self, device: BLEDevice, advertisement: AdvertisementData) -> bool:
        name = advertisement.local_name or device.name or ""
        return ETEKCITY_NAME_PATTERN in name

    def parse_weight(self, data: bytes) -> WeightSample:
        return parse_etekcity_frame(data)

    async def start_scan(self, on_found: DeviceFoundCallback) -> None:
        if self.last_address is not None:
            await self.request_permissions()
            if await self._is_reachable(self.last_address):
                _LOGGER.debug("Reusing last Etekcity scale %s", self.last_address)
                on_found(ScaleDevice(id=self.last_address, name=ETEKCITY_DEVICE_NAME))
                return
            _LOGGER.info(
                "Last Etekcity scale %s not reachable, scanning again", self.last_address
            )
            self.last_address = None
        await super().start_scan(on_found)

    async def _is_reachable(self, address: str) -> bool:
        self._discovered.pop(address, None)
        try:
            self._discovered[address] = await self._resolve_device(address)
        except ScanTimeout:
            return False
        return True

    async def connect(
        self,
        device_id: str,
        on_weight_update: WeightUpdateCallback,
        on_link_lost: LinkLostCallback | None = None,
    ) -> ScaleDevice:
        try:
            device = await super().connect(device_id, on_weight_update, on_link_lost)
        except ScaleError:
            if device_id == self.last_address:
                _LOGGER.warning(
                    "Reconnect to %s failed, forgetting it; make sure the scale is on",
                    device_id,
                )
                self.last_address = None
            raise
        self.last_address = device_id
        return device

    async def disconnect(self) -> None:
        self.last_address = None
        await super().disconnect()

    async def read_weight(self, device: ScaleDevice) -> float:
        # FFF1 is notify-only; the latest pushed frame is the current weight
        if not self.is_connected or self._device is None or self._device.id != device.id:
            raise NotConnected("Not connected to this device")
        return self._last_sample.value if self._last_sample else 0.0
