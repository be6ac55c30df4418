"""Generic Bluetooth LE scale backend built on bleak."""

from __future__ import annotations

import asyncio
import logging
import struct

from bleak import BleakClient, BleakScanner
from bleak.backends.device import BLEDevice
from bleak.backends.scanner import AdvertisementData
from bleak.exc import BleakError
from bleak_retry_connector import close_stale_connections_by_address
from bluetooth_data_tools import human_readable_name

from ..const import (
    DEFAULT_CONNECT_TIMEOUT,
    GENERIC_WEIGHT_CHARACTERISTIC_UUID,
    GENERIC_WEIGHT_SERVICE_UUID,
    SCALE_SERVICE_BLUETOOTH,
    UNIT_GRAMS,
)
from ..errors import (
    AlreadyConnected,
    BackendUnavailable,
    ConnectTimeout,
    LinkLost,
    NotConnected,
    ScanTimeout,
)
from ..models import ScaleDevice, WeightSample
from ..permissions import PermissionProvider
from .base import (
    DeviceFoundCallback,
    LinkLostCallback,
    ScaleBackend,
    WeightUpdateCallback,
)

_LOGGER = logging.getLogger(__name__)


class BluetoothScaleBackend(ScaleBackend):
    """Any BLE scale exposing its weight as a little-endian float32.

    Subclasses narrow discovery with :meth:`matches` and replace the payload
    format with :meth:`parse_weight`.
    """

    identifier = SCALE_SERVICE_BLUETOOTH
    requires_permissions = True
    service_uuid = GENERIC_WEIGHT_SERVICE_UUID
    characteristic_uuid = GENERIC_WEIGHT_CHARACTERISTIC_UUID
    default_name = "Bluetooth Scale"

    def __init__(
        self,
        permissions: PermissionProvider | None = None,
        *,
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
        adapter: str | None = None,
    ) -> None:
        """Initialize the backend.

        Args:
            permissions: Consulted before every scan.
            connect_timeout: Seconds allowed for the link to come up.
            adapter: Bluetooth adapter to use (Linux only, e.g. ``hci1``).
        """
        super().__init__(permissions)
        self._connect_timeout = connect_timeout
        self._adapter = adapter
        self._scanner: BleakScanner | None = None
        self._discovered: dict[str, BLEDevice] = {}
        self._client: BleakClient | None = None
        self._notifying = False
        self._expected_disconnect = False
        self._on_weight_update: WeightUpdateCallback | None = None
        self._on_link_lost: LinkLostCallback | None = None
        self._last_sample: WeightSample | None = None

    @property
    def is_connected(self) -> bool:
        return self._client is not None and self._client.is_connected

    def _bleak_kwargs(self) -> dict:
        return {"adapter": self._adapter} if self._adapter else {}

    def matches(self, device: BLEDevice, advertisement: AdvertisementData) -> bool:
        """Return whether an advertisement belongs to a supported scale."""
        return True

    def parse_weight(self, data: bytes) -> WeightSample:
        """Decode a weight payload.

        Examples:
            >>> BluetoothScaleBackend().parse_weight(struct.pack("<f", 12.5)).value
            12.5
        """
        if len(data) < 4:
            _LOGGER.warning("Short weight payload (%d bytes): %s", len(data), data.hex())
            return WeightSample(value=0.0, unit=UNIT_GRAMS)
        (value,) = struct.unpack_from("<f", data, 0)
        return WeightSample(value=round(value, 2), unit=UNIT_GRAMS, is_stable=True)

    def _to_scale_device(
        self, device: BLEDevice, advertisement: AdvertisementData | None = None
    ) -> ScaleDevice:
        local_name = (
            (advertisement.local_name if advertisement else None)
            or device.name
            or self.default_name
        )
        return ScaleDevice(
            id=device.address,
            name=human_readable_name(None, local_name, device.address),
            rssi=advertisement.rssi if advertisement else None,
        )

    async def start_scan(self, on_found: DeviceFoundCallback) -> None:
        if self._scanner is not None:
            return
        await self.request_permissions()

        def _detected(device: BLEDevice, advertisement: AdvertisementData) -> None:
            if device.address in self._discovered:
                return
            if not self.matches(device, advertisement):
                return
            self._discovered[device.address] = device
            _LOGGER.debug(
                "Found %s scale %s (%s)", self.identifier, device.name, device.address
            )
            on_found(self._to_scale_device(device, advertisement))

        scanner = BleakScanner(detection_callback=_detected, **self._bleak_kwargs())
        try:
            await scanner.start()
        except BleakError as err:
            raise BackendUnavailable(f"Bluetooth scan could not start: {err}") from err
        self._scanner = scanner
        _LOGGER.debug("%s scan started", self.identifier)

    async def stop_scan(self) -> None:
        scanner, self._scanner = self._scanner, None
        if scanner is None:
            return
        try:
            await scanner.stop()
        except BleakError as ex:
            _LOGGER.warning("Error stopping %s scan: %s", self.identifier, ex)

    async def _resolve_device(self, device_id: str) -> BLEDevice:
        ble_device = self._discovered.get(device_id)
        if ble_device is not None:
            return ble_device
        try:
            ble_device = await BleakScanner.find_device_by_address(
                device_id, timeout=self._connect_timeout, **self._bleak_kwargs()
            )
        except BleakError as err:
            raise BackendUnavailable(f"Bluetooth lookup failed: {err}") from err
        if ble_device is None:
            raise ScanTimeout(f"Scale {device_id} not found")
        return ble_device

    async def _release(self, client: BleakClient, address: str) -> None:
        """Tear down a partially established link."""
        self._expected_disconnect = True
        try:
            await client.disconnect()
        except Exception as ex:
            _LOGGER.warning("Error releasing partial link to %s: %s", address, ex)
        try:
            await close_stale_connections_by_address(address)
        except Exception as ex:
            _LOGGER.debug("Could not close stale connections to %s: %s", address, ex)

    async def connect(
        self,
        device_id: str,
        on_weight_update: WeightUpdateCallback,
        on_link_lost: LinkLostCallback | None = None,
    ) -> ScaleDevice:
        if self.is_connected:
            raise AlreadyConnected("Already connected to a device")

        ble_device = await self._resolve_device(device_id)
        await close_stale_connections_by_address(ble_device.address)

        client = BleakClient(
            ble_device,
            disconnected_callback=self._handle_disconnect,
            **self._bleak_kwargs(),
        )
        self._expected_disconnect = False
        try:
            await asyncio.wait_for(client.connect(), timeout=self._connect_timeout)
        except asyncio.TimeoutError as err:
            await self._release(client, ble_device.address)
            raise ConnectTimeout(
                f"No link to {ble_device.address} after {self._connect_timeout:.1f}s"
            ) from err
        except BleakError as err:
            await self._release(client, ble_device.address)
            raise LinkLost(f"Could not connect to {ble_device.address}: {err}") from err

        self._client = client
        self._on_weight_update = on_weight_update
        self._on_link_lost = on_link_lost
        try:
            await self._subscribe(client)
        except (BleakError, LinkLost) as err:
            self._client = None
            await self._release(client, ble_device.address)
            raise LinkLost(f"Weight characteristic unavailable: {err}") from err

        self._device = self._to_scale_device(ble_device)
        _LOGGER.debug("Connected to %s", self._device.name)
        return self._device

    async def _subscribe(self, client: BleakClient) -> None:
        characteristic = client.services.get_characteristic(self.characteristic_uuid)
        if characteristic is None:
            raise LinkLost(f"Characteristic {self.characteristic_uuid} not found")
        if {"notify", "indicate"} & set(characteristic.properties):
            await client.start_notify(characteristic, self._handle_notification)
            self._notifying = True
            return
        # Read-only characteristic: deliver one reading now, read_weight polls later
        data = await client.read_gatt_char(characteristic)
        self._deliver(self.parse_weight(bytes(data)))

    def _handle_notification(self, _sender: object, data: bytearray) -> None:
        self._deliver(self.parse_weight(bytes(data)))

    def _deliver(self, sample: WeightSample) -> None:
        self._last_sample = sample
        if self._on_weight_update is not None:
            self._on_weight_update(sample)

    def _handle_disconnect(self, client: BleakClient) -> None:
        if client is not self._client or self._expected_disconnect:
            return
        _LOGGER.warning("Link to %s lost", self._device.name if self._device else client.address)
        on_link_lost = self._on_link_lost
        self._clear()
        if on_link_lost is not None:
            on_link_lost()

    def _clear(self) -> None:
        self._client = None
        self._device = None
        self._notifying = False
        self._on_weight_update = None
        self._on_link_lost = None
        self._last_sample = None

    async def disconnect(self) -> None:
        client = self._client
        if client is None:
            return
        self._expected_disconnect = True
        try:
            if self._notifying:
                try:
                    await client.stop_notify(self.characteristic_uuid)
                except Exception as ex:
                    _LOGGER.warning("Error stopping notifications: %s", ex)
            await client.disconnect()
        except BleakError as err:
            raise LinkLost(f"Disconnect failed: {err}") from err
        finally:
            self._clear()

    async def read_weight(self, device: ScaleDevice) -> float:
        if not self.is_connected or self._device is None or self._device.id != device.id:
            raise NotConnected("Not connected to this device")
        try:
            data = await self._client.read_gatt_char(self.characteristic_uuid)
        except BleakError as err:
            raise LinkLost(f"Reading weight failed: {err}") from err
        sample = self.parse_weight(bytes(data))
        self._last_sample = sample
        return sample.value
