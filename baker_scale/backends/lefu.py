"""Lefu kitchen scale backend driven through the vendor SDK."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import logging
from typing import Any, Protocol

from ..const import DEFAULT_CONNECT_TIMEOUT, LEFU_DEVICE_NAME, SCALE_SERVICE_LEFU
from ..errors import (
    AlreadyConnected,
    BackendUnavailable,
    ConnectTimeout,
    LinkLost,
    NotConnected,
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

STATE_FOUND = "found"
STATE_NOT_FOUND = "not_found"

_SDK_STATES = {
    "PPBleWorkStateConnected": STATE_FOUND,
    "PPBleWorkStateWritable": STATE_FOUND,
    "PPBleWorkStateDisconnected": STATE_NOT_FOUND,
    "PPBleWorkStateConnectFailed": STATE_NOT_FOUND,
}

UNIT_NAMES = {
    "ppunitg": "grams",
    "ppunitkg": "kg",
    "ppunitmlwater": "ml",
    "ppunitoz": "oz",
    "unit_lb": "lb",
    "ppunitlboz": "lb oz",
}


class LefuSdk(Protocol):
    """Native Lefu SDK bindings.

    Callbacks may fire from any point after the corresponding call; they
    are always invoked on the event loop thread.
    """

    async def initialize(self, api_key: str, api_secret: str) -> None: ...

    async def start_scan(
        self,
        on_device: Callable[[dict[str, Any]], None],
        on_ble_state: Callable[[str], None],
    ) -> None: ...

    async def stop_scan(self) -> None: ...

    async def connect(
        self,
        mac: str,
        on_state: Callable[[str], None],
        on_data: Callable[[dict[str, Any]], None],
    ) -> None: ...

    async def disconnect(self) -> None: ...


def map_connection_state(state: str) -> str | None:
    """Map an SDK work state onto ``found``/``not_found``.

    Intermediate states (searching, connecting, ...) map to None.
    """
    return _SDK_STATES.get(state)


def parse_lefu_payload(payload: dict[str, Any]) -> WeightSample:
    """Convert an SDK weight payload into a :class:`WeightSample`.

    The SDK reports the magnitude in ``weight`` and the sign in ``thanZero``
    (0 means below zero). A zero reading counts as a tare.
    """
    try:
        weight = float(payload.get("weight", 0) or 0)
    except (TypeError, ValueError):
        _LOGGER.warning("Invalid Lefu weight payload: %s", payload)
        weight = 0.0
    if payload.get("thanZero", 1) == 0:
        weight = -weight
    raw_unit = str(payload.get("unit", "") or "").lower()
    return WeightSample(
        value=weight,
        unit=UNIT_NAMES.get(raw_unit, raw_unit or "unknown"),
        is_stable=bool(payload.get("isStable", False)),
        is_tare=weight == 0,
    )


class LefuScaleBackend(ScaleBackend):
    """Lefu kitchen scale; the SDK owns scanning and the GATT protocol."""

    identifier = SCALE_SERVICE_LEFU
    requires_permissions = True

    def __init__(
        self,
        sdk: LefuSdk,
        permissions: PermissionProvider | None = None,
        *,
        api_key: str = "",
        api_secret: str = "",
        connect_timeout: float = DEFAULT_CONNECT_TIMEOUT,
    ) -> None:
        super().__init__(permissions)
        self._sdk = sdk
        self._api_key = api_key
        self._api_secret = api_secret
        self._connect_timeout = connect_timeout
        self._initialized = False
        self._scanning = False
        self._linked = False
        self._pending: asyncio.Future[None] | None = None
        self._on_weight_update: WeightUpdateCallback | None = None
        self._on_link_lost: LinkLostCallback | None = None
        self._last_sample: WeightSample | None = None

    @property
    def is_connected(self) -> bool:
        return self._linked

    async def _ensure_initialized(self) -> None:
        if self._initialized:
            return
        try:
            await self._sdk.initialize(self._api_key, self._api_secret)
        except Exception as err:
            raise BackendUnavailable(f"Lefu SDK failed to initialize: {err}") from err
        self._initialized = True
        _LOGGER.debug("Lefu SDK initialized")

    async def start_scan(self, on_found: DeviceFoundCallback) -> None:
        if self._scanning:
            return
        await self.request_permissions()
        await self._ensure_initialized()

        def _device(info: dict[str, Any]) -> None:
            mac = info.get("mac")
            if not mac:
                return
            on_found(
                ScaleDevice(
                    id=mac,
                    name=info.get("name") or LEFU_DEVICE_NAME,
                    rssi=info.get("rssi"),
                )
            )

        def _ble_state(state: str) -> None:
            _LOGGER.debug("Lefu BLE state: %s", state)

        self._scanning = True
        try:
            await self._sdk.start_scan(_device, _ble_state)
        except Exception as err:
            self._scanning = False
            raise BackendUnavailable(f"Lefu scan could not start: {err}") from err

    async def stop_scan(self) -> None:
        if not self._scanning:
            return
        self._scanning = False
        try:
            await self._sdk.stop_scan()
        except Exception as ex:
            _LOGGER.warning("Error stopping Lefu scan: %s", ex)

    def _handle_state(self, state: str) -> None:
        mapped = map_connection_state(state)
        _LOGGER.debug("Lefu connection state %s (%s)", state, mapped)
        pending = self._pending
        if pending is not None and not pending.done():
            if mapped == STATE_FOUND:
                pending.set_result(None)
            elif mapped == STATE_NOT_FOUND:
                pending.set_exception(LinkLost(f"Lefu scale reported {state}"))
            return
        if mapped == STATE_NOT_FOUND and self._linked:
            _LOGGER.warning("Lefu scale disconnected")
            on_link_lost = self._on_link_lost
            self._clear()
            if on_link_lost is not None:
                on_link_lost()

    def _handle_data(self, payload: dict[str, Any]) -> None:
        sample = parse_lefu_payload(payload)
        self._last_sample = sample
        if self._on_weight_update is not None:
            self._on_weight_update(sample)

    async def connect(
        self,
        device_id: str,
        on_weight_update: WeightUpdateCallback,
        on_link_lost: LinkLostCallback | None = None,
    ) -> ScaleDevice:
        if self._linked:
            raise AlreadyConnected("Already connected to a device")
        await self._ensure_initialized()
        await self.stop_scan()

        self._pending = asyncio.get_running_loop().create_future()
        self._on_weight_update = on_weight_update
        try:
            await self._sdk.connect(device_id, self._handle_state, self._handle_data)
            await asyncio.wait_for(self._pending, timeout=self._connect_timeout)
        except asyncio.TimeoutError as err:
            self._clear()
            await self._release()
            raise ConnectTimeout(
                f"Lefu scale {device_id} not connected after {self._connect_timeout:.1f}s"
            ) from err
        except LinkLost:
            self._clear()
            await self._release()
            raise
        except Exception as err:
            self._clear()
            await self._release()
            raise LinkLost(f"Could not connect to Lefu scale {device_id}: {err}") from err
        finally:
            self._pending = None

        self._linked = True
        self._on_link_lost = on_link_lost
        self._device = ScaleDevice(id=device_id, name=LEFU_DEVICE_NAME)
        _LOGGER.debug("Connected to Lefu scale %s", device_id)
        return self._device

    async def _release(self) -> None:
        try:
            await self._sdk.disconnect()
        except Exception as ex:
            _LOGGER.warning("Error releasing Lefu connection: %s", ex)

    def _clear(self) -> None:
        self._linked = False
        self._device = None
        self._on_weight_update = None
        self._on_link_lost = None
        self._last_sample = None

    async def disconnect(self) -> None:
        if not self._linked:
            return
        self._clear()
        try:
            await self._sdk.disconnect()
        except Exception as err:
            raise LinkLost(f"Lefu disconnect failed: {err}") from err

    async def read_weight(self, device: ScaleDevice) -> float:
        # Weight only arrives via SDK callbacks
        if self._device is None or self._device.id != device.id:
            raise NotConnected("Not connected to this device")
        return self._last_sample.value if self._last_sample else 0.0
