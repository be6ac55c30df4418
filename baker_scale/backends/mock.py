"""Simulated scale for development and tests without hardware."""

from __future__ import annotations

import asyncio
import logging
import random

from ..const import (
    MOCK_CONNECT_DELAY,
    MOCK_DEVICE_ID,
    MOCK_DEVICE_NAME,
    MOCK_MAX_WEIGHT,
    MOCK_SCAN_DELAY,
    MOCK_STEP_MAX,
    MOCK_STEP_MIN,
    MOCK_TICK_INTERVAL,
    SCALE_SERVICE_MOCK,
    UNIT_GRAMS,
)
from ..errors import AlreadyConnected, NotConnected
from ..models import ScaleDevice, WeightSample
from ..permissions import PermissionProvider
from .base import (
    DeviceFoundCallback,
    LinkLostCallback,
    ScaleBackend,
    WeightUpdateCallback,
)

_LOGGER = logging.getLogger(__name__)


class MockScaleBackend(ScaleBackend):
    """Scale that is "found" and "connected" after short delays.

    Once connected it reports a rising weight every tick, growing by a random
    10-50 g step until it reaches the cap. The ``mock_*`` methods let a
    developer drive readings by hand instead.
    """

    identifier = SCALE_SERVICE_MOCK

    def __init__(
        self,
        permissions: PermissionProvider | None = None,
        *,
        scan_delay: float = MOCK_SCAN_DELAY,
        connect_delay: float = MOCK_CONNECT_DELAY,
        tick_interval: float = MOCK_TICK_INTERVAL,
        max_weight: float = MOCK_MAX_WEIGHT,
        auto_weight: bool = True,
        rng: random.Random | None = None,
    ) -> None:
        super().__init__(permissions)
        self._scan_delay = scan_delay
        self._connect_delay = connect_delay
        self._tick_interval = tick_interval
        self._max_weight = max_weight
        self._auto_weight = auto_weight
        self._rng = rng or random.Random()
        self._scanning = False
        self._scan_task: asyncio.Task | None = None
        self._tick_task: asyncio.Task | None = None
        self._on_weight_update: WeightUpdateCallback | None = None
        self._on_link_lost: LinkLostCallback | None = None
        self.current_weight: float = 0

    @property
    def is_connected(self) -> bool:
        return self._device is not None

    async def start_scan(self, on_found: DeviceFoundCallback) -> None:
        if self._scanning:
            return
        self._scanning = True
        _LOGGER.debug("Mock scale: starting scan")

        async def _discover() -> None:
            await asyncio.sleep(self._scan_delay)
            if not self._scanning:
                return
            self._scanning = False
            on_found(ScaleDevice(id=MOCK_DEVICE_ID, name=MOCK_DEVICE_NAME, rssi=-50))

        self._scan_task = asyncio.get_running_loop().create_task(_discover())

    async def stop_scan(self) -> None:
        self._scanning = False
        if self._scan_task is not None:
            self._scan_task.cancel()
            self._scan_task = None
        _LOGGER.debug("Mock scale: stopping scan")

    async def connect(
        self,
        device_id: str,
        on_weight_update: WeightUpdateCallback,
        on_link_lost: LinkLostCallback | None = None,
    ) -> ScaleDevice:
        if self._device is not None:
            raise AlreadyConnected("Already connected to a device")

        _LOGGER.debug("Mock scale: connecting to %s", device_id)
        await asyncio.sleep(self._connect_delay)

        self._device = ScaleDevice(id=device_id, name=MOCK_DEVICE_NAME)
        self._on_weight_update = on_weight_update
        self._on_link_lost = on_link_lost
        self._emit(self.current_weight, is_stable=True)

        if self._auto_weight:
            self._tick_task = asyncio.get_running_loop().create_task(self._tick())
        return self._device

    async def _tick(self) -> None:
        while self._device is not None:
            await asyncio.sleep(self._tick_interval)
            if self.current_weight >= self._max_weight:
                self._emit(self._max_weight, is_stable=True)
                continue
            step = self._rng.randint(MOCK_STEP_MIN, MOCK_STEP_MAX)
            self.current_weight = min(self.current_weight + step, self._max_weight)
            self._emit(self.current_weight, is_stable=False)

    def _emit(self, value: float, *, is_stable: bool, is_tare: bool = False) -> None:
        if self._on_weight_update is None:
            return
        self._on_weight_update(
            WeightSample(value=value, unit=UNIT_GRAMS, is_stable=is_stable, is_tare=is_tare)
        )

    def mock_weight_change(self, delta: float) -> None:
        """Add ``delta`` grams (never below zero) and report an unstable reading."""
        self.current_weight = max(0, self.current_weight + delta)
        self._emit(self.current_weight, is_stable=False)

    def mock_stable_weight(self) -> None:
        """Report the current weight as settled."""
        self._emit(self.current_weight, is_stable=True)

    def mock_tare(self) -> None:
        """Zero the scale and report a tare event."""
        self.current_weight = 0
        self._emit(0, is_stable=True, is_tare=True)

    def simulate_link_loss(self) -> None:
        """Drop the connection as if the scale went out of range."""
        if self._device is None:
            return
        on_link_lost = self._on_link_lost
        self._reset()
        if on_link_lost is not None:
            on_link_lost()

    def _reset(self) -> None:
        if self._tick_task is not None:
            self._tick_task.cancel()
            self._tick_task = None
        self._device = None
        self._on_weight_update = None
        self._on_link_lost = None
        self.current_weight = 0

    async def disconnect(self) -> None:
        _LOGGER.debug("Mock scale: disconnecting")
        self._reset()

    async def read_weight(self, device: ScaleDevice) -> float:
        if self._device is None or self._device.id != device.id:
            raise NotConnected("Not connected to this device")
        return self.current_weight
