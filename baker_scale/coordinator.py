"""Coordinator for the single active scale backend and its connection state."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
import contextlib
from functools import partial
import logging
from typing import Any

from .backends.base import ScaleBackend
from .backends.bluetooth import BluetoothScaleBackend
from .backends.etekcity import EtekcityScaleBackend
from .backends.lefu import LefuScaleBackend, LefuSdk
from .backends.mock import MockScaleBackend
from .config import scale_settings
from .const import (
    CONF_AUTO_RECONNECT,
    CONF_CONNECT_TIMEOUT,
    CONF_HEALTH_CHECK_INTERVAL,
    CONF_SCALE_SERVICE,
    CONF_SCAN_TIMEOUT,
    SCALE_SERVICE_BLUETOOTH,
    SCALE_SERVICE_ETEKCITY,
    SCALE_SERVICE_LEFU,
    SCALE_SERVICE_MOCK,
    STORAGE_KEY_SELECTED_SCALE,
)
from .errors import (
    AlreadyConnected,
    BackendUnavailable,
    ScaleConnectionError,
    ScanTimeout,
)
from .event_bus import CONNECTION_STATUS, WEIGHT_UPDATE, EventBus, Subscription
from .models import ConnectionSnapshot, ConnectionStatus, ScaleDevice, WeightSample
from .permissions import PermissionProvider
from .storage import KeyValueStore

_LOGGER = logging.getLogger(__name__)

BackendFactory = Callable[[], ScaleBackend]


class ScaleCoordinator:
    """Owns the active scale backend and the process-wide connection status.

    Every connection state change goes through this class and is published
    on the event bus; weight samples from the backend are republished there
    as well. Backend failures are logged, turned into a status transition
    and raised to the direct caller as :class:`ScaleConnectionError`.
    """

    def __init__(
        self,
        store: KeyValueStore,
        bus: EventBus | None = None,
        *,
        permissions: PermissionProvider | None = None,
        settings: dict[str, Any] | None = None,
        backend_factories: dict[str, BackendFactory] | None = None,
        lefu_sdk: LefuSdk | None = None,
        lefu_api_key: str = "",
        lefu_api_secret: str = "",
    ) -> None:
        """Initialize the coordinator.

        Args:
            store: Persistence for the selected backend identifier.
            bus: Event bus to publish on; a private one is created if omitted.
            permissions: Permission provider handed to Bluetooth backends.
            settings: Overrides for the scale settings schema.
            backend_factories: Replacement factories per backend identifier.
            lefu_sdk: Native Lefu bindings; without them the Lefu backend
                is unavailable.
            lefu_api_key: Lefu SDK API key.
            lefu_api_secret: Lefu SDK API secret.
        """
        self._store = store
        self.bus = bus or EventBus()
        self._permissions = permissions
        self._settings = scale_settings(settings)
        self._lefu_sdk = lefu_sdk
        self._lefu_credentials = (lefu_api_key, lefu_api_secret)
        self._factories: dict[str, BackendFactory] = {
            SCALE_SERVICE_MOCK: partial(MockScaleBackend, permissions),
            SCALE_SERVICE_BLUETOOTH: partial(
                BluetoothScaleBackend,
                permissions,
                connect_timeout=self._settings[CONF_CONNECT_TIMEOUT],
            ),
            SCALE_SERVICE_ETEKCITY: partial(
                EtekcityScaleBackend,
                permissions,
                connect_timeout=self._settings[CONF_CONNECT_TIMEOUT],
            ),
            SCALE_SERVICE_LEFU: self._create_lefu_backend,
        }
        self._factories.update(backend_factories or {})

        self._services: dict[str, ScaleBackend] = {}
        self._active_backend: ScaleBackend | None = None
        self._current_device: ScaleDevice | None = None
        self._status = ConnectionStatus.IDLE
        self._had_session = False
        self._active = False
        self._lock = asyncio.Lock()
        self._subscriptions: list[Subscription] = []
        self._health_task: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None

    def _create_lefu_backend(self) -> ScaleBackend:
        if self._lefu_sdk is None:
            raise BackendUnavailable("Lefu scale needs the vendor SDK bindings")
        api_key, api_secret = self._lefu_credentials
        return LefuScaleBackend(
            self._lefu_sdk,
            self._permissions,
            api_key=api_key,
            api_secret=api_secret,
            connect_timeout=self._settings[CONF_CONNECT_TIMEOUT],
        )

    @property
    def settings(self) -> dict[str, Any]:
        return dict(self._settings)

    @property
    def status(self) -> ConnectionStatus:
        return self._status

    @property
    def is_connected(self) -> bool:
        return self._status == ConnectionStatus.CONNECTED

    @property
    def current_device(self) -> ScaleDevice | None:
        return self._current_device

    def get_connection_status(self) -> ConnectionSnapshot:
        """Return the current status, connected flag and device in one value."""
        return ConnectionSnapshot(
            status=self._status,
            is_connected=self.is_connected,
            current_device=self._current_device,
        )

    def _set_status(self, status: ConnectionStatus) -> None:
        if status != self._status:
            _LOGGER.debug("Scale connection: %s -> %s", self._status, status)
        self._status = status
        self.bus.publish(CONNECTION_STATUS, status)

    async def _selected_identifier(self) -> str:
        try:
            identifier = await self._store.get_item(STORAGE_KEY_SELECTED_SCALE)
        except Exception as ex:
            _LOGGER.warning("Could not read the selected scale, using default: %s", ex)
            identifier = None
        if not identifier:
            return self._settings[CONF_SCALE_SERVICE]
        if identifier not in self._factories:
            _LOGGER.warning("Unknown scale service %s, using %s", identifier, SCALE_SERVICE_MOCK)
            return SCALE_SERVICE_MOCK
        return identifier

    async def get_scale_service(self) -> ScaleBackend:
        """Return the backend for the selected identifier, creating it once.

        Raises:
            BackendUnavailable: If the backend cannot run on this host.
        """
        identifier = await self._selected_identifier()
        backend = self._services.get(identifier)
        if backend is None:
            backend = self._factories[identifier]()
            self._services[identifier] = backend
            _LOGGER.debug("Created %s scale backend", identifier)
        return backend

    async def is_mock_scale_selected(self) -> bool:
        return await self._selected_identifier() == SCALE_SERVICE_MOCK

    def _fail(self, message: str, err: BaseException) -> ScaleConnectionError:
        """Return to a failure status and build the error for the caller."""
        self._active_backend = None
        self._current_device = None
        self._set_status(
            ConnectionStatus.RECONNECTION_FAILED
            if self._had_session
            else ConnectionStatus.CONNECTION_FAILED
        )
        _LOGGER.error("%s: %s", message, err)
        return ScaleConnectionError(f"{message}: {err}")

    async def connect_to_scale(self) -> ScaleDevice:
        """Scan with the selected backend and connect to the first scale found.

        Does nothing when already connected.

        Raises:
            ScaleConnectionError: If no scale was found or the link failed.
        """
        async with self._lock:
            if self.is_connected and self._current_device is not None:
                self._set_status(ConnectionStatus.CONNECTED)
                return self._current_device

            self._set_status(ConnectionStatus.CONNECTING)
            try:
                backend = await self.get_scale_service()
                device = await self._scan(backend)
            except Exception as err:
                raise self._fail("Failed to find a scale", err) from err
            return await self._connect(backend, device)

    async def _scan(self, backend: ScaleBackend) -> ScaleDevice:
        found: asyncio.Future[ScaleDevice] = asyncio.get_running_loop().create_future()

        def _on_found(device: ScaleDevice) -> None:
            if not found.done():
                found.set_result(device)

        timeout = self._settings[CONF_SCAN_TIMEOUT]
        try:
            await backend.start_scan(_on_found)
            device = await asyncio.wait_for(found, timeout=timeout)
        except asyncio.TimeoutError as err:
            raise ScanTimeout(f"No scale found within {timeout:.0f}s") from err
        finally:
            await backend.stop_scan()
        _LOGGER.debug("Found scale %s (%s)", device.name, device.id)
        return device

    async def connect_to_device(self, device: ScaleDevice) -> ScaleDevice:
        """Connect the selected backend to a specific, already discovered scale.

        Raises:
            ScaleConnectionError: If the link could not be established.
        """
        async with self._lock:
            if self.is_connected and self._current_device is not None:
                if self._current_device.id == device.id:
                    return self._current_device
                raise ScaleConnectionError(
                    f"Already connected to {self._current_device.name}"
                ) from AlreadyConnected(self._current_device.id)

            self._set_status(ConnectionStatus.CONNECTING)
            try:
                backend = await self.get_scale_service()
            except Exception as err:
                raise self._fail("Scale backend unavailable", err) from err
            return await self._connect(backend, device)

    async def _connect(self, backend: ScaleBackend, device: ScaleDevice) -> ScaleDevice:
        try:
            connected = await backend.connect(
                device.id,
                self._handle_weight_update,
                partial(self._handle_link_lost, backend),
            )
        except Exception as err:
            raise self._fail(f"Failed to connect to {device.name}", err) from err

        self._active_backend = backend
        self._current_device = connected
        self._had_session = True
        self._set_status(ConnectionStatus.CONNECTED)
        _LOGGER.info("Connected to scale %s", connected.name)
        return connected

    def _handle_weight_update(self, sample: WeightSample) -> None:
        self.bus.publish(WEIGHT_UPDATE, sample)

    def _handle_link_lost(self, backend: ScaleBackend) -> None:
        if backend is not self._active_backend or not self.is_connected:
            return
        device = self._current_device
        self._active_backend = None
        self._current_device = None
        _LOGGER.warning("Lost connection to %s", device.name if device else "scale")

        if self._settings[CONF_AUTO_RECONNECT] and device is not None:
            self._set_status(ConnectionStatus.CONNECTING)
            self._reconnect_task = asyncio.get_running_loop().create_task(
                self._reconnect(device)
            )
        else:
            self._set_status(ConnectionStatus.RECONNECTION_FAILED)

    async def _reconnect(self, device: ScaleDevice) -> None:
        async with self._lock:
            if self._status != ConnectionStatus.CONNECTING:
                return
            _LOGGER.debug("Reconnecting to %s", device.name)
            try:
                backend = await self.get_scale_service()
                await self._connect(backend, device)
            except ScaleConnectionError:
                # _fail already logged and published the failure
                return
            except Exception as err:
                self._fail("Reconnect failed", err)

    async def _cancel_reconnect(self) -> None:
        task, self._reconnect_task = self._reconnect_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def disconnect_from_scale(self) -> None:
        """Release the link and return to ``idle``, whatever the backend reports.

        Raises:
            ScaleConnectionError: If the backend failed to disconnect cleanly;
                the coordinator is idle regardless.
        """
        await self._cancel_reconnect()
        async with self._lock:
            await self._disconnect()

    async def _disconnect(self) -> None:
        backend = self._active_backend
        device = self._current_device
        self._active_backend = None
        self._current_device = None
        try:
            if backend is not None:
                await backend.disconnect()
                _LOGGER.debug("Disconnected from %s", device.name if device else "scale")
        except Exception as err:
            _LOGGER.warning("Error disconnecting from scale: %s", err)
            raise ScaleConnectionError(f"Error disconnecting from scale: {err}") from err
        finally:
            self._set_status(ConnectionStatus.IDLE)

    async def set_scale_service(self, identifier: str) -> None:
        """Switch to another backend.

        The active session is closed first and the old backend instance is
        discarded; the new one is created on next use.

        Raises:
            BackendUnavailable: If ``identifier`` is not a known backend.
        """
        if identifier not in self._factories:
            raise BackendUnavailable(f"Unknown scale service {identifier}")
        await self._cancel_reconnect()
        async with self._lock:
            previous = await self._selected_identifier()
            # also ends a reconnect that was cancelled above
            try:
                await self._disconnect()
            except ScaleConnectionError as err:
                _LOGGER.warning("Switching scale despite disconnect error: %s", err)
            self._services.pop(previous, None)
            await self._store.set_item(STORAGE_KEY_SELECTED_SCALE, identifier)
        _LOGGER.info("Selected scale service %s", identifier)

    async def reset_services(self) -> None:
        """Disconnect and drop every cached backend instance."""
        await self._cancel_reconnect()
        async with self._lock:
            try:
                await self._disconnect()
            except ScaleConnectionError as err:
                _LOGGER.warning("Resetting scale services despite error: %s", err)
            self._services.clear()

    async def set_active(self, active: bool) -> None:
        """Record whether a screen currently needs the scale.

        Activation forwards to the backend (which asks for permissions);
        deactivation while connected disconnects.
        """
        self._active = active
        try:
            backend = await self.get_scale_service()
            await backend.set_active(active)
        except BackendUnavailable as err:
            _LOGGER.warning("Scale backend unavailable: %s", err)
        if not active and self._active_backend is not None:
            await self.disconnect_from_scale()

    async def check_health(self) -> bool:
        """Verify that a reported connection is still alive.

        Returns:
            True if the coordinator is connected after the check.
        """
        backend = self._active_backend
        if self.is_connected and backend is not None and not backend.is_connected:
            _LOGGER.warning("Health check found the scale link down")
            self._handle_link_lost(backend)
            return False
        if self._active:
            try:
                await (await self.get_scale_service()).set_active(True)
            except BackendUnavailable as err:
                _LOGGER.warning("Scale backend unavailable: %s", err)
        return self.is_connected

    async def _health_loop(self) -> None:
        interval = self._settings[CONF_HEALTH_CHECK_INTERVAL]
        while True:
            await asyncio.sleep(interval)
            try:
                await self.check_health()
            except Exception:
                _LOGGER.exception("Scale health check failed")

    def subscribe_to_weight_updates(
        self, callback: Callable[[WeightSample], None]
    ) -> Subscription:
        subscription = self.bus.subscribe(WEIGHT_UPDATE, callback)
        self._subscriptions.append(subscription)
        return subscription

    def subscribe_to_connection_status(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Subscription:
        subscription = self.bus.subscribe(CONNECTION_STATUS, callback)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe_all(self) -> None:
        """Remove every weight and connection status listener. Idempotent."""
        subscriptions, self._subscriptions = self._subscriptions, []
        for subscription in subscriptions:
            subscription.unsubscribe()
        self.bus.clear(WEIGHT_UPDATE)
        self.bus.clear(CONNECTION_STATUS)

    async def async_start(self) -> None:
        """Start the periodic health check."""
        if self._health_task is None or self._health_task.done():
            self._health_task = asyncio.get_running_loop().create_task(
                self._health_loop()
            )
            _LOGGER.debug("Scale coordinator started")

    async def async_stop(self) -> None:
        """Stop the health check, disconnect and release all listeners."""
        task, self._health_task = self._health_task, None
        if task is not None:
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        try:
            await self.disconnect_from_scale()
        except ScaleConnectionError as err:
            _LOGGER.warning("Error during coordinator shutdown: %s", err)
        self.unsubscribe_all()
        _LOGGER.debug("Scale coordinator stopped")
