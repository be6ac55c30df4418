import asyncio
import struct
from types import SimpleNamespace

import pytest

from baker_scale.backends import bluetooth
from baker_scale.backends.bluetooth import BluetoothScaleBackend
from baker_scale.backends.etekcity import EtekcityScaleBackend, parse_etekcity_frame
from baker_scale.coordinator import ScaleCoordinator
from baker_scale.errors import (
    ConnectTimeout,
    NotConnected,
    PermissionDenied,
    ScaleConnectionError,
    ScanTimeout,
)
from baker_scale.models import ConnectionStatus, ScaleDevice

ADDRESS = "AA:BB:CC:DD:EE:FF"


class FakeClient:
    """Stands in for bleak.BleakClient."""

    instances = []
    hang = False

    def __init__(self, device, disconnected_callback=None, **kwargs):
        self.device = device
        self.address = device.address
        self.disconnected_callback = disconnected_callback
        self.connected = False
        self.disconnect_calls = 0
        self.notify_callback = None
        self.services = SimpleNamespace(
            get_characteristic=lambda uuid: SimpleNamespace(uuid=uuid, properties=["notify"])
        )
        FakeClient.instances.append(self)

    @property
    def is_connected(self):
        return self.connected

    async def connect(self):
        if FakeClient.hang:
            await asyncio.sleep(10)
        self.connected = True

    async def disconnect(self):
        self.disconnect_calls += 1
        self.connected = False

    async def start_notify(self, characteristic, callback):
        self.notify_callback = callback

    async def stop_notify(self, characteristic):
        self.notify_callback = None

    def push(self, data):
        self.notify_callback(None, bytearray(data))

    def drop(self):
        self.connected = False
        self.disconnected_callback(self)


@pytest.fixture(autouse=True)
def fake_bleak(monkeypatch):
    FakeClient.instances = []
    FakeClient.hang = False

    async def no_stale_connections(address):
        return None

    async def not_found(address, timeout=10.0, **kwargs):
        return None

    monkeypatch.setattr(bluetooth, "BleakClient", FakeClient)
    monkeypatch.setattr(bluetooth, "close_stale_connections_by_address", no_stale_connections)
    monkeypatch.setattr(bluetooth.BleakScanner, "find_device_by_address", not_found)


def _discovered(backend, name="Etekcity Nutrition Scale"):
    backend._discovered[ADDRESS] = SimpleNamespace(address=ADDRESS, name=name)


def _weight_frame(raw, unit, stable):
    frame = bytearray(16)
    frame[11:13] = raw.to_bytes(2, "little")
    frame[13] = unit
    frame[15] = 0x01 if stable else 0x00
    return bytes(frame)


@pytest.mark.anyio
async def test_connect_timeout_releases_partial_link():
    FakeClient.hang = True
    backend = BluetoothScaleBackend(connect_timeout=0.05)
    _discovered(backend)

    with pytest.raises(ConnectTimeout):
        await backend.connect(ADDRESS, lambda s: None)

    assert FakeClient.instances[0].disconnect_calls == 1
    assert not backend.is_connected


@pytest.mark.anyio
async def test_unknown_address_is_scan_timeout():
    backend = BluetoothScaleBackend(connect_timeout=0.05)
    with pytest.raises(ScanTimeout):
        await backend.connect(ADDRESS, lambda s: None)


@pytest.mark.anyio
async def test_generic_notifications_decode_float():
    backend = BluetoothScaleBackend()
    _discovered(backend, name="Kitchen Scale")
    samples = []

    device = await backend.connect(ADDRESS, samples.append)
    FakeClient.instances[0].push(struct.pack("<f", 12.5))

    assert device.id == ADDRESS
    assert [s.value for s in samples] == [12.5]
    assert samples[0].is_stable


@pytest.mark.anyio
async def test_unexpected_disconnect_reports_link_loss():
    backend = BluetoothScaleBackend()
    _discovered(backend)
    lost = []

    await backend.connect(ADDRESS, lambda s: None, lambda: lost.append(True))
    FakeClient.instances[0].drop()

    assert lost == [True]
    assert backend.device is None


@pytest.mark.anyio
async def test_explicit_disconnect_is_not_link_loss():
    backend = BluetoothScaleBackend()
    _discovered(backend)
    lost = []

    await backend.connect(ADDRESS, lambda s: None, lambda: lost.append(True))
    await backend.disconnect()

    assert lost == []
    assert FakeClient.instances[0].disconnect_calls == 1
    with pytest.raises(NotConnected):
        await backend.read_weight(ScaleDevice(ADDRESS, "scale"))


def test_short_payload_is_zero():
    assert BluetoothScaleBackend().parse_weight(b"\x01").value == 0


def test_etekcity_tare_frame():
    sample = parse_etekcity_frame(b"\xa5\x02" + bytes(9))
    assert sample.is_tare
    assert not sample.is_stable


@pytest.mark.parametrize(
    "unit, value, expected_unit",
    [(0x02, 123.4, "g"), (0x00, 12.34, "oz"), (0x01, 12.34, "oz"), (0x03, 123.4, "ml"), (0x04, 12.34, "fl oz"), (0x09, 123.4, "g")],
)
def test_etekcity_weight_frame(unit, value, expected_unit):
    sample = parse_etekcity_frame(_weight_frame(1234, unit, stable=True))
    assert sample.value == pytest.approx(value)
    assert sample.unit == expected_unit
    assert sample.is_stable
    assert not sample.is_tare


def test_etekcity_invalid_frame(caplog):
    sample = parse_etekcity_frame(b"\x00\x01\x02")
    assert sample.value == 0
    assert not sample.is_stable
    assert "Invalid frame" in caplog.text


def test_etekcity_matches_by_name():
    backend = EtekcityScaleBackend()
    adv = SimpleNamespace(local_name=None)
    assert backend.matches(SimpleNamespace(name="Etekcity Nutrition Scale"), adv)
    assert not backend.matches(SimpleNamespace(name="Mi Band"), adv)


@pytest.mark.anyio
async def test_etekcity_reuses_last_address_after_link_loss(monkeypatch):
    backend = EtekcityScaleBackend()
    _discovered(backend)
    samples = []

    await backend.connect(ADDRESS, samples.append)
    FakeClient.instances[0].push(_weight_frame(500, 0x02, stable=False))
    assert await backend.read_weight(ScaleDevice(ADDRESS, "scale")) == 50
    FakeClient.instances[0].drop()

    async def found_again(address, timeout=10.0, **kwargs):
        return SimpleNamespace(address=address, name="Etekcity Nutrition Scale")

    monkeypatch.setattr(bluetooth.BleakScanner, "find_device_by_address", found_again)
    found = []
    await backend.start_scan(found.append)
    assert [d.id for d in found] == [ADDRESS]
    assert backend.last_address == ADDRESS


@pytest.mark.anyio
async def test_etekcity_forgets_address_when_reconnect_fails():
    backend = EtekcityScaleBackend(connect_timeout=0.05)
    _discovered(backend)
    await backend.connect(ADDRESS, lambda s: None)
    FakeClient.instances[0].drop()

    FakeClient.hang = True
    with pytest.raises(ConnectTimeout):
        await backend.connect(ADDRESS, lambda s: None)

    assert backend.last_address is None


class DenyPermissions:
    def __init__(self):
        self.requested = []

    async def request_permissions(self, permissions):
        self.requested.append(permissions)
        raise PermissionDenied("location permission refused")


class RecordingScanner:
    created = 0
    advertised = None

    def __init__(self, detection_callback=None, **kwargs):
        RecordingScanner.created += 1
        self.detection_callback = detection_callback

    @staticmethod
    async def find_device_by_address(address, timeout=10.0, **kwargs):
        return None

    async def start(self):
        if RecordingScanner.advertised is not None:
            device = RecordingScanner.advertised
            self.detection_callback(device, SimpleNamespace(local_name=device.name, rssi=-58))

    async def stop(self):
        pass


@pytest.mark.anyio
async def test_denied_permission_fails_before_scanning(monkeypatch):
    RecordingScanner.created = 0
    RecordingScanner.advertised = None
    monkeypatch.setattr(bluetooth, "BleakScanner", RecordingScanner)
    permissions = DenyPermissions()
    backend = BluetoothScaleBackend(permissions)

    with pytest.raises(PermissionDenied):
        await backend.start_scan(lambda d: None)

    assert len(permissions.requested) == 1
    assert RecordingScanner.created == 0


@pytest.mark.anyio
async def test_denied_permission_ends_in_connection_failed(monkeypatch, store):
    RecordingScanner.created = 0
    RecordingScanner.advertised = None
    monkeypatch.setattr(bluetooth, "BleakScanner", RecordingScanner)
    coordinator = ScaleCoordinator(
        store, permissions=DenyPermissions(), settings={"scan_timeout": 0.05}
    )
    await coordinator.set_scale_service("BLUETOOTH")

    with pytest.raises(ScaleConnectionError) as excinfo:
        await coordinator.connect_to_scale()

    assert isinstance(excinfo.value.__cause__, PermissionDenied)
    assert coordinator.status == ConnectionStatus.CONNECTION_FAILED
    assert RecordingScanner.created == 0


@pytest.mark.anyio
async def test_etekcity_scans_again_when_last_scale_is_gone(monkeypatch):
    backend = EtekcityScaleBackend()
    backend.last_address = "11:22:33:44:55:66"
    RecordingScanner.created = 0
    RecordingScanner.advertised = SimpleNamespace(address=ADDRESS, name="Etekcity Nutrition Scale")
    monkeypatch.setattr(bluetooth, "BleakScanner", RecordingScanner)
    found = []

    await backend.start_scan(found.append)
    await backend.stop_scan()

    assert [d.id for d in found] == [ADDRESS]
    assert backend.last_address is None
    assert RecordingScanner.created == 1
