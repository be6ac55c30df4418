"""Scale backends."""

from .base import ScaleBackend
from .bluetooth import BluetoothScaleBackend
from .etekcity import EtekcityScaleBackend, parse_etekcity_frame
from .lefu import LefuScaleBackend, LefuSdk, map_connection_state, parse_lefu_payload
from .mock import MockScaleBackend

__all__ = [
    "BluetoothScaleBackend",
    "EtekcityScaleBackend",
    "LefuScaleBackend",
    "LefuSdk",
    "MockScaleBackend",
    "ScaleBackend",
    "map_connection_state",
    "parse_etekcity_frame",
    "parse_lefu_payload",
]
