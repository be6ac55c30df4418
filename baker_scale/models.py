"""Data model shared by the scale backends, coordinator and announcer."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum
from typing import Any

from .const import UNIT_GRAMS


class StepType(StrEnum):
    """Kind of recipe step."""

    WEIGHT = "weight"
    WEIGHABLE = "weighable"
    INSTRUCTION = "instruction"


class ConnectionStatus(StrEnum):
    """Process-wide scale connection state, owned by the coordinator."""

    IDLE = "idle"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTION_FAILED = "reconnectionFailed"
    CONNECTION_FAILED = "connectionFailed"


class TareState(StrEnum):
    """Tare progress for the active step."""

    PENDING = "pending"
    TARED = "tared"
    NOT_REQUIRED = "not_required"


@dataclass(frozen=True)
class IngredientStep:
    """A single recipe step as handed over by the recipe store.

    ``amount`` and ``tolerance`` are kept as received (numbers, numeric strings
    or empty); numeric parsing happens in :mod:`baker_scale.weighing`.
    """

    id: str
    name: str
    step_type: StepType = StepType.WEIGHT
    amount: float | str | None = None
    unit: str = UNIT_GRAMS
    tolerance: float | str | None = None
    require_tare: bool = False
    instruction_text: str = ""
    requires_check: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IngredientStep:
        """Build a step from the recipe store's camelCase representation.

        Args:
            data: Step dictionary as persisted by the recipe editor.

        Returns:
            The immutable step.
        """
        try:
            step_type = StepType(data.get("stepType", StepType.WEIGHT))
        except ValueError:
            step_type = StepType.INSTRUCTION
        return cls(
            id=str(data.get("id", "")),
            name=data.get("name", ""),
            step_type=step_type,
            amount=data.get("amount"),
            unit=data.get("unit") or UNIT_GRAMS,
            tolerance=data.get("tolerance"),
            require_tare=bool(data.get("requireTare", False)),
            instruction_text=data.get("instructionText") or "",
            requires_check=bool(data.get("requiresCheck", False)),
        )


@dataclass(frozen=True)
class WeightSample:
    """One normalized reading produced by a scale backend."""

    value: float
    unit: str = UNIT_GRAMS
    is_stable: bool = False
    is_tare: bool = False
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class ScaleDevice:
    """A discovered or connected scale."""

    id: str
    name: str
    rssi: int | None = None


@dataclass(frozen=True)
class WeighingResult:
    """Tolerance and progress derived from a step and the current weight."""

    target_weight: float = 0.0
    tolerance: float = 0.0
    min_weight: float = 0.0
    max_weight: float = 0.0
    is_within_tolerance: bool = False
    is_over_tolerance: bool = False
    progress: float = 0.0


@dataclass(frozen=True)
class ConnectionSnapshot:
    """Point-in-time view of the coordinator's connection state."""

    status: ConnectionStatus
    is_connected: bool
    current_device: ScaleDevice | None
