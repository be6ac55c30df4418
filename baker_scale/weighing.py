"""Tolerance and progress calculation for weight-based recipe steps.

Everything in this module is pure: the same step and weight always give the
same result, so callers may recompute on every incoming sample.
"""

from __future__ import annotations

import math
import re

from .models import IngredientStep, StepType, WeighingResult

# Steps that only need "something on the scale" are complete above this ratio
WEIGHABLE_PRESENCE_RATIO = 0.01

_LEADING_NUMBER = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)([eE][-+]?\d+)?")

_EMPTY_RESULT = WeighingResult()


def parse_quantity(value: object) -> float:
    """Parse an amount or tolerance as entered in the recipe editor.

    Numbers pass through, strings are read up to the first non-numeric
    character, and anything else (empty, None, garbage, NaN) is 0.

    Examples:
        >>> parse_quantity(100)
        100.0
        >>> parse_quantity("12.5 g")
        12.5
        >>> parse_quantity("")
        0.0
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        match = _LEADING_NUMBER.match(value)
        if not match:
            return 0.0
        number = float(match.group(0))
    else:
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return number


def compute_progress(current_weight: float, target: float) -> float:
    """Return ``current_weight / target``, or 0 when the target is not positive.

    The ratio is not clamped; values above 1.0 mean the user overshot.
    """
    if target <= 0:
        return 0.0
    return current_weight / target


def compute_weighing(
    step: IngredientStep | None, current_weight: float
) -> WeighingResult:
    """Compute the tolerance band and progress for a step.

    Args:
        step: The active step; anything other than a weight step yields the
            all-zero result.
        current_weight: Latest weight reported by the scale.

    Returns:
        The derived weighing result.
    """
    if step is None or step.step_type != StepType.WEIGHT:
        return _EMPTY_RESULT

    target = parse_quantity(step.amount)
    tolerance = parse_quantity(step.tolerance)
    min_weight = target - tolerance
    max_weight = target + tolerance

    return WeighingResult(
        target_weight=target,
        tolerance=tolerance,
        min_weight=min_weight,
        max_weight=max_weight,
        is_within_tolerance=min_weight <= current_weight <= max_weight,
        is_over_tolerance=current_weight > max_weight,
        progress=compute_progress(current_weight, target),
    )


def is_step_complete(
    step: IngredientStep | None, current_weight: float, is_stable: bool
) -> bool:
    """Decide whether the user may move on from a step.

    Instruction steps are always complete. Weighable steps only need an item
    on the scale. Weight steps need a stable reading inside the tolerance band.
    """
    if step is None:
        return False
    if step.step_type == StepType.INSTRUCTION:
        return True
    if step.step_type == StepType.WEIGHABLE:
        target = parse_quantity(step.amount)
        if target > 0:
            return compute_progress(current_weight, target) > WEIGHABLE_PRESENCE_RATIO
        return current_weight > 0
    if not is_stable:
        return False
    return compute_weighing(step, current_weight).is_within_tolerance
