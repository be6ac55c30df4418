import pytest

from baker_scale.models import IngredientStep, StepType, WeighingResult
from baker_scale.weighing import (
    compute_progress,
    compute_weighing,
    is_step_complete,
    parse_quantity,
)


def _step(amount=100, tolerance=5, step_type=StepType.WEIGHT):
    return IngredientStep(
        id="1", name="flour", step_type=step_type, amount=amount, tolerance=tolerance
    )


def test_within_tolerance():
    result = compute_weighing(_step(), 103)
    assert result.is_within_tolerance
    assert not result.is_over_tolerance
    assert result.progress == pytest.approx(1.03)
    assert (result.min_weight, result.max_weight) == (95, 105)


def test_over_tolerance():
    result = compute_weighing(_step(), 108)
    assert not result.is_within_tolerance
    assert result.is_over_tolerance
    assert result.progress == pytest.approx(1.08)


@pytest.mark.parametrize("weight", [94.9, 95, 100, 105, 105.1, 0, -3])
def test_band_flags_are_exclusive(weight):
    result = compute_weighing(_step(), weight)
    assert result.is_within_tolerance == (95 <= weight <= 105)
    assert result.is_over_tolerance == (weight > 105)
    assert not (result.is_within_tolerance and result.is_over_tolerance)


@pytest.mark.parametrize("step_type", [StepType.WEIGHABLE, StepType.INSTRUCTION])
def test_non_weight_steps_yield_empty_result(step_type):
    assert compute_weighing(_step(step_type=step_type), 100) == WeighingResult()


def test_missing_step():
    assert compute_weighing(None, 50) == WeighingResult()


def test_zero_target_has_zero_progress():
    result = compute_weighing(_step(amount="", tolerance=""), 40)
    assert result.progress == 0
    assert result.target_weight == 0
    assert compute_progress(10, -1) == 0


def test_string_amounts_are_parsed():
    result = compute_weighing(_step(amount="250", tolerance="10"), 245)
    assert result.target_weight == 250
    assert result.is_within_tolerance


@pytest.mark.parametrize(
    "value, expected",
    [(12, 12.0), ("12.5 g", 12.5), ("abc", 0.0), (None, 0.0), (True, 0.0), (float("nan"), 0.0)],
)
def test_parse_quantity(value, expected):
    assert parse_quantity(value) == expected


def test_step_completion_rules():
    assert is_step_complete(_step(step_type=StepType.INSTRUCTION), 0, False)
    assert not is_step_complete(_step(step_type=StepType.WEIGHABLE), 0.5, True)
    assert is_step_complete(_step(step_type=StepType.WEIGHABLE), 5, False)
    assert is_step_complete(_step(amount="", step_type=StepType.WEIGHABLE), 1, False)
    assert not is_step_complete(_step(), 100, False)
    assert is_step_complete(_step(), 100, True)
    assert not is_step_complete(_step(), 120, True)
    assert not is_step_complete(None, 10, True)


def test_step_from_dict():
    step = IngredientStep.from_dict(
        {
            "id": 7,
            "name": "sugar",
            "stepType": "weight",
            "amount": "50",
            "unit": "g",
            "tolerance": 2,
            "requireTare": True,
            "instructionText": "",
        }
    )
    assert step.id == "7"
    assert step.require_tare
    assert step.step_type == StepType.WEIGHT
    assert compute_weighing(step, 51).is_within_tolerance
