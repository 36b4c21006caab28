import math

import pytest

from bioreactor_opt.errors import OptimizationError, ValidationError
from bioreactor_opt.optimization.engine import (
    OPTIMIZERS,
    OptimizationEngine,
    default_initial_guess,
)
from bioreactor_opt.optimization.oracles import PredictionOracle, SurrogateOracle
from bioreactor_opt.optimization.problem import (
    Algorithm,
    ObjectiveKind,
    ObjectiveTargets,
    OptimizationConstraints,
    OptimizationObjective,
    OptimizationSettings,
)
from bioreactor_opt.parameters import BASE_FIELDS, Interval
from bioreactor_opt.prediction.engine import PredictionEngine

BOX = {
    "temperature": [20.0, 40.0],
    "ph": [6.0, 8.0],
    "flow_rate": [10.0, 200.0],
    "mixing_speed": [0.0, 300.0],
    "electrode_voltage": [0.0, 200.0],
    "substrate_concentration": [0.1, 5.0],
}


@pytest.fixture()
def stirred_oracle(catalog):
    return PredictionOracle(PredictionEngine(catalog), "stirred-tank-001")


def test_every_algorithm_has_an_optimizer() -> None:
    assert set(OPTIMIZERS) == set(Algorithm)


def test_gradient_descent_on_catalog_device(scenario_constraints, stirred_oracle) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=50,
    )
    result = OptimizationEngine().optimize(
        OptimizationObjective(kind=ObjectiveKind.MAXIMIZE_POWER),
        scenario_constraints,
        settings,
        stirred_oracle,
    )
    assert result.success
    assert result.constraint_violations == ()
    assert 27.0 <= result.optimized_parameters.temperature <= 33.0
    assert result.objective_value > 0.0
    assert result.iterations <= 50

    assert result.sensitivity is not None
    assert [entry.parameter for entry in result.sensitivity] == list(BASE_FIELDS)
    for entry in result.sensitivity:
        assert entry.sensitivity >= 0.0
        assert math.isfinite(entry.sensitivity)
        assert entry.optimal_range.low <= entry.optimal_range.high

    payload = result.to_dict()
    assert payload["algorithm"] == "gradient_descent"
    assert len(payload["sensitivity"]) == 6


def test_gradient_descent_converges_off_the_midpoint(scenario_constraints, catalog) -> None:
    # The box midpoint sits at 30 °C; this device peaks near 35 °C.
    oracle = PredictionOracle(PredictionEngine(catalog), "embr-001")
    window = oracle.device.operating.temperature
    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=1000,
        convergence_tolerance=1e-3,
    )
    result = OptimizationEngine().optimize(
        OptimizationObjective(kind=ObjectiveKind.MAXIMIZE_POWER),
        scenario_constraints,
        settings,
        oracle,
        with_sensitivity=False,
    )
    assert result.iterations < settings.max_iterations
    assert result.success
    assert result.constraint_violations == ()
    temperature = result.optimized_parameters.temperature
    assert window.optimal - window.tolerance <= temperature <= window.optimal + window.tolerance
    assert abs(temperature - window.optimal) < 1.0
    start = result.convergence_history[0].objective_value
    assert result.objective_value > 10.0 * start


def test_value_on_the_bound_is_feasible(scenario_constraints) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=0,
    )
    result = OptimizationEngine().optimize(
        OptimizationObjective(kind=ObjectiveKind.MINIMIZE_COST),
        scenario_constraints,
        settings,
        SurrogateOracle("MFC"),
        {"electrode_voltage": 200.0},
    )
    assert result.success
    assert result.iterations == 0
    assert result.optimized_parameters.electrode_voltage == 200.0
    # Larger is better, so a cost comes back negated.
    assert result.objective_value < 0.0


def test_cost_target_violation_is_reported(scenario_constraints) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=0,
    )
    objective = OptimizationObjective(
        kind=ObjectiveKind.MINIMIZE_COST,
        targets=ObjectiveTargets(max_cost=520.0),
    )
    result = OptimizationEngine().optimize(
        objective,
        scenario_constraints,
        settings,
        SurrogateOracle("MFC"),
        {"electrode_voltage": 200.0},
    )
    assert not result.success
    assert any(message.startswith("Cost ") for message in result.constraint_violations)
    assert result.sensitivity is None


def test_power_target_violation_is_reported(scenario_constraints) -> None:
    objective = OptimizationObjective(
        kind=ObjectiveKind.MAXIMIZE_POWER,
        targets=ObjectiveTargets(min_power=1.0e6, min_efficiency=99.0),
    )
    result = OptimizationEngine().optimize(
        objective,
        scenario_constraints,
        OptimizationSettings(
            algorithm=Algorithm.PARTICLE_SWARM,
            max_iterations=3,
            population_size=4,
            seed=1,
        ),
        SurrogateOracle("MEC"),
    )
    assert not result.success
    messages = " | ".join(result.constraint_violations)
    assert "Power" in messages and "below minimum 1e+06W" in messages
    assert "Efficiency" in messages


def test_device_cost_and_material_constraints(stirred_oracle) -> None:
    constraints = OptimizationConstraints.from_mapping(
        {
            **BOX,
            "max_system_cost": 200.0,
            "available_materials": {"anode": ["Graphite"]},
        }
    )
    result = OptimizationEngine().optimize(
        OptimizationObjective(),
        constraints,
        OptimizationSettings(algorithm=Algorithm.GRADIENT_DESCENT, max_iterations=0),
        stirred_oracle,
    )
    assert not result.success
    assert "System cost 280 above maximum 200" in result.constraint_violations
    assert "Anode material Carbon felt not in available materials" in result.constraint_violations


def test_genetic_algorithm_skips_sensitivity(scenario_constraints) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.GENETIC_ALGORITHM,
        max_iterations=5,
        population_size=6,
        seed=4,
    )
    result = OptimizationEngine().optimize(
        OptimizationObjective(kind=ObjectiveKind.MAXIMIZE_EFFICIENCY),
        scenario_constraints,
        settings,
        SurrogateOracle(),
    )
    assert result.success
    assert result.sensitivity is None
    assert "sensitivity" not in result.to_dict()


def test_sensitivity_can_be_disabled(scenario_constraints) -> None:
    settings = OptimizationSettings(algorithm=Algorithm.BAYESIAN, max_iterations=5, seed=0)
    result = OptimizationEngine().optimize(
        OptimizationObjective(),
        scenario_constraints,
        settings,
        SurrogateOracle(),
        with_sensitivity=False,
    )
    assert result.success
    assert result.sensitivity is None


def test_default_initial_guess_covers_extensions() -> None:
    constraints = OptimizationConstraints.from_mapping(
        {**BOX, "extensions": {"pressure": [1.0, 3.0]}}
    )
    guess = default_initial_guess(constraints)
    assert guess.temperature == 30.0
    assert guess.extensions.pressure == 2.0
    assert guess.extensions.salinity is None

    override = default_initial_guess(
        constraints,
        {"ph": 6.5, "extensions": {"pressure": 2.5}},
    )
    assert override.ph == 6.5
    assert override.extensions.pressure == 2.5

    with pytest.raises(ValidationError):
        default_initial_guess(constraints, [30.0, 7.0])


def test_constraints_reject_unknown_extension() -> None:
    with pytest.raises(ValidationError):
        OptimizationConstraints(
            **{name: Interval(*bounds) for name, bounds in BOX.items()},
            extensions={"humidity": Interval(0.0, 1.0)},
        )


def test_non_finite_oracle_output_raises(scenario_constraints) -> None:
    with pytest.raises(OptimizationError):
        OptimizationEngine().optimize(
            OptimizationObjective(),
            scenario_constraints,
            OptimizationSettings(algorithm=Algorithm.GRADIENT_DESCENT, max_iterations=1),
            lambda params: {"power": float("nan"), "efficiency": 10.0},
        )
