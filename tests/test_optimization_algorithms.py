import logging
import math

import numpy as np
import pytest

from bioreactor_opt.errors import ConfigError
from bioreactor_opt.optimization.algorithms.bayesian import BayesianOptimizer, erf
from bioreactor_opt.optimization.engine import build_optimizer, default_initial_guess
from bioreactor_opt.optimization.evaluation import (
    EvaluationContext,
    has_plateaued,
    scalarize,
)
from bioreactor_opt.optimization.oracles import SurrogateOracle
from bioreactor_opt.optimization.problem import (
    AcquisitionFunction,
    Algorithm,
    Evaluation,
    ObjectiveKind,
    ObjectiveWeights,
    OptimizationObjective,
    OptimizationSettings,
    TemperatureSchedule,
)

STOCHASTIC = [
    Algorithm.GENETIC_ALGORITHM,
    Algorithm.PARTICLE_SWARM,
    Algorithm.BAYESIAN,
    Algorithm.SIMULATED_ANNEALING,
]


def _context(constraints, settings, oracle=None, objective=None):
    return EvaluationContext.create(
        objective or OptimizationObjective(kind=ObjectiveKind.MAXIMIZE_POWER),
        constraints,
        settings,
        oracle or SurrogateOracle("MFC"),
    )


def _run(constraints, settings, oracle=None, objective=None):
    context = _context(constraints, settings, oracle, objective)
    return build_optimizer(context).optimize(default_initial_guess(constraints))


def _inside(constraints, params) -> bool:
    return all(
        interval.contains(params.get(name))
        for name, interval in constraints.intervals().items()
    )


@pytest.mark.parametrize("algorithm", STOCHASTIC)
def test_results_stay_inside_the_box(scenario_constraints, algorithm) -> None:
    settings = OptimizationSettings(
        algorithm=algorithm,
        max_iterations=15,
        population_size=12,
        seed=3,
    )
    result = _run(scenario_constraints, settings)
    assert result.algorithm is algorithm
    assert result.success
    assert _inside(scenario_constraints, result.optimized_parameters)
    assert 0 < result.iterations <= settings.max_iterations
    for entry in result.convergence_history:
        assert _inside(scenario_constraints, entry.parameters)


@pytest.mark.parametrize("algorithm", STOCHASTIC)
def test_seeded_runs_are_reproducible(scenario_constraints, algorithm) -> None:
    settings = OptimizationSettings(
        algorithm=algorithm,
        max_iterations=10,
        population_size=8,
        seed=11,
    )
    first = _run(scenario_constraints, settings)
    second = _run(scenario_constraints, settings)
    assert first.optimized_parameters == second.optimized_parameters
    assert first.objective_value == second.objective_value


@pytest.mark.parametrize(
    "algorithm",
    [Algorithm.GENETIC_ALGORITHM, Algorithm.PARTICLE_SWARM, Algorithm.SIMULATED_ANNEALING],
)
def test_search_does_not_lose_to_the_starting_point(scenario_constraints, algorithm) -> None:
    settings = OptimizationSettings(
        algorithm=algorithm,
        max_iterations=20,
        population_size=10,
        seed=5,
    )
    oracle = SurrogateOracle("MFC")
    midpoint = default_initial_guess(scenario_constraints)
    baseline = oracle(midpoint).power
    result = _run(scenario_constraints, settings, oracle)
    assert result.objective_value >= baseline


def test_gradient_descent_stops_on_flat_objective(scenario_constraints) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=25,
    )
    result = _run(
        scenario_constraints,
        settings,
        oracle=lambda params: {"power": 4.0, "efficiency": 50.0},
    )
    assert result.success
    assert result.iterations == 0
    assert len(result.convergence_history) == 1
    assert result.objective_value == pytest.approx(4.0)
    assert result.optimized_parameters == default_initial_guess(scenario_constraints)


def test_gradient_descent_stops_at_the_blocking_bound(scenario_constraints) -> None:
    # Power rises with temperature only.
    def oracle(params):
        return Evaluation(power=params.temperature, efficiency=50.0)

    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=5,
        learning_rate=1.0,
    )
    result = _run(scenario_constraints, settings, oracle=oracle)
    # 30 + 20 * 20 / 30 overshoots and is clamped; the bound then blocks descent.
    assert result.iterations == 1
    assert result.optimized_parameters.temperature == 40.0
    values = [entry.objective_value for entry in result.convergence_history]
    assert values == pytest.approx([30.0, 40.0])


def test_gradient_descent_step_is_relative_to_the_box(scenario_constraints) -> None:
    def oracle(params):
        return Evaluation(power=params.temperature, efficiency=50.0)

    settings = OptimizationSettings(
        algorithm=Algorithm.GRADIENT_DESCENT,
        max_iterations=1,
        learning_rate=0.03,
    )
    result = _run(scenario_constraints, settings, oracle=oracle)
    # lr * width**2 * (dP/dT) / P = 0.03 * 400 / 30
    assert result.optimized_parameters.temperature == pytest.approx(30.4, abs=1e-6)
    assert result.optimized_parameters.ph == 7.0


@pytest.mark.parametrize("acquisition", list(AcquisitionFunction))
def test_bayesian_acquisition_functions_run(scenario_constraints, acquisition) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.BAYESIAN,
        max_iterations=12,
        acquisition_function=acquisition,
        seed=2,
    )
    result = _run(scenario_constraints, settings)
    assert result.success
    assert _inside(scenario_constraints, result.optimized_parameters)


def test_vectorised_erf_matches_math_erf() -> None:
    grid = np.linspace(-4.0, 4.0, 81)
    expected = np.array([math.erf(value) for value in grid])
    np.testing.assert_allclose(erf(grid), expected, atol=2e-7)
    np.testing.assert_array_equal(erf(-grid), -erf(grid))
    assert erf(np.array([1e12, -1e12])).tolist() == pytest.approx([1.0, -1.0])


def test_probability_of_improvement_is_a_probability(scenario_constraints) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.BAYESIAN,
        acquisition_function=AcquisitionFunction.PI,
        seed=0,
    )
    optimizer = BayesianOptimizer(_context(scenario_constraints, settings))
    observed = optimizer.stratified_samples(4)
    values = np.array([1.0, 3.0, 2.0, 0.5])
    candidates = np.vstack([observed, optimizer.stratified_samples(6)])
    scores = optimizer.acquisition_values(candidates, observed, values)
    assert scores.shape == (10,)
    assert np.all((scores >= 0.0) & (scores <= 1.0))
    # Re-proposing the incumbent gives z == 0.
    assert scores[1] == pytest.approx(0.5, abs=1e-6)


@pytest.mark.parametrize("schedule", list(TemperatureSchedule))
def test_annealing_schedules_run(scenario_constraints, schedule) -> None:
    settings = OptimizationSettings(
        algorithm=Algorithm.SIMULATED_ANNEALING,
        max_iterations=30,
        temperature_schedule=schedule,
        seed=9,
    )
    result = _run(scenario_constraints, settings)
    assert result.success
    assert _inside(scenario_constraints, result.optimized_parameters)
    best = max(entry.objective_value for entry in result.convergence_history)
    assert result.objective_value == pytest.approx(best)


def test_algorithm_parse_normalizes_names() -> None:
    assert Algorithm.parse("Particle-Swarm") is Algorithm.PARTICLE_SWARM
    assert Algorithm.parse("simulated annealing") is Algorithm.SIMULATED_ANNEALING
    assert Algorithm.parse(Algorithm.BAYESIAN) is Algorithm.BAYESIAN


def test_unknown_algorithm_falls_back_with_warning(caplog) -> None:
    with caplog.at_level(logging.WARNING):
        assert Algorithm.parse("hill_climb") is Algorithm.GENETIC_ALGORITHM
    assert "hill_climb" in caplog.text


def test_unknown_algorithm_strict_raises() -> None:
    with pytest.raises(ConfigError) as exc:
        Algorithm.parse("hill_climb", strict=True)
    assert "gradient_descent" in str(exc.value)


def test_settings_reject_invalid_values() -> None:
    with pytest.raises(ConfigError):
        OptimizationSettings(max_iterations=-1)
    with pytest.raises(ConfigError):
        OptimizationSettings(learning_rate=0.0)
    with pytest.raises(ConfigError):
        OptimizationSettings.from_mapping({"max_iterations": "many"})


def test_scalarize_orients_every_objective(scenario_constraints) -> None:
    params = default_initial_guess(scenario_constraints)
    evaluation = Evaluation(power=10.0, efficiency=40.0, cost=600.0)
    assert scalarize(OptimizationObjective(ObjectiveKind.MAXIMIZE_POWER), params, evaluation) == -10.0
    assert (
        scalarize(OptimizationObjective(ObjectiveKind.MAXIMIZE_EFFICIENCY), params, evaluation)
        == -40.0
    )
    assert scalarize(OptimizationObjective(ObjectiveKind.MINIMIZE_COST), params, evaluation) == 600.0
    weighted = OptimizationObjective(
        ObjectiveKind.MULTI_OBJECTIVE,
        weights=ObjectiveWeights(power=1.0, efficiency=0.5, cost=0.01),
    )
    assert scalarize(weighted, params, evaluation) == pytest.approx(-(10.0 + 20.0 - 6.0))
    durability = scalarize(
        OptimizationObjective(ObjectiveKind.MAXIMIZE_DURABILITY), params, evaluation
    )
    assert durability < 0.0


def test_has_plateaued_needs_a_full_window() -> None:
    assert not has_plateaued([1.0] * 10, 1e-6)
    assert has_plateaued([5.0] + [1.0] * 10, 1e-6)
    assert not has_plateaued(list(np.linspace(0.0, 1.0, 11)), 1e-6)
