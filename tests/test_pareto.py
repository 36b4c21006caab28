import numpy as np
import pytest

from bioreactor_opt.optimization.oracles import PredictionOracle, SurrogateOracle
from bioreactor_opt.optimization.pareto import (
    DIRECTIONS,
    MultiObjectiveOptimizer,
    _dominates,
    best_compromise,
    non_dominated,
    random_weights,
)
from bioreactor_opt.optimization.problem import (
    Algorithm,
    OptimizationConstraints,
    OptimizationSettings,
    ParetoSolution,
)
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.engine import PredictionEngine

PARAMS = BioreactorParameters.from_mapping(
    {
        "temperature": 30.0,
        "ph": 7.0,
        "flow_rate": 100.0,
        "mixing_speed": 150.0,
        "electrode_voltage": 100.0,
        "substrate_concentration": 2.5,
    }
)


def _solution(power: float, efficiency: float, cost: float) -> ParetoSolution:
    return ParetoSolution(power=power, efficiency=efficiency, cost=cost, parameters=PARAMS)


def _settings(**overrides) -> OptimizationSettings:
    values = {
        "algorithm": Algorithm.PARTICLE_SWARM,
        "max_iterations": 4,
        "population_size": 5,
        "pareto_size": 5,
        "seed": 21,
    }
    values.update(overrides)
    return OptimizationSettings(**values)


def test_dominance_respects_directions() -> None:
    assert _dominates((2.0, 50.0, 100.0), (1.0, 50.0, 100.0), DIRECTIONS)
    assert _dominates((1.0, 50.0, 90.0), (1.0, 50.0, 100.0), DIRECTIONS)
    assert not _dominates((1.0, 50.0, 100.0), (1.0, 50.0, 100.0), DIRECTIONS)
    assert not _dominates((2.0, 50.0, 120.0), (1.0, 50.0, 100.0), DIRECTIONS)


def test_non_dominated_filters_the_archive() -> None:
    archive = [
        _solution(10.0, 50.0, 500.0),
        _solution(8.0, 40.0, 520.0),  # dominated by the first
        _solution(5.0, 70.0, 510.0),
        _solution(12.0, 30.0, 600.0),
    ]
    front = non_dominated(archive)
    assert archive[1] not in front
    assert len(front) == 3


def test_best_compromise_prefers_balanced_solution() -> None:
    front = [
        _solution(10.0, 10.0, 500.0),
        _solution(9.0, 9.0, 500.0),
        _solution(1.0, 10.0, 500.0),
    ]
    assert best_compromise(front) == 0
    assert best_compromise([_solution(0.0, 0.0, 0.0)]) == 0


def test_random_weights_sum_to_one() -> None:
    weights = random_weights(np.random.default_rng(0), 25)
    assert len(weights) == 25
    for item in weights:
        assert item.power >= 0.0 and item.efficiency >= 0.0 and item.cost >= 0.0
        assert item.power + item.efficiency + item.cost == pytest.approx(1.0)


def test_pareto_front_is_non_dominated(scenario_constraints) -> None:
    result = MultiObjectiveOptimizer().optimize(
        scenario_constraints,
        _settings(),
        SurrogateOracle("MFC"),
    )
    assert result.success
    assert result.iterations == 5
    assert result.pareto_front
    front = result.pareto_front
    for first in front:
        for second in front:
            assert not _dominates(second.metrics(), first.metrics(), DIRECTIONS)
    assert result.optimized_parameters in [item.parameters for item in front]
    assert result.to_dict()["pareto_front"][0]["cost"] > 0.0


def test_parallel_runs_match_sequential(scenario_constraints) -> None:
    oracle = SurrogateOracle("MDC")
    sequential = MultiObjectiveOptimizer().optimize(
        scenario_constraints, _settings(), oracle
    )
    parallel = MultiObjectiveOptimizer().optimize(
        scenario_constraints, _settings(max_workers=3), oracle
    )
    assert parallel.pareto_front == sequential.pareto_front
    assert parallel.optimized_parameters == sequential.optimized_parameters


def test_every_run_failing_reports_failure(catalog) -> None:
    constraints = OptimizationConstraints.from_mapping(
        {
            "temperature": [20.0, 40.0],
            "ph": [6.0, 8.0],
            "flow_rate": [10.0, 200.0],
            "mixing_speed": [0.0, 300.0],
            "electrode_voltage": [0.0, 200.0],
            "substrate_concentration": [0.1, 5.0],
            "max_system_cost": 10.0,
        }
    )
    oracle = PredictionOracle(PredictionEngine(catalog), "stirred-tank-001")
    result = MultiObjectiveOptimizer().optimize(
        constraints,
        _settings(algorithm=Algorithm.GRADIENT_DESCENT, max_iterations=0, pareto_size=3),
        oracle,
    )
    assert not result.success
    assert result.pareto_front == ()
    assert result.constraint_violations == (
        "No weighted run satisfied the constraints (3 attempted)",
    )
