"""Weighted-sum multi-objective search with a non-dominated archive."""

from __future__ import annotations

from collections.abc import Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
import logging
import math
from typing import Optional

import numpy as np

from bioreactor_opt.catalog import BioreactorModel
from bioreactor_opt.optimization.engine import (
    GuessLike,
    OptimizationEngine,
    default_initial_guess,
)
from bioreactor_opt.optimization.evaluation import Oracle, estimate_cost
from bioreactor_opt.optimization.problem import (
    Evaluation,
    ObjectiveKind,
    ObjectiveWeights,
    OptimizationConstraints,
    OptimizationObjective,
    OptimizationResult,
    OptimizationSettings,
    ParetoSolution,
)

logger = logging.getLogger(__name__)

# power and efficiency are maximised, cost minimised
DIRECTIONS = ("max", "max", "min")


@dataclass(frozen=True)
class _WeightedRun:
    index: int
    weights: ObjectiveWeights
    seed: np.random.SeedSequence


def random_weights(rng: np.random.Generator, count: int) -> list[ObjectiveWeights]:
    """Power/efficiency/cost weight triples that sum to one."""
    triples = []
    for _ in range(count):
        power = float(rng.random())
        efficiency = float(rng.random()) * (1.0 - power)
        triples.append(
            ObjectiveWeights(
                power=power,
                efficiency=efficiency,
                cost=1.0 - power - efficiency,
            )
        )
    return triples


def _dominates(
    candidate: Sequence[float],
    other: Sequence[float],
    directions: Sequence[str],
) -> bool:
    strictly_better = False
    for value, other_value, direction in zip(candidate, other, directions):
        if direction == "min":
            if value > other_value:
                return False
            if value < other_value:
                strictly_better = True
        else:
            if value < other_value:
                return False
            if value > other_value:
                strictly_better = True
    return strictly_better


def non_dominated(solutions: Sequence[ParetoSolution]) -> list[ParetoSolution]:
    front = []
    for index, candidate in enumerate(solutions):
        dominated = False
        for other_index, other in enumerate(solutions):
            if other_index == index:
                continue
            if _dominates(other.metrics(), candidate.metrics(), DIRECTIONS):
                dominated = True
                break
        if not dominated:
            front.append(candidate)
    return front


def best_compromise(front: Sequence[ParetoSolution]) -> int:
    """Index of the solution closest to the ideal point, each axis normalised."""
    max_power = max(item.power for item in front)
    max_efficiency = max(item.efficiency for item in front)
    min_cost = min(item.cost for item in front)
    best_index = 0
    best_distance = math.inf
    for index, item in enumerate(front):
        distance = math.sqrt(
            ((max_power - item.power) / (max_power or 1.0)) ** 2
            + ((max_efficiency - item.efficiency) / (max_efficiency or 1.0)) ** 2
            + ((item.cost - min_cost) / (min_cost or 1.0)) ** 2
        )
        if distance < best_distance:
            best_distance = distance
            best_index = index
    return best_index


class MultiObjectiveOptimizer:
    """Repeat single-objective runs under random weightings and keep the Pareto set."""

    def __init__(self, engine: Optional[OptimizationEngine] = None) -> None:
        self.engine = engine or OptimizationEngine()

    def optimize(
        self,
        constraints: OptimizationConstraints,
        settings: OptimizationSettings,
        oracle: Oracle,
        initial_guess: GuessLike = None,
        *,
        device: Optional[BioreactorModel] = None,
    ) -> OptimizationResult:
        size = settings.pareto_size
        weight_seed, *run_seeds = np.random.SeedSequence(settings.seed).spawn(size + 1)
        weights = random_weights(np.random.default_rng(weight_seed), size)
        jobs = [
            _WeightedRun(index=index, weights=weights[index], seed=run_seeds[index])
            for index in range(size)
        ]

        def run(job: _WeightedRun) -> Optional[ParetoSolution]:
            objective = OptimizationObjective(
                kind=ObjectiveKind.MULTI_OBJECTIVE,
                weights=job.weights,
            )
            result = self.engine.optimize(
                objective,
                constraints,
                settings,
                oracle,
                initial_guess,
                device=device,
                rng=np.random.default_rng(job.seed),
                with_sensitivity=False,
            )
            if not result.success:
                logger.debug("Weighted run %d failed: %s", job.index, result.constraint_violations)
                return None
            params = result.optimized_parameters
            evaluation = Evaluation.coerce(oracle(params))
            return ParetoSolution(
                power=evaluation.power,
                efficiency=evaluation.efficiency,
                cost=evaluation.cost if evaluation.cost is not None else estimate_cost(params),
                parameters=params,
            )

        logger.info(
            "Pareto search: %d weighted %s runs, workers=%d.",
            size,
            settings.algorithm.value,
            settings.max_workers,
        )
        if settings.max_workers > 1:
            with ThreadPoolExecutor(max_workers=settings.max_workers) as executor:
                outcomes = list(executor.map(run, jobs))
        else:
            outcomes = [run(job) for job in jobs]

        solutions = [item for item in outcomes if item is not None]
        if not solutions:
            return OptimizationResult(
                success=False,
                optimized_parameters=default_initial_guess(constraints, initial_guess),
                objective_value=0.0,
                constraint_violations=(
                    f"No weighted run satisfied the constraints ({size} attempted)",
                ),
                iterations=size,
                algorithm=settings.algorithm,
                pareto_front=(),
            )

        front = non_dominated(solutions)
        chosen = front[best_compromise(front)]
        logger.info("Pareto front holds %d of %d solutions.", len(front), len(solutions))
        return OptimizationResult(
            success=True,
            optimized_parameters=chosen.parameters,
            objective_value=chosen.power * chosen.efficiency,
            constraint_violations=(),
            iterations=size,
            algorithm=settings.algorithm,
            pareto_front=tuple(front),
        )


__all__ = [
    "DIRECTIONS",
    "MultiObjectiveOptimizer",
    "best_compromise",
    "non_dominated",
    "random_weights",
]
