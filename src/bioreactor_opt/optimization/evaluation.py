"""Shared evaluation context: scalarization, analytic estimators, constraint checks."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from functools import cached_property
import logging
import math
from typing import Optional, Union

import numpy as np

from bioreactor_opt.catalog import BioreactorModel
from bioreactor_opt.errors import OptimizationError
from bioreactor_opt.parameters import (
    BASE_FIELDS,
    EXTENSION_FIELDS,
    PARAMETER_LABELS,
    BioreactorParameters,
    ParameterSpace,
)
from bioreactor_opt.optimization.problem import (
    Algorithm,
    Evaluation,
    HistoryEntry,
    ObjectiveKind,
    OptimizationConstraints,
    OptimizationObjective,
    OptimizationResult,
    OptimizationSettings,
)

logger = logging.getLogger(__name__)

Oracle = Callable[[BioreactorParameters], Union[Evaluation, Mapping[str, float]]]

BASE_SYSTEM_COST = 500.0
AMBIENT_TEMPERATURE = 30.0
NOMINAL_LIFETIME_HOURS = 8760.0
CONVERGENCE_WINDOW = 10


def estimate_cost(params: BioreactorParameters) -> float:
    """Analytic system cost used when the oracle reports none."""
    return (
        BASE_SYSTEM_COST
        + abs(params.temperature - AMBIENT_TEMPERATURE) * 2.0
        + params.mixing_speed * 0.1
        + params.electrode_voltage * 0.05
        + params.substrate_concentration * params.flow_rate * 0.01
    )


def estimate_durability(params: BioreactorParameters) -> float:
    """Expected service life in hours."""
    hours = NOMINAL_LIFETIME_HOURS
    hours *= math.exp(-abs(params.temperature - AMBIENT_TEMPERATURE) / 50.0)
    hours *= math.exp(-abs(params.ph - 7.0) / 2.0)
    if params.electrode_voltage > 150.0:
        hours *= 0.8
    if params.mixing_speed > 250.0:
        hours *= 0.9
    return hours


def scalarize(
    objective: OptimizationObjective,
    params: BioreactorParameters,
    evaluation: Evaluation,
) -> float:
    """Collapse an evaluation into one score to minimise."""
    kind = objective.kind
    cost = evaluation.cost if evaluation.cost is not None else estimate_cost(params)
    if kind is ObjectiveKind.MAXIMIZE_POWER:
        return -evaluation.power
    if kind is ObjectiveKind.MAXIMIZE_EFFICIENCY:
        return -evaluation.efficiency
    if kind is ObjectiveKind.MINIMIZE_COST:
        return cost
    if kind is ObjectiveKind.MAXIMIZE_DURABILITY:
        return -estimate_durability(params)
    if kind is ObjectiveKind.MULTI_OBJECTIVE:
        weights = objective.weights
        return -(
            weights.power * evaluation.power
            + weights.efficiency * evaluation.efficiency
            - weights.cost * cost
            + weights.durability * estimate_durability(params)
        )
    raise ValueError(f"Unhandled objective kind: {kind!r}")


@dataclass(frozen=True)
class EvaluationContext:
    """Everything an optimizer needs besides its own tuning state."""

    objective: OptimizationObjective
    constraints: OptimizationConstraints
    settings: OptimizationSettings
    oracle: Oracle
    rng: np.random.Generator
    device: Optional[BioreactorModel] = None

    @classmethod
    def create(
        cls,
        objective: OptimizationObjective,
        constraints: OptimizationConstraints,
        settings: OptimizationSettings,
        oracle: Oracle,
        *,
        rng: Optional[np.random.Generator] = None,
        device: Optional[BioreactorModel] = None,
    ) -> "EvaluationContext":
        if rng is None:
            rng = np.random.default_rng(settings.seed)
        if device is None:
            device = getattr(oracle, "device", None)
        return cls(
            objective=objective,
            constraints=constraints,
            settings=settings,
            oracle=oracle,
            rng=rng,
            device=device,
        )

    @cached_property
    def space(self) -> ParameterSpace:
        return self.constraints.space()


def evaluate(ctx: EvaluationContext, params: BioreactorParameters) -> Evaluation:
    evaluation = Evaluation.coerce(ctx.oracle(params))
    if not (math.isfinite(evaluation.power) and math.isfinite(evaluation.efficiency)):
        raise OptimizationError(
            f"Oracle returned a non-finite result: {evaluation}.",
            context={"parameters": params.to_dict()},
        )
    return evaluation


def objective_score(ctx: EvaluationContext, params: BioreactorParameters) -> float:
    return scalarize(ctx.objective, params, evaluate(ctx, params))


def fitness(ctx: EvaluationContext, params: BioreactorParameters) -> float:
    """Larger-is-better view of :func:`objective_score`."""
    return -objective_score(ctx, params)


def _format_number(value: float) -> str:
    return f"{value:g}"


def _material_violations(ctx: EvaluationContext) -> list[str]:
    device = ctx.device
    allowed = ctx.constraints.materials
    if device is None:
        return []
    violations = []
    checks = (
        ("Anode", device.electrodes.anode.material, allowed.anode),
        ("Cathode", device.electrodes.cathode.material, allowed.cathode),
        ("Membrane", device.electrodes.membrane, allowed.membrane),
    )
    for label, materials, whitelist in checks:
        if not whitelist or not materials:
            continue
        permitted = {item.lower() for item in whitelist}
        rejected = [item for item in materials if item.lower() not in permitted]
        if rejected:
            violations.append(
                f"{label} material {', '.join(rejected)} not in available materials"
            )
    return violations


def check_constraints(ctx: EvaluationContext, params: BioreactorParameters) -> list[str]:
    """List every violated bound or target for ``params``.

    Bounds are inclusive, so a value sitting exactly on a limit is legal.
    """
    violations: list[str] = []
    for name in (*BASE_FIELDS, *EXTENSION_FIELDS):
        interval = ctx.constraints.interval(name)
        value = params.get(name)
        if interval is None or value is None or interval.contains(value):
            continue
        violations.append(
            f"{PARAMETER_LABELS[name]} {_format_number(value)} outside range "
            f"[{_format_number(interval.low)}, {_format_number(interval.high)}]"
        )

    targets = ctx.objective.targets
    needs_evaluation = not targets.is_empty() or ctx.constraints.max_operating_cost is not None
    if needs_evaluation:
        evaluation = evaluate(ctx, params)
        cost = evaluation.cost if evaluation.cost is not None else estimate_cost(params)
        if targets.min_power is not None and evaluation.power < targets.min_power:
            violations.append(
                f"Power {_format_number(evaluation.power)}W below minimum "
                f"{_format_number(targets.min_power)}W"
            )
        if targets.min_efficiency is not None and evaluation.efficiency < targets.min_efficiency:
            violations.append(
                f"Efficiency {_format_number(evaluation.efficiency)}% below minimum "
                f"{_format_number(targets.min_efficiency)}%"
            )
        if targets.max_cost is not None and cost > targets.max_cost:
            violations.append(
                f"Cost {_format_number(cost)} above maximum {_format_number(targets.max_cost)}"
            )
        if targets.min_durability is not None:
            durability = estimate_durability(params)
            if durability < targets.min_durability:
                violations.append(
                    f"Durability {_format_number(durability)}h below minimum "
                    f"{_format_number(targets.min_durability)}h"
                )
        limit = ctx.constraints.max_operating_cost
        if (
            limit is not None
            and evaluation.operating_cost is not None
            and evaluation.operating_cost > limit
        ):
            violations.append(
                f"Operating cost {_format_number(evaluation.operating_cost)} above maximum "
                f"{_format_number(limit)}"
            )

    limit = ctx.constraints.max_system_cost
    if limit is not None and ctx.device is not None:
        capital = ctx.device.economics.capital_cost
        if capital is not None and capital > limit:
            violations.append(
                f"System cost {_format_number(capital)} above maximum {_format_number(limit)}"
            )
    violations.extend(_material_violations(ctx))
    return violations


def has_plateaued(
    values: Sequence[float],
    tolerance: float,
    *,
    window: int = CONVERGENCE_WINDOW,
) -> bool:
    """True once more than ``window`` values exist and the last ``window`` barely vary."""
    if len(values) <= window:
        return False
    return float(np.var(values[-window:])) < tolerance


def record(
    history: list[HistoryEntry],
    iteration: int,
    value: float,
    params: BioreactorParameters,
) -> None:
    history.append(HistoryEntry(iteration=iteration, objective_value=value, parameters=params))


def finalize(
    ctx: EvaluationContext,
    params: BioreactorParameters,
    *,
    iterations: int,
    history: Sequence[HistoryEntry],
    algorithm: Algorithm,
    value: Optional[float] = None,
) -> OptimizationResult:
    """Build the result for the final candidate, checking constraints once."""
    violations = check_constraints(ctx, params)
    if value is None:
        value = fitness(ctx, params)
    if violations:
        logger.info("%s finished with %d violation(s).", algorithm.value, len(violations))
    return OptimizationResult(
        success=not violations,
        optimized_parameters=params,
        objective_value=value,
        constraint_violations=tuple(violations),
        iterations=iterations,
        convergence_history=tuple(history),
        algorithm=algorithm,
    )


__all__ = [
    "EvaluationContext",
    "Oracle",
    "check_constraints",
    "estimate_cost",
    "estimate_durability",
    "evaluate",
    "finalize",
    "fitness",
    "has_plateaued",
    "objective_score",
    "record",
    "scalarize",
]
