"""CLI entry point."""

from __future__ import annotations

import argparse
from collections.abc import Mapping
import logging
from pathlib import Path
from typing import Any, Iterable, Optional, Sequence

from bioreactor_opt.catalog import BioreactorCatalog, load_catalog, performance_score
from bioreactor_opt.errors import BioreactorOptError, ConfigError, ValidationError
from bioreactor_opt.hydra_utils import (
    DEFAULT_CONFIG_NAME,
    DEFAULT_CONFIG_PATH,
    compose_config,
    format_config,
    resolve_config,
    seed_everything,
)
from bioreactor_opt.io_utils import dumps_json, read_yaml_payload, write_json_atomic
from bioreactor_opt.logging_utils import (
    LOG_LEVEL_ENV,
    configure_logging,
    log_exception,
    run_with_error_handling,
)
from bioreactor_opt.optimization.engine import OptimizationEngine
from bioreactor_opt.optimization.oracles import build_oracle
from bioreactor_opt.optimization.pareto import MultiObjectiveOptimizer
from bioreactor_opt.optimization.problem import OptimizationResult, problem_from_config
from bioreactor_opt.parameters import BioreactorParameters
from bioreactor_opt.prediction.engine import PredictionEngine
from bioreactor_opt.prediction.results import Fidelity

_SUBCOMMANDS: Sequence[str] = (
    "help",
    "cfg",
    "catalog",
    "predict",
    "optimize",
    "pareto",
)
SCALES = ("laboratory", "pilot", "industrial")


def _emit(payload: Any, output: Optional[str] = None) -> None:
    if output:
        write_json_atomic(Path(output), payload)
    print(dumps_json(payload), end="")


def _load_catalog_arg(path: Optional[str]) -> BioreactorCatalog:
    return load_catalog(path or None)


def _cfg_handler(args: argparse.Namespace) -> None:
    cfg = compose_config(
        config_path=args.config_path,
        config_name=args.config_name,
        overrides=args.overrides,
    )
    output = format_config(cfg)
    print(output, end="")


def _catalog_list_handler(args: argparse.Namespace) -> None:
    catalog = _load_catalog_arg(args.catalog)
    models = list(catalog)
    if args.category:
        models = [model for model in models if model.category == args.category]
    if args.scale:
        models = [model for model in models if model.geometry.scale == args.scale]
    _emit(
        [
            {
                "id": model.id,
                "name": model.name,
                "category": model.category,
                "scale": model.geometry.scale,
                "power_density": model.performance.power_density.value,
            }
            for model in models
        ]
    )


def _catalog_show_handler(args: argparse.Namespace) -> None:
    catalog = _load_catalog_arg(args.catalog)
    _emit(catalog.get(args.device_id).model_dump(mode="json"))


def _catalog_conditions_handler(args: argparse.Namespace) -> None:
    catalog = _load_catalog_arg(args.catalog)
    _emit(catalog.optimal_operating_conditions(args.device_id))


def _catalog_recommend_handler(args: argparse.Namespace) -> None:
    catalog = _load_catalog_arg(args.catalog)
    model = catalog.recommend(
        scale=args.scale,
        min_power=args.min_power,
        application=args.application,
        max_cost=args.max_cost,
    )
    if model is None:
        raise ValidationError("No catalog device matches the requested criteria.")
    _emit({"id": model.id, "name": model.name, "score": performance_score(model)})


def _catalog_compare_handler(args: argparse.Namespace) -> None:
    catalog = _load_catalog_arg(args.catalog)
    _emit(catalog.compare(args.first_id, args.second_id))


def _parse_param_assignments(items: Iterable[str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for item in items:
        if "=" not in item:
            raise ValidationError(
                f"Invalid parameter assignment: {item!r}.",
                user_message=f"Expected NAME=VALUE, got {item!r}.",
            )
        name, value = item.split("=", 1)
        values[name.strip()] = value.strip()
    return values


def _predict_handler(args: argparse.Namespace) -> None:
    values: dict[str, Any] = {}
    if args.params_file:
        payload = read_yaml_payload(
            Path(args.params_file),
            error_message="Failed to parse parameters file",
            error_cls=ConfigError,
        )
        if not isinstance(payload, Mapping):
            raise ConfigError("Parameters file must contain a mapping.")
        values.update(payload)
    values.update(_parse_param_assignments(args.param or ()))
    engine = PredictionEngine(_load_catalog_arg(args.catalog))
    prediction = engine.predict_parameters(
        args.device_id,
        BioreactorParameters.from_mapping(values),
        Fidelity.parse(args.fidelity),
    )
    _emit(prediction.to_dict(), args.output)


def _compose_run_config(args: argparse.Namespace) -> dict[str, Any]:
    cfg = compose_config(
        config_path=args.config_path,
        config_name=args.config_name,
        overrides=args.overrides,
    )
    seed_everything(cfg)
    return resolve_config(cfg)


def _run_optimization(args: argparse.Namespace, *, pareto: bool) -> OptimizationResult:
    cfg = _compose_run_config(args)
    objective, constraints, settings = problem_from_config(cfg)
    oracle = build_oracle(cfg)
    initial_guess = cfg.get("initial_guess") or None
    if pareto:
        return MultiObjectiveOptimizer().optimize(
            constraints,
            settings,
            oracle,
            initial_guess,
        )
    return OptimizationEngine().optimize(
        objective,
        constraints,
        settings,
        oracle,
        initial_guess,
    )


def _optimize_handler(args: argparse.Namespace) -> None:
    result = _run_optimization(args, pareto=False)
    payload = result.to_dict()
    if not args.history:
        payload.pop("convergence_history", None)
    _emit(payload, args.output)


def _pareto_handler(args: argparse.Namespace) -> None:
    result = _run_optimization(args, pareto=True)
    _emit(result.to_dict(), args.output)


def _add_config_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config-path",
        default=DEFAULT_CONFIG_PATH,
        help="Path to the Hydra config directory.",
    )
    parser.add_argument(
        "--config-name",
        default=DEFAULT_CONFIG_NAME,
        help="Hydra config name (without extension).",
    )


def _add_output_argument(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--output",
        default=None,
        help="Also write the JSON result to this path.",
    )


def _register_help_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
    parser: argparse.ArgumentParser,
) -> None:
    def _handler(_args: argparse.Namespace) -> None:
        parser.print_help()

    help_parser = subparsers.add_parser(
        "help",
        help="Show top-level help.",
        description="Show top-level help.",
    )
    help_parser.set_defaults(handler=_handler)


def _register_cfg_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    cfg_parser = subparsers.add_parser(
        "cfg",
        help="Compose and print Hydra config.",
        description="Compose and print Hydra config.",
    )
    _add_config_arguments(cfg_parser)
    cfg_parser.add_argument(
        "overrides",
        nargs=argparse.REMAINDER,
        help="Hydra overrides (ex: optimization.algorithm=bayesian common.seed=123).",
    )
    cfg_parser.set_defaults(handler=_cfg_handler)


def _register_catalog_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    catalog_parser = subparsers.add_parser(
        "catalog",
        help="Inspect the bioreactor reference catalog.",
        description="Inspect the bioreactor reference catalog.",
    )
    catalog_parser.add_argument(
        "--catalog",
        default=None,
        help="Catalog YAML path (defaults to the packaged catalog).",
    )
    catalog_subparsers = catalog_parser.add_subparsers(
        dest="catalog_command",
        metavar="CATALOG_COMMAND",
        required=True,
    )
    list_parser = catalog_subparsers.add_parser(
        "list",
        help="List catalog devices.",
        description="List catalog devices.",
    )
    list_parser.add_argument("--category", default=None, help="Filter by category.")
    list_parser.add_argument(
        "--scale",
        default=None,
        choices=SCALES,
        help="Filter by scale.",
    )
    list_parser.set_defaults(handler=_catalog_list_handler)

    show_parser = catalog_subparsers.add_parser(
        "show",
        help="Show one catalog device.",
        description="Show one catalog device.",
    )
    show_parser.add_argument("device_id", help="Catalog device id.")
    show_parser.set_defaults(handler=_catalog_show_handler)

    conditions_parser = catalog_subparsers.add_parser(
        "conditions",
        help="Show the optimal operating conditions of one device.",
        description="Show the optimal operating conditions of one device.",
    )
    conditions_parser.add_argument("device_id", help="Catalog device id.")
    conditions_parser.set_defaults(handler=_catalog_conditions_handler)

    recommend_parser = catalog_subparsers.add_parser(
        "recommend",
        help="Recommend the best-scoring device that meets the criteria.",
        description="Recommend the best-scoring device that meets the criteria.",
    )
    recommend_parser.add_argument(
        "--scale",
        default=None,
        choices=SCALES,
        help="Required scale.",
    )
    recommend_parser.add_argument(
        "--min-power",
        type=float,
        default=None,
        help="Minimum reference power density (mW/m2).",
    )
    recommend_parser.add_argument(
        "--application",
        default=None,
        help="Substring of a listed application.",
    )
    recommend_parser.add_argument(
        "--max-cost",
        type=float,
        default=None,
        help="Maximum capital cost.",
    )
    recommend_parser.set_defaults(handler=_catalog_recommend_handler)

    compare_parser = catalog_subparsers.add_parser(
        "compare",
        help="Compare two devices side by side.",
        description="Compare two devices side by side.",
    )
    compare_parser.add_argument("first_id", help="First catalog device id.")
    compare_parser.add_argument("second_id", help="Second catalog device id.")
    compare_parser.set_defaults(handler=_catalog_compare_handler)


def _register_predict_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    predict_parser = subparsers.add_parser(
        "predict",
        help="Predict device performance for one parameter set.",
        description="Predict device performance for one parameter set.",
    )
    predict_parser.add_argument("device_id", help="Catalog device id.")
    predict_parser.add_argument(
        "--param",
        action="append",
        metavar="NAME=VALUE",
        help="Operating parameter (repeatable, ex: --param temperature=30).",
    )
    predict_parser.add_argument(
        "--params-file",
        default=None,
        help="YAML/JSON mapping of operating parameters.",
    )
    predict_parser.add_argument(
        "--fidelity",
        default=Fidelity.BASIC.value,
        choices=[level.value for level in Fidelity],
        help="Prediction fidelity level.",
    )
    predict_parser.add_argument(
        "--catalog",
        default=None,
        help="Catalog YAML path (defaults to the packaged catalog).",
    )
    _add_output_argument(predict_parser)
    predict_parser.set_defaults(handler=_predict_handler)


def _register_optimize_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    optimize_parser = subparsers.add_parser(
        "optimize",
        help="Run a single-objective optimization from a Hydra config.",
        description="Run a single-objective optimization from a Hydra config.",
    )
    _add_config_arguments(optimize_parser)
    _add_output_argument(optimize_parser)
    optimize_parser.add_argument(
        "--history",
        action="store_true",
        help="Include the convergence history in the output.",
    )
    optimize_parser.add_argument(
        "overrides",
        nargs=argparse.REMAINDER,
        help="Hydra overrides (ex: optimization.algorithm=particle_swarm).",
    )
    optimize_parser.set_defaults(handler=_optimize_handler)


def _register_pareto_subcommand(
    subparsers: argparse._SubParsersAction[argparse.ArgumentParser],
) -> None:
    pareto_parser = subparsers.add_parser(
        "pareto",
        help="Search the power/efficiency/cost Pareto front.",
        description="Search the power/efficiency/cost Pareto front.",
    )
    _add_config_arguments(pareto_parser)
    _add_output_argument(pareto_parser)
    pareto_parser.add_argument(
        "overrides",
        nargs=argparse.REMAINDER,
        help="Hydra overrides (ex: pareto.size=10 pareto.max_workers=4).",
    )
    pareto_parser.set_defaults(handler=_pareto_handler)


def _build_parser(subcommands: Iterable[str]) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="bioreactor-opt",
        description="Bioreactor prediction and optimization command line interface.",
    )
    parser.add_argument(
        "--traceback",
        action="store_true",
        help="Show full traceback on errors.",
    )
    parser.add_argument(
        "--log-level",
        default=None,
        help=f"Log level name (default: ${LOG_LEVEL_ENV} or INFO).",
    )
    subparsers = parser.add_subparsers(dest="command", metavar="COMMAND")
    registrars = {
        "cfg": _register_cfg_subcommand,
        "catalog": _register_catalog_subcommand,
        "predict": _register_predict_subcommand,
        "optimize": _register_optimize_subcommand,
        "pareto": _register_pareto_subcommand,
    }
    for name in subcommands:
        if name == "help":
            _register_help_subcommand(subparsers, parser)
            continue
        registrars[name](subparsers)
    return parser


def _cli_main(
    *,
    cli_logger: logging.Logger,
    argv: Optional[Sequence[str]] = None,
) -> None:
    parser = _build_parser(_SUBCOMMANDS)
    args = parser.parse_args(argv)
    if not getattr(args, "command", None):
        parser.print_help()
        raise SystemExit(2)
    try:
        if args.log_level:
            cli_logger = configure_logging(args.log_level, force=True)
        args.handler(args)
    except BioreactorOptError as exc:
        log_exception(cli_logger, exc, show_traceback=args.traceback)
        raise SystemExit(1) from None


def main() -> None:
    """Entry point with standard logging/error handling."""
    logger = configure_logging()
    run_with_error_handling(_cli_main, logger=logger, cli_logger=logger)


if __name__ == "__main__":
    main()
