from pathlib import Path

import pytest

pytest.importorskip("hydra")

from bioreactor_opt.errors import ConfigError  # noqa: E402
from bioreactor_opt.hydra_utils import (  # noqa: E402
    compose_config,
    format_config,
    resolve_config,
    seed_everything,
)
from bioreactor_opt.optimization.problem import (  # noqa: E402
    Algorithm,
    ObjectiveKind,
    problem_from_config,
)


def _config_dir() -> Path:
    return Path(__file__).resolve().parents[1] / "configs"


def test_hydra_compose_defaults() -> None:
    cfg = compose_config(config_path=_config_dir(), config_name="default")
    resolved = resolve_config(cfg)
    assert resolved["common"]["seed"] == 0
    assert resolved["optimization"]["seed"] == 0
    assert resolved["prediction"]["device_id"] == "stirred-tank-001"
    assert resolved["objective"]["weights"]["power"] == 0.4
    rendered = format_config(cfg)
    assert "common:" in rendered


def test_overrides_flow_into_problem() -> None:
    cfg = compose_config(
        config_path=_config_dir(),
        config_name="default.yaml",
        overrides=[
            "optimization.algorithm=simulated_annealing",
            "objective.kind=multi_objective",
            "constraints.temperature=[25.0,35.0]",
            "--use_surrogate",
        ],
    )
    resolved = resolve_config(cfg)
    assert resolved["use_surrogate"] is True
    objective, constraints, settings = problem_from_config(resolved)
    assert objective.kind is ObjectiveKind.MULTI_OBJECTIVE
    assert settings.algorithm is Algorithm.SIMULATED_ANNEALING
    assert settings.seed == 0
    assert constraints.temperature.low == 25.0
    assert constraints.temperature.high == 35.0


def test_seed_everything_reads_common_seed() -> None:
    cfg = compose_config(
        config_path=_config_dir(),
        config_name="default",
        overrides=["common.seed=123"],
    )
    assert seed_everything(cfg) == 123
    assert seed_everything({"optimization": {"seed": 7}}) == 7
    assert seed_everything({}) is None


def test_cli_shorthands_become_overrides() -> None:
    cfg = compose_config(
        config_path=_config_dir(),
        overrides=["--algorithm", "bayesian", "--seed=5", "--use-surrogate", "false"],
    )
    resolved = resolve_config(cfg)
    assert resolved["optimization"]["algorithm"] == "bayesian"
    assert resolved["optimization"]["seed"] == 5
    assert resolved["use_surrogate"] is False


def test_unknown_shorthand_is_rejected() -> None:
    with pytest.raises(ConfigError):
        compose_config(config_path=_config_dir(), overrides=["--bogus"])
    with pytest.raises(ConfigError):
        compose_config(config_path=_config_dir(), overrides=["--device"])
