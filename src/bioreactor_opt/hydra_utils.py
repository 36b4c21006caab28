"""Hydra config composition, CLI shorthand overrides and seeding."""

from __future__ import annotations

from collections.abc import Mapping, Sequence
import json
import logging
from pathlib import Path
import random
from typing import Any, Optional, Union

import numpy as np

from bioreactor_opt.errors import ConfigError

try:
    from hydra import compose, initialize_config_dir
    from hydra.core.global_hydra import GlobalHydra
    from omegaconf import OmegaConf
except ImportError:  # pragma: no cover - optional dependency
    compose = None
    initialize_config_dir = None
    GlobalHydra = None
    OmegaConf = None

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "configs"
DEFAULT_CONFIG_NAME = "default"
DEFAULT_SEED_PATHS = ("common.seed", "optimization.seed", "seed")
# configs/ of a source checkout, used when the relative default is missing.
CHECKOUT_CONFIG_DIR = Path(__file__).resolve().parents[2] / "configs"

# Boolean switches: ``--flag`` or ``--flag=false``.
SWITCH_FLAGS: dict[str, str] = {
    "--use_surrogate": "use_surrogate",
    "--use-surrogate": "use_surrogate",
    "--strict": "optimization.strict_algorithm",
}
# Shorthands that take a value: ``--flag value`` or ``--flag=value``.
VALUE_FLAGS: dict[str, str] = {
    "--algorithm": "optimization.algorithm",
    "--device": "prediction.device_id",
    "--fidelity": "prediction.fidelity",
    "--seed": "common.seed",
}


def _require_hydra() -> None:
    if compose is None or initialize_config_dir is None or GlobalHydra is None:
        raise ConfigError("hydra-core is required to compose configs.")


def _split_flag(item: str) -> tuple[str, Optional[str]]:
    if "=" in item:
        flag, value = item.split("=", 1)
        return flag, value
    return item, None


def _normalize_overrides(overrides: Optional[Sequence[str]]) -> list[str]:
    """Translate CLI shorthands into Hydra ``key=value`` overrides."""
    normalized: list[str] = []
    items = [item for item in overrides or () if item and item != "--"]
    index = 0
    while index < len(items):
        flag, value = _split_flag(items[index])
        index += 1
        if flag in SWITCH_FLAGS:
            if value is None and index < len(items) and items[index].lower() in {"true", "false"}:
                value = items[index]
                index += 1
            normalized.append(f"{SWITCH_FLAGS[flag]}={value or 'true'}")
        elif flag in VALUE_FLAGS:
            if value is None:
                if index >= len(items) or items[index].startswith("-"):
                    raise ConfigError(f"{flag} requires a value.")
                value = items[index]
                index += 1
            normalized.append(f"{VALUE_FLAGS[flag]}={value}")
        elif flag.startswith("--"):
            raise ConfigError(f"Unknown option in overrides: {items[index - 1]!r}.")
        else:
            normalized.append(items[index - 1])
    return normalized


def _normalize_config_name(config_name: str) -> str:
    if config_name.endswith((".yaml", ".yml")):
        return Path(config_name).stem
    return config_name


def _resolve_config_dir(config_path: Union[Path, str]) -> Path:
    config_dir = Path(config_path)
    if config_dir.is_absolute():
        candidates = [config_dir]
    else:
        candidates = [(Path.cwd() / config_dir).resolve()]
        if str(config_path) == DEFAULT_CONFIG_PATH:
            candidates.append(CHECKOUT_CONFIG_DIR)
    for candidate in candidates:
        if candidate.is_dir():
            return candidate
    raise ConfigError(f"Config directory not found: {candidates[0]}")


def compose_config(
    *,
    config_path: Union[Path, str] = DEFAULT_CONFIG_PATH,
    config_name: str = DEFAULT_CONFIG_NAME,
    overrides: Optional[Sequence[str]] = None,
) -> Any:
    _require_hydra()
    from bioreactor_opt.config.schema import register_configs

    register_configs()
    config_dir = _resolve_config_dir(config_path)
    hydra_overrides = _normalize_overrides(overrides)
    logger.debug("Composing %s from %s with %s", config_name, config_dir, hydra_overrides)
    if GlobalHydra.instance().is_initialized():
        GlobalHydra.instance().clear()
    with initialize_config_dir(config_dir=str(config_dir), version_base=None):
        return compose(
            config_name=_normalize_config_name(config_name),
            overrides=hydra_overrides,
        )


def resolve_config(cfg: Any) -> dict[str, Any]:
    if OmegaConf is None or not OmegaConf.is_config(cfg):
        if isinstance(cfg, Mapping):
            return dict(cfg)
        raise ConfigError("OmegaConf is required to resolve Hydra config.")
    resolved = OmegaConf.to_container(cfg, resolve=True, throw_on_missing=False)
    if not isinstance(resolved, dict):
        raise ConfigError("Resolved config must be a mapping.")
    return resolved


def format_config(cfg: Any) -> str:
    if OmegaConf is None or not OmegaConf.is_config(cfg):
        return json.dumps(cfg, indent=2, sort_keys=True) + "\n"
    return OmegaConf.to_yaml(cfg, resolve=True)


def _select(cfg: Any, path: str) -> Any:
    if OmegaConf is not None and OmegaConf.is_config(cfg):
        return OmegaConf.select(cfg, path, default=None)
    current: Any = cfg
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return None
        current = current[part]
    return current


def seed_everything(
    cfg: Any,
    *,
    seed_paths: Sequence[str] = DEFAULT_SEED_PATHS,
) -> Optional[int]:
    """Seed the global RNGs from the first seed found in ``cfg``.

    Optimizers draw from their own injected generator; this only pins
    incidental global randomness (third-party code, ad hoc scripts).
    """
    seed = next(
        (value for value in (_select(cfg, path) for path in seed_paths) if value is not None),
        None,
    )
    if seed is None:
        return None
    try:
        seed_int = int(seed)
    except (TypeError, ValueError) as exc:
        raise ConfigError(f"Seed must be an integer, got {seed!r}.") from exc
    random.seed(seed_int)
    np.random.seed(seed_int % (2**32))
    return seed_int


__all__ = [
    "DEFAULT_CONFIG_PATH",
    "DEFAULT_CONFIG_NAME",
    "DEFAULT_SEED_PATHS",
    "SWITCH_FLAGS",
    "VALUE_FLAGS",
    "compose_config",
    "format_config",
    "resolve_config",
    "seed_everything",
]
