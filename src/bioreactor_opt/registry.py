"""Named plugin registry; ships with the ``oracle`` kind for evaluation backends."""

from __future__ import annotations

import builtins
from collections.abc import Callable, Iterable, Mapping
from typing import Any, Optional, Protocol, TypeVar

from bioreactor_opt.errors import ConfigError

DEFAULT_KINDS = ("oracle",)
ORACLE_KIND = "oracle"

_F = TypeVar("_F", bound=Callable[..., Any])


class OracleFactory(Protocol):
    """Build an oracle from a resolved app config."""

    def __call__(self, cfg: Mapping[str, Any], *, engine: Optional[Any] = None) -> Any: ...


def _validate_key(label: str, value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise TypeError(f"{label} must be a non-empty string.")
    return value


def _format_options(options: Iterable[str]) -> str:
    values = builtins.list(options)
    if not values:
        return "<none>"
    return ", ".join(sorted(values))


class Registry:
    """Plugin objects organized by kind/name."""

    def __init__(self, kinds: Iterable[str] = DEFAULT_KINDS) -> None:
        self._entries: dict[str, dict[str, Any]] = {}
        for kind in kinds:
            self.add_kind(kind)

    def add_kind(self, kind: str, *, overwrite: bool = False) -> None:
        kind = _validate_key("kind", kind)
        if kind in self._entries and not overwrite:
            raise ValueError(f"Registry kind already exists: {kind!r}.")
        self._entries[kind] = {}

    def _bucket(self, kind: str) -> dict[str, Any]:
        bucket = self._entries.get(_validate_key("kind", kind))
        if bucket is None:
            available = _format_options(self._entries.keys())
            raise KeyError(f"Unknown registry kind: {kind!r}. Available kinds: {available}.")
        return bucket

    def register(self, kind: str, name: str, obj: Any, *, overwrite: bool = False) -> None:
        name = _validate_key("name", name)
        bucket = self._bucket(kind)
        if name in bucket and not overwrite:
            raise ValueError(
                f"{kind} {name!r} is already registered; use overwrite=True to replace."
            )
        bucket[name] = obj

    def get(self, kind: str, name: str) -> Any:
        name = _validate_key("name", name)
        bucket = self._bucket(kind)
        if name not in bucket:
            raise KeyError(
                f"{kind} {name!r} is not registered. Available: {_format_options(bucket)}."
            )
        return bucket[name]

    def list(self, kind: str) -> list[str]:
        return builtins.list(self._bucket(kind))


_DEFAULT_REGISTRY = Registry()


def default_registry() -> Registry:
    return _DEFAULT_REGISTRY


def register_oracle(
    name: str,
    *,
    registry: Optional[Registry] = None,
    overwrite: bool = False,
) -> Callable[[_F], _F]:
    """Decorator that registers an :class:`OracleFactory` under ``name``."""

    def _decorator(factory: _F) -> _F:
        (registry or _DEFAULT_REGISTRY).register(ORACLE_KIND, name, factory, overwrite=overwrite)
        return factory

    return _decorator


def resolve_oracle_factory(name: str, *, registry: Optional[Registry] = None) -> OracleFactory:
    registry = registry or _DEFAULT_REGISTRY
    try:
        return registry.get(ORACLE_KIND, name)
    except KeyError as exc:
        available = _format_options(registry.list(ORACLE_KIND))
        raise ConfigError(
            f"Oracle {name!r} is not registered. Available: {available}.",
            context={"oracle": name},
        ) from exc


__all__ = [
    "DEFAULT_KINDS",
    "ORACLE_KIND",
    "OracleFactory",
    "Registry",
    "default_registry",
    "register_oracle",
    "resolve_oracle_factory",
]
