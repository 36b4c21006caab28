import pytest

from bioreactor_opt.registry import (
    Registry,
    default_registry,
    register_oracle,
    resolve_oracle_factory,
)
import bioreactor_opt.optimization.oracles  # noqa: F401  registers oracle factories


def test_register_get_list_roundtrip() -> None:
    registry = Registry()
    sentinel = object()

    registry.register("oracle", "dummy", sentinel)

    assert registry.get("oracle", "dummy") is sentinel
    assert registry.list("oracle") == ["dummy"]


def test_unknown_kind_error_is_clear() -> None:
    registry = Registry()

    with pytest.raises(KeyError) as exc:
        registry.get("unknown", "dummy")

    message = str(exc.value)
    assert "Unknown registry kind" in message
    assert "unknown" in message


def test_unknown_name_error_is_clear() -> None:
    registry = Registry()
    registry.register("oracle", "o1", object())

    with pytest.raises(KeyError) as exc:
        registry.get("oracle", "missing")

    message = str(exc.value)
    assert "not registered" in message
    assert "oracle" in message


def test_duplicate_registration_requires_overwrite() -> None:
    registry = Registry()
    registry.register("oracle", "o1", 1)

    with pytest.raises(ValueError) as exc:
        registry.register("oracle", "o1", 2)

    assert "already registered" in str(exc.value)

    registry.register("oracle", "o1", 2, overwrite=True)
    assert registry.get("oracle", "o1") == 2


def test_default_registry_has_builtin_oracles() -> None:
    assert sorted(default_registry().list("oracle")) == ["prediction", "surrogate"]


def test_register_oracle_decorator_targets_given_registry() -> None:
    registry = Registry()

    @register_oracle("constant", registry=registry)
    def _factory(cfg, *, engine=None):
        return lambda params: {"power": 1.0, "efficiency": 50.0}

    assert resolve_oracle_factory("constant", registry=registry) is _factory
    assert "constant" not in default_registry().list("oracle")
