import logging

import pytest

from bioreactor_opt.catalog import load_catalog
from bioreactor_opt.errors import CatalogError, ConfigError
from bioreactor_opt.logging_utils import log_exception, run_with_error_handling
from bioreactor_opt.optimization.problem import OptimizationConstraints
from bioreactor_opt.registry import Registry, resolve_oracle_factory


def test_missing_catalog_raises_catalog_error(tmp_path) -> None:
    missing = tmp_path / "missing.yaml"

    with pytest.raises(CatalogError) as exc:
        load_catalog(missing)

    assert str(missing) in str(exc.value)


def test_missing_oracle_raises_config_error() -> None:
    registry = Registry()

    with pytest.raises(ConfigError) as exc:
        resolve_oracle_factory("missing-oracle", registry=registry)

    message = str(exc.value)
    assert "Oracle" in message
    assert "missing-oracle" in message
    assert exc.value.context == {"oracle": "missing-oracle"}


def test_missing_constraint_interval_is_named() -> None:
    with pytest.raises(ConfigError) as exc:
        OptimizationConstraints.from_mapping({"temperature": [20.0, 40.0]})

    message = str(exc.value)
    assert "Missing constraint intervals" in message
    assert "substrate_concentration" in message


def test_run_with_error_handling_logs_and_reraises(caplog) -> None:
    logger = logging.getLogger("bioreactor_opt.test")
    logger.setLevel(logging.INFO)
    logger.propagate = True
    logger.handlers.clear()

    def _raise_config_error() -> None:
        raise ConfigError("Config directory not found: configs/missing")

    with caplog.at_level(logging.INFO, logger=logger.name):
        with pytest.raises(ConfigError):
            run_with_error_handling(_raise_config_error, logger=logger)

    assert any(
        "Config directory not found" in record.getMessage() for record in caplog.records
    )


def test_log_exception_emits_traceback_at_debug_level(caplog) -> None:
    logger = logging.getLogger("bioreactor_opt.test.debug")
    logger.setLevel(logging.DEBUG)
    logger.propagate = True
    logger.handlers.clear()

    with caplog.at_level(logging.DEBUG, logger=logger.name):
        log_exception(logger, CatalogError("Unknown bioreactor id: 'x'"))

    assert any(record.exc_info for record in caplog.records)
