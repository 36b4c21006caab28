from __future__ import annotations

import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:
    src_root = Path(__file__).resolve().parents[1] / "src"
    src_path = str(src_root)
    if src_path not in sys.path:
        sys.path.insert(0, src_path)


class FakeClock:
    """Manually advanced clock for cache expiry tests."""

    def __init__(self, start: float = 0.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def catalog():
    from bioreactor_opt.catalog import load_catalog

    return load_catalog()


@pytest.fixture
def scenario_constraints():
    from bioreactor_opt.optimization.problem import OptimizationConstraints

    return OptimizationConstraints.from_mapping(
        {
            "temperature": [20.0, 40.0],
            "ph": [6.0, 8.0],
            "flow_rate": [10.0, 200.0],
            "mixing_speed": [0.0, 300.0],
            "electrode_voltage": [0.0, 200.0],
            "substrate_concentration": [0.1, 5.0],
        }
    )
