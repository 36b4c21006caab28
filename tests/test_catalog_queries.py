import pytest

from bioreactor_opt.catalog import BioreactorCatalog, check_material_compatibility
from bioreactor_opt.errors import CatalogError


def test_packaged_catalog_loads_all_devices(catalog) -> None:
    assert len(catalog) == 5
    assert set(catalog.ids()) == {
        "embr-001",
        "stirred-tank-001",
        "photobioreactor-001",
        "airlift-001",
        "fractal-001",
    }
    assert "embr-001" in catalog
    assert "missing" not in catalog


def test_unknown_device_raises_catalog_error(catalog) -> None:
    with pytest.raises(CatalogError) as exc:
        catalog.get("no-such-device")

    assert "no-such-device" in str(exc.value)
    assert exc.value.context == {"device_id": "no-such-device"}


def test_category_scale_and_power_queries(catalog) -> None:
    assert [model.id for model in catalog.by_category("industrial")] == ["stirred-tank-001"]
    assert {model.id for model in catalog.by_scale("pilot")} == {
        "embr-001",
        "photobioreactor-001",
        "airlift-001",
    }
    strong = catalog.by_power_range(2000, 3000)
    assert {model.id for model in strong} == {"embr-001", "fractal-001"}


def test_optimal_operating_conditions(catalog) -> None:
    optimum = catalog.optimal_operating_conditions("stirred-tank-001")
    assert optimum["temperature"] == 30
    assert optimum["ph"] == 7.0
    assert optimum["flow_rate"] == 500
    assert optimum["mixing_speed"] == 200


def test_recommend_respects_filters(catalog) -> None:
    cheap = catalog.recommend(max_cost=300)
    assert cheap is not None
    assert cheap.id == "stirred-tank-001"
    assert catalog.recommend(scale="laboratory", min_power=5000) is None


def test_compare_picks_cheaper_device(catalog) -> None:
    comparison = catalog.compare("embr-001", "stirred-tank-001")
    assert comparison["power_density"]["reactor1"] == 2850
    assert comparison["cost"]["winner"] == catalog.get("stirred-tank-001").name


def test_malformed_record_is_reported() -> None:
    with pytest.raises(CatalogError) as exc:
        BioreactorCatalog.from_records([{"id": "broken"}])

    assert "broken" in str(exc.value)


def test_material_compatibility_warnings() -> None:
    report = check_material_compatibility("Platinum mesh", "Carbon cloth", ["Geobacter sulfurreducens"])
    assert not report.compatible
    assert report.warnings
    assert check_material_compatibility("Carbon felt", "Platinum", ["Shewanella"]).compatible
