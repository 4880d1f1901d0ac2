# backend/tests/unit/test_eligibility_service.py
from datetime import datetime, timedelta, timezone

import pytest
from unittest.mock import AsyncMock

from carinsight.config.rules import BLACK_EXCLUSIONS
from carinsight.models.domain import EligibilityRuleRow, RideHailingCategory
from carinsight.services.eligibility_service import RuleSet, RuleSetProvider, classify
from carinsight.services.rule_repository import InMemoryRuleRepository

CITY = "sao-paulo"


def black_row(model: str, min_year: int, brand: str = "Jeep", **overrides) -> EligibilityRuleRow:
    data = dict(city_slug=CITY, category="uber_black", brand=brand, model=model, min_year=min_year)
    data.update(overrides)
    return EligibilityRuleRow(**data)


@pytest.mark.parametrize("model", BLACK_EXCLUSIONS)
def test_exclusion_list_always_blocks_black(make_vehicle, model):
    vehicle = make_vehicle(brand="Toyota", model=model, year=2026, price=500000.0, body_type="sedan")
    # Even a scraped row explicitly allowing the model does not override the exclusion.
    rule_set = RuleSet(rows=[black_row(model, 2000, brand="Toyota")])

    assert classify(vehicle, CITY, 2026, rule_set).uber_black is False


def test_exclusion_matches_substrings_case_insensitively(make_vehicle):
    vehicle = make_vehicle(brand="Chevrolet", model="ONIX PLUS Premier", year=2025)
    assert classify(vehicle, CITY, 2026, RuleSet()).uber_black is False


def test_hb20s_scenario(make_vehicle):
    vehicle = make_vehicle(brand="Hyundai", model="HB20S", year=2024, door_count=4, price=60000.0, body_type="sedan")

    result = classify(vehicle, CITY, 2026, RuleSet())

    assert result.uber_black is False
    assert result.uber_x is True


def test_compass_2020_is_black_eligible_as_suv(make_vehicle):
    vehicle = make_vehicle(brand="Jeep", model="Compass", year=2020, body_type="suv", door_count=4)

    result = classify(vehicle, CITY, 2026, RuleSet())

    assert result.uber_black is True
    assert result.uber_comfort is True
    assert result.uber_x is True
    assert result.family_suitable is True


@pytest.mark.parametrize(
    "category_field,cutoff",
    [("uber_x", 10), ("uber_comfort", 6), ("uber_black", 6)],
)
def test_age_cutoff_boundary(make_vehicle, category_field, cutoff):
    at_cutoff = make_vehicle(brand="Toyota", model="Corolla", year=2026 - cutoff)
    one_older = make_vehicle(brand="Toyota", model="Corolla", year=2026 - cutoff - 1)

    assert getattr(classify(at_cutoff, CITY, 2026, RuleSet()), category_field) is True
    assert getattr(classify(one_older, CITY, 2026, RuleSet()), category_field) is False


def test_scraped_row_overrides_age_cutoff(make_vehicle):
    old_compass = make_vehicle(brand="Jeep", model="Compass Longitude", year=2018, body_type="suv")
    assert classify(old_compass, CITY, 2026, RuleSet()).uber_black is False

    lenient = RuleSet(rows=[black_row("Compass", 2017)])
    assert classify(old_compass, CITY, 2026, lenient).uber_black is True

    strict = RuleSet(rows=[black_row("Compass", 2021)])
    new_compass = make_vehicle(brand="Jeep", model="Compass", year=2020, body_type="suv")
    assert classify(new_compass, CITY, 2026, strict).uber_black is False


def test_rows_for_other_cities_are_ignored(make_vehicle):
    vehicle = make_vehicle(brand="Jeep", model="Compass", year=2018, body_type="suv")
    rule_set = RuleSet(rows=[black_row("Compass", 2015, city_slug="rio-de-janeiro")])

    assert classify(vehicle, CITY, 2026, rule_set).uber_black is False
    assert classify(vehicle, "rio-de-janeiro", 2026, rule_set).uber_black is True


def test_longest_row_model_wins():
    rule_set = RuleSet(rows=[black_row("Compass", 2015), black_row("Compass Trailhawk", 2022)])

    row = rule_set.find_row(CITY, RideHailingCategory.UBER_BLACK, "jeep", "Compass Trailhawk 4x4")

    assert row.min_year == 2022


def test_black_requires_allowed_brand_and_structure(make_vehicle):
    assert classify(make_vehicle(brand="Lada", model="Vesta"), CITY, 2026, RuleSet()).uber_black is False
    assert classify(make_vehicle(door_count=2), CITY, 2026, RuleSet()).uber_black is False
    assert classify(make_vehicle(air_conditioning=False), CITY, 2026, RuleSet()).uber_black is False
    assert classify(make_vehicle(body_type="minivan"), CITY, 2026, RuleSet()).uber_black is False
    assert classify(make_vehicle(body_type="minivan"), CITY, 2026, RuleSet()).uber_comfort is True


def test_unknown_body_type_fails_closed(make_vehicle):
    vehicle = make_vehicle(body_type="carroça voadora")
    assert vehicle.body_type is None

    result = classify(vehicle, CITY, 2026, RuleSet())

    assert not (result.uber_x or result.uber_comfort or result.uber_black)
    assert result.family_suitable is False
    assert result.work_suitable is True


def test_use_case_tags(make_vehicle):
    economical = make_vehicle(fuel_economy="high", body_type="hatch", door_count=4)
    thirsty = make_vehicle(fuel_economy="low")
    pickup = make_vehicle(body_type="picape", door_count=2)

    assert classify(economical, CITY, 2026, RuleSet()).work_suitable is True
    assert classify(economical, CITY, 2026, RuleSet()).family_suitable is False
    assert classify(thirsty, CITY, 2026, RuleSet()).work_suitable is False
    assert classify(pickup, CITY, 2026, RuleSet()).tags() == ["work_suitable"]


def test_rule_set_uses_configured_cutoffs(settings, make_vehicle):
    settings.uber_x_max_age = 3
    vehicle = make_vehicle(year=2022, body_type="hatch")

    assert classify(vehicle, CITY, 2026, RuleSet()).uber_x is True
    assert classify(vehicle, CITY, 2026, RuleSet.from_settings(settings)).uber_x is False


@pytest.mark.asyncio
async def test_provider_ignores_stale_rows_and_caches(settings):
    repository = InMemoryRuleRepository()
    fresh = black_row("Compass", 2015, fetched_at=datetime.now(timezone.utc))
    stale = black_row("Renegade", 2015, fetched_at=datetime.now(timezone.utc) - timedelta(days=45))
    await repository.replace_all_for_city(CITY, [fresh, stale])

    provider = RuleSetProvider(repository, settings)
    rule_set = await provider.get(CITY)

    assert [row.model for row in rule_set.rows] == ["Compass"]
    assert await provider.get(CITY) is rule_set

    provider.invalidate(CITY)
    assert await provider.get(CITY) is not rule_set


@pytest.mark.asyncio
async def test_provider_falls_back_to_static_rules_on_repository_error(settings):
    repository = AsyncMock()
    repository.list_by_city = AsyncMock(side_effect=RuntimeError("database locked"))

    rule_set = await RuleSetProvider(repository, settings).get(CITY)

    assert rule_set.rows == ()
    assert rule_set.max_age[RideHailingCategory.UBER_X] == settings.uber_x_max_age
