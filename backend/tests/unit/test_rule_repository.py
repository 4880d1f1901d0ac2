# backend/tests/unit/test_rule_repository.py
from datetime import datetime, timezone

import pytest

from carinsight.models.domain import RideHailingCategory
from carinsight.services.rule_repository import InMemoryRuleRepository, SqliteRuleRepository
from carinsight.utils.errors import RuleRefreshError

CITY = "sao-paulo"


def row(model: str, min_year: int = 2018, **overrides) -> dict:
    data = {
        "city_slug": CITY,
        "category": "Uber Black",
        "brand": "Toyota",
        "model": model,
        "min_year": min_year,
        "source_url": "https://www.uber.com/br/pt-br/drive/requirements/",
        "fetched_at": "2026-10-01T12:00:00+00:00",
    }
    data.update(overrides)
    return data


@pytest.fixture(params=["memory", "sqlite"])
def repository(request, tmp_path):
    if request.param == "memory":
        return InMemoryRuleRepository()
    return SqliteRuleRepository(str(tmp_path / "rules.db"))


@pytest.mark.asyncio
async def test_replace_all_for_city_replaces_previous_rows(repository):
    await repository.replace_all_for_city(CITY, [row("Corolla"), row("Camry")])
    count = await repository.replace_all_for_city(CITY, [row("Corolla Cross", 2020)])

    rows = await repository.list_by_city(CITY)
    assert count == 1
    assert [(r.model, r.min_year) for r in rows] == [("Corolla Cross", 2020)]
    assert rows[0].category == RideHailingCategory.UBER_BLACK


@pytest.mark.asyncio
async def test_empty_replace_clears_city(repository):
    await repository.replace_all_for_city(CITY, [row("Corolla")])
    await repository.replace_all_for_city("rio-de-janeiro", [row("Camry", city_slug="rio-de-janeiro")])

    assert await repository.replace_all_for_city(CITY, []) == 0
    assert await repository.list_by_city(CITY) == []
    # Clearing again is a no-op.
    assert await repository.replace_all_for_city(CITY, []) == 0
    assert len(await repository.list_by_city("rio-de-janeiro")) == 1


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "bad_row",
    [
        row("Corolla", city_slug="curitiba"),
        row("Corolla", category="helicopter"),
        row("Corolla", min_year=1890),
        row("", min_year=2018),
        {"brand": "Toyota"},
    ],
)
async def test_invalid_row_rejects_whole_refresh(repository, bad_row):
    await repository.replace_all_for_city(CITY, [row("Corolla")])

    with pytest.raises(RuleRefreshError):
        await repository.replace_all_for_city(CITY, [row("Camry"), bad_row])

    rows = await repository.list_by_city(CITY)
    assert [r.model for r in rows] == ["Corolla"]


@pytest.mark.asyncio
async def test_city_slug_is_case_insensitive(repository):
    await repository.replace_all_for_city("Sao-Paulo", [row("Corolla", city_slug="SAO-PAULO")])
    assert len(await repository.list_by_city("sao-paulo")) == 1


@pytest.mark.asyncio
async def test_latest_for_city(repository):
    assert await repository.latest_for_city(CITY) is None

    await repository.replace_all_for_city(CITY, [
        row("Corolla", fetched_at="2026-09-01T00:00:00+00:00", source_url="https://old.example"),
        row("Camry", fetched_at="2026-10-10T00:00:00+00:00", source_url="https://new.example"),
    ])
    latest = await repository.latest_for_city(CITY)

    assert latest.source_url == "https://new.example"
    assert latest.fetched_at == datetime(2026, 10, 10, tzinfo=timezone.utc)
    assert latest.row_count == 2


@pytest.mark.asyncio
async def test_sqlite_rows_survive_a_new_repository_instance(tmp_path):
    path = str(tmp_path / "shared.db")
    await SqliteRuleRepository(path).replace_all_for_city(CITY, [row("Corolla", raw="Corolla 2018+")])

    rows = await SqliteRuleRepository(path).list_by_city(CITY)

    assert rows[0].model == "Corolla"
    assert rows[0].raw == "Corolla 2018+"
    assert rows[0].fetched_at.tzinfo is not None
