# backend/tests/integration/test_jobs.py
import json
import asyncio

import pytest

from carinsight.jobs import eligibility_recompute_job, rule_refresh_job
from carinsight.services.rule_repository import SqliteRuleRepository

CITY = "sao-paulo"

VALID_ROWS = [
    {"category": "uber_black", "brand": "Toyota", "model": "Corolla", "min_year": 2020,
     "source_url": "https://example.com/black-sp"},
    {"category": "uber_comfort", "brand": "Jeep", "model": "Compass", "min_year": 2018,
     "source_url": "https://example.com/comfort-sp"},
]


def write_json(path, data):
    path.write_text(json.dumps(data), encoding="utf-8")
    return str(path)


def stored_rows(db_path):
    return asyncio.run(SqliteRuleRepository(db_path).list_by_city(CITY))


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "rules.db")


def test_rule_refresh_stores_rows(tmp_path, db_path):
    input_path = write_json(tmp_path / "rules.json", {"rules": VALID_ROWS})

    assert rule_refresh_job.main(["--city", CITY, "--input", input_path, "--db", db_path]) == 0

    rows = stored_rows(db_path)
    assert [(r.brand, r.model, r.min_year) for r in rows] == [("Toyota", "Corolla", 2020), ("Jeep", "Compass", 2018)]
    assert all(r.city_slug == CITY for r in rows)


def test_rule_refresh_rejects_invalid_file_and_keeps_previous_rows(tmp_path, db_path):
    good = write_json(tmp_path / "good.json", VALID_ROWS)
    assert rule_refresh_job.main(["--city", CITY, "--input", good, "--db", db_path]) == 0

    bad_rows = VALID_ROWS + [{"category": "uber_x", "brand": "Fiat", "model": "Mobi", "min_year": 1900}]
    bad = write_json(tmp_path / "bad.json", bad_rows)
    assert rule_refresh_job.main(["--city", CITY, "--input", bad, "--db", db_path]) == 1

    not_a_list = write_json(tmp_path / "scalar.json", 42)
    assert rule_refresh_job.main(["--city", CITY, "--input", not_a_list, "--db", db_path]) == 1

    missing = str(tmp_path / "missing.json")
    assert rule_refresh_job.main(["--city", CITY, "--input", missing, "--db", db_path]) == 1

    assert len(stored_rows(db_path)) == 2


def test_rule_refresh_with_empty_list_clears_city(tmp_path, db_path):
    assert rule_refresh_job.main(["--city", CITY, "--input", write_json(tmp_path / "a.json", VALID_ROWS), "--db", db_path]) == 0
    assert rule_refresh_job.main(["--city", CITY, "--input", write_json(tmp_path / "b.json", []), "--db", db_path]) == 0

    assert stored_rows(db_path) == []


def test_eligibility_recompute_writes_results(tmp_path, db_path, catalog):
    records = [vehicle.model_dump(mode="json") for vehicle in catalog]
    records.append({"id": "broken", "brand": "Fiat"})
    catalog_path = write_json(tmp_path / "catalog.json", records)
    output_path = tmp_path / "eligibility.json"

    exit_code = eligibility_recompute_job.main([
        "--catalog", catalog_path,
        "--output", str(output_path),
        "--city", CITY,
        "--reference-year", "2026",
        "--db", db_path,
    ])

    assert exit_code == 0
    results = {r["vehicle_id"]: r for r in json.loads(output_path.read_text(encoding="utf-8"))}
    assert set(results) == {v.id for v in catalog}
    assert results["corolla-2022"]["uber_black"] is True
    assert "uber_black" in results["corolla-2022"]["tags"]
    assert results["hb20s-2024"]["uber_black"] is False
    assert results["strada-2023"]["family_suitable"] is False


def test_eligibility_recompute_applies_stored_rules(tmp_path, db_path, catalog):
    rows = [{"category": "uber_black", "brand": "Toyota", "model": "Corolla", "min_year": 2023}]
    assert rule_refresh_job.main(["--city", CITY, "--input", write_json(tmp_path / "rules.json", rows), "--db", db_path]) == 0
    catalog_path = write_json(tmp_path / "catalog.json", [v.model_dump(mode="json") for v in catalog])
    output_path = tmp_path / "eligibility.json"

    assert eligibility_recompute_job.main([
        "--catalog", catalog_path, "--output", str(output_path), "--city", CITY,
        "--reference-year", "2026", "--db", db_path,
    ]) == 0

    results = {r["vehicle_id"]: r for r in json.loads(output_path.read_text(encoding="utf-8"))}
    assert results["corolla-2022"]["uber_black"] is False
    assert results["compass-2020"]["uber_black"] is True


def test_eligibility_recompute_fails_for_missing_catalog(tmp_path, db_path):
    exit_code = eligibility_recompute_job.main([
        "--catalog", str(tmp_path / "nope.json"),
        "--output", str(tmp_path / "out.json"),
        "--db", db_path,
    ])

    assert exit_code == 1
    assert not (tmp_path / "out.json").exists()
