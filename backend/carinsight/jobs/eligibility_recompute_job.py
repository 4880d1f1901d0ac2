# /carinsight/jobs/eligibility_recompute_job.py

"""
Eligibility batch recompute job.

Classifies every vehicle of a JSON catalog against the current rules of a
city and writes one result per vehicle to a JSON file:

    [{"vehicle_id": "...", "brand": "...", "model": "...", "year": 2020,
      "uber_x": true, ..., "tags": ["uber_x", "family_suitable"]}]

Usage:
    python -m carinsight.jobs.eligibility_recompute_job --catalog vehicles.json --output eligibility.json

Exit code 0 on success, 1 on failure (the cause is logged).
"""

import sys
import json
import asyncio
import logging
import argparse
from collections import Counter
from typing import Any, Dict, List, Optional

from dotenv import load_dotenv

from carinsight.config.settings import Settings, load_settings
from carinsight.services.eligibility_service import RuleSetProvider, classify, reference_year_for
from carinsight.services.rule_repository import SqliteRuleRepository
from carinsight.services.vehicle_repository import InMemoryVehicleRepository
from carinsight.utils.errors import CarInsightError
from carinsight.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Recompute ride-hailing eligibility for a vehicle catalog.")
    parser.add_argument("--catalog", required=True, help="JSON file with a list of vehicles.")
    parser.add_argument("--output", required=True, help="Where to write the eligibility results.")
    parser.add_argument("--city", help="City slug (defaults to DEFAULT_CITY_SLUG).")
    parser.add_argument("--reference-year", type=int, help="Year used to compute vehicle age.")
    parser.add_argument("--db", help="SQLite rules database (defaults to RULES_DB_PATH).")
    parser.add_argument("--include-unavailable", action="store_true", help="Also classify sold vehicles.")
    return parser.parse_args(argv)


async def recompute(
    settings: Settings,
    catalog_path: str,
    city_slug: str,
    reference_year: int,
    db_path: str,
    include_unavailable: bool = False,
) -> List[Dict[str, Any]]:
    vehicles = await InMemoryVehicleRepository.from_json(catalog_path).list(available_only=not include_unavailable)
    rule_set = await RuleSetProvider(SqliteRuleRepository(db_path), settings).get(city_slug)

    results = []
    for vehicle in vehicles:
        eligibility = classify(vehicle, city_slug, reference_year, rule_set)
        results.append({
            "vehicle_id": vehicle.id,
            "brand": vehicle.brand,
            "model": vehicle.model,
            "year": vehicle.year,
            **eligibility.model_dump(),
            "tags": eligibility.tags(),
        })
    return results


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = load_settings()
    setup_logging(settings.environment, settings.log_level)

    city_slug = args.city or settings.default_city_slug
    reference_year = args.reference_year or reference_year_for(settings)
    try:
        results = asyncio.run(
            recompute(
                settings,
                args.catalog,
                city_slug,
                reference_year,
                args.db or settings.rules_db_path,
                args.include_unavailable,
            )
        )
        with open(args.output, "w", encoding="utf-8") as f:
            json.dump(results, f, ensure_ascii=False, indent=2)
    except (CarInsightError, OSError, ValueError) as e:
        logger.error(f"Eligibility recompute failed: {e}")
        return 1

    counts = Counter(tag for result in results for tag in result["tags"])
    logger.info(f"Classified {len(results)} vehicles for '{city_slug}' ({reference_year}): {dict(counts)}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
