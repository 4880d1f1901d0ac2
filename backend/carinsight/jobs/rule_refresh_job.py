# /carinsight/jobs/rule_refresh_job.py

"""
Eligibility rule refresh job.

Loads scraped rule rows for one city from a JSON file and replaces every
stored row for that city in a single transaction. A file with an empty list
clears the city. Any invalid row rejects the whole refresh and the previous
rules stay in place; rerun the job after fixing the input.

Usage:
    python -m carinsight.jobs.rule_refresh_job --city sao-paulo --input rules.json

Exit code 0 on success, 1 on failure (the cause is logged).
"""

import sys
import json
import asyncio
import logging
import argparse
from typing import List, Optional

from dotenv import load_dotenv

from carinsight.config.settings import load_settings
from carinsight.services.rule_repository import SqliteRuleRepository
from carinsight.utils.errors import CarInsightError
from carinsight.utils.logging import setup_logging

logger = logging.getLogger(__name__)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Replace the eligibility rules of one city.")
    parser.add_argument("--city", help="City slug to refresh (defaults to DEFAULT_CITY_SLUG).")
    parser.add_argument("--input", required=True, help="JSON file with a list of rule rows.")
    parser.add_argument("--db", help="SQLite database path (defaults to RULES_DB_PATH).")
    return parser.parse_args(argv)


def load_rows(path: str) -> list:
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)
    if isinstance(data, dict):
        data = data.get("rules", [])
    if not isinstance(data, list):
        raise ValueError(f"{path} must contain a list of rule rows")
    return data


async def refresh_rules(city_slug: str, input_path: str, db_path: str) -> int:
    rows = load_rows(input_path)
    # Rows without a city belong to the city being refreshed.
    for row in rows:
        if isinstance(row, dict):
            row.setdefault("city_slug", city_slug)

    repository = SqliteRuleRepository(db_path)
    count = await repository.replace_all_for_city(city_slug, rows)
    latest = await repository.latest_for_city(city_slug)
    if latest:
        logger.info(f"Rules for '{city_slug}' now from {latest.source_url or 'unknown source'} ({latest.fetched_at.isoformat()})")
    return count


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv()
    args = parse_args(argv)
    settings = load_settings()
    setup_logging(settings.environment, settings.log_level)

    city_slug = args.city or settings.default_city_slug
    db_path = args.db or settings.rules_db_path
    try:
        count = asyncio.run(refresh_rules(city_slug, args.input, db_path))
    except (CarInsightError, OSError, ValueError) as e:
        logger.error(f"Rule refresh for '{city_slug}' failed, previous rules kept: {e}")
        return 1
    logger.info(f"Rule refresh for '{city_slug}' stored {count} rows")
    return 0


if __name__ == "__main__":
    sys.exit(main())
