# /carinsight/services/rule_repository.py

import asyncio
import logging
import sqlite3
from contextlib import closing
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple, Union

from pydantic import BaseModel, ValidationError

from carinsight.models.domain import EligibilityRuleRow
from carinsight.utils.errors import RuleRefreshError

# Storage for scraped eligibility rules. The only write path is a full
# replace per city: readers see either the previous rows or the new ones.

logger = logging.getLogger(__name__)

MIN_PLAUSIBLE_YEAR = 1980

RowInput = Union[EligibilityRuleRow, Dict[str, Any]]


class RuleSourceInfo(BaseModel):
    city_slug: str
    fetched_at: datetime
    source_url: Optional[str] = None
    row_count: int


class RuleRepository(Protocol):
    async def replace_all_for_city(self, city_slug: str, rows: Iterable[RowInput]) -> int:
        ...

    async def list_by_city(self, city_slug: str) -> List[EligibilityRuleRow]:
        ...

    async def latest_for_city(self, city_slug: str) -> Optional[RuleSourceInfo]:
        ...


def validate_rows(city_slug: str, rows: Iterable[RowInput]) -> List[EligibilityRuleRow]:
    """
    Validates a whole refresh before anything is written. A single bad row
    rejects the refresh with RuleRefreshError.
    """
    if not city_slug or not city_slug.strip():
        raise RuleRefreshError("A city slug is required for a rule refresh")

    max_year = datetime.now(timezone.utc).year + 1
    valid: List[EligibilityRuleRow] = []
    for position, raw in enumerate(rows):
        try:
            row = raw if isinstance(raw, EligibilityRuleRow) else EligibilityRuleRow.model_validate(raw)
        except ValidationError as e:
            raise RuleRefreshError(f"Row {position} for '{city_slug}' is invalid: {e.error_count()} validation errors") from e

        if row.city_slug.lower() != city_slug.strip().lower():
            raise RuleRefreshError(f"Row {position} belongs to '{row.city_slug}', not '{city_slug}'")
        if not MIN_PLAUSIBLE_YEAR <= row.min_year <= max_year:
            raise RuleRefreshError(f"Row {position} has an implausible min_year {row.min_year}")
        valid.append(row)
    return valid


def _source_info(city_slug: str, rows: List[EligibilityRuleRow]) -> Optional[RuleSourceInfo]:
    if not rows:
        return None
    latest = max(rows, key=lambda row: row.fetched_at)
    return RuleSourceInfo(
        city_slug=city_slug,
        fetched_at=latest.fetched_at,
        source_url=latest.source_url,
        row_count=len(rows),
    )


class InMemoryRuleRepository:
    """Copy-on-write store: a refresh swaps in a new mapping under a lock."""

    def __init__(self):
        self._rows: Dict[str, Tuple[EligibilityRuleRow, ...]] = {}
        self._lock = asyncio.Lock()

    async def replace_all_for_city(self, city_slug: str, rows: Iterable[RowInput]) -> int:
        valid = validate_rows(city_slug, rows)
        key = city_slug.strip().lower()
        async with self._lock:
            updated = dict(self._rows)
            if valid:
                updated[key] = tuple(valid)
            else:
                updated.pop(key, None)
            self._rows = updated
        logger.info(f"Replaced eligibility rules for '{city_slug}' with {len(valid)} rows")
        return len(valid)

    async def list_by_city(self, city_slug: str) -> List[EligibilityRuleRow]:
        return list(self._rows.get(city_slug.strip().lower(), ()))

    async def latest_for_city(self, city_slug: str) -> Optional[RuleSourceInfo]:
        return _source_info(city_slug, await self.list_by_city(city_slug))


class SqliteRuleRepository:
    """
    SQLite-backed rules, used by the refresh job and shared with workers.
    Each call opens its own connection on a worker thread.
    """

    _SCHEMA = """
        CREATE TABLE IF NOT EXISTS eligibility_rules (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            city_slug TEXT NOT NULL,
            category TEXT NOT NULL,
            brand TEXT NOT NULL,
            model TEXT NOT NULL,
            min_year INTEGER NOT NULL,
            source_url TEXT,
            fetched_at TEXT NOT NULL,
            raw TEXT
        );
        CREATE INDEX IF NOT EXISTS idx_eligibility_rules_city ON eligibility_rules (city_slug);
    """

    def __init__(self, db_path: str):
        self.db_path = db_path

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        conn.executescript(self._SCHEMA)
        return conn

    def _replace(self, key: str, rows: List[EligibilityRuleRow]):
        with closing(self._connect()) as conn:
            with conn:
                conn.execute("DELETE FROM eligibility_rules WHERE city_slug = ?", (key,))
                conn.executemany(
                    "INSERT INTO eligibility_rules (city_slug, category, brand, model, min_year, source_url, fetched_at, raw) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                    [
                        (key, row.category.value, row.brand, row.model, row.min_year,
                         row.source_url, row.fetched_at.isoformat(), row.raw)
                        for row in rows
                    ],
                )

    def _select(self, key: str) -> List[EligibilityRuleRow]:
        with closing(self._connect()) as conn:
            cursor = conn.execute(
                "SELECT city_slug, category, brand, model, min_year, source_url, fetched_at, raw "
                "FROM eligibility_rules WHERE city_slug = ? ORDER BY id",
                (key,),
            )
            return [EligibilityRuleRow.model_validate(dict(record)) for record in cursor.fetchall()]

    async def replace_all_for_city(self, city_slug: str, rows: Iterable[RowInput]) -> int:
        valid = validate_rows(city_slug, rows)
        key = city_slug.strip().lower()
        try:
            await asyncio.to_thread(self._replace, key, valid)
        except sqlite3.Error as e:
            raise RuleRefreshError(f"Could not store rules for '{city_slug}': {e}") from e
        logger.info(f"Replaced eligibility rules for '{city_slug}' with {len(valid)} rows in {self.db_path}")
        return len(valid)

    async def list_by_city(self, city_slug: str) -> List[EligibilityRuleRow]:
        return await asyncio.to_thread(self._select, city_slug.strip().lower())

    async def latest_for_city(self, city_slug: str) -> Optional[RuleSourceInfo]:
        return _source_info(city_slug, await self.list_by_city(city_slug))
