# /carinsight/services/eligibility_service.py

import time
import logging
from datetime import datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Tuple

from carinsight.config.rules import (
    BLACK_ALLOWED_BRANDS,
    BLACK_EXCLUSIONS,
    FAMILY_BODY_TYPES,
    MIN_FAMILY_DOORS,
    MIN_RIDE_HAILING_DOORS,
    UBER_BLACK_BODY_TYPES,
    UBER_COMFORT_BODY_TYPES,
    UBER_X_BODY_TYPES,
)
from carinsight.config.settings import Settings
from carinsight.models.domain import (
    EligibilityResult,
    EligibilityRuleRow,
    FuelEconomyTier,
    RideHailingCategory,
    Vehicle,
)

logger = logging.getLogger(__name__)

DEFAULT_MAX_AGE = {
    RideHailingCategory.UBER_X: 10,
    RideHailingCategory.UBER_COMFORT: 6,
    RideHailingCategory.UBER_BLACK: 6,
}

CATEGORY_BODY_TYPES = {
    RideHailingCategory.UBER_X: UBER_X_BODY_TYPES,
    RideHailingCategory.UBER_COMFORT: UBER_COMFORT_BODY_TYPES,
    RideHailingCategory.UBER_BLACK: UBER_BLACK_BODY_TYPES,
}


class RuleSet:
    """
    Everything classify() needs for one city: the static exclusion list and
    allow-lists, the default age cutoffs, and the scraped rows that override
    those cutoffs for specific models.
    """

    def __init__(
        self,
        rows: Iterable[EligibilityRuleRow] = (),
        exclusions: Iterable[str] = BLACK_EXCLUSIONS,
        black_brands: Iterable[str] = BLACK_ALLOWED_BRANDS,
        max_age: Optional[Dict[RideHailingCategory, int]] = None,
    ):
        self.rows: Tuple[EligibilityRuleRow, ...] = tuple(rows)
        self.exclusions: Tuple[str, ...] = tuple(e.strip().lower() for e in exclusions if e.strip())
        self.black_brands = frozenset(b.strip().lower() for b in black_brands)
        self.max_age = {**DEFAULT_MAX_AGE, **(max_age or {})}

        self._index: Dict[Tuple[str, RideHailingCategory, str], List[EligibilityRuleRow]] = {}
        for row in self.rows:
            key = (row.city_slug.lower(), row.category, row.brand.lower())
            self._index.setdefault(key, []).append(row)

    @classmethod
    def from_settings(cls, settings: Settings, rows: Iterable[EligibilityRuleRow] = ()) -> "RuleSet":
        return cls(
            rows=rows,
            max_age={
                RideHailingCategory.UBER_X: settings.uber_x_max_age,
                RideHailingCategory.UBER_COMFORT: settings.uber_comfort_max_age,
                RideHailingCategory.UBER_BLACK: settings.uber_black_max_age,
            },
        )

    def excluded_by(self, model: str) -> Optional[str]:
        """The exclusion entry contained in `model` (case-insensitive), if any."""
        lowered = (model or "").lower()
        for entry in self.exclusions:
            if entry in lowered:
                return entry
        return None

    def find_row(
        self, city_slug: str, category: RideHailingCategory, brand: str, model: str
    ) -> Optional[EligibilityRuleRow]:
        """
        The scraped row for this city/category/brand whose model is contained in
        the vehicle model. The longest row model wins, then the newest fetch.
        """
        candidates = self._index.get((city_slug.lower(), category, brand.lower()), [])
        lowered = model.lower()
        matches = [row for row in candidates if row.model.lower() in lowered]
        if not matches:
            return None
        return max(matches, key=lambda row: (len(row.model), row.fetched_at))


def _meets_category(
    vehicle: Vehicle,
    category: RideHailingCategory,
    city_slug: str,
    reference_year: int,
    rule_set: RuleSet,
) -> bool:
    if vehicle.body_type is None or vehicle.body_type.value not in CATEGORY_BODY_TYPES[category]:
        return False
    if (vehicle.door_count or 0) < MIN_RIDE_HAILING_DOORS:
        return False
    if not vehicle.air_conditioning:
        return False
    if category == RideHailingCategory.UBER_BLACK and vehicle.brand.strip().lower() not in rule_set.black_brands:
        return False

    row = rule_set.find_row(city_slug, category, vehicle.brand, vehicle.model)
    if row is not None:
        return vehicle.year >= row.min_year
    return reference_year - vehicle.year <= rule_set.max_age[category]


def classify(vehicle: Vehicle, city_slug: str, reference_year: int, rule_set: RuleSet) -> EligibilityResult:
    """
    Classifies a vehicle into ride-hailing categories and use-case tags.

    Pure: no I/O and no logging. For Black, the exclusion list is checked
    first and short-circuits everything else. A vehicle with an unknown body
    type is ineligible for every category but still gets its use-case tags.
    """
    uber_x = _meets_category(vehicle, RideHailingCategory.UBER_X, city_slug, reference_year, rule_set)
    uber_comfort = _meets_category(vehicle, RideHailingCategory.UBER_COMFORT, city_slug, reference_year, rule_set)

    if rule_set.excluded_by(vehicle.model):
        uber_black = False
    else:
        uber_black = _meets_category(vehicle, RideHailingCategory.UBER_BLACK, city_slug, reference_year, rule_set)

    family_suitable = (
        (vehicle.door_count or 0) >= MIN_FAMILY_DOORS
        and vehicle.body_type is not None
        and vehicle.body_type.value in FAMILY_BODY_TYPES
    )
    work_suitable = vehicle.fuel_economy != FuelEconomyTier.LOW and vehicle.air_conditioning

    return EligibilityResult(
        uber_x=uber_x,
        uber_comfort=uber_comfort,
        uber_black=uber_black,
        family_suitable=family_suitable,
        work_suitable=work_suitable,
    )


def reference_year_for(settings: Settings) -> int:
    """The configured reference year, or the current calendar year."""
    return settings.reference_year or datetime.now(timezone.utc).year


class RuleSetProvider:
    """
    Builds RuleSets from the rule repository and caches them per city.
    Rows older than the rule TTL are ignored so stale scrapes fall back to
    the static rules.
    """

    def __init__(self, repository, settings: Settings, cache_seconds: float = 300.0):
        self.repository = repository
        self.settings = settings
        self.cache_seconds = cache_seconds
        self._cache: Dict[str, Tuple[float, RuleSet]] = {}

    def invalidate(self, city_slug: Optional[str] = None):
        if city_slug is None:
            self._cache.clear()
        else:
            self._cache.pop(city_slug.lower(), None)

    async def get(self, city_slug: str) -> RuleSet:
        key = city_slug.lower()
        cached = self._cache.get(key)
        if cached and time.monotonic() - cached[0] < self.cache_seconds:
            return cached[1]

        try:
            rows = await self.repository.list_by_city(city_slug)
        except Exception as e:
            logger.error(f"Could not load eligibility rules for '{city_slug}', using static rules only: {e}")
            if cached:
                return cached[1]
            return RuleSet.from_settings(self.settings)

        cutoff = datetime.now(timezone.utc) - timedelta(days=self.settings.rule_ttl_days)
        fresh = [row for row in rows if row.fetched_at >= cutoff]
        if len(fresh) < len(rows):
            logger.warning(
                f"Ignoring {len(rows) - len(fresh)} eligibility rules for '{city_slug}' "
                f"older than {self.settings.rule_ttl_days} days. Rerun the rule refresh job."
            )

        rule_set = RuleSet.from_settings(self.settings, fresh)
        self._cache[key] = (time.monotonic(), rule_set)
        return rule_set
