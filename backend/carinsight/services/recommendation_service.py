# /carinsight/services/recommendation_service.py

import math
import random
import logging
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel

from carinsight.config import strings
from carinsight.config.settings import Settings
from carinsight.models.conversation import CustomerProfile
from carinsight.models.domain import (
    EligibilityResult,
    RecommendationCandidate,
    RecommendationExplanation,
    SimilarityResult,
    Vehicle,
)
from carinsight.services.eligibility_service import RuleSetProvider, classify
from carinsight.services.similarity_store import SimilarityStore
from carinsight.services.vehicle_repository import VehicleRepository
from carinsight.utils.errors import DataIntegrityError
from carinsight.utils.text import choose_variation, format_brl

logger = logging.getLogger(__name__)

# A car this many years old (or older) gets no recency credit.
RECENCY_HORIZON_YEARS = 15


class ScoringConfig(BaseModel):
    similarity_weight: float = 0.5
    budget_weight: float = 0.25
    body_type_weight: float = 0.15
    recency_weight: float = 0.10
    budget_tolerance: float = 0.2
    max_recommendations: int = 5

    @classmethod
    def from_settings(cls, settings: Settings) -> "ScoringConfig":
        return cls(
            similarity_weight=settings.similarity_weight,
            budget_weight=settings.budget_weight,
            body_type_weight=settings.body_type_weight,
            recency_weight=settings.recency_weight,
            budget_tolerance=settings.budget_tolerance,
            max_recommendations=settings.max_recommendations,
        )


# ---------------- Scoring (pure) ---------------- #

def budget_proximity(price: Optional[float], budget: Optional[float], tolerance: float) -> float:
    """
    1.0 at the budget, down to 0.5 for a free car; above the budget it decays
    from 0.5 to 0.0 across the tolerance band. 0.5 when either value is unknown.
    """
    if budget is None or price is None or budget <= 0:
        return 0.5
    if price <= budget:
        return 1.0 - 0.5 * (budget - price) / budget
    over = (price - budget) / budget
    if tolerance <= 0 or over >= tolerance:
        return 0.0
    return 0.5 * (1.0 - over / tolerance)


def body_type_match(vehicle: Vehicle, profile: CustomerProfile) -> float:
    if profile.body_type is None:
        return 0.5
    return 1.0 if vehicle.body_type == profile.body_type else 0.0


def recency(vehicle: Vehicle, reference_year: int) -> float:
    age = max(0, reference_year - vehicle.year)
    return max(0.0, 1.0 - age / RECENCY_HORIZON_YEARS)


def within_budget(vehicle: Vehicle, profile: CustomerProfile, tolerance: float) -> bool:
    if profile.budget is None or vehicle.price is None:
        return True
    return vehicle.price <= profile.budget * (1.0 + tolerance)


def rank_candidates(
    profile: CustomerProfile,
    similarities: List[SimilarityResult],
    eligibility: Dict[str, EligibilityResult],
    vehicles: Dict[str, Vehicle],
    reference_year: int,
    config: ScoringConfig,
) -> List[RecommendationCandidate]:
    """
    Ranks vehicles for a profile. Vehicles failing the profile's required
    ride-hailing category or priced beyond the budget tolerance are dropped.
    Each vehicle appears once; ties are broken by ascending price, then id.
    """
    best: Dict[str, float] = {}
    for result in similarities:
        if result.vehicle_id not in best or result.score > best[result.vehicle_id]:
            best[result.vehicle_id] = result.score

    total_weight = config.similarity_weight + config.budget_weight + config.body_type_weight + config.recency_weight
    required = profile.ride_hailing_category

    candidates: List[RecommendationCandidate] = []
    for vehicle_id, similarity in best.items():
        vehicle = vehicles.get(vehicle_id)
        result = eligibility.get(vehicle_id)
        if vehicle is None or result is None:
            continue
        if required is not None and not result.allows(required):
            continue
        if not within_budget(vehicle, profile, config.budget_tolerance):
            continue

        similarity = max(-1.0, min(1.0, similarity))
        composite = (
            config.similarity_weight * (similarity + 1.0) / 2.0
            + config.budget_weight * budget_proximity(vehicle.price, profile.budget, config.budget_tolerance)
            + config.body_type_weight * body_type_match(vehicle, profile)
            + config.recency_weight * recency(vehicle, reference_year)
        ) / total_weight

        candidates.append(
            RecommendationCandidate(
                vehicle_id=vehicle_id,
                similarity_score=similarity,
                eligibility_tags=result.tags(),
                composite_score=composite,
                price=vehicle.price,
                year=vehicle.year,
            )
        )

    candidates.sort(
        key=lambda c: (-c.composite_score, c.price if c.price is not None else math.inf, c.vehicle_id)
    )
    return candidates[: config.max_recommendations]


def build_query_text(profile: CustomerProfile, message: Optional[str] = None) -> str:
    """Free-text intent used to query the similarity store."""
    parts = []
    if profile.preferred_model:
        parts.append(profile.preferred_model)
    if profile.body_type:
        parts.append(profile.body_type.value)
    if profile.usage:
        parts.append(profile.usage)
    if profile.ride_hailing_category:
        parts.append(profile.ride_hailing_category.value.replace("_", " "))
    if profile.budget:
        parts.append(f"até R$ {profile.budget:.0f}")
    if message:
        parts.append(message)
    return " ".join(parts)


def format_recommendations(
    candidates: List[RecommendationCandidate],
    vehicles: Dict[str, Vehicle],
    rng: random.Random,
    explanations: Optional[Dict[str, RecommendationExplanation]] = None,
) -> str:
    if not candidates:
        return choose_variation(strings.NO_MATCH_MESSAGE, rng)

    explanations = explanations or {}
    lines = [choose_variation(strings.RECOMMENDATION_HEADER, rng), ""]
    for position, candidate in enumerate(candidates, start=1):
        vehicle = vehicles[candidate.vehicle_id]
        labels = [strings.ELIGIBILITY_TAG_LABELS.get(tag, tag) for tag in candidate.eligibility_tags]
        lines.append(
            strings.RECOMMENDATION_LINE.format(
                position=position,
                brand=vehicle.brand,
                model=vehicle.model,
                year=vehicle.year,
                mileage=format_brl(vehicle.mileage),
                price=format_brl(vehicle.price) if vehicle.price is not None else "sob consulta",
                tags=f" • {', '.join(labels)}" if labels else "",
            )
        )
        explanation = explanations.get(candidate.vehicle_id)
        if explanation is not None:
            lines.append(strings.EXPLANATION_LINE.format(summary=explanation.summary))
            if explanation.not_ideal_because:
                lines.append(strings.EXPLANATION_CAVEAT.format(caveat=explanation.not_ideal_because[0]))
    lines.extend(["", strings.RECOMMENDATION_FOOTER])
    return "\n".join(lines)


# ---------------- Service ---------------- #

def _check_integrity(vehicle_id: str, vehicle: Optional[Vehicle]) -> Vehicle:
    if vehicle is None:
        raise DataIntegrityError(vehicle_id, "indexed but missing from the vehicle repository")
    if not vehicle.available:
        raise DataIntegrityError(vehicle_id, "indexed but no longer available")
    return vehicle


class RecommendationService:
    def __init__(
        self,
        similarity_store: SimilarityStore,
        vehicle_repository: VehicleRepository,
        rule_sets: RuleSetProvider,
        settings: Settings,
    ):
        self.similarity_store = similarity_store
        self.vehicle_repository = vehicle_repository
        self.rule_sets = rule_sets
        self.settings = settings
        self.config = ScoringConfig.from_settings(settings)

    async def recommend(
        self,
        profile: CustomerProfile,
        reference_year: int,
        message: Optional[str] = None,
        city_slug: Optional[str] = None,
    ) -> Tuple[List[RecommendationCandidate], Dict[str, Vehicle]]:
        """
        Returns the ranked candidates and the vehicles they refer to.
        Vehicles the index knows but the repository no longer offers are skipped.
        """
        query = build_query_text(profile, message)
        results = await self.similarity_store.query(query, k=len(self.similarity_store))

        found = await self.vehicle_repository.get_many([r.vehicle_id for r in results])
        vehicles: Dict[str, Vehicle] = {}
        similarities: List[SimilarityResult] = []
        for result in results:
            try:
                vehicles[result.vehicle_id] = _check_integrity(result.vehicle_id, found.get(result.vehicle_id))
            except DataIntegrityError as e:
                logger.warning(f"Skipping recommendation: {e}")
                continue
            similarities.append(result)

        if not similarities:
            logger.info("Similarity index returned nothing usable, ranking the available catalog")
            for vehicle in await self.vehicle_repository.list(available_only=True):
                vehicles[vehicle.id] = vehicle
                similarities.append(SimilarityResult(vehicle_id=vehicle.id, score=0.0, price=vehicle.price))

        city = city_slug or self.settings.default_city_slug
        rule_set = await self.rule_sets.get(city)
        eligibility = {
            vehicle_id: classify(vehicle, city, reference_year, rule_set)
            for vehicle_id, vehicle in vehicles.items()
        }
        candidates = rank_candidates(profile, similarities, eligibility, vehicles, reference_year, self.config)
        return candidates, vehicles
