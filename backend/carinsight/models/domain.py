# /carinsight/models/domain.py

import logging
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, List, Any

from pydantic import BaseModel, Field, field_validator
from rapidfuzz import process, fuzz

from carinsight.config.rules import BODY_TYPE_ALIASES, BODY_TYPE_FUZZY_THRESHOLD, CATEGORY_ALIASES

# Core vehicle and eligibility models. Everything the rule engine and the
# scorer read is validated here, so downstream code can rely on the types.

logger = logging.getLogger(__name__)


class BodyType(str, Enum):
    HATCH = "hatch"
    SEDAN = "sedan"
    SUV = "suv"
    MINIVAN = "minivan"
    PICKUP = "pickup"
    VAN = "van"
    MOTORCYCLE = "motorcycle"


class FuelEconomyTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RideHailingCategory(str, Enum):
    UBER_X = "uber_x"
    UBER_COMFORT = "uber_comfort"
    UBER_BLACK = "uber_black"


def normalize_body_type(raw: Any) -> Optional[BodyType]:
    """
    Maps a free-text body type ("Sedã", "SUVs", "picape") onto BodyType.
    Returns None when nothing matches closely enough; callers treat that as unknown.
    """
    if raw is None:
        return None
    if isinstance(raw, BodyType):
        return raw
    text = str(raw).strip().lower()
    if not text:
        return None
    if text in BODY_TYPE_ALIASES:
        return BodyType(BODY_TYPE_ALIASES[text])
    if text.endswith("s") and text[:-1] in BODY_TYPE_ALIASES:
        return BodyType(BODY_TYPE_ALIASES[text[:-1]])

    match = process.extractOne(
        text, list(BODY_TYPE_ALIASES.keys()), scorer=fuzz.token_sort_ratio, score_cutoff=BODY_TYPE_FUZZY_THRESHOLD
    )
    if match:
        alias, score, _ = match
        logger.debug(f"Body type '{raw}' fuzzy-matched to '{alias}' (score {score:.0f})")
        return BodyType(BODY_TYPE_ALIASES[alias])
    logger.debug(f"Unknown body type '{raw}'")
    return None


def normalize_category(raw: Any) -> Any:
    """Maps category spellings ("UberX", "black") onto RideHailingCategory values."""
    if raw is None or isinstance(raw, RideHailingCategory):
        return raw
    text = str(raw).strip().lower().replace("-", " ")
    return CATEGORY_ALIASES.get(text, text.replace(" ", "_"))


class Vehicle(BaseModel):
    id: str
    brand: str
    model: str
    year: int
    mileage: int = 0
    price: Optional[float] = None
    body_type: Optional[BodyType] = None
    fuel: Optional[str] = None
    transmission: Optional[str] = None
    door_count: Optional[int] = None
    air_conditioning: bool = False
    power_steering: bool = False
    airbag: bool = False
    abs: bool = False
    available: bool = True
    fuel_economy: Optional[FuelEconomyTier] = None
    version: Optional[str] = None
    color: Optional[str] = None
    description: Optional[str] = None

    @field_validator("body_type", mode="before")
    @classmethod
    def parse_body_type(cls, v):
        return normalize_body_type(v)

    @field_validator("fuel_economy", mode="before")
    @classmethod
    def parse_fuel_economy(cls, v):
        if v is None or isinstance(v, FuelEconomyTier):
            return v
        try:
            return FuelEconomyTier(str(v).strip().lower())
        except ValueError:
            return None

    def descriptive_text(self) -> str:
        """The text indexed in the similarity store. Any change here means a re-embed."""
        parts = [self.brand, self.model]
        if self.version:
            parts.append(self.version)
        parts.append(f"ano {self.year}")
        parts.append(f"{self.mileage} km")
        if self.body_type:
            parts.append(self.body_type.value)
        if self.fuel:
            parts.append(self.fuel)
        if self.transmission:
            parts.append(self.transmission)
        if self.color:
            parts.append(f"cor {self.color}")

        equipment = []
        if self.air_conditioning:
            equipment.append("ar condicionado")
        if self.power_steering:
            equipment.append("direção hidráulica")
        if self.airbag:
            equipment.append("airbag")
        if self.abs:
            equipment.append("abs")
        if equipment:
            parts.append("equipamentos: " + ", ".join(equipment))

        if self.description:
            parts.append(self.description)
        if self.price is not None:
            parts.append(f"R$ {self.price:.0f}")
        return " ".join(parts)


class EligibilityRuleRow(BaseModel):
    """One scraped eligibility row: the earliest year a model is accepted in a city/category."""
    city_slug: str
    category: RideHailingCategory
    brand: str
    model: str
    min_year: int
    source_url: Optional[str] = None
    fetched_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    raw: Optional[str] = None

    @field_validator("category", mode="before")
    @classmethod
    def parse_category(cls, v):
        return normalize_category(v)

    @field_validator("city_slug", "brand", "model")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("fetched_at")
    @classmethod
    def ensure_timezone(cls, v: datetime) -> datetime:
        return v if v.tzinfo else v.replace(tzinfo=timezone.utc)


class EligibilityResult(BaseModel):
    uber_x: bool = False
    uber_comfort: bool = False
    uber_black: bool = False
    family_suitable: bool = False
    work_suitable: bool = False

    def tags(self) -> List[str]:
        return [name for name, value in self.model_dump().items() if value]

    def allows(self, category: RideHailingCategory) -> bool:
        return bool(getattr(self, category.value))


class SimilarityResult(BaseModel):
    vehicle_id: str
    score: float
    price: Optional[float] = None


class RecommendationCandidate(BaseModel):
    vehicle_id: str
    similarity_score: float = Field(ge=-1.0, le=1.0)
    eligibility_tags: List[str] = Field(default_factory=list)
    composite_score: float
    price: Optional[float] = None
    year: Optional[int] = None


class RecommendationExplanation(BaseModel):
    """Why a vehicle was recommended, built from the profile and the vehicle data only."""
    vehicle_id: str
    summary: str
    selected_because: List[str] = Field(default_factory=list)
    not_ideal_because: List[str] = Field(default_factory=list)
    matched_characteristics: List[str] = Field(default_factory=list)
    profile_signals: List[str] = Field(default_factory=list)


class Installment(BaseModel):
    months: int
    monthly_payment: float
    total_paid: float
    total_interest: float


class FinancingSimulation(BaseModel):
    vehicle_id: Optional[str] = None
    vehicle_price: float
    down_payment: float = 0.0
    trade_in_value: float = 0.0
    total_entry: float
    finance_amount: float
    interest_rate: float
    installments: List[Installment] = Field(default_factory=list)
