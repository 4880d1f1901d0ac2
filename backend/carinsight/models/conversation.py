# /carinsight/models/conversation.py

import re
import uuid
import logging
from enum import Enum
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Tuple, Iterator

from pydantic import BaseModel, Field, RootModel, field_validator

from carinsight.models.domain import (
    BodyType,
    FinancingSimulation,
    RideHailingCategory,
    RecommendationCandidate,
    RecommendationExplanation,
    normalize_body_type,
    normalize_category,
)
from carinsight.utils.errors import UserInputError

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Stage(str, Enum):
    DISCOVERY = "discovery"
    NEGOTIATION = "negotiation"
    HANDOFF = "handoff"
    CLOSED = "closed"


class ConversationFlag(str, Enum):
    HANDOFF_REQUESTED = "handoff_requested"
    EXIT_REQUESTED = "exit_requested"
    CLASSIFIER_DEGRADED = "classifier_degraded"
    RECOMMENDATIONS_SHOWN = "recommendations_shown"
    FINANCING_SIMULATED = "financing_simulated"


class FlagSet(RootModel[List[ConversationFlag]]):
    """
    Append-only set of conversation flags. Insertion order is kept for the
    audit trail; flags are never removed.
    """
    root: List[ConversationFlag] = Field(default_factory=list)

    @field_validator("root")
    @classmethod
    def deduplicate(cls, v: List[ConversationFlag]) -> List[ConversationFlag]:
        return list(dict.fromkeys(v))

    def add(self, flag: ConversationFlag) -> bool:
        """Adds the flag. Returns True only when it was not already present."""
        flag = ConversationFlag(flag)
        if flag in self.root:
            return False
        self.root.append(flag)
        return True

    def has(self, flag: ConversationFlag) -> bool:
        return ConversationFlag(flag) in self.root

    def __contains__(self, flag: object) -> bool:
        return flag in self.root

    def __iter__(self) -> Iterator[ConversationFlag]:
        return iter(self.root)

    def __len__(self) -> int:
        return len(self.root)


# ---------------- Field parsers ---------------- #

_AMOUNT_PATTERN = re.compile(r"(r\$\s*)?(\d+(?:[.,]\d+)*)\s*(milh[aã]o|milh[oõ]es|mil|k)?\b")
_THOUSANDS_PATTERN = re.compile(r"\d{1,3}(?:\.\d{3})+")
_YES = {"sim", "s", "yes", "true", "1", "tenho"}
_NO = {"nao", "não", "n", "no", "false", "0"}


def _to_amount(number: str, unit: Optional[str]) -> Optional[float]:
    if "," in number:
        number = number.replace(".", "").replace(",", ".")
    elif _THOUSANDS_PATTERN.fullmatch(number):
        number = number.replace(".", "")
    try:
        amount = float(number)
    except ValueError:
        return None
    if unit in ("mil", "k"):
        return amount * 1_000
    if unit:
        return amount * 1_000_000
    return amount


def parse_amount(value: Any, field: str = "budget") -> Optional[float]:
    """
    Parses money as customers write it: 60000, "60 mil", "R$ 60.000", "80k",
    "1,2 milhão". Amounts with a unit or "R$" win over bare numbers, so
    "2 carros de 60 mil" is 60000; among bare numbers the largest is taken.
    Raises UserInputError when no positive amount is found.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise UserInputError(field, value)
    if isinstance(value, (int, float)):
        if value <= 0:
            raise UserInputError(field, value, "Amount must be positive")
        return float(value)

    marked: List[float] = []
    bare: List[float] = []
    for match in _AMOUNT_PATTERN.finditer(str(value).strip().lower()):
        currency, number, unit = match.groups()
        amount = _to_amount(number, unit)
        if amount is None:
            continue
        (marked if currency or unit else bare).append(amount)

    if marked:
        amount = marked[0]
    elif bare:
        amount = max(bare)
    else:
        raise UserInputError(field, value)
    if amount <= 0:
        raise UserInputError(field, value, "Amount must be positive")
    return amount


def parse_budget(value: Any) -> Optional[float]:
    return parse_amount(value, "budget")


_NO_ENTRY = ("sem entrada", "nenhuma", "nada", "zero")


def parse_down_payment(value: Any) -> Optional[float]:
    """Like parse_amount, but zero ("sem entrada") is a valid down payment."""
    if value is None:
        return None
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value == 0:
        return 0.0
    if isinstance(value, str) and any(marker in value.lower() for marker in _NO_ENTRY):
        return 0.0
    return parse_amount(value, "down_payment")


def parse_trade_in_value(value: Any) -> Optional[float]:
    return parse_amount(value, "trade_in_value")


def parse_people_count(value: Any) -> Optional[int]:
    if value is None:
        return None
    if isinstance(value, bool):
        raise UserInputError("people_count", value)
    if isinstance(value, (int, float)):
        count = int(value)
    else:
        digits = re.search(r"\d+", str(value))
        if not digits:
            raise UserInputError("people_count", value)
        count = int(digits.group())
    if count <= 0:
        raise UserInputError("people_count", value, "People count must be positive")
    return count


def parse_trade_in(value: Any) -> Optional[bool]:
    if value is None or isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _YES:
        return True
    if text in _NO:
        return False
    raise UserInputError("has_trade_in", value)


def parse_body_type(value: Any) -> Optional[BodyType]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    body_type = normalize_body_type(value)
    if body_type is None:
        raise UserInputError("body_type", value)
    return body_type


def parse_category(value: Any) -> Optional[RideHailingCategory]:
    if value is None or (isinstance(value, str) and not value.strip()):
        return None
    try:
        return RideHailingCategory(normalize_category(value))
    except ValueError:
        raise UserInputError("ride_hailing_category", value)


def parse_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


_FIELD_PARSERS = {
    "budget": parse_budget,
    "body_type": parse_body_type,
    "usage": parse_text,
    "people_count": parse_people_count,
    "has_trade_in": parse_trade_in,
    "trade_in_value": parse_trade_in_value,
    "down_payment": parse_down_payment,
    "preferred_model": parse_text,
    "customer_name": parse_text,
    "ride_hailing_category": parse_category,
}


# ---------------- Profile ---------------- #

class CustomerProfile(BaseModel):
    budget: Optional[float] = None
    body_type: Optional[BodyType] = None
    usage: Optional[str] = None
    people_count: Optional[int] = None
    has_trade_in: Optional[bool] = None
    trade_in_value: Optional[float] = None
    down_payment: Optional[float] = None
    preferred_model: Optional[str] = None
    customer_name: Optional[str] = None
    ride_hailing_category: Optional[RideHailingCategory] = None

    @field_validator("body_type", mode="before")
    @classmethod
    def coerce_body_type(cls, v):
        return normalize_body_type(v)

    @field_validator("ride_hailing_category", mode="before")
    @classmethod
    def coerce_category(cls, v):
        return normalize_category(v)

    def has_search_criteria(self) -> bool:
        return any(value is not None for value in (self.budget, self.body_type, self.preferred_model))


class ProfileDelta(CustomerProfile):
    """Partial profile proposed by the classifier. None means 'not mentioned'."""

    @classmethod
    def from_raw(cls, data: Optional[Dict[str, Any]]) -> Tuple["ProfileDelta", List[str]]:
        """
        Builds a delta from untrusted classifier output. Fields that cannot be
        parsed are dropped and returned by name so the caller can reprompt.
        """
        if not isinstance(data, dict):
            return cls(), []

        values: Dict[str, Any] = {}
        invalid: List[str] = []
        for field, parser in _FIELD_PARSERS.items():
            try:
                parsed = parser(data.get(field))
            except UserInputError as e:
                logger.info(f"Dropping unparseable profile field: {e}")
                invalid.append(field)
                continue
            if parsed is not None:
                values[field] = parsed
        return cls(**values), invalid

    def provided_fields(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


# ---------------- Conversation ---------------- #

class MessageEntry(BaseModel):
    role: str
    text: str
    created_at: datetime = Field(default_factory=_utcnow)


class Conversation(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    channel_id: str
    stage: Stage = Stage.DISCOVERY
    profile: CustomerProfile = Field(default_factory=CustomerProfile)
    flags: FlagSet = Field(default_factory=FlagSet)
    history: List[MessageEntry] = Field(default_factory=list)
    last_recommendations: List[str] = Field(default_factory=list)
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def append_message(self, role: str, text: str, limit: int) -> None:
        """Appends to the bounded history, keeping only the newest `limit` entries."""
        self.history.append(MessageEntry(role=role, text=text))
        if limit > 0 and len(self.history) > limit:
            del self.history[: len(self.history) - limit]


class HandoffSignal(BaseModel):
    conversation_id: str
    channel_id: str
    triggering_message: str
    profile_snapshot: CustomerProfile
    created_at: datetime = Field(default_factory=_utcnow)


class TurnResult(BaseModel):
    conversation_id: str
    stage: Stage
    profile: CustomerProfile
    flags: List[ConversationFlag]
    response_text: str
    continue_conversation: bool
    recommendations: List[RecommendationCandidate] = Field(default_factory=list)
    explanations: List[RecommendationExplanation] = Field(default_factory=list)
    financing: Optional[FinancingSimulation] = None
    handoff_emitted: bool = False
    persisted: bool = True
