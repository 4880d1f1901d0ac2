# /carinsight/services/explanation_service.py

"""
Recommendation explanations.

Turns a ranked candidate, its vehicle and the customer profile into short
Portuguese reasons: why the car was picked, where it is not ideal, which of
its characteristics matched and which profile signals were used. Only the
profile and the vehicle record are read, nothing is inferred.
"""

from typing import Dict, List, Optional

from carinsight.config import strings
from carinsight.config.rules import FAMILY_BODY_TYPES
from carinsight.models.conversation import CustomerProfile
from carinsight.models.domain import RecommendationCandidate, RecommendationExplanation, Vehicle
from carinsight.utils.text import format_brl

# Up to this share over the budget is still "a small stretch".
BUDGET_STRETCH = 0.10

MAX_SELECTED = 4
MAX_NOT_IDEAL = 3
MAX_MATCHED = 4
MAX_SIGNALS = 4

COMFORT_TRANSMISSIONS = ("autom", "cvt")

BODY_TYPE_LABELS = {
    "hatch": "hatch",
    "sedan": "sedã",
    "suv": "SUV",
    "minivan": "minivan",
    "pickup": "picape",
    "van": "van",
    "motorcycle": "moto",
}


def _unique(items: List[str], limit: int) -> List[str]:
    return list(dict.fromkeys(item for item in items if item))[:limit]


def _label(body_type: Optional[str]) -> str:
    if body_type is None:
        return ""
    value = getattr(body_type, "value", body_type)
    return BODY_TYPE_LABELS.get(value, value)


def _usage_mentions(profile: CustomerProfile, *words: str) -> bool:
    usage = (profile.usage or "").lower()
    return any(word in usage for word in words)


def explain_recommendation(
    candidate: RecommendationCandidate, vehicle: Vehicle, profile: CustomerProfile
) -> RecommendationExplanation:
    selected: List[str] = []
    not_ideal: List[str] = []
    matched: List[str] = []
    signals: List[str] = []

    # Budget
    if profile.budget is not None:
        signals.append(f"Orçamento de R$ {format_brl(profile.budget)}")
        if vehicle.price is not None:
            if vehicle.price <= profile.budget:
                selected.append("Cabe no seu orçamento")
                matched.append(f"Preço R$ {format_brl(vehicle.price)}")
            elif vehicle.price <= profile.budget * (1 + BUDGET_STRETCH):
                selected.append("Fica perto do orçamento, com um pequeno ajuste")
                not_ideal.append(
                    f"Passa R$ {format_brl(vehicle.price - profile.budget)} do orçamento"
                )
            else:
                not_ideal.append("Acima do orçamento informado")

    # Body type
    if profile.body_type is not None:
        signals.append(f"Prefere {_label(profile.body_type)}")
        if vehicle.body_type == profile.body_type:
            selected.append(f"É {_label(vehicle.body_type)}, como você pediu")
            matched.append(f"Carroceria {_label(vehicle.body_type)}")
        elif vehicle.body_type is not None:
            not_ideal.append(f"É {_label(vehicle.body_type)}, não {_label(profile.body_type)}")

    # Family size
    if profile.people_count is not None:
        signals.append(f"{profile.people_count} pessoas")
        body = getattr(vehicle.body_type, "value", vehicle.body_type)
        if profile.people_count >= 4 and body in FAMILY_BODY_TYPES:
            selected.append(f"Espaço para {profile.people_count} pessoas")
            matched.append("Espaço interno")

    # Ride-hailing category
    if profile.ride_hailing_category is not None:
        category = profile.ride_hailing_category.value
        label = strings.ELIGIBILITY_TAG_LABELS.get(category, category)
        signals.append(f"Quer rodar no {label}")
        if category in candidate.eligibility_tags:
            selected.append(f"Aprovado para {label}")
            matched.append(f"Elegível {label}")
            transmission = (vehicle.transmission or "").lower()
            if any(kind in transmission for kind in COMFORT_TRANSMISSIONS):
                matched.append("Câmbio automático, mais conforto nas corridas")

    # Preferred model
    if profile.preferred_model:
        signals.append(f"Interesse em {profile.preferred_model}")
        wanted = profile.preferred_model.lower()
        if vehicle.model.lower() in wanted or wanted in f"{vehicle.brand} {vehicle.model}".lower():
            selected.append(f"É o modelo que você procura: {vehicle.model}")
            matched.append(f"{vehicle.brand} {vehicle.model}")

    # Usage
    if profile.usage:
        signals.append(f"Uso: {profile.usage}")
        if _usage_mentions(profile, "famil", "famíl") and "family_suitable" in candidate.eligibility_tags:
            selected.append("Indicado para uso em família")
            matched.append("Perfil familiar")
        if _usage_mentions(profile, "trabalho", "aplicativo", "uber") and "work_suitable" in candidate.eligibility_tags:
            selected.append("Econômico e com ar para trabalhar")
            matched.append("Bom para trabalho")

    selected = _unique(selected, MAX_SELECTED)
    summary = "; ".join(selected[:2]) if selected else strings.EXPLANATION_FALLBACK
    return RecommendationExplanation(
        vehicle_id=candidate.vehicle_id,
        summary=summary,
        selected_because=selected,
        not_ideal_because=_unique(not_ideal, MAX_NOT_IDEAL),
        matched_characteristics=_unique(matched, MAX_MATCHED),
        profile_signals=_unique(signals, MAX_SIGNALS),
    )


def explain_all(
    candidates: List[RecommendationCandidate], vehicles: Dict[str, Vehicle], profile: CustomerProfile
) -> List[RecommendationExplanation]:
    return [
        explain_recommendation(candidate, vehicles[candidate.vehicle_id], profile)
        for candidate in candidates
        if candidate.vehicle_id in vehicles
    ]
