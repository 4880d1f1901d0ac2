# backend/tests/unit/test_explanation_service.py
import random

from carinsight.config import strings
from carinsight.models.conversation import CustomerProfile
from carinsight.models.domain import RecommendationCandidate
from carinsight.services.explanation_service import explain_all, explain_recommendation
from carinsight.services.recommendation_service import format_recommendations


def make_candidate(vehicle, tags=()):
    return RecommendationCandidate(
        vehicle_id=vehicle.id,
        similarity_score=0.5,
        eligibility_tags=list(tags),
        composite_score=0.8,
        price=vehicle.price,
        year=vehicle.year,
    )


def test_explains_a_matching_ride_hailing_sedan(make_vehicle):
    vehicle = make_vehicle(id="corolla", price=120000.0)
    profile = CustomerProfile(budget=130000, body_type="sedan", people_count=5, ride_hailing_category="black")

    explanation = explain_recommendation(make_candidate(vehicle, ["uber_black", "family_suitable"]), vehicle, profile)

    assert explanation.vehicle_id == "corolla"
    assert explanation.selected_because == [
        "Cabe no seu orçamento",
        "É sedã, como você pediu",
        "Espaço para 5 pessoas",
        "Aprovado para Black",
    ]
    assert explanation.summary == "Cabe no seu orçamento; É sedã, como você pediu"
    assert explanation.not_ideal_because == []
    assert len(explanation.matched_characteristics) == 4
    assert "Orçamento de R$ 130.000" in explanation.profile_signals


def test_small_stretch_over_budget_is_flagged(make_vehicle):
    vehicle = make_vehicle(id="compass", model="Compass", body_type="suv", price=105000.0)
    profile = CustomerProfile(budget=100000, body_type="sedan")

    explanation = explain_recommendation(make_candidate(vehicle), vehicle, profile)

    assert explanation.selected_because == ["Fica perto do orçamento, com um pequeno ajuste"]
    assert explanation.not_ideal_because == ["Passa R$ 5.000 do orçamento", "É SUV, não sedã"]


def test_far_over_budget_is_not_a_reason_to_pick(make_vehicle):
    vehicle = make_vehicle(price=150000.0)

    explanation = explain_recommendation(make_candidate(vehicle), vehicle, CustomerProfile(budget=100000))

    assert explanation.selected_because == []
    assert explanation.not_ideal_because == ["Acima do orçamento informado"]
    assert explanation.summary == strings.EXPLANATION_FALLBACK


def test_preferred_model_and_usage(make_vehicle):
    vehicle = make_vehicle(id="spin", brand="Chevrolet", model="Spin", body_type="minivan", price=85000.0)
    profile = CustomerProfile(preferred_model="chevrolet spin", usage="família")

    explanation = explain_recommendation(make_candidate(vehicle, ["family_suitable"]), vehicle, profile)

    assert "É o modelo que você procura: Spin" in explanation.selected_because
    assert "Indicado para uso em família" in explanation.selected_because
    assert "Interesse em chevrolet spin" in explanation.profile_signals


def test_empty_profile_gets_fallback_summary(make_vehicle):
    vehicle = make_vehicle()

    explanation = explain_recommendation(make_candidate(vehicle), vehicle, CustomerProfile())

    assert explanation.summary == strings.EXPLANATION_FALLBACK
    assert explanation.selected_because == []
    assert explanation.profile_signals == []


def test_listing_shows_summary_and_first_caveat(make_vehicle):
    vehicle = make_vehicle(id="compass", model="Compass", body_type="suv", price=105000.0)
    candidate = make_candidate(vehicle)
    explanations = explain_all([candidate], {"compass": vehicle}, CustomerProfile(budget=100000, body_type="sedan"))

    text = format_recommendations(
        [candidate], {"compass": vehicle}, random.Random(1), {e.vehicle_id: e for e in explanations}
    )

    assert "   ↳ Fica perto do orçamento, com um pequeno ajuste" in text
    assert "   ⚠️ Passa R$ 5.000 do orçamento" in text
    assert "É SUV, não sedã" not in text
