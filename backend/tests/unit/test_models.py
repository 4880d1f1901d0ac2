# backend/tests/unit/test_models.py
import pytest

from carinsight.config.settings import load_settings
from carinsight.models.conversation import Conversation, ProfileDelta, parse_budget, parse_down_payment
from carinsight.models.domain import BodyType, EligibilityResult, RideHailingCategory, normalize_body_type
from carinsight.utils.errors import ConfigurationError, UserInputError


@pytest.mark.parametrize(
    "raw,expected",
    [
        (60000, 60000.0),
        ("60000", 60000.0),
        ("60 mil", 60000.0),
        ("R$ 60.000", 60000.0),
        ("até 80k", 80000.0),
        ("1,2 milhão", 1200000.0),
        ("R$ 75.500,00", 75500.0),
        ("2 carros de 60 mil", 60000.0),
        ("somos 4 e temos R$ 45.000", 45000.0),
        ("para 5 pessoas, uns 70000", 70000.0),
    ],
)
def test_parse_budget(raw, expected):
    assert parse_budget(raw) == pytest.approx(expected)


@pytest.mark.parametrize("raw", ["muito", "", "barato", 0, -10, True])
def test_parse_budget_rejects_unparseable(raw):
    with pytest.raises(UserInputError) as exc_info:
        parse_budget(raw)
    assert exc_info.value.field == "budget"


def test_profile_delta_drops_invalid_fields():
    delta, invalid = ProfileDelta.from_raw({
        "budget": "muito",
        "body_type": "Sedã",
        "people_count": "5 pessoas",
        "ride_hailing_category": "UberX",
        "has_trade_in": "sim",
        "customer_name": "  ",
    })

    assert invalid == ["budget"]
    assert delta.budget is None
    assert delta.body_type == BodyType.SEDAN
    assert delta.people_count == 5
    assert delta.ride_hailing_category == RideHailingCategory.UBER_X
    assert delta.has_trade_in is True
    assert delta.customer_name is None


def test_profile_delta_tolerates_garbage():
    assert ProfileDelta.from_raw(None) == (ProfileDelta(), [])
    assert ProfileDelta.from_raw("not a dict") == (ProfileDelta(), [])
    delta, invalid = ProfileDelta.from_raw({"body_type": "nave espacial", "ride_hailing_category": "táxi aéreo"})
    assert delta.provided_fields() == {}
    assert invalid == ["body_type", "ride_hailing_category"]


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("SUV", BodyType.SUV),
        ("suvs", BodyType.SUV),
        ("Picape", BodyType.PICKUP),
        ("hatchbak", BodyType.HATCH),
        ("monovolume", BodyType.MINIVAN),
        ("submarino", None),
        (None, None),
    ],
)
def test_normalize_body_type(raw, expected):
    assert normalize_body_type(raw) == expected


def test_vehicle_descriptive_text(make_vehicle):
    vehicle = make_vehicle(version="XEi 2.0", color="prata", description="único dono")
    text = vehicle.descriptive_text()

    assert text.startswith("Toyota Corolla XEi 2.0 ano 2022 30000 km sedan")
    assert "cor prata" in text
    assert "equipamentos: ar condicionado, direção hidráulica, airbag, abs" in text
    assert text.endswith("único dono R$ 120000")


def test_eligibility_result_tags():
    result = EligibilityResult(uber_x=True, family_suitable=True)
    assert result.tags() == ["uber_x", "family_suitable"]
    assert result.allows(RideHailingCategory.UBER_X)
    assert not result.allows(RideHailingCategory.UBER_BLACK)


def test_conversation_history_is_bounded():
    conversation = Conversation(channel_id="5511999990000")
    for i in range(5):
        conversation.append_message("customer", f"msg {i}", limit=3)
    assert [m.text for m in conversation.history] == ["msg 2", "msg 3", "msg 4"]


def test_settings_parse_comma_separated_lists(monkeypatch):
    monkeypatch.setenv("HANDOFF_TRIGGERS", "Vendedor, Gerente ,")
    monkeypatch.setenv("EXIT_KEYWORDS", "sair,tchau")

    settings = load_settings(openai_api_key=None)

    assert settings.handoff_triggers == ["vendedor", "gerente"]
    assert settings.exit_keywords == ["sair", "tchau"]


def test_settings_validation(settings):
    with pytest.raises(ValueError):
        load_settings(max_recommendations=0)
    with pytest.raises(ValueError):
        load_settings(similarity_weight=0, budget_weight=0, body_type_weight=0, recency_weight=0)
    with pytest.raises(ConfigurationError):
        settings.require_openai_key()


@pytest.mark.parametrize(
    "field", ["similarity_weight", "budget_weight", "body_type_weight", "recency_weight", "budget_tolerance"]
)
def test_settings_reject_negative_weights(field):
    # The sum stays positive; the single negative value must still be rejected.
    with pytest.raises(ValueError):
        load_settings(**{field: -0.1})


@pytest.mark.parametrize(
    "raw,expected",
    [(0, 0.0), ("sem entrada", 0.0), ("20 mil", 20000.0), ("R$ 15.000", 15000.0), (None, None)],
)
def test_parse_down_payment_accepts_zero(raw, expected):
    assert parse_down_payment(raw) == expected


def test_profile_delta_reads_financing_fields():
    delta, invalid = ProfileDelta.from_raw({"down_payment": 0, "trade_in_value": "30 mil", "has_trade_in": True})

    assert invalid == []
    assert delta.provided_fields() == {"has_trade_in": True, "trade_in_value": 30000.0, "down_payment": 0.0}
