import random
from typing import List, Optional

import pytest
from dotenv import load_dotenv

# Load test environment variables before any settings are built.
load_dotenv(dotenv_path="backend/.env.test")

from carinsight.config.settings import load_settings  # noqa: E402
from carinsight.models.domain import Vehicle  # noqa: E402
from carinsight.services.classifier_service import ClassifierInput, ClassifierOutput  # noqa: E402


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the developer's environment: no external integrations."""
    return load_settings(
        environment="test",
        openai_api_key=None,
        redis_url=None,
        lead_webhook_url=None,
        random_seed=42,
        reference_year=2026,
        rules_db_path=str(tmp_path / "rules.db"),
    )


@pytest.fixture
def rng():
    return random.Random(42)


def build_vehicle(**overrides) -> Vehicle:
    data = {
        "id": "v1",
        "brand": "Toyota",
        "model": "Corolla",
        "year": 2022,
        "mileage": 30000,
        "price": 120000.0,
        "body_type": "sedan",
        "fuel": "flex",
        "transmission": "automatico",
        "door_count": 4,
        "air_conditioning": True,
        "power_steering": True,
        "airbag": True,
        "abs": True,
        "available": True,
    }
    data.update(overrides)
    return Vehicle(**data)


@pytest.fixture
def make_vehicle():
    return build_vehicle


@pytest.fixture
def catalog() -> List[Vehicle]:
    return [
        build_vehicle(id="corolla-2022", brand="Toyota", model="Corolla", year=2022, price=120000.0),
        build_vehicle(id="compass-2020", brand="Jeep", model="Compass", year=2020, price=115000.0, body_type="suv"),
        build_vehicle(id="hb20s-2024", brand="Hyundai", model="HB20S", year=2024, price=60000.0),
        build_vehicle(id="mobi-2019", brand="Fiat", model="Mobi", year=2019, price=42000.0, body_type="hatch"),
        build_vehicle(id="spin-2021", brand="Chevrolet", model="Spin", year=2021, price=85000.0, body_type="minivan"),
        build_vehicle(id="strada-2023", brand="Fiat", model="Strada", year=2023, price=98000.0, body_type="pickup", door_count=2),
    ]


class ScriptedClassifier:
    """Returns queued outputs (or raises queued exceptions) and records every request."""

    def __init__(self, *outputs):
        self.outputs = list(outputs)
        self.requests: List[ClassifierInput] = []

    def queue(self, output):
        self.outputs.append(output)

    async def classify(self, request: ClassifierInput) -> ClassifierOutput:
        self.requests.append(request)
        if not self.outputs:
            return ClassifierOutput()
        output = self.outputs.pop(0)
        if isinstance(output, Exception):
            raise output
        if isinstance(output, dict):
            return ClassifierOutput.from_raw(output)
        return output


@pytest.fixture
def scripted_classifier():
    def factory(*outputs: Optional[object]) -> ScriptedClassifier:
        return ScriptedClassifier(*outputs)
    return factory
