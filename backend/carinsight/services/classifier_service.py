# /carinsight/services/classifier_service.py

import json
import asyncio
import logging
from typing import Any, Dict, List, Optional, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from carinsight.config.persona import CLASSIFIER_SYSTEM_PROMPT, CLASSIFIER_USER_TEMPLATE
from carinsight.config.settings import Settings
from carinsight.models.conversation import CustomerProfile, MessageEntry, ProfileDelta
from carinsight.utils.circuit_breaker import CircuitBreaker
from carinsight.utils.errors import ConfigurationError, ExternalServiceError

# The preference classifier turns a free-text customer message into a
# partial profile, a suggested reply and a readiness signal. It is an
# injected capability; the conversation engine never depends on its output
# being present or well formed.

logger = logging.getLogger(__name__)


class ClassifierInput(BaseModel):
    message: str
    history: List[MessageEntry] = Field(default_factory=list)
    profile: CustomerProfile = Field(default_factory=CustomerProfile)


class ClassifierOutput(BaseModel):
    delta: ProfileDelta = Field(default_factory=ProfileDelta)
    response_text: Optional[str] = None
    ready_to_recommend: bool = False
    invalid_fields: List[str] = Field(default_factory=list)

    @classmethod
    def from_raw(cls, data: Any) -> "ClassifierOutput":
        """
        Tolerant parser for model output. Missing keys become defaults and
        unparseable profile fields are reported in invalid_fields.
        Raises ExternalServiceError only when the payload is not an object.
        """
        if not isinstance(data, dict):
            raise ExternalServiceError("classifier", f"expected a JSON object, got {type(data).__name__}")

        delta, invalid = ProfileDelta.from_raw(data.get("delta"))
        response_text = data.get("response_text")
        if not isinstance(response_text, str) or not response_text.strip():
            response_text = None

        ready = data.get("ready_to_recommend", False)
        if isinstance(ready, str):
            ready = ready.strip().lower() in ("true", "sim", "yes", "1")
        return cls(delta=delta, response_text=response_text, ready_to_recommend=bool(ready), invalid_fields=invalid)


class PreferenceClassifier(Protocol):
    async def classify(self, request: ClassifierInput) -> ClassifierOutput:
        ...


def _format_history(history: List[MessageEntry]) -> str:
    if not history:
        return "(sem mensagens anteriores)"
    return "\n".join(f"{entry.role}: {entry.text}" for entry in history)


class OpenAIPreferenceClassifier:
    """Classifier backed by OpenAI chat completions in JSON mode."""

    def __init__(self, settings: Settings, client: Optional[AsyncOpenAI] = None, breaker: Optional[CircuitBreaker] = None):
        api_key = settings.require_openai_key()
        self.client = client or AsyncOpenAI(api_key=api_key)
        self.model = settings.classifier_model
        self.timeout = settings.classifier_timeout_seconds
        self.breaker = breaker or CircuitBreaker(
            "openai-classifier",
            failure_threshold=settings.breaker_failure_threshold,
            timeout=settings.breaker_timeout_seconds,
        )

    async def classify(self, request: ClassifierInput) -> ClassifierOutput:
        raw = await self.breaker.call(self._generate_json_response, request)
        return ClassifierOutput.from_raw(raw)

    async def _generate_json_response(self, request: ClassifierInput) -> Dict[str, Any]:
        prompt = CLASSIFIER_USER_TEMPLATE.format(
            profile=request.profile.model_dump_json(exclude_none=True),
            history=_format_history(request.history),
            message=request.message,
        )
        try:
            response = await asyncio.wait_for(
                self.client.chat.completions.create(
                    model=self.model,
                    response_format={"type": "json_object"},
                    messages=[
                        {"role": "system", "content": CLASSIFIER_SYSTEM_PROMPT},
                        {"role": "user", "content": prompt},
                    ],
                    temperature=0,
                ),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError:
            raise ExternalServiceError("classifier", f"timed out after {self.timeout}s")
        except Exception as e:
            raise ExternalServiceError("classifier", str(e)) from e

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ExternalServiceError("classifier", "empty completion")
        try:
            return json.loads(content)
        except json.JSONDecodeError as e:
            raise ExternalServiceError("classifier", f"invalid JSON: {e}") from e

    async def close(self):
        await self.client.close()


def build_preference_classifier(settings: Settings) -> Optional[OpenAIPreferenceClassifier]:
    """Returns the OpenAI classifier, or None when it is not configured."""
    try:
        return OpenAIPreferenceClassifier(settings)
    except ConfigurationError as e:
        logger.warning(f"Preference classifier disabled, conversations run in reprompt mode: {e}")
        return None
