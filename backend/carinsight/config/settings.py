# /carinsight/config/settings.py

from typing import Annotated, List, Optional
from pydantic import Field, field_validator, model_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict

from carinsight.utils.errors import ConfigurationError


class Settings(BaseSettings):
    # Runtime
    environment: str = "production"
    log_level: str = "INFO"
    random_seed: Optional[int] = None

    # OpenAI (embeddings + preference classifier). Both integrations are optional.
    openai_api_key: Optional[str] = None
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536
    embedding_timeout_seconds: float = 10.0
    classifier_model: str = "gpt-4o-mini"
    classifier_timeout_seconds: float = 15.0
    classifier_history_size: int = 10

    # Circuit breaker shared by the external providers
    breaker_failure_threshold: int = 5
    breaker_timeout_seconds: int = 60

    # Lead / handoff sink
    lead_webhook_url: Optional[str] = None
    lead_webhook_timeout_seconds: float = 5.0

    # Redis (distributed per-conversation lock). In-process locks when unset.
    redis_url: Optional[str] = None
    conversation_lock_timeout_seconds: float = 60.0

    # Eligibility rules
    default_city_slug: str = "sao-paulo"
    reference_year: Optional[int] = None
    rules_db_path: str = "eligibility_rules.db"
    rule_ttl_days: int = 30
    uber_x_max_age: int = 10
    uber_comfort_max_age: int = 6
    uber_black_max_age: int = 6

    # Conversation triggers (case-insensitive substring match)
    exit_keywords: Annotated[List[str], NoDecode] = Field(default=["sair"])
    handoff_triggers: Annotated[List[str], NoDecode] = Field(default=["vendedor", "humano", "atendente"])
    financing_keywords: Annotated[List[str], NoDecode] = Field(
        default=["financ", "parcela", "entrada", "prestação", "prestacao"]
    )

    # Recommendation scoring
    max_recommendations: int = 5
    similarity_weight: float = 0.5
    budget_weight: float = 0.25
    body_type_weight: float = 0.15
    recency_weight: float = 0.10
    budget_tolerance: float = 0.2

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ---------------- Validators ---------------- #

    @field_validator("exit_keywords", "handoff_triggers", "financing_keywords", mode="before")
    @classmethod
    def parse_keyword_list(cls, v):
        """Accept comma-separated strings from the environment as well as lists."""
        if isinstance(v, str):
            return [item.strip().lower() for item in v.split(",") if item.strip()]
        if isinstance(v, list):
            return [str(item).strip().lower() for item in v if str(item).strip()]
        return v

    @field_validator("embedding_dimensions", "max_recommendations")
    @classmethod
    def must_be_positive(cls, v):
        if v <= 0:
            raise ValueError("must be a positive integer")
        return v

    @field_validator("similarity_weight", "budget_weight", "body_type_weight", "recency_weight", "budget_tolerance")
    @classmethod
    def must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError("must not be negative")
        return v

    @model_validator(mode="after")
    def check_weights(self):
        total = self.similarity_weight + self.budget_weight + self.body_type_weight + self.recency_weight
        if total <= 0:
            raise ValueError("At least one scoring weight must be positive")
        return self

    def require_openai_key(self) -> str:
        """Returns the OpenAI key or raises ConfigurationError for the calling integration."""
        if not self.openai_api_key:
            raise ConfigurationError("OPENAI_API_KEY is not configured")
        return self.openai_api_key


def load_settings(**overrides) -> Settings:
    """Builds a Settings instance from the environment, applying explicit overrides."""
    return Settings(**overrides)
