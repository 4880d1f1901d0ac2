# /carinsight/utils/lifecycle.py

import random
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import AsyncIterator, Optional

from carinsight.config.settings import Settings
from carinsight.services.catalog_service import CatalogService
from carinsight.services.classifier_service import PreferenceClassifier, build_preference_classifier
from carinsight.services.conversation_service import ConversationService
from carinsight.services.conversation_store import ConversationStore, InMemoryConversationStore
from carinsight.services.eligibility_service import RuleSetProvider
from carinsight.services.embedding_service import EmbeddingProvider, build_embedding_provider
from carinsight.services.lead_service import LeadSink, build_lead_sink
from carinsight.services.recommendation_service import RecommendationService
from carinsight.services.rule_repository import RuleRepository, SqliteRuleRepository
from carinsight.services.similarity_store import SimilarityStore
from carinsight.services.vehicle_repository import InMemoryVehicleRepository, VehicleRepository
from carinsight.utils.locks import KeyedAsyncLock, KeyedLock, RedisKeyedLock
from carinsight.utils.logging import setup_logging

# This file manages the lifespan of the service container: collaborators
# are built from Settings on entry and their connections closed on exit.

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    settings: Settings
    vehicles: VehicleRepository
    conversations: ConversationStore
    rules: RuleRepository
    rule_sets: RuleSetProvider
    similarity_store: SimilarityStore
    recommender: RecommendationService
    lead_sink: LeadSink
    lock: KeyedLock
    conversation_service: ConversationService
    catalog: CatalogService
    embedding_provider: Optional[EmbeddingProvider] = None
    classifier: Optional[PreferenceClassifier] = None


async def _close(resource, name: str):
    """Calls the first teardown method the resource has; failures are logged."""
    for method in ("close", "cleanup"):
        closer = getattr(resource, method, None)
        if closer is None:
            continue
        try:
            await closer()
        except Exception as e:
            logger.error(f"Failed to close {name}: {e}")
        return


@asynccontextmanager
async def lifespan(
    settings: Settings,
    vehicles: Optional[VehicleRepository] = None,
    conversations: Optional[ConversationStore] = None,
    rules: Optional[RuleRepository] = None,
    classifier: Optional[PreferenceClassifier] = None,
    embedding_provider: Optional[EmbeddingProvider] = None,
    lead_sink: Optional[LeadSink] = None,
) -> AsyncIterator[ServiceContainer]:
    """
    Builds every collaborator from Settings, indexes the available catalog and
    yields the container. Explicit arguments replace the default adapters.
    """
    setup_logging(settings.environment, settings.log_level)
    logger.info("CarInsight starting up...")

    vehicles = vehicles or InMemoryVehicleRepository()
    conversations = conversations or InMemoryConversationStore()
    rules = rules or SqliteRuleRepository(settings.rules_db_path)
    embedding_provider = embedding_provider or build_embedding_provider(settings)
    classifier = classifier or build_preference_classifier(settings)
    lead_sink = lead_sink or build_lead_sink(settings)

    if settings.redis_url:
        lock: KeyedLock = RedisKeyedLock.from_url(settings.redis_url, timeout=settings.conversation_lock_timeout_seconds)
        logger.info("Using Redis conversation locks")
    else:
        lock = KeyedAsyncLock()

    similarity_store = SimilarityStore(
        provider=embedding_provider,
        dimensions=settings.embedding_dimensions,
        timeout=settings.embedding_timeout_seconds,
    )
    await similarity_store.index_vehicles(await vehicles.list(available_only=True))

    rule_sets = RuleSetProvider(rules, settings)
    recommender = RecommendationService(similarity_store, vehicles, rule_sets, settings)
    catalog = CatalogService(vehicles, similarity_store)
    conversation_service = ConversationService(
        store=conversations,
        recommender=recommender,
        lead_sink=lead_sink,
        settings=settings,
        classifier=classifier,
        lock=lock,
        rng=random.Random(settings.random_seed),
    )

    container = ServiceContainer(
        settings=settings,
        vehicles=vehicles,
        conversations=conversations,
        rules=rules,
        rule_sets=rule_sets,
        similarity_store=similarity_store,
        recommender=recommender,
        lead_sink=lead_sink,
        lock=lock,
        conversation_service=conversation_service,
        catalog=catalog,
        embedding_provider=embedding_provider,
        classifier=classifier,
    )
    logger.info("CarInsight startup complete.")

    try:
        yield container
    finally:
        logger.info("CarInsight shutting down...")
        for resource, name in (
            (classifier, "classifier"),
            (embedding_provider, "embedding provider"),
            (lead_sink, "lead sink"),
            (lock, "conversation lock"),
        ):
            if resource is not None:
                await _close(resource, name)
