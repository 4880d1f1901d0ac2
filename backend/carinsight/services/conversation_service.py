# /carinsight/services/conversation_service.py

import random
import asyncio
import logging
from typing import Dict, List, Optional, Tuple, TypedDict

from carinsight.config import strings
from carinsight.config.settings import Settings
from carinsight.models.conversation import (
    Conversation,
    ConversationFlag,
    HandoffSignal,
    Stage,
    TurnResult,
)
from carinsight.models.domain import (
    FinancingSimulation,
    RecommendationCandidate,
    RecommendationExplanation,
    Vehicle,
)
from carinsight.services.classifier_service import ClassifierInput, ClassifierOutput, PreferenceClassifier
from carinsight.services.conversation_store import ConversationStore
from carinsight.services.eligibility_service import reference_year_for
from carinsight.services.explanation_service import explain_all
from carinsight.services.financing_service import format_financing, simulate_financing
from carinsight.services.lead_service import LeadSink
from carinsight.services.recommendation_service import RecommendationService, format_recommendations
from carinsight.utils.locks import KeyedAsyncLock, KeyedLock
from carinsight.utils.text import choose_variation
from carinsight.workflows.engine import (
    continues,
    detect_financing,
    evaluate_triggers,
    extract_down_payment,
    merge_profile,
    should_advance_to_negotiation,
    transition,
    uses_classifier,
)

# One inbound message in, one TurnResult out. Keyword triggers are checked
# before the classifier and work without it; every collaborator failure is
# turned into a local fallback so a turn always produces a reply.

logger = logging.getLogger(__name__)


class ClassifierTurn(TypedDict):
    response: str
    recommendations: List[RecommendationCandidate]
    explanations: List[RecommendationExplanation]
    financing: Optional[FinancingSimulation]


class ConversationService:
    def __init__(
        self,
        store: ConversationStore,
        recommender: RecommendationService,
        lead_sink: LeadSink,
        settings: Settings,
        classifier: Optional[PreferenceClassifier] = None,
        lock: Optional[KeyedLock] = None,
        rng: Optional[random.Random] = None,
    ):
        self.store = store
        self.recommender = recommender
        self.lead_sink = lead_sink
        self.settings = settings
        self.classifier = classifier
        self.lock = lock or KeyedAsyncLock()
        self.rng = rng or random.Random(settings.random_seed)

    async def handle_message(self, channel_id: str, text: str) -> TurnResult:
        """Processes one customer message. Messages of the same channel are serialized."""
        async with self.lock.hold(channel_id):
            return await self._process_turn(channel_id, text or "")

    async def _load_or_start(self, channel_id: str) -> Conversation:
        conversation = await self.store.get_by_channel(channel_id)
        if conversation is not None and conversation.stage == Stage.CLOSED:
            logger.info(f"Conversation {conversation.id} is closed, starting a new one for channel {channel_id}")
            conversation = None
        if conversation is None:
            conversation = await self.store.create(channel_id)
        return conversation

    async def _process_turn(self, channel_id: str, text: str) -> TurnResult:
        conversation = await self._load_or_start(channel_id)
        is_first_message = not conversation.history
        history_limit = self.settings.classifier_history_size
        conversation.append_message("customer", text, history_limit)

        triggers = evaluate_triggers(text, self.settings.exit_keywords, self.settings.handoff_triggers)
        handoff_emitted = False
        turn: Optional[ClassifierTurn] = None

        if triggers["handoff"]:
            handoff_emitted = await self._request_handoff(conversation, text)

        if triggers["exit"]:
            conversation.flags.add(ConversationFlag.EXIT_REQUESTED)
            conversation.stage = transition(conversation.stage, Stage.CLOSED)
            response = choose_variation(strings.CLOSING_MESSAGE, self.rng)
        elif triggers["handoff"]:
            response = choose_variation(strings.HANDOFF_MESSAGE, self.rng)
        elif not uses_classifier(conversation.stage):
            response = strings.HANDOFF_PENDING
        else:
            turn = await self._classifier_turn(conversation, text, is_first_message)
            response = turn["response"]

        conversation.append_message("assistant", response, history_limit)
        persisted = await self.store.update(conversation)
        if not persisted:
            logger.warning(
                f"Conversation {conversation.id} was deleted during the turn; result not persisted"
            )

        return TurnResult(
            conversation_id=conversation.id,
            stage=conversation.stage,
            profile=conversation.profile,
            flags=list(conversation.flags),
            response_text=response,
            continue_conversation=continues(conversation.stage),
            recommendations=turn["recommendations"] if turn else [],
            explanations=turn["explanations"] if turn else [],
            financing=turn["financing"] if turn else None,
            handoff_emitted=handoff_emitted,
            persisted=persisted,
        )

    async def _request_handoff(self, conversation: Conversation, text: str) -> bool:
        """
        Flags the handoff and moves to the handoff stage. The lead sink is only
        called when the flag is new, so a session emits at most one signal.
        """
        newly_flagged = conversation.flags.add(ConversationFlag.HANDOFF_REQUESTED)
        conversation.stage = transition(conversation.stage, Stage.HANDOFF)
        if not newly_flagged:
            return False

        signal = HandoffSignal(
            conversation_id=conversation.id,
            channel_id=conversation.channel_id,
            triggering_message=text,
            profile_snapshot=conversation.profile.model_copy(),
        )
        try:
            await self.lead_sink.deliver(signal)
        except Exception as e:
            logger.error(f"Could not deliver handoff for conversation {conversation.id}: {e}", exc_info=True)
            return False
        logger.info(f"Handoff requested for conversation {conversation.id}")
        return True

    async def _classify(self, conversation: Conversation, text: str) -> Optional[ClassifierOutput]:
        """Calls the classifier. Any failure returns None and marks the conversation degraded."""
        if self.classifier is None:
            conversation.flags.add(ConversationFlag.CLASSIFIER_DEGRADED)
            return None

        request = ClassifierInput(
            message=text,
            history=conversation.history[:-1],
            profile=conversation.profile,
        )
        try:
            return await asyncio.wait_for(
                self.classifier.classify(request), timeout=self.settings.classifier_timeout_seconds
            )
        except asyncio.TimeoutError:
            logger.error(
                f"Classifier timed out after {self.settings.classifier_timeout_seconds}s "
                f"for conversation {conversation.id}"
            )
        except Exception as e:
            logger.error(f"Classifier failed for conversation {conversation.id}: {e}")
        conversation.flags.add(ConversationFlag.CLASSIFIER_DEGRADED)
        return None

    async def _classifier_turn(
        self, conversation: Conversation, text: str, is_first_message: bool
    ) -> ClassifierTurn:
        turn: ClassifierTurn = {"response": "", "recommendations": [], "explanations": [], "financing": None}
        financing_requested = conversation.stage == Stage.NEGOTIATION and detect_financing(
            text, self.settings.financing_keywords
        )

        output = await self._classify(conversation, text)
        if output is None and not financing_requested:
            turn["response"] = choose_variation(strings.GENERIC_REPROMPT, self.rng)
            return turn

        parts: List[str] = []
        if output is not None:
            conversation.profile = merge_profile(conversation.profile, output.delta)
            if output.response_text:
                parts.append(output.response_text)
            elif is_first_message:
                parts.append(choose_variation(strings.GREETING, self.rng))

        # Financing is answered from the keywords, even when the classifier is down.
        if financing_requested:
            financing_text, turn["financing"] = await self._simulate_financing(conversation, text)
            parts.append(financing_text)
        if not parts:
            parts.append(choose_variation(strings.GENERIC_REPROMPT, self.rng))
        if output is None:
            turn["response"] = "\n\n".join(parts)
            return turn

        for field in output.invalid_fields:
            if field in strings.FIELD_REPROMPTS:
                parts.append(strings.FIELD_REPROMPTS[field])

        entered_negotiation = False
        if should_advance_to_negotiation(conversation.stage, conversation.profile, output.ready_to_recommend):
            conversation.stage = transition(conversation.stage, Stage.NEGOTIATION)
            entered_negotiation = True
            logger.info(f"Conversation {conversation.id} moved to negotiation")

        if conversation.stage == Stage.NEGOTIATION and (entered_negotiation or output.ready_to_recommend):
            listing, turn["recommendations"], turn["explanations"] = await self._recommend(conversation, text)
            if listing:
                parts.append(listing)

        turn["response"] = "\n\n".join(parts)
        return turn

    async def _recommend(
        self, conversation: Conversation, text: str
    ) -> Tuple[str, List[RecommendationCandidate], List[RecommendationExplanation]]:
        try:
            candidates, vehicles = await self.recommender.recommend(
                conversation.profile,
                reference_year=reference_year_for(self.settings),
                message=text,
            )
        except Exception as e:
            logger.error(f"Recommendation failed for conversation {conversation.id}: {e}", exc_info=True)
            return "", [], []

        if candidates:
            conversation.flags.add(ConversationFlag.RECOMMENDATIONS_SHOWN)
            conversation.last_recommendations = [c.vehicle_id for c in candidates]
        explanations = explain_all(candidates, vehicles, conversation.profile)
        listing = format_recommendations(
            candidates, vehicles, self.rng, {e.vehicle_id: e for e in explanations}
        )
        return listing, candidates, explanations

    async def _financing_vehicle(self, conversation: Conversation, text: str) -> Optional[Vehicle]:
        """The recommended vehicle the customer names in the message, else the top recommendation."""
        if not conversation.last_recommendations:
            return None
        try:
            found: Dict[str, Vehicle] = await self.recommender.vehicle_repository.get_many(
                conversation.last_recommendations
            )
        except Exception as e:
            logger.error(f"Could not load vehicles for financing in conversation {conversation.id}: {e}")
            return None

        priced = [
            found[vehicle_id]
            for vehicle_id in conversation.last_recommendations
            if vehicle_id in found and found[vehicle_id].price
        ]
        if not priced:
            return None
        lowered = text.lower()
        for vehicle in priced:
            if vehicle.model.lower() in lowered:
                return vehicle
        return priced[0]

    async def _simulate_financing(
        self, conversation: Conversation, text: str
    ) -> Tuple[str, Optional[FinancingSimulation]]:
        down_payment = extract_down_payment(text)
        if down_payment is not None:
            conversation.profile = conversation.profile.model_copy(update={"down_payment": down_payment})

        vehicle = await self._financing_vehicle(conversation, text)
        if vehicle is None:
            return choose_variation(strings.FINANCING_NEEDS_VEHICLE, self.rng), None

        profile = conversation.profile
        trade_in_value = profile.trade_in_value if profile.has_trade_in is not False else None
        simulation = simulate_financing(
            vehicle.price,
            down_payment=profile.down_payment or 0.0,
            trade_in_value=trade_in_value or 0.0,
            vehicle_id=vehicle.id,
        )
        conversation.flags.add(ConversationFlag.FINANCING_SIMULATED)
        logger.info(
            f"Financing simulated for conversation {conversation.id}: vehicle {vehicle.id}, "
            f"entry {simulation.total_entry}, financed {simulation.finance_amount}"
        )
        return format_financing(simulation, f"{vehicle.brand} {vehicle.model}"), simulation
