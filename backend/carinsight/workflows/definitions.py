# /carinsight/workflows/definitions.py

"""
Conversation stage definitions as pure data (no logic).

STAGE_TRANSITIONS maps each stage to the stages it may move to. Staying in
the same stage is always allowed and is not listed. Closed has no outgoing
transitions: a closed conversation is never reopened, a new one is created.
"""

from typing import Dict, FrozenSet, Tuple

from carinsight.models.conversation import Stage

INITIAL_STAGE = Stage.DISCOVERY

STAGE_TRANSITIONS: Dict[Stage, FrozenSet[Stage]] = {
    Stage.DISCOVERY: frozenset({Stage.NEGOTIATION, Stage.HANDOFF, Stage.CLOSED}),
    Stage.NEGOTIATION: frozenset({Stage.HANDOFF, Stage.CLOSED}),
    Stage.HANDOFF: frozenset({Stage.CLOSED}),
    Stage.CLOSED: frozenset(),
}

# Stages in which the bot keeps talking to the customer.
CONTINUING_STAGES: FrozenSet[Stage] = frozenset({Stage.DISCOVERY, Stage.NEGOTIATION})

# Stages in which the classifier is consulted.
CLASSIFIER_STAGES: FrozenSet[Stage] = frozenset({Stage.DISCOVERY, Stage.NEGOTIATION})

# Discovery -> Negotiation needs at least one of these profile fields.
NEGOTIATION_CRITERIA: Tuple[str, ...] = ("budget", "body_type", "preferred_model")
