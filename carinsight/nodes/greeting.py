"""
Greeting node: opens the conversation and learns the customer's name.

Handles a customer who arrived from a specific listing, then four cases
depending on whether the first message carries a name, a vehicle intent,
both or neither.
"""

from carinsight.conversation.transitions import NodeContext, Transition, goto, reply
from carinsight.logging_context import get_session_logger
from carinsight.prompts import messages
from carinsight.schemas.conversation_schema import DialogueNode

logger = get_session_logger(__name__)

SEEDED_REASONING = "Veículo que você selecionou"


def _has_seeded_vehicle(ctx: NodeContext) -> bool:
    recs = ctx.recommendations
    return (
        bool(recs)
        and recs[0].reasoning == SEEDED_REASONING
        and not ctx.profile.shown_recommendation
    )


async def greeting_node(ctx: NodeContext) -> Transition:
    text = ctx.text
    extractor = ctx.services.extractor

    if _has_seeded_vehicle(ctx):
        vehicle = ctx.recommendations[0].vehicle
        name = ctx.profile.customer_name or extractor.extract_name(text)
        logger.info("Customer started from vehicle %s", vehicle.id)
        return reply(
            DialogueNode.RECOMMENDATION,
            messages.build_greeting_for_vehicle(vehicle, name),
            profile={"shown_recommendation": True, "customer_name": name},
        )

    if ctx.profile.customer_name:
        logger.debug("Name already known, moving to discovery")
        return goto(DialogueNode.DISCOVERY)

    name = extractor.extract_name(text)
    update = extractor.extract(text)
    has_intent = bool(update)

    if name and has_intent:
        return reply(
            DialogueNode.DISCOVERY,
            messages.build_greeting_with_intent(name, update),
            profile={**update, "customer_name": name},
        )

    if name:
        return reply(
            DialogueNode.DISCOVERY,
            messages.build_greeting_named(name),
            profile={"customer_name": name},
        )

    if has_intent:
        return reply(
            DialogueNode.GREETING,
            messages.build_greeting_intent_only(update),
            profile=update,
        )

    return reply(DialogueNode.GREETING, messages.build_welcome())
